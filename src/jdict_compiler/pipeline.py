"""
Compile pipeline.

Sequences the parsers, the deduplication engine, the linker and the store
writer into one run:

    SCHEMA_APPLY → LOAD_WORDS (words, kanji, furigana) → COMMIT_1
    → BUILD_FORM_INDEX → LOAD_EXAMPLES (+ link) → COMMIT_2
    → BUILD_SEARCH_INDEX (FTS, indexes, ANALYZE) → COMMIT_3 → COMPACT

The store is always built in a sibling temporary file and moved over the
output path only after the final commit, so an aborted run leaves the previous
store untouched. Only FatalIOFailure escapes a run; missing inputs skip their
phase and bad records or batches are counted in the RunReport.
"""

import inspect
import logging
import os
import shutil
import sqlite3
import stat
import tempfile
from contextlib import contextmanager
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple, Type

from pydantic import BaseModel
from tqdm import tqdm

from . import __version__
from .config import PipelineConfig
from .exceptions import FatalIOFailure, MissingDependency
from .export.database import BatchFn, StoreWriter, read_store_stats
from .export.schema import EXAMPLE_TABLES, WORD_TABLES
from .sources.base import LineParser, ParseStats
from .sources.edict_parser import EDICTParser
from .sources.examples_parser import ExamplesParser
from .sources.furigana_parser import FuriganaParser
from .sources.kanjidic_parser import KanjidicParser
from .sources.words_parser import WordsParser
from .stats import RunReport
from .transform.cache_utils import ParseCache
from .transform.inflection import WordFormIndex
from .transform.linker import CrossReferenceLinker
from .transform.models import ExampleEntry, FuriganaEntry, KanjiEntry, WordEntry
from .transform.normalization import deduplicate_entries


class Phase(str, Enum):
    SCHEMA_APPLY = "schema_apply"
    LOAD_WORDS = "load_words"
    LOAD_KANJI = "load_kanji"
    LOAD_FURIGANA = "load_furigana"
    COMMIT_1 = "commit_1"
    BUILD_FORM_INDEX = "build_form_index"
    LOAD_EXAMPLES = "load_examples"
    COMMIT_2 = "commit_2"
    BUILD_SEARCH_INDEX = "build_search_index"
    COMMIT_3 = "commit_3"
    COMPACT = "compact"


IMPORT_TARGETS = ("words", "kanji", "examples", "furigana")


class CompilePipeline:
    """
    Runs compile commands against one output store.

    Every run_* method returns the RunReport of that run and raises only
    FatalIOFailure.
    """

    def __init__(self, config: PipelineConfig, logger=None):
        self.config = config
        self.logger = logger or logging.getLogger(__name__)
        self.cache = ParseCache(config.cache_dir) if config.use_cache else None
        self.report = RunReport()

    # --- commands ---

    def run_create_schema(self) -> RunReport:
        """Apply the schema; an existing store keeps its data."""
        self.report = RunReport()
        with self._staged_store(copy_existing=True) as writer:
            self._apply_schema(writer)
        return self._finish()

    def run_reset(self) -> RunReport:
        """Replace the store with an empty schema."""
        self.report = RunReport()
        with self._staged_store(copy_existing=False) as writer:
            self._apply_schema(writer)
        return self._finish()

    def run_import_all(self) -> RunReport:
        """Full rebuild from every configured source that is present."""
        self.report = RunReport()
        output = self.config.output_path
        with self._staged_store(copy_existing=False) as writer:
            self._apply_schema(writer)
            if output.exists():
                writer.carry_over_furigana(output)

            writer.begin(Phase.LOAD_WORDS.value)
            self._load_words(writer)
            self._load_kanji(writer)
            self._load_furigana(writer)
            self._commit(writer, Phase.COMMIT_1, (Phase.LOAD_WORDS, Phase.LOAD_KANJI, Phase.LOAD_FURIGANA))

            index = self._build_form_index(writer)
            writer.begin(Phase.LOAD_EXAMPLES.value)
            self._load_examples(writer, index)
            self._commit(writer, Phase.COMMIT_2, (Phase.LOAD_EXAMPLES,))
            del index

            self._finalize(writer, rebuild_search=True)
        return self._finish()

    def run_import(self, target: str) -> RunReport:
        """
        Rebuild one part of the store on a copy of the existing store.

        Args:
            target: One of "words", "kanji", "examples", "furigana"
        """
        if target not in IMPORT_TARGETS:
            raise ValueError(f"Unknown import target: {target} (expected one of {', '.join(IMPORT_TARGETS)})")
        self.report = RunReport()

        with self._staged_store(copy_existing=True) as writer:
            self._apply_schema(writer)

            if target == "words":
                writer.begin(Phase.LOAD_WORDS.value)
                writer.clear_tables(WORD_TABLES)
                self._load_words(writer)
                self._commit(writer, Phase.COMMIT_1, (Phase.LOAD_WORDS,))
                index = self._build_form_index(writer)
                writer.begin(Phase.LOAD_EXAMPLES.value)
                self._relink_examples(writer, index)
                self._commit(writer, Phase.COMMIT_2, (Phase.LOAD_EXAMPLES,))
                self._finalize(writer, rebuild_search=True)

            elif target == "kanji":
                writer.begin(Phase.LOAD_KANJI.value)
                self._load_kanji(writer)
                self._commit(writer, Phase.COMMIT_1, (Phase.LOAD_KANJI,))
                self._finalize(writer, rebuild_search=False)

            elif target == "furigana":
                writer.begin(Phase.LOAD_FURIGANA.value)
                self._load_furigana(writer)
                self._commit(writer, Phase.COMMIT_1, (Phase.LOAD_FURIGANA,))
                self._finalize(writer, rebuild_search=False)

            else:
                index = self._build_form_index(writer)
                writer.begin(Phase.LOAD_EXAMPLES.value)
                writer.clear_tables(EXAMPLE_TABLES)
                self._load_examples(writer, index)
                self._commit(writer, Phase.COMMIT_2, (Phase.LOAD_EXAMPLES,))
                self._finalize(writer, rebuild_search=True)

        return self._finish()

    def stats(self) -> Dict[str, Any]:
        """Table counts and size of the output store."""
        return read_store_stats(self.config.output_path)

    # --- store staging ---

    @contextmanager
    def _staged_store(self, copy_existing: bool) -> Iterator[StoreWriter]:
        """
        Yield a writer on a sibling temp file; swap it in on success.

        On any exception the temp file is removed and the output path is left
        as it was.
        """
        output = self.config.output_path
        try:
            output.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=f".{output.name}.", suffix=".tmp", dir=output.parent)
            os.close(fd)
        except OSError as e:
            raise FatalIOFailure(f"Cannot create temporary store: {e}", output)
        tmp_path = Path(tmp_name)

        writer = StoreWriter(
            tmp_path,
            batch_size=self.config.batch_size,
            show_progress=self.config.show_progress,
        )
        try:
            if copy_existing and output.exists():
                shutil.copyfile(output, tmp_path)
                self.logger.info(f"Working on a copy of {output}")
            with writer:
                yield writer
            os.chmod(tmp_path, _store_mode(output))
            os.replace(tmp_path, output)
            self.logger.info(f"✓ Store written to {output}")
        except OSError as e:
            self._discard(tmp_path)
            raise FatalIOFailure(f"Cannot write store: {e}", output)
        except sqlite3.Error as e:
            self._discard(tmp_path)
            raise FatalIOFailure(f"Store error: {e}", output)
        except BaseException:
            self._discard(tmp_path)
            raise

    def _discard(self, tmp_path: Path) -> None:
        try:
            tmp_path.unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            self.logger.warning(f"Could not remove temporary store {tmp_path}: {e}")
        self.logger.error(f"✗ Run aborted, previous store left untouched at {self.config.output_path}")

    # --- phases ---

    def _apply_schema(self, writer: StoreWriter) -> None:
        writer.apply_schema()
        self.report.phase(Phase.SCHEMA_APPLY.value).completed = True

    def _commit(self, writer: StoreWriter, commit_phase: Phase, covered: Tuple[Phase, ...]) -> None:
        writer.commit(commit_phase.value)
        self.report.phase(commit_phase.value).completed = True
        for phase in covered:
            stats = self.report.get(phase.value)
            if stats is not None:
                stats.completed = True

    def _finalize(self, writer: StoreWriter, rebuild_search: bool) -> None:
        """BUILD_SEARCH_INDEX → COMMIT_3 → COMPACT."""
        stats = self.report.phase(Phase.BUILD_SEARCH_INDEX.value)
        writer.begin(Phase.BUILD_SEARCH_INDEX.value)
        if rebuild_search:
            writer.build_search_index(stats)
        else:
            stats.note = "search index unchanged"
        writer.create_indexes()
        writer.save_metadata({
            "compiler_version": __version__,
            "batch_size": self.config.batch_size,
            "min_form_length": self.config.linker.min_form_length,
            "max_links": self.config.linker.max_links,
        })
        writer.save_stats({
            **writer.table_counts(),
            "total_skipped": self.report.total_skipped,
            "total_errors": self.report.total_errors,
        })
        self._commit(writer, Phase.COMMIT_3, (Phase.BUILD_SEARCH_INDEX,))

        compact_stats = self.report.phase(Phase.COMPACT.value)
        if not self.config.compact:
            compact_stats.note = "disabled"
            compact_stats.completed = True
            return
        compact_stats.completed = writer.compact()
        if not compact_stats.completed:
            compact_stats.note = "VACUUM failed, store is valid but uncompacted"

    def _source_file(self, name: str, phase: Phase) -> Path:
        """
        Raises:
            MissingDependency: Source disabled or file absent
        """
        path = self.config.source_path(name)
        if path is None or not path.exists():
            raise MissingDependency(phase.value, path or Path(name))
        return path

    def _progress(self, desc: str) -> Tuple[tqdm, Callable[[int, int], None]]:
        pbar = tqdm(desc=desc, unit="line", disable=not self.config.show_progress)

        def callback(current: int, total: int) -> None:
            pbar.total = total
            pbar.n = current
            pbar.refresh()

        return pbar, callback

    def _parse(
        self,
        name: str,
        phase: Phase,
        parser: LineParser,
        model_cls: Type[BaseModel],
        parse_fn: Optional[Callable[[Path, Callable[[int, int], None]], List[Any]]] = None,
    ) -> Tuple[List[Any], Dict[str, int]]:
        """
        Parse one source, through the msgpack cache when enabled.

        Returns:
            (entries, {"records": n, "valid": n, "rejected": n})

        Raises:
            MissingDependency: Source file absent
        """
        path = self._source_file(name, phase)
        parser_file = Path(inspect.getfile(type(parser)))

        if self.cache is not None:
            hit = self.cache.load(name, parser_file, path, model_cls)
            if hit is not None:
                cached_stats, entries = hit
                return entries, cached_stats

        pbar, callback = self._progress(f"parse {name}")
        try:
            entries = (parse_fn or parser.parse_file)(path, callback)
        finally:
            pbar.close()

        counts = _parse_counts(parser.stats)
        counts["duplicates"] = getattr(parser, "duplicates", 0)
        if self.cache is not None:
            self.cache.save(name, parser_file, path, entries, counts)
        return entries, counts

    def _load_words(self, writer: StoreWriter) -> None:
        stats = self.report.phase(Phase.LOAD_WORDS.value)
        entries: List[WordEntry] = []
        missing = []
        duplicates = 0

        edict_parser = EDICTParser()
        words_parser = WordsParser()
        for name, parser, parse_fn in (
            ("edict", edict_parser, None),
            ("words", words_parser, words_parser.parse_entries),
        ):
            try:
                parsed, counts = self._parse(name, Phase.LOAD_WORDS, parser, WordEntry, parse_fn)
            except MissingDependency as e:
                self.logger.warning(f"{e}; continuing without it")
                missing.append(name)
                continue
            stats.processed += counts["records"]
            stats.valid += counts["valid"]
            stats.skipped += counts["rejected"]
            duplicates += counts.get("duplicates", 0)
            entries.extend(parsed)

        if len(missing) == 2:
            stats.note = "skipped: no word sources found"
            return
        if missing:
            stats.note = f"missing source: {', '.join(missing)}"

        unique = deduplicate_entries(entries)
        stats.skipped += duplicates + len(entries) - len(unique)
        writer.insert_batches(Phase.LOAD_WORDS.value, unique, writer.insert_words, stats, total=len(unique))
        self.logger.info(stats.summary())

    def _load_kanji(self, writer: StoreWriter) -> None:
        stats = self.report.phase(Phase.LOAD_KANJI.value)
        try:
            entries, counts = self._parse("kanjidic", Phase.LOAD_KANJI, KanjidicParser(), KanjiEntry)
        except MissingDependency as e:
            self.logger.warning(f"{e}; phase skipped")
            stats.note = "skipped: source not found"
            return
        stats.processed += counts["records"]
        stats.valid += counts["valid"]
        stats.skipped += counts["rejected"]
        writer.insert_batches(Phase.LOAD_KANJI.value, entries, writer.insert_kanji, stats, total=len(entries))
        self.logger.info(stats.summary())

    def _load_furigana(self, writer: StoreWriter) -> None:
        stats = self.report.phase(Phase.LOAD_FURIGANA.value)
        try:
            entries, counts = self._parse("furigana", Phase.LOAD_FURIGANA, FuriganaParser(), FuriganaEntry)
        except MissingDependency as e:
            self.logger.warning(f"{e}; phase skipped")
            stats.note = "skipped: source not found"
            return
        stats.processed += counts["records"]
        stats.valid += counts["valid"]
        stats.skipped += counts["rejected"]
        writer.insert_batches(Phase.LOAD_FURIGANA.value, entries, writer.upsert_furigana, stats, total=len(entries))
        self.logger.info(stats.summary())

    def _build_form_index(self, writer: StoreWriter) -> WordFormIndex:
        stats = self.report.phase(Phase.BUILD_FORM_INDEX.value)
        index = WordFormIndex.build_from_rows(writer.word_rows())
        stats.processed = index.word_count
        stats.inserted = len(index)
        stats.note = f"{index.collisions:,} form collisions"
        stats.completed = True
        return index

    def _load_examples(self, writer: StoreWriter, index: WordFormIndex) -> None:
        stats = self.report.phase(Phase.LOAD_EXAMPLES.value)
        try:
            entries, counts = self._parse("examples", Phase.LOAD_EXAMPLES, ExamplesParser(), ExampleEntry)
        except MissingDependency as e:
            self.logger.warning(f"{e}; phase skipped")
            stats.note = "skipped: source not found"
            return
        stats.processed += counts["records"]
        stats.valid += counts["valid"]
        stats.skipped += counts["rejected"]

        linker = CrossReferenceLinker(index, self.config.linker)
        extra = writer.insert_batches(
            Phase.LOAD_EXAMPLES.value,
            entries,
            _restoring_on_rollback(linker, lambda batch: writer.insert_examples(batch, linker.link)),
            stats,
            total=len(entries),
            batch_size=self.config.example_batch_size,
        )
        stats.note = f"{extra['links']:,} links, {extra['unlinked']:,} unlinked; {linker.summary()}"
        self.logger.info(stats.summary())

    def _relink_examples(self, writer: StoreWriter, index: WordFormIndex) -> None:
        """Re-derive word_examples for examples already in the store."""
        stats = self.report.phase(Phase.LOAD_EXAMPLES.value)
        writer.clear_tables(("word_examples",))
        rows = writer.example_rows()
        linker = CrossReferenceLinker(index, self.config.linker)

        def link_batch(batch) -> Dict[str, int]:
            links = 0
            for example_id, japanese, english, breakdown, source_id in batch:
                example = ExampleEntry(japanese=japanese, english=english, breakdown=breakdown, source_id=source_id)
                links += writer.insert_links(example_id, linker.link(example))
            return {"links": links}

        stats.processed = stats.valid = len(rows)
        extra = writer.insert_batches(
            Phase.LOAD_EXAMPLES.value,
            rows,
            _restoring_on_rollback(linker, link_batch),
            stats,
            total=len(rows),
            batch_size=self.config.example_batch_size,
        )
        stats.note = f"relinked: {extra['links']:,} links; {linker.summary()}"
        self.logger.info(stats.summary())

    def _finish(self) -> RunReport:
        self.report.succeeded = True
        self.logger.info("Run report:")
        for line in self.report.lines():
            self.logger.info(f"  {line}")
        return self.report


def _parse_counts(stats: ParseStats) -> Dict[str, int]:
    return {"records": stats.records, "valid": stats.valid, "rejected": stats.rejected}


def _restoring_on_rollback(linker: CrossReferenceLinker, insert_fn: BatchFn) -> BatchFn:
    """Wrap a batch writer so a failed batch leaves the linker counters as they were."""
    def run(batch: List[Any]) -> Dict[str, int]:
        snapshot = linker.checkpoint()
        try:
            return insert_fn(batch)
        except sqlite3.DatabaseError:
            linker.restore(snapshot)
            raise
    return run


def _store_mode(output: Path) -> int:
    """Permission bits for the swapped-in store: the old store's, else 0666 minus umask."""
    if output.exists():
        return stat.S_IMODE(output.stat().st_mode)
    umask = os.umask(0)
    os.umask(umask)
    return 0o666 & ~umask
