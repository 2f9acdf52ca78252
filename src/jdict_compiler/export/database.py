"""
SQLite store writer.

Owns the single connection of a compile run and implements the load
primitives the pipeline sequences:

- explicit BEGIN / COMMIT per phase (the connection runs in autocommit mode,
  so nothing is committed implicitly)
- checkpointed batches: each batch runs inside SAVEPOINT batch; a constraint
  failure rolls back only that batch, which is counted as errors
- furigana upsert by (text, reading) and carry-over from a previous store
- FTS5 search index rebuild, post-load indexes and ANALYZE
- VACUUM compaction (never fatal)
"""

import json
import logging
import sqlite3
from collections import Counter
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Optional, Sequence

from tqdm import tqdm

from ..exceptions import FatalIOFailure, IntegrityViolation
from ..stats import PhaseStats
from ..transform.annotation import segments_to_json
from ..transform.models import ExampleEntry, FuriganaEntry, KanjiEntry, WordEntry
from ..transform.romaji import to_hiragana, to_romaji
from .schema import COUNTED_TABLES, FTS_TABLES, POST_LOAD_INDEXES_SQL, PRAGMAS, SCHEMA_SQL

BatchFn = Callable[[List[Any]], Dict[str, int]]


def _json_list(values: Sequence[str]) -> str:
    return json.dumps(list(values), ensure_ascii=False)


def _chunks(items: Iterable[Any], size: int) -> Iterator[List[Any]]:
    batch: List[Any] = []
    for item in items:
        batch.append(item)
        if len(batch) >= size:
            yield batch
            batch = []
    if batch:
        yield batch


class StoreWriter:
    """
    Writes parsed entries into the dictionary store.

    Usage:
        with StoreWriter(path, batch_size=1000) as writer:
            writer.apply_schema()
            writer.begin("load_words")
            writer.insert_batches("load_words", entries, writer.insert_words, stats)
            writer.commit("load_words")
    """

    def __init__(self, db_path: Path, batch_size: int = 1000, show_progress: bool = True, logger=None):
        self.db_path = Path(db_path)
        self.batch_size = batch_size
        self.show_progress = show_progress
        self.logger = logger or logging.getLogger(__name__)
        self.conn: Optional[sqlite3.Connection] = None

    # --- connection lifecycle ---

    def connect(self) -> sqlite3.Connection:
        if self.conn is not None:
            return self.conn
        try:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            conn = sqlite3.connect(str(self.db_path), isolation_level=None)
            for pragma in PRAGMAS:
                conn.execute(pragma)
        except (OSError, sqlite3.Error) as e:
            raise FatalIOFailure(f"Cannot open store: {e}", self.db_path)
        self.conn = conn
        return conn

    def close(self) -> None:
        if self.conn is not None:
            if self.conn.in_transaction:
                self.conn.rollback()
            self.conn.close()
            self.conn = None

    def __enter__(self) -> "StoreWriter":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # --- schema & transactions ---

    def apply_schema(self) -> None:
        """Create every base table and FTS table (idempotent)."""
        try:
            self.connect().executescript(SCHEMA_SQL)
        except sqlite3.Error as e:
            raise FatalIOFailure(f"Cannot apply schema: {e}", self.db_path)
        self.logger.info("✓ Schema applied")

    @contextmanager
    def fatal_on_error(self, action: str) -> Iterator[None]:
        """Raise store errors from phase-level statements as FatalIOFailure."""
        try:
            yield
        except sqlite3.Error as e:
            raise FatalIOFailure(f"{action} failed: {e}", self.db_path)

    def begin(self, phase: str) -> None:
        self.logger.debug(f"BEGIN {phase}")
        with self.fatal_on_error(f"BEGIN {phase}"):
            self.connect().execute("BEGIN")

    def commit(self, phase: str) -> None:
        """Make a phase durable; any failure aborts the run."""
        try:
            self.connect().execute("COMMIT")
        except sqlite3.Error as e:
            raise FatalIOFailure(f"Commit failed after {phase}: {e}", self.db_path)
        self.logger.info(f"✓ Committed {phase}")

    def rollback(self) -> None:
        if self.conn is not None and self.conn.in_transaction:
            self.conn.rollback()

    def clear_tables(self, tables: Sequence[str]) -> None:
        conn = self.connect()
        with self.fatal_on_error(f"Clearing {', '.join(tables)}"):
            for table in tables:
                conn.execute(f"DELETE FROM {table}")

    def word_rows(self) -> List[tuple]:
        """(id, word, reading) of every word, in id order."""
        with self.fatal_on_error("Reading words"):
            return self.connect().execute("SELECT id, word, reading FROM words ORDER BY id").fetchall()

    def example_rows(self) -> List[tuple]:
        """(id, japanese, english, japanese_parsed, source_id) of every example."""
        with self.fatal_on_error("Reading examples"):
            return self.connect().execute(
                "SELECT id, japanese, english, japanese_parsed, source_id FROM examples ORDER BY id"
            ).fetchall()

    def insert_batches(
        self,
        phase: str,
        items: Iterable[Any],
        insert_fn: BatchFn,
        stats: PhaseStats,
        total: Optional[int] = None,
        batch_size: Optional[int] = None,
    ) -> Counter:
        """
        Run insert_fn over checkpointed batches inside the open transaction.

        insert_fn receives one batch and returns counters; "inserted",
        "updated" and "skipped" feed the phase stats, any other key is summed
        into the returned Counter. A sqlite3.DatabaseError inside a batch
        rolls back to the batch savepoint and counts the batch as errors.

        Returns:
            Counter of extra keys from committed batches
        """
        conn = self.connect()
        extra: Counter = Counter()
        size = batch_size or self.batch_size

        with tqdm(total=total, desc=phase, unit="rec", disable=not self.show_progress) as pbar:
            for batch_number, batch in enumerate(_chunks(items, size), 1):
                conn.execute("SAVEPOINT batch")
                try:
                    counts = insert_fn(batch)
                except sqlite3.DatabaseError as e:
                    conn.execute("ROLLBACK TO batch")
                    conn.execute("RELEASE batch")
                    violation = IntegrityViolation(phase, batch_number, e)
                    self.logger.warning(f"{violation} ({len(batch):,} records lost)")
                    stats.errors += len(batch)
                else:
                    conn.execute("RELEASE batch")
                    for key, value in counts.items():
                        if key in ("inserted", "updated", "skipped"):
                            setattr(stats, key, getattr(stats, key) + value)
                        else:
                            extra[key] += value
                pbar.update(len(batch))

        return extra

    # --- per-table batch writers ---

    def insert_words(self, batch: List[WordEntry]) -> Dict[str, int]:
        """Insert words with their senses and glosses."""
        conn = self.connect()
        for entry in batch:
            kana = entry.reading or entry.word
            cursor = conn.execute(
                """
                INSERT INTO words (word, reading, reading_hiragana, romaji, entry_id, source, identity_key)
                VALUES (?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    entry.surface,
                    entry.reading if entry.word else None,
                    to_hiragana(kana),
                    to_romaji(kana),
                    entry.entry_id,
                    entry.source.value,
                    entry.identity_key,
                ),
            )
            word_id = cursor.lastrowid
            for sense_order, sense in enumerate(entry.senses):
                sense_cursor = conn.execute(
                    """
                    INSERT INTO word_senses
                    (word_id, sense_order, parts_of_speech, field_tags, misc_tags, dialect_tags, info)
                    VALUES (?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        word_id,
                        sense_order,
                        _json_list(sense.parts_of_speech),
                        _json_list(sense.field_tags),
                        _json_list(sense.misc_tags),
                        _json_list(sense.dialect_tags),
                        sense.info,
                    ),
                )
                conn.executemany(
                    "INSERT INTO word_glosses (sense_id, gloss, gloss_type, gloss_order) VALUES (?, ?, ?, ?)",
                    [
                        (sense_cursor.lastrowid, gloss, sense.gloss_type, gloss_order)
                        for gloss_order, gloss in enumerate(sense.glosses)
                    ],
                )
        return {"inserted": len(batch)}

    def _exists(self, sql: str, params: tuple) -> bool:
        return self.connect().execute(sql, params).fetchone() is not None

    def insert_kanji(self, batch: List[KanjiEntry]) -> Dict[str, int]:
        """Insert kanji, overwriting any previous row for the same character."""
        conn = self.connect()
        inserted = updated = 0
        for entry in batch:
            if self._exists("SELECT 1 FROM kanji WHERE character = ?", (entry.character,)):
                updated += 1
            else:
                inserted += 1
            conn.execute(
                """
                INSERT INTO kanji
                (character, jis_code, unicode_ref, grade, stroke_count, frequency,
                 meanings, kun_readings, on_readings, nanori_readings)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(character) DO UPDATE SET
                    jis_code = excluded.jis_code,
                    unicode_ref = excluded.unicode_ref,
                    grade = excluded.grade,
                    stroke_count = excluded.stroke_count,
                    frequency = excluded.frequency,
                    meanings = excluded.meanings,
                    kun_readings = excluded.kun_readings,
                    on_readings = excluded.on_readings,
                    nanori_readings = excluded.nanori_readings
                """,
                (
                    entry.character,
                    entry.jis_code,
                    entry.unicode_ref,
                    entry.grade,
                    entry.stroke_count,
                    entry.frequency,
                    _json_list(entry.meanings),
                    _json_list(entry.kun_readings),
                    _json_list(entry.on_readings),
                    _json_list(entry.nanori_readings),
                ),
            )
        return {"inserted": inserted, "updated": updated}

    def insert_examples(
        self,
        batch: List[ExampleEntry],
        link_fn: Optional[Callable[[ExampleEntry], List[int]]] = None,
    ) -> Dict[str, int]:
        """
        Insert examples and, when link_fn is given, their word links.

        Returns:
            {"inserted": n, "links": m, "unlinked": k}
        """
        conn = self.connect()
        links = unlinked = 0
        for example in batch:
            cursor = conn.execute(
                "INSERT INTO examples (japanese, english, japanese_parsed, source_id) VALUES (?, ?, ?, ?)",
                (example.japanese, example.english, example.breakdown, example.source_id),
            )
            if link_fn is None:
                continue
            word_ids = link_fn(example)
            if not word_ids:
                unlinked += 1
                continue
            links += self.insert_links(cursor.lastrowid, word_ids)
        return {"inserted": len(batch), "links": links, "unlinked": unlinked}

    def insert_links(self, example_id: int, word_ids: Iterable[int]) -> int:
        rows = [(word_id, example_id) for word_id in word_ids]
        self.connect().executemany(
            "INSERT OR IGNORE INTO word_examples (word_id, example_id) VALUES (?, ?)",
            rows,
        )
        return len(rows)

    def upsert_furigana(self, batch: List[FuriganaEntry]) -> Dict[str, int]:
        """Insert or replace furigana segmentations keyed by (text, reading)."""
        conn = self.connect()
        inserted = updated = 0
        for entry in batch:
            if self._exists("SELECT 1 FROM furigana WHERE text = ? AND reading = ?", (entry.text, entry.reading)):
                updated += 1
            else:
                inserted += 1
            conn.execute(
                """
                INSERT INTO furigana (text, reading, reading_hiragana, segments)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(text, reading) DO UPDATE SET
                    reading_hiragana = excluded.reading_hiragana,
                    segments = excluded.segments
                """,
                (entry.text, entry.reading, to_hiragana(entry.reading), segments_to_json(entry.segments)),
            )
        return {"inserted": inserted, "updated": updated}

    def carry_over_furigana(self, previous_path: Path) -> int:
        """
        Copy furigana rows from a previous store into this one.

        Runs in its own transaction because ATTACH is not allowed inside one.
        An unreadable previous store is logged and skipped.

        Returns:
            Number of rows copied
        """
        conn = self.connect()
        try:
            conn.execute("ATTACH DATABASE ? AS previous", (str(previous_path),))
        except sqlite3.DatabaseError as e:
            self.logger.warning(f"Cannot attach previous store {previous_path}: {e}")
            return 0
        try:
            has_table = conn.execute(
                "SELECT 1 FROM previous.sqlite_master WHERE type = 'table' AND name = 'furigana'"
            ).fetchone()
            if not has_table:
                return 0
            conn.execute("BEGIN")
            cursor = conn.execute(
                """
                INSERT OR IGNORE INTO furigana (text, reading, reading_hiragana, segments)
                SELECT text, reading, reading_hiragana, segments FROM previous.furigana
                """
            )
            conn.execute("COMMIT")
            copied = cursor.rowcount if cursor.rowcount is not None and cursor.rowcount >= 0 else 0
            self.logger.info(f"✓ Carried over {copied:,} furigana rows from {previous_path}")
            return copied
        except sqlite3.DatabaseError as e:
            self.rollback()
            self.logger.warning(f"Furigana carry-over from {previous_path} failed: {e}")
            return 0
        finally:
            conn.execute("DETACH DATABASE previous")

    # --- search index ---

    def build_search_index(self, stats: Optional[PhaseStats] = None) -> int:
        """
        Rebuild both FTS5 tables from the base tables.

        Returns:
            Number of rows written to words_fts and examples_fts together

        Raises:
            FatalIOFailure: Any store error during the rebuild
        """
        with self.fatal_on_error("Search index build"):
            return self._rebuild_fts(stats)

    def _rebuild_fts(self, stats: Optional[PhaseStats]) -> int:
        """
        Clear and refill words_fts and examples_fts.

        Returns:
            Number of rows written
        """
        conn = self.connect()
        self.clear_tables(FTS_TABLES)

        glosses: Dict[int, List[str]] = {}
        for word_id, gloss in conn.execute(
            """
            SELECT s.word_id, g.gloss
            FROM word_senses s JOIN word_glosses g ON g.sense_id = s.id
            ORDER BY s.word_id, s.sense_order, g.gloss_order
            """
        ):
            glosses.setdefault(word_id, []).append(gloss)

        pos: Dict[int, List[str]] = {}
        for word_id, pos_json in conn.execute("SELECT word_id, parts_of_speech FROM word_senses ORDER BY word_id, sense_order"):
            for code in json.loads(pos_json or "[]"):
                codes = pos.setdefault(word_id, [])
                if code not in codes:
                    codes.append(code)

        total_words = conn.execute("SELECT COUNT(*) FROM words").fetchone()[0]
        rows = (
            (
                word_id,
                word,
                reading or "",
                romaji or "",
                "; ".join(glosses.get(word_id, [])),
                " ".join(pos.get(word_id, [])),
            )
            for word_id, word, reading, romaji in conn.execute("SELECT id, word, reading, romaji FROM words")
        )
        written = 0
        with tqdm(total=total_words, desc="words_fts", unit="word", disable=not self.show_progress) as pbar:
            for batch in _chunks(rows, self.batch_size):
                conn.executemany(
                    "INSERT INTO words_fts (word_id, kanji, reading, romaji, gloss, pos) VALUES (?, ?, ?, ?, ?, ?)",
                    batch,
                )
                written += len(batch)
                pbar.update(len(batch))

        cursor = conn.execute(
            "INSERT INTO examples_fts (example_id, japanese, english) SELECT id, japanese, english FROM examples"
        )
        written += max(cursor.rowcount, 0)

        if stats is not None:
            stats.processed += written
            stats.inserted += written
        self.logger.info(f"✓ Search index built: {written:,} rows")
        return written

    def create_indexes(self) -> None:
        """Create post-load indexes and refresh planner statistics."""
        conn = self.connect()
        with self.fatal_on_error("Index build"):
            for statement in POST_LOAD_INDEXES_SQL.split(";"):
                if statement.strip():
                    conn.execute(statement)
            conn.execute("ANALYZE")

    def compact(self) -> bool:
        """VACUUM outside any transaction; failures are logged, never raised."""
        conn = self.connect()
        try:
            conn.execute("VACUUM")
        except sqlite3.DatabaseError as e:
            self.logger.warning(f"✗ VACUUM failed, store left uncompacted: {e}")
            return False
        self.logger.info("✓ Store compacted")
        return True

    # --- metadata ---

    def save_metadata(self, metadata: Dict[str, Any]) -> None:
        """Record build metadata (run inside the caller's transaction)."""
        values = {"created_at": datetime.now().isoformat(), **metadata}
        with self.fatal_on_error("Saving build metadata"):
            self.connect().executemany(
                "INSERT OR REPLACE INTO build_metadata (key, value) VALUES (?, ?)",
                [(key, str(value)) for key, value in values.items()],
            )

    def save_stats(self, metrics: Dict[str, Any]) -> None:
        with self.fatal_on_error("Saving build stats"):
            self.connect().executemany(
                "INSERT OR REPLACE INTO build_stats (metric, value) VALUES (?, ?)",
                [(metric, str(value)) for metric, value in metrics.items()],
            )

    def table_counts(self) -> Dict[str, int]:
        conn = self.connect()
        with self.fatal_on_error("Counting rows"):
            return {table: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0] for table in COUNTED_TABLES}


def read_store_stats(db_path: Path) -> Dict[str, Any]:
    """
    Table counts and file size of an existing store.

    Raises:
        FatalIOFailure: Store missing or unreadable
    """
    db_path = Path(db_path)
    if not db_path.exists():
        raise FatalIOFailure("Store does not exist", db_path)
    try:
        conn = sqlite3.connect(f"{db_path.resolve().as_uri()}?mode=ro", uri=True)
        try:
            counts = {
                table: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
                for table in COUNTED_TABLES
            }
            build_stats = dict(conn.execute("SELECT metric, value FROM build_stats"))
        finally:
            conn.close()
    except sqlite3.DatabaseError as e:
        raise FatalIOFailure(f"Cannot read store: {e}", db_path)
    return {
        "tables": counts,
        "size_mb": round(db_path.stat().st_size / (1024 * 1024), 2),
        "build_stats": build_stats,
    }
