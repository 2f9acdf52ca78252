"""
End-to-end tests for the compile pipeline.

Each test compiles the small sample corpus from conftest into a temporary
store and inspects the result with plain sqlite3.
"""

import json
import os
import re
import sqlite3
import stat

import pytest

from conftest import write_corpus
from jdict_compiler.exceptions import FatalIOFailure
from jdict_compiler.export.database import StoreWriter
from jdict_compiler.pipeline import CompilePipeline, Phase


def query(db_path, sql, params=()):
    conn = sqlite3.connect(str(db_path))
    try:
        return conn.execute(sql, params).fetchall()
    finally:
        conn.close()


def count(db_path, table):
    return query(db_path, f"SELECT COUNT(*) FROM {table}")[0][0]


def links(db_path):
    return set(query(
        db_path,
        """
        SELECT w.word, e.source_id
        FROM word_examples we
        JOIN words w ON w.id = we.word_id
        JOIN examples e ON e.id = we.example_id
        """,
    ))


@pytest.fixture
def compiled(pipeline_config):
    """Store produced by one full import."""
    CompilePipeline(pipeline_config).run_import_all()
    return pipeline_config.output_path


class TestImportAll:
    def test_full_build(self, pipeline_config):
        report = CompilePipeline(pipeline_config).run_import_all()
        db = pipeline_config.output_path

        assert report.succeeded
        assert all(stats.completed for stats in report.phases)
        assert count(db, "words") == 6
        assert count(db, "kanji") == 2
        assert count(db, "examples") == 2
        assert count(db, "furigana") == 2
        assert links(db) == {("猫", "1"), ("学校", "2"), ("食べる", "2")}

    def test_duplicate_word_merged(self, compiled):
        rows = query(compiled, "SELECT entry_id, source FROM words WHERE identity_key = ?", ("食べる:たべる",))

        assert rows == [("EntL1358280X", "edict")]
        glosses = [row[0] for row in query(
            compiled,
            """
            SELECT g.gloss FROM word_glosses g
            JOIN word_senses s ON s.id = g.sense_id
            JOIN words w ON w.id = s.word_id
            WHERE w.identity_key = '食べる:たべる'
            ORDER BY s.sense_order, g.gloss_order
            """,
        )]
        assert glosses == ["to eat", "to live on (e.g. a salary)"]

    def test_phase_counters(self, pipeline_config):
        report = CompilePipeline(pipeline_config).run_import_all()

        words = report.get(Phase.LOAD_WORDS.value)
        assert words.inserted == 6
        assert words.errors == 0
        # one broken EDICT line, one empty word record, one merged duplicate
        assert words.skipped == 3
        assert report.get(Phase.LOAD_FURIGANA.value).skipped == 1
        assert report.get(Phase.LOAD_EXAMPLES.value).skipped == 1
        assert "3 links" in report.get(Phase.LOAD_EXAMPLES.value).note

    def test_rolled_back_batch_not_counted_as_links(self, pipeline_config, monkeypatch):
        config = pipeline_config.model_copy(update={"example_batch_size": 1})
        insert_links = StoreWriter.insert_links
        calls = []

        def fail_first(self, example_id, word_ids):
            calls.append(example_id)
            if len(calls) == 1:
                raise sqlite3.IntegrityError("constraint failed")
            return insert_links(self, example_id, word_ids)

        monkeypatch.setattr(StoreWriter, "insert_links", fail_first)

        report = CompilePipeline(config).run_import_all()
        stats = report.get(Phase.LOAD_EXAMPLES.value)

        assert stats.errors == 1
        assert links(config.output_path) == {("学校", "2"), ("食べる", "2")}
        token, substring = (int(n) for n in re.findall(r"(?:token|substring) links=(\d+)", stats.note))
        assert stats.note.startswith("2 links")
        assert token + substring == 2

    def test_search_index_and_metadata(self, compiled):
        assert query(compiled, "SELECT COUNT(*) FROM words_fts WHERE words_fts MATCH 'school'") == [(2,)]
        assert query(compiled, "SELECT COUNT(*) FROM examples_fts WHERE examples_fts MATCH 'cats'") == [(1,)]

        build_stats = dict(query(compiled, "SELECT metric, value FROM build_stats"))
        assert build_stats["words"] == "6"
        assert build_stats["total_errors"] == "0"
        metadata = dict(query(compiled, "SELECT key, value FROM build_metadata"))
        assert metadata["max_links"] == "20"
        assert "created_at" in metadata

    def test_missing_sources_are_skipped(self, pipeline_config, corpus_dir):
        (corpus_dir / "kanjidic").unlink()
        (corpus_dir / "examples.utf").unlink()

        report = CompilePipeline(pipeline_config).run_import_all()
        db = pipeline_config.output_path

        assert report.succeeded
        assert report.get(Phase.LOAD_KANJI.value).note.startswith("skipped")
        assert report.get(Phase.LOAD_EXAMPLES.value).note.startswith("skipped")
        assert count(db, "words") == 6
        assert count(db, "kanji") == 0
        assert count(db, "examples") == 0

    def test_no_compact(self, pipeline_config):
        config = pipeline_config.model_copy(update={"compact": False})

        report = CompilePipeline(config).run_import_all()

        assert report.get(Phase.COMPACT.value).note == "disabled"


class TestAtomicRuns:
    def test_abort_leaves_previous_store(self, compiled, pipeline_config, corpus_dir, monkeypatch):
        before = count(compiled, "words")
        write_corpus(corpus_dir)
        (corpus_dir / "words.ljson").write_text(
            '{"r": ["いぬ"], "k": ["犬"], "s": [{"g": ["dog"]}]}\n', encoding="utf-8"
        )

        def fail(self, stats=None):
            raise FatalIOFailure("disk full", self.db_path)

        monkeypatch.setattr(StoreWriter, "build_search_index", fail)

        with pytest.raises(FatalIOFailure):
            CompilePipeline(pipeline_config).run_import_all()

        assert count(compiled, "words") == before
        assert query(compiled, "SELECT COUNT(*) FROM words WHERE word = '犬'") == [(0,)]
        assert list(compiled.parent.glob("*.tmp")) == []

    def test_store_error_in_final_phase_is_fatal(self, compiled, pipeline_config, monkeypatch):
        before = count(compiled, "words")

        def full_disk(self):
            with self.fatal_on_error("Index build"):
                raise sqlite3.OperationalError("database or disk is full")

        monkeypatch.setattr(StoreWriter, "create_indexes", full_disk)

        with pytest.raises(FatalIOFailure, match="disk is full"):
            CompilePipeline(pipeline_config).run_import_all()

        assert count(compiled, "words") == before
        assert list(compiled.parent.glob("*.tmp")) == []

    def test_raw_store_error_is_fatal(self, compiled, pipeline_config, monkeypatch):
        def broken(self, metadata):
            raise sqlite3.OperationalError("database or disk is full")

        monkeypatch.setattr(StoreWriter, "save_metadata", broken)

        with pytest.raises(FatalIOFailure, match="Store error"):
            CompilePipeline(pipeline_config).run_import("kanji")

        assert count(compiled, "kanji") == 2
        assert list(compiled.parent.glob("*.tmp")) == []

    def test_new_store_gets_default_file_mode(self, pipeline_config):
        umask = os.umask(0)
        os.umask(umask)

        CompilePipeline(pipeline_config).run_reset()

        assert stat.S_IMODE(pipeline_config.output_path.stat().st_mode) == 0o666 & ~umask

    def test_rebuild_keeps_file_mode(self, compiled, pipeline_config):
        os.chmod(compiled, 0o640)

        CompilePipeline(pipeline_config).run_import_all()

        assert stat.S_IMODE(compiled.stat().st_mode) == 0o640

    def test_furigana_carried_over(self, compiled, pipeline_config, corpus_dir):
        (corpus_dir / "furigana.json").unlink()

        report = CompilePipeline(pipeline_config).run_import_all()

        assert report.get(Phase.LOAD_FURIGANA.value).note.startswith("skipped")
        assert count(compiled, "furigana") == 2

    def test_new_furigana_replaces_carried_rows(self, compiled, pipeline_config, corpus_dir):
        write_corpus(corpus_dir, furigana=[
            {"text": "大人", "reading": "おとな", "furigana": [{"ruby": "大", "rt": "お"}, {"ruby": "人", "rt": "とな"}]},
        ])

        CompilePipeline(pipeline_config).run_import_all()

        rows = query(compiled, "SELECT segments FROM furigana WHERE text = '大人'")
        assert json.loads(rows[0][0]) == [{"ruby": "大", "rt": "お"}, {"ruby": "人", "rt": "とな"}]
        assert count(compiled, "furigana") == 2


class TestSingleImports:
    def test_kanji_upserted(self, compiled, pipeline_config, corpus_dir):
        (corpus_dir / "kanjidic").write_text("犬 3824 U72ac G1 S4 ケン いぬ {dog}\n", encoding="utf-8")

        report = CompilePipeline(pipeline_config).run_import("kanji")

        assert report.get(Phase.LOAD_KANJI.value).inserted == 1
        assert report.get(Phase.BUILD_SEARCH_INDEX.value).note == "search index unchanged"
        assert count(compiled, "kanji") == 3
        assert count(compiled, "words") == 6

    def test_furigana_upserted(self, compiled, pipeline_config, corpus_dir):
        write_corpus(corpus_dir, furigana=[{"text": "猫", "reading": "ねこ", "furigana": [{"ruby": "猫", "rt": "ねこ"}]}])

        CompilePipeline(pipeline_config).run_import("furigana")

        assert count(compiled, "furigana") == 3

    def test_words_relinks_examples(self, compiled, pipeline_config):
        report = CompilePipeline(pipeline_config).run_import("words")

        assert report.succeeded
        assert count(compiled, "words") == 6
        assert count(compiled, "examples") == 2
        assert links(compiled) == {("猫", "1"), ("学校", "2"), ("食べる", "2")}

    def test_examples_reloaded(self, compiled, pipeline_config):
        CompilePipeline(pipeline_config).run_import("examples")

        assert count(compiled, "examples") == 2
        assert count(compiled, "word_examples") == 3

    def test_unknown_target(self, pipeline_config):
        with pytest.raises(ValueError):
            CompilePipeline(pipeline_config).run_import("radicals")


class TestMaintenanceCommands:
    def test_reset(self, compiled, pipeline_config):
        CompilePipeline(pipeline_config).run_reset()

        assert count(compiled, "words") == 0
        assert count(compiled, "furigana") == 0

    def test_create_schema_keeps_data(self, compiled, pipeline_config):
        CompilePipeline(pipeline_config).run_create_schema()

        assert count(compiled, "words") == 6

    def test_stats(self, compiled, pipeline_config):
        stats = CompilePipeline(pipeline_config).stats()

        assert stats["tables"]["kanji"] == 2
        assert stats["build_stats"]["examples"] == "2"


class TestParseCache:
    def test_cache_written_and_reused(self, pipeline_config, tmp_path):
        config = pipeline_config.model_copy(update={"use_cache": True})

        first = CompilePipeline(config).run_import_all()
        cached = sorted(path.name.split("_")[0] for path in (tmp_path / "cache").glob("*.msgpack"))
        second = CompilePipeline(config).run_import_all()

        assert cached == ["edict", "examples", "furigana", "kanjidic", "words"]
        assert count(config.output_path, "words") == 6
        assert second.get(Phase.LOAD_WORDS.value).skipped == first.get(Phase.LOAD_WORDS.value).skipped
