"""
Tests for the msgpack parse cache.
"""

import msgpack

from jdict_compiler.transform.cache_utils import (
    ParseCache,
    load_from_cache_streaming,
    save_to_cache_streaming,
)
from jdict_compiler.transform.models import KanjiEntry, Sense, WordEntry


class TestStreaming:
    def test_header_and_entries(self, tmp_path):
        path = tmp_path / "entries.msgpack"
        entries = [KanjiEntry(character="亜", meanings=["Asia"]), KanjiEntry(character="猫")]

        save_to_cache_streaming({"source": "kanjidic"}, entries, path)
        header, items = load_from_cache_streaming(path)

        assert header == {"source": "kanjidic"}
        assert items[0]["meanings"] == ["Asia"]
        assert not path.with_suffix(".msgpack.part").exists()

    def test_missing_or_empty(self, tmp_path):
        empty = tmp_path / "empty.msgpack"
        empty.write_bytes(b"")

        assert load_from_cache_streaming(tmp_path / "absent.msgpack") is None
        assert load_from_cache_streaming(empty) is None

    def test_headerless_file_ignored(self, tmp_path):
        path = tmp_path / "bad.msgpack"
        path.write_bytes(msgpack.packb([1, 2, 3]))

        assert load_from_cache_streaming(path) is None


class TestParseCache:
    def test_round_trip_with_stats(self, tmp_path):
        parser_file = tmp_path / "parser.py"
        source_file = tmp_path / "source.txt"
        parser_file.write_text("# parser", encoding="utf-8")
        source_file.write_text("data", encoding="utf-8")
        cache = ParseCache(tmp_path / "cache")
        entries = [WordEntry(word="猫", reading="ねこ", senses=[Sense(glosses=["cat"])])]

        cache.save("edict", parser_file, source_file, entries, {"records": 1, "valid": 1, "rejected": 0})
        stats, loaded = cache.load("edict", parser_file, source_file, WordEntry)

        assert loaded == entries
        assert stats["records"] == 1

    def test_source_change_misses(self, tmp_path):
        parser_file = tmp_path / "parser.py"
        source_file = tmp_path / "source.txt"
        parser_file.write_text("# parser", encoding="utf-8")
        source_file.write_text("data", encoding="utf-8")
        cache = ParseCache(tmp_path / "cache")
        cache.save("kanjidic", parser_file, source_file, [KanjiEntry(character="亜")])

        source_file.write_text("changed", encoding="utf-8")

        assert cache.load("kanjidic", parser_file, source_file, KanjiEntry) is None

    def test_stale_entries_ignored(self, tmp_path):
        parser_file = tmp_path / "parser.py"
        source_file = tmp_path / "source.txt"
        parser_file.write_text("# parser", encoding="utf-8")
        source_file.write_text("data", encoding="utf-8")
        cache = ParseCache(tmp_path / "cache")
        cache.save("kanjidic", parser_file, source_file, [KanjiEntry(character="亜")])

        assert cache.load("kanjidic", parser_file, source_file, WordEntry) is None
