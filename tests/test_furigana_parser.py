"""
Tests for the furigana mapping parser.
"""

import json

import pytest

from jdict_compiler.exceptions import FatalIOFailure
from jdict_compiler.sources.base import RejectReason
from jdict_compiler.sources.furigana_parser import FuriganaParser, parse_furigana_file


@pytest.fixture
def parser():
    return FuriganaParser()


class TestEntryValidation:
    def test_valid_mapping(self, parser):
        result = parser.parse({
            "text": "食べる",
            "reading": "たべる",
            "furigana": [{"ruby": "食", "rt": "た"}, {"ruby": "べる", "rt": " "}],
        })

        assert result.ok
        segments = result.entry.segments
        assert [(s.ruby, s.rt) for s in segments] == [("食", "た"), ("べる", None)]

    def test_json_text_input(self, parser):
        result = parser.parse('{"text": "大人", "reading": "おとな", "furigana": [{"ruby": "大人", "rt": "おとな"}]}')

        assert result.ok
        assert result.entry.text == "大人"

    def test_invalid_elements_dropped(self, parser):
        result = parser.parse({
            "text": "大人",
            "reading": "おとな",
            "furigana": ["junk", {"ruby": ""}, {"ruby": "大人", "rt": "おとな"}],
        })

        assert [s.ruby for s in result.entry.segments] == ["大人"]

    @pytest.mark.parametrize("raw, reason", [
        (["not", "an", "object"], RejectReason.INVALID_SHAPE),
        ({"text": "大人"}, RejectReason.INVALID_SHAPE),
        ({"text": " ", "reading": "おとな", "furigana": [{"ruby": "大人"}]}, RejectReason.INVALID_SHAPE),
        ({"text": "大人", "reading": "おとな", "furigana": []}, RejectReason.NO_SEGMENTS),
        ({"text": "大人", "reading": "おとな", "furigana": [{"ruby": "  "}]}, RejectReason.NO_SEGMENTS),
        ({"text": "大人", "reading": "おとな", "furigana": "nope"}, RejectReason.NO_SEGMENTS),
        ("{broken json", RejectReason.INVALID_JSON),
    ])
    def test_rejects(self, parser, raw, reason):
        result = parser.parse(raw)

        assert not result.ok
        assert result.reason == reason


class TestFileParsing:
    def test_bom_and_rejects(self, tmp_path):
        path = tmp_path / "furigana.json"
        items = [
            {"text": "大人", "reading": "おとな", "furigana": [{"ruby": "大人", "rt": "おとな"}]},
            {"text": "x"},
        ]
        path.write_text(json.dumps(items, ensure_ascii=False), encoding="utf-8-sig")

        parser = FuriganaParser()
        entries = parser.parse_file(path)

        assert [entry.text for entry in entries] == ["大人"]
        assert parser.stats.rejected == 1

    @pytest.mark.parametrize("content", ['{"text": "not a list"}', "[broken"])
    def test_unusable_file_is_fatal(self, tmp_path, content):
        path = tmp_path / "furigana.json"
        path.write_text(content, encoding="utf-8")

        with pytest.raises(FatalIOFailure):
            parse_furigana_file(path)
