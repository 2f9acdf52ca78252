"""
Tests for the EDICT parser.
"""

import logging

import pytest

from jdict_compiler.exceptions import FatalIOFailure
from jdict_compiler.sources.base import RejectReason
from jdict_compiler.sources.edict_parser import EDICTParser, extract_leading_tags, parse_edict_file, split_meanings
from jdict_compiler.transform.models import EntrySource


@pytest.fixture
def parser():
    return EDICTParser()


class TestRecordParsing:
    """Header, reading and meaning extraction."""

    def test_reference_record(self, parser):
        """Priority markers are dropped and untagged segments continue a meaning."""
        result = parser.parse("思いやり(P);思い遣り [おもいやり] /(n) consideration/thoughtfulness/(P)/EntL1309180X/")

        assert result.ok
        entry = result.entry
        assert entry.word == "思いやり(P);思い遣り"
        assert entry.reading == "おもいやり"
        assert entry.entry_id == "EntL1309180X"
        assert entry.source == EntrySource.EDICT
        assert len(entry.senses) == 1
        assert entry.senses[0].glosses == ["consideration/thoughtfulness"]
        assert entry.senses[0].parts_of_speech == ["n"]

    def test_kana_headword_without_reading(self, parser):
        entry = parser.parse("あいうえお /(n) the Japanese vowels/EntL2099780X/").entry

        assert entry.word == "あいうえお"
        assert entry.reading is None
        assert entry.senses[0].glosses == ["the Japanese vowels"]

    def test_numbered_senses_start_new_meanings(self, parser):
        entry = parser.parse("食べる [たべる] /(v1,vt) (1) to eat/(2) to live on (e.g. a salary)/(P)/").entry

        assert [sense.glosses for sense in entry.senses] == [["to eat"], ["to live on (e.g. a salary)"]]
        assert entry.senses[0].parts_of_speech == ["v1", "vt"]
        assert entry.senses[1].parts_of_speech == []
        assert entry.entry_id is None

    def test_usage_and_field_codes(self, parser):
        entry = parser.parse("ＯＳ [オーエス] /(n) (comp) (uk) operating system/").entry
        sense = entry.senses[0]

        assert sense.field_tags == ["comp"]
        assert sense.misc_tags == ["uk"]
        assert sense.glosses == ["operating system"]

    def test_non_tag_group_stays_in_gloss(self, parser):
        entry = parser.parse("何 [なに] /(n) (something odd) gloss/").entry

        assert entry.senses[0].glosses == ["(something odd) gloss"]
        assert entry.senses[0].parts_of_speech == ["n"]

    @pytest.mark.parametrize("line, reason", [
        ("no slashes at all", RejectReason.NO_STRUCTURE),
        ("word [よみ /(n) x/", RejectReason.NO_STRUCTURE),
        ("word /(P)/", RejectReason.NO_MEANINGS),
        ("   ", RejectReason.BLANK),
    ])
    def test_rejects(self, parser, line, reason):
        result = parser.parse(line, line_number=7)

        assert not result.ok
        assert result.reason == reason
        assert result.line_number == 7


class TestMeaningSplitting:
    """Slash splitting at parenthesis depth 0."""

    def test_slash_inside_parentheses_does_not_split(self):
        assert split_meanings("(n) up (and/or) down/next") == ["(n) up (and/or) down", "next"]

    def test_escaped_parentheses_do_not_change_depth(self):
        assert split_meanings(r"a \(b/c\) d") == [r"a \(b", r"c\) d"]

    def test_escaped_group_is_not_a_tag(self, parser):
        """An escaped opener at the start of a segment stays gloss text."""
        entry = parser.parse_record(r"語 [ご] /\(n\) literal text/EntL1X/")

        assert entry.senses[0].parts_of_speech == []
        assert entry.senses[0].glosses == ["(n) literal text"]
        assert entry.entry_id == "EntL1X"

    def test_escaped_group_after_tags(self, parser):
        entry = parser.parse_record(r"語 [ご] /(n) \(adj\) text/")

        assert entry.senses[0].parts_of_speech == ["n"]
        assert entry.senses[0].glosses == ["(adj) text"]

    def test_empty_segments_dropped(self):
        assert split_meanings("a//b/ /") == ["a", "b"]

    def test_see_reference_goes_to_info(self):
        tags, text = extract_leading_tags("(See 食べる) something")

        assert tags.info == ["See 食べる"]
        assert text == "something"


class TestStreamAndFile:
    """Line streaming, comment handling and file errors."""

    def test_comments_and_blank_lines_skipped(self, parser):
        lines = ["; header comment", "", "猫 [ねこ] /(n) cat/"]
        results = list(parser.parse_stream(lines))

        assert len(results) == 1
        assert results[0].line_number == 3

    def test_parse_file_counts_rejects(self, tmp_path, caplog):
        path = tmp_path / "edict2u"
        path.write_text(
            "; comment\n猫 [ねこ] /(n) cat/\nbad line\n犬 [いぬ] /(n) dog/EntL1/\n",
            encoding="utf-8-sig",
        )

        with caplog.at_level(logging.WARNING):
            parser = EDICTParser()
            entries = parser.parse_file(path)

        assert [entry.word for entry in entries] == ["猫", "犬"]
        assert parser.stats.rejected == 1
        assert parser.stats.rejects_by_reason == {"no_structure": 1}
        assert "line 3" in caplog.text

    def test_bom_is_tolerated(self, tmp_path):
        path = tmp_path / "edict2u"
        path.write_text("猫 [ねこ] /(n) cat/\n", encoding="utf-8-sig")

        assert parse_edict_file(path)[0].word == "猫"

    def test_missing_file_is_fatal(self, tmp_path):
        with pytest.raises(FatalIOFailure):
            parse_edict_file(tmp_path / "missing")
