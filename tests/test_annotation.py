"""
Tests for the annotation token parser and the structured segment entry point.
"""

import pytest

from jdict_compiler.transform.annotation import (
    extract_segments,
    parse_annotation,
    scan_token,
    segments_from_structured,
    segments_to_json,
)


def pairs(segments):
    return [(segment.ruby, segment.rt) for segment in segments]


class TestTokenGrammar:
    def test_reference_sentence(self):
        """Markers are discarded and readings attach to their surface."""
        segments = parse_annotation("例えば 君(きみ)[01] は 英語 が 好き(すき) ですか")

        assert pairs(segments) == [
            ("例えば", None),
            ("君", "きみ"),
            ("は", None),
            ("英語", None),
            ("が", None),
            ("好き", "すき"),
            ("ですか", None),
        ]

    def test_normalized_form_replaces_surface(self):
        assert pairs(parse_annotation("話(はな)す{話した}")) == [("話した", "はな")]

    def test_cross_reference_is_not_a_reading(self):
        assert pairs(parse_annotation("で(#2028980)")) == [("で", None)]

    def test_standalone_markers_and_placeholders_dropped(self):
        assert pairs(parse_annotation("猫 [02] ~ 〜 です")) == [("猫", None), ("です", None)]

    def test_unmatched_bracket_is_literal(self):
        assert pairs(parse_annotation("君(きみ")) == [("君(きみ", None)]

    def test_scan_token_first_reading_wins(self):
        token = scan_token("君(きみ)(くん)[1]{君}")

        assert (token.text, token.reading, token.form) == ("君", "きみ", "君")


class TestTotality:
    """Any input yields a list of valid segments."""

    @pytest.mark.parametrize("text", [
        None,
        "",
        "   ",
        "((((",
        "}{",
        "[",
        "{}",
        "(#)",
        "~ ~",
        "a(b)[c]{d}(e)",
        "君( )",
        "　\t\n",
        "[]{}()",
    ])
    def test_never_raises(self, text):
        segments = parse_annotation(text)

        assert isinstance(segments, list)
        for segment in segments:
            assert segment.ruby.strip()
            assert segment.rt is None or segment.rt.strip()


class TestStructuredSegments:
    def test_json_text(self):
        segments = segments_from_structured('[{"ruby": "大人", "rt": "おとな"}, {"ruby": "です"}]')

        assert pairs(segments) == [("大人", "おとな"), ("です", None)]

    def test_blank_rt_becomes_absent(self):
        assert pairs(segments_from_structured([{"ruby": "好き", "rt": "  "}])) == [("好き", None)]

    @pytest.mark.parametrize("value", ["[broken", '{"ruby": "x"}', 42, None])
    def test_non_list_yields_nothing(self, value):
        assert segments_from_structured(value) == []

    def test_non_object_elements_dropped(self):
        assert pairs(segments_from_structured(["x", 1, {"ruby": "猫"}])) == [("猫", None)]

    def test_json_round_trip_omits_absent_rt(self):
        text = segments_to_json(segments_from_structured([{"ruby": "猫", "rt": "ねこ"}, {"ruby": "だ"}]))

        assert text == '[{"ruby": "猫", "rt": "ねこ"}, {"ruby": "だ"}]'


class TestExtractSegments:
    def test_normalized_form_precedence_with_reading(self):
        assert pairs(extract_segments("走る{走った}", reading="はしる")) == [("走った", "はしる")]

    def test_structured_input_preferred(self):
        assert pairs(extract_segments('[{"ruby": "大人", "rt": "おとな"}]')) == [("大人", "おとな")]

    def test_invalid_structured_input_falls_back_to_tokens(self):
        assert pairs(extract_segments("[broken")) == [("[broken", None)]

    def test_reading_ignored_for_multiple_segments(self):
        assert pairs(extract_segments("猫 です", reading="ねこです")) == [("猫", None), ("です", None)]

    def test_existing_rt_kept(self):
        assert pairs(extract_segments("君(きみ)", reading="くん")) == [("君", "きみ")]

    def test_blank_input(self):
        assert extract_segments("  ") == []
