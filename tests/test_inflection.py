"""
Tests for the inflected-form generator and the form index.
"""

import pytest

from jdict_compiler.transform.inflection import WordFormIndex, generate_word_forms


class TestGenerateWordForms:
    def test_ichidan_style_verb(self):
        forms = generate_word_forms("食べる", "たべる")

        assert {"食べる", "食べた", "食べて", "食べない", "たべる"} <= forms

    def test_adjective(self):
        assert {"美しい", "美しく", "美しくて"} <= generate_word_forms("美しい")

    def test_u_ending(self):
        assert {"手伝う", "手伝った", "手伝って"} <= generate_word_forms("手伝う")

    def test_suru_stem(self):
        assert "勉強" in generate_word_forms("勉強する")

    def test_long_vowel_stripped(self):
        forms = generate_word_forms("コーヒー", "コーヒー")

        assert {"コーヒー", "コヒ"} <= forms

    def test_short_words_not_inflected(self):
        assert generate_word_forms("見る") == {"見る"}

    def test_reading_only(self):
        assert generate_word_forms(None, "たべる") == {"たべる"}

    @pytest.mark.parametrize("word, reading", [("ー", None), ("", ""), (None, None), (" ", "ｰ")])
    def test_no_empty_forms(self, word, reading):
        assert "" not in generate_word_forms(word, reading)

    def test_forms_are_normalized(self):
        assert "カタカナ" in generate_word_forms("ｶﾀｶﾅ")


class TestWordFormIndex:
    def test_first_insert_wins(self):
        index = WordFormIndex()

        assert index.add("かみ", 1)
        assert not index.add("かみ", 2)
        assert not index.add("かみ", 1)
        assert index.lookup("かみ") == 1
        assert index.collisions == 1

    def test_register_and_lookup(self):
        index = WordFormIndex()
        index.register_word(7, "食べる", "たべる")

        assert "食べた" in index
        assert index.lookup("たべる") == 7
        assert index.lookup("飲む") is None
        assert index.max_form_length == 4

    def test_build_from_rows(self):
        index = WordFormIndex.build_from_rows([(1, "猫", "ねこ"), (2, "ねこ", None)])

        assert index.word_count == 2
        assert index.lookup("ねこ") == 1
        assert len(index) == 2
