"""
Inflected-Form Generator

An approximate recall booster for example-sentence linking. Expands a word
and its reading into a handful of surface strings that are likely to appear
in running text. It does NOT model Japanese morphology: the rules below are a
fixed, knowingly imprecise set, and the generated forms are never stored as
dictionary data.

Rules (applied to the normalized headword):
    食べる  → 食べる, 食べた, 食べて, 食べない
    美しい  → 美しい, 美しく, 美しくて
    手伝う  → 手伝う, 手伝った, 手伝って
    勉強する → 勉強する, 勉強
    コーヒー → コーヒー, コヒ
  plus the normalized reading and its long-vowel-stripped variant.

WordFormIndex maps every generated form to the id of the first word that
produced it. It is built right before linking and dropped afterwards.
"""

import re
from logging import getLogger
from typing import Dict, Iterable, Optional, Set, Tuple

from .normalization import normalize

logger = getLogger(__name__)

LONG_VOWEL_MARKS = re.compile(r"[ーｰ]")

# ending -> suffixes that replace it (only for words longer than 2 characters)
INFLECTION_RULES: Dict[str, Tuple[str, ...]] = {
    "い": ("く", "くて"),
    "る": ("た", "て", "ない"),
    "う": ("った", "って"),
}


def generate_word_forms(word: Optional[str], reading: Optional[str] = None) -> Set[str]:
    """
    Generate candidate surface forms for a word.

    Args:
        word: Headword (kanji or kana)
        reading: Kana reading, if any

    Returns:
        Set of non-empty normalized forms
    """
    forms: Set[str] = set()

    normalized_word = normalize(word)
    if normalized_word:
        forms.add(normalized_word)
        forms.add(LONG_VOWEL_MARKS.sub("", normalized_word))

        if normalized_word.endswith("する"):
            forms.add(normalized_word[:-2])

        if len(normalized_word) > 2:
            stem, ending = normalized_word[:-1], normalized_word[-1]
            for suffix in INFLECTION_RULES.get(ending, ()):
                forms.add(stem + suffix)

    normalized_reading = normalize(reading)
    if normalized_reading:
        forms.add(normalized_reading)
        forms.add(LONG_VOWEL_MARKS.sub("", normalized_reading))

    forms.discard("")
    return forms


class WordFormIndex:
    """
    Transient lookup from generated surface forms to word ids.

    The first word to register a form keeps it; later collisions are counted
    and otherwise ignored.
    """

    def __init__(self):
        self._forms: Dict[str, int] = {}
        self.collisions = 0
        self.max_form_length = 0
        self.word_count = 0

    def add(self, form: str, word_id: int) -> bool:
        """Register one form; returns False if another word already owns it."""
        if not form:
            return False
        existing = self._forms.get(form)
        if existing is not None:
            if existing != word_id:
                self.collisions += 1
            return False
        self._forms[form] = word_id
        if len(form) > self.max_form_length:
            self.max_form_length = len(form)
        return True

    def register_word(self, word_id: int, word: Optional[str], reading: Optional[str] = None) -> int:
        """Register every generated form of a word; returns how many were new."""
        self.word_count += 1
        added = 0
        for form in generate_word_forms(word, reading):
            if self.add(form, word_id):
                added += 1
        return added

    def lookup(self, form: str) -> Optional[int]:
        return self._forms.get(form)

    def __contains__(self, form: str) -> bool:
        return form in self._forms

    def __len__(self) -> int:
        return len(self._forms)

    @classmethod
    def build_from_rows(cls, rows: Iterable[Tuple[int, Optional[str], Optional[str]]]) -> "WordFormIndex":
        """
        Build an index from (word_id, word, reading) rows in insertion order.

        Args:
            rows: Iterable of (id, word, reading), typically a cursor over words
        """
        index = cls()
        for word_id, word, reading in rows:
            index.register_word(word_id, word, reading)
        logger.info(
            f"Form index built: {len(index):,} forms for {index.word_count:,} words "
            f"({index.collisions:,} collisions)"
        )
        return index
