"""
Kana conversion helpers for search columns.

words.romaji and furigana.reading_hiragana are derived with pykakasi, so
romaji queries and katakana/hiragana-insensitive lookups hit the FTS index.
"""

from functools import lru_cache
from typing import Optional

from pykakasi import kakasi


@lru_cache(maxsize=1)
def _converter():
    return kakasi()


def to_romaji(text: Optional[str]) -> Optional[str]:
    """Hepburn romanization of a reading; None for empty input."""
    if not text:
        return None
    items = _converter().convert(text)
    romaji = "".join(item["hepburn"] for item in items)
    return romaji or None


def to_hiragana(text: Optional[str]) -> Optional[str]:
    """Hiragana rendering of a kana reading; None for empty input."""
    if not text:
        return None
    items = _converter().convert(text)
    hiragana = "".join(item["hira"] for item in items)
    return hiragana or None
