"""
Normalization & Deduplication

Canonicalizes Japanese text for comparison and merges duplicate word/sense
records discovered across sources.

normalize():
    "  ｶﾀｶﾅ  テスト " → "カタカナテスト"   (strip, drop whitespace, NFKC)

Identity key of a word:
    normalize(surface) + ":" + normalize(reading or "")

Sense key (for sense-level dedup):
    normalize(glosses joined) + ":" + parts of speech joined

All functions are pure and deterministic; normalize() is idempotent.
"""

import re
import unicodedata
from logging import getLogger
from typing import TYPE_CHECKING, Dict, Iterable, List, Optional

if TYPE_CHECKING:
    from .models import Sense, WordEntry

logger = getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")


def normalize(text: Optional[str]) -> str:
    """
    Normalize text for identity comparison.

    Compatibility folding can itself produce whitespace (U+3000 → U+0020,
    U+00A8 → U+0020 U+0308), so folding and whitespace removal repeat until
    the text is stable. The result is therefore a fixed point of normalize().

    Args:
        text: Any text (None is treated as empty)

    Returns:
        Stripped, whitespace-free, NFKC-normalized text
    """
    if not text:
        return ""
    result = unicodedata.normalize("NFKC", text.strip())
    while True:
        stripped = _WHITESPACE.sub("", result)
        if stripped == result:
            return result
        result = unicodedata.normalize("NFKC", stripped)


def identity_key(word: Optional[str], reading: Optional[str] = None) -> str:
    """Identity key for a (surface, reading) pair."""
    return f"{normalize(word)}:{normalize(reading or '')}"


def sense_key(sense: "Sense") -> str:
    return f"{normalize(sense.meaning)}:{sense.pos_key}"


def deduplicate_senses(senses: Iterable["Sense"]) -> List["Sense"]:
    """
    Drop senses whose (gloss, part-of-speech) key was already seen.

    Args:
        senses: Senses in priority order

    Returns:
        First occurrence of each key, original order preserved
    """
    seen = set()
    result = []
    for sense in senses:
        key = sense_key(sense)
        if key in seen:
            continue
        seen.add(key)
        result.append(sense)
    return result


def merge_entries(primary: "WordEntry", other: "WordEntry") -> "WordEntry":
    """
    Merge two entries that share an identity key.

    The primary entry keeps its headword, reading, entry id and source; the
    sense lists are concatenated and de-duplicated.
    """
    updates = {"senses": deduplicate_senses([*primary.senses, *other.senses])}
    if primary.entry_id is None and other.entry_id is not None:
        updates["entry_id"] = other.entry_id
    return primary.model_copy(update=updates)


def deduplicate_entries(entries: Iterable["WordEntry"]) -> List["WordEntry"]:
    """
    Collapse entries with colliding identity keys.

    Args:
        entries: Entries from every word source, in load priority order

    Returns:
        One entry per identity key, in first-seen order
    """
    by_key: Dict[str, "WordEntry"] = {}
    total = 0
    for entry in entries:
        total += 1
        key = entry.identity_key
        existing = by_key.get(key)
        if existing is None:
            by_key[key] = entry.model_copy(update={"senses": deduplicate_senses(entry.senses)})
        else:
            by_key[key] = merge_entries(existing, entry)

    logger.info(f"Deduplicated {total:,} entries to {len(by_key):,} unique identities")
    return list(by_key.values())
