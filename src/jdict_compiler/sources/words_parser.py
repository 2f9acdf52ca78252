"""
Words LJSON Parser

Parses line-delimited JSON word records and expands each record into one
WordEntry per identity.

Input Format:
    // comment
    {"r": ["たべる"], "k": ["食べる", "喰べる"], "s": [{"g": ["to eat"], "pos": ["v1", "vt"]}]}

Expansion of the record above:
    WordEntry(word="たべる", reading=None)       # reading-only entry
    WordEntry(word="食べる", reading="たべる")
    WordEntry(word="喰べる", reading="たべる")

Records with kanji but no readings expand to kanji-only entries. Duplicate
identities are suppressed as entries are generated, using a running identity
set that lives for the whole parser instance.
"""

import json
from dataclasses import dataclass, field
from logging import getLogger
from pathlib import Path
from typing import Iterator, List, Optional, Set

from pydantic import ValidationError

from ..exceptions import MalformedRecord
from ..transform.models import EntrySource, RawWordRecord, Sense, WordEntry
from ..transform.normalization import identity_key
from .base import LineParser, ProgressCallback, RejectReason

logger = getLogger(__name__)


def _string_list(value) -> Optional[List[str]]:
    """Return the list of non-blank strings, or None if value is not a list."""
    if value is None:
        return []
    if not isinstance(value, list):
        return None
    return [item.strip() for item in value if isinstance(item, str) and item.strip()]


def _gloss_type(value) -> Optional[str]:
    if value is None or value == "":
        return None
    return str(value)


@dataclass
class WordRecord:
    """A validated word record: readings, kanji surfaces and senses."""
    readings: List[str]
    kanji: List[str]
    senses: List[Sense] = field(default_factory=list)


class WordsParser(LineParser[WordRecord]):
    """
    Parser for line-delimited JSON word records.

    The parser instance owns the running identity set, so one instance should
    be used for a whole import run.
    """

    COMMENT_PREFIX = "//"
    NAME = "words"

    def __init__(self):
        super().__init__()
        self.seen_keys: Set[str] = set()
        self.duplicates = 0

    @staticmethod
    def parse_senses(raw_senses: list) -> List[Sense]:
        senses = []
        for index, raw in enumerate(raw_senses):
            if not isinstance(raw, dict):
                raise MalformedRecord(RejectReason.INVALID_SHAPE, f"sense {index} is not an object")
            glosses = _string_list(raw.get("g"))
            if not glosses:
                raise MalformedRecord(RejectReason.EMPTY_GLOSSES, f"sense {index} has no glosses")
            try:
                senses.append(Sense(
                    glosses=glosses,
                    parts_of_speech=_string_list(raw.get("pos")) or [],
                    field_tags=_string_list(raw.get("field")) or [],
                    misc_tags=_string_list(raw.get("misc")) or [],
                    dialect_tags=_string_list(raw.get("dial")) or [],
                    info=raw.get("info") if isinstance(raw.get("info"), str) else None,
                    gloss_type=_gloss_type(raw.get("gt")),
                ))
            except ValidationError as e:
                raise MalformedRecord(RejectReason.INVALID_SHAPE, f"sense {index}: {e.errors()[0]['msg']}")
        return senses

    def parse_record(self, line: str) -> WordRecord:
        """
        Parse and validate one JSON record.

        Raises:
            MalformedRecord: Invalid JSON, wrong shape, no readings/kanji,
                no senses, or a sense without glosses
        """
        try:
            data: RawWordRecord = json.loads(line)
        except (ValueError, RecursionError) as e:
            raise MalformedRecord(RejectReason.INVALID_JSON, str(e))
        if not isinstance(data, dict):
            raise MalformedRecord(RejectReason.INVALID_SHAPE, "record is not an object")

        readings = _string_list(data.get("r"))
        kanji = _string_list(data.get("k"))
        if readings is None or kanji is None:
            raise MalformedRecord(RejectReason.INVALID_SHAPE, "'r' and 'k' must be lists")
        if not readings and not kanji:
            raise MalformedRecord(RejectReason.MISSING_READINGS, "record has no readings")

        raw_senses = data.get("s")
        if not isinstance(raw_senses, list) or not raw_senses:
            raise MalformedRecord(RejectReason.MISSING_SENSES, "record has no senses")

        return WordRecord(readings=readings, kanji=kanji, senses=self.parse_senses(raw_senses))

    def _emit(self, word: str, reading: Optional[str], senses: List[Sense]) -> Optional[WordEntry]:
        key = identity_key(word, reading)
        if key in self.seen_keys:
            self.duplicates += 1
            return None
        self.seen_keys.add(key)
        return WordEntry(word=word, reading=reading, senses=list(senses), source=EntrySource.WORDS)

    def expand(self, record: WordRecord) -> Iterator[WordEntry]:
        """
        Expand a record into WordEntry identities not generated before.

        Order: for each reading, its reading-only entry then one entry per
        kanji surface; kanji-only entries when the record has no readings.
        """
        for reading in record.readings:
            entry = self._emit(reading, None, record.senses)
            if entry is not None:
                yield entry
            for kanji in record.kanji:
                entry = self._emit(kanji, reading, record.senses)
                if entry is not None:
                    yield entry

        if not record.readings:
            for kanji in record.kanji:
                entry = self._emit(kanji, None, record.senses)
                if entry is not None:
                    yield entry

    def iter_entries(self, file_path: Path, progress_callback: Optional[ProgressCallback] = None) -> Iterator[WordEntry]:
        for record in self.iter_file(file_path, progress_callback):
            yield from self.expand(record)

    def parse_entries(self, file_path: Path, progress_callback: Optional[ProgressCallback] = None) -> List[WordEntry]:
        """
        Parse a words file into expanded, identity-unique entries.

        Args:
            file_path: Path to the LJSON file
            progress_callback: Optional callback function(current, total) for progress tracking

        Returns:
            Expanded entries in generation order
        """
        logger.info(f"Parsing words source from {file_path}")
        entries = list(self.iter_entries(file_path, progress_callback))
        logger.info(
            f"Parsing complete: {self.stats.valid:,} records → {len(entries):,} entries "
            f"({self.duplicates:,} duplicate identities suppressed, {self.stats.rejected:,} rejected)"
        )
        return entries


def parse_words_file(file_path: Path, progress_callback: Optional[ProgressCallback] = None) -> List[WordEntry]:
    """Convenience function to parse and expand a words LJSON file."""
    parser = WordsParser()
    return parser.parse_entries(file_path, progress_callback)
