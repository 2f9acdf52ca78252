"""
Furigana Mapping Parser

Parses a pre-segmented furigana mapping list (JmdictFurigana-style JSON).

Input Format:
    [
        {"text": "大人", "reading": "おとな", "furigana": [{"ruby": "大人", "rt": "おとな"}]},
        {"text": "食べる", "reading": "たべる", "furigana": [{"ruby": "食", "rt": "た"}, {"ruby": "べる"}]}
    ]

Output: FuriganaEntry(text, reading, segments=[Segment(ruby, rt?)])

Segments go through the same normalization as structured annotation input:
non-object elements and empty ruby are dropped, rt is trimmed and a blank
rt becomes absent. An entry left with no segments is rejected.
"""

import json
from logging import getLogger
from pathlib import Path
from typing import Any, Iterable, Iterator, List, Optional

from pydantic import ValidationError

from ..exceptions import FatalIOFailure, MalformedRecord
from ..transform.annotation import segments_from_structured
from ..transform.models import FuriganaEntry
from .base import LineParser, ParseResult, ProgressCallback, RejectReason

logger = getLogger(__name__)


class FuriganaParser(LineParser[FuriganaEntry]):
    """Parser for furigana mapping objects."""

    NAME = "furigana"

    def parse_record(self, raw: Any) -> FuriganaEntry:
        """
        Validate one mapping object.

        Raises:
            MalformedRecord: Not an object, missing text/reading, or no usable segments
        """
        if not isinstance(raw, dict):
            raise MalformedRecord(RejectReason.INVALID_SHAPE, "entry is not an object")

        text = raw.get("text")
        reading = raw.get("reading")
        if not isinstance(text, str) or not text.strip() or not isinstance(reading, str) or not reading.strip():
            raise MalformedRecord(RejectReason.INVALID_SHAPE, "entry needs non-empty text and reading")

        segments = segments_from_structured(raw.get("furigana"))
        if not segments:
            raise MalformedRecord(RejectReason.NO_SEGMENTS, f"no ruby segments for {text.strip()}")

        try:
            return FuriganaEntry(text=text, reading=reading, segments=segments)
        except ValidationError as e:
            raise MalformedRecord(RejectReason.INVALID_SHAPE, str(e.errors()[0]["msg"]))

    def parse(self, raw: Any, line_number: Optional[int] = None) -> ParseResult[FuriganaEntry]:
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except ValueError as e:
                return ParseResult(reason=RejectReason.INVALID_JSON, detail=str(e), line_number=line_number)
        try:
            return ParseResult(entry=self.parse_record(raw), line_number=line_number)
        except MalformedRecord as e:
            return ParseResult(reason=e.reason, detail=e.detail, line_number=line_number, raw=repr(raw)[:80])

    def parse_stream(self, items: Iterable[Any]) -> Iterator[ParseResult[FuriganaEntry]]:
        """Parse decoded list elements; line_number is the element index."""
        for index, item in enumerate(items):
            self.stats.lines += 1
            yield self.parse(item, index)

    def iter_file(self, file_path: Path, progress_callback: Optional[ProgressCallback] = None) -> Iterator[FuriganaEntry]:
        file_path = Path(file_path)
        try:
            with open(file_path, "r", encoding="utf-8-sig") as f:
                data = json.load(f)
        except (OSError, UnicodeDecodeError) as e:
            raise FatalIOFailure(f"Cannot read furigana source: {e}", file_path)
        except ValueError as e:
            raise FatalIOFailure(f"Furigana source is not valid JSON: {e}", file_path)
        if not isinstance(data, list):
            raise FatalIOFailure("Furigana source must be a JSON list", file_path)

        total = len(data)
        for result in self.parse_stream(data):
            if self._record(result):
                yield result.entry
            if progress_callback and self.stats.lines % 10000 == 0:
                progress_callback(self.stats.lines, total)
        if progress_callback:
            progress_callback(total, total)


def parse_furigana_file(file_path: Path, progress_callback: Optional[ProgressCallback] = None) -> List[FuriganaEntry]:
    """Convenience function to parse a furigana mapping file."""
    parser = FuriganaParser()
    return parser.parse_file(file_path, progress_callback)
