"""
Example Corpus Parser

Parses the paired-line example-sentence corpus (Tanaka corpus layout).

Input Format:
    A: 日本語の文です。	This is a sentence.#ID=example_1
    B: 日本語(にほんご) の 文{文です。}

Output: ExampleEntry
    japanese="日本語の文です。", english="This is a sentence.",
    source_id="example_1", breakdown="日本語(にほんご) の 文{文です。}"

The sentence and translation are separated by a tab or by two or more
spaces. The B line is stored verbatim; it is parsed by the annotation parser
at link time. Pairing errors are skipped with a warning:
    - a B line with no pending A line      → orphan_breakdown
    - an A line not followed by its B line → missing_breakdown
"""

import re
from logging import getLogger
from pathlib import Path
from typing import Iterable, Iterator, List, Optional, Tuple

from ..exceptions import MalformedRecord
from ..transform.models import ExampleEntry
from .base import LineParser, ParseResult, ProgressCallback, RejectReason

logger = getLogger(__name__)

PRIMARY_PREFIX = "A:"
BREAKDOWN_PREFIX = "B:"
SOURCE_ID_SUFFIX = re.compile(r"#ID=(\S+)$")
COLUMN_SEPARATOR = re.compile(r"\t|\s{2,}")


class ExamplesParser(LineParser[ExampleEntry]):
    """
    Parser for A:/B: example line pairs.

    parse_stream() pairs lines itself; parse() accepts one two-line block.
    """

    NAME = "examples"

    @staticmethod
    def parse_primary(line: str) -> Tuple[str, str, Optional[str]]:
        """
        Parse an A line into (japanese, english, source_id).

        Raises:
            MalformedRecord: Not an A line, or no sentence/translation separator
        """
        line = line.strip()
        if not line.startswith(PRIMARY_PREFIX):
            raise MalformedRecord(RejectReason.NO_STRUCTURE, "expected an 'A:' line")
        content = line[len(PRIMARY_PREFIX):].strip()

        source_id = None
        match = SOURCE_ID_SUFFIX.search(content)
        if match:
            source_id = match.group(1)
            content = content[:match.start()].rstrip()

        parts = COLUMN_SEPARATOR.split(content, maxsplit=1)
        if len(parts) != 2 or not parts[0].strip():
            raise MalformedRecord(RejectReason.NO_STRUCTURE, "no sentence/translation separator")
        return parts[0].strip(), parts[1].strip(), source_id

    @staticmethod
    def breakdown_of(line: str) -> str:
        return line.strip()[len(BREAKDOWN_PREFIX):].strip()

    def parse_pair(self, primary: str, breakdown_line: str) -> ExampleEntry:
        japanese, english, source_id = self.parse_primary(primary)
        if not breakdown_line.strip().startswith(BREAKDOWN_PREFIX):
            raise MalformedRecord(RejectReason.MISSING_BREAKDOWN, "A line is not followed by a 'B:' line")
        return ExampleEntry(
            japanese=japanese,
            english=english,
            source_id=source_id,
            breakdown=self.breakdown_of(breakdown_line),
        )

    def parse_record(self, raw: str) -> ExampleEntry:
        lines = [line for line in raw.splitlines() if line.strip()]
        if not lines:
            raise MalformedRecord(RejectReason.BLANK)
        if lines[0].strip().startswith(BREAKDOWN_PREFIX):
            raise MalformedRecord(RejectReason.ORPHAN_BREAKDOWN, "'B:' line without a preceding 'A:' line")
        if len(lines) < 2:
            self.parse_primary(lines[0])
            raise MalformedRecord(RejectReason.MISSING_BREAKDOWN, "A line is not followed by a 'B:' line")
        return self.parse_pair(lines[0], lines[1])

    def parse_stream(self, lines: Iterable[str]) -> Iterator[ParseResult[ExampleEntry]]:
        """
        Pair A/B lines lazily, in order.

        Yields one result per completed pair and one reject per pairing error.
        """
        pending: Optional[Tuple[int, str, Tuple[str, str, Optional[str]]]] = None

        def missing(number: int, raw: str) -> ParseResult:
            return ParseResult(
                reason=RejectReason.MISSING_BREAKDOWN,
                detail="A line is not followed by a 'B:' line",
                line_number=number,
                raw=raw[:80],
            )

        for line_number, line in enumerate(lines, 1):
            self.stats.lines += 1
            stripped = line.strip()
            if not stripped:
                continue

            if stripped.startswith(PRIMARY_PREFIX):
                if pending is not None:
                    yield missing(pending[0], pending[1])
                    pending = None
                try:
                    pending = (line_number, stripped, self.parse_primary(stripped))
                except MalformedRecord as e:
                    yield ParseResult(reason=e.reason, detail=e.detail, line_number=line_number, raw=stripped[:80])

            elif stripped.startswith(BREAKDOWN_PREFIX):
                if pending is None:
                    yield ParseResult(
                        reason=RejectReason.ORPHAN_BREAKDOWN,
                        detail="'B:' line without a preceding 'A:' line",
                        line_number=line_number,
                        raw=stripped[:80],
                    )
                    continue
                japanese, english, source_id = pending[2]
                entry = ExampleEntry(
                    japanese=japanese,
                    english=english,
                    source_id=source_id,
                    breakdown=self.breakdown_of(stripped),
                )
                yield ParseResult(entry=entry, line_number=pending[0])
                pending = None

            else:
                yield ParseResult(
                    reason=RejectReason.NO_STRUCTURE,
                    detail="line is neither 'A:' nor 'B:'",
                    line_number=line_number,
                    raw=stripped[:80],
                )

        if pending is not None:
            yield missing(pending[0], pending[1])


def parse_examples_file(file_path: Path, progress_callback: Optional[ProgressCallback] = None) -> List[ExampleEntry]:
    """Convenience function to parse an example corpus file."""
    parser = ExamplesParser()
    return parser.parse_file(file_path, progress_callback)
