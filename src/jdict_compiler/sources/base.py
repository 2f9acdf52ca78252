"""
Shared parser plumbing.

Every source parser turns one raw record into a ParseResult: either a typed
entry or a RejectReason. parse() never raises for malformed input; rejected
records are logged, counted and skipped by parse_file().
"""

from dataclasses import dataclass, field
from enum import Enum
from logging import getLogger
from pathlib import Path
from typing import Callable, Generic, Iterable, Iterator, List, Optional, TypeVar

from ..exceptions import FatalIOFailure, MalformedRecord

logger = getLogger(__name__)

EntryT = TypeVar("EntryT")

ProgressCallback = Callable[[int, int], None]


class RejectReason(str, Enum):
    BLANK = "blank"
    NO_STRUCTURE = "no_structure"
    NO_MEANINGS = "no_meanings"
    INVALID_JSON = "invalid_json"
    INVALID_SHAPE = "invalid_shape"
    MISSING_READINGS = "missing_readings"
    MISSING_SENSES = "missing_senses"
    EMPTY_GLOSSES = "empty_glosses"
    NO_CHARACTER = "no_character"
    ORPHAN_BREAKDOWN = "orphan_breakdown"
    MISSING_BREAKDOWN = "missing_breakdown"
    NO_SEGMENTS = "no_segments"


@dataclass
class ParseResult(Generic[EntryT]):
    """Outcome of parsing one record."""
    entry: Optional[EntryT] = None
    reason: Optional[RejectReason] = None
    detail: str = ""
    line_number: Optional[int] = None
    raw: str = ""

    @property
    def ok(self) -> bool:
        return self.entry is not None

    @classmethod
    def rejected(cls, error: MalformedRecord) -> "ParseResult":
        return cls(reason=error.reason, detail=error.detail, line_number=error.line_number, raw=error.raw)


@dataclass
class ParseStats:
    """Per-file parse counters."""
    lines: int = 0
    records: int = 0
    valid: int = 0
    rejected: int = 0
    rejects_by_reason: dict = field(default_factory=dict)

    def count_reject(self, reason: RejectReason) -> None:
        self.rejected += 1
        key = reason.value if isinstance(reason, RejectReason) else str(reason)
        self.rejects_by_reason[key] = self.rejects_by_reason.get(key, 0) + 1


class LineParser(Generic[EntryT]):
    """
    Base class for line-oriented source parsers.

    Subclasses implement parse_record() (raise MalformedRecord on bad input)
    and set COMMENT_PREFIX.
    """

    COMMENT_PREFIX: Optional[str] = None
    NAME = "source"

    def __init__(self):
        self.stats = ParseStats()

    def is_skippable(self, line: str) -> bool:
        """Blank and comment lines are not records."""
        stripped = line.strip()
        if not stripped:
            return True
        return bool(self.COMMENT_PREFIX) and stripped.startswith(self.COMMENT_PREFIX)

    def parse_record(self, line: str) -> EntryT:
        raise NotImplementedError

    def parse(self, raw: str, line_number: Optional[int] = None) -> ParseResult[EntryT]:
        """
        Parse one raw record.

        Args:
            raw: One record (a line, for line-oriented formats)
            line_number: Source line, for diagnostics

        Returns:
            ParseResult with the entry, or with a reject reason
        """
        if raw is None or not raw.strip():
            return ParseResult(reason=RejectReason.BLANK, line_number=line_number)
        try:
            entry = self.parse_record(raw)
        except MalformedRecord as e:
            if e.line_number is None:
                e.line_number = line_number
            if not e.raw:
                e.raw = raw[:80]
            return ParseResult.rejected(e)
        return ParseResult(entry=entry, line_number=line_number)

    def parse_stream(self, lines: Iterable[str]) -> Iterator[ParseResult[EntryT]]:
        """
        Lazily parse a line stream, preserving order.

        Blank and comment lines are skipped; every other line yields exactly
        one ParseResult.
        """
        for line_number, line in enumerate(lines, 1):
            self.stats.lines += 1
            if self.is_skippable(line):
                continue
            yield self.parse(line.rstrip("\r\n"), line_number)

    def _record(self, result: ParseResult) -> bool:
        """Count one result; log rejects. Returns True for valid entries."""
        self.stats.records += 1
        if result.ok:
            self.stats.valid += 1
            return True
        self.stats.count_reject(result.reason)
        logger.warning(
            f"[{self.NAME}] line {result.line_number}: skipped ({result.reason.value})"
            + (f" {result.detail}" if result.detail else "")
        )
        return False

    def iter_file(self, file_path: Path, progress_callback: Optional[ProgressCallback] = None) -> Iterator[EntryT]:
        """Stream valid entries from a file, counting and logging rejects."""
        file_path = Path(file_path)
        total_lines = 0
        if progress_callback:
            total_lines = count_lines(file_path)

        try:
            with open(file_path, "r", encoding="utf-8-sig") as f:
                for result in self.parse_stream(f):
                    if self._record(result):
                        yield result.entry
                    if progress_callback and total_lines > 0:
                        if self.stats.lines % 10000 == 0:
                            progress_callback(self.stats.lines, total_lines)
        except (OSError, UnicodeDecodeError) as e:
            raise FatalIOFailure(f"Cannot read {self.NAME} source: {e}", file_path)

        if progress_callback and total_lines > 0:
            progress_callback(total_lines, total_lines)

    def parse_file(self, file_path: Path, progress_callback: Optional[ProgressCallback] = None) -> List[EntryT]:
        """
        Parse an entire source file.

        Args:
            file_path: Path to the source file
            progress_callback: Optional callback function(current, total) for progress tracking

        Returns:
            Valid entries in file order
        """
        logger.info(f"Parsing {self.NAME} source from {file_path}")
        entries = list(self.iter_file(file_path, progress_callback))
        logger.info(
            f"Parsing complete: {len(entries):,} entries, "
            f"{self.stats.rejected:,} rejected of {self.stats.records:,} records"
        )
        return entries


def count_lines(file_path: Path) -> int:
    try:
        with open(file_path, "r", encoding="utf-8-sig") as f:
            return sum(1 for _ in f)
    except (OSError, UnicodeDecodeError) as e:
        raise FatalIOFailure(f"Cannot read source: {e}", Path(file_path))
