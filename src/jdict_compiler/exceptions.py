"""
Compiler error taxonomy.

Only FatalIOFailure is allowed to escape a pipeline run. The other kinds are
recovered where they happen and surface through PhaseStats counters.
"""

from pathlib import Path
from typing import Optional


class CompilerError(Exception):
    """Base class for all dictionary compiler errors."""


class MalformedRecord(CompilerError):
    """One input record does not match its format grammar."""

    def __init__(self, reason, detail: str = "", line_number: Optional[int] = None, raw: str = ""):
        self.reason = reason
        self.detail = detail
        self.line_number = line_number
        self.raw = raw
        location = f"line {line_number}: " if line_number is not None else ""
        super().__init__(f"{location}{reason}: {detail}" if detail else f"{location}{reason}")


class MissingDependency(CompilerError):
    """A phase's input file does not exist; the phase is skipped."""

    def __init__(self, phase: str, path: Path):
        self.phase = phase
        self.path = path
        super().__init__(f"{phase}: input file not found: {path}")


class IntegrityViolation(CompilerError):
    """A batch insert violated a store constraint and was rolled back."""

    def __init__(self, phase: str, batch_number: int, cause: Exception):
        self.phase = phase
        self.batch_number = batch_number
        self.cause = cause
        super().__init__(f"{phase}: batch {batch_number} rolled back: {cause}")


class FatalIOFailure(CompilerError):
    """A source or the destination store cannot be opened or written."""

    def __init__(self, message: str, path: Optional[Path] = None):
        self.path = path
        super().__init__(f"{message} ({path})" if path else message)
