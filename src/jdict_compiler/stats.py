"""
Run statistics.

Every phase reports how many records it processed and what happened to them.
The RunReport is the only user-visible outcome of recovered errors.
"""

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass
class PhaseStats:
    """
    Counters for one pipeline phase.

    Attributes:
        phase: Phase name (e.g. "load_words")
        processed: Records seen by the phase
        valid: Records that passed parsing/validation
        inserted: Rows newly written
        updated: Rows replaced by an upsert
        skipped: Records skipped (malformed, duplicate, orphaned)
        errors: Records lost to rolled-back batches
        completed: Whether the phase reached its end
        note: Optional free-text remark (e.g. skip reason)
    """
    phase: str
    processed: int = 0
    valid: int = 0
    inserted: int = 0
    updated: int = 0
    skipped: int = 0
    errors: int = 0
    completed: bool = False
    note: Optional[str] = None

    def summary(self) -> str:
        status = "✓" if self.completed else "✗"
        text = (
            f"{status} {self.phase}: processed={self.processed:,} valid={self.valid:,} "
            f"inserted={self.inserted:,} updated={self.updated:,} "
            f"skipped={self.skipped:,} errors={self.errors:,}"
        )
        if self.note:
            text += f" ({self.note})"
        return text


@dataclass
class RunReport:
    """Ordered collection of phase statistics for one run."""
    phases: List[PhaseStats] = field(default_factory=list)
    succeeded: bool = False

    def phase(self, name: str) -> PhaseStats:
        """Return the stats object for a phase, creating it on first use."""
        for stats in self.phases:
            if stats.phase == name:
                return stats
        stats = PhaseStats(phase=name)
        self.phases.append(stats)
        return stats

    def get(self, name: str) -> Optional[PhaseStats]:
        for stats in self.phases:
            if stats.phase == name:
                return stats
        return None

    @property
    def total_errors(self) -> int:
        return sum(stats.errors for stats in self.phases)

    @property
    def total_skipped(self) -> int:
        return sum(stats.skipped for stats in self.phases)

    def lines(self) -> List[str]:
        return [stats.summary() for stats in self.phases]
