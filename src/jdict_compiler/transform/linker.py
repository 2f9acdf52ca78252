"""
Cross-Reference Linker

Associates example sentences with dictionary words. Two strategies feed one
de-duplicated link set per example:

1. Token matches: every segment of the annotated breakdown is normalized and
   probed in the WordFormIndex.
2. Substring matches: every substring of the normalized sentence at least
   `min_form_length` characters long is probed in the index, left to right,
   longest first at each position.

Links per example are capped at `max_links`. Matching is best-effort: missed
links are acceptable, and short common substrings can still produce
incidental links.
"""

from logging import getLogger
from typing import List, Optional, Tuple

from ..config import LinkerPolicy
from .annotation import parse_annotation
from .inflection import WordFormIndex
from .models import ExampleEntry
from .normalization import normalize

logger = getLogger(__name__)


class CrossReferenceLinker:
    """
    Links examples to word ids through an explicitly passed form index.

    Attributes:
        token_links: Links produced by breakdown token matches
        substring_links: Links produced by sentence substring matches
        capped_examples: Examples that hit the link cap
    """

    def __init__(self, index: WordFormIndex, policy: Optional[LinkerPolicy] = None):
        self.index = index
        self.policy = policy or LinkerPolicy()
        self.token_links = 0
        self.substring_links = 0
        self.capped_examples = 0

    def link(self, example: ExampleEntry) -> List[int]:
        """
        Find the words an example sentence illustrates.

        Args:
            example: Parsed example with its raw breakdown

        Returns:
            Distinct word ids in discovery order, at most policy.max_links
        """
        linked: List[int] = []
        seen = set()
        max_links = self.policy.max_links

        for segment in parse_annotation(example.breakdown):
            word_id = self.index.lookup(normalize(segment.ruby))
            if word_id is not None and word_id not in seen:
                seen.add(word_id)
                linked.append(word_id)
                self.token_links += 1
                if len(linked) >= max_links:
                    self.capped_examples += 1
                    return linked

        for word_id in self._substring_matches(normalize(example.japanese)):
            if word_id in seen:
                continue
            seen.add(word_id)
            linked.append(word_id)
            self.substring_links += 1
            if len(linked) >= max_links:
                self.capped_examples += 1
                break

        return linked

    def _substring_matches(self, sentence: str):
        """Yield word ids of indexed forms occurring in the sentence."""
        min_length = self.policy.min_form_length
        max_length = min(self.index.max_form_length, len(sentence))
        if max_length < min_length:
            return
        for start in range(len(sentence)):
            longest = min(max_length, len(sentence) - start)
            for length in range(longest, min_length - 1, -1):
                word_id = self.index.lookup(sentence[start:start + length])
                if word_id is not None:
                    yield word_id

    def checkpoint(self) -> Tuple[int, int, int]:
        """Snapshot of the link counters."""
        return self.token_links, self.substring_links, self.capped_examples

    def restore(self, snapshot: Tuple[int, int, int]) -> None:
        """Reset the counters to a checkpoint, e.g. after a rolled-back batch."""
        self.token_links, self.substring_links, self.capped_examples = snapshot

    def summary(self) -> str:
        return (
            f"token links={self.token_links:,}, substring links={self.substring_links:,}, "
            f"capped examples={self.capped_examples:,}"
        )
