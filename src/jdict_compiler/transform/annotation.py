"""
Annotation Token Parser

Parses the example corpus's inline reading-breakdown syntax into ordered
ruby/reading segments. Used at build time (example linking) and at query time
(furigana rendering).

Input Format (whitespace-delimited tokens):
    例えば 君(きみ)[01] は 話(はな)す{話した} で(#2028980) ~ [02]

Token grammar, scanned character by character:
    surface(reading)[marker]{form}
    - (reading)  reading of the surface; "(#id)" is a cross-reference, not a reading
    - [marker]   sense disambiguator, discarded
    - {form}     normalized/conjugated form; replaces the surface as ruby
    Unmatched brackets are literal surface characters.

Output: List[Segment]
    [Segment(ruby="例えば"), Segment(ruby="君", rt="きみ"), Segment(ruby="は"),
     Segment(ruby="話した", rt="はな"), Segment(ruby="で")]

Parsing is total: any string (empty, whitespace-only, malformed) yields a
list, possibly empty, and never raises.
"""

import json
from dataclasses import dataclass
from enum import Enum
from logging import getLogger
from typing import Any, List, Optional

from pydantic import ValidationError

from .models import Segment

logger = getLogger(__name__)

OPENERS = {"(": ")", "[": "]", "{": "}"}
DROPPED_TOKENS = {"~", "〜", "～"}


class ScanMode(Enum):
    SURFACE = "surface"
    READING = "reading"
    MARKER = "marker"
    FORM = "form"


MODE_FOR_OPENER = {"(": ScanMode.READING, "[": ScanMode.MARKER, "{": ScanMode.FORM}


@dataclass
class ReadingToken:
    """One breakdown token before segment normalization."""
    text: str
    reading: Optional[str] = None
    form: Optional[str] = None


def _find_closer(token: str, start: int, opener: str) -> int:
    """Index of the bracket closing token[start], or -1 if it is unmatched."""
    closer = OPENERS[opener]
    depth = 0
    for i in range(start, len(token)):
        char = token[i]
        if char == opener:
            depth += 1
        elif char == closer:
            depth -= 1
            if depth == 0:
                return i
    return -1


def scan_token(token: str) -> ReadingToken:
    """
    Scan one raw token into surface text, reading and normalized form.

    Args:
        token: Whitespace-free token (e.g. "君(きみ)[01]")

    Returns:
        ReadingToken; text may be empty (e.g. a standalone marker)
    """
    surface: List[str] = []
    reading: Optional[str] = None
    form: Optional[str] = None

    mode = ScanMode.SURFACE
    i = 0
    while i < len(token):
        char = token[i]
        if mode is ScanMode.SURFACE and char in OPENERS:
            end = _find_closer(token, i, char)
            if end == -1:
                surface.append(char)
                i += 1
                continue
            mode = MODE_FOR_OPENER[char]
            content = token[i + 1:end]
            if mode is ScanMode.READING:
                # "(#2028980)" references another entry
                if not content.startswith("#") and reading is None:
                    reading = content
            elif mode is ScanMode.FORM:
                if form is None:
                    form = content
            mode = ScanMode.SURFACE
            i = end + 1
            continue
        surface.append(char)
        i += 1

    return ReadingToken(text="".join(surface), reading=reading, form=form)


def parse_reading_tokens(breakdown: Optional[str]) -> List[ReadingToken]:
    """
    Split a breakdown string into reading tokens.

    Standalone markers and "~" placeholders are dropped; nothing else is.
    """
    if not breakdown:
        return []
    tokens = []
    for raw in breakdown.split():
        if raw in DROPPED_TOKENS:
            continue
        token = scan_token(raw)
        if not token.text.strip() and not (token.form and token.form.strip()):
            continue
        tokens.append(token)
    return tokens


def segments_from_tokens(tokens: List[ReadingToken]) -> List[Segment]:
    """
    Turn reading tokens into segments.

    The normalized form wins over the surface as ruby; readings are trimmed
    and blank readings become absent; tokens without ruby text are dropped.
    """
    segments = []
    for token in tokens:
        form = (token.form or "").strip()
        ruby = form or (token.text or "").strip()
        if not ruby:
            continue
        segments.append(Segment(ruby=ruby, rt=token.reading))
    return segments


def parse_annotation(breakdown: Optional[str]) -> List[Segment]:
    """
    Parse an annotated breakdown line into segments.

    Args:
        breakdown: e.g. "例えば 君(きみ)[01] は 英語 が 好き(すき) ですか"

    Returns:
        Ordered segments; empty for blank input
    """
    return segments_from_tokens(parse_reading_tokens(breakdown))


def segments_from_structured(value: Any) -> List[Segment]:
    """
    Build segments from a pre-segmented ruby/reading list.

    Accepts either the decoded list or its JSON text. Elements that are not
    objects or have an empty ruby are dropped; rt is trimmed and a blank rt
    becomes absent.

    Returns:
        Segments, or [] if the value is not a list (or not valid JSON)
    """
    if isinstance(value, (str, bytes)):
        try:
            value = json.loads(value)
        except (ValueError, RecursionError):
            return []
    if not isinstance(value, list):
        return []

    segments = []
    for item in value:
        if not isinstance(item, dict):
            continue
        ruby = item.get("ruby")
        if not isinstance(ruby, str) or not ruby.strip():
            continue
        rt = item.get("rt")
        try:
            segments.append(Segment(ruby=ruby.strip(), rt=rt if isinstance(rt, str) else None))
        except ValidationError as e:
            logger.debug(f"Dropping structured segment {item!r}: {e}")
    return segments


def extract_segments(text: Optional[str], reading: Optional[str] = None) -> List[Segment]:
    """
    Segments for either a structured list or an annotated breakdown.

    Text that looks structured (leading "[" or "{") is tried as JSON first and
    falls back to token parsing when it does not validate. A reading applies
    to a lone segment that has none, so "走る{走った}" with reading "はしる"
    yields [Segment(ruby="走った", rt="はしる")].
    """
    if not text or not text.strip():
        return []
    stripped = text.strip()
    segments: List[Segment] = []
    if stripped[0] in "[{":
        segments = segments_from_structured(stripped)
    if not segments:
        segments = parse_annotation(stripped)

    if reading is not None and len(segments) == 1 and segments[0].rt is None:
        segments = [Segment(ruby=segments[0].ruby, rt=reading)]
    return segments


def segments_to_json(segments: List[Segment]) -> str:
    return json.dumps([segment.to_dict() for segment in segments], ensure_ascii=False)
