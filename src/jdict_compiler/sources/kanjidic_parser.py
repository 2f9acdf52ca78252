"""
KANJIDIC Parser

Parses the fixed-field KANJIDIC kanji reference file.

Input Format:
    # comment
    亜 3021 U4e9c Yya4 Wa ア つ.ぐ T1 や つぎ つぐ {Asia} {rank next} {come after} {-ous}
    圧 3035 U5727 B27 C32 G5 S5 F718 J2 N818 V970 アツ エン オウ お.す へ.す {-press} {overwhelm}

Output: KanjiEntry
    character="亜", jis_code="3021", unicode_ref="U4e9c",
    on_readings=["ア"], kun_readings=["つ.ぐ"], nanori_readings=["や", "つぎ", "つぐ"],
    meanings=["Asia", "rank next", "come after", "-ous"]

Field rules:
    - token 0: the character; token 1: JIS code when it is 4 hex digits
    - U: unicode reference, G: grade, S: stroke count (first only), F: frequency
    - other letter-prefixed codes are ignored
    - katakana token → on-reading; hiragana token (may contain "." or "-")
      → kun-reading, or nanori-reading once a T<n> token has been seen
    - each {...} group is one meaning and may contain spaces
"""

import re
from enum import Enum
from logging import getLogger
from pathlib import Path
from typing import List, Optional, Tuple

from pydantic import ValidationError

from ..exceptions import MalformedRecord
from ..transform.models import KanjiEntry
from .base import LineParser, ProgressCallback, RejectReason

logger = getLogger(__name__)

KATAKANA_TOKEN = re.compile(r"[\u30A0-\u30FF・ーヽヾヵヶ]+")
HIRAGANA_TOKEN = re.compile(r"[\-\.・\u3040-\u309Fー]+")
HAS_KATAKANA = re.compile(r"[\u30A1-\u30FA]")
HAS_HIRAGANA = re.compile(r"[\u3041-\u3096]")
JIS_CODE = re.compile(r"[0-9A-Fa-f]{4}")
NANORI_SWITCH = re.compile(r"T\d+")
CODE_TOKEN = re.compile(r"[A-Z][A-Za-z0-9\-\.+]*")


class TokenKind(Enum):
    PLAIN = "plain"
    MEANING = "meaning"


def tokenize_kanjidic_line(line: str) -> List[Tuple[TokenKind, str]]:
    """
    Split a line into plain tokens and brace-delimited meanings.

    Inside a brace group whitespace runs collapse to a single space; an
    unterminated group runs to the end of the line.
    """
    items: List[Tuple[TokenKind, str]] = []
    current: List[str] = []
    in_meaning = False

    def flush(kind: TokenKind) -> None:
        text = "".join(current)
        if kind is TokenKind.MEANING:
            text = " ".join(text.split())
        if text:
            items.append((kind, text))
        current.clear()

    for char in line:
        if in_meaning:
            if char == "}":
                flush(TokenKind.MEANING)
                in_meaning = False
            else:
                current.append(char)
        elif char == "{" and not current:
            in_meaning = True
        elif char.isspace():
            flush(TokenKind.PLAIN)
        else:
            current.append(char)

    flush(TokenKind.MEANING if in_meaning else TokenKind.PLAIN)
    return items


def _code_value(token: str) -> Optional[int]:
    try:
        return int(token[1:])
    except ValueError:
        return None


class KanjidicParser(LineParser[KanjiEntry]):
    """Parser for KANJIDIC lines."""

    COMMENT_PREFIX = "#"
    NAME = "kanjidic"

    def parse_record(self, line: str) -> KanjiEntry:
        """
        Parse one KANJIDIC line.

        Raises:
            MalformedRecord: Missing character or no fields after it
        """
        items = tokenize_kanjidic_line(line.strip())
        if len(items) < 2 or items[0][0] is not TokenKind.PLAIN:
            raise MalformedRecord(RejectReason.NO_STRUCTURE, "expected a character followed by fields")

        character = items[0][1]
        if len(character) != 1:
            raise MalformedRecord(RejectReason.NO_CHARACTER, f"first field is not one character: {character!r}")

        fields = {
            "character": character,
            "on_readings": [],
            "kun_readings": [],
            "nanori_readings": [],
            "meanings": [],
        }
        in_nanori = False

        for position, (kind, token) in enumerate(items[1:], 1):
            if kind is TokenKind.MEANING:
                fields["meanings"].append(token)
                continue

            if position == 1 and JIS_CODE.fullmatch(token):
                fields["jis_code"] = token
            elif NANORI_SWITCH.fullmatch(token):
                in_nanori = True
            elif KATAKANA_TOKEN.fullmatch(token) and HAS_KATAKANA.search(token):
                fields["on_readings"].append(token)
            elif HIRAGANA_TOKEN.fullmatch(token) and HAS_HIRAGANA.search(token):
                if in_nanori:
                    fields["nanori_readings"].append(token)
                else:
                    fields["kun_readings"].append(token)
            elif CODE_TOKEN.fullmatch(token):
                self._apply_code(fields, token)

        try:
            return KanjiEntry(**fields)
        except ValidationError as e:
            raise MalformedRecord(RejectReason.INVALID_SHAPE, str(e.errors()[0]["msg"]))

    @staticmethod
    def _apply_code(fields: dict, token: str) -> None:
        prefix = token[0]
        if prefix == "U" and len(token) > 1:
            fields.setdefault("unicode_ref", token)
        elif prefix == "G":
            value = _code_value(token)
            if value is not None:
                fields.setdefault("grade", value)
        elif prefix == "S":
            value = _code_value(token)
            if value is not None:
                fields.setdefault("stroke_count", value)
        elif prefix == "F":
            value = _code_value(token)
            if value is not None:
                fields.setdefault("frequency", value)


def parse_kanjidic_file(file_path: Path, progress_callback: Optional[ProgressCallback] = None) -> List[KanjiEntry]:
    """Convenience function to parse a KANJIDIC file."""
    parser = KanjidicParser()
    return parser.parse_file(file_path, progress_callback)
