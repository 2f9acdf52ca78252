"""
EDICT Dictionary Parser

Parses the legacy slash-delimited EDICT/EDICT2 format.

Input Format:
    ; comment
    思いやり(P);思い遣り [おもいやり] /(n) consideration/thoughtfulness/(P)/EntL1309180X/
    あいうえお /(n) the Japanese vowels/EntL2099780X/

Output: WordEntry
    word="思いやり(P);思い遣り", reading="おもいやり", entry_id="EntL1309180X",
    senses=[Sense(glosses=["consideration/thoughtfulness"], parts_of_speech=["n"])]

Meaning rules:
    - "/" splits only at parenthesis depth 0; "\\(" and "\\)" do not count.
    - Leading parenthesized groups made of known codes are tags:
      part-of-speech codes, usage/field/dialect codes, sense numbers "(1)".
      Any other parenthesized text stays in the gloss.
    - A segment with tags and text starts a new meaning; an untagged
      segment continues the current one (joined with "/"); a tags-only
      segment such as the "(P)" priority marker is dropped.
"""

import re
from logging import getLogger
from pathlib import Path
from typing import List, Optional, Tuple

from ..exceptions import MalformedRecord
from ..transform.models import EntrySource, Sense, WordEntry
from .base import LineParser, ProgressCallback, RejectReason

logger = getLogger(__name__)

ENTRY_ID_PATTERN = re.compile(r"Ent[0-9A-Za-z]+")
SENSE_NUMBER_PATTERN = re.compile(r"\d+")
POS_PATTERN = re.compile(
    r"(?:v(?:[0-9][a-z]*(?:-[a-z]+)?|t|i|s(?:-[a-z])?|k|z|r|n)"
    r"|adj(?:-[a-z]+)?|n(?:-[a-z]+)?|adv(?:-[a-z]+)?|aux(?:-[a-z]+)?"
    r"|exp|int|pn|prt|conj|ctr|num|pref|prefix|suf|suffix|cop(?:-[a-z]+)?|unc)"
)
MISC_CODES = {
    "P", "lit", "fig", "fam", "hon", "hum", "sl", "m-sl", "vulg", "arch", "obs", "obsc",
    "rare", "poet", "m", "f", "male", "fem", "X", "col", "id", "uk", "uK", "ek",
    "proverb", "yoji", "abbr", "gikun", "ateji", "io", "iK", "ik", "oK", "ok",
    "on-mim", "pol", "chn", "joc", "derog", "euph", "form", "hist", "sens",
}
FIELD_CODES = {
    "comp", "math", "med", "ling", "food", "Buddh", "Shinto", "Christn", "MA", "sports",
    "physics", "chem", "biol", "bot", "zool", "law", "econ", "bus", "geom", "astron",
    "anat", "archit", "engr", "finc", "geol", "gram", "music", "mil", "shogi", "sumo",
    "baseb", "mahj", "biochem", "elec", "gardn", "genet", "pharm", "psych",
}
DIALECT_CODES = {"ksb", "ktb", "kyb", "osb", "hob", "thb", "tsb", "tsug", "kyu", "rkb", "nab", "bra"}


class _Tags:
    """Tag buckets collected from one meaning segment."""

    def __init__(self):
        self.pos: List[str] = []
        self.misc: List[str] = []
        self.field: List[str] = []
        self.dialect: List[str] = []
        self.info: List[str] = []
        self.numbered = False

    def __bool__(self) -> bool:
        return bool(self.numbered or self.pos or self.misc or self.field or self.dialect or self.info)

    def add_group(self, content: str) -> bool:
        """Classify a parenthesized group; returns False if it is gloss text."""
        if content == "See" or content.startswith("See "):
            self.info.append(content)
            return True
        codes = [part.strip().rstrip(":") for part in content.split(",")]
        kinds = [_classify(code) for code in codes]
        if not all(kinds):
            return False
        buckets = {"pos": self.pos, "misc": self.misc, "field": self.field, "dialect": self.dialect}
        for code, kind in zip(codes, kinds):
            if kind == "number":
                self.numbered = True
            else:
                buckets[kind].append(code)
        return True


def _classify(code: str) -> Optional[str]:
    if not code:
        return None
    if SENSE_NUMBER_PATTERN.fullmatch(code):
        return "number"
    if code in DIALECT_CODES:
        return "dialect"
    if code in FIELD_CODES:
        return "field"
    if code in MISC_CODES:
        return "misc"
    if POS_PATTERN.fullmatch(code):
        return "pos"
    return None


def _matching_paren(text: str, start: int) -> int:
    """Index of the ")" closing text[start]; -1 when unmatched."""
    depth = 0
    i = start
    while i < len(text):
        char = text[i]
        if char == "\\":
            i += 2
            continue
        if char == "(":
            depth += 1
        elif char == ")":
            depth -= 1
            if depth == 0:
                return i
        i += 1
    return -1


def split_meanings(body: str) -> List[str]:
    """
    Split the slash-delimited body at parenthesis depth 0.

    Escaped parentheses ("\\(", "\\)") do not change the depth and stay
    escaped in the output, so tag extraction cannot mistake them for a tag
    group. unescape() turns them into literal characters.

    Args:
        body: Text between the first and last "/" of the record

    Returns:
        Non-empty, stripped segments in order
    """
    segments: List[str] = []
    current: List[str] = []
    depth = 0
    i = 0
    while i < len(body):
        char = body[i]
        if char == "\\" and i + 1 < len(body) and body[i + 1] in "()":
            current.append(body[i:i + 2])
            i += 2
            continue
        if char == "(":
            depth += 1
        elif char == ")" and depth > 0:
            depth -= 1
        elif char == "/" and depth == 0:
            segments.append("".join(current))
            current = []
            i += 1
            continue
        current.append(char)
        i += 1
    segments.append("".join(current))
    return [segment.strip() for segment in segments if segment.strip()]


def unescape(text: str) -> str:
    return text.replace("\\(", "(").replace("\\)", ")")


def extract_leading_tags(segment: str) -> Tuple[_Tags, str]:
    """
    Peel leading tag groups off a meaning segment.

    Returns:
        (tags, remaining gloss text)
    """
    tags = _Tags()
    text = segment.strip()
    while text.startswith("("):
        end = _matching_paren(text, 0)
        if end == -1:
            break
        if not tags.add_group(text[1:end].strip()):
            break
        text = text[end + 1:].strip()
    return tags, text


class EDICTParser(LineParser[WordEntry]):
    """
    Parser for EDICT-style dictionary lines.

    Responsibilities:
    - Split headword, optional reading and slash-delimited body
    - Extract the trailing external entry id
    - Group body segments into tagged senses
    """

    COMMENT_PREFIX = ";"
    NAME = "edict"

    @staticmethod
    def split_header(line: str) -> Tuple[str, Optional[str], str]:
        """
        Split a record into (headword, reading, body).

        Raises:
            MalformedRecord: No "headword /.../" structure
        """
        line = line.strip()
        slash = line.find(" /")
        if slash == -1 or not line.endswith("/") or len(line) - slash < 3:
            raise MalformedRecord(RejectReason.NO_STRUCTURE, "expected 'headword [reading] /meanings/'")

        header = line[:slash].strip()
        body = line[slash + 2:-1]

        reading = None
        bracket = header.find("[")
        if bracket != -1:
            close = header.find("]", bracket)
            if close == -1:
                raise MalformedRecord(RejectReason.NO_STRUCTURE, "unterminated reading bracket")
            reading = header[bracket + 1:close].strip() or None
            header = header[:bracket].strip()

        if not header:
            raise MalformedRecord(RejectReason.NO_STRUCTURE, "empty headword")
        return header, reading, body

    @staticmethod
    def build_senses(segments: List[str]) -> List[Sense]:
        """Group body segments into senses."""
        senses: List[Sense] = []
        current: Optional[dict] = None

        for segment in segments:
            tags, gloss = extract_leading_tags(segment)
            if tags and not gloss:
                continue
            gloss = unescape(gloss)
            if tags or current is None:
                if current is not None:
                    senses.append(Sense(**current))
                current = {
                    "glosses": [gloss],
                    "parts_of_speech": tags.pos,
                    "misc_tags": tags.misc,
                    "field_tags": tags.field,
                    "dialect_tags": tags.dialect,
                    "info": "; ".join(tags.info) or None,
                }
            else:
                current["glosses"][0] = f"{current['glosses'][0]}/{gloss}"

        if current is not None:
            senses.append(Sense(**current))
        return senses

    def parse_record(self, line: str) -> WordEntry:
        """
        Parse one EDICT record.

        Args:
            line: e.g. "思いやり(P);思い遣り [おもいやり] /(n) consideration/thoughtfulness/(P)/EntL1309180X/"

        Returns:
            WordEntry with senses and external id

        Raises:
            MalformedRecord: Structure mismatch or no meanings
        """
        headword, reading, body = self.split_header(line)
        segments = split_meanings(body)

        entry_id = None
        if segments and ENTRY_ID_PATTERN.fullmatch(segments[-1]):
            entry_id = segments.pop()

        senses = self.build_senses(segments)
        if not senses:
            raise MalformedRecord(RejectReason.NO_MEANINGS, f"no meanings for {headword}")

        return WordEntry(
            word=headword,
            reading=reading,
            senses=senses,
            entry_id=entry_id,
            source=EntrySource.EDICT,
        )


def parse_edict_file(file_path: Path, progress_callback: Optional[ProgressCallback] = None) -> List[WordEntry]:
    """
    Convenience function to parse an EDICT file.

    Args:
        file_path: Path to the EDICT file (UTF-8)
        progress_callback: Optional callback function(current, total) for progress tracking

    Returns:
        Parsed entries in file order
    """
    parser = EDICTParser()
    return parser.parse_file(file_path, progress_callback)
