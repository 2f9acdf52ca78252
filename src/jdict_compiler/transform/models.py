"""
Dictionary Data Model

Type-safe records produced by the format parsers and consumed by the
deduplication engine, the linker and the store writer. Source formats are
loosely structured (optional JSON fields, free-text tags); everything is
validated here, at the parse boundary, so nothing untyped flows inward.

References:
- JMdict/EDICT: https://www.edrdg.org/jmdict/edict.html
- KANJIDIC: https://www.edrdg.org/kanjidic/kanjidic.html
- Tanaka Corpus (A:/B: format): https://www.edrdg.org/wiki/index.php/Tanaka_Corpus
- Pydantic v2: https://docs.pydantic.dev/latest/
"""

from enum import Enum
from typing import Any, Dict, List, Optional, TypedDict

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .normalization import normalize


# --- TypedDicts for raw source shapes ---

class RawSense(TypedDict, total=False):
    g: List[str]
    pos: List[str]
    field: List[str]
    misc: List[str]
    dial: List[str]
    info: str
    gt: Any


class RawWordRecord(TypedDict, total=False):
    r: List[str]
    k: List[str]
    s: List[RawSense]


class EntrySource(str, Enum):
    EDICT = "edict"
    WORDS = "words"


def _clean_list(values: Any) -> List[str]:
    """Trim string items, drop blanks; non-list input becomes an empty list."""
    if values is None:
        return []
    if isinstance(values, str):
        values = [values]
    if not isinstance(values, (list, tuple)):
        raise TypeError("expected a list of strings")
    cleaned = []
    for item in values:
        if item is None:
            continue
        text = str(item).strip()
        if text:
            cleaned.append(text)
    return cleaned


# --- Core models ---

class Sense(BaseModel):
    """
    One meaning unit of a word: ordered glosses plus grammatical/usage tags.

    Owned by exactly one WordEntry; its position in the entry's sense list is
    significant (display order, search ranking).
    """
    glosses: List[str] = Field(
        ...,
        min_length=1,
        description="Ordered free-text meanings of this sense",
        examples=[["to eat"], ["consideration/thoughtfulness"]]
    )
    parts_of_speech: List[str] = Field(
        default_factory=list,
        description="Part-of-speech codes as given by the source",
        examples=[["v1", "vt"], ["n"]]
    )
    field_tags: List[str] = Field(default_factory=list, description="Domain tags", examples=[["comp"]])
    misc_tags: List[str] = Field(default_factory=list, description="Usage tags", examples=[["uk", "P"]])
    dialect_tags: List[str] = Field(default_factory=list, description="Dialect tags", examples=[["ksb"]])
    info: Optional[str] = Field(default=None, description="Free-text sense annotation")
    gloss_type: Optional[str] = Field(default=None, description="Gloss type (literal, figurative, ...)")

    model_config = ConfigDict(extra="forbid")

    @field_validator("glosses", "parts_of_speech", "field_tags", "misc_tags", "dialect_tags", mode="before")
    @classmethod
    def clean_lists(cls, v: Any) -> List[str]:
        return _clean_list(v)

    @field_validator("info", "gloss_type", mode="before")
    @classmethod
    def blank_to_none(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    @property
    def meaning(self) -> str:
        return "; ".join(self.glosses)

    @property
    def pos_key(self) -> str:
        return "; ".join(self.parts_of_speech)


class WordEntry(BaseModel):
    """
    A dictionary entry: headword, primary reading and ordered senses.

    Reading-only entries carry the kana in `word` and no `reading`, so an
    EDICT kana headword and a reading-only word record share one identity.
    """
    word: Optional[str] = Field(
        default=None,
        description="Headword / surface form (kanji or kana)",
        examples=["思いやり(P);思い遣り", "食べる"]
    )
    reading: Optional[str] = Field(
        default=None,
        description="Primary kana reading",
        examples=["おもいやり", "たべる"]
    )
    senses: List[Sense] = Field(default_factory=list, description="Ordered senses")
    entry_id: Optional[str] = Field(
        default=None,
        description="External entry identifier",
        examples=["EntL1309180X"]
    )
    source: EntrySource = Field(default=EntrySource.EDICT, description="Corpus the entry came from")

    model_config = ConfigDict(extra="forbid")

    @field_validator("word", "reading", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    @model_validator(mode="after")
    def require_surface(self) -> "WordEntry":
        if not self.word and not self.reading:
            raise ValueError("entry needs a headword or a reading")
        return self

    @property
    def surface(self) -> str:
        return self.word or self.reading or ""

    @property
    def identity_key(self) -> str:
        return f"{normalize(self.surface)}:{normalize(self.reading if self.word else '')}"


class KanjiEntry(BaseModel):
    """One kanji character with its codes, readings and meanings."""
    character: str = Field(..., min_length=1, max_length=1, description="Single CJK character", examples=["亜"])
    jis_code: Optional[str] = Field(default=None, description="Legacy JIS X 0208 code", examples=["3021"])
    unicode_ref: Optional[str] = Field(default=None, description="Unicode reference token", examples=["U4e9c"])
    grade: Optional[int] = Field(default=None, ge=0, description="School grade", examples=[5])
    stroke_count: Optional[int] = Field(default=None, ge=0, description="Stroke count", examples=[5])
    frequency: Optional[int] = Field(default=None, ge=0, description="Frequency rank", examples=[718])
    on_readings: List[str] = Field(default_factory=list, examples=[["ア"]])
    kun_readings: List[str] = Field(default_factory=list, examples=[["つ.ぐ"]])
    nanori_readings: List[str] = Field(default_factory=list, examples=[["や", "つぎ"]])
    meanings: List[str] = Field(default_factory=list, examples=[["Asia", "rank next"]])

    model_config = ConfigDict(extra="forbid")


class ExampleEntry(BaseModel):
    """An example sentence pair plus its raw annotated breakdown line."""
    japanese: str = Field(..., min_length=1, examples=["日本語の文です。"])
    english: str = Field(default="", examples=["This is a sentence."])
    source_id: Optional[str] = Field(default=None, examples=["example_1"])
    breakdown: Optional[str] = Field(
        default=None,
        description="Annotated breakdown, stored verbatim and parsed at link time",
        examples=["日本語(にほんご) の 文{文です。}"]
    )

    model_config = ConfigDict(extra="forbid")


class Segment(BaseModel):
    """A furigana unit: base text and optional reading."""
    ruby: str = Field(..., description="Display/base text", examples=["君"])
    rt: Optional[str] = Field(default=None, description="Reading over the base text", examples=["きみ"])

    model_config = ConfigDict(extra="forbid")

    @field_validator("ruby")
    @classmethod
    def ruby_not_blank(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("ruby must not be empty")
        return v

    @field_validator("rt", mode="before")
    @classmethod
    def trim_rt(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        text = str(v).strip()
        return text or None

    def to_dict(self) -> Dict[str, str]:
        """Compact dict for JSON storage (rt omitted when absent)."""
        result = {"ruby": self.ruby}
        if self.rt is not None:
            result["rt"] = self.rt
        return result


class FuriganaEntry(BaseModel):
    """Furigana segmentation for one (text, reading) pair."""
    text: str = Field(..., min_length=1, examples=["大人"])
    reading: str = Field(..., min_length=1, examples=["おとな"])
    segments: List[Segment] = Field(..., min_length=1)

    model_config = ConfigDict(extra="forbid")

    @field_validator("text", "reading", mode="before")
    @classmethod
    def strip_text(cls, v: Any) -> str:
        return str(v).strip() if v is not None else ""
