"""
Pipeline configuration.

All tunables of a compile run live here as pydantic models, so a run can be
configured from CLI flags, from a JSON file, or programmatically in tests.

Example config file:
    {
        "output_path": "out/jisho.db",
        "data_dir": "data",
        "sources": {"examples": "examples.utf"},
        "batch_size": 2000,
        "linker": {"max_links": 10}
    }
"""

import json
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .exceptions import FatalIOFailure

SOURCE_NAMES = ("edict", "words", "kanjidic", "examples", "furigana")


class SourcePaths(BaseModel):
    """Input file locations. Relative paths resolve against the data directory."""
    edict: Optional[Path] = Field(default=Path("edict2u"), description="EDICT-style dictionary file")
    words: Optional[Path] = Field(default=Path("words.ljson"), description="Line-delimited JSON word records")
    kanjidic: Optional[Path] = Field(default=Path("kanjidic"), description="Fixed-field kanji reference file")
    examples: Optional[Path] = Field(default=Path("examples.utf"), description="Paired-line example corpus")
    furigana: Optional[Path] = Field(default=Path("furigana.json"), description="Pre-segmented furigana mapping list")

    model_config = ConfigDict(extra="forbid")


class LinkerPolicy(BaseModel):
    """Thresholds of the example-to-word cross-reference linker."""
    min_form_length: int = Field(
        default=3,
        ge=1,
        description="Shortest form (in characters) that substring matching may link",
    )
    max_links: int = Field(
        default=20,
        ge=1,
        le=1000,
        description="Maximum distinct word links per example sentence",
    )

    model_config = ConfigDict(extra="forbid")


class PipelineConfig(BaseModel):
    """Configuration for one compile run."""
    output_path: Path = Field(default=Path("jisho.db"), description="Path to the compiled SQLite store")
    data_dir: Path = Field(default=Path("data"), description="Directory holding the source corpora")
    sources: SourcePaths = Field(default_factory=SourcePaths)
    batch_size: int = Field(default=1000, description="Rows per checkpointed insert batch", ge=1, le=10000)
    example_batch_size: int = Field(default=500, description="Examples per checkpointed batch", ge=1, le=10000)
    linker: LinkerPolicy = Field(default_factory=LinkerPolicy)
    compact: bool = Field(default=True, description="Run VACUUM after the final commit")
    use_cache: bool = Field(default=False, description="Cache parsed sources as msgpack between runs")
    cache_dir: Path = Field(default=Path(".cache"), description="Directory for msgpack parse caches")
    show_progress: bool = Field(default=True, description="Show tqdm progress bars")

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    @field_validator("output_path", mode="before")
    @classmethod
    def output_must_be_file(cls, value):
        if isinstance(value, str) and value.endswith(("/", "\\")):
            raise ValueError("output_path must name a file, not a directory")
        return value

    def source_path(self, name: str) -> Optional[Path]:
        """
        Resolve the configured path of a source.

        Args:
            name: One of SOURCE_NAMES

        Returns:
            Absolute-or-data-dir-relative path, or None when the source is disabled
        """
        if name not in SOURCE_NAMES:
            raise KeyError(f"Unknown source: {name}")
        path = getattr(self.sources, name)
        if path is None:
            return None
        return path if path.is_absolute() else self.data_dir / path

    @classmethod
    def from_file(cls, file_path: Path, **overrides) -> "PipelineConfig":
        """Load a JSON config file; keyword overrides win over file values."""
        try:
            with open(file_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise FatalIOFailure(f"Cannot read config file: {e}", Path(file_path))
        except json.JSONDecodeError as e:
            raise ValueError(f"Config file {file_path} is not valid JSON: {e}")
        if not isinstance(data, dict):
            raise ValueError(f"Config file {file_path} must contain a JSON object")
        data.update({k: v for k, v in overrides.items() if v is not None})
        return cls.model_validate(data)


__all__ = ["PipelineConfig", "SourcePaths", "LinkerPolicy", "SOURCE_NAMES"]
