"""
jdict_compiler: compiles Japanese lexicographic corpora into one
cross-referenced, full-text searchable SQLite store.
"""

__version__ = "0.1.0"

from .config import PipelineConfig
from .exceptions import CompilerError, FatalIOFailure
from .pipeline import CompilePipeline

__all__ = ["CompilePipeline", "PipelineConfig", "CompilerError", "FatalIOFailure", "__version__"]
