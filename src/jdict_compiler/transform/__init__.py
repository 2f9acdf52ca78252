from .annotation import extract_segments, parse_annotation, segments_from_structured
from .inflection import WordFormIndex, generate_word_forms
from .linker import CrossReferenceLinker
from .models import EntrySource, ExampleEntry, FuriganaEntry, KanjiEntry, Segment, Sense, WordEntry
from .normalization import deduplicate_entries, identity_key, normalize

__all__ = [
    'EntrySource', 'ExampleEntry', 'FuriganaEntry', 'KanjiEntry', 'Segment', 'Sense', 'WordEntry',
    'normalize', 'identity_key', 'deduplicate_entries',
    'parse_annotation', 'segments_from_structured', 'extract_segments',
    'generate_word_forms', 'WordFormIndex', 'CrossReferenceLinker',
]
