"""
Source format parsers.

- edict_parser.py: slash-delimited EDICT dictionary
- words_parser.py: line-delimited JSON word records
- kanjidic_parser.py: fixed-field KANJIDIC kanji table
- examples_parser.py: A:/B: example sentence corpus
- furigana_parser.py: pre-segmented furigana mapping list
"""

from .base import LineParser, ParseResult, ParseStats, RejectReason
from .edict_parser import EDICTParser, parse_edict_file
from .examples_parser import ExamplesParser, parse_examples_file
from .furigana_parser import FuriganaParser, parse_furigana_file
from .kanjidic_parser import KanjidicParser, parse_kanjidic_file
from .words_parser import WordsParser, parse_words_file

__all__ = [
    'LineParser', 'ParseResult', 'ParseStats', 'RejectReason',
    'EDICTParser', 'WordsParser', 'KanjidicParser', 'ExamplesParser', 'FuriganaParser',
    'parse_edict_file', 'parse_words_file', 'parse_kanjidic_file', 'parse_examples_file', 'parse_furigana_file',
]
