"""
Pytest configuration: UTF-8 output and a small sample corpus.
"""

import json
import os
import sys

import pytest

# Force UTF-8 encoding globally
os.environ['PYTHONIOENCODING'] = 'utf-8'

if sys.platform == 'win32' and hasattr(sys.stdout, 'reconfigure'):
    sys.stdout.reconfigure(encoding='utf-8', errors='replace')
    sys.stderr.reconfigure(encoding='utf-8', errors='replace')


EDICT_SAMPLE = """\
; sample EDICT
思いやり(P);思い遣り [おもいやり] /(n) consideration/thoughtfulness/(P)/EntL1309180X/
食べる [たべる] /(v1,vt) (1) to eat/(2) to live on (e.g. a salary)/(P)/EntL1358280X/
猫 [ねこ] /(n) cat/EntL1467640X/
broken line without structure
"""

WORDS_SAMPLE = """\
// sample word records
{"r": ["たべる"], "k": ["食べる"], "s": [{"g": ["to eat"], "pos": ["v1", "vt"]}]}
{"r": ["がっこう"], "k": ["学校"], "s": [{"g": ["school"], "pos": ["n"]}]}
{"r": [], "k": [], "s": []}
"""

KANJIDIC_SAMPLE = """\
# sample KANJIDIC
亜 3021 U4e9c G8 S7 ア つ.ぐ T1 や {Asia} {rank next}
猫 4700 U732b G0 S11 ビョウ ねこ {cat}
"""

EXAMPLES_SAMPLE = """\
A: 猫が好きです。\tI like cats.#ID=1
B: 猫(ねこ) が 好き(すき) です
A: 学校で食べた。  I ate at school.#ID=2
B: 学校(がっこう) で 食べる(たべる){食べた}
B: orphan breakdown
"""

FURIGANA_SAMPLE = [
    {"text": "大人", "reading": "おとな", "furigana": [{"ruby": "大人", "rt": "おとな"}]},
    {"text": "食べる", "reading": "たべる", "furigana": [{"ruby": "食", "rt": "た"}, {"ruby": "べる"}]},
    {"text": "broken"},
]


def write_corpus(data_dir, furigana=None):
    """Write the sample corpus under the default source file names."""
    data_dir.mkdir(parents=True, exist_ok=True)
    (data_dir / "edict2u").write_text(EDICT_SAMPLE, encoding="utf-8")
    (data_dir / "words.ljson").write_text(WORDS_SAMPLE, encoding="utf-8")
    (data_dir / "kanjidic").write_text(KANJIDIC_SAMPLE, encoding="utf-8")
    (data_dir / "examples.utf").write_text(EXAMPLES_SAMPLE, encoding="utf-8")
    (data_dir / "furigana.json").write_text(
        json.dumps(FURIGANA_SAMPLE if furigana is None else furigana, ensure_ascii=False),
        encoding="utf-8-sig",
    )
    return data_dir


@pytest.fixture
def corpus_dir(tmp_path):
    """Directory holding every sample source file."""
    return write_corpus(tmp_path / "data")


@pytest.fixture
def pipeline_config(tmp_path, corpus_dir):
    from jdict_compiler.config import PipelineConfig

    return PipelineConfig(
        output_path=tmp_path / "out" / "jisho.db",
        data_dir=corpus_dir,
        cache_dir=tmp_path / "cache",
        show_progress=False,
    )
