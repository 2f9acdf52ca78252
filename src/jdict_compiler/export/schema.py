"""
Store schema.

Base tables are created up front; secondary indexes are created after the bulk
load (POST_LOAD_INDEXES_SQL) so inserts do not maintain them row by row. The
FTS5 tables are derived data and are rebuilt from the base tables.
"""

PRAGMAS = (
    "PRAGMA foreign_keys = ON;",
    "PRAGMA synchronous = NORMAL;",
    "PRAGMA journal_mode = MEMORY;",
    "PRAGMA temp_store = MEMORY;",
    "PRAGMA cache_size = -64000;",
)

SCHEMA_SQL = """
-- Dictionary words (one row per identity)
CREATE TABLE IF NOT EXISTS words (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    word TEXT NOT NULL,                     -- headword / surface form
    reading TEXT,                           -- primary kana reading (NULL for reading-only entries)
    reading_hiragana TEXT,                  -- hiragana rendering of reading (or of word when kana-only)
    romaji TEXT,                            -- Hepburn romanization
    entry_id TEXT,                          -- external id, e.g. EntL1309180X
    source TEXT NOT NULL,                   -- 'edict' | 'words'
    identity_key TEXT NOT NULL UNIQUE       -- normalize(word) || ':' || normalize(reading)
);

CREATE TABLE IF NOT EXISTS word_senses (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    word_id INTEGER NOT NULL REFERENCES words(id) ON DELETE CASCADE,
    sense_order INTEGER NOT NULL,
    parts_of_speech TEXT NOT NULL DEFAULT '[]',   -- JSON list
    field_tags TEXT NOT NULL DEFAULT '[]',        -- JSON list
    misc_tags TEXT NOT NULL DEFAULT '[]',         -- JSON list
    dialect_tags TEXT NOT NULL DEFAULT '[]',      -- JSON list
    info TEXT,
    UNIQUE(word_id, sense_order)
);

CREATE TABLE IF NOT EXISTS word_glosses (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    sense_id INTEGER NOT NULL REFERENCES word_senses(id) ON DELETE CASCADE,
    gloss TEXT NOT NULL,
    gloss_type TEXT,
    gloss_order INTEGER NOT NULL
);

CREATE TABLE IF NOT EXISTS kanji (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    character TEXT NOT NULL UNIQUE,
    jis_code TEXT,
    unicode_ref TEXT,
    grade INTEGER,
    stroke_count INTEGER,
    frequency INTEGER,
    meanings TEXT NOT NULL DEFAULT '[]',          -- JSON list
    kun_readings TEXT NOT NULL DEFAULT '[]',      -- JSON list
    on_readings TEXT NOT NULL DEFAULT '[]',       -- JSON list
    nanori_readings TEXT NOT NULL DEFAULT '[]'    -- JSON list
);

CREATE TABLE IF NOT EXISTS examples (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    japanese TEXT NOT NULL,
    english TEXT NOT NULL DEFAULT '',
    japanese_parsed TEXT,                   -- annotated breakdown, verbatim
    source_id TEXT
);

CREATE TABLE IF NOT EXISTS word_examples (
    word_id INTEGER NOT NULL REFERENCES words(id) ON DELETE CASCADE,
    example_id INTEGER NOT NULL REFERENCES examples(id) ON DELETE CASCADE,
    PRIMARY KEY (word_id, example_id)
);

-- Upserted by (text, reading), carried over across full rebuilds
CREATE TABLE IF NOT EXISTS furigana (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    text TEXT NOT NULL,
    reading TEXT NOT NULL,
    reading_hiragana TEXT,
    segments TEXT NOT NULL,                 -- JSON: [{"ruby": "大人", "rt": "おとな"}]
    UNIQUE(text, reading)
);

CREATE TABLE IF NOT EXISTS build_metadata (
    key TEXT PRIMARY KEY,
    value TEXT
);

CREATE TABLE IF NOT EXISTS build_stats (
    metric TEXT PRIMARY KEY,
    value TEXT
);

CREATE VIRTUAL TABLE IF NOT EXISTS words_fts USING fts5(
    word_id UNINDEXED,
    kanji,
    reading,
    romaji,
    gloss,
    pos,
    tokenize = 'unicode61'
);

CREATE VIRTUAL TABLE IF NOT EXISTS examples_fts USING fts5(
    example_id UNINDEXED,
    japanese,
    english,
    tokenize = 'unicode61'
);
"""

POST_LOAD_INDEXES_SQL = """
CREATE INDEX IF NOT EXISTS idx_words_word ON words(word);
CREATE INDEX IF NOT EXISTS idx_words_reading ON words(reading);
CREATE INDEX IF NOT EXISTS idx_words_reading_hiragana ON words(reading_hiragana);
CREATE INDEX IF NOT EXISTS idx_words_romaji ON words(romaji);
CREATE INDEX IF NOT EXISTS idx_word_senses_word ON word_senses(word_id);
CREATE INDEX IF NOT EXISTS idx_word_glosses_sense ON word_glosses(sense_id);
CREATE INDEX IF NOT EXISTS idx_word_examples_example ON word_examples(example_id);
CREATE INDEX IF NOT EXISTS idx_furigana_text ON furigana(text);
CREATE INDEX IF NOT EXISTS idx_furigana_reading_hiragana ON furigana(reading_hiragana);
"""

# Delete order respects foreign keys
WORD_TABLES = ("word_examples", "word_glosses", "word_senses", "words")
EXAMPLE_TABLES = ("word_examples", "examples")
KANJI_TABLES = ("kanji",)
FURIGANA_TABLES = ("furigana",)
FTS_TABLES = ("words_fts", "examples_fts")

COUNTED_TABLES = (
    "words",
    "word_senses",
    "word_glosses",
    "kanji",
    "examples",
    "word_examples",
    "furigana",
)
