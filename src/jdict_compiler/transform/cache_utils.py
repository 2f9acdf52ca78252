"""
Msgpack cache for parsed sources.

A cache file holds one header object followed by one packed object per entry:

    {"source": "edict", "stats": {...}}   # header
    {"word": "...", "reading": "...", ...}
    ...

The key is the sha256 of the parser module together with the input file, so
editing either one invalidates the cache.
"""

import hashlib
import logging
import os
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple, Type

import msgpack
from pydantic import BaseModel, ValidationError

logger = logging.getLogger(__name__)


def compute_file_hash(file_path) -> str:
    """Compute SHA256 hash of a file's contents."""
    h = hashlib.sha256()
    with open(file_path, 'rb') as f:
        while True:
            chunk = f.read(8192)
            if not chunk:
                break
            h.update(chunk)
    return h.hexdigest()


def compute_parser_hash(parser_path, source_path) -> str:
    """Hash parser file and source file together for cache key."""
    parser_hash = compute_file_hash(parser_path)
    source_hash = compute_file_hash(source_path)
    return hashlib.sha256((parser_hash + source_hash).encode('utf-8')).hexdigest()


def cache_path_for_key(key: str, cache_dir, prefix: Optional[str] = None) -> Path:
    if prefix:
        filename = f"{prefix}_{key}.msgpack"
    else:
        filename = f"{key}.msgpack"
    return Path(cache_dir) / filename


def to_serializable(obj):
    """Recursively convert Pydantic models and nested structures to dicts/lists for msgpack serialization."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    elif isinstance(obj, dict):
        return {k: to_serializable(v) for k, v in obj.items()}
    elif isinstance(obj, (list, tuple)):
        return [to_serializable(v) for v in obj]
    else:
        return obj


def from_serializable(data, model_cls: Optional[Type[BaseModel]] = None):
    """
    Rebuild Pydantic models from dicts/lists loaded from cache.

    With model_cls, a list is treated as a list of models and a dict as a
    dict of models; otherwise the structure is returned as plain data.
    """
    if model_cls is not None and isinstance(data, list):
        return [model_cls.model_validate(v) for v in data]
    elif model_cls is not None and isinstance(data, dict):
        return {k: model_cls.model_validate(v) for k, v in data.items()}
    elif isinstance(data, dict):
        return {k: from_serializable(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [from_serializable(v) for v in data]
    else:
        return data


def save_to_cache_streaming(header: Dict[str, Any], items: Iterable, path: Path) -> Path:
    """Write a header and a stream of entries with one Packer."""
    path.parent.mkdir(parents=True, exist_ok=True)
    logger.info(f"[CACHE] Saving cache (streaming) to {path}")
    tmp_path = path.with_suffix(path.suffix + ".part")
    packer = msgpack.Packer(use_bin_type=True)
    with open(tmp_path, 'wb') as f:
        f.write(packer.pack(header))
        for item in items:
            f.write(packer.pack(to_serializable(item)))
    os.replace(tmp_path, path)
    return path


def load_from_cache_streaming(path: Path) -> Optional[Tuple[Dict[str, Any], List[Any]]]:
    """Load (header, raw entries); None when the file is absent or unreadable."""
    if not path.exists() or path.stat().st_size == 0:
        logger.info(f"[CACHE] No cache found at {path}")
        return None
    try:
        with open(path, 'rb') as f:
            logger.info(f"[CACHE] Loading cache (streaming) from {path}")
            unpacker = msgpack.Unpacker(f, raw=False)
            header = next(unpacker, None)
            if not isinstance(header, dict):
                logger.warning(f"[CACHE] Cache at {path} has no header, ignoring")
                return None
            return header, list(unpacker)
    except (OSError, ValueError, msgpack.UnpackException) as e:
        logger.warning(f"[CACHE] Failed to load cache from {path}: {e}")
        return None


class ParseCache:
    """
    Parsed-entry cache for one cache directory.

    Usage:
        cache = ParseCache(Path(".cache"))
        hit = cache.load("kanjidic", parser_file, source_file, KanjiEntry)
        if hit is None:
            entries = parser.parse_file(source_file)
            cache.save("kanjidic", parser_file, source_file, entries, stats)
    """

    def __init__(self, cache_dir: Path):
        self.cache_dir = Path(cache_dir)

    def path_for(self, prefix: str, parser_path: Path, source_path: Path) -> Path:
        key = compute_parser_hash(parser_path, source_path)
        return cache_path_for_key(key, self.cache_dir, prefix)

    def load(
        self,
        prefix: str,
        parser_path: Path,
        source_path: Path,
        model_cls: Type[BaseModel],
    ) -> Optional[Tuple[Dict[str, Any], List[BaseModel]]]:
        """
        Returns:
            (stats dict, entries) on a hit, None on a miss or unusable cache
        """
        loaded = load_from_cache_streaming(self.path_for(prefix, parser_path, source_path))
        if loaded is None:
            return None
        header, raw_entries = loaded
        try:
            entries = from_serializable(raw_entries, model_cls)
        except ValidationError as e:
            logger.warning(f"[CACHE] Stale {prefix} cache ignored: {e.error_count()} invalid entries")
            return None
        logger.info(f"[CACHE] ✓ Loaded {len(entries):,} {prefix} entries from cache")
        return header.get("stats", {}), entries

    def save(
        self,
        prefix: str,
        parser_path: Path,
        source_path: Path,
        entries: List[BaseModel],
        stats: Optional[Dict[str, Any]] = None,
    ) -> Path:
        header = {"source": prefix, "stats": stats or {}}
        return save_to_cache_streaming(header, entries, self.path_for(prefix, parser_path, source_path))
