"""
Command-line entry point.

Usage:
    jdict-compile import-all --data-dir data -o jisho.db
    jdict-compile import examples --max-links 10
    jdict-compile stats -o jisho.db
    python -m jdict_compiler reset -o jisho.db
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from pydantic import ValidationError

from .config import SOURCE_NAMES, PipelineConfig
from .exceptions import FatalIOFailure
from .pipeline import IMPORT_TARGETS, CompilePipeline


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="jdict-compile",
        description="Compile Japanese dictionary corpora into a searchable SQLite store",
    )
    parser.add_argument('--config', type=Path, help="JSON config file (validated as PipelineConfig)")
    parser.add_argument('--output', '-o', type=Path, help="Path to the SQLite store (default: jisho.db)")
    parser.add_argument('--data-dir', type=Path, help="Directory holding the source files (default: data)")
    for name in SOURCE_NAMES:
        parser.add_argument(f'--{name}', type=Path, metavar="PATH", help=f"Override the {name} source path")
    parser.add_argument('--batch-size', type=int, help="Rows per checkpointed insert batch (1..10000)")
    parser.add_argument('--max-links', type=int, help="Maximum word links per example sentence")
    parser.add_argument('--min-form-length', type=int, help="Shortest form used by substring linking")
    parser.add_argument('--no-compact', action='store_true', help="Skip VACUUM after the final commit")
    parser.add_argument('--cache', dest='use_cache', action='store_true', default=None, help="Cache parsed sources as msgpack")
    parser.add_argument('--no-cache', dest='use_cache', action='store_false', help="Do not use the parse cache")
    parser.add_argument('--no-progress', action='store_true', help="Disable progress bars")
    parser.add_argument(
        '--log-level',
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)
    subparsers.add_parser('create-schema', help="Write the schema (existing data is kept)")
    subparsers.add_parser('import-all', help="Full rebuild from every configured source present")
    import_parser = subparsers.add_parser('import', help="Rebuild one part of the store")
    import_parser.add_argument('target', choices=IMPORT_TARGETS)
    subparsers.add_parser('reset', help="Replace the store with an empty schema")
    subparsers.add_parser('stats', help="Print table counts and file size")
    return parser


def config_from_args(args: argparse.Namespace) -> PipelineConfig:
    """
    Merge config file values and CLI flags (flags win).

    Raises:
        ValidationError: Invalid values
        ValueError: Unreadable config JSON
    """
    config = PipelineConfig.from_file(args.config) if args.config else PipelineConfig()
    data = config.model_dump()

    if args.output is not None:
        data["output_path"] = args.output
    if args.data_dir is not None:
        data["data_dir"] = args.data_dir
    for name in SOURCE_NAMES:
        value = getattr(args, name)
        if value is not None:
            data["sources"][name] = value
    if args.batch_size is not None:
        data["batch_size"] = args.batch_size
    if args.max_links is not None:
        data["linker"]["max_links"] = args.max_links
    if args.min_form_length is not None:
        data["linker"]["min_form_length"] = args.min_form_length
    if args.no_compact:
        data["compact"] = False
    if args.use_cache is not None:
        data["use_cache"] = args.use_cache
    if args.no_progress:
        data["show_progress"] = False
    return PipelineConfig.model_validate(data)


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="[%(asctime)s] %(levelname)s %(name)s: %(message)s",
        datefmt="%H:%M:%S"
    )
    logger = logging.getLogger("jdict_compile")

    try:
        config = config_from_args(args)
    except ValidationError as e:
        logger.error(f"✗ Invalid configuration: {e}")
        return 1
    except (ValueError, FatalIOFailure) as e:
        logger.error(f"✗ {e}")
        return 1

    pipeline = CompilePipeline(config)
    logger.info(f"Starting {args.command}")
    logger.info(f"  Output: {config.output_path}")

    try:
        if args.command == "create-schema":
            pipeline.run_create_schema()
        elif args.command == "import-all":
            logger.info(f"  Data dir: {config.data_dir}")
            pipeline.run_import_all()
        elif args.command == "import":
            pipeline.run_import(args.target)
        elif args.command == "reset":
            pipeline.run_reset()
        elif args.command == "stats":
            print(json.dumps(pipeline.stats(), indent=2, ensure_ascii=False))
    except FatalIOFailure as e:
        logger.error(f"✗ {args.command} failed: {e}")
        return 1

    logger.info(f"✓ {args.command} complete")
    return 0


if __name__ == '__main__':
    sys.exit(main())
