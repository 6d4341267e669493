"""Command line entry point: compose a book from a folder of photos."""

from __future__ import annotations

import argparse
import json
import logging
import random
import sys
from pathlib import Path
from typing import Iterable, List, Optional, Sequence

from . import config
from .enrichment import HttpEnrichmentProvider
from .errors import StorageError
from .log import configure_logging
from .models import PhotoRecord
from .pipeline import run_pipeline
from .storage import JsonBookStore

LOGGER = logging.getLogger(__name__)


def collect_photos(paths: Iterable[str]) -> List[PhotoRecord]:
    """Records for every supported image in ``paths`` (files or directories)."""
    suffixes = {f".{ext}" for ext in config.SUPPORTED_IMAGE_FORMATS}
    files: List[Path] = []
    for raw in paths:
        path = Path(raw)
        if path.is_dir():
            files.extend(sorted(p for p in path.iterdir() if p.suffix.lower() in suffixes))
        elif path.suffix.lower() in suffixes and path.exists():
            files.append(path)
        else:
            LOGGER.warning("Skipping %s: not a supported image", raw)
    return [PhotoRecord.from_path(p) for p in files]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="photobook",
        description="Score, select and paginate photos into a photobook document.",
    )
    parser.add_argument("photos", nargs="+", help="image files or folders")
    parser.add_argument("--book-id", default="photobook", help="id of the stored book")
    parser.add_argument("--store", default=config.AUTOSAVE_PATH, help="folder holding book documents")
    parser.add_argument("--endpoint", help="URL of a narrative enrichment service")
    parser.add_argument("--include-all", action="store_true", help="keep photos that would be excluded")
    parser.add_argument("--seed", type=int, help="seed for layout selection")
    parser.add_argument("--log-file", help="log file path (default ./photobook.log)")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    # stdout carries the stats document
    configure_logging(
        args.log_file,
        level=logging.DEBUG if args.verbose else logging.INFO,
        stream=sys.stderr,
    )

    records = collect_photos(args.photos)
    if not records:
        LOGGER.error("No photos found")
        return 1

    enrichment = HttpEnrichmentProvider(args.endpoint) if args.endpoint else None
    rng = random.Random(args.seed) if args.seed is not None else None
    result = run_pipeline(
        records,
        enrichment=enrichment,
        include_all=args.include_all,
        rng=rng,
        on_progress=lambda stage, percent, message: LOGGER.info("[%3d%%] %s: %s", percent, stage, message),
    )

    try:
        JsonBookStore(args.store).save(result.to_document(args.book_id))
    except StorageError as exc:
        LOGGER.error("Could not save book: %s", exc)
        return 2

    json.dump(result.stats, sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
