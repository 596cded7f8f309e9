# Path: scripts/index_images.py
# Purpose: CLI tool to ingest an image or a folder of images into the semantic index.
# Layer: scripts.
# Details: Builds the application context, asks for confirmation on multi-file batches and prints a summary.

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

# Ensure project root is on sys.path when running as a script.
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from config import AppSettings, setup_logging
from core.context import AppContext
from core.errors import SemanticGalleryError, ValidationError

logger = logging.getLogger("scripts.index_images")


def prompt_confirmation(count: int) -> bool:
    """Ask on stdin whether to ingest ``count`` files; anything but yes declines."""

    try:
        answer = input(f"Found {count} images. Proceed with ingestion? [y/N] ")
    except EOFError:
        return False
    return answer.strip().lower() in {"y", "yes"}


def main(argv: Optional[List[str]] = None) -> int:
    """Run ingestion over a file or folder of images."""

    parser = argparse.ArgumentParser(description="Ingest images into the semantic gallery")
    parser.add_argument("path", type=Path, help="Image file or directory to ingest")
    parser.add_argument("-r", "--recursive", action="store_true", help="Descend into subdirectories")
    parser.add_argument("--max-depth", type=int, default=None, help="Deepest directory level visited when recursing")
    parser.add_argument("-y", "--yes", action="store_true", help="Skip the confirmation prompt")
    parser.add_argument("--config", type=Path, default=None, help="JSON configuration file")
    args = parser.parse_args(argv)

    print(f"Ingesting media from {args.path} (recursive: {args.recursive})")
    try:
        settings = AppSettings.load(args.config)
        setup_logging(settings.log_level, settings.log_json)
        context = AppContext.create(settings)
    except SemanticGalleryError as exc:
        logger.error(f"Startup failed: {exc}", extra={"event_type": "startup_failed"})
        return 2

    try:
        report = context.ingest(
            args.path,
            recursive=args.recursive,
            max_depth=args.max_depth,
            confirm=(lambda count: True) if args.yes else prompt_confirmation,
        )
    except ValidationError as exc:
        print(f"Cannot ingest {args.path}: {exc}", file=sys.stderr)
        return 2
    finally:
        context.close()

    if report.aborted:
        print("Ingestion cancelled; nothing was written.")
        return 1

    print(f"Processed {report.processed}/{report.total}: {report.succeeded} succeeded, {report.failed} failed")
    for file_path, error in report.failures:
        print(f"  failed: {file_path}: {error}")
    return 0 if report.failed == 0 else 1


if __name__ == "__main__":
    sys.exit(main())
