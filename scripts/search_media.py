# Path: scripts/search_media.py
# Purpose: Simple CLI to run a text query against the semantic index.
# Layer: scripts.
# Details: Loads the application context and prints ranked matches with their similarity.

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
from core.errors import SemanticGalleryError

logger = logging.getLogger("scripts.search_media")


def main(argv: Optional[List[str]] = None) -> int:
    """Execute a search from the command line."""

    parser = argparse.ArgumentParser(description="Search the semantic gallery with a text query")
    parser.add_argument("query", type=str, help="Text query to search for")
    parser.add_argument("-l", "--limit", type=int, default=10, help="Number of results to return")
    parser.add_argument("--config", type=Path, default=None, help="JSON configuration file")
    args = parser.parse_args(argv)

    try:
        settings = AppSettings.load(args.config)
        setup_logging(settings.log_level, settings.log_json)
        context = AppContext.create(settings)
    except SemanticGalleryError as exc:
        logger.error(f"Startup failed: {exc}", extra={"event_type": "startup_failed"})
        return 2

    try:
        results = context.search(args.query, limit=args.limit)
    except SemanticGalleryError as exc:
        print(f"Search failed: {exc}", file=sys.stderr)
        return 1
    finally:
        context.close()

    if not results:
        print(f'No results found for query: "{args.query}"')
        return 0

    print(f'Search results for: "{args.query}"')
    print("-" * 50)
    for rank, result in enumerate(results, start=1):
        print(f"{rank}. {result.filename} (ID: {result.id})")
        print(f"   Path: {result.file_path}")
        print(f"   Similarity: {result.percentage:.2f}%")
    return 0


if __name__ == "__main__":
    sys.exit(main())
