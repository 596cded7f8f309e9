# Path: scripts/serve.py
# Purpose: Run the HTTP API with uvicorn.
# Layer: scripts.
# Details: The application context is created once and shared by every request.

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

import uvicorn

from api import create_app
from config import AppSettings, setup_logging
from core.context import AppContext
from core.errors import SemanticGalleryError

logger = logging.getLogger("scripts.serve")


def main(argv: Optional[List[str]] = None) -> int:
    """Start the API server."""

    parser = argparse.ArgumentParser(description="Serve the semantic gallery HTTP API")
    parser.add_argument("--host", default="127.0.0.1", help="Interface to bind")
    parser.add_argument("--port", type=int, default=8080, help="Port to listen on")
    parser.add_argument("--config", type=Path, default=None, help="JSON configuration file")
    args = parser.parse_args(argv)

    try:
        settings = AppSettings.load(args.config)
        setup_logging(settings.log_level, settings.log_json)
        context = AppContext.create(settings)
    except SemanticGalleryError as exc:
        logger.error(f"Startup failed: {exc}", extra={"event_type": "startup_failed"})
        return 2

    print(f"Starting API server at {args.host}:{args.port}")
    try:
        uvicorn.run(create_app(context), host=args.host, port=args.port, log_config=None)
    finally:
        context.close()
    return 0


if __name__ == "__main__":
    sys.exit(main())
