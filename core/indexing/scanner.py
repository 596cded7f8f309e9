# Path: core/indexing/scanner.py
# Purpose: Discover candidate image files under a file or directory path.
# Layer: core/indexing.
# Details: Breadth-first walk with an explicit depth bound; recursion only on request.

from __future__ import annotations

import logging
from collections import deque
from pathlib import Path
from typing import Deque, Iterable, List, Tuple

from core.errors import ValidationError

logger = logging.getLogger(__name__)

SUPPORTED_EXTENSIONS = {".jpg", ".jpeg", ".png", ".gif", ".webp", ".tiff", ".bmp"}
DEFAULT_MAX_DEPTH = 5


def is_supported(path: Path) -> bool:
    return path.suffix.lower() in SUPPORTED_EXTENSIONS


class ImageScanner:
    """Scan filesystem paths for supported image files.

    Files directly inside ``root`` are at depth 0, files inside its
    subdirectories at depth 1, and so on. Subdirectories are entered only when
    ``recursive`` is set, and never beyond ``max_depth``.
    """

    def __init__(self, root: Path | str, recursive: bool = False, max_depth: int = DEFAULT_MAX_DEPTH) -> None:
        if max_depth < 0:
            raise ValidationError(f"max_depth must be zero or greater, got {max_depth}.")
        self.root = Path(root)
        self.recursive = recursive
        self.max_depth = max_depth

    def scan(self) -> List[Path]:
        """Return discovered image paths in breadth-first order.

        Raises ``ValidationError`` when the root does not exist or is neither a file nor a directory.
        """

        if not self.root.exists():
            raise ValidationError(f"Path does not exist: {self.root}")

        if self.root.is_file():
            if is_supported(self.root):
                return [self.root]
            logger.warning(
                "Skipping unsupported file type",
                extra={"event_type": "scan_unsupported_file", "file_path": str(self.root)},
            )
            return []

        if not self.root.is_dir():
            raise ValidationError(f"Path is neither a file nor a directory: {self.root}")

        return list(self._iter_image_files())

    def _iter_image_files(self) -> Iterable[Path]:
        """Yield image files level by level, children sorted by name."""

        queue: Deque[Tuple[Path, int]] = deque([(self.root, 0)])
        while queue:
            directory, depth = queue.popleft()
            try:
                entries = sorted(directory.iterdir(), key=lambda entry: entry.name)
            except OSError as exc:
                logger.warning(
                    f"Cannot read directory: {exc}",
                    extra={"event_type": "scan_directory_error", "file_path": str(directory)},
                )
                continue

            for entry in entries:
                if entry.is_symlink() and entry.is_dir():
                    continue
                if entry.is_dir():
                    if self.recursive and depth + 1 <= self.max_depth:
                        queue.append((entry, depth + 1))
                elif entry.is_file() and is_supported(entry):
                    yield entry
