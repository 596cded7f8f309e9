# Path: core/indexing/media.py
# Purpose: Extract per-file metadata and the decoded raster for ingestion.
# Layer: core/indexing.
# Details: The MIME type comes from the decoded image format, falling back to the file extension.

from __future__ import annotations

import mimetypes
from pathlib import Path

from PIL import Image

from core.embedders.base import open_image
from core.errors import DecodeError
from core.models.domain import MediaDetails

DEFAULT_CONTENT_TYPE = "application/octet-stream"


def content_type_for(image: Image.Image, path: Path) -> str:
    """MIME type of the decoded image, else a guess from the extension."""

    if image.format:
        mime = Image.MIME.get(image.format.upper())
        if mime:
            return mime
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or DEFAULT_CONTENT_TYPE


def extract_media_details(path: Path | str) -> MediaDetails:
    """Read one file into :class:`MediaDetails`.

    Raises ``DecodeError`` when the file cannot be read or is not a valid image.
    """

    path = Path(path)
    try:
        file_size = path.stat().st_size
    except OSError as exc:
        raise DecodeError(f"Cannot read file {path}: {exc}") from exc

    image = open_image(path)
    return MediaDetails(
        image=image,
        filename=path.name,
        file_path=str(path.resolve()),
        file_size_bytes=file_size,
        width=image.width,
        height=image.height,
        content_type=content_type_for(image, path),
    )
