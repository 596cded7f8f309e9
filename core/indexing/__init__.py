# Path: core/indexing/__init__.py
# Purpose: Package initializer for ingestion utilities.
# Layer: core/indexing.
# Details: Exposes scanning, media extraction and index building helpers.

from .index_builder import IndexBuilder
from .media import content_type_for, extract_media_details
from .scanner import DEFAULT_MAX_DEPTH, SUPPORTED_EXTENSIONS, ImageScanner

__all__ = [
    "DEFAULT_MAX_DEPTH",
    "IndexBuilder",
    "ImageScanner",
    "SUPPORTED_EXTENSIONS",
    "content_type_for",
    "extract_media_details",
]
