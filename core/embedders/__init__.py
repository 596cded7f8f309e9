# Path: core/embedders/__init__.py
# Purpose: Package initializer for embedder implementations and interfaces.
# Layer: core/embedders.
# Details: Exposes the base interface, image decoding helper and the CLIP implementation.

from .base import Embedder, ImageInput, open_image
from .clip_embedder import ClipEmbedder, resolve_device

__all__ = ["ClipEmbedder", "Embedder", "ImageInput", "open_image", "resolve_device"]
