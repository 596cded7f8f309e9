# Path: core/embedders/base.py
# Purpose: Define the Embedder interface for image and text embeddings in a shared space.
# Layer: core/embedders.
# Details: Provides abstract encode methods, batch fallbacks, normalization and dot-product scoring.

from __future__ import annotations

import io
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Sequence, Union

import numpy as np
from PIL import Image, UnidentifiedImageError

from core.errors import DecodeError, ValidationError

ImageInput = Union[Image.Image, bytes, bytearray, str, Path]


def open_image(source: ImageInput) -> Image.Image:
    """Decode ``source`` into a fully loaded PIL image.

    Accepts an already opened image, raw encoded bytes or a filesystem path.
    Raises ``DecodeError`` when the input is not a readable raster image.
    """

    try:
        if isinstance(source, Image.Image):
            image = source
        elif isinstance(source, (bytes, bytearray)):
            if not source:
                raise DecodeError("Image bytes are empty")
            image = Image.open(io.BytesIO(bytes(source)))
        elif isinstance(source, (str, Path)):
            image = Image.open(source)
        else:
            raise DecodeError(f"Unsupported image input type: {type(source).__name__}")
        # Image.open is lazy; force the full decode so truncated files fail here.
        image.load()
    except DecodeError:
        raise
    except (UnidentifiedImageError, OSError, ValueError, SyntaxError, Image.DecompressionBombError) as exc:
        raise DecodeError(f"Could not decode image: {exc}") from exc
    return image


class Embedder(ABC):
    """Abstract base class for all embedders used by ingestion and search.

    Implementations map images and text into one vector space and return
    unit-length float32 vectors, so that scoring reduces to a dot product.
    """

    name: str
    model_name: str
    model_version: str
    dim: int

    @abstractmethod
    def encode_image(self, image: ImageInput) -> np.ndarray:
        """Return a normalized embedding for a given image."""

    @abstractmethod
    def encode_text(self, text: str) -> np.ndarray:
        """Return a normalized embedding for a given text query."""

    def encode_images_batch(self, images: Sequence[ImageInput]) -> np.ndarray:
        """Encode several images; row ``i`` belongs to ``images[i]``."""

        if not images:
            return np.empty((0, self.dim), dtype=np.float32)
        return np.vstack([self.encode_image(image) for image in images]).astype(np.float32)

    def encode_texts_batch(self, texts: Sequence[str]) -> np.ndarray:
        """Encode several texts; row ``i`` belongs to ``texts[i]``."""

        if not texts:
            return np.empty((0, self.dim), dtype=np.float32)
        return np.vstack([self.encode_text(text) for text in texts]).astype(np.float32)

    @staticmethod
    def similarity(vector_a: np.ndarray, vector_b: np.ndarray) -> float:
        """Dot product of two already-normalized vectors.

        Inputs are not re-normalized: the score is only a cosine similarity in
        [-1, 1] when both vectors came out of an encode call.
        """

        a = np.asarray(vector_a, dtype=np.float32).ravel()
        b = np.asarray(vector_b, dtype=np.float32).ravel()
        if a.shape != b.shape:
            raise ValidationError(f"Cannot compare vectors of shape {a.shape} and {b.shape}.")
        return float(np.dot(a, b))

    @staticmethod
    def _normalize(vector: np.ndarray) -> np.ndarray:
        """Normalize embedding vectors to unit length to simplify similarity comparisons."""

        norm = np.linalg.norm(vector)
        if norm == 0:
            return vector.astype(np.float32)
        return (vector / norm).astype(np.float32)

    @staticmethod
    def _normalize_rows(matrix: np.ndarray) -> np.ndarray:
        """Row-wise variant of :meth:`_normalize` for batch outputs."""

        norms = np.linalg.norm(matrix, axis=1, keepdims=True)
        norms[norms == 0] = 1.0
        return (matrix / norms).astype(np.float32)
