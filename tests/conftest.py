"""Pytest fixtures and helpers shared by the test suite.

Provides:
1. ``HashEmbedder``: a deterministic, model-free ``Embedder`` for pipeline tests
2. A SQLite-backed ``SqlVectorStore`` per test
3. Factories that write real (or deliberately corrupt) image files
"""
import hashlib
import uuid
from pathlib import Path
from typing import Dict, Iterable, Optional

import numpy as np
import pytest
from PIL import Image

from core.embedders.base import Embedder, open_image
from core.errors import InferenceError
from core.models.domain import MediaDetails
from core.vector_store.sql_store import SqlVectorStore

TEST_DIM = 16


def unit(values: Iterable[float]) -> np.ndarray:
    """Normalize ``values`` into a float32 unit vector."""
    vector = np.asarray(list(values), dtype=np.float32)
    return (vector / np.linalg.norm(vector)).astype(np.float32)


def basis(index: int, dim: int = TEST_DIM) -> np.ndarray:
    vector = np.zeros(dim, dtype=np.float32)
    vector[index] = 1.0
    return vector


class HashEmbedder(Embedder):
    """Deterministic stand-in for CLIP: hashes pixels or text into unit vectors.

    ``text_vectors`` pins the embedding returned for specific query strings;
    images whose filename is in ``fail_on`` raise ``InferenceError``.
    """

    def __init__(
        self,
        dim: int = TEST_DIM,
        model_name: str = "test-clip",
        model_version: str = "v1",
        text_vectors: Optional[Dict[str, np.ndarray]] = None,
        fail_on: Iterable[str] = (),
    ) -> None:
        self.name = "hash"
        self.dim = dim
        self.model_name = model_name
        self.model_version = model_version
        self.text_vectors = text_vectors or {}
        self.fail_on = set(fail_on)
        self.text_calls = 0

    def _from_bytes(self, payload: bytes) -> np.ndarray:
        digest = hashlib.sha256(payload).digest()
        expanded = np.frombuffer(digest * (self.dim // len(digest) + 1), dtype=np.uint8)
        return self._normalize(expanded[: self.dim].astype(np.float32) - 127.5)

    def encode_image(self, image) -> np.ndarray:
        decoded = open_image(image)
        filename = Path(getattr(decoded, "filename", "") or "").name
        if filename in self.fail_on:
            raise InferenceError(f"forced failure for {filename}")
        return self._from_bytes(decoded.convert("RGB").resize((8, 8)).tobytes())

    def encode_text(self, text: str) -> np.ndarray:
        self.text_calls += 1
        if text in self.text_vectors:
            return self._normalize(np.asarray(self.text_vectors[text], dtype=np.float32))
        return self._from_bytes(text.encode("utf-8"))


def write_image(
    path: Path,
    color=(200, 30, 30),
    size=(32, 24),
    mode: str = "RGB",
    image_format: Optional[str] = None,
) -> Path:
    """Save a solid-colour image to ``path`` and return the path."""
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new(mode, size, color).save(path, format=image_format)
    return path


def write_corrupt(path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(b"this is not an image")
    return path


def make_details(name: str = "photo.png", size=(40, 30), content_type: str = "image/png") -> MediaDetails:
    """Build MediaDetails without touching the filesystem."""
    return MediaDetails(
        image=Image.new("RGB", size, (10, 20, 30)),
        filename=name,
        file_path=f"/gallery/{uuid.uuid4().hex}/{name}",
        file_size_bytes=1234,
        width=size[0],
        height=size[1],
        content_type=content_type,
    )


@pytest.fixture
def embedder():
    return HashEmbedder()


@pytest.fixture
def store(tmp_path):
    """SQLite-backed store with the schema created."""
    vector_store = SqlVectorStore(f"sqlite:///{tmp_path / 'gallery.db'}", dim=TEST_DIM, pool_timeout=2.0)
    vector_store.initialize_schema()
    yield vector_store
    vector_store.close()


@pytest.fixture
def image_dir(tmp_path):
    """Directory with three distinct valid images."""
    root = tmp_path / "images"
    write_image(root / "red.jpg", color=(220, 20, 20))
    write_image(root / "green.png", color=(20, 220, 20))
    write_image(root / "blue.bmp", color=(20, 20, 220))
    return root
