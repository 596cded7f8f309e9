# Path: core/vector_store/base.py
# Purpose: Define the VectorStore interface for persisting media/embedding pairs and ranking them.
# Layer: core/vector_store.
# Details: Any backend offering transactional multi-statement writes plus vector-ranked queries can implement it.

from __future__ import annotations

import uuid
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple

import numpy as np

from core.models.domain import EmbeddingRecord, MediaAsset, MediaDetails, SearchResult


class VectorStore(ABC):
    """Abstract base class for pluggable persistence backends."""

    name: str
    dim: int

    @abstractmethod
    def initialize_schema(self) -> None:
        """Create tables (and extensions) the store needs if they do not exist."""

    @abstractmethod
    def check_connection(self) -> None:
        """Round-trip a trivial statement; raise ``PersistenceError`` when unreachable."""

    @abstractmethod
    def add_media(
        self,
        details: MediaDetails,
        vector: np.ndarray,
        model_name: str,
        model_version: str,
    ) -> Tuple[uuid.UUID, uuid.UUID]:
        """Persist a media row and its embedding atomically; return ``(media_id, embedding_id)``."""

    @abstractmethod
    def search(self, query: np.ndarray, k: int, model_name: str, model_version: str) -> List[SearchResult]:
        """Return up to ``k`` media ranked by descending similarity to ``query``.

        Only embeddings produced by ``model_name``/``model_version`` are scored.
        """

    @abstractmethod
    def get_media(self, media_id: uuid.UUID) -> Optional[MediaAsset]:
        """Return stored media metadata for the given identifier if available."""

    @abstractmethod
    def list_embeddings(self, media_id: uuid.UUID) -> List[EmbeddingRecord]:
        """Return every embedding stored for a media row, oldest first."""

    @abstractmethod
    def count_media(self) -> int:
        """Number of media rows."""

    @abstractmethod
    def count_embeddings(self) -> int:
        """Number of embedding rows."""

    def close(self) -> None:
        """Release pooled resources."""
