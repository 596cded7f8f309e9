# Path: core/models/domain.py
# Purpose: Define domain models shared across embedding, ingestion and search workflows.
# Layer: core/models.
# Details: Lightweight dataclasses decouple callers from the ORM rows kept in core/vector_store.

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

import numpy as np
from PIL import Image


@dataclass
class MediaDetails:
    """Everything extracted from one file before it is embedded."""

    image: Image.Image
    filename: str
    file_path: str
    file_size_bytes: int
    width: int
    height: int
    content_type: str
    metadata: Optional[Dict[str, Any]] = None


@dataclass
class MediaAsset:
    """One ingested file as stored in the media table."""

    id: uuid.UUID
    filename: str
    file_path: str
    file_size_bytes: int
    width: int
    height: int
    content_type: str
    metadata: Optional[Dict[str, Any]] = None
    created_at: Optional[datetime] = None


@dataclass
class EmbeddingRecord:
    """Vector produced for one media asset by a specific model version."""

    id: uuid.UUID
    media_id: uuid.UUID
    model_name: str
    model_version: str
    vector: np.ndarray
    created_at: Optional[datetime] = None

    @property
    def dim(self) -> int:
        return int(self.vector.shape[0])


@dataclass
class SearchResult:
    """Search result item combining the similarity score with media references."""

    id: uuid.UUID
    filename: str
    file_path: str
    similarity: float

    @property
    def percentage(self) -> float:
        """Similarity scaled by 100 for display; negative for dissimilar matches."""

        return self.similarity * 100.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": str(self.id),
            "filename": self.filename,
            "file_path": self.file_path,
            "similarity": self.similarity,
        }


@dataclass
class IngestReport:
    """Outcome of one ingestion call."""

    total: int = 0
    succeeded: int = 0
    failed: int = 0
    aborted: bool = False
    failures: List[Tuple[str, str]] = field(default_factory=list)
    media_ids: List[uuid.UUID] = field(default_factory=list)

    @property
    def processed(self) -> int:
        return self.succeeded + self.failed

    def to_dict(self) -> Dict[str, Any]:
        return {
            "total": self.total,
            "processed": self.processed,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "aborted": self.aborted,
            "failures": [{"file_path": path, "error": error} for path, error in self.failures],
            "media_ids": [str(media_id) for media_id in self.media_ids],
        }
