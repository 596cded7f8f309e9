# Path: core/context.py
# Purpose: Bundle the shared resources built once at startup and expose the caller-facing operations.
# Layer: core.
# Details: Passed explicitly to the CLI scripts and the HTTP API; nothing here is a module-level global.

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional

from config.settings import AppSettings
from core.embedders.base import Embedder
from core.embedders.clip_embedder import ClipEmbedder
from core.indexing.index_builder import ConfirmCallback, IndexBuilder
from core.models.domain import IngestReport, SearchResult
from core.search.pipeline import DEFAULT_LIMIT, SearchPipeline
from core.vector_store.base import VectorStore
from core.vector_store.sql_store import SqlVectorStore

logger = logging.getLogger(__name__)


def _always_confirm(count: int) -> bool:
    return True


@dataclass
class AppContext:
    """Application state shared by every ingestion and retrieval call.

    The embedder is read-only after load and the store owns the only mutable
    shared resource (its connection pool), so one context serves concurrent callers.
    """

    settings: AppSettings
    embedder: Embedder
    vector_store: VectorStore
    index_builder: IndexBuilder = field(init=False)
    search_pipeline: SearchPipeline = field(init=False)

    def __post_init__(self) -> None:
        self.index_builder = IndexBuilder(
            self.embedder,
            self.vector_store,
            workers=self.settings.ingestion.workers,
            persist_attempts=self.settings.ingestion.persist_attempts,
        )
        self.search_pipeline = SearchPipeline(self.embedder, self.vector_store)

    @classmethod
    def create(cls, settings: AppSettings) -> "AppContext":
        """Validate settings, connect to the store, prepare the schema and load the model."""

        settings.validate_startup()

        vector_store = SqlVectorStore.from_settings(settings.database, dim=settings.embedder.dimension)
        try:
            vector_store.check_connection()
            vector_store.initialize_schema()
            embedder = ClipEmbedder.from_settings(settings.embedder)
        except Exception:
            vector_store.close()
            raise

        logger.info(
            "Application context ready",
            extra={
                "event_type": "context_ready",
                "model_name": embedder.model_name,
                "model_version": embedder.model_version,
            },
        )
        return cls(settings=settings, embedder=embedder, vector_store=vector_store)

    def ingest(
        self,
        path: Path | str,
        recursive: bool = False,
        max_depth: Optional[int] = None,
        confirm: ConfirmCallback = _always_confirm,
        progress: bool = True,
    ) -> IngestReport:
        """Ingest ``path``; per-file failures are counted in the report, not raised."""

        return self.index_builder.ingest(
            path,
            confirm=confirm,
            recursive=recursive,
            max_depth=self.settings.ingestion.max_depth if max_depth is None else max_depth,
            progress=progress,
        )

    def search(self, query_text: str, limit: int = DEFAULT_LIMIT) -> List[SearchResult]:
        return self.search_pipeline.search(query_text, limit=limit)

    def close(self) -> None:
        self.vector_store.close()
