# Path: core/search/pipeline.py
# Purpose: Answer free-text queries with the stored media most similar to them.
# Layer: core/search.
# Details: Encodes the query with the embedder then delegates ranking to the configured vector store.

from __future__ import annotations

import logging
from typing import List

from core.embedders.base import Embedder
from core.errors import ValidationError
from core.models.domain import SearchResult
from core.vector_store.base import VectorStore

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 10


class SearchPipeline:
    """High-level service bridging CLI/API layers with the embedder and vector store."""

    def __init__(self, embedder: Embedder, vector_store: VectorStore) -> None:
        self.embedder = embedder
        self.vector_store = vector_store

    def search(self, query_text: str, limit: int = DEFAULT_LIMIT) -> List[SearchResult]:
        """
        Return up to ``limit`` media ordered by descending similarity to ``query_text``.

        External calls:
        - core/embedders/base.py::Embedder.encode_text - constructs the query embedding.
        - core/vector_store/sql_store.py::SqlVectorStore.search - ranks embeddings of the live model version.

        An empty list means nothing matched or nothing has been ingested yet.
        Any failure aborts the whole request; partial results are never returned.
        """

        if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
            raise ValidationError(f"limit must be a positive integer, got {limit!r}.")
        if not isinstance(query_text, str):
            raise ValidationError("query_text must be a string.")

        query_vector = self.embedder.encode_text(query_text)
        results = self.vector_store.search(
            query_vector,
            k=limit,
            model_name=self.embedder.model_name,
            model_version=self.embedder.model_version,
        )

        logger.info(
            "Search completed",
            extra={"event_type": "search_complete", "limit": limit, "result_count": len(results)},
        )
        return results
