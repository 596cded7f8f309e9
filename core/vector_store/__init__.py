# Path: core/vector_store/__init__.py
# Purpose: Package initializer for vector store interfaces and implementations.
# Layer: core/vector_store.
# Details: Exposes the base vector store contract, the ORM schema and the SQLAlchemy/pgvector store.

from .base import VectorStore
from .schema import Base, EmbeddingRow, MediaRow, VectorType, metadata_for_dimension
from .sql_store import SqlVectorStore, translate_db_error

__all__ = [
    "Base",
    "EmbeddingRow",
    "MediaRow",
    "SqlVectorStore",
    "VectorStore",
    "VectorType",
    "metadata_for_dimension",
    "translate_db_error",
]
