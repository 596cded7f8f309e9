# Path: core/vector_store/schema.py
# Purpose: Declare the media and embeddings tables backing the persistence store.
# Layer: core/vector_store.
# Details: The vector column is a pgvector VECTOR on PostgreSQL and a JSON array elsewhere (SQLite for development);
#          tables are created from a copy whose vector column carries the configured dimension.

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

import numpy as np
from pgvector.sqlalchemy import Vector
from sqlalchemy import JSON, BigInteger, Column, DateTime, ForeignKey, Index, Integer, MetaData, String, Text, Uuid
from sqlalchemy.engine import Dialect
from sqlalchemy.orm import declarative_base, relationship
from sqlalchemy.types import TypeDecorator

from core.models.domain import EmbeddingRecord, MediaAsset

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VectorType(TypeDecorator):
    """Float32 vector column portable between PostgreSQL (pgvector) and other dialects."""

    impl = Text
    cache_ok = True

    def __init__(self, dim: Optional[int] = None) -> None:
        super().__init__()
        self.dim = dim

    def load_dialect_impl(self, dialect: Dialect):
        if dialect.name == "postgresql":
            return dialect.type_descriptor(Vector(self.dim))
        return dialect.type_descriptor(Text())

    def process_bind_param(self, value: Any, dialect: Dialect) -> Any:
        if value is None:
            return None
        array = np.asarray(value, dtype=np.float32)
        if dialect.name == "postgresql":
            # pgvector's own bind processor serializes the array.
            return array
        return json.dumps(array.tolist())

    def process_result_value(self, value: Any, dialect: Dialect) -> Optional[np.ndarray]:
        if value is None:
            return None
        if isinstance(value, str):
            value = json.loads(value)
        return np.asarray(value, dtype=np.float32)


class MediaRow(Base):
    """One ingested file."""

    __tablename__ = "media"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    filename = Column(String(512), nullable=False)
    content_type = Column(String(128), nullable=False)
    file_path = Column(Text, nullable=False, index=True)
    file_size = Column(BigInteger, nullable=False)
    width = Column(Integer, nullable=False)
    height = Column(Integer, nullable=False)
    # "metadata" is reserved on declarative classes.
    metadata_json = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    embeddings = relationship("EmbeddingRow", back_populates="media", passive_deletes=True)

    def to_domain(self) -> MediaAsset:
        return MediaAsset(
            id=self.id,
            filename=self.filename,
            file_path=self.file_path,
            file_size_bytes=self.file_size,
            width=self.width,
            height=self.height,
            content_type=self.content_type,
            metadata=self.metadata_json,
            created_at=self.created_at,
        )

    def __repr__(self) -> str:
        return f"<MediaRow(id={self.id}, filename={self.filename!r})>"


class EmbeddingRow(Base):
    """Vector for one media row produced by one model version."""

    __tablename__ = "embeddings"

    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    media_id = Column(
        Uuid(as_uuid=True),
        ForeignKey("media.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    model_name = Column(String(128), nullable=False)
    model_version = Column(String(64), nullable=False)
    vector = Column("embedding", VectorType(), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, default=_utcnow)

    media = relationship("MediaRow", back_populates="embeddings")

    __table_args__ = (
        Index("idx_embeddings_model", "model_name", "model_version"),
    )

    def to_domain(self) -> EmbeddingRecord:
        return EmbeddingRecord(
            id=self.id,
            media_id=self.media_id,
            model_name=self.model_name,
            model_version=self.model_version,
            vector=np.asarray(self.vector, dtype=np.float32),
            created_at=self.created_at,
        )

    def __repr__(self) -> str:
        return (
            f"<EmbeddingRow(id={self.id}, media_id={self.media_id}, "
            f"model={self.model_name}/{self.model_version})>"
        )


def metadata_for_dimension(dim: int) -> MetaData:
    """Copy of the ORM tables with the vector column fixed at ``dim`` for DDL."""

    metadata = MetaData()
    for table in Base.metadata.sorted_tables:
        table.to_metadata(metadata)
    metadata.tables[EmbeddingRow.__tablename__].c.embedding.type = VectorType(dim)
    return metadata


__all__ = ["Base", "EmbeddingRow", "MediaRow", "VectorType", "metadata_for_dimension"]
