# Path: core/vector_store/sql_store.py
# Purpose: Provide the relational vector store used by ingestion and search.
# Layer: core/vector_store.
# Details: SQLAlchemy engine with a bounded connection pool; PostgreSQL ranks with pgvector's inner-product
#          operator, other dialects rank the filtered vectors with numpy.

from __future__ import annotations

import logging
import threading
import uuid
from contextlib import contextmanager, nullcontext
from typing import TYPE_CHECKING, Any, ContextManager, Dict, Iterator, List, Optional, Tuple

import numpy as np
from pgvector.sqlalchemy import Vector
from sqlalchemy import Float, Select, bindparam, create_engine, event, func, select, text
from sqlalchemy import exc as sa_exc
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import QueuePool, StaticPool

from core.errors import PersistenceError, PoolTimeoutError, ValidationError
from core.models.domain import EmbeddingRecord, MediaAsset, MediaDetails, SearchResult
from .base import VectorStore
from .schema import EmbeddingRow, MediaRow, metadata_for_dimension

if TYPE_CHECKING:
    from config.settings import DatabaseSettings

logger = logging.getLogger(__name__)


# SQLSTATE prefixes of PostgreSQL failures worth another attempt: connection exceptions,
# serialization failures, deadlocks and operator intervention such as a server restart.
TRANSIENT_SQLSTATES = ("08", "40001", "40P01", "57P")
# Driver messages of transient faults that carry no SQLSTATE.
TRANSIENT_MESSAGES = (
    "database is locked",
    "database table is locked",
    "could not connect",
    "connection refused",
    "connection reset",
    "server closed the connection",
    "terminating connection",
    "timeout expired",
    "timed out",
)


def _is_transient(exc: sa_exc.DBAPIError) -> bool:
    if exc.connection_invalidated:
        return True
    sqlstate = getattr(exc.orig, "pgcode", None)
    if sqlstate:
        return sqlstate.startswith(TRANSIENT_SQLSTATES)
    message = str(exc.orig).lower()
    return any(marker in message for marker in TRANSIENT_MESSAGES)


def translate_db_error(exc: sa_exc.SQLAlchemyError) -> PersistenceError:
    """Map a SQLAlchemy failure onto the persistence error kinds.

    Only faults that can clear up on their own are retryable; schema or data
    errors such as a missing table are not.
    """

    if isinstance(exc, sa_exc.TimeoutError):
        return PoolTimeoutError(f"Timed out waiting for a database connection: {exc}")
    if isinstance(exc, (sa_exc.InterfaceError, sa_exc.DisconnectionError)):
        return PersistenceError(f"Database connection problem: {exc}", retryable=True)
    if isinstance(exc, sa_exc.DBAPIError) and _is_transient(exc):
        return PersistenceError(f"Transient database failure: {exc}", retryable=True)
    return PersistenceError(f"Database operation failed: {exc}", retryable=False)


class SqlVectorStore(VectorStore):
    """Vector store over a relational database reached through a bounded connection pool.

    Every write goes through a transaction scoped to one media/embedding pair,
    so readers never observe one row without the other.
    """

    def __init__(
        self,
        url: str,
        dim: int,
        pool_size: int = 5,
        max_overflow: int = 0,
        pool_timeout: float = 10.0,
        connect_timeout: int = 5,
        echo: bool = False,
        name: str = "pgvector",
    ) -> None:
        self.dim = dim
        self.name = name
        self.engine = self._create_engine(url, pool_size, max_overflow, pool_timeout, connect_timeout, echo)
        self._sessions = sessionmaker(bind=self.engine, autoflush=False, expire_on_commit=False)
        # StaticPool hands every thread the same DBAPI connection, so transactions on it must take turns.
        self._shared_connection = isinstance(self.engine.pool, StaticPool)
        self._connection_lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: "DatabaseSettings", dim: int) -> "SqlVectorStore":
        return cls(
            url=settings.sqlalchemy_url,
            dim=dim,
            pool_size=settings.pool_size,
            max_overflow=settings.max_overflow,
            pool_timeout=settings.pool_timeout,
            connect_timeout=settings.connect_timeout,
            echo=settings.echo,
        )

    @staticmethod
    def _create_engine(
        url: str,
        pool_size: int,
        max_overflow: int,
        pool_timeout: float,
        connect_timeout: int,
        echo: bool,
    ) -> Engine:
        parsed = make_url(url)
        kwargs: Dict[str, Any] = {"echo": echo}

        if parsed.get_backend_name() == "sqlite":
            kwargs["connect_args"] = {"check_same_thread": False, "timeout": connect_timeout}
            if parsed.database in (None, "", ":memory:"):
                # One shared connection, otherwise every checkout sees an empty database.
                kwargs["poolclass"] = StaticPool
            else:
                kwargs.update(
                    poolclass=QueuePool,
                    pool_size=pool_size,
                    max_overflow=max_overflow,
                    pool_timeout=pool_timeout,
                )
        else:
            kwargs.update(
                poolclass=QueuePool,
                pool_size=pool_size,
                max_overflow=max_overflow,
                pool_timeout=pool_timeout,
                pool_pre_ping=True,
            )
            if parsed.get_backend_name() == "postgresql":
                kwargs["connect_args"] = {"connect_timeout": connect_timeout}

        engine = create_engine(parsed, **kwargs)

        if parsed.get_backend_name() == "sqlite":
            @event.listens_for(engine, "connect")
            def _enable_foreign_keys(dbapi_connection, connection_record):
                cursor = dbapi_connection.cursor()
                cursor.execute("PRAGMA foreign_keys=ON")
                cursor.close()

        return engine

    @property
    def uses_pgvector(self) -> bool:
        return self.engine.dialect.name == "postgresql"

    def _exclusive(self) -> ContextManager[Any]:
        return self._connection_lock if self._shared_connection else nullcontext()

    @contextmanager
    def _transaction(self) -> Iterator[Session]:
        """Session committed on success and rolled back on any failure."""

        with self._exclusive():
            try:
                with self._sessions.begin() as session:
                    yield session
            except sa_exc.SQLAlchemyError as exc:
                raise translate_db_error(exc) from exc

    def _check_vector(self, vector: np.ndarray) -> np.ndarray:
        array = np.asarray(vector, dtype=np.float32).ravel()
        if array.shape[0] != self.dim:
            raise ValidationError(f"Vector dimensionality {array.shape[0]} does not match store dimension {self.dim}.")
        return array

    def initialize_schema(self) -> None:
        try:
            with self._exclusive():
                if self.uses_pgvector:
                    with self.engine.begin() as connection:
                        connection.execute(text("CREATE EXTENSION IF NOT EXISTS vector"))
                metadata_for_dimension(self.dim).create_all(self.engine)
        except sa_exc.SQLAlchemyError as exc:
            raise translate_db_error(exc) from exc
        logger.info(
            "Database schema ready",
            extra={"event_type": "schema_initialized", "dialect": self.engine.dialect.name},
        )

    def check_connection(self) -> None:
        try:
            with self._exclusive(), self.engine.connect() as connection:
                connection.execute(text("SELECT 1"))
        except sa_exc.SQLAlchemyError as exc:
            raise translate_db_error(exc) from exc

    def add_media(
        self,
        details: MediaDetails,
        vector: np.ndarray,
        model_name: str,
        model_version: str,
    ) -> Tuple[uuid.UUID, uuid.UUID]:
        """Insert the media row, then its embedding, in one transaction."""

        vector = self._check_vector(vector)
        with self._transaction() as session:
            media_id = uuid.uuid4()
            embedding_id = uuid.uuid4()
            session.add(
                MediaRow(
                    id=media_id,
                    filename=details.filename,
                    content_type=details.content_type,
                    file_path=details.file_path,
                    file_size=details.file_size_bytes,
                    width=details.width,
                    height=details.height,
                    metadata_json=details.metadata,
                )
            )
            # The embedding row references the media row, which must exist first.
            session.flush()
            session.add(
                EmbeddingRow(
                    id=embedding_id,
                    media_id=media_id,
                    model_name=model_name,
                    model_version=model_version,
                    vector=vector,
                )
            )
            session.flush()

        logger.info(
            "Saved media and embedding",
            extra={
                "event_type": "media_saved",
                "media_id": str(media_id),
                "embedding_id": str(embedding_id),
                "file_path": details.file_path,
            },
        )
        return media_id, embedding_id

    def search(self, query: np.ndarray, k: int, model_name: str, model_version: str) -> List[SearchResult]:
        if k <= 0:
            raise ValidationError(f"k must be positive, got {k}.")
        query = self._check_vector(query)

        with self._transaction() as session:
            if self.uses_pgvector:
                return self._rank_in_database(session, query, k, model_name, model_version)
            return self._rank_in_memory(session, query, k, model_name, model_version)

    def _ranking_statement(self, query: np.ndarray, k: int, model_name: str, model_version: str) -> Select:
        """pgvector query returning the ``k`` best matches with their similarity."""

        # <#> is pgvector's negative inner product; ascending distance is descending similarity.
        distance = EmbeddingRow.vector.op("<#>", return_type=Float)(
            bindparam("query_vector", query, type_=Vector(self.dim))
        )
        return (
            select(MediaRow.id, MediaRow.filename, MediaRow.file_path, (distance * -1).label("similarity"))
            .join(EmbeddingRow, EmbeddingRow.media_id == MediaRow.id)
            .where(EmbeddingRow.model_name == model_name, EmbeddingRow.model_version == model_version)
            .order_by(distance.asc(), EmbeddingRow.created_at.asc())
            .limit(k)
        )

    def _rank_in_database(
        self, session: Session, query: np.ndarray, k: int, model_name: str, model_version: str
    ) -> List[SearchResult]:
        statement = self._ranking_statement(query, k, model_name, model_version)
        return [
            SearchResult(id=row.id, filename=row.filename, file_path=row.file_path, similarity=float(row.similarity))
            for row in session.execute(statement)
        ]

    def _rank_in_memory(
        self, session: Session, query: np.ndarray, k: int, model_name: str, model_version: str
    ) -> List[SearchResult]:
        statement = (
            select(MediaRow.id, MediaRow.filename, MediaRow.file_path, EmbeddingRow.vector)
            .join(EmbeddingRow, EmbeddingRow.media_id == MediaRow.id)
            .where(EmbeddingRow.model_name == model_name, EmbeddingRow.model_version == model_version)
            .order_by(EmbeddingRow.created_at.asc())
        )
        rows = session.execute(statement).all()
        if not rows:
            return []

        matrix = np.vstack([row.vector for row in rows]).astype(np.float32)
        scores = matrix @ query
        # Stable sort keeps insertion order among equal scores.
        ranked = np.argsort(-scores, kind="stable")[:k]
        return [
            SearchResult(
                id=rows[idx].id,
                filename=rows[idx].filename,
                file_path=rows[idx].file_path,
                similarity=float(scores[idx]),
            )
            for idx in ranked
        ]

    def get_media(self, media_id: uuid.UUID) -> Optional[MediaAsset]:
        with self._transaction() as session:
            row = session.get(MediaRow, media_id)
            return row.to_domain() if row is not None else None

    def list_embeddings(self, media_id: uuid.UUID) -> List[EmbeddingRecord]:
        with self._transaction() as session:
            rows = session.scalars(
                select(EmbeddingRow).where(EmbeddingRow.media_id == media_id).order_by(EmbeddingRow.created_at.asc())
            )
            return [row.to_domain() for row in rows]

    def count_media(self) -> int:
        with self._transaction() as session:
            return int(session.scalar(select(func.count()).select_from(MediaRow)) or 0)

    def count_embeddings(self) -> int:
        with self._transaction() as session:
            return int(session.scalar(select(func.count()).select_from(EmbeddingRow)) or 0)

    def close(self) -> None:
        self.engine.dispose()
