# Path: api/app.py
# Purpose: Expose a FastAPI application for ingestion and text-to-image search.
# Layer: api.
# Details: Thin transport over AppContext; maps core error kinds onto HTTP status codes.

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from pydantic import BaseModel, Field

from core.errors import DecodeError, InferenceError, PersistenceError, ValidationError
from core.search.pipeline import DEFAULT_LIMIT

if TYPE_CHECKING:
    from core.context import AppContext

logger = logging.getLogger(__name__)


class SearchRequest(BaseModel):
    query: str = Field(description="Free-text description of the images to find.")
    limit: int = Field(default=DEFAULT_LIMIT, description="Maximum number of results.")


class IngestRequest(BaseModel):
    path: str = Field(description="Image file or directory visible to the server.")
    recursive: bool = Field(default=False, description="Descend into subdirectories.")
    max_depth: Optional[int] = Field(default=None, description="Deepest directory level visited when recursing.")


def create_app(context: Optional["AppContext"] = None):
    """Create a FastAPI app instance serving the provided application context."""

    from fastapi import FastAPI, HTTPException

    app = FastAPI(title="Semantic Gallery API", version="0.1.0")

    def require_context() -> "AppContext":
        if context is None:
            raise HTTPException(status_code=500, detail="Application context is not configured.")
        return context

    def to_http_error(exc: Exception) -> HTTPException:
        if isinstance(exc, ValidationError):
            return HTTPException(status_code=422, detail=str(exc))
        if isinstance(exc, PersistenceError) and exc.retryable:
            return HTTPException(status_code=503, detail=str(exc))
        return HTTPException(status_code=500, detail=str(exc))

    @app.get("/health")
    def health() -> Dict[str, str]:
        """Return a simple health status payload."""

        return {"status": "ok"}

    @app.post("/search")
    def search(payload: SearchRequest) -> Dict[str, Any]:
        """Rank stored media against the query text."""

        ctx = require_context()
        try:
            results = ctx.search(payload.query, limit=payload.limit)
        except (ValidationError, InferenceError, PersistenceError) as exc:
            logger.warning(
                f"Search failed: {exc}",
                extra={"event_type": "api_search_failed", "error_type": type(exc).__name__},
            )
            raise to_http_error(exc) from exc
        return {
            "query": payload.query,
            "count": len(results),
            "results": [result.to_dict() for result in results],
        }

    @app.post("/ingest")
    def ingest(payload: IngestRequest) -> Dict[str, Any]:
        """Ingest a file or directory; the request itself is the confirmation."""

        ctx = require_context()
        try:
            report = ctx.ingest(
                payload.path,
                recursive=payload.recursive,
                max_depth=payload.max_depth,
                progress=False,
            )
        except ValidationError as exc:
            raise HTTPException(status_code=400, detail=str(exc)) from exc
        except (DecodeError, InferenceError, PersistenceError) as exc:
            raise to_http_error(exc) from exc
        return report.to_dict()

    return app
