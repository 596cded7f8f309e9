# Path: core/search/__init__.py
# Purpose: Package initializer for text-to-image retrieval.
# Layer: core/search.
# Details: Exposes the main search pipeline entrypoint.

from .pipeline import DEFAULT_LIMIT, SearchPipeline

__all__ = ["DEFAULT_LIMIT", "SearchPipeline"]
