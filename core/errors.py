# Path: core/errors.py
# Purpose: Define the error kinds raised by the embedding, ingestion and retrieval layers.
# Layer: core.
# Details: Library exceptions are translated into these at the seam where they occur.

from __future__ import annotations


class SemanticGalleryError(Exception):
    """Base class for all errors raised by the core."""


class ArtifactError(SemanticGalleryError):
    """Model weights or tokenizer are missing, malformed or incompatible with configuration.

    Fatal at startup; never retried.
    """


class DecodeError(SemanticGalleryError):
    """Input could not be decoded into a raster image."""


class InferenceError(SemanticGalleryError):
    """A forward pass failed or produced unusable output for one input."""


class PersistenceError(SemanticGalleryError):
    """A transaction or connection against the persistence store failed.

    Attributes:
        retryable: True for transient connectivity problems worth another attempt.
    """

    def __init__(self, message: str, retryable: bool = False) -> None:
        super().__init__(message)
        self.retryable = retryable


class PoolTimeoutError(PersistenceError):
    """No pooled connection became available within the configured timeout."""

    def __init__(self, message: str) -> None:
        super().__init__(message, retryable=True)


class ValidationError(SemanticGalleryError):
    """Caller input or configuration was rejected before any work was attempted."""


__all__ = [
    "ArtifactError",
    "DecodeError",
    "InferenceError",
    "PersistenceError",
    "PoolTimeoutError",
    "SemanticGalleryError",
    "ValidationError",
]
