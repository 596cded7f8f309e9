# Path: core/indexing/index_builder.py
# Purpose: Ingest image files into the persistence store as media/embedding pairs.
# Layer: core/indexing.
# Details: Coordinates discovery, metadata extraction, embedder usage and transactional persistence with
#          per-file failure isolation and progress reporting.

from __future__ import annotations

import logging
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from pathlib import Path
from typing import Callable, Iterator, List, Optional, Tuple

import numpy as np
from tenacity import RetryCallState, Retrying, retry_if_exception, stop_after_attempt, wait_exponential
from tqdm import tqdm

from core.embedders.base import Embedder
from core.errors import PersistenceError, SemanticGalleryError
from core.models.domain import IngestReport, MediaDetails
from core.vector_store.base import VectorStore
from .media import extract_media_details
from .scanner import DEFAULT_MAX_DEPTH, ImageScanner

logger = logging.getLogger(__name__)

ConfirmCallback = Callable[[int], bool]
ProgressCallback = Callable[[int, int], None]

RETRY_MAX_WAIT = 4.0  # seconds

FileOutcome = Tuple[Path, Optional[uuid.UUID], Optional[SemanticGalleryError]]


def _is_retryable(exc: BaseException) -> bool:
    return isinstance(exc, PersistenceError) and exc.retryable


class IndexBuilder:
    """Turn filesystem paths into persisted media/embedding pairs.

    One file's failure (undecodable image, failed forward pass, failed
    transaction) is logged and counted; the rest of the batch carries on.
    """

    def __init__(
        self,
        embedder: Embedder,
        vector_store: VectorStore,
        workers: int = 1,
        persist_attempts: int = 3,
        retry_wait: float = 0.5,
    ) -> None:
        self.embedder = embedder
        self.vector_store = vector_store
        self.workers = max(1, workers)
        self.persist_attempts = max(1, persist_attempts)
        self.retry_wait = retry_wait

    def ingest(
        self,
        path: Path | str,
        *,
        confirm: ConfirmCallback,
        recursive: bool = False,
        max_depth: int = DEFAULT_MAX_DEPTH,
        progress: bool = True,
        on_progress: Optional[ProgressCallback] = None,
    ) -> IngestReport:
        """
        Ingest a single image or the images found under a directory.

        External calls:
        - core/indexing/scanner.py::ImageScanner.scan - discover candidates (raises on a bad root path).
        - core/embedders/base.py::Embedder.encode_image - create embeddings for each image.
        - core/vector_store/sql_store.py::SqlVectorStore.add_media - persist each pair atomically.

        ``confirm`` receives the candidate count for multi-file batches; a falsy
        answer aborts before anything is written.
        """

        candidates = ImageScanner(path, recursive=recursive, max_depth=max_depth).scan()
        report = IngestReport(total=len(candidates))

        if not candidates:
            logger.info(
                "No images found to ingest",
                extra={"event_type": "ingest_no_candidates", "path": str(path)},
            )
            return report

        if len(candidates) > 1 and not confirm(len(candidates)):
            report.aborted = True
            logger.info(
                "Ingestion declined",
                extra={"event_type": "ingest_declined", "path": str(path), "total": len(candidates)},
            )
            return report

        with tqdm(total=len(candidates), desc="Ingesting images", unit="img", disable=not progress) as bar:
            for file_path, media_id, error in self._process_all(candidates):
                if error is None:
                    report.succeeded += 1
                    report.media_ids.append(media_id)
                else:
                    report.failed += 1
                    report.failures.append((str(file_path), str(error)))
                bar.update(1)
                if on_progress is not None:
                    on_progress(report.processed, report.total)

        logger.info(
            f"Ingestion finished: {report.succeeded} succeeded, {report.failed} failed",
            extra={
                "event_type": "ingest_complete",
                "path": str(path),
                "total": report.total,
                "succeeded": report.succeeded,
                "failed": report.failed,
            },
        )
        return report

    def _process_all(self, candidates: List[Path]) -> Iterator[FileOutcome]:
        if self.workers == 1 or len(candidates) == 1:
            for candidate in candidates:
                yield self._process_isolated(candidate)
            return

        # The embedder is read-only and each file runs its own transaction, so files are independent.
        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="ingest") as executor:
            futures = [executor.submit(self._process_isolated, candidate) for candidate in candidates]
            for future in as_completed(futures):
                yield future.result()

    def _process_isolated(self, file_path: Path) -> FileOutcome:
        try:
            return file_path, self.ingest_file(file_path), None
        except SemanticGalleryError as exc:
            logger.warning(
                f"Failed to ingest {file_path}: {exc}",
                extra={
                    "event_type": "ingest_file_failed",
                    "file_path": str(file_path),
                    "error_type": type(exc).__name__,
                    "error_message": str(exc),
                },
            )
            return file_path, None, exc

    def ingest_file(self, file_path: Path | str) -> uuid.UUID:
        """Extract, embed and persist one file; returns the new media id."""

        details = extract_media_details(file_path)
        vector = self.embedder.encode_image(details.image)
        logger.debug(
            "Generated embedding",
            extra={"event_type": "embedding_generated", "file_path": details.file_path, "dim": int(vector.shape[0])},
        )
        media_id, _ = self._persist(details, vector)
        return media_id

    def _persist(self, details: MediaDetails, vector: np.ndarray) -> Tuple[uuid.UUID, uuid.UUID]:
        # Each attempt is a fresh transaction that draws fresh identifiers.
        retrying = Retrying(
            stop=stop_after_attempt(self.persist_attempts),
            wait=wait_exponential(multiplier=self.retry_wait, max=RETRY_MAX_WAIT),
            retry=retry_if_exception(_is_retryable),
            before_sleep=self._log_retry_attempt,
            reraise=True,
        )
        return retrying(
            self.vector_store.add_media,
            details,
            vector,
            self.embedder.model_name,
            self.embedder.model_version,
        )

    @staticmethod
    def _log_retry_attempt(retry_state: RetryCallState) -> None:
        exception = retry_state.outcome.exception() if retry_state.outcome else None
        logger.warning(
            f"Persistence retry attempt {retry_state.attempt_number} after {type(exception).__name__}",
            extra={
                "event_type": "persist_retry",
                "attempt_number": retry_state.attempt_number,
                "error_type": type(exception).__name__,
                "error_message": str(exception),
            },
        )
