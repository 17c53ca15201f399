"""Capture session controller: owns the live session and drains its queue.

The controller holds the current ``CaptureSession`` snapshot, applies the
pure transitions from ``courierbill.domain.capture`` under a lock, and
persists every new snapshot under the ``capture_session`` key of the
record file. ``process_queue`` is one explicit loop that re-reads the
snapshot on every iteration, so chunks queued while a drain is running are
picked up by that same drain.
"""

from __future__ import annotations

import asyncio
import threading
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime
from typing import Literal

from courierbill.document.parse_result import ParseResult, build_manifest
from courierbill.document.payload import session_from_dict, session_to_dict
from courierbill.domain.capture import (
    AI_MODES,
    AiMode,
    CaptureSession,
    Chunk,
    Page,
    begin_processing,
    capture_page,
    complete,
    finish_chunk,
    new_session,
    recover_interrupted,
    record_failure,
    record_success,
    request_pause,
    stop_paused,
    with_status,
)
from courierbill.runtime.document_service import DEFAULT_INSTRUCTION, DocumentParser, DocumentServiceError
from courierbill.runtime.logging import get_logger
from courierbill.runtime.record_store import ManifestRecordStore
from courierbill.runtime.settings import DEFAULT_INTER_CHUNK_DELAY

logger = get_logger(__name__)

SESSION_KEY = "capture_session"

CloseStatus = Literal["closed", "pending_work"]


class CaptureSessionError(RuntimeError):
    """Raised when an operation needs a session that does not exist or conflicts with a running drain."""


@dataclass(frozen=True)
class CloseResult:
    status: CloseStatus
    session: CaptureSession
    message: str


def session_folder_name(now: datetime) -> str:
    return now.strftime("Session_%Y-%m-%d_%H-%M-%S")


class CaptureSessionController:
    """The single capture session of this process."""

    def __init__(
        self,
        store: ManifestRecordStore,
        parser: DocumentParser,
        *,
        inter_chunk_delay: float = DEFAULT_INTER_CHUNK_DELAY,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.store = store
        self.parser = parser
        self.inter_chunk_delay = inter_chunk_delay
        self.clock = clock or store.clock
        self._lock = threading.RLock()
        self._draining = False
        self._session = self._load()

    def _load(self) -> CaptureSession | None:
        data = self.store.kv.get(SESSION_KEY)
        if data is None:
            return None
        session = session_from_dict(data)
        if session.is_processing:
            logger.warning("Capture session %s was interrupted mid-drain; resetting", session.id)
            session = recover_interrupted(session)
            self.store.kv.put(SESSION_KEY, session_to_dict(session))
        return session

    def _commit(self, session: CaptureSession) -> CaptureSession:
        with self._lock:
            self.store.kv.put(SESSION_KEY, session_to_dict(session))
            self._session = session
        return session

    def _require(self) -> CaptureSession:
        if self._session is None:
            raise CaptureSessionError("No active capture session")
        return self._session

    @property
    def is_draining(self) -> bool:
        return self._draining

    def session(self) -> CaptureSession | None:
        with self._lock:
            return self._session

    # --- operator actions -------------------------------------------------

    def start(self, ai_mode: AiMode = "default") -> CaptureSession:
        """Create a session folder and a fresh session, replacing any prior one."""
        if ai_mode not in AI_MODES:
            raise ValueError(f"Unknown AI mode: {ai_mode}")
        with self._lock:
            if self._draining:
                raise CaptureSessionError("Cannot start a new session while processing is running")
            if self._session is not None and self._session.pending_chunks:
                logger.warning(
                    "Replacing session %s with %d unprocessed chunk(s)",
                    self._session.id,
                    len(self._session.pending_chunks),
                )
            folder = self.store.create_folder(session_folder_name(self.clock()))
            session = new_session(str(uuid.uuid4()), folder.id, folder.name, ai_mode)
            self._commit(session)
        logger.info("Started capture session %s in folder %s (%s mode)", session.id, folder.name, ai_mode)
        return session

    def capture_page(self, page: Page) -> CaptureSession:
        with self._lock:
            return self._commit(capture_page(self._require(), page, str(uuid.uuid4())))

    def finish_chunk(self) -> CaptureSession:
        with self._lock:
            return self._commit(finish_chunk(self._require(), str(uuid.uuid4())))

    def pause(self) -> CaptureSession:
        with self._lock:
            return self._commit(request_pause(self._require()))

    def close(self) -> CloseResult:
        """Report whether closing would leave work behind; the session stays persisted."""
        with self._lock:
            session = self._require()
        pending = len(session.pending_chunks) + (1 if session.current_chunk else 0)
        if pending:
            return CloseResult(
                status="pending_work",
                session=session,
                message=f"{pending} manifest(s) are not processed yet. They stay queued for this session.",
            )
        return CloseResult(status="closed", session=session, message="Session closed.")

    def clear(self) -> None:
        """Drop the session record entirely."""
        with self._lock:
            if self._draining:
                raise CaptureSessionError("Cannot clear the session while processing is running")
            self.store.kv.delete(SESSION_KEY)
            self._session = None
        logger.info("Cleared capture session")

    # --- processing -------------------------------------------------------

    def _set_status(self, message: str) -> None:
        with self._lock:
            self._commit(with_status(self._require(), message))

    def _progress(self, message: str) -> None:
        logger.debug("Document service: %s", message)

    async def _parse(self, chunk: Chunk, use_hybrid: bool) -> ParseResult:
        return await self.parser.parse(chunk.pages, DEFAULT_INSTRUCTION, use_hybrid, self._progress)

    async def _dispatch(self, chunk: Chunk, ai_mode: AiMode, number: int) -> ParseResult:
        if ai_mode == "hybrid":
            self._set_status(f"Processing Manifest {number}... (Hybrid Mode)")
            return await self._parse(chunk, use_hybrid=True)

        self._set_status(f"Processing Manifest {number}... (Default Mode)")
        if ai_mode == "default":
            return await self._parse(chunk, use_hybrid=False)

        try:
            return await self._parse(chunk, use_hybrid=False)
        except DocumentServiceError as exc:
            logger.warning("Default mode failed for chunk %s: %s", chunk.id, exc)
        self._set_status("Default failed. Retrying with Hybrid Mode...")
        return await self._parse(chunk, use_hybrid=True)

    async def process_queue(self) -> CaptureSession:
        """Drain pending chunks in order until the queue is empty, a pause lands, or a chunk fails."""
        with self._lock:
            session = self._require()
            if self._draining:
                raise CaptureSessionError("Processing is already running")
            if not session.pending_chunks:
                return self._commit(with_status(session, "No captured manifests to process."))
            self._draining = True
            self._commit(begin_processing(session))

        try:
            while True:
                with self._lock:
                    session = self._require()
                    if session.is_paused:
                        logger.info("Capture processing paused with %d chunk(s) left", len(session.pending_chunks))
                        return self._commit(stop_paused(session))
                    if not session.pending_chunks:
                        logger.info("Capture queue drained (%d processed)", session.processed_count)
                        return self._commit(complete(session))
                    chunk = session.pending_chunks[0]
                    number = session.processed_count + 1

                try:
                    result = await self._dispatch(chunk, session.ai_mode, number)
                except DocumentServiceError as exc:
                    logger.error("Capture chunk %s failed: %s", chunk.id, exc)
                    with self._lock:
                        return self._commit(record_failure(self._require(), str(exc)))

                manifest = build_manifest(
                    result,
                    self.store.global_config(),
                    self.clock(),
                    placeholder_prefix="AUTO",
                    folder_id=session.folder_id,
                )
                self.store.add(manifest)
                with self._lock:
                    session = self._commit(record_success(self._require(), chunk.id, manifest.manifest_no))

                if session.pending_chunks and self.inter_chunk_delay > 0:
                    await asyncio.sleep(self.inter_chunk_delay)
        except Exception as exc:
            logger.exception("Capture processing aborted")
            with self._lock:
                if self._session is not None:
                    # in-memory first; a failed write is recovered on load
                    self._session = record_failure(self._session, f"{type(exc).__name__}: {exc}")
                    self.store.kv.put(SESSION_KEY, session_to_dict(self._session))
            raise
        finally:
            self._draining = False
