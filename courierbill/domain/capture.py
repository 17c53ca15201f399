"""Capture session snapshots and their transitions.

A capture session is an immutable snapshot. Every operator action or
processing step is a function from one snapshot to the next, so the
controller that owns the live session only ever swaps whole snapshots and
persists them. Nothing here performs I/O.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Literal

AiMode = Literal["default", "hybrid", "auto"]
AI_MODES: tuple[AiMode, ...] = ("default", "hybrid", "auto")

MAX_PAGES_PER_CHUNK = 5


@dataclass(frozen=True)
class Page:
    """One scanned page, base64 encoded."""

    image_data: str
    mime_type: str


@dataclass(frozen=True)
class Chunk:
    """Pages intended to form a single manifest."""

    id: str
    pages: tuple[Page, ...]


@dataclass(frozen=True)
class CaptureSession:
    """State of one monthly capture run."""

    id: str
    folder_id: str
    folder_name: str
    ai_mode: AiMode = "default"
    pending_chunks: tuple[Chunk, ...] = ()
    current_chunk: tuple[Page, ...] = ()
    total_captured: int = 0
    processed_count: int = 0
    is_processing: bool = False
    is_paused: bool = False
    status_log: str = "Ready to capture."

    @property
    def is_drained(self) -> bool:
        return not self.pending_chunks and not self.is_processing


def new_session(session_id: str, folder_id: str, folder_name: str, ai_mode: AiMode) -> CaptureSession:
    if ai_mode not in AI_MODES:
        raise ValueError(f"Unknown AI mode: {ai_mode}")
    return CaptureSession(id=session_id, folder_id=folder_id, folder_name=folder_name, ai_mode=ai_mode)


def finish_chunk(session: CaptureSession, chunk_id: str) -> CaptureSession:
    """Queue the current pages as a chunk; no-op when nothing was captured."""
    if not session.current_chunk:
        return session
    return replace(
        session,
        pending_chunks=(*session.pending_chunks, Chunk(id=chunk_id, pages=session.current_chunk)),
        current_chunk=(),
        total_captured=session.total_captured + 1,
        status_log="Manifest captured. Ready for next.",
    )


def capture_page(session: CaptureSession, page: Page, chunk_id: str) -> CaptureSession:
    """Append a page, closing the chunk once it reaches the page cap."""
    updated = replace(
        session,
        current_chunk=(*session.current_chunk, page),
        status_log=f"Page {len(session.current_chunk) + 1} captured.",
    )
    if len(updated.current_chunk) >= MAX_PAGES_PER_CHUNK:
        return finish_chunk(updated, chunk_id)
    return updated


def begin_processing(session: CaptureSession) -> CaptureSession:
    return replace(session, is_processing=True, is_paused=False, status_log="Starting batch processing...")


def with_status(session: CaptureSession, message: str) -> CaptureSession:
    return replace(session, status_log=message)


def record_success(session: CaptureSession, chunk_id: str, manifest_no: str) -> CaptureSession:
    """Drop the processed chunk from the queue and count it."""
    return replace(
        session,
        pending_chunks=tuple(c for c in session.pending_chunks if c.id != chunk_id),
        processed_count=session.processed_count + 1,
        status_log=f"Manifest {manifest_no} processed successfully.",
    )


def record_failure(session: CaptureSession, error: str) -> CaptureSession:
    """Stop the drain; the failed chunk stays at the head of the queue."""
    return replace(
        session,
        is_processing=False,
        status_log=f"Processing paused due to error: {error}. Resume when ready.",
    )


def request_pause(session: CaptureSession) -> CaptureSession:
    message = "Pausing after the current manifest..." if session.is_processing else "Processing paused."
    return replace(session, is_paused=True, status_log=message)


def stop_paused(session: CaptureSession) -> CaptureSession:
    return replace(session, is_processing=False, status_log="Processing paused. Resume when ready.")


def complete(session: CaptureSession) -> CaptureSession:
    return replace(session, is_processing=False, status_log="All captured manifests processed.")


def recover_interrupted(session: CaptureSession) -> CaptureSession:
    """Reset a snapshot persisted mid-drain by a process that is gone."""
    if not session.is_processing:
        return session
    return replace(
        session,
        is_processing=False,
        status_log="Processing was interrupted. Resume when ready.",
    )
