"""Single-manifest import workflows with duplicate reconciliation.

Both entry points build a candidate manifest, then admit it: a candidate
whose manifest number is new is saved immediately; a colliding one is
returned as a pending ``ImportConflict`` for the operator to resolve with
``resolve_import_conflict``.
"""

from __future__ import annotations

import base64
import binascii
import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Literal

from courierbill.document.parse_result import (
    ParsingError,
    build_manifest,
    default_manifest_date,
    epoch_millis,
    placeholder_manifest_no,
)
from courierbill.document.payload import MalformedJSONError, StructuralError, decode_manifest_json
from courierbill.domain.billing import Manifest
from courierbill.domain.capture import Page
from courierbill.domain.reconcile import ImportConflict, Resolution, find_conflict
from courierbill.domain.tariff import recalculate_rows
from courierbill.runtime.document_service import (
    DEFAULT_INSTRUCTION,
    MULTI_PAGE_INSTRUCTION,
    DocumentParser,
    DocumentServiceError,
    ProgressCallback,
)
from courierbill.runtime.logging import get_logger
from courierbill.runtime.record_store import ManifestRecordStore

logger = get_logger(__name__)

MAX_DOCUMENT_PAGES = 5
MAX_DOCUMENT_BYTES = 5 * 1024 * 1024
PLACEHOLDER_DIGITS = 6

ImportStatus = Literal[
    "invalid_json",
    "invalid_structure",
    "rejected",
    "service_unavailable",
    "saved",
    "conflict",
]
ResolveStatus = Literal["kept_both", "overridden", "discarded"]


@dataclass(frozen=True)
class JsonImportRequest:
    """One interchange JSON file."""

    file_name: str
    content: bytes | str
    folder_id: str | None = None


@dataclass(frozen=True)
class DocumentImportRequest:
    """Pages of one document to parse with the document service."""

    pages: Sequence[Page]
    use_hybrid: bool = False
    folder_id: str | None = None
    on_progress: ProgressCallback | None = None


@dataclass(frozen=True)
class ImportResult:
    """Outcome of a single-manifest import."""

    status: ImportStatus
    manifest: Manifest | None = None
    conflict: ImportConflict | None = None
    parsing_errors: list[ParsingError] = field(default_factory=list)
    error: str | None = None


@dataclass(frozen=True)
class ResolveResult:
    status: ResolveStatus
    manifest: Manifest | None = None
    message: str = ""


def _admit(store: ManifestRecordStore, candidate: Manifest, parsing_errors: list[ParsingError]) -> ImportResult:
    existing = find_conflict(store.history(), candidate)
    if existing is not None:
        logger.info("Manifest %s already exists (%s); awaiting resolution", candidate.manifest_no, existing.id)
        return ImportResult(
            status="conflict",
            conflict=ImportConflict(existing=existing, candidate=candidate),
            parsing_errors=parsing_errors,
        )
    store.add(candidate)
    return ImportResult(status="saved", manifest=candidate, parsing_errors=parsing_errors)


def run_json_import(store: ManifestRecordStore, request: JsonImportRequest, now: datetime | None = None) -> ImportResult:
    """Import one interchange file, priced with its own config or the global default."""
    now = now or store.clock()
    try:
        payload = decode_manifest_json(request.content)
    except MalformedJSONError as exc:
        return ImportResult(status="invalid_json", error=f"Failed to parse JSON manifest: {exc}")
    except StructuralError as exc:
        return ImportResult(status="invalid_structure", error=f"Invalid manifest structure: {exc}")

    config = payload.config.to_config() if payload.config else store.global_config()
    ms = epoch_millis(now)
    candidate = Manifest(
        id=str(uuid.uuid4()),
        manifest_no=payload.manifest_no or placeholder_manifest_no("MF", now, PLACEHOLDER_DIGITS),
        manifest_date=payload.manifest_date or default_manifest_date(now),
        rows=tuple(recalculate_rows(payload.line_items(), config)),
        config=config,
        created_at=ms,
        folder_id=request.folder_id,
    )
    return _admit(store, candidate, [])


def _page_size(page: Page) -> int:
    try:
        return len(base64.b64decode(page.image_data, validate=True))
    except (binascii.Error, ValueError):
        return len(page.image_data)


async def run_document_import(
    store: ManifestRecordStore,
    parser: DocumentParser,
    request: DocumentImportRequest,
    now: datetime | None = None,
) -> ImportResult:
    """Parse one document with the service and admit it, priced with the global config."""
    if not request.pages:
        return ImportResult(status="rejected", error="No pages supplied")
    if len(request.pages) > MAX_DOCUMENT_PAGES:
        return ImportResult(status="rejected", error=f"Maximum {MAX_DOCUMENT_PAGES} images allowed")
    if any(_page_size(p) > MAX_DOCUMENT_BYTES for p in request.pages):
        return ImportResult(status="rejected", error="File size too large; keep each page under 5MB")

    instruction = DEFAULT_INSTRUCTION if len(request.pages) == 1 else MULTI_PAGE_INSTRUCTION
    try:
        result = await parser.parse(request.pages, instruction, request.use_hybrid, request.on_progress)
    except DocumentServiceError as exc:
        logger.error("Document analysis failed: %s", exc)
        return ImportResult(
            status="service_unavailable",
            error=f"Analysis failed: {exc}. Try again or switch processing modes.",
        )

    candidate = build_manifest(
        result,
        store.global_config(),
        now or store.clock(),
        placeholder_prefix="MF",
        placeholder_digits=PLACEHOLDER_DIGITS,
        folder_id=request.folder_id,
    )
    return _admit(store, candidate, list(result.errors))


def resolve_import_conflict(
    store: ManifestRecordStore,
    conflict: ImportConflict,
    resolution: Resolution,
) -> ResolveResult:
    """Apply the operator's choice for a pending conflict.

    ``discard`` never touches the store, so repeating it is harmless.
    """
    if resolution == "discard":
        return ResolveResult(status="discarded", message="Import cancelled by user.")

    saved = replace(conflict.candidate, id=str(uuid.uuid4()))
    if resolution == "keep_both":
        store.add(saved)
        return ResolveResult(status="kept_both", manifest=saved, message="Imported as a new copy.")
    if resolution == "override":
        store.supersede(conflict.existing.id, saved)
        return ResolveResult(status="overridden", manifest=saved, message="Existing record overwritten.")

    raise ValueError(f"Unknown resolution: {resolution}")
