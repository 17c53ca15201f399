"""Bulk manifest import from multiple JSON files or a folder archive.

Each input is validated, checked for duplicates against history and the
rest of the batch, priced, and staged. Staged manifests commit to the
store in one write at the end, together with the batch's new folder when
one was requested. A bad input only ever produces its own ``error``
outcome.
"""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import datetime
from typing import Literal

from courierbill.document.archive import ArchiveError, read_archive
from courierbill.document.parse_result import default_manifest_date, epoch_millis
from courierbill.document.payload import MalformedJSONError, StructuralError, decode_manifest_json
from courierbill.domain.billing import Folder, Manifest, RateConfig
from courierbill.domain.reconcile import is_duplicate_number
from courierbill.domain.tariff import recalculate_rows
from courierbill.runtime.logging import get_logger
from courierbill.runtime.record_store import ManifestRecordStore

logger = get_logger(__name__)

MAX_BULK_FILES = 30

OutcomeStatus = Literal["success", "warning", "error"]


@dataclass(frozen=True)
class ImportSource:
    """One candidate payload: a standalone file or an archive entry."""

    file_name: str
    content: bytes | str
    error: str | None = None


@dataclass(frozen=True)
class BulkImportOutcome:
    file_name: str
    status: OutcomeStatus
    message: str


@dataclass(frozen=True)
class BulkImportResult:
    """Per-item outcomes plus what was committed."""

    outcomes: list[BulkImportOutcome] = field(default_factory=list)
    manifests: list[Manifest] = field(default_factory=list)
    folder: Folder | None = None
    error: str | None = None

    def count(self, status: OutcomeStatus) -> int:
        return sum(1 for outcome in self.outcomes if outcome.status == status)


@dataclass(frozen=True)
class BulkJsonImportRequest:
    """Up to MAX_BULK_FILES files bound for an existing or a new folder.

    With neither ``folder_id`` nor ``new_folder_name`` the manifests land at
    the root.
    """

    sources: Sequence[ImportSource]
    folder_id: str | None = None
    new_folder_name: str | None = None


@dataclass(frozen=True)
class ArchiveImportRequest:
    archive_name: str
    content: bytes


def stage_manifests(
    sources: Sequence[ImportSource],
    history: Sequence[Manifest],
    default_config: RateConfig,
    folder_id: str | None,
    now: datetime,
) -> tuple[list[Manifest], list[BulkImportOutcome]]:
    """Validate, deduplicate and price every source without touching the store."""
    staged: list[Manifest] = []
    outcomes: list[BulkImportOutcome] = []
    ms = epoch_millis(now)

    for index, source in enumerate(sources):
        if source.error is not None:
            outcomes.append(BulkImportOutcome(source.file_name, "error", source.error))
            continue

        try:
            payload = decode_manifest_json(source.content)
        except MalformedJSONError:
            outcomes.append(BulkImportOutcome(source.file_name, "error", "JSON Parse Error"))
            continue
        except StructuralError as exc:
            outcomes.append(BulkImportOutcome(source.file_name, "error", f"Invalid structure: {exc}"))
            continue

        manifest_no = payload.manifest_no or f"IMP-{ms}-{index}"
        if is_duplicate_number(manifest_no, history, staged):
            outcomes.append(BulkImportOutcome(source.file_name, "warning", "Duplicate skipped"))
            continue

        config = payload.config.to_config() if payload.config else default_config
        staged.append(
            Manifest(
                id=str(uuid.uuid4()),
                manifest_no=manifest_no,
                manifest_date=payload.manifest_date or default_manifest_date(now),
                rows=tuple(recalculate_rows(payload.line_items(), config)),
                config=config,
                created_at=ms,
                folder_id=folder_id,
            )
        )
        outcomes.append(BulkImportOutcome(source.file_name, "success", "Imported"))

    return staged, outcomes


def _commit(
    store: ManifestRecordStore,
    sources: Sequence[ImportSource],
    folder_id: str | None,
    new_folder: Folder | None,
    now: datetime,
) -> BulkImportResult:
    target_id = new_folder.id if new_folder is not None else folder_id
    staged, outcomes = stage_manifests(sources, store.history(), store.global_config(), target_id, now)

    if not staged:
        logger.info("Bulk import staged nothing from %d input(s)", len(sources))
        return BulkImportResult(outcomes=outcomes)

    store.add_many(staged, folder=new_folder)
    logger.info(
        "Bulk import committed %d of %d input(s)%s",
        len(staged),
        len(sources),
        f" into new folder {new_folder.name}" if new_folder else "",
    )
    return BulkImportResult(outcomes=outcomes, manifests=staged, folder=new_folder)


def run_bulk_json_import(
    store: ManifestRecordStore,
    request: BulkJsonImportRequest,
    now: datetime | None = None,
) -> BulkImportResult:
    """Import several interchange files as one batch."""
    if len(request.sources) > MAX_BULK_FILES:
        return BulkImportResult(error=f"Maximum {MAX_BULK_FILES} files allowed at once.")

    new_folder: Folder | None = None
    if request.new_folder_name is not None:
        name = request.new_folder_name.strip()
        if not name:
            return BulkImportResult(error="Please enter a folder name.")
        new_folder = store.new_folder(name)
    elif request.folder_id is not None and store.get_folder(request.folder_id) is None:
        return BulkImportResult(error=f"Folder not found: {request.folder_id}")

    return _commit(store, request.sources, request.folder_id, new_folder, now or store.clock())


def run_archive_import(
    store: ManifestRecordStore,
    request: ArchiveImportRequest,
    now: datetime | None = None,
) -> BulkImportResult:
    """Import a folder archive into a new folder named after it."""
    try:
        contents = read_archive(request.content, request.archive_name)
    except ArchiveError as exc:
        logger.error("%s", exc)
        return BulkImportResult(
            outcomes=[BulkImportOutcome(request.archive_name, "error", "Invalid ZIP file")],
            error=str(exc),
        )

    sources = [ImportSource(e.file_name, e.content, e.error) for e in contents.entries]
    return _commit(store, sources, None, store.new_folder(contents.folder_name), now or store.clock())
