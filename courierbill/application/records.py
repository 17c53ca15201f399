"""Record-editing workflows: manual save, repricing and folder export."""

from __future__ import annotations

import uuid
from collections.abc import Sequence
from dataclasses import dataclass, replace
from datetime import datetime
from pathlib import Path
from typing import Literal

from courierbill.document.archive import safe_file_stem, write_archive
from courierbill.document.parse_result import default_manifest_date, epoch_millis
from courierbill.domain.billing import LineItem, Manifest, RateConfig
from courierbill.domain.tariff import recalculate_rows
from courierbill.runtime.logging import get_logger
from courierbill.runtime.record_store import ManifestNotFoundError, ManifestRecordStore

logger = get_logger(__name__)

ExportStatus = Literal["folder_not_found", "empty_folder", "exported"]


@dataclass(frozen=True)
class ManualSaveRequest:
    """An edited manifest; ``manifest_id`` is set when it is already saved."""

    manifest_no: str
    manifest_date: str
    rows: Sequence[LineItem]
    config: RateConfig
    manifest_id: str | None = None
    folder_id: str | None = None


@dataclass(frozen=True)
class FolderExportResult:
    status: ExportStatus
    path: Path | None = None
    manifest_count: int = 0
    error: str | None = None


def save_manual_manifest(
    store: ManifestRecordStore,
    request: ManualSaveRequest,
    now: datetime | None = None,
) -> Manifest:
    """Save an edited manifest: new records go to the head, saved ones are replaced in place."""
    now = now or store.clock()
    manifest = Manifest(
        id=request.manifest_id or str(uuid.uuid4()),
        manifest_no=request.manifest_no.strip(),
        manifest_date=request.manifest_date.strip() or default_manifest_date(now),
        rows=tuple(recalculate_rows(request.rows, request.config)),
        config=request.config,
        created_at=epoch_millis(now),
        folder_id=request.folder_id,
    )
    if request.manifest_id is None:
        return store.add(manifest)
    return store.replace(request.manifest_id, manifest)


def reprice_manifest(store: ManifestRecordStore, manifest_id: str, config: RateConfig) -> Manifest:
    """Apply a new rate configuration to a saved manifest and recompute every row."""
    manifest = store.get(manifest_id)
    if manifest is None:
        raise ManifestNotFoundError(manifest_id)
    updated = replace(manifest, config=config, rows=tuple(recalculate_rows(manifest.rows, config)))
    logger.info("Repriced manifest %s: %s -> %s", manifest.manifest_no, manifest.total_amount, updated.total_amount)
    return store.replace(manifest_id, updated)


def export_folder(
    store: ManifestRecordStore,
    folder_id: str,
    output_dir: Path,
    now: datetime | None = None,
) -> FolderExportResult:
    """Write a folder's manifests and ``folder_info.json`` to ``<output_dir>/<folder>.zip``."""
    folder = store.get_folder(folder_id)
    if folder is None:
        return FolderExportResult(status="folder_not_found", error=f"Folder not found: {folder_id}")

    manifests = store.manifests_in_folder(folder_id)
    if not manifests:
        return FolderExportResult(status="empty_folder", error="Folder is empty. Nothing to export.")

    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / f"{safe_file_stem(folder.name)}.zip"
    path.write_bytes(write_archive(folder, manifests, now or store.clock()))
    logger.info("Exported %d manifests from %s to %s", len(manifests), folder.name, path)
    return FolderExportResult(status="exported", path=path, manifest_count=len(manifests))
