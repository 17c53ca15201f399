"""Shared helpers for CLI command handlers."""

import mimetypes
import sys
from decimal import Decimal
from pathlib import Path
from typing import NoReturn

from courierbill.document.image_helpers import page_from_bytes
from courierbill.domain.billing import Manifest
from courierbill.domain.capture import Page
from courierbill.domain.reconcile import RESOLUTIONS, Resolution
from courierbill.runtime import ConfigurationError, Settings, get_logger, get_paths, load_settings
from courierbill.runtime.document_service import HttpDocumentService
from courierbill.runtime.record_store import ManifestRecordStore

logger = get_logger(__name__)


def fail(message: str) -> NoReturn:
    """Print an error and exit with status 1."""
    for line in message.splitlines():
        print(f"Error: {line}" if line else line)
    sys.exit(1)


def open_store() -> ManifestRecordStore:
    paths = get_paths()
    paths.ensure_directories()
    try:
        return ManifestRecordStore.open(paths.records_file)
    except (RuntimeError, ValueError) as exc:
        fail(str(exc))


def settings_or_exit() -> Settings:
    try:
        return load_settings()
    except ConfigurationError as exc:
        fail(str(exc))


def document_service(settings: Settings, service_url: str | None = None) -> HttpDocumentService:
    service = HttpDocumentService.from_settings(settings)
    if service_url:
        service.service_url = service_url.rstrip("/")
    return service


def read_page(path: Path) -> Page:
    """Load an image or PDF from disk as a capture page."""
    if not path.exists():
        fail(f"File not found: {path}")
    mime_type, _ = mimetypes.guess_type(path.name)
    return page_from_bytes(path.read_bytes(), mime_type or "image/jpeg")


def format_amount(value: Decimal) -> str:
    return f"{value:,.2f}"


def manifest_line(manifest: Manifest, folder_names: dict[str, str] | None = None) -> str:
    folder = ""
    if manifest.folder_id and folder_names is not None:
        folder = f"  [{folder_names.get(manifest.folder_id, '?')}]"
    return (
        f"{manifest.id}  {manifest.manifest_no:<16} {manifest.manifest_date:<12} "
        f"{manifest.item_count:>4} items  {format_amount(manifest.total_amount):>12}{folder}"
    )


def prompt_resolution(existing: Manifest, candidate: Manifest) -> Resolution:
    """Ask the operator how to settle a manifest-number collision."""
    print(f"Manifest {candidate.manifest_no} already exists:")
    print(f"  existing: {existing.item_count} items, {format_amount(existing.total_amount)} ({existing.manifest_date})")
    print(f"  incoming: {candidate.item_count} items, {format_amount(candidate.total_amount)} ({candidate.manifest_date})")
    choices = {"k": "keep_both", "o": "override", "d": "discard"}
    while True:
        print("[k]eep both, [o]verride, [d]iscard? ", end="")
        answer = input().strip().lower()
        if answer in choices:
            return choices[answer]  # type: ignore[return-value]
        if answer in RESOLUTIONS:
            return answer  # type: ignore[return-value]
        print("Please answer k, o or d.")
