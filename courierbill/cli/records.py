"""Manifest record and import command handlers used by the unified CLI."""

import argparse
import asyncio
import sys
from dataclasses import replace
from decimal import Decimal, InvalidOperation
from pathlib import Path

from courierbill.application.imports.bulk import (
    ArchiveImportRequest,
    BulkImportResult,
    BulkJsonImportRequest,
    ImportSource,
    run_archive_import,
    run_bulk_json_import,
)
from courierbill.application.imports.single import (
    DocumentImportRequest,
    ImportResult,
    JsonImportRequest,
    resolve_import_conflict,
    run_document_import,
    run_json_import,
)
from courierbill.application.records import (
    ManualSaveRequest,
    export_folder,
    reprice_manifest,
    save_manual_manifest,
)
from courierbill.cli.common import (
    document_service,
    fail,
    format_amount,
    manifest_line,
    open_store,
    prompt_resolution,
    read_page,
    settings_or_exit,
)
from courierbill.document.payload import PayloadError, decode_manifest_json
from courierbill.domain.billing import ItemKind, Preferences
from courierbill.domain.tariff import summarize_rows
from courierbill.runtime import get_logger, get_paths
from courierbill.runtime.record_store import FolderNotFoundError, ManifestNotFoundError, ManifestRecordStore

logger = get_logger(__name__)


def _settle(store: ManifestRecordStore, result: ImportResult, on_conflict: str) -> None:
    """Report a single-import result, resolving a pending conflict if there is one."""
    for parsing_error in result.parsing_errors:
        print(f"Warning: row {parsing_error.row} {parsing_error.field}: {parsing_error.message}")

    if result.status == "saved":
        assert result.manifest is not None
        print(f"Saved manifest {result.manifest.manifest_no} ({result.manifest.id})")
        print(f"  {result.manifest.item_count} items, total {format_amount(result.manifest.total_amount)}")
        return

    if result.status != "conflict":
        fail(result.error or f"Import failed ({result.status})")

    conflict = result.conflict
    assert conflict is not None
    resolution = on_conflict
    if resolution == "ask":
        resolution = prompt_resolution(conflict.existing, conflict.candidate)
    resolved = resolve_import_conflict(store, conflict, resolution)  # type: ignore[arg-type]
    print(resolved.message)
    if resolved.manifest is not None:
        print(f"Saved manifest {resolved.manifest.manifest_no} ({resolved.manifest.id})")


def cmd_import(args: argparse.Namespace) -> None:
    """Import one interchange JSON file."""
    path = Path(args.file)
    if not path.exists():
        fail(f"File not found: {path}")

    store = open_store()
    result = run_json_import(
        store,
        JsonImportRequest(file_name=path.name, content=path.read_bytes(), folder_id=args.folder),
    )
    _settle(store, result, args.on_conflict)


def cmd_parse(args: argparse.Namespace) -> None:
    """Send one document (up to five pages) to the document service and save the result."""
    pages = [read_page(Path(p)) for p in args.pages]
    settings = settings_or_exit()
    store = open_store()
    result = asyncio.run(
        run_document_import(
            store,
            document_service(settings, args.service_url),
            DocumentImportRequest(
                pages=pages,
                use_hybrid=args.hybrid,
                folder_id=args.folder,
                on_progress=lambda message: print(f"  {message}"),
            ),
        )
    )
    _settle(store, result, args.on_conflict)


def cmd_save(args: argparse.Namespace) -> None:
    """Save an edited interchange file as a new manifest, or over an existing one with --replace."""
    path = Path(args.file)
    if not path.exists():
        fail(f"File not found: {path}")

    try:
        payload = decode_manifest_json(path.read_bytes())
    except PayloadError as exc:
        fail(f"Cannot read {path.name}: {exc}")

    store = open_store()
    folder_id = args.folder
    if args.replace:
        existing = store.get(args.replace)
        if existing is None:
            fail(f"Manifest not found: {args.replace}")
        folder_id = folder_id or existing.folder_id

    manifest = save_manual_manifest(
        store,
        ManualSaveRequest(
            manifest_no=payload.manifest_no or "",
            manifest_date=payload.manifest_date or "",
            rows=payload.line_items(),
            config=payload.config.to_config() if payload.config else store.global_config(),
            manifest_id=args.replace,
            folder_id=folder_id,
        ),
    )
    print("Manifest saved successfully.")
    print(f"  {manifest.manifest_no} ({manifest.id}): total {format_amount(manifest.total_amount)}")


def _print_bulk_result(result: BulkImportResult) -> None:
    for outcome in result.outcomes:
        marker = {"success": "+", "warning": "!", "error": "x"}[outcome.status]
        print(f"  {marker} {outcome.file_name}: {outcome.message}")
    print(
        f"Imported {result.count('success')}, skipped {result.count('warning')}, failed {result.count('error')}"
    )
    if result.folder is not None:
        print(f"Created folder {result.folder.name} ({result.folder.id})")


def cmd_bulk_import(args: argparse.Namespace) -> None:
    """Import many interchange files, or one folder archive."""
    paths = [Path(p) for p in args.files]
    missing = [str(p) for p in paths if not p.exists()]
    if missing:
        fail("Files not found:\n" + "\n".join(missing))

    store = open_store()
    if len(paths) == 1 and paths[0].suffix.lower() == ".zip":
        result = run_archive_import(
            store,
            ArchiveImportRequest(archive_name=paths[0].name, content=paths[0].read_bytes()),
        )
    else:
        result = run_bulk_json_import(
            store,
            BulkJsonImportRequest(
                sources=[ImportSource(file_name=p.name, content=p.read_bytes()) for p in paths],
                folder_id=args.folder,
                new_folder_name=args.new_folder,
            ),
        )

    if result.error and not result.outcomes:
        fail(result.error)
    _print_bulk_result(result)
    if result.error:
        sys.exit(1)


def cmd_list(args: argparse.Namespace) -> None:
    """List manifests in history, a folder, or the recycle bin."""
    store = open_store()
    folder_names = {f.id: f.name for f in store.folders()}

    if args.recycle_bin:
        manifests = store.recycle_bin()
        title = "Recycle bin"
    elif args.folder:
        if args.folder not in folder_names:
            fail(f"Folder not found: {args.folder}")
        manifests = store.manifests_in_folder(args.folder)
        title = f"Folder {folder_names[args.folder]}"
    elif args.root:
        manifests = store.manifests_in_folder(None)
        title = "Unfiled manifests"
    else:
        manifests = store.history()
        title = "History"

    print(f"{title} ({len(manifests)})")
    for manifest in manifests:
        print(f"  {manifest_line(manifest, folder_names)}")
    if manifests:
        total = sum((m.total_amount for m in manifests), Decimal("0"))
        print(f"Total: {format_amount(total)}")


def cmd_show(args: argparse.Namespace) -> None:
    """Print one manifest with its rows and slab summary."""
    store = open_store()
    manifest = store.get(args.manifest_id)
    if manifest is None:
        fail(f"Manifest not found: {args.manifest_id}")

    config = manifest.config
    print(f"Manifest {manifest.manifest_no}  date {manifest.manifest_date}  id {manifest.id}")
    print(
        f"Rates: slab1 {config.slab1_rate}, slab2 {config.slab2_rate}, "
        f"slab3 {config.slab3_rate}, document {config.document_rate}"
    )
    for row in manifest.rows:
        manual = " (manual)" if row.is_manual_rate else ""
        print(
            f"  {row.sequence_no:>3} {row.serial_no:<14} {row.kind.value:<8} {row.weight:>7} kg "
            f"{row.breakdown:<10} @ {row.rate:<6} = {format_amount(row.amount):>10}{manual}"
        )

    summary = summarize_rows(manifest.rows, config)
    print(f"Total: {format_amount(manifest.total_amount)} over {manifest.item_count} items")
    print(
        f"Parcels: {summary.parcel_count} ({summary.light_parcel_count} up to 10 kg, "
        f"{summary.heavy_parcel_count} heavier), billable weight {summary.total_billable_weight} kg"
    )
    print(f"Slab weights: {summary.slab1_weight} / {summary.slab2_weight} / {summary.slab3_weight} kg")
    if summary.heavy_parcel_weights:
        print(f"Heavy parcels: {'+'.join(str(w) for w in summary.heavy_parcel_weights)}")
    if summary.document_count:
        print(f"Documents: {summary.document_count}, {format_amount(summary.document_total)}")


def cmd_delete(args: argparse.Namespace) -> None:
    store = open_store()
    try:
        manifest = store.soft_delete(args.manifest_id)
    except ManifestNotFoundError:
        fail(f"Manifest not found in history: {args.manifest_id}")
    print(f"Moved {manifest.manifest_no} to the recycle bin")


def cmd_restore(args: argparse.Namespace) -> None:
    store = open_store()
    try:
        manifest = store.restore(args.manifest_id)
    except ManifestNotFoundError:
        fail(f"Manifest not found in recycle bin: {args.manifest_id}")
    print(f"Restored {manifest.manifest_no}")


def cmd_purge(args: argparse.Namespace) -> None:
    store = open_store()
    try:
        manifest = store.purge(args.manifest_id)
    except ManifestNotFoundError:
        fail(f"Manifest not found in recycle bin: {args.manifest_id}")
    print(f"Permanently deleted {manifest.manifest_no}")


def cmd_empty_recycle(args: argparse.Namespace) -> None:
    store = open_store()
    count = store.empty_recycle_bin()
    print(f"Permanently deleted {count} manifest(s)")


def cmd_move(args: argparse.Namespace) -> None:
    store = open_store()
    try:
        manifest = store.move_to_folder(args.manifest_id, args.folder)
    except ManifestNotFoundError:
        fail(f"Manifest not found: {args.manifest_id}")
    except FolderNotFoundError:
        fail(f"Folder not found: {args.folder}")
    print("Manifest moved successfully.")
    logger.debug("Moved %s to folder %s", manifest.id, manifest.folder_id)


def cmd_folders(args: argparse.Namespace) -> None:
    """List, create, rename or delete folders."""
    store = open_store()
    action = args.folder_action or "list"

    if action == "list":
        counts: dict[str | None, int] = {}
        for manifest in store.history():
            counts[manifest.folder_id] = counts.get(manifest.folder_id, 0) + 1
        for folder in store.folders():
            print(f"  {folder.id}  {folder.name}  ({counts.get(folder.id, 0)} manifests)")
        print(f"  (root)  {counts.get(None, 0)} manifests")
        return

    try:
        if action == "create":
            folder = store.create_folder(args.name)
            print(f"Created folder {folder.name} ({folder.id})")
        elif action == "rename":
            folder = store.rename_folder(args.folder_id, args.name)
            print(f"Renamed folder to {folder.name}")
        elif action == "delete":
            detached = store.delete_folder(args.folder_id)
            print(f"Deleted folder; {detached} manifest(s) moved to the root")
    except FolderNotFoundError:
        fail(f"Folder not found: {args.folder_id}")
    except ValueError as exc:
        fail(str(exc))


def cmd_export_folder(args: argparse.Namespace) -> None:
    """Write a folder archive that ``bulk-import`` can read back."""
    store = open_store()
    output_dir = Path(args.output) if args.output else get_paths().exports
    result = export_folder(store, args.folder_id, output_dir)
    if result.status != "exported":
        fail(result.error or "Export failed")
    print(f"Exported {result.manifest_count} manifest(s) to {result.path}")


def _decimal_arg(name: str, value: str) -> Decimal:
    try:
        result = Decimal(value)
    except InvalidOperation:
        fail(f"{name} must be a number, got {value!r}")
    if result.is_snan():
        fail(f"{name} must be a number, got {value!r}")
    return result


def cmd_config(args: argparse.Namespace) -> None:
    """Show or change the global rate configuration and display preferences."""
    store = open_store()
    config = store.global_config()
    preferences = store.preferences()

    if args.config_action == "set":
        overrides = {
            "slab1_rate": args.slab1,
            "slab2_rate": args.slab2,
            "slab3_rate": args.slab3,
            "document_rate": args.document,
        }
        changes = {key: _decimal_arg(key, value) for key, value in overrides.items() if value is not None}
        if changes:
            config = replace(config, **changes)
            store.set_global_config(config)
        if args.theme is not None or args.scale is not None:
            preferences = Preferences(
                theme=args.theme or preferences.theme,
                scale=args.scale if args.scale is not None else preferences.scale,
            )
            store.set_preferences(preferences)
        for manifest_id in args.apply_to or []:
            try:
                updated = reprice_manifest(store, manifest_id, config)
            except ManifestNotFoundError:
                fail(f"Manifest not found: {manifest_id}")
            print(f"Repriced {updated.manifest_no}: total {format_amount(updated.total_amount)}")

    print("Global rates:")
    print(f"  slab 1 (first 10 kg):   {config.slab1_rate}")
    print(f"  slab 2 (next 90 kg):    {config.slab2_rate}")
    print(f"  slab 3 (above 100 kg):  {config.slab3_rate}")
    print(f"  {ItemKind.DOCUMENT.value.lower()} (flat):        {config.document_rate}")
    print(f"Preferences: theme {preferences.theme}, scale {preferences.scale}%")
