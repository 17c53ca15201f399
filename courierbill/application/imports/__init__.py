"""Manifest import workflows."""

from courierbill.application.imports.bulk import (
    MAX_BULK_FILES,
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

__all__ = [
    "MAX_BULK_FILES",
    "ImportSource",
    "BulkJsonImportRequest",
    "ArchiveImportRequest",
    "BulkImportResult",
    "run_bulk_json_import",
    "run_archive_import",
    "JsonImportRequest",
    "DocumentImportRequest",
    "ImportResult",
    "run_json_import",
    "run_document_import",
    "resolve_import_conflict",
]
