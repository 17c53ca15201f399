"""Core domain models and pure logic for courierbill.

- Manifest, LineItem, RateConfig, Folder: billing records
- tariff: slab pricing of line items
- reconcile: manifest-number collision handling
- capture: capture session snapshots and transitions

Usage:
    from courierbill.domain import Manifest, RateConfig, compute_row
"""

from courierbill.domain.billing import (
    DEFAULT_RATE_CONFIG,
    Folder,
    ItemKind,
    LineItem,
    Manifest,
    Preferences,
    RateConfig,
    SlabSummary,
)
from courierbill.domain.reconcile import ImportConflict, Resolution, find_conflict
from courierbill.domain.tariff import compute_parcel_amount, compute_row, recalculate_rows, summarize_rows

__all__ = [
    "DEFAULT_RATE_CONFIG",
    "Folder",
    "ItemKind",
    "LineItem",
    "Manifest",
    "Preferences",
    "RateConfig",
    "SlabSummary",
    "ImportConflict",
    "Resolution",
    "find_conflict",
    "compute_parcel_amount",
    "compute_row",
    "recalculate_rows",
    "summarize_rows",
]
