"""Data models for manifests, line items and rate configuration."""

from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Literal


class ItemKind(str, Enum):
    """Billing category of a line item."""

    PARCEL = "Parcel"
    DOCUMENT = "Document"


@dataclass(frozen=True)
class RateConfig:
    """Per-kilogram slab rates plus the flat document rate."""

    slab1_rate: Decimal = Decimal("3")
    slab2_rate: Decimal = Decimal("2")
    slab3_rate: Decimal = Decimal("1")
    document_rate: Decimal = Decimal("5")


DEFAULT_RATE_CONFIG = RateConfig()


@dataclass(frozen=True)
class LineItem:
    """A single row on a manifest.

    ``rate``, ``amount`` and ``breakdown`` are derived by the tariff engine;
    construct rows with defaults and pass them through ``compute_row``.
    """

    id: str
    sequence_no: int
    serial_no: str = ""
    description: str = ""
    kind: ItemKind = ItemKind.PARCEL
    weight: Decimal = Decimal("0")
    rate: Decimal = Decimal("0")
    amount: Decimal = Decimal("0")
    is_manual_rate: bool = False
    breakdown: str = ""


@dataclass(frozen=True)
class Manifest:
    """One billing document: ordered rows plus the rates they were billed at."""

    id: str
    manifest_no: str
    manifest_date: str
    rows: tuple[LineItem, ...] = ()
    config: RateConfig = DEFAULT_RATE_CONFIG
    created_at: int = 0  # epoch milliseconds
    folder_id: str | None = None

    @property
    def total_amount(self) -> Decimal:
        return sum((row.amount for row in self.rows), Decimal("0"))

    @property
    def item_count(self) -> int:
        return len(self.rows)

    def with_rows(self, rows: tuple[LineItem, ...] | list[LineItem]) -> "Manifest":
        return replace(self, rows=tuple(rows))


@dataclass(frozen=True)
class Folder:
    """Named grouping of manifests."""

    id: str
    name: str
    created_at: int = 0


Theme = Literal["light", "dark", "reading"]


@dataclass(frozen=True)
class Preferences:
    """Operator display preferences persisted next to the records."""

    theme: Theme = "light"
    scale: int = 100


@dataclass
class SlabSummary:
    """Aggregate slab statistics over a manifest's rows."""

    slab1_weight: int = 0
    slab2_weight: int = 0
    slab3_weight: int = 0
    parcel_count: int = 0
    light_parcel_count: int = 0  # billable weight <= 10 kg
    heavy_parcel_count: int = 0
    heavy_parcel_weights: list[int] = field(default_factory=list)
    light_parcels_total_weight: int = 0
    heavy_parcels_total_weight: int = 0
    document_count: int = 0
    document_total: Decimal = Decimal("0")
    total_billable_weight: int = 0
