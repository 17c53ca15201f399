"""Tiered-slab tariff calculation.

Parcel weight is rounded up to whole kilograms and split cumulatively:
the first 10 kg bill at slab 1, the next 90 kg at slab 2 and anything
above 100 kg at slab 3. Documents bill at a flat rate regardless of
weight.
"""

from __future__ import annotations

import math
from collections.abc import Iterable
from dataclasses import dataclass, replace
from decimal import Decimal

from courierbill.domain.billing import ItemKind, LineItem, RateConfig, SlabSummary

SLAB1_LIMIT = 10
SLAB2_LIMIT = 100


@dataclass(frozen=True)
class SlabSplit:
    """Billable kilograms per slab and the resulting amount."""

    s1_weight: int
    s2_weight: int
    s3_weight: int
    amount: Decimal

    @property
    def billable_weight(self) -> int:
        return self.s1_weight + self.s2_weight + self.s3_weight


def billable_weight(weight: Decimal | float | int) -> int:
    """Round a raw weight up to whole kilograms; non-positive and non-finite weights bill nothing."""
    value = Decimal(str(weight)) if isinstance(weight, float) else Decimal(weight)
    if not value.is_finite() or value <= 0:
        return 0
    return math.ceil(value)


def compute_parcel_amount(weight: Decimal | float | int, config: RateConfig) -> SlabSplit:
    """Split a parcel weight across the three slabs and price it."""
    w = billable_weight(weight)
    s1 = min(w, SLAB1_LIMIT)
    s2 = min(max(w - SLAB1_LIMIT, 0), SLAB2_LIMIT - SLAB1_LIMIT)
    s3 = max(w - SLAB2_LIMIT, 0)
    # unused slabs contribute nothing, even at an infinite rate
    pairs = ((s1, config.slab1_rate), (s2, config.slab2_rate), (s3, config.slab3_rate))
    amount = sum((kg * rate for kg, rate in pairs if kg), Decimal("0"))
    return SlabSplit(s1_weight=s1, s2_weight=s2, s3_weight=s3, amount=amount)


def marginal_rate(split: SlabSplit, config: RateConfig) -> Decimal:
    """Rate of the slab the last billable kilogram falls into."""
    if split.s3_weight:
        return config.slab3_rate
    if split.s2_weight:
        return config.slab2_rate
    return config.slab1_rate


def format_breakdown(split: SlabSplit) -> str:
    """Compact slab summary such as ``"10+5"``."""
    parts = [str(w) for w in (split.s1_weight, split.s2_weight, split.s3_weight) if w]
    return "+".join(parts) if parts else "0"


def compute_row(row: LineItem, config: RateConfig) -> LineItem:
    """Return ``row`` with rate, amount and breakdown derived from ``config``.

    Manual-rate rows keep their pinned rate and amount; only the breakdown
    is cleared.
    """
    if row.is_manual_rate:
        return replace(row, breakdown="")

    if row.kind == ItemKind.DOCUMENT:
        return replace(row, rate=config.document_rate, amount=config.document_rate, breakdown="")

    split = compute_parcel_amount(row.weight, config)
    return replace(
        row,
        rate=marginal_rate(split, config),
        amount=split.amount,
        breakdown=format_breakdown(split),
    )


def recalculate_rows(rows: Iterable[LineItem], config: RateConfig) -> list[LineItem]:
    """Re-derive every row after a rate configuration change."""
    return [compute_row(row, config) for row in rows]


def summarize_rows(rows: Iterable[LineItem], config: RateConfig) -> SlabSummary:
    """Aggregate slab weights and parcel/document counts."""
    summary = SlabSummary()
    for row in rows:
        if row.kind == ItemKind.DOCUMENT:
            summary.document_count += 1
            summary.document_total += row.amount
            continue

        summary.parcel_count += 1
        split = compute_parcel_amount(row.weight, config)
        rounded = split.billable_weight
        summary.total_billable_weight += rounded
        summary.slab1_weight += split.s1_weight
        summary.slab2_weight += split.s2_weight
        summary.slab3_weight += split.s3_weight
        if rounded <= SLAB1_LIMIT:
            summary.light_parcel_count += 1
            summary.light_parcels_total_weight += rounded
        else:
            summary.heavy_parcel_count += 1
            summary.heavy_parcels_total_weight += rounded
            summary.heavy_parcel_weights.append(rounded)
    return summary
