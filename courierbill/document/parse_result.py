"""Result contract of the document-understanding service.

The service returns loosely-typed items; this module validates them once
and applies every defaulting rule in one place so callers never handle a
missing manifest number, serial or weight themselves.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from decimal import Decimal

from pydantic import Field, field_validator

from courierbill.document.payload import PayloadModel, blank_to_none, number_to_str
from courierbill.domain.billing import ItemKind, LineItem, Manifest, RateConfig
from courierbill.domain.tariff import compute_row

DEFAULT_DESCRIPTION = "Item"
SERIAL_BASE = 1000


class ParsedItem(PayloadModel):
    sl_no: int | None = Field(default=None, alias="slNo")
    serial_no: str | None = Field(default=None, alias="serialNo")
    description: str | None = None
    type: str | None = None
    weight: Decimal | None = None

    _normalize_serial = field_validator("serial_no", mode="before")(number_to_str)
    _normalize_description = field_validator("description", mode="before")(blank_to_none)

    @field_validator("sl_no", "weight", mode="before")
    @classmethod
    def _blank_number(cls, value: object) -> object:
        return blank_to_none(value)


class ParsingError(PayloadModel):
    row: int | None = None
    field: str | None = None
    message: str = ""


class ParseResult(PayloadModel):
    manifest_no: str | None = Field(default=None, alias="manifestNo")
    manifest_date: str | None = Field(default=None, alias="manifestDate")
    items: list[ParsedItem] = Field(default_factory=list)
    errors: list[ParsingError] = Field(default_factory=list)

    _normalize_no = field_validator("manifest_no", mode="before")(number_to_str)
    _normalize_date = field_validator("manifest_date", mode="before")(blank_to_none)

    @field_validator("items", "errors", mode="before")
    @classmethod
    def _null_list(cls, value: object) -> object:
        return [] if value is None else value


def epoch_millis(now: datetime) -> int:
    return int(now.timestamp() * 1000)


def default_manifest_date(now: datetime) -> str:
    return now.date().isoformat()


def placeholder_manifest_no(prefix: str, now: datetime, digits: int | None = None) -> str:
    """Timestamp-derived manifest number; ``digits`` keeps only the trailing digits."""
    stamp = str(epoch_millis(now))
    return f"{prefix}-{stamp[-digits:] if digits else stamp}"


def build_line_items(result: ParseResult, config: RateConfig) -> list[LineItem]:
    """Turn parsed items into priced rows, applying defaults per item."""
    rows: list[LineItem] = []
    for index, item in enumerate(result.items):
        row = LineItem(
            id=str(uuid.uuid4()),
            sequence_no=item.sl_no or index + 1,
            serial_no=item.serial_no or f"AWB-{SERIAL_BASE + index}",
            description=item.description or DEFAULT_DESCRIPTION,
            kind=ItemKind.DOCUMENT if item.type == ItemKind.DOCUMENT.value else ItemKind.PARCEL,
            weight=item.weight or Decimal("0"),
        )
        rows.append(compute_row(row, config))
    return rows


def build_manifest(
    result: ParseResult,
    config: RateConfig,
    now: datetime,
    *,
    placeholder_prefix: str,
    placeholder_digits: int | None = None,
    folder_id: str | None = None,
) -> Manifest:
    """Build a new manifest from a parse result, priced with ``config``."""
    return Manifest(
        id=str(uuid.uuid4()),
        manifest_no=result.manifest_no or placeholder_manifest_no(placeholder_prefix, now, placeholder_digits),
        manifest_date=result.manifest_date or default_manifest_date(now),
        rows=tuple(build_line_items(result, config)),
        config=config,
        created_at=epoch_millis(now),
        folder_id=folder_id,
    )
