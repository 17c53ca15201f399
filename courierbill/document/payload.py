"""Pydantic models for manifest JSON payloads.

Two shapes share these models:

- the interchange file ``{manifestNo, manifestDate, rows, config}`` that
  operators export and re-import;
- the stored record, which adds ``id``, ``createdAt``, ``folderId`` and the
  derived ``totalAmount``/``itemCount``.

Decoding never trusts payload shape: anything that does not validate
raises ``StructuralError`` (or ``MalformedJSONError`` for text that is not
JSON at all).
"""

from __future__ import annotations

import json
import uuid
from collections.abc import Mapping
from decimal import Decimal
from typing import Annotated, Any, TypeVar

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError, field_validator

from courierbill.domain.billing import (
    DEFAULT_RATE_CONFIG,
    Folder,
    ItemKind,
    LineItem,
    Manifest,
    Preferences,
    RateConfig,
)
from courierbill.domain.capture import CaptureSession, Chunk, Page


class PayloadError(ValueError):
    """Base class for payload decode failures."""


class MalformedJSONError(PayloadError):
    """Raised when payload text is not valid JSON."""


class StructuralError(PayloadError):
    """Raised when a payload is JSON but lacks the required structure."""


def blank_to_none(value: object) -> object:
    if isinstance(value, str):
        stripped = value.strip()
        return stripped or None
    return value


def number_to_str(value: object) -> object:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return str(value)
    return blank_to_none(value)


# Rates and amounts are taken literally, NaN and infinities included.
LiteralDecimal = Annotated[Decimal, Field(allow_inf_nan=True)]


class PayloadModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class RateConfigPayload(PayloadModel):
    slab1_rate: LiteralDecimal = Field(
        default=DEFAULT_RATE_CONFIG.slab1_rate,
        validation_alias=AliasChoices("parcelSlab1Rate", "slab1Rate", "slab1_rate"),
    )
    slab2_rate: LiteralDecimal = Field(
        default=DEFAULT_RATE_CONFIG.slab2_rate,
        validation_alias=AliasChoices("parcelSlab2Rate", "slab2Rate", "slab2_rate"),
    )
    slab3_rate: LiteralDecimal = Field(
        default=DEFAULT_RATE_CONFIG.slab3_rate,
        validation_alias=AliasChoices("parcelSlab3Rate", "slab3Rate", "slab3_rate"),
    )
    document_rate: LiteralDecimal = Field(
        default=DEFAULT_RATE_CONFIG.document_rate,
        validation_alias=AliasChoices("documentRate", "document_rate"),
    )

    def to_config(self) -> RateConfig:
        return RateConfig(
            slab1_rate=self.slab1_rate,
            slab2_rate=self.slab2_rate,
            slab3_rate=self.slab3_rate,
            document_rate=self.document_rate,
        )


class LineItemPayload(PayloadModel):
    id: str | None = None
    sl_no: int | None = Field(default=None, alias="slNo")
    serial_no: str | None = Field(default=None, alias="serialNo")
    description: str | None = None
    type: str | None = None
    weight: LiteralDecimal = Decimal("0")
    rate: LiteralDecimal | None = None
    amount: LiteralDecimal | None = None
    is_manual_rate: bool = Field(default=False, alias="isManualRate")
    breakdown: str | None = None

    _normalize_serial = field_validator("serial_no", mode="before")(number_to_str)

    @field_validator("weight", mode="before")
    @classmethod
    def _default_weight(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            return Decimal("0")
        return value

    @field_validator("is_manual_rate", mode="before")
    @classmethod
    def _default_manual(cls, value: object) -> object:
        return False if value is None else value

    def to_line_item(self, index: int) -> LineItem:
        return LineItem(
            id=self.id or str(uuid.uuid4()),
            sequence_no=self.sl_no if self.sl_no is not None else index + 1,
            serial_no=self.serial_no or "",
            description=self.description or "",
            kind=ItemKind.DOCUMENT if self.type == ItemKind.DOCUMENT.value else ItemKind.PARCEL,
            weight=self.weight,
            rate=self.rate if self.rate is not None else Decimal("0"),
            amount=self.amount if self.amount is not None else Decimal("0"),
            is_manual_rate=self.is_manual_rate,
            breakdown=self.breakdown or "",
        )


class ManifestPayload(PayloadModel):
    """Interchange file shape. ``rows`` is the only required key."""

    manifest_no: str | None = Field(default=None, alias="manifestNo")
    manifest_date: str | None = Field(default=None, alias="manifestDate")
    rows: list[LineItemPayload]
    config: RateConfigPayload | None = None

    _normalize_no = field_validator("manifest_no", mode="before")(number_to_str)
    _normalize_date = field_validator("manifest_date", mode="before")(blank_to_none)

    def line_items(self) -> list[LineItem]:
        return [row.to_line_item(index) for index, row in enumerate(self.rows)]


class StoredManifestPayload(ManifestPayload):
    id: str
    created_at: int = Field(default=0, alias="createdAt")
    folder_id: str | None = Field(default=None, alias="folderId")

    def to_manifest(self) -> Manifest:
        return Manifest(
            id=self.id,
            manifest_no=self.manifest_no or "",
            manifest_date=self.manifest_date or "",
            rows=tuple(self.line_items()),
            config=self.config.to_config() if self.config else DEFAULT_RATE_CONFIG,
            created_at=self.created_at,
            folder_id=self.folder_id,
        )


class FolderPayload(PayloadModel):
    id: str
    name: str
    created_at: int = Field(default=0, alias="createdAt")


class PreferencesPayload(PayloadModel):
    theme: str = "light"
    scale: int = 100


class PagePayload(PayloadModel):
    data: str
    mime_type: str = Field(alias="mimeType")


class ChunkPayload(PayloadModel):
    id: str
    pages: list[PagePayload] = Field(validation_alias=AliasChoices("pages", "images"))


class CaptureSessionPayload(PayloadModel):
    id: str
    folder_id: str = Field(alias="folderId")
    folder_name: str = Field(alias="folderName")
    ai_mode: str = Field(default="default", alias="aiMode")
    pending_chunks: list[ChunkPayload] = Field(default_factory=list, alias="pendingChunks")
    current_chunk: list[PagePayload] = Field(default_factory=list, alias="currentChunk")
    total_captured: int = Field(
        default=0, validation_alias=AliasChoices("totalCaptured", "totalManifestsCaptured")
    )
    processed_count: int = Field(default=0, alias="processedCount")
    is_processing: bool = Field(default=False, alias="isProcessing")
    is_paused: bool = Field(default=False, alias="isPaused")
    status_log: str = Field(default="", alias="statusLog")


# --- decoding -------------------------------------------------------------


M = TypeVar("M", bound=BaseModel)


def _validate(model: type[M], data: object) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise StructuralError(_summarize_validation_error(exc)) from exc


def _summarize_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ())) or "payload"
    return f"{location}: {first.get('msg', 'invalid value')}"


def parse_json_text(text: str | bytes) -> Any:
    try:
        return json.loads(text)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise MalformedJSONError(f"JSON parse error: {exc}") from exc


def decode_manifest_payload(data: object) -> ManifestPayload:
    """Validate an interchange payload (already parsed from JSON)."""
    if not isinstance(data, Mapping):
        raise StructuralError("payload: expected a JSON object")
    return _validate(ManifestPayload, data)


def decode_manifest_json(text: str | bytes) -> ManifestPayload:
    return decode_manifest_payload(parse_json_text(text))


def manifest_from_dict(data: object) -> Manifest:
    return _validate(StoredManifestPayload, data).to_manifest()


def folder_from_dict(data: object) -> Folder:
    payload = _validate(FolderPayload, data)
    return Folder(id=payload.id, name=payload.name, created_at=payload.created_at)


def config_from_dict(data: object) -> RateConfig:
    return _validate(RateConfigPayload, data).to_config()


def preferences_from_dict(data: object) -> Preferences:
    payload = _validate(PreferencesPayload, data)
    theme = payload.theme if payload.theme in ("light", "dark", "reading") else "light"
    return Preferences(theme=theme, scale=payload.scale)  # type: ignore[arg-type]


def session_from_dict(data: object) -> CaptureSession:
    payload = _validate(CaptureSessionPayload, data)
    ai_mode = payload.ai_mode if payload.ai_mode in ("default", "hybrid", "auto") else "default"
    return CaptureSession(
        id=payload.id,
        folder_id=payload.folder_id,
        folder_name=payload.folder_name,
        ai_mode=ai_mode,  # type: ignore[arg-type]
        pending_chunks=tuple(
            Chunk(id=chunk.id, pages=tuple(Page(p.data, p.mime_type) for p in chunk.pages))
            for chunk in payload.pending_chunks
        ),
        current_chunk=tuple(Page(p.data, p.mime_type) for p in payload.current_chunk),
        total_captured=payload.total_captured,
        processed_count=payload.processed_count,
        is_processing=payload.is_processing,
        is_paused=payload.is_paused,
        status_log=payload.status_log,
    )


# --- encoding -------------------------------------------------------------


def json_number(value: Decimal) -> int | float:
    """Render a Decimal as the plainest JSON number."""
    if value.is_finite() and value == value.to_integral_value():
        return int(value)
    return float(value)


def config_to_dict(config: RateConfig) -> dict[str, Any]:
    return {
        "parcelSlab1Rate": json_number(config.slab1_rate),
        "parcelSlab2Rate": json_number(config.slab2_rate),
        "parcelSlab3Rate": json_number(config.slab3_rate),
        "documentRate": json_number(config.document_rate),
    }


def row_to_dict(row: LineItem) -> dict[str, Any]:
    return {
        "id": row.id,
        "slNo": row.sequence_no,
        "serialNo": row.serial_no,
        "description": row.description,
        "type": row.kind.value,
        "weight": json_number(row.weight),
        "rate": json_number(row.rate),
        "amount": json_number(row.amount),
        "isManualRate": row.is_manual_rate,
        "breakdown": row.breakdown,
    }


def manifest_to_interchange(manifest: Manifest) -> dict[str, Any]:
    return {
        "manifestNo": manifest.manifest_no,
        "manifestDate": manifest.manifest_date,
        "rows": [row_to_dict(row) for row in manifest.rows],
        "config": config_to_dict(manifest.config),
    }


def manifest_to_dict(manifest: Manifest) -> dict[str, Any]:
    data: dict[str, Any] = {"id": manifest.id, **manifest_to_interchange(manifest)}
    data["totalAmount"] = json_number(manifest.total_amount)
    data["itemCount"] = manifest.item_count
    data["createdAt"] = manifest.created_at
    if manifest.folder_id is not None:
        data["folderId"] = manifest.folder_id
    return data


def folder_to_dict(folder: Folder) -> dict[str, Any]:
    return {"id": folder.id, "name": folder.name, "createdAt": folder.created_at}


def preferences_to_dict(preferences: Preferences) -> dict[str, Any]:
    return {"theme": preferences.theme, "scale": preferences.scale}


def _page_to_dict(page: Page) -> dict[str, str]:
    return {"data": page.image_data, "mimeType": page.mime_type}


def session_to_dict(session: CaptureSession) -> dict[str, Any]:
    return {
        "id": session.id,
        "folderId": session.folder_id,
        "folderName": session.folder_name,
        "aiMode": session.ai_mode,
        "pendingChunks": [
            {"id": chunk.id, "pages": [_page_to_dict(p) for p in chunk.pages]} for chunk in session.pending_chunks
        ],
        "currentChunk": [_page_to_dict(p) for p in session.current_chunk],
        "totalCaptured": session.total_captured,
        "processedCount": session.processed_count,
        "isProcessing": session.is_processing,
        "isPaused": session.is_paused,
        "statusLog": session.status_log,
    }
