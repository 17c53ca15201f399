"""Tests for single-manifest imports and conflict resolution."""

from __future__ import annotations

import asyncio
import base64
import json
from decimal import Decimal

import pytest

from courierbill.application.imports.single import (
    DocumentImportRequest,
    JsonImportRequest,
    resolve_import_conflict,
    run_document_import,
    run_json_import,
)
from courierbill.domain.billing import RateConfig
from courierbill.domain.capture import Page
from courierbill.runtime.document_service import DocumentServiceError
from courierbill.runtime.record_store import ManifestRecordStore

from conftest import FIXED_NOW


def _payload(manifest_no: str | None, weights: list[float], **extra: object) -> str:
    data: dict[str, object] = {
        "rows": [{"slNo": i + 1, "serialNo": f"S{i}", "type": "Parcel", "weight": w} for i, w in enumerate(weights)],
        **extra,
    }
    if manifest_no is not None:
        data["manifestNo"] = manifest_no
    return json.dumps(data)


def _import(store: ManifestRecordStore, content: str):
    return run_json_import(store, JsonImportRequest(file_name="m.json", content=content), now=FIXED_NOW)


def test_new_manifest_number_is_saved_immediately(store: ManifestRecordStore) -> None:
    result = _import(store, _payload("M-100", [15]))

    assert result.status == "saved"
    assert result.manifest is not None
    assert result.manifest.total_amount == Decimal("40")
    assert result.manifest.manifest_date == "2025-03-14"
    assert store.history() == [result.manifest]


def test_payload_config_overrides_global_rates(store: ManifestRecordStore) -> None:
    store.set_global_config(RateConfig(slab1_rate=Decimal("100")))
    content = _payload("M-1", [2], config={"slab1Rate": 1, "slab2Rate": 1, "slab3Rate": 1, "documentRate": 1})

    result = _import(store, content)

    assert result.manifest is not None
    assert result.manifest.total_amount == Decimal("2")


def test_missing_manifest_number_gets_placeholder(store: ManifestRecordStore) -> None:
    result = _import(store, _payload(None, [1]))

    assert result.manifest is not None
    assert result.manifest.manifest_no.startswith("MF-")
    assert len(result.manifest.manifest_no) == len("MF-") + 6


def test_malformed_and_structurally_invalid_payloads_are_rejected(store: ManifestRecordStore) -> None:
    assert _import(store, "{nope").status == "invalid_json"
    assert _import(store, json.dumps({"manifestNo": "X"})).status == "invalid_structure"
    assert _import(store, json.dumps([1, 2])).status == "invalid_structure"
    assert store.history() == []


def test_keep_both_adds_a_second_copy(store: ManifestRecordStore) -> None:
    _import(store, _payload("M-1", [5]))
    result = _import(store, _payload("M-1", [50]))
    assert result.status == "conflict"
    assert result.conflict is not None
    assert len(store.history()) == 1

    resolved = resolve_import_conflict(store, result.conflict, "keep_both")

    history = store.history()
    assert resolved.status == "kept_both"
    assert len(history) == 2
    assert [m.manifest_no for m in history] == ["M-1", "M-1"]
    assert history[0].id != history[1].id
    assert history[0].id != result.conflict.candidate.id


def test_override_replaces_existing_in_one_step(store: ManifestRecordStore) -> None:
    first = _import(store, _payload("M-1", [5]))
    _import(store, _payload("M-2", [5]))
    result = _import(store, _payload("M-1", [50]))
    assert result.conflict is not None

    resolve_import_conflict(store, result.conflict, "override")

    history = store.history()
    assert len(history) == 2
    assert history[0].manifest_no == "M-1"
    assert history[0].total_amount == Decimal("110")
    assert first.manifest is not None
    assert all(m.id != first.manifest.id for m in history)


def test_discard_is_repeatable_and_changes_nothing(store: ManifestRecordStore) -> None:
    _import(store, _payload("M-1", [5]))
    result = _import(store, _payload("M-1", [50]))
    assert result.conflict is not None
    before = store.history()

    for _ in range(2):
        resolved = resolve_import_conflict(store, result.conflict, "discard")
        assert resolved.status == "discarded"

    assert store.history() == before


def _png_page(label: str) -> Page:
    return Page(image_data=base64.b64encode(label.encode()).decode(), mime_type="image/png")


def test_document_import_applies_result_defaults(store: ManifestRecordStore, fake_parser) -> None:
    page = _png_page("scan")
    parser = fake_parser(
        {
            (page.image_data, False): {
                "manifestNo": None,
                "items": [
                    {"weight": 12},
                    {"type": "Document", "description": "Letters"},
                ],
                "errors": [{"row": 2, "field": "weight", "message": "unreadable"}],
            }
        }
    )

    result = asyncio.run(
        run_document_import(store, parser, DocumentImportRequest(pages=[page]), now=FIXED_NOW)
    )

    assert result.status == "saved"
    assert result.manifest is not None
    rows = result.manifest.rows
    assert [r.sequence_no for r in rows] == [1, 2]
    assert [r.serial_no for r in rows] == ["AWB-1000", "AWB-1001"]
    assert rows[0].description == "Item"
    assert rows[0].amount == Decimal("34")
    assert rows[1].amount == Decimal("5")
    assert result.manifest.manifest_no.startswith("MF-")
    assert result.parsing_errors[0].field == "weight"


def test_document_import_reports_service_failure(store: ManifestRecordStore, fake_parser) -> None:
    page = _png_page("scan")
    parser = fake_parser({(page.image_data, True): DocumentServiceError("timeout")})

    result = asyncio.run(
        run_document_import(store, parser, DocumentImportRequest(pages=[page], use_hybrid=True))
    )

    assert result.status == "service_unavailable"
    assert "timeout" in (result.error or "")
    assert parser.calls == [(page.image_data, True)]
    assert store.history() == []


@pytest.mark.parametrize("page_count", [0, 6])
def test_document_import_rejects_page_count(store: ManifestRecordStore, fake_parser, page_count: int) -> None:
    parser = fake_parser({})
    pages = [_png_page(str(i)) for i in range(page_count)]

    result = asyncio.run(run_document_import(store, parser, DocumentImportRequest(pages=pages)))

    assert result.status == "rejected"
    assert parser.calls == []
