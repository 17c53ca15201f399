"""Tests for the HTTP document service client."""

from __future__ import annotations

import asyncio
import base64
import io
import json

import httpx
import pytest
from PIL import Image

from courierbill.document.image_helpers import page_from_bytes
from courierbill.domain.capture import Page
from courierbill.runtime.document_service import DocumentServiceError, HttpDocumentService


def _service(handler, *, resize_images: bool = False) -> HttpDocumentService:
    return HttpDocumentService(
        "http://parser.test/",
        timeout=5,
        resize_images=resize_images,
        transport=httpx.MockTransport(handler),
    )


def _parse(service: HttpDocumentService, pages: list[Page], use_hybrid: bool = False, on_progress=None):
    return asyncio.run(service.parse(pages, "Extract billing data.", use_hybrid, on_progress))


def test_request_body_follows_contract() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"manifestNo": "M-1", "items": [{"weight": 3}]})

    progress: list[str] = []
    result = _parse(_service(handler), [Page("aGVsbG8=", "application/pdf")], use_hybrid=True, on_progress=progress.append)

    assert result.manifest_no == "M-1"
    assert len(result.items) == 1
    assert seen[0].url == "http://parser.test/parse"
    body = json.loads(seen[0].content)
    assert body == {
        "pages": [{"data": "aGVsbG8=", "mimeType": "application/pdf"}],
        "instruction": "Extract billing data.",
        "strategy": "hybrid",
    }
    assert progress[-1] == "Extracted 1 item(s)."


def test_non_200_raises_service_error() -> None:
    service = _service(lambda request: httpx.Response(503, text="busy"))

    with pytest.raises(DocumentServiceError, match="503"):
        _parse(service, [Page("x", "image/png")])


def test_transport_failure_raises_service_error() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(DocumentServiceError, match="connect"):
        _parse(_service(handler), [Page("x", "image/png")])


def test_schema_mismatch_raises_service_error() -> None:
    service = _service(lambda request: httpx.Response(200, json={"items": "not-a-list"}))

    with pytest.raises(DocumentServiceError):
        _parse(service, [Page("x", "image/png")])


def test_invalid_json_body_raises_service_error() -> None:
    service = _service(lambda request: httpx.Response(200, text="<html>"))

    with pytest.raises(DocumentServiceError):
        _parse(service, [Page("x", "image/png")])


def test_large_images_are_downscaled_to_jpeg() -> None:
    buffer = io.BytesIO()
    Image.new("RGB", (4000, 1000), "white").save(buffer, format="PNG")
    sent: list[dict[str, str]] = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.extend(json.loads(request.content)["pages"])
        return httpx.Response(200, json={"items": []})

    _parse(_service(handler, resize_images=True), [page_from_bytes(buffer.getvalue(), "image/png")])

    assert sent[0]["mimeType"] == "image/jpeg"
    with Image.open(io.BytesIO(base64.b64decode(sent[0]["data"]))) as img:
        assert img.size == (3000, 750)


def test_unreadable_image_is_rejected_before_upload() -> None:
    calls: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"items": []})

    with pytest.raises(DocumentServiceError, match="Unreadable"):
        _parse(_service(handler, resize_images=True), [page_from_bytes(b"not an image", "image/jpeg")])
    assert calls == []
