"""Tests for the capture upload server."""

from __future__ import annotations

import pytest
from fastapi.testclient import TestClient

from courierbill.application.capture import CaptureSessionController, CaptureSessionError
from courierbill.application.capture.server import create_app
from courierbill.runtime.record_store import ManifestRecordStore

from conftest import FakeParser


@pytest.fixture
def parser() -> FakeParser:
    # base64 of b"page-1"
    return FakeParser({("cGFnZS0x", False): {"manifestNo": "M-1", "items": [{"weight": 2}]}})


@pytest.fixture
def client(store: ManifestRecordStore, parser: FakeParser) -> TestClient:
    controller = CaptureSessionController(store, parser, inter_chunk_delay=0)
    return TestClient(create_app(controller))


def test_health(client: TestClient) -> None:
    assert client.get("/health").json() == {"status": "ok"}


def test_status_without_session(client: TestClient) -> None:
    assert client.get("/capture/status").json() == {"active": False}


def test_page_upload_requires_session(client: TestClient) -> None:
    response = client.post("/capture/page", files={"file": ("p.jpg", b"page-1", "image/jpeg")})

    assert response.status_code == 409
    assert response.json()["status"] == "error"


def test_upload_finish_and_process(client: TestClient, store: ManifestRecordStore) -> None:
    started = client.post("/capture/start", json={"aiMode": "default"})
    assert started.status_code == 200

    uploaded = client.post("/capture/page", files={"file": ("p.jpg", b"page-1", "image/jpeg")})
    assert uploaded.json()["session"]["currentChunkPages"] == 1

    finished = client.post("/capture/finish")
    assert finished.json()["session"]["pendingChunks"] == 1

    processed = client.post("/capture/process")
    assert processed.status_code == 202

    status = client.get("/capture/status").json()
    assert status["processedCount"] == 1
    assert status["pendingChunks"] == 0
    assert status["isProcessing"] is False
    assert [m.manifest_no for m in store.history()] == ["M-1"]


def test_unknown_mode_is_rejected(client: TestClient) -> None:
    response = client.post("/capture/start", json={"aiMode": "turbo"})

    assert response.status_code == 400


def test_upload_without_file_is_rejected(client: TestClient) -> None:
    client.post("/capture/start")

    response = client.post("/capture/page", data={"note": "no file"})

    assert response.status_code == 400
    assert response.json()["message"] == "No file found in request"


def test_malformed_start_body_is_rejected(client: TestClient) -> None:
    response = client.post("/capture/start", content=b"{not json", headers={"content-type": "application/json"})

    assert response.status_code == 400
    assert response.json() == {"status": "error", "message": "Request body is not valid JSON"}


def test_process_started_twice_does_not_crash_the_task(
    store: ManifestRecordStore, parser: FakeParser, monkeypatch: pytest.MonkeyPatch
) -> None:
    controller = CaptureSessionController(store, parser, inter_chunk_delay=0)
    client = TestClient(create_app(controller))
    client.post("/capture/start")

    async def _already_running() -> None:
        raise CaptureSessionError("Processing is already running")

    monkeypatch.setattr(controller, "process_queue", _already_running)

    response = client.post("/capture/process")

    assert response.status_code == 202
    assert client.get("/capture/status").json()["isProcessing"] is False
