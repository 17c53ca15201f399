"""Shared pytest fixtures for courierbill tests."""

from __future__ import annotations

from collections.abc import Callable, Sequence
from datetime import datetime
from pathlib import Path

import pytest

from courierbill.document.parse_result import ParseResult
from courierbill.domain.capture import Page
from courierbill.runtime.document_service import DocumentServiceError, ProgressCallback
from courierbill.runtime.kv_store import JsonKeyValueStore
from courierbill.runtime.record_store import ManifestRecordStore

FIXED_NOW = datetime(2025, 3, 14, 9, 30, 0)


class FakeParser:
    """Scripted document parser.

    ``script`` maps ``(first page data, use_hybrid)`` to either a result
    payload dict or an exception instance to raise. Every call is recorded.
    """

    def __init__(self, script: dict[tuple[str, bool], object]) -> None:
        self.script = script
        self.calls: list[tuple[str, bool]] = []

    async def parse(
        self,
        pages: Sequence[Page],
        instruction: str,
        use_hybrid: bool,
        on_progress: ProgressCallback | None = None,
    ) -> ParseResult:
        key = (pages[0].image_data, use_hybrid)
        self.calls.append(key)
        outcome = self.script.get(key)
        if outcome is None:
            raise DocumentServiceError(f"no scripted result for {key}")
        if isinstance(outcome, Exception):
            raise outcome
        return ParseResult.model_validate(outcome)


@pytest.fixture
def records_path(tmp_path: Path) -> Path:
    return tmp_path / "records.json"


@pytest.fixture
def store(records_path: Path) -> ManifestRecordStore:
    return ManifestRecordStore(JsonKeyValueStore(records_path), clock=lambda: FIXED_NOW)


@pytest.fixture
def reopen(records_path: Path) -> Callable[[], ManifestRecordStore]:
    """Open a second store over the same file, as a restarted process would."""

    def _reopen() -> ManifestRecordStore:
        return ManifestRecordStore(JsonKeyValueStore(records_path), clock=lambda: FIXED_NOW)

    return _reopen


@pytest.fixture
def fake_parser() -> Callable[[dict[tuple[str, bool], object]], FakeParser]:
    return FakeParser
