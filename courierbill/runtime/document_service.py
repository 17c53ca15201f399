"""Client for the external document-understanding service."""

from __future__ import annotations

import time
from collections.abc import Callable, Sequence
from typing import Protocol

import httpx
from pydantic import ValidationError

from courierbill.document.image_helpers import normalize_page
from courierbill.document.parse_result import ParseResult
from courierbill.domain.capture import Page
from courierbill.runtime.logging import get_logger
from courierbill.runtime.settings import Settings

logger = get_logger(__name__)

ProgressCallback = Callable[[str], None]

DEFAULT_INSTRUCTION = "Extract billing data."
MULTI_PAGE_INSTRUCTION = (
    "Extract billing data from these images. Treat them as sequential pages of one manifest."
)


class DocumentServiceError(RuntimeError):
    """Raised when the service cannot be reached, errors, or returns an unusable result."""


class DocumentParser(Protocol):
    """Contract of the document-understanding capability."""

    async def parse(
        self,
        pages: Sequence[Page],
        instruction: str,
        use_hybrid: bool,
        on_progress: ProgressCallback | None = None,
    ) -> ParseResult: ...


def _noop_progress(_status: str) -> None:
    return None


class HttpDocumentService:
    """Calls ``POST {service_url}/parse`` with the pages of one manifest."""

    def __init__(
        self,
        service_url: str,
        *,
        timeout: float = 120.0,
        resize_images: bool = True,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.service_url = service_url.rstrip("/")
        self.timeout = timeout
        self.resize_images = resize_images
        self.transport = transport

    @classmethod
    def from_settings(cls, settings: Settings) -> HttpDocumentService:
        return cls(settings.service_url, timeout=settings.service_timeout, resize_images=settings.resize_images)

    def _prepare(self, pages: Sequence[Page]) -> list[dict[str, str]]:
        prepared: list[dict[str, str]] = []
        for page in pages:
            if self.resize_images:
                try:
                    page = normalize_page(page)
                except (ValueError, OSError) as e:
                    raise DocumentServiceError(f"Unreadable page image: {e}") from e
            prepared.append({"data": page.image_data, "mimeType": page.mime_type})
        return prepared

    async def parse(
        self,
        pages: Sequence[Page],
        instruction: str,
        use_hybrid: bool,
        on_progress: ProgressCallback | None = None,
    ) -> ParseResult:
        progress = on_progress or _noop_progress
        if not pages:
            raise DocumentServiceError("No pages to parse")

        strategy = "hybrid" if use_hybrid else "default"
        progress("Preparing pages...")
        body = {"pages": self._prepare(pages), "instruction": instruction, "strategy": strategy}

        logger.info("Sending %d page(s) to document service at %s (%s)", len(pages), self.service_url, strategy)
        progress(f"Analyzing document ({strategy})...")
        start_time = time.time()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self.transport) as client:
                response = await client.post(f"{self.service_url}/parse", json=body)
        except httpx.RequestError as e:
            logger.error("Failed to connect to document service: %s", e)
            raise DocumentServiceError(f"Failed to connect to document service: {e}") from e
        logger.info("Document service returned in %.2f seconds", time.time() - start_time)

        if response.status_code != 200:
            logger.error("Document service error: %s", response.status_code)
            raise DocumentServiceError(f"Document service error: {response.status_code}")

        try:
            result = ParseResult.model_validate(response.json())
        except (ValueError, ValidationError) as e:
            raise DocumentServiceError(f"Document service returned an invalid result: {e}") from e

        progress(f"Extracted {len(result.items)} item(s).")
        return result
