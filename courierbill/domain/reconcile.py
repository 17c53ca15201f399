"""Duplicate detection for incoming manifests."""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from typing import Literal

from courierbill.domain.billing import Manifest

Resolution = Literal["keep_both", "override", "discard"]
RESOLUTIONS: tuple[Resolution, ...] = ("keep_both", "override", "discard")


@dataclass(frozen=True)
class ImportConflict:
    """An incoming candidate whose manifest number is already in history."""

    existing: Manifest
    candidate: Manifest


def find_conflict(history: Iterable[Manifest], candidate: Manifest) -> Manifest | None:
    """Return the first history record sharing the candidate's manifest number."""
    for manifest in history:
        if manifest.manifest_no == candidate.manifest_no:
            return manifest
    return None


def is_duplicate_number(manifest_no: str, *collections: Iterable[Manifest]) -> bool:
    """True when any manifest in ``collections`` already uses ``manifest_no``."""
    return any(m.manifest_no == manifest_no for collection in collections for m in collection)
