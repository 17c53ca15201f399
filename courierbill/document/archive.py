"""Folder archive (zip) reading and writing.

Archive layout::

    folder_info.json     {folderName, createdDate, createdTime, totalManifests, version}
    <manifest_no>.json   one interchange payload per manifest
"""

from __future__ import annotations

import io
import json
import re
import zipfile
import zlib
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime
from pathlib import PurePosixPath

from courierbill.document.payload import manifest_to_dict
from courierbill.domain.billing import Folder, Manifest

FOLDER_INFO_NAME = "folder_info.json"
ARCHIVE_VERSION = "2.0"


class ArchiveError(ValueError):
    """Raised when an archive cannot be opened."""


@dataclass(frozen=True)
class ArchiveEntry:
    """A candidate manifest file inside an archive."""

    file_name: str
    content: bytes
    error: str | None = None  # set when the entry itself could not be extracted


@dataclass(frozen=True)
class ArchiveContents:
    folder_name: str
    entries: list[ArchiveEntry]


def safe_file_stem(manifest_no: str) -> str:
    """Lowercase, non-alphanumerics replaced with underscores."""
    return re.sub(r"[^a-z0-9]", "_", manifest_no, flags=re.IGNORECASE).lower() or "manifest"


def _folder_name_from_info(raw: bytes) -> str | None:
    try:
        info = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError):
        return None
    if isinstance(info, dict):
        name = info.get("folderName")
        if isinstance(name, str) and name.strip():
            return name.strip()
    return None


def read_archive(data: bytes, archive_name: str) -> ArchiveContents:
    """Open a folder archive and list its manifest entries in archive order."""
    folder_name = re.sub(r"\.zip$", "", PurePosixPath(archive_name).name, flags=re.IGNORECASE)
    try:
        zf = zipfile.ZipFile(io.BytesIO(data))
    except zipfile.BadZipFile as exc:
        raise ArchiveError(f"Invalid ZIP file: {archive_name}") from exc

    entries: list[ArchiveEntry] = []
    with zf:
        for info in zf.infolist():
            if info.is_dir():
                continue
            name = info.filename
            if PurePosixPath(name).name == FOLDER_INFO_NAME:
                folder_name = _folder_name_from_info(zf.read(info)) or folder_name
                continue
            if not name.lower().endswith(".json"):
                continue
            try:
                entries.append(ArchiveEntry(file_name=name, content=zf.read(info)))
            except (zipfile.BadZipFile, zlib.error, OSError) as exc:
                entries.append(ArchiveEntry(file_name=name, content=b"", error=f"Corrupt entry: {exc}"))

    return ArchiveContents(folder_name=folder_name, entries=entries)


def write_archive(folder: Folder, manifests: Iterable[Manifest], now: datetime) -> bytes:
    """Serialize a folder and its manifests into archive bytes."""
    manifests = list(manifests)
    info = {
        "folderName": folder.name,
        "createdDate": now.date().isoformat(),
        "createdTime": now.strftime("%H:%M"),
        "totalManifests": len(manifests),
        "version": ARCHIVE_VERSION,
    }

    buffer = io.BytesIO()
    used_names: set[str] = set()
    with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED) as zf:
        zf.writestr(FOLDER_INFO_NAME, json.dumps(info, indent=2))
        for manifest in manifests:
            stem = safe_file_stem(manifest.manifest_no)
            name = f"{stem}.json"
            counter = 1
            while name in used_names:
                name = f"{stem}_{counter}.json"
                counter += 1
            used_names.add(name)
            zf.writestr(name, json.dumps(manifest_to_dict(manifest), indent=2))
    return buffer.getvalue()
