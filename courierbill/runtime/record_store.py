"""Durable manifest records: active history, recycle bin and folders.

Collections (keys in the backing JSON document):
    history        - active manifests, newest first
    recycle_bin    - soft-deleted manifests, most recently deleted first
    folders        - folder list in creation order
    global_config  - rate configuration applied to new AI imports
    preferences    - operator display preferences

Every mutation computes the complete new collections first and persists
all touched keys in one write, so history and recycle bin can never
disagree after a crash. Manifest numbers are not unique here; duplicate
handling belongs to the import reconciler.
"""

from __future__ import annotations

import uuid
from collections.abc import Callable, Iterable
from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import Any

from courierbill.document.parse_result import epoch_millis
from courierbill.document.payload import (
    config_from_dict,
    config_to_dict,
    folder_from_dict,
    folder_to_dict,
    manifest_from_dict,
    manifest_to_dict,
    preferences_from_dict,
    preferences_to_dict,
)
from courierbill.domain.billing import DEFAULT_RATE_CONFIG, Folder, Manifest, Preferences, RateConfig
from courierbill.runtime.kv_store import JsonKeyValueStore
from courierbill.runtime.logging import get_logger
from courierbill.runtime.paths import get_paths

logger = get_logger(__name__)

HISTORY_KEY = "history"
RECYCLE_BIN_KEY = "recycle_bin"
FOLDERS_KEY = "folders"
GLOBAL_CONFIG_KEY = "global_config"
PREFERENCES_KEY = "preferences"


class ManifestNotFoundError(KeyError):
    """Raised when a manifest id is not in the expected collection."""


class FolderNotFoundError(KeyError):
    """Raised when a folder id does not exist."""


class ManifestRecordStore:
    """Owner of the manifest, recycle bin and folder collections."""

    def __init__(self, kv: JsonKeyValueStore, clock: Callable[[], datetime] = datetime.now) -> None:
        self.kv = kv
        self.clock = clock
        self._history = [manifest_from_dict(d) for d in kv.get(HISTORY_KEY, [])]
        self._recycle_bin = [manifest_from_dict(d) for d in kv.get(RECYCLE_BIN_KEY, [])]
        self._folders = [folder_from_dict(d) for d in kv.get(FOLDERS_KEY, [])]

    @classmethod
    def open(cls, path: Path | None = None) -> ManifestRecordStore:
        """Open the store at ``path`` (default: the data directory's records file)."""
        return cls(JsonKeyValueStore(path or get_paths().records_file))

    # --- reads ------------------------------------------------------------

    def history(self) -> list[Manifest]:
        with self.kv.lock:
            return list(self._history)

    def recycle_bin(self) -> list[Manifest]:
        with self.kv.lock:
            return list(self._recycle_bin)

    def folders(self) -> list[Folder]:
        with self.kv.lock:
            return list(self._folders)

    def get(self, manifest_id: str) -> Manifest | None:
        with self.kv.lock:
            return next((m for m in self._history if m.id == manifest_id), None)

    def get_folder(self, folder_id: str) -> Folder | None:
        with self.kv.lock:
            return next((f for f in self._folders if f.id == folder_id), None)

    def manifests_in_folder(self, folder_id: str | None) -> list[Manifest]:
        """Manifests filed under ``folder_id``; ``None`` lists the root."""
        with self.kv.lock:
            return [m for m in self._history if m.folder_id == folder_id]

    def global_config(self) -> RateConfig:
        data = self.kv.get(GLOBAL_CONFIG_KEY)
        return config_from_dict(data) if data is not None else DEFAULT_RATE_CONFIG

    def preferences(self) -> Preferences:
        data = self.kv.get(PREFERENCES_KEY)
        return preferences_from_dict(data) if data is not None else Preferences()

    # --- persistence ------------------------------------------------------

    def _commit(
        self,
        *,
        history: list[Manifest] | None = None,
        recycle_bin: list[Manifest] | None = None,
        folders: list[Folder] | None = None,
    ) -> None:
        values: dict[str, Any] = {}
        if history is not None:
            values[HISTORY_KEY] = [manifest_to_dict(m) for m in history]
        if recycle_bin is not None:
            values[RECYCLE_BIN_KEY] = [manifest_to_dict(m) for m in recycle_bin]
        if folders is not None:
            values[FOLDERS_KEY] = [folder_to_dict(f) for f in folders]
        self.kv.put_many(values)
        if history is not None:
            self._history = history
        if recycle_bin is not None:
            self._recycle_bin = recycle_bin
        if folders is not None:
            self._folders = folders

    def _require_active(self, manifest_id: str) -> Manifest:
        manifest = next((m for m in self._history if m.id == manifest_id), None)
        if manifest is None:
            raise ManifestNotFoundError(manifest_id)
        return manifest

    def _require_folder(self, folder_id: str) -> Folder:
        folder = next((f for f in self._folders if f.id == folder_id), None)
        if folder is None:
            raise FolderNotFoundError(folder_id)
        return folder

    # --- manifest mutations -----------------------------------------------

    def add(self, manifest: Manifest) -> Manifest:
        """Insert a manifest at the head of history."""
        with self.kv.lock:
            self._commit(history=[manifest, *self._history])
        logger.info("Saved manifest %s (%s)", manifest.manifest_no, manifest.id)
        return manifest

    def add_many(self, manifests: Iterable[Manifest], folder: Folder | None = None) -> list[Manifest]:
        """Commit a batch of manifests (and optionally their new folder) in one write."""
        manifests = list(manifests)
        with self.kv.lock:
            folders = [*self._folders, folder] if folder is not None else None
            self._commit(history=[*manifests, *self._history], folders=folders)
        logger.info("Committed %d manifests", len(manifests))
        return manifests

    def replace(self, manifest_id: str, manifest: Manifest) -> Manifest:
        """Replace a history record in place, keeping its id."""
        with self.kv.lock:
            self._require_active(manifest_id)
            updated = replace(manifest, id=manifest_id)
            self._commit(history=[updated if m.id == manifest_id else m for m in self._history])
        return updated

    def supersede(self, existing_id: str, manifest: Manifest) -> Manifest:
        """Remove ``existing_id`` and insert ``manifest`` at the head, in one write."""
        with self.kv.lock:
            self._require_active(existing_id)
            remaining = [m for m in self._history if m.id != existing_id]
            self._commit(history=[manifest, *remaining])
        logger.info("Manifest %s superseded by %s", existing_id, manifest.id)
        return manifest

    def soft_delete(self, manifest_id: str) -> Manifest:
        """Move a manifest from history to the front of the recycle bin."""
        with self.kv.lock:
            manifest = self._require_active(manifest_id)
            self._commit(
                history=[m for m in self._history if m.id != manifest_id],
                recycle_bin=[manifest, *self._recycle_bin],
            )
        logger.info("Moved manifest %s to recycle bin", manifest.manifest_no)
        return manifest

    def restore(self, manifest_id: str) -> Manifest:
        """Move a manifest from the recycle bin back to the head of history."""
        with self.kv.lock:
            manifest = next((m for m in self._recycle_bin if m.id == manifest_id), None)
            if manifest is None:
                raise ManifestNotFoundError(manifest_id)
            self._commit(
                history=[manifest, *self._history],
                recycle_bin=[m for m in self._recycle_bin if m.id != manifest_id],
            )
        logger.info("Restored manifest %s", manifest.manifest_no)
        return manifest

    def purge(self, manifest_id: str) -> Manifest:
        """Permanently delete a manifest that is already in the recycle bin."""
        with self.kv.lock:
            manifest = next((m for m in self._recycle_bin if m.id == manifest_id), None)
            if manifest is None:
                raise ManifestNotFoundError(manifest_id)
            self._commit(recycle_bin=[m for m in self._recycle_bin if m.id != manifest_id])
        logger.info("Purged manifest %s", manifest.manifest_no)
        return manifest

    def empty_recycle_bin(self) -> int:
        with self.kv.lock:
            count = len(self._recycle_bin)
            self._commit(recycle_bin=[])
        logger.info("Emptied recycle bin (%d manifests)", count)
        return count

    def move_to_folder(self, manifest_id: str, folder_id: str | None) -> Manifest:
        """File a manifest under a folder, or back at the root with ``None``."""
        with self.kv.lock:
            manifest = self._require_active(manifest_id)
            if folder_id is not None:
                self._require_folder(folder_id)
            moved = replace(manifest, folder_id=folder_id)
            self._commit(history=[moved if m.id == manifest_id else m for m in self._history])
        return moved

    # --- folders ----------------------------------------------------------

    def new_folder(self, name: str) -> Folder:
        """Build (but do not persist) a folder with a fresh id."""
        return Folder(id=str(uuid.uuid4()), name=name, created_at=epoch_millis(self.clock()))

    def create_folder(self, name: str) -> Folder:
        name = name.strip()
        if not name:
            raise ValueError("Folder name must not be blank")
        folder = self.new_folder(name)
        with self.kv.lock:
            self._commit(folders=[*self._folders, folder])
        logger.info("Created folder %s (%s)", folder.name, folder.id)
        return folder

    def rename_folder(self, folder_id: str, name: str) -> Folder:
        name = name.strip()
        if not name:
            raise ValueError("Folder name must not be blank")
        with self.kv.lock:
            renamed = replace(self._require_folder(folder_id), name=name)
            self._commit(folders=[renamed if f.id == folder_id else f for f in self._folders])
        return renamed

    def delete_folder(self, folder_id: str) -> int:
        """Delete a folder; its manifests move to the root. Returns how many moved."""
        with self.kv.lock:
            self._require_folder(folder_id)
            detached = 0
            history: list[Manifest] = []
            for manifest in self._history:
                if manifest.folder_id == folder_id:
                    manifest = replace(manifest, folder_id=None)
                    detached += 1
                history.append(manifest)
            self._commit(history=history, folders=[f for f in self._folders if f.id != folder_id])
        logger.info("Deleted folder %s, detached %d manifests", folder_id, detached)
        return detached

    # --- settings ---------------------------------------------------------

    def set_global_config(self, config: RateConfig) -> None:
        self.kv.put(GLOBAL_CONFIG_KEY, config_to_dict(config))

    def set_preferences(self, preferences: Preferences) -> None:
        self.kv.put(PREFERENCES_KEY, preferences_to_dict(preferences))
