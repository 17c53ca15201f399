"""Tests for durable manifest collections."""

from __future__ import annotations

import json
from collections.abc import Callable
from decimal import Decimal
from pathlib import Path

import pytest

from courierbill.domain.billing import LineItem, Manifest, Preferences, RateConfig
from courierbill.domain.tariff import compute_row
from courierbill.runtime.kv_store import JsonKeyValueStore
from courierbill.runtime.record_store import FolderNotFoundError, ManifestNotFoundError, ManifestRecordStore


def _manifest(manifest_id: str, manifest_no: str, weight: str = "12", folder_id: str | None = None) -> Manifest:
    config = RateConfig()
    row = compute_row(LineItem(id=f"{manifest_id}-r1", sequence_no=1, weight=Decimal(weight)), config)
    return Manifest(
        id=manifest_id,
        manifest_no=manifest_no,
        manifest_date="2025-03-14",
        rows=(row,),
        config=config,
        created_at=1,
        folder_id=folder_id,
    )


def test_add_keeps_history_newest_first(store: ManifestRecordStore) -> None:
    store.add(_manifest("a", "M-1"))
    store.add(_manifest("b", "M-2"))

    assert [m.id for m in store.history()] == ["b", "a"]


def test_soft_delete_then_restore_returns_to_head(store: ManifestRecordStore) -> None:
    store.add(_manifest("a", "M-1"))
    store.add(_manifest("b", "M-2"))

    store.soft_delete("a")
    assert [m.id for m in store.history()] == ["b"]
    assert [m.id for m in store.recycle_bin()] == ["a"]

    store.restore("a")
    assert [m.id for m in store.history()] == ["a", "b"]
    assert store.recycle_bin() == []


def test_purge_only_accepts_recycled_manifests(store: ManifestRecordStore) -> None:
    store.add(_manifest("a", "M-1"))

    with pytest.raises(ManifestNotFoundError):
        store.purge("a")

    store.soft_delete("a")
    store.purge("a")
    assert store.history() == []
    assert store.recycle_bin() == []


def test_empty_recycle_bin_reports_count(store: ManifestRecordStore) -> None:
    for i in range(3):
        store.add(_manifest(f"m{i}", f"M-{i}"))
        store.soft_delete(f"m{i}")

    assert store.empty_recycle_bin() == 3
    assert store.recycle_bin() == []


def test_manifest_is_never_in_both_collections_on_disk(
    store: ManifestRecordStore, records_path: Path
) -> None:
    store.add(_manifest("a", "M-1"))
    store.soft_delete("a")

    data = json.loads(records_path.read_text())
    history_ids = {m["id"] for m in data["history"]}
    recycled_ids = {m["id"] for m in data["recycle_bin"]}
    assert history_ids.isdisjoint(recycled_ids)
    assert recycled_ids == {"a"}


def test_stored_totals_are_derived_from_rows(store: ManifestRecordStore, records_path: Path) -> None:
    store.add(_manifest("a", "M-1", weight="15"))

    stored = json.loads(records_path.read_text())["history"][0]
    assert stored["totalAmount"] == 40
    assert stored["itemCount"] == 1


def test_replace_keeps_id_and_position(store: ManifestRecordStore) -> None:
    store.add(_manifest("a", "M-1"))
    store.add(_manifest("b", "M-2"))

    store.replace("a", _manifest("other", "M-1-edited", weight="3"))

    history = store.history()
    assert [m.id for m in history] == ["b", "a"]
    assert history[1].manifest_no == "M-1-edited"


def test_supersede_swaps_in_one_write(store: ManifestRecordStore, reopen: Callable[[], ManifestRecordStore]) -> None:
    store.add(_manifest("a", "M-1"))
    store.add(_manifest("b", "M-2"))

    store.supersede("a", _manifest("c", "M-1"))

    assert [m.id for m in reopen().history()] == ["c", "b"]


def test_reopened_store_sees_the_same_records(
    store: ManifestRecordStore, reopen: Callable[[], ManifestRecordStore]
) -> None:
    folder = store.create_folder("March")
    store.add(_manifest("a", "M-1", weight="10.5", folder_id=folder.id))

    reopened = reopen()
    assert reopened.history() == store.history()
    assert reopened.folders() == [folder]
    assert reopened.history()[0].total_amount == Decimal("32")


def test_delete_folder_detaches_its_manifests(store: ManifestRecordStore) -> None:
    folder = store.create_folder("March")
    store.add(_manifest("a", "M-1", folder_id=folder.id))
    store.add(_manifest("b", "M-2"))

    assert store.delete_folder(folder.id) == 1

    assert store.folders() == []
    assert all(m.folder_id is None for m in store.history())
    assert len(store.history()) == 2


def test_move_to_folder_validates_target(store: ManifestRecordStore) -> None:
    folder = store.create_folder("March")
    store.add(_manifest("a", "M-1"))

    with pytest.raises(FolderNotFoundError):
        store.move_to_folder("a", "missing")

    assert store.move_to_folder("a", folder.id).folder_id == folder.id
    assert store.manifests_in_folder(folder.id)[0].id == "a"
    assert store.move_to_folder("a", None).folder_id is None
    assert [m.id for m in store.manifests_in_folder(None)] == ["a"]


def test_rename_folder_rejects_blank_names(store: ManifestRecordStore) -> None:
    folder = store.create_folder("March")

    with pytest.raises(ValueError):
        store.rename_folder(folder.id, "   ")
    assert store.rename_folder(folder.id, "April").name == "April"


def test_add_many_commits_folder_and_manifests_together(
    store: ManifestRecordStore, reopen: Callable[[], ManifestRecordStore]
) -> None:
    folder = store.new_folder("Batch")
    assert store.folders() == []

    store.add_many([_manifest("a", "M-1", folder_id=folder.id), _manifest("b", "M-2", folder_id=folder.id)], folder)

    reopened = reopen()
    assert reopened.folders() == [folder]
    assert [m.id for m in reopened.manifests_in_folder(folder.id)] == ["a", "b"]


def test_settings_default_and_persist(store: ManifestRecordStore, reopen: Callable[[], ManifestRecordStore]) -> None:
    assert store.global_config() == RateConfig()
    assert store.preferences() == Preferences()

    store.set_global_config(RateConfig(slab1_rate=Decimal("4.5")))
    store.set_preferences(Preferences(theme="dark", scale=120))

    reopened = reopen()
    assert reopened.global_config().slab1_rate == Decimal("4.5")
    assert reopened.preferences() == Preferences(theme="dark", scale=120)


def test_non_finite_rates_survive_reopen(
    store: ManifestRecordStore, reopen: Callable[[], ManifestRecordStore]
) -> None:
    config = RateConfig(slab1_rate=Decimal("NaN"), slab3_rate=Decimal("-Infinity"))
    store.set_global_config(config)
    row = compute_row(LineItem(id="r1", sequence_no=1, weight=Decimal("12")), config)
    store.add(Manifest(id="m1", manifest_no="M-1", manifest_date="2025-03-14", rows=(row,), config=config))

    reopened = reopen()

    assert reopened.global_config().slab1_rate.is_nan()
    assert reopened.global_config().slab3_rate == Decimal("-Infinity")
    saved = reopened.history()[0]
    assert saved.config.slab1_rate.is_nan()
    assert saved.rows[0].amount.is_nan()
    assert saved.total_amount.is_nan()


def test_corrupt_record_file_is_fatal(records_path: Path) -> None:
    records_path.write_text("{not json")

    with pytest.raises(RuntimeError):
        JsonKeyValueStore(records_path)


def test_failed_write_leaves_previous_file(records_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
    kv = JsonKeyValueStore(records_path)
    kv.put("history", [])
    before = records_path.read_text()

    def _boom(*_args: object, **_kwargs: object) -> None:
        raise OSError("disk full")

    monkeypatch.setattr("courierbill.runtime.kv_store.os.replace", _boom)
    with pytest.raises(OSError):
        kv.put("history", [{"id": "x"}])

    assert records_path.read_text() == before
    assert kv.get("history") == []
    assert [p.name for p in records_path.parent.iterdir()] == [records_path.name]
