"""Tests for snapshot persistence and the debounced auto-saver."""

import json
import logging
import threading
import time

import pytest

from alchemist_kernel.models.snapshot import AutoSaveStatus, SaveResult
from alchemist_kernel.models.weights import PresetProfile
from alchemist_kernel.persistence.autosave import AutoSaver
from alchemist_kernel.persistence.snapshot_store import (
    FileSnapshotStore,
    SQLiteSnapshotStore,
    build_snapshot,
    compute_checksum,
    parse_snapshot,
    serialize_snapshot,
)
from alchemist_kernel.rules.store import RulesStore


def _make_populated_store() -> RulesStore:
    store = RulesStore()
    store.add_rule({"type": "coRun", "name": "Pair", "taskIds": ["T1", "T2"]})
    store.add_rule({"type": "phaseWindow", "name": "Window", "taskId": "T3", "allowedPhases": [2, 3]})
    store.set_preset_profile(PresetProfile.MINIMIZE_WORKLOAD)
    return store


class _FailingStore:
    def save(self, data):
        raise RuntimeError("disk full")

    def load(self):
        return None

    def clear(self):
        pass


def _wait_for(predicate, timeout: float = 2.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


class TestSnapshotFormat:
    def test_checksum_is_sixteen_hex_chars(self):
        checksum = compute_checksum(_make_populated_store().to_snapshot_data())
        assert len(checksum) == 16
        int(checksum, 16)

    def test_checksum_ignores_key_order(self):
        assert compute_checksum({"a": 1, "b": 2}) == compute_checksum({"b": 2, "a": 1})

    def test_serialized_envelope(self):
        snapshot = build_snapshot(_make_populated_store().to_snapshot_data())
        envelope = json.loads(serialize_snapshot(snapshot))
        assert envelope["version"] == "1.0"
        assert set(envelope["data"]) >= {"rules", "priorityWeights", "priorityMethod", "presetProfile"}
        assert envelope["data"]["rules"][0]["taskIds"] == ["T1", "T2"]

    def test_parse_round_trip(self):
        data = _make_populated_store().to_snapshot_data()
        restored = parse_snapshot(serialize_snapshot(build_snapshot(data)))
        assert restored == data

    def test_tampered_data_rejected(self, caplog):
        envelope = json.loads(serialize_snapshot(build_snapshot(_make_populated_store().to_snapshot_data())))
        envelope["data"]["rules"][0]["name"] = "Tampered"
        with caplog.at_level(logging.WARNING):
            assert parse_snapshot(json.dumps(envelope)) is None
        assert "checksum mismatch" in caplog.text

    def test_version_mismatch_rejected(self):
        envelope = json.loads(serialize_snapshot(build_snapshot(_make_populated_store().to_snapshot_data())))
        envelope["version"] = "0.9"
        assert parse_snapshot(json.dumps(envelope)) is None

    @pytest.mark.parametrize("raw", ["not json", "[1, 2]", "{}"])
    def test_garbage_rejected(self, raw):
        assert parse_snapshot(raw) is None


class TestSQLiteSnapshotStore:
    def test_save_and_load(self):
        snapshots = SQLiteSnapshotStore()
        data = _make_populated_store().to_snapshot_data()
        result = snapshots.save(data)
        assert result.success
        assert result.saved_at is not None
        assert snapshots.load() == data

    def test_only_latest_kept(self):
        snapshots = SQLiteSnapshotStore()
        store = _make_populated_store()
        snapshots.save(store.to_snapshot_data())
        store.add_rule({"type": "coRun", "name": "Later", "taskIds": ["T4", "T5"]})
        snapshots.save(store.to_snapshot_data())
        assert len(snapshots.load().rules) == 3

    def test_empty_and_cleared(self):
        snapshots = SQLiteSnapshotStore()
        assert snapshots.load() is None
        snapshots.save(_make_populated_store().to_snapshot_data())
        snapshots.clear()
        assert snapshots.load() is None

    def test_survives_reopen(self, tmp_path):
        path = str(tmp_path / "rules.db")
        data = _make_populated_store().to_snapshot_data()
        first = SQLiteSnapshotStore(path)
        first.save(data)
        first.close()
        assert SQLiteSnapshotStore(path).load() == data

    def test_concurrent_saves_share_connection(self):
        snapshots = SQLiteSnapshotStore()
        data = _make_populated_store().to_snapshot_data()
        results = []

        def _save_repeatedly():
            for _ in range(20):
                results.append(snapshots.save(data))
                snapshots.load()

        threads = [threading.Thread(target=_save_repeatedly) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(results) == 80
        assert all(result.success for result in results)
        assert snapshots.load() == data


class TestFileSnapshotStore:
    def test_save_and_load(self, tmp_path):
        snapshots = FileSnapshotStore(tmp_path / "backup" / "rules.json")
        data = _make_populated_store().to_snapshot_data()
        assert snapshots.save(data).success
        assert snapshots.load() == data
        assert not (tmp_path / "backup" / "rules.json.tmp").exists()

    def test_corrupt_file(self, tmp_path):
        path = tmp_path / "rules.json"
        path.write_text("{ half written", encoding="utf-8")
        assert FileSnapshotStore(path).load() is None

    def test_missing_file(self, tmp_path):
        snapshots = FileSnapshotStore(tmp_path / "none.json")
        assert snapshots.load() is None
        snapshots.clear()


class TestAutoSaver:
    def test_debounced_save_fires_once(self):
        store = RulesStore()
        snapshots = SQLiteSnapshotStore()
        saved = []
        saver = AutoSaver(store.to_snapshot_data, snapshots, debounce_seconds=0.2, on_saved=saved.append)
        store.attach_auto_saver(saver)

        for index in range(5):
            store.add_rule({"type": "coRun", "name": f"R{index}", "taskIds": ["T1", "T2"]})

        assert _wait_for(lambda: len(saved) == 1)
        assert saver.status == AutoSaveStatus.SAVED
        time.sleep(0.05)
        assert len(saved) == 1
        assert len(snapshots.load().rules) == 5

    def test_on_saved_clears_modified_flag(self):
        store = RulesStore()
        saver = AutoSaver(store.to_snapshot_data, SQLiteSnapshotStore(), debounce_seconds=60, on_saved=store.mark_saved)
        store.attach_auto_saver(saver)
        store.add_rule({"type": "coRun", "name": "R", "taskIds": ["T1", "T2"]})
        assert saver.pending

        result = saver.flush()
        assert result.success
        assert not saver.pending
        assert not store.has_unsaved_changes()

    def test_flush_without_pending_save(self):
        saver = AutoSaver(RulesStore().to_snapshot_data, SQLiteSnapshotStore())
        assert saver.flush() is None
        assert saver.status == AutoSaveStatus.IDLE

    def test_cancel(self):
        snapshots = SQLiteSnapshotStore()
        saver = AutoSaver(RulesStore().to_snapshot_data, snapshots, debounce_seconds=0.01)
        saver.schedule()
        saver.cancel()
        time.sleep(0.05)
        assert snapshots.load() is None
        assert saver.status == AutoSaveStatus.IDLE

    def test_failure_reported_through_status(self):
        saver = AutoSaver(RulesStore().to_snapshot_data, _FailingStore())
        result = saver.save_now()
        assert result == SaveResult(success=False, error="disk full")
        assert saver.status == AutoSaveStatus.ERROR
        assert saver.last_result is result

    def test_edit_during_save_stays_unsaved(self):
        store = RulesStore()
        backing = SQLiteSnapshotStore()

        class _EditingStore:
            def save(self, data):
                result = backing.save(data)
                store.add_rule({"type": "coRun", "name": "Late", "taskIds": ["T3", "T4"]})
                return result

            def load(self):
                return backing.load()

            def clear(self):
                backing.clear()

        saver = AutoSaver(store.to_snapshot_data, _EditingStore(), debounce_seconds=60, on_saved=store.mark_saved)
        store.attach_auto_saver(saver)
        store.add_rule({"type": "coRun", "name": "Early", "taskIds": ["T1", "T2"]})

        result = saver.flush()
        assert result.success
        assert store.has_unsaved_changes()
        assert store.last_saved_at == result.saved_at
        assert [r.name for r in backing.load().rules] == ["Early"]
        assert saver.pending
        saver.cancel()
