"""
Snapshot Store — versioned, checksummed backup of the rules store.

Behavioral Contract:
- ``save`` never raises; failures come back as ``SaveResult(success=False)``
- ``load`` returns None for a missing, unreadable, stale (version mismatch)
  or corrupt (checksum mismatch) snapshot, logging a warning
- The checksum is the first 16 hex characters of the SHA-256 of the
  snapshot data serialised as sorted-key JSON
- Only the latest snapshot is kept
"""

import hashlib
import json
import logging
import os
import sqlite3
import threading
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, Union

from pydantic import ValidationError

from alchemist_kernel.models.snapshot import (
    SNAPSHOT_VERSION,
    RulesSnapshot,
    SaveResult,
    SnapshotData,
)

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "data-alchemist-rules-backup"


def compute_checksum(data: Union[SnapshotData, Dict[str, Any]]) -> str:
    if isinstance(data, SnapshotData):
        data = data.model_dump(mode="json", by_alias=True)
    payload = json.dumps(data, sort_keys=True, default=str).encode()
    return hashlib.sha256(payload).hexdigest()[:16]


def build_snapshot(data: SnapshotData) -> RulesSnapshot:
    return RulesSnapshot(
        version=SNAPSHOT_VERSION,
        timestamp=int(time.time() * 1000),
        data=data,
        checksum=compute_checksum(data),
    )


def serialize_snapshot(snapshot: RulesSnapshot) -> str:
    return snapshot.model_dump_json(by_alias=True)


def parse_snapshot(raw: str) -> Optional[SnapshotData]:
    """Verify and decode a serialised snapshot; None if it must not be trusted."""
    try:
        envelope = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Rules snapshot is not valid JSON, ignoring")
        return None
    if not isinstance(envelope, dict):
        logger.warning("Rules snapshot has an unexpected shape, ignoring")
        return None

    if envelope.get("version") != SNAPSHOT_VERSION:
        logger.warning(
            "Rules snapshot version mismatch (%s != %s), ignoring",
            envelope.get("version"), SNAPSHOT_VERSION,
        )
        return None

    if envelope.get("checksum") != compute_checksum(envelope.get("data") or {}):
        logger.warning("Rules snapshot checksum mismatch, ignoring")
        return None

    try:
        return RulesSnapshot.model_validate(envelope).data
    except ValidationError:
        logger.warning("Rules snapshot failed validation, ignoring", exc_info=True)
        return None


class SnapshotStore(Protocol):
    def save(self, data: SnapshotData) -> SaveResult:
        ...

    def load(self) -> Optional[SnapshotData]:
        ...

    def clear(self) -> None:
        ...


class SQLiteSnapshotStore:
    """
    Snapshot store backed by a single-row SQLite table.
    """

    def __init__(self, db_path: str = ":memory:"):
        self.db_path = db_path
        self._conn = sqlite3.connect(db_path, check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        # One connection is shared by the request and auto-save threads
        self._lock = threading.Lock()
        self._init_schema()

    def _init_schema(self) -> None:
        self._conn.execute("""
            CREATE TABLE IF NOT EXISTS rules_snapshot (
                key TEXT PRIMARY KEY,
                version TEXT NOT NULL,
                timestamp INTEGER NOT NULL,
                checksum TEXT NOT NULL,
                snapshot_json TEXT NOT NULL,
                saved_at TEXT NOT NULL
            )
        """)
        self._conn.commit()

    def save(self, data: SnapshotData) -> SaveResult:
        saved_at = datetime.now(timezone.utc)
        try:
            snapshot = build_snapshot(data)
            with self._lock:
                self._conn.execute(
                    """
                    INSERT INTO rules_snapshot (key, version, timestamp, checksum, snapshot_json, saved_at)
                    VALUES (?, ?, ?, ?, ?, ?)
                    ON CONFLICT(key) DO UPDATE SET
                        version = excluded.version,
                        timestamp = excluded.timestamp,
                        checksum = excluded.checksum,
                        snapshot_json = excluded.snapshot_json,
                        saved_at = excluded.saved_at
                    """,
                    (
                        SNAPSHOT_KEY,
                        snapshot.version,
                        snapshot.timestamp,
                        snapshot.checksum,
                        serialize_snapshot(snapshot),
                        saved_at.isoformat(),
                    ),
                )
                self._conn.commit()
        except (sqlite3.Error, ValueError) as exc:
            logger.exception("Failed to save rules snapshot to %s", self.db_path)
            return SaveResult(success=False, error=str(exc))
        return SaveResult(success=True, saved_at=saved_at)

    def load(self) -> Optional[SnapshotData]:
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT snapshot_json FROM rules_snapshot WHERE key = ?", (SNAPSHOT_KEY,)
                ).fetchone()
        except sqlite3.Error:
            logger.warning("Failed to read rules snapshot from %s", self.db_path, exc_info=True)
            return None
        return parse_snapshot(row["snapshot_json"]) if row else None

    def clear(self) -> None:
        with self._lock:
            self._conn.execute("DELETE FROM rules_snapshot WHERE key = ?", (SNAPSHOT_KEY,))
            self._conn.commit()

    def close(self) -> None:
        with self._lock:
            self._conn.close()


class FileSnapshotStore:
    """Snapshot store backed by one JSON file, replaced atomically on save."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def save(self, data: SnapshotData) -> SaveResult:
        saved_at = datetime.now(timezone.utc)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            snapshot = build_snapshot(data)
            self.path.parent.mkdir(parents=True, exist_ok=True)
            tmp_path.write_text(serialize_snapshot(snapshot), encoding="utf-8")
            os.replace(tmp_path, self.path)
        except (OSError, ValueError) as exc:
            logger.exception("Failed to save rules snapshot to %s", self.path)
            return SaveResult(success=False, error=str(exc))
        return SaveResult(success=True, saved_at=saved_at)

    def load(self) -> Optional[SnapshotData]:
        if not self.path.exists():
            return None
        try:
            raw = self.path.read_text(encoding="utf-8")
        except OSError:
            logger.warning("Failed to read rules snapshot from %s", self.path, exc_info=True)
            return None
        return parse_snapshot(raw)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
