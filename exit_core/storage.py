"""
exit_core/storage.py — SQLite Storage Backend

Tables:
- markers:     Signed exit markers, keyed by marker id
- key_events:  Key event logs, append-only, PRIMARY KEY (identifier, sequence)
- disputes:    Dispute records, keyed by dispute id

The full JSON (wire names) is stored in the `data` column; indexed
columns are extracted for querying without deserializing every row.

Key events are never updated or deleted.  The (identifier, sequence)
primary key is the compare-and-append guard for writers in different
processes: a second event at the same sequence fails with StorageError.
Disputes are the only rows that change (a resolution is attached once).

All sqlite3 failures surface as StorageError.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from contextlib import contextmanager
from typing import Iterator, List, Optional

from pydantic import ValidationError as PydanticValidationError

from .dispute import DisputeRecord
from .errors import StorageError
from .keri import KeyEventBase, parse_key_event
from .record import ExitMarker


logger = logging.getLogger(__name__)


class Storage:
    """SQLite storage for markers, key event logs and disputes."""

    def __init__(self, db_path: str = "./exit_markers.db"):
        self.db_path = db_path
        try:
            self.conn = sqlite3.connect(db_path, check_same_thread=False)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open {db_path}: {e}") from e
        self.conn.row_factory = sqlite3.Row
        self._create_tables()

    def _create_tables(self) -> None:
        """Create tables if they don't exist."""
        with self._guard("create tables"):
            self.conn.executescript("""
                CREATE TABLE IF NOT EXISTS markers (
                    marker_id TEXT PRIMARY KEY,
                    subject TEXT NOT NULL,
                    origin TEXT NOT NULL,
                    exit_type TEXT NOT NULL,
                    timestamp TEXT NOT NULL,
                    data TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_markers_subject
                    ON markers(subject, timestamp);

                CREATE TABLE IF NOT EXISTS key_events (
                    identifier TEXT NOT NULL,
                    sequence INTEGER NOT NULL,
                    event_type TEXT NOT NULL,
                    digest TEXT NOT NULL,
                    data TEXT NOT NULL,
                    PRIMARY KEY (identifier, sequence)
                );

                CREATE TABLE IF NOT EXISTS disputes (
                    dispute_id TEXT PRIMARY KEY,
                    marker_id TEXT NOT NULL,
                    filer_did TEXT NOT NULL,
                    arbiter_did TEXT NOT NULL,
                    filed_at TEXT NOT NULL,
                    resolved INTEGER NOT NULL DEFAULT 0,
                    data TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_disputes_marker
                    ON disputes(marker_id, filed_at);
            """)
            self.conn.commit()

    @contextmanager
    def _guard(self, action: str) -> Iterator[None]:
        try:
            yield
        except sqlite3.Error as e:
            self.conn.rollback()
            logger.error("Storage failure during %s: %s", action, e)
            raise StorageError(f"Storage failure during {action}: {e}") from e
        except (PydanticValidationError, json.JSONDecodeError) as e:
            raise StorageError(f"Corrupt row during {action}: {e}") from e

    # ------------------------------------------------------------------
    # Marker operations
    # ------------------------------------------------------------------

    def save_marker(self, marker: ExitMarker) -> None:
        """Save a marker. Re-saving the same id replaces it."""
        if not marker.id:
            raise StorageError("Marker has no id")
        with self._guard(f"save marker {marker.id}"):
            self.conn.execute(
                """INSERT OR REPLACE INTO markers
                   (marker_id, subject, origin, exit_type, timestamp, data)
                   VALUES (?, ?, ?, ?, ?, ?)""",
                (
                    marker.id,
                    marker.subject,
                    marker.origin,
                    marker.exit_type.value,
                    marker.timestamp,
                    json.dumps(marker.to_dict(), ensure_ascii=False),
                ),
            )
            self.conn.commit()

    def get_marker(self, marker_id: str) -> Optional[ExitMarker]:
        """Get a single marker by id."""
        with self._guard(f"get marker {marker_id}"):
            row = self.conn.execute(
                "SELECT data FROM markers WHERE marker_id = ?", (marker_id,)
            ).fetchone()
            if row:
                return ExitMarker.model_validate_json(row["data"])
            return None

    def list_markers(self, subject: Optional[str] = None) -> List[ExitMarker]:
        """All markers, optionally for one subject, oldest first."""
        query = "SELECT data FROM markers"
        params: list = []
        if subject:
            query += " WHERE subject = ?"
            params.append(subject)
        query += " ORDER BY timestamp, marker_id"
        with self._guard("list markers"):
            rows = self.conn.execute(query, params).fetchall()
            return [ExitMarker.model_validate_json(row["data"]) for row in rows]

    # ------------------------------------------------------------------
    # Key event operations (append-only)
    # ------------------------------------------------------------------

    def append_key_event(self, event: KeyEventBase) -> None:
        """Append one key event.

        Raises:
            StorageError: If an event already exists at (identifier, sequence).
        """
        with self._guard(f"append key event {event.identifier}#{event.sequence}"):
            self.conn.execute(
                """INSERT INTO key_events
                   (identifier, sequence, event_type, digest, data)
                   VALUES (?, ?, ?, ?, ?)""",
                (
                    event.identifier,
                    event.sequence,
                    event.type,
                    event.digest(),
                    json.dumps(event.to_dict(), ensure_ascii=False),
                ),
            )
            self.conn.commit()

    def get_key_events(self, identifier: str) -> List[KeyEventBase]:
        """Every event for ``identifier``, in sequence order."""
        with self._guard(f"get key events {identifier}"):
            rows = self.conn.execute(
                "SELECT data FROM key_events WHERE identifier = ? ORDER BY sequence",
                (identifier,),
            ).fetchall()
            return [parse_key_event(json.loads(row["data"])) for row in rows]

    def list_identifiers(self) -> List[str]:
        """Identifiers that have at least one key event."""
        with self._guard("list identifiers"):
            rows = self.conn.execute(
                "SELECT DISTINCT identifier FROM key_events ORDER BY identifier"
            ).fetchall()
            return [row["identifier"] for row in rows]

    # ------------------------------------------------------------------
    # Dispute operations
    # ------------------------------------------------------------------

    def save_dispute(self, dispute: DisputeRecord) -> None:
        """Insert or update a dispute (updates attach the resolution)."""
        with self._guard(f"save dispute {dispute.id}"):
            self.conn.execute(
                """INSERT INTO disputes
                   (dispute_id, marker_id, filer_did, arbiter_did, filed_at,
                    resolved, data)
                   VALUES (?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT(dispute_id) DO UPDATE SET
                       resolved = excluded.resolved,
                       data = excluded.data""",
                (
                    dispute.id,
                    dispute.marker_id,
                    dispute.filer_did,
                    dispute.arbiter_did,
                    dispute.filed_at,
                    int(dispute.is_resolved),
                    json.dumps(dispute.to_dict(), ensure_ascii=False),
                ),
            )
            self.conn.commit()

    def get_dispute(self, dispute_id: str) -> Optional[DisputeRecord]:
        with self._guard(f"get dispute {dispute_id}"):
            row = self.conn.execute(
                "SELECT data FROM disputes WHERE dispute_id = ?", (dispute_id,)
            ).fetchone()
            if row:
                return DisputeRecord.model_validate_json(row["data"])
            return None

    def get_disputes_for_marker(self, marker_id: str) -> List[DisputeRecord]:
        """Disputes filed against one marker, oldest first."""
        with self._guard(f"get disputes for {marker_id}"):
            rows = self.conn.execute(
                "SELECT data FROM disputes WHERE marker_id = ? "
                "ORDER BY filed_at, dispute_id",
                (marker_id,),
            ).fetchall()
            return [DisputeRecord.model_validate_json(row["data"]) for row in rows]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def close(self) -> None:
        """Close the database connection."""
        self.conn.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()
