"""
Append-only SQLite log of lifecycle events

Every write names the version each touched stream must be at. A
cancellation that crosses the monthly limit writes to the commitment and to
the actor's record in one transaction, so either both land or neither does.
Replaying a command id that already wrote to these streams hands back the
stored events and writes nothing.
"""

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Iterator

from order_lifecycle.kernel.errors import (
    CommandIdempotencyViolation,
    EventStoreError,
    StreamVersionConflict,
)
from order_lifecycle.kernel.events import Event
from order_lifecycle.kernel.logging import get_logger
from order_lifecycle.kernel.metrics import (
    events_appended_total,
    stream_version_conflicts_total,
)
from order_lifecycle.kernel.retry import retry_on_sqlite_lock

logger = get_logger(__name__)

StreamBatches = dict[str, tuple[int, list[Event]]]

_COLUMNS = (
    "event_id",
    "stream_id",
    "stream_type",
    "version",
    "command_id",
    "event_type",
    "occurred_at",
    "actor_id",
    "payload_json",
)
_SELECT = f"SELECT {', '.join(_COLUMNS)} FROM events"
_INSERT = f"INSERT INTO events ({', '.join(_COLUMNS)}) VALUES ({', '.join('?' * len(_COLUMNS))})"

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS events (
        event_id TEXT PRIMARY KEY,
        stream_id TEXT NOT NULL,
        stream_type TEXT NOT NULL,
        version INTEGER NOT NULL,
        command_id TEXT NOT NULL,
        event_type TEXT NOT NULL,
        occurred_at TEXT NOT NULL,
        actor_id TEXT,
        payload_json TEXT NOT NULL,
        UNIQUE (stream_id, version)
    )
    """,
    "CREATE INDEX IF NOT EXISTS ix_events_stream ON events (stream_id, version)",
    "CREATE INDEX IF NOT EXISTS ix_events_command ON events (command_id)",
    "CREATE INDEX IF NOT EXISTS ix_events_kind ON events (stream_type, event_type)",
    "CREATE INDEX IF NOT EXISTS ix_events_occurred ON events (occurred_at)",
)


def _to_row(event: Event) -> tuple[Any, ...]:
    return (
        event.event_id,
        event.stream_id,
        event.stream_type,
        event.version,
        event.command_id,
        event.event_type,
        event.occurred_at.isoformat(),
        event.actor_id,
        json.dumps(event.payload),
    )


def _from_row(row: sqlite3.Row) -> Event:
    return Event(
        event_id=row["event_id"],
        stream_id=row["stream_id"],
        stream_type=row["stream_type"],
        version=row["version"],
        command_id=row["command_id"],
        event_type=row["event_type"],
        occurred_at=datetime.fromisoformat(row["occurred_at"]),
        actor_id=row["actor_id"],
        payload=json.loads(row["payload_json"]),
    )


class SQLiteEventStore:
    """
    Event log in one SQLite file (WAL journal)

    Engines in different processes may share the file. A writer takes the
    write lock before reading stream versions (BEGIN IMMEDIATE), so the check
    and the insert cannot interleave with another writer.
    """

    def __init__(self, db_path: str | Path) -> None:
        self.db_path = Path(db_path)
        with self._connect() as conn:
            conn.execute("PRAGMA journal_mode=WAL")
            conn.execute("PRAGMA synchronous=NORMAL")
            for statement in _SCHEMA:
                conn.execute(statement)
            conn.commit()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        try:
            yield conn
        finally:
            conn.close()

    def _select(self, where: str = "", params: list[Any] | None = None, limit: int | None = None) -> list[Event]:
        query = _SELECT + (f" WHERE {where}" if where else "")
        query += " ORDER BY version ASC" if where == "stream_id = ?" else " ORDER BY rowid ASC"
        params = list(params or [])
        if limit:
            query += " LIMIT ?"
            params.append(limit)
        with self._connect() as conn:
            return [_from_row(row) for row in conn.execute(query, params)]

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def append(self, stream_id: str, expected_version: int, events: list[Event]) -> list[Event]:
        """Single-stream shorthand for append_streams"""
        return self.append_streams({stream_id: (expected_version, events)})

    @retry_on_sqlite_lock()
    def append_streams(self, batches: StreamBatches) -> list[Event]:
        """
        Write one command's events across one or more streams atomically

        Args:
            batches: stream_id -> (version the stream must be at, its events)

        Returns:
            The events now stored for this command; on a replay these are the
            ones written the first time

        Raises:
            StreamVersionConflict: a stream moved past its expected version
            CommandIdempotencyViolation: the command id collided but no stored
                events could be found for it
            EventStoreError: any other database failure
        """
        events = [event for _, stream_events in batches.values() for event in stream_events]
        if not events:
            return []

        command_id = events[0].command_id
        # One command id may have written to other streams too; only these count
        already_stored = [e for e in self._by_command(command_id) if e.stream_id in batches]
        if already_stored:
            logger.info("Replayed command, nothing written", command_id=command_id, events=len(already_stored))
            return already_stored

        with self._connect() as conn:
            try:
                conn.execute("BEGIN IMMEDIATE")
                for stream_id, (expected, _) in batches.items():
                    actual = self._version(conn, stream_id)
                    if actual != expected:
                        raise StreamVersionConflict(stream_id, expected, actual)
                conn.executemany(_INSERT, [_to_row(event) for event in events])
                conn.commit()
            except StreamVersionConflict as conflict:
                conn.rollback()
                self._note_conflict(conflict, events)
                raise
            except sqlite3.IntegrityError as e:
                conn.rollback()
                message = str(e).lower()
                if "version" in message:
                    conflict = self._locate_conflict(conn, batches)
                    self._note_conflict(conflict, events)
                    raise conflict from e
                if "event_id" in message:
                    # The same command committed between our check and our insert
                    stored = self._by_command(command_id)
                    if stored:
                        return stored
                    raise CommandIdempotencyViolation(command_id) from e
                raise EventStoreError(f"Failed to append events: {e}") from e
            except sqlite3.OperationalError:
                conn.rollback()
                raise
            except Exception as e:
                conn.rollback()
                raise EventStoreError(f"Unexpected error appending events: {e}") from e

        for event in events:
            events_appended_total.labels(stream_type=event.stream_type, event_type=event.event_type).inc()
        return events

    def _locate_conflict(self, conn: sqlite3.Connection, batches: StreamBatches) -> StreamVersionConflict:
        for stream_id, (expected, _) in batches.items():
            actual = self._version(conn, stream_id)
            if actual != expected:
                return StreamVersionConflict(stream_id, expected, actual)
        stream_id, (expected, _) = next(iter(batches.items()))
        return StreamVersionConflict(stream_id, expected, expected + 1)

    def _note_conflict(self, conflict: StreamVersionConflict, events: list[Event]) -> None:
        stream_type = next(
            (e.stream_type for e in events if e.stream_id == conflict.stream_id),
            "unknown",
        )
        stream_version_conflicts_total.labels(stream_type=stream_type).inc()
        logger.warning(
            "Stream moved under a write",
            stream_id=conflict.stream_id,
            expected_version=conflict.expected_version,
            actual_version=conflict.actual_version,
        )

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load_stream(self, stream_id: str) -> list[Event]:
        return self._select("stream_id = ?", [stream_id])

    def load_all_events(self) -> list[Event]:
        """
        Every event in commit order

        Commit order rather than timestamp order: a frozen test clock gives
        many events the same ``occurred_at``.
        """
        return self._select()

    def query_events(
        self,
        *,
        stream_type: str | None = None,
        event_type: str | None = None,
        actor_id: str | None = None,
        from_time: datetime | None = None,
        to_time: datetime | None = None,
        limit: int | None = None,
    ) -> list[Event]:
        """Events matching every given filter, in commit order; time bounds are inclusive"""
        filters: list[tuple[str, Any]] = [
            ("stream_type = ?", stream_type),
            ("event_type = ?", event_type),
            ("actor_id = ?", actor_id),
            ("occurred_at >= ?", from_time.isoformat() if from_time else None),
            ("occurred_at <= ?", to_time.isoformat() if to_time else None),
        ]
        active = [(clause, value) for clause, value in filters if value]
        return self._select(
            " AND ".join(clause for clause, _ in active),
            [value for _, value in active],
            limit,
        )

    def get_stream_version(self, stream_id: str) -> int:
        """Version of the stream's last event; 0 for a stream never written"""
        with self._connect() as conn:
            return self._version(conn, stream_id)

    def count_events(self) -> int:
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(*) FROM events").fetchone()[0]

    def count_streams(self) -> int:
        with self._connect() as conn:
            return conn.execute("SELECT COUNT(DISTINCT stream_id) FROM events").fetchone()[0]

    @staticmethod
    def _version(conn: sqlite3.Connection, stream_id: str) -> int:
        row = conn.execute("SELECT MAX(version) FROM events WHERE stream_id = ?", (stream_id,)).fetchone()
        return row[0] or 0

    def _by_command(self, command_id: str) -> list[Event]:
        return self._select("command_id = ?", [command_id])
