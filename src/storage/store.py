"""SQLite-backed store for alert events and incident projections.

All database operations use parameterized queries. A single connection is
shared across worker threads (``check_same_thread=False``) and every statement
runs under a ``threading.Lock``, so callers may invoke the store from
``asyncio.to_thread``. The lock only serializes individual operations; it is
not the per-incident critical section, which lives in the projector.

The schema is auto-created on first access via CREATE TABLE IF NOT EXISTS
(idempotent).
"""

import json
import logging
import sqlite3
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import Protocol

from src.alerts.errors import StorageError
from src.alerts.models import (
    AlertEvent,
    Incident,
    IncidentDetail,
    IncidentFilter,
    IncidentKey,
    Overview,
    ServiceRollup,
)
from src.config import get_settings

logger = logging.getLogger(__name__)

_SCHEMA_SQL = """\
CREATE TABLE IF NOT EXISTS events (
    event_id     TEXT PRIMARY KEY,
    dedupe_key   TEXT NOT NULL,
    namespace    TEXT NOT NULL,
    service      TEXT NOT NULL,
    observed_at  TEXT NOT NULL,
    received_at  TEXT NOT NULL,
    payload      TEXT NOT NULL
);
CREATE INDEX IF NOT EXISTS idx_events_incident ON events(dedupe_key, namespace, service);

CREATE TABLE IF NOT EXISTS incidents (
    dedupe_key        TEXT NOT NULL,
    namespace         TEXT NOT NULL,
    service           TEXT NOT NULL,
    status            TEXT NOT NULL,
    current_severity  TEXT NOT NULL,
    current_priority  TEXT NOT NULL,
    current_action    TEXT NOT NULL,
    auto              INTEGER NOT NULL,
    risk_score        REAL DEFAULT 0.0,
    reason_codes      TEXT DEFAULT '[]',
    first_observed_at TEXT NOT NULL,
    last_observed_at  TEXT NOT NULL,
    latest_event_id   TEXT NOT NULL,
    event_count       INTEGER NOT NULL,
    quality_flags     TEXT DEFAULT '[]',
    PRIMARY KEY (dedupe_key, namespace, service)
);
CREATE INDEX IF NOT EXISTS idx_incidents_last_observed ON incidents(last_observed_at);
"""


class IncidentStore(Protocol):
    """Storage contract the ingestion core depends on."""

    def insert_event(self, event: AlertEvent) -> bool: ...

    def discard_event(self, event_id: str) -> None: ...

    def get_event(self, event_id: str) -> AlertEvent | None: ...

    def get_events_for_incident(self, key: IncidentKey) -> list[AlertEvent]: ...

    def get_incident(self, key: IncidentKey) -> Incident | None: ...

    def upsert_incident(self, incident: Incident) -> None: ...

    def list_incidents(self, incident_filter: IncidentFilter | None = None) -> list[Incident]: ...

    def get_incident_detail(self, key: IncidentKey) -> IncidentDetail | None: ...

    def get_overview(self) -> Overview: ...

    def get_service_rollups(self) -> list[ServiceRollup]: ...

    def ping(self) -> None: ...


def _ts(value: datetime) -> str:
    """Fixed-width UTC ISO 8601 so lexical order in SQLite matches time order."""
    return value.astimezone(UTC).isoformat(timespec="microseconds")


def get_connection(db_path: str | None = None) -> sqlite3.Connection:
    """Open a SQLite connection with WAL mode for concurrent reads.

    Args:
        db_path: Explicit path to the database file. If None, reads from settings.
                 Pass ":memory:" for in-memory databases (tests).

    Returns:
        A new sqlite3.Connection with row_factory set to sqlite3.Row.

    Raises:
        ValueError: If the database path is empty.
    """
    if db_path is None:
        db_path = get_settings().database_path
    if not db_path:
        msg = "Alert store not configured (DATABASE_PATH is empty)"
        raise ValueError(msg)

    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    return conn


def init_schema(conn: sqlite3.Connection) -> None:
    """Create tables and indexes if they don't exist (idempotent)."""
    conn.executescript(_SCHEMA_SQL)


class SqliteStore:
    """``IncidentStore`` implementation on top of one shared SQLite connection."""

    def __init__(self, db_path: str | None = None) -> None:
        self._conn = get_connection(db_path)
        init_schema(self._conn)
        self._lock = threading.Lock()

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    @contextmanager
    def _locked(self, operation: str) -> Iterator[sqlite3.Connection]:
        with self._lock:
            try:
                yield self._conn
            except sqlite3.Error as exc:
                logger.exception("Storage operation '%s' failed", operation)
                raise StorageError(f"{operation} failed: {exc}") from exc

    def ping(self) -> None:
        with self._locked("ping") as conn:
            conn.execute("SELECT 1").fetchone()

    # -----------------------------------------------------------------------
    # Events
    # -----------------------------------------------------------------------

    def insert_event(self, event: AlertEvent) -> bool:
        """Store an event. Returns False if the event_id was already stored."""
        with self._locked("insert_event") as conn:
            cursor = conn.execute(
                """INSERT OR IGNORE INTO events
                   (event_id, dedupe_key, namespace, service, observed_at, received_at, payload)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    event.event_id,
                    event.dedupe_key,
                    event.service.namespace,
                    event.service.name,
                    _ts(event.observed_at),
                    _ts(datetime.now(UTC)),
                    event.model_dump_json(),
                ),
            )
            conn.commit()
            return cursor.rowcount == 1

    def discard_event(self, event_id: str) -> None:
        """Remove an event whose ingestion did not complete."""
        with self._locked("discard_event") as conn:
            conn.execute("DELETE FROM events WHERE event_id = ?", (event_id,))
            conn.commit()

    def get_event(self, event_id: str) -> AlertEvent | None:
        with self._locked("get_event") as conn:
            row = conn.execute("SELECT payload FROM events WHERE event_id = ?", (event_id,)).fetchone()
        if row is None:
            return None
        return AlertEvent.model_validate_json(row["payload"])

    def get_events_for_incident(self, key: IncidentKey) -> list[AlertEvent]:
        """All events for an incident, most recently observed first."""
        with self._locked("get_events_for_incident") as conn:
            return _select_events(conn, key)

    # -----------------------------------------------------------------------
    # Incidents
    # -----------------------------------------------------------------------

    def get_incident(self, key: IncidentKey) -> Incident | None:
        with self._locked("get_incident") as conn:
            return _select_incident(conn, key)

    def upsert_incident(self, incident: Incident) -> None:
        """Write the incident as given, replacing every stored field."""
        with self._locked("upsert_incident") as conn:
            conn.execute(
                """INSERT INTO incidents
                   (dedupe_key, namespace, service, status, current_severity, current_priority,
                    current_action, auto, risk_score, reason_codes, first_observed_at,
                    last_observed_at, latest_event_id, event_count, quality_flags)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                   ON CONFLICT (dedupe_key, namespace, service) DO UPDATE SET
                    status = excluded.status,
                    current_severity = excluded.current_severity,
                    current_priority = excluded.current_priority,
                    current_action = excluded.current_action,
                    auto = excluded.auto,
                    risk_score = excluded.risk_score,
                    reason_codes = excluded.reason_codes,
                    first_observed_at = excluded.first_observed_at,
                    last_observed_at = excluded.last_observed_at,
                    latest_event_id = excluded.latest_event_id,
                    event_count = excluded.event_count,
                    quality_flags = excluded.quality_flags""",
                (
                    incident.dedupe_key,
                    incident.namespace,
                    incident.service,
                    incident.status.value,
                    incident.current_severity.value,
                    incident.current_priority,
                    incident.current_action,
                    int(incident.auto),
                    incident.risk_score,
                    json.dumps(incident.reason_codes),
                    _ts(incident.first_observed_at),
                    _ts(incident.last_observed_at),
                    incident.latest_event_id,
                    incident.event_count,
                    json.dumps(sorted(incident.quality_flags)),
                ),
            )
            conn.commit()

    def list_incidents(self, incident_filter: IncidentFilter | None = None) -> list[Incident]:
        """List incidents, most recently observed first.

        Args:
            incident_filter: Exact-match filters. ``status`` accepts open, resolved
                or all (case-insensitive); all and None skip the status filter.
        """
        conditions: list[str] = []
        params: list[object] = []
        f = incident_filter or IncidentFilter()

        if f.status and f.status.lower() != "all":
            conditions.append("status = ?")
            params.append(f.status.upper())
        if f.severity:
            conditions.append("current_severity = ?")
            params.append(f.severity)
        if f.namespace:
            conditions.append("namespace = ?")
            params.append(f.namespace)
        if f.service:
            conditions.append("service = ?")
            params.append(f.service)
        if f.priority:
            conditions.append("current_priority = ?")
            params.append(f.priority)
        if f.auto is not None:
            conditions.append("auto = ?")
            params.append(int(f.auto))

        where = f" WHERE {' AND '.join(conditions)}" if conditions else ""
        with self._locked("list_incidents") as conn:
            rows = conn.execute(
                f"SELECT * FROM incidents{where} ORDER BY last_observed_at DESC",
                params,
            ).fetchall()
        return [_row_to_incident(r) for r in rows]

    def get_incident_detail(self, key: IncidentKey) -> IncidentDetail | None:
        """Incident plus its events, read as one consistent snapshot."""
        with self._locked("get_incident_detail") as conn:
            incident = _select_incident(conn, key)
            events = _select_events(conn, key) if incident is not None else []
        if incident is None:
            return None
        return IncidentDetail(**incident.model_dump(), events=events)

    # -----------------------------------------------------------------------
    # Aggregates
    # -----------------------------------------------------------------------

    def get_overview(self) -> Overview:
        with self._locked("get_overview") as conn:
            row = conn.execute(
                """SELECT
                     COUNT(*) AS total,
                     COALESCE(SUM(status = 'OPEN'), 0) AS open_count,
                     COALESCE(SUM(status = 'RESOLVED'), 0) AS resolved_count,
                     COALESCE(SUM(current_severity = 'critical'), 0) AS critical_count,
                     COALESCE(SUM(current_severity = 'high'), 0) AS high_count,
                     COALESCE(SUM(current_severity = 'medium'), 0) AS medium_count,
                     COALESCE(SUM(current_severity = 'low'), 0) AS low_count,
                     COALESCE(SUM(auto = 1), 0) AS auto_count,
                     COALESCE(SUM(auto = 0), 0) AS manual_count,
                     MAX(last_observed_at) AS last_updated_at
                   FROM incidents"""
            ).fetchone()
            services_row = conn.execute(
                "SELECT COUNT(*) AS n FROM (SELECT DISTINCT namespace, service FROM incidents)"
            ).fetchone()

        return Overview(
            total_incidents=row["total"],
            open_incidents=row["open_count"],
            resolved_incidents=row["resolved_count"],
            critical_count=row["critical_count"],
            high_count=row["high_count"],
            medium_count=row["medium_count"],
            low_count=row["low_count"],
            auto_actions_count=row["auto_count"],
            manual_actions_count=row["manual_count"],
            services_affected=services_row["n"],
            last_updated_at=row["last_updated_at"] or datetime.now(UTC).isoformat(),
        )

    def get_service_rollups(self) -> list[ServiceRollup]:
        """Per-service incident counts; severity counts only cover open incidents."""
        with self._locked("get_service_rollups") as conn:
            rows = conn.execute(
                """SELECT
                     namespace,
                     service,
                     SUM(status = 'OPEN') AS open_incidents,
                     SUM(status = 'OPEN' AND current_severity = 'critical') AS critical_count,
                     SUM(status = 'OPEN' AND current_severity = 'high') AS high_count,
                     SUM(status = 'OPEN' AND current_severity = 'medium') AS medium_count,
                     SUM(status = 'OPEN' AND current_severity = 'low') AS low_count,
                     MAX(last_observed_at) AS last_alert_at
                   FROM incidents
                   GROUP BY namespace, service
                   ORDER BY open_incidents DESC, critical_count DESC, namespace, service"""
            ).fetchall()
        return [
            ServiceRollup(
                namespace=r["namespace"],
                service=r["service"],
                open_incidents=r["open_incidents"],
                critical_count=r["critical_count"],
                high_count=r["high_count"],
                medium_count=r["medium_count"],
                low_count=r["low_count"],
                last_alert_at=r["last_alert_at"],
            )
            for r in rows
        ]


def _select_incident(conn: sqlite3.Connection, key: IncidentKey) -> Incident | None:
    row = conn.execute(
        "SELECT * FROM incidents WHERE dedupe_key = ? AND namespace = ? AND service = ?",
        tuple(key),
    ).fetchone()
    return _row_to_incident(row) if row is not None else None


def _select_events(conn: sqlite3.Connection, key: IncidentKey) -> list[AlertEvent]:
    rows = conn.execute(
        """SELECT payload FROM events
           WHERE dedupe_key = ? AND namespace = ? AND service = ?
           ORDER BY observed_at DESC""",
        tuple(key),
    ).fetchall()
    return [AlertEvent.model_validate_json(r["payload"]) for r in rows]


def _row_to_incident(row: sqlite3.Row) -> Incident:
    return Incident(
        dedupe_key=row["dedupe_key"],
        namespace=row["namespace"],
        service=row["service"],
        status=row["status"],
        current_severity=row["current_severity"],
        current_priority=row["current_priority"],
        current_action=row["current_action"],
        auto=bool(row["auto"]),
        risk_score=row["risk_score"],
        reason_codes=json.loads(row["reason_codes"]),
        first_observed_at=row["first_observed_at"],
        last_observed_at=row["last_observed_at"],
        latest_event_id=row["latest_event_id"],
        event_count=row["event_count"],
        quality_flags=json.loads(row["quality_flags"]),
    )
