"""Incident projection: stores each new event and folds it into its incident.

Inserting the event and the read-modify-write that follows (read incident,
read all events, compute, upsert) run under a per-incident ``KeyedLock``, so
two events for the same key can't overwrite each other's ``event_count``
increment or flag recomputation. Different keys project in parallel.
"""

import asyncio
import contextlib
import logging
import time

from src.alerts.errors import StorageError
from src.alerts.locks import KeyedLock
from src.alerts.models import AlertEvent, AlertState, Incident, IncidentStatus
from src.alerts.quality import compute_quality_flags
from src.observability.metrics import PROJECTION_DURATION
from src.storage.store import IncidentStore

logger = logging.getLogger(__name__)


def _status_for(event: AlertEvent) -> IncidentStatus:
    return IncidentStatus.RESOLVED if event.alert.state == AlertState.RESOLVED else IncidentStatus.OPEN


def apply_event(
    existing: Incident | None,
    event: AlertEvent,
    events: list[AlertEvent],
) -> Incident:
    """Return the incident after ``event`` is merged into ``existing``.

    Args:
        existing: The stored incident, or None if this is the first event for the key.
        event: The newly ingested event; its fields become the incident's current fields.
        events: Every stored event for the key. Ignored when ``existing`` is None.
    """
    current = {
        "status": _status_for(event),
        "current_severity": event.alert.severity,
        "current_priority": event.decision.priority,
        "current_action": event.decision.action,
        "auto": event.decision.auto,
        "risk_score": event.decision.risk_score or 0.0,
        "reason_codes": list(event.decision.reason_codes),
        "last_observed_at": event.observed_at,
        "latest_event_id": event.event_id,
    }

    if existing is None:
        return Incident(
            dedupe_key=event.dedupe_key,
            namespace=event.service.namespace,
            service=event.service.name,
            first_observed_at=event.observed_at,
            event_count=1,
            quality_flags=sorted(compute_quality_flags([event])),
            **current,
        )

    return existing.model_copy(
        update={
            **current,
            "event_count": existing.event_count + 1,
            "quality_flags": sorted(compute_quality_flags(events)),
        }
    )


class IncidentProjector:
    """Records events and serializes projections per incident key over an ``IncidentStore``.

    The event insert, the projection and the rollback of a failed projection
    all happen while the key is held, so no other ingest for the same key can
    see an event that is not yet (or no longer) counted in the incident.
    """

    def __init__(self, store: IncidentStore, locks: KeyedLock | None = None) -> None:
        self._store = store
        self._locks = locks or KeyedLock()

    async def record(self, event: AlertEvent) -> Incident | None:
        """Store ``event`` and fold it into its incident.

        Returns:
            The persisted incident, or None if the event was already stored.

        Raises:
            StorageError: If the insert, a read or the upsert fails. A failed
                projection removes the inserted event again before raising.
        """
        start = time.monotonic()
        async with self._locks.hold(event.incident_key):
            worker = asyncio.ensure_future(asyncio.to_thread(self._record_locked, event))
            try:
                incident = await asyncio.shield(worker)
            except asyncio.CancelledError:
                # The thread keeps running; hold the key until it is done.
                while not worker.done():
                    with contextlib.suppress(asyncio.CancelledError):
                        await asyncio.wait({worker})
                raise

        if incident is None:
            return None
        PROJECTION_DURATION.observe(time.monotonic() - start)
        logger.debug(
            "Projected event %s into incident %s (count=%d, status=%s)",
            event.event_id,
            event.incident_key,
            incident.event_count,
            incident.status,
        )
        return incident

    def _record_locked(self, event: AlertEvent) -> Incident | None:
        if not self._store.insert_event(event):
            return None
        try:
            return self._project_locked(event)
        except Exception:
            self._discard(event)
            raise

    def _project_locked(self, event: AlertEvent) -> Incident:
        key = event.incident_key
        existing = self._store.get_incident(key)
        events = self._store.get_events_for_incident(key) if existing is not None else [event]
        incident = apply_event(existing, event, events)
        self._store.upsert_incident(incident)
        return incident

    def _discard(self, event: AlertEvent) -> None:
        try:
            self._store.discard_event(event.event_id)
        except StorageError:
            logger.exception("Could not discard event %s after failed projection", event.event_id)
