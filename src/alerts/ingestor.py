"""Webhook event ingestion: validate, record and project, notify.

``EventIngestor.ingest`` never raises for invalid input or storage problems;
it returns an ``IngestResult`` whose ``outcome`` tells the caller what
happened. Notifications are published after the projection lock is released,
and the SMS side channel runs as a detached task whose failures are only
logged.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable, Mapping
from enum import StrEnum
from typing import Any, TypeAlias

from pydantic import BaseModel, ValidationError

from src.alerts.errors import InvalidEventError, StorageError
from src.alerts.models import AlertEvent, Incident, Severity
from src.alerts.projector import IncidentProjector
from src.notify import messages
from src.notify.messages import NotificationMessage, NotificationSink
from src.notify.sms import SmsResult
from src.observability.metrics import EVENTS_INGESTED_TOTAL
from src.storage.store import IncidentStore

logger = logging.getLogger(__name__)

IDENTITY_FIELDS = ("event_id", "dedupe_key", "service.name", "service.namespace")

SideChannel: TypeAlias = Callable[[AlertEvent], Awaitable[SmsResult | None]]


class IngestOutcome(StrEnum):
    INGESTED = "ingested"
    DUPLICATE = "duplicate"
    INVALID_EVENT = "invalid_event"
    STORAGE_FAILURE = "storage_failure"


class IngestResult(BaseModel):
    outcome: IngestOutcome
    message: str
    incident: Incident | None = None

    @property
    def success(self) -> bool:
        return self.outcome in (IngestOutcome.INGESTED, IngestOutcome.DUPLICATE)


def _lookup(payload: Mapping[str, Any], dotted: str) -> Any:
    value: Any = payload
    for part in dotted.split("."):
        if not isinstance(value, Mapping):
            return None
        value = value.get(part)
    return value


def validate_event(payload: AlertEvent | Mapping[str, Any]) -> AlertEvent:
    """Check identity fields, then parse the payload against the alerts.v1 schema.

    Raises:
        InvalidEventError: If identity fields are missing/empty or the schema
            validation fails.
    """
    if isinstance(payload, AlertEvent):
        raw: Mapping[str, Any] = payload.model_dump()
    elif isinstance(payload, Mapping):
        raw = payload
    else:
        msg = "Event payload must be a JSON object"
        raise InvalidEventError(msg)

    missing = [name for name in IDENTITY_FIELDS if not _lookup(raw, name)]
    if missing:
        msg = f"Missing required fields: {', '.join(missing)}"
        raise InvalidEventError(msg)

    if isinstance(payload, AlertEvent):
        return payload
    try:
        return AlertEvent.model_validate(raw)
    except ValidationError as e:
        fields = ", ".join(".".join(str(p) for p in err["loc"]) for err in e.errors())
        msg = f"Invalid event: {fields}"
        raise InvalidEventError(msg) from e


class EventIngestor:
    """Entry point for inbound alert events."""

    def __init__(
        self,
        store: IncidentStore,
        *,
        projector: IncidentProjector | None = None,
        sink: NotificationSink | None = None,
        side_channel: SideChannel | None = None,
        side_channel_min_severity: Severity = Severity.INFO,
    ) -> None:
        self._projector = projector or IncidentProjector(store)
        self._sink = sink
        self._side_channel = side_channel
        self._min_severity = side_channel_min_severity
        self._background: set[asyncio.Task[None]] = set()

    async def ingest(self, payload: AlertEvent | Mapping[str, Any]) -> IngestResult:
        try:
            event = validate_event(payload)
        except InvalidEventError as e:
            logger.warning("Rejected alert event: %s", e)
            return self._result(IngestOutcome.INVALID_EVENT, str(e))

        try:
            incident = await self._projector.record(event)
        except StorageError as e:
            return self._result(IngestOutcome.STORAGE_FAILURE, str(e))

        if incident is None:
            logger.info("Duplicate event %s ignored", event.event_id)
            return self._result(IngestOutcome.DUPLICATE, "Event already exists (idempotent)")

        self._publish(messages.event_received(event))
        self._publish(messages.incident_updated(event))
        self._dispatch_side_channel(event)

        logger.info(
            "Ingested event %s for %s/%s (dedupe_key=%s, state=%s)",
            event.event_id,
            event.service.namespace,
            event.service.name,
            event.dedupe_key,
            event.alert.state,
        )
        return self._result(IngestOutcome.INGESTED, "Event ingested successfully", incident)

    async def drain(self) -> None:
        """Wait for in-flight side-channel tasks to finish."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel in-flight side-channel tasks (shutdown)."""
        for task in self._background:
            task.cancel()
        await self.drain()

    @staticmethod
    def _result(outcome: IngestOutcome, message: str, incident: Incident | None = None) -> IngestResult:
        EVENTS_INGESTED_TOTAL.labels(outcome=outcome.value).inc()
        return IngestResult(outcome=outcome, message=message, incident=incident)

    def _publish(self, message: NotificationMessage) -> None:
        if self._sink is None:
            return
        try:
            self._sink.publish(message)
        except Exception:
            logger.exception("Failed to publish %s notification", message.type.value)

    def _dispatch_side_channel(self, event: AlertEvent) -> None:
        if self._side_channel is None or event.alert.severity.rank < self._min_severity.rank:
            return
        task = asyncio.create_task(self._run_side_channel(event), name=f"side-channel-{event.event_id}")
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _run_side_channel(self, event: AlertEvent) -> None:
        assert self._side_channel is not None
        try:
            result = await self._side_channel(event)
        except Exception:
            logger.exception("Side-channel notification failed for event %s", event.event_id)
            return
        if result is not None and not result.success:
            logger.warning("Side-channel notification for event %s was rejected: %s", event.event_id, result.error)
