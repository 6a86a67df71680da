"""Live-update message contract and the sink protocol the ingestor publishes to."""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, Protocol

from pydantic import BaseModel

from src.alerts.models import AlertEvent, Overview


class MessageType(StrEnum):
    EVENT_RECEIVED = "event_received"
    INCIDENT_UPDATED = "incident_updated"
    STATS = "stats"
    CONNECTION = "connection"


class NotificationMessage(BaseModel):
    type: MessageType
    data: dict[str, Any]


class NotificationSink(Protocol):
    """Receives messages fire-and-forget. ``publish`` must not block."""

    def publish(self, message: NotificationMessage) -> None: ...


def event_received(event: AlertEvent) -> NotificationMessage:
    return NotificationMessage(
        type=MessageType.EVENT_RECEIVED,
        data={"event_id": event.event_id, "dedupe_key": event.dedupe_key},
    )


def incident_updated(event: AlertEvent) -> NotificationMessage:
    return NotificationMessage(
        type=MessageType.INCIDENT_UPDATED,
        data={
            "dedupe_key": event.dedupe_key,
            "namespace": event.service.namespace,
            "service": event.service.name,
            "state": event.alert.state.value,
        },
    )


def stats(overview: Overview, ws_connections: int) -> NotificationMessage:
    return NotificationMessage(
        type=MessageType.STATS,
        data={"ws_connections": ws_connections, **overview},
    )


def connection() -> NotificationMessage:
    return NotificationMessage(
        type=MessageType.CONNECTION,
        data={"status": "connected", "timestamp": datetime.now(UTC).isoformat()},
    )
