"""Facade over ingestion and the read-only incident queries used by the API."""

import asyncio
from collections.abc import Mapping
from typing import Any

from src.alerts.ingestor import EventIngestor, IngestResult
from src.alerts.models import (
    AlertEvent,
    Incident,
    IncidentDetail,
    IncidentFilter,
    IncidentKey,
    Overview,
    ServiceRollup,
)
from src.storage.store import IncidentStore


class AlertService:
    """Query methods delegate to the store on a worker thread."""

    def __init__(self, store: IncidentStore, ingestor: EventIngestor) -> None:
        self._store = store
        self._ingestor = ingestor

    async def ingest(self, payload: AlertEvent | Mapping[str, Any]) -> IngestResult:
        return await self._ingestor.ingest(payload)

    async def get_overview(self) -> Overview:
        return await asyncio.to_thread(self._store.get_overview)

    async def list_incidents(self, incident_filter: IncidentFilter | None = None) -> list[Incident]:
        return await asyncio.to_thread(self._store.list_incidents, incident_filter)

    async def get_incident_detail(self, dedupe_key: str, namespace: str, service: str) -> IncidentDetail | None:
        key = IncidentKey(dedupe_key, namespace, service)
        return await asyncio.to_thread(self._store.get_incident_detail, key)

    async def get_services(self) -> list[ServiceRollup]:
        return await asyncio.to_thread(self._store.get_service_rollups)

    async def get_event(self, event_id: str) -> AlertEvent | None:
        return await asyncio.to_thread(self._store.get_event, event_id)
