"""FastAPI backend for the alerts dashboard.

Receives alert events from the upstream detection service on
``/ingest/webhook``, serves the incident views to the dashboard, and pushes
live updates over ``/ws``. The store, hub and ingestor are built once at
startup and shared across requests.
"""

import asyncio
import logging
import time
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import UTC, datetime
from typing import Any

from fastapi import FastAPI, HTTPException, Request, Response, WebSocket
from fastapi.responses import JSONResponse
from prometheus_client import CONTENT_TYPE_LATEST, generate_latest
from pydantic import BaseModel, ConfigDict, Field

from src.alerts.errors import StorageError
from src.alerts.ingestor import EventIngestor, IngestOutcome
from src.alerts.models import (
    AlertEvent,
    Incident,
    IncidentDetail,
    IncidentFilter,
    Overview,
    ServiceRollup,
    Severity,
)
from src.alerts.projector import IncidentProjector
from src.alerts.service import AlertService
from src.config import get_settings
from src.notify.hub import ConnectionHub
from src.notify.scheduler import start_scheduler, stop_scheduler
from src.notify.sms import is_sms_configured, send_alert_sms, send_sms
from src.observability.metrics import APP_INFO, COMPONENT_HEALTHY, REQUEST_DURATION, REQUESTS_TOTAL
from src.storage.store import SqliteStore

logger = logging.getLogger(__name__)

APP_VERSION = "0.1.0"

_INGEST_STATUS_CODES = {
    IngestOutcome.INGESTED: 200,
    IngestOutcome.DUPLICATE: 200,
    IngestOutcome.INVALID_EVENT: 400,
    IngestOutcome.STORAGE_FAILURE: 503,
}


# ---------------------------------------------------------------------------
# Pydantic models
# ---------------------------------------------------------------------------


class IngestResponse(BaseModel):
    """Response body for POST /ingest/webhook."""

    success: bool
    message: str | None = None
    error: str | None = None


class IncidentListResponse(BaseModel):
    incidents: list[Incident]
    total: int


class ServiceListResponse(BaseModel):
    services: list[ServiceRollup]
    total: int


class SmsRequest(BaseModel):
    """Request body for POST /api/notifications/sms."""

    model_config = ConfigDict(populate_by_name=True)

    recipient: str = ""
    message: str = ""
    sender_id: str | None = None
    should_summarize: bool = Field(default=True, alias="shouldSummarize")


class ComponentHealth(BaseModel):
    """Health status of a single dependency."""

    name: str
    status: str
    detail: str | None = None


class HealthResponse(BaseModel):
    """Response body for GET /health."""

    status: str
    version: str
    timestamp: str
    components: list[ComponentHealth]


# ---------------------------------------------------------------------------
# Application lifespan
# ---------------------------------------------------------------------------


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Open the store and wire the ingestion pipeline once at startup."""
    settings = get_settings()
    APP_INFO.info({"version": APP_VERSION})

    try:
        store = SqliteStore(settings.database_path)
        min_severity = Severity(settings.sms_min_severity)
    except Exception:
        logger.exception("Failed to initialise alerts BFF")
        raise

    hub = ConnectionHub(queue_size=settings.ws_queue_size)
    side_channel = send_alert_sms if is_sms_configured() else None
    if side_channel is None:
        logger.info("SMS paging disabled (FITSMS_API_KEY or SMS_RECIPIENT not set)")

    ingestor = EventIngestor(
        store,
        projector=IncidentProjector(store),
        sink=hub,
        side_channel=side_channel,
        side_channel_min_severity=min_severity,
    )
    service = AlertService(store, ingestor)

    app.state.store = store
    app.state.hub = hub
    app.state.ingestor = ingestor
    app.state.service = service
    logger.info("Alerts BFF ready (database=%s)", settings.database_path)

    start_scheduler(service, hub)
    yield
    stop_scheduler()
    await ingestor.aclose()
    store.close()
    logger.info("Shutting down alerts BFF")


app = FastAPI(title="Alerts Dashboard BFF", lifespan=lifespan)


@app.exception_handler(StorageError)
async def storage_error_handler(request: Request, exc: StorageError) -> JSONResponse:
    logger.error("Storage error on %s: %s", request.url.path, exc)
    return JSONResponse(status_code=503, content={"error": "Storage unavailable"})


# ---------------------------------------------------------------------------
# Operational endpoints
# ---------------------------------------------------------------------------


@app.get("/metrics")
async def metrics() -> Response:
    """Expose Prometheus metrics in exposition format."""
    return Response(content=generate_latest(), media_type=CONTENT_TYPE_LATEST)


@app.get("/health", response_model=HealthResponse)
async def health() -> HealthResponse:
    """Check health of the BFF and its storage."""
    components: list[ComponentHealth] = []

    try:
        await asyncio.to_thread(app.state.store.ping)
        components.append(ComponentHealth(name="storage", status="healthy"))
    except Exception as exc:
        components.append(ComponentHealth(name="storage", status="unhealthy", detail=str(exc)))

    if is_sms_configured():
        components.append(ComponentHealth(name="sms", status="healthy", detail="configured"))

    for comp in components:
        COMPONENT_HEALTHY.labels(component=comp.name).set(1.0 if comp.status == "healthy" else 0.0)

    healthy_count = sum(1 for c in components if c.status == "healthy")
    if healthy_count == len(components):
        overall = "healthy"
    elif healthy_count == 0:
        overall = "unhealthy"
    else:
        overall = "degraded"

    return HealthResponse(
        status=overall,
        version=APP_VERSION,
        timestamp=datetime.now(UTC).isoformat(),
        components=components,
    )


# ---------------------------------------------------------------------------
# Webhook ingestion
# ---------------------------------------------------------------------------


@app.post("/ingest/webhook", response_model=IngestResponse)
async def ingest_webhook(request: Request) -> JSONResponse:
    """Receive a full alert event from the upstream alert service."""
    start = time.monotonic()
    try:
        payload = await request.json()
    except ValueError:
        REQUESTS_TOTAL.labels(endpoint="/ingest/webhook", status="error").inc()
        return JSONResponse(
            status_code=400,
            content=IngestResponse(success=False, error="Request body is not valid JSON").model_dump(exclude_none=True),
        )

    try:
        result = await app.state.service.ingest(payload)
    except Exception:
        REQUESTS_TOTAL.labels(endpoint="/ingest/webhook", status="error").inc()
        logger.exception("Webhook ingestion error")
        return JSONResponse(
            status_code=500,
            content=IngestResponse(success=False, error="Internal server error").model_dump(exclude_none=True),
        )
    finally:
        REQUEST_DURATION.labels(endpoint="/ingest/webhook").observe(time.monotonic() - start)

    REQUESTS_TOTAL.labels(endpoint="/ingest/webhook", status="success" if result.success else "error").inc()
    if result.success:
        body = IngestResponse(success=True, message=result.message)
    else:
        body = IngestResponse(success=False, error=result.message)
    return JSONResponse(status_code=_INGEST_STATUS_CODES[result.outcome], content=body.model_dump(exclude_none=True))


# ---------------------------------------------------------------------------
# Dashboard REST API
# ---------------------------------------------------------------------------


@app.get("/api/overview")
async def overview() -> Overview:
    """Dashboard overview stats."""
    return await app.state.service.get_overview()


@app.get("/api/incidents", response_model=IncidentListResponse)
async def list_incidents(
    status: str | None = None,
    severity: str | None = None,
    namespace: str | None = None,
    service: str | None = None,
    priority: str | None = None,
    auto: bool | None = None,
) -> IncidentListResponse:
    """List incidents with optional filters, most recently observed first."""
    incident_filter = IncidentFilter(
        status=status,
        severity=severity,
        namespace=namespace,
        service=service,
        priority=priority,
        auto=auto,
    )
    incidents = await app.state.service.list_incidents(incident_filter)
    return IncidentListResponse(incidents=incidents, total=len(incidents))


@app.get("/api/incidents/{dedupe_key}", response_model=IncidentDetail)
async def incident_detail(dedupe_key: str, namespace: str = "default", service: str | None = None) -> IncidentDetail:
    """Incident detail with its full event timeline."""
    if not service:
        raise HTTPException(status_code=400, detail="service query parameter is required")

    incident = await app.state.service.get_incident_detail(dedupe_key, namespace, service)
    if incident is None:
        raise HTTPException(status_code=404, detail="Incident not found")
    return incident


@app.get("/api/services", response_model=ServiceListResponse)
async def list_services() -> ServiceListResponse:
    """Services with their incident rollup."""
    services = await app.state.service.get_services()
    return ServiceListResponse(services=services, total=len(services))


@app.get("/api/events/{event_id}", response_model=AlertEvent)
async def get_event(event_id: str) -> AlertEvent:
    event = await app.state.service.get_event(event_id)
    if event is None:
        raise HTTPException(status_code=404, detail="Event not found")
    return event


@app.post("/api/notifications/sms")
async def send_sms_notification(request: SmsRequest) -> JSONResponse:
    """Send an ad-hoc SMS through the configured provider."""
    if not request.recipient or not request.message:
        return JSONResponse(status_code=400, content={"success": False, "error": "Recipient and message are required"})
    if not get_settings().fitsms_api_key:
        return JSONResponse(status_code=503, content={"success": False, "error": "SMS provider not configured"})

    result = await send_sms(
        request.recipient,
        request.message,
        sender_id=request.sender_id,
        should_summarize=request.should_summarize,
    )
    if result.success:
        return JSONResponse(status_code=200, content={"success": True, "data": result.data})
    return JSONResponse(status_code=502, content={"success": False, "error": result.error})


@app.get("/api/stats")
async def stats() -> dict[str, Any]:
    """Overview plus live connection count."""
    overview = await app.state.service.get_overview()
    return {"ws_connections": len(app.state.hub), **overview}


@app.websocket("/ws")
async def live_updates(websocket: WebSocket) -> None:
    await app.state.hub.serve(websocket)
