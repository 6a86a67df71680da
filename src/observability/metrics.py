"""Prometheus metric definitions for alerts BFF self-instrumentation.

All metrics are module-level singletons registered with the default
prometheus_client registry.  Import them wherever instrumentation is needed.
"""

from prometheus_client import Counter, Gauge, Histogram, Info

# ---------------------------------------------------------------------------
# Histogram bucket definitions
# ---------------------------------------------------------------------------

REQUEST_DURATION_BUCKETS = (0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5)
PROJECTION_DURATION_BUCKETS = (0.001, 0.0025, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 1.0)

# ---------------------------------------------------------------------------
# Request-level metrics
# ---------------------------------------------------------------------------

REQUEST_DURATION = Histogram(
    "alerts_bff_request_duration_seconds",
    "End-to-end request duration in seconds",
    labelnames=["endpoint"],
    buckets=REQUEST_DURATION_BUCKETS,
)

REQUESTS_TOTAL = Counter(
    "alerts_bff_requests_total",
    "Total number of requests",
    labelnames=["endpoint", "status"],
)

# ---------------------------------------------------------------------------
# Ingestion metrics
# ---------------------------------------------------------------------------

EVENTS_INGESTED_TOTAL = Counter(
    "alerts_bff_events_ingested_total",
    "Inbound alert events by ingest outcome",
    labelnames=["outcome"],
)

PROJECTION_DURATION = Histogram(
    "alerts_bff_projection_duration_seconds",
    "Time spent projecting one event into its incident, lock wait included",
    buckets=PROJECTION_DURATION_BUCKETS,
)

# ---------------------------------------------------------------------------
# Notification metrics
# ---------------------------------------------------------------------------

NOTIFICATIONS_DROPPED_TOTAL = Counter(
    "alerts_bff_notifications_dropped_total",
    "Live-update messages dropped because a client queue was full",
    labelnames=["type"],
)

WS_CONNECTIONS = Gauge(
    "alerts_bff_ws_connections",
    "Number of connected live-update websocket clients",
)

SMS_SENT_TOTAL = Counter(
    "alerts_bff_sms_sent_total",
    "SMS side-channel sends",
    labelnames=["trigger", "status"],
)

# ---------------------------------------------------------------------------
# Health / info metrics
# ---------------------------------------------------------------------------

COMPONENT_HEALTHY = Gauge(
    "alerts_bff_component_healthy",
    "Whether a dependency component is healthy (1=healthy, 0=unhealthy)",
    labelnames=["component"],
)

APP_INFO = Info(
    "alerts_bff",
    "Alerts BFF build information",
)
