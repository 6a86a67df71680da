"""Domain models for the alerts.v1 event schema and the incident projection."""

from datetime import UTC, datetime
from enum import StrEnum
from typing import Any, NamedTuple

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing_extensions import TypedDict

SCHEMA_VERSION = "alerts.v1"


class AlertState(StrEnum):
    FIRING = "firing"
    RESOLVED = "resolved"


class Severity(StrEnum):
    """Alert severity, declared from least to most severe."""

    INFO = "info"
    LOW = "low"
    WARNING = "warning"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        return list(Severity).index(self)


class IncidentStatus(StrEnum):
    OPEN = "OPEN"
    RESOLVED = "RESOLVED"


class QualityFlag(StrEnum):
    MISSING_EVIDENCE = "missing_evidence"
    MISSING_CONTEXT = "missing_context"
    MISSING_LINKS = "missing_links"


class IncidentKey(NamedTuple):
    """Identity of an incident: every event sharing this triple belongs to it."""

    dedupe_key: str
    namespace: str
    service: str


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


# ---------------------------------------------------------------------------
# Inbound event (alerts.v1)
# ---------------------------------------------------------------------------


class ServiceInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str
    namespace: str


class AlertInfo(BaseModel):
    model_config = ConfigDict(frozen=True)

    type: str = "unknown"
    state: AlertState
    severity: Severity


class Decision(BaseModel):
    model_config = ConfigDict(frozen=True)

    action: str
    auto: bool
    priority: str
    risk_score: float | None = None
    reason_codes: list[str]


class Links(BaseModel):
    """Cross-references attached to an event. Extra string links are kept."""

    model_config = ConfigDict(frozen=True, extra="allow")

    details_ref: str | None = None
    runbook: str | None = None
    dashboard: str | None = None

    def has_usable_link(self) -> bool:
        return bool(self.details_ref or self.runbook or self.dashboard)


class AlertEvent(BaseModel):
    """One detection emitted by the upstream alert service. Never mutated."""

    model_config = ConfigDict(frozen=True)

    schema_version: str = SCHEMA_VERSION
    event_id: str
    dedupe_key: str
    observed_at: datetime
    sent_at: datetime | None = None
    service: ServiceInfo
    alert: AlertInfo
    decision: Decision
    evidence: dict[str, Any] | None = None
    impact: dict[str, Any] | None = None
    context: dict[str, Any] | None = None
    links: Links | None = None
    meta: dict[str, Any] | None = None

    @field_validator("observed_at", "sent_at")
    @classmethod
    def _normalize_timestamp(cls, value: datetime | None) -> datetime | None:
        return _as_utc(value) if value is not None else None

    @property
    def incident_key(self) -> IncidentKey:
        return IncidentKey(self.dedupe_key, self.service.namespace, self.service.name)


# ---------------------------------------------------------------------------
# Incident projection and read models
# ---------------------------------------------------------------------------


class Incident(BaseModel):
    dedupe_key: str
    namespace: str
    service: str
    status: IncidentStatus
    current_severity: Severity
    current_priority: str
    current_action: str
    auto: bool
    risk_score: float = 0.0
    reason_codes: list[str] = Field(default_factory=list)
    first_observed_at: datetime
    last_observed_at: datetime
    latest_event_id: str
    event_count: int
    quality_flags: list[QualityFlag] = Field(default_factory=list)

    @property
    def key(self) -> IncidentKey:
        return IncidentKey(self.dedupe_key, self.namespace, self.service)


class IncidentDetail(Incident):
    events: list[AlertEvent]


class IncidentFilter(BaseModel):
    """Optional filters for listing incidents. None means "don't filter"."""

    status: str | None = None  # open | resolved | all
    severity: str | None = None
    namespace: str | None = None
    service: str | None = None
    priority: str | None = None
    auto: bool | None = None


class Overview(TypedDict):
    total_incidents: int
    open_incidents: int
    resolved_incidents: int
    critical_count: int
    high_count: int
    medium_count: int
    low_count: int
    auto_actions_count: int
    manual_actions_count: int
    services_affected: int
    last_updated_at: str  # ISO 8601


class ServiceRollup(TypedDict):
    namespace: str
    service: str
    open_incidents: int
    critical_count: int
    high_count: int
    medium_count: int
    low_count: int
    last_alert_at: str  # ISO 8601
