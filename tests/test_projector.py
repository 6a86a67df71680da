"""Tests for incident projection — the pure merge step and the locked store round-trip."""

from collections.abc import Callable
from datetime import UTC, datetime
from typing import Any, TypeAlias

import pytest

from src.alerts.models import AlertEvent, IncidentKey, IncidentStatus, QualityFlag, Severity
from src.alerts.projector import IncidentProjector, apply_event
from src.storage.store import SqliteStore

EventFactory: TypeAlias = Callable[..., dict[str, Any]]


def _event(make_event: EventFactory, *args: Any, **kwargs: Any) -> AlertEvent:
    return AlertEvent.model_validate(make_event(*args, **kwargs))


class TestApplyEvent:
    def test_first_event_creates_incident(self, make_event: EventFactory) -> None:
        event = _event(make_event, "e1", risk_score=None, reason_codes=["latency_breach", "error_spike"])

        incident = apply_event(None, event, [event])

        assert incident.key == IncidentKey("high-latency-payment", "default", "payment-service")
        assert incident.status == IncidentStatus.OPEN
        assert incident.event_count == 1
        assert incident.first_observed_at == incident.last_observed_at == datetime(2026, 1, 4, 10, 30, tzinfo=UTC)
        assert incident.latest_event_id == "e1"
        assert incident.current_severity == Severity.CRITICAL
        assert incident.current_priority == "P1"
        assert incident.current_action == "scale_up"
        assert incident.auto is True
        assert incident.risk_score == 0.0
        assert incident.reason_codes == ["latency_breach", "error_spike"]
        assert set(incident.quality_flags) == set(QualityFlag)

    def test_first_event_resolved_creates_resolved_incident(self, make_event: EventFactory) -> None:
        event = _event(make_event, state="resolved")
        assert apply_event(None, event, [event]).status == IncidentStatus.RESOLVED

    def test_update_copies_current_fields_from_new_event(self, make_event: EventFactory) -> None:
        first = _event(make_event, "e1")
        existing = apply_event(None, first, [first])
        second = _event(
            make_event,
            "e2",
            state="resolved",
            severity="info",
            priority="P3",
            action="none",
            auto=False,
            risk_score=10,
            reason_codes=[],
            observed_at="2026-01-04T10:45:00Z",
            evidence={"http_errors": 0},
        )

        updated = apply_event(existing, second, [second, first])

        assert updated.status == IncidentStatus.RESOLVED
        assert updated.event_count == 2
        assert updated.first_observed_at == datetime(2026, 1, 4, 10, 30, tzinfo=UTC)
        assert updated.last_observed_at == datetime(2026, 1, 4, 10, 45, tzinfo=UTC)
        assert updated.latest_event_id == "e2"
        assert updated.current_severity == Severity.INFO
        assert updated.current_priority == "P3"
        assert updated.current_action == "none"
        assert updated.auto is False
        assert updated.risk_score == 10
        assert updated.reason_codes == []
        assert set(updated.quality_flags) == {QualityFlag.MISSING_CONTEXT, QualityFlag.MISSING_LINKS}

    def test_update_does_not_mutate_existing(self, make_event: EventFactory) -> None:
        first = _event(make_event, "e1")
        existing = apply_event(None, first, [first])
        second = _event(make_event, "e2", state="resolved")

        apply_event(existing, second, [second, first])

        assert existing.event_count == 1
        assert existing.status == IncidentStatus.OPEN


class TestIncidentProjector:
    @pytest.mark.asyncio
    async def test_count_invariant(self, store: SqliteStore, make_event: EventFactory) -> None:
        projector = IncidentProjector(store)
        for i in range(5):
            event = _event(make_event, f"e{i}", observed_at=f"2026-01-04T10:3{i}:00Z")
            await projector.record(event)

        incident = store.get_incident(IncidentKey("high-latency-payment", "default", "payment-service"))
        assert incident is not None
        assert incident.event_count == 5
        assert incident.latest_event_id == "e4"

    @pytest.mark.asyncio
    async def test_status_transitions(self, store: SqliteStore, make_event: EventFactory) -> None:
        projector = IncidentProjector(store)
        statuses: list[IncidentStatus] = []
        for i, state in enumerate(["firing", "resolved", "firing"]):
            event = _event(make_event, f"e{i}", state=state)
            incident = await projector.record(event)
            assert incident is not None
            statuses.append(incident.status)

        assert statuses == [IncidentStatus.OPEN, IncidentStatus.RESOLVED, IncidentStatus.OPEN]

    @pytest.mark.asyncio
    async def test_flags_recomputed_over_stored_events(self, store: SqliteStore, make_event: EventFactory) -> None:
        projector = IncidentProjector(store)
        with_links = _event(make_event, "e1", links={"runbook": "https://wiki/runbooks/payment-scale"})
        bare = _event(make_event, "e2")

        for event in (with_links, bare):
            incident = await projector.record(event)

        assert incident is not None
        assert QualityFlag.MISSING_LINKS not in incident.quality_flags
        stored = store.get_incident(with_links.incident_key)
        assert stored is not None
        assert stored.quality_flags == incident.quality_flags

    @pytest.mark.asyncio
    async def test_lock_released_after_projection(self, store: SqliteStore, make_event: EventFactory) -> None:
        from src.alerts.locks import KeyedLock

        locks = KeyedLock()
        projector = IncidentProjector(store, locks)
        event = _event(make_event)

        await projector.record(event)

        assert len(locks) == 0

    @pytest.mark.asyncio
    async def test_already_stored_event_returns_none(self, store: SqliteStore, make_event: EventFactory) -> None:
        projector = IncidentProjector(store)
        event = _event(make_event)

        assert await projector.record(event) is not None
        assert await projector.record(event) is None

        incident = store.get_incident(event.incident_key)
        assert incident is not None
        assert incident.event_count == 1
