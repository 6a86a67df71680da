"""Data-completeness flags for an incident.

A flag is raised only when every event of the incident lacks the signal, so a
single event carrying evidence clears ``missing_evidence`` for the whole
incident.
"""

from collections.abc import Iterable

from src.alerts.models import AlertEvent, QualityFlag


def _missing_evidence(event: AlertEvent) -> bool:
    return not event.evidence


def _missing_context(event: AlertEvent) -> bool:
    return not event.context


def _missing_links(event: AlertEvent) -> bool:
    return event.links is None or not event.links.has_usable_link()


_CHECKS = (
    (QualityFlag.MISSING_EVIDENCE, _missing_evidence),
    (QualityFlag.MISSING_CONTEXT, _missing_context),
    (QualityFlag.MISSING_LINKS, _missing_links),
)


def compute_quality_flags(events: Iterable[AlertEvent]) -> frozenset[QualityFlag]:
    """Return the flags whose signal is absent from every event.

    Raises:
        ValueError: If ``events`` is empty.
    """
    event_list = list(events)
    if not event_list:
        msg = "Quality flags need at least one event"
        raise ValueError(msg)

    return frozenset(flag for flag, is_missing in _CHECKS if all(is_missing(e) for e in event_list))
