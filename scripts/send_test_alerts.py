"""Send a sequence of sample alert events to a running BFF webhook.

Creates three incidents, adds a second event to the payment incident and
resolves the user-service incident, then re-sends the first event to show
the idempotent duplicate path.

Usage:
    uv run python -m scripts.send_test_alerts
    uv run python -m scripts.send_test_alerts --url http://localhost:3001 --delay 0
"""

import argparse
import asyncio
import logging
import os
import sys
from typing import Any

import httpx


def _event(
    event_id: str,
    dedupe_key: str,
    observed_at: str,
    service: str,
    namespace: str,
    alert: dict[str, str],
    decision: dict[str, Any],
    **optional: Any,
) -> dict[str, Any]:
    return {
        "schema_version": "alerts.v1",
        "event_id": event_id,
        "dedupe_key": dedupe_key,
        "observed_at": observed_at,
        "sent_at": observed_at,
        "service": {"name": service, "namespace": namespace},
        "alert": alert,
        "decision": decision,
        **optional,
    }


SAMPLE_EVENTS: list[tuple[str, dict[str, Any]]] = [
    (
        "Critical payment service alert",
        _event(
            "test-001",
            "high-latency-payment",
            "2026-01-04T10:30:00Z",
            "payment-service",
            "default",
            {"type": "latency", "state": "firing", "severity": "critical"},
            {
                "action": "scale_up",
                "auto": True,
                "priority": "P1",
                "risk_score": 95,
                "reason_codes": ["latency_breach", "high_traffic", "error_spike"],
            },
            evidence={"latency_p99": 3500, "http_errors": 78, "cpu_percent": 85},
            impact={"downstream_count": 3},
            context={"pod_name": "payment-7d4f8", "cluster": "prod-us-east", "environment": "production"},
            links={"runbook": "https://wiki/runbooks/payment-scale", "dashboard": "https://grafana/d/payment"},
            meta={"model_version": "v2.0-hybrid", "threshold_version": "2026-01-02"},
        ),
    ),
    (
        "High severity user service alert",
        _event(
            "test-002",
            "database-connection-user",
            "2026-01-04T10:32:00Z",
            "user-service",
            "default",
            {"type": "database", "state": "firing", "severity": "high"},
            {
                "action": "restart_connections",
                "auto": False,
                "priority": "P1",
                "risk_score": 75,
                "reason_codes": ["connection_pool_exhausted"],
            },
            evidence={"http_errors": 41},
        ),
    ),
    (
        "Medium severity order service alert",
        _event(
            "test-003",
            "cache-miss-orders",
            "2026-01-04T10:35:00Z",
            "order-service",
            "production",
            {"type": "performance", "state": "firing", "severity": "medium"},
            {
                "action": "warm_cache",
                "auto": True,
                "priority": "P2",
                "risk_score": 45,
                "reason_codes": ["cache_miss_ratio"],
            },
            context={"cluster": "prod-eu-west"},
        ),
    ),
    (
        "Update payment service alert (second event)",
        _event(
            "test-004",
            "high-latency-payment",
            "2026-01-04T10:40:00Z",
            "payment-service",
            "default",
            {"type": "latency", "state": "firing", "severity": "critical"},
            {
                "action": "scale_up",
                "auto": True,
                "priority": "P1",
                "risk_score": 98,
                "reason_codes": ["latency_breach", "error_spike"],
            },
            evidence={"latency_p99": 4200, "http_errors": 120},
        ),
    ),
    (
        "Resolve user service alert",
        _event(
            "test-005",
            "database-connection-user",
            "2026-01-04T10:45:00Z",
            "user-service",
            "default",
            {"type": "database", "state": "resolved", "severity": "info"},
            {"action": "none", "auto": True, "priority": "P3", "risk_score": 10, "reason_codes": []},
        ),
    ),
]


async def send_all(base_url: str, delay: float) -> bool:
    """Post every sample event, then re-post the first. Returns True if all succeeded."""
    ok = True
    sequence = [*SAMPLE_EVENTS, ("Duplicate delivery of first event", SAMPLE_EVENTS[0][1])]
    async with httpx.AsyncClient(base_url=base_url, timeout=10.0) as client:
        for i, (title, event) in enumerate(sequence, 1):
            if i > 1 and delay > 0:
                await asyncio.sleep(delay)
            print(f"[{i}/{len(sequence)}] {title}...")
            try:
                response = await client.post("/ingest/webhook", json=event)
            except httpx.HTTPError as e:
                print(f"  Request failed: {e}", file=sys.stderr)
                ok = False
                continue
            print(f"  HTTP {response.status_code}: {response.text}")
            ok = ok and response.is_success
    return ok


def main() -> None:
    """Parse args and send the sample events."""
    parser = argparse.ArgumentParser(description="Send sample alert events to the BFF webhook")
    parser.add_argument(
        "--url",
        default=os.environ.get("BFF_URL", "http://localhost:3001"),
        help="BFF base URL (default: $BFF_URL or http://localhost:3001)",
    )
    parser.add_argument("--delay", type=float, default=1.0, help="Seconds between events (default: 1)")
    args = parser.parse_args()

    logging.basicConfig(level=logging.WARNING, format="%(levelname)s: %(message)s")
    if not asyncio.run(send_all(args.url, args.delay)):
        sys.exit(1)


if __name__ == "__main__":
    main()
