"""Shared pytest configuration and fixtures."""

from collections.abc import Callable, Generator
from typing import Any
from unittest.mock import patch

import pytest

from src.config import Settings, get_settings
from src.notify.messages import NotificationMessage
from src.storage.store import SqliteStore


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--run-e2e",
        action="store_true",
        default=False,
        help="Run e2e tests that hit real services (requires .env with valid credentials)",
    )


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    if config.getoption("--run-e2e"):
        return
    skip_e2e = pytest.mark.skip(reason="Need --run-e2e flag to run")
    for item in items:
        if "e2e" in item.keywords:
            item.add_marker(skip_e2e)


@pytest.fixture(autouse=True)
def _no_dotenv(request: pytest.FixtureRequest) -> Generator[None]:
    """Block .env loading so tests that forget mock_settings don't pick up local config.

    Sets Settings.model_config['env_file'] = None before each test (except e2e).
    """
    if "e2e" in request.keywords:
        yield
        return

    get_settings.cache_clear()
    original = Settings.model_config.get("env_file")
    Settings.model_config["env_file"] = None

    try:
        yield
    finally:
        Settings.model_config["env_file"] = original
        get_settings.cache_clear()


@pytest.fixture
def mock_settings() -> Generator[Any]:
    """Provide fake settings so tests don't need a .env file.

    Patches get_settings at every import site so cached references are overridden.
    """
    fake_settings = type(
        "FakeSettings",
        (),
        {
            "database_path": ":memory:",
            "ws_queue_size": 100,
            "stats_broadcast_seconds": 0,
            # FitSMS
            "fitsms_url": "https://fitsms.test/api/v3/sms/send",
            "fitsms_api_key": "fitsms-test-fake",
            "fitsms_sender_id": "ALERTS",
            "sms_recipient": "94770000000",
            "sms_min_severity": "info",
            "sms_timeout_seconds": 5.0,
            # OpenAI summarization
            "openai_api_key": "",
            "openai_model": "gpt-4o",
            "openai_base_url": "",
        },
    )()
    with (
        patch("src.config.get_settings", return_value=fake_settings),
        patch("src.storage.store.get_settings", return_value=fake_settings),
        patch("src.notify.sms.get_settings", return_value=fake_settings),
        patch("src.notify.scheduler.get_settings", return_value=fake_settings),
        patch("src.api.main.get_settings", return_value=fake_settings),
    ):
        yield fake_settings


@pytest.fixture
def store() -> Generator[SqliteStore]:
    """An in-memory store with the schema initialized."""
    s = SqliteStore(":memory:")
    try:
        yield s
    finally:
        s.close()


@pytest.fixture
def make_event() -> Callable[..., dict[str, Any]]:
    """Build alerts.v1 webhook payloads. Optional sections are omitted unless given."""

    def _make(
        event_id: str = "evt-001",
        dedupe_key: str = "high-latency-payment",
        *,
        state: str = "firing",
        severity: str = "critical",
        service: str = "payment-service",
        namespace: str = "default",
        observed_at: str = "2026-01-04T10:30:00Z",
        priority: str = "P1",
        action: str = "scale_up",
        auto: bool = True,
        risk_score: float | None = 95,
        reason_codes: list[str] | None = None,
        **optional: Any,
    ) -> dict[str, Any]:
        decision: dict[str, Any] = {
            "action": action,
            "auto": auto,
            "priority": priority,
            "reason_codes": reason_codes if reason_codes is not None else ["latency_breach"],
        }
        if risk_score is not None:
            decision["risk_score"] = risk_score
        return {
            "schema_version": "alerts.v1",
            "event_id": event_id,
            "dedupe_key": dedupe_key,
            "observed_at": observed_at,
            "sent_at": observed_at,
            "service": {"name": service, "namespace": namespace},
            "alert": {"type": "latency", "state": state, "severity": severity},
            "decision": decision,
            **optional,
        }

    return _make


class RecordingSink:
    """NotificationSink that keeps every published message."""

    def __init__(self) -> None:
        self.messages: list[NotificationMessage] = []

    def publish(self, message: NotificationMessage) -> None:
        self.messages.append(message)


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()
