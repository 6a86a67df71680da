"""Tests for the periodic stats broadcast and its scheduler wiring."""

from typing import Any
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from src.alerts.ingestor import EventIngestor
from src.alerts.service import AlertService
from src.notify import scheduler
from src.notify.messages import MessageType
from src.storage.store import SqliteStore


class FakeHub:
    def __init__(self, connections: int) -> None:
        self.connections = connections
        self.messages: list[Any] = []

    def __len__(self) -> int:
        return self.connections

    def publish(self, message: Any) -> None:
        self.messages.append(message)


@pytest.fixture
def service(store: SqliteStore) -> AlertService:
    return AlertService(store, EventIngestor(store))


class TestBroadcastStats:
    @pytest.mark.asyncio
    async def test_publishes_overview(self, service: AlertService) -> None:
        hub = FakeHub(connections=2)

        await scheduler.broadcast_stats(service, hub)  # type: ignore[arg-type]

        assert len(hub.messages) == 1
        message = hub.messages[0]
        assert message.type == MessageType.STATS
        assert message.data["ws_connections"] == 2
        assert message.data["total_incidents"] == 0

    @pytest.mark.asyncio
    async def test_skipped_without_clients(self, service: AlertService) -> None:
        hub = FakeHub(connections=0)

        await scheduler.broadcast_stats(service, hub)  # type: ignore[arg-type]

        assert hub.messages == []

    @pytest.mark.asyncio
    async def test_store_failure_is_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        broken = MagicMock()
        broken.get_overview = AsyncMock(side_effect=RuntimeError("db locked"))
        hub = FakeHub(connections=1)

        await scheduler.broadcast_stats(broken, hub)  # type: ignore[arg-type]

        assert hub.messages == []
        assert "Stats broadcast failed" in caplog.text


class TestStartScheduler:
    def test_disabled_when_interval_zero(self, mock_settings: Any) -> None:
        mock_settings.stats_broadcast_seconds = 0
        with patch("src.notify.scheduler.AsyncIOScheduler") as sched_cls:
            scheduler.start_scheduler(MagicMock(), MagicMock())
        sched_cls.assert_not_called()

    def test_schedules_interval_job(self, mock_settings: Any) -> None:
        mock_settings.stats_broadcast_seconds = 15
        with patch("src.notify.scheduler.AsyncIOScheduler") as sched_cls:
            scheduler.start_scheduler(MagicMock(), MagicMock())
            instance = sched_cls.return_value
            instance.add_job.assert_called_once()
            assert instance.add_job.call_args.kwargs["id"] == "stats_broadcast"
            instance.start.assert_called_once()

            scheduler.stop_scheduler()
            instance.shutdown.assert_called_once_with(wait=False)
        assert scheduler._scheduler is None

    def test_stop_without_start(self) -> None:
        scheduler.stop_scheduler()
        assert scheduler._scheduler is None
