"""Unit tests for the websocket connection hub's fan-out and backpressure."""

import asyncio

import pytest
from prometheus_client import REGISTRY

from src.notify.hub import ConnectionHub
from src.notify.messages import MessageType, NotificationMessage


def _message(n: int = 0) -> NotificationMessage:
    return NotificationMessage(type=MessageType.EVENT_RECEIVED, data={"event_id": f"e{n}"})


def _register(hub: ConnectionHub, maxsize: int) -> asyncio.Queue[NotificationMessage]:
    queue: asyncio.Queue[NotificationMessage] = asyncio.Queue(maxsize=maxsize)
    hub._queues.add(queue)
    return queue


class TestConnectionHub:
    def test_publish_without_clients_is_noop(self) -> None:
        hub = ConnectionHub()
        hub.publish(_message())
        assert len(hub) == 0

    @pytest.mark.asyncio
    async def test_publish_reaches_every_client(self) -> None:
        hub = ConnectionHub()
        a = _register(hub, 10)
        b = _register(hub, 10)

        hub.publish(_message(1))

        assert len(hub) == 2
        assert a.get_nowait().data == {"event_id": "e1"}
        assert b.get_nowait().data == {"event_id": "e1"}

    @pytest.mark.asyncio
    async def test_full_queue_drops_instead_of_blocking(self) -> None:
        hub = ConnectionHub()
        slow = _register(hub, 1)
        fast = _register(hub, 10)
        before = REGISTRY.get_sample_value(
            "alerts_bff_notifications_dropped_total", {"type": "event_received"}
        ) or 0.0

        hub.publish(_message(1))
        hub.publish(_message(2))

        assert slow.qsize() == 1
        assert slow.get_nowait().data == {"event_id": "e1"}
        assert fast.qsize() == 2
        after = REGISTRY.get_sample_value("alerts_bff_notifications_dropped_total", {"type": "event_received"})
        assert after == before + 1
