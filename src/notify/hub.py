"""Websocket fan-out for live incident updates.

Each connected client gets its own bounded queue. ``publish`` only enqueues,
so the ingest path never waits on a slow client; a client whose queue is full
misses that message instead.
"""

import asyncio
import contextlib
import logging

from fastapi import WebSocket, WebSocketDisconnect

from src.notify.messages import NotificationMessage, connection
from src.observability.metrics import NOTIFICATIONS_DROPPED_TOTAL, WS_CONNECTIONS

logger = logging.getLogger(__name__)


class ConnectionHub:
    """``NotificationSink`` that broadcasts to every connected websocket."""

    def __init__(self, queue_size: int = 100) -> None:
        self._queue_size = queue_size
        self._queues: set[asyncio.Queue[NotificationMessage]] = set()

    def __len__(self) -> int:
        return len(self._queues)

    def publish(self, message: NotificationMessage) -> None:
        for queue in list(self._queues):
            try:
                queue.put_nowait(message)
            except asyncio.QueueFull:
                NOTIFICATIONS_DROPPED_TOTAL.labels(type=message.type.value).inc()
                logger.warning("Dropping %s message for a slow websocket client", message.type.value)

    async def serve(self, websocket: WebSocket) -> None:
        """Run one client connection until it disconnects."""
        await websocket.accept()
        queue: asyncio.Queue[NotificationMessage] = asyncio.Queue(maxsize=self._queue_size)
        self._queues.add(queue)
        WS_CONNECTIONS.set(len(self._queues))
        logger.info("Client connected to websocket (%d connected)", len(self._queues))

        try:
            await websocket.send_json(connection().model_dump(mode="json"))
            sender = asyncio.create_task(self._pump(websocket, queue))
            receiver = asyncio.create_task(self._drain(websocket))
            done, pending = await asyncio.wait({sender, receiver}, return_when=asyncio.FIRST_COMPLETED)
            for task in pending:
                task.cancel()
            for task in pending:
                with contextlib.suppress(asyncio.CancelledError, WebSocketDisconnect):
                    await task
            for task in done:
                exc = task.exception()
                if exc is not None and not isinstance(exc, WebSocketDisconnect):
                    logger.warning("Websocket client error: %s", exc)
        except WebSocketDisconnect:
            pass
        finally:
            self._queues.discard(queue)
            WS_CONNECTIONS.set(len(self._queues))
            logger.info("Client disconnected from websocket (%d connected)", len(self._queues))

    @staticmethod
    async def _pump(websocket: WebSocket, queue: asyncio.Queue[NotificationMessage]) -> None:
        while True:
            message = await queue.get()
            await websocket.send_json(message.model_dump(mode="json"))

    @staticmethod
    async def _drain(websocket: WebSocket) -> None:
        # Clients don't send anything meaningful; reading is how a disconnect surfaces.
        while True:
            await websocket.receive_text()
