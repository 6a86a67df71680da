"""APScheduler integration for the periodic ``stats`` broadcast.

Uses AsyncIOScheduler with an IntervalTrigger to push the overview to every
websocket client.  No-ops gracefully if the interval is set to 0.
"""

import contextlib
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler  # type: ignore[import-untyped]
from apscheduler.triggers.interval import IntervalTrigger  # type: ignore[import-untyped]

from src.alerts.service import AlertService
from src.config import get_settings
from src.notify import messages
from src.notify.hub import ConnectionHub

logger = logging.getLogger(__name__)

_scheduler: AsyncIOScheduler | None = None


async def broadcast_stats(service: AlertService, hub: ConnectionHub) -> None:
    """Publish the current overview; skipped when nobody is listening."""
    if not len(hub):
        return
    try:
        overview = await service.get_overview()
    except Exception:
        logger.exception("Stats broadcast failed")
        return
    hub.publish(messages.stats(overview, ws_connections=len(hub)))


def start_scheduler(service: AlertService, hub: ConnectionHub) -> None:
    """Start the APScheduler if a broadcast interval is configured."""
    global _scheduler  # noqa: PLW0603

    settings = get_settings()
    if settings.stats_broadcast_seconds <= 0:
        logger.info("Stats broadcast disabled (STATS_BROADCAST_SECONDS=0)")
        return

    _scheduler = AsyncIOScheduler()
    _scheduler.add_job(
        broadcast_stats,
        trigger=IntervalTrigger(seconds=settings.stats_broadcast_seconds),
        args=[service, hub],
        id="stats_broadcast",
        name="Websocket stats broadcast",
        replace_existing=True,
    )
    _scheduler.start()
    logger.info("Stats broadcast every %ds", settings.stats_broadcast_seconds)


def stop_scheduler() -> None:
    """Gracefully shut down the scheduler if it is running."""
    global _scheduler  # noqa: PLW0603

    if _scheduler is not None:
        with contextlib.suppress(Exception):
            _scheduler.shutdown(wait=False)
        logger.info("Stats scheduler stopped")
        _scheduler = None
