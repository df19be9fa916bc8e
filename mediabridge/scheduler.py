"""Scheduler pour synchronisations automatiques."""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
import logging

from mediabridge.config import get_config
from mediabridge.core.errors import MediaBridgeError
from mediabridge.core.orchestrator import get_orchestrator

logger = logging.getLogger(__name__)

scheduler = None

JOB_ID = "periodic_sync"


def start_scheduler():
    """Démarre le scheduler si configuré."""
    global scheduler
    config = get_config()

    if not config.scheduler.enabled:
        logger.info("Scheduler is disabled")
        return

    interval_hours = max(1, config.scheduler.interval_hours)
    timezone = config.scheduler.timezone

    scheduler = AsyncIOScheduler(timezone=timezone)
    scheduler.add_job(
        run_scheduled_sync,
        trigger=IntervalTrigger(hours=interval_hours, timezone=timezone),
        id=JOB_ID,
        replace_existing=True,
        max_instances=1,
    )

    scheduler.start()
    logger.info(f"Scheduler started: sync every {interval_hours}h, timezone: {timezone}")


async def run_scheduled_sync():
    """Exécute une synchronisation planifiée."""
    logger.info("Running scheduled sync")
    try:
        result = await get_orchestrator().run_sync_once(dry_run=False)
        logger.info(f"Scheduled sync completed: {result.summary()}")
    except MediaBridgeError as e:
        logger.error(f"Error in scheduled sync: {str(e)}")


def stop_scheduler():
    """Arrête le scheduler."""
    global scheduler
    if scheduler:
        scheduler.shutdown()
        scheduler = None
        logger.info("Scheduler stopped")
