"""FunnelCache: Scheduler Jobs.

APScheduler jobs that keep current-period summaries warm and drop cache
entries for periods that have rolled over.
"""

import asyncio
from datetime import date, datetime, timezone
from typing import Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler

from funnelcache.cache.cache_router import SmartCacheRouter
from funnelcache.config import settings
from funnelcache.core.errors import FunnelCacheError
from funnelcache.models.summary_models import Platform, SummaryType
from funnelcache.periods.period_resolver import current_period_range
from funnelcache.services.period_metrics import get_router
from funnelcache.core.logging import get_logger

logger = get_logger("scheduler")

scheduler = AsyncIOScheduler()


def _configured_platforms(client) -> list:
    platforms = []
    if client.meta_ad_account_id:
        platforms.append(Platform.META)
    if client.google_customer_id:
        platforms.append(Platform.GOOGLE)
    return platforms


async def refresh_current_periods(
    router: Optional[SmartCacheRouter] = None, now: Optional[datetime] = None
) -> int:
    """Force-refresh this week and this month for every client and platform.

    Returns the number of periods refreshed successfully.
    """
    router = router or get_router()
    now = now or datetime.now(timezone.utc)
    clients = await asyncio.to_thread(router.client_store.list_clients)
    logger.info(f"Refreshing current periods for {len(clients)} clients")

    refreshed = 0
    for client in clients:
        for platform in _configured_platforms(client):
            for period_type in (SummaryType.WEEKLY, SummaryType.MONTHLY):
                try:
                    await router.resolve(
                        client.id,
                        platform,
                        current_period_range(period_type, now),
                        now=now,
                        force_refresh=True,
                        period_type=period_type,
                    )
                    refreshed += 1
                except FunnelCacheError as e:
                    logger.error(
                        f"Scheduled {period_type.value} refresh failed: {e}",
                        extra={"client_id": client.id, "platform": platform.value},
                    )
    logger.info(f"Scheduled refresh complete: {refreshed} periods updated")
    return refreshed


async def evict_rolled_over_periods(
    router: Optional[SmartCacheRouter] = None, today: Optional[date] = None
) -> int:
    router = router or get_router()
    return router.evict_stale_periods(today)


def start_scheduler():
    """Configure and start the scheduler."""
    if not settings.scheduler_enabled:
        logger.info("Scheduler disabled via config")
        return

    scheduler.add_job(
        refresh_current_periods,
        "interval",
        minutes=settings.cache_refresh_minutes,
        id="refresh_current_periods",
        replace_existing=True,
        misfire_grace_time=600,
        coalesce=True,
    )
    scheduler.add_job(
        evict_rolled_over_periods,
        "cron",
        hour=0,
        minute=5,
        id="evict_rolled_over_periods",
        replace_existing=True,
        misfire_grace_time=3600,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started. Current periods refresh every "
        f"{settings.cache_refresh_minutes} minutes"
    )


def stop_scheduler():
    """Shutdown the scheduler gracefully."""
    if scheduler.running:
        scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")
