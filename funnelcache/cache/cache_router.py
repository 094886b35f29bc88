"""FunnelCache: Smart Cache Router.

Decides, per (client, platform, period), whether to serve a stored
summary, a cached snapshot, or a live re-fetch:

  historical period  → summary store only (never the platform API)
  current, fresh     → cached snapshot
  current, stale     → one caller fetches; everyone else gets the previous
                       snapshot, or waits for that caller if there is none

Fetch results are written to the summary store and the cache; a failed
durable write is logged and does not fail the request.
"""

import asyncio
import time
from datetime import date, datetime, timedelta, timezone
from typing import Mapping, Optional, Union

from funnelcache.aggregator.campaign_aggregator import aggregate, build_summary
from funnelcache.cache.cache_store import CacheEntry, CacheKey, CacheStore
from funnelcache.config import settings
from funnelcache.connectors.base import InsightsSource
from funnelcache.core.errors import (
    ClientNotFoundError,
    SummaryWriteError,
    UpstreamFetchError,
)
from funnelcache.models.client_models import Client
from funnelcache.models.summary_models import (
    NotFoundHistorical,
    PeriodSummary,
    Platform,
    SummaryType,
)
from funnelcache.periods.period_resolver import (
    DateRange,
    PeriodClassification,
    classify,
    current_period_range,
    period_id_for,
)
from funnelcache.store.summary_store import ClientStore, SummaryStore
from funnelcache.core.logging import get_logger

logger = get_logger("cache.router")

PeriodResult = Union[PeriodSummary, NotFoundHistorical]


def _retrieve_exception(future: asyncio.Future) -> None:
    # Waiters may all have given up; don't let asyncio warn about it
    if not future.cancelled():
        future.exception()


class SmartCacheRouter:
    """Routes period metric requests between store, cache and live fetch."""

    def __init__(
        self,
        summary_store: SummaryStore,
        client_store: ClientStore,
        sources: Mapping[Platform, InsightsSource],
        cache: Optional[CacheStore] = None,
        ttl: Optional[timedelta] = None,
        wait_timeout: Optional[float] = None,
    ):
        self.summary_store = summary_store
        self.client_store = client_store
        self.sources = dict(sources)
        self.cache = cache or CacheStore()
        self.ttl = ttl or timedelta(minutes=settings.cache_ttl_minutes)
        self.wait_timeout = (
            settings.cache_wait_timeout_seconds if wait_timeout is None else wait_timeout
        )

    async def resolve(
        self,
        client_id: str,
        platform: Union[Platform, str],
        requested: DateRange,
        now: Optional[datetime] = None,
        force_refresh: bool = False,
        period_type: Optional[SummaryType] = None,
    ) -> PeriodResult:
        """Return the summary for the period the requested range falls in.

        Raises:
            UpstreamFetchError: a live fetch failed and no snapshot exists.
            ClientNotFoundError: the client id is unknown (current periods only).
        """
        platform = Platform(platform)
        now = now or datetime.now(timezone.utc)
        if now.tzinfo is None:
            now = now.replace(tzinfo=timezone.utc)
        period = classify(requested, now, period_type)
        log_extra = {
            "client_id": client_id,
            "platform": platform.value,
            "period_id": period.period_id,
        }

        if not period.is_current:
            return await self._from_store(client_id, platform, period, log_extra)

        key: CacheKey = (client_id, platform.value, period.period_id)
        waiter = asyncio.get_running_loop().create_future()
        waiter.add_done_callback(_retrieve_exception)
        claim = self.cache.claim(key, waiter, now, self.ttl, force=force_refresh)

        if claim.fresh is not None:
            logger.debug("Serving fresh cached snapshot", extra=log_extra)
            return claim.fresh

        if claim.attempt is None:
            # A forced caller wants post-fetch data, so it joins the running fetch
            if claim.snapshot is not None and not force_refresh:
                logger.info("Fetch in flight; serving previous snapshot", extra=log_extra)
                return claim.snapshot
            return await self._await_winner(claim.waiter, log_extra)

        return await self._fetch(
            key, claim.attempt, waiter, client_id, platform, period, now, log_extra
        )

    # ── Historical ──

    async def _from_store(
        self,
        client_id: str,
        platform: Platform,
        period: PeriodClassification,
        log_extra: dict,
    ) -> PeriodResult:
        summary = await asyncio.to_thread(
            self.summary_store.get,
            client_id,
            platform,
            period.period_type,
            period.period_key,
        )
        if summary is None:
            logger.info("No stored summary for closed period", extra=log_extra)
            return NotFoundHistorical(
                client_id=client_id,
                platform=platform,
                summary_type=period.period_type,
                summary_date=period.period_key,
            )
        return summary

    # ── Current period ──

    async def _await_winner(
        self, waiter: Optional[asyncio.Future], log_extra: dict
    ) -> PeriodSummary:
        if waiter is None:
            raise UpstreamFetchError(
                "Fetch in progress but no result handle available",
                platform=log_extra["platform"],
            )
        logger.info("Waiting for in-flight fetch", extra=log_extra)
        try:
            return await asyncio.wait_for(asyncio.shield(waiter), self.wait_timeout)
        except asyncio.TimeoutError:
            raise UpstreamFetchError(
                f"Timed out after {self.wait_timeout}s waiting for in-flight fetch",
                platform=log_extra["platform"],
            )

    async def _fetch(
        self,
        key: CacheKey,
        attempt: int,
        waiter: asyncio.Future,
        client_id: str,
        platform: Platform,
        period: PeriodClassification,
        fetched_at: datetime,
        log_extra: dict,
    ) -> PeriodSummary:
        started = time.monotonic()
        try:
            client = await asyncio.to_thread(self.client_store.get_client, client_id)
            summary = await self._fetch_and_aggregate(client, platform, period, fetched_at)
        except ClientNotFoundError as e:
            self.cache.release(key, attempt)
            waiter.set_exception(e)
            raise
        except Exception as e:
            self.cache.release(key, attempt)
            error = (
                e
                if isinstance(e, UpstreamFetchError)
                else UpstreamFetchError(
                    f"Could not build summary from {platform.value} data: {e}",
                    platform=platform.value,
                )
            )
            snapshot = self.cache.snapshot(key)
            if snapshot is not None:
                logger.warning(
                    f"Live fetch failed, serving stale snapshot: {error}", extra=log_extra
                )
                waiter.set_result(snapshot)
                return snapshot
            logger.error(f"Live fetch failed with no snapshot: {error}", extra=log_extra)
            waiter.set_exception(error)
            if error is e:
                raise
            raise error from e
        except BaseException:
            # Cancelled mid-fetch: free the claim so the next caller can retry
            self.cache.release(key, attempt)
            if not waiter.done():
                waiter.set_exception(
                    UpstreamFetchError("Fetch was cancelled", platform=platform.value)
                )
            raise

        committed = self.cache.commit(key, attempt, summary, summary.last_updated)
        self.cache.release(key, attempt)

        result = summary if committed else (self.cache.snapshot(key) or summary)
        waiter.set_result(result)

        if committed:
            await self._persist(summary, log_extra)
        logger.info(
            f"Live fetch complete: {len(summary.campaign_data)} campaigns",
            extra={**log_extra, "duration_ms": round((time.monotonic() - started) * 1000)},
        )
        return result

    async def _fetch_and_aggregate(
        self,
        client: Client,
        platform: Platform,
        period: PeriodClassification,
        fetched_at: datetime,
    ) -> PeriodSummary:
        source = self.sources.get(platform)
        if source is None:
            raise UpstreamFetchError(
                f"No insights source configured for {platform.value}",
                platform=platform.value,
            )
        # The snapshot is keyed by period, so it must cover the whole period
        # whatever sub-range the caller asked for
        period_range = current_period_range(period.period_type, fetched_at)
        campaigns = await source.fetch_campaign_insights(
            client, period_range.start, period_range.end
        )
        return build_summary(
            aggregate(campaigns),
            client_id=client.id,
            platform=platform,
            summary_type=period.period_type,
            summary_date=period.period_key,
            last_updated=fetched_at,
        )

    async def _persist(self, summary: PeriodSummary, log_extra: dict) -> None:
        try:
            await asyncio.to_thread(self.summary_store.upsert, summary)
        except SummaryWriteError as e:
            # The cache still serves the value; reconciliation picks this up
            logger.error(f"Durable write failed: {e}", extra=log_extra)

    # ── Maintenance ──

    def evict_stale_periods(self, today: Optional[date] = None) -> int:
        """Drop cache entries whose week or month has rolled over."""
        today = today or datetime.now(timezone.utc).date()
        current_ids = {
            period_id_for(SummaryType.WEEKLY, today),
            period_id_for(SummaryType.MONTHLY, today),
        }

        def rolled_over(entry: CacheEntry) -> bool:
            return entry.period_id not in current_ids

        removed = self.cache.evict(rolled_over)
        if removed:
            logger.info(f"Evicted {len(removed)} rolled-over cache entries")
        return len(removed)

    def cache_status(self) -> list:
        return self.cache.status()
