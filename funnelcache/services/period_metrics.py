"""FunnelCache: Period Metrics Service.

``get_period_metrics`` is the one entry point reports, dashboards and
exports use. The result looks the same whether it came from the store, the
cache or a live fetch.
"""

from typing import Any, Mapping, Optional, Tuple, Union

from funnelcache.cache.cache_router import PeriodResult, SmartCacheRouter
from funnelcache.connectors.google.source import GoogleAdsInsightsSource
from funnelcache.connectors.meta.source import MetaInsightsSource
from funnelcache.models.summary_models import Platform
from funnelcache.periods.period_resolver import DateRange
from funnelcache.store.summary_store import ClientStore, SummaryStore

DateRangeInput = Union[DateRange, Tuple[Any, Any], Mapping[str, Any]]

_router: Optional[SmartCacheRouter] = None


def build_default_router() -> SmartCacheRouter:
    return SmartCacheRouter(
        summary_store=SummaryStore(),
        client_store=ClientStore(),
        sources={
            Platform.META: MetaInsightsSource(),
            Platform.GOOGLE: GoogleAdsInsightsSource(),
        },
    )


def get_router() -> SmartCacheRouter:
    """Process-wide router; its cache is shared by every request handler."""
    global _router
    if _router is None:
        _router = build_default_router()
    return _router


def set_router(router: Optional[SmartCacheRouter]) -> None:
    global _router
    _router = router


def to_date_range(date_range: DateRangeInput) -> DateRange:
    if isinstance(date_range, DateRange):
        return date_range
    if isinstance(date_range, Mapping):
        return DateRange(start=date_range.get("start"), end=date_range.get("end"))
    start, end = date_range
    return DateRange(start=start, end=end)


async def get_period_metrics(
    client_id: str,
    platform: Union[Platform, str],
    date_range: DateRangeInput,
    force_refresh: bool = False,
) -> PeriodResult:
    """Return the PeriodSummary for the range, or NotFoundHistorical.

    Raises:
        UpstreamFetchError: live data was needed, the fetch failed and
            there was nothing cached to fall back to.
        ClientNotFoundError: unknown client.
        ValueError: unparseable dates or unknown platform.
    """
    return await get_router().resolve(
        client_id,
        Platform(platform),
        to_date_range(date_range),
        force_refresh=force_refresh,
    )
