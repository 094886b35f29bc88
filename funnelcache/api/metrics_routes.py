"""FunnelCache: Period Metrics API Routes."""

from datetime import date

from fastapi import APIRouter, HTTPException, Query
from pydantic import ValidationError

from funnelcache.core.errors import ClientNotFoundError, UpstreamFetchError
from funnelcache.models.summary_models import NotFoundHistorical, Platform
from funnelcache.periods.period_resolver import DateRange, classify
from funnelcache.services.period_metrics import get_period_metrics, get_router
from funnelcache.core.logging import get_logger

logger = get_logger("api.metrics")

router = APIRouter(tags=["Metrics"])


@router.get("/metrics/{client_id}/{platform}")
async def period_metrics(
    client_id: str,
    platform: Platform,
    start: str = Query(..., description="Range start, YYYY-MM-DD"),
    end: str = Query(..., description="Range end, YYYY-MM-DD"),
    force_refresh: bool = Query(False, description="Bypass a fresh cached snapshot"),
):
    """Summary for the week or month the range falls in.

    Closed periods with nothing collected return ``status: no_data``
    rather than an error.
    """
    try:
        requested = DateRange(start=start, end=end)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=f"Invalid date range: {e.errors()[0]['msg']}")

    try:
        result = await get_period_metrics(
            client_id, platform, requested, force_refresh=force_refresh
        )
    except ClientNotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except UpstreamFetchError as e:
        logger.error(
            f"Metrics unavailable: {e}",
            extra={"client_id": client_id, "platform": platform.value, "status_code": 502},
        )
        raise HTTPException(status_code=502, detail=f"Upstream fetch failed: {str(e)}")

    if isinstance(result, NotFoundHistorical):
        return result.model_dump(mode="json")
    return {"status": "success", "summary": result.model_dump(mode="json")}


@router.get("/debug/cache", tags=["System"])
async def cache_status():
    """Debug view of current-period cache entries."""
    entries = get_router().cache_status()
    return {"status": "success", "count": len(entries), "entries": entries}


@router.get("/periods/classify", tags=["System"])
async def classify_period(start: date, end: date):
    """Show how a range would be classified right now."""
    try:
        requested = DateRange(start=start, end=end)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=f"Invalid date range: {e.errors()[0]['msg']}")
    return classify(requested).model_dump(mode="json")
