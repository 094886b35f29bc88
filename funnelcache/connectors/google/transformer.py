"""FunnelCache: Google Ads Rows → CampaignInsight Transformer."""

from typing import Any, Dict, List

from funnelcache.models.funnel_models import CampaignInsight
from funnelcache.normalizer.event_normalizer import parse_number
from funnelcache.normalizer.google_conversions import parse_google_conversions
from funnelcache.core.logging import get_logger

logger = get_logger("google.transformer")

MICROS = 1_000_000


def _campaign_id(row: Dict[str, Any]) -> str:
    return str((row.get("campaign") or {}).get("id") or "")


def transform_campaign_rows(
    campaign_rows: List[Dict[str, Any]],
    conversion_rows: List[Dict[str, Any]],
) -> List[CampaignInsight]:
    """Join campaign metrics with per-conversion-action rows.

    ``campaign_rows`` carry spend/impressions/clicks; ``conversion_rows`` are
    segmented by ``segments.conversionActionName``. Campaign order follows
    ``campaign_rows``.
    """
    by_campaign: Dict[str, List[Dict[str, Any]]] = {}
    for row in conversion_rows:
        if not isinstance(row, dict):
            continue
        metrics = row.get("metrics") or {}
        by_campaign.setdefault(_campaign_id(row), []).append(
            {
                "conversion_name": (row.get("segments") or {}).get("conversionActionName", ""),
                "conversions": metrics.get("conversions", 0),
                "conversion_value": metrics.get("conversionsValue", 0),
            }
        )

    insights: List[CampaignInsight] = []
    for row in campaign_rows:
        if not isinstance(row, dict):
            continue
        campaign = row.get("campaign") or {}
        metrics = row.get("metrics") or {}
        campaign_id = _campaign_id(row)
        name = str(campaign.get("name") or "")
        insights.append(
            CampaignInsight(
                campaign_id=campaign_id,
                campaign_name=name,
                spend=parse_number(metrics.get("costMicros", 0)) / MICROS,
                impressions=int(parse_number(metrics.get("impressions", 0))),
                clicks=int(parse_number(metrics.get("clicks", 0))),
                conversions=parse_number(metrics.get("conversions", 0)),
                funnel=parse_google_conversions(by_campaign.get(campaign_id, []), name),
            )
        )
    logger.info(f"Normalized {len(insights)} Google Ads campaigns")
    return insights
