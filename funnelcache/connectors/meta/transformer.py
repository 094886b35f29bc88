"""FunnelCache: Meta Raw → CampaignInsight Transformer.

Converts raw Meta insight rows into CampaignInsight values, running the
``actions`` / ``action_values`` lists through the event normalizer.
"""

from typing import Any, Dict, List, Optional

from funnelcache.models.funnel_models import CampaignInsight
from funnelcache.normalizer.event_normalizer import (
    CustomOverrides,
    normalize,
    parse_number,
)
from funnelcache.core.logging import get_logger

logger = get_logger("meta.transformer")


def _native_conversions(row: Dict[str, Any]) -> float:
    """Meta's own ``conversions`` field: a scalar or a list of action entries."""
    raw = row.get("conversions")
    if isinstance(raw, list):
        return sum(parse_number(c.get("value", 0)) for c in raw if isinstance(c, dict))
    return parse_number(raw) if raw is not None else 0.0


def transform_insight_row(
    row: Dict[str, Any],
    custom_overrides: Optional[CustomOverrides] = None,
) -> CampaignInsight:
    """Turn one campaign insight row into a CampaignInsight."""
    campaign_name = str(row.get("campaign_name") or "")
    funnel = normalize(
        row.get("actions") or [],
        row.get("action_values") or [],
        custom_overrides=custom_overrides,
        campaign_name=campaign_name,
    )
    return CampaignInsight(
        campaign_id=str(row.get("campaign_id") or ""),
        campaign_name=campaign_name,
        spend=parse_number(row.get("spend", 0)),
        impressions=int(parse_number(row.get("impressions", 0))),
        clicks=int(parse_number(row.get("clicks", 0))),
        conversions=_native_conversions(row),
        funnel=funnel,
    )


def transform_insights(
    raw_data: List[Dict[str, Any]],
    custom_overrides: Optional[CustomOverrides] = None,
) -> List[CampaignInsight]:
    """Transform raw rows, preserving the order Meta returned them in."""
    insights = [
        transform_insight_row(row, custom_overrides)
        for row in raw_data
        if isinstance(row, dict)
    ]
    skipped = len(raw_data) - len(insights)
    if skipped:
        logger.warning(f"Skipped {skipped} non-object insight rows")
    logger.info(f"Normalized {len(insights)} Meta campaign rows")
    return insights
