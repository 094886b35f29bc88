"""FunnelCache: Campaign Aggregator.

Sums per-campaign insights into period totals and derives CTR, CPC, ROAS
and cost per reservation. Currency is kept at full precision while summing
and only rounded when a persistable PeriodSummary is built.
"""

from datetime import date, datetime, timezone
from typing import List, Optional, Sequence

from pydantic import BaseModel, Field

from funnelcache.models.funnel_models import CampaignInsight
from funnelcache.models.summary_models import (
    PeriodSummary,
    Platform,
    SummaryType,
)
from funnelcache.core.logging import get_logger

logger = get_logger("aggregator.campaigns")

CURRENCY_PLACES = 2
RATIO_PLACES = 4


class PeriodTotals(BaseModel):
    """Partial summary: everything except client, platform and period key."""

    total_spend: float = 0.0
    total_impressions: int = 0
    total_clicks: int = 0
    total_conversions: float = 0.0
    click_to_call: int = 0
    email_contacts: int = 0
    booking_step_1: int = 0
    booking_step_2: int = 0
    booking_step_3: int = 0
    reservations: int = 0
    reservation_value: float = 0.0
    average_ctr: float = 0.0
    average_cpc: float = 0.0
    roas: float = 0.0
    cost_per_reservation: float = 0.0
    campaign_data: List[CampaignInsight] = Field(default_factory=list)


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator > 0 else 0.0


def aggregate(campaigns: Sequence[CampaignInsight]) -> PeriodTotals:
    """Sum campaign metrics and compute derived ratios.

    ``campaign_data`` keeps the campaigns in the order the platform returned them.
    """
    totals = PeriodTotals(campaign_data=list(campaigns))

    for c in campaigns:
        totals.total_spend += c.spend
        totals.total_impressions += c.impressions
        totals.total_clicks += c.clicks
        totals.total_conversions += c.conversions
        totals.click_to_call += c.funnel.click_to_call
        totals.email_contacts += c.funnel.email_contacts
        totals.booking_step_1 += c.funnel.booking_step_1
        totals.booking_step_2 += c.funnel.booking_step_2
        totals.booking_step_3 += c.funnel.booking_step_3
        totals.reservations += c.funnel.reservations
        totals.reservation_value += c.funnel.reservation_value

    totals.average_ctr = _ratio(totals.total_clicks, totals.total_impressions) * 100
    totals.average_cpc = _ratio(totals.total_spend, totals.total_clicks)
    totals.roas = _ratio(totals.reservation_value, totals.total_spend)
    totals.cost_per_reservation = _ratio(totals.total_spend, totals.reservations)

    logger.debug(
        f"Aggregated {len(campaigns)} campaigns: spend={totals.total_spend}, "
        f"reservations={totals.reservations}"
    )
    return totals


def build_summary(
    totals: PeriodTotals,
    client_id: str,
    platform: Platform,
    summary_type: SummaryType,
    summary_date: date,
    last_updated: Optional[datetime] = None,
) -> PeriodSummary:
    """Attach identity to aggregated totals and round for persistence."""
    return PeriodSummary(
        client_id=client_id,
        platform=platform,
        summary_type=summary_type,
        summary_date=summary_date,
        total_spend=round(totals.total_spend, CURRENCY_PLACES),
        total_impressions=totals.total_impressions,
        total_clicks=totals.total_clicks,
        total_conversions=round(totals.total_conversions, CURRENCY_PLACES),
        average_ctr=round(totals.average_ctr, RATIO_PLACES),
        average_cpc=round(totals.average_cpc, CURRENCY_PLACES),
        click_to_call=totals.click_to_call,
        email_contacts=totals.email_contacts,
        booking_step_1=totals.booking_step_1,
        booking_step_2=totals.booking_step_2,
        booking_step_3=totals.booking_step_3,
        reservations=totals.reservations,
        reservation_value=round(totals.reservation_value, CURRENCY_PLACES),
        roas=round(totals.roas, RATIO_PLACES),
        cost_per_reservation=round(totals.cost_per_reservation, CURRENCY_PLACES),
        campaign_data=totals.campaign_data,
        last_updated=last_updated or datetime.now(timezone.utc),
    )
