"""FunnelCache: Funnel Data Models.

In-memory value types passed between connectors, the normalizer and the
aggregator. None of these are persisted directly.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class RawActionEvent(BaseModel):
    """One entry of an insight row's ``actions`` / ``action_values`` list.

    ``value`` is kept as the platform sent it (usually a numeric string);
    the normalizer decides how to read it.
    """

    action_type: str = ""
    value: Any = "0"


class CanonicalFunnelMetrics(BaseModel):
    """Deduplicated funnel counts for one campaign (or a sum of campaigns)."""

    model_config = ConfigDict(frozen=True)

    booking_step_1: int = Field(default=0, ge=0)
    booking_step_2: int = Field(default=0, ge=0)
    booking_step_3: int = Field(default=0, ge=0)
    reservations: int = Field(default=0, ge=0)
    reservation_value: float = Field(default=0.0, ge=0)
    click_to_call: int = Field(default=0, ge=0)
    email_contacts: int = Field(default=0, ge=0)


class CampaignInsight(BaseModel):
    """Per-campaign performance for one date range."""

    campaign_id: str
    campaign_name: str = ""
    spend: float = 0.0
    impressions: int = 0
    clicks: int = 0
    conversions: float = 0.0
    """Platform-native conversion count; not derived from the funnel."""
    funnel: CanonicalFunnelMetrics = Field(default_factory=CanonicalFunnelMetrics)
