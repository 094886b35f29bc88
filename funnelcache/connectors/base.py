"""FunnelCache: Abstract Insights Source."""

from abc import ABC, abstractmethod
from datetime import date
from typing import List

from funnelcache.models.client_models import Client
from funnelcache.models.funnel_models import CampaignInsight
from funnelcache.models.summary_models import Platform


class InsightsSource(ABC):
    """Fetches normalized per-campaign insights from one ad platform.

    Implementations own their HTTP client and must raise an
    ``UpstreamFetchError`` subclass when the platform call fails.
    """

    platform: Platform

    @abstractmethod
    async def fetch_campaign_insights(
        self, client: Client, start: date, end: date
    ) -> List[CampaignInsight]:
        """Return one CampaignInsight per campaign for the inclusive range,
        in the order the platform reported them."""
        ...
