"""FunnelCache: Google Ads Insights Source."""

from datetime import date
from typing import List, Optional

import httpx

from funnelcache.connectors.base import InsightsSource
from funnelcache.connectors.google.client import GoogleAdsAPIError, GoogleAdsClient
from funnelcache.connectors.google.transformer import transform_campaign_rows
from funnelcache.models.client_models import Client
from funnelcache.models.funnel_models import CampaignInsight
from funnelcache.models.summary_models import Platform

CAMPAIGN_QUERY = """
    SELECT campaign.id, campaign.name,
           metrics.cost_micros, metrics.impressions, metrics.clicks, metrics.conversions
    FROM campaign
    WHERE segments.date BETWEEN '{start}' AND '{end}'
      AND campaign.status != 'REMOVED'
"""

CONVERSION_QUERY = """
    SELECT campaign.id, segments.conversion_action_name,
           metrics.conversions, metrics.conversions_value
    FROM campaign
    WHERE segments.date BETWEEN '{start}' AND '{end}'
      AND campaign.status != 'REMOVED'
"""


class GoogleAdsInsightsSource(InsightsSource):
    platform = Platform.GOOGLE

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    async def fetch_campaign_insights(
        self, client: Client, start: date, end: date
    ) -> List[CampaignInsight]:
        if not client.google_customer_id or not client.google_refresh_token:
            raise GoogleAdsAPIError(f"Client {client.id} has no Google Ads account configured")

        google = GoogleAdsClient(
            customer_id=client.google_customer_id,
            refresh_token=client.google_refresh_token,
            transport=self._transport,
        )
        dates = {"start": start.isoformat(), "end": end.isoformat()}
        try:
            campaign_rows = await google.search_stream(CAMPAIGN_QUERY.format(**dates))
            conversion_rows = await google.search_stream(CONVERSION_QUERY.format(**dates))
        finally:
            await google.close()
        return transform_campaign_rows(campaign_rows, conversion_rows)
