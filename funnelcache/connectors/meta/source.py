"""FunnelCache: Meta Insights Source."""

from datetime import date
from typing import List, Optional

import httpx

from funnelcache.connectors.base import InsightsSource
from funnelcache.connectors.meta.client import MetaAPIError, MetaClient
from funnelcache.connectors.meta.endpoints import MetaEndpoints
from funnelcache.connectors.meta.transformer import transform_insights
from funnelcache.models.client_models import Client
from funnelcache.models.funnel_models import CampaignInsight
from funnelcache.models.summary_models import Platform


class MetaInsightsSource(InsightsSource):
    platform = Platform.META

    def __init__(self, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._transport = transport

    async def fetch_campaign_insights(
        self, client: Client, start: date, end: date
    ) -> List[CampaignInsight]:
        if not client.meta_ad_account_id:
            raise MetaAPIError(f"Client {client.id} has no Meta ad account configured")

        meta = MetaClient(
            access_token=client.meta_access_token,
            ad_account_id=client.meta_ad_account_id,
            transport=self._transport,
        )
        try:
            rows = await MetaEndpoints(meta).fetch_campaign_insights(start, end)
        finally:
            await meta.close()
        return transform_insights(rows, client.custom_overrides)
