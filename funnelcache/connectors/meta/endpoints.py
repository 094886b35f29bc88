"""FunnelCache: Meta API Endpoints.

Fetch functions for the Meta Marketing API resources the cache needs.
"""

import json
from datetime import date
from typing import Any, Dict, List

from funnelcache.connectors.meta.client import MetaClient, META_BASE
from funnelcache.core.logging import get_logger

logger = get_logger("meta.endpoints")

# Default fields requested from Meta
INSIGHT_FIELDS = (
    "campaign_name,campaign_id,"
    "impressions,clicks,spend,"
    "conversions,actions,action_values"
)


class MetaEndpoints:
    """Fetch raw insight rows from Meta."""

    def __init__(self, client: MetaClient):
        self.client = client
        self.ad_account_id = client.ad_account_id

    async def fetch_campaign_insights(
        self,
        date_start: date,
        date_stop: date,
    ) -> List[Dict[str, Any]]:
        """Fetch campaign-level insights for the whole range (one row per campaign)."""
        url = f"{META_BASE}/{self.ad_account_id}/insights"
        params = {
            "fields": INSIGHT_FIELDS,
            "time_range": json.dumps(
                {"since": date_start.isoformat(), "until": date_stop.isoformat()}
            ),
            "level": "campaign",
            "limit": 500,
        }
        data = await self.client._paginated_get(url, params)
        logger.info(f"Fetched {len(data)} campaign insight records")
        return data
