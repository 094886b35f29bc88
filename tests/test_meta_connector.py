"""Tests for the Meta client, transformer and insights source."""

import json
from datetime import date

import httpx
import pytest

from funnelcache.connectors.meta.client import MetaAPIError, MetaClient, normalize_ad_account_id
from funnelcache.connectors.meta.source import MetaInsightsSource
from funnelcache.connectors.meta.transformer import transform_insight_row, transform_insights
from funnelcache.core.funnel_registry import FunnelSlot
from funnelcache.models.client_models import Client

INSIGHT_ROW = {
    "campaign_id": "238",
    "campaign_name": "Autumn Getaway",
    "spend": "152.37",
    "impressions": "10400",
    "clicks": "312",
    "actions": [
        {"action_type": "search", "value": "400"},
        {"action_type": "omni_search", "value": "400"},
        {"action_type": "offsite_conversion.fb_pixel_search", "value": "400"},
        {"action_type": "purchase", "value": "6"},
        {"action_type": "click_to_call_call_confirm", "value": "10"},
        {"action_type": "offsite_conversion.custom.1470262077092668", "value": "2"},
        {"action_type": "link_click", "value": "280"},
    ],
    "action_values": [{"action_type": "purchase", "value": "18262"}],
    "conversions": [{"action_type": "purchase", "value": "6"}],
}

OVERRIDES = {FunnelSlot.CLICK_TO_CALL: frozenset({"offsite_conversion.custom.1470262077092668"})}


def meta_client(handler, **kwargs) -> MetaClient:
    return MetaClient(
        access_token="token",
        ad_account_id="111",
        transport=httpx.MockTransport(handler),
        retry_base_delay=0,
        **kwargs,
    )


class TestNormalizeAdAccountId:
    @pytest.mark.parametrize(
        "raw,expected", [("111", "act_111"), ("act_111", "act_111"), (" 111 ", "act_111"), ("", "")]
    )
    def test_prefix(self, raw, expected):
        assert normalize_ad_account_id(raw) == expected


class TestTransformer:
    def test_transform_row(self):
        insight = transform_insight_row(INSIGHT_ROW, OVERRIDES)
        assert insight.campaign_id == "238"
        assert insight.spend == 152.37
        assert insight.impressions == 10400
        assert insight.clicks == 312
        assert insight.conversions == 6.0
        assert insight.funnel.booking_step_1 == 400
        assert insight.funnel.reservations == 6
        assert insight.funnel.reservation_value == 18262.0
        assert insight.funnel.click_to_call == 2

    def test_without_overrides_generic_event_counts(self):
        assert transform_insight_row(INSIGHT_ROW).funnel.click_to_call == 10

    def test_scalar_conversions_and_missing_fields(self):
        insight = transform_insight_row({"campaign_id": 9, "conversions": "3.5"})
        assert insight.campaign_id == "9"
        assert insight.conversions == 3.5
        assert insight.spend == 0.0

    def test_order_preserved_and_non_objects_skipped(self):
        rows = [{"campaign_id": "b"}, "junk", {"campaign_id": "a"}]
        assert [i.campaign_id for i in transform_insights(rows)] == ["b", "a"]


class TestMetaClient:
    @pytest.mark.asyncio
    async def test_paginates(self):
        seen = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request.url)
            if "after" in request.url.params:
                return httpx.Response(200, json={"data": [{"campaign_id": "2"}]})
            return httpx.Response(
                200,
                json={
                    "data": [{"campaign_id": "1"}],
                    "paging": {"next": "https://graph.facebook.com/v21.0/act_111/insights?after=abc"},
                },
            )

        client = meta_client(handler)
        rows = await client._paginated_get("https://graph.facebook.com/v21.0/act_111/insights")
        await client.close()

        assert rows == [{"campaign_id": "1"}, {"campaign_id": "2"}]
        assert all(url.params["access_token"] == "token" for url in seen)

    @pytest.mark.asyncio
    async def test_retries_server_errors(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            if len(attempts) < 3:
                return httpx.Response(500, json={"error": {"message": "oops"}})
            return httpx.Response(200, json={"data": []})

        client = meta_client(handler)
        assert await client._request("GET", "https://graph.facebook.com/x") == {"data": []}
        assert len(attempts) == 3

    @pytest.mark.asyncio
    async def test_retries_rate_limit_then_gives_up(self):
        client = meta_client(lambda request: httpx.Response(429))
        with pytest.raises(MetaAPIError) as exc_info:
            await client._request("GET", "https://graph.facebook.com/x")
        assert exc_info.value.status_code == 429
        assert exc_info.value.platform == "meta"

    @pytest.mark.asyncio
    async def test_client_errors_are_not_retried(self):
        attempts = []

        def handler(request):
            attempts.append(request)
            return httpx.Response(
                400, json={"error": {"message": "Invalid OAuth access token", "code": 190}}
            )

        client = meta_client(handler)
        with pytest.raises(MetaAPIError, match="Invalid OAuth") as exc_info:
            await client._request("GET", "https://graph.facebook.com/x")
        assert exc_info.value.error_code == 190
        assert len(attempts) == 1

    @pytest.mark.asyncio
    async def test_malformed_body(self):
        client = meta_client(lambda request: httpx.Response(200, text="<html>maintenance</html>"))
        with pytest.raises(MetaAPIError, match="Malformed"):
            await client._request("GET", "https://graph.facebook.com/x")

    @pytest.mark.asyncio
    async def test_unexpected_data_shape(self):
        client = meta_client(lambda request: httpx.Response(200, json={"data": {"oops": 1}}))
        with pytest.raises(MetaAPIError, match="Unexpected"):
            await client._paginated_get("https://graph.facebook.com/x")


class TestMetaInsightsSource:
    @pytest.mark.asyncio
    async def test_fetches_range_and_applies_client_overrides(self):
        requests = []

        def handler(request):
            requests.append(request)
            return httpx.Response(200, json={"data": [INSIGHT_ROW]})

        client = Client(
            id="hotel-1",
            meta_ad_account_id="111",
            meta_access_token="client-token",
            custom_conversions_json=json.dumps(
                {"click_to_call": ["offsite_conversion.custom.1470262077092668"]}
            ),
        )
        source = MetaInsightsSource(transport=httpx.MockTransport(handler))
        insights = await source.fetch_campaign_insights(client, date(2026, 10, 12), date(2026, 10, 18))

        assert len(insights) == 1
        assert insights[0].funnel.click_to_call == 2
        params = requests[0].url.params
        assert requests[0].url.path.endswith("/act_111/insights")
        assert params["level"] == "campaign"
        assert params["access_token"] == "client-token"
        assert json.loads(params["time_range"]) == {"since": "2026-10-12", "until": "2026-10-18"}

    @pytest.mark.asyncio
    async def test_client_without_meta_account(self):
        source = MetaInsightsSource(transport=httpx.MockTransport(lambda r: httpx.Response(200)))
        with pytest.raises(MetaAPIError, match="no Meta ad account"):
            await source.fetch_campaign_insights(Client(id="x"), date(2026, 10, 1), date(2026, 10, 7))
