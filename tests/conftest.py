"""Pytest fixtures for FunnelCache tests."""

from datetime import date, datetime, timezone
from typing import Dict, List, Optional, Tuple

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import SQLModel, create_engine

from funnelcache.cache.cache_router import SmartCacheRouter
from funnelcache.connectors.base import InsightsSource
from funnelcache.models.client_models import Client
from funnelcache.models.funnel_models import CampaignInsight, CanonicalFunnelMetrics
from funnelcache.models.summary_models import Platform
from funnelcache.store.summary_store import ClientStore, SummaryStore

# Wednesday of ISO week 2026-W42
NOW = datetime(2026, 10, 14, 12, 0, tzinfo=timezone.utc)


class FakeInsightsSource(InsightsSource):
    """In-memory insights source that records every call."""

    platform = Platform.META

    def __init__(self, campaigns: Optional[List[CampaignInsight]] = None):
        self.campaigns = campaigns if campaigns is not None else [make_campaign()]
        self.calls: List[Tuple[str, date, date]] = []
        self.error: Optional[Exception] = None
        self.gate = None  # asyncio.Event; when set, fetches block until it fires

    async def fetch_campaign_insights(
        self, client: Client, start: date, end: date
    ) -> List[CampaignInsight]:
        self.calls.append((client.id, start, end))
        if self.gate is not None:
            await self.gate.wait()
        if self.error is not None:
            raise self.error
        return list(self.campaigns)


def make_campaign(
    campaign_id: str = "c1",
    spend: float = 100.0,
    impressions: int = 1000,
    clicks: int = 50,
    reservations: int = 2,
    reservation_value: float = 400.0,
    **funnel,
) -> CampaignInsight:
    return CampaignInsight(
        campaign_id=campaign_id,
        campaign_name=f"Campaign {campaign_id}",
        spend=spend,
        impressions=impressions,
        clicks=clicks,
        conversions=float(reservations),
        funnel=CanonicalFunnelMetrics(
            reservations=reservations,
            reservation_value=reservation_value,
            **funnel,
        ),
    )


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database shared across threads."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    SQLModel.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def summary_store(engine) -> SummaryStore:
    return SummaryStore(engine=engine, write_retries=1)


@pytest.fixture
def client_store(engine) -> ClientStore:
    store = ClientStore(engine=engine)
    store.save_client(
        Client(
            id="hotel-1",
            name="Hotel One",
            meta_ad_account_id="act_111",
            meta_access_token="token",
            google_customer_id="123-456-7890",
            google_refresh_token="refresh",
        )
    )
    return store


@pytest.fixture
def fake_source() -> FakeInsightsSource:
    return FakeInsightsSource()


@pytest.fixture
def sources(fake_source) -> Dict[Platform, InsightsSource]:
    return {Platform.META: fake_source}


@pytest.fixture
def router(summary_store, client_store, sources) -> SmartCacheRouter:
    return SmartCacheRouter(
        summary_store=summary_store,
        client_store=client_store,
        sources=sources,
        wait_timeout=5.0,
    )
