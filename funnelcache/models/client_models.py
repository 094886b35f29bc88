"""FunnelCache: Client Account Model."""

import json
from datetime import datetime, timezone
from typing import Dict, FrozenSet, Optional

from sqlmodel import SQLModel, Field

from funnelcache.core.funnel_registry import FunnelSlot, parse_custom_overrides


class Client(SQLModel, table=True):
    """An advertiser whose ad accounts we report on.

    ``custom_conversions_json`` maps funnel slot names to the client's own
    pixel events, e.g. ``{"click_to_call": ["offsite_conversion.custom.1470262077092668"]}``.
    When one of those events shows up, it replaces the platform's generic
    event for that slot.
    """

    __tablename__ = "clients"

    id: str = Field(primary_key=True)
    name: str = Field(default="")
    meta_ad_account_id: Optional[str] = Field(default=None)
    meta_access_token: Optional[str] = Field(default=None)
    google_customer_id: Optional[str] = Field(default=None)
    google_refresh_token: Optional[str] = Field(default=None)
    custom_conversions_json: str = Field(default="{}")
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def custom_overrides(self) -> Dict[FunnelSlot, FrozenSet[str]]:
        try:
            raw = json.loads(self.custom_conversions_json or "{}")
        except json.JSONDecodeError:
            raw = {}
        if not isinstance(raw, dict):
            raw = {}
        return parse_custom_overrides(raw)
