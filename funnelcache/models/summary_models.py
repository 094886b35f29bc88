"""FunnelCache: Period Summary Models.

``PeriodSummaryRecord`` is the durable row (one per client, platform,
summary type and period key). ``PeriodSummary`` is the value the rest of
the system passes around; the store converts between the two.
"""

import json
from datetime import date, datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field as PydanticField
from sqlmodel import SQLModel, Field, UniqueConstraint

from funnelcache.models.funnel_models import CampaignInsight


class Platform(str, Enum):
    META = "meta"
    GOOGLE = "google"


class SummaryType(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"


# ─────────────────────────────────────────────
# DATABASE MODEL
# ─────────────────────────────────────────────


class PeriodSummaryRecord(SQLModel, table=True):
    """Persisted period summary.

    Unique constraint on (client_id, platform, summary_type, summary_date)
    makes every write an idempotent full-row upsert.
    """

    __tablename__ = "campaign_summaries"
    __table_args__ = (
        UniqueConstraint(
            "client_id",
            "platform",
            "summary_type",
            "summary_date",
            name="uq_campaign_summary_period",
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    client_id: str = Field(index=True)
    platform: str = Field(index=True, description="meta | google")
    summary_type: str = Field(index=True, description="weekly | monthly")
    summary_date: date = Field(
        index=True, description="Monday (weekly) or 1st of month (monthly)"
    )
    total_spend: float = 0.0
    total_impressions: int = 0
    total_clicks: int = 0
    total_conversions: float = 0.0
    average_ctr: float = 0.0
    average_cpc: float = 0.0
    click_to_call: int = 0
    email_contacts: int = 0
    booking_step_1: int = 0
    booking_step_2: int = 0
    booking_step_3: int = 0
    reservations: int = 0
    reservation_value: float = 0.0
    roas: float = 0.0
    cost_per_reservation: float = 0.0
    campaign_data_json: str = Field(
        default="[]", description="Ordered per-campaign detail as JSON"
    )
    last_updated: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))


# ─────────────────────────────────────────────
# PYDANTIC SCHEMAS
# ─────────────────────────────────────────────


class PeriodSummary(BaseModel):
    """Canonical summary of one client's platform performance for one period."""

    client_id: str
    platform: Platform
    summary_type: SummaryType
    summary_date: date
    total_spend: float = 0.0
    total_impressions: int = 0
    total_clicks: int = 0
    total_conversions: float = 0.0
    average_ctr: float = 0.0
    average_cpc: float = 0.0
    click_to_call: int = 0
    email_contacts: int = 0
    booking_step_1: int = 0
    booking_step_2: int = 0
    booking_step_3: int = 0
    reservations: int = 0
    reservation_value: float = 0.0
    roas: float = 0.0
    cost_per_reservation: float = 0.0
    campaign_data: List[CampaignInsight] = PydanticField(default_factory=list)
    last_updated: datetime = PydanticField(
        default_factory=lambda: datetime.now(timezone.utc)
    )

    def to_record(self) -> PeriodSummaryRecord:
        fields = self.model_dump(exclude={"campaign_data", "platform", "summary_type"})
        # The column drops the offset, so store the UTC wall time
        if self.last_updated.tzinfo is not None:
            fields["last_updated"] = self.last_updated.astimezone(timezone.utc)
        return PeriodSummaryRecord(
            **fields,
            platform=self.platform.value,
            summary_type=self.summary_type.value,
            campaign_data_json=json.dumps(
                [c.model_dump() for c in self.campaign_data]
            ),
        )

    @classmethod
    def from_record(cls, record: PeriodSummaryRecord) -> "PeriodSummary":
        last_updated = record.last_updated
        # SQLite hands datetimes back naive; everything we write is UTC
        if last_updated.tzinfo is None:
            last_updated = last_updated.replace(tzinfo=timezone.utc)
        data = record.model_dump(exclude={"id", "campaign_data_json", "last_updated"})
        return cls(
            **data,
            last_updated=last_updated,
            campaign_data=[
                CampaignInsight.model_validate(c)
                for c in json.loads(record.campaign_data_json or "[]")
            ],
        )


class NotFoundHistorical(BaseModel):
    """Explicit "nothing collected for this closed period" result."""

    status: str = "no_data"
    client_id: str
    platform: Platform
    summary_type: SummaryType
    summary_date: date
    message: str = "No data has been collected for this period."
