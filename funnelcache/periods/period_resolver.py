"""FunnelCache: Period Resolver.

Maps a requested date range onto a reporting period (ISO week starting
Monday, or calendar month) and decides whether that period is still open.
"""

import calendar
from datetime import date, datetime, timedelta, timezone
from typing import Any, Optional, Union

from pydantic import BaseModel, field_validator, model_validator

from funnelcache.models.summary_models import SummaryType

WEEKLY_MAX_DAYS = 7


def parse_date(value: Any) -> date:
    """Parse YYYY-MM-DD, clamping an out-of-range day to the month's last day.

    Dashboards build ranges like "2026-09-31" by assuming every month has 31
    days; that request means "through the end of September".
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        year_s, month_s, day_s = str(value).strip()[:10].split("-")
        year, month, day = int(year_s), int(month_s), int(day_s)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid date '{value}', expected YYYY-MM-DD")
    if not 1 <= month <= 12 or day < 1:
        raise ValueError(f"Invalid date '{value}'")
    last_day = calendar.monthrange(year, month)[1]
    return date(year, month, min(day, last_day))


class DateRange(BaseModel):
    """Inclusive date range."""

    start: date
    end: date

    @field_validator("start", "end", mode="before")
    @classmethod
    def _parse(cls, v: Any) -> date:
        return parse_date(v)

    @model_validator(mode="after")
    def _ordered(self) -> "DateRange":
        if self.end < self.start:
            raise ValueError(f"Range end {self.end} is before start {self.start}")
        return self

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1


class PeriodClassification(BaseModel):
    period_type: SummaryType
    period_key: date
    period_id: str
    is_current: bool


def weekly_period_key(d: date) -> date:
    """Monday of the ISO week containing ``d`` (never later than ``d``)."""
    return d - timedelta(days=d.weekday())


def monthly_period_key(d: date) -> date:
    return d.replace(day=1)


def period_key_for(period_type: SummaryType, d: date) -> date:
    if period_type == SummaryType.WEEKLY:
        return weekly_period_key(d)
    return monthly_period_key(d)


def period_id_for(period_type: SummaryType, d: date) -> str:
    """``2026-W42`` for weeks (ISO year, which may differ from d.year), ``2026-10`` for months."""
    if period_type == SummaryType.WEEKLY:
        iso_year, iso_week, _ = d.isocalendar()
        return f"{iso_year}-W{iso_week:02d}"
    return f"{d.year}-{d.month:02d}"


def detect_period_type(requested: DateRange) -> SummaryType:
    return SummaryType.WEEKLY if requested.days <= WEEKLY_MAX_DAYS else SummaryType.MONTHLY


def _today(now: Optional[Union[datetime, date]]) -> date:
    if now is None:
        return datetime.now(timezone.utc).date()
    if isinstance(now, datetime):
        return now.date()
    return now


def classify(
    requested: DateRange,
    now: Optional[Union[datetime, date]] = None,
    period_type: Optional[SummaryType] = None,
) -> PeriodClassification:
    """Classify a requested range against wall-clock ``now``.

    A range is current only when it names today's week/month *and* reaches
    today: the first few days of this month, already behind us, are a
    closed range.
    """
    today = _today(now)
    period_type = period_type or detect_period_type(requested)

    if period_type == SummaryType.WEEKLY:
        same_period = requested.start.isocalendar()[:2] == today.isocalendar()[:2]
    else:
        same_period = (requested.start.year, requested.start.month) == (
            today.year,
            today.month,
        )

    return PeriodClassification(
        period_type=period_type,
        period_key=period_key_for(period_type, requested.start),
        period_id=period_id_for(period_type, requested.start),
        is_current=same_period and requested.end >= today,
    )


def current_period_range(
    period_type: SummaryType, now: Optional[Union[datetime, date]] = None
) -> DateRange:
    """Full range of the week or month containing today."""
    today = _today(now)
    if period_type == SummaryType.WEEKLY:
        start = weekly_period_key(today)
        return DateRange(start=start, end=start + timedelta(days=6))
    start = monthly_period_key(today)
    last_day = calendar.monthrange(today.year, today.month)[1]
    return DateRange(start=start, end=today.replace(day=last_day))
