"""FunnelCache: Google Ads Conversion Parser.

Google Ads has no fixed action taxonomy: conversions arrive per conversion
action, named by whoever configured the account ("Step 1 w BE",
"Rezerwacja", "Kliknięcie w telefon"). Names are classified with the
ordered Google keyword table, first match wins.
"""

from typing import Any, Dict, Iterable, Mapping, Optional

from funnelcache.core.funnel_registry import (
    FunnelSlot,
    GOOGLE_KEYWORD_RULES,
    classify_keyword,
)
from funnelcache.models.funnel_models import CanonicalFunnelMetrics
from funnelcache.normalizer.event_normalizer import parse_number
from funnelcache.core.logging import get_logger

logger = get_logger("normalizer.google")


def _conversion_name(row: Mapping[str, Any]) -> str:
    name = row.get("conversion_name") or row.get("name") or ""
    return str(name).strip().lower()


def parse_google_conversions(
    conversions: Optional[Iterable[Mapping[str, Any]]],
    campaign_name: str = "",
) -> CanonicalFunnelMetrics:
    """Classify per-conversion-action rows of one campaign into funnel slots.

    Each row carries ``conversion_name`` (or ``name``), a conversion count
    (``conversions`` or ``value``) and optionally ``conversion_value`` /
    ``all_conversions_value``. Fractional attributed conversions are
    rounded to whole numbers once per slot.
    """
    totals: Dict[FunnelSlot, float] = {slot: 0.0 for slot in FunnelSlot}
    reservation_value = 0.0

    if not conversions or isinstance(conversions, (str, bytes, Mapping)):
        return CanonicalFunnelMetrics()

    for row in conversions:
        if not isinstance(row, Mapping):
            continue
        name = _conversion_name(row)
        slot = classify_keyword(name, GOOGLE_KEYWORD_RULES)
        if slot is None:
            logger.debug(f"Unclassified Google conversion '{name}' in '{campaign_name}'")
            continue
        count = parse_number(row.get("conversions", row.get("value", 0)))
        totals[slot] += count
        if slot == FunnelSlot.RESERVATIONS:
            reservation_value += parse_number(
                row.get("conversion_value", row.get("all_conversions_value", 0))
            )

    return CanonicalFunnelMetrics(
        **{slot.value: int(round(value)) for slot, value in totals.items()},
        reservation_value=round(reservation_value, 2),
    )
