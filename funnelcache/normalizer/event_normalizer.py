"""FunnelCache: Event Normalizer.

Reduces one campaign's ``actions`` / ``action_values`` lists into a
``CanonicalFunnelMetrics``. Meta reports the same occurrence under several
action types (``omni_search``, ``search``, ``offsite_conversion.fb_pixel_search``,
...), and clients with their own pixel events get both the generic and the
custom event for a single phone click. Summing naively inflates the funnel
2-6x, so each slot is resolved in three tiers:

  1. custom override events configured for the client, exclusively
  2. synonym groups from the registry, one alias per group
  3. keyword fallback for anything the registry does not know, treated as a
     single implicit group per slot

This module is pure: no I/O, no shared state, safe to call from anywhere.
"""

import math
from typing import Any, Callable, Dict, FrozenSet, Iterable, Mapping, Optional, Tuple

from funnelcache.core.funnel_registry import (
    FunnelSlot,
    classify_keyword,
    groups_for_slot,
    is_custom_conversion,
    synonym_group_for,
)
from funnelcache.models.funnel_models import CanonicalFunnelMetrics, RawActionEvent
from funnelcache.core.logging import get_logger

logger = get_logger("normalizer.events")

CustomOverrides = Mapping[FunnelSlot, FrozenSet[str]]

COUNT_SLOTS: Tuple[FunnelSlot, ...] = tuple(FunnelSlot)


def parse_number(value: Any) -> float:
    """Read an untrusted API value. Anything unusable counts as zero."""
    try:
        number = float(str(value).strip())
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number) or number < 0:
        return 0.0
    return number


def _parse_count(value: Any) -> int:
    return int(round(parse_number(value)))


def _action_type_and_value(event: Any) -> Tuple[str, Any]:
    if isinstance(event, RawActionEvent):
        return event.action_type, event.value
    if isinstance(event, Mapping):
        return event.get("action_type") or "", event.get("value", 0)
    return "", 0


def _read_events(
    events: Optional[Iterable[Any]], parse: Callable[[Any], Any]
) -> Dict[str, Any]:
    """Collapse an event list to {lower-cased action_type: total value}."""
    totals: Dict[str, Any] = {}
    if not events or isinstance(events, (str, bytes, Mapping)):
        return totals
    for event in events:
        action_type, raw_value = _action_type_and_value(event)
        action_type = str(action_type).strip().lower()
        if not action_type:
            continue
        totals[action_type] = totals.get(action_type, 0) + parse(raw_value)
    return totals


def _resolve_slot(
    slot: FunnelSlot,
    totals: Dict[str, Any],
    overrides: CustomOverrides,
    claimed_by_overrides: FrozenSet[str],
) -> Any:
    # Tier 1: the client's own pixel events win outright
    custom = overrides.get(slot)
    if custom:
        hits = [value for action_type, value in totals.items() if action_type in custom]
        if hits:
            return sum(hits)

    # Tier 2: known synonym groups, first alias present per group
    resolved = 0
    matched_group = False
    for group in groups_for_slot(slot):
        for alias in group.aliases:
            if alias in totals:
                resolved += totals[alias]
                matched_group = True
                break
    if matched_group:
        return resolved

    # Tier 3: keyword fallback; unknown variants of one event are assumed
    # to be copies of each other, so take the largest rather than the sum
    fallback = [
        value
        for action_type, value in totals.items()
        if synonym_group_for(action_type) is None
        and not is_custom_conversion(action_type)
        and action_type not in claimed_by_overrides
        and classify_keyword(action_type) == slot
    ]
    return max(fallback) if fallback else 0


def _warn_on_inversions(metrics: CanonicalFunnelMetrics, campaign_name: str) -> None:
    steps = [
        ("step 1", metrics.booking_step_1),
        ("step 2", metrics.booking_step_2),
        ("step 3", metrics.booking_step_3),
        ("reservations", metrics.reservations),
    ]
    for (prev_name, prev), (name, current) in zip(steps, steps[1:]):
        if prev > 0 and current > prev:
            logger.warning(
                f"Funnel inversion for campaign '{campaign_name}': "
                f"{name} ({current}) > {prev_name} ({prev})"
            )


def normalize(
    raw_actions: Optional[Iterable[Any]],
    raw_action_values: Optional[Iterable[Any]] = None,
    custom_overrides: Optional[CustomOverrides] = None,
    campaign_name: str = "",
) -> CanonicalFunnelMetrics:
    """Normalize one campaign's raw action events into canonical funnel metrics.

    Args:
        raw_actions: The insight row's ``actions`` list (dicts or RawActionEvent).
        raw_action_values: The ``action_values`` list; only reservation value is read.
        custom_overrides: Client-specific custom events per slot.
        campaign_name: Used for log messages only.

    Returns:
        A new CanonicalFunnelMetrics. Unknown action types are ignored and
        malformed values count as zero; this never raises on payload content.
    """
    overrides = custom_overrides or {}
    claimed = frozenset().union(*overrides.values()) if overrides else frozenset()

    counts = _read_events(raw_actions, _parse_count)
    amounts = _read_events(raw_action_values, parse_number)

    resolved: Dict[str, Any] = {
        slot.value: _resolve_slot(slot, counts, overrides, claimed)
        for slot in COUNT_SLOTS
    }
    reservation_value = _resolve_slot(
        FunnelSlot.RESERVATIONS, amounts, overrides, claimed
    )

    metrics = CanonicalFunnelMetrics(
        **resolved,
        reservation_value=float(reservation_value),
    )
    _warn_on_inversions(metrics, campaign_name or "unknown")
    return metrics
