"""FunnelCache: Funnel Slot Registry.

Maps the open-ended space of platform action-type strings onto the closed
set of canonical funnel slots. Everything the normalizers need to decide
"which slot does this string feed, and is it a duplicate of another string"
lives here as data, so a priority or alias change is a table edit.
"""

from enum import Enum
from typing import Dict, FrozenSet, List, Mapping, Optional, Tuple

from funnelcache.core.logging import get_logger

logger = get_logger("core.funnel_registry")


class FunnelSlot(str, Enum):
    """Canonical conversion funnel stages."""

    BOOKING_STEP_1 = "booking_step_1"  # Booking engine search
    BOOKING_STEP_2 = "booking_step_2"  # Booking engine view details
    BOOKING_STEP_3 = "booking_step_3"  # Booking engine begin checkout
    RESERVATIONS = "reservations"
    CLICK_TO_CALL = "click_to_call"
    EMAIL_CONTACTS = "email_contacts"


# Client-specific pixel events live under this namespace, followed by an
# opaque numeric id, e.g. "offsite_conversion.custom.1470262077092668".
CUSTOM_CONVERSION_PREFIX = "offsite_conversion.custom."


class SynonymGroup:
    """Raw action types that denote one real-world occurrence.

    Aliases are listed in preference order. Only the first alias present in
    a campaign's payload contributes; the rest are redundant copies emitted
    by other attribution mechanisms.
    """

    def __init__(self, name: str, slot: FunnelSlot, aliases: Tuple[str, ...]):
        self.name = name
        self.slot = slot
        self.aliases = aliases

    def __repr__(self) -> str:
        return f"<SynonymGroup {self.name} -> {self.slot.value}>"


class KeywordRule:
    """Substring (or exact) matcher for action types not in any synonym group."""

    def __init__(
        self,
        slot: FunnelSlot,
        keywords: Tuple[str, ...],
        exact: bool = False,
        exclude: Tuple[str, ...] = (),
    ):
        self.slot = slot
        self.keywords = keywords
        self.exact = exact
        self.exclude = exclude

    def matches(self, action_type: str) -> bool:
        if any(token in action_type for token in self.exclude):
            return False
        if self.exact:
            return action_type in self.keywords
        return any(keyword in action_type for keyword in self.keywords)

    def __repr__(self) -> str:
        return f"<KeywordRule {self.slot.value} {self.keywords}>"


# ─────────────────────────────────────────────
# META SYNONYM GROUPS
# ─────────────────────────────────────────────

META_SYNONYM_GROUPS: List[SynonymGroup] = [
    SynonymGroup(
        "search",
        FunnelSlot.BOOKING_STEP_1,
        (
            "omni_search",
            "search",
            "offsite_conversion.fb_pixel_search",
            "onsite_web_search",
            "onsite_web_app_search",
        ),
    ),
    SynonymGroup(
        "view_content",
        FunnelSlot.BOOKING_STEP_2,
        (
            "omni_view_content",
            "view_content",
            "offsite_conversion.fb_pixel_view_content",
            "onsite_web_view_content",
            "onsite_web_app_view_content",
        ),
    ),
    SynonymGroup(
        "initiate_checkout",
        FunnelSlot.BOOKING_STEP_3,
        (
            "omni_initiated_checkout",
            "initiate_checkout",
            "initiated_checkout",
            "offsite_conversion.fb_pixel_initiate_checkout",
            "onsite_web_initiate_checkout",
            "onsite_web_app_initiate_checkout",
        ),
    ),
    SynonymGroup(
        "purchase",
        FunnelSlot.RESERVATIONS,
        (
            "omni_purchase",
            "purchase",
            "offsite_conversion.fb_pixel_purchase",
            "onsite_web_purchase",
            "onsite_web_app_purchase",
            "web_in_store_purchase",
        ),
    ),
    SynonymGroup(
        "click_to_call",
        FunnelSlot.CLICK_TO_CALL,
        (
            "click_to_call_call_confirm",
            "click_to_call_native_call_placed",
            "click_to_call_native_20s_call_connect",
        ),
    ),
    SynonymGroup(
        "lead",
        FunnelSlot.EMAIL_CONTACTS,
        (
            "lead",
            "onsite_conversion.lead_grouped",
            "offsite_conversion.fb_pixel_lead",
            "onsite_web_lead",
        ),
    ),
]


# ─────────────────────────────────────────────
# KEYWORD FALLBACK: first match wins, in this order
# ─────────────────────────────────────────────

META_KEYWORD_RULES: List[KeywordRule] = [
    KeywordRule(FunnelSlot.BOOKING_STEP_1, ("search",)),
    KeywordRule(FunnelSlot.BOOKING_STEP_2, ("view_content",)),
    KeywordRule(
        FunnelSlot.BOOKING_STEP_3, ("initiate_checkout", "initiated_checkout")
    ),
    KeywordRule(FunnelSlot.RESERVATIONS, ("purchase", "omni_purchase"), exact=True),
    KeywordRule(FunnelSlot.CLICK_TO_CALL, ("click_to_call", "phone")),
    KeywordRule(FunnelSlot.EMAIL_CONTACTS, ("lead",)),
]

# Google Ads reports conversion *action names* chosen by whoever set up the
# account, often in Polish. Booking steps are checked before reservations so
# "Booking Engine - krok 3" never lands in reservations.
GOOGLE_KEYWORD_RULES: List[KeywordRule] = [
    KeywordRule(
        FunnelSlot.BOOKING_STEP_1,
        ("step 1", "step1", "krok 1", "1 krok", "pierwszy krok", "pierwszy_krok", "booking_step_1"),
    ),
    KeywordRule(
        FunnelSlot.BOOKING_STEP_2,
        ("step 2", "step2", "krok 2", "2 krok", "drugi krok", "drugi_krok", "booking_step_2"),
    ),
    KeywordRule(
        FunnelSlot.BOOKING_STEP_3,
        ("step 3", "step3", "krok 3", "3 krok", "trzeci krok", "trzeci_krok", "booking_step_3"),
    ),
    KeywordRule(
        FunnelSlot.CLICK_TO_CALL, ("phone", "telefon", "call", "dzwonienie")
    ),
    KeywordRule(
        FunnelSlot.EMAIL_CONTACTS,
        ("email", "e-mail", "mail", "contact", "kontakt", "formularz"),
    ),
    KeywordRule(
        FunnelSlot.RESERVATIONS,
        ("rezerwacja", "reservation", "zakup", "purchase", "complete"),
        exclude=("krok", "step", "booking engine", "booking_step"),
    ),
]


# ─────────────────────────────────────────────
# HELPERS
# ─────────────────────────────────────────────

_ALIAS_INDEX: Dict[str, SynonymGroup] = {
    alias: group for group in META_SYNONYM_GROUPS for alias in group.aliases
}


def synonym_group_for(action_type: str) -> Optional[SynonymGroup]:
    """Look up the synonym group an (already lower-cased) action type belongs to."""
    return _ALIAS_INDEX.get(action_type)


def groups_for_slot(slot: FunnelSlot) -> List[SynonymGroup]:
    return [g for g in META_SYNONYM_GROUPS if g.slot == slot]


def classify_keyword(
    action_type: str, rules: List[KeywordRule] = META_KEYWORD_RULES
) -> Optional[FunnelSlot]:
    """Return the first slot whose rule matches, or None."""
    for rule in rules:
        if rule.matches(action_type):
            return rule.slot
    return None


def is_custom_conversion(action_type: str) -> bool:
    return action_type.startswith(CUSTOM_CONVERSION_PREFIX)


def parse_custom_overrides(
    raw: Optional[Mapping[str, List[str]]],
) -> Dict[FunnelSlot, FrozenSet[str]]:
    """Turn {"click_to_call": ["offsite_conversion.custom.123"]} into slot sets.

    Unknown slot names are logged and skipped rather than rejected; client
    configuration is edited by hand.
    """
    overrides: Dict[FunnelSlot, FrozenSet[str]] = {}
    for slot_name, action_types in (raw or {}).items():
        try:
            slot = FunnelSlot(slot_name.strip().lower())
        except ValueError:
            logger.warning(f"Ignoring custom conversion for unknown slot '{slot_name}'")
            continue
        cleaned = frozenset(a.strip().lower() for a in action_types if a and a.strip())
        if cleaned:
            overrides[slot] = cleaned
    return overrides
