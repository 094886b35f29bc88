"""Tests for the funnel slot registry tables."""

import pytest

from funnelcache.core.funnel_registry import (
    GOOGLE_KEYWORD_RULES,
    META_KEYWORD_RULES,
    META_SYNONYM_GROUPS,
    FunnelSlot,
    KeywordRule,
    classify_keyword,
    groups_for_slot,
    is_custom_conversion,
    parse_custom_overrides,
    synonym_group_for,
)


class TestSynonymGroups:
    def test_every_alias_belongs_to_exactly_one_group(self):
        aliases = [a for g in META_SYNONYM_GROUPS for a in g.aliases]
        assert len(aliases) == len(set(aliases))

    def test_aliases_are_lower_case_and_trimmed(self):
        for group in META_SYNONYM_GROUPS:
            for alias in group.aliases:
                assert alias == alias.strip().lower()

    def test_lookup_by_alias(self):
        group = synonym_group_for("offsite_conversion.fb_pixel_purchase")
        assert group is not None
        assert group.slot == FunnelSlot.RESERVATIONS

    def test_unknown_alias(self):
        assert synonym_group_for("link_click") is None

    def test_groups_for_slot(self):
        names = [g.name for g in groups_for_slot(FunnelSlot.BOOKING_STEP_1)]
        assert names == ["search"]

    def test_omni_variant_is_preferred_alias(self):
        for name in ("search", "view_content", "initiate_checkout", "purchase"):
            group = next(g for g in META_SYNONYM_GROUPS if g.name == name)
            assert group.aliases[0].startswith("omni_")


class TestMetaKeywordOrder:
    def test_rule_order(self):
        assert [r.slot for r in META_KEYWORD_RULES] == [
            FunnelSlot.BOOKING_STEP_1,
            FunnelSlot.BOOKING_STEP_2,
            FunnelSlot.BOOKING_STEP_3,
            FunnelSlot.RESERVATIONS,
            FunnelSlot.CLICK_TO_CALL,
            FunnelSlot.EMAIL_CONTACTS,
        ]

    @pytest.mark.parametrize(
        "action_type,slot",
        [
            ("fb_mobile_search", FunnelSlot.BOOKING_STEP_1),
            ("app_view_content", FunnelSlot.BOOKING_STEP_2),
            ("app_initiated_checkout", FunnelSlot.BOOKING_STEP_3),
            ("purchase", FunnelSlot.RESERVATIONS),
            ("phone_click", FunnelSlot.CLICK_TO_CALL),
            ("onsite_lead_form", FunnelSlot.EMAIL_CONTACTS),
            ("post_engagement", None),
        ],
    )
    def test_classify(self, action_type, slot):
        assert classify_keyword(action_type) == slot

    def test_first_match_wins(self):
        # Matches both "search" and "lead"; step 1 comes first
        assert classify_keyword("lead_search") == FunnelSlot.BOOKING_STEP_1


class TestGoogleKeywordOrder:
    def test_booking_steps_checked_before_reservations(self):
        slots = [r.slot for r in GOOGLE_KEYWORD_RULES]
        assert slots.index(FunnelSlot.BOOKING_STEP_3) < slots.index(FunnelSlot.RESERVATIONS)
        assert slots[-1] == FunnelSlot.RESERVATIONS

    @pytest.mark.parametrize(
        "name,slot",
        [
            ("booking engine - krok 1", FunnelSlot.BOOKING_STEP_1),
            ("step 2 w be", FunnelSlot.BOOKING_STEP_2),
            ("trzeci krok rezerwacji", FunnelSlot.BOOKING_STEP_3),
            ("kliknięcie w telefon", FunnelSlot.CLICK_TO_CALL),
            ("formularz kontaktowy", FunnelSlot.EMAIL_CONTACTS),
            ("rezerwacja", FunnelSlot.RESERVATIONS),
            ("purchase complete", FunnelSlot.RESERVATIONS),
            ("page view", None),
        ],
    )
    def test_classify(self, name, slot):
        assert classify_keyword(name, GOOGLE_KEYWORD_RULES) == slot

    def test_reservation_rule_excludes_booking_engine_names(self):
        rule = GOOGLE_KEYWORD_RULES[-1]
        assert not rule.matches("booking engine rezerwacja")
        assert rule.matches("rezerwacja online")


class TestKeywordRule:
    def test_exact_rule(self):
        rule = KeywordRule(FunnelSlot.RESERVATIONS, ("purchase",), exact=True)
        assert rule.matches("purchase")
        assert not rule.matches("fb_purchase")


class TestCustomConversions:
    def test_namespace(self):
        assert is_custom_conversion("offsite_conversion.custom.1470262077092668")
        assert not is_custom_conversion("offsite_conversion.fb_pixel_lead")

    def test_parse_overrides(self):
        overrides = parse_custom_overrides(
            {
                "click_to_call": [" Offsite_Conversion.Custom.123 ", ""],
                "Email_Contacts": ["offsite_conversion.custom.456"],
            }
        )
        assert overrides == {
            FunnelSlot.CLICK_TO_CALL: frozenset({"offsite_conversion.custom.123"}),
            FunnelSlot.EMAIL_CONTACTS: frozenset({"offsite_conversion.custom.456"}),
        }

    def test_unknown_slots_and_empty_lists_are_skipped(self):
        overrides = parse_custom_overrides(
            {"newsletter": ["offsite_conversion.custom.1"], "reservations": []}
        )
        assert overrides == {}

    def test_none(self):
        assert parse_custom_overrides(None) == {}
