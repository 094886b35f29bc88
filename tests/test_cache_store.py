"""Tests for the keyed current-period cache store."""

import asyncio
from datetime import date, datetime, timedelta, timezone

import pytest

from funnelcache.cache.cache_store import CacheState, CacheStore
from funnelcache.models.summary_models import PeriodSummary, Platform, SummaryType

KEY = ("hotel-1", "meta", "2026-W42")
NOW = datetime(2026, 10, 14, 12, 0, tzinfo=timezone.utc)
TTL = timedelta(minutes=15)


def summary(spend: float = 1.0) -> PeriodSummary:
    return PeriodSummary(
        client_id="hotel-1",
        platform=Platform.META,
        summary_type=SummaryType.WEEKLY,
        summary_date=date(2026, 10, 12),
        total_spend=spend,
        last_updated=NOW,
    )


@pytest.fixture
def waiter():
    loop = asyncio.new_event_loop()
    future = loop.create_future()
    yield future
    loop.close()


class TestClaim:
    def test_first_claim_wins(self, waiter):
        store = CacheStore()
        claim = store.claim(KEY, waiter, NOW, TTL)
        assert claim.attempt == 1
        assert claim.snapshot is None
        assert store.peek(KEY).state == CacheState.FETCHING

    def test_second_claim_loses_and_gets_waiter(self, waiter):
        store = CacheStore()
        store.claim(KEY, waiter, NOW, TTL)
        loser = store.claim(KEY, object(), NOW, TTL)
        assert loser.attempt is None
        assert loser.fresh is None
        assert loser.waiter is waiter

    def test_fresh_snapshot_short_circuits(self, waiter):
        store = CacheStore()
        claim = store.claim(KEY, waiter, NOW, TTL)
        store.commit(KEY, claim.attempt, summary(), NOW)
        store.release(KEY, claim.attempt)

        again = store.claim(KEY, waiter, NOW + timedelta(minutes=5), TTL)
        assert again.fresh == summary()
        assert store.peek(KEY).state == CacheState.READY

    def test_expired_snapshot_is_reclaimed_with_previous_data(self, waiter):
        store = CacheStore()
        claim = store.claim(KEY, waiter, NOW, TTL)
        store.commit(KEY, claim.attempt, summary(), NOW)
        store.release(KEY, claim.attempt)

        again = store.claim(KEY, waiter, NOW + TTL, TTL)
        assert again.attempt == 2
        assert again.snapshot == summary()

    def test_force_skips_fresh_snapshot(self, waiter):
        store = CacheStore()
        claim = store.claim(KEY, waiter, NOW, TTL)
        store.commit(KEY, claim.attempt, summary(), NOW)
        store.release(KEY, claim.attempt)

        forced = store.claim(KEY, waiter, NOW, TTL, force=True)
        assert forced.attempt == 2
        assert forced.snapshot == summary()

    def test_force_joins_running_fetch(self, waiter):
        store = CacheStore()
        first = store.claim(KEY, waiter, NOW, TTL)
        forced = store.claim(KEY, object(), NOW, TTL, force=True)
        assert first.attempt == 1
        assert forced.attempt is None
        assert forced.waiter is waiter
        assert store.peek(KEY).inflight_attempt == 1


class TestCommit:
    @staticmethod
    def ready_store(waiter) -> tuple:
        store = CacheStore()
        first = store.claim(KEY, waiter, NOW, TTL).attempt
        store.commit(KEY, first, summary(1.0), NOW)
        store.release(KEY, first)
        return store, first

    def test_older_attempt_cannot_overwrite_newer(self, waiter):
        store, older = self.ready_store(waiter)
        newer = store.claim(KEY, waiter, NOW + TTL, TTL).attempt

        assert store.commit(KEY, newer, summary(2.0), NOW + TTL)
        assert not store.commit(KEY, older, summary(3.0), NOW)
        assert store.snapshot(KEY).total_spend == 2.0

    def test_stale_release_keeps_newer_claim(self, waiter):
        store, older = self.ready_store(waiter)
        store.claim(KEY, waiter, NOW + TTL, TTL)
        store.release(KEY, older)
        assert store.peek(KEY).fetch_in_progress


class TestRelease:
    def test_release_without_data_drops_entry(self, waiter):
        store = CacheStore()
        attempt = store.claim(KEY, waiter, NOW, TTL).attempt
        entry = store.peek(KEY)
        store.release(KEY, attempt)

        assert store.peek(KEY) is None
        assert entry.removed
        assert store.status() == []

    def test_next_claim_after_drop_starts_fresh_entry(self, waiter):
        store = CacheStore()
        store.release(KEY, store.claim(KEY, waiter, NOW, TTL).attempt)

        again = store.claim(KEY, waiter, NOW, TTL)
        assert again.attempt == 1
        assert store.peek(KEY).state == CacheState.FETCHING

    def test_release_with_data_keeps_entry(self, waiter):
        store = CacheStore()
        attempt = store.claim(KEY, waiter, NOW, TTL).attempt
        store.commit(KEY, attempt, summary(), NOW)
        store.release(KEY, attempt)
        assert store.peek(KEY).state == CacheState.READY

    def test_release_of_unknown_key_is_a_no_op(self):
        CacheStore().release(KEY, 1)


class TestEvict:
    def test_evicts_idle_matching_entries(self, waiter):
        store = CacheStore()
        other = ("hotel-1", "meta", "2026-W41")
        for key in (KEY, other):
            attempt = store.claim(key, waiter, NOW, TTL).attempt
            store.commit(key, attempt, summary(), NOW)
            store.release(key, attempt)

        removed = store.evict(lambda e: e.period_id == "2026-W41")
        assert removed == [other]
        assert store.peek(other) is None
        assert store.peek(KEY) is not None

    def test_in_flight_entries_are_kept(self, waiter):
        store = CacheStore()
        store.claim(KEY, waiter, NOW, TTL)
        assert store.evict(lambda e: True) == []

    def test_status(self, waiter):
        store = CacheStore()
        attempt = store.claim(KEY, waiter, NOW, TTL).attempt
        store.commit(KEY, attempt, summary(), NOW)
        store.release(KEY, attempt)
        assert store.status() == [
            {
                "client_id": "hotel-1",
                "platform": "meta",
                "period_id": "2026-W42",
                "state": "ready",
                "last_updated": NOW.isoformat(),
                "ready_attempt": 1,
            }
        ]
