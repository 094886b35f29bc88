"""FunnelCache: Current-Period Cache Store.

Keyed map of (client_id, platform, period_id) -> CacheEntry. Only the
smart cache router touches it, and only through claim / commit / release.
Every key carries its own lock; two different keys never contend.
"""

import asyncio
import threading
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Dict, List, Optional, Tuple

from funnelcache.models.summary_models import PeriodSummary
from funnelcache.core.logging import get_logger

logger = get_logger("cache.store")

CacheKey = Tuple[str, str, str]


class CacheState(str, Enum):
    EMPTY = "empty"
    FETCHING = "fetching"
    READY = "ready"


class CacheEntry:
    """Snapshot and fetch-claim state for one open period."""

    def __init__(self, client_id: str, platform: str, period_id: str):
        self.client_id = client_id
        self.platform = platform
        self.period_id = period_id
        self.cache_data: Optional[PeriodSummary] = None
        self.last_updated: Optional[datetime] = None
        self.fetch_in_progress = False
        self.ready_attempt = 0  # attempt that produced cache_data
        self.inflight_attempt = 0
        self.waiter: Optional[asyncio.Future] = None
        self.removed = False  # detached from the store; claimants must re-fetch
        self._attempts = 0
        self._lock = threading.Lock()

    @property
    def state(self) -> CacheState:
        if self.fetch_in_progress:
            return CacheState.FETCHING
        if self.cache_data is not None:
            return CacheState.READY
        return CacheState.EMPTY

    def is_fresh(self, now: datetime, ttl: timedelta) -> bool:
        if self.cache_data is None or self.last_updated is None:
            return False
        return now - self.last_updated < ttl


class ClaimResult:
    """Outcome of a claim attempt, read atomically under the entry lock.

    Exactly one of these holds:
      - ``fresh`` is set: a READY snapshot within TTL exists, no fetch needed
      - ``attempt`` is set: the caller won and must fetch, then release
      - neither: someone else is fetching; use ``snapshot`` or await ``waiter``
    """

    def __init__(
        self,
        attempt: Optional[int] = None,
        fresh: Optional[PeriodSummary] = None,
        snapshot: Optional[PeriodSummary] = None,
        waiter: Optional[asyncio.Future] = None,
    ):
        self.attempt = attempt
        self.fresh = fresh
        self.snapshot = snapshot
        self.waiter = waiter


class CacheStore:
    """In-process store of current-period snapshots."""

    def __init__(self):
        self._entries: Dict[CacheKey, CacheEntry] = {}

    def _entry(self, key: CacheKey) -> CacheEntry:
        entry = self._entries.get(key)
        if entry is None:
            # setdefault is atomic, so racing creators end up sharing one entry
            entry = self._entries.setdefault(key, CacheEntry(*key))
        return entry

    def peek(self, key: CacheKey) -> Optional[CacheEntry]:
        return self._entries.get(key)

    def claim(
        self,
        key: CacheKey,
        waiter: asyncio.Future,
        now: datetime,
        ttl: timedelta,
        force: bool = False,
    ) -> ClaimResult:
        """Compare-and-set on ``fetch_in_progress``.

        ``force`` only skips the freshness check. A running fetch is always
        joined, so forced callers never start a second one for the same key.
        """
        while True:
            entry = self._entry(key)
            with entry._lock:
                if entry.removed:
                    continue
                if not force and entry.is_fresh(now, ttl):
                    return ClaimResult(fresh=entry.cache_data)
                if entry.fetch_in_progress:
                    return ClaimResult(snapshot=entry.cache_data, waiter=entry.waiter)
                entry._attempts += 1
                entry.inflight_attempt = entry._attempts
                entry.fetch_in_progress = True
                entry.waiter = waiter
                return ClaimResult(attempt=entry._attempts, snapshot=entry.cache_data)

    def commit(
        self,
        key: CacheKey,
        attempt: int,
        payload: PeriodSummary,
        fetched_at: datetime,
    ) -> bool:
        """Publish a fetch result unless a later-started fetch already did."""
        entry = self._entry(key)
        with entry._lock:
            if attempt <= entry.ready_attempt:
                logger.info(
                    f"Discarding result of fetch #{attempt}; #{entry.ready_attempt} is newer",
                    extra={"client_id": key[0], "platform": key[1], "period_id": key[2]},
                )
                return False
            entry.cache_data = payload
            entry.last_updated = fetched_at
            entry.ready_attempt = attempt
            return True

    def release(self, key: CacheKey, attempt: int) -> None:
        """End a claim. An entry that never received data is dropped."""
        entry = self.peek(key)
        if entry is None:
            return
        with entry._lock:
            if entry.inflight_attempt != attempt:
                return
            entry.fetch_in_progress = False
            if entry.cache_data is None:
                entry.removed = True
                if self._entries.get(key) is entry:
                    del self._entries[key]

    def snapshot(self, key: CacheKey) -> Optional[PeriodSummary]:
        entry = self.peek(key)
        if entry is None:
            return None
        with entry._lock:
            return entry.cache_data

    def evict(self, should_evict: Callable[[CacheEntry], bool]) -> List[CacheKey]:
        """Drop idle entries matching the predicate; returns the removed keys."""
        removed: List[CacheKey] = []
        for key, entry in list(self._entries.items()):
            with entry._lock:
                if entry.fetch_in_progress or not should_evict(entry):
                    continue
                entry.removed = True
                if self._entries.get(key) is entry:
                    del self._entries[key]
                    removed.append(key)
        return removed

    def status(self) -> List[dict]:
        """Debug view of every entry."""
        rows = []
        for (client_id, platform, period_id), entry in list(self._entries.items()):
            rows.append(
                {
                    "client_id": client_id,
                    "platform": platform,
                    "period_id": period_id,
                    "state": entry.state.value,
                    "last_updated": (
                        entry.last_updated.isoformat() if entry.last_updated else None
                    ),
                    "ready_attempt": entry.ready_attempt,
                }
            )
        return rows
