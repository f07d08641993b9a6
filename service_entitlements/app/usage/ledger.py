"""
Usage ledger interface and in-memory implementation.
"""

import threading
from datetime import datetime, timezone
from typing import Callable, Dict, Protocol, Tuple

from shared.logging import get_logger

from ..catalog.models import UsagePeriod
from ..rules.models import UsageSnapshot

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def window_for(period: UsagePeriod, now: datetime) -> str:
    """Identifier of the counting window ``now`` falls into."""
    if period is UsagePeriod.DAILY:
        return now.strftime("%Y%m%d")
    if period is UsagePeriod.MONTHLY:
        return now.strftime("%Y%m")
    return "all"


class UsageLedger(Protocol):
    """Source of per-user, per-feature usage counters."""

    async def get_snapshot(self, user_id: str, feature_key: str) -> UsageSnapshot:
        ...

    async def increment(self, user_id: str, feature_key: str) -> UsageSnapshot:
        ...

    async def decrement(self, user_id: str, feature_key: str) -> UsageSnapshot:
        ...

    async def reset(self, user_id: str, feature_key: str) -> None:
        ...


class InMemoryUsageLedger:
    """Process-local ledger, suitable for a single replica and for tests.

    Each ``(user, feature, period)`` holds only its current window; a counter
    from an older window is replaced the next time the period is touched.
    """

    def __init__(self, clock: Clock = utc_now):
        self.clock = clock
        self.logger = get_logger("entitlements.usage.memory")
        self._counters: Dict[Tuple[str, str, UsagePeriod], Tuple[str, int]] = {}
        self._lock = threading.Lock()

    def _windows(self) -> Dict[UsagePeriod, str]:
        now = self.clock()
        return {period: window_for(period, now) for period in UsagePeriod}

    def _count(self, key: Tuple[str, str, UsagePeriod], window: str) -> int:
        stored = self._counters.get(key)
        if stored is None or stored[0] != window:
            return 0
        return stored[1]

    async def get_snapshot(self, user_id: str, feature_key: str) -> UsageSnapshot:
        with self._lock:
            return UsageSnapshot(current_usage={
                period: self._count((user_id, feature_key, period), window)
                for period, window in self._windows().items()
            })

    async def increment(self, user_id: str, feature_key: str) -> UsageSnapshot:
        snapshot = self._adjust(user_id, feature_key, 1)
        self.logger.debug(
            "Usage recorded",
            user_id=user_id,
            feature=feature_key,
            usage={p.value: n for p, n in snapshot.current_usage.items()}
        )
        return snapshot

    async def decrement(self, user_id: str, feature_key: str) -> UsageSnapshot:
        snapshot = self._adjust(user_id, feature_key, -1)
        self.logger.debug("Usage released", user_id=user_id, feature=feature_key)
        return snapshot

    async def reset(self, user_id: str, feature_key: str) -> None:
        with self._lock:
            for period in UsagePeriod:
                self._counters.pop((user_id, feature_key, period), None)
        self.logger.info("Usage reset", user_id=user_id, feature=feature_key)

    def _adjust(self, user_id: str, feature_key: str, delta: int) -> UsageSnapshot:
        current_usage = {}
        with self._lock:
            for period, window in self._windows().items():
                key = (user_id, feature_key, period)
                count = max(self._count(key, window) + delta, 0)
                self._counters[key] = (window, count)
                current_usage[period] = count
        return UsageSnapshot(current_usage=current_usage)
