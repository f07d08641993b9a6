"""
Unit tests for usage ledgers.
"""

from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

import sys
import os
sys.path.append(os.path.join(os.path.dirname(__file__), '..', '..'))

from service_entitlements.app.catalog.models import UsagePeriod
from service_entitlements.app.usage.ledger import InMemoryUsageLedger, window_for
from service_entitlements.app.usage.redis_ledger import RedisUsageLedger, WINDOW_TTL_SECONDS
from shared.errors import ServiceError


class FakeClock:
    """Settable clock."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


class TestWindows:
    """Test cases for window identifiers."""

    def test_window_for(self):
        """Test daily, monthly and total windows."""
        now = datetime(2024, 3, 9, 23, 59, tzinfo=timezone.utc)

        assert window_for(UsagePeriod.DAILY, now) == "20240309"
        assert window_for(UsagePeriod.MONTHLY, now) == "202403"
        assert window_for(UsagePeriod.TOTAL, now) == "all"


class TestInMemoryUsageLedger:
    """Test cases for InMemoryUsageLedger."""

    @pytest.fixture
    def clock(self):
        return FakeClock(datetime(2024, 3, 9, 12, 0, tzinfo=timezone.utc))

    @pytest.fixture
    def ledger(self, clock):
        """Create InMemoryUsageLedger instance."""
        return InMemoryUsageLedger(clock=clock)

    @pytest.mark.asyncio
    async def test_empty_snapshot(self, ledger):
        """Test unseen users have zero usage."""
        snapshot = await ledger.get_snapshot("user-1", "CONTACT_SELLERS")

        assert snapshot.current_usage == {
            UsagePeriod.DAILY: 0, UsagePeriod.MONTHLY: 0, UsagePeriod.TOTAL: 0
        }

    @pytest.mark.asyncio
    async def test_increment_counts_every_period(self, ledger):
        """Test one use bumps daily, monthly and total."""
        await ledger.increment("user-1", "CONTACT_SELLERS")
        snapshot = await ledger.increment("user-1", "CONTACT_SELLERS")

        assert snapshot.used(UsagePeriod.DAILY) == 2
        assert snapshot.used(UsagePeriod.MONTHLY) == 2
        assert snapshot.used(UsagePeriod.TOTAL) == 2

    @pytest.mark.asyncio
    async def test_counters_are_per_user_and_feature(self, ledger):
        """Test counters do not bleed across users or features."""
        await ledger.increment("user-1", "CONTACT_SELLERS")

        assert (await ledger.get_snapshot("user-2", "CONTACT_SELLERS")).used(UsagePeriod.TOTAL) == 0
        assert (await ledger.get_snapshot("user-1", "SAVED_LISTINGS")).used(UsagePeriod.TOTAL) == 0

    @pytest.mark.asyncio
    async def test_daily_window_rolls_over(self, ledger, clock):
        """Test a new day starts a fresh daily window."""
        await ledger.increment("user-1", "CONTACT_SELLERS")
        clock.now = datetime(2024, 3, 10, 0, 1, tzinfo=timezone.utc)

        snapshot = await ledger.get_snapshot("user-1", "CONTACT_SELLERS")

        assert snapshot.used(UsagePeriod.DAILY) == 0
        assert snapshot.used(UsagePeriod.MONTHLY) == 1
        assert snapshot.used(UsagePeriod.TOTAL) == 1

    @pytest.mark.asyncio
    async def test_monthly_window_rolls_over(self, ledger, clock):
        """Test a new month starts a fresh monthly window."""
        await ledger.increment("user-1", "CONTACT_SELLERS")
        clock.now = datetime(2024, 4, 1, tzinfo=timezone.utc)

        snapshot = await ledger.get_snapshot("user-1", "CONTACT_SELLERS")

        assert snapshot.used(UsagePeriod.MONTHLY) == 0
        assert snapshot.used(UsagePeriod.TOTAL) == 1

    @pytest.mark.asyncio
    async def test_expired_windows_are_not_kept(self, ledger, clock):
        """Test storage stays bounded as days pass."""
        start = clock.now
        for day in range(60):
            clock.now = start + timedelta(days=day)
            await ledger.increment("user-1", "CONTACT_SELLERS")

        assert len(ledger._counters) == 3
        snapshot = await ledger.get_snapshot("user-1", "CONTACT_SELLERS")
        assert snapshot.used(UsagePeriod.DAILY) == 1
        assert snapshot.used(UsagePeriod.TOTAL) == 60

    @pytest.mark.asyncio
    async def test_decrement(self, ledger):
        """Test a released use is given back in every window."""
        await ledger.increment("user-1", "CONTACT_SELLERS")
        await ledger.increment("user-1", "CONTACT_SELLERS")

        snapshot = await ledger.decrement("user-1", "CONTACT_SELLERS")

        assert snapshot.current_usage == {
            UsagePeriod.DAILY: 1, UsagePeriod.MONTHLY: 1, UsagePeriod.TOTAL: 1
        }

    @pytest.mark.asyncio
    async def test_decrement_never_goes_negative(self, ledger):
        """Test releasing with nothing recorded leaves counters at zero."""
        snapshot = await ledger.decrement("user-1", "CONTACT_SELLERS")

        assert snapshot.used(UsagePeriod.DAILY) == 0

    @pytest.mark.asyncio
    async def test_reset(self, ledger, clock):
        """Test reset clears every window of one feature."""
        await ledger.increment("user-1", "CONTACT_SELLERS")
        clock.now = datetime(2024, 5, 1, tzinfo=timezone.utc)
        await ledger.increment("user-1", "CONTACT_SELLERS")
        await ledger.increment("user-1", "SAVED_LISTINGS")

        await ledger.reset("user-1", "CONTACT_SELLERS")

        assert (await ledger.get_snapshot("user-1", "CONTACT_SELLERS")).used(UsagePeriod.TOTAL) == 0
        assert (await ledger.get_snapshot("user-1", "SAVED_LISTINGS")).used(UsagePeriod.TOTAL) == 1


class TestRedisUsageLedger:
    """Test cases for RedisUsageLedger."""

    @pytest.fixture
    def ledger(self):
        """Create RedisUsageLedger instance."""
        clock = FakeClock(datetime(2024, 3, 9, 12, 0, tzinfo=timezone.utc))
        return RedisUsageLedger("redis://localhost:6379/0", clock=clock)

    def test_make_key(self, ledger):
        """Test key layout."""
        key = ledger._make_key("user-1", "CONTACT_SELLERS", UsagePeriod.DAILY, "20240309")

        assert key == "usage:user-1:CONTACT_SELLERS:daily:20240309"

    @pytest.mark.asyncio
    async def test_get_snapshot(self, ledger):
        """Test snapshot reads every window in one round trip."""
        mock_redis = AsyncMock()
        mock_redis.mget.return_value = ["3", None, "12"]

        with patch.object(ledger, '_get_redis', new_callable=AsyncMock, return_value=mock_redis):
            snapshot = await ledger.get_snapshot("user-1", "CONTACT_SELLERS")

        mock_redis.mget.assert_awaited_once_with([
            "usage:user-1:CONTACT_SELLERS:daily:20240309",
            "usage:user-1:CONTACT_SELLERS:monthly:202403",
            "usage:user-1:CONTACT_SELLERS:total:all",
        ])
        assert snapshot.current_usage == {
            UsagePeriod.DAILY: 3, UsagePeriod.MONTHLY: 0, UsagePeriod.TOTAL: 12
        }

    @pytest.mark.asyncio
    async def test_increment(self, ledger):
        """Test increment uses INCR plus EXPIRE on windowed keys."""
        mock_pipeline = MagicMock()
        mock_pipeline.execute = AsyncMock(return_value=[4, True, 9, True, 30])
        mock_redis = MagicMock()
        mock_redis.pipeline.return_value.__aenter__ = AsyncMock(return_value=mock_pipeline)
        mock_redis.pipeline.return_value.__aexit__ = AsyncMock(return_value=False)

        with patch.object(ledger, '_get_redis', new_callable=AsyncMock, return_value=mock_redis):
            snapshot = await ledger.increment("user-1", "CONTACT_SELLERS")

        assert snapshot.current_usage == {
            UsagePeriod.DAILY: 4, UsagePeriod.MONTHLY: 9, UsagePeriod.TOTAL: 30
        }
        assert mock_pipeline.incr.call_count == 3
        mock_pipeline.expire.assert_any_call(
            "usage:user-1:CONTACT_SELLERS:daily:20240309", WINDOW_TTL_SECONDS[UsagePeriod.DAILY]
        )
        mock_pipeline.expire.assert_any_call(
            "usage:user-1:CONTACT_SELLERS:monthly:202403", WINDOW_TTL_SECONDS[UsagePeriod.MONTHLY]
        )
        assert mock_pipeline.expire.call_count == 2

    @pytest.mark.asyncio
    async def test_reset(self, ledger):
        """Test reset deletes the current window keys of the feature."""
        mock_redis = AsyncMock()
        mock_redis.delete.return_value = 3

        with patch.object(ledger, '_get_redis', new_callable=AsyncMock, return_value=mock_redis):
            await ledger.reset("user-1", "CONTACT_SELLERS")

        mock_redis.delete.assert_awaited_once_with(
            "usage:user-1:CONTACT_SELLERS:daily:20240309",
            "usage:user-1:CONTACT_SELLERS:monthly:202403",
            "usage:user-1:CONTACT_SELLERS:total:all",
        )
        mock_redis.keys.assert_not_called()

    @pytest.mark.asyncio
    async def test_reset_with_glob_characters_in_user_id(self, ledger):
        """Test glob characters in a user id only address that user's own keys."""
        mock_redis = AsyncMock()

        with patch.object(ledger, '_get_redis', new_callable=AsyncMock, return_value=mock_redis):
            await ledger.reset("u*", "CONTACT_SELLERS")

        deleted = mock_redis.delete.await_args.args
        assert deleted == (
            "usage:u*:CONTACT_SELLERS:daily:20240309",
            "usage:u*:CONTACT_SELLERS:monthly:202403",
            "usage:u*:CONTACT_SELLERS:total:all",
        )
        mock_redis.keys.assert_not_called()
        mock_redis.scan_iter.assert_not_called()

    @pytest.mark.asyncio
    async def test_decrement(self, ledger):
        """Test decrement releases one use in every window."""
        mock_pipeline = MagicMock()
        mock_pipeline.execute = AsyncMock(return_value=[3, 8, 29])
        mock_redis = MagicMock()
        mock_redis.pipeline.return_value.__aenter__ = AsyncMock(return_value=mock_pipeline)
        mock_redis.pipeline.return_value.__aexit__ = AsyncMock(return_value=False)

        with patch.object(ledger, '_get_redis', new_callable=AsyncMock, return_value=mock_redis):
            snapshot = await ledger.decrement("user-1", "CONTACT_SELLERS")

        assert snapshot.current_usage == {
            UsagePeriod.DAILY: 3, UsagePeriod.MONTHLY: 8, UsagePeriod.TOTAL: 29
        }
        mock_pipeline.decr.assert_any_call("usage:user-1:CONTACT_SELLERS:total:all")
        assert mock_pipeline.decr.call_count == 3

    @pytest.mark.asyncio
    async def test_health_check(self, ledger):
        """Test health check pings Redis."""
        mock_redis = AsyncMock()

        with patch.object(ledger, '_get_redis', new_callable=AsyncMock, return_value=mock_redis):
            assert await ledger.health_check() is True

        mock_redis.ping.side_effect = ConnectionError("down")
        with patch.object(ledger, '_get_redis', new_callable=AsyncMock, return_value=mock_redis):
            assert await ledger.health_check() is False

    @pytest.mark.asyncio
    async def test_start_failure(self, ledger):
        """Test an unreachable server surfaces as ServiceError."""
        mock_redis = AsyncMock()
        mock_redis.ping.side_effect = ConnectionError("refused")

        with patch('service_entitlements.app.usage.redis_ledger.redis.from_url', return_value=mock_redis):
            with pytest.raises(ServiceError):
                await ledger.start()
