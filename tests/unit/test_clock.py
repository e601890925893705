"""
Unit tests for the auction clock.
"""

from datetime import datetime, timedelta

import pytest

from auctionhouse.core.auction import (
    AuctionState,
    ServerClock,
    classify,
    describe,
    format_time_left,
    server_time_payload,
    sort_listing,
    time_remaining,
)


# =============================================================================
# Classification Tests
# =============================================================================


class TestClassify:
    """Tests for open / ended / never-closes classification."""

    def test_no_end_time_never_closes(self, make_item, t0):
        item = make_item(end_time=None)
        for offset in (timedelta(days=-365), timedelta(0), timedelta(days=365)):
            assert classify(item, t0 + offset) == AuctionState.NEVER_CLOSES

    def test_past_end_time_is_ended(self, make_item, t0):
        assert classify(make_item(end_time=t0 - timedelta(seconds=1)), t0) == AuctionState.ENDED

    def test_end_time_boundary_is_ended(self, make_item, t0):
        assert classify(make_item(end_time=t0), t0) == AuctionState.ENDED

    def test_future_end_time_is_open(self, make_item, t0):
        assert classify(make_item(end_time=t0 + timedelta(seconds=1)), t0) == AuctionState.OPEN

    def test_naive_now_treated_as_utc(self, make_item, t0):
        item = make_item(end_time=t0)
        naive = datetime(2026, 1, 1, 11, 59, 59)
        assert classify(item, naive) == AuctionState.OPEN


class TestTimeRemaining:
    def test_open_item_has_duration(self, make_item, t0):
        item = make_item(end_time=t0 + timedelta(minutes=5))
        assert time_remaining(item, t0) == timedelta(minutes=5)

    def test_ended_item_has_none(self, make_item, t0):
        assert time_remaining(make_item(end_time=t0), t0) is None

    def test_never_closing_item_has_none(self, make_item, t0):
        assert time_remaining(make_item(end_time=None), t0) is None


# =============================================================================
# Display Tests
# =============================================================================


class TestFormatTimeLeft:
    @pytest.mark.parametrize("remaining,expected", [
        (timedelta(days=2, hours=3, minutes=10), "2d 3h"),
        (timedelta(hours=3, minutes=5, seconds=9), "3h 5m"),
        (timedelta(minutes=5, seconds=10), "5m 10s"),
        (timedelta(seconds=42), "42s"),
        (timedelta(0), "ended"),
        (None, "ended"),
    ])
    def test_format(self, remaining, expected):
        assert format_time_left(remaining) == expected

    def test_describe(self, make_item, t0):
        assert describe(make_item(end_time=None), t0) == ""
        assert describe(make_item(end_time=t0), t0) == "ended"
        assert describe(make_item(end_time=t0 + timedelta(seconds=30)), t0) == "30s"


class TestSortListing:
    def test_open_first_then_newest(self, make_item, t0):
        old_open = make_item(1, end_time=t0 + timedelta(hours=1), created_at=t0 - timedelta(days=2))
        new_open = make_item(2, end_time=None, created_at=t0 - timedelta(days=1))
        new_ended = make_item(3, end_time=t0 - timedelta(minutes=1), created_at=t0)
        old_ended = make_item(4, end_time=t0 - timedelta(hours=1), created_at=t0 - timedelta(days=3))

        ordered = sort_listing([old_ended, old_open, new_ended, new_open], t0)
        assert [i.id for i in ordered] == [2, 1, 3, 4]


# =============================================================================
# Shared Time Source Tests
# =============================================================================


class TestServerClock:
    """Observers correct their local clock with the server offset."""

    def test_skewed_client_agrees_with_server(self, make_item, t0):
        item = make_item(end_time=t0 - timedelta(seconds=10))
        skewed_client_now = t0 - timedelta(minutes=5)   # client runs 5 minutes slow

        clock = ServerClock()
        clock.sync(server_now=t0, client_now=skewed_client_now, monotonic=0.0)

        assert clock.offset == timedelta(minutes=5)
        assert clock.now(skewed_client_now) == t0
        assert classify(item, clock.now(skewed_client_now)) == AuctionState.ENDED

    def test_unsynced_uses_local_time(self, t0):
        clock = ServerClock()
        assert not clock.is_synced
        assert clock.now(t0) == t0

    def test_needs_sync(self, t0):
        clock = ServerClock(sync_interval=300)
        assert clock.needs_sync(monotonic=0.0)
        clock.sync(t0, t0, monotonic=1000.0)
        assert not clock.needs_sync(monotonic=1200.0)
        assert clock.needs_sync(monotonic=1301.0)

    def test_time_payload(self, t0):
        payload = server_time_payload(t0)
        assert payload["serverTime"] == "2026-01-01T12:00:00.000+00:00"
        assert payload["timestamp"] == int(t0.timestamp() * 1000)
