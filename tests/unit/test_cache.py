"""
Unit tests for the current-bid cache rules.
"""

from datetime import timedelta

import pytest

from auctionhouse.core.ledger.cache import (
    CacheState,
    after_append,
    after_delete,
    expected_state,
    initial_state,
)


# =============================================================================
# Append Rules
# =============================================================================


class TestAfterAppend:
    """Which appended bids take the displayed lead."""

    def test_first_bid_at_starting_price_leads(self, make_item, make_bid):
        """No bids, starting price 50: a first bid of exactly 50 becomes the leader."""
        item = make_item(starting_price=50)
        assert initial_state(item) == CacheState(50, None)

        state = after_append(item, make_bid(1, 50, nickname="alice"), [])
        assert state == CacheState(50, "alice")

    def test_equal_bid_after_first_does_not_lead(self, make_item, make_bid):
        item = make_item(starting_price=50, current_bid=50, last_bidder="alice")
        prior = [make_bid(1, 50, nickname="alice")]
        assert after_append(item, make_bid(2, 50, nickname="bob"), prior) is None

    def test_equal_bid_submitted_earlier_leads(self, make_item, make_bid, t0):
        """A tie goes to the earlier submission even when it was appended later."""
        item = make_item(current_bid=100, last_bidder="alice")
        prior = [make_bid(1, 100, nickname="alice", created_at=t0 + timedelta(minutes=5))]
        late_append = make_bid(2, 100, nickname="bob", created_at=t0 + timedelta(minutes=1))

        assert after_append(item, late_append, prior) == CacheState(100, "bob")
        assert after_append(item, late_append, prior) == expected_state(item, prior + [late_append])

    def test_tie_on_time_goes_to_lower_id(self, make_item, make_bid, t0):
        item = make_item(current_bid=100, last_bidder="alice")
        prior = [make_bid(1, 100, nickname="alice", created_at=t0)]
        assert after_append(item, make_bid(2, 100, nickname="bob", created_at=t0), prior) is None

    def test_higher_bid_leads(self, make_item, make_bid):
        item = make_item(current_bid=80, last_bidder="alice")
        state = after_append(item, make_bid(2, 81, nickname="bob"), [make_bid(1, 80, nickname="alice")])
        assert state == CacheState(81, "bob")

    def test_lower_bid_keeps_leader(self, make_item, make_bid):
        item = make_item(current_bid=80, last_bidder="alice")
        assert after_append(item, make_bid(2, 70), [make_bid(1, 80, nickname="alice")]) is None


# =============================================================================
# Delete Rules
# =============================================================================


class TestAfterDelete:
    def test_deleting_sole_bid_resets(self, make_item, make_bid):
        item = make_item(starting_price=50, current_bid=60, last_bidder="alice")
        deleted = make_bid(1, 60, nickname="alice")
        assert after_delete(item, deleted, []) == CacheState(50, None)

    def test_deleting_leader_promotes_next(self, make_item, make_bid):
        item = make_item(current_bid=100, last_bidder="alice")
        deleted = make_bid(1, 100, nickname="alice")
        remaining = [make_bid(2, 70, nickname="bob"), make_bid(3, 90, nickname="carol")]
        assert after_delete(item, deleted, remaining) == CacheState(90, "carol")

    def test_deleting_non_leader_leaves_cache(self, make_item, make_bid):
        item = make_item(current_bid=100, last_bidder="alice")
        assert after_delete(item, make_bid(2, 70), [make_bid(1, 100)]) is None

    def test_deleting_one_of_tied_leaders(self, make_item, make_bid, t0):
        item = make_item(current_bid=100, last_bidder="alice")
        deleted = make_bid(1, 100, nickname="alice")
        remaining = [make_bid(2, 100, nickname="bob")]
        assert after_delete(item, deleted, remaining) == CacheState(100, "bob")


# =============================================================================
# Expected State
# =============================================================================


class TestExpectedState:
    def test_no_bids(self, make_item):
        assert expected_state(make_item(starting_price=75), []) == CacheState(75, None)

    def test_tie_picks_earliest(self, make_item, make_bid):
        bids = [make_bid(2, 100, nickname="late"), make_bid(1, 100, nickname="early")]
        assert expected_state(make_item(), bids) == CacheState(100, "early")

    def test_reads_cached_fields(self, make_item):
        item = make_item(current_bid=120, last_bidder="dora")
        assert CacheState.of(item) == CacheState(120, "dora")


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
