"""
Integration tests for concurrent ledger writers.

Each thread gets its own SQLite connection; the write transaction
serializes them on the database lock.
"""

import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from auctionhouse.core.ledger import ADMIN, BidLedger, Bidder, ConsistencyChecker


def run_concurrently(storage, calls):
    """Start every call at the same moment on its own thread; return results in order."""
    barrier = threading.Barrier(len(calls))

    def worker(call):
        barrier.wait()
        try:
            return call()
        finally:
            storage.adapter.close()

    with ThreadPoolExecutor(max_workers=len(calls)) as pool:
        return list(pool.map(worker, calls))


# =============================================================================
# Same Item
# =============================================================================


class TestSameItem:
    @pytest.mark.parametrize("order", [(100, 110), (110, 100)])
    def test_highest_wins_regardless_of_completion_order(self, storage, open_item, order):
        """Concurrent 100 and 110: the cache always ends at 110 by the 110 bidder."""
        ledger = BidLedger(storage)
        calls = [
            (lambda amount=amount: ledger.append_bid(open_item.id, amount, 1, Bidder(f"bidder{amount}")))
            for amount in order
        ]

        run_concurrently(storage, calls)

        item = ledger.get_item(open_item.id)
        assert (item.current_bid, item.last_bidder_nickname) == (110, "bidder110")
        assert storage.count_bids(open_item.id) == 2
        assert ConsistencyChecker(storage).check_consistency(open_item.id) is False

    def test_many_writers_stay_consistent(self, storage, open_item):
        ledger = BidLedger(storage)
        amounts = [60 + (i * 7) % 50 for i in range(16)]
        calls = [
            (lambda i=i, amount=amount: ledger.append_bid(open_item.id, amount, 1, Bidder(f"b{i}")))
            for i, amount in enumerate(amounts)
        ]

        bids = run_concurrently(storage, calls)

        assert len({b.id for b in bids}) == len(amounts)
        item = ledger.get_item(open_item.id)
        assert item.current_bid == max(amounts)
        assert ConsistencyChecker(storage).check_consistency(open_item.id) is False

    def test_append_racing_delete(self, storage, open_item):
        ledger = BidLedger(storage)
        leader = ledger.append_bid(open_item.id, 100, 1, Bidder("alice"))

        run_concurrently(storage, [
            lambda: ledger.delete_bid(leader.id, ADMIN),
            lambda: ledger.append_bid(open_item.id, 90, 1, Bidder("bob")),
        ])

        item = ledger.get_item(open_item.id)
        assert (item.current_bid, item.last_bidder_nickname) == (90, "bob")
        assert ConsistencyChecker(storage).check_consistency(open_item.id) is False


# =============================================================================
# Different Items
# =============================================================================


class TestDifferentItems:
    def test_items_do_not_interfere(self, storage):
        ledger = BidLedger(storage)
        items = [ledger.create_item(f"Lot {n}", 10, 1, ADMIN) for n in range(4)]
        calls = [
            (lambda item=item, n=n: ledger.append_bid(item.id, 20 + n, 1, Bidder(f"b{n}")))
            for n, item in enumerate(items)
        ]

        run_concurrently(storage, calls)

        for n, item in enumerate(items):
            fresh = ledger.get_item(item.id)
            assert (fresh.current_bid, fresh.last_bidder_nickname) == (20 + n, f"b{n}")
        assert ConsistencyChecker(storage).find_inconsistent() == []
