"""
Consistency Checker - detects and repairs cache/ledger drift.

The cached (current_bid, last_bidder_nickname) must equal the top bid
of the ledger under the allocation ranking, or (starting_price, None)
for an item without bids. Drift can come from a failed write outside
the ledger's transaction, a manual edit, or an older writer with
different rules.

Checking never repairs. Drift is reported, and an explicit reconcile()
call rewrites the cache from the ledger.
"""

from typing import List, Optional, TYPE_CHECKING

from auctionhouse.core.errors import UnknownItem
from auctionhouse.core.ledger.cache import CacheState, expected_state
from auctionhouse.network.events import EventType
from auctionhouse.utils.logger import get_logger

if TYPE_CHECKING:
    from auctionhouse.core.storage import StorageManager
    from auctionhouse.network.transport import EventPublisher

logger = get_logger("reconciler")


class ConsistencyChecker:
    """Compares each item's cache with its ledger and repairs on request."""

    def __init__(self, storage: "StorageManager", publisher: Optional["EventPublisher"] = None):
        self.storage = storage
        self.publisher = publisher

    def _snapshot(self, item_id: int):
        """(item, cached state, expected state) read in one transaction."""
        with self.storage.transaction():
            item = self.storage.get_item(item_id)
            if item is None:
                raise UnknownItem(item_id)
            expected = expected_state(item, self.storage.iter_bids(item_id))
        return item, CacheState.of(item), expected

    def check_consistency(self, item_id: int) -> bool:
        """
        Check one item.

        Returns:
            True if the cache disagrees with the ledger
        """
        _, cached, expected = self._snapshot(item_id)
        if cached == expected:
            return False

        logger.warning(
            f"Item {item_id} inconsistent: cache {cached.current_bid}/{cached.last_bidder_nickname}, "
            f"ledger {expected.current_bid}/{expected.last_bidder_nickname}"
        )
        return True

    def reconcile(self, item_id: int) -> bool:
        """
        Rewrite the cache from the ledger.

        Idempotent: an already consistent item is left untouched.

        Returns:
            True if the cache was changed
        """
        with self.storage.transaction():
            _, cached, expected = self._snapshot(item_id)
            if cached == expected:
                return False
            self.storage.update_item_cache(
                item_id, expected.current_bid, expected.last_bidder_nickname
            )

        logger.info(
            f"Item {item_id} reconciled: {cached.current_bid}/{cached.last_bidder_nickname} -> "
            f"{expected.current_bid}/{expected.last_bidder_nickname}"
        )
        if self.publisher is not None:
            self.publisher.publish(EventType.CACHE_REPAIRED, item_id)
        return True

    def find_inconsistent(self) -> List[int]:
        """Ids of all items whose cache disagrees with the ledger."""
        return [item.id for item in self.storage.list_items() if self.check_consistency(item.id)]

    def reconcile_all(self) -> List[int]:
        """Reconcile every item. Returns the ids that were repaired."""
        repaired = [item.id for item in self.storage.list_items() if self.reconcile(item.id)]
        logger.info(f"Reconcile sweep repaired {len(repaired)} items")
        return repaired
