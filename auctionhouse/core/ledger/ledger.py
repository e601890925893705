"""
Bid Ledger - append-only bids with a write-through current-bid cache.

Every mutation runs as one storage transaction: the ledger change and
the matching cache update (see cache.py) are observed together or not
at all. The transaction takes the database write lock, which serializes
concurrent appends and deletes on the same item, so the "is this the
new max" decision always sees a consistent snapshot.

After commit, a change event is published. Publishing is best effort;
the ledger is already correct when it runs.
"""

from datetime import datetime
from typing import Iterator, List, Optional, TYPE_CHECKING

from auctionhouse.core.auction.clock import AuctionState, as_utc, classify
from auctionhouse.core.errors import (
    AuctionClosed,
    Forbidden,
    InvalidAmount,
    InvalidBidder,
    InvalidQuantity,
    ItemHasBids,
    NotFound,
    UnknownItem,
)
from auctionhouse.core.ledger.cache import after_append, after_delete
from auctionhouse.core.ledger.models import Bid, Bidder, Capability, Item
from auctionhouse.network.events import EventType
from auctionhouse.utils.logger import get_logger
from auctionhouse.utils.validation import (
    MAX_ITEM_NAME_LENGTH,
    MAX_NICKNAME_LENGTH,
    MAX_QUANTITY,
    first_error,
    validate_integer,
    validate_optional_string,
    validate_string,
)

if TYPE_CHECKING:
    from auctionhouse.core.storage import StorageManager
    from auctionhouse.network.transport import EventPublisher

logger = get_logger("ledger")


class BidScan:
    """
    Lazy view of one item's bids.

    Each iteration runs a fresh range scan, so the view can be walked
    any number of times. Order is storage order; callers rank.
    """

    def __init__(self, storage: "StorageManager", item_id: int):
        self._storage = storage
        self.item_id = item_id

    def __iter__(self) -> Iterator[Bid]:
        return self._storage.iter_bids(self.item_id)


class BidLedger:
    """
    Source of truth for bids.

    Attributes:
        storage: Items/Bids storage collaborator
        publisher: Optional change-event publisher
    """

    def __init__(self, storage: "StorageManager", publisher: Optional["EventPublisher"] = None):
        self.storage = storage
        self.publisher = publisher

    # =========================================================================
    # Items
    # =========================================================================

    def create_item(
        self,
        name: str,
        starting_price: int,
        quantity: int,
        capability: Capability,
        end_time: Optional[datetime] = None,
    ) -> Item:
        """List a new item with its cache at the starting price (admin only)."""
        _require_admin(capability, "list items")

        error = first_error(
            validate_string(name, "name", MAX_ITEM_NAME_LENGTH),
            validate_integer(starting_price, "starting_price"),
        )
        if error:
            raise InvalidAmount(error)
        ok, error = validate_integer(quantity, "quantity", max_val=MAX_QUANTITY)
        if not ok:
            raise InvalidQuantity(error)

        item = self.storage.create_item(name, starting_price, quantity, end_time=end_time)
        logger.info(f"Item {item.id} listed: {name!r} x{quantity} from {starting_price}")
        self._notify(EventType.ITEM_ADDED, item.id)
        return item

    def get_item(self, item_id: int) -> Item:
        item = self.storage.get_item(item_id)
        if item is None:
            raise UnknownItem(item_id)
        return item

    def list_items(self) -> List[Item]:
        return self.storage.list_items()

    def remove_item(self, item_id: int, capability: Capability, cascade: bool = False) -> int:
        """
        Delete an item (admin only).

        Refused with ItemHasBids while bids reference it, unless cascade
        is set, in which case its bids are deleted first.

        Returns:
            Number of bids deleted with the item
        """
        _require_admin(capability, "remove items")

        with self.storage.transaction():
            self.get_item(item_id)
            bid_count = self.storage.count_bids(item_id)
            if bid_count and not cascade:
                raise ItemHasBids(f"Item {item_id} has {bid_count} bids")
            removed = self.storage.remove_bids_for_item(item_id) if bid_count else 0
            self.storage.delete_item(item_id)

        logger.info(f"Item {item_id} removed ({removed} bids cascaded)")
        self._notify(EventType.ITEM_REMOVED, item_id)
        return removed

    # =========================================================================
    # Bids
    # =========================================================================

    def append_bid(
        self,
        item_id: int,
        amount: int,
        quantity: int,
        bidder: Bidder,
        now: Optional[datetime] = None,
        capability: Optional[Capability] = None,
    ) -> Bid:
        """
        Record a bid and update the item's cached current bid.

        Args:
            item_id: Item to bid on
            amount: Per-unit price
            quantity: Units requested
            bidder: Identity the bid is placed under
            now: Submission time; defaults to the storage server clock
            capability: When given, the requester must be a member

        Raises:
            InvalidQuantity: quantity < 1
            InvalidAmount: amount <= 0 or below the item's starting price
            UnknownItem: no such item
            AuctionClosed: the item has ended
            Forbidden: capability given and not a member
        """
        ok, error = validate_integer(quantity, "quantity", max_val=MAX_QUANTITY)
        if not ok:
            raise InvalidQuantity(error)
        ok, error = validate_integer(amount, "amount")
        if not ok:
            raise InvalidAmount(error)
        error = first_error(
            validate_string(bidder.nickname, "nickname", MAX_NICKNAME_LENGTH),
            validate_optional_string(bidder.discord_id, "discord_id", MAX_NICKNAME_LENGTH),
            validate_optional_string(bidder.discord_name, "discord_name", MAX_NICKNAME_LENGTH),
        )
        if error:
            raise InvalidBidder(error)
        if capability is not None and not capability.is_member:
            raise Forbidden("Only members can bid")

        with self.storage.transaction():
            item = self.get_item(item_id)
            now = as_utc(now) if now else self.storage.server_now()

            if classify(item, now) == AuctionState.ENDED:
                raise AuctionClosed(f"Item {item_id} ended at {item.end_time.isoformat()}")
            if amount < item.starting_price:
                raise InvalidAmount(
                    f"amount {amount} is below the starting price {item.starting_price}"
                )

            bid = self.storage.add_bid(
                item_id, amount, quantity,
                bidder.nickname, bidder.discord_id, bidder.discord_name,
                created_at=now,
            )

            prior = (b for b in self.storage.iter_bids(item_id) if b.id != bid.id)
            new_state = after_append(item, bid, prior)
            if new_state is not None:
                self.storage.update_item_cache(
                    item_id, new_state.current_bid, new_state.last_bidder_nickname
                )

        logger.info(
            f"Bid {bid.id} on item {item_id}: {quantity} x {amount} by {bidder.nickname}"
            + (" (new leader)" if new_state else "")
        )
        self._notify(EventType.BID_PLACED, item_id)
        return bid

    def delete_bid(self, bid_id: int, capability: Capability) -> Bid:
        """
        Remove a bid (admin only) and recompute the cache if it held the lead.

        Returns:
            The deleted bid
        """
        _require_admin(capability, "delete bids")

        with self.storage.transaction():
            bid = self.storage.get_bid(bid_id)
            if bid is None:
                raise NotFound(bid_id)
            item = self.get_item(bid.item_id)

            self.storage.remove_bid(bid_id)

            new_state = after_delete(item, bid, self.storage.iter_bids(item.id))
            if new_state is not None:
                self.storage.update_item_cache(
                    item.id, new_state.current_bid, new_state.last_bidder_nickname
                )

        logger.info(
            f"Bid {bid_id} on item {bid.item_id} deleted"
            + (f", cache now {new_state.current_bid}/{new_state.last_bidder_nickname}" if new_state else "")
        )
        self._notify(EventType.BID_DELETED, bid.item_id)
        return bid

    def list_bids(self, item_id: int) -> BidScan:
        """All bids on an item as a restartable lazy sequence (unordered)."""
        return BidScan(self.storage, item_id)

    # =========================================================================
    # Internal
    # =========================================================================

    def _notify(self, kind: EventType, item_id: Optional[int]) -> None:
        if self.publisher is not None:
            self.publisher.publish(kind, item_id)


def _require_admin(capability: Optional[Capability], action: str) -> None:
    if capability is None or not capability.is_admin:
        raise Forbidden(f"Admin capability required to {action}")
