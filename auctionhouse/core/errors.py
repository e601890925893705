"""
Error taxonomy for the auction core.

Validation errors are raised before any write. Storage errors are
raised after the surrounding transaction has been rolled back.
"""


class AuctionError(Exception):
    """Base class for all auction core errors."""


class InvalidQuantity(AuctionError, ValueError):
    """Bid quantity below 1 (or otherwise out of range)."""


class InvalidAmount(AuctionError, ValueError):
    """Bid amount not positive or below the item's starting price."""


class UnknownItem(AuctionError, LookupError):
    """Referenced item does not exist."""

    def __init__(self, item_id: int):
        super().__init__(f"Item {item_id} not found")
        self.item_id = item_id


class NotFound(AuctionError, LookupError):
    """Referenced bid does not exist."""

    def __init__(self, bid_id: int):
        super().__init__(f"Bid {bid_id} not found")
        self.bid_id = bid_id


class Forbidden(AuctionError, PermissionError):
    """Requester lacks the capability for this operation."""


class AuctionClosed(AuctionError):
    """Item has ended; its ledger is frozen for settlement."""


class AuctionNotEnded(AuctionError):
    """Settlement requested for an item that has not ended."""


class ItemHasBids(AuctionError):
    """Item removal refused because bids still reference it."""


class StorageUnavailable(AuctionError):
    """The storage backend failed; the operation had no effect."""


class TransportError(AuctionError):
    """Publishing or delivering a change event failed."""


class InvalidBidder(AuctionError, ValueError):
    """Bidder identity missing or malformed."""
