"""
Ledger Module.

Bids and the per-item current-bid cache:
- Item / Bid records and request identities
- BidLedger: append/delete with write-through cache updates
- Cache rules (running max, delete recompute)
- ConsistencyChecker: drift detection and reconciliation
"""

from auctionhouse.core.ledger.models import (
    Item,
    Bid,
    Bidder,
    Capability,
    ANONYMOUS,
    ADMIN,
)
from auctionhouse.core.ledger.cache import (
    CacheState,
    initial_state,
    expected_state,
    after_append,
    after_delete,
)
from auctionhouse.core.ledger.ledger import BidLedger, BidScan
from auctionhouse.core.ledger.reconciler import ConsistencyChecker

__all__ = [
    # Models
    "Item",
    "Bid",
    "Bidder",
    "Capability",
    "ANONYMOUS",
    "ADMIN",
    # Cache
    "CacheState",
    "initial_state",
    "expected_state",
    "after_append",
    "after_delete",
    # Ledger
    "BidLedger",
    "BidScan",
    "ConsistencyChecker",
]
