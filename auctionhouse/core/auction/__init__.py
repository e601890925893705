"""
Auction Module.

Pure settlement logic for closed items:
- Auction clock (open / ended / never closes)
- Multi-unit winner allocation
- Settlement of ended items and the per-bidder report
"""

from auctionhouse.core.auction.clock import (
    AuctionState,
    ServerClock,
    as_utc,
    classify,
    time_remaining,
    format_time_left,
    describe,
    sort_listing,
    server_time_payload,
)

from auctionhouse.core.auction.allocation import (
    WinningAllocation,
    rank_key,
    rank_bids,
    top_bid,
    allocate,
    allocated_value,
    settle_item,
)

from auctionhouse.core.auction.settlement import (
    ItemSettlement,
    BidderBlock,
    BidderReport,
    ReportRow,
    settle_completed,
    build_bidder_report,
    fee_inclusive_price,
    report_rows,
    write_report_csv,
)

__all__ = [
    # Clock
    "AuctionState",
    "ServerClock",
    "as_utc",
    "classify",
    "time_remaining",
    "format_time_left",
    "describe",
    "sort_listing",
    "server_time_payload",
    # Allocation
    "WinningAllocation",
    "rank_key",
    "rank_bids",
    "top_bid",
    "allocate",
    "allocated_value",
    "settle_item",
    # Settlement
    "ItemSettlement",
    "BidderBlock",
    "BidderReport",
    "ReportRow",
    "settle_completed",
    "build_bidder_report",
    "fee_inclusive_price",
    "report_rows",
    "write_report_csv",
]
