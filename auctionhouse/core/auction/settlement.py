"""
Settlement - closed-item allocations and the per-bidder report.

settle_completed() runs the allocation for every ended item.
build_bidder_report() regroups those allocations by bidder for payment
collection: one row per (bidder, item), a fee-inclusive unit price,
per-bidder subtotals and grand totals. The report reads only
WinningAllocation output and never re-ranks bids itself.
"""

import csv
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Tuple, TYPE_CHECKING

from auctionhouse.core.auction.allocation import WinningAllocation, rank_bids, settle_item
from auctionhouse.utils.logger import get_logger

if TYPE_CHECKING:
    from auctionhouse.core.ledger.models import Bid, Item
    from auctionhouse.core.storage import StorageManager

logger = get_logger("settlement")

DEFAULT_FEE_RATE = "0.1"

REPORT_HEADER = [
    "Bidder",
    "Item",
    "Quantity",
    "Unit price (incl. fee)",
    "Total (incl. fee)",
    "Total (excl. fee)",
]
SUBTOTAL_LABEL = "Subtotal"
GRAND_TOTAL_LABEL = "Grand total"


# =============================================================================
# Closed Items
# =============================================================================


@dataclass
class ItemSettlement:
    """An ended item with its full bid history and the allocation result."""
    item: "Item"
    bids: List["Bid"]
    allocations: List[WinningAllocation]

    @property
    def units_filled(self) -> int:
        return sum(a.quantity_used for a in self.allocations)

    @property
    def units_unsold(self) -> int:
        return self.item.quantity - self.units_filled

    @property
    def value(self) -> int:
        return sum(a.value for a in self.allocations)


def settle_completed(storage: "StorageManager", now: datetime) -> List[ItemSettlement]:
    """
    Settle every item that has ended as of now.

    Items come back most recently ended first. Each item's bids are read
    inside one transaction so the allocation sees a consistent snapshot.
    """
    settlements = []
    for item in storage.list_ended_items(now):
        with storage.transaction():
            bids = rank_bids(storage.iter_bids(item.id))
        settlements.append(ItemSettlement(item, bids, settle_item(item, bids, now)))

    logger.info(f"Settled {len(settlements)} ended items")
    return settlements


# =============================================================================
# Bidder Report
# =============================================================================


def fee_inclusive_price(amount: int, fee_rate: str = DEFAULT_FEE_RATE) -> int:
    """Unit price with the fee added, rounded half up to a whole unit."""
    gross = Decimal(amount) * (Decimal(1) + Decimal(str(fee_rate)))
    return int(gross.quantize(Decimal(1), rounding=ROUND_HALF_UP))


@dataclass(frozen=True)
class ReportRow:
    item_name: str
    quantity: int
    unit_with_fee: int
    total_with_fee: int
    total_without_fee: int


@dataclass
class BidderBlock:
    """All winnings of one bidder."""
    bidder_nickname: str
    bidder_discord_name: Optional[str]
    rows: List[ReportRow] = field(default_factory=list)

    @property
    def display_name(self) -> str:
        if self.bidder_discord_name:
            return f"{self.bidder_nickname} ({self.bidder_discord_name})"
        return self.bidder_nickname

    @property
    def subtotal_with_fee(self) -> int:
        return sum(r.total_with_fee for r in self.rows)

    @property
    def subtotal_without_fee(self) -> int:
        return sum(r.total_without_fee for r in self.rows)


@dataclass
class BidderReport:
    blocks: List[BidderBlock]

    @property
    def grand_total_with_fee(self) -> int:
        return sum(b.subtotal_with_fee for b in self.blocks)

    @property
    def grand_total_without_fee(self) -> int:
        return sum(b.subtotal_without_fee for b in self.blocks)


def build_bidder_report(
    settlements: Iterable[ItemSettlement],
    fee_rate: str = DEFAULT_FEE_RATE,
) -> BidderReport:
    """
    Group winning allocations by bidder.

    Bidders are keyed by (nickname, discord name) and sorted by nickname;
    each bidder's rows are sorted by item name. Items without winners
    contribute nothing.
    """
    blocks: Dict[Tuple[str, str], BidderBlock] = {}

    for settlement in settlements:
        for allocation in settlement.allocations:
            key = (allocation.bidder_nickname or "", allocation.bidder_discord_name or "")
            block = blocks.get(key)
            if block is None:
                block = BidderBlock(allocation.bidder_nickname or "", allocation.bidder_discord_name)
                blocks[key] = block

            unit_with_fee = fee_inclusive_price(allocation.bid_amount, fee_rate)
            block.rows.append(
                ReportRow(
                    item_name=settlement.item.name,
                    quantity=allocation.quantity_used,
                    unit_with_fee=unit_with_fee,
                    total_with_fee=unit_with_fee * allocation.quantity_used,
                    total_without_fee=allocation.value,
                )
            )

    ordered = sorted(blocks.values(), key=lambda b: (b.bidder_nickname.casefold(), b.bidder_nickname))
    for block in ordered:
        block.rows.sort(key=lambda r: (r.item_name.casefold(), r.item_name))

    return BidderReport(blocks=ordered)


def report_rows(report: BidderReport) -> List[List[object]]:
    """
    Flatten a report into table rows (header excluded).

    The bidder name appears on a block's first row only; each block ends
    with a subtotal row and blocks are separated by a blank row. The
    last row carries the grand totals.
    """
    rows: List[List[object]] = []
    blank = [""] * len(REPORT_HEADER)

    for index, block in enumerate(report.blocks):
        if index:
            rows.append(list(blank))
        for position, r in enumerate(block.rows):
            rows.append([
                block.display_name if position == 0 else "",
                r.item_name,
                r.quantity,
                r.unit_with_fee,
                r.total_with_fee,
                r.total_without_fee,
            ])
        rows.append(["", SUBTOTAL_LABEL, "", "", block.subtotal_with_fee, block.subtotal_without_fee])

    rows.append([
        "", GRAND_TOTAL_LABEL, "", "",
        report.grand_total_with_fee, report.grand_total_without_fee,
    ])
    return rows


def write_report_csv(report: BidderReport, path: Path) -> int:
    """Write the report as CSV. Returns the number of data rows written."""
    rows = report_rows(report)
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", newline="", encoding="utf-8") as fh:
        writer = csv.writer(fh)
        writer.writerow(REPORT_HEADER)
        writer.writerows(rows)

    logger.info(f"Wrote settlement report ({len(report.blocks)} bidders) to {path}")
    return len(rows)
