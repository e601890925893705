from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterator, List, Optional

from auctionhouse.core.ledger.models import Bid, Item
from auctionhouse.core.storage.sqlite_adapter import SQLiteAdapter
from auctionhouse.utils.logger import get_logger

logger = get_logger("storage.manager")


def to_db_time(value: Optional[datetime]) -> Optional[str]:
    """Normalize a datetime to the stored UTC ISO-8601 form (naive = UTC)."""
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def from_db_time(value: Optional[str]) -> Optional[datetime]:
    if value is None:
        return None
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class StorageManager:
    """
    Storage collaborator for the auction core.

    Wraps the SQLite adapter and converts rows into Item/Bid records.
    Handles:
    - Items (point read, cache update, listing scans)
    - Bids (append, point read, range scan by item, delete)
    - Write transactions and the server clock
    """

    def __init__(
        self,
        data_dir: Path,
        db_name: str = "auction.db",
        items_table: str = "items",
        bids_table: str = "bids",
    ):
        self.data_dir = Path(data_dir)
        self.db_path = self.data_dir / db_name
        self.adapter = SQLiteAdapter(self.db_path, items_table=items_table, bids_table=bids_table)

        logger.info(f"StorageManager initialized at {self.db_path} ({items_table}/{bids_table})")

    @classmethod
    def from_config(cls, config) -> "StorageManager":
        return cls(
            config.data_dir,
            db_name=config.db_name,
            items_table=config.items_table,
            bids_table=config.bids_table,
        )

    # =========================================================================
    # Transactions & Clock
    # =========================================================================

    @contextmanager
    def transaction(self):
        """Atomic unit spanning both tables; see SQLiteAdapter.transaction."""
        with self.adapter.transaction():
            yield self

    def server_now(self) -> datetime:
        """Authoritative current time (UTC, from the database)."""
        return from_db_time(self.adapter.server_time())

    # =========================================================================
    # Items
    # =========================================================================

    def create_item(
        self,
        name: str,
        starting_price: int,
        quantity: int,
        end_time: Optional[datetime] = None,
        created_at: Optional[datetime] = None,
    ) -> Item:
        created_at = created_at or self.server_now()
        with self.transaction():
            item_id = self.adapter.insert_item(
                name, starting_price, quantity, to_db_time(end_time), to_db_time(created_at)
            )
            return self.get_item(item_id)

    def get_item(self, item_id: int) -> Optional[Item]:
        row = self.adapter.get_item(item_id)
        return _row_to_item(row) if row else None

    def list_items(self) -> List[Item]:
        return [_row_to_item(row) for row in self.adapter.get_items()]

    def list_ended_items(self, now: datetime) -> List[Item]:
        return [_row_to_item(row) for row in self.adapter.get_ended_items(to_db_time(now))]

    def update_item_cache(self, item_id: int, current_bid: int, last_bidder: Optional[str]) -> bool:
        return self.adapter.update_item_cache(item_id, current_bid, last_bidder)

    def delete_item(self, item_id: int) -> bool:
        return self.adapter.delete_item(item_id)

    # =========================================================================
    # Bids
    # =========================================================================

    def add_bid(
        self,
        item_id: int,
        amount: int,
        quantity: int,
        nickname: str,
        discord_id: Optional[str],
        discord_name: Optional[str],
        created_at: datetime,
    ) -> Bid:
        with self.transaction():
            bid_id = self.adapter.insert_bid(
                item_id, amount, quantity, nickname, discord_id, discord_name,
                to_db_time(created_at),
            )
            return self.get_bid(bid_id)

    def get_bid(self, bid_id: int) -> Optional[Bid]:
        row = self.adapter.get_bid(bid_id)
        return _row_to_bid(row) if row else None

    def iter_bids(self, item_id: int) -> Iterator[Bid]:
        for row in self.adapter.iter_bids(item_id):
            yield _row_to_bid(row)

    def count_bids(self, item_id: int) -> int:
        return self.adapter.count_bids(item_id)

    def remove_bid(self, bid_id: int) -> bool:
        return self.adapter.delete_bid(bid_id)

    def remove_bids_for_item(self, item_id: int) -> int:
        return self.adapter.delete_bids_for_item(item_id)


def _row_to_item(row) -> Item:
    return Item(
        id=row["id"],
        name=row["name"],
        starting_price=row["starting_price"],
        quantity=row["quantity"],
        current_bid=row["current_bid"],
        last_bidder_nickname=row["last_bidder_nickname"],
        end_time=from_db_time(row["end_time"]),
        created_at=from_db_time(row["created_at"]),
    )


def _row_to_bid(row) -> Bid:
    return Bid(
        id=row["id"],
        item_id=row["item_id"],
        bid_amount=row["bid_amount"],
        bid_quantity=row["bid_quantity"],
        bidder_nickname=row["bidder_nickname"],
        bidder_discord_id=row["bidder_discord_id"],
        bidder_discord_name=row["bidder_discord_name"],
        created_at=from_db_time(row["created_at"]),
    )
