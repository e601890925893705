import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional

from auctionhouse.core.errors import StorageUnavailable
from auctionhouse.utils.logger import get_logger
from auctionhouse.utils.validation import first_error, validate_identifier

logger = get_logger("storage.sqlite")


@contextmanager
def _storage_errors(action: str):
    """Surface sqlite failures as StorageUnavailable."""
    try:
        yield
    except sqlite3.Error as e:
        logger.error(f"{action} failed: {e}")
        raise StorageUnavailable(f"{action} failed: {e}") from e


class SQLiteAdapter:
    """
    SQLite backend for the two auction tables.

    Provides:
    1. Items table: listing data plus the cached current bid.
    2. Bids table: the append-only ledger, range-scannable by item.
    3. Write transactions (BEGIN IMMEDIATE) spanning both tables.
    4. The server clock used for auction state decisions.

    Connections are per thread. Every call made on a thread while a
    transaction is open on that thread joins the transaction.
    """

    def __init__(self, db_path: Path, items_table: str = "items", bids_table: str = "bids"):
        error = first_error(
            validate_identifier(items_table, "items_table"),
            validate_identifier(bids_table, "bids_table"),
        )
        if error:
            raise ValueError(error)

        self.db_path = Path(db_path)
        self.items_table = items_table
        self.bids_table = bids_table
        self._conn_local = threading.local()

        if not self.db_path.parent.exists():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._init_schema()

    def _get_conn(self) -> sqlite3.Connection:
        """Get or create connection for current thread."""
        if not hasattr(self._conn_local, "conn"):
            conn = sqlite3.connect(
                self.db_path,
                timeout=30.0,
                check_same_thread=False,
                isolation_level=None,  # transactions are opened explicitly
            )
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL;")
            conn.execute("PRAGMA synchronous=NORMAL;")
            conn.execute("PRAGMA foreign_keys=ON;")
            self._conn_local.conn = conn
            self._conn_local.depth = 0
        return self._conn_local.conn

    def close(self):
        """Close this thread's connection."""
        conn = getattr(self._conn_local, "conn", None)
        if conn is not None:
            conn.close()
            del self._conn_local.conn

    def _init_schema(self):
        """Initialize database schema."""
        with _storage_errors("schema init"), self.transaction() as conn:
            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.items_table} (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    name TEXT NOT NULL,
                    starting_price INTEGER NOT NULL CHECK (starting_price > 0),
                    quantity INTEGER NOT NULL CHECK (quantity > 0),
                    current_bid INTEGER NOT NULL,
                    last_bidder_nickname TEXT,
                    end_time TEXT,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{self.items_table}_end_time "
                f"ON {self.items_table}(end_time);"
            )

            conn.execute(f"""
                CREATE TABLE IF NOT EXISTS {self.bids_table} (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    item_id INTEGER NOT NULL REFERENCES {self.items_table}(id),
                    bid_amount INTEGER NOT NULL CHECK (bid_amount > 0),
                    bid_quantity INTEGER NOT NULL CHECK (bid_quantity >= 1),
                    bidder_nickname TEXT NOT NULL,
                    bidder_discord_id TEXT,
                    bidder_discord_name TEXT,
                    created_at TEXT NOT NULL
                )
            """)
            conn.execute(
                f"CREATE INDEX IF NOT EXISTS idx_{self.bids_table}_item "
                f"ON {self.bids_table}(item_id);"
            )

    # =========================================================================
    # Transactions & Clock
    # =========================================================================

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Open a write transaction on this thread's connection.

        Nested calls join the outer transaction. Any exception rolls the
        whole transaction back and is re-raised.
        """
        conn = self._get_conn()
        local = self._conn_local

        if local.depth:
            local.depth += 1
            try:
                yield conn
            finally:
                local.depth -= 1
            return

        with _storage_errors("begin transaction"):
            conn.execute("BEGIN IMMEDIATE")
        local.depth = 1
        try:
            yield conn
        except BaseException:
            conn.execute("ROLLBACK")
            raise
        else:
            with _storage_errors("commit"):
                conn.execute("COMMIT")
        finally:
            local.depth = 0

    def server_time(self) -> str:
        """Current UTC time according to the database, ISO-8601."""
        with _storage_errors("read server time"):
            row = self._get_conn().execute(
                "SELECT strftime('%Y-%m-%dT%H:%M:%f', 'now') AS now"
            ).fetchone()
        return row["now"]

    # =========================================================================
    # Item Operations
    # =========================================================================

    def insert_item(
        self,
        name: str,
        starting_price: int,
        quantity: int,
        end_time: Optional[str],
        created_at: str,
    ) -> int:
        """Insert an item with its cache at the starting price. Returns the id."""
        with _storage_errors("insert item"), self.transaction() as conn:
            cursor = conn.execute(
                f"INSERT INTO {self.items_table} "
                "(name, starting_price, quantity, current_bid, last_bidder_nickname, end_time, created_at) "
                "VALUES (?, ?, ?, ?, NULL, ?, ?)",
                (name, starting_price, quantity, starting_price, end_time, created_at),
            )
            return cursor.lastrowid

    def get_item(self, item_id: int) -> Optional[sqlite3.Row]:
        with _storage_errors("read item"):
            cursor = self._get_conn().execute(
                f"SELECT * FROM {self.items_table} WHERE id = ?", (item_id,)
            )
            return cursor.fetchone()

    def get_items(self) -> List[sqlite3.Row]:
        """All items, newest first."""
        with _storage_errors("list items"):
            cursor = self._get_conn().execute(
                f"SELECT * FROM {self.items_table} ORDER BY created_at DESC, id DESC"
            )
            return cursor.fetchall()

    def get_ended_items(self, now: str) -> List[sqlite3.Row]:
        """Items whose end_time has passed, most recently ended first."""
        with _storage_errors("list ended items"):
            cursor = self._get_conn().execute(
                f"SELECT * FROM {self.items_table} "
                "WHERE end_time IS NOT NULL AND end_time <= ? "
                "ORDER BY end_time DESC, id DESC",
                (now,),
            )
            return cursor.fetchall()

    def update_item_cache(self, item_id: int, current_bid: int, last_bidder: Optional[str]) -> bool:
        """Overwrite the cached current bid. Returns False if the item is gone."""
        with _storage_errors("update item cache"), self.transaction() as conn:
            cursor = conn.execute(
                f"UPDATE {self.items_table} SET current_bid = ?, last_bidder_nickname = ? WHERE id = ?",
                (current_bid, last_bidder, item_id),
            )
            return cursor.rowcount == 1

    def delete_item(self, item_id: int) -> bool:
        with _storage_errors("delete item"), self.transaction() as conn:
            cursor = conn.execute(f"DELETE FROM {self.items_table} WHERE id = ?", (item_id,))
            return cursor.rowcount == 1

    # =========================================================================
    # Bid Operations
    # =========================================================================

    def insert_bid(
        self,
        item_id: int,
        bid_amount: int,
        bid_quantity: int,
        bidder_nickname: str,
        bidder_discord_id: Optional[str],
        bidder_discord_name: Optional[str],
        created_at: str,
    ) -> int:
        """Append a bid. Returns the new bid id."""
        with _storage_errors("insert bid"), self.transaction() as conn:
            cursor = conn.execute(
                f"INSERT INTO {self.bids_table} "
                "(item_id, bid_amount, bid_quantity, bidder_nickname, "
                "bidder_discord_id, bidder_discord_name, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (item_id, bid_amount, bid_quantity, bidder_nickname,
                 bidder_discord_id, bidder_discord_name, created_at),
            )
            return cursor.lastrowid

    def get_bid(self, bid_id: int) -> Optional[sqlite3.Row]:
        with _storage_errors("read bid"):
            cursor = self._get_conn().execute(
                f"SELECT * FROM {self.bids_table} WHERE id = ?", (bid_id,)
            )
            return cursor.fetchone()

    def iter_bids(self, item_id: int) -> Iterator[sqlite3.Row]:
        """Range scan of an item's bids, in storage order."""
        with _storage_errors("scan bids"):
            cursor = self._get_conn().execute(
                f"SELECT * FROM {self.bids_table} WHERE item_id = ?", (item_id,)
            )
            for row in cursor:
                yield row

    def count_bids(self, item_id: int) -> int:
        with _storage_errors("count bids"):
            cursor = self._get_conn().execute(
                f"SELECT COUNT(*) AS cnt FROM {self.bids_table} WHERE item_id = ?", (item_id,)
            )
            return cursor.fetchone()["cnt"]

    def delete_bid(self, bid_id: int) -> bool:
        with _storage_errors("delete bid"), self.transaction() as conn:
            cursor = conn.execute(f"DELETE FROM {self.bids_table} WHERE id = ?", (bid_id,))
            return cursor.rowcount == 1

    def delete_bids_for_item(self, item_id: int) -> int:
        with _storage_errors("delete item bids"), self.transaction() as conn:
            cursor = conn.execute(f"DELETE FROM {self.bids_table} WHERE item_id = ?", (item_id,))
            return cursor.rowcount
