"""
Persistent Storage Module.

Provides SQLite-backed persistence for:
- Items (listing data and the cached current bid)
- Bids (the append-only ledger)
- Transactions and the server clock
"""

from auctionhouse.core.storage.sqlite_adapter import SQLiteAdapter
from auctionhouse.core.storage.storage_manager import StorageManager, from_db_time, to_db_time

__all__ = ["SQLiteAdapter", "StorageManager", "from_db_time", "to_db_time"]
