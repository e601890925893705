"""
Shared fixtures for auctionhouse tests.
"""

from datetime import datetime, timedelta, timezone

import pytest

from auctionhouse.core.ledger import ADMIN, Bid, BidLedger, ConsistencyChecker, Item
from auctionhouse.core.storage import StorageManager


T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


def make_item(
    item_id: int = 1,
    starting_price: int = 50,
    quantity: int = 1,
    current_bid=None,
    last_bidder=None,
    end_time=None,
    created_at=T0,
    name: str = "Item",
) -> Item:
    """Build an Item record without storage."""
    return Item(
        id=item_id,
        name=name,
        starting_price=starting_price,
        quantity=quantity,
        current_bid=starting_price if current_bid is None else current_bid,
        last_bidder_nickname=last_bidder,
        end_time=end_time,
        created_at=created_at,
    )


def make_bid(
    bid_id: int,
    amount: int,
    quantity: int = 1,
    nickname: str = None,
    item_id: int = 1,
    created_at=None,
    discord_name=None,
) -> Bid:
    """Build a Bid record; created_at defaults to T0 + bid_id seconds."""
    return Bid(
        id=bid_id,
        item_id=item_id,
        bid_amount=amount,
        bid_quantity=quantity,
        bidder_nickname=nickname or f"bidder{bid_id}",
        bidder_discord_id=None,
        bidder_discord_name=discord_name,
        created_at=created_at or T0 + timedelta(seconds=bid_id),
    )


@pytest.fixture(name="make_item")
def make_item_fixture():
    """Factory for Item records."""
    return make_item


@pytest.fixture(name="make_bid")
def make_bid_fixture():
    """Factory for Bid records."""
    return make_bid


@pytest.fixture
def t0():
    return T0


@pytest.fixture
def storage(tmp_path):
    """File-backed storage in a temporary directory."""
    manager = StorageManager(data_dir=tmp_path / "data")
    yield manager
    manager.adapter.close()


@pytest.fixture
def ledger(storage):
    return BidLedger(storage)


@pytest.fixture
def checker(storage):
    return ConsistencyChecker(storage)


@pytest.fixture
def open_item(ledger):
    """Item with starting price 50, quantity 3, closing in one hour."""
    return ledger.create_item(
        "Dragon Scale", 50, 3, ADMIN,
        end_time=ledger.storage.server_now() + timedelta(hours=1),
    )
