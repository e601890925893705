"""
Integration tests for the auctionhouse CLI.
"""

import csv
import json
from datetime import timedelta

import pytest
from click.testing import CliRunner

from auctionhouse.cli.main import cli
from auctionhouse.core.ledger import ADMIN, BidLedger, Bidder
from auctionhouse.core.storage import StorageManager
from auctionhouse.utils.logger import setup_logging


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def invoke(runner, tmp_path):
    data_dir = tmp_path / "data"

    def _invoke(*args):
        return runner.invoke(cli, ["--data-dir", str(data_dir), *args])

    _invoke.data_dir = data_dir
    yield _invoke
    # The CLI binds log output to the runner's stream, which is closed by now
    setup_logging()


def seed(data_dir, build):
    """Prepare state directly through the core, then release the connection."""
    storage = StorageManager(data_dir)
    try:
        return build(storage, BidLedger(storage))
    finally:
        storage.adapter.close()


# =============================================================================
# Items & Bids
# =============================================================================


class TestItemCommands:
    def test_add_requires_admin(self, invoke):
        result = invoke("item", "add", "Sword", "--price", "10")
        assert result.exit_code == 1
        assert "Forbidden" in result.output

    def test_add_and_list(self, invoke):
        result = invoke("item", "add", "Sword", "--price", "10", "--quantity", "2", "--ends-in", "60", "--admin")
        assert result.exit_code == 0, result.output
        assert "Item 1 listed: Sword x2 from 10" in result.output

        result = invoke("item", "list")
        assert result.exit_code == 0
        assert "[1] Sword x2  bid 10 (-)" in result.output
        assert "Total committed: 0" in result.output

    def test_empty_list(self, invoke):
        result = invoke("item", "list")
        assert "No items listed." in result.output

    def test_remove_with_bids(self, invoke):
        invoke("item", "add", "Sword", "--price", "10", "--admin")
        invoke("bid", "place", "1", "12", "--nickname", "alice")

        refused = invoke("item", "remove", "1", "--admin")
        assert refused.exit_code == 1
        assert "ItemHasBids" in refused.output

        result = invoke("item", "remove", "1", "--cascade", "--admin")
        assert result.exit_code == 0
        assert "1 bids deleted" in result.output


class TestBidCommands:
    def test_place_list_delete(self, invoke):
        invoke("item", "add", "Shield", "--price", "20", "--quantity", "3", "--admin")

        result = invoke("bid", "place", "1", "25", "--quantity", "2", "--nickname", "alice", "--discord-name", "alice#1")
        assert result.exit_code == 0, result.output
        assert "Bid 1: 2 x 25 on item 1" in result.output
        invoke("bid", "place", "1", "30", "--nickname", "bob")

        listing = invoke("bid", "list", "1")
        assert "alice (alice#1)  2 x 25 = 50" in listing.output
        assert "bob  1 x 30 = 30" in listing.output

        items = invoke("item", "list")
        assert "bid 30 (bob)" in items.output
        assert "Total committed: 80" in items.output

        refused = invoke("bid", "delete", "2")
        assert refused.exit_code == 1

        result = invoke("bid", "delete", "2", "--admin")
        assert result.exit_code == 0
        assert "bid 25 (alice)" in invoke("item", "list").output

    def test_rejected_bid(self, invoke):
        invoke("item", "add", "Shield", "--price", "20", "--admin")
        result = invoke("bid", "place", "1", "5", "--nickname", "alice")
        assert result.exit_code == 1
        assert "InvalidAmount" in result.output

    def test_unknown_item(self, invoke):
        result = invoke("bid", "list", "9")
        assert result.exit_code == 1
        assert "UnknownItem" in result.output


# =============================================================================
# Consistency & Settlement
# =============================================================================


class TestMaintenanceCommands:
    def test_check_and_reconcile(self, invoke):
        def build(storage, ledger):
            item = ledger.create_item("Helm", 10, 1, ADMIN)
            ledger.append_bid(item.id, 40, 1, Bidder("alice"))
            storage.update_item_cache(item.id, 15, "mallory")
            return item

        item = seed(invoke.data_dir, build)

        result = invoke("check")
        assert result.exit_code == 1
        assert f"Inconsistent items: {item.id}" in result.output

        result = invoke("reconcile", str(item.id))
        assert result.exit_code == 0
        assert "Repaired 1 items" in result.output

        result = invoke("check", str(item.id))
        assert result.exit_code == 0
        assert "consistent" in result.output

    def test_settle_writes_report(self, invoke, tmp_path):
        def build(storage, ledger):
            end_time = storage.server_now() - timedelta(minutes=1)
            item = ledger.create_item("Dragon Scale", 50, 3, ADMIN, end_time=end_time)
            # Bids placed while the auction was still open
            bid_time = end_time - timedelta(minutes=10)
            for nickname, amount, qty in [("alice", 100, 2), ("bob", 90, 2), ("carol", 80, 1)]:
                ledger.append_bid(item.id, amount, qty, Bidder(nickname), now=bid_time)

        seed(invoke.data_dir, build)
        report_path = tmp_path / "report.csv"

        result = invoke("settle", "--csv", str(report_path))

        assert result.exit_code == 0, result.output
        assert "Dragon Scale [1]  3/3 sold" in result.output
        assert "alice: 2 x 100" in result.output
        assert "bob: 1 x 90 (partial)" in result.output
        assert "carol" not in result.output
        assert "Grand total: 319 incl. fee, 290 excl. fee" in result.output

        with report_path.open(newline="", encoding="utf-8") as fh:
            rows = list(csv.reader(fh))
        assert rows[1][:3] == ["alice", "Dragon Scale", "2"]

    def test_settle_nothing(self, invoke):
        result = invoke("settle")
        assert "No ended items." in result.output

    def test_time(self, invoke):
        result = invoke("time")
        payload = json.loads(result.output.strip().splitlines()[-1])
        assert set(payload) == {"serverTime", "timestamp"}
        assert payload["serverTime"].endswith("+00:00")


class TestDemo:
    def test_demo_runs(self, invoke):
        result = invoke("demo")
        assert result.exit_code == 0, result.output
        assert "alice: 2 x 100" in result.output
        assert "bob: 1 x 90" in result.output
