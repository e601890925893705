"""
Auctionhouse CLI - Command Line Interface for the auction core.

Main entry point for all CLI commands.
"""

import json
from datetime import timedelta

import click

from auctionhouse.core.config import load_config
from auctionhouse.core.errors import AuctionError
from auctionhouse.utils.logger import setup_logging, get_logger

logger = get_logger("cli")


def _capability(admin: bool):
    from auctionhouse.core.ledger import ADMIN, Capability

    # Identity comes from the operator running the CLI
    return ADMIN if admin else Capability(is_admin=False, is_member=True)


def _run(action):
    """Run an action, turning core errors into a clean CLI failure."""
    try:
        return action()
    except AuctionError as e:
        raise click.ClickException(f"{type(e).__name__}: {e}")


@click.group()
@click.option("--debug", is_flag=True, help="Enable debug logging")
@click.option("--data-dir", default=None, help="Data directory (default: AUCTION_DATA_DIR or ./data)")
@click.option("--env-file", default=None, type=click.Path(dir_okay=False), help="dotenv file to load")
@click.version_option(version="0.1.0")
@click.pass_context
def cli(ctx, debug, data_dir, env_file):
    """Auctionhouse - multi-unit guild auctions"""
    import logging

    from auctionhouse.core.storage import StorageManager

    config = load_config(env_file, data_dir=data_dir)
    setup_logging(
        level=logging.DEBUG if debug else logging.WARNING,
        log_dir=str(config.log_dir),
        log_to_file=config.log_to_file,
    )

    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["storage"] = StorageManager.from_config(config)


def _ledger(ctx):
    from auctionhouse.core.ledger import BidLedger

    return BidLedger(ctx.obj["storage"])


# =============================================================================
# Item Commands
# =============================================================================

@cli.group()
def item():
    """Item listing commands"""
    pass


@item.command("add")
@click.argument("name")
@click.option("--price", type=int, required=True, help="Starting price per unit")
@click.option("--quantity", type=int, default=1, show_default=True, help="Units offered")
@click.option("--ends-in", type=float, default=None, help="Minutes until close (omit: never closes)")
@click.option("--admin", is_flag=True, help="Act with admin capability")
@click.pass_context
def item_add(ctx, name, price, quantity, ends_in, admin):
    """List a new item"""
    storage = ctx.obj["storage"]
    end_time = None
    if ends_in is not None:
        end_time = storage.server_now() + timedelta(minutes=ends_in)

    new_item = _run(lambda: _ledger(ctx).create_item(name, price, quantity, _capability(admin), end_time=end_time))
    click.echo(f"✓ Item {new_item.id} listed: {new_item.name} x{new_item.quantity} from {new_item.starting_price}")


@item.command("list")
@click.pass_context
def item_list(ctx):
    """Show the listing with current bids and remaining time"""
    from auctionhouse.core.auction import allocated_value, describe, sort_listing

    storage = ctx.obj["storage"]
    now = storage.server_now()
    items = sort_listing(storage.list_items(), now)
    if not items:
        click.echo("No items listed.")
        return

    total = 0
    for it in items:
        total += allocated_value(it.quantity, storage.iter_bids(it.id))
        leader = it.last_bidder_nickname or "-"
        remaining = describe(it, now) or "no end"
        click.echo(f"  [{it.id}] {it.name} x{it.quantity}  bid {it.current_bid} ({leader})  {remaining}")
    click.echo(f"Total committed: {total}")


@item.command("remove")
@click.argument("item_id", type=int)
@click.option("--cascade", is_flag=True, help="Also delete the item's bids")
@click.option("--admin", is_flag=True, help="Act with admin capability")
@click.pass_context
def item_remove(ctx, item_id, cascade, admin):
    """Remove an item"""
    removed = _run(lambda: _ledger(ctx).remove_item(item_id, _capability(admin), cascade=cascade))
    click.echo(f"✓ Item {item_id} removed ({removed} bids deleted)")


# =============================================================================
# Bid Commands
# =============================================================================

@cli.group()
def bid():
    """Bid ledger commands"""
    pass


@bid.command("place")
@click.argument("item_id", type=int)
@click.argument("amount", type=int)
@click.option("--quantity", type=int, default=1, show_default=True, help="Units requested")
@click.option("--nickname", required=True, help="Bidder nickname")
@click.option("--discord-id", default=None, help="Bidder Discord id")
@click.option("--discord-name", default=None, help="Bidder Discord name")
@click.pass_context
def bid_place(ctx, item_id, amount, quantity, nickname, discord_id, discord_name):
    """Place a bid of AMOUNT per unit"""
    from auctionhouse.core.ledger import Bidder

    bidder = Bidder(nickname, discord_id, discord_name)
    placed = _run(lambda: _ledger(ctx).append_bid(
        item_id, amount, quantity, bidder, capability=_capability(False)
    ))
    click.echo(f"✓ Bid {placed.id}: {placed.bid_quantity} x {placed.bid_amount} on item {item_id}")


@bid.command("list")
@click.argument("item_id", type=int)
@click.pass_context
def bid_list(ctx, item_id):
    """Show an item's bid history, newest first"""
    ledger = _ledger(ctx)
    _run(lambda: ledger.get_item(item_id))
    bids = sorted(ledger.list_bids(item_id), key=lambda b: (b.created_at, b.id), reverse=True)
    if not bids:
        click.echo("No bids.")
        return
    for b in bids:
        who = f"{b.bidder_nickname} ({b.bidder_discord_name})" if b.bidder_discord_name else b.bidder_nickname
        click.echo(f"  [{b.id}] {b.created_at:%Y-%m-%d %H:%M}  {who}  {b.bid_quantity} x {b.bid_amount} = {b.total}")


@bid.command("delete")
@click.argument("bid_id", type=int)
@click.option("--admin", is_flag=True, help="Act with admin capability")
@click.pass_context
def bid_delete(ctx, bid_id, admin):
    """Delete a bid"""
    deleted = _run(lambda: _ledger(ctx).delete_bid(bid_id, _capability(admin)))
    click.echo(f"✓ Bid {bid_id} deleted from item {deleted.item_id}")


# =============================================================================
# Consistency Commands
# =============================================================================

@cli.command("check")
@click.argument("item_id", type=int, required=False)
@click.pass_context
def check(ctx, item_id):
    """Report items whose cached bid disagrees with the ledger"""
    from auctionhouse.core.ledger import ConsistencyChecker

    checker = ConsistencyChecker(ctx.obj["storage"])
    if item_id is not None:
        bad = [item_id] if _run(lambda: checker.check_consistency(item_id)) else []
    else:
        bad = _run(checker.find_inconsistent)

    if not bad:
        click.echo("✓ Cache consistent with ledger")
        return
    click.echo(f"✗ Inconsistent items: {', '.join(str(i) for i in bad)}")
    ctx.exit(1)


@cli.command("reconcile")
@click.argument("item_id", type=int, required=False)
@click.pass_context
def reconcile(ctx, item_id):
    """Rewrite cached bids from the ledger"""
    from auctionhouse.core.ledger import ConsistencyChecker

    checker = ConsistencyChecker(ctx.obj["storage"])
    if item_id is not None:
        repaired = [item_id] if _run(lambda: checker.reconcile(item_id)) else []
    else:
        repaired = _run(checker.reconcile_all)
    click.echo(f"✓ Repaired {len(repaired)} items" + (f": {', '.join(map(str, repaired))}" if repaired else ""))


# =============================================================================
# Settlement Commands
# =============================================================================

@cli.command("settle")
@click.option("--csv", "csv_path", type=click.Path(dir_okay=False), default=None, help="Write the bidder report as CSV")
@click.pass_context
def settle(ctx, csv_path):
    """Allocate every ended item and summarize per bidder"""
    from auctionhouse.core.auction import build_bidder_report, settle_completed, write_report_csv

    config = ctx.obj["config"]
    storage = ctx.obj["storage"]
    settlements = _run(lambda: settle_completed(storage, storage.server_now()))
    if not settlements:
        click.echo("No ended items.")
        return

    for s in settlements:
        click.echo(f"{s.item.name} [{s.item.id}]  {s.units_filled}/{s.item.quantity} sold")
        for a in s.allocations:
            partial = " (partial)" if a.is_partial else ""
            click.echo(f"    {a.bidder_nickname}: {a.quantity_used} x {a.bid_amount}{partial}")

    report = build_bidder_report(settlements, fee_rate=config.fee_rate)
    click.echo(f"Grand total: {report.grand_total_with_fee} incl. fee, {report.grand_total_without_fee} excl. fee")

    if csv_path:
        write_report_csv(report, csv_path)
        click.echo(f"✓ Report written to {csv_path}")


@cli.command("time")
@click.pass_context
def server_time(ctx):
    """Print the authoritative server time"""
    from auctionhouse.core.auction import server_time_payload

    click.echo(json.dumps(server_time_payload(ctx.obj["storage"].server_now())))



# =============================================================================
# Demo Command
# =============================================================================


@cli.command("demo")
@click.pass_context
def demo(ctx):
    """Run a scripted auction with a live listing view"""
    import asyncio
    import tempfile
    from pathlib import Path

    from auctionhouse.core.auction import ServerClock, describe, settle_completed
    from auctionhouse.core.ledger import ADMIN, BidLedger, Bidder
    from auctionhouse.core.storage import StorageManager
    from auctionhouse.network import EventPublisher, InMemoryTransport, UpdateCoordinator

    config = ctx.obj["config"]

    async def scenario(data_dir: Path):
        storage = StorageManager(data_dir)
        transport = InMemoryTransport()
        ledger = BidLedger(storage, EventPublisher(transport, config.channel))
        clock = ServerClock(sync_interval=config.server_sync_interval)
        clock.sync(storage.server_now())

        # Short window so the burst below settles within the demo
        coordinator = UpdateCoordinator(storage, dedup_window=0.05, seen_cache_ttl=config.seen_cache_ttl)
        coordinator.refetch()
        task = asyncio.create_task(coordinator.run(transport.subscribe(config.channel)))

        click.echo("📦 Listing 'Dragon Scale' x3 from 50...")
        now = storage.server_now()
        scale = ledger.create_item("Dragon Scale", 50, 3, ADMIN, end_time=now + timedelta(seconds=30))
        await asyncio.sleep(0.1)

        click.echo("💸 Bidding...")
        for nickname, amount, qty in [("alice", 100, 2), ("bob", 90, 2), ("carol", 80, 1)]:
            ledger.append_bid(scale.id, amount, qty, Bidder(nickname), now=now)
            click.echo(f"  ✓ {nickname}: {qty} x {amount}")
        await asyncio.sleep(0.2)

        shown = coordinator.view.get(scale.id)
        click.echo(f"  View: current bid {shown.current_bid} by {shown.last_bidder_nickname}, "
                   f"committed total {coordinator.view.total_bid_amount}")
        click.echo(f"  Closes in {describe(shown, clock.now())}")

        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass

        click.echo("🏁 Settling after close...")
        for s in settle_completed(storage, now + timedelta(seconds=31)):
            for a in s.allocations:
                click.echo(f"  {a.bidder_nickname}: {a.quantity_used} x {a.bid_amount}")

    click.echo("=" * 60)
    click.echo("  AUCTIONHOUSE - DEMO")
    click.echo("=" * 60)
    with tempfile.TemporaryDirectory() as tmp:
        asyncio.run(scenario(Path(tmp)))


if __name__ == "__main__":
    cli()
