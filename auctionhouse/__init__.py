"""
Auctionhouse

Timed multi-unit auctions for a closed community:
- Append-only bid ledger with a cached current bid
- Deterministic multi-unit settlement
- Cache/ledger reconciliation
- Deduplicated live updates for listing views
"""
