"""
Auction configuration parameters.

Defines storage locations, resolved table names, live-update tuning
and settlement fees.
"""

import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

ENV_PREFIX = "AUCTION_"


@dataclass
class AuctionConfig:
    """Auction-wide configuration parameters"""

    # Storage
    data_dir: Path = Path("data")
    db_name: str = "auction.db"
    items_table: str = "items"      # Resolved once per deployment (e.g. items_guild2)
    bids_table: str = "bids"

    # Live updates
    channel: str = "auction-updates"
    dedup_window: float = 1.0       # Seconds; same-item changes inside the window collapse
    seen_cache_ttl: int = 300       # Seconds an event id is remembered
    server_sync_interval: int = 300  # Re-sync client clock offset after this many seconds

    # Settlement
    fee_rate: str = "0.1"           # Decimal string, fee added to unit prices in reports

    # Logging
    log_dir: Path = Path("logs")
    log_to_file: bool = False

    def __post_init__(self):
        """Create necessary directories"""
        self.data_dir = Path(self.data_dir).expanduser()
        self.log_dir = Path(self.log_dir).expanduser()
        self.data_dir.mkdir(exist_ok=True, parents=True)
        if self.log_to_file:
            self.log_dir.mkdir(exist_ok=True, parents=True)

    @property
    def db_path(self) -> Path:
        return self.data_dir / self.db_name


def _coerce(raw: str, default):
    """Convert an environment string to the type of the field default."""
    if isinstance(default, bool):
        return raw.strip().lower() in ("1", "true", "yes", "on")
    if isinstance(default, Path):
        return Path(raw)
    if isinstance(default, int):
        return int(raw)
    if isinstance(default, float):
        return float(raw)
    return raw


def load_config(env_file: Optional[str] = None, **overrides) -> AuctionConfig:
    """
    Load configuration from the environment.

    Each field can be set with an AUCTION_<FIELD> variable, e.g.
    AUCTION_ITEMS_TABLE=items_guild2. Variables are loaded from
    env_file (or ./.env) first; explicit overrides win over both.

    Args:
        env_file: Optional path to a dotenv file
        **overrides: Field values that take precedence

    Returns:
        AuctionConfig instance
    """
    load_dotenv(dotenv_path=env_file, override=False)

    values = {}
    for f in fields(AuctionConfig):
        raw = os.environ.get(ENV_PREFIX + f.name.upper())
        if raw is not None:
            values[f.name] = _coerce(raw, f.default)

    values.update({k: v for k, v in overrides.items() if v is not None})
    return AuctionConfig(**values)
