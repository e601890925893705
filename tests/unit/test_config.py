"""
Unit tests for configuration loading.
"""

import os
from pathlib import Path

from auctionhouse.core.config import AuctionConfig, load_config


class TestAuctionConfig:
    def test_defaults(self, tmp_path):
        config = AuctionConfig(data_dir=tmp_path / "data")

        assert config.items_table == "items"
        assert config.bids_table == "bids"
        assert config.dedup_window == 1.0
        assert config.fee_rate == "0.1"
        assert config.db_path == tmp_path / "data" / "auction.db"

    def test_creates_data_dir(self, tmp_path):
        AuctionConfig(data_dir=tmp_path / "nested" / "data")
        assert (tmp_path / "nested" / "data").is_dir()


class TestLoadConfig:
    def test_environment_overrides_defaults(self, tmp_path, monkeypatch):
        monkeypatch.setenv("AUCTION_DATA_DIR", str(tmp_path / "env"))
        monkeypatch.setenv("AUCTION_ITEMS_TABLE", "items_guild2")
        monkeypatch.setenv("AUCTION_DEDUP_WINDOW", "0.25")
        monkeypatch.setenv("AUCTION_SEEN_CACHE_TTL", "60")
        monkeypatch.setenv("AUCTION_LOG_TO_FILE", "no")

        config = load_config(env_file=str(tmp_path / "missing.env"))

        assert config.data_dir == tmp_path / "env"
        assert config.items_table == "items_guild2"
        assert config.dedup_window == 0.25
        assert config.seen_cache_ttl == 60
        assert config.log_to_file is False

    def test_explicit_overrides_win(self, tmp_path, monkeypatch):
        monkeypatch.setenv("AUCTION_BIDS_TABLE", "bids_env")
        config = load_config(
            env_file=str(tmp_path / "missing.env"),
            data_dir=tmp_path / "cli",
            bids_table="bids_cli",
            channel=None,
        )
        assert config.bids_table == "bids_cli"
        assert config.channel == "auction-updates"
        assert config.data_dir == tmp_path / "cli"

    def test_reads_dotenv_file(self, tmp_path, monkeypatch):
        monkeypatch.delenv("AUCTION_FEE_RATE", raising=False)
        env_file = tmp_path / ".env"
        env_file.write_text("AUCTION_FEE_RATE=0.05\n")

        try:
            config = load_config(env_file=str(env_file), data_dir=tmp_path / "data")
        finally:
            os.environ.pop("AUCTION_FEE_RATE", None)

        assert config.fee_rate == "0.05"
        assert isinstance(config.data_dir, Path)
