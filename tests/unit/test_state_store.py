"""
Unit tests for intra_arb/state_store.py

Tests:
- Exposure, cooldown, failure and trade history tracking
- JSON snapshot round trip and unreadable files
"""

import json

from intra_arb.state_store import StateStore


class TestStateTracking:
    """Tests for in-memory state."""

    def test_exposure_accumulates(self, state_store):
        state_store.add_exposure("0xm1", 6.0)
        state_store.add_exposure("0xm1", 4.0)
        state_store.add_exposure("0xm2", 5.0)

        assert state_store.get_market_exposure("0xm1") == 10.0
        assert state_store.get_market_exposure("0xunknown") == 0.0
        assert state_store.get_wallet_exposure() == 15.0
        assert state_store.get_exposure("0xm2") == (5.0, 15.0)

    def test_cooldowns(self, state_store):
        assert state_store.get_market_cooldown("0xm1") is None
        state_store.set_market_cooldown("0xm1", 1234)
        assert state_store.get_market_cooldown("0xm1") == 1234

    def test_failure_streak(self, state_store):
        assert state_store.increment_failure() == 1
        assert state_store.increment_failure() == 2
        state_store.reset_failures()
        assert state_store.consecutive_failures == 0

    def test_count_trades_since_prunes(self, state_store):
        for ts in (100, 200, 300):
            state_store.record_trade_timestamp(ts)

        assert state_store.count_trades_since(200) == 2
        assert state_store.trade_timestamps == [200, 300]


class TestPersistence:
    """Tests for snapshot() and load()."""

    def test_round_trip(self, tmp_path):
        store = StateStore(str(tmp_path))
        store.add_exposure("0xm1", 6.0)
        store.set_market_cooldown("0xm1", 5000)
        store.increment_failure()
        store.record_trade_timestamp(4000)
        store.snapshot()

        restored = StateStore(str(tmp_path))
        assert restored.load() is True
        assert restored.get_market_exposure("0xm1") == 6.0
        assert restored.get_wallet_exposure() == 6.0
        assert restored.get_market_cooldown("0xm1") == 5000
        assert restored.consecutive_failures == 1
        assert restored.trade_timestamps == [4000]

    def test_snapshot_file_contents(self, tmp_path):
        store = StateStore(str(tmp_path))
        store.add_exposure("0xm1", 2.0)
        store.snapshot()

        data = json.loads((tmp_path / "arb_state.json").read_text())
        assert data["wallet_exposure_usd"] == 2.0
        assert "saved_at" in data

    def test_snapshot_disabled(self, tmp_path):
        store = StateStore(str(tmp_path), snapshot_enabled=False)
        store.add_exposure("0xm1", 2.0)
        store.snapshot()
        assert not (tmp_path / "arb_state.json").exists()

    def test_creates_state_dir(self, tmp_path):
        store = StateStore(str(tmp_path / "nested" / "dir"))
        store.snapshot()
        assert (tmp_path / "nested" / "dir" / "arb_state.json").exists()

    def test_load_missing_file(self, tmp_path):
        assert StateStore(str(tmp_path)).load() is False

    def test_load_corrupt_file(self, tmp_path):
        (tmp_path / "arb_state.json").write_text("{not json")
        store = StateStore(str(tmp_path))
        assert store.load() is False
        assert store.get_wallet_exposure() == 0.0
