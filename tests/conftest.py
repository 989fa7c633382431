"""
Shared pytest fixtures for intra-market arbitrage tests.

Provides:
- A permissive ArbConfig for strategy and engine tests
- A StateStore rooted in a temp directory
- Mock market data provider and CLOB client
"""

import pytest
from unittest.mock import MagicMock, AsyncMock
import sys
import os

# Add project root to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from intra_arb.models import OrderBookTop
from intra_arb.state_store import StateStore

from tests.fixtures.market_data import (
    create_config,
    create_order_response,
)


@pytest.fixture
def arb_config(tmp_path):
    """Provide a permissive dry-run config."""
    return create_config(tmp_path)


@pytest.fixture
def state_store(tmp_path):
    """Provide a fresh StateStore writing under tmp_path."""
    return StateStore(str(tmp_path), snapshot_enabled=True)


@pytest.fixture
def mock_provider():
    """
    Provide a mocked PolymarketMarketDataProvider.

    Book tops are steady at 0.45 / 0.50 asks, one tick wide.
    """

    def top(token_id):
        ask = 0.45 if token_id.endswith("yes") else 0.50
        return OrderBookTop(best_bid=round(ask - 0.001, 3), best_ask=ask)

    provider = MagicMock()
    provider.get_active_markets = AsyncMock(return_value=[])
    provider.get_order_book_top = AsyncMock(side_effect=top)
    provider.close = AsyncMock()
    return provider


@pytest.fixture
def mock_clob_client():
    """Provide a mocked py-clob-client ClobClient."""
    client = MagicMock()
    client.create_market_order.return_value = MagicMock(name="signed_order")
    client.post_order.return_value = create_order_response()
    return client
