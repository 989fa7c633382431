"""
Unit tests for intra_arb/provider.py

Tests:
- parse_market(), parse_outcome(), parse_timestamp_ms(), best_prices()
- get_active_markets(): pagination and filtering
- get_order_book_top(): missing order books
- _get_json(): HTTP status handling
"""

import pytest
from unittest.mock import AsyncMock, MagicMock, patch

from arb_data.exceptions import ExchangeHTTPError, OrderbookNotFoundError
from intra_arb.models import OrderBookTop
from intra_arb.provider import (
    END_CURSOR,
    PolymarketMarketDataProvider,
    best_prices,
    parse_market,
    parse_outcome,
    parse_timestamp_ms,
)

from tests.fixtures.market_data import SAMPLE_TOKENS, create_book_payload, create_simplified_market


class TestParsing:
    """Tests for payload parsing helpers."""

    @pytest.mark.parametrize(
        "label, expected",
        [("Yes", "YES"), (" no ", "NO"), ("TRUE", "YES"), ("n", "NO"), ("Trump", None), (None, None)],
    )
    def test_parse_outcome(self, label, expected):
        assert parse_outcome(label) == expected

    def test_parse_timestamp_iso(self):
        assert parse_timestamp_ms("2023-11-14T22:13:20Z") == 1_700_000_000_000

    def test_parse_timestamp_number_and_garbage(self):
        assert parse_timestamp_ms(1_700_000_000_000) == 1_700_000_000_000
        assert parse_timestamp_ms("soon") is None
        assert parse_timestamp_ms("") is None

    def test_parse_market(self):
        market = parse_market(
            create_simplified_market(end_date_iso="2023-11-14T22:13:20Z", liquidity="25000.5")
        )
        assert market.market_id == "0xcond1"
        assert market.yes_token_id == SAMPLE_TOKENS["yes"]
        assert market.no_token_id == SAMPLE_TOKENS["no"]
        assert market.end_time == 1_700_000_000_000
        assert market.liquidity_usd == 25000.5

    def test_parse_market_token_order_irrelevant(self):
        market = parse_market(
            create_simplified_market(yes_token="t-no", no_token="t-yes", outcomes=("No", "Yes"))
        )
        assert market.yes_token_id == "t-yes"
        assert market.no_token_id == "t-no"

    def test_parse_market_non_binary(self):
        assert parse_market(create_simplified_market(outcomes=("Trump", "Harris"))) is None

    def test_parse_market_missing_liquidity(self):
        assert parse_market(create_simplified_market()).liquidity_usd is None

    def test_best_prices_unsorted_levels(self):
        top = best_prices(create_book_payload(bids=[0.40, 0.44, 0.42], asks=[0.50, 0.46, 0.48]))
        assert top == OrderBookTop(best_bid=0.44, best_ask=0.46)

    def test_best_prices_empty_side(self):
        top = best_prices(create_book_payload(bids=[0.44], asks=[]))
        assert top.best_bid == 0.44
        assert top.best_ask == 0.0


@pytest.fixture
def provider():
    return PolymarketMarketDataProvider(host="https://clob.test/")


class TestGetActiveMarkets:
    """Tests for get_active_markets."""

    @pytest.mark.asyncio
    async def test_paginates_until_end_cursor(self, provider):
        pages = [
            {"data": [create_simplified_market("0xa")], "next_cursor": "MTAw"},
            {"data": [create_simplified_market("0xb")], "next_cursor": END_CURSOR},
        ]
        with patch.object(provider, "_get_json", AsyncMock(side_effect=pages)) as get_json:
            markets = await provider.get_active_markets()

        assert [m.market_id for m in markets] == ["0xa", "0xb"]
        assert get_json.call_args_list[1].args == ("/simplified-markets", {"next_cursor": "MTAw"})

    @pytest.mark.asyncio
    async def test_filters_closed_and_inactive(self, provider):
        page = {
            "data": [
                create_simplified_market("0xopen"),
                create_simplified_market("0xclosed", closed=True),
                create_simplified_market("0xinactive", active=False),
                create_simplified_market("0xpaused", accepting_orders=False),
                create_simplified_market("0xmulti", outcomes=("A", "B")),
            ],
            "next_cursor": END_CURSOR,
        }
        with patch.object(provider, "_get_json", AsyncMock(return_value=page)):
            markets = await provider.get_active_markets()

        assert [m.market_id for m in markets] == ["0xopen"]

    @pytest.mark.asyncio
    async def test_stops_at_page_limit(self):
        provider = PolymarketMarketDataProvider(max_market_pages=2)
        page = {"data": [], "next_cursor": "more"}
        with patch.object(provider, "_get_json", AsyncMock(return_value=page)) as get_json:
            assert await provider.get_active_markets() == []
        assert get_json.await_count == 2


class TestGetOrderBookTop:
    """Tests for get_order_book_top."""

    @pytest.mark.asyncio
    async def test_best_prices(self, provider):
        with patch.object(provider, "_get_json", AsyncMock(return_value=create_book_payload())) as get_json:
            top = await provider.get_order_book_top("token1")

        assert top == OrderBookTop(best_bid=0.44, best_ask=0.46)
        get_json.assert_awaited_once_with("/book", {"token_id": "token1"})

    @pytest.mark.asyncio
    async def test_missing_orderbook_raises_once(self, provider):
        error = ExchangeHTTPError("not found", status_code=404, body='{"error":"No orderbook exists"}')
        with patch.object(provider, "_get_json", AsyncMock(side_effect=error)) as get_json:
            with pytest.raises(OrderbookNotFoundError) as exc_info:
                await provider.get_order_book_top("token1")
            assert exc_info.value.token_id == "token1"

            top = await provider.get_order_book_top("token1")

        assert top == OrderBookTop(best_bid=0.0, best_ask=0.0)
        assert get_json.await_count == 1

    @pytest.mark.asyncio
    async def test_missing_orderbook_names_market(self, provider):
        page = {"data": [create_simplified_market("0xcond9")], "next_cursor": END_CURSOR}
        error = ExchangeHTTPError("bad request", status_code=400, body="No orderbook exists for the requested token id")
        with patch.object(provider, "_get_json", AsyncMock(side_effect=[page, error])):
            await provider.get_active_markets()
            with pytest.raises(OrderbookNotFoundError) as exc_info:
                await provider.get_order_book_top(SAMPLE_TOKENS["yes"])

        assert exc_info.value.market_id == "0xcond9"

    @pytest.mark.asyncio
    async def test_other_errors_propagate(self, provider):
        error = ExchangeHTTPError("server error", status_code=503, body="unavailable")
        with patch.object(provider, "_get_json", AsyncMock(side_effect=error)):
            with pytest.raises(ExchangeHTTPError):
                await provider.get_order_book_top("token1")


def make_http_session(status, payload=None, text=""):
    response = MagicMock()
    response.status = status
    response.json = AsyncMock(return_value=payload)
    response.text = AsyncMock(return_value=text)
    response.headers = {}

    context = MagicMock()
    context.__aenter__ = AsyncMock(return_value=response)
    context.__aexit__ = AsyncMock(return_value=False)

    session = MagicMock()
    session.closed = False
    session.get.return_value = context
    return session


class TestGetJson:
    """Tests for the HTTP layer."""

    @pytest.mark.asyncio
    async def test_returns_payload(self, provider):
        provider._session = make_http_session(200, payload={"ok": True})
        assert await provider._get_json("/book", {"token_id": "t"}) == {"ok": True}
        provider._session.get.assert_called_once_with("https://clob.test/book", params={"token_id": "t"})

    @pytest.mark.asyncio
    async def test_non_200_raises_typed_error(self, provider):
        provider._session = make_http_session(404, text="No orderbook exists")
        with pytest.raises(ExchangeHTTPError) as exc_info:
            await provider._get_json("/book", {"token_id": "t"})

        assert exc_info.value.status_code == 404
        assert exc_info.value.body == "No orderbook exists"
        assert exc_info.value.endpoint == "/book"
