"""
Trade executor for intra-market arbitrage.

Buys both outcome legs of a market with fill-or-kill market orders through
py-clob-client. The cheaper leg goes first; both books are then re-read and
the second leg is only bought if it is still within the slippage bound and
the trade is still profitable. Every order passes through the injected
OrderSubmissionController.
"""
import asyncio
import logging
from typing import Any, List, Optional

from py_clob_client.client import ClobClient
from py_clob_client.clob_types import MarketOrderArgs, OrderType
from py_clob_client.exceptions import PolyApiException
from py_clob_client.order_builder.constants import BUY

from arb_data.exceptions import ArbBotError, ExchangeHTTPError, OrderSubmissionError
from arb_data.logging_config import LoggerAdapter

from .bps import BPS, calculate_edge_bps, estimate_profit_usd
from .config import ArbConfig
from .models import ExecutionStatus, TradeExecutionResult, TradePlan
from .provider import PolymarketMarketDataProvider
from .submission import OrderSubmissionController

logger = logging.getLogger(__name__)


def build_clob_client(config: ArbConfig) -> ClobClient:
    """Authenticated CLOB client from the configured key and funder."""
    kwargs = {
        "host": config.clob_host,
        "key": config.private_key,
        "chain_id": config.chain_id,
        "signature_type": config.signature_type,
    }
    if config.funder_address:
        kwargs["funder"] = config.funder_address
    client = ClobClient(**kwargs)
    client.set_api_creds(client.create_or_derive_api_creds())
    return client


class ArbTradeExecutor:
    """
    Places the two legs of an arbitrage trade.

    Detect-only and dry-run modes never touch the exchange. Live orders
    require config.live_trading_enabled.
    """

    def __init__(
        self,
        config: ArbConfig,
        provider: PolymarketMarketDataProvider,
        controller: OrderSubmissionController,
        client: Optional[ClobClient] = None,
    ):
        """
        Args:
            config: Arbitrage configuration
            provider: Market data provider used to refresh books between legs
            controller: Submission controller every order passes through
            client: Authenticated py-clob-client instance (live trading only)
        """
        self.config = config
        self.provider = provider
        self.controller = controller
        self.client = client

    async def execute(self, plan: TradePlan, now: int) -> TradeExecutionResult:
        """
        Execute a trade plan.

        Returns:
            TradeExecutionResult; exchange-side problems come back as FAILED
        """
        cfg = self.config

        if cfg.detect_only:
            logger.info(f"Detect-only: {plan.market_id} size=${plan.size_usd:.2f}")
            return TradeExecutionResult(status=ExecutionStatus.DRY_RUN)
        if not cfg.live_trading_enabled:
            logger.info(f"Dry run: {plan.market_id} size=${plan.size_usd:.2f}")
            return TradeExecutionResult(status=ExecutionStatus.DRY_RUN)

        # A leg this cheap is almost certainly the loser if the other leg fails
        if plan.yes_ask < cfg.min_buy_price or plan.no_ask < cfg.min_buy_price:
            side, price = ("YES", plan.yes_ask) if plan.yes_ask < cfg.min_buy_price else ("NO", plan.no_ask)
            logger.warning(
                f"Skipping {plan.market_id}: {side} price {price * 100:.1f}c "
                f"< {cfg.min_buy_price * 100:.0f}c minimum"
            )
            return TradeExecutionResult(
                status=ExecutionStatus.FAILED, reason="loser_position_price_too_low"
            )

        if self.client is None:
            return TradeExecutionResult(status=ExecutionStatus.FAILED, reason="missing_clob_client")

        yes_leg = ("YES", plan.yes_token_id, plan.yes_ask)
        no_leg = ("NO", plan.no_token_id, plan.no_ask)
        first, second = (yes_leg, no_leg) if plan.yes_ask <= plan.no_ask else (no_leg, yes_leg)

        order_ids: List[str] = []
        try:
            order_ids.append(
                await self._submit_leg(plan.market_id, first[1], plan.size_usd, first[2])
            )

            first_top = await self.provider.get_order_book_top(first[1])
            second_top = await self.provider.get_order_book_top(second[1])
            if first[0] == "YES":
                yes_ask, no_ask = first_top.best_ask, second_top.best_ask
            else:
                yes_ask, no_ask = second_top.best_ask, first_top.best_ask

            est_profit = estimate_profit_usd(
                size_usd=plan.size_usd,
                edge_bps=calculate_edge_bps(yes_ask or 0.0, no_ask or 0.0),
                fee_bps=cfg.fee_bps,
                slippage_bps=cfg.slippage_bps,
            )
            max_second = second[2] * (1 + cfg.slippage_bps / BPS)
            if (second_top.best_ask or 0.0) > max_second or est_profit < cfg.min_profit_usd:
                logger.warning(
                    f"Second leg guard tripped for {plan.market_id}: "
                    f"{second[0]} ask={second_top.best_ask} max={max_second:.4f} "
                    f"est_profit=${est_profit:.2f}"
                )
                return TradeExecutionResult(
                    status=ExecutionStatus.FAILED, order_ids=order_ids, reason="second_leg_guard"
                )

            order_ids.append(
                await self._submit_leg(
                    plan.market_id,
                    second[1],
                    plan.size_usd,
                    second_top.best_ask,
                    hedge_leg=True,
                )
            )
        except ArbBotError as e:
            reason = getattr(e, "reason", "") or e.message
            logger.warning(f"Trade execution failed for {plan.market_id}: {reason}")
            return TradeExecutionResult(
                status=ExecutionStatus.FAILED, order_ids=order_ids, reason=reason
            )

        return TradeExecutionResult(
            status=ExecutionStatus.SUBMITTED, order_ids=[o for o in order_ids if o]
        )

    async def _submit_leg(
        self,
        market_id: str,
        token_id: str,
        size_usd: float,
        ask_price: float,
        hedge_leg: bool = False,
    ) -> str:
        """
        Buy one leg as a FOK market order.

        The hedge leg skips the interval/hourly throttles so a half-built
        position is not left waiting on them.

        Raises:
            OrderSubmissionError: slippage guard tripped or the order did not go through
        """
        max_price = ask_price * (1 + self.config.slippage_bps / BPS)
        top = await self.provider.get_order_book_top(token_id)
        if not top.best_ask or top.best_ask > max_price:
            raise OrderSubmissionError(
                f"Ask moved beyond slippage bound for {token_id[:20]}...",
                reason="slippage_guard",
                market_id=market_id,
            )

        result = await self.controller.submit(
            size_usd=size_usd,
            market_id=market_id,
            submit=lambda: self._post_market_order(token_id, size_usd),
            logger=LoggerAdapter(logger, market_id=market_id, token=token_id),
            order_fingerprint=f"{market_id}:{token_id}",
            skip_rate_limit=hedge_leg,
            order_type="FOK",
        )
        if not result.submitted:
            raise OrderSubmissionError(
                f"Order {result.status.value} for {token_id[:20]}...",
                reason=result.reason or "order_rejected",
                market_id=market_id,
            )

        logger.info(
            f"Leg filled: market={market_id} token={token_id[:20]}... "
            f"size=${size_usd:.2f} order_id={result.order_id}"
        )
        return result.order_id or ""

    async def _post_market_order(self, token_id: str, size_usd: float) -> Any:
        """Sign and post a FOK buy, translating client errors into ExchangeHTTPError."""
        order_args = MarketOrderArgs(token_id=token_id, amount=size_usd, side=BUY)

        def _create_and_post():
            signed = self.client.create_market_order(order_args)
            return self.client.post_order(signed, OrderType.FOK)

        try:
            return await asyncio.to_thread(_create_and_post)
        except PolyApiException as e:
            body = e.error_msg if isinstance(e.error_msg, str) else str(e.error_msg or "")
            raise ExchangeHTTPError(
                f"CLOB rejected order: {body}",
                status_code=e.status_code,
                body=body,
                endpoint="/order",
            ) from e
