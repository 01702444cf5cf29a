"""Trade ledger: validates the open -> closed lifecycle and emits TradeClosed."""
import asyncio
import logging
from datetime import datetime
from decimal import Decimal

from trade_engine.core.exceptions import (InvalidTradeInput,
                                          TradeAlreadyClosed, TradeNotFound)
from trade_engine.core.utils import as_utc, to_money
from trade_engine.db import Trade, TradeStatus
from trade_engine.schemas import TradeClosed, TradeOpenRequest
from trade_engine.services.events import TradeClosedBus
from trade_engine.stores.protocols import TradeStore

logger = logging.getLogger(__name__)


def compute_profit(trade: Trade, close_price: Decimal) -> Decimal:
    """Side-aware P/L net of fees, quantized to money precision.

    Long: (close - entry) * amount - fees. Short: (entry - close) * amount - fees.
    """
    move = close_price - trade.price if trade.type.is_long else trade.price - close_price
    return to_money(move * trade.amount - (trade.fees or Decimal(0)))


def closed_event(trade: Trade) -> TradeClosed:
    profit = to_money(trade.profit)
    return TradeClosed(
        trade_id=trade.id, user_id=trade.user_id, profit=profit, is_win=profit > 0
    )


def _require_positive(name: str, value: Decimal | None, *, optional: bool = False) -> None:
    if value is None and optional:
        return
    if value is None or not value.is_finite() or value <= 0:
        raise InvalidTradeInput(f"{name} must be > 0, got {value}")


class TradeLedger:
    """Records trades and their single close transition.

    Every successful close publishes exactly one TradeClosed on the bus.
    An identical repeat close redelivers that same event.
    """

    def __init__(self, store: TradeStore, bus: TradeClosedBus) -> None:
        self._store = store
        self._bus = bus

    async def open_trade(self, request: TradeOpenRequest) -> Trade:
        """Validate and store a new open trade. Raises InvalidTradeInput."""
        symbol = request.symbol.strip().upper()
        if not symbol:
            raise InvalidTradeInput("symbol is required")
        _require_positive("amount", request.amount)
        _require_positive("price", request.price)
        _require_positive("leverage", request.leverage, optional=True)
        _require_positive("stop_loss", request.stop_loss, optional=True)
        _require_positive("take_profit", request.take_profit, optional=True)
        if request.fees is not None and (not request.fees.is_finite() or request.fees < 0):
            raise InvalidTradeInput(f"fees must be >= 0, got {request.fees}")

        amount = to_money(request.amount)
        price = to_money(request.price)
        trade = Trade(
            user_id=request.user_id,
            symbol=symbol,
            type=request.type,
            amount=amount,
            price=price,
            total_value=to_money(amount * price),
            status=TradeStatus.OPEN,
            open_time=as_utc(request.open_time),
            stop_loss=to_money(request.stop_loss),
            take_profit=to_money(request.take_profit),
            leverage=to_money(request.leverage),
            fees=to_money(request.fees),
            exchange=request.exchange,
            order_type=request.order_type,
            extra=request.metadata,
        )
        stored = await self._store.add(trade)
        logger.info(
            "Opened trade %s for user %s: %s %s %s @ %s",
            stored.id, stored.user_id, stored.type.value, stored.amount, stored.symbol, stored.price,
        )
        return stored

    async def close_trade(
        self,
        trade_id: str,
        close_price: Decimal | None = None,
        close_time: datetime | None = None,
        settled_profit: Decimal | None = None,
    ) -> Trade:
        """Close an open trade at close_price, or with a broker-settled profit.

        Re-closing with the same close_time and profit changes nothing: it logs
        a warning and redelivers the original TradeClosed, which subscribers
        dedupe by trade id. Re-closing with different values raises
        TradeAlreadyClosed.

        Raises:
            InvalidTradeInput: neither close_price nor settled_profit given, or bad values.
            TradeNotFound: unknown trade_id.
            TradeAlreadyClosed: trade closed with different values.
        """
        if close_price is None and settled_profit is None:
            raise InvalidTradeInput("close_price or settled_profit is required")
        _require_positive("close_price", close_price, optional=True)
        if settled_profit is not None and not settled_profit.is_finite():
            raise InvalidTradeInput(f"settled_profit must be finite, got {settled_profit}")

        trade = await self._store.get(trade_id)
        if trade is None:
            raise TradeNotFound(trade_id)

        closed_at = as_utc(close_time)
        price = to_money(close_price)
        profit = to_money(settled_profit) if settled_profit is not None else compute_profit(trade, price)

        if trade.status == TradeStatus.CLOSED:
            return await self._reclose(trade, closed_at, profit)

        # Runs to completion even if the caller is cancelled: a committed close
        # must always reach the bus.
        return await asyncio.shield(self._close_and_publish(trade, closed_at, price, profit))

    async def _close_and_publish(
        self,
        trade: Trade,
        close_time: datetime,
        close_price: Decimal | None,
        profit: Decimal,
    ) -> Trade:
        won = await self._store.close(
            trade.id, close_time=close_time, close_price=close_price, profit=profit
        )
        if not won:
            # Lost a race with a concurrent close; judge against what it stored.
            current = await self._store.get(trade.id)
            if current is None:
                raise TradeNotFound(trade.id)
            return await self._reclose(current, close_time, profit)

        trade.status = TradeStatus.CLOSED
        trade.close_time = close_time
        trade.close_price = close_price
        trade.profit = profit
        logger.info(
            "Closed trade %s for user %s with profit %s", trade.id, trade.user_id, profit
        )
        await self._bus.publish(closed_event(trade))
        return trade

    async def _reclose(self, trade: Trade, close_time: datetime, profit: Decimal) -> Trade:
        """Repeat of an identical close: redeliver its event, subscribers dedupe by trade id."""
        if as_utc(trade.close_time) == close_time and to_money(trade.profit) == profit:
            logger.warning(
                "Trade %s already closed with identical values; redelivering TradeClosed",
                trade.id,
            )
            await self._bus.publish(closed_event(trade))
            return trade
        raise TradeAlreadyClosed(
            trade.id,
            f"Trade '{trade.id}' already closed at {trade.close_time} with profit "
            f"{trade.profit}",
        )

    async def get_trade(self, trade_id: str) -> Trade:
        trade = await self._store.get(trade_id)
        if trade is None:
            raise TradeNotFound(trade_id)
        return trade

    async def list_trades(
        self, user_id: str, status: TradeStatus | None = None
    ) -> list[Trade]:
        """Trades for a user, newest first."""
        return await self._store.list_for_user(user_id, status)
