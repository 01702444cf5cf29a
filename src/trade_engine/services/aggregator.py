"""Profit aggregation: folds TradeClosed events into one ProfitSummary per user.

apply() runs inside a per-user asyncio.Lock so read-modify-write of a summary
never interleaves for the same user, while different users proceed in
parallel. Each trade is applied at most once: the AppliedTrade marker is
committed together with the summary it changed.
"""
import asyncio
import logging
import weakref
from decimal import Decimal

from trade_engine.core.exceptions import AggregationConflict
from trade_engine.core.utils import to_money, utc_now
from trade_engine.db import AppliedTrade, ProfitSummary, Trade, TradeStatus
from trade_engine.schemas import TradeClosed
from trade_engine.stores.protocols import SummaryStore, TradeStore

logger = logging.getLogger(__name__)


def win_rate(winning_trades: int, total_trades: int) -> float:
    """winning / total, or 0 when there are no trades."""
    return winning_trades / total_trades if total_trades else 0.0


def empty_summary(user_id: str) -> ProfitSummary:
    return ProfitSummary(
        user_id=user_id,
        total_profit=to_money(0),
        total_trades=0,
        winning_trades=0,
        losing_trades=0,
        win_rate=0.0,
        last_updated=utc_now(),
    )


class ProfitAggregator:
    """Maintains per-user ProfitSummary rows from TradeClosed events."""

    def __init__(self, summaries: SummaryStore, trades: TradeStore | None = None) -> None:
        self._summaries = summaries
        self._trades = trades
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = (
            weakref.WeakValueDictionary()
        )

    def _lock_for(self, user_id: str) -> asyncio.Lock:
        lock = self._locks.get(user_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[user_id] = lock
        return lock

    async def apply(self, event: TradeClosed) -> ProfitSummary:
        """Fold one closed trade into its owner's summary, exactly once.

        Raises:
            AggregationConflict: trade already applied with a different profit.
            PersistenceFailure: store unavailable; safe to call again.
        """
        profit = to_money(event.profit)
        async with self._lock_for(event.user_id):
            applied = await self._summaries.applied_profit(event.trade_id)
            if applied is not None:
                if to_money(applied) != profit:
                    conflict = AggregationConflict(event.trade_id, applied, profit)
                    logger.error("Aggregation conflict for user %s: %s", event.user_id, conflict)
                    raise conflict
                logger.debug("Trade %s already aggregated; skipping", event.trade_id)
                return await self._summaries.get(event.user_id) or empty_summary(event.user_id)

            summary = await self._summaries.get(event.user_id) or empty_summary(event.user_id)
            summary.total_profit = to_money(summary.total_profit + profit)
            summary.total_trades += 1
            if event.is_win:
                summary.winning_trades += 1
            else:
                summary.losing_trades += 1
            summary.win_rate = win_rate(summary.winning_trades, summary.total_trades)
            summary.last_updated = utc_now()

            await self._summaries.commit(
                summary,
                AppliedTrade(trade_id=event.trade_id, user_id=event.user_id, profit=profit),
            )
            logger.debug(
                "Summary for user %s: %d trades, profit %s, win rate %.4f",
                event.user_id, summary.total_trades, summary.total_profit, summary.win_rate,
            )
            return summary

    async def reconcile(self, user_id: str) -> ProfitSummary:
        """Recompute a user's summary from scratch from their closed trades.

        Replaces the stored summary and applied markers. Drift between the
        incremental and the recomputed figures is logged as a warning.
        """
        if self._trades is None:
            raise RuntimeError("reconcile requires a trade store")
        async with self._lock_for(user_id):
            closed: list[Trade] = await self._trades.list_for_user(user_id, TradeStatus.CLOSED)
            current = await self._summaries.get(user_id)
            if current is None and not closed:
                return empty_summary(user_id)

            summary = current or empty_summary(user_id)
            profits = [to_money(t.profit) for t in closed if t.profit is not None]
            total_profit = to_money(sum(profits, Decimal(0)))
            winning = sum(1 for p in profits if p > 0)
            if current is not None and (
                current.total_trades != len(profits)
                or to_money(current.total_profit) != total_profit
                or current.winning_trades != winning
            ):
                logger.warning(
                    "Summary drift for user %s: stored %d trades / %s profit, "
                    "recomputed %d trades / %s profit",
                    user_id, current.total_trades, current.total_profit, len(profits), total_profit,
                )

            summary.total_profit = total_profit
            summary.total_trades = len(profits)
            summary.winning_trades = winning
            summary.losing_trades = len(profits) - winning
            summary.win_rate = win_rate(winning, len(profits))
            summary.last_updated = utc_now()
            markers = [
                AppliedTrade(trade_id=t.id, user_id=user_id, profit=to_money(t.profit))
                for t in closed
                if t.profit is not None
            ]
            await self._summaries.replace(summary, markers)
            return summary

    async def get_profit_summary(self, user_id: str) -> ProfitSummary | None:
        return await self._summaries.get(user_id)
