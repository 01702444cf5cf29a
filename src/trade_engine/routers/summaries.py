"""Profit summary routes."""
from fastapi import APIRouter

from trade_engine.core import EngineErrorMapper, TradeEngineError
from trade_engine.db import ProfitSummary
from trade_engine.deps import AggregatorDep
from trade_engine.services.aggregator import empty_summary

router = APIRouter(prefix="/summaries", tags=["summaries"])
_errors = EngineErrorMapper(resource_name="Profit summary")


@router.get("/{user_id}", response_model=ProfitSummary)
async def get_profit_summary(user_id: str, aggregator: AggregatorDep) -> ProfitSummary:
    """Current summary; all zeros for a user with no closed trades yet."""
    try:
        return await aggregator.get_profit_summary(user_id) or empty_summary(user_id)
    except TradeEngineError as e:
        _errors.raise_http(e)


@router.post("/{user_id}/reconcile", response_model=ProfitSummary)
async def reconcile_profit_summary(user_id: str, aggregator: AggregatorDep) -> ProfitSummary:
    """Recompute the summary from the user's closed trades."""
    try:
        return await aggregator.reconcile(user_id)
    except TradeEngineError as e:
        _errors.raise_http(e)
