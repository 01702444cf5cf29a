"""Service layer: trade ledger, profit aggregation and price-alert evaluation."""
from trade_engine.services.aggregator import ProfitAggregator
from trade_engine.services.alert_evaluator import AlertEvaluator
from trade_engine.services.alert_index import AlertEntry, AlertIndex
from trade_engine.services.alerts import AlertService
from trade_engine.services.events import TradeClosedBus
from trade_engine.services.ledger import TradeLedger

__all__ = [
    "AlertEntry",
    "AlertEvaluator",
    "AlertIndex",
    "AlertService",
    "ProfitAggregator",
    "TradeClosedBus",
    "TradeLedger",
]
