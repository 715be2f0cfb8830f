"""
TP/SL Synchronization

Keeps a position's stop-loss, primary take-profit and TP2/TP3 reduce-only
ladder consistent with the caller's intent:
- TpLadderReconciler: minimal gateway calls, per-step failure isolation
- PositionStateView: live SL/TP levels and quantity from the exchange
- classify: success / partial / failure verdict for a report
"""

from src.sync.ladder import TpLadderReconciler, ladder_quantity, new_client_order_id
from src.sync.position_view import PositionStateView
from src.sync.reporter import classify, summarize, log_report
from src.sync.synchronizer import PositionOrderSynchronizer

__all__ = [
    "TpLadderReconciler",
    "ladder_quantity",
    "new_client_order_id",
    "PositionStateView",
    "classify",
    "summarize",
    "log_report",
    "PositionOrderSynchronizer",
]
