"""Core models and shared utilities"""
from .models import (
    ApiCredentials,
    LadderLevel,
    LadderOrderRef,
    LadderTarget,
    PositionIntent,
    PositionSide,
    OrderSide,
    ReconciliationReport,
    ReconciliationOutcome,
    PositionSnapshot,
)
from .resilience import RateLimiter

__all__ = [
    "ApiCredentials",
    "LadderLevel",
    "LadderOrderRef",
    "LadderTarget",
    "PositionIntent",
    "PositionSide",
    "OrderSide",
    "ReconciliationReport",
    "ReconciliationOutcome",
    "PositionSnapshot",
    "RateLimiter",
]
