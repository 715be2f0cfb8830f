"""
Position State View

Read model over the exchange position list: current SL / main TP levels and
open quantity for one symbol + side. Any read failure raises
PositionLookupError so that no mutation is attempted without a known quantity.
"""
from typing import Any, Dict, List, Optional, Protocol

import structlog

from src.core.models import GatewayResult, PositionLookupError, PositionSide, PositionSnapshot
from src.execution.bybit import normalize_symbol

logger = structlog.get_logger(__name__)


class PositionReader(Protocol):
    async def get_positions(self, symbol: str) -> GatewayResult: ...


def _price(value: Any) -> Optional[float]:
    """Bybit reports unset SL/TP as "0" or "" """
    if value in (None, ""):
        return None
    try:
        price = float(value)
    except (TypeError, ValueError):
        return None
    return price if price > 0 else None


def _entry_side(entry: Dict[str, Any]) -> Optional[PositionSide]:
    side = entry.get("side")
    if side == "Buy":
        return PositionSide.LONG
    if side == "Sell":
        return PositionSide.SHORT
    return None  # "" / "None" = flat one-way slot


def parse_position(entry: Dict[str, Any], side: PositionSide) -> PositionSnapshot:
    """Build a snapshot from one /v5/position/list entry"""
    try:
        quantity = abs(float(entry.get("size") or 0))
    except (TypeError, ValueError) as e:
        raise PositionLookupError(f"invalid position size {entry.get('size')!r}") from e

    return PositionSnapshot(
        symbol=entry.get("symbol", ""),
        side=side,
        quantity=quantity,
        stop_loss=_price(entry.get("stopLoss")),
        take_profit_main=_price(entry.get("takeProfit")),
        mark_price=_price(entry.get("markPrice")),
        entry_price=_price(entry.get("avgPrice")),
    )


class PositionStateView:
    """Answers "what protects this position right now" from exchange data"""

    def __init__(self, gateway: PositionReader):
        self.gateway = gateway

    async def current_protection(self, symbol: str, side: PositionSide) -> PositionSnapshot:
        bybit_symbol = normalize_symbol(symbol)
        result = await self.gateway.get_positions(bybit_symbol)

        if not result.ok:
            error = result.error.describe() if result.error else "Unknown error"
            logger.error("position_lookup_failed", symbol=bybit_symbol, side=side.value, error=error)
            raise PositionLookupError(f"position lookup failed for {bybit_symbol}: {error}")

        entries: List[Dict[str, Any]] = result.payload
        if not isinstance(entries, list):
            raise PositionLookupError(f"unexpected position payload for {bybit_symbol}")

        for entry in entries:
            if not isinstance(entry, dict) or entry.get("symbol") != bybit_symbol:
                continue
            if _entry_side(entry) != side:
                continue
            snapshot = parse_position(entry, side)
            if snapshot.is_open:
                logger.debug("position_snapshot",
                             symbol=bybit_symbol,
                             side=side.value,
                             quantity=snapshot.quantity,
                             stop_loss=snapshot.stop_loss,
                             take_profit=snapshot.take_profit_main)
                return snapshot

        logger.info("position_not_open", symbol=bybit_symbol, side=side.value)
        return PositionSnapshot(symbol=bybit_symbol, side=side, quantity=0.0)
