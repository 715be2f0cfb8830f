"""
TP Ladder Reconciler
====================

Converges an exchange position's protective orders to a PositionIntent:

1. Position-level SL / primary TP in one call (only the fields present)
2. For TP2 then TP3:
   a. cancel the previous ladder order (failure recorded, never blocks placement)
   b. size the leg as a fixed fraction of the position (30% / 20%)
   c. place a reduce-only GTC limit order on the closing side with a fresh client id

Best-effort and sequential. Each step is attempted once; a failed step is
recorded in the report and the next independent step still runs. Nothing is
rolled back: a half-built ladder is a valid state the caller can repair later.

Precondition: at most one reconciliation in flight per symbol+side. The caller
serializes calls; this module does no locking.
"""
import time
from decimal import Decimal
from typing import Callable, Dict, Iterable, Optional, Protocol

import structlog

from src.core.models import (
    GatewayResult,
    LadderLevel,
    LadderOrderRef,
    LADDER_ORDER,
    OrderSide,
    PositionIntent,
    PositionSide,
    ReconciliationReport,
    StepKind,
    StepResult,
    round_quantity,
)
from src.execution.errors import is_order_gone

logger = structlog.get_logger(__name__)


class OrderGateway(Protocol):
    """The three mutations the reconciler drives"""

    async def set_position_protection(
        self,
        symbol: str,
        side: PositionSide,
        stop_loss: Optional[float] = None,
        take_profit: Optional[float] = None,
    ) -> GatewayResult: ...

    async def cancel_order(self, symbol: str, client_order_id: str) -> GatewayResult: ...

    async def create_reduce_limit_order(
        self,
        symbol: str,
        closing_side: OrderSide,
        quantity: float,
        price: float,
        client_order_id: str,
        position_side: Optional[PositionSide] = None,
    ) -> GatewayResult: ...


def ladder_quantity(position_quantity: float, level: LadderLevel) -> float:
    """Order size for a ladder leg: round(Q * allocation, 3), half-up"""
    exact = Decimal(str(position_quantity)) * Decimal(str(level.allocation))
    return round_quantity(exact)


def new_client_order_id(level: LadderLevel, now_ms: int) -> str:
    """tp2_<epochMillis> / tp3_<epochMillis>"""
    return f"{level.value.lower()}_{now_ms}"


def _error_text(result: GatewayResult) -> str:
    if result.error is None:
        return "Unknown error"
    return result.error.describe()


class TpLadderReconciler:
    """
    Drives an OrderGateway through the SL/TP + TP2/TP3 ladder update.

    Args:
        gateway: object implementing OrderGateway
        clock: seconds since epoch, used for client order ids
        id_factory: optional (level, now_ms) -> client order id override,
            e.g. a UUID generator when stronger collision resistance is needed
    """

    def __init__(
        self,
        gateway: OrderGateway,
        clock: Callable[[], float] = time.time,
        id_factory: Optional[Callable[[LadderLevel, int], str]] = None,
    ):
        self.gateway = gateway
        self._clock = clock
        self._id_factory = id_factory or new_client_order_id

    async def reconcile(
        self,
        intent: PositionIntent,
        prior_refs: Iterable[LadderOrderRef] = (),
    ) -> ReconciliationReport:
        """Run one reconciliation pass; never raises for gateway failures"""
        report = ReconciliationReport()
        prior_ids: Dict[LadderLevel, str] = {
            ref.level: ref.client_order_id for ref in prior_refs if ref.client_order_id
        }

        logger.info("reconcile_start",
                    symbol=intent.symbol,
                    side=intent.side.value,
                    stop_loss=intent.stop_loss,
                    take_profit_main=intent.take_profit_main,
                    ladder=[t.level.value for t in intent.take_profit_ladder],
                    quantity=intent.position_quantity,
                    prior_ids={lvl.value: cid for lvl, cid in prior_ids.items()})

        if intent.has_main_update:
            await self._update_main(intent, report)

        for level in LADDER_ORDER:
            price = intent.ladder_price(level)
            if price is None:
                continue
            await self._update_level(intent, level, price, prior_ids.get(level), report)

        # An untouched main SL/TP reports as updated unless nothing at all was requested
        if not report.main_attempted and report.ladder_attempted:
            report.main_updated = True

        logger.info("reconcile_done",
                    symbol=intent.symbol,
                    main_updated=report.main_updated,
                    ladder_updated={lvl.value: ok for lvl, ok in report.ladder_updated.items()},
                    error_count=len(report.errors))
        return report

    async def _update_main(self, intent: PositionIntent, report: ReconciliationReport) -> None:
        report.main_attempted = True
        result = await self.gateway.set_position_protection(
            intent.symbol,
            intent.side,
            stop_loss=intent.stop_loss,
            take_profit=intent.take_profit_main,
        )
        if result.ok:
            report.main_updated = True
            report.record(StepResult(step=StepKind.MAIN_SL_TP, ok=True))
            logger.info("main_sl_tp_updated",
                        symbol=intent.symbol,
                        stop_loss=intent.stop_loss,
                        take_profit=intent.take_profit_main)
        else:
            report.record(StepResult(step=StepKind.MAIN_SL_TP, ok=False, error=_error_text(result)))
            logger.error("main_sl_tp_failed",
                         symbol=intent.symbol,
                         error=_error_text(result))

    async def _update_level(
        self,
        intent: PositionIntent,
        level: LadderLevel,
        price: float,
        prior_id: Optional[str],
        report: ReconciliationReport,
    ) -> None:
        # a. Cancel the stale order first; the outcome never blocks placement
        if prior_id:
            await self._cancel_prior(intent, level, prior_id, report)

        report.ladder_attempted.append(level)

        # b. Size the leg
        quantity = ladder_quantity(intent.position_quantity, level)
        if quantity <= 0:
            report.record(StepResult(
                step=StepKind.PLACE_LADDER,
                level=level,
                ok=False,
                error=f"quantity rounds to zero for position size {intent.position_quantity}",
            ))
            logger.warning("ladder_level_skipped",
                           symbol=intent.symbol,
                           level=level.value,
                           position_quantity=intent.position_quantity)
            return

        # c. Fresh client order id
        client_order_id = self._id_factory(level, int(self._clock() * 1000))

        # d. Place the replacement
        result = await self.gateway.create_reduce_limit_order(
            intent.symbol,
            intent.side.closing_side,
            quantity,
            price,
            client_order_id,
            position_side=intent.side,
        )
        if result.ok:
            report.ladder_updated[level] = True
            report.new_client_order_ids[level] = client_order_id
            report.record(StepResult(
                step=StepKind.PLACE_LADDER,
                level=level,
                ok=True,
                client_order_id=client_order_id,
            ))
            logger.info("ladder_order_placed",
                        symbol=intent.symbol,
                        level=level.value,
                        qty=quantity,
                        price=price,
                        client_order_id=client_order_id,
                        order_id=result.order_id)
        else:
            report.record(StepResult(
                step=StepKind.PLACE_LADDER,
                level=level,
                ok=False,
                client_order_id=client_order_id,
                error=_error_text(result),
            ))
            logger.error("ladder_order_failed",
                         symbol=intent.symbol,
                         level=level.value,
                         client_order_id=client_order_id,
                         ambiguous=bool(result.error and result.error.ambiguous),
                         error=_error_text(result))

    async def _cancel_prior(
        self,
        intent: PositionIntent,
        level: LadderLevel,
        prior_id: str,
        report: ReconciliationReport,
    ) -> None:
        result = await self.gateway.cancel_order(intent.symbol, prior_id)
        if result.ok:
            report.record(StepResult(
                step=StepKind.CANCEL_LADDER,
                level=level,
                ok=True,
                client_order_id=prior_id,
            ))
            logger.info("ladder_order_cancelled",
                        symbol=intent.symbol,
                        level=level.value,
                        client_order_id=prior_id)
            return

        report.record(StepResult(
            step=StepKind.CANCEL_LADDER,
            level=level,
            ok=False,
            client_order_id=prior_id,
            error=_error_text(result),
        ))
        # Already filled/cancelled is expected; anything else may leave a stale order live
        if is_order_gone(result.error):
            logger.info("ladder_cancel_order_gone",
                        symbol=intent.symbol,
                        level=level.value,
                        client_order_id=prior_id)
        else:
            logger.warning("ladder_cancel_failed",
                           symbol=intent.symbol,
                           level=level.value,
                           client_order_id=prior_id,
                           error=_error_text(result))
