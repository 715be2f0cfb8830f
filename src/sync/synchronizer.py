"""
Position Order Synchronizer

Entry point for callers (alert processing, HTTP route, CLI): opens a gateway
for the caller's credentials, learns the live position size when the ladder
needs it, runs the TP ladder reconciler and logs the outcome.

No state survives a call. Callers must serialize calls per symbol + side.
"""
import time
from typing import Callable, Iterable, Optional, Sequence, Union

import structlog

from src.core.models import (
    ApiCredentials,
    LadderOrderRef,
    LadderTarget,
    PositionIntent,
    PositionSide,
    ReconciliationReport,
)
from src.execution.bybit import BybitOrderGateway, normalize_symbol
from src.sync.ladder import TpLadderReconciler
from src.sync.position_view import PositionStateView
from src.sync.reporter import log_report

logger = structlog.get_logger(__name__)


class PositionOrderSynchronizer:
    """
    Args:
        dry_run: simulate mutations (None = settings.DRY_RUN)
        gateway_factory: credentials -> gateway (async context manager);
            defaults to BybitOrderGateway
        clock: seconds since epoch, forwarded to the reconciler
    """

    def __init__(
        self,
        dry_run: Optional[bool] = None,
        gateway_factory: Optional[Callable[[ApiCredentials], BybitOrderGateway]] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.dry_run = dry_run
        self._gateway_factory = gateway_factory or self._default_gateway
        self._clock = clock

    def _default_gateway(self, credentials: ApiCredentials) -> BybitOrderGateway:
        return BybitOrderGateway(credentials, dry_run=self.dry_run)

    async def synchronize(
        self,
        credentials: ApiCredentials,
        symbol: str,
        side: Union[PositionSide, str],
        stop_loss: Optional[float] = None,
        take_profit_main: Optional[float] = None,
        take_profit_ladder: Sequence[LadderTarget] = (),
        prior_refs: Iterable[LadderOrderRef] = (),
        position_quantity: Optional[float] = None,
    ) -> ReconciliationReport:
        """
        Converge SL / main TP / TP2-TP3 ladder for one position.

        Raises:
            ValueError: missing credentials, symbol or malformed targets
            PositionLookupError: live quantity needed but unreadable; nothing was mutated
        """
        if credentials is None:
            raise ValueError("credentials are required")
        bybit_symbol = normalize_symbol(symbol)
        if not isinstance(side, PositionSide):
            side = PositionSide.parse(side)

        async with self._gateway_factory(credentials) as gateway:
            if position_quantity is None:
                if take_profit_ladder:
                    snapshot = await PositionStateView(gateway).current_protection(bybit_symbol, side)
                    position_quantity = snapshot.quantity
                    logger.info("position_quantity_resolved",
                                symbol=bybit_symbol,
                                side=side.value,
                                quantity=position_quantity)
                else:
                    position_quantity = 0.0

            intent = PositionIntent(
                symbol=bybit_symbol,
                side=side,
                position_quantity=position_quantity,
                stop_loss=stop_loss,
                take_profit_main=take_profit_main,
                take_profit_ladder=tuple(take_profit_ladder),
            )
            reconciler = TpLadderReconciler(gateway, clock=self._clock)
            report = await reconciler.reconcile(intent, prior_refs)

        log_report(report, bybit_symbol)
        return report
