"""
Shared test doubles for the TP/SL synchronizer tests
"""
import os
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from src.core.models import GatewayResult  # noqa: E402
from src.execution.errors import make_error  # noqa: E402

FIXED_NOW = 1700000000.0  # -> client ids tp2_1700000000000


def fixed_clock() -> float:
    return FIXED_NOW


class RecordingGateway:
    """
    In-memory gateway recording every call in order.

    fail_main / fail_cancel: those calls fail
    fail_levels: client id prefixes ("tp2", "tp3") whose placement fails
    positions / positions_error: reply for get_positions
    """

    def __init__(
        self,
        fail_main=False,
        fail_cancel=False,
        fail_levels=(),
        positions=None,
        positions_error=None,
        cancel_error=None,
        create_error=None,
    ):
        self.fail_main = fail_main
        self.fail_cancel = fail_cancel
        self.fail_levels = tuple(fail_levels)
        self.positions = positions if positions is not None else []
        self.positions_error = positions_error
        self.cancel_error = cancel_error or make_error("110001", "order not exists or too late to cancel")
        self.create_error = create_error or make_error("110017", "reduce-only rule not satisfied")
        self.calls = []
        self.entered = False
        self.closed = False

    async def __aenter__(self):
        self.entered = True
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed = True

    def names(self):
        return [name for name, _ in self.calls]

    def calls_named(self, name):
        return [kwargs for call_name, kwargs in self.calls if call_name == name]

    async def set_position_protection(self, symbol, side, stop_loss=None, take_profit=None):
        self.calls.append(("set_position_protection", dict(
            symbol=symbol, side=side, stop_loss=stop_loss, take_profit=take_profit,
        )))
        if self.fail_main:
            return GatewayResult(ok=False, error=make_error("10001", "params error: invalid stopLoss"))
        return GatewayResult(ok=True)

    async def cancel_order(self, symbol, client_order_id):
        self.calls.append(("cancel_order", dict(symbol=symbol, client_order_id=client_order_id)))
        if self.fail_cancel:
            return GatewayResult(ok=False, client_order_id=client_order_id, error=self.cancel_error)
        return GatewayResult(ok=True, client_order_id=client_order_id)

    async def create_reduce_limit_order(
        self, symbol, closing_side, quantity, price, client_order_id, position_side=None,
    ):
        self.calls.append(("create_reduce_limit_order", dict(
            symbol=symbol,
            closing_side=closing_side,
            quantity=quantity,
            price=price,
            client_order_id=client_order_id,
            position_side=position_side,
        )))
        if client_order_id.split("_")[0] in self.fail_levels:
            return GatewayResult(ok=False, client_order_id=client_order_id, error=self.create_error)
        return GatewayResult(ok=True, order_id=f"ex-{len(self.calls)}", client_order_id=client_order_id)

    async def get_positions(self, symbol):
        self.calls.append(("get_positions", dict(symbol=symbol)))
        if self.positions_error is not None:
            return GatewayResult(ok=False, error=self.positions_error)
        return GatewayResult(ok=True, payload=self.positions)


@pytest.fixture
def clock():
    return fixed_clock


@pytest.fixture
def gateway():
    return RecordingGateway()


@pytest.fixture
def make_gateway():
    return RecordingGateway
