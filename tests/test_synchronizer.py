"""
Position order synchronizer tests

Run:
    python -m pytest tests/test_synchronizer.py -v
"""
import pytest

from src.core.models import (
    ApiCredentials,
    LadderLevel,
    LadderOrderRef,
    LadderTarget,
    PositionLookupError,
    PositionSide,
)
from src.execution.errors import make_error
from src.sync.synchronizer import PositionOrderSynchronizer

CREDS = ApiCredentials("key", "secret")
LADDER = (LadderTarget(LadderLevel.TP2, 102), LadderTarget(LadderLevel.TP3, 103))


def synchronizer_for(gateway, clock):
    return PositionOrderSynchronizer(gateway_factory=lambda creds: gateway, clock=clock)


class TestSynchronize:

    @pytest.mark.asyncio
    async def test_reads_live_quantity_for_ladder(self, make_gateway, clock):
        gateway = make_gateway(positions=[{"symbol": "BTCUSDT", "side": "Buy", "size": "2"}])

        report = await synchronizer_for(gateway, clock).synchronize(
            CREDS, "btc", "long", stop_loss=99, take_profit_main=101, take_profit_ladder=LADDER,
        )

        assert gateway.names()[0] == "get_positions"
        placed = gateway.calls_named("create_reduce_limit_order")
        assert [c["quantity"] for c in placed] == [0.6, 0.4]
        assert report.main_updated
        assert report.ladder_updated == {LadderLevel.TP2: True, LadderLevel.TP3: True}
        assert gateway.entered and gateway.closed

    @pytest.mark.asyncio
    async def test_explicit_quantity_skips_lookup(self, gateway, clock):
        await synchronizer_for(gateway, clock).synchronize(
            CREDS, "BTCUSDT", PositionSide.SHORT, take_profit_ladder=LADDER, position_quantity=1.0,
        )

        assert "get_positions" not in gateway.names()
        assert [c["quantity"] for c in gateway.calls_named("create_reduce_limit_order")] == [0.3, 0.2]

    @pytest.mark.asyncio
    async def test_no_ladder_needs_no_quantity(self, gateway, clock):
        report = await synchronizer_for(gateway, clock).synchronize(
            CREDS, "BTCUSDT", "short", stop_loss=110,
        )

        assert gateway.names() == ["set_position_protection"]
        assert report.main_updated

    @pytest.mark.asyncio
    async def test_prior_refs_cancelled(self, gateway, clock):
        report = await synchronizer_for(gateway, clock).synchronize(
            CREDS, "BTCUSDT", "long",
            take_profit_ladder=LADDER[:1],
            prior_refs=[LadderOrderRef(LadderLevel.TP2, "tp2_111")],
            position_quantity=1.0,
        )

        assert gateway.names() == ["cancel_order", "create_reduce_limit_order"]
        assert report.new_client_order_ids == {LadderLevel.TP2: "tp2_1700000000000"}

    @pytest.mark.asyncio
    async def test_lookup_failure_aborts_before_mutation(self, make_gateway, clock):
        gateway = make_gateway(positions_error=make_error("TIMEOUT", "No response"))

        with pytest.raises(PositionLookupError):
            await synchronizer_for(gateway, clock).synchronize(
                CREDS, "BTCUSDT", "long", stop_loss=99, take_profit_ladder=LADDER,
            )

        assert gateway.names() == ["get_positions"]
        assert gateway.closed

    @pytest.mark.asyncio
    async def test_missing_credentials(self, gateway, clock):
        with pytest.raises(ValueError):
            await synchronizer_for(gateway, clock).synchronize(None, "BTCUSDT", "long", stop_loss=99)
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_malformed_target_rejected_before_calls(self, gateway, clock):
        with pytest.raises(ValueError):
            await synchronizer_for(gateway, clock).synchronize(
                CREDS, "BTCUSDT", "long", stop_loss=-1, position_quantity=1.0,
            )
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_non_finite_quantity_is_value_error(self, gateway, clock):
        with pytest.raises(ValueError):
            await synchronizer_for(gateway, clock).synchronize(
                CREDS, "BTCUSDT", "long", take_profit_ladder=LADDER, position_quantity=float("inf"),
            )
        assert gateway.calls == []

    @pytest.mark.asyncio
    async def test_default_gateway_dry_run(self, clock):
        sync = PositionOrderSynchronizer(dry_run=True, clock=clock)

        report = await sync.synchronize(
            CREDS, "BTCUSDT", "long", stop_loss=99, take_profit_ladder=LADDER, position_quantity=1.0,
        )

        assert report.main_updated
        assert report.ladder_updated == {LadderLevel.TP2: True, LadderLevel.TP3: True}


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
