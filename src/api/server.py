"""
TP/SL HTTP Service

POST /api/exchange/modify-tpsl - validate the request body, run the
synchronizer for the given position and return the reconciliation report.
"""
from typing import List, Optional

from fastapi import Depends, FastAPI
from fastapi.responses import JSONResponse
from pydantic import BaseModel, ConfigDict, Field, field_validator
import structlog

from src.core.models import (
    ApiCredentials,
    LadderLevel,
    LadderOrderRef,
    LadderTarget,
    PositionLookupError,
    PositionSide,
    ReconciliationOutcome,
    VenueEnvironment,
)
from src.sync.reporter import classify, summarize
from src.sync.synchronizer import PositionOrderSynchronizer

logger = structlog.get_logger(__name__)

app = FastAPI(title="TP/SL Synchronizer")

_synchronizer: Optional[PositionOrderSynchronizer] = None


def get_synchronizer() -> PositionOrderSynchronizer:
    """Shared synchronizer (it holds no per-position state)"""
    global _synchronizer
    if _synchronizer is None:
        _synchronizer = PositionOrderSynchronizer()
    return _synchronizer


class ModifyTpSlRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    exchange: str
    api_key: str = Field(alias="apiKey", min_length=1)
    api_secret: str = Field(alias="apiSecret", min_length=1, repr=False)
    environment: VenueEnvironment = VenueEnvironment.MAINNET
    symbol: str = Field(min_length=1)
    side: PositionSide
    stop_loss: Optional[float] = Field(default=None, alias="stopLoss", gt=0, allow_inf_nan=False)
    take_profit: Optional[float] = Field(default=None, alias="takeProfit", gt=0, allow_inf_nan=False)
    tp2: Optional[float] = Field(default=None, gt=0, allow_inf_nan=False)
    tp3: Optional[float] = Field(default=None, gt=0, allow_inf_nan=False)
    tp2_order_id: Optional[str] = Field(default=None, alias="tp2OrderId")
    tp3_order_id: Optional[str] = Field(default=None, alias="tp3OrderId")
    position_quantity: Optional[float] = Field(default=None, alias="positionQuantity", ge=0, allow_inf_nan=False)

    @field_validator("side", mode="before")
    @classmethod
    def _parse_side(cls, value):
        if isinstance(value, str):
            return PositionSide.parse(value)
        return value

    def ladder_targets(self) -> List[LadderTarget]:
        targets = []
        if self.tp2 is not None:
            targets.append(LadderTarget(LadderLevel.TP2, self.tp2))
        if self.tp3 is not None:
            targets.append(LadderTarget(LadderLevel.TP3, self.tp3))
        return targets

    def prior_refs(self) -> List[LadderOrderRef]:
        return [
            LadderOrderRef(LadderLevel.TP2, self.tp2_order_id),
            LadderOrderRef(LadderLevel.TP3, self.tp3_order_id),
        ]


def _error(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"success": False, "message": message})


@app.post("/api/exchange/modify-tpsl")
async def modify_tpsl(
    body: ModifyTpSlRequest,
    synchronizer: PositionOrderSynchronizer = Depends(get_synchronizer),
):
    if body.exchange.lower() != "bybit":
        return _error(400, "Only Bybit is supported.")

    try:
        credentials = ApiCredentials(body.api_key, body.api_secret, body.environment)
        report = await synchronizer.synchronize(
            credentials,
            body.symbol,
            body.side,
            stop_loss=body.stop_loss,
            take_profit_main=body.take_profit,
            take_profit_ladder=body.ladder_targets(),
            prior_refs=body.prior_refs(),
            position_quantity=body.position_quantity,
        )
    except PositionLookupError as e:
        return _error(502, str(e))
    except ValueError as e:
        return _error(400, str(e))

    outcome = classify(report)
    if outcome == ReconciliationOutcome.SUCCESS:
        message = "TP/SL modifications completed"
    elif outcome == ReconciliationOutcome.PARTIAL_SUCCESS:
        message = "TP/SL partially updated: " + "; ".join(report.errors)
    else:
        message = "TP/SL update failed: " + "; ".join(report.errors)

    return JSONResponse(
        status_code=400 if outcome == ReconciliationOutcome.FAILURE else 200,
        content={
            "success": outcome == ReconciliationOutcome.SUCCESS,
            "outcome": outcome.value,
            "message": message,
            "report": summarize(report),
        },
    )


def run_server(host: str = "0.0.0.0", port: int = 8890):
    """Run the HTTP service"""
    import uvicorn
    uvicorn.run(app, host=host, port=port)
