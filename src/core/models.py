"""
Data models for TP/SL order synchronization
Plain dataclasses and enums shared by the gateway, the reconciler and callers
"""
import math
from dataclasses import dataclass, field
from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union
from enum import Enum


QUANTITY_DECIMALS = 3  # Venue quantity precision (asset units)


class SignatureError(ValueError):
    """Malformed request-signing inputs"""


class PositionLookupError(RuntimeError):
    """Current position state could not be read from the exchange"""


class OrderSide(Enum):
    BUY = "Buy"
    SELL = "Sell"


class PositionSide(Enum):
    LONG = "Long"
    SHORT = "Short"

    @property
    def closing_side(self) -> OrderSide:
        """Side of a reduce-only order that closes this position"""
        return OrderSide.SELL if self == PositionSide.LONG else OrderSide.BUY

    @classmethod
    def parse(cls, value: str) -> "PositionSide":
        """Accept Long/Short, LONG/SHORT, buy/sell"""
        text = (value or "").strip().lower()
        if text in ("long", "buy"):
            return cls.LONG
        if text in ("short", "sell"):
            return cls.SHORT
        raise ValueError(f"Unknown position side: {value!r}")


class LadderLevel(Enum):
    TP2 = "TP2"
    TP3 = "TP3"

    @property
    def allocation(self) -> float:
        """Fraction of the position closed at this level"""
        return LADDER_ALLOCATIONS[self]


# Fixed policy: TP2 closes 30%, TP3 closes 20%, remaining 50% rides the main TP
LADDER_ALLOCATIONS: Dict[LadderLevel, float] = {
    LadderLevel.TP2: 0.30,
    LadderLevel.TP3: 0.20,
}

LADDER_ORDER: Tuple[LadderLevel, ...] = (LadderLevel.TP2, LadderLevel.TP3)


class VenueEnvironment(Enum):
    MAINNET = "mainnet"
    TESTNET = "testnet"
    DEMO = "demo"


class StepKind(Enum):
    MAIN_SL_TP = "MainSlTp"
    CANCEL_LADDER = "CancelLadder"
    PLACE_LADDER = "PlaceLadder"


class ErrorKind(Enum):
    EXCHANGE = "exchange"   # Venue answered and rejected the request
    NETWORK = "network"     # Transport failure, outcome ambiguous
    TIMEOUT = "timeout"     # No answer in time, outcome ambiguous


class ErrorCategory(Enum):
    API_TEMPORARY = "api_temporary"
    TRADE_FAULT = "trade_fault"
    UNKNOWN = "unknown"


class ReconciliationOutcome(Enum):
    SUCCESS = "success"
    PARTIAL_SUCCESS = "partial_success"
    FAILURE = "failure"


def round_quantity(value: Union[float, Decimal], decimals: int = QUANTITY_DECIMALS) -> float:
    """Round half-up to the venue quantity precision"""
    quantum = Decimal(1).scaleb(-decimals)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def _positive_price(value: Any) -> bool:
    return value > 0 and math.isfinite(value)


@dataclass
class ApiCredentials:
    """Per-call exchange credentials"""
    api_key: str
    api_secret: str = field(repr=False)
    environment: VenueEnvironment = VenueEnvironment.MAINNET

    def __post_init__(self):
        if not self.api_key or not self.api_secret:
            raise ValueError("api_key and api_secret are required")
        if isinstance(self.environment, str):
            self.environment = VenueEnvironment(self.environment.lower())


@dataclass(frozen=True)
class LadderTarget:
    level: LadderLevel
    price: float


@dataclass(frozen=True)
class LadderOrderRef:
    """Previously placed TP2/TP3 order, superseded on the next reconciliation"""
    level: LadderLevel
    client_order_id: Optional[str] = None


@dataclass
class PositionIntent:
    """
    Desired protective state for one open position.

    Absent stop_loss / take_profit_main mean "leave unchanged".
    Built by the caller right before a reconciliation and discarded after.
    """
    symbol: str
    side: PositionSide
    position_quantity: float
    stop_loss: Optional[float] = None
    take_profit_main: Optional[float] = None
    take_profit_ladder: Sequence[LadderTarget] = ()

    def __post_init__(self):
        if not self.symbol or not self.symbol.strip():
            raise ValueError("symbol is required")
        if not isinstance(self.side, PositionSide):
            self.side = PositionSide.parse(str(self.side))

        for name in ("stop_loss", "take_profit_main"):
            price = getattr(self, name)
            if price is not None and not _positive_price(price):
                raise ValueError(f"{name} must be a positive price, got {price}")

        if (
            self.position_quantity is None
            or not math.isfinite(self.position_quantity)
            or self.position_quantity < 0
        ):
            raise ValueError(f"position_quantity must be a finite number >= 0, got {self.position_quantity}")
        self.position_quantity = round_quantity(self.position_quantity)

        by_level: Dict[LadderLevel, LadderTarget] = {}
        for target in self.take_profit_ladder:
            if target.level in by_level:
                raise ValueError(f"duplicate ladder level {target.level.value}")
            if not _positive_price(target.price):
                raise ValueError(f"{target.level.value} price must be a positive price, got {target.price}")
            by_level[target.level] = target
        # TP2 is always processed before TP3
        self.take_profit_ladder = tuple(by_level[lvl] for lvl in LADDER_ORDER if lvl in by_level)

    @property
    def has_main_update(self) -> bool:
        return self.stop_loss is not None or self.take_profit_main is not None

    def ladder_price(self, level: LadderLevel) -> Optional[float]:
        for target in self.take_profit_ladder:
            if target.level == level:
                return target.price
        return None


@dataclass
class ExchangeError:
    """Venue or transport failure of one gateway call, reported as a value"""
    code: str
    message: str
    kind: ErrorKind = ErrorKind.EXCHANGE
    category: ErrorCategory = ErrorCategory.UNKNOWN

    @property
    def retryable(self) -> bool:
        return self.category != ErrorCategory.TRADE_FAULT

    @property
    def ambiguous(self) -> bool:
        """The request may or may not have been applied server-side"""
        return self.kind in (ErrorKind.NETWORK, ErrorKind.TIMEOUT)

    def describe(self) -> str:
        return f"[{self.code}] {self.message}"


@dataclass
class GatewayResult:
    """Outcome of a single gateway call"""
    ok: bool
    order_id: Optional[str] = None
    client_order_id: Optional[str] = None
    error: Optional[ExchangeError] = None
    payload: Optional[Any] = None


@dataclass
class StepResult:
    step: StepKind
    ok: bool
    level: Optional[LadderLevel] = None
    client_order_id: Optional[str] = None
    error: Optional[str] = None

    @property
    def label(self) -> str:
        if self.level is None:
            return self.step.value
        return f"{self.step.value}({self.level.value})"


@dataclass
class ReconciliationReport:
    """Aggregate result of one reconciliation call"""
    main_attempted: bool = False
    main_updated: bool = False
    ladder_updated: Dict[LadderLevel, bool] = field(
        default_factory=lambda: {lvl: False for lvl in LADDER_ORDER}
    )
    ladder_attempted: List[LadderLevel] = field(default_factory=list)
    new_client_order_ids: Dict[LadderLevel, str] = field(default_factory=dict)
    errors: List[str] = field(default_factory=list)
    steps: List[StepResult] = field(default_factory=list)

    def record(self, result: StepResult) -> None:
        self.steps.append(result)
        if not result.ok and result.error:
            self.errors.append(f"{result.label}: {result.error}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "main_attempted": self.main_attempted,
            "main_updated": self.main_updated,
            "ladder_updated": {lvl.value: ok for lvl, ok in self.ladder_updated.items()},
            "new_client_order_ids": {lvl.value: cid for lvl, cid in self.new_client_order_ids.items()},
            "errors": list(self.errors),
            "steps": [
                {
                    "step": s.label,
                    "ok": s.ok,
                    "client_order_id": s.client_order_id,
                    "error": s.error,
                }
                for s in self.steps
            ],
        }


@dataclass
class PositionSnapshot:
    """Live protective state of one exchange position"""
    symbol: str
    side: PositionSide
    quantity: float
    stop_loss: Optional[float] = None
    take_profit_main: Optional[float] = None
    mark_price: Optional[float] = None
    entry_price: Optional[float] = None

    @property
    def is_open(self) -> bool:
        return self.quantity > 0
