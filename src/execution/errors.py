"""
Exchange error classification

Splits venue failures into:
- api_temporary: transient (rate limit, timeout, outage), retry possible
- trade_fault: request itself is wrong (price, qty, balance), fix the intent first
- unknown: anything else, retry with care
"""
from typing import Optional

from src.core.models import ErrorCategory, ErrorKind, ExchangeError

# Bybit V5 retCodes
RATE_LIMIT_CODES = {"10006", "10018"}
TEMPORARY_CODES = {"10000", "10016", "10002"}  # server timeout, server error, request expired
TRADE_FAULT_CODES = {
    "10001",   # params error
    "110003",  # price out of permissible range
    "110004",  # insufficient wallet balance
    "110007",  # insufficient available balance
    "110017",  # reduce-only rule not satisfied
    "110043",  # leverage not modified
    "110094",  # order does not meet minimum order value
    "10029",   # symbol not allowed
}
ORDER_GONE_CODES = {"110001"}  # order not exists or too late to cancel

TEMPORARY_KEYWORDS = (
    "rate limit",
    "too many",
    "timeout",
    "timed out",
    "service unavailable",
    "temporar",
    "try again",
    "network",
    "unavailable",
)

TRADE_FAULT_KEYWORDS = (
    "insufficient",
    "invalid price",
    "invalid qty",
    "qty",
    "reduce-only",
    "reduceonly",
    "position not found",
    "position not exists",
    "minimum",
    "maximum",
    "params error",
    "not supported",
)


def classify_error(code: str, message: str, kind: ErrorKind = ErrorKind.EXCHANGE) -> ErrorCategory:
    """Map a venue code/message to a retry category"""
    if kind in (ErrorKind.TIMEOUT, ErrorKind.NETWORK):
        return ErrorCategory.API_TEMPORARY

    code = str(code or "")
    msg = (message or "").lower()

    if code in RATE_LIMIT_CODES or code in TEMPORARY_CODES:
        return ErrorCategory.API_TEMPORARY
    if code.startswith("HTTP 5") or code == "HTTP 429":
        return ErrorCategory.API_TEMPORARY
    if code in TRADE_FAULT_CODES or code in ORDER_GONE_CODES:
        return ErrorCategory.TRADE_FAULT

    if any(keyword in msg for keyword in TEMPORARY_KEYWORDS):
        return ErrorCategory.API_TEMPORARY
    if any(keyword in msg for keyword in TRADE_FAULT_KEYWORDS):
        return ErrorCategory.TRADE_FAULT

    return ErrorCategory.UNKNOWN


def make_error(code: str, message: str, kind: ErrorKind = ErrorKind.EXCHANGE) -> ExchangeError:
    """Build a classified ExchangeError"""
    return ExchangeError(
        code=str(code),
        message=message,
        kind=kind,
        category=classify_error(code, message, kind),
    )


def is_order_gone(error: Optional[ExchangeError]) -> bool:
    """Cancel target already filled or cancelled"""
    if error is None or error.kind != ErrorKind.EXCHANGE:
        return False
    if error.code in ORDER_GONE_CODES:
        return True
    msg = error.message.lower()
    return "order not exists" in msg or "too late to cancel" in msg
