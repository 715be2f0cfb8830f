"""
Bybit V5 request signing

Signing string: timestamp + apiKey + recvWindow + payload
where payload is the canonical query string (GET) or the canonical JSON body (POST).
HMAC-SHA256 with the account API secret, hex encoded.
"""
import hmac
import hashlib
from typing import Any, List, Mapping, Tuple

import orjson

from src.core.models import SignatureError

RECV_WINDOW_MS = 5000


def _render(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def sorted_entries(params: Mapping[str, Any]) -> List[Tuple[str, str]]:
    """Explicit key-sorted (key, value) list; never relies on mapping order"""
    entries = []
    for key in sorted(params):
        value = params[key]
        if value is None:
            raise SignatureError(f"parameter {key!r} is None")
        entries.append((str(key), _render(value)))
    return entries


def canonical_query(params: Mapping[str, Any]) -> str:
    """key1=value1&key2=value2 with keys in ascending order"""
    return "&".join(f"{key}={value}" for key, value in sorted_entries(params))


def canonical_body(params: Mapping[str, Any]) -> str:
    """Compact JSON body with sorted keys; the exact bytes that get sent"""
    for key, value in params.items():
        if value is None:
            raise SignatureError(f"parameter {key!r} is None")
    return orjson.dumps(dict(params), option=orjson.OPT_SORT_KEYS).decode()


def sign_payload(
    api_secret: str,
    api_key: str,
    timestamp: int,
    payload: str,
    recv_window: int = RECV_WINDOW_MS,
) -> str:
    """HMAC-SHA256 hex signature over timestamp + api_key + recv_window + payload"""
    if not api_secret:
        raise SignatureError("api_secret is empty")
    if not api_key:
        raise SignatureError("api_key is empty")
    if not isinstance(timestamp, int) or isinstance(timestamp, bool) or timestamp <= 0:
        raise SignatureError(f"invalid timestamp: {timestamp!r}")
    if recv_window <= 0:
        raise SignatureError(f"invalid recv_window: {recv_window!r}")

    message = f"{timestamp}{api_key}{recv_window}{payload}"
    return hmac.new(
        api_secret.encode(),
        message.encode(),
        hashlib.sha256,
    ).hexdigest()


def sign(
    api_secret: str,
    api_key: str,
    timestamp: int,
    params: Mapping[str, Any],
    recv_window: int = RECV_WINDOW_MS,
) -> str:
    """Sign a parameter set through its canonical query string"""
    return sign_payload(api_secret, api_key, timestamp, canonical_query(params), recv_window)
