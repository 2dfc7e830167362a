"""HMAC request signing shared by the SIS client and the inbound ``/xr`` routes.

Both directions compute ``hex(HMAC-SHA256(secret, raw_body + timestamp))`` where
``timestamp`` is epoch milliseconds as a string. The timestamp window is the
replay control; the signature only proves knowledge of the shared secret.
"""

from __future__ import annotations

from dataclasses import dataclass
import hashlib
import hmac
import json
import time
from typing import Any

from app.core.exceptions import InvalidSignatureError, MissingApiKeyError, StaleTimestampError

TIMESTAMP_HEADER = "x-timestamp"
SIGNATURE_HEADER = "x-signature"
DEFAULT_MAX_SKEW_SECONDS = 5 * 60


@dataclass(frozen=True)
class SignedMessage:
    raw_body: str
    timestamp: str
    signature: str


def canonical_json(body: Any) -> str:
    return json.dumps(body, separators=(",", ":"), ensure_ascii=False)


def current_timestamp_ms() -> str:
    return str(int(time.time() * 1000))


def compute_signature(secret: str, raw_body: str, timestamp: str) -> str:
    message = (raw_body + timestamp).encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def sign_body(secret: str, body: Any | None, *, timestamp: str | None = None) -> SignedMessage:
    raw_body = "" if body is None else canonical_json(body)
    ts = timestamp or current_timestamp_ms()
    return SignedMessage(raw_body=raw_body, timestamp=ts, signature=compute_signature(secret, raw_body, ts))


def signed_headers(api_key: str, message: SignedMessage, *, json_body: bool = True) -> dict[str, str]:
    headers = {
        "Authorization": f"Bearer {api_key}",
        TIMESTAMP_HEADER: message.timestamp,
        SIGNATURE_HEADER: message.signature,
    }
    if json_body:
        headers["Content-Type"] = "application/json"
    return headers


def bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    parts = authorization.strip().split(" ", 1)
    if len(parts) != 2 or parts[0].lower() != "bearer":
        return None
    token = parts[1].strip()
    return token or None


def identify_caller(api_key: str | None, allowed_keys: dict[str, str]) -> str:
    """Map a bearer key to its caller name ("sis", "lms") or raise."""
    if not api_key:
        raise MissingApiKeyError()
    for caller, key in allowed_keys.items():
        if key and hmac.compare_digest(key, api_key):
            return caller
    raise MissingApiKeyError()


def check_timestamp(timestamp: str | None, *, max_skew_seconds: int = DEFAULT_MAX_SKEW_SECONDS, now_ms: int | None = None) -> int:
    if not timestamp or not timestamp.strip().isdigit():
        raise StaleTimestampError()
    ts = int(timestamp.strip())
    now = now_ms if now_ms is not None else int(time.time() * 1000)
    if abs(now - ts) > max_skew_seconds * 1000:
        raise StaleTimestampError()
    return ts


def verify_signature(secret: str, raw_body: str, timestamp: str, signature: str | None) -> None:
    if not secret or not signature:
        raise InvalidSignatureError()
    expected = compute_signature(secret, raw_body, timestamp)
    if not hmac.compare_digest(expected, signature.strip().lower()):
        raise InvalidSignatureError()


def verify_signed_request(
    *,
    secret: str,
    allowed_keys: dict[str, str],
    authorization: str | None,
    timestamp: str | None,
    signature: str | None,
    raw_body: str,
    max_skew_seconds: int = DEFAULT_MAX_SKEW_SECONDS,
    now_ms: int | None = None,
) -> str:
    """Run the three inbound checks in order and return the caller name.

    API key first, then the freshness window, then the signature. Each failure
    raises a distinct ``SignatureVerificationError`` subclass.
    """
    caller = identify_caller(bearer_token(authorization), allowed_keys)
    check_timestamp(timestamp, max_skew_seconds=max_skew_seconds, now_ms=now_ms)
    verify_signature(secret, raw_body, timestamp or "", signature)
    return caller
