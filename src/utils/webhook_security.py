"""
Signature verification for inbound webhooks.

- Slack: ``v0=`` HMAC-SHA256 over ``v0:{timestamp}:{body}``
- Mailgun: HMAC-SHA256 over ``{timestamp}{token}``
- Notion: hex HMAC-SHA256 over the raw body, optionally prefixed ``v1=``
- Resend (Svix): base64 HMAC-SHA256 over ``{id}.{timestamp}.{body}``

All comparisons are constant time. Timestamps older than five minutes are
rejected to stop replays.
"""

import base64
import binascii
import hashlib
import hmac
import logging
import time
from datetime import datetime
from typing import Optional, Union

logger = logging.getLogger(__name__)

TIMESTAMP_TOLERANCE_SECONDS = 5 * 60


def _to_bytes(value: Union[str, bytes]) -> bytes:
    return value if isinstance(value, bytes) else value.encode("utf-8")


def _hmac_sha256(secret: Union[str, bytes], message: Union[str, bytes]) -> bytes:
    return hmac.new(_to_bytes(secret), _to_bytes(message), hashlib.sha256).digest()


def is_fresh_unix_timestamp(timestamp: Union[str, int, float, None],
                            tolerance: int = TIMESTAMP_TOLERANCE_SECONDS,
                            now: Optional[float] = None) -> bool:
    try:
        ts = float(timestamp)
    except (TypeError, ValueError):
        return False
    now = time.time() if now is None else now
    return abs(now - ts) <= tolerance


def verify_slack_signature(
    signing_secret: str,
    body: Union[str, bytes],
    timestamp: Optional[str],
    signature: Optional[str],
    now: Optional[float] = None,
) -> bool:
    """Verify ``X-Slack-Signature`` against ``X-Slack-Request-Timestamp`` and the raw body."""
    if not signing_secret or not timestamp or not signature:
        logger.warning("Slack signature check: missing secret, timestamp or signature")
        return False

    if not is_fresh_unix_timestamp(timestamp, now=now):
        logger.warning(f"Slack request timestamp outside tolerance window: {timestamp}")
        return False

    basestring = b"v0:" + _to_bytes(str(timestamp)) + b":" + _to_bytes(body)
    expected = "v0=" + hmac.new(_to_bytes(signing_secret), basestring, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature)


def verify_mailgun_signature(
    signing_key: str,
    timestamp: Optional[str],
    token: Optional[str],
    signature: Optional[str],
    now: Optional[float] = None,
) -> bool:
    if not signing_key or not timestamp or not token or not signature:
        logger.warning("Mailgun signature check: missing key, timestamp, token or signature")
        return False

    if not is_fresh_unix_timestamp(timestamp, now=now):
        logger.warning(f"Mailgun request timestamp outside tolerance window: {timestamp}")
        return False

    expected = hmac.new(
        _to_bytes(signing_key), _to_bytes(f"{timestamp}{token}"), hashlib.sha256
    ).hexdigest()
    return hmac.compare_digest(expected, signature)


def verify_notion_signature(body: Union[str, bytes], signature: Optional[str], signing_secret: str) -> bool:
    """Verify ``X-Notion-Signature`` (hex digest, ``v1=`` prefix optional)."""
    if not signature or not signing_secret:
        logger.warning("Notion signature check: missing signature or signing secret")
        return False

    expected = _hmac_sha256(signing_secret, body).hex()
    provided = signature[3:] if signature.startswith("v1=") else signature

    if len(provided) != len(expected):
        logger.warning("Notion signature length mismatch")
        return False

    return hmac.compare_digest(provided, expected)


def validate_iso_timestamp(timestamp: Optional[str],
                           tolerance: int = TIMESTAMP_TOLERANCE_SECONDS,
                           now: Optional[datetime] = None) -> bool:
    """Check an ISO-8601 event timestamp is recent.

    Events without a timestamp, or with one that cannot be parsed, pass.
    """
    if not timestamp:
        return True
    try:
        event_time = datetime.fromisoformat(timestamp.replace("Z", "+00:00"))
    except ValueError:
        logger.warning(f"Could not parse webhook timestamp: {timestamp}")
        return True

    if event_time.tzinfo is None:
        current = now or datetime.utcnow()
    else:
        current = now or datetime.now(event_time.tzinfo)

    diff = abs((current - event_time).total_seconds())
    if diff > tolerance:
        logger.warning(f"Webhook timestamp outside tolerance window ({diff / 60:.2f} minutes)")
        return False
    return True


def _svix_key(secret: str) -> bytes:
    if secret.startswith("whsec_"):
        try:
            return base64.b64decode(secret[len("whsec_"):])
        except (binascii.Error, ValueError):
            logger.warning("Webhook secret has whsec_ prefix but is not base64, using raw value")
    return _to_bytes(secret)


def sign_svix_payload(secret: str, msg_id: str, timestamp: str, body: Union[str, bytes]) -> str:
    signed = _to_bytes(f"{msg_id}.{timestamp}.") + _to_bytes(body)
    return base64.b64encode(hmac.new(_svix_key(secret), signed, hashlib.sha256).digest()).decode()


def verify_svix_signature(
    secret: str,
    body: Union[str, bytes],
    msg_id: Optional[str],
    timestamp: Optional[str],
    signature_header: Optional[str],
    now: Optional[float] = None,
) -> bool:
    """Verify Svix headers as sent by Resend.

    ``svix-signature`` is a space separated list of ``v1,<base64>`` entries;
    any match is accepted.
    """
    if not secret or not msg_id or not timestamp or not signature_header:
        logger.warning("Svix signature check: missing secret or svix headers")
        return False

    if not is_fresh_unix_timestamp(timestamp, now=now):
        logger.warning(f"Svix timestamp outside tolerance window: {timestamp}")
        return False

    expected = sign_svix_payload(secret, msg_id, timestamp, body)
    for entry in signature_header.split():
        version, _, candidate = entry.partition(",")
        if version == "v1" and hmac.compare_digest(candidate, expected):
            return True

    logger.warning("Svix signature mismatch")
    return False
