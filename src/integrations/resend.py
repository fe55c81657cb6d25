"""
Resend inbound email client.

Resend's email.received webhook carries only the email id, so the body
is fetched from the Resend API and reshaped into the Mailgun form
fields the Figma adapter already understands.
"""

import logging
from datetime import datetime
from typing import Dict, Any

from config import settings
from ..utils.http import request_json

logger = logging.getLogger(__name__)


class ResendError(Exception):
    """Resend API call failed."""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.message = message
        self.status_code = status_code


async def fetch_resend_email(email_id: str, api_key: str) -> Dict[str, Any]:
    """Retrieve a received email (html, text, headers) by id."""
    if not email_id:
        raise ResendError("Email id is required")
    if not api_key:
        raise ResendError("Resend API key is not configured", status_code=500)

    try:
        status, data = await request_json(
            "GET",
            f"{settings.resend_api_url}/emails/receiving/{email_id}",
            headers={"Authorization": f"Bearer {api_key}"},
        )
    except Exception as e:
        raise ResendError(f"Failed to reach Resend API: {e}") from e

    if status >= 400 or not isinstance(data, dict):
        message = data.get("message") if isinstance(data, dict) else None
        raise ResendError(message or f"Resend API error: {status}", status_code=status)

    logger.debug(f"Fetched Resend email {email_id} (html={bool(data.get('html'))}, text={bool(data.get('text'))})")
    return data


def _to_unix(value: Any) -> float:
    if not value:
        return datetime.utcnow().timestamp()
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00")).timestamp()
    except ValueError:
        return datetime.utcnow().timestamp()


def transform_to_mailgun_format(email: Dict[str, Any]) -> Dict[str, Any]:
    """Reshape a Resend email into Mailgun's inbound form fields."""
    to = email.get("to") or []
    recipient = to[0] if isinstance(to, list) and to else (to if isinstance(to, str) else "")
    text = email.get("text") or ""

    return {
        "recipient": recipient,
        "from": email.get("from") or "",
        "sender": email.get("from") or "",
        "subject": email.get("subject") or "",
        "body-html": email.get("html") or "",
        "body-plain": text,
        "stripped-text": text,
        "timestamp": _to_unix(email.get("created_at")),
    }
