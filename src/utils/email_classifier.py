"""
Classification of inbound emails sent to the Figma inbox.

Only comment emails feed the discussion pipeline. Account verification and
password reset emails are forwarded to the team owner so the inbox account
can be set up; everything else is logged and dropped.
"""

import re
import logging
from dataclasses import dataclass
from typing import List, Optional, Dict

logger = logging.getLogger(__name__)

ACCOUNT_VERIFICATION = "account-verification"
PASSWORD_RESET = "password-reset"
COMMENT = "comment"
INVITATION = "invitation"
NOTIFICATION = "notification"
OTHER = "other"

FIGMA_SENDER = re.compile(r"@([a-z0-9-]+\.)*figma\.com\b", re.IGNORECASE)
TAGS = re.compile(r"<[^>]+>")


@dataclass
class EmailToClassify:
    from_address: str
    to: str = ""
    subject: str = ""
    html_body: str = ""
    text_body: str = ""


@dataclass
class EmailClassification:
    message_type: str
    confidence: float
    reason: str


@dataclass
class _Rule:
    message_type: str
    patterns: List[re.Pattern]
    confidence: float
    label: str
    figma_only: bool = False


# Checked in order, first match wins
RULES = [
    _Rule(
        ACCOUNT_VERIFICATION,
        [re.compile(p, re.IGNORECASE) for p in (
            r"verify\s+your\s+(email|account|figma)",
            r"confirm\s+your\s+(email|account)",
            r"activate\s+your\s+account",
            r"email\s+verification",
            r"verification\s+code",
        )],
        0.95,
        "account verification",
    ),
    _Rule(
        PASSWORD_RESET,
        [re.compile(p, re.IGNORECASE) for p in (
            r"reset\s+your\s+password",
            r"forgot\s+your\s+password",
            r"password\s+(recovery|reset)",
            r"change\s+your\s+password",
        )],
        0.95,
        "password reset",
    ),
    _Rule(
        COMMENT,
        [re.compile(p, re.IGNORECASE) for p in (
            r"\bcommented\b",
            r"left\s+a\s+comment",
            r"mentioned\s+you",
            r"replied\s+to",
            r"new\s+comments?\b",
        )],
        0.9,
        "comment",
        figma_only=True,
    ),
    _Rule(
        INVITATION,
        [re.compile(p, re.IGNORECASE) for p in (
            r"invited\s+you",
            r"you['’]?re\s+invited",
            r"shared\s+(a\s+file|a\s+project|with\s+you)",
            r"join\s+the\s+team",
            r"\binvitation\b",
        )],
        0.85,
        "invitation",
    ),
    _Rule(
        NOTIFICATION,
        [re.compile(p, re.IGNORECASE) for p in (
            r"\bnotification\b",
            r"\bupdates?\b",
            r"\bannouncement\b",
        )],
        0.7,
        "notification",
        figma_only=True,
    ),
]

DESCRIPTIONS = {
    COMMENT: "Figma comment or mention",
    ACCOUNT_VERIFICATION: "Account verification email",
    PASSWORD_RESET: "Password reset request",
    INVITATION: "Team or file invitation",
    NOTIFICATION: "General notification",
    OTHER: "Other email type",
}

ICONS = {
    COMMENT: "i-heroicons-chat-bubble-left-right",
    ACCOUNT_VERIFICATION: "i-heroicons-shield-check",
    PASSWORD_RESET: "i-heroicons-lock-closed",
    INVITATION: "i-heroicons-user-plus",
    NOTIFICATION: "i-heroicons-bell",
    OTHER: "i-heroicons-envelope",
}


def is_figma_sender(address: Optional[str]) -> bool:
    return bool(address and FIGMA_SENDER.search(address))


def classify_email(email: EmailToClassify) -> EmailClassification:
    """Classify an email by subject first, then body."""
    subject = email.subject or ""
    body = " ".join(filter(None, [TAGS.sub(" ", email.html_body or ""), email.text_body or ""]))
    from_figma = is_figma_sender(email.from_address)

    for rule in RULES:
        if rule.figma_only and not from_figma:
            continue
        for pattern in rule.patterns:
            if pattern.search(subject):
                return EmailClassification(
                    rule.message_type,
                    rule.confidence,
                    f"Subject matches {rule.label} pattern '{pattern.pattern}'",
                )
        for pattern in rule.patterns:
            if pattern.search(body):
                return EmailClassification(
                    rule.message_type,
                    round(rule.confidence - 0.1, 2),
                    f"Body matches {rule.label} pattern '{pattern.pattern}'",
                )

    return EmailClassification(OTHER, 0.5, "Could not match any known email pattern")


def classify_emails(emails: List[EmailToClassify]) -> List[EmailClassification]:
    return [classify_email(email) for email in emails]


def get_email_type_description(message_type: str) -> str:
    return DESCRIPTIONS.get(message_type, DESCRIPTIONS[OTHER])


def get_email_type_icon(message_type: str) -> str:
    return ICONS.get(message_type, ICONS[OTHER])


def should_forward_email(message_type: str) -> bool:
    """Verification and reset emails need a human to click a link."""
    return message_type in (ACCOUNT_VERIFICATION, PASSWORD_RESET)


def email_from_mailgun_payload(payload: Dict[str, str]) -> EmailToClassify:
    return EmailToClassify(
        from_address=payload.get("from") or payload.get("sender") or "",
        to=payload.get("recipient") or "",
        subject=payload.get("subject") or "",
        html_body=payload.get("body-html") or "",
        text_body=payload.get("body-plain") or payload.get("stripped-text") or "",
    )
