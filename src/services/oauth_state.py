"""
Short-lived, single-use OAuth state tokens.

A state is issued when a user starts the Slack install flow and consumed
by the callback. States live in memory for ``oauth_state_ttl_seconds``.
"""

import logging
import secrets
import time
from dataclasses import dataclass, field
from typing import Dict, Any, Optional

from config import settings

logger = logging.getLogger(__name__)


@dataclass
class OAuthState:
    team_id: str
    created_at: float
    expires_at: float
    data: Dict[str, Any] = field(default_factory=dict)


class OAuthStateStore:
    """In-memory OAuth state store."""

    def __init__(self, ttl_seconds: Optional[int] = None, clock=time.time):
        self.ttl_seconds = ttl_seconds or settings.oauth_state_ttl_seconds
        self._states: Dict[str, OAuthState] = {}
        self._clock = clock

    def create(self, team_id: str, **data) -> str:
        """Issue a 64 character hex state for ``team_id``."""
        state = secrets.token_hex(32)
        now = self._clock()
        self._states[state] = OAuthState(
            team_id=team_id,
            created_at=now,
            expires_at=now + self.ttl_seconds,
            data=data,
        )
        logger.debug(f"Issued OAuth state for team {team_id}")
        return state

    def consume(self, state: str) -> Optional[OAuthState]:
        """Return and forget the state. Unknown or expired states return None."""
        entry = self._states.pop(state, None) if state else None
        if entry is None:
            logger.warning("Unknown OAuth state")
            return None
        if entry.expires_at <= self._clock():
            logger.warning(f"Expired OAuth state for team {entry.team_id}")
            return None
        return entry

    def cleanup_expired(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._states.items() if entry.expires_at <= now]
        for key in expired:
            del self._states[key]
        if expired:
            logger.debug(f"Removed {len(expired)} expired OAuth states")
        return len(expired)

    def __len__(self) -> int:
        return len(self._states)


_oauth_state_store: Optional[OAuthStateStore] = None


def get_oauth_state_store() -> OAuthStateStore:
    """Get the OAuth state store singleton."""
    global _oauth_state_store
    if _oauth_state_store is None:
        _oauth_state_store = OAuthStateStore()
    return _oauth_state_store
