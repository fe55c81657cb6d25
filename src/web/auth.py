"""
Caller identity and team authorization for the HTTP API.

The caller is identified by the ``X-User-Id`` header set by the
authenticating proxy in front of the service. A caller may only touch a
team's collections when they are a member of that team.
"""

import logging
from dataclasses import dataclass
from typing import Optional

from fastapi import Header, HTTPException, Path

from ..database.repositories import get_team_repository

logger = logging.getLogger(__name__)


@dataclass
class TeamContext:
    team_id: str
    user_id: str
    role: str = "member"


async def get_current_user(x_user_id: Optional[str] = Header(None)) -> str:
    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Authentication required")
    return x_user_id.strip()


async def resolve_team_member(team_id: str, user_id: str) -> TeamContext:
    """Team (by id or slug) the user belongs to. 404 unknown team, 403 not a member."""
    teams = get_team_repository()

    team = await teams.get_team(team_id)
    if not team:
        raise HTTPException(status_code=404, detail="Team not found")

    membership = await teams.get_membership(team.id, user_id)
    if not membership:
        logger.warning(f"User {user_id} denied access to team {team.id}")
        raise HTTPException(status_code=403, detail="You are not a member of this team")

    return TeamContext(team_id=team.id, user_id=user_id, role=membership.role or "member")


async def require_team_member(
    team_id: str = Path(...),
    x_user_id: Optional[str] = Header(None),
) -> TeamContext:
    """FastAPI dependency for routes under /api/teams/{team_id}/..."""
    user_id = await get_current_user(x_user_id)
    return await resolve_team_member(team_id, user_id)
