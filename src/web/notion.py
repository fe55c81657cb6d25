"""
Notion helper endpoints used while configuring a source.

The Notion token comes from the ``notion_token`` query parameter, or from
the team's active source config when ``team_id`` is given instead.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Header, HTTPException, Query

from ..database.repositories import get_sourceconfig_repository, to_source_config
from ..integrations.notion import NotionAPIError, get_database_schema, list_users
from .auth import get_current_user, resolve_team_member

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/notion", tags=["notion"])

TOKEN_PREFIXES = ("secret_", "ntn_")


async def _resolve_token(notion_token: Optional[str], team_id: Optional[str],
                         x_user_id: Optional[str]) -> str:
    if notion_token:
        if not notion_token.startswith(TOKEN_PREFIXES):
            raise HTTPException(
                status_code=422,
                detail='Invalid Notion token format. Token must start with "secret_" or "ntn_"',
            )
        return notion_token

    if not team_id:
        raise HTTPException(status_code=422, detail="Missing required parameter: notion_token or team_id")

    ctx = await resolve_team_member(team_id, await get_current_user(x_user_id))
    for record in await get_sourceconfig_repository().get_all(ctx.team_id):
        if record.active and record.notion_token:
            return to_source_config(record).notion_token

    raise HTTPException(status_code=404, detail="No Notion token configured for this team")


def _notion_http_error(e: NotionAPIError, default: str) -> HTTPException:
    if e.status_code == 401 or e.code == "unauthorized":
        return HTTPException(status_code=401, detail="Invalid Notion token or insufficient permissions")
    if e.status_code == 404 or e.code == "object_not_found":
        return HTTPException(status_code=404, detail=e.message)
    if e.status_code == 429 or e.code == "rate_limited":
        return HTTPException(status_code=429, detail="Notion API rate limit exceeded. Please try again later.")
    return HTTPException(status_code=502, detail=e.message or default)


@router.get("/schema/{database_id}")
async def notion_schema(
    database_id: str,
    notion_token: Optional[str] = Query(None),
    team_id: Optional[str] = Query(None),
    x_user_id: Optional[str] = Header(None),
):
    """Properties of a Notion database, for building the field mapping."""
    token = await _resolve_token(notion_token, team_id, x_user_id)
    try:
        schema = await get_database_schema(database_id, token)
    except NotionAPIError as e:
        logger.error(f"Failed to fetch schema for database {database_id}: {e}")
        raise _notion_http_error(e, "Failed to fetch Notion database schema")

    logger.info(f"Fetched {len(schema['properties'])} properties for database {database_id}")
    return {"success": True, **schema}


@router.get("/users")
async def notion_users(
    notion_token: Optional[str] = Query(None),
    team_id: Optional[str] = Query(None),
    include_bots: bool = Query(False),
    x_user_id: Optional[str] = Header(None),
):
    """Workspace users, for mapping source users to Notion people."""
    token = await _resolve_token(notion_token, team_id, x_user_id)
    try:
        users = await list_users(token, include_bots=include_bots)
    except NotionAPIError as e:
        logger.error(f"Failed to list Notion users: {e}")
        raise _notion_http_error(e, "Failed to fetch Notion users")

    return {"success": True, "users": users, "total": len(users)}
