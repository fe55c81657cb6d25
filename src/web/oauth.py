"""
Slack OAuth install flow.

/install issues a single-use state for the team and redirects to Slack;
/callback exchanges the code for a bot token and stores it on the team's
Slack source config (one config per Slack workspace).
"""

import html
import logging
from typing import Optional
from urllib.parse import urlencode

from fastapi import APIRouter, HTTPException, Query
from fastapi.responses import HTMLResponse, RedirectResponse

from config import settings
from ..database.repositories import get_sourceconfig_repository, get_team_repository
from ..services.oauth_state import get_oauth_state_store
from ..utils.constants import SYSTEM_USER_ID
from ..utils.http import request_json

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/oauth", tags=["oauth"])

SLACK_AUTHORIZE_URL = "https://slack.com/oauth/v2/authorize"

SLACK_SCOPES = [
    "channels:history",
    "channels:read",
    "chat:write",
    "reactions:write",
    "app_mentions:read",
    "im:history",
    "im:read",
    "im:write",
    "mpim:history",
    "mpim:read",
    "mpim:write",
]


def _redirect_uri() -> str:
    return f"{settings.base_url.rstrip('/')}/api/oauth/slack/callback"


@router.get("/slack/install")
async def slack_install(team_id: Optional[str] = Query(None)):
    """Start the Slack install for a team."""
    if not team_id:
        raise HTTPException(status_code=400, detail="Missing team_id parameter")

    if not settings.slack_client_id:
        raise HTTPException(status_code=500, detail="Slack OAuth not configured: missing SLACK_CLIENT_ID")

    team = await get_team_repository().get_team(team_id)
    if not team:
        raise HTTPException(status_code=404, detail="Team not found")

    state = get_oauth_state_store().create(team.id)
    query = urlencode({
        "client_id": settings.slack_client_id,
        "scope": ",".join(SLACK_SCOPES),
        "redirect_uri": _redirect_uri(),
        "state": state,
    })

    logger.info(f"Starting Slack OAuth for team {team.id}")
    return RedirectResponse(url=f"{SLACK_AUTHORIZE_URL}?{query}", status_code=302)


@router.get("/slack/callback")
async def slack_callback(
    code: Optional[str] = None,
    state: Optional[str] = None,
    error: Optional[str] = None,
):
    """Handle Slack's redirect after the user approved (or denied) the install."""
    if error:
        logger.warning(f"Slack authorization denied: {error}")
        raise HTTPException(status_code=403, detail=f"Slack authorization denied: {error}")

    if not code:
        raise HTTPException(status_code=400, detail="Missing authorization code")
    if not state:
        raise HTTPException(status_code=400, detail="Missing state parameter")

    entry = get_oauth_state_store().consume(state)
    if not entry:
        raise HTTPException(status_code=403, detail="Invalid or expired authorization request")
    team_id = entry.team_id

    if not settings.slack_client_id or not settings.slack_client_secret:
        raise HTTPException(status_code=500, detail="Slack OAuth not configured: missing client credentials")

    try:
        status, token_data = await request_json(
            "POST",
            f"{settings.slack_api_url}/oauth.v2.access",
            data={
                "client_id": settings.slack_client_id,
                "client_secret": settings.slack_client_secret,
                "code": code,
                "redirect_uri": _redirect_uri(),
            },
        )
    except Exception as e:
        logger.error(f"Slack token exchange request failed: {e}")
        raise HTTPException(status_code=502, detail="Failed to exchange authorization code")

    if status >= 400:
        logger.error(f"Slack token exchange failed: HTTP {status}")
        raise HTTPException(status_code=502, detail="Failed to exchange authorization code")

    if not isinstance(token_data, dict) or not token_data.get("ok") or not token_data.get("access_token"):
        slack_error = token_data.get("error") if isinstance(token_data, dict) else None
        logger.error(f"Slack OAuth error: {slack_error}")
        raise HTTPException(status_code=502, detail=f"Slack OAuth error: {slack_error or 'Unknown error'}")

    slack_team = token_data.get("team") or {}
    source_metadata = {
        "slackTeamId": slack_team.get("id"),
        "slackTeamName": slack_team.get("name"),
        "botUserId": token_data.get("bot_user_id"),
        "scopes": token_data.get("scope"),
    }

    repo = get_sourceconfig_repository()
    existing = await repo.find_by_metadata("slack", "slackTeamId", slack_team.get("id"), active_only=False)
    if existing and existing.team_id == team_id:
        logger.info(f"Updating Slack token on config {existing.id}")
        await repo.update_system(existing.id, {
            "api_token": token_data["access_token"],
            "source_metadata": {**(existing.source_metadata or {}), **source_metadata},
        })
    else:
        logger.info(f"Creating Slack config for workspace {slack_team.get('name')} on team {team_id}")
        # Inactive until the Notion side is configured
        await repo.create({
            "team_id": team_id,
            "owner": SYSTEM_USER_ID,
            "source_type": "slack",
            "name": slack_team.get("name") or "Slack Workspace",
            "api_token": token_data["access_token"],
            "source_metadata": source_metadata,
            "ai_enabled": False,
            "auto_sync": False,
            "post_confirmation": True,
            "active": False,
            "onboarding_complete": False,
        })

    team_name = html.escape(slack_team.get("name") or "your workspace")
    return HTMLResponse(content=f"""
    <!DOCTYPE html>
    <html>
    <head><title>Slack Connected</title>
    <style>
        body {{ font-family: sans-serif; background: #0a0a0a; color: #fff; display: flex; align-items: center; justify-content: center; height: 100vh; margin: 0; }}
        .success {{ text-align: center; }}
        .icon {{ color: #4ade80; font-size: 48px; margin-bottom: 16px; }}
    </style>
    </head>
    <body>
        <div class="success">
            <div class="icon">&#10003;</div>
            <h2>Slack Connected!</h2>
            <p style="color: #888;">{team_name}</p>
            <p>Finish setting up Notion in the dashboard. You can close this window.</p>
        </div>
    </body>
    </html>
    """)
