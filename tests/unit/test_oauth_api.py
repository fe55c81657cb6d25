"""
Tests for the Slack OAuth install flow (web/oauth.py).
"""

import pytest
from urllib.parse import parse_qs, urlparse
from unittest.mock import AsyncMock, Mock, patch
from fastapi.testclient import TestClient

from src.main import app
from src.services.oauth_state import get_oauth_state_store
from src.web import oauth

TOKEN_RESPONSE = {
    "ok": True,
    "access_token": "xoxb-new",
    "bot_user_id": "UBOT",
    "scope": "chat:write,app_mentions:read",
    "team": {"id": "T123", "name": "Acme"},
}


@pytest.fixture
def client():
    return TestClient(app, follow_redirects=False)


@pytest.fixture
def slack_app():
    with patch.object(oauth.settings, "slack_client_id", "client-1"), \
         patch.object(oauth.settings, "slack_client_secret", "secret-1"), \
         patch.object(oauth.settings, "base_url", "https://discubot.example.com/"):
        yield


@pytest.fixture
def teams():
    repo = Mock()
    repo.get_team = AsyncMock(side_effect=lambda team_id: Mock(id="team-1") if team_id == "team-1" else None)
    with patch('src.web.oauth.get_team_repository', return_value=repo):
        yield repo


@pytest.fixture
def configs():
    repo = Mock()
    repo.find_by_metadata = AsyncMock(return_value=None)
    repo.create = AsyncMock()
    repo.update_system = AsyncMock()
    with patch('src.web.oauth.get_sourceconfig_repository', return_value=repo):
        yield repo


class TestInstall:

    def test_redirects_to_slack(self, client, slack_app, teams):
        response = client.get("/api/oauth/slack/install", params={"team_id": "team-1"})

        assert response.status_code == 302
        location = urlparse(response.headers["location"])
        query = parse_qs(location.query)
        assert location.netloc == "slack.com"
        assert query["client_id"] == ["client-1"]
        assert query["redirect_uri"] == ["https://discubot.example.com/api/oauth/slack/callback"]
        assert "app_mentions:read" in query["scope"][0].split(",")
        assert get_oauth_state_store().consume(query["state"][0]).team_id == "team-1"

    def test_missing_team_id(self, client, slack_app):
        assert client.get("/api/oauth/slack/install").status_code == 400

    def test_unknown_team(self, client, slack_app, teams):
        assert client.get("/api/oauth/slack/install", params={"team_id": "nope"}).status_code == 404

    def test_not_configured(self, client, teams):
        with patch.object(oauth.settings, "slack_client_id", ""):
            response = client.get("/api/oauth/slack/install", params={"team_id": "team-1"})
        assert response.status_code == 500


class TestCallback:

    def test_denied(self, client):
        response = client.get("/api/oauth/slack/callback", params={"error": "access_denied"})
        assert response.status_code == 403

    def test_invalid_state(self, client, slack_app):
        response = client.get("/api/oauth/slack/callback", params={"code": "c", "state": "forged"})
        assert response.status_code == 403

    def test_creates_inactive_config(self, client, slack_app, configs):
        state = get_oauth_state_store().create("team-1")
        with patch('src.web.oauth.request_json', new=AsyncMock(return_value=(200, TOKEN_RESPONSE))) as mock_request:
            response = client.get("/api/oauth/slack/callback", params={"code": "c", "state": state})

        assert response.status_code == 200
        assert "Acme" in response.text
        assert mock_request.await_args.kwargs["data"]["code"] == "c"

        created = configs.create.await_args.args[0]
        assert created["team_id"] == "team-1"
        assert created["api_token"] == "xoxb-new"
        assert created["active"] is False
        assert created["source_metadata"]["slackTeamId"] == "T123"
        assert created["source_metadata"]["botUserId"] == "UBOT"

    def test_updates_existing_config(self, client, slack_app, configs):
        configs.find_by_metadata.return_value = Mock(id="cfg-1", team_id="team-1", source_metadata={"triggerKeyword": "x"})
        state = get_oauth_state_store().create("team-1")
        with patch('src.web.oauth.request_json', new=AsyncMock(return_value=(200, TOKEN_RESPONSE))):
            client.get("/api/oauth/slack/callback", params={"code": "c", "state": state})

        record_id, updates = configs.update_system.await_args.args
        assert record_id == "cfg-1"
        assert updates["api_token"] == "xoxb-new"
        assert updates["source_metadata"]["triggerKeyword"] == "x"
        configs.create.assert_not_awaited()

    def test_state_is_single_use(self, client, slack_app, configs):
        state = get_oauth_state_store().create("team-1")
        with patch('src.web.oauth.request_json', new=AsyncMock(return_value=(200, TOKEN_RESPONSE))):
            first = client.get("/api/oauth/slack/callback", params={"code": "c", "state": state})
            second = client.get("/api/oauth/slack/callback", params={"code": "c", "state": state})

        assert first.status_code == 200
        assert second.status_code == 403

    def test_slack_error(self, client, slack_app, configs):
        state = get_oauth_state_store().create("team-1")
        with patch('src.web.oauth.request_json', new=AsyncMock(return_value=(200, {"ok": False, "error": "invalid_code"}))):
            response = client.get("/api/oauth/slack/callback", params={"code": "c", "state": state})

        assert response.status_code == 502
        assert "invalid_code" in response.json()["detail"]
        configs.create.assert_not_awaited()
