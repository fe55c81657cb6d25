"""
Pytest configuration and shared fixtures.
"""

import pytest
from unittest.mock import AsyncMock, Mock, patch

# Configure pytest-asyncio
pytest_plugins = ('pytest_asyncio',)


@pytest.fixture
def mock_database():
    """Mock database with session context manager."""
    db = Mock()
    session = AsyncMock()

    session.__aenter__ = AsyncMock(return_value=session)
    session.__aexit__ = AsyncMock(return_value=None)

    session.execute = AsyncMock()
    session.flush = AsyncMock()
    session.refresh = AsyncMock()
    session.commit = AsyncMock()
    session.add = Mock()
    session.delete = AsyncMock()

    db.session = Mock(return_value=session)

    return db, session


@pytest.fixture
def sample_slack_event():
    """Slack app_mention event callback."""
    return {
        "type": "event_callback",
        "team_id": "T123",
        "event_id": "Ev1",
        "event": {
            "type": "app_mention",
            "user": "U1",
            "text": "<@UBOT> please turn this into a task",
            "ts": "1700000100.000200",
            "thread_ts": "1700000000.000100",
            "channel": "C1",
        },
    }


@pytest.fixture(autouse=True)
def reset_rate_limits():
    """Each test starts with empty rate limit windows."""
    from src.services.rate_limiter import get_rate_limiter
    get_rate_limiter().reset()
    yield
    get_rate_limiter().reset()


@pytest.fixture
def team_member():
    """Patch team lookups so user-1 is an admin of team-1."""
    teams = Mock()
    teams.get_team = AsyncMock(side_effect=lambda team_id: Mock(id="team-1") if team_id in ("team-1", "acme") else None)
    teams.get_membership = AsyncMock(
        side_effect=lambda team_id, user_id: Mock(role="admin") if user_id == "user-1" else None
    )
    with patch('src.web.auth.get_team_repository', return_value=teams):
        yield teams
