"""
Unit tests for team namespaces.

Tests cover:
- Team creation and lookup
- Isolation between teams
- Removal and scoped access
"""

import pytest

from cfgtree.configuration import Configuration
from cfgtree.environment import EnvironmentContext
from cfgtree.errors import NoSuchFieldError, TeamNotFoundError
from cfgtree.team import Teams


@pytest.fixture
def teams():
    """Teams registry with frontend and backend configured."""
    teams = Teams(context=EnvironmentContext("development"))
    teams.team("frontend", lambda t: t.configure("settings", lambda s: s.config(api_endpoint="/api/v1", cache_ttl=300)))
    teams.team("backend", lambda t: t.configure("settings", lambda s: s.config(database_pool=10)))
    return teams


class TestTeams:
    """Tests for Teams."""

    def test_team_access(self, teams):
        """Teams are reachable by attribute, index and get()."""
        assert teams.frontend.settings.api_endpoint == "/api/v1"
        assert teams["backend"].settings.database_pool == 10
        assert isinstance(teams.get("frontend"), Configuration)

    def test_names(self, teams):
        """names() lists teams in creation order."""
        assert teams.names() == ["frontend", "backend"]
        assert list(teams) == ["frontend", "backend"]
        assert len(teams) == 2

    def test_isolation(self, teams):
        """A team cannot see another team's fields."""
        with pytest.raises(NoSuchFieldError):
            teams.frontend.settings.database_pool
        with pytest.raises(NoSuchFieldError):
            teams.backend.settings.api_endpoint

    def test_team_is_get_or_create(self, teams):
        """team() on an existing name returns the same configuration."""
        again = teams.team("frontend", lambda t: t.configure("extra", data={"a": 1}))

        assert again is teams.frontend
        assert teams.frontend.names() == ["settings", "extra"]

    def test_shared_context(self, teams):
        """Teams share the registry's environment context."""
        assert teams.frontend.context is teams.context
        assert teams.frontend.settings.context is teams.context

    def test_unknown_team(self, teams):
        """Unknown teams raise TeamNotFoundError."""
        with pytest.raises(TeamNotFoundError, match="Team 'mobile' does not exist"):
            teams["mobile"]
        with pytest.raises(TeamNotFoundError):
            teams.mobile
        with pytest.raises(LookupError):
            teams.get("mobile")

    def test_has_team(self, teams):
        """has_team and in reflect membership."""
        assert teams.has_team("frontend")
        assert not teams.has_team("mobile")
        assert "backend" in teams

    def test_remove_team(self, teams):
        """remove_team reports whether the team existed."""
        assert teams.remove_team("frontend") is True
        assert teams.remove_team("frontend") is False
        assert teams.names() == ["backend"]

    def test_with_team(self, teams):
        """with_team yields the team's configuration."""
        with teams.with_team("frontend") as frontend:
            assert frontend.settings.cache_ttl == 300

    def test_with_unknown_team(self, teams):
        """with_team fails for unknown teams."""
        with pytest.raises(TeamNotFoundError):
            with teams.with_team("mobile"):
                pass

    def test_environment_per_team(self):
        """Team blocks see the shared environment."""
        teams = Teams(context=EnvironmentContext("production"))
        teams.team(
            "frontend",
            lambda t: t.configure(
                "settings",
                lambda s: s.config(debug=True).environment("production", lambda p: p.config(debug=False)),
            ),
        )

        assert teams.frontend.settings.debug is False
