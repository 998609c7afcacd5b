"""
Team namespaces for cfgtree.

Teams keeps one isolated Configuration per team name. Teams share the
environment context (and optionally the encryption gateway) but never
share trees: a tree configured for one team is invisible to the others.

Example:
    >>> teams = Teams(context=EnvironmentContext("staging"))
    >>> _ = teams.team("frontend", lambda t: t.configure("settings", data={"api_endpoint": "/api/v1"}))
    >>> teams.frontend.settings.api_endpoint
    '/api/v1'
    >>> with teams.with_team("frontend") as frontend:
    ...     frontend.settings.api_endpoint
    '/api/v1'
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Callable, Dict, Iterator, List, Optional

from .configuration import Configuration
from .encryption import EncryptionConfig
from .environment import EnvironmentContext
from .errors import TeamNotFoundError

logger = logging.getLogger(__name__)

TeamBlock = Callable[[Configuration], Any]


class Teams:
    """Registry of team configurations."""

    def __init__(
        self,
        context: Optional[EnvironmentContext] = None,
        encryption: Optional[EncryptionConfig] = None,
    ) -> None:
        self._teams: Dict[str, Configuration] = {}
        self._context = context if context is not None else EnvironmentContext.from_env()
        self._encryption = encryption

    @property
    def context(self) -> EnvironmentContext:
        return self._context

    def team(self, name: str, block: Optional[TeamBlock] = None) -> Configuration:
        """Get or create the team ``name`` and run ``block`` on it."""
        key = str(name)
        configuration = self._teams.get(key)
        if configuration is None:
            configuration = Configuration(context=self._context, encryption=self._encryption)
            self._teams[key] = configuration
            logger.debug(f"Created team '{key}'")
        if block is not None:
            block(configuration)
        return configuration

    def names(self) -> List[str]:
        return list(self._teams)

    def has_team(self, name: str) -> bool:
        return str(name) in self._teams

    def get(self, name: str) -> Configuration:
        """Configuration of team ``name``.

        Raises:
            TeamNotFoundError: If the team does not exist
        """
        configuration = self._teams.get(str(name))
        if configuration is None:
            raise TeamNotFoundError(str(name))
        return configuration

    def remove_team(self, name: str) -> bool:
        """Remove a team. Returns True if it existed."""
        removed = self._teams.pop(str(name), None) is not None
        if removed:
            logger.info(f"Removed team '{name}'")
        return removed

    @contextmanager
    def with_team(self, name: str) -> Iterator[Configuration]:
        """Scope a block to one team's configuration.

        Raises:
            TeamNotFoundError: If the team does not exist
        """
        yield self.get(name)

    def __getitem__(self, name: str) -> Configuration:
        return self.get(name)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name in self._teams

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._teams))

    def __len__(self) -> int:
        return len(self._teams)

    def __getattr__(self, name: str) -> Configuration:
        if name.startswith("_"):
            raise AttributeError(name)
        teams = self.__dict__.get("_teams")
        if teams is None or name not in teams:
            raise TeamNotFoundError(name)
        return teams[name]

    def __repr__(self) -> str:
        return f"Teams({self.names()!r})"
