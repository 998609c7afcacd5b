"""
Environment context for cfgtree.

The active environment (development, staging, production, ...) is carried
by an explicit EnvironmentContext shared by a configuration tree instead of
a process-wide variable. Declarations such as
``node.environment("production", block)`` consult the node's context.

Invariants:
    - Environment names are normalised to lower-case strings
    - use() restores the previous environment on every exit path

Example:
    >>> ctx = EnvironmentContext("development")
    >>> with ctx.use("staging"):
    ...     ctx.staging
    True
    >>> ctx.environment
    'development'
"""

from __future__ import annotations

import logging
import os
from contextlib import contextmanager
from typing import Iterator, Optional

logger = logging.getLogger(__name__)

DEFAULT_ENVIRONMENT = "development"

# Checked in order; the first non-empty one wins
ENVIRONMENT_VARIABLES = ("CFGTREE_ENV", "APP_ENV", "ENV")


def normalize_environment(name: object) -> str:
    return str(name).strip().lower()


class EnvironmentContext:
    """Holds the active environment name for a configuration tree."""

    def __init__(self, environment: Optional[str] = None) -> None:
        self._environment = normalize_environment(environment or DEFAULT_ENVIRONMENT)

    @classmethod
    def from_env(cls) -> EnvironmentContext:
        """Detect the environment from CFGTREE_ENV, APP_ENV or ENV."""
        for variable in ENVIRONMENT_VARIABLES:
            value = os.getenv(variable)
            if value:
                return cls(value)
        return cls(DEFAULT_ENVIRONMENT)

    @property
    def environment(self) -> str:
        return self._environment

    @environment.setter
    def environment(self, value: str) -> None:
        self._environment = normalize_environment(value)

    @contextmanager
    def use(self, environment: str) -> Iterator[EnvironmentContext]:
        """Temporarily switch the environment.

        Example:
            >>> with ctx.use("production"):
            ...     build_settings(ctx)
        """
        previous = self._environment
        self._environment = normalize_environment(environment)
        logger.debug(f"Switched environment {previous} -> {self._environment}")
        try:
            yield self
        finally:
            self._environment = previous

    def is_environment(self, environment: str) -> bool:
        return self._environment == normalize_environment(environment)

    @property
    def development(self) -> bool:
        return self.is_environment("development")

    @property
    def test(self) -> bool:
        return self.is_environment("test")

    @property
    def staging(self) -> bool:
        return self.is_environment("staging")

    @property
    def production(self) -> bool:
        return self.is_environment("production")

    def __repr__(self) -> str:
        return f"EnvironmentContext({self._environment!r})"
