"""
Library settings for cfgtree itself.

cfgtree's own knobs (logging, default key variable, cache and HTTP timing)
come from environment variables. This module provides typed, frozen
configuration classes with validation.

Invariants:
    - All settings have defaults suitable for local development
    - Secrets are never read here; only the *name* of the key variable is

How to change safely:
    - Add new settings with defaults that keep existing behaviour
    - Keep every variable prefixed with CFGTREE_
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field

from .cache import DEFAULT_REFRESH_INTERVAL, DEFAULT_TTL, CacheConfig, RefreshConfig
from .encryption import DEFAULT_KEY_ENV_VAR, EncryptionConfig, EnvKeyProvider
from .remote import DEFAULT_HTTP_TIMEOUT

logger = logging.getLogger(__name__)

LOG_FORMATS = ("json", "text")
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class ObservabilityConfig:
    """Logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format ("json" or "text")
    """

    log_level: str = "INFO"
    log_format: str = "text"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("CFGTREE_LOG_LEVEL", "INFO").upper(),
            log_format=os.getenv("CFGTREE_LOG_FORMAT", "text").lower(),
        )


@dataclass(frozen=True)
class EncryptionSettings:
    """Encryption defaults.

    Attributes:
        key_env_var: Environment variable holding the encryption key
        key_size: AES key size in bits
    """

    key_env_var: str = DEFAULT_KEY_ENV_VAR
    key_size: int = 256

    @classmethod
    def from_env(cls) -> EncryptionSettings:
        """Load configuration from environment variables."""
        return cls(
            key_env_var=os.getenv("CFGTREE_ENCRYPTION_KEY_VAR", DEFAULT_KEY_ENV_VAR),
            key_size=int(os.getenv("CFGTREE_ENCRYPTION_KEY_SIZE", "256")),
        )

    def build(self) -> EncryptionConfig:
        """EncryptionConfig reading its key from ``key_env_var``."""
        return EncryptionConfig(key_size=self.key_size, provider=EnvKeyProvider(self.key_env_var))


@dataclass(frozen=True)
class RemoteSettings:
    """Remote loading and cache defaults.

    Attributes:
        http_timeout: HTTP request timeout in seconds
        cache_ttl: Default cache TTL in seconds
        refresh_interval: Seconds between background refreshes
        refresh_jitter: Maximum random delay added to each refresh
    """

    http_timeout: float = DEFAULT_HTTP_TIMEOUT
    cache_ttl: float = DEFAULT_TTL
    refresh_interval: float = DEFAULT_REFRESH_INTERVAL
    refresh_jitter: float = 0.0

    @classmethod
    def from_env(cls) -> RemoteSettings:
        """Load configuration from environment variables."""
        return cls(
            http_timeout=float(os.getenv("CFGTREE_HTTP_TIMEOUT", str(DEFAULT_HTTP_TIMEOUT))),
            cache_ttl=float(os.getenv("CFGTREE_CACHE_TTL", str(DEFAULT_TTL))),
            refresh_interval=float(os.getenv("CFGTREE_REFRESH_INTERVAL", str(DEFAULT_REFRESH_INTERVAL))),
            refresh_jitter=float(os.getenv("CFGTREE_REFRESH_JITTER", "0")),
        )

    def build_cache(self, adapter: str = "memory", **options: object) -> CacheConfig:
        """CacheConfig with these timings."""
        return CacheConfig(
            adapter=adapter,
            ttl=self.cache_ttl,
            refresh=RefreshConfig(interval=self.refresh_interval, jitter=self.refresh_jitter),
            options=dict(options),
        )


@dataclass(frozen=True)
class LibraryConfig:
    """Complete cfgtree library configuration."""

    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)
    encryption: EncryptionSettings = field(default_factory=EncryptionSettings)
    remote: RemoteSettings = field(default_factory=RemoteSettings)

    @classmethod
    def from_env(cls) -> LibraryConfig:
        """Load all configuration from environment variables."""
        return cls(
            observability=ObservabilityConfig.from_env(),
            encryption=EncryptionSettings.from_env(),
            remote=RemoteSettings.from_env(),
        )

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.observability.log_level not in LOG_LEVELS:
            raise ValueError(
                f"Invalid CFGTREE_LOG_LEVEL '{self.observability.log_level}'. "
                f"Must be one of: {', '.join(LOG_LEVELS)}"
            )
        if self.observability.log_format not in LOG_FORMATS:
            raise ValueError(
                f"Invalid CFGTREE_LOG_FORMAT '{self.observability.log_format}'. Must be one of: json, text"
            )
        if self.encryption.key_size not in (128, 192, 256):
            raise ValueError("CFGTREE_ENCRYPTION_KEY_SIZE must be 128, 192 or 256")
        if not self.encryption.key_env_var:
            raise ValueError("CFGTREE_ENCRYPTION_KEY_VAR must not be empty")
        if self.remote.http_timeout <= 0:
            raise ValueError("CFGTREE_HTTP_TIMEOUT must be positive")
        if self.remote.cache_ttl <= 0:
            raise ValueError("CFGTREE_CACHE_TTL must be positive")
        if self.remote.refresh_interval <= 0:
            raise ValueError("CFGTREE_REFRESH_INTERVAL must be positive")
        if self.remote.refresh_jitter < 0:
            raise ValueError("CFGTREE_REFRESH_JITTER must not be negative")

    def log_config(self) -> None:
        """Log configuration (key material is never read here)."""
        logger.info(
            "cfgtree configuration loaded",
            extra={
                "log_level": self.observability.log_level,
                "log_format": self.observability.log_format,
                "key_env_var": self.encryption.key_env_var,
                "http_timeout": self.remote.http_timeout,
                "cache_ttl": self.remote.cache_ttl,
                "refresh_interval": self.remote.refresh_interval,
            },
        )
