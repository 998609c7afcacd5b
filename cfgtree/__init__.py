"""
cfgtree - Hierarchical, typed application configuration.

This package provides:
- Setting: a tree of typed, lockable, optionally encrypted fields
- TypeChecker: validation of values against type specifiers
- SchemaDefinition: versioned schemas with validation and migrations
- Configuration / Teams: named trees per application or team
- RemoteLoader / CachedSource: async remote sources with caching

Example:
    >>> from cfgtree import Setting
    >>> settings = Setting(lambda s: s.config(username="admin"))
    >>> settings.configure("database", lambda db: (
    ...     db.config("host", "localhost", type="str", lock=True)
    ...       .config("port", 5432, type="int")
    ... ))
    Setting(fields=['host', 'port'])
    >>> settings.database.port
    5432
    >>> settings.to_dict()
    {'username': 'admin', 'database': {'host': 'localhost', 'port': 5432}}

Invariants:
    - A declaration either fully applies or leaves the tree unchanged
    - Locked fields never change once they hold a value
    - Encrypted fields are stored as ciphertext and read as plaintext

Version: 1.0.0
"""

__version__ = "1.0.0"

from .cache import (
    BackoffConfig,
    CacheAdapter,
    CacheConfig,
    CachedSource,
    MemoryAdapter,
    RedisAdapter,
    RefreshConfig,
)
from .config import LibraryConfig
from .configuration import Configuration
from .encryption import (
    AwsKmsKeyProvider,
    EncryptionConfig,
    EnvKeyProvider,
    FileKeyProvider,
    KeyProvider,
    create_key_provider,
)
from .environment import EnvironmentContext
from .errors import (
    ConfigError,
    EncryptionError,
    ImmutableFieldError,
    LoadDataError,
    NoSuchFieldError,
    SchemaMigrationError,
    SchemaValidationError,
    SettingTypeError,
    TeamNotFoundError,
    TypeCheckerError,
)
from .loader import load_json, load_yaml, load_yaml_file, parse_payload
from .observability import setup_logging
from .remote import RemoteLoader
from .schema import SchemaDefinition, SchemaRegistry
from .setting import UNSET, Setting
from .team import Teams
from .types import TypeChecker, TypeTag, describe_type, matches, register_type, unregister_type

__all__ = [
    # Version
    "__version__",
    # Tree
    "Setting",
    "UNSET",
    "Configuration",
    "Teams",
    "EnvironmentContext",
    # Types
    "TypeChecker",
    "TypeTag",
    "matches",
    "describe_type",
    "register_type",
    "unregister_type",
    # Schema
    "SchemaDefinition",
    "SchemaRegistry",
    # Encryption
    "EncryptionConfig",
    "KeyProvider",
    "EnvKeyProvider",
    "FileKeyProvider",
    "AwsKmsKeyProvider",
    "create_key_provider",
    # Loading
    "load_json",
    "load_yaml",
    "load_yaml_file",
    "parse_payload",
    "RemoteLoader",
    # Cache
    "CacheAdapter",
    "CacheConfig",
    "RefreshConfig",
    "BackoffConfig",
    "MemoryAdapter",
    "RedisAdapter",
    "CachedSource",
    # Library setup
    "LibraryConfig",
    "setup_logging",
    # Errors
    "ConfigError",
    "SettingTypeError",
    "ImmutableFieldError",
    "TypeCheckerError",
    "SchemaValidationError",
    "SchemaMigrationError",
    "EncryptionError",
    "NoSuchFieldError",
    "LoadDataError",
    "TeamNotFoundError",
]
