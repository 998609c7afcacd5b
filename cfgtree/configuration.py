"""
Configuration: a named collection of root Setting trees.

A Configuration owns the shared collaborators of its trees (environment
context, encryption gateway, optional cache) and builds each named tree
from a block, a mapping, JSON text, a YAML file or a remote source.

Invariants:
    - A failed configure() leaves any previously configured tree in place
    - At most one data source is given per configure() call
    - Trees share this configuration's context and encryption gateway

How to change safely:
    - New local sources go through _load_source(); new remote sources
      through configure_remote() and RemoteLoader

Example:
    >>> app = Configuration(context=EnvironmentContext("production"))
    >>> app.configure("database", data={"host": "db.internal", "port": 5432})
    Setting(fields=['host', 'port'])
    >>> app.database.port
    5432
    >>> app.configure("features", lambda s: s.config(dark_mode=True))
    Setting(fields=['dark_mode'])
    >>> app.names()
    ['database', 'features']
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, Iterator, List, Mapping, Optional, Union

from .cache import CacheConfig, CachedSource
from .encryption import EncryptionConfig
from .environment import EnvironmentContext
from .errors import LoadDataError, NoSuchFieldError
from .loader import load_json, load_yaml_file
from .remote import RemoteLoader
from .schema import DEFAULT_VERSION, MigrationFn, SchemaDefinition
from .setting import Block, Setting

logger = logging.getLogger(__name__)

SchemaArg = Union[Mapping[str, Any], SchemaDefinition, None]


class Configuration:
    """Named root settings plus their shared collaborators.

    Attributes:
        context: EnvironmentContext shared by every tree
        encryption: EncryptionConfig shared by every tree (or None)
        cache: CacheConfig used by configure_remote() (or None)
    """

    def __init__(
        self,
        context: Optional[EnvironmentContext] = None,
        encryption: Optional[EncryptionConfig] = None,
        cache: Optional[CacheConfig] = None,
    ) -> None:
        self._settings: Dict[str, Setting] = {}
        self._context = context if context is not None else EnvironmentContext.from_env()
        self._encryption = encryption
        self._cache = cache
        self._schema: Optional[SchemaDefinition] = None
        self._sources: Dict[str, CachedSource] = {}

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    @property
    def context(self) -> EnvironmentContext:
        return self._context

    @property
    def encryption(self) -> Optional[EncryptionConfig]:
        return self._encryption

    def use_encryption(self, encryption: Optional[EncryptionConfig]) -> Configuration:
        """Install an encryption gateway here and on every existing tree."""
        self._encryption = encryption
        for setting in self._settings.values():
            setting.use_encryption(encryption)
        return self

    @property
    def cache(self) -> Optional[CacheConfig]:
        return self._cache

    def use_cache(self, cache: Optional[CacheConfig]) -> Configuration:
        self._cache = cache
        return self

    def environment(self, environment: str, block: Callable[[Configuration], Any]) -> Configuration:
        """Run ``block(self)`` only in the given environment."""
        if self._context.is_environment(environment):
            block(self)
        return self

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def schema(
        self,
        version: str = DEFAULT_VERSION,
        block: Optional[Callable[[SchemaDefinition], Any]] = None,
    ) -> SchemaDefinition:
        """Bind a new SchemaDefinition to this configuration.

        Example:
            >>> app.schema("2.0", lambda s: s.required("database_url", type="string"))
        """
        definition = SchemaDefinition(version)
        if block is not None:
            block(definition)
        self._schema = definition
        logger.debug(f"Bound schema version {version}")
        return definition

    @property
    def current_schema(self) -> Optional[SchemaDefinition]:
        return self._schema

    @property
    def schema_version(self) -> str:
        return self._schema.version if self._schema is not None else DEFAULT_VERSION

    def migration(self, from_version: Any, to_version: Any = None) -> Callable[[MigrationFn], MigrationFn]:
        """Decorator registering a migration on the bound schema.

        A default schema is bound first if none exists.
        """
        definition = self._schema or self.schema(DEFAULT_VERSION)
        return definition.migration(from_version, to_version)

    # ------------------------------------------------------------------
    # Trees
    # ------------------------------------------------------------------

    def configure(
        self,
        name: str,
        block: Optional[Block] = None,
        *,
        data: Optional[Mapping[str, Any]] = None,
        json: Optional[str] = None,
        yaml: Optional[str] = None,
        schema: SchemaArg = None,
        lock_schema: Optional[Mapping[str, Any]] = None,
        encrypted_fields: Optional[Mapping[str, Any]] = None,
    ) -> Setting:
        """Build the tree ``name`` and register it.

        Args:
            name: Tree name (also the attribute name on this object)
            block: Callback receiving the new Setting, run after data loading
            data: Mapping to load
            json: JSON text to load
            yaml: Path of a YAML file to load
            schema: Type map or SchemaDefinition applied to loaded data
            lock_schema: Lock flags for loaded data
            encrypted_fields: Encrypted flags for loaded data

        Returns:
            The new Setting

        Raises:
            LoadDataError: If more than one source is given or a source
                cannot be parsed
        """
        payload = self._load_source(data=data, json=json, yaml=yaml)

        setting = Setting(encryption=self._encryption, context=self._context)
        if payload is not None:
            setting.load_from_dict(
                payload,
                schema=schema,
                lock_schema=lock_schema,
                encrypted_fields=encrypted_fields,
            )
        if block is not None:
            block(setting)

        key = str(name)
        self._settings[key] = setting
        logger.info(f"Configured '{key}'", extra={"fields": len(setting)})
        return setting

    async def configure_remote(
        self,
        name: str,
        *,
        http: Optional[Mapping[str, Any]] = None,
        s3: Optional[Mapping[str, Any]] = None,
        redis: Optional[Mapping[str, Any]] = None,
        schema: SchemaArg = None,
        lock_schema: Optional[Mapping[str, Any]] = None,
        encrypted_fields: Optional[Mapping[str, Any]] = None,
        block: Optional[Block] = None,
    ) -> Setting:
        """Fetch a remote payload and build the tree ``name`` from it.

        Each source mapping holds the keyword arguments of the matching
        RemoteLoader method. With a cache installed the payload is served
        through a CachedSource keyed by ``name``; ``source(name).start()``
        then keeps the tree refreshed.

        Example:
            >>> await app.configure_remote("flags", redis={"key": "flags", "host": "cache"})

        Raises:
            LoadDataError: If not exactly one source is given or loading fails
        """
        fetch = self._remote_fetch(http=http, s3=s3, redis=redis)

        def rebuild(payload: Mapping[str, Any]) -> Setting:
            return self.configure(
                name,
                block,
                data=payload,
                schema=schema,
                lock_schema=lock_schema,
                encrypted_fields=encrypted_fields,
            )

        if self._cache is None:
            return rebuild(await fetch())

        source = CachedSource(fetch, self._cache, key=f"cfgtree:{name}")
        setting = rebuild(await source.get())
        # Later refreshes (start() or stale revalidation) rebuild the tree
        source.on_refresh = rebuild
        self._sources[str(name)] = source
        return setting

    def source(self, name: str) -> Optional[CachedSource]:
        """CachedSource backing a remotely configured tree, if cached."""
        return self._sources.get(str(name))

    @staticmethod
    def _load_source(
        *,
        data: Optional[Mapping[str, Any]],
        json: Optional[str],
        yaml: Optional[str],
    ) -> Optional[Mapping[str, Any]]:
        given = [label for label, value in (("data", data), ("json", json), ("yaml", yaml)) if value is not None]
        if len(given) > 1:
            raise LoadDataError(f"Invalid load source type: only one of {', '.join(given)} may be given")

        if data is not None:
            if not isinstance(data, Mapping):
                raise LoadDataError("Invalid load source type")
            return data
        if json is not None:
            return load_json(json)
        if yaml is not None:
            return load_yaml_file(yaml)
        return None

    @staticmethod
    def _remote_fetch(
        *,
        http: Optional[Mapping[str, Any]],
        s3: Optional[Mapping[str, Any]],
        redis: Optional[Mapping[str, Any]],
    ) -> Callable[[], Any]:
        given = [(label, options) for label, options in (("http", http), ("s3", s3), ("redis", redis)) if options]
        if len(given) != 1:
            raise LoadDataError("Invalid load source type: give exactly one of http, s3, redis")

        label, options = given[0]
        loaders = {
            "http": RemoteLoader.from_http,
            "s3": RemoteLoader.from_s3,
            "redis": RemoteLoader.from_redis,
        }
        loader = loaders[label]

        async def fetch() -> Dict[str, Any]:
            return await loader(**options)

        return fetch

    # ------------------------------------------------------------------
    # Access
    # ------------------------------------------------------------------

    def names(self) -> List[str]:
        """Configured tree names in configuration order."""
        return list(self._settings)

    def get(self, name: str) -> Setting:
        """The tree ``name``.

        Raises:
            NoSuchFieldError: If it was never configured
        """
        key = str(name)
        if key not in self._settings:
            raise NoSuchFieldError(key, type(self).__name__)
        return self._settings[key]

    def remove(self, name: str) -> bool:
        """Forget the tree ``name``. Returns True if it existed."""
        self._sources.pop(str(name), None)
        return self._settings.pop(str(name), None) is not None

    def to_dict(self) -> Dict[str, Any]:
        """Every tree as a plain (decrypted) dict."""
        return {name: setting.to_dict() for name, setting in self._settings.items()}

    def __getitem__(self, name: str) -> Setting:
        return self.get(name)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and name in self._settings

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._settings))

    def __len__(self) -> int:
        return len(self._settings)

    def __getattr__(self, name: str) -> Setting:
        if name.startswith("_"):
            raise AttributeError(name)
        settings = self.__dict__.get("_settings")
        if settings is None or name not in settings:
            raise NoSuchFieldError(name, type(self).__name__)
        return settings[name]

    def __dir__(self) -> List[str]:
        return sorted(set(super().__dir__()) | set(self._settings))

    def __repr__(self) -> str:
        return f"Configuration(names={self.names()!r}, environment={self._context.environment!r})"
