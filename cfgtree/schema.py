"""
Versioned schema definitions for cfgtree.

A SchemaDefinition declares the shape of a configuration at a given
version and knows how to move data between versions:
- required / optional / deprecated field declarations, each with the
  version it applies from
- validate(): presence, removal and type checks for a data mapping
- migrate(): apply a registered transform between two exact versions

The SchemaRegistry keeps one definition per declaring owner (a class, a
module name, a team) and creates it lazily.

Invariants:
    - Migration keys are always "<from>-><to>" built from two non-empty versions
    - migrate() never mutates its input and never chains migrations
    - validate() runs presence, deprecation and type passes in that order,
      each over the full field set
    - Optional defaults are materialised fresh for every call

How to change safely:
    - Add fields with a ``since`` version instead of editing older ones
    - Deprecate before removing: deprecated(name, since=..., remove_in=...)
    - Register a migration for every version step data can arrive from

Example:
    >>> schema = SchemaDefinition("2.0")
    >>> _ = schema.required("database_url", type="string", since="1.0")
    >>> _ = schema.optional("pool_size", type="int", default=5)
    >>> @schema.migration("1.0", "2.0")
    ... def add_replicas(data):
    ...     data["replica_urls"] = [data.pop("backup_url")]
    >>> schema.migrate({"database_url": "x", "backup_url": "y"}, "1.0", "2.0")
    {'database_url': 'x', 'replica_urls': ['y']}
"""

from __future__ import annotations

import copy
import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Dict, Hashable, Iterator, Mapping, Optional, Tuple

from .errors import SchemaMigrationError, SchemaValidationError
from .types import TypeChecker, TypeSpec, describe_type

logger = logging.getLogger(__name__)

DEFAULT_VERSION = "1.0"

MigrationFn = Callable[[Dict[str, Any]], Optional[Mapping[str, Any]]]


def version_key(version: str) -> Tuple[Tuple[int, Any], ...]:
    """Sort key for dotted version strings.

    Numeric segments compare as integers, so "10.0" sorts after "2.0".
    Non-numeric segments sort after numeric ones and compare as text.
    Trailing zero segments are ignored ("2" == "2.0").
    """
    parts: list[Tuple[int, Any]] = []
    for segment in str(version).strip().split("."):
        if segment.isdigit():
            parts.append((0, int(segment)))
        else:
            parts.append((1, segment))
    while parts and parts[-1] == (0, 0):
        parts.pop()
    return tuple(parts)


def version_le(left: str, right: str) -> bool:
    """Whether version ``left`` is at or before version ``right``."""
    return version_key(left) <= version_key(right)


@dataclass(frozen=True)
class FieldSpec:
    """Declared schema field.

    Attributes:
        name: Field name
        type: Type specifier checked during validate()
        since: Version the field applies from
        required: Whether the field must be present
        default: Default for optional fields (deep-copied on use)
        default_factory: Zero-argument callable producing the default
    """

    name: str
    type: TypeSpec
    since: str
    required: bool = False
    default: Any = None
    default_factory: Optional[Callable[[], Any]] = None

    def make_default(self) -> Any:
        """Produce a fresh default value."""
        if self.default_factory is not None:
            return self.default_factory()
        return copy.deepcopy(self.default)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        result: Dict[str, Any] = {
            "name": self.name,
            "type": describe_type(self.type),
            "since": self.since,
        }
        if self.required:
            result["required"] = True
        if self.default is not None:
            result["default"] = self.default
        return result


@dataclass(frozen=True)
class DeprecatedField:
    """Deprecation record for a field."""

    name: str
    since: str
    remove_in: str

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "since": self.since, "remove_in": self.remove_in}


class SchemaDefinition:
    """Declared fields and migrations for one configuration shape.

    Attributes:
        version: Current schema version
        required_fields: name -> FieldSpec
        optional_fields: name -> FieldSpec
        deprecated_fields: name -> DeprecatedField
        migrations: "<from>-><to>" -> transform
    """

    def __init__(self, version: str = DEFAULT_VERSION) -> None:
        self.version = str(version)
        self.required_fields: Dict[str, FieldSpec] = {}
        self.optional_fields: Dict[str, FieldSpec] = {}
        self.deprecated_fields: Dict[str, DeprecatedField] = {}
        self.migrations: Dict[str, MigrationFn] = {}

    def __repr__(self) -> str:
        return (
            f"SchemaDefinition(version={self.version!r}, "
            f"required={list(self.required_fields)}, optional={list(self.optional_fields)})"
        )

    # ------------------------------------------------------------------
    # Declarations
    # ------------------------------------------------------------------

    def required(self, name: str, type: TypeSpec, since: Optional[str] = None) -> FieldSpec:
        """Declare a field that must be present from ``since`` onwards."""
        TypeChecker.validate_spec(type)
        spec = FieldSpec(name=str(name), type=type, since=str(since or self.version), required=True)
        self.required_fields[spec.name] = spec
        return spec

    def optional(
        self,
        name: str,
        type: TypeSpec,
        default: Any = None,
        since: Optional[str] = None,
        default_factory: Optional[Callable[[], Any]] = None,
    ) -> FieldSpec:
        """Declare an optional field with a default."""
        TypeChecker.validate_spec(type)
        if default is not None and default_factory is not None:
            raise ValueError(f"Field '{name}': give either default or default_factory, not both")
        spec = FieldSpec(
            name=str(name),
            type=type,
            since=str(since or self.version),
            default=default,
            default_factory=default_factory,
        )
        self.optional_fields[spec.name] = spec
        return spec

    def deprecated(self, name: str, since: str, remove_in: str) -> DeprecatedField:
        """Mark a field deprecated from ``since`` and removed from ``remove_in``."""
        record = DeprecatedField(name=str(name), since=str(since), remove_in=str(remove_in))
        self.deprecated_fields[record.name] = record
        return record

    def add_migration(
        self,
        from_version: Any,
        to_version: Any = None,
        transform: Optional[MigrationFn] = None,
    ) -> None:
        """Register a migration between two versions.

        Accepted forms:
            add_migration("1.0", "2.0", fn)
            add_migration({"1.0": "2.0"}, fn)
            add_migration(("1.0", "2.0"), fn)

        Raises:
            SchemaMigrationError: If an endpoint or the transform is missing
        """
        if transform is None and callable(to_version):
            transform, to_version = to_version, None
        if to_version is None:
            from_version, to_version = _split_versions(from_version)

        if not from_version or not to_version or transform is None:
            raise SchemaMigrationError(
                "Invalid migration format",
                from_version=from_version,
                to_version=to_version,
            )

        key = migration_key(from_version, to_version)
        if key in self.migrations:
            logger.warning(f"Replacing migration {key}")
        self.migrations[key] = transform
        logger.debug(f"Registered migration {key}")

    def migration(self, from_version: Any, to_version: Any = None) -> Callable[[MigrationFn], MigrationFn]:
        """Decorator form of add_migration().

        Example:
            >>> @schema.migration({"1.0": "2.0"})
            ... def rename(data):
            ...     data["b"] = data.pop("a")
        """

        def decorator(fn: MigrationFn) -> MigrationFn:
            self.add_migration(from_version, to_version, fn)
            return fn

        return decorator

    # ------------------------------------------------------------------
    # Validation and migration
    # ------------------------------------------------------------------

    def validate(self, data: Mapping[str, Any], current_version: Optional[str] = None) -> None:
        """Validate configuration data against the schema.

        Args:
            data: Configuration data
            current_version: Version to validate at (defaults to self.version)

        Raises:
            SchemaValidationError: On the first failing rule
        """
        current = str(current_version or self.version)
        self._validate_required(data, current)
        self._validate_deprecated(data, current)
        self._validate_types(data)

    def _validate_required(self, data: Mapping[str, Any], current: str) -> None:
        for name, spec in self.required_fields.items():
            if not version_le(spec.since, current):
                continue
            if name in data:
                continue
            raise SchemaValidationError(
                f"Missing required field: {name}", field_name=name, rule="required"
            )

    def _validate_deprecated(self, data: Mapping[str, Any], current: str) -> None:
        for name, record in self.deprecated_fields.items():
            if name not in data:
                continue
            if not version_le(record.since, current):
                continue
            if version_le(record.remove_in, current):
                raise SchemaValidationError(
                    f"Field {name} was removed in version {record.remove_in}",
                    field_name=name,
                    rule="removed",
                )
            logger.warning(
                f"Field {name} is deprecated since version {record.since} "
                f"and will be removed in {record.remove_in}",
                extra={"field": name, "since": record.since, "remove_in": record.remove_in},
            )

    def _validate_types(self, data: Mapping[str, Any]) -> None:
        declared = {**self.required_fields, **self.optional_fields}
        for name, value in data.items():
            spec = declared.get(name)
            if spec is None:
                continue
            if TypeChecker.matches(value, spec.type):
                continue
            raise SchemaValidationError(
                f"Invalid type for field {name}: expected {describe_type(spec.type)}, "
                f"got {type(value).__name__}",
                field_name=name,
                rule="type",
            )

    def migrate(self, data: Mapping[str, Any], from_version: str, to_version: str) -> Dict[str, Any]:
        """Migrate data between two exact versions.

        Args:
            data: Configuration data (left untouched)
            from_version: Source version
            to_version: Target version

        Returns:
            Migrated shallow copy of ``data``

        Raises:
            SchemaMigrationError: If no migration is registered for the pair
        """
        key = migration_key(from_version, to_version)
        transform = self.migrations.get(key)
        if transform is None:
            raise SchemaMigrationError(
                f"No migration path from {from_version} to {to_version}",
                from_version=str(from_version),
                to_version=str(to_version),
            )

        migrated = dict(data)
        result = transform(migrated)
        if result is not None:
            migrated = dict(result)
        logger.info(
            f"Migrated configuration {key}",
            extra={"from_version": str(from_version), "to_version": str(to_version)},
        )
        return migrated

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def apply_defaults(self, data: Mapping[str, Any]) -> Dict[str, Any]:
        """Return a copy of ``data`` with defaults for absent optional fields."""
        result = dict(data)
        for name, spec in self.optional_fields.items():
            if name in result:
                continue
            if spec.default is None and spec.default_factory is None:
                continue
            result[name] = spec.make_default()
        return result

    def type_map(self) -> Dict[str, TypeSpec]:
        """Declared type for every required and optional field."""
        return {name: spec.type for name, spec in {**self.required_fields, **self.optional_fields}.items()}

    def to_dict(self) -> Dict[str, Any]:
        """Describe the schema (migrations by key only)."""
        return {
            "version": self.version,
            "required": [spec.to_dict() for spec in self.required_fields.values()],
            "optional": [spec.to_dict() for spec in self.optional_fields.values()],
            "deprecated": [record.to_dict() for record in self.deprecated_fields.values()],
            "migrations": sorted(self.migrations),
        }


def migration_key(from_version: Any, to_version: Any) -> str:
    """Internal key for a migration between two versions."""
    return f"{str(from_version).strip()}->{str(to_version).strip()}"


def _split_versions(versions: Any) -> Tuple[Optional[str], Optional[str]]:
    if isinstance(versions, Mapping):
        if len(versions) != 1:
            return None, None
        ((source, target),) = versions.items()
        return source, target
    if isinstance(versions, (list, tuple)) and len(versions) == 2:
        return versions[0], versions[1]
    return None, None


class SchemaRegistry:
    """One SchemaDefinition per declaring owner.

    Thread-safety:
        - define/get are guarded by an internal lock
        - The definitions themselves are not locked; declare before sharing

    Example:
        >>> registry = SchemaRegistry()
        >>> schema = registry.define("billing", version="2.0")
        >>> registry.get("billing") is schema
        True
    """

    def __init__(self) -> None:
        self._definitions: Dict[Hashable, SchemaDefinition] = {}
        self._lock = threading.Lock()

    def define(
        self,
        owner: Hashable,
        version: str = DEFAULT_VERSION,
        block: Optional[Callable[[SchemaDefinition], None]] = None,
    ) -> SchemaDefinition:
        """Create (or replace) the definition for ``owner``.

        Args:
            owner: Declaring owner key
            version: Schema version
            block: Optional callback receiving the new definition
        """
        definition = SchemaDefinition(version)
        if block is not None:
            block(definition)
        with self._lock:
            self._definitions[owner] = definition
        logger.debug(f"Defined schema for {owner!r} at version {version}")
        return definition

    def get(self, owner: Hashable) -> SchemaDefinition:
        """Definition for ``owner``, created at the default version if absent."""
        with self._lock:
            definition = self._definitions.get(owner)
            if definition is None:
                definition = SchemaDefinition(DEFAULT_VERSION)
                self._definitions[owner] = definition
            return definition

    def version_of(self, owner: Hashable) -> str:
        """Schema version for ``owner`` ("1.0" when never defined)."""
        definition = self._definitions.get(owner)
        return definition.version if definition is not None else DEFAULT_VERSION

    def __contains__(self, owner: Hashable) -> bool:
        return owner in self._definitions

    def __iter__(self) -> Iterator[Hashable]:
        return iter(list(self._definitions))
