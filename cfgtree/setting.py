"""
Setting nodes: the configuration tree of cfgtree.

A Setting holds an ordered mapping of named fields. A field is either a
scalar value (with a type specifier, a lock flag and an optional encrypted
marker) or a child Setting. Declarations go through config(), which
validates types, enforces locks and encrypts values before anything is
stored.

Invariants:
    - Every scalar field has a type entry ("any" unless declared)
    - A locked field that holds a value rejects writes unless lock=False is
      passed explicitly
    - A failed config(), set() or load_from_dict() leaves the subtree unchanged,
      including fields declared earlier in the same call
    - A field holding a child node is replaced only by a write with a value
    - Encrypted fields store ciphertext; every read path returns plaintext
    - Children are created only by declaration, so each node has one parent

How to change safely:
    - Route every new write path through _declare() inside _atomic()
    - Keep to_dict() plaintext; serialisers build on it

Example:
    >>> settings = Setting(lambda s: s.config(username="admin").config(max_connections=10, type="int"))
    >>> settings.max_connections
    10
    >>> settings.configure("database", lambda db: db.config("host", "localhost"))
    Setting(fields=['host'])
    >>> settings.to_dict()
    {'username': 'admin', 'max_connections': 10, 'database': {'host': 'localhost'}}
"""

from __future__ import annotations

import decimal
import json
import logging
from collections.abc import Mapping
from contextlib import contextmanager
from enum import Enum
from pathlib import Path, PurePath
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

import yaml

from .encryption import EncryptionConfig
from .environment import EnvironmentContext
from .errors import EncryptionError, ImmutableFieldError, NoSuchFieldError, SettingTypeError
from .schema import SchemaDefinition
from .types import TypeChecker, TypeSpec

logger = logging.getLogger(__name__)


class _Unset:
    """Marker for "no value given" (None is a legitimate value)."""

    _instance: Optional[_Unset] = None

    def __new__(cls) -> _Unset:
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNSET"

    def __bool__(self) -> bool:
        return False


UNSET: Any = _Unset()

ENCRYPTED_TYPE_HINT = "string (encrypted values must be strings)"
NESTED_FIELD_HINT = "value (field holds a nested configuration)"

Block = Callable[["Setting"], Any]
FieldName = Union[str, Enum]


def normalize_name(name: FieldName) -> str:
    """Map a field name (str or Enum member) to its canonical string."""
    if isinstance(name, Enum):
        name = name.value
    key = str(name)
    if not key:
        raise ValueError("Field name cannot be empty")
    return key


class Setting:
    """One node of the configuration tree.

    Attributes:
        context: EnvironmentContext shared with child nodes
        encryption: EncryptionConfig shared with child nodes (or None)

    Field access:
        - node.get("name") / node["name"] / node.name
        - node.set("name", v) / node["name"] = v / node.name = v (declared only)
    """

    def __init__(
        self,
        block: Optional[Block] = None,
        *,
        encryption: Optional[EncryptionConfig] = None,
        context: Optional[EnvironmentContext] = None,
    ) -> None:
        self._values: Dict[str, Any] = {}
        self._types: Dict[str, TypeSpec] = {}
        self._locks: Dict[str, bool] = {}
        self._encrypted: set[str] = set()
        self._encryption = encryption
        self._context = context if context is not None else EnvironmentContext.from_env()

        if block is not None:
            block(self)

    # ------------------------------------------------------------------
    # Declarations
    # ------------------------------------------------------------------

    def config(
        self,
        name: Optional[FieldName] = None,
        value: Any = UNSET,
        *,
        type: Optional[TypeSpec] = None,
        lock: Optional[bool] = None,
        encrypted: Optional[bool] = None,
        **settings: Any,
    ) -> Setting:
        """Declare or update one or more fields.

        Args:
            name: Field name (omit when using keyword settings)
            value: Field value; a mapping creates or merges a child node
            type: Type specifier (default: previously declared type, else "any")
            lock: True makes the field immutable once it holds a value;
                False explicitly unlocks it for this write
            encrypted: True stores the value encrypted; omitting ``value``
                encrypts the existing value; False stores plaintext again
            **settings: Additional ``field=value`` pairs declared with the
                same options

        Returns:
            self, for chaining

        Raises:
            SettingTypeError: If a value does not match its type
            ImmutableFieldError: If a locked field would change
            TypeCheckerError: If the type specifier is unknown
            EncryptionError: If encryption is requested without a key

        Example:
            >>> node.config("port", 8080, type="int", lock=True)
            >>> node.config(host="localhost", debug=False)
            >>> node.config("password", "s3cret", encrypted=True)
        """
        if name is None and not settings:
            return self

        pairs: List[tuple[FieldName, Any]] = []
        if name is not None:
            pairs.append((name, value))
        pairs.extend(settings.items())

        with self._atomic():
            for field_name, field_value in pairs:
                self._declare(field_name, field_value, type=type, lock=lock, encrypted=encrypted)
        return self

    def declare(self, name: FieldName, type: TypeSpec, lock: Optional[bool] = None) -> Setting:
        """Declare a typed field without assigning a value."""
        self._declare(name, UNSET, type=type, lock=lock, encrypted=None)
        return self

    def set(self, name: FieldName, value: Any) -> Setting:
        """Assign a field value (same rules as config)."""
        with self._atomic():
            self._declare(name, value, type=None, lock=None, encrypted=None)
        return self

    def configure(self, name: FieldName, block: Optional[Block] = None) -> Setting:
        """Get or create the child node ``name`` and run ``block`` on it.

        A new child is attached only after ``block`` finishes, so a failing
        block leaves the tree unchanged.

        Returns:
            The child Setting

        Example:
            >>> db = settings.configure("database", lambda db: db.config(host="localhost"))
            >>> db.host
            'localhost'
        """
        key = normalize_name(name)
        child = self._values.get(key)
        if isinstance(child, Setting):
            if block is not None:
                block(child)
            return child

        if self._holds_locked_value(key):
            raise ImmutableFieldError(key)

        child = Setting(encryption=self._encryption, context=self._context)
        if block is not None:
            block(child)

        self._values[key] = child
        self._types.pop(key, None)
        self._locks.pop(key, None)
        self._encrypted.discard(key)
        logger.debug(f"Created configuration node '{key}'")
        return child

    def environment(self, environment: str, block: Block) -> Setting:
        """Run ``block`` only when the active environment is ``environment``.

        Example:
            >>> settings.environment("production", lambda s: s.config(debug=False))
        """
        if self._context.is_environment(environment):
            block(self)
        return self

    def _declare(
        self,
        name: FieldName,
        value: Any,
        *,
        type: Optional[TypeSpec],
        lock: Optional[bool],
        encrypted: Optional[bool],
    ) -> None:
        key = normalize_name(name)

        if isinstance(value, Setting):
            self.configure(key).load_from_dict(
                value.to_dict(),
                schema=value.type_schema(),
                lock_schema=value.lock_schema(),
                encrypted_fields=value.encrypted_schema(),
            )
            return
        if isinstance(value, Mapping):
            self.configure(key).load_from_dict(value)
            return

        has_value = value is not UNSET
        existing = self._values.get(key, UNSET)
        is_child = isinstance(existing, Setting)

        if is_child and not has_value:
            raise SettingTypeError(NESTED_FIELD_HINT, existing)
        if has_value and lock is not False and self._holds_locked_value(key):
            raise ImmutableFieldError(key)

        resolved_type = type if type is not None else self._types.get(key, "any")
        TypeChecker.validate_spec(resolved_type)

        if encrypted is None:
            encrypt = key in self._encrypted
        else:
            encrypt = bool(encrypted)

        if has_value:
            plain = value
        elif existing is not UNSET:
            plain = self._read(key)
        else:
            plain = None

        if encrypt and plain is not None and not isinstance(plain, str):
            raise SettingTypeError(ENCRYPTED_TYPE_HINT, plain)
        if plain is not None and not TypeChecker.matches(plain, resolved_type):
            raise SettingTypeError(resolved_type, plain)

        if encrypt and plain is not None:
            stored = self._gateway().encrypt(plain)
        else:
            stored = plain

        self._values[key] = stored
        self._types[key] = resolved_type
        if lock is not None:
            self._locks[key] = bool(lock)
        else:
            self._locks.setdefault(key, False)
        if encrypt:
            self._encrypted.add(key)
        else:
            self._encrypted.discard(key)
        logger.debug(f"Configured field '{key}'", extra={"encrypted": encrypt})

    def _holds_locked_value(self, key: str) -> bool:
        return bool(self._locks.get(key)) and self._values.get(key) is not None

    def _gateway(self) -> EncryptionConfig:
        if self._encryption is None:
            raise EncryptionError("No key provider configured")
        return self._encryption

    @contextmanager
    def _atomic(self) -> Iterator[None]:
        """Restore this subtree to its prior state if the body raises."""
        state = self._capture()
        try:
            yield
        except Exception:
            self._rollback(state)
            raise

    def _capture(self) -> tuple:
        children = [(child, child._capture()) for child in self._values.values() if isinstance(child, Setting)]
        return dict(self._values), dict(self._types), dict(self._locks), set(self._encrypted), children

    def _rollback(self, state: tuple) -> None:
        values, types, locks, encrypted, children = state
        self._values, self._types, self._locks, self._encrypted = values, types, locks, encrypted
        for child, child_state in children:
            child._rollback(child_state)

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def get(self, name: FieldName) -> Any:
        """Read a field: child node, decrypted value or stored value.

        Raises:
            NoSuchFieldError: If the field was never declared
        """
        key = normalize_name(name)
        if key not in self._values:
            raise NoSuchFieldError(key)
        return self._read(key)

    def _read(self, key: str) -> Any:
        value = self._values[key]
        if isinstance(value, Setting):
            return value
        if key in self._encrypted:
            return self._gateway().decrypt(value)
        return value

    def fields(self) -> List[str]:
        """Declared field names in declaration order."""
        return list(self._values)

    def is_encrypted(self, name: FieldName) -> bool:
        return normalize_name(name) in self._encrypted

    def is_locked(self, name: FieldName) -> bool:
        return bool(self._locks.get(normalize_name(name)))

    @property
    def context(self) -> EnvironmentContext:
        return self._context

    @property
    def encryption(self) -> Optional[EncryptionConfig]:
        return self._encryption

    def use_encryption(self, encryption: Optional[EncryptionConfig]) -> Setting:
        """Install an encryption gateway on this node and all descendants."""
        self._encryption = encryption
        for value in self._values.values():
            if isinstance(value, Setting):
                value.use_encryption(encryption)
        return self

    def is_environment(self, environment: str) -> bool:
        return self._context.is_environment(environment)

    @property
    def development(self) -> bool:
        return self._context.development

    @property
    def test(self) -> bool:
        return self._context.test

    @property
    def staging(self) -> bool:
        return self._context.staging

    @property
    def production(self) -> bool:
        return self._context.production

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_from_dict(
        self,
        data: Mapping[str, Any],
        schema: Union[Mapping[str, Any], SchemaDefinition, None] = None,
        lock_schema: Optional[Mapping[str, Any]] = None,
        encrypted_fields: Optional[Mapping[str, Any]] = None,
    ) -> Setting:
        """Load a nested mapping into this node.

        Args:
            data: Mapping of field name to scalar, mapping or Setting
            schema: Nested mapping of field name to type specifier, or a
                SchemaDefinition (data is validated, defaults are applied
                and the declared types are used)
            lock_schema: Nested mapping of field name to lock flag
            encrypted_fields: Nested mapping of field name to encrypted flag

        Returns:
            self

        Example:
            >>> node.load_from_dict(
            ...     {"name": "admin", "limits": {"max_connections": 10}},
            ...     schema={"name": "str", "limits": {"max_connections": "int"}},
            ... )
        """
        if isinstance(schema, SchemaDefinition):
            schema.validate(data)
            data = schema.apply_defaults(data)
            schema = schema.type_map()

        with self._atomic():
            for raw_key, value in data.items():
                key = normalize_name(raw_key)
                sub_schema = _lookup(schema, key)
                sub_lock = _lookup(lock_schema, key)
                sub_encrypted = _lookup(encrypted_fields, key)

                if isinstance(value, Setting):
                    self.configure(key).load_from_dict(
                        value.to_dict(),
                        schema=sub_schema if isinstance(sub_schema, Mapping) else value.type_schema(),
                        lock_schema=sub_lock if isinstance(sub_lock, Mapping) else value.lock_schema(),
                        encrypted_fields=(
                            sub_encrypted if isinstance(sub_encrypted, Mapping) else value.encrypted_schema()
                        ),
                    )
                elif isinstance(value, Mapping):
                    self.configure(key).load_from_dict(
                        value,
                        schema=sub_schema if isinstance(sub_schema, Mapping) else None,
                        lock_schema=sub_lock if isinstance(sub_lock, Mapping) else None,
                        encrypted_fields=sub_encrypted if isinstance(sub_encrypted, Mapping) else None,
                    )
                else:
                    self._declare(
                        key,
                        value,
                        type=None if isinstance(sub_schema, Mapping) else sub_schema,
                        lock=None if isinstance(sub_lock, Mapping) else sub_lock,
                        encrypted=True if sub_encrypted is True else None,
                    )
        return self

    # ------------------------------------------------------------------
    # Export
    # ------------------------------------------------------------------

    def type_schema(self) -> Dict[str, Any]:
        """Nested mapping of field name to declared type."""
        return {
            key: value.type_schema() if isinstance(value, Setting) else self._types.get(key, "any")
            for key, value in self._values.items()
        }

    def lock_schema(self) -> Dict[str, Any]:
        """Nested mapping of field name to lock flag."""
        return {
            key: value.lock_schema() if isinstance(value, Setting) else bool(self._locks.get(key))
            for key, value in self._values.items()
        }

    def encrypted_schema(self) -> Dict[str, Any]:
        """Nested mapping of field name to encrypted flag."""
        return {
            key: value.encrypted_schema() if isinstance(value, Setting) else key in self._encrypted
            for key, value in self._values.items()
        }

    def to_dict(self) -> Dict[str, Any]:
        """Nested plain dict of the tree; encrypted fields are decrypted."""
        return {
            key: value.to_dict() if isinstance(value, Setting) else self._read(key)
            for key, value in self._values.items()
        }

    def to_json(self, indent: Optional[int] = None) -> str:
        """JSON text of to_dict()."""
        return json.dumps(self.to_dict(), indent=indent, default=str)

    def to_yaml(self, path: Union[str, Path, None] = None) -> Optional[str]:
        """YAML text of to_dict(), in declaration order.

        Args:
            path: If given, write the YAML there and return None

        Returns:
            YAML text, or None when written to ``path``
        """
        text = yaml.safe_dump(
            _to_plain(self.to_dict()),
            sort_keys=False,
            default_flow_style=False,
            allow_unicode=True,
        )
        if path is None:
            return text
        Path(path).write_text(text, encoding="utf-8")
        logger.info(f"Wrote configuration YAML to {path}")
        return None

    # ------------------------------------------------------------------
    # Mapping and attribute protocol
    # ------------------------------------------------------------------

    def __getitem__(self, name: FieldName) -> Any:
        return self.get(name)

    def __setitem__(self, name: FieldName, value: Any) -> None:
        self.set(name, value)

    def __contains__(self, name: object) -> bool:
        if not isinstance(name, (str, Enum)):
            return False
        return normalize_name(name) in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._values))

    def __len__(self) -> int:
        return len(self._values)

    def __getattr__(self, name: str) -> Any:
        # Only reached when normal lookup fails
        if name.startswith("_"):
            raise AttributeError(name)
        values = self.__dict__.get("_values")
        if values is None or name not in values:
            raise NoSuchFieldError(name, type(self).__name__)
        return self._read(name)

    def __setattr__(self, name: str, value: Any) -> None:
        if name.startswith("_"):
            object.__setattr__(self, name, value)
            return
        if name in self._values:
            self.set(name, value)
            return
        raise NoSuchFieldError(name, type(self).__name__)

    def __dir__(self) -> List[str]:
        return sorted(set(super().__dir__()) | set(self._values))

    def __repr__(self) -> str:
        return f"Setting(fields={self.fields()!r})"


def _lookup(schema: Optional[Mapping[str, Any]], key: str) -> Any:
    if not isinstance(schema, Mapping):
        return None
    return schema.get(key)


def _to_plain(value: Any) -> Any:
    """Convert values yaml.safe_dump cannot represent."""
    if isinstance(value, Mapping):
        return {str(k): _to_plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_to_plain(v) for v in value]
    if isinstance(value, Enum):
        return _to_plain(value.value)
    if isinstance(value, (PurePath, decimal.Decimal)):
        return str(value)
    return value
