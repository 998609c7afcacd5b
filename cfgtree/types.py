"""
Type checking for cfgtree settings.

This module provides the type system used by every mutating declaration:
- TypeTag: Built-in atomic type tags and their aliases
- TypeChecker: Validates a value against a type specifier
- register_type: Adds custom tags at runtime

A type specifier is one of:
    - an atomic tag ("int", "string", TypeTag.BOOLEAN, ...)
    - a one-element list/tuple ``[T]``: a list whose elements all match T
    - a list/tuple of several specifiers: a union
    - a callable predicate (called with the value, result coerced to bool)
    - a class: matches instances of the class or its subclasses

Invariants:
    - matches() is deterministic and has no side effects of its own
    - Unknown tags raise TypeCheckerError; they are never treated as "any"
    - bool is not accepted where an integer or number is expected

How to change safely:
    - Add new tags as aliases of an existing TypeTag when the kind is shared
    - Never change the meaning of an existing tag (stored schemas use them)

Example:
    >>> TypeChecker.matches(10, "int")
    True
    >>> TypeChecker.matches(["a", "b"], ["string"])
    True
    >>> TypeChecker.matches(None, ["int", "null"])
    True
"""

from __future__ import annotations

import datetime
import decimal
import pathlib
import threading
from collections.abc import Mapping
from enum import Enum
from typing import Any, Callable, Dict

from .errors import TypeCheckerError

TypeSpec = Any


class TypeTag(Enum):
    """Built-in atomic type tags."""

    ANY = "any"
    NULL = "null"
    INTEGER = "int"
    FLOAT = "float"
    NUMBER = "number"
    STRING = "str"
    BOOLEAN = "bool"
    LIST = "list"
    DICT = "dict"
    BYTES = "bytes"
    DATE = "date"
    DATETIME = "datetime"
    TIME = "time"
    DECIMAL = "decimal"
    PATH = "path"

    @classmethod
    def from_str(cls, value: str) -> TypeTag:
        """Convert a tag name or alias to TypeTag."""
        tag = _ALIASES.get(value.strip().lower())
        if tag is None:
            raise TypeCheckerError(value)
        return tag


_ALIASES: Dict[str, TypeTag] = {tag.value: tag for tag in TypeTag}
_ALIASES.update(
    {
        "none": TypeTag.NULL,
        "nil": TypeTag.NULL,
        "integer": TypeTag.INTEGER,
        "numeric": TypeTag.NUMBER,
        "string": TypeTag.STRING,
        "boolean": TypeTag.BOOLEAN,
        "array": TypeTag.LIST,
        "hash": TypeTag.DICT,
        "mapping": TypeTag.DICT,
    }
)


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float, decimal.Decimal)) and not isinstance(value, bool)


_KIND_CHECKS: Dict[TypeTag, Callable[[Any], bool]] = {
    TypeTag.ANY: lambda value: True,
    TypeTag.NULL: lambda value: value is None,
    TypeTag.INTEGER: _is_int,
    TypeTag.FLOAT: lambda value: isinstance(value, float),
    TypeTag.NUMBER: _is_number,
    TypeTag.STRING: lambda value: isinstance(value, str),
    TypeTag.BOOLEAN: lambda value: isinstance(value, bool),
    TypeTag.LIST: lambda value: isinstance(value, (list, tuple)),
    TypeTag.DICT: lambda value: isinstance(value, Mapping),
    TypeTag.BYTES: lambda value: isinstance(value, (bytes, bytearray)),
    TypeTag.DATE: lambda value: isinstance(value, datetime.date),
    TypeTag.DATETIME: lambda value: isinstance(value, datetime.datetime),
    TypeTag.TIME: lambda value: isinstance(value, datetime.time),
    TypeTag.DECIMAL: lambda value: isinstance(value, decimal.Decimal),
    TypeTag.PATH: lambda value: isinstance(value, pathlib.PurePath),
}

# Custom tags registered at runtime
_custom_types: Dict[str, TypeSpec] = {}
_custom_lock = threading.Lock()


def register_type(name: str, spec: TypeSpec) -> None:
    """Register a custom atomic tag.

    Args:
        name: Tag name (case-insensitive)
        spec: Any type specifier the tag should stand for

    Raises:
        ValueError: If the name shadows a built-in tag
        TypeCheckerError: If ``spec`` itself cannot be resolved

    Example:
        >>> register_type("port", lambda v: isinstance(v, int) and 0 < v < 65536)
        >>> TypeChecker.matches(8080, "port")
        True
    """
    key = name.strip().lower()
    if key in _ALIASES:
        raise ValueError(f"Cannot redefine built-in type tag '{name}'")
    TypeChecker.validate_spec(spec)
    with _custom_lock:
        _custom_types[key] = spec


def unregister_type(name: str) -> bool:
    """Remove a custom tag. Returns True if it existed."""
    with _custom_lock:
        return _custom_types.pop(name.strip().lower(), None) is not None


def list_types() -> list[str]:
    """Names of all known atomic tags, built-in aliases included."""
    return sorted(set(_ALIASES) | set(_custom_types))


class TypeChecker:
    """Validates values against type specifiers.

    The checker is stateless; custom tags live in the module registry
    managed by register_type().
    """

    @classmethod
    def matches(cls, value: Any, spec: TypeSpec) -> bool:
        """Check whether ``value`` satisfies ``spec``.

        Args:
            value: Value to check
            spec: Type specifier

        Returns:
            True if the value matches

        Raises:
            TypeCheckerError: If the specifier cannot be resolved
        """
        if isinstance(spec, TypeTag):
            return _KIND_CHECKS[spec](value)

        if isinstance(spec, str):
            return cls._match_tag(value, spec)

        if isinstance(spec, (list, tuple)):
            if not spec:
                raise TypeCheckerError(spec)
            if len(spec) == 1:
                if not isinstance(value, (list, tuple)):
                    return False
                return all(cls.matches(item, spec[0]) for item in value)
            return any(cls.matches(value, option) for option in spec)

        # Classes are callable too, so the nominal check comes first
        if isinstance(spec, type):
            return isinstance(value, spec)

        if callable(spec):
            return bool(spec(value))

        raise TypeCheckerError(spec)

    @classmethod
    def _match_tag(cls, value: Any, name: str) -> bool:
        key = name.strip().lower()
        tag = _ALIASES.get(key)
        if tag is not None:
            return _KIND_CHECKS[tag](value)
        custom = _custom_types.get(key)
        if custom is None:
            raise TypeCheckerError(name)
        return cls.matches(value, custom)

    @classmethod
    def validate_spec(cls, spec: TypeSpec) -> None:
        """Resolve a specifier without checking a value.

        Raises:
            TypeCheckerError: If any part of the specifier is unknown
        """
        if isinstance(spec, TypeTag) or isinstance(spec, type):
            return
        if isinstance(spec, str):
            key = spec.strip().lower()
            if key not in _ALIASES and key not in _custom_types:
                raise TypeCheckerError(spec)
            return
        if isinstance(spec, (list, tuple)):
            if not spec:
                raise TypeCheckerError(spec)
            for option in spec:
                cls.validate_spec(option)
            return
        if callable(spec):
            return
        raise TypeCheckerError(spec)


def matches(value: Any, spec: TypeSpec) -> bool:
    """Module-level shortcut for TypeChecker.matches."""
    return TypeChecker.matches(value, spec)


def describe_type(spec: TypeSpec) -> str:
    """Render a type specifier for error messages."""
    if isinstance(spec, TypeTag):
        return spec.value
    if isinstance(spec, str):
        return spec
    if isinstance(spec, (list, tuple)):
        if len(spec) == 1:
            return f"[{describe_type(spec[0])}]"
        return " | ".join(describe_type(option) for option in spec)
    if isinstance(spec, type):
        return spec.__name__
    if spec is None:
        return ""
    return getattr(spec, "__name__", repr(spec))
