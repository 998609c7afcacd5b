"""
Error types for cfgtree.

This module defines all exception types raised by the library:
- ConfigError: Base exception
- SettingTypeError: Value does not match the declared type
- ImmutableFieldError: Write attempted on a locked field
- TypeCheckerError: Type specifier cannot be resolved
- SchemaValidationError: Data violates a schema definition
- SchemaMigrationError: Bad migration registration or missing path
- EncryptionError: Key material or cipher failure
- NoSuchFieldError: Read of an undeclared field
- LoadDataError: Configuration source could not be read or parsed
- TeamNotFoundError: Unknown team namespace

Invariants:
    - All errors inherit from ConfigError
    - Errors include context for debugging (code + details)
    - Secret values are never placed in messages of EncryptionError
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class ConfigError(Exception):
    """Base exception for all cfgtree errors.

    Attributes:
        message: Error message
        code: Error code for programmatic handling
        details: Additional error context
    """

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.code = code or "CONFIG_ERROR"
        self.details = details or {}


class SettingTypeError(ConfigError):
    """Value failed validation against its resolved type.

    Raised when:
    - A declared value does not satisfy its type specifier
    - A non-string value is marked as encrypted

    Attributes:
        expected: Type specifier (or description) that was expected
        value: The offending value
    """

    def __init__(self, expected: Any, value: Any) -> None:
        msg = (
            f"Expected: <{_describe(expected)}>. "
            f"Given: {value!r} which is <{type(value).__name__}> class."
        )
        super().__init__(
            msg,
            code="TYPE_MISMATCH",
            details={"expected": _describe(expected), "actual": type(value).__name__},
        )
        self.expected = expected
        self.value = value


class ImmutableFieldError(ConfigError):
    """Write attempted on a field declared with ``lock=True``."""

    def __init__(self, field_name: str) -> None:
        super().__init__(
            f"<{field_name}> setting is immutable",
            code="IMMUTABLE_FIELD",
            details={"field": field_name},
        )
        self.field_name = field_name


class TypeCheckerError(ConfigError):
    """A type specifier has no resolution path.

    This is a declaration error, not a validation failure: it is raised
    for unknown tags even when no value is being checked.
    """

    def __init__(self, type_spec: Any) -> None:
        shown = "" if type_spec is None else str(type_spec)
        super().__init__(
            f"No type Definition for: <{shown}> type",
            code="UNKNOWN_TYPE",
            details={"type": shown},
        )
        self.type_spec = type_spec


class SchemaValidationError(ConfigError):
    """Data failed validation against a schema definition.

    Raised when:
    - Required field is missing
    - A removed (deprecated past remove_in) field is present
    - Field value has wrong type

    Attributes:
        field_name: Field that failed
        rule: One of "required", "removed", "type"
    """

    def __init__(
        self,
        message: str,
        field_name: Optional[str] = None,
        rule: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="SCHEMA_VALIDATION",
            details={"field": field_name, "rule": rule},
        )
        self.field_name = field_name
        self.rule = rule


class SchemaMigrationError(ConfigError):
    """Migration registration is malformed or no migration path exists."""

    def __init__(
        self,
        message: str,
        from_version: Optional[str] = None,
        to_version: Optional[str] = None,
    ) -> None:
        super().__init__(
            message,
            code="SCHEMA_MIGRATION",
            details={"from_version": from_version, "to_version": to_version},
        )
        self.from_version = from_version
        self.to_version = to_version


class EncryptionError(ConfigError):
    """Encryption or decryption failed.

    Raised when:
    - No key provider is configured
    - Key material cannot be found or has the wrong size
    - Ciphertext is malformed or fails authentication
    """

    def __init__(self, message: str) -> None:
        super().__init__(message, code="ENCRYPTION_ERROR")


class NoSuchFieldError(ConfigError, AttributeError):
    """Read of a field that was never declared.

    Also an AttributeError so that ``hasattr``/``getattr`` defaults keep
    working with attribute-style field access.
    """

    def __init__(self, field_name: str, owner: str = "Setting") -> None:
        super().__init__(
            f"Undefined field '{field_name}' for {owner}",
            code="NO_SUCH_FIELD",
            details={"field": field_name, "owner": owner},
        )
        self.field_name = field_name


class LoadDataError(ConfigError):
    """Configuration data could not be loaded or parsed."""

    def __init__(self, message: str, source: Optional[str] = None) -> None:
        super().__init__(
            message,
            code="LOAD_ERROR",
            details={"source": source},
        )
        self.source = source


class TeamNotFoundError(ConfigError, LookupError):
    """Team namespace does not exist."""

    def __init__(self, team_name: str) -> None:
        super().__init__(
            f"Team '{team_name}' does not exist",
            code="TEAM_NOT_FOUND",
            details={"team": team_name},
        )
        self.team_name = team_name


def _describe(spec: Any) -> str:
    # Local import: types imports this module for its error classes.
    from .types import describe_type

    return describe_type(spec)
