"""
Unit tests for versioned schema definitions.

Tests cover:
- Field declarations
- Validation passes (required, deprecated, types)
- Migration registration and execution
- Defaults and registry lookup
"""

import doctest
import logging

import pytest

from cfgtree import schema as schema_module
from cfgtree.errors import SchemaMigrationError, SchemaValidationError, TypeCheckerError
from cfgtree.schema import (
    DEFAULT_VERSION,
    SchemaDefinition,
    SchemaRegistry,
    migration_key,
    version_key,
    version_le,
)


class TestVersions:
    """Tests for version comparison."""

    def test_numeric_segments(self):
        """Segments compare as integers."""
        assert version_le("2.0", "10.0")
        assert not version_le("10.0", "2.0")

    def test_trailing_zeros(self):
        """'2' and '2.0' are the same version."""
        assert version_key("2") == version_key("2.0.0")

    def test_equal_versions(self):
        """A version is at or before itself."""
        assert version_le("1.5", "1.5")


class TestDeclarations:
    """Tests for the declaration DSL."""

    def test_required_defaults_since_to_schema_version(self):
        """since defaults to the schema version."""
        schema = SchemaDefinition("2.0")
        spec = schema.required("database_url", type="string")

        assert spec.since == "2.0"
        assert spec.required is True
        assert schema.required_fields["database_url"] is spec

    def test_optional_with_default(self):
        """Optional fields record type and default."""
        schema = SchemaDefinition("1.0")
        schema.optional("pool_size", type="int", default=5)

        assert schema.optional_fields["pool_size"].default == 5

    def test_unknown_type_fails_at_declaration(self):
        """Type specs are resolved when declared."""
        schema = SchemaDefinition()
        with pytest.raises(TypeCheckerError):
            schema.required("x", type="unknown_tag")

    def test_default_and_factory_conflict(self):
        """A field takes a default or a factory, not both."""
        schema = SchemaDefinition()
        with pytest.raises(ValueError):
            schema.optional("x", type="list", default=[1], default_factory=list)

    def test_default_version(self):
        """Schemas default to version 1.0."""
        assert SchemaDefinition().version == DEFAULT_VERSION


class TestValidate:
    """Tests for SchemaDefinition.validate."""

    @pytest.fixture
    def schema(self):
        """Schema at version 2.0 with a deprecated field."""
        schema = SchemaDefinition("2.0")
        schema.required("database_url", type="string", since="1.0")
        schema.required("replica_urls", type=["string"], since="2.0")
        schema.optional("pool_size", type="int", default=5)
        schema.deprecated("backup_url", since="2.0", remove_in="3.0")
        return schema

    def test_valid_data(self, schema):
        """Complete data passes."""
        schema.validate({"database_url": "postgres://x", "replica_urls": ["postgres://y"]})

    def test_missing_required(self, schema):
        """Missing required field raises."""
        with pytest.raises(SchemaValidationError, match="Missing required field: replica_urls") as exc:
            schema.validate({"database_url": "postgres://x"})
        assert exc.value.rule == "required"
        assert exc.value.field_name == "replica_urls"

    def test_required_since_later_version_skipped(self, schema):
        """Fields introduced after the current version are not required."""
        schema.validate({"database_url": "postgres://x"}, current_version="1.0")

    def test_deprecated_field_warns(self, schema, caplog):
        """Deprecated fields log a warning and pass."""
        with caplog.at_level(logging.WARNING, logger="cfgtree.schema"):
            schema.validate(
                {"database_url": "a", "replica_urls": [], "backup_url": "b"},
            )

        assert any("backup_url is deprecated" in r.getMessage() for r in caplog.records)

    def test_removed_field_raises(self, schema):
        """Fields past remove_in are rejected."""
        with pytest.raises(SchemaValidationError, match="Field backup_url was removed in version 3.0"):
            schema.validate(
                {"database_url": "a", "replica_urls": [], "backup_url": "b"},
                current_version="3.0",
            )

    def test_wrong_type(self, schema):
        """Declared types are checked."""
        with pytest.raises(SchemaValidationError, match="Invalid type for field pool_size: expected int, got str"):
            schema.validate({"database_url": "a", "replica_urls": [], "pool_size": "5"})

    def test_required_pass_runs_before_type_pass(self, schema):
        """A missing field is reported even if another field has a bad type."""
        with pytest.raises(SchemaValidationError) as exc:
            schema.validate({"database_url": 1})
        assert exc.value.rule == "required"

    def test_undeclared_fields_ignored(self, schema):
        """Extra fields are allowed."""
        schema.validate({"database_url": "a", "replica_urls": [], "extra": object()})


class TestMigrations:
    """Tests for migrations."""

    def test_explicit_pair(self):
        """add_migration with two versions and a transform."""
        schema = SchemaDefinition("2.0")

        def add_replicas(data):
            data["replica_urls"] = [data.pop("backup_url")]

        schema.add_migration("1.0", "2.0", add_replicas)

        result = schema.migrate({"database_url": "x", "backup_url": "y"}, "1.0", "2.0")
        assert result == {"database_url": "x", "replica_urls": ["y"]}

    def test_mapping_form(self):
        """A one-item mapping names the version pair."""
        schema = SchemaDefinition("2.0")
        schema.add_migration({"1.0": "2.0"}, lambda data: {"renamed": data["old"]})

        assert "1.0->2.0" in schema.migrations
        assert schema.migrate({"old": 1}, "1.0", "2.0") == {"renamed": 1}

    def test_decorator_form(self):
        """migration() registers the decorated function."""
        schema = SchemaDefinition("2.0")

        @schema.migration(("1.0", "2.0"))
        def bump(data):
            data["v"] = 2

        assert schema.migrations[migration_key("1.0", "2.0")] is bump

    def test_input_not_mutated(self):
        """migrate works on a copy."""
        schema = SchemaDefinition("2.0")
        schema.add_migration("1.0", "2.0", lambda data: data.update(extra=True))
        original = {"a": 1}

        result = schema.migrate(original, "1.0", "2.0")

        assert original == {"a": 1}
        assert result == {"a": 1, "extra": True}

    def test_missing_path(self):
        """Unregistered pairs raise."""
        schema = SchemaDefinition("3.0")
        schema.add_migration("1.0", "2.0", lambda data: None)
        schema.add_migration("2.0", "3.0", lambda data: None)

        with pytest.raises(SchemaMigrationError, match="No migration path from 1.0 to 3.0"):
            schema.migrate({}, "1.0", "3.0")

    def test_invalid_format(self):
        """Registrations without both versions are rejected."""
        schema = SchemaDefinition()
        with pytest.raises(SchemaMigrationError, match="Invalid migration format"):
            schema.add_migration({"1.0": "2.0", "2.0": "3.0"}, lambda data: None)
        with pytest.raises(SchemaMigrationError, match="Invalid migration format"):
            schema.add_migration("1.0", "2.0")


class TestDefaults:
    """Tests for apply_defaults and introspection."""

    def test_apply_defaults(self):
        """Absent optional fields get their defaults."""
        schema = SchemaDefinition()
        schema.optional("pool_size", type="int", default=5)
        schema.optional("timeout", type="int", default=30)

        assert schema.apply_defaults({"timeout": 10}) == {"timeout": 10, "pool_size": 5}

    def test_defaults_are_fresh(self):
        """Mutable defaults are never shared."""
        schema = SchemaDefinition()
        schema.optional("hosts", type=["string"], default=["a"])
        schema.optional("tags", type="list", default_factory=list)

        first = schema.apply_defaults({})
        first["hosts"].append("b")
        first["tags"].append("x")
        second = schema.apply_defaults({})

        assert second == {"hosts": ["a"], "tags": []}

    def test_type_map_and_to_dict(self):
        """Declared types and a description are exposed."""
        schema = SchemaDefinition("2.0")
        schema.required("url", type="string")
        schema.optional("size", type="int", default=1)
        schema.add_migration("1.0", "2.0", lambda data: None)

        assert schema.type_map() == {"url": "string", "size": "int"}
        described = schema.to_dict()
        assert described["version"] == "2.0"
        assert described["migrations"] == ["1.0->2.0"]
        assert described["required"][0]["name"] == "url"


class TestSchemaRegistry:
    """Tests for SchemaRegistry."""

    def test_get_creates_default(self):
        """Unknown owners get a fresh 1.0 definition."""
        registry = SchemaRegistry()

        schema = registry.get("billing")

        assert schema.version == "1.0"
        assert registry.get("billing") is schema
        assert "billing" in registry

    def test_define_with_block(self):
        """define runs the block and records the version."""
        registry = SchemaRegistry()

        registry.define("billing", "2.0", lambda s: s.required("currency", type="string"))

        assert registry.version_of("billing") == "2.0"
        assert "currency" in registry.get("billing").required_fields
        assert registry.version_of("unknown") == "1.0"
        assert list(registry) == ["billing"]


class TestModuleExample:
    """Tests for the module docstring example."""

    def test_example_runs(self):
        """The documented session produces the documented output."""
        runner = doctest.DocTestRunner()
        for test in doctest.DocTestFinder(recurse=False).find(schema_module):
            runner.run(test)

        assert runner.summarize(verbose=False).failed == 0
