"""
Unit tests for the type checker.

Tests cover:
- Atomic tags and aliases
- Array-of and union specifiers
- Predicates and classes
- Unknown specifiers
- Custom tag registration
"""

import datetime
import decimal
import pathlib

import pytest

from cfgtree.errors import TypeCheckerError
from cfgtree.types import (
    TypeChecker,
    TypeTag,
    describe_type,
    list_types,
    matches,
    register_type,
    unregister_type,
)


class TestAtomicTags:
    """Tests for built-in atomic tags."""

    @pytest.mark.parametrize(
        "value,spec",
        [
            (10, "int"),
            (10, "integer"),
            (1.5, "float"),
            (1, "number"),
            (1.5, "numeric"),
            (decimal.Decimal("1.5"), "number"),
            ("hello", "str"),
            ("hello", "string"),
            (True, "bool"),
            (False, "boolean"),
            (None, "null"),
            (None, "nil"),
            ([1, 2], "list"),
            ((1, 2), "array"),
            ({"a": 1}, "dict"),
            ({"a": 1}, "hash"),
            (b"raw", "bytes"),
            (datetime.date(2024, 1, 1), "date"),
            (datetime.datetime(2024, 1, 1, 12, 0), "datetime"),
            (datetime.time(12, 0), "time"),
            (decimal.Decimal("2.50"), "decimal"),
            (pathlib.Path("/tmp"), "path"),
            (object(), "any"),
        ],
    )
    def test_matching_values(self, value, spec):
        """Values of the right kind match."""
        assert TypeChecker.matches(value, spec)

    @pytest.mark.parametrize(
        "value,spec",
        [
            ("10", "int"),
            (True, "int"),
            (True, "number"),
            (1, "float"),
            (10, "str"),
            ("true", "bool"),
            (0, "null"),
            ("abc", "list"),
            ([("a", 1)], "dict"),
        ],
    )
    def test_mismatching_values(self, value, spec):
        """Values of another kind do not match."""
        assert not TypeChecker.matches(value, spec)

    def test_tags_are_case_insensitive(self):
        """Tag lookup ignores case and surrounding whitespace."""
        assert TypeChecker.matches(3, " Integer ")

    def test_type_tag_members(self):
        """TypeTag members work as specifiers."""
        assert TypeChecker.matches("x", TypeTag.STRING)
        assert not TypeChecker.matches(1, TypeTag.STRING)

    def test_type_tag_from_str(self):
        """from_str resolves aliases."""
        assert TypeTag.from_str("boolean") is TypeTag.BOOLEAN
        with pytest.raises(TypeCheckerError):
            TypeTag.from_str("nope")


class TestCompositeSpecs:
    """Tests for array-of and union specifiers."""

    def test_array_of(self):
        """One-element list means every element must match."""
        assert TypeChecker.matches(["a", "b"], ["string"])
        assert TypeChecker.matches([], ["int"])
        assert not TypeChecker.matches(["a", 1], ["string"])

    def test_array_of_requires_sequence(self):
        """Array-of rejects non-sequence values."""
        assert not TypeChecker.matches("abc", ["string"])

    def test_union(self):
        """Several entries mean any may match."""
        assert TypeChecker.matches(None, ["int", "null"])
        assert TypeChecker.matches(5, ("int", "null"))
        assert not TypeChecker.matches("5", ["int", "null"])

    def test_nested_array_of_union(self):
        """Composites nest."""
        spec = [["int", "str"]]
        assert TypeChecker.matches([1, "two", 3], spec)
        assert not TypeChecker.matches([1, 2.0], spec)

    def test_empty_composite_raises(self):
        """An empty list is not a specifier."""
        with pytest.raises(TypeCheckerError):
            TypeChecker.matches(1, [])


class TestPredicatesAndClasses:
    """Tests for callable and class specifiers."""

    def test_predicate(self):
        """Callables decide by their truthiness."""
        positive = lambda v: isinstance(v, int) and v > 0  # noqa: E731
        assert TypeChecker.matches(5, positive)
        assert not TypeChecker.matches(-5, positive)

    def test_class(self):
        """Classes match instances and subclasses."""

        class Base:
            pass

        class Child(Base):
            pass

        assert TypeChecker.matches(Child(), Base)
        assert not TypeChecker.matches(Base(), Child)

    def test_builtin_class(self):
        """Built-in classes are nominal, not called."""
        assert TypeChecker.matches("x", str)
        assert not TypeChecker.matches(b"x", str)

    def test_module_level_shortcut(self):
        """matches() delegates to TypeChecker."""
        assert matches(1, "int")


class TestUnknownSpecs:
    """Tests for unresolvable specifiers."""

    def test_unknown_tag_raises(self):
        """Unknown tags are errors, not 'any'."""
        with pytest.raises(TypeCheckerError, match="No type Definition for: <float_or_str> type"):
            TypeChecker.matches(1, "float_or_str")

    def test_non_spec_value_raises(self):
        """Objects that are neither tags, classes nor callables are rejected."""
        with pytest.raises(TypeCheckerError):
            TypeChecker.matches(1, 42)

    def test_validate_spec_without_value(self):
        """validate_spec resolves nested specs eagerly."""
        TypeChecker.validate_spec(["int", ["str"], str, lambda v: True])
        with pytest.raises(TypeCheckerError):
            TypeChecker.validate_spec(["int", "bogus"])


class TestCustomTypes:
    """Tests for runtime-registered tags."""

    def test_register_and_use(self):
        """Registered tags resolve to their spec."""
        register_type("port", lambda v: isinstance(v, int) and 0 < v < 65536)
        try:
            assert TypeChecker.matches(8080, "port")
            assert not TypeChecker.matches(70000, "port")
            assert "port" in list_types()
        finally:
            unregister_type("port")

        with pytest.raises(TypeCheckerError):
            TypeChecker.matches(8080, "port")

    def test_cannot_shadow_builtin(self):
        """Built-in tag names are reserved."""
        with pytest.raises(ValueError, match="built-in"):
            register_type("string", str)

    def test_unregister_missing(self):
        """Unregistering an unknown tag reports False."""
        assert unregister_type("never_registered") is False


class TestDescribeType:
    """Tests for describe_type."""

    def test_describe(self):
        """Specifiers render readably."""
        assert describe_type("int") == "int"
        assert describe_type(TypeTag.BOOLEAN) == "bool"
        assert describe_type(["str"]) == "[str]"
        assert describe_type(["int", "null"]) == "int | null"
        assert describe_type(dict) == "dict"
