"""Unit tests for the restricted condition evaluator."""

import pytest

from scaffolder.values.conditions import (
    ConditionSyntaxError,
    UndefinedNameError,
    evaluate_condition,
    evaluate_expression,
    is_truthy,
)


class TestEvaluateExpression:
    """Tests for evaluate_expression."""

    def test_strict_equality(self) -> None:
        """Test === compares type and value."""
        assert evaluate_expression("x === 1", {"x": 1}) is True
        assert evaluate_expression("x === '1'", {"x": 1}) is False
        assert evaluate_expression("x !== 2", {"x": 1}) is True

    def test_loose_equality(self) -> None:
        """Test == converts between numbers and strings."""
        assert evaluate_expression("x == '1'", {"x": 1}) is True
        assert evaluate_expression("env == 'prod'", {"env": "dev"}) is False
        assert evaluate_expression("missing == null", {"missing": None}) is True

    def test_relational_and_arithmetic(self) -> None:
        """Test comparisons and arithmetic on numbers."""
        context = {"nodeVersion": 20, "count": 3}
        assert evaluate_expression("nodeVersion >= 18", context) is True
        assert evaluate_expression("count * 2 + 1", context) == 7
        assert evaluate_expression("count % 2", context) == 1

    def test_logical_operators(self) -> None:
        """Test && and || return operands like JavaScript."""
        assert evaluate_expression("a && b", {"a": True, "b": "yes"}) == "yes"
        assert evaluate_expression("a || b", {"a": "", "b": "fallback"}) == "fallback"
        assert evaluate_expression("!a", {"a": 0}) is True

    def test_ternary(self) -> None:
        """Test the conditional operator."""
        assert evaluate_expression("count > 1 ? 'many' : 'one'", {"count": 3}) == "many"
        assert evaluate_expression("count > 1 ? 'many' : 'one'", {"count": 1}) == "one"

    def test_member_access(self) -> None:
        """Test dotted, bracketed and indexed access."""
        context = {"project": {"name": "demo", "tags": ["a", "b"]}}
        assert evaluate_expression("project.name", context) == "demo"
        assert evaluate_expression("project['name']", context) == "demo"
        assert evaluate_expression("project.tags[1]", context) == "b"
        assert evaluate_expression("project.tags.length", context) == 2
        assert evaluate_expression("project.missing", context) is None

    def test_string_methods(self) -> None:
        """Test the allowed string methods."""
        context = {"name": "  My-App  "}
        assert evaluate_expression("name.trim().toLowerCase()", context) == "my-app"
        assert evaluate_expression("name.includes('App')", context) is True
        assert evaluate_expression("name.trim().startsWith('My')", context) is True

    def test_in_operator(self) -> None:
        """Test membership in arrays and objects."""
        assert evaluate_expression("'ts' in langs", {"langs": ["js", "ts"]}) is True
        assert evaluate_expression("'x' in obj", {"obj": {"y": 1}}) is False
        assert evaluate_expression("lang in ['js', 'ts']", {"lang": "ts"}) is True

    def test_undefined_name_raises(self) -> None:
        """Test an unknown top-level name raises UndefinedNameError."""
        with pytest.raises(UndefinedNameError):
            evaluate_expression("env == 'prod'", {})

    def test_unsupported_syntax_raises(self) -> None:
        """Test that code outside the grammar is rejected."""
        with pytest.raises(ConditionSyntaxError):
            evaluate_expression("x = 1", {"x": 0})
        with pytest.raises(ConditionSyntaxError):
            evaluate_expression("", {})

    def test_no_arbitrary_calls(self) -> None:
        """Test that function calls other than the allowed methods fail."""
        with pytest.raises(ConditionSyntaxError):
            evaluate_expression("name.constructor('x')", {"name": "a"})


class TestEvaluateCondition:
    """Tests for evaluate_condition."""

    def test_true_and_false(self) -> None:
        """Test plain conditions."""
        assert evaluate_condition("x === 1", {"x": 1}) is True
        assert evaluate_condition("x === 1", {"x": 2}) is False

    def test_lazy_unknown_name_is_true(self) -> None:
        """Test lazy mode treats unresolved names as enabled."""
        assert evaluate_condition("env == 'prod'", {}, lazy=True) is True

    def test_final_unknown_name_is_false(self) -> None:
        """Test final mode treats unresolved names as disabled."""
        assert evaluate_condition("env == 'prod'", {}) is False

    def test_syntax_error_degrades_to_false(self) -> None:
        """Test invalid conditions never raise."""
        assert evaluate_condition("x ===", {"x": 1}) is False
        assert evaluate_condition("x ===", {"x": 1}, lazy=True) is False

    def test_deep_nesting_degrades_to_false(self) -> None:
        """Test expressions nested past the interpreter stack never raise."""
        nested = "(" * 3000 + "x" + ")" * 3000
        with pytest.raises(ConditionSyntaxError, match="nested too deeply"):
            evaluate_expression(nested, {"x": 1})
        assert evaluate_condition(nested, {"x": 1}) is False
        assert evaluate_condition(nested, {"x": 1}, lazy=True) is False


class TestIsTruthy:
    """Tests for JavaScript truthiness."""

    @pytest.mark.parametrize(
        "value,expected",
        [
            (None, False),
            (0, False),
            (0.0, False),
            ("", False),
            (False, False),
            ("0", True),
            ([], True),
            ({}, True),
            (1, True),
        ],
    )
    def test_values(self, value: object, expected: bool) -> None:
        """Test truthiness of common values."""
        assert is_truthy(value) is expected
