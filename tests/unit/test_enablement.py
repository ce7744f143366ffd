"""Unit tests for enablement and required-flag evaluation."""

import pytest

from scaffolder.core.models import TaskDefinition
from scaffolder.values.enablement import (
    evaluate_enabled,
    evaluate_enabled_async,
    evaluate_enabled_lazy,
    evaluate_required,
    evaluate_required_async,
    is_task_enabled,
    normalize_spec,
    snapshot,
)


class TestNormalizeSpec:
    """Tests for EnabledSpec normalization."""

    def test_shapes(self) -> None:
        """Test every accepted shape maps to its kind."""
        assert normalize_spec(None) == ("default", None)
        assert normalize_spec(False) == ("literal", False)
        assert normalize_spec("a == 1") == ("condition", "a == 1")
        assert normalize_spec({"condition": "a"}) == ("condition", "a")
        assert normalize_spec({"type": "condition", "value": "a"}) == ("condition", "a")
        assert normalize_spec({"type": "exec", "value": "true"}) == ("exec", "true")

    def test_invalid(self) -> None:
        """Test unknown shapes are flagged invalid."""
        assert normalize_spec({"type": "other"})[0] == "invalid"
        assert normalize_spec(3)[0] == "invalid"


class TestEvaluateEnabled:
    """Tests for the lazy and final enablement passes."""

    def test_default_and_literal(self) -> None:
        """Test absent specs enable and literals are taken as-is."""
        assert evaluate_enabled(None, snapshot()) is True
        assert evaluate_enabled(False, snapshot()) is False

    def test_lazy_keeps_unknown_names(self) -> None:
        """Test an unresolved name is enabled lazily and disabled finally."""
        assert evaluate_enabled_lazy("env == 'prod'", snapshot()) is True
        assert evaluate_enabled("env == 'prod'", snapshot()) is False

    def test_final_uses_context(self) -> None:
        """Test the final pass reads resolved values."""
        assert evaluate_enabled("env == 'prod'", snapshot({"env": "prod"})) is True
        assert evaluate_enabled("env == 'prod'", snapshot({"env": "dev"})) is False

    def test_lazy_still_disables_on_known_false(self) -> None:
        """Test a lazy pass with a resolved name is decisive."""
        assert evaluate_enabled_lazy("env == 'prod'", snapshot({"env": "dev"})) is False

    def test_invalid_spec_disables(self) -> None:
        """Test an invalid spec counts as disabled."""
        assert evaluate_enabled({"type": "other"}, snapshot()) is False

    def test_snapshot_is_read_only(self) -> None:
        """Test snapshots cannot be mutated."""
        frozen = snapshot({"a": 1})
        with pytest.raises(TypeError):
            frozen["a"] = 2  # type: ignore[index]

    @pytest.mark.asyncio
    async def test_exec_exit_code(self) -> None:
        """Test exec specs use the command's exit code."""
        assert await evaluate_enabled_async({"type": "exec", "value": "exit 0"}, snapshot())
        assert not await evaluate_enabled_async({"type": "exec", "value": "exit 3"}, snapshot())

    @pytest.mark.asyncio
    async def test_exec_is_interpolated(self) -> None:
        """Test exec commands see context values."""
        spec = {"type": "exec", "value": "test {{flag}} = yes"}
        assert await evaluate_enabled_async(spec, snapshot({"flag": "yes"}))
        assert not await evaluate_enabled_async(spec, snapshot({"flag": "no"}))


class TestIsTaskEnabled:
    """Tests for task-level enablement."""

    @pytest.mark.asyncio
    async def test_inherited_spec_applies_first(self) -> None:
        """Test a disabled owning document disables the task."""
        task = TaskDefinition.model_validate(
            {"id": "t", "type": "write", "$templateEnabled": "env == 'prod'"}
        )
        assert await is_task_enabled(task, snapshot(), lazy=True)
        assert not await is_task_enabled(task, snapshot({"env": "dev"}))
        assert await is_task_enabled(task, snapshot({"env": "prod"}))

    @pytest.mark.asyncio
    async def test_own_spec(self) -> None:
        """Test the task's own spec is evaluated after the inherited one."""
        task = TaskDefinition(id="t", type="write", enabled="ready")
        assert not await is_task_enabled(task, snapshot({"ready": False}))
        assert await is_task_enabled(task, snapshot({"ready": True}))


class TestEvaluateRequired:
    """Tests for the required flag."""

    def test_defaults_to_required(self) -> None:
        """Test absent and invalid specs count as required."""
        assert evaluate_required(None, snapshot()) is True
        assert evaluate_required({"type": "other"}, snapshot()) is True

    def test_literal_and_condition(self) -> None:
        """Test literal and condition specs."""
        assert evaluate_required(False, snapshot()) is False
        assert evaluate_required("strict", snapshot({"strict": False})) is False
        assert evaluate_required("strict", snapshot({"strict": True})) is True

    def test_condition_error_is_required(self) -> None:
        """Test an unreadable condition fails safe to required."""
        assert evaluate_required("missing == 1", snapshot()) is True
        assert evaluate_required("(((", snapshot()) is True
        assert evaluate_required("(" * 3000 + "strict" + ")" * 3000, snapshot({"strict": False}))

    @pytest.mark.asyncio
    async def test_exec(self) -> None:
        """Test exec required specs run the command."""
        assert await evaluate_required_async({"type": "exec", "value": "true"}, snapshot())
        assert not await evaluate_required_async({"type": "exec", "value": "false"}, snapshot())
