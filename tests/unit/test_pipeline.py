"""Unit tests for the variable/prompt resolution pipeline."""

from typing import Any

import pytest

from scaffolder.core.errors import PromptValidationError, TransformerError, VariableValidationError
from scaffolder.core.models import PromptDefinition, VariableDefinition
from scaffolder.pipeline.prompter import ScriptedPrompter
from scaffolder.pipeline.prompts import validate_prompts
from scaffolder.pipeline.resolution import ResolutionPipeline, active_entities


def _variable(variable_id: str, value: Any, **fields: Any) -> VariableDefinition:
    return VariableDefinition.model_validate({"id": variable_id, "value": value, **fields})


def _prompt(prompt_id: str, **fields: Any) -> PromptDefinition:
    return PromptDefinition.model_validate(
        {"id": prompt_id, "type": "input", "message": prompt_id, **fields}
    )


class TestResolutionPipeline:
    """Tests for the three resolution phases."""

    @pytest.mark.asyncio
    async def test_phases(self) -> None:
        """Test conditional variables see prompt answers."""
        variables = [
            _variable("prefix", "app"),
            _variable(
                "flavor",
                {"type": "conditional", "condition": "useTs", "ifTrue": "ts", "ifFalse": "js"},
            ),
        ]
        prompts = [_prompt("useTs", type="confirm", default=True)]
        pipeline = ResolutionPipeline(prompter=ScriptedPrompter())
        context: dict[str, Any] = {}

        await pipeline.run(variables, prompts, context)
        assert context == {"prefix": "app", "useTs": True, "flavor": "ts"}

    @pytest.mark.asyncio
    async def test_variables_see_earlier_context(self) -> None:
        """Test variables interpolate against values resolved before the batch."""
        pipeline = ResolutionPipeline()
        context: dict[str, Any] = {"prefix": "app"}
        await pipeline.resolve_variables(
            [_variable("label", {"type": "interpolate", "value": "{{prefix}}-x"})], context
        )
        assert context["label"] == "app-x"

    @pytest.mark.asyncio
    async def test_batch_reads_one_snapshot(self) -> None:
        """Test variables of one batch do not see each other."""
        context: dict[str, Any] = {}
        await ResolutionPipeline().resolve_variables(
            [
                _variable("prefix", "app"),
                _variable("label", {"type": "interpolate", "value": "{{prefix}}-x"}),
            ],
            context,
        )
        assert context == {"prefix": "app", "label": "-x"}

    @pytest.mark.asyncio
    async def test_prompt_default_interpolated(self) -> None:
        """Test prompt defaults resolve against the context."""
        pipeline = ResolutionPipeline()
        context: dict[str, Any] = {"owner": "acme"}
        prompts = [_prompt("repo", default={"type": "interpolate", "value": "{{owner}}/repo"})]
        await pipeline.resolve_prompts(prompts, context)
        assert context["repo"] == "acme/repo"

    @pytest.mark.asyncio
    async def test_preset_is_not_asked(self) -> None:
        """Test preset values answer prompts without asking."""
        prompter = ScriptedPrompter()
        pipeline = ResolutionPipeline(prompter=prompter, preset={"name": "given"})
        context: dict[str, Any] = {}
        await pipeline.resolve_prompts([_prompt("name")], context)
        assert context["name"] == "given"
        assert prompter.asked == []

    @pytest.mark.asyncio
    async def test_global_prompt_asked_once(self) -> None:
        """Test a global prompt is reused by later documents."""
        prompter = ScriptedPrompter({"author": "Ada"})
        pipeline = ResolutionPipeline(prompter=prompter)
        context: dict[str, Any] = {}

        await pipeline.resolve_prompts([_prompt("author", **{"global": True})], context)
        await pipeline.resolve_prompts([_prompt("author", **{"global": True})], context)
        assert prompter.asked == ["author"]
        assert pipeline.answered_globals == {"author": "Ada"}

    @pytest.mark.asyncio
    async def test_required_prompt(self) -> None:
        """Test an empty answer to a required prompt fails."""
        pipeline = ResolutionPipeline()
        with pytest.raises(PromptValidationError, match='Prompt "name" is required'):
            await pipeline.resolve_prompts([_prompt("name", required=True)], {})

    @pytest.mark.asyncio
    async def test_transformers_applied(self) -> None:
        """Test variable transformers run after resolution."""
        pipeline = ResolutionPipeline()
        context: dict[str, Any] = {}
        await pipeline.resolve_variables(
            [_variable("slug", "  My Project  ", transformers=["trim", "kebabcase"])], context
        )
        assert context["slug"] == "my-project"

    @pytest.mark.asyncio
    async def test_unknown_transformer(self) -> None:
        """Test an unknown transformer stops resolution."""
        with pytest.raises(TransformerError):
            await ResolutionPipeline().resolve_variables(
                [_variable("v", "x", transformers=["nope"])], {}
            )

    @pytest.mark.asyncio
    async def test_unresolved_values_are_omitted(self) -> None:
        """Test variables resolving to None are left out of the context."""
        context: dict[str, Any] = {}
        await ResolutionPipeline().resolve_variables([_variable("v", {"type": "bogus"})], context)
        assert "v" not in context

    @pytest.mark.asyncio
    async def test_disabled_document_entities_skipped(self) -> None:
        """Test entities of a document known to be disabled are not resolved."""
        prompter = ScriptedPrompter()
        pipeline = ResolutionPipeline(prompter=prompter)
        context: dict[str, Any] = {"env": "dev"}
        prompts = [_prompt("secret", **{"$templateEnabled": "env == 'prod'"})]

        await pipeline.resolve_prompts(prompts, context)
        assert prompter.asked == []

    def test_validate(self) -> None:
        """Test duplicate variables are rejected."""
        with pytest.raises(VariableValidationError):
            ResolutionPipeline().validate([_variable("a", 1), _variable("a", 2)], [])


class TestValidatePrompts:
    """Tests for prompt definition checks."""

    def test_problems(self) -> None:
        """Test each malformed prompt is reported."""
        prompts = [
            _prompt("1bad"),
            _prompt("empty", message=" "),
            _prompt("pick", type="select"),
            _prompt("count", type="number", min=5, max=1),
        ]
        problems = validate_prompts(prompts)
        assert len(problems) == 4
        assert problems[0].startswith('Invalid prompt ID "1bad"')

    def test_valid_select(self) -> None:
        """Test a select prompt with named choices is valid."""
        prompt = _prompt("pick", type="select", choices=[{"name": "A", "value": "a"}])
        assert validate_prompts([prompt]) == []


class TestActiveEntities:
    """Tests for lazy filtering of entities."""

    def test_unknown_names_stay_active(self) -> None:
        """Test unresolved names keep the entity."""
        entity = _variable("v", 1, **{"$templateEnabled": "flag"})
        assert active_entities([entity], {}) == [entity]
        assert active_entities([entity], {"flag": False}) == []


class TestScriptedPrompter:
    """Tests for non-interactive answers."""

    def test_number_answers(self) -> None:
        """Test number prompts coerce numeric text and drop anything else."""
        prompter = ScriptedPrompter({"port": "8080", "ratio": 0.5})
        assert prompter.ask(_prompt("port", type="number")) == 8080
        assert prompter.ask(_prompt("ratio", type="number")) == 0.5
        assert prompter.ask(_prompt("size", type="number"), default="large") is None
        assert prompter.asked == ["port", "ratio", "size"]
