"""Pytest configuration and shared fixtures."""

import json
import os
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

from scaffolder.core.config import Settings, clear_settings_cache
from scaffolder.core.orchestrator import Scaffolder
from scaffolder.pipeline.prompter import ScriptedPrompter

# Set test environment
os.environ.setdefault("SCAFFOLDER_LOG_LEVEL", "DEBUG")


@pytest.fixture(autouse=True)
def mock_settings() -> Generator:
    """Clear cached settings around every test."""
    clear_settings_cache()

    yield

    clear_settings_cache()


@pytest.fixture
def write_config(tmp_path: Path) -> Callable[..., Path]:
    """Write a JSON configuration document under ``tmp_path``."""

    def _write(file_name: str, document: dict[str, Any]) -> Path:
        path = tmp_path / file_name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(document), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    """Settings pointing the working directory at ``tmp_path``."""
    return Settings(scaffolder_working_dir=str(tmp_path))


@pytest.fixture
def scaffolder(settings: Settings) -> Scaffolder:
    """Orchestrator with built-in plugins, leaving loguru sinks alone."""
    return Scaffolder(settings=settings, configure_logging=False)


@pytest.fixture
def prompter() -> ScriptedPrompter:
    """Prompter that answers every prompt with its default."""
    return ScriptedPrompter()


@pytest.fixture
def sample_documents() -> dict[str, dict[str, Any]]:
    """A base document and a child extending it."""
    return {
        "base.json": {
            "name": "base",
            "variables": [{"id": "env", "value": "dev"}],
            "tasks": [
                {
                    "id": "readme",
                    "name": "Create README",
                    "type": "create",
                    "config": {"file": "README.md", "template": "# {{projectName}}\n"},
                }
            ],
            "prompts": [
                {"id": "projectName", "type": "input", "message": "Project name", "default": "demo"}
            ],
        },
        "child.json": {
            "name": "child",
            "extends": "base.json",
            "tasks": [
                {
                    "id": "license",
                    "type": "write",
                    "dependencies": ["readme"],
                    "config": {"file": "LICENSE", "template": "MIT {{projectName}}"},
                }
            ],
        },
    }
