"""Variable and prompt resolution pipeline."""

from scaffolder.pipeline.prompter import Prompter, RichPrompter, ScriptedPrompter
from scaffolder.pipeline.resolution import ResolutionPipeline

__all__ = [
    "Prompter",
    "ResolutionPipeline",
    "RichPrompter",
    "ScriptedPrompter",
]
