"""
Scaffolder - declarative project scaffolding.

Resolves configuration documents, following their extends chains, into one
ordered and fully resolved task plan, then runs or previews it.
"""

__version__ = "0.1.0"

from scaffolder.core.orchestrator import (
    RunOptions,
    RunResult,
    Scaffolder,
    load_merged_configuration,
    run_configuration,
)

__all__ = [
    "RunOptions",
    "RunResult",
    "Scaffolder",
    "__version__",
    "load_merged_configuration",
    "run_configuration",
]
