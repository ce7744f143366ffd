"""ID uniqueness checks for merged documents.

Tasks, variables and prompts share one id namespace: a variable and a prompt
with the same id would both write the same context key. Override strategies
excuse a same-kind redefinition during merge, never a cross-kind collision.
"""

from collections.abc import Iterable, Sequence

from scaffolder.core.errors import DuplicateIdError
from scaffolder.core.models import PromptDefinition, TaskDefinition, VariableDefinition


def find_duplicate_ids(ids: Iterable[str]) -> list[str]:
    """Ids that occur more than once, in first-repeat order."""
    seen: set[str] = set()
    duplicates: list[str] = []
    for entity_id in ids:
        if entity_id in seen and entity_id not in duplicates:
            duplicates.append(entity_id)
        seen.add(entity_id)
    return duplicates


def validate_unique_ids(
    tasks: Sequence[TaskDefinition] = (),
    variables: Sequence[VariableDefinition] = (),
    prompts: Sequence[PromptDefinition] = (),
) -> None:
    """
    Reject an id used twice across the three entity kinds.

    Kinds are checked in the order tasks, variables, prompts; the error names
    the later kind and the kind that claimed the id first.

    Raises:
        DuplicateIdError: On the first collision.

    Example:
        >>> validate_unique_ids(tasks=[task("setup")], variables=[variable("setup")])
        Traceback (most recent call last):
        DuplicateIdError: Duplicate ID "setup" found in variables. This ID is already used in tasks
    """
    owners: dict[str, str] = {}
    for kind, entities in (("tasks", tasks), ("variables", variables), ("prompts", prompts)):
        for entity in entities:
            if entity.id in owners:
                raise DuplicateIdError.for_id(entity.id, kind, owners[entity.id])
            owners[entity.id] = kind
