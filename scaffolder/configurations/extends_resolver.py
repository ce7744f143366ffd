"""Extends resolver - loads every ancestor of a document.

The traversal is an explicit depth-first worklist over ``extends`` targets,
left to right. The chain of documents currently being resolved is kept next
to the worklist, so a reference back into it is reported as a cycle instead
of recursing forever. The result lists ancestors before descendants.

Two passes follow the traversal:

1. Enablement propagation: an ancestor without its own ``enabled`` inherits
   the enabled value of the nearest descendant that has one.
2. Document dependency sort: documents naming other documents in
   ``dependencies`` are reordered so dependencies come first.
"""

from collections import deque
from dataclasses import dataclass, field
from pathlib import Path

from loguru import logger

from scaffolder.configurations.fetcher import ConfigurationFetcher
from scaffolder.configurations.loader import ConfigurationLoader
from scaffolder.core.errors import CircularDependencyError
from scaffolder.core.models import ConfigurationDocument


@dataclass
class ExtendsGraph:
    """
    Resolved documents and the edges between them.

    Attributes:
        documents: Every reachable document, ancestors first.
        parents: Document identity -> identities it extends, in order.
    """

    documents: list[ConfigurationDocument] = field(default_factory=list)
    parents: dict[str, list[str]] = field(default_factory=dict)

    @property
    def identities(self) -> list[str]:
        """Document identities in resolution order."""
        return [d.source_url or d.name for d in self.documents]

    def children(self) -> dict[str, list[str]]:
        """Invert ``parents``: identity -> identities that extend it."""
        result: dict[str, list[str]] = {i: [] for i in self.identities}
        for child, parents in self.parents.items():
            for parent in parents:
                result.setdefault(parent, []).append(child)
        return result


class ExtendsResolver:
    """
    Resolve the extends chain of a root document.

    Example:
        >>> resolver = ExtendsResolver(ConfigurationLoader(cwd="/work"))
        >>> graph = await resolver.resolve("child.json")
        >>> [d.name for d in graph.documents]
        ['base', 'child']
    """

    def __init__(self, loader: ConfigurationLoader | None = None) -> None:
        self.loader = loader or ConfigurationLoader()

    async def resolve(self, reference: str) -> ExtendsGraph:
        """
        Load ``reference`` and all of its ancestors.

        Returns:
            The ExtendsGraph; each reachable document appears exactly once.

        Raises:
            CircularDependencyError: If an extends chain loops.
        """
        root = await self.loader.load(reference)
        root_id = self._identity(root)

        graph = ExtendsGraph()
        done: set[str] = set()
        chain: list[str] = [root_id]
        worklist: list[tuple[ConfigurationDocument, int]] = [(root, 0)]

        while worklist:
            document, index = worklist[-1]
            identity = chain[-1]
            targets = document.extends_list

            if index == 0:
                graph.parents[identity] = [
                    self.loader.identify(t, document.source_url) for t in targets
                ]

            if index >= len(targets):
                worklist.pop()
                chain.pop()
                done.add(identity)
                graph.documents.append(document)
                logger.debug(f"Resolved configuration: {self.loader.label(identity)}")
                continue

            worklist[-1] = (document, index + 1)
            parent_id = graph.parents[identity][index]

            if parent_id in chain:
                cycle = chain[chain.index(parent_id):] + [parent_id]
                raise CircularDependencyError.for_extends([self.loader.label(c) for c in cycle])
            if parent_id in done:
                continue

            parent = await self.loader.load(parent_id)
            worklist.append((parent, 0))
            chain.append(parent_id)

        logger.info(f"Resolved {len(graph.documents)} configuration(s) from {self.loader.label(root_id)}")
        return graph

    @staticmethod
    def _identity(document: ConfigurationDocument) -> str:
        return document.source_url or document.name


# =============================================================================
# ENABLEMENT PROPAGATION
# =============================================================================


def propagate_enablement(graph: ExtendsGraph) -> list[ConfigurationDocument]:
    """
    Give ancestors without their own ``enabled`` the value of a descendant.

    For each document with its own ``enabled``, in resolution order, the walk goes
    up through ancestors that lack one and assigns that value to each. It stops
    at an ancestor with its own value. An ancestor reachable from several
    descendants keeps the first assignment.

    Returns:
        The documents in the same order, copied where a spec was inherited.
    """
    by_id = dict(zip(graph.identities, graph.documents))
    has_own = {i for i, d in by_id.items() if d.enabled is not None}
    inherited: dict[str, object] = {}

    for identity in graph.identities:
        if identity not in has_own:
            continue
        spec = by_id[identity].enabled
        queue = deque(graph.parents.get(identity, []))
        visited: set[str] = set()
        while queue:
            ancestor = queue.popleft()
            if ancestor in visited or ancestor in has_own:
                continue
            visited.add(ancestor)
            inherited.setdefault(ancestor, spec)
            queue.extend(graph.parents.get(ancestor, []))

    result: list[ConfigurationDocument] = []
    for identity, document in by_id.items():
        if identity in inherited:
            logger.debug(
                f"Configuration {document.name} inherits enabled={inherited[identity]!r}"
            )
            document = document.model_copy(update={"enabled": inherited[identity]})
        result.append(document)
    return result


# =============================================================================
# DOCUMENT DEPENDENCIES
# =============================================================================


def sort_by_document_dependencies(
    documents: list[ConfigurationDocument],
) -> list[ConfigurationDocument]:
    """
    Reorder documents so those named in ``dependencies`` come first.

    Documents with no dependency relation keep their positions; the others
    are topologically sorted into the remaining slots, ties broken by the
    original order. Skipped when document names are not unique.

    Raises:
        CircularDependencyError: If document dependencies form a cycle.
    """
    names = [d.name for d in documents]
    if len(set(names)) != len(names):
        logger.debug("Configuration names are not unique, skipping dependency sort")
        return list(documents)

    index = {name: i for i, name in enumerate(names)}
    edges: dict[str, list[str]] = {}
    for document in documents:
        deps = []
        for dep in document.dependencies:
            if dep not in index:
                logger.warning(f"Configuration {document.name} depends on unknown configuration {dep}")
                continue
            deps.append(dep)
        edges[document.name] = deps

    related = {name for name, deps in edges.items() if deps}
    related.update(dep for deps in edges.values() for dep in deps)
    if not related:
        return list(documents)

    ordered = _topological_names(sorted(related, key=index.__getitem__), edges)
    slots = [i for i, name in enumerate(names) if name in related]

    result = list(documents)
    for slot, name in zip(slots, ordered):
        result[slot] = documents[index[name]]
    return result


def _topological_names(names: list[str], edges: dict[str, list[str]]) -> list[str]:
    WHITE, GRAY, BLACK = 0, 1, 2
    colors = {name: WHITE for name in names}
    ordered: list[str] = []

    def visit(name: str, path: list[str]) -> None:
        colors[name] = GRAY
        path.append(name)
        for dep in edges.get(name, []):
            if colors[dep] == GRAY:
                raise CircularDependencyError.for_document_dependencies(
                    path[path.index(dep):] + [dep]
                )
            if colors[dep] == WHITE:
                visit(dep, path)
        path.pop()
        colors[name] = BLACK
        ordered.append(name)

    for name in names:
        if colors[name] == WHITE:
            visit(name, [])
    return ordered


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================


async def resolve_extends(
    reference: str,
    cwd: str | Path | None = None,
    fetcher: ConfigurationFetcher | None = None,
) -> list[ConfigurationDocument]:
    """
    Resolve, propagate enablement and sort by document dependencies.

    Example:
        >>> documents = await resolve_extends("child.json")
        >>> [d.name for d in documents]
        ['base', 'child']
    """
    resolver = ExtendsResolver(ConfigurationLoader(fetcher=fetcher, cwd=cwd))
    graph = await resolver.resolve(reference)
    return sort_by_document_dependencies(propagate_enablement(graph))
