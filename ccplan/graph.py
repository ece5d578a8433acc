"""In-memory module graph implementing the host build-graph contract.

The planner only relies on a small surface of the host engine: register
modules, split a module into named variations, add typed edges that select a
variation of the target, enumerate a module's direct edges and visit modules
in dependency order.  :class:`ModuleGraph` provides exactly that surface.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Sequence, Tuple
import logging

from .errors import DependencyCycleError

logger = logging.getLogger(__name__)

VariantKey = Tuple[Tuple[str, str], ...]


@dataclass(eq=False)
class ModuleNode:
    """One concrete variant of a module registered in the graph."""

    name: str
    logic: Any
    variant: VariantKey = ()
    dependencies: List[Tuple[Any, "ModuleNode"]] = field(default_factory=list)

    def variation(self, axis: str) -> str | None:
        for key, value in self.variant:
            if key == axis:
                return value
        return None

    @property
    def variant_name(self) -> str:
        return "_".join(value for _, value in self.variant if value)

    def __repr__(self) -> str:
        suffix = f" [{self.variant_name}]" if self.variant_name else ""
        return f"<ModuleNode {self.name}{suffix}>"


class ModuleGraph:
    def __init__(self) -> None:
        self._groups: Dict[str, List[ModuleNode]] = {}

    def add_module(self, name: str, logic: Any, *, variant: VariantKey = ()) -> ModuleNode:
        if name in self._groups:
            raise ValueError(f"Module '{name}' is already registered")
        node = ModuleNode(name=name, logic=logic, variant=tuple(variant))
        self._groups[name] = [node]
        return node

    def names(self) -> Iterable[str]:
        return self._groups.keys()

    def variants(self, name: str) -> List[ModuleNode]:
        return list(self._groups.get(name, []))

    def nodes(self) -> List[ModuleNode]:
        return [node for group in self._groups.values() for node in group]

    def create_variations(
        self,
        node: ModuleNode,
        axis: str,
        names: Sequence[str],
        *,
        clone: Callable[[Any], Any],
    ) -> List[ModuleNode]:
        """Replace ``node`` with one sibling per entry of ``names`` along ``axis``.

        The first sibling keeps the original logic object; every other one
        receives ``clone(logic)``.  Existing edges are copied to each sibling and
        edges pointing at ``node`` are redirected to the first sibling.
        """

        if not names:
            raise ValueError(f"Module '{node.name}' needs at least one variation for axis '{axis}'")
        if node.variation(axis) is not None:
            raise ValueError(f"Module '{node.name}' was already split along axis '{axis}'")

        group = self._groups[node.name]
        index = group.index(node)
        created: List[ModuleNode] = []
        for position, value in enumerate(names):
            logic = node.logic if position == 0 else clone(node.logic)
            created.append(
                ModuleNode(
                    name=node.name,
                    logic=logic,
                    variant=node.variant + ((axis, value),),
                    dependencies=list(node.dependencies),
                )
            )
        group[index:index + 1] = created

        for other in self.nodes():
            other.dependencies = [
                (tag, created[0] if target is node else target) for tag, target in other.dependencies
            ]

        logger.debug("split %s along %s into %s", node.name, axis, ", ".join(names) or "<none>")
        return created

    def find_variant(
        self,
        name: str,
        requester: ModuleNode,
        variation: Mapping[str, str] | None = None,
    ) -> ModuleNode | None:
        """Select the variant of ``name`` matching ``requester`` plus ``variation``.

        Requested axes must match exactly.  Axes inherited from the requester
        fall back to the only variant when the target was not split further.
        """

        candidates = self._groups.get(name)
        if not candidates:
            return None
        requested = dict(variation or {})
        inherited = dict(requester.variant)
        selected = list(candidates)
        for axis, _ in candidates[0].variant:
            if axis in requested:
                selected = [node for node in selected if node.variation(axis) == requested[axis]]
            else:
                wanted = inherited.get(axis, "")
                matches = [node for node in selected if node.variation(axis) == wanted]
                if not matches and len({node.variation(axis) for node in selected}) == 1:
                    matches = selected
                selected = matches
            if not selected:
                return None
        return selected[0]

    def add_dependency(
        self,
        node: ModuleNode,
        tag: Any,
        names: Iterable[str],
        *,
        variation: Mapping[str, str] | None = None,
    ) -> List[str]:
        """Add edges from ``node`` to ``names``; return the names that were not found."""

        missing: List[str] = []
        for name in names:
            target = self.find_variant(name, node, variation)
            if target is None:
                missing.append(name)
                continue
            node.dependencies.append((tag, target))
        return missing

    def add_inter_variant_dependency(self, tag: Any, source: ModuleNode, target: ModuleNode) -> None:
        if source.name != target.name:
            raise ValueError("Inter-variant dependencies must stay within one module")
        source.dependencies.append((tag, target))

    def direct_dependencies(self, node: ModuleNode) -> List[Tuple[Any, ModuleNode]]:
        return list(node.dependencies)

    def _dependency_order(self) -> List[ModuleNode]:
        visiting: List[ModuleNode] = []
        visited: set[int] = set()
        order: List[ModuleNode] = []

        def visit(node: ModuleNode) -> None:
            if node in visiting:
                cycle = " -> ".join(repr(item) for item in [*visiting, node])
                raise DependencyCycleError(f"Circular dependency detected: {cycle}")
            if id(node) in visited:
                return
            visiting.append(node)
            for _, target in node.dependencies:
                if target is not node:
                    visit(target)
            visiting.pop()
            visited.add(id(node))
            order.append(node)

        for node in self.nodes():
            visit(node)
        return order

    def visit_bottom_up(self, callback: Callable[[ModuleNode], None]) -> None:
        """Invoke ``callback`` on every node after all of its dependencies."""

        for node in self._dependency_order():
            callback(node)

    def visit_top_down(self, callback: Callable[[ModuleNode], None]) -> None:
        """Invoke ``callback`` on every node before any of its dependencies."""

        for node in reversed(self._dependency_order()):
            callback(node)

    def __iter__(self) -> Iterator[ModuleNode]:
        return iter(self.nodes())


__all__ = ["ModuleGraph", "ModuleNode", "VariantKey"]
