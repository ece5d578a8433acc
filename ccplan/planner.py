"""Runs every expansion and planning pass over a set of module declarations."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Dict, Iterable, List
import logging

from .config import PlanConfig, PlanEnvironment
from .errors import MissingDependencyError, PlanningError
from .graph import ModuleGraph
from .module import ArtifactDescriptor, Module
from .properties import ModuleProperties
from .registry import ModuleTypeRegistry, default_registry
from .toolchains import ToolchainRegistry

if TYPE_CHECKING:
    from .config import ConfigurationStore

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PlanResult:
    """Outcome for one enabled module variant."""

    module: str
    variant: str
    target: str
    artifact: ArtifactDescriptor | None = None
    errors: List[PlanningError] = field(default_factory=list)
    missing_dependencies: List[str] = field(default_factory=list)
    static_library: bool = False

    @property
    def failed(self) -> bool:
        if self.errors or self.artifact is None:
            return True
        # Static libraries hand their missing dependencies on to whoever links them.
        return bool(self.missing_dependencies) and not self.static_library

    def report_errors(self) -> List[PlanningError]:
        errors = list(self.errors)
        if self.missing_dependencies and not self.static_library:
            errors.append(MissingDependencyError(self.module, self.missing_dependencies))
        return errors

    def as_dict(self) -> Dict[str, Any]:
        return {
            "module": self.module,
            "variant": self.variant,
            "target": self.target,
            "failed": self.failed,
            "artifact": self.artifact.as_dict() if self.artifact else None,
            "errors": [str(error) for error in self.report_errors()],
            "missing_dependencies": list(self.missing_dependencies),
        }


class Planner:
    def __init__(
        self,
        config: PlanConfig,
        toolchains: ToolchainRegistry | None = None,
        registry: ModuleTypeRegistry | None = None,
    ) -> None:
        self.env = PlanEnvironment(config=config, toolchains=toolchains or ToolchainRegistry.with_builtins())
        self.registry = registry or default_registry()

    @classmethod
    def from_store(cls, store: "ConfigurationStore", registry: ModuleTypeRegistry | None = None) -> "Planner":
        return cls(store.global_config, store.toolchains, registry)

    def build_graph(self, modules: Iterable[ModuleProperties]) -> ModuleGraph:
        """Register ``modules`` and run every pass; the returned graph holds the results."""

        graph = ModuleGraph()
        for properties in modules:
            graph.add_module(properties.name, self.registry.create(properties, self.env.config))

        for mutator in self.registry.mutators:
            logger.debug("running %s pass", mutator.name)
            callback = mutator.callback
            if mutator.top_down:
                graph.visit_top_down(lambda node: callback(self.env, graph, node))
            else:
                graph.visit_bottom_up(lambda node: callback(self.env, graph, node))
        return graph

    def plan(self, modules: Iterable[ModuleProperties]) -> List[PlanResult]:
        graph = self.build_graph(modules)
        results: List[PlanResult] = []
        for node in graph:
            module = node.logic
            if not isinstance(module, Module) or not module.enabled:
                continue
            results.append(
                PlanResult(
                    module=module.name,
                    variant=node.variant_name,
                    target=module.target.name if module.target else "",
                    artifact=module.artifact,
                    errors=list(module.errors),
                    missing_dependencies=list(module.missing_dependencies),
                    static_library=module.is_static_library,
                )
            )

        failed = sum(1 for result in results if result.failed)
        logger.info("planned %d variants, %d failed", len(results), failed)
        return results


__all__ = ["PlanResult", "Planner"]
