from __future__ import annotations

from types import SimpleNamespace
from typing import Any, Dict, Iterable, List, Tuple

from ccplan.config import PlanConfig
from ccplan.graph import ModuleGraph
from ccplan.planner import PlanResult, Planner
from ccplan.properties import ModuleProperties

CRT_OBJECTS = ("crtbegin_so", "crtend_so", "crtbegin_dynamic", "crtbegin_static", "crtend_android")


def declare(name: str, module_type: str, **properties: Any) -> ModuleProperties:
    return ModuleProperties.from_mapping({"name": name, "type": module_type, **properties})


def host_runtime() -> List[ModuleProperties]:
    """Runtime libraries every host module links against by default."""

    return [
        declare("libcompiler_rt-extras", "cc_library_static", host_supported=True, stl="none", srcs=["extras.c"]),
        declare("libc++", "cc_library_shared", host_supported=True, stl="none", srcs=["libcxx.cpp"]),
        declare("libc++_static", "cc_library_static", host_supported=True, stl="none", srcs=["libcxx.cpp"]),
    ]


def device_runtime() -> List[ModuleProperties]:
    """Runtime libraries and crt objects device modules link against by default."""

    bionic: Dict[str, Any] = {"stl": "none", "system_shared_libs": [], "sanitize": {"never": True}}
    modules = [
        *host_runtime(),
        declare("libatomic", "toolchain_library"),
        declare("libgcc", "toolchain_library"),
        declare("libasan", "cc_library_static", stl="none", sanitize={"never": True}, srcs=["asan.cpp"]),
    ]
    modules.extend(declare(name, "cc_object", srcs=[f"{name}.c"]) for name in CRT_OBJECTS)
    modules.extend(declare(name, "cc_library", srcs=[f"{name}.c"], **bionic) for name in ("libc", "libm", "libdl"))
    return modules


def make_config(targets: Iterable[str] = ("linux_x86_64",), **settings: Any) -> PlanConfig:
    return PlanConfig.from_mapping({"global": {"targets": list(targets), **settings}})


def plan_modules(
    modules: Iterable[ModuleProperties],
    *,
    targets: Iterable[str] = ("linux_x86_64",),
    **settings: Any,
) -> Dict[Tuple[str, str], PlanResult]:
    results = Planner(make_config(targets, **settings)).plan(list(modules))
    return {(result.module, result.variant): result for result in results}


def build_graph(
    modules: Iterable[ModuleProperties],
    *,
    targets: Iterable[str] = ("linux_x86_64",),
    **settings: Any,
) -> ModuleGraph:
    return Planner(make_config(targets, **settings)).build_graph(list(modules))


def variant_names(graph: ModuleGraph, name: str) -> List[str]:
    return [node.variant_name for node in graph.variants(name)]


class RecordingContext:
    """Stand-in for a module context that only records what stages report."""

    def __init__(self, *, host: bool = False, allow_missing_dependencies: bool = False) -> None:
        self.host = host
        self.module_name = "libtest"
        self.config = SimpleNamespace(allow_missing_dependencies=allow_missing_dependencies)
        self.errors: List[Tuple[str, str]] = []
        self.missing: List[str] = []

    def property_error(self, prop: str, message: str) -> None:
        self.errors.append((prop, message))

    def compatibility_error(self, other: str, message: str) -> None:
        self.errors.append((other, message))

    def add_missing_dependencies(self, names: Iterable[str]) -> None:
        self.missing.extend(names)
