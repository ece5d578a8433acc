"""Explicit registry of module types and of the ordered expansion/planning passes."""
from __future__ import annotations

from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Any, Callable, Dict, Iterable, List, Mapping, Tuple

from .module import (
    HOST_AND_DEVICE,
    HOST_ONLY,
    deps_mutator,
    generate_mutator,
    new_benchmark,
    new_binary,
    new_generated,
    new_library,
    new_ndk_prebuilt_library,
    new_ndk_prebuilt_object,
    new_ndk_prebuilt_stl,
    new_object,
    new_test,
    new_toolchain_library,
)
from .properties import ModuleProperties
from .variants import (
    arch_mutator,
    linkage_mutator,
    sanitizer_deps_mutator,
    sanitizer_mutator,
    test_per_src_mutator,
)

if TYPE_CHECKING:
    from .config import PlanConfig, PlanEnvironment
    from .graph import ModuleGraph, ModuleNode

ModuleFactory = Callable[[ModuleProperties, "PlanConfig"], Any]
MutatorCallback = Callable[["PlanEnvironment", "ModuleGraph", "ModuleNode"], None]


@dataclass(frozen=True, slots=True)
class Mutator:
    name: str
    callback: MutatorCallback
    top_down: bool = False


def _cc(factory: Callable[..., Any], **options: Any) -> ModuleFactory:
    def create(properties: ModuleProperties, config: "PlanConfig") -> Any:
        return factory(properties, **options)

    return create


def _builtin_types() -> Dict[str, ModuleFactory]:
    return {
        "cc_library_static": _cc(new_library, host_or_device=HOST_AND_DEVICE, static=True, shared=False),
        "cc_library_shared": _cc(new_library, host_or_device=HOST_AND_DEVICE, static=False, shared=True),
        "cc_library": _cc(new_library, host_or_device=HOST_AND_DEVICE, static=True, shared=True),
        "cc_library_host_static": _cc(new_library, host_or_device=HOST_ONLY, static=True, shared=False),
        "cc_library_host_shared": _cc(new_library, host_or_device=HOST_ONLY, static=False, shared=True),
        "cc_object": _cc(new_object),
        "cc_binary": _cc(new_binary, host_or_device=HOST_AND_DEVICE),
        "cc_binary_host": _cc(new_binary, host_or_device=HOST_ONLY),
        "cc_test": _cc(new_test, host_or_device=HOST_AND_DEVICE),
        "cc_test_host": _cc(new_test, host_or_device=HOST_ONLY),
        "cc_benchmark": _cc(new_benchmark, host_or_device=HOST_AND_DEVICE),
        "cc_benchmark_host": _cc(new_benchmark, host_or_device=HOST_ONLY),
        "toolchain_library": _cc(new_toolchain_library),
        "ndk_prebuilt_object": _cc(new_ndk_prebuilt_object),
        "ndk_prebuilt_library": _cc(new_ndk_prebuilt_library),
        "ndk_prebuilt_static_stl": _cc(new_ndk_prebuilt_stl, static=True),
        "ndk_prebuilt_shared_stl": _cc(new_ndk_prebuilt_stl, static=False),
        "genrule": partial(new_generated, per_source=False),
        "gensrcs": partial(new_generated, per_source=True),
    }


DEFAULT_MUTATORS: Tuple[Mutator, ...] = (
    Mutator("arch", arch_mutator),
    Mutator("sanitize_deps", sanitizer_deps_mutator, top_down=True),
    Mutator("sanitize", sanitizer_mutator),
    Mutator("link", linkage_mutator),
    Mutator("test_per_src", test_per_src_mutator),
    Mutator("deps", deps_mutator),
    Mutator("generate", generate_mutator),
)


class ModuleTypeRegistry:
    """Maps module type names to factories and holds the pass order.

    Nothing registers itself at import time; callers start from
    :meth:`with_builtins` and add or override types explicitly.
    """

    def __init__(
        self,
        types: Mapping[str, ModuleFactory] | None = None,
        mutators: Iterable[Mutator] = DEFAULT_MUTATORS,
    ) -> None:
        self._types: Dict[str, ModuleFactory] = dict(types or {})
        self._mutators: List[Mutator] = list(mutators)

    @classmethod
    def with_builtins(cls) -> "ModuleTypeRegistry":
        return cls(_builtin_types())

    def register(self, name: str, factory: ModuleFactory) -> None:
        self._types[name] = factory

    def create(self, properties: ModuleProperties, config: "PlanConfig") -> Any:
        factory = self._types.get(properties.module_type)
        if factory is None:
            available = ", ".join(sorted(self._types)) or "<none>"
            raise KeyError(
                f"Module '{properties.name}' has unknown type '{properties.module_type}'. Available types: {available}"
            )
        return factory(properties, config)

    def types(self) -> Iterable[str]:
        return self._types.keys()

    @property
    def mutators(self) -> Tuple[Mutator, ...]:
        return tuple(self._mutators)


def default_registry() -> ModuleTypeRegistry:
    return ModuleTypeRegistry.with_builtins()


__all__ = ["DEFAULT_MUTATORS", "ModuleTypeRegistry", "Mutator", "default_registry"]
