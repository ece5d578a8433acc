"""Variant expansion: arch, sanitizer, link-mode and per-source test splits."""
from __future__ import annotations

from pathlib import PurePosixPath
from typing import TYPE_CHECKING, List, Sequence, Tuple
import logging

from .deps import REUSE_OBJECTS_DEP, last_unique_elements
from .compilers import LibraryCompiler
from .features import SANITIZER_VARIATIONS
from .linkers import BaseLinker, BinaryLinker, LibraryLinker, TestLinker
from .module import DEVICE_ONLY, HOST_ONLY, MULTILIB_FIRST, Module, ModuleContext
from .graph import ModuleNode
from .toolchains import Target

if TYPE_CHECKING:
    from .config import PlanConfig, PlanEnvironment
    from .graph import ModuleGraph
    from .properties import ModuleProperties

logger = logging.getLogger(__name__)

ARCH_AXIS = "arch"
SANITIZE_AXIS = "sanitize"
LINK_AXIS = "link"
TEST_PER_SRC_AXIS = "test_per_src"


def supported_targets(config: "PlanConfig", module: Module) -> List[Target]:
    """Targets a module is built for, in configuration order."""

    props = module.properties
    if module.host_or_device == HOST_ONLY:
        device_ok, host_ok = False, True
    elif module.host_or_device == DEVICE_ONLY:
        device_ok, host_ok = True, False
    else:
        device_ok = props.device_supported is not False
        host_ok = props.host_supported is True

    targets = [target for target in config.targets if (target.device and device_ok) or (target.host and host_ok)]
    if module.multilib == MULTILIB_FIRST:
        targets = [target for target in targets if target.native]
    return targets


def arch_mutator(env: "PlanEnvironment", graph: "ModuleGraph", node: ModuleNode) -> None:
    config = env.config
    module = node.logic
    if not isinstance(module, Module):
        return

    targets = supported_targets(config, module)
    if not targets:
        logger.debug("%s: no supported targets, disabling", module.name)
        module.state.disabled = True
        return

    siblings = graph.create_variations(node, ARCH_AXIS, [target.name for target in targets], clone=Module.clone)
    for sibling, target in zip(siblings, targets):
        variant = sibling.logic
        variant.target = target
        variant.toolchain = env.toolchains.for_target(target)
        if variant.toolchain is None:
            ModuleContext(variant, sibling, config).module_error(
                f"Toolchain not found for {target.os} arch {target.arch!r}"
            )


def enabled_sanitizers(ctx: ModuleContext) -> Tuple[str, ...]:
    """Sanitizers a variant asks for itself, before any propagation."""

    sanitize = ctx.properties.sanitize
    if ctx.module.sanitize is None or sanitize.never or ctx.windows:
        return ()
    linker = ctx.module.linker
    if isinstance(linker, BinaryLinker) and linker.build_static(ctx):
        return ()
    return tuple(name for name in SANITIZER_VARIATIONS if getattr(sanitize, name))


def link_modes(ctx: ModuleContext) -> List[bool]:
    """The values of ``static`` a variant will be planned with."""

    linker = ctx.module.linker
    if not isinstance(linker, BaseLinker):
        return [False]
    modes: List[bool] = []
    if linker.build_static(ctx):
        modes.append(True)
    if linker.build_shared(ctx):
        modes.append(False)
    return modes or [False]


def declared_dependency_names(config: "PlanConfig", node: ModuleNode) -> List[str]:
    """Every dependency name a variant would declare, across its link modes.

    The stages run on throwaway clones so nothing leaks into the real
    variant's state or error list.
    """

    module: Module = node.logic
    names: List[str] = []
    for static in link_modes(ModuleContext(module, node, config)):
        probe = module.clone()
        probe.state.static = static
        probe_ctx = ModuleContext(probe, node, config)
        probe.begin(probe_ctx)
        names.extend(probe.collect_deps(probe_ctx).names())
    return last_unique_elements(names)


def sanitizer_deps_mutator(env: "PlanEnvironment", graph: "ModuleGraph", node: ModuleNode) -> None:
    """Mark everything a sanitized variant links against as a sanitizer dependency."""

    config = env.config
    module = node.logic
    if not isinstance(module, Module) or not module.enabled or module.failed:
        return
    sanitizers = enabled_sanitizers(ModuleContext(module, node, config))
    if not sanitizers:
        return

    root = module.clone()
    root.state.sanitizers = sanitizers
    root_node = ModuleNode(name=node.name, logic=root, variant=node.variant)

    visited: set[int] = {id(node)}
    pending: List[ModuleNode] = [root_node]
    while pending:
        current = pending.pop()
        for name in declared_dependency_names(config, current):
            target = graph.find_variant(name, current)
            if target is None or id(target) in visited:
                continue
            visited.add(id(target))
            dependency = target.logic
            if not isinstance(dependency, Module) or dependency.sanitize is None:
                continue
            if dependency.properties.sanitize.never or not dependency.enabled or dependency.failed:
                continue
            marked = last_unique_elements([*dependency.state.sanitize_dep, *sanitizers])
            dependency.state.sanitize_dep = tuple(marked)
            logger.debug("%s: sanitizer dependency of %s (%s)", name, module.name, ", ".join(sanitizers))
            pending.append(target)


def sanitizer_mutator(env: "PlanEnvironment", graph: "ModuleGraph", node: ModuleNode) -> None:
    config = env.config
    module = node.logic
    if not isinstance(module, Module) or not module.enabled or module.failed:
        return

    ctx = ModuleContext(module, node, config)
    own = enabled_sanitizers(ctx)
    if own:
        variation = "_".join(SANITIZER_VARIATIONS[name] for name in own)
        (sibling,) = graph.create_variations(node, SANITIZE_AXIS, [variation], clone=Module.clone)
        sibling.logic.state.sanitizers = own
        sibling.logic.state.sanitize_dep = ()
        return

    marked = sorted(module.state.sanitize_dep)
    if not marked:
        return
    names = ["", *(SANITIZER_VARIATIONS[name] for name in marked)]
    siblings = graph.create_variations(node, SANITIZE_AXIS, names, clone=Module.clone)
    for sibling, sanitizer in zip(siblings, [None, *marked]):
        state = sibling.logic.state
        state.sanitize_dep = ()
        state.sanitizers = (sanitizer,) if sanitizer else ()
        # Sanitized device libraries install next to the data partition.
        state.in_data = bool(sanitizer) and ctx.device


def _reuses_static_objects(props: "ModuleProperties") -> bool:
    if props.static.srcs or props.shared.srcs:
        return False
    return props.static.enabled is not False and props.shared.enabled is not False


def linkage_mutator(env: "PlanEnvironment", graph: "ModuleGraph", node: ModuleNode) -> None:
    config = env.config
    module = node.logic
    if not isinstance(module, Module) or not isinstance(module.linker, BaseLinker):
        return
    if not module.enabled or module.failed:
        return

    ctx = ModuleContext(module, node, config)
    linker = module.linker
    props = module.properties
    build_static = linker.build_static(ctx)
    build_shared = linker.build_shared(ctx)
    if isinstance(linker, LibraryLinker) and props.static.enabled is False and props.shared.enabled is False:
        build_static = build_shared = False

    if build_static and build_shared:
        static_node, shared_node = graph.create_variations(node, LINK_AXIS, ["static", "shared"], clone=Module.clone)
        static_node.logic.state.static = True
        shared_node.logic.state.static = False
        if isinstance(module.compiler, LibraryCompiler) and _reuses_static_objects(props):
            # The shared variant links the objects the static variant compiles,
            # generated sources included.
            shared = shared_node.logic
            shared.properties = shared.properties.with_changes(srcs=(), generated_sources=())
            graph.add_inter_variant_dependency(REUSE_OBJECTS_DEP, shared_node, static_node)
    elif build_static:
        (static_node,) = graph.create_variations(node, LINK_AXIS, ["static"], clone=Module.clone)
        static_node.logic.state.static = True
    elif build_shared:
        (shared_node,) = graph.create_variations(node, LINK_AXIS, ["shared"], clone=Module.clone)
        shared_node.logic.state.static = False
    else:
        ctx.property_error("static.enabled", f"library '{module.name}' is neither static nor shared")


def _test_name(source: str) -> str:
    return PurePosixPath(source).stem


def test_per_src_mutator(env: "PlanEnvironment", graph: "ModuleGraph", node: ModuleNode) -> None:
    config = env.config
    module = node.logic
    if not isinstance(module, Module) or not isinstance(module.linker, TestLinker):
        return
    props = module.properties
    if not props.test_per_src or not module.enabled or module.failed:
        return

    ctx = ModuleContext(module, node, config)
    sources: Sequence[str] = props.srcs
    if not sources:
        ctx.property_error("test_per_src", "requires at least one source in srcs")
        return
    names = [_test_name(source) for source in sources]
    duplicates = sorted({name for name in names if names.count(name) > 1})
    if duplicates:
        ctx.property_error("test_per_src", "sources share a base name: " + ", ".join(duplicates))
        return

    siblings = graph.create_variations(node, TEST_PER_SRC_AXIS, names, clone=Module.clone)
    for sibling, source, name in zip(siblings, sources, names):
        variant = sibling.logic
        variant.properties = variant.properties.with_changes(srcs=(source,), stem=name)


__all__ = [
    "ARCH_AXIS",
    "LINK_AXIS",
    "SANITIZE_AXIS",
    "TEST_PER_SRC_AXIS",
    "arch_mutator",
    "declared_dependency_names",
    "enabled_sanitizers",
    "link_modes",
    "linkage_mutator",
    "sanitizer_deps_mutator",
    "sanitizer_mutator",
    "supported_targets",
    "test_per_src_mutator",
]
