"""Module records, the per-variant context and the deps/generate pipeline."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Tuple
import logging

from .compilers import BaseCompiler, CompileAction, LibraryCompiler, objects_of
from .deps import Deps, add_dependency_edges, classify
from .errors import CompatibilityError, ConfigurationError, PlanningError
from .features import Sanitize, Stl
from .flags import Flags
from .linkers import (
    ArtifactKind,
    BaseInstaller,
    BenchmarkLinker,
    BinaryLinker,
    LibraryInstaller,
    LibraryLinker,
    LinkPlan,
    NdkPrebuiltLibraryLinker,
    NdkPrebuiltObjectLinker,
    NdkPrebuiltStlLinker,
    ObjectLinker,
    TestInstaller,
    TestLinker,
    ToolchainLibraryLinker,
    link_plan_to_dict,
)
from .properties import ModuleProperties
from .resolver import resolve
from .toolchains import Target, ToolchainDefinition

if TYPE_CHECKING:
    from .config import PlanConfig, PlanEnvironment
    from .graph import ModuleGraph, ModuleNode

logger = logging.getLogger(__name__)

HOST_AND_DEVICE = "host_and_device"
HOST_ONLY = "host"
DEVICE_ONLY = "device"

MULTILIB_BOTH = "both"
MULTILIB_FIRST = "first"


@dataclass(slots=True)
class VariantState:
    """Derived per-variant state, written only while expanding and composing."""

    static: bool = False
    static_binary: bool = False
    sanitizers: Tuple[str, ...] = ()
    sanitize_dep: Tuple[str, ...] = ()
    in_data: bool = False
    disabled: bool = False
    run_paths: Tuple[str, ...] = ()
    selected_stl: str = ""

    def clone(self) -> "VariantState":
        return replace(self)


@dataclass(slots=True)
class ArtifactDescriptor:
    """The planned output of one module variant."""

    module: str
    variant: str
    target: str
    flags: Flags
    compile_actions: List[CompileAction]
    objects: List[PurePosixPath]
    link: LinkPlan
    install_path: PurePosixPath | None = None
    missing_dependencies: Tuple[str, ...] = ()

    @property
    def kind(self) -> ArtifactKind:
        return self.link.kind

    @property
    def output(self) -> PurePosixPath:
        return self.link.output

    @property
    def exported_flags(self) -> Tuple[str, ...]:
        return self.link.exported_flags

    @property
    def archive_members(self) -> List[PurePosixPath]:
        return self.link.archive_members

    @property
    def whole_static_missing_deps(self) -> Tuple[str, ...]:
        return self.link.whole_static_missing_deps

    def as_dict(self) -> Dict[str, Any]:
        return {
            "module": self.module,
            "variant": self.variant,
            "target": self.target,
            "kind": self.kind.value,
            "output": str(self.output),
            "install_path": str(self.install_path) if self.install_path else None,
            "flags": self.flags.as_dict(),
            "compile": [action.as_dict() for action in self.compile_actions],
            "objects": [str(path) for path in self.objects],
            "link": link_plan_to_dict(self.link),
            "exported_flags": list(self.exported_flags),
            "missing_dependencies": list(self.missing_dependencies),
        }


@dataclass(slots=True, eq=False)
class Module:
    """One cc module variant: immutable properties plus per-role capabilities.

    Capabilities are stateless; everything a variant learns while it is
    expanded and planned lives in ``state``, ``errors`` and ``artifact``.
    """

    properties: ModuleProperties
    compiler: BaseCompiler | None = None
    linker: Any = None
    installer: BaseInstaller | None = None
    stl: Stl | None = None
    sanitize: Sanitize | None = None
    features: Tuple[Any, ...] = ()
    host_or_device: str = HOST_AND_DEVICE
    multilib: str = MULTILIB_BOTH
    target: Target | None = None
    toolchain: ToolchainDefinition | None = None
    state: VariantState = field(default_factory=VariantState)
    artifact: ArtifactDescriptor | None = None
    reuse_objects: Tuple[PurePosixPath, ...] = ()
    errors: List[PlanningError] = field(default_factory=list)
    missing_dependencies: List[str] = field(default_factory=list)

    @property
    def name(self) -> str:
        return self.properties.name

    @property
    def enabled(self) -> bool:
        return not self.state.disabled and self.properties.enabled is not False

    @property
    def failed(self) -> bool:
        return bool(self.errors)

    @property
    def is_static_library(self) -> bool:
        return isinstance(self.linker, LibraryLinker) and self.state.static

    def clone(self) -> "Module":
        return replace(
            self,
            state=self.state.clone(),
            artifact=None,
            reuse_objects=(),
            errors=list(self.errors),
            missing_dependencies=list(self.missing_dependencies),
        )

    def stages(self) -> List[Any]:
        """Capabilities in the fixed stage order used by every pipeline step."""

        stages: List[Any] = [self.compiler, self.linker, self.stl, self.sanitize, *self.features]
        return [stage for stage in stages if stage is not None]

    def use_clang(self, ctx: "ModuleContext") -> bool:
        if self.toolchain is None or self.toolchain.clang_supported is False:
            return False
        if self.properties.clang is not None:
            return self.properties.clang
        return ctx.host or (ctx.device and ctx.config.device_uses_clang)

    def begin(self, ctx: "ModuleContext") -> None:
        for stage in self.stages():
            stage.begin(ctx)

    def collect_deps(self, ctx: "ModuleContext") -> Deps:
        deps = Deps()
        for stage in self.stages():
            deps = stage.deps(ctx, deps)
        return deps

    def compose_flags(self, ctx: "ModuleContext") -> Flags:
        flags = Flags(toolchain=self.toolchain, clang=self.use_clang(ctx))
        for stage in self.stages():
            flags = stage.flags(ctx, flags)
        return flags

    def generate(self, ctx: "ModuleContext", graph: "ModuleGraph", node: "ModuleNode") -> None:
        flags = self.compose_flags(ctx)
        if ctx.failed:
            return

        flags = flags.without_illegal_flags()

        deps = resolve(ctx, graph, node)
        if ctx.failed:
            return

        no_override = "${noOverrideClangGlobalCflags}" if flags.clang else "${noOverrideGlobalCflags}"
        flags = flags.extend(cflags=[*deps.cflags, no_override])

        actions: List[CompileAction] = []
        if self.compiler is not None:
            actions = self.compiler.compile(ctx, flags, deps)
            if ctx.failed:
                return
        objects = objects_of(actions)

        plan = self.linker.link(ctx, flags, deps, objects)
        if ctx.failed:
            return

        install_path = None
        if self.installer is not None and self.linker.installable(ctx):
            install_path = self.installer.install_path(ctx, plan.output)

        self.artifact = ArtifactDescriptor(
            module=self.name,
            variant=node.variant_name,
            target=self.target.name,
            flags=flags,
            compile_actions=actions,
            objects=objects,
            link=plan,
            install_path=install_path,
            missing_dependencies=tuple(self.missing_dependencies),
        )
        logger.debug("%s [%s]: planned %s %s", self.name, node.variant_name, plan.kind.value, plan.output)


class ModuleContext:
    """Read access to one variant plus the error sink for its stages."""

    def __init__(self, module: Module, node: "ModuleNode", config: "PlanConfig") -> None:
        self.module = module
        self.node = node
        self.config = config

    @property
    def module_name(self) -> str:
        return self.module.name

    @property
    def properties(self) -> ModuleProperties:
        return self.module.properties

    @property
    def state(self) -> VariantState:
        return self.module.state

    @property
    def target(self) -> Target:
        return self.module.target

    @property
    def toolchain(self) -> ToolchainDefinition:
        return self.module.toolchain

    @property
    def device(self) -> bool:
        return self.target.device

    @property
    def host(self) -> bool:
        return self.target.host

    @property
    def darwin(self) -> bool:
        return self.target.os == "darwin"

    @property
    def windows(self) -> bool:
        return self.target.os == "windows"

    @property
    def sdk(self) -> bool:
        return self.device and bool(self.properties.sdk_version)

    @property
    def sdk_version(self) -> str:
        return self.properties.sdk_version if self.device else ""

    @property
    def static(self) -> bool:
        return self.state.static

    @property
    def static_binary(self) -> bool:
        return self.state.static_binary

    @property
    def no_default_compiler_flags(self) -> bool:
        return self.properties.no_default_compiler_flags

    @property
    def module_dir(self) -> PurePosixPath:
        return PurePosixPath(self.properties.module_dir or ".")

    @property
    def out_dir(self) -> PurePosixPath:
        return intermediates_dir(self.config, self.properties) / (self.node.variant_name or "common")

    @property
    def gen_dir(self) -> PurePosixPath:
        return self.out_dir / "gen"

    @property
    def obj_dir(self) -> PurePosixPath:
        return self.out_dir / "obj"

    def install_root(self, data: bool) -> PurePosixPath:
        root = PurePosixPath(self.config.out_dir)
        if self.device:
            return root / "target" / ("data" if data else "system")
        return root / "host" / f"{self.target.os}-x86"

    @property
    def failed(self) -> bool:
        return self.module.failed

    @property
    def missing_dependencies(self) -> List[str]:
        return list(self.module.missing_dependencies)

    def disable(self) -> None:
        self.module.state.disabled = True

    def property_error(self, prop: str, message: str) -> None:
        self._record(ConfigurationError(self.module_name, message, property_name=prop))

    def module_error(self, message: str) -> None:
        self._record(ConfigurationError(self.module_name, message))

    def compatibility_error(self, other: str, message: str) -> None:
        self._record(CompatibilityError(self.module_name, other, message))

    def add_missing_dependencies(self, names: Iterable[str]) -> None:
        for name in names:
            if name not in self.module.missing_dependencies:
                self.module.missing_dependencies.append(name)

    def _record(self, error: PlanningError) -> None:
        logger.debug("%s [%s]: %s", self.module_name, self.node.variant_name, error)
        self.module.errors.append(error)


def intermediates_dir(config: "PlanConfig", properties: ModuleProperties) -> PurePosixPath:
    return PurePosixPath(config.out_dir) / ".intermediates" / (properties.module_dir or ".") / properties.name


@dataclass(slots=True, eq=False)
class GeneratedModule:
    """A genrule or gensrcs module; only its output paths are planned here."""

    properties: ModuleProperties
    gen_dir: PurePosixPath
    per_source: bool = False

    @property
    def name(self) -> str:
        return self.properties.name

    def clone(self) -> "GeneratedModule":
        return replace(self)

    def generated_files(self) -> List[PurePosixPath]:
        if self.per_source:
            extension = self.properties.output_extension or ".cpp"
            if not extension.startswith("."):
                extension = "." + extension
            return [(self.gen_dir / src).with_suffix(extension) for src in self.properties.srcs]
        return [self.gen_dir / out for out in self.properties.out]

    def generated_header_dir(self) -> PurePosixPath:
        if self.properties.header_dir:
            return self.gen_dir / self.properties.header_dir
        return self.gen_dir


def deps_mutator(env: "PlanEnvironment", graph: "ModuleGraph", node: "ModuleNode") -> None:
    """Run ``begin`` and the deps stages, then declare the classified edges."""

    config = env.config
    module = node.logic
    if not isinstance(module, Module) or not module.enabled or module.failed:
        return
    ctx = ModuleContext(module, node, config)
    module.begin(ctx)
    if not module.enabled:
        logger.debug("%s [%s]: disabled", module.name, node.variant_name)
        return
    edges = classify(ctx, module.collect_deps(ctx))
    add_dependency_edges(graph, node, ctx, edges)


def generate_mutator(env: "PlanEnvironment", graph: "ModuleGraph", node: "ModuleNode") -> None:
    module = node.logic
    if not isinstance(module, Module) or not module.enabled or module.failed:
        return
    module.generate(ModuleContext(module, node, env.config), graph, node)


def _properties_with_default_clang(properties: ModuleProperties, clang: bool) -> ModuleProperties:
    if properties.clang is None:
        return properties.with_changes(clang=clang)
    return properties


def new_library(properties: ModuleProperties, *, host_or_device: str, static: bool, shared: bool) -> Module:
    linker = LibraryLinker(static=static, shared=shared)
    return Module(
        properties=properties,
        compiler=LibraryCompiler(),
        linker=linker,
        installer=LibraryInstaller(dir="lib", dir64="lib64"),
        stl=Stl(),
        sanitize=Sanitize(),
        host_or_device=host_or_device,
    )


def new_object(properties: ModuleProperties) -> Module:
    return Module(
        properties=properties,
        compiler=BaseCompiler(),
        linker=ObjectLinker(),
        host_or_device=DEVICE_ONLY,
    )


def new_binary(properties: ModuleProperties, *, host_or_device: str) -> Module:
    return Module(
        properties=properties,
        compiler=BaseCompiler(),
        linker=BinaryLinker(),
        installer=BaseInstaller(dir="bin"),
        stl=Stl(),
        sanitize=Sanitize(),
        host_or_device=host_or_device,
        multilib=MULTILIB_FIRST,
    )


def new_test(properties: ModuleProperties, *, host_or_device: str) -> Module:
    return Module(
        properties=properties,
        compiler=BaseCompiler(),
        linker=TestLinker(),
        installer=TestInstaller(dir="nativetest", dir64="nativetest64", data=True),
        stl=Stl(),
        sanitize=Sanitize(),
        host_or_device=host_or_device,
    )


def new_benchmark(properties: ModuleProperties, *, host_or_device: str) -> Module:
    return Module(
        properties=properties,
        compiler=BaseCompiler(),
        linker=BenchmarkLinker(),
        installer=BaseInstaller(dir="nativetest", dir64="nativetest64", data=True),
        stl=Stl(),
        sanitize=Sanitize(),
        host_or_device=host_or_device,
        multilib=MULTILIB_FIRST,
    )


def new_toolchain_library(properties: ModuleProperties) -> Module:
    return Module(
        properties=_properties_with_default_clang(properties, False),
        compiler=BaseCompiler(),
        linker=ToolchainLibraryLinker(),
        host_or_device=DEVICE_ONLY,
    )


def new_ndk_prebuilt_object(properties: ModuleProperties) -> Module:
    return Module(properties=properties, linker=NdkPrebuiltObjectLinker(), host_or_device=DEVICE_ONLY)


def new_ndk_prebuilt_library(properties: ModuleProperties) -> Module:
    return Module(properties=properties, linker=NdkPrebuiltLibraryLinker(), host_or_device=DEVICE_ONLY)


def new_ndk_prebuilt_stl(properties: ModuleProperties, *, static: bool) -> Module:
    return Module(
        properties=properties,
        linker=NdkPrebuiltStlLinker(static=static, shared=not static),
        host_or_device=DEVICE_ONLY,
    )


def new_generated(properties: ModuleProperties, config: "PlanConfig", *, per_source: bool) -> GeneratedModule:
    return GeneratedModule(
        properties=properties,
        gen_dir=intermediates_dir(config, properties) / "gen",
        per_source=per_source,
    )


__all__ = [
    "ArtifactDescriptor",
    "DEVICE_ONLY",
    "GeneratedModule",
    "HOST_AND_DEVICE",
    "HOST_ONLY",
    "MULTILIB_BOTH",
    "MULTILIB_FIRST",
    "Module",
    "ModuleContext",
    "VariantState",
    "deps_mutator",
    "generate_mutator",
    "intermediates_dir",
    "new_benchmark",
    "new_binary",
    "new_generated",
    "new_library",
    "new_ndk_prebuilt_library",
    "new_ndk_prebuilt_object",
    "new_ndk_prebuilt_stl",
    "new_object",
    "new_test",
    "new_toolchain_library",
]
