"""Link planning for every module type, plus stripping, flag export and install paths."""
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Sequence, Tuple
import logging

from .deps import Deps, filter_list
from .flags import Flags, check_bad_host_ldlibs, check_bad_linker_flags

if TYPE_CHECKING:
    from .module import ModuleContext
    from .resolver import PathDeps
    from .toolchains import ToolchainDefinition

logger = logging.getLogger(__name__)

STATIC_LIBRARY_EXTENSION = ".a"
OBJECT_EXTENSION = ".o"

# Libraries with circular references that a static binary links as a group.
STATIC_GROUP_LIBS = ("libc", "libc_nomalloc", "libcompiler_rt")

NDK_ABIS: Dict[str, str] = {
    "arm": "armeabi-v7a",
    "arm64": "arm64-v8a",
    "x86": "x86",
    "x86_64": "x86_64",
}


class ArtifactKind(str, Enum):
    STATIC_ARCHIVE = "static_archive"
    SHARED_OBJECT = "shared_object"
    EXECUTABLE = "executable"
    PARTIAL_OBJECT = "partial_object"
    PASSTHROUGH = "passthrough"


@dataclass(frozen=True, slots=True)
class PostLinkStep:
    """A transform applied to the linked output before it becomes the final artifact."""

    action: str
    input: PurePosixPath
    output: PurePosixPath
    options: Dict[str, Any] = field(default_factory=dict)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "action": self.action,
            "input": str(self.input),
            "output": str(self.output),
            "options": dict(self.options),
        }


@dataclass(slots=True)
class LinkPlan:
    """Everything the action executor needs to produce one variant's artifact.

    ``output`` is the path consumers see.  ``link_output`` is what the link
    step itself writes; it differs from ``output`` when post-link steps run and
    is ``None`` when there is no link step at all.
    """

    kind: ArtifactKind
    output: PurePosixPath
    link_output: PurePosixPath | None = None
    inputs: List[PurePosixPath] = field(default_factory=list)
    shared_libs: List[PurePosixPath] = field(default_factory=list)
    static_libs: List[PurePosixPath] = field(default_factory=list)
    late_static_libs: List[PurePosixPath] = field(default_factory=list)
    whole_static_libs: List[PurePosixPath] = field(default_factory=list)
    group_late_static_libs: bool = False
    crt_begin: PurePosixPath | None = None
    crt_end: PurePosixPath | None = None
    linker_deps: List[PurePosixPath] = field(default_factory=list)
    ldflags: Tuple[str, ...] = ()
    post_link: List[PostLinkStep] = field(default_factory=list)
    prebuilt: PurePosixPath | None = None
    archive_members: List[PurePosixPath] = field(default_factory=list)
    exported_flags: Tuple[str, ...] = ()
    whole_static_missing_deps: Tuple[str, ...] = ()


def _paths(values: Iterable[PurePosixPath]) -> List[str]:
    return [str(value) for value in values]


def link_plan_to_dict(plan: LinkPlan) -> Dict[str, Any]:
    return {
        "kind": plan.kind.value,
        "output": str(plan.output),
        "link_output": str(plan.link_output) if plan.link_output else None,
        "inputs": _paths(plan.inputs),
        "shared_libs": _paths(plan.shared_libs),
        "static_libs": _paths(plan.static_libs),
        "late_static_libs": _paths(plan.late_static_libs),
        "whole_static_libs": _paths(plan.whole_static_libs),
        "group_late_static_libs": plan.group_late_static_libs,
        "crt_begin": str(plan.crt_begin) if plan.crt_begin else None,
        "crt_end": str(plan.crt_end) if plan.crt_end else None,
        "linker_deps": _paths(plan.linker_deps),
        "ldflags": list(plan.ldflags),
        "post_link": [step.as_dict() for step in plan.post_link],
        "prebuilt": str(plan.prebuilt) if plan.prebuilt else None,
    }


def chain_post_link(
    final: PurePosixPath,
    out_dir: PurePosixPath,
    file_name: str,
    steps: Sequence[Tuple[str, str, Dict[str, Any]]],
) -> Tuple[PurePosixPath, List[PostLinkStep]]:
    """Thread ``steps`` between the link output and ``final``, in the given order.

    Each step reads from ``<out_dir>/<dirname>/<file_name>``.  Returns the
    path the link step has to write and the planned steps.
    """

    current = final
    planned: List[PostLinkStep] = []
    for action, dirname, options in reversed(steps):
        source = out_dir / dirname / file_name
        planned.append(PostLinkStep(action=action, input=source, output=current, options=options))
        current = source
    planned.reverse()
    return current, planned


class Stripper:
    def needs_strip(self, ctx: "ModuleContext") -> bool:
        return not ctx.config.embedded_in_make and not ctx.properties.strip.none

    def step(self, ctx: "ModuleContext") -> Tuple[str, str, Dict[str, Any]]:
        if ctx.darwin:
            return ("darwin_strip", "unstripped", {})
        options = {
            "keep_symbols": ctx.properties.strip.keep_symbols,
            "add_gnu_debuglink": True,
        }
        return ("strip", "unstripped", options)


class FlagExporter:
    """Collects the flags a library hands to the modules that link against it."""

    def exported_flags(self, ctx: "ModuleContext", prefix: str, reexported: Sequence[str]) -> Tuple[str, ...]:
        flags: List[str] = []
        include_dirs = [ctx.module_dir / directory for directory in ctx.properties.export_include_dirs]
        if include_dirs:
            flags.append(" ".join(f"{prefix}{directory}" for directory in include_dirs))
        flags.extend(reexported)
        return tuple(flags)


class BaseLinker:
    """Shared handling of library lists, runtime libraries and linker flags."""

    def begin(self, ctx: "ModuleContext") -> None:
        if ctx.toolchain.is_64bit:
            ctx.state.run_paths = ("../lib64", "lib64")
        else:
            ctx.state.run_paths = ("../lib", "lib")

    def build_static(self, ctx: "ModuleContext") -> bool:
        return False

    def build_shared(self, ctx: "ModuleContext") -> bool:
        return False

    def installable(self, ctx: "ModuleContext") -> bool:
        return False

    def is_dependency_root(self) -> bool:
        return False

    def deps(self, ctx: "ModuleContext", deps: Deps) -> Deps:
        props = ctx.properties
        deps = deps.extended(
            whole_static_libs=props.whole_static_libs,
            static_libs=props.static_libs,
            shared_libs=props.shared_libs,
            reexport_static_lib_headers=props.export_static_lib_headers,
            reexport_shared_lib_headers=props.export_shared_lib_headers,
        )

        if not ctx.sdk and ctx.module_name != "libcompiler_rt-extras":
            deps = deps.extended(static_libs=["libcompiler_rt-extras"])

        if ctx.device:
            # libatomic and libgcc have to be last on the command line.
            late_static = ["libatomic"]
            if not props.no_libgcc:
                late_static.append("libgcc")
            deps = deps.extended(late_static_libs=late_static)

            if not ctx.static:
                if props.system_shared_libs is not None:
                    deps = deps.extended(late_shared_libs=props.system_shared_libs)
                elif not ctx.sdk:
                    deps = deps.extended(late_shared_libs=["libc", "libm"])

            if ctx.sdk:
                version = ctx.sdk_version
                deps = deps.extended(shared_libs=[f"ndk_libc.{version}", f"ndk_libm.{version}"])

        return deps

    def flags(self, ctx: "ModuleContext", flags: Flags) -> Flags:
        props = ctx.properties
        toolchain = flags.toolchain

        if not ctx.no_default_compiler_flags:
            if ctx.device and not props.allow_undefined_symbols:
                flags = flags.extend(ldflags=["-Wl,--no-undefined"])
            flags = flags.extend(ldflags=[toolchain.ldflags(clang=flags.clang)])
            if ctx.host:
                check_bad_host_ldlibs(ctx, "host_ldlibs", props.host_ldlibs)
                flags = flags.extend(ldflags=props.host_ldlibs)

        check_bad_linker_flags(ctx, "ldflags", props.ldflags)
        flags = flags.extend(ldflags=props.ldflags)

        if ctx.host and not ctx.static:
            rpath_prefix = "@loader_path/" if ctx.darwin else "\\$$ORIGIN/"
            flags = flags.extend(ldflags=[f"-Wl,-rpath,{rpath_prefix}{path}" for path in ctx.state.run_paths])

        return flags.extend(ldflags=[toolchain.toolchain_ldflags(clang=flags.clang)])

    def link(self, ctx: "ModuleContext", flags: Flags, deps: "PathDeps", objs: List[PurePosixPath]) -> LinkPlan:
        raise NotImplementedError


def _dynamic_link(
    plan: LinkPlan,
    deps: "PathDeps",
    objs: Sequence[PurePosixPath],
) -> LinkPlan:
    plan.inputs = list(objs)
    plan.shared_libs = [*deps.shared_libs, *deps.late_shared_libs]
    plan.static_libs = list(deps.static_libs)
    plan.late_static_libs = list(deps.late_static_libs)
    plan.whole_static_libs = list(deps.whole_static_libs)
    plan.crt_begin = deps.crt_begin
    plan.crt_end = deps.crt_end
    return plan


class LibraryLinker(BaseLinker):
    """Static and shared library linking."""

    def __init__(self, *, static: bool, shared: bool) -> None:
        self._build_static = static
        self._build_shared = shared
        self.stripper = Stripper()
        self.exporter = FlagExporter()

    def build_static(self, ctx: "ModuleContext") -> bool:
        return self._build_static

    def build_shared(self, ctx: "ModuleContext") -> bool:
        return self._build_shared

    def installable(self, ctx: "ModuleContext") -> bool:
        return not ctx.static

    def begin(self, ctx: "ModuleContext") -> None:
        super().begin(ctx)
        mode = ctx.properties.static if ctx.static else ctx.properties.shared
        if mode.enabled is False:
            ctx.disable()

    def flags(self, ctx: "ModuleContext", flags: Flags) -> Flags:
        flags = super().flags(ctx, flags)
        flags = flags.with_changes(nocrt=ctx.properties.nocrt)

        if not ctx.static:
            lib_name = ctx.module_name + flags.toolchain.shlib_suffix
            # GCC for devices treats -shared as -Bsymbolic.
            shared_flag = "-shared" if flags.clang or ctx.host else "-Wl,-shared"
            if ctx.device:
                flags = flags.extend(ldflags=["-nostdlib", "-Wl,--gc-sections"])
            if ctx.darwin:
                flags = flags.extend(ldflags=["-dynamiclib", "-single_module", f"-install_name @rpath/{lib_name}"])
            else:
                flags = flags.extend(ldflags=[shared_flag, f"-Wl,-soname,{lib_name}"])

        return flags

    def deps(self, ctx: "ModuleContext", deps: Deps) -> Deps:
        deps = super().deps(ctx, deps)
        if ctx.static:
            mode = ctx.properties.static
        else:
            mode = ctx.properties.shared
            if ctx.device and not ctx.properties.nocrt:
                if not ctx.sdk:
                    deps = deps.with_changes(crt_begin="crtbegin_so", crt_end="crtend_so")
                else:
                    version = ctx.sdk_version
                    deps = deps.with_changes(crt_begin=f"ndk_crtbegin_so.{version}", crt_end=f"ndk_crtend_so.{version}")
        return deps.extended(
            whole_static_libs=mode.whole_static_libs,
            static_libs=mode.static_libs,
            shared_libs=mode.shared_libs,
        )

    def link(self, ctx: "ModuleContext", flags: Flags, deps: "PathDeps", objs: List[PurePosixPath]) -> LinkPlan:
        objs = [*objs, *deps.obj_files]
        if ctx.static:
            plan = self.link_static(ctx, flags, deps, objs)
        else:
            plan = self.link_shared(ctx, flags, deps, objs)
        plan.exported_flags = self.exporter.exported_flags(ctx, "-I", deps.reexported_cflags)
        return plan

    def link_static(self, ctx: "ModuleContext", flags: Flags, deps: "PathDeps", objs: List[PurePosixPath]) -> LinkPlan:
        members = [*deps.whole_static_lib_objs, *objs]
        output = ctx.out_dir / (ctx.module_name + STATIC_LIBRARY_EXTENSION)
        return LinkPlan(
            kind=ArtifactKind.STATIC_ARCHIVE,
            output=output,
            link_output=output,
            inputs=list(members),
            ldflags=flags.ldflags,
            archive_members=members,
            whole_static_missing_deps=tuple(ctx.missing_dependencies),
        )

    def link_shared(self, ctx: "ModuleContext", flags: Flags, deps: "PathDeps", objs: List[PurePosixPath]) -> LinkPlan:
        props = ctx.properties
        ldflags = list(flags.ldflags)
        linker_deps: List[PurePosixPath] = []

        def source(path: str) -> PurePosixPath:
            return ctx.module_dir / path

        darwin_only = (
            ("unexported_symbols_list", props.unexported_symbols_list, "-Wl,-unexported_symbols_list,"),
            ("force_symbols_not_weak_list", props.force_symbols_not_weak_list, "-Wl,-force_symbols_not_weak_list,"),
            ("force_symbols_weak_list", props.force_symbols_weak_list, "-Wl,-force_symbols_weak_list,"),
        )
        if not ctx.darwin:
            if props.version_script:
                ldflags.append(f"-Wl,--version-script,{source(props.version_script)}")
                linker_deps.append(source(props.version_script))
            for prop, value, _ in darwin_only:
                if value:
                    ctx.property_error(prop, "Only supported on Darwin")
        else:
            if props.version_script:
                ctx.property_error("version_script", "Not supported on Darwin")
            for _, value, flag in darwin_only:
                if value:
                    ldflags.append(f"{flag}{source(value)}")
                    linker_deps.append(source(value))

        file_name = ctx.module_name + flags.toolchain.shlib_suffix
        output = ctx.out_dir / file_name
        steps = [self.stripper.step(ctx)] if self.stripper.needs_strip(ctx) else []
        link_output, post_link = chain_post_link(output, ctx.out_dir, file_name, steps)

        plan = LinkPlan(
            kind=ArtifactKind.SHARED_OBJECT,
            output=output,
            link_output=link_output,
            linker_deps=linker_deps,
            ldflags=tuple(ldflags),
            post_link=post_link,
        )
        return _dynamic_link(plan, deps, objs)


class ObjectLinker:
    """Partial linking of objects, used for crt objects."""

    def begin(self, ctx: "ModuleContext") -> None:
        return None

    def installable(self, ctx: "ModuleContext") -> bool:
        return False

    def is_dependency_root(self) -> bool:
        return False

    def deps(self, ctx: "ModuleContext", deps: Deps) -> Deps:
        return deps.extended(obj_files=ctx.properties.objs)

    def flags(self, ctx: "ModuleContext", flags: Flags) -> Flags:
        return flags.extend(ldflags=[flags.toolchain.toolchain_ldflags(clang=flags.clang)])

    def link(self, ctx: "ModuleContext", flags: Flags, deps: "PathDeps", objs: List[PurePosixPath]) -> LinkPlan:
        objs = [*objs, *deps.obj_files]
        if len(objs) == 1:
            return LinkPlan(kind=ArtifactKind.PARTIAL_OBJECT, output=objs[0], inputs=list(objs), ldflags=flags.ldflags)
        output = ctx.out_dir / (ctx.module_name + OBJECT_EXTENSION)
        return LinkPlan(
            kind=ArtifactKind.PARTIAL_OBJECT,
            output=output,
            link_output=output,
            inputs=list(objs),
            ldflags=flags.ldflags,
        )


class BinaryLinker(BaseLinker):
    """Executables, static or dynamic."""

    def __init__(self) -> None:
        self.stripper = Stripper()

    def _static_executable(self, ctx: "ModuleContext") -> bool:
        requested = ctx.properties.static_executable
        if ctx.host:
            if ctx.target.os != "linux":
                # Static executables are only supported on linux hosts.
                return False
            if requested is None:
                return ctx.config.host_static_binaries
        return bool(requested)

    def build_static(self, ctx: "ModuleContext") -> bool:
        return self._static_executable(ctx)

    def build_shared(self, ctx: "ModuleContext") -> bool:
        return not self._static_executable(ctx)

    def installable(self, ctx: "ModuleContext") -> bool:
        return True

    def is_dependency_root(self) -> bool:
        return True

    def stem(self, ctx: "ModuleContext") -> str:
        props = ctx.properties
        return (props.stem or ctx.module_name) + props.suffix

    def begin(self, ctx: "ModuleContext") -> None:
        super().begin(ctx)
        if self._static_executable(ctx):
            ctx.state.static = True
            ctx.state.static_binary = True

    def deps(self, ctx: "ModuleContext", deps: Deps) -> Deps:
        deps = super().deps(ctx, deps)
        static = ctx.static_binary

        if ctx.device:
            if not ctx.sdk:
                crt_begin = "crtbegin_static" if static else "crtbegin_dynamic"
                crt_end = "crtend_android"
            else:
                version = ctx.sdk_version
                crt_begin = f"ndk_crtbegin_static.{version}" if static else f"ndk_crtbegin_dynamic.{version}"
                crt_end = f"ndk_crtend_android.{version}"
            deps = deps.with_changes(crt_begin=crt_begin, crt_end=crt_end)

            if static:
                if "libc++_static" in deps.static_libs:
                    deps = deps.extended(static_libs=["libm", "libc", "libdl"])
                static_libs, group_libs = filter_list(deps.static_libs, STATIC_GROUP_LIBS)
                deps = deps.with_changes(
                    static_libs=static_libs,
                    late_static_libs=[*group_libs, *deps.late_static_libs],
                )

        if not static and "libc" in deps.static_libs:
            ctx.compatibility_error(
                "libc",
                "statically linking libc to dynamic executable, please remove libc "
                "from static_libs or set static_executable: true",
            )
        if static and "libc" in deps.shared_libs:
            ctx.compatibility_error(
                "libc",
                "dynamically linking libc to static executable, please move libc "
                "to static_libs or unset static_executable",
            )
        return deps

    def flags(self, ctx: "ModuleContext", flags: Flags) -> Flags:
        flags = super().flags(ctx, flags)
        static = ctx.static_binary

        if ctx.host and not static:
            flags = flags.extend(ldflags=["-pie"])
            if ctx.windows:
                flags = flags.extend(ldflags=["-Wl,-e_mainCRTStartup"])

        if not ctx.windows:
            flags = flags.extend(cflags=["-fpie"])

        if ctx.device:
            if static:
                # The x86 linker rejects -static together with -shared.
                if "-shared" not in flags.ldflags:
                    flags = flags.extend(ldflags=["-static"])
                flags = flags.extend(ldflags=["-nostdlib", "-Bstatic", "-Wl,--gc-sections"])
            else:
                if not flags.dynamic_linker:
                    linker = "/system/bin/linker" + ("64" if flags.toolchain.is_64bit else "")
                    flags = flags.with_changes(dynamic_linker=linker)
                flags = flags.extend(
                    ldflags=["-pie", "-nostdlib", "-Bdynamic", "-Wl,--gc-sections", "-Wl,-z,nocopyreloc"]
                )
        else:
            if static:
                flags = flags.extend(ldflags=["-static"])
            if ctx.darwin:
                flags = flags.extend(ldflags=["-Wl,-headerpad_max_install_names"])

        return flags

    def link(self, ctx: "ModuleContext", flags: Flags, deps: "PathDeps", objs: List[PurePosixPath]) -> LinkPlan:
        file_name = self.stem(ctx) + flags.toolchain.executable_suffix
        output = ctx.out_dir / file_name

        ldflags = list(flags.ldflags)
        if flags.dynamic_linker:
            ldflags.append(f"-Wl,-dynamic-linker,{flags.dynamic_linker}")

        steps = []
        if self.stripper.needs_strip(ctx):
            steps.append(self.stripper.step(ctx))
        if ctx.properties.prefix_symbols:
            steps.append(("prefix_symbols", "unprefixed", {"prefix": ctx.properties.prefix_symbols}))
        link_output, post_link = chain_post_link(output, ctx.out_dir, file_name, steps)

        plan = LinkPlan(
            kind=ArtifactKind.EXECUTABLE,
            output=output,
            link_output=link_output,
            ldflags=tuple(ldflags),
            post_link=post_link,
            group_late_static_libs=ctx.static_binary,
        )
        return _dynamic_link(plan, deps, objs)


class TestLinker(BinaryLinker):
    """Test executables, linked against gtest unless ``gtest`` is false."""

    def _gtest(self, ctx: "ModuleContext") -> bool:
        return ctx.properties.gtest is not False

    def begin(self, ctx: "ModuleContext") -> None:
        super().begin(ctx)
        run_path = "../../lib64" if ctx.toolchain.is_64bit else "../../lib"
        ctx.state.run_paths = (run_path, *ctx.state.run_paths)

    def flags(self, ctx: "ModuleContext", flags: Flags) -> Flags:
        flags = super().flags(ctx, flags)
        if not self._gtest(ctx):
            return flags

        flags = flags.extend(cflags=["-DGTEST_HAS_STD_STRING"])
        if ctx.host:
            flags = flags.extend(cflags=["-O0", "-g"])
            if ctx.windows:
                flags = flags.extend(cflags=["-DGTEST_OS_WINDOWS"])
            elif ctx.target.os == "linux":
                flags = flags.extend(cflags=["-DGTEST_OS_LINUX"], ldflags=["-lpthread"])
            elif ctx.darwin:
                flags = flags.extend(cflags=["-DGTEST_OS_MAC"], ldflags=["-lpthread"])
        else:
            flags = flags.extend(cflags=["-DGTEST_OS_LINUX_ANDROID"])
        return flags

    def deps(self, ctx: "ModuleContext", deps: Deps) -> Deps:
        if self._gtest(ctx):
            if ctx.sdk:
                selected = ctx.state.selected_stl
                if selected in ("ndk_libc++_shared", "ndk_libc++_static"):
                    gtest = ["libgtest_main_ndk_libcxx", "libgtest_ndk_libcxx"]
                elif selected == "ndk_libgnustl_static":
                    gtest = ["libgtest_main_ndk_gnustl", "libgtest_ndk_gnustl"]
                else:
                    gtest = ["libgtest_main_ndk", "libgtest_ndk"]
            else:
                gtest = ["libgtest_main", "libgtest"]
            deps = deps.extended(static_libs=gtest)
        return super().deps(ctx, deps)


class BenchmarkLinker(BinaryLinker):
    def deps(self, ctx: "ModuleContext", deps: Deps) -> Deps:
        deps = super().deps(ctx, deps)
        return deps.extended(static_libs=["libbenchmark", "libbase"])


class ToolchainLibraryLinker(BaseLinker):
    """Static libraries shipped with the GCC toolchain, copied rather than built."""

    def build_static(self, ctx: "ModuleContext") -> bool:
        return True

    def deps(self, ctx: "ModuleContext", deps: Deps) -> Deps:
        return deps

    def link(self, ctx: "ModuleContext", flags: Flags, deps: "PathDeps", objs: List[PurePosixPath]) -> LinkPlan:
        lib_name = ctx.module_name + STATIC_LIBRARY_EXTENSION
        if flags.clang:
            ctx.module_error("toolchain_library must use GCC, not Clang")
        return LinkPlan(
            kind=ArtifactKind.PASSTHROUGH,
            output=ctx.out_dir / lib_name,
            prebuilt=PurePosixPath(flags.toolchain.gcc_library_path(lib_name)),
        )


def ndk_lib_dir(ctx: "ModuleContext", toolchain: "ToolchainDefinition", version: str) -> PurePosixPath:
    # 64-bit NDK prebuilts live in lib64, except arm64 which is not multilib.
    suffix = "64" if toolchain.is_64bit and ctx.target.arch != "arm64" else ""
    return PurePosixPath(
        f"prebuilts/ndk/current/platforms/android-{version}/arch-{ctx.target.arch}/usr/lib{suffix}"
    )


def ndk_prebuilt_module_path(ctx: "ModuleContext", toolchain: "ToolchainDefinition", extension: str) -> PurePosixPath:
    # ndk_NAME.EXT.SDK_VERSION maps to NAME.EXT
    name = ctx.module_name.removeprefix("ndk_").split(".")[0]
    return ndk_lib_dir(ctx, toolchain, ctx.sdk_version) / (name + extension)


class NdkPrebuiltObjectLinker(ObjectLinker):
    def deps(self, ctx: "ModuleContext", deps: Deps) -> Deps:
        return deps

    def link(self, ctx: "ModuleContext", flags: Flags, deps: "PathDeps", objs: List[PurePosixPath]) -> LinkPlan:
        if not ctx.module_name.startswith("ndk_crt"):
            ctx.module_error("NDK prebuilts must have an ndk_crt prefixed name")
        path = ndk_prebuilt_module_path(ctx, flags.toolchain, OBJECT_EXTENSION)
        return LinkPlan(kind=ArtifactKind.PASSTHROUGH, output=path, prebuilt=path)


class NdkPrebuiltLibraryLinker(LibraryLinker):
    """Prebuilt NDK system libraries; never stripped and never installed."""

    def __init__(self, *, static: bool = False, shared: bool = True) -> None:
        super().__init__(static=static, shared=shared)

    def deps(self, ctx: "ModuleContext", deps: Deps) -> Deps:
        return deps

    def installable(self, ctx: "ModuleContext") -> bool:
        return False

    def link(self, ctx: "ModuleContext", flags: Flags, deps: "PathDeps", objs: List[PurePosixPath]) -> LinkPlan:
        if not ctx.module_name.startswith("ndk_lib"):
            ctx.module_error("NDK prebuilts must have an ndk_lib prefixed name")
        path = ndk_prebuilt_module_path(ctx, flags.toolchain, flags.toolchain.shlib_suffix)
        return LinkPlan(
            kind=ArtifactKind.PASSTHROUGH,
            output=path,
            prebuilt=path,
            exported_flags=self.exporter.exported_flags(ctx, "-isystem ", ()),
        )


class NdkPrebuiltStlLinker(NdkPrebuiltLibraryLinker):
    """NDK C++ runtimes; unlike system libraries they are not tied to a platform version."""

    def link(self, ctx: "ModuleContext", flags: Flags, deps: "PathDeps", objs: List[PurePosixPath]) -> LinkPlan:
        if not ctx.module_name.startswith("ndk_lib"):
            ctx.module_error("NDK prebuilts must have an ndk_lib prefixed name")

        lib_name = ctx.module_name.removeprefix("ndk_")
        extension = STATIC_LIBRARY_EXTENSION if self._build_static else flags.toolchain.shlib_suffix
        stl_name = lib_name.removesuffix("_shared").removesuffix("_static")
        path = self.stl_lib_dir(ctx, flags.toolchain, stl_name) / (lib_name + extension)
        return LinkPlan(
            kind=ArtifactKind.PASSTHROUGH,
            output=path,
            prebuilt=path,
            exported_flags=self.exporter.exported_flags(ctx, "-I", ()),
        )

    @staticmethod
    def stl_lib_dir(ctx: "ModuleContext", toolchain: "ToolchainDefinition", stl: str) -> PurePosixPath:
        lib_dirs = {
            "libstlport": "cxx-stl/stlport/libs",
            "libc++": "cxx-stl/llvm-libc++/libs",
            "libgnustl": f"cxx-stl/gnu-libstdc++/{toolchain.gcc_version}/libs",
        }
        lib_dir = lib_dirs.get(stl)
        if lib_dir is None:
            ctx.module_error(f"Unknown NDK STL: {stl}")
            return PurePosixPath(".")
        abi = NDK_ABIS.get(ctx.target.arch, ctx.target.arch)
        return PurePosixPath("prebuilts/ndk/current/sources") / lib_dir / abi


class BaseInstaller:
    def __init__(self, *, dir: str, dir64: str = "", data: bool = False) -> None:
        self.dir = dir
        self.dir64 = dir64
        self.data = data

    def in_data(self, ctx: "ModuleContext") -> bool:
        return self.data

    def sub_dir(self, ctx: "ModuleContext") -> PurePosixPath:
        sub_dir = PurePosixPath(self.dir64 if ctx.toolchain.is_64bit and self.dir64 else self.dir)
        if ctx.device and not ctx.target.native:
            sub_dir = sub_dir / ctx.target.arch
        return sub_dir

    def install_path(self, ctx: "ModuleContext", file: PurePosixPath) -> PurePosixPath:
        directory = ctx.install_root(self.in_data(ctx)) / self.sub_dir(ctx)
        if ctx.properties.relative_install_path:
            directory = directory / ctx.properties.relative_install_path
        return directory / file.name


class LibraryInstaller(BaseInstaller):
    def in_data(self, ctx: "ModuleContext") -> bool:
        return super().in_data(ctx) or ctx.state.in_data


class TestInstaller(BaseInstaller):
    def sub_dir(self, ctx: "ModuleContext") -> PurePosixPath:
        sub_dir = PurePosixPath(self.dir64 if ctx.toolchain.is_64bit and self.dir64 else self.dir) / ctx.module_name
        if ctx.device and not ctx.target.native:
            sub_dir = sub_dir / ctx.target.arch
        return sub_dir


__all__ = [
    "ArtifactKind",
    "BaseInstaller",
    "BaseLinker",
    "BenchmarkLinker",
    "BinaryLinker",
    "FlagExporter",
    "LibraryInstaller",
    "LibraryLinker",
    "LinkPlan",
    "NdkPrebuiltLibraryLinker",
    "NdkPrebuiltObjectLinker",
    "NdkPrebuiltStlLinker",
    "ObjectLinker",
    "PostLinkStep",
    "STATIC_GROUP_LIBS",
    "Stripper",
    "TestInstaller",
    "TestLinker",
    "ToolchainLibraryLinker",
    "chain_post_link",
    "link_plan_to_dict",
    "ndk_lib_dir",
    "ndk_prebuilt_module_path",
]
