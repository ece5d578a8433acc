"""Compiler stage: compile flag composition and per-source object planning."""
from __future__ import annotations

from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Iterable, List, Sequence

from .deps import Deps
from .flags import Flags, check_bad_compiler_flags, clang_filter_unknown_cflags, include_dirs_to_flags

if TYPE_CHECKING:
    from .resolver import PathDeps
    from .module import ModuleContext


_LANGUAGES = {
    ".c": "c",
    ".s": "asm",
    ".S": "asm",
}

_GENERATORS = {
    ".y": ("yacc", ".c"),
    ".yy": ("yacc", ".cpp"),
    ".l": ("lex", ".c"),
    ".ll": ("lex", ".cpp"),
}


@dataclass(frozen=True, slots=True)
class CompileAction:
    """One source transformation the action executor has to run."""

    tool: str
    source: PurePosixPath
    output: PurePosixPath

    def as_dict(self) -> dict[str, str]:
        return {"tool": self.tool, "source": str(self.source), "output": str(self.output)}


def expand_sources(sources: Sequence[str], excludes: Sequence[str]) -> List[str]:
    """Apply ``exclude_srcs`` patterns to a declared source list."""

    return [src for src in sources if not any(fnmatchcase(src, pattern) for pattern in excludes)]


class BaseCompiler:
    def begin(self, ctx: "ModuleContext") -> None:
        return None

    def deps(self, ctx: "ModuleContext", deps: Deps) -> Deps:
        props = ctx.properties
        return deps.extended(
            generated_sources=props.generated_sources,
            generated_headers=props.generated_headers,
        )

    def flags(self, ctx: "ModuleContext", flags: Flags) -> Flags:
        """Compose the compile flags from module, release, clang and global sources.

        The order of the appends below is the precedence order; later flags
        win for options where the compiler honours the last occurrence.
        """

        props = ctx.properties
        toolchain = flags.toolchain

        check_bad_compiler_flags(ctx, "cflags", props.cflags)
        check_bad_compiler_flags(ctx, "cppflags", props.cppflags)
        check_bad_compiler_flags(ctx, "conlyflags", props.conlyflags)
        check_bad_compiler_flags(ctx, "asflags", props.asflags)

        flags = flags.extend(
            cflags=props.cflags,
            cppflags=props.cppflags,
            conlyflags=props.conlyflags,
            asflags=props.asflags,
            yaccflags=props.yaccflags,
        )

        local_include_dirs = [ctx.module_dir / directory for directory in props.local_include_dirs]
        include_flags = [include_dirs_to_flags(local_include_dirs), include_dirs_to_flags(props.include_dirs)]
        flags = flags.extend(global_flags=[flag for flag in include_flags if flag])

        if not ctx.no_default_compiler_flags:
            if not ctx.sdk or ctx.host:
                flags = flags.extend(
                    global_flags=[
                        "${commonGlobalIncludes}",
                        toolchain.include_flags(),
                        "${commonNativehelperInclude}",
                    ]
                )
            flags = flags.extend(
                global_flags=[
                    f"-I{ctx.module_dir}",
                    f"-I{ctx.out_dir}",
                    f"-I{ctx.gen_dir}",
                ]
            )

        instruction_set = flags.required_instruction_set or props.instruction_set
        instruction_set_flags = ""
        try:
            instruction_set_flags = toolchain.instruction_set_flags(instruction_set, clang=flags.clang)
        except ValueError as exc:
            ctx.property_error("instruction_set", str(exc))

        check_bad_compiler_flags(ctx, "release.cflags", props.release_cflags)
        flags = flags.extend(cflags=props.release_cflags)

        if flags.clang:
            check_bad_compiler_flags(ctx, "clang_cflags", props.clang_cflags)
            check_bad_compiler_flags(ctx, "clang_asflags", props.clang_asflags)

            flags = flags.with_changes(
                cflags=clang_filter_unknown_cflags(flags.cflags) + props.clang_cflags,
                asflags=flags.asflags + props.clang_asflags,
                cppflags=clang_filter_unknown_cflags(flags.cppflags),
                conlyflags=clang_filter_unknown_cflags(flags.conlyflags),
                ldflags=clang_filter_unknown_cflags(flags.ldflags),
            )

            target = [f"-target {toolchain.clang_triple}"]
            if not ctx.darwin:
                target.append(f"-B{toolchain.gcc_root}/{toolchain.gcc_triple}/bin")
            flags = flags.extend(cflags=target, asflags=target, ldflags=target)

        hod = "device" if ctx.device else "host"

        if not ctx.no_default_compiler_flags:
            if instruction_set_flags:
                flags = flags.extend(global_flags=[instruction_set_flags])

            if flags.clang:
                flags = flags.extend(
                    asflags=[toolchain.asflags()],
                    cppflags=["${commonClangGlobalCppflags}"],
                    global_flags=[
                        toolchain.cflags(clang=True),
                        "${commonClangGlobalCflags}",
                        "${%sClangGlobalCflags}" % hod,
                    ],
                    conlyflags=["${clangExtraConlyflags}"],
                )
            else:
                flags = flags.extend(
                    cppflags=["${commonGlobalCppflags}"],
                    global_flags=[
                        toolchain.cflags(clang=False),
                        "${commonGlobalCflags}",
                        "${%sGlobalCflags}" % hod,
                    ],
                )

            if ctx.config.brillo:
                flags = flags.extend(global_flags=["-D__BRILLO__"])

            if ctx.device:
                flags = flags.extend(cppflags=["-frtti" if props.rtti else "-fno-rtti"])

            flags = flags.extend(
                asflags=["-D__ASSEMBLY__"],
                cppflags=[toolchain.cppflags(clang=flags.clang)],
            )

        flags = flags.extend(global_flags=[toolchain.toolchain_cflags(clang=flags.clang)])

        if not ctx.sdk:
            if ctx.host and not flags.clang:
                # Host GCC has no C++14 support.
                flags = flags.extend(cppflags=["-std=gnu++11"])
            else:
                flags = flags.extend(cppflags=["-std=gnu++14"])

        # Code under external/ is not held to the stricter annotations.
        if not str(ctx.module_dir).startswith("external/"):
            flags = flags.extend(cflags=["-DANDROID_STRICT"])

        return flags

    def compile(self, ctx: "ModuleContext", flags: Flags, deps: "PathDeps") -> List[CompileAction]:
        props = ctx.properties
        return self.compile_objs(
            ctx,
            "",
            expand_sources(props.srcs, props.exclude_srcs),
            deps.generated_sources,
        )

    def compile_objs(
        self,
        ctx: "ModuleContext",
        subdir: str,
        sources: Iterable[str],
        extra_sources: Iterable[PurePosixPath] = (),
    ) -> List[CompileAction]:
        """Plan the actions turning ``sources`` into objects under ``subdir``."""

        obj_dir = ctx.obj_dir / subdir if subdir else ctx.obj_dir
        inputs: List[PurePosixPath] = [ctx.module_dir / src for src in sources]
        actions: List[CompileAction] = []

        for source in [*inputs, *extra_sources]:
            relative = _relative_source(ctx, source)
            generator = _GENERATORS.get(source.suffix)
            if generator is not None:
                tool, extension = generator
                generated = (ctx.gen_dir / relative).with_suffix(extension)
                actions.append(CompileAction(tool=tool, source=source, output=generated))
                source = generated
            language = _LANGUAGES.get(source.suffix, "c++")
            actions.append(CompileAction(tool=language, source=source, output=(obj_dir / relative).with_suffix(".o")))

        return actions


def _relative_source(ctx: "ModuleContext", source: PurePosixPath) -> PurePosixPath:
    if source.is_relative_to(ctx.out_dir):
        return source.relative_to(ctx.out_dir)
    if source.is_relative_to(ctx.config.out_dir):
        return PurePosixPath("gen", source.name)
    if ctx.module_dir != PurePosixPath(".") and source.is_relative_to(ctx.module_dir):
        return source.relative_to(ctx.module_dir)
    return PurePosixPath(source.name) if source.is_absolute() else source


def objects_of(actions: Iterable[CompileAction]) -> List[PurePosixPath]:
    return [action.output for action in actions if action.tool in ("c", "c++", "asm")]


class LibraryCompiler(BaseCompiler):
    """Compiler for libraries: position independent code plus per-link-mode sources."""

    def flags(self, ctx: "ModuleContext", flags: Flags) -> Flags:
        flags = super().flags(ctx, flags)

        # MinGW promotes the -fPIC warning to an error.
        if not ctx.windows:
            flags = flags.extend(cflags=["-fPIC"])

        mode = ctx.properties.static if ctx.static else ctx.properties.shared
        return flags.extend(cflags=mode.cflags)

    def compile(self, ctx: "ModuleContext", flags: Flags, deps: "PathDeps") -> List[CompileAction]:
        actions = super().compile(ctx, flags, deps)
        ctx.module.reuse_objects = tuple(objects_of(actions))

        if ctx.static:
            mode, subdir = ctx.properties.static, "static"
        else:
            mode, subdir = ctx.properties.shared, "shared"
        actions.extend(self.compile_objs(ctx, subdir, expand_sources(mode.srcs, mode.exclude_srcs)))
        return actions


__all__ = [
    "BaseCompiler",
    "CompileAction",
    "LibraryCompiler",
    "expand_sources",
    "objects_of",
]
