"""The flags accumulator, global flag tables and per-module flag checks."""
from __future__ import annotations

from dataclasses import dataclass, replace
from typing import TYPE_CHECKING, Dict, Iterable, Sequence, Tuple
import posixpath

if TYPE_CHECKING:
    from .module import ModuleContext
    from .toolchains import ToolchainDefinition


COMMON_GLOBAL_CFLAGS: Tuple[str, ...] = (
    "-DANDROID",
    "-fmessage-length=0",
    "-W",
    "-Wall",
    "-Wno-unused",
    "-Winit-self",
    "-Wpointer-arith",
    "-DNDEBUG",
    "-UDEBUG",
)

DEVICE_GLOBAL_CFLAGS: Tuple[str, ...] = (
    "-fdiagnostics-color",
    "-Werror=return-type",
    "-Werror=non-virtual-dtor",
    "-Werror=address",
    "-Werror=sequence-point",
    "-Werror=date-time",
)

HOST_GLOBAL_CFLAGS: Tuple[str, ...] = ()

COMMON_GLOBAL_CPPFLAGS: Tuple[str, ...] = ("-Wsign-promo",)

NO_OVERRIDE_GLOBAL_CFLAGS: Tuple[str, ...] = (
    "-Werror=int-to-pointer-cast",
    "-Werror=pointer-to-int-cast",
)

ILLEGAL_FLAGS: Tuple[str, ...] = ("-w",)

# GCC-only options that clang rejects or warns about.
CLANG_UNKNOWN_CFLAGS: Tuple[str, ...] = (
    "-finline-limit=64",
    "-fgcse-after-reload",
    "-frerun-cse-after-loop",
    "-frename-registers",
    "-fno-strict-volatile-bitfields",
    "-fno-align-jumps",
    "-fno-canonical-system-headers",
    "-fno-inline-functions-called-once",
    "-fno-partial-inlining",
    "-fno-tree-sra",
    "-funswitch-loops",
    "-mthumb-interwork",
    "-Wa,--noexecstack",
    "-Wno-clobbered",
    "-Wno-psabi",
    "-Wno-unused-but-set-parameter",
    "-Wno-unused-but-set-variable",
    "-Wno-unused-local-typedefs",
    "-Wunused-but-set-parameter",
    "-Wunused-but-set-variable",
)


def clang_filter_unknown_cflags(flags: Iterable[str]) -> Tuple[str, ...]:
    unknown = set(CLANG_UNKNOWN_CFLAGS)
    return tuple(flag for flag in flags if flag not in unknown)


def filter_flags(flags: Iterable[str], denied: Iterable[str]) -> Tuple[str, ...]:
    blocked = set(denied)
    return tuple(flag for flag in flags if flag not in blocked)


def global_flag_variables() -> Dict[str, str]:
    """Values of the ``${...}`` global references spliced into flag lists.

    Clang variants are derived from the GCC tables by filtering unknown flags,
    then appending the clang extras reference.
    """

    return {
        "commonGlobalCflags": " ".join(COMMON_GLOBAL_CFLAGS),
        "deviceGlobalCflags": " ".join(DEVICE_GLOBAL_CFLAGS),
        "hostGlobalCflags": " ".join(HOST_GLOBAL_CFLAGS),
        "noOverrideGlobalCflags": " ".join(NO_OVERRIDE_GLOBAL_CFLAGS),
        "commonGlobalCppflags": " ".join(COMMON_GLOBAL_CPPFLAGS),
        "commonClangGlobalCflags": " ".join(
            clang_filter_unknown_cflags(COMMON_GLOBAL_CFLAGS) + ("${clangExtraCflags}",)
        ),
        "deviceClangGlobalCflags": " ".join(
            clang_filter_unknown_cflags(DEVICE_GLOBAL_CFLAGS) + ("${clangExtraTargetCflags}",)
        ),
        "hostClangGlobalCflags": " ".join(clang_filter_unknown_cflags(HOST_GLOBAL_CFLAGS)),
        "noOverrideClangGlobalCflags": " ".join(
            clang_filter_unknown_cflags(NO_OVERRIDE_GLOBAL_CFLAGS) + ("${clangExtraNoOverrideCflags}",)
        ),
        "commonClangGlobalCppflags": " ".join(
            clang_filter_unknown_cflags(COMMON_GLOBAL_CPPFLAGS) + ("${clangExtraCppflags}",)
        ),
    }


def include_dirs_to_flags(dirs: Iterable[object], prefix: str = "-I") -> str:
    return " ".join(f"{prefix}{directory}" for directory in dirs)


@dataclass(frozen=True, slots=True)
class Flags:
    """Ordered flag lists threaded through every composition stage.

    Stages never mutate an accumulator; :meth:`extend` and :meth:`with_changes`
    return a new one.  Order is significant and duplicates are kept.
    """

    toolchain: "ToolchainDefinition"
    clang: bool = False
    global_flags: Tuple[str, ...] = ()
    asflags: Tuple[str, ...] = ()
    cflags: Tuple[str, ...] = ()
    conlyflags: Tuple[str, ...] = ()
    cppflags: Tuple[str, ...] = ()
    yaccflags: Tuple[str, ...] = ()
    ldflags: Tuple[str, ...] = ()
    nocrt: bool = False
    required_instruction_set: str = ""
    dynamic_linker: str = ""

    def extend(
        self,
        *,
        global_flags: Sequence[str] = (),
        asflags: Sequence[str] = (),
        cflags: Sequence[str] = (),
        conlyflags: Sequence[str] = (),
        cppflags: Sequence[str] = (),
        yaccflags: Sequence[str] = (),
        ldflags: Sequence[str] = (),
    ) -> "Flags":
        return replace(
            self,
            global_flags=self.global_flags + tuple(global_flags),
            asflags=self.asflags + tuple(asflags),
            cflags=self.cflags + tuple(cflags),
            conlyflags=self.conlyflags + tuple(conlyflags),
            cppflags=self.cppflags + tuple(cppflags),
            yaccflags=self.yaccflags + tuple(yaccflags),
            ldflags=self.ldflags + tuple(ldflags),
        )

    def with_changes(self, **changes: object) -> "Flags":
        return replace(self, **changes)

    def without_illegal_flags(self) -> "Flags":
        return replace(
            self,
            cflags=filter_flags(self.cflags, ILLEGAL_FLAGS),
            cppflags=filter_flags(self.cppflags, ILLEGAL_FLAGS),
            conlyflags=filter_flags(self.conlyflags, ILLEGAL_FLAGS),
        )

    def as_dict(self) -> Dict[str, object]:
        return {
            "toolchain": self.toolchain.name,
            "clang": self.clang,
            "global": list(self.global_flags),
            "asflags": list(self.asflags),
            "cflags": list(self.cflags),
            "conlyflags": list(self.conlyflags),
            "cppflags": list(self.cppflags),
            "yaccflags": list(self.yaccflags),
            "ldflags": list(self.ldflags),
            "nocrt": self.nocrt,
            "dynamic_linker": self.dynamic_linker,
        }


def check_bad_compiler_flags(ctx: "ModuleContext", prop: str, flags: Iterable[str]) -> None:
    for raw_flag in flags:
        flag = raw_flag.strip()
        if not flag.startswith("-"):
            ctx.property_error(prop, f"Flag `{flag}` must start with `-`")
        elif flag.startswith("-I") or flag.startswith("-isystem"):
            ctx.property_error(prop, f"Bad flag `{flag}`, use local_include_dirs or include_dirs instead")
        elif flag in ILLEGAL_FLAGS:
            ctx.property_error(prop, f"Illegal flag `{flag}`")
        elif " " in flag:
            args = flag.split()
            if args[0] == "-include":
                if len(args) > 2:
                    ctx.property_error(prop, f"`-include` only takes one argument: `{flag}`")
                path = posixpath.normpath(args[1])
                if path.startswith("/"):
                    ctx.property_error(prop, f"Path must not be an absolute path: {flag}")
                elif path == ".." or path.startswith("../"):
                    ctx.property_error(
                        prop,
                        f"Path must not start with `../`: `{flag}`. "
                        "Use include_dirs to -include from a different directory",
                    )
            elif flag.startswith("-D") and "=" in flag:
                continue
            else:
                ctx.property_error(
                    prop,
                    f"Bad flag: `{flag}` is not an allowed multi-word flag. Should it be split into multiple flags?",
                )


def check_bad_linker_flags(ctx: "ModuleContext", prop: str, flags: Iterable[str]) -> None:
    for raw_flag in flags:
        flag = raw_flag.strip()
        if not flag.startswith("-"):
            ctx.property_error(prop, f"Flag `{flag}` must start with `-`")
        elif flag.startswith("-l"):
            hint = "shared_libs or host_ldlibs" if ctx.host else "shared_libs"
            ctx.property_error(prop, f"Bad flag: `{flag}`, use {hint} instead")
        elif flag.startswith("-L"):
            ctx.property_error(prop, f"Bad flag: `{flag}` is not allowed")
        elif " " in flag:
            ctx.property_error(prop, f"Bad flag: `{flag}` is not allowed to contain spaces")


def check_bad_host_ldlibs(ctx: "ModuleContext", prop: str, flags: Iterable[str]) -> None:
    for raw_flag in flags:
        flag = raw_flag.strip()
        if not flag.startswith("-l"):
            ctx.property_error(prop, f"Invalid flag: `{flag}`, must start with `-l`")


__all__ = [
    "CLANG_UNKNOWN_CFLAGS",
    "COMMON_GLOBAL_CFLAGS",
    "COMMON_GLOBAL_CPPFLAGS",
    "DEVICE_GLOBAL_CFLAGS",
    "Flags",
    "HOST_GLOBAL_CFLAGS",
    "ILLEGAL_FLAGS",
    "NO_OVERRIDE_GLOBAL_CFLAGS",
    "check_bad_compiler_flags",
    "check_bad_host_ldlibs",
    "check_bad_linker_flags",
    "clang_filter_unknown_cflags",
    "filter_flags",
    "global_flag_variables",
    "include_dirs_to_flags",
]
