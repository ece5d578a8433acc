"""Cross-cutting feature stages: C++ standard library selection and sanitizers."""
from __future__ import annotations

from typing import TYPE_CHECKING, Dict, Tuple

from .deps import Deps
from .flags import Flags

if TYPE_CHECKING:
    from .module import ModuleContext


SANITIZER_VARIATIONS: Dict[str, str] = {
    "address": "asan",
    "thread": "tsan",
}

HOST_DYNAMIC_GCC_LIBS: Dict[str, Tuple[str, ...]] = {
    "linux": ("-lgcc_s", "-lgcc", "-lc", "-lgcc_s", "-lgcc"),
    "darwin": ("-lc", "-lSystem"),
    "windows": ("-lmsvcr110", "-lmingw32", "-lgcc", "-lmoldname", "-lmingwex", "-lmsvcrt"),
}

HOST_STATIC_GCC_LIBS: Dict[str, Tuple[str, ...]] = {
    "linux": ("-Wl,--start-group", "-lgcc", "-lgcc_eh", "-lc", "-Wl,--end-group"),
    "darwin": ("-lc", "-lSystem"),
    "windows": ("-Wl,--start-group", "-lmingw32", "-lgcc", "-lgcc_eh", "-lmoldname", "-lmingwex", "-lmsvcrt", "-Wl,--end-group"),
}

_NDK_STLS = ("c++_shared", "c++_static", "stlport_shared", "stlport_static", "gnustl_static")


class Stl:
    """Selects the C++ standard library for a variant and wires it in."""

    def begin(self, ctx: "ModuleContext") -> None:
        ctx.state.selected_stl = self._select(ctx)

    def _select(self, ctx: "ModuleContext") -> str:
        requested = ctx.properties.stl or ""
        if ctx.sdk:
            if requested == "":
                return "ndk_system"
            if requested in _NDK_STLS:
                return "ndk_lib" + requested
            if requested == "none":
                return ""
            ctx.property_error("stl", f"'{requested}' is not a supported STL with sdk_version set")
            return ""
        if ctx.windows:
            if requested in ("libc++", "libc++_static", "libstdc++", ""):
                return "libstdc++"
            if requested == "none":
                return ""
            ctx.property_error("stl", f"'{requested}' is not a supported STL for windows")
            return ""
        if requested in ("libc++", "libc++_static"):
            return requested
        if requested == "none":
            return ""
        if requested == "":
            return "libc++_static" if ctx.static else "libc++"
        ctx.property_error("stl", f"'{requested}' is not a supported STL")
        return ""

    def deps(self, ctx: "ModuleContext", deps: Deps) -> Deps:
        selected = ctx.state.selected_stl
        if selected == "libstdc++":
            if ctx.device:
                deps = deps.extended(shared_libs=[selected])
        elif selected in ("libc++", "libc++_static"):
            if selected == "libc++":
                deps = deps.extended(shared_libs=[selected])
            else:
                deps = deps.extended(static_libs=[selected])
            if ctx.device:
                if ctx.target.arch == "arm":
                    deps = deps.extended(static_libs=["libunwind_llvm"])
                if ctx.static_binary:
                    deps = deps.extended(static_libs=["libdl"])
                else:
                    deps = deps.extended(shared_libs=["libdl"])
        elif selected == "ndk_system":
            # The system STL has no prebuilt of its own; it relies on libstdc++.
            deps = deps.with_changes(shared_libs=["libstdc++", *deps.shared_libs])
        elif selected in ("ndk_libc++_shared", "ndk_libstlport_shared"):
            deps = deps.extended(shared_libs=[selected])
        elif selected in ("ndk_libc++_static", "ndk_libstlport_static", "ndk_libgnustl_static"):
            deps = deps.extended(static_libs=[selected])
        return deps

    def flags(self, ctx: "ModuleContext", flags: Flags) -> Flags:
        selected = ctx.state.selected_stl
        if selected in ("libc++", "libc++_static"):
            flags = flags.extend(cflags=["-D_USING_LIBCXX"])
            if ctx.host:
                flags = flags.extend(cppflags=["-nostdinc++"], ldflags=["-nodefaultlibs", "-lpthread", "-lm"])
                flags = flags.extend(ldflags=self._host_gcc_libs(ctx))
            elif ctx.target.arch == "arm":
                flags = flags.extend(ldflags=["-Wl,--exclude-libs,libunwind_llvm.a"])
        elif selected == "libstdc++":
            if ctx.device:
                flags = flags.extend(cflags=["-Ibionic/libstdc++/include"])
        elif selected == "ndk_system":
            flags = flags.extend(cflags=["-isystem prebuilts/ndk/current/sources/cxx-stl/system/include"])
        elif selected in ("ndk_libc++_shared", "ndk_libc++_static"):
            flags = flags.extend(cppflags=["-std=c++11"])
        elif selected == "" and ctx.host:
            flags = flags.extend(cppflags=["-nostdinc++"], ldflags=["-nodefaultlibs"])
            flags = flags.extend(ldflags=self._host_gcc_libs(ctx))
        return flags

    @staticmethod
    def _host_gcc_libs(ctx: "ModuleContext") -> Tuple[str, ...]:
        table = HOST_STATIC_GCC_LIBS if ctx.static_binary else HOST_DYNAMIC_GCC_LIBS
        return table.get(ctx.target.os, ())


class Sanitize:
    """Address and thread sanitizer support."""

    def begin(self, ctx: "ModuleContext") -> None:
        state = ctx.state
        if ctx.properties.sanitize.never or ctx.windows or ctx.static_binary:
            state.sanitizers = ()
            return
        if len(state.sanitizers) > 1:
            ctx.property_error("sanitize", "address and thread sanitizers cannot be combined")

    def deps(self, ctx: "ModuleContext", deps: Deps) -> Deps:
        sanitizers = ctx.state.sanitizers
        if ctx.device:
            if "address" in sanitizers:
                deps = deps.extended(static_libs=["libasan"])
            if sanitizers:
                deps = deps.extended(shared_libs=["libdl"])
        return deps

    def flags(self, ctx: "ModuleContext", flags: Flags) -> Flags:
        sanitizers = ctx.state.sanitizers
        if not sanitizers:
            return flags
        if not flags.clang:
            ctx.property_error("sanitize", "Sanitizers require clang")
            return flags

        if "address" in sanitizers and ctx.device:
            linker = "/system/bin/linker_asan" + ("64" if flags.toolchain.is_64bit else "")
            flags = flags.extend(
                cflags=["-fno-omit-frame-pointer"],
                ldflags=["-Wl,-u,__asan_preinit"],
            ).with_changes(dynamic_linker=linker)

        argument = "-fsanitize=" + ",".join(sanitizers)
        flags = flags.extend(cflags=[argument])
        if ctx.host:
            flags = flags.extend(cflags=["-fno-sanitize-recover=all"], ldflags=[argument, "-lrt", "-ldl"])
        return flags


__all__ = [
    "HOST_DYNAMIC_GCC_LIBS",
    "HOST_STATIC_GCC_LIBS",
    "SANITIZER_VARIATIONS",
    "Sanitize",
    "Stl",
]
