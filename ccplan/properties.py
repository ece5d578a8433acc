"""Immutable property records parsed from module declarations."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Mapping, Tuple

from .config_loader import string_list


def _string_tuple(value: Any, field_name: str) -> Tuple[str, ...]:
    return tuple(string_list(value, field_name=field_name))


def _optional_bool(value: Any, field_name: str) -> bool | None:
    if value is None:
        return None
    if isinstance(value, bool):
        return value
    raise TypeError(f"{field_name} must be a boolean if specified")


def _optional_string(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _check_keys(data: Mapping[str, Any], allowed: set[str], label: str) -> None:
    unknown = {str(key) for key in data.keys() if str(key) not in allowed}
    if unknown:
        joined = ", ".join(sorted(unknown))
        raise ValueError(f"{label} contains unknown keys: {joined}")


@dataclass(frozen=True, slots=True)
class LinkModeProperties:
    """Properties that only apply to the static or to the shared variant of a library."""

    enabled: bool | None = None
    srcs: Tuple[str, ...] = ()
    exclude_srcs: Tuple[str, ...] = ()
    cflags: Tuple[str, ...] = ()
    whole_static_libs: Tuple[str, ...] = ()
    static_libs: Tuple[str, ...] = ()
    shared_libs: Tuple[str, ...] = ()

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, label: str) -> "LinkModeProperties":
        if not isinstance(data, Mapping):
            raise TypeError(f"{label} must be a table")
        allowed = {"enabled", "srcs", "exclude_srcs", "cflags", "whole_static_libs", "static_libs", "shared_libs"}
        _check_keys(data, allowed, label)
        return cls(
            enabled=_optional_bool(data.get("enabled"), f"{label}.enabled"),
            srcs=_string_tuple(data.get("srcs"), f"{label}.srcs"),
            exclude_srcs=_string_tuple(data.get("exclude_srcs"), f"{label}.exclude_srcs"),
            cflags=_string_tuple(data.get("cflags"), f"{label}.cflags"),
            whole_static_libs=_string_tuple(data.get("whole_static_libs"), f"{label}.whole_static_libs"),
            static_libs=_string_tuple(data.get("static_libs"), f"{label}.static_libs"),
            shared_libs=_string_tuple(data.get("shared_libs"), f"{label}.shared_libs"),
        )


@dataclass(frozen=True, slots=True)
class StripProperties:
    none: bool = False
    keep_symbols: bool = False

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "StripProperties":
        if not isinstance(data, Mapping):
            raise TypeError("strip must be a table")
        _check_keys(data, {"none", "keep_symbols"}, "strip")
        return cls(none=bool(data.get("none", False)), keep_symbols=bool(data.get("keep_symbols", False)))


@dataclass(frozen=True, slots=True)
class SanitizeProperties:
    never: bool = False
    address: bool | None = None
    thread: bool | None = None

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "SanitizeProperties":
        if not isinstance(data, Mapping):
            raise TypeError("sanitize must be a table")
        _check_keys(data, {"never", "address", "thread"}, "sanitize")
        return cls(
            never=bool(data.get("never", False)),
            address=_optional_bool(data.get("address"), "sanitize.address"),
            thread=_optional_bool(data.get("thread"), "sanitize.thread"),
        )


_LIST_FIELDS = (
    "srcs",
    "exclude_srcs",
    "cflags",
    "cppflags",
    "conlyflags",
    "asflags",
    "clang_cflags",
    "clang_asflags",
    "yaccflags",
    "include_dirs",
    "local_include_dirs",
    "generated_sources",
    "generated_headers",
    "whole_static_libs",
    "static_libs",
    "shared_libs",
    "ldflags",
    "host_ldlibs",
    "export_shared_lib_headers",
    "export_static_lib_headers",
    "export_include_dirs",
    "objs",
    "out",
)

_BOOL_FIELDS = (
    "no_default_compiler_flags",
    "allow_undefined_symbols",
    "no_libgcc",
    "nocrt",
    "test_per_src",
)

_OPTIONAL_BOOL_FIELDS = (
    "enabled",
    "host_supported",
    "device_supported",
    "clang",
    "rtti",
    "static_executable",
    "gtest",
)

_STRING_FIELDS = (
    "module_dir",
    "sdk_version",
    "instruction_set",
    "stem",
    "suffix",
    "prefix_symbols",
    "relative_install_path",
    "output_extension",
)

_OPTIONAL_STRING_FIELDS = (
    "version_script",
    "unexported_symbols_list",
    "force_symbols_not_weak_list",
    "force_symbols_weak_list",
    "stl",
    "header_dir",
)


@dataclass(frozen=True, slots=True)
class ModuleProperties:
    """Declared properties of one logical module.

    Records are immutable; expansion derives new records with
    :func:`dataclasses.replace` instead of editing shared state.
    """

    name: str
    module_type: str
    module_dir: str = ""
    enabled: bool | None = None
    host_supported: bool | None = None
    device_supported: bool | None = None
    clang: bool | None = None
    sdk_version: str = ""
    no_default_compiler_flags: bool = False

    srcs: Tuple[str, ...] = ()
    exclude_srcs: Tuple[str, ...] = ()
    cflags: Tuple[str, ...] = ()
    cppflags: Tuple[str, ...] = ()
    conlyflags: Tuple[str, ...] = ()
    asflags: Tuple[str, ...] = ()
    clang_cflags: Tuple[str, ...] = ()
    clang_asflags: Tuple[str, ...] = ()
    yaccflags: Tuple[str, ...] = ()
    instruction_set: str = ""
    include_dirs: Tuple[str, ...] = ()
    local_include_dirs: Tuple[str, ...] = ()
    generated_sources: Tuple[str, ...] = ()
    generated_headers: Tuple[str, ...] = ()
    rtti: bool | None = None
    release_cflags: Tuple[str, ...] = ()

    whole_static_libs: Tuple[str, ...] = ()
    static_libs: Tuple[str, ...] = ()
    shared_libs: Tuple[str, ...] = ()
    ldflags: Tuple[str, ...] = ()
    system_shared_libs: Tuple[str, ...] | None = None
    allow_undefined_symbols: bool = False
    no_libgcc: bool = False
    host_ldlibs: Tuple[str, ...] = ()
    export_shared_lib_headers: Tuple[str, ...] = ()
    export_static_lib_headers: Tuple[str, ...] = ()

    static: LinkModeProperties = field(default_factory=LinkModeProperties)
    shared: LinkModeProperties = field(default_factory=LinkModeProperties)
    export_include_dirs: Tuple[str, ...] = ()
    version_script: str | None = None
    unexported_symbols_list: str | None = None
    force_symbols_not_weak_list: str | None = None
    force_symbols_weak_list: str | None = None
    nocrt: bool = False

    static_executable: bool | None = None
    stem: str = ""
    suffix: str = ""
    prefix_symbols: str = ""
    gtest: bool | None = None
    test_per_src: bool = False

    objs: Tuple[str, ...] = ()
    relative_install_path: str = ""
    strip: StripProperties = field(default_factory=StripProperties)
    stl: str | None = None
    sanitize: SanitizeProperties = field(default_factory=SanitizeProperties)

    # genrule / gensrcs outputs
    out: Tuple[str, ...] = ()
    header_dir: str | None = None
    output_extension: str = ""

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any], *, module_dir: str = "") -> "ModuleProperties":
        if not isinstance(data, Mapping):
            raise TypeError("Module declarations must be tables")

        raw_name = data.get("name")
        raw_type = data.get("type")
        if not raw_name or not str(raw_name).strip():
            raise ValueError("Module declarations require a non-empty 'name'")
        if not raw_type or not str(raw_type).strip():
            raise ValueError(f"Module '{raw_name}' requires a 'type'")
        name = str(raw_name).strip()
        label = f"Module '{name}'"

        allowed = (
            {"name", "type", "static", "shared", "strip", "sanitize", "release", "system_shared_libs"}
            | set(_LIST_FIELDS)
            | set(_BOOL_FIELDS)
            | set(_OPTIONAL_BOOL_FIELDS)
            | set(_STRING_FIELDS)
            | set(_OPTIONAL_STRING_FIELDS)
        )
        _check_keys(data, allowed, label)

        values: Dict[str, Any] = {"name": name, "module_type": str(raw_type).strip()}
        for key in _LIST_FIELDS:
            values[key] = _string_tuple(data.get(key), key)
        for key in _BOOL_FIELDS:
            values[key] = bool(data.get(key, False))
        for key in _OPTIONAL_BOOL_FIELDS:
            values[key] = _optional_bool(data.get(key), key)
        for key in _STRING_FIELDS:
            raw_value = data.get(key)
            values[key] = str(raw_value).strip() if raw_value is not None else ""
        for key in _OPTIONAL_STRING_FIELDS:
            values[key] = _optional_string(data.get(key))

        if not values["module_dir"]:
            values["module_dir"] = module_dir

        # An explicit empty list disables the default system libraries.
        if "system_shared_libs" in data:
            values["system_shared_libs"] = _string_tuple(data.get("system_shared_libs"), "system_shared_libs")

        release_section = data.get("release")
        if release_section is not None:
            if not isinstance(release_section, Mapping):
                raise TypeError(f"{label} release must be a table")
            _check_keys(release_section, {"cflags"}, f"{label} release")
            values["release_cflags"] = _string_tuple(release_section.get("cflags"), "release.cflags")

        if data.get("static") is not None:
            values["static"] = LinkModeProperties.from_mapping(data["static"], label="static")
        if data.get("shared") is not None:
            values["shared"] = LinkModeProperties.from_mapping(data["shared"], label="shared")
        if data.get("strip") is not None:
            values["strip"] = StripProperties.from_mapping(data["strip"])
        if data.get("sanitize") is not None:
            values["sanitize"] = SanitizeProperties.from_mapping(data["sanitize"])

        return cls(**values)

    def with_changes(self, **changes: Any) -> "ModuleProperties":
        return replace(self, **changes)


__all__ = [
    "LinkModeProperties",
    "ModuleProperties",
    "SanitizeProperties",
    "StripProperties",
]
