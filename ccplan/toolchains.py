"""Toolchain descriptions and the registry that maps targets onto them.

Toolchains never hand out literal compiler flags.  Every flag set is exposed
as a ``${config.<Prefix><Name>}`` variable reference which the action
executor expands; the planner only decides where each reference goes.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, Mapping

OS_CLASSES: Dict[str, str] = {
    "android": "device",
    "linux": "host",
    "darwin": "host",
    "windows": "host",
}


@dataclass(frozen=True, slots=True)
class Target:
    """An operating system and architecture pair a module variant is built for."""

    os: str
    arch: str
    native: bool = True

    @property
    def os_class(self) -> str:
        return OS_CLASSES.get(self.os, "host")

    @property
    def device(self) -> bool:
        return self.os_class == "device"

    @property
    def host(self) -> bool:
        return not self.device

    @property
    def name(self) -> str:
        return f"{self.os}_{self.arch}"

    @classmethod
    def parse(cls, value: str) -> "Target":
        os_name, sep, arch = value.strip().partition("_")
        if not sep or not os_name or not arch:
            raise ValueError(f"Target '{value}' must look like '<os>_<arch>'")
        if os_name not in OS_CLASSES:
            allowed = ", ".join(sorted(OS_CLASSES))
            raise ValueError(f"Target '{value}' uses unknown os '{os_name}' (allowed: {allowed})")
        return cls(os=os_name, arch=arch)


DEFAULT_GCC_VERSION = "4.9"
DEFAULT_SHLIB_SUFFIX = ".so"


def _optional_flag(data: Mapping[str, Any], key: str) -> bool | None:
    value = data.get(key)
    return None if value is None else bool(value)


@dataclass(slots=True)
class ToolchainDefinition:
    name: str
    os: str
    arch: str
    variable_prefix: str
    is_64bit: bool | None = None
    clang_supported: bool | None = None
    clang_triple: str = ""
    gcc_triple: str = ""
    gcc_version: str = ""
    shlib_suffix: str = ""
    executable_suffix: str = ""
    instruction_sets: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, name: str, data: Mapping[str, Any]) -> "ToolchainDefinition":
        if not isinstance(data, Mapping):
            raise TypeError(f"Toolchain '{name}' definition must be a mapping")

        allowed_keys = {
            "os",
            "arch",
            "variable_prefix",
            "is_64bit",
            "clang_supported",
            "clang_triple",
            "gcc_triple",
            "gcc_version",
            "shlib_suffix",
            "executable_suffix",
            "instruction_sets",
        }
        unknown = {str(key) for key in data.keys() if str(key) not in allowed_keys}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ValueError(f"Toolchain '{name}' contains unknown keys: {joined}")

        os_name = data.get("os")
        arch = data.get("arch")
        if not os_name or not arch:
            raise ValueError(f"Toolchain '{name}' must specify both 'os' and 'arch'")

        instruction_sets: Dict[str, str] = {}
        sets_section = data.get("instruction_sets")
        if isinstance(sets_section, Mapping):
            instruction_sets = {str(key): str(value) for key, value in sets_section.items()}
        elif isinstance(sets_section, Iterable) and not isinstance(sets_section, (str, bytes)):
            instruction_sets = {str(item): str(item).capitalize() for item in sets_section}

        prefix = data.get("variable_prefix")
        if not prefix:
            prefix = f"{str(os_name).capitalize()}{str(arch).replace('_', '').capitalize()}"

        return cls(
            name=name,
            os=str(os_name),
            arch=str(arch),
            variable_prefix=str(prefix),
            is_64bit=_optional_flag(data, "is_64bit"),
            clang_supported=_optional_flag(data, "clang_supported"),
            clang_triple=str(data.get("clang_triple", "")),
            gcc_triple=str(data.get("gcc_triple", "")),
            gcc_version=str(data.get("gcc_version", "")),
            shlib_suffix=str(data.get("shlib_suffix", "")),
            executable_suffix=str(data.get("executable_suffix", "")),
            instruction_sets=instruction_sets,
        )

    def merge(self, other: "ToolchainDefinition") -> "ToolchainDefinition":
        instruction_sets = dict(self.instruction_sets)
        instruction_sets.update(other.instruction_sets)
        return ToolchainDefinition(
            name=self.name,
            os=other.os or self.os,
            arch=other.arch or self.arch,
            variable_prefix=other.variable_prefix or self.variable_prefix,
            is_64bit=other.is_64bit if other.is_64bit is not None else self.is_64bit,
            clang_supported=other.clang_supported if other.clang_supported is not None else self.clang_supported,
            clang_triple=other.clang_triple or self.clang_triple,
            gcc_triple=other.gcc_triple or self.gcc_triple,
            gcc_version=other.gcc_version or self.gcc_version,
            shlib_suffix=other.shlib_suffix or self.shlib_suffix,
            executable_suffix=other.executable_suffix or self.executable_suffix,
            instruction_sets=instruction_sets,
        )

    def clone(self) -> "ToolchainDefinition":
        return ToolchainDefinition(
            name=self.name,
            os=self.os,
            arch=self.arch,
            variable_prefix=self.variable_prefix,
            is_64bit=self.is_64bit,
            clang_supported=self.clang_supported,
            clang_triple=self.clang_triple,
            gcc_triple=self.gcc_triple,
            gcc_version=self.gcc_version,
            shlib_suffix=self.shlib_suffix,
            executable_suffix=self.executable_suffix,
            instruction_sets=dict(self.instruction_sets),
        )

    def with_defaults(self) -> "ToolchainDefinition":
        """Return a copy with every setting the definition left unset filled in."""

        definition = self.clone()
        if definition.is_64bit is None:
            definition.is_64bit = False
        if definition.clang_supported is None:
            definition.clang_supported = True
        definition.gcc_version = definition.gcc_version or DEFAULT_GCC_VERSION
        definition.shlib_suffix = definition.shlib_suffix or DEFAULT_SHLIB_SUFFIX
        return definition

    def reference(self, name: str) -> str:
        return "${config.%s%s}" % (self.variable_prefix, name)

    def cflags(self, clang: bool) -> str:
        return self.reference("ClangCflags" if clang else "Cflags")

    def cppflags(self, clang: bool) -> str:
        return self.reference("ClangCppflags" if clang else "Cppflags")

    def ldflags(self, clang: bool) -> str:
        return self.reference("ClangLdflags" if clang else "Ldflags")

    def asflags(self) -> str:
        return self.reference("ClangAsflags")

    def include_flags(self) -> str:
        return self.reference("IncludeFlags")

    def toolchain_cflags(self, clang: bool) -> str:
        return self.reference("ToolchainClangCflags" if clang else "ToolchainCflags")

    def toolchain_ldflags(self, clang: bool) -> str:
        return self.reference("ToolchainClangLdflags" if clang else "ToolchainLdflags")

    @property
    def gcc_root(self) -> str:
        return self.reference("GccRoot")

    def instruction_set_flags(self, instruction_set: str, *, clang: bool) -> str:
        """Return the flag reference for ``instruction_set``.

        Raises ``ValueError`` for names the toolchain does not know.  An empty
        name selects the toolchain default, which contributes nothing.
        """

        if not instruction_set:
            return ""
        suffix = self.instruction_sets.get(instruction_set)
        if suffix is None:
            raise ValueError(f"Unknown {self.arch} instruction set: {instruction_set}")
        return self.reference(("Clang" if clang else "") + suffix + "Cflags")

    def gcc_library_path(self, library: str) -> str:
        return f"{self.gcc_root}/lib/gcc/{self.gcc_triple}/{self.gcc_version}/{library}"


def _build_builtin_definitions() -> Dict[str, ToolchainDefinition]:
    raw: Dict[str, Mapping[str, Any]] = {
        "android_arm": {
            "os": "android",
            "arch": "arm",
            "clang_triple": "arm-linux-androideabi",
            "gcc_triple": "arm-linux-androideabi",
            "instruction_sets": {"arm": "Arm", "thumb": "Thumb"},
        },
        "android_arm64": {
            "os": "android",
            "arch": "arm64",
            "is_64bit": True,
            "clang_triple": "aarch64-linux-android",
            "gcc_triple": "aarch64-linux-android",
        },
        "android_x86": {
            "os": "android",
            "arch": "x86",
            "clang_triple": "i686-linux-android",
            "gcc_triple": "x86_64-linux-android",
        },
        "android_x86_64": {
            "os": "android",
            "arch": "x86_64",
            "is_64bit": True,
            "clang_triple": "x86_64-linux-android",
            "gcc_triple": "x86_64-linux-android",
        },
        "linux_x86": {
            "os": "linux",
            "arch": "x86",
            "clang_triple": "i686-linux-gnu",
            "gcc_triple": "x86_64-linux",
        },
        "linux_x86_64": {
            "os": "linux",
            "arch": "x86_64",
            "is_64bit": True,
            "clang_triple": "x86_64-linux-gnu",
            "gcc_triple": "x86_64-linux",
        },
        "darwin_x86_64": {
            "os": "darwin",
            "arch": "x86_64",
            "is_64bit": True,
            "clang_triple": "x86_64-apple-darwin",
            "shlib_suffix": ".dylib",
        },
        "windows_x86": {
            "os": "windows",
            "arch": "x86",
            "clang_supported": False,
            "gcc_triple": "x86_64-w64-mingw32",
            "shlib_suffix": ".dll",
            "executable_suffix": ".exe",
        },
    }

    definitions: Dict[str, ToolchainDefinition] = {}
    for name, data in raw.items():
        definitions[name] = ToolchainDefinition.from_mapping(name, data)
    return definitions


class ToolchainRegistry:
    def __init__(self, definitions: Mapping[str, ToolchainDefinition] | None = None) -> None:
        self._definitions: Dict[str, ToolchainDefinition] = {}
        if definitions:
            for name, definition in definitions.items():
                self._definitions[name] = definition.with_defaults()

    @classmethod
    def with_builtins(cls) -> "ToolchainRegistry":
        return cls(_build_builtin_definitions())

    def merge(self, definitions: Mapping[str, ToolchainDefinition]) -> None:
        for name, definition in definitions.items():
            existing = self._definitions.get(name)
            if existing:
                self._definitions[name] = existing.merge(definition)
            else:
                self._definitions[name] = definition.with_defaults()

    def merge_from_mapping(self, mapping: Mapping[str, Any]) -> None:
        if not mapping:
            return
        toolchains_section = mapping.get("toolchains")
        candidates = toolchains_section if isinstance(toolchains_section, Mapping) else mapping
        parsed: Dict[str, ToolchainDefinition] = {}
        for raw_name, raw_value in candidates.items():
            name = str(raw_name).strip().lower()
            if name and isinstance(raw_value, Mapping):
                parsed[name] = ToolchainDefinition.from_mapping(name, raw_value)
        if parsed:
            self.merge(parsed)

    def for_target(self, target: Target) -> ToolchainDefinition | None:
        for definition in self._definitions.values():
            if definition.os == target.os and definition.arch == target.arch:
                return definition
        return None

    def get(self, name: str) -> ToolchainDefinition | None:
        return self._definitions.get(name.lower())

    def validate(self) -> list[str]:
        errors: list[str] = []
        seen: Dict[tuple[str, str], str] = {}
        for name, definition in self._definitions.items():
            if definition.os not in OS_CLASSES:
                errors.append(f"Toolchain '{name}' references unsupported os '{definition.os}'")
            key = (definition.os, definition.arch)
            if key in seen:
                errors.append(f"Toolchains '{seen[key]}' and '{name}' both target {definition.os}/{definition.arch}")
            else:
                seen[key] = name
        return errors


__all__ = ["OS_CLASSES", "Target", "ToolchainDefinition", "ToolchainRegistry"]
