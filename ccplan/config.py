"""Configuration records and the store that loads them from config directories."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Sequence

from .config_loader import (
    existing_directories,
    module_files_under,
    overlay_settings,
    plan_files_in,
    read_plan_file,
    string_list,
)
from .properties import ModuleProperties
from .toolchains import Target, ToolchainRegistry

DEFAULT_TARGETS = ("android_arm64", "linux_x86_64")

_LOG_LEVELS = {"debug", "info", "warning", "error", "critical"}


def _bool_setting(section: Mapping[str, Any], key: str, default: bool) -> bool:
    value = section.get(key, default)
    if not isinstance(value, bool):
        raise TypeError(f"global.{key} must be a boolean")
    return value


@dataclass(slots=True)
class PlanConfig:
    """Settings from the ``[global]`` section shared by every module."""

    log_level: str = "info"
    log_file: str | None = None
    allow_missing_dependencies: bool = False
    device_uses_clang: bool = True
    brillo: bool = False
    host_static_binaries: bool = False
    embedded_in_make: bool = False
    out_dir: str = "out"
    targets: List[Target] = field(default_factory=lambda: [Target.parse(value) for value in DEFAULT_TARGETS])

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "PlanConfig":
        global_section = data.get("global", {}) if isinstance(data, Mapping) else {}
        if not isinstance(global_section, Mapping):
            raise TypeError("[global] must be a table")

        allowed_keys = {
            "log_level",
            "log_file",
            "allow_missing_dependencies",
            "device_uses_clang",
            "brillo",
            "host_static_binaries",
            "embedded_in_make",
            "out_dir",
            "targets",
        }
        unknown = {str(key) for key in global_section.keys() if str(key) not in allowed_keys}
        if unknown:
            joined = ", ".join(sorted(unknown))
            raise ValueError(f"[global] contains unknown keys: {joined}")

        log_level = str(global_section.get("log_level", "info")).lower()
        if log_level not in _LOG_LEVELS:
            raise ValueError(f"global.log_level must be one of: {', '.join(sorted(_LOG_LEVELS))}")

        raw_targets = global_section.get("targets")
        if raw_targets is None:
            target_names = list(DEFAULT_TARGETS)
        else:
            target_names = string_list(raw_targets, field_name="global.targets")
        targets = _parse_targets(target_names)

        out_dir = str(global_section.get("out_dir", "out")).strip().rstrip("/") or "out"

        return cls(
            log_level=log_level,
            log_file=str(global_section.get("log_file")) if global_section.get("log_file") else None,
            allow_missing_dependencies=_bool_setting(global_section, "allow_missing_dependencies", False),
            device_uses_clang=_bool_setting(global_section, "device_uses_clang", True),
            brillo=_bool_setting(global_section, "brillo", False),
            host_static_binaries=_bool_setting(global_section, "host_static_binaries", False),
            embedded_in_make=_bool_setting(global_section, "embedded_in_make", False),
            out_dir=out_dir,
            targets=targets,
        )

    def device_targets(self) -> List[Target]:
        return [target for target in self.targets if target.device]


def _parse_targets(names: Sequence[str]) -> List[Target]:
    targets: List[Target] = []
    seen: set[str] = set()
    for name in names:
        target = Target.parse(name)
        if target.name in seen:
            raise ValueError(f"Target '{target.name}' is listed more than once")
        seen.add(target.name)
        targets.append(target)

    # The first target of each OS is native; later ones are secondary arches.
    native_os: set[str] = set()
    result: List[Target] = []
    for target in targets:
        native = target.os not in native_os
        native_os.add(target.os)
        result.append(Target(os=target.os, arch=target.arch, native=native))
    return result


@dataclass(slots=True)
class PlanEnvironment:
    """What every expansion and planning pass reads besides the graph."""

    config: PlanConfig
    toolchains: ToolchainRegistry


def parse_module_file(data: Mapping[str, Any], *, label: str) -> List[ModuleProperties]:
    """Parse a module declaration file holding a ``modules`` array of tables."""

    allowed_keys = {"module_dir", "modules"}
    unknown = {str(key) for key in data.keys() if str(key) not in allowed_keys}
    if unknown:
        joined = ", ".join(sorted(unknown))
        raise ValueError(f"Module file '{label}' contains unknown keys: {joined}")

    module_dir = str(data.get("module_dir", "")).strip().strip("/")
    entries = data.get("modules", [])
    if not isinstance(entries, Sequence) or isinstance(entries, (str, bytes)):
        raise TypeError(f"Module file '{label}' must declare modules as an array of tables")
    return [ModuleProperties.from_mapping(entry, module_dir=module_dir) for entry in entries]


@dataclass(slots=True)
class ConfigurationStore:
    root: Path
    global_config: PlanConfig
    modules: Dict[str, ModuleProperties]
    toolchains: ToolchainRegistry
    module_sources: Dict[str, Path] = field(default_factory=dict)
    config_dirs: tuple[Path, ...] = field(default_factory=tuple)

    @classmethod
    def from_directory(cls, root: Path) -> "ConfigurationStore":
        return cls.from_directories(root, [root / "config"])

    @classmethod
    def from_directories(cls, root: Path, directories: Iterable[Path]) -> "ConfigurationStore":
        resolved_dirs, missing_dirs = existing_directories(root, directories)
        if missing_dirs and not resolved_dirs:
            missing_display = ", ".join(str(path) for path in missing_dirs)
            raise FileNotFoundError(f"No configuration directories found. Missing: {missing_display}")
        if not resolved_dirs:
            raise FileNotFoundError("No configuration directories were provided")

        global_data: Mapping[str, Any] = {}
        toolchain_registry = ToolchainRegistry.with_builtins()
        modules: Dict[str, ModuleProperties] = {}
        module_sources: Dict[str, Path] = {}

        for config_dir in resolved_dirs:
            top_level_files = plan_files_in(config_dir)
            global_path = top_level_files.pop("config", None)
            if global_path is not None:
                global_data = overlay_settings(global_data, read_plan_file(global_path))

            toolchains_path = top_level_files.pop("toolchains", None)
            if toolchains_path is not None:
                toolchain_registry.merge_from_mapping(read_plan_file(toolchains_path))

            modules_dir = config_dir / "modules"
            if not modules_dir.exists():
                continue

            for path in module_files_under(modules_dir):
                for properties in parse_module_file(read_plan_file(path), label=str(path)):
                    if properties.name in modules:
                        other = module_sources[properties.name]
                        raise ValueError(
                            f"Module '{properties.name}' is declared in both '{other}' and '{path}'"
                        )
                    modules[properties.name] = properties
                    module_sources[properties.name] = path

        global_config = PlanConfig.from_mapping(global_data)

        return cls(
            root=root,
            config_dirs=resolved_dirs,
            global_config=global_config,
            modules=modules,
            toolchains=toolchain_registry,
            module_sources=module_sources,
        )

    def list_modules(self) -> Iterable[str]:
        return self.modules.keys()

    def get_module(self, name: str) -> ModuleProperties:
        if name not in self.modules:
            available = ", ".join(sorted(self.modules)) or "<none>"
            raise KeyError(f"Module '{name}' not found. Available modules: {available}")
        return self.modules[name]

    def validate(self) -> list[str]:
        """Return problems that are visible before planning starts."""

        errors: list[str] = []
        errors.extend(self.toolchains.validate())
        for target in self.global_config.targets:
            if self.toolchains.for_target(target) is None:
                errors.append(f"No toolchain registered for target '{target.name}'")
        return errors


__all__ = ["ConfigurationStore", "DEFAULT_TARGETS", "PlanConfig", "PlanEnvironment", "parse_module_file"]
