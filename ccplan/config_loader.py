"""Reading plan configuration and module declaration files from disk."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Iterator, List, Mapping, Tuple

import json
import tomllib

import yaml


PlanFileDecoder = Callable[[Path], Any]


def _decode_toml(path: Path) -> Any:
    with path.open("rb") as handle:
        return tomllib.load(handle)


def _decode_json(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as handle:
        return json.load(handle)


def _decode_yaml(path: Path) -> Any:
    with path.open("r", encoding="utf-8") as handle:
        return yaml.safe_load(handle)


PLAN_FILE_DECODERS: Dict[str, PlanFileDecoder] = {
    ".toml": _decode_toml,
    ".json": _decode_json,
    ".yaml": _decode_yaml,
    ".yml": _decode_yaml,
}
"""Decoders for every supported plan file suffix."""


def read_plan_file(path: Path) -> Mapping[str, Any]:
    """Decode ``path`` and return its root table; an empty document reads as ``{}``."""

    decoder = PLAN_FILE_DECODERS.get(path.suffix.lower())
    if decoder is None:
        supported = ", ".join(sorted(PLAN_FILE_DECODERS))
        raise ValueError(f"Unsupported plan file '{path.name}'. Supported suffixes: {supported}")

    data = decoder(path)
    if data is None:
        return {}
    if not isinstance(data, Mapping):
        raise TypeError(f"Plan file '{path}' must contain a table at the root")
    return data


def plan_files_in(directory: Path) -> Dict[str, Path]:
    """Map entry names (file stems) to the plan files directly inside ``directory``.

    An entry may only be written in one format; ``config.toml`` next to
    ``config.yaml`` is rejected rather than silently picking one.
    """

    entries: Dict[str, Path] = {}
    for path in sorted(directory.iterdir()):
        if not path.is_file() or path.suffix.lower() not in PLAN_FILE_DECODERS:
            continue
        if path.stem in entries:
            raise ValueError(
                f"'{path.stem}' is declared by both '{entries[path.stem].name}' and '{path.name}'; "
                "keep a single format per entry"
            )
        entries[path.stem] = path
    return entries


def module_files_under(directory: Path) -> Iterator[Path]:
    """Yield module declaration files below ``directory``, depth first in name order."""

    yield from plan_files_in(directory).values()
    for child in sorted(path for path in directory.iterdir() if path.is_dir()):
        yield from module_files_under(child)


def overlay_settings(base: Mapping[str, Any], overlay: Mapping[str, Any]) -> Dict[str, Any]:
    """Layer ``overlay`` on ``base``: tables merge key by key, anything else is replaced."""

    merged: Dict[str, Any] = dict(base)
    for key, value in overlay.items():
        current = merged.get(key)
        if isinstance(current, Mapping) and isinstance(value, Mapping):
            merged[key] = overlay_settings(current, value)
        else:
            merged[key] = value
    return merged


def string_list(value: Any, *, field_name: str | None = None) -> List[str]:
    """Coerce a property value into a list of stripped strings, dropping blanks.

    A bare string counts as a one element list so ``srcs = "a.c"`` reads the
    same as ``srcs = ["a.c"]``.
    """

    label = f"{field_name} " if field_name else ""
    if value is None:
        return []
    if isinstance(value, str):
        return [value.strip()] if value.strip() else []
    if not isinstance(value, (list, tuple)):
        raise TypeError(f"{label}must be a string or a list of strings")

    items: List[str] = []
    for item in value:
        if not isinstance(item, str):
            raise TypeError(f"{label}entries must be strings, got {type(item).__name__}")
        if item.strip():
            items.append(item.strip())
    return items


def existing_directories(root: Path, directories: Iterable[Path]) -> Tuple[Tuple[Path, ...], Tuple[Path, ...]]:
    """Resolve ``directories`` against ``root``; return (present, missing), first occurrence wins."""

    present: List[Path] = []
    missing: List[Path] = []
    for raw in directories:
        path = raw if raw.is_absolute() else (root / raw).resolve()
        if path in present or path in missing:
            continue
        (present if path.is_dir() else missing).append(path)
    return tuple(present), tuple(missing)


__all__ = [
    "PLAN_FILE_DECODERS",
    "PlanFileDecoder",
    "existing_directories",
    "module_files_under",
    "overlay_settings",
    "plan_files_in",
    "read_plan_file",
    "string_list",
]
