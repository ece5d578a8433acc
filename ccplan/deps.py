"""Dependency accumulation and classification into typed graph edges."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import TYPE_CHECKING, Dict, Iterable, List, Mapping, Sequence, Tuple
import logging

if TYPE_CHECKING:
    from .graph import ModuleGraph, ModuleNode
    from .module import ModuleContext

logger = logging.getLogger(__name__)


class Bucket(str, Enum):
    """Ordering class of a resolved dependency; values name the ``PathDeps`` list."""

    WHOLE_STATIC = "whole_static_libs"
    STATIC = "static_libs"
    LATE_STATIC = "late_static_libs"
    SHARED = "shared_libs"
    LATE_SHARED = "late_shared_libs"
    OBJECTS = "obj_files"
    GENERATED_SOURCES = "generated_sources"
    GENERATED_HEADERS = "generated_headers"


class DependencyKind(str, Enum):
    WHOLE_STATIC = "whole static"
    STATIC = "static"
    LATE_STATIC = "late static"
    SHARED = "shared"
    LATE_SHARED = "late shared"
    GENERATED_SOURCE = "gen source"
    GENERATED_HEADER = "gen header"
    OBJECT = "obj"
    CRT_BEGIN = "crtbegin"
    CRT_END = "crtend"
    REUSE_OBJECTS = "reuse objects"

    @property
    def library(self) -> bool:
        return self in _LIBRARY_KINDS

    @property
    def bucket(self) -> Bucket | None:
        return _KIND_BUCKETS.get(self)

    @property
    def link_variation(self) -> str | None:
        return _KIND_LINK_VARIATIONS.get(self)


_LIBRARY_KINDS = frozenset(
    {
        DependencyKind.WHOLE_STATIC,
        DependencyKind.STATIC,
        DependencyKind.LATE_STATIC,
        DependencyKind.SHARED,
        DependencyKind.LATE_SHARED,
    }
)

_KIND_BUCKETS: Dict[DependencyKind, Bucket] = {
    DependencyKind.WHOLE_STATIC: Bucket.WHOLE_STATIC,
    DependencyKind.STATIC: Bucket.STATIC,
    DependencyKind.LATE_STATIC: Bucket.LATE_STATIC,
    DependencyKind.SHARED: Bucket.SHARED,
    DependencyKind.LATE_SHARED: Bucket.LATE_SHARED,
    DependencyKind.OBJECT: Bucket.OBJECTS,
    DependencyKind.GENERATED_SOURCE: Bucket.GENERATED_SOURCES,
    DependencyKind.GENERATED_HEADER: Bucket.GENERATED_HEADERS,
}

# A whole static library is always taken from the static variation, even for
# shared requesters.
_KIND_LINK_VARIATIONS: Dict[DependencyKind, str] = {
    DependencyKind.WHOLE_STATIC: "static",
    DependencyKind.STATIC: "static",
    DependencyKind.LATE_STATIC: "static",
    DependencyKind.SHARED: "shared",
    DependencyKind.LATE_SHARED: "shared",
}


@dataclass(frozen=True, slots=True)
class DependencyTag:
    kind: DependencyKind
    reexport: bool = False

    @property
    def library(self) -> bool:
        return self.kind.library

    def __str__(self) -> str:
        return f"{self.kind.value} (reexport)" if self.reexport else self.kind.value


SHARED_DEP = DependencyTag(DependencyKind.SHARED)
SHARED_EXPORT_DEP = DependencyTag(DependencyKind.SHARED, reexport=True)
LATE_SHARED_DEP = DependencyTag(DependencyKind.LATE_SHARED)
STATIC_DEP = DependencyTag(DependencyKind.STATIC)
STATIC_EXPORT_DEP = DependencyTag(DependencyKind.STATIC, reexport=True)
LATE_STATIC_DEP = DependencyTag(DependencyKind.LATE_STATIC)
WHOLE_STATIC_DEP = DependencyTag(DependencyKind.WHOLE_STATIC, reexport=True)
GEN_SOURCE_DEP = DependencyTag(DependencyKind.GENERATED_SOURCE)
GEN_HEADER_DEP = DependencyTag(DependencyKind.GENERATED_HEADER)
OBJ_DEP = DependencyTag(DependencyKind.OBJECT)
CRT_BEGIN_DEP = DependencyTag(DependencyKind.CRT_BEGIN)
CRT_END_DEP = DependencyTag(DependencyKind.CRT_END)
REUSE_OBJECTS_DEP = DependencyTag(DependencyKind.REUSE_OBJECTS)


@dataclass(frozen=True, slots=True)
class DependencyEdge:
    target: str
    tag: DependencyTag

    @property
    def bucket(self) -> Bucket | None:
        return self.tag.kind.bucket

    @property
    def variation(self) -> Mapping[str, str]:
        link = self.tag.kind.link_variation
        return {"link": link} if link else {}


@dataclass(slots=True)
class Deps:
    """Per-role dependency names accumulated by the feature stages."""

    shared_libs: List[str] = field(default_factory=list)
    late_shared_libs: List[str] = field(default_factory=list)
    static_libs: List[str] = field(default_factory=list)
    late_static_libs: List[str] = field(default_factory=list)
    whole_static_libs: List[str] = field(default_factory=list)
    reexport_shared_lib_headers: List[str] = field(default_factory=list)
    reexport_static_lib_headers: List[str] = field(default_factory=list)
    obj_files: List[str] = field(default_factory=list)
    generated_sources: List[str] = field(default_factory=list)
    generated_headers: List[str] = field(default_factory=list)
    crt_begin: str | None = None
    crt_end: str | None = None

    def extended(self, **lists: Sequence[str]) -> "Deps":
        """Return a copy with each named list extended by the given names."""

        changes: Dict[str, List[str]] = {}
        for key, values in lists.items():
            changes[key] = [*getattr(self, key), *values]
        return replace(self, **changes)

    def with_changes(self, **changes: object) -> "Deps":
        return replace(self, **changes)

    def names(self) -> List[str]:
        """Every referenced module name, in role order."""

        names: List[str] = []
        for values in (
            self.whole_static_libs,
            self.static_libs,
            self.late_static_libs,
            self.shared_libs,
            self.late_shared_libs,
            self.generated_sources,
            self.generated_headers,
            self.obj_files,
        ):
            names.extend(values)
        names.extend(name for name in (self.crt_begin, self.crt_end) if name)
        return names


def last_unique_elements(values: Sequence[str]) -> List[str]:
    """Return ``values`` without duplicates, keeping the last copy of each element."""

    seen: set[str] = set()
    reversed_unique: List[str] = []
    for value in reversed(values):
        if value not in seen:
            seen.add(value)
            reversed_unique.append(value)
    reversed_unique.reverse()
    return reversed_unique


def filter_list(values: Sequence[str], remove: Iterable[str]) -> Tuple[List[str], List[str]]:
    """Split ``values`` into entries not in ``remove`` and entries in ``remove``."""

    denied = set(remove)
    kept: List[str] = []
    removed: List[str] = []
    for value in values:
        (removed if value in denied else kept).append(value)
    return kept, removed


def deduplicate(deps: Deps) -> Deps:
    return replace(
        deps,
        shared_libs=last_unique_elements(deps.shared_libs),
        late_shared_libs=last_unique_elements(deps.late_shared_libs),
        static_libs=last_unique_elements(deps.static_libs),
        late_static_libs=last_unique_elements(deps.late_static_libs),
        whole_static_libs=last_unique_elements(deps.whole_static_libs),
        obj_files=last_unique_elements(deps.obj_files),
        generated_sources=last_unique_elements(deps.generated_sources),
        generated_headers=last_unique_elements(deps.generated_headers),
    )


def classify(ctx: "ModuleContext", deps: Deps) -> List[DependencyEdge]:
    """Turn accumulated dependency names into typed edges.

    Re-export names missing from their base list are reported as
    configuration errors on the module; classification still returns the
    edges for everything else.
    """

    deps = deduplicate(deps)

    for lib in deps.reexport_shared_lib_headers:
        if lib not in deps.shared_libs:
            ctx.property_error("export_shared_lib_headers", f"Shared library not in shared_libs: '{lib}'")
    for lib in deps.reexport_static_lib_headers:
        if lib not in deps.static_libs:
            ctx.property_error("export_static_lib_headers", f"Static library not in static_libs: '{lib}'")

    edges: List[DependencyEdge] = []
    edges.extend(DependencyEdge(lib, WHOLE_STATIC_DEP) for lib in deps.whole_static_libs)
    for lib in deps.static_libs:
        tag = STATIC_EXPORT_DEP if lib in deps.reexport_static_lib_headers else STATIC_DEP
        edges.append(DependencyEdge(lib, tag))
    edges.extend(DependencyEdge(lib, LATE_STATIC_DEP) for lib in deps.late_static_libs)
    for lib in deps.shared_libs:
        tag = SHARED_EXPORT_DEP if lib in deps.reexport_shared_lib_headers else SHARED_DEP
        edges.append(DependencyEdge(lib, tag))
    edges.extend(DependencyEdge(lib, LATE_SHARED_DEP) for lib in deps.late_shared_libs)
    edges.extend(DependencyEdge(name, GEN_SOURCE_DEP) for name in deps.generated_sources)
    edges.extend(DependencyEdge(name, GEN_HEADER_DEP) for name in deps.generated_headers)
    edges.extend(DependencyEdge(name, OBJ_DEP) for name in deps.obj_files)
    if deps.crt_begin:
        edges.append(DependencyEdge(deps.crt_begin, CRT_BEGIN_DEP))
    if deps.crt_end:
        edges.append(DependencyEdge(deps.crt_end, CRT_END_DEP))
    return edges


def add_dependency_edges(
    graph: "ModuleGraph",
    node: "ModuleNode",
    ctx: "ModuleContext",
    edges: Iterable[DependencyEdge],
) -> None:
    """Declare ``edges`` on the graph, recording names the graph cannot resolve."""

    missing: List[str] = []
    for edge in edges:
        if not graph.add_dependency(node, edge.tag, [edge.target], variation=edge.variation):
            continue
        if not graph.variants(edge.target):
            missing.append(edge.target)
            continue
        link = edge.tag.kind.link_variation
        if link:
            ctx.compatibility_error(edge.target, f"module '{edge.target}' not a {link} library")
        else:
            ctx.compatibility_error(edge.target, f"no variant of module '{edge.target}' matches '{node.variant_name}'")
    if not missing:
        return
    if ctx.config.allow_missing_dependencies:
        logger.warning("%s: missing dependencies %s", ctx.module_name, ", ".join(missing))
        ctx.add_missing_dependencies(missing)
        return
    for name in missing:
        ctx.compatibility_error(name, f"depends on undefined module '{name}'")


__all__ = [
    "Bucket",
    "CRT_BEGIN_DEP",
    "CRT_END_DEP",
    "DependencyEdge",
    "DependencyKind",
    "DependencyTag",
    "Deps",
    "GEN_HEADER_DEP",
    "GEN_SOURCE_DEP",
    "LATE_SHARED_DEP",
    "LATE_STATIC_DEP",
    "OBJ_DEP",
    "REUSE_OBJECTS_DEP",
    "SHARED_DEP",
    "SHARED_EXPORT_DEP",
    "STATIC_DEP",
    "STATIC_EXPORT_DEP",
    "WHOLE_STATIC_DEP",
    "add_dependency_edges",
    "classify",
    "deduplicate",
    "filter_list",
    "last_unique_elements",
]
