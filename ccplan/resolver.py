"""Resolution of classified dependency edges into concrete artifact paths."""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import PurePosixPath
from typing import TYPE_CHECKING, Dict, List
import logging

from .deps import Bucket, DependencyKind, DependencyTag
from .flags import include_dirs_to_flags
from .linkers import NdkPrebuiltLibraryLinker, ToolchainLibraryLinker

if TYPE_CHECKING:
    from .graph import ModuleGraph, ModuleNode
    from .module import Module, ModuleContext

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class PathDeps:
    """Concrete inputs gathered from the direct dependencies of one variant."""

    shared_libs: List[PurePosixPath] = field(default_factory=list)
    late_shared_libs: List[PurePosixPath] = field(default_factory=list)
    static_libs: List[PurePosixPath] = field(default_factory=list)
    late_static_libs: List[PurePosixPath] = field(default_factory=list)
    whole_static_libs: List[PurePosixPath] = field(default_factory=list)
    whole_static_lib_objs: List[PurePosixPath] = field(default_factory=list)
    obj_files: List[PurePosixPath] = field(default_factory=list)
    generated_sources: List[PurePosixPath] = field(default_factory=list)
    generated_headers: List[PurePosixPath] = field(default_factory=list)
    cflags: List[str] = field(default_factory=list)
    reexported_cflags: List[str] = field(default_factory=list)
    crt_begin: PurePosixPath | None = None
    crt_end: PurePosixPath | None = None

    def bucket(self, bucket: Bucket) -> List[PurePosixPath]:
        return getattr(self, bucket.value)

    def as_dict(self) -> Dict[str, object]:
        data: Dict[str, object] = {
            bucket.value: [str(path) for path in self.bucket(bucket)] for bucket in Bucket
        }
        data["crt_begin"] = str(self.crt_begin) if self.crt_begin else None
        data["crt_end"] = str(self.crt_end) if self.crt_end else None
        return data


def link_type_ok(source: "Module", target: "Module") -> bool:
    """Whether ``source`` may link against ``target`` under version gating."""

    if not source.target.device:
        return True
    if not source.properties.sdk_version:
        return True
    if isinstance(target.linker, (ToolchainLibraryLinker, NdkPrebuiltLibraryLinker)):
        return True
    return bool(target.properties.sdk_version)


def resolve(ctx: "ModuleContext", graph: "ModuleGraph", node: "ModuleNode") -> PathDeps:
    """Walk the direct edges of ``node`` in declaration order.

    Problems are recorded on ``ctx``; an edge that fails a check contributes
    nothing and resolution moves on to the next edge.
    """

    from .module import Module

    deps = PathDeps()
    for tag, target_node in graph.direct_dependencies(node):
        name = target_node.name
        target = target_node.logic

        if not isinstance(target, Module):
            _resolve_generated(ctx, deps, tag, name, target)
            continue

        if not target.enabled:
            ctx.compatibility_error(name, f"depends on disabled module '{name}'")
            continue
        if target.target.os != ctx.target.os:
            ctx.compatibility_error(name, f"OS mismatch between '{ctx.module_name}' and '{name}'")
            continue
        if target.target.arch != ctx.target.arch:
            ctx.compatibility_error(name, f"Arch mismatch between '{ctx.module_name}' and '{name}'")
            continue

        artifact = target.artifact
        if artifact is None:
            ctx.compatibility_error(name, f"module '{name}' missing output file")
            continue

        kind = tag.kind
        if kind is DependencyKind.REUSE_OBJECTS:
            deps.obj_files.extend(target.reuse_objects)
            continue
        if kind in (DependencyKind.GENERATED_SOURCE, DependencyKind.GENERATED_HEADER):
            ctx.compatibility_error(name, f"module '{name}' is not a gensrcs or genrule")
            continue

        if tag.library:
            exported = list(artifact.exported_flags)
            deps.cflags.extend(exported)
            if tag.reexport:
                deps.reexported_cflags.extend(exported)
            if not link_type_ok(ctx.module, target):
                ctx.compatibility_error(name, f"depends on non-NDK-built library '{name}'")

        if kind is DependencyKind.WHOLE_STATIC:
            if not target.is_static_library:
                ctx.compatibility_error(name, f"module '{name}' not a static library")
                continue
            if artifact.whole_static_missing_deps:
                postfix = f" (required by {name})"
                ctx.add_missing_dependencies(missing + postfix for missing in artifact.whole_static_missing_deps)
            deps.whole_static_lib_objs.extend(artifact.archive_members)
        elif kind is DependencyKind.CRT_BEGIN:
            deps.crt_begin = artifact.output
            continue
        elif kind is DependencyKind.CRT_END:
            deps.crt_end = artifact.output
            continue

        bucket = kind.bucket
        if bucket is None:
            ctx.module_error(f"unexpected dependency tag '{tag}' on '{name}'")
            continue
        deps.bucket(bucket).append(artifact.output)
        logger.debug("%s: %s -> %s", ctx.module_name, tag, artifact.output)

    return deps


def _resolve_generated(ctx: "ModuleContext", deps: PathDeps, tag: DependencyTag, name: str, target: object) -> None:
    from .module import GeneratedModule

    kind = tag.kind
    if kind is DependencyKind.GENERATED_SOURCE:
        if isinstance(target, GeneratedModule):
            deps.generated_sources.extend(target.generated_files())
        else:
            ctx.compatibility_error(name, f"module '{name}' is not a gensrcs or genrule")
    elif kind is DependencyKind.GENERATED_HEADER:
        if isinstance(target, GeneratedModule):
            deps.generated_headers.extend(target.generated_files())
            deps.cflags.append(include_dirs_to_flags([target.generated_header_dir()]))
        else:
            ctx.compatibility_error(name, f"module '{name}' is not a genrule")
    else:
        ctx.compatibility_error(name, f"depends on non-cc module '{name}'")


__all__ = ["PathDeps", "link_type_ok", "resolve"]
