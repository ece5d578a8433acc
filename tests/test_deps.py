from __future__ import annotations

import unittest

from ccplan.deps import (
    CRT_BEGIN_DEP,
    GEN_HEADER_DEP,
    LATE_SHARED_DEP,
    LATE_STATIC_DEP,
    OBJ_DEP,
    SHARED_DEP,
    STATIC_DEP,
    STATIC_EXPORT_DEP,
    WHOLE_STATIC_DEP,
    Bucket,
    DependencyEdge,
    Deps,
    add_dependency_edges,
    classify,
    filter_list,
    last_unique_elements,
)
from ccplan.graph import ModuleGraph

from planning_fixtures import RecordingContext


class ListHelperTests(unittest.TestCase):
    def test_last_unique_elements_keeps_last_occurrence(self) -> None:
        self.assertEqual(last_unique_elements(["a", "b", "a", "c", "b"]), ["a", "c", "b"])
        self.assertEqual(last_unique_elements([]), [])

    def test_filter_list_partitions_in_order(self) -> None:
        kept, removed = filter_list(["libm", "libc", "libfoo", "libc_nomalloc"], ["libc", "libc_nomalloc"])
        self.assertEqual(kept, ["libm", "libfoo"])
        self.assertEqual(removed, ["libc", "libc_nomalloc"])

    def test_deps_extended_returns_new_record(self) -> None:
        deps = Deps(static_libs=["liba"])
        extended = deps.extended(static_libs=["libb"], shared_libs=["libc"])
        self.assertEqual(deps.static_libs, ["liba"])
        self.assertEqual(extended.static_libs, ["liba", "libb"])
        self.assertEqual(extended.shared_libs, ["libc"])


class ClassifyTests(unittest.TestCase):
    def test_edges_follow_role_order_with_reexport_tags(self) -> None:
        ctx = RecordingContext()
        deps = Deps(
            static_libs=["liba", "libb", "liba"],
            shared_libs=["libs"],
            whole_static_libs=["libw"],
            late_static_libs=["libgcc"],
            late_shared_libs=["libc"],
            generated_headers=["hdrs"],
            obj_files=["crt"],
            crt_begin="crtbegin_so",
            reexport_static_lib_headers=["libb"],
        )

        edges = classify(ctx, deps)

        self.assertEqual(
            [(edge.target, edge.tag) for edge in edges],
            [
                ("libw", WHOLE_STATIC_DEP),
                ("libb", STATIC_EXPORT_DEP),
                ("liba", STATIC_DEP),
                ("libgcc", LATE_STATIC_DEP),
                ("libs", SHARED_DEP),
                ("libc", LATE_SHARED_DEP),
                ("hdrs", GEN_HEADER_DEP),
                ("crt", OBJ_DEP),
                ("crtbegin_so", CRT_BEGIN_DEP),
            ],
        )
        self.assertEqual(ctx.errors, [])

    def test_reexport_outside_base_list_is_a_property_error(self) -> None:
        ctx = RecordingContext()
        deps = Deps(shared_libs=["liba"], reexport_shared_lib_headers=["libz"], reexport_static_lib_headers=["libq"])

        edges = classify(ctx, deps)

        self.assertEqual([edge.target for edge in edges], ["liba"])
        self.assertEqual(
            ctx.errors,
            [
                ("export_shared_lib_headers", "Shared library not in shared_libs: 'libz'"),
                ("export_static_lib_headers", "Static library not in static_libs: 'libq'"),
            ],
        )

    def test_library_edges_select_link_variation(self) -> None:
        self.assertEqual(DependencyEdge("libw", WHOLE_STATIC_DEP).variation, {"link": "static"})
        self.assertEqual(DependencyEdge("libs", LATE_SHARED_DEP).variation, {"link": "shared"})
        self.assertEqual(DependencyEdge("hdrs", GEN_HEADER_DEP).variation, {})
        self.assertEqual(DependencyEdge("libs", SHARED_DEP).bucket, Bucket.SHARED)
        self.assertIsNone(DependencyEdge("crt", CRT_BEGIN_DEP).bucket)


class DependencyEdgeTests(unittest.TestCase):
    def setUp(self) -> None:
        self.graph = ModuleGraph()
        self.app = self.graph.add_module("app", object())
        self.graph.add_module("liba", object())
        self.edges = [DependencyEdge("liba", STATIC_DEP), DependencyEdge("libnope", SHARED_DEP)]

    def test_unknown_dependency_is_an_error_by_default(self) -> None:
        ctx = RecordingContext()
        add_dependency_edges(self.graph, self.app, ctx, self.edges)

        self.assertEqual(ctx.errors, [("libnope", "depends on undefined module 'libnope'")])
        self.assertEqual(ctx.missing, [])
        self.assertEqual(len(self.app.dependencies), 1)

    def test_unknown_dependency_is_recorded_when_allowed(self) -> None:
        ctx = RecordingContext(allow_missing_dependencies=True)
        with self.assertLogs("ccplan.deps", level="WARNING"):
            add_dependency_edges(self.graph, self.app, ctx, self.edges)

        self.assertEqual(ctx.errors, [])
        self.assertEqual(ctx.missing, ["libnope"])

    def test_defined_module_without_the_link_variant_is_not_missing(self) -> None:
        self.graph.add_module("libshared", object(), variant=(("link", "shared"),))
        ctx = RecordingContext(allow_missing_dependencies=True)
        add_dependency_edges(self.graph, self.app, ctx, [DependencyEdge("libshared", WHOLE_STATIC_DEP)])

        self.assertEqual(ctx.errors, [("libshared", "module 'libshared' not a static library")])
        self.assertEqual(ctx.missing, [])
        self.assertEqual(self.app.dependencies, [])


if __name__ == "__main__":
    unittest.main()
