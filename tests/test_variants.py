from __future__ import annotations

import unittest

from ccplan.deps import REUSE_OBJECTS_DEP
from ccplan.module import Module

from planning_fixtures import build_graph, declare, plan_modules, variant_names

DEVICE_AND_HOST = ("android_arm64", "android_arm", "linux_x86_64")


class ArchExpansionTests(unittest.TestCase):
    def test_libraries_are_device_only_unless_host_supported(self) -> None:
        graph = build_graph(
            [
                declare("libdevice", "cc_library_static", srcs=["a.c"]),
                declare("libboth", "cc_library_static", srcs=["a.c"], host_supported=True),
                declare("libhost", "cc_library_static", srcs=["a.c"], host_supported=True, device_supported=False),
            ],
            targets=DEVICE_AND_HOST,
            allow_missing_dependencies=True,
        )

        self.assertEqual(variant_names(graph, "libdevice"), ["android_arm64_static", "android_arm_static"])
        self.assertEqual(
            variant_names(graph, "libboth"),
            ["android_arm64_static", "android_arm_static", "linux_x86_64_static"],
        )
        self.assertEqual(variant_names(graph, "libhost"), ["linux_x86_64_static"])

    def test_binaries_only_build_for_the_native_arch(self) -> None:
        graph = build_graph(
            [
                declare("app", "cc_binary", srcs=["main.cpp"]),
                declare("app_test", "cc_test", srcs=["main_test.cpp"]),
            ],
            targets=DEVICE_AND_HOST,
            allow_missing_dependencies=True,
        )

        self.assertEqual(variant_names(graph, "app"), ["android_arm64_shared"])
        self.assertEqual(variant_names(graph, "app_test"), ["android_arm64_shared", "android_arm_shared"])

    def test_module_without_targets_is_disabled(self) -> None:
        results = plan_modules(
            [declare("libhost", "cc_library_host_static", srcs=["a.c"])],
            targets=("android_arm64",),
        )
        self.assertEqual(results, {})

    def test_missing_toolchain_is_a_module_error(self) -> None:
        results = plan_modules([declare("libfoo", "cc_library_static", srcs=["a.c"])], targets=("android_mips",))

        result = results[("libfoo", "android_mips")]
        self.assertTrue(result.failed)
        self.assertIn("Toolchain not found for android arch 'mips'", str(result.errors[0]))


class LinkExpansionTests(unittest.TestCase):
    def test_shared_variant_reuses_static_objects(self) -> None:
        graph = build_graph(
            [declare("libfoo", "cc_library", srcs=["foo.cpp"], host_supported=True)],
            targets=("linux_x86_64",),
            allow_missing_dependencies=True,
        )

        static, shared = graph.variants("libfoo")
        self.assertEqual((static.variant_name, shared.variant_name), ("linux_x86_64_static", "linux_x86_64_shared"))
        self.assertTrue(static.logic.state.static)
        self.assertFalse(shared.logic.state.static)
        self.assertEqual(shared.logic.properties.srcs, ())
        tag, target = shared.dependencies[0]
        self.assertEqual(tag, REUSE_OBJECTS_DEP)
        self.assertIs(target, static)

    def test_per_mode_sources_disable_object_reuse(self) -> None:
        graph = build_graph(
            [
                declare(
                    "libfoo",
                    "cc_library",
                    srcs=["foo.cpp"],
                    host_supported=True,
                    shared={"srcs": ["shared_only.cpp"]},
                )
            ],
            targets=("linux_x86_64",),
            allow_missing_dependencies=True,
        )

        _, shared = graph.variants("libfoo")
        self.assertEqual(shared.logic.properties.srcs, ("foo.cpp",))
        self.assertNotIn(REUSE_OBJECTS_DEP, [tag for tag, _ in shared.dependencies])

    def test_disabled_link_mode_is_not_planned(self) -> None:
        results = plan_modules(
            [declare("libfoo", "cc_library", srcs=["foo.cpp"], host_supported=True, static={"enabled": False})],
            allow_missing_dependencies=True,
        )

        self.assertEqual(list(results), [("libfoo", "linux_x86_64_shared")])
        shared = results[("libfoo", "linux_x86_64_shared")]
        self.assertEqual([action.source.name for action in shared.artifact.compile_actions], ["foo.cpp"])

    def test_library_that_is_neither_static_nor_shared(self) -> None:
        results = plan_modules(
            [
                declare(
                    "libnone",
                    "cc_library",
                    srcs=["a.c"],
                    host_supported=True,
                    static={"enabled": False},
                    shared={"enabled": False},
                )
            ],
            allow_missing_dependencies=True,
        )

        result = results[("libnone", "linux_x86_64")]
        self.assertTrue(result.failed)
        self.assertEqual(result.errors[0].property_name, "static.enabled")
        self.assertIn("neither static nor shared", str(result.errors[0]))


class SanitizerExpansionTests(unittest.TestCase):
    def test_sanitized_binary_splits_its_dependencies(self) -> None:
        graph = build_graph(
            [
                declare("app", "cc_binary", srcs=["main.cpp"], shared_libs=["libfoo"], sanitize={"address": True}),
                declare("libfoo", "cc_library", srcs=["foo.cpp"], static_libs=["libbase"]),
                declare("libbase", "cc_library_static", srcs=["base.cpp"]),
                declare("libnever", "cc_library_static", srcs=["n.cpp"], sanitize={"never": True}),
                declare("other", "cc_binary", srcs=["other.cpp"], static_libs=["libnever"]),
            ],
            targets=("android_arm64",),
            allow_missing_dependencies=True,
        )

        self.assertEqual(variant_names(graph, "app"), ["android_arm64_asan_shared"])
        self.assertEqual(
            variant_names(graph, "libfoo"),
            ["android_arm64_static", "android_arm64_shared", "android_arm64_asan_static", "android_arm64_asan_shared"],
        )
        self.assertEqual(variant_names(graph, "libbase"), ["android_arm64_static", "android_arm64_asan_static"])
        self.assertEqual(variant_names(graph, "libnever"), ["android_arm64_static"])
        self.assertEqual(variant_names(graph, "other"), ["android_arm64_shared"])

        asan_shared = graph.variants("libfoo")[3].logic
        self.assertIsInstance(asan_shared, Module)
        self.assertEqual(asan_shared.state.sanitizers, ("address",))
        self.assertTrue(asan_shared.state.in_data)
        self.assertFalse(graph.variants("libfoo")[1].logic.state.in_data)

        (app,) = graph.variants("app")
        linked = [target for _, target in app.dependencies if target.name == "libfoo"]
        self.assertEqual([target.variant_name for target in linked], ["android_arm64_asan_shared"])

    def test_static_binaries_are_never_sanitized(self) -> None:
        graph = build_graph(
            [
                declare(
                    "app",
                    "cc_binary",
                    srcs=["main.cpp"],
                    static_executable=True,
                    sanitize={"address": True},
                )
            ],
            targets=("android_arm64",),
            allow_missing_dependencies=True,
        )
        self.assertEqual(variant_names(graph, "app"), ["android_arm64_static"])

    def test_address_and_thread_cannot_be_combined(self) -> None:
        results = plan_modules(
            [declare("app", "cc_binary", srcs=["main.cpp"], sanitize={"address": True, "thread": True})],
            targets=("android_arm64",),
            allow_missing_dependencies=True,
        )

        result = results[("app", "android_arm64_asan_tsan_shared")]
        self.assertTrue(result.failed)
        self.assertEqual(result.errors[0].property_name, "sanitize")


class TestPerSourceTests(unittest.TestCase):
    def test_one_variant_per_source(self) -> None:
        graph = build_graph(
            [
                declare(
                    "unit",
                    "cc_test_host",
                    srcs=["tests/a_test.cpp", "tests/b_test.cpp"],
                    test_per_src=True,
                    gtest=False,
                )
            ],
            allow_missing_dependencies=True,
        )

        first, second = graph.variants("unit")
        self.assertEqual(first.variant_name, "linux_x86_64_shared_a_test")
        self.assertEqual(first.logic.properties.srcs, ("tests/a_test.cpp",))
        self.assertEqual(first.logic.properties.stem, "a_test")
        self.assertEqual(second.logic.properties.srcs, ("tests/b_test.cpp",))

    def test_duplicate_base_names_are_rejected(self) -> None:
        results = plan_modules(
            [
                declare(
                    "unit",
                    "cc_test_host",
                    srcs=["a/t.cpp", "b/t.cpp"],
                    test_per_src=True,
                    gtest=False,
                )
            ],
            allow_missing_dependencies=True,
        )

        result = results[("unit", "linux_x86_64_shared")]
        self.assertTrue(result.failed)
        self.assertEqual(result.errors[0].property_name, "test_per_src")
        self.assertIn("sources share a base name: t", str(result.errors[0]))


if __name__ == "__main__":
    unittest.main()
