from __future__ import annotations

from pathlib import Path
import tempfile
import textwrap
import unittest

from ccplan.config import ConfigurationStore, PlanConfig
from ccplan.config_loader import overlay_settings, plan_files_in, read_plan_file, string_list
from ccplan.properties import ModuleProperties


class PlanConfigTests(unittest.TestCase):
    def test_defaults(self) -> None:
        config = PlanConfig.from_mapping({})
        self.assertEqual([target.name for target in config.targets], ["android_arm64", "linux_x86_64"])
        self.assertTrue(config.device_uses_clang)
        self.assertFalse(config.allow_missing_dependencies)
        self.assertEqual(config.out_dir, "out")

    def test_first_target_of_each_os_is_native(self) -> None:
        config = PlanConfig.from_mapping(
            {"global": {"targets": ["android_arm64", "android_arm", "linux_x86_64", "linux_x86"]}}
        )
        native = {target.name: target.native for target in config.targets}
        self.assertEqual(
            native,
            {"android_arm64": True, "android_arm": False, "linux_x86_64": True, "linux_x86": False},
        )
        self.assertEqual([target.name for target in config.device_targets()], ["android_arm64", "android_arm"])

    def test_rejects_unknown_keys_and_bad_values(self) -> None:
        with self.assertRaises(ValueError):
            PlanConfig.from_mapping({"global": {"colour": "blue"}})
        with self.assertRaises(ValueError):
            PlanConfig.from_mapping({"global": {"log_level": "chatty"}})
        with self.assertRaises(TypeError):
            PlanConfig.from_mapping({"global": {"brillo": "yes"}})
        with self.assertRaises(ValueError):
            PlanConfig.from_mapping({"global": {"targets": ["linux_x86_64", "linux_x86_64"]}})


class ModulePropertiesTests(unittest.TestCase):
    def test_parses_nested_tables(self) -> None:
        props = ModuleProperties.from_mapping(
            {
                "name": "libfoo",
                "type": "cc_library",
                "srcs": ["foo.cpp", "bar.cpp"],
                "static": {"cflags": ["-DSTATIC"], "enabled": True},
                "shared": {"shared_libs": ["liblog"]},
                "strip": {"keep_symbols": True},
                "sanitize": {"address": True},
                "release": {"cflags": ["-O2"]},
            },
            module_dir="libs/foo",
        )

        self.assertEqual(props.srcs, ("foo.cpp", "bar.cpp"))
        self.assertEqual(props.static.cflags, ("-DSTATIC",))
        self.assertTrue(props.static.enabled)
        self.assertIsNone(props.shared.enabled)
        self.assertEqual(props.shared.shared_libs, ("liblog",))
        self.assertTrue(props.strip.keep_symbols)
        self.assertTrue(props.sanitize.address)
        self.assertIsNone(props.sanitize.thread)
        self.assertEqual(props.release_cflags, ("-O2",))
        self.assertEqual(props.module_dir, "libs/foo")
        self.assertIsNone(props.system_shared_libs)

    def test_explicit_empty_system_shared_libs_is_kept(self) -> None:
        props = ModuleProperties.from_mapping({"name": "libc", "type": "cc_library", "system_shared_libs": []})
        self.assertEqual(props.system_shared_libs, ())

    def test_rejects_unknown_keys_and_missing_type(self) -> None:
        with self.assertRaises(ValueError):
            ModuleProperties.from_mapping({"name": "libfoo", "type": "cc_library", "sources": ["a.c"]})
        with self.assertRaises(ValueError):
            ModuleProperties.from_mapping({"name": "libfoo"})
        with self.assertRaises(ValueError):
            ModuleProperties.from_mapping({"name": "libfoo", "type": "cc_library", "static": {"link": True}})
        with self.assertRaises(TypeError):
            ModuleProperties.from_mapping({"name": "libfoo", "type": "cc_library", "clang": "yes"})


class ConfigLoaderTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_loads_each_supported_format(self) -> None:
        (self.root / "a.toml").write_text('[global]\nout_dir = "build"\n')
        (self.root / "b.json").write_text('{"global": {"brillo": true}}')
        (self.root / "c.yaml").write_text("global:\n  log_level: debug\n")

        merged = {}
        for path in plan_files_in(self.root).values():
            merged = overlay_settings(merged, read_plan_file(path))

        self.assertEqual(merged, {"global": {"out_dir": "build", "brillo": True, "log_level": "debug"}})

    def test_one_format_per_entry(self) -> None:
        (self.root / "config.toml").write_text("")
        (self.root / "config.yaml").write_text("")
        with self.assertRaises(ValueError):
            plan_files_in(self.root)

    def test_unsupported_extension(self) -> None:
        path = self.root / "config.ini"
        path.write_text("[global]\n")
        with self.assertRaises(ValueError):
            read_plan_file(path)

    def test_string_list(self) -> None:
        self.assertEqual(string_list(" a "), ["a"])
        self.assertEqual(string_list(["a", " ", "b"]), ["a", "b"])
        with self.assertRaises(TypeError):
            string_list([1], field_name="srcs")
        with self.assertRaises(TypeError):
            string_list({"a": 1}, field_name="srcs")

    def test_empty_documents_read_as_empty_tables(self) -> None:
        path = self.root / "empty.yaml"
        path.write_text("")
        self.assertEqual(read_plan_file(path), {})
        (self.root / "list.json").write_text("[1, 2]")
        with self.assertRaises(TypeError):
            read_plan_file(self.root / "list.json")


class ConfigurationStoreTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.root = Path(self.temp_dir.name)
        self.config_dir = self.root / "config"
        self.modules_dir = self.config_dir / "modules"
        self.modules_dir.mkdir(parents=True)
        (self.config_dir / "config.toml").write_text(
            textwrap.dedent(
                """
                [global]
                targets = ["android_arm64", "linux_x86_64"]
                allow_missing_dependencies = true
                """
            )
        )
        (self.modules_dir / "libfoo.toml").write_text(
            textwrap.dedent(
                """
                module_dir = "libs/foo"

                [[modules]]
                name = "libfoo"
                type = "cc_library"
                srcs = ["foo.cpp"]
                export_include_dirs = ["include"]

                [[modules]]
                name = "foo_tool"
                type = "cc_binary_host"
                srcs = ["tool.cpp"]
                static_libs = ["libfoo"]
                """
            )
        )
        (self.modules_dir / "libbar.yaml").write_text(
            textwrap.dedent(
                """
                modules:
                  - name: libbar
                    type: cc_library_static
                    srcs: [bar.c]
                    host_supported: true
                """
            )
        )

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def test_loads_global_config_and_modules(self) -> None:
        store = ConfigurationStore.from_directory(self.root)

        self.assertTrue(store.global_config.allow_missing_dependencies)
        self.assertEqual(sorted(store.list_modules()), ["foo_tool", "libbar", "libfoo"])
        libfoo = store.get_module("libfoo")
        self.assertEqual(libfoo.module_dir, "libs/foo")
        self.assertEqual(libfoo.export_include_dirs, ("include",))
        self.assertTrue(store.get_module("libbar").host_supported)
        self.assertEqual(store.module_sources["libbar"], self.modules_dir / "libbar.yaml")
        self.assertEqual(store.validate(), [])

    def test_module_files_in_subdirectories_are_loaded(self) -> None:
        nested = self.modules_dir / "external" / "zlib"
        nested.mkdir(parents=True)
        (nested / "zlib.toml").write_text(
            'module_dir = "external/zlib"\n\n[[modules]]\nname = "libz"\ntype = "cc_library"\nsrcs = ["adler32.c"]\n'
        )

        store = ConfigurationStore.from_directory(self.root)

        self.assertEqual(store.get_module("libz").module_dir, "external/zlib")
        self.assertEqual(store.module_sources["libz"], nested / "zlib.toml")

    def test_get_module_lists_available_names(self) -> None:
        store = ConfigurationStore.from_directory(self.root)
        with self.assertRaises(KeyError) as ctx:
            store.get_module("libnope")
        self.assertIn("libbar", str(ctx.exception))

    def test_duplicate_modules_are_rejected(self) -> None:
        (self.modules_dir / "zzz.toml").write_text('[[modules]]\nname = "libbar"\ntype = "cc_library"\n')
        with self.assertRaises(ValueError) as ctx:
            ConfigurationStore.from_directory(self.root)
        self.assertIn("declared in both", str(ctx.exception))

    def test_later_directories_extend_earlier_ones(self) -> None:
        overlay = self.root / "overlay"
        overlay.mkdir()
        (overlay / "config.toml").write_text('[global]\ntargets = ["android_arm64", "android_mips"]\n')
        (overlay / "toolchains.toml").write_text(
            '[toolchains.android_x86]\nos = "android"\narch = "x86"\ngcc_version = "4.8"\n'
        )

        store = ConfigurationStore.from_directories(self.root, [self.config_dir, overlay])

        self.assertTrue(store.global_config.allow_missing_dependencies)
        self.assertEqual([t.name for t in store.global_config.targets], ["android_arm64", "android_mips"])
        self.assertEqual(store.toolchains.get("android_x86").gcc_version, "4.8")
        self.assertEqual(store.validate(), ["No toolchain registered for target 'android_mips'"])

    def test_missing_directories(self) -> None:
        with self.assertRaises(FileNotFoundError):
            ConfigurationStore.from_directories(self.root, [self.root / "nowhere"])


if __name__ == "__main__":
    unittest.main()
