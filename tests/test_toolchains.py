from __future__ import annotations

import unittest

from ccplan.toolchains import Target, ToolchainDefinition, ToolchainRegistry


class TargetTests(unittest.TestCase):
    def test_parse_splits_os_and_arch(self) -> None:
        target = Target.parse("android_x86_64")
        self.assertEqual((target.os, target.arch), ("android", "x86_64"))
        self.assertTrue(target.device)
        self.assertEqual(target.name, "android_x86_64")
        self.assertTrue(Target.parse("darwin_x86_64").host)

    def test_parse_rejects_malformed_names(self) -> None:
        with self.assertRaises(ValueError):
            Target.parse("android")
        with self.assertRaises(ValueError):
            Target.parse("plan9_arm")


class ToolchainDefinitionTests(unittest.TestCase):
    def setUp(self) -> None:
        self.registry = ToolchainRegistry.with_builtins()

    def test_flag_sets_are_variable_references(self) -> None:
        arm64 = self.registry.get("android_arm64")
        self.assertEqual(arm64.cflags(clang=True), "${config.AndroidArm64ClangCflags}")
        self.assertEqual(arm64.cflags(clang=False), "${config.AndroidArm64Cflags}")
        self.assertEqual(arm64.toolchain_ldflags(clang=True), "${config.AndroidArm64ToolchainClangLdflags}")
        self.assertEqual(self.registry.get("linux_x86_64").include_flags(), "${config.LinuxX8664IncludeFlags}")

    def test_instruction_sets_are_validated(self) -> None:
        arm = self.registry.get("android_arm")
        self.assertEqual(arm.instruction_set_flags("thumb", clang=True), "${config.AndroidArmClangThumbCflags}")
        self.assertEqual(arm.instruction_set_flags("arm", clang=False), "${config.AndroidArmArmCflags}")
        self.assertEqual(arm.instruction_set_flags("", clang=True), "")
        with self.assertRaises(ValueError) as ctx:
            arm.instruction_set_flags("neon", clang=True)
        self.assertEqual(str(ctx.exception), "Unknown arm instruction set: neon")

    def test_gcc_library_path_uses_triple_and_version(self) -> None:
        arm64 = self.registry.get("android_arm64")
        self.assertEqual(
            arm64.gcc_library_path("libgcc.a"),
            "${config.AndroidArm64GccRoot}/lib/gcc/aarch64-linux-android/4.9/libgcc.a",
        )

    def test_unknown_keys_are_rejected(self) -> None:
        with self.assertRaises(ValueError):
            ToolchainDefinition.from_mapping("custom", {"os": "linux", "arch": "riscv64", "cflags": "-O2"})


class ToolchainRegistryTests(unittest.TestCase):
    def test_builtins_cover_default_targets(self) -> None:
        registry = ToolchainRegistry.with_builtins()
        self.assertIsNotNone(registry.for_target(Target.parse("android_arm64")))
        self.assertIsNotNone(registry.for_target(Target.parse("linux_x86_64")))
        self.assertIsNone(registry.for_target(Target.parse("android_mips")))
        self.assertEqual(registry.validate(), [])

    def test_merge_from_mapping_overrides_and_adds(self) -> None:
        registry = ToolchainRegistry.with_builtins()
        registry.merge_from_mapping(
            {
                "toolchains": {
                    "android_arm64": {"os": "android", "arch": "arm64", "is_64bit": True, "gcc_version": "6.1"},
                    "android_mips": {"os": "android", "arch": "mips", "clang_supported": False},
                }
            }
        )

        self.assertEqual(registry.get("android_arm64").gcc_version, "6.1")
        self.assertEqual(registry.get("android_arm64").clang_triple, "aarch64-linux-android")
        mips = registry.for_target(Target.parse("android_mips"))
        self.assertIsNotNone(mips)
        self.assertFalse(mips.clang_supported)
        self.assertEqual(mips.variable_prefix, "AndroidMips")
        self.assertFalse(mips.is_64bit)
        self.assertEqual((mips.gcc_version, mips.shlib_suffix), ("4.9", ".so"))

    def test_partial_override_keeps_unset_settings(self) -> None:
        registry = ToolchainRegistry.with_builtins()
        registry.merge_from_mapping(
            {
                "toolchains": {
                    "android_arm64": {"os": "android", "arch": "arm64", "gcc_version": "4.8"},
                    "windows_x86": {"os": "windows", "arch": "x86", "gcc_triple": "i686-w64-mingw32"},
                    "darwin_x86_64": {"os": "darwin", "arch": "x86_64", "gcc_version": "4.2"},
                }
            }
        )

        arm64 = registry.get("android_arm64")
        self.assertTrue(arm64.is_64bit)
        self.assertEqual(arm64.gcc_version, "4.8")
        self.assertFalse(registry.get("windows_x86").clang_supported)
        self.assertEqual(registry.get("darwin_x86_64").shlib_suffix, ".dylib")

    def test_validate_reports_duplicate_targets(self) -> None:
        registry = ToolchainRegistry.with_builtins()
        registry.merge_from_mapping({"other_arm64": {"os": "android", "arch": "arm64"}})
        problems = registry.validate()
        self.assertEqual(len(problems), 1)
        self.assertIn("android/arm64", problems[0])


if __name__ == "__main__":
    unittest.main()
