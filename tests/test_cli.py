from __future__ import annotations

from pathlib import Path
import io
import json
import os
import tempfile
import textwrap
import unittest
from contextlib import redirect_stdout
from unittest.mock import patch

from ccplan import cli

RUNTIME_MODULES = """
[[modules]]
name = "libcompiler_rt-extras"
type = "cc_library_static"
host_supported = true
stl = "none"
srcs = ["extras.c"]

[[modules]]
name = "libc++"
type = "cc_library_shared"
host_supported = true
stl = "none"
srcs = ["libcxx.cpp"]

[[modules]]
name = "libc++_static"
type = "cc_library_static"
host_supported = true
stl = "none"
srcs = ["libcxx.cpp"]
"""


class CommandLineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.workspace = Path(self.temp_dir.name)
        self.config_dir = self.workspace / "config"
        self.modules_dir = self.config_dir / "modules"
        self.modules_dir.mkdir(parents=True)
        (self.config_dir / "config.toml").write_text(
            textwrap.dedent(
                """
                [global]
                targets = ["linux_x86_64"]
                """
            )
        )
        (self.modules_dir / "runtime.toml").write_text(RUNTIME_MODULES)
        (self.modules_dir / "foo.toml").write_text(
            textwrap.dedent(
                """
                module_dir = "foo"

                [[modules]]
                name = "libfoo"
                type = "cc_library"
                host_supported = true
                srcs = ["foo.cpp"]

                [[modules]]
                name = "footool"
                type = "cc_binary_host"
                srcs = ["main.cpp"]
                shared_libs = ["libfoo"]
                """
            )
        )

    def tearDown(self) -> None:
        self.temp_dir.cleanup()

    def run_cli(self, *argv: str) -> tuple[int, str]:
        buffer = io.StringIO()
        with patch("ccplan.cli.Path.cwd", return_value=self.workspace), patch(
            "ccplan.cli._configure_logging"
        ), patch.dict(os.environ, {}, clear=False):
            os.environ.pop("CCPLAN_CONFIG_DIR", None)
            with redirect_stdout(buffer):
                exit_code = cli.main(argv)
        return exit_code, buffer.getvalue()

    def test_list_prints_a_table_of_modules(self) -> None:
        exit_code, output = self.run_cli("list")

        self.assertEqual(exit_code, 0)
        lines = output.splitlines()
        self.assertTrue(lines[0].startswith("Module"))
        self.assertIn("Type", lines[0])
        self.assertTrue(any(line.startswith("footool") and "cc_binary_host" in line for line in lines))
        self.assertTrue(any(line.startswith("libfoo") for line in lines))

    def test_plan_prints_each_variant(self) -> None:
        exit_code, output = self.run_cli("plan", "--module", "footool")

        self.assertEqual(exit_code, 0)
        self.assertIn(
            "footool [linux_x86_64_shared]: executable out/.intermediates/foo/footool/linux_x86_64_shared/footool",
            output,
        )
        self.assertIn("  install: out/host/linux-x86/bin/footool", output)
        self.assertIn("out/.intermediates/foo/libfoo/linux_x86_64_shared/libfoo.so", output)
        self.assertNotIn("libfoo [", output)

    def test_plan_as_json(self) -> None:
        exit_code, output = self.run_cli("plan", "--json")

        self.assertEqual(exit_code, 0)
        plan = {(entry["module"], entry["variant"]): entry for entry in json.loads(output)}
        shared = plan[("libfoo", "linux_x86_64_shared")]
        self.assertFalse(shared["failed"])
        self.assertEqual(shared["artifact"]["kind"], "shared_object")
        self.assertEqual(shared["artifact"]["install_path"], "out/host/linux-x86/lib64/libfoo.so")
        self.assertEqual(
            shared["artifact"]["link"]["inputs"],
            ["out/.intermediates/foo/libfoo/linux_x86_64_static/obj/foo.o"],
        )

    def test_plan_rejects_unknown_modules(self) -> None:
        exit_code, output = self.run_cli("plan", "--module", "libnope")

        self.assertEqual(exit_code, 2)
        self.assertIn("Module 'libnope' not found", output)

    def test_validate(self) -> None:
        exit_code, output = self.run_cli("validate")
        self.assertEqual(exit_code, 0)
        self.assertIn("Validation successful", output)

        (self.modules_dir / "broken.toml").write_text(
            '[[modules]]\nname = "libbroken"\ntype = "cc_library_host_static"\nsrcs = ["b.c"]\ncflags = ["-Iinc"]\n'
        )
        exit_code, output = self.run_cli("validate")

        self.assertEqual(exit_code, 1)
        self.assertIn("Validation failed:", output)
        self.assertIn("[libbroken linux_x86_64_static] module 'libbroken': cflags:", output)

    def test_invalid_configuration_is_reported(self) -> None:
        (self.config_dir / "config.toml").write_text('[global]\ntargets = ["plan9_arm"]\n')
        exit_code, output = self.run_cli("list")

        self.assertEqual(exit_code, 2)
        self.assertTrue(output.startswith("Error: "))


class ConfigDirectoryTests(unittest.TestCase):
    def test_environment_and_cli_directories_follow_the_default(self) -> None:
        workspace = Path("/work")
        extra = Path("/elsewhere/config")
        with patch.dict(os.environ, {"CCPLAN_CONFIG_DIR": os.pathsep.join(["local", "shared"])}):
            directories = cli._resolve_config_directories(workspace, ["shared", str(extra)])

        self.assertEqual(
            directories,
            [workspace / "config", workspace / "local", workspace / "shared", extra],
        )

    def test_duplicates_keep_their_last_position(self) -> None:
        workspace = Path("/work")
        with patch.dict(os.environ, {}, clear=True):
            directories = cli._resolve_config_directories(workspace, ["config", "overlay"])
            self.assertEqual(directories, [workspace / "config", workspace / "overlay"])
            directories = cli._resolve_config_directories(workspace, ["overlay", "config"])
            self.assertEqual(directories, [workspace / "overlay", workspace / "config"])


if __name__ == "__main__":
    unittest.main()
