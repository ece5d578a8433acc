"""Command line interface for the ccplan tool."""
from __future__ import annotations

from argparse import ArgumentParser, Namespace
from pathlib import Path
from typing import Iterable, List
import json
import logging
import os
import sys

from .config import ConfigurationStore, PlanConfig
from .errors import DependencyCycleError
from .planner import PlanResult, Planner

logger = logging.getLogger(__name__)


def _split_config_values(values: Iterable[str]) -> List[str]:
    parts: List[str] = []
    for value in values:
        if not value:
            continue
        for part in value.split(os.pathsep):
            part = part.strip()
            if part:
                parts.append(part)
    return parts


def _resolve_config_directories(workspace: Path, cli_values: Iterable[str]) -> List[Path]:
    config_dirs: List[Path] = [workspace / "config"]

    env_value = os.environ.get("CCPLAN_CONFIG_DIR")
    if env_value:
        for entry in _split_config_values([env_value]):
            path = Path(entry)
            if not path.is_absolute():
                path = workspace / path
            config_dirs.append(path)

    for entry in _split_config_values(cli_values):
        path = Path(entry)
        if not path.is_absolute():
            path = workspace / path
        config_dirs.append(path)

    ordered: List[Path] = []
    for path in config_dirs:
        if path in ordered:
            ordered.remove(path)
        ordered.append(path)
    return ordered


def _load_configuration_store(args: Namespace, workspace: Path) -> ConfigurationStore:
    cli_dirs: Iterable[str] = getattr(args, "config_dirs", [])
    directories = _resolve_config_directories(workspace, cli_dirs)
    return ConfigurationStore.from_directories(workspace, directories)


def _configure_logging(config: PlanConfig, *, verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, config.log_level.upper(), logging.INFO)
    handlers: List[logging.Handler] = [logging.StreamHandler(sys.stderr)]
    if config.log_file:
        handlers.append(logging.FileHandler(config.log_file, encoding="utf-8"))
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        handlers=handlers,
        force=True,
    )


def _parse_arguments(argv: Iterable[str]) -> Namespace:
    parser = ArgumentParser(prog="ccplan", description="C/C++ module build planner")
    parser.add_argument(
        "-C",
        "--config-dir",
        dest="config_dirs",
        action="append",
        default=[],
        metavar="PATH",
        help="Additional configuration directory (repeat or separate with PATH separator)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("list", help="List declared modules")

    plan_parser = subparsers.add_parser("plan", help="Plan modules and print each variant")
    plan_parser.add_argument("--module", dest="modules", action="append", default=[], help="Only report these modules")
    plan_parser.add_argument("--json", action="store_true", help="Print the plan as JSON")

    subparsers.add_parser("validate", help="Validate configuration and report planning errors")

    return parser.parse_args(list(argv))


def main(argv: Iterable[str] | None = None) -> int:
    args = _parse_arguments(sys.argv[1:] if argv is None else argv)
    workspace = Path.cwd()

    try:
        store = _load_configuration_store(args, workspace)
    except (FileNotFoundError, KeyError, TypeError, ValueError) as exc:
        print(f"Error: {exc}")
        return 2

    _configure_logging(store.global_config, verbose=args.verbose)
    logger.debug(
        "loaded %d modules from %s",
        len(store.modules),
        ", ".join(str(path) for path in store.config_dirs),
    )

    if args.command == "list":
        return _handle_list(store)
    if args.command == "plan":
        return _handle_plan(args, store)
    if args.command == "validate":
        return _handle_validate(store)
    raise ValueError(f"Unknown command: {args.command}")


def _handle_list(store: ConfigurationStore) -> int:
    names = sorted(store.list_modules())
    if not names:
        print("No modules found")
        return 0

    rows = [{"Module": name, "Type": store.modules[name].module_type} for name in names]
    headers = ["Module", "Type"]
    widths = {header: max(len(header), *(len(row[header]) for row in rows)) for header in headers}

    def _format(row: dict[str, str]) -> str:
        return "  ".join(row.get(header, "").ljust(widths[header]) for header in headers).rstrip()

    print(_format({header: header for header in headers}))
    print("  ".join("-" * widths[header] for header in headers))
    for row in rows:
        print(_format(row))
    return 0


def _run_planner(store: ConfigurationStore) -> List[PlanResult] | None:
    planner = Planner.from_store(store)
    try:
        return planner.plan(store.modules.values())
    except (DependencyCycleError, KeyError) as exc:
        print(f"Error: {exc}")
        return None


def _handle_plan(args: Namespace, store: ConfigurationStore) -> int:
    for name in args.modules:
        if name not in store.modules:
            available = ", ".join(sorted(store.modules)) or "<none>"
            print(f"Error: Module '{name}' not found. Available modules: {available}")
            return 2

    results = _run_planner(store)
    if results is None:
        return 2
    if args.modules:
        results = [result for result in results if result.module in args.modules]

    if args.json:
        print(json.dumps([result.as_dict() for result in results], indent=2))
    else:
        for result in results:
            _print_result(result)
    return 1 if any(result.failed for result in results) else 0


def _print_result(result: PlanResult) -> None:
    label = f"{result.module} [{result.variant}]"
    if result.failed:
        print(f"{label}: FAILED")
        for error in result.report_errors():
            print(f"  {error}")
        return

    artifact = result.artifact
    print(f"{label}: {artifact.kind.value} {artifact.output}")
    if artifact.install_path:
        print(f"  install: {artifact.install_path}")
    link = artifact.link
    for title, paths in (
        ("whole_static_libs", link.whole_static_libs),
        ("static_libs", link.static_libs),
        ("shared_libs", link.shared_libs),
        ("late_static_libs", link.late_static_libs),
    ):
        if paths:
            print(f"  {title}: {' '.join(str(path) for path in paths)}")
    for step in link.post_link:
        print(f"  {step.action}: {step.input} -> {step.output}")
    if result.missing_dependencies:
        print(f"  missing: {', '.join(result.missing_dependencies)}")


def _handle_validate(store: ConfigurationStore) -> int:
    problems = store.validate()
    results = _run_planner(store)
    if results is None:
        return 2

    messages = [*problems]
    for result in results:
        messages.extend(f"[{result.module} {result.variant}] {error}" for error in result.report_errors())

    if messages:
        print("Validation failed:")
        for message in messages:
            print(f"  {message}")
        return 1
    print("Validation successful")
    return 0


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
