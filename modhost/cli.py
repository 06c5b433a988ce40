"""
Modhost - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line interface for the module host.

- Provides argparse-based CLI
- Loads settings from the environment, then applies CLI overrides
- Discovers plugin modules and reads the YAML module config
- Entry point for the application

============================================================
USAGE
============================================================
modhost --plugin-dir plugins order
modhost --plugin-dir plugins --config modules.yaml validate
modhost --plugin-dir plugins --config modules.yaml run
modhost --plugin-dir plugins --config modules.yaml run --once
modhost --plugin-dir plugins --config modules.yaml dump

============================================================
"""

import argparse
import asyncio
import sys
from typing import Dict, List, Optional

from hostcore.exceptions import ModhostError, ValidationFailure

from .config import LOG_FORMATS, LOG_LEVELS, OrchestratorConfig, load_module_config
from .core import Orchestrator
from .plugins import DirectoryPluginLoader, EntryPointPluginLoader
from .schema import validate


COMMANDS = ("order", "validate", "run", "dump")


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="modhost",
        description="Start and stop plugin modules in dependency order",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Commands:
  order     - Print the resolved start order
  validate  - Check every module's configuration without starting anything
  run       - Start all modules, wait for SIGINT/SIGTERM, stop all modules
  dump      - Start all modules, print the redacted diagnostic dump, stop

Examples:
  %(prog)s --plugin-dir plugins order
  %(prog)s --plugin-dir plugins --config modules.yaml run --once
        """
    )

    parser.add_argument(
        "command",
        choices=COMMANDS,
        help="Command to execute",
    )

    # --------------------------------------------------------
    # Module Sources
    # --------------------------------------------------------
    source_group = parser.add_argument_group("Module Sources")

    source_group.add_argument(
        "--plugin-dir",
        action="append",
        dest="plugin_dirs",
        metavar="PATH",
        help="Directory of plugin modules (repeatable)",
    )

    source_group.add_argument(
        "--entry-points",
        action="store_true",
        help="Also load modules advertised by installed distributions",
    )

    source_group.add_argument(
        "--config", "-c",
        type=str,
        metavar="PATH",
        help="YAML file with module configuration",
    )

    # --------------------------------------------------------
    # Lifecycle Options
    # --------------------------------------------------------
    lifecycle_group = parser.add_argument_group("Lifecycle Options")

    lifecycle_group.add_argument(
        "--start-timeout",
        type=float,
        metavar="SECONDS",
        help="Per-module start timeout",
    )

    lifecycle_group.add_argument(
        "--stop-timeout",
        type=float,
        metavar="SECONDS",
        help="Per-module stop timeout",
    )

    lifecycle_group.add_argument(
        "--no-cleanup",
        action="store_true",
        help="Leave started modules running when startup fails",
    )

    lifecycle_group.add_argument(
        "--once",
        action="store_true",
        help="With run: stop immediately after a successful start",
    )

    # --------------------------------------------------------
    # Logging Options
    # --------------------------------------------------------
    logging_group = parser.add_argument_group("Logging Options")

    logging_group.add_argument(
        "--log-level",
        type=str,
        choices=LOG_LEVELS,
        help="Logging level (default: INFO)",
    )

    logging_group.add_argument(
        "--log-format",
        type=str,
        choices=LOG_FORMATS,
        help="Logging format (default: json)",
    )

    parser.add_argument(
        "--version", "-v",
        action="version",
        version="%(prog)s 1.0.0",
    )

    return parser


# ============================================================
# CLI VALIDATION
# ============================================================

def validate_args(args: argparse.Namespace) -> List[str]:
    """
    Validate CLI arguments.

    Returns:
        List of validation errors
    """
    errors = []

    if args.start_timeout is not None and args.start_timeout <= 0:
        errors.append("--start-timeout must be positive")

    if args.stop_timeout is not None and args.stop_timeout <= 0:
        errors.append("--stop-timeout must be positive")

    if args.once and args.command != "run":
        errors.append("--once only applies to the run command")

    return errors


# ============================================================
# CLI CONFIGURATION BUILDER
# ============================================================

def build_config(args: argparse.Namespace) -> OrchestratorConfig:
    """
    Build orchestrator configuration: environment first, CLI overrides.
    """
    config = OrchestratorConfig.from_env()

    if args.plugin_dirs:
        config.plugin_dirs = list(args.plugin_dirs)
    if args.config:
        config.module_config_path = args.config
    if args.start_timeout is not None:
        config.start_timeout_seconds = args.start_timeout
    if args.stop_timeout is not None:
        config.stop_timeout_seconds = args.stop_timeout
    if args.no_cleanup:
        config.cleanup_on_failure = False
    if args.log_level:
        config.log_level = args.log_level
    if args.log_format:
        config.log_format = args.log_format

    return config


# ============================================================
# COMMANDS
# ============================================================

def _load_modules(orchestrator: Orchestrator, args: argparse.Namespace) -> None:
    config = orchestrator.config
    if config.plugin_dirs:
        orchestrator.load_plugins(DirectoryPluginLoader(config.plugin_dirs))
    if args.entry_points:
        orchestrator.load_plugins(EntryPointPluginLoader())

    for error in orchestrator.plugin_errors:
        print(f"Warning: {error.message}", file=sys.stderr)


def _load_raw_config(config: OrchestratorConfig) -> Dict[str, Dict]:
    if not config.module_config_path:
        return {}
    return load_module_config(config.module_config_path)


def command_order(orchestrator: Orchestrator) -> int:
    for index, name in enumerate(orchestrator.resolve(), 1):
        print(f"{index:3d}. {name}")
    return 0


def command_validate(orchestrator: Orchestrator, raw_config: Dict[str, Dict]) -> int:
    failures = 0
    for name in orchestrator.resolve():
        manifest = orchestrator.registry.get(name)
        try:
            validate(manifest.config, raw_config.get(name), module=name)
        except ValidationFailure as e:
            failures += 1
            print(f"  [!!] {name:<30} {e.message}")
        else:
            print(f"  [OK] {name}")

    for name in sorted(set(raw_config) - orchestrator.registry.all()):
        print(f"  [??] {name:<30} configured but not registered")

    return 1 if failures else 0


async def command_run(orchestrator: Orchestrator, raw_config: Dict[str, Dict], once: bool) -> int:
    if once:
        await orchestrator.start(raw_config)
        report = await orchestrator.stop()
    else:
        report = await orchestrator.run_until_signal(raw_config)

    print(f"Stopped: {', '.join(report.stopped) or '(none)'}")
    for failure in report.failures:
        print(f"Stop failed: {failure.module}: {failure.cause}", file=sys.stderr)
    return 0 if report.success else 1


async def command_dump(orchestrator: Orchestrator, raw_config: Dict[str, Dict]) -> int:
    await orchestrator.start(raw_config)
    try:
        print(orchestrator.dump().model_dump_json(indent=2))
    finally:
        report = await orchestrator.stop()
    return 0 if report.success else 1


# ============================================================
# MAIN ENTRY POINT
# ============================================================

async def async_main(args: argparse.Namespace) -> int:
    """
    Async main entry point.

    Returns:
        Exit code
    """
    orchestrator: Optional[Orchestrator] = None
    try:
        orchestrator = Orchestrator(config=build_config(args))
        _load_modules(orchestrator, args)
        raw_config = _load_raw_config(orchestrator.config)

        if args.command == "order":
            return command_order(orchestrator)
        if args.command == "validate":
            return command_validate(orchestrator, raw_config)
        if args.command == "run":
            return await command_run(orchestrator, raw_config, args.once)
        return await command_dump(orchestrator, raw_config)

    except ModhostError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        if orchestrator is not None and orchestrator.has_started_modules:
            # --no-cleanup left modules running; release them before exit
            report = await orchestrator.stop()
            print(f"Stopped: {', '.join(report.stopped) or '(none)'}")
        return 1


def main(argv: Optional[List[str]] = None) -> int:
    """
    Main CLI entry point.

    Args:
        argv: Command line arguments (default: sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    errors = validate_args(args)
    if errors:
        for error in errors:
            print(f"Error: {error}", file=sys.stderr)
        return 2

    return asyncio.run(async_main(args))


# ============================================================
# MODULE EXECUTION
# ============================================================

if __name__ == "__main__":
    sys.exit(main())
