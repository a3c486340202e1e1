"""
Command-line interface for the DNS health auditor.

This module provides the main CLI entry point with commands for:
- run: Audit DNS health across all domain controllers and write reports
- config: Settings file management
- history: Show recent run summaries from the history file
"""

import argparse
import asyncio
import json
import sys
from dataclasses import replace
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

from . import __version__
from .auditor import DnsHealthAuditor
from .config import (
    DEFAULT_SETTINGS,
    AuditConfig,
    apply_environment,
    config_from_settings,
    config_to_settings,
    default_config,
    default_config_path,
    load_config,
    merge_settings,
    read_settings_file,
    save_settings_file,
)
from .enums import LogLevel, OverallStatus
from .exceptions import ConfigurationError, PersistenceError, ReportError
from .history_store import HISTORY_FILENAME, HistoryStore
from .notifications import build_router
from .powershell import PowerShellBackend
from .resolver import DnsPythonResolver
from .run_logger import RunLogger
from .simulation import SimulatedFleet


EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_CRITICAL = 2


def _config_path(args: argparse.Namespace) -> Path:
    value = getattr(args, "config", None) or getattr(args, "path", None)
    return Path(value) if value else default_config_path()


def _read_config_quietly(config_path: Path) -> AuditConfig:
    """Resolve the settings file without creating it."""
    try:
        supplied = read_settings_file(config_path) if config_path.exists() else None
    except ConfigurationError:
        return default_config()
    return config_from_settings(merge_settings(supplied, DEFAULT_SETTINGS))


def apply_overrides(config: AuditConfig, args: argparse.Namespace) -> AuditConfig:
    """Apply command line overrides to a resolved configuration."""
    if args.output:
        config = replace(config, output_path=Path(args.output))
    if args.sequential:
        config = replace(config, max_parallel_jobs=1)
    elif args.parallel:
        config = replace(config, max_parallel_jobs=max(1, args.parallel))
    return config


def cmd_run(args: argparse.Namespace) -> int:
    """Handle the 'run' command."""
    if args.verbose:
        logger = RunLogger(output_stream=sys.stderr, min_level=LogLevel.DEBUG)
    else:
        logger = RunLogger.quiet()

    config = load_config(_config_path(args), logger)
    config = apply_environment(apply_overrides(config, args))

    if args.dry_run:
        fleet = SimulatedFleet()
        directory, admin, resolver = fleet, fleet, fleet
    else:
        backend = PowerShellBackend()
        directory, admin, resolver = backend, backend, DnsPythonResolver()

    auditor = DnsHealthAuditor(
        config=config,
        directory=directory,
        admin=admin,
        resolver=resolver,
        logger=logger,
        router=build_router(config, logger, simulation_mode=args.dry_run),
        dry_run=args.dry_run,
    )

    try:
        result = asyncio.run(auditor.run())
    except ReportError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return EXIT_FAILURE

    summary = result.summary
    print(f"Overall status: {result.status.value.upper()}")
    print(f"  Servers checked: {summary.servers_checked}")
    print(f"  Critical issues: {summary.critical_issues}")
    print(f"  Warnings: {summary.warnings}")
    print(f"  Event log errors/warnings: {summary.total_event_errors}/{summary.total_event_warnings}")
    if summary.performance:
        perf = summary.performance
        print(f"  Query time min/avg/max: {perf.min_ms:.1f}/{perf.avg_ms:.1f}/{perf.max_ms:.1f} ms")
    print(f"  Alerts: {len(summary.alerts)}")
    print(f"HTML report: {result.reports.html}")
    print(f"Markdown report: {result.reports.markdown}")

    if args.fail_on_critical and result.status is OverallStatus.CRITICAL:
        return EXIT_CRITICAL
    return EXIT_OK


def cmd_config(args: argparse.Namespace) -> int:
    """Handle the 'config' command."""
    config_path = _config_path(args)

    if args.action == "show":
        if not config_path.exists():
            print(f"No configuration found at: {config_path}")
            print("Use 'config init' to create a default configuration.")
            return EXIT_FAILURE
        config = _read_config_quietly(config_path)
        print(f"Configuration from: {config_path}")
        print(json.dumps(config_to_settings(config), indent=2))
        return EXIT_OK

    elif args.action == "init":
        if config_path.exists() and not args.force:
            print(f"Configuration already exists at: {config_path}")
            print("Use --force to overwrite.")
            return EXIT_FAILURE
        try:
            save_settings_file(dict(DEFAULT_SETTINGS), config_path)
        except ConfigurationError as e:
            print(f"Error: {e.message}", file=sys.stderr)
            return EXIT_FAILURE
        print(f"Configuration created at: {config_path}")
        return EXIT_OK

    elif args.action == "validate":
        try:
            supplied = read_settings_file(config_path)
        except ConfigurationError as e:
            print(f"Error: {e.message}", file=sys.stderr)
            return EXIT_FAILURE

        problems: list[str] = []
        config_from_settings(merge_settings(supplied, DEFAULT_SETTINGS, problems), problems)
        if problems:
            print(f"Configuration at {config_path} has problems:")
            for problem in problems:
                print(f"  - {problem}")
            return EXIT_FAILURE
        print(f"Configuration at {config_path} is valid.")
        return EXIT_OK

    return EXIT_FAILURE


def cmd_history(args: argparse.Namespace) -> int:
    """Handle the 'history' command."""
    config = _read_config_quietly(_config_path(args))
    store = HistoryStore(
        config.output_path / HISTORY_FILENAME,
        retention_days=config.history_retention_days,
        hmac_secret=config.history_hmac_secret,
    )
    try:
        entries = store.read()
    except PersistenceError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return EXIT_FAILURE

    if not entries:
        print(f"No history recorded in {store.file_path}")
        return EXIT_OK

    print(f"{'Timestamp':<26} {'Status':<9} {'Servers':>7} {'Critical':>8} {'Warnings':>8} {'Alerts':>6}")
    for entry in entries[-max(1, args.limit):]:
        print(
            f"{entry.timestamp.isoformat():<26} {entry.status:<9} {entry.servers_checked:>7} "
            f"{entry.critical_issues:>8} {entry.warnings:>8} {entry.alert_count:>6}"
        )
    return EXIT_OK


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="dns-health-audit",
        description="DNS health auditor for Active Directory domain controllers",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # 'run' command
    run_parser = subparsers.add_parser(
        "run",
        help="Audit all domain controllers and write reports",
    )
    run_parser.add_argument(
        "--config", "-c",
        help="Path to configuration file",
    )
    run_parser.add_argument(
        "--output", "-o",
        help="Directory for reports, log and history (overrides outputPath)",
    )
    run_parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Simulation mode - audit a simulated fleet, no remote calls",
    )
    run_parser.add_argument(
        "--sequential",
        action="store_true",
        help="Probe servers one after another",
    )
    run_parser.add_argument(
        "--parallel",
        type=int,
        help="Maximum number of servers probed concurrently (overrides maxParallelJobs)",
    )
    run_parser.add_argument(
        "--fail-on-critical",
        action="store_true",
        help=f"Exit with code {EXIT_CRITICAL} when the overall status is critical",
    )
    run_parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Also print the run log to stderr",
    )
    run_parser.set_defaults(func=cmd_run)

    # 'config' command
    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
    )
    config_parser.add_argument(
        "action",
        choices=["show", "init", "validate"],
        help="Configuration action",
    )
    config_parser.add_argument(
        "--path", "-p",
        help="Path to configuration file",
    )
    config_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Force overwrite existing configuration",
    )
    config_parser.set_defaults(func=cmd_config)

    # 'history' command
    history_parser = subparsers.add_parser(
        "history",
        help="Show recent run summaries",
    )
    history_parser.add_argument(
        "--config", "-c",
        help="Path to configuration file",
    )
    history_parser.add_argument(
        "--limit", "-n",
        type=int,
        default=10,
        help="Number of entries to show (default: 10)",
    )
    history_parser.set_defaults(func=cmd_history)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    load_dotenv()

    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return EXIT_OK

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
