"""
Guardian - CLI.

============================================================
RESPONSIBILITY
============================================================
Command-line entry point.

- Loads the YAML configuration
- Creates one guardian per configured entry
- Runs until SIGINT/SIGTERM, then stops every guardian

============================================================
USAGE
============================================================
chain-guardian run --config guardian.yml
chain-guardian run --config guardian.yml --log-level DEBUG --log-format text
chain-guardian validate --config guardian.yml

============================================================
"""

import argparse
import asyncio
import json
import logging
import signal
import sys
from typing import Dict, List, Optional

from guardian import __version__
from guardian.config import AppConfig, load_config
from guardian.exceptions import GuardianError, UnknownTaskError
from guardian.guardians.base import Guardian
from guardian.guardians.registry import GuardianRegistry, get_default_registry


logger = logging.getLogger(__name__)


# ============================================================
# LOGGING SETUP
# ============================================================

def setup_logging(level: str = "INFO", log_format: str = "json") -> logging.Logger:
    """
    Configure root logging on stdout.

    Args:
        level: Log level
        log_format: Output format (json or text)
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    if log_format == "json":
        formatter = logging.Formatter(
            json.dumps({
                "timestamp": "%(asctime)s",
                "level": "%(levelname)s",
                "logger": "%(name)s",
                "message": "%(message)s",
            })
        )
    else:
        formatter = logging.Formatter("%(asctime)s | %(levelname)-8s | %(name)s | %(message)s")

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers = [handler]

    return logging.getLogger("guardian")


# ============================================================
# CLI ARGUMENT PARSER
# ============================================================

def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="chain-guardian",
        description="Monitor ledger networks and post risk snapshots to actions",
    )
    parser.add_argument(
        "--version", "-v",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    for name, help_text in (
        ("run", "Start every configured guardian"),
        ("validate", "Validate configuration without connecting"),
    ):
        command = subparsers.add_parser(name, help=help_text)
        command.add_argument(
            "--config", "-c",
            type=str,
            default="guardian.yml",
            metavar="PATH",
            help="Configuration file (default: guardian.yml)",
        )
        command.add_argument(
            "--log-level",
            type=str,
            choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            default="INFO",
            help="Logging level (default: INFO)",
        )
        command.add_argument(
            "--log-format",
            type=str,
            choices=["json", "text"],
            default="json",
            help="Logging format (default: json)",
        )

    return parser


# ============================================================
# GUARDIAN CONSTRUCTION
# ============================================================

def create_guardians(config: AppConfig, registry: GuardianRegistry) -> Dict[str, Guardian]:
    """
    Create every configured guardian.

    Raises:
        GuardianError: Unknown network type or invalid config
    """
    guardians = {}
    for guardian_id, guardian_config in config.guardians.items():
        network_type = guardian_config.get("networkType") or guardian_config.get("network_type")
        guardians[guardian_id] = registry.create(network_type or "", guardian_id, guardian_config)
    return guardians


def validate_monitors(guardian: Guardian) -> List[GuardianError]:
    """Resolve and construct every monitor task without starting it."""
    errors: List[GuardianError] = []
    task_table = guardian.tasks()

    for name, monitor in guardian.config.monitors.items():
        task_class = task_table.get(monitor.task)
        if task_class is None:
            errors.append(UnknownTaskError(
                f"Unknown task '{monitor.task}'",
                task_name=monitor.task,
                guardian_id=guardian.guardian_id,
                monitor=name,
                available_tasks=sorted(task_table),
            ))
            continue
        try:
            task_class(monitor.arguments)
        except GuardianError as e:
            e.guardian_id = guardian.guardian_id
            e.monitor = name
            errors.append(e)

    return errors


# ============================================================
# COMMANDS
# ============================================================

async def run_guardians(
    guardians: Dict[str, Guardian],
    stop_event: Optional[asyncio.Event] = None,
) -> None:
    """Start all guardians, wait for stop_event, then stop all."""
    stop_event = stop_event or asyncio.Event()

    loop = asyncio.get_running_loop()
    installed = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, stop_event.set)
            installed.append(sig)
        except (NotImplementedError, RuntimeError):
            # Windows event loops or a non-main thread
            pass

    async def start(guardian: Guardian) -> None:
        try:
            await guardian.start()
        except GuardianError as e:
            logger.error(f"[{guardian.guardian_id}] Failed to start: {e}")
        except Exception as e:
            logger.error(f"[{guardian.guardian_id}] Failed to start: {e}", exc_info=True)

    starters = [asyncio.create_task(start(guardian)) for guardian in guardians.values()]

    try:
        await stop_event.wait()
    finally:
        logger.info("Shutting down")
        for starter in starters:
            starter.cancel()
        await asyncio.gather(*starters, return_exceptions=True)
        results = await asyncio.gather(
            *(guardian.stop() for guardian in guardians.values()),
            return_exceptions=True,
        )
        for guardian_id, result in zip(guardians, results):
            if isinstance(result, Exception):
                logger.error(f"[{guardian_id}] Error while stopping: {result}")
        for sig in installed:
            loop.remove_signal_handler(sig)


def command_validate(config: AppConfig, registry: GuardianRegistry) -> int:
    try:
        guardians = create_guardians(config, registry)
    except GuardianError as e:
        print(f"INVALID: {e}", file=sys.stderr)
        return 1

    errors = []
    for guardian in guardians.values():
        errors.extend(validate_monitors(guardian))

    for error in errors:
        print(f"INVALID: {error}", file=sys.stderr)

    if errors:
        return 1

    monitors = sum(len(g.config.monitors) for g in guardians.values())
    print(f"OK: {len(guardians)} guardian(s), {monitors} monitor(s)")
    return 0


async def command_run(config: AppConfig, registry: GuardianRegistry) -> int:
    try:
        guardians = create_guardians(config, registry)
    except GuardianError as e:
        logger.error(f"Invalid configuration: {e}")
        return 1

    if not guardians:
        logger.error("No guardians configured")
        return 1

    await run_guardians(guardians)
    return 0


# ============================================================
# MAIN ENTRY POINT
# ============================================================

def main(argv: Optional[List[str]] = None) -> int:
    parser = create_parser()
    args = parser.parse_args(argv)

    setup_logging(args.log_level, args.log_format)

    try:
        config = load_config(args.config)
    except GuardianError as e:
        logger.error(str(e))
        return 1

    registry = get_default_registry()

    if args.command == "validate":
        return command_validate(config, registry)

    try:
        return asyncio.run(command_run(config, registry))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
