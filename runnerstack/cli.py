"""Command line entry point.

    runnerstack launch [--config PATH] [--dry-run] [--runner-types T1,T2] [--log-level LEVEL]
    runnerstack terminate [INSTANCE_ID]
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from collections.abc import Sequence
from pathlib import Path
from typing import Any

from injector import Injector
from loguru import logger
from rich.console import Console

from runnerstack.config import RunnerConfig, load_config
from runnerstack.core.exceptions import RunnerStackError
from runnerstack.github import GitHubClient
from runnerstack.module import RunnerModule
from runnerstack.observability import LogConfig, setup_logging, teardown_logging
from runnerstack.providers.aws import LifecycleManager
from runnerstack.runner import RunnerLauncher, render_outputs, write_outputs

log = logger.bind(component="cli")
console = Console(stderr=True)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="runnerstack",
        description="Ephemeral self-hosted CI runners on EC2",
    )
    parser.add_argument("--config", type=Path, default=None, help="Path to runnerstack.toml")
    parser.add_argument(
        "--log-level", default="INFO",
        choices=["TRACE", "DEBUG", "INFO", "WARNING", "ERROR"],
    )
    parser.add_argument("--log-file", default=None, help="Also log to this file at DEBUG")
    commands = parser.add_subparsers(dest="command", required=True)

    launch = commands.add_parser("launch", help="Launch a runner instance")
    launch.add_argument("--dry-run", action="store_true", default=None)
    launch.add_argument(
        "--runner-types", default=None,
        help="Comma-separated instance types, in priority order",
    )
    launch.add_argument("--image-id", default=None)
    launch.add_argument("--region", default=None)
    launch.add_argument("--stack-name", default=None)
    launch.add_argument("--wait-for-status-checks", action="store_true", default=None)

    terminate = commands.add_parser("terminate", help="Terminate a runner instance")
    terminate.add_argument("instance_id", nargs="?", default=None)

    return parser


def _overrides(args: argparse.Namespace) -> dict[str, Any]:
    names = ("dry_run", "runner_types", "image_id", "region", "stack_name", "wait_for_status_checks")
    return {name: getattr(args, name, None) for name in names}


async def _launch(config: RunnerConfig) -> int:
    injector = Injector([RunnerModule(config)])
    launcher = injector.get(RunnerLauncher)
    github = injector.get(GitHubClient)
    try:
        outputs = await launcher.launch()
    finally:
        await github.close()

    write_outputs(outputs)
    render_outputs(outputs)
    return 0


async def _terminate(config: RunnerConfig, instance_id: str) -> int:
    manager = Injector([RunnerModule(config)]).get(LifecycleManager)
    if await manager.terminate(instance_id):
        console.print(f"[green]✅ Instance {instance_id} terminated[/green]")
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    """Run the CLI and return the process exit status."""
    args = build_parser().parse_args(argv)
    handler_ids = setup_logging(LogConfig(level=args.log_level, file=args.log_file))

    try:
        config = load_config(path=args.config, overrides=_overrides(args))
        match args.command:
            case "launch":
                return asyncio.run(_launch(config.validate()))
            case "terminate":
                instance_id = args.instance_id or os.environ.get("INPUT_INSTANCE-ID", "")
                return asyncio.run(_terminate(config, instance_id))
            case _:
                return 2
    except RunnerStackError as e:
        log.error("{error_type}: {error}", error_type=type(e).__name__, error=e)
        console.print(f"[red]❌ {e}[/red]")
        return 1
    except Exception as e:
        log.exception("Unexpected error: {error}", error=e)
        console.print(f"[red]❌ {e}[/red]")
        return 1
    finally:
        teardown_logging(handler_ids)


def cli() -> None:
    sys.exit(main())


if __name__ == "__main__":
    cli()
