"""Command line entry point: redis-reconciler."""

import asyncio
from typing import Any, NoReturn

import click
import structlog
from rich.console import Console

from redisreconciler.config import ReconcilerSettings, load_settings
from redisreconciler.exceptions import BootstrapError, ConfigurationError
from redisreconciler.gate import AutoApproveGate, ConsoleGate
from redisreconciler.log import configure_logging
from redisreconciler.reconciler import ExitCode, Reconciler
from redisreconciler.render import print_plan, print_report, print_snapshot
from redisreconciler.snapshot import Availability

logger = structlog.get_logger(__name__)

_STATUS_EXIT = {
    Availability.HEALTHY: ExitCode.OK,
    Availability.DEGRADED: ExitCode.INCOMPLETE,
    Availability.CRITICAL: ExitCode.FATAL,
}


def _fail(message: str, code: ExitCode = ExitCode.FATAL) -> NoReturn:
    click.echo(f"Error: {message}", err=True)
    raise SystemExit(int(code))


def _reconciler(ctx: click.Context) -> Reconciler:
    settings: ReconcilerSettings = ctx.obj["settings"]
    try:
        return Reconciler.from_settings(settings)
    except ConfigurationError as e:
        _fail(str(e))


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--env-file",
    default=".env",
    show_default=True,
    type=click.Path(dir_okay=False),
    help="Dotenv file with RECONCILER_* / REDIS_PASSWORD settings",
)
@click.option("--log-level", default=None, help="Override log level (DEBUG, INFO, ...)")
@click.option(
    "--log-format", type=click.Choice(["console", "json"]), default=None, help="Log renderer"
)
@click.pass_context
def main(ctx: click.Context, env_file: str, log_level: str | None, log_format: str | None) -> None:
    """Reconcile a Redis Cluster with its declared master/replica pairs."""
    overrides: dict[str, Any] = {}
    if log_level:
        overrides["log_level"] = log_level
    if log_format:
        overrides["log_format"] = log_format

    try:
        settings = load_settings(env_file, **overrides)
    except ConfigurationError as e:
        _fail(str(e))

    configure_logging(settings.log_level, settings.log_format)
    ctx.obj = {"settings": settings, "console": Console()}


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Probe every node and print discovered state."""
    console: Console = ctx.obj["console"]

    reconciler = _reconciler(ctx)

    async def _run() -> Availability:
        async with reconciler:
            snapshot = await reconciler.snapshot()
        print_snapshot(console, snapshot)
        return snapshot.availability()

    availability = asyncio.run(_run())
    ctx.exit(int(_STATUS_EXIT[availability]))


@main.command()
@click.pass_context
def plan(ctx: click.Context) -> None:
    """Show what apply would do, without changing anything."""
    console: Console = ctx.obj["console"]

    reconciler = _reconciler(ctx)

    async def _run() -> None:
        async with reconciler:
            snapshot, result = await reconciler.plan()
        print_snapshot(console, snapshot)
        print_plan(console, result)

    asyncio.run(_run())


@main.command()
@click.option("--yes", "-y", is_flag=True, help="Apply without asking for confirmation")
@click.option("--no-verify", is_flag=True, help="Skip the re-probe after applying")
@click.pass_context
def apply(ctx: click.Context, yes: bool, no_verify: bool) -> None:
    """Plan, confirm and apply corrective actions."""
    console: Console = ctx.obj["console"]
    gate = AutoApproveGate(console) if yes else ConsoleGate(console)
    reconciler = _reconciler(ctx)

    async def _run() -> ExitCode:
        async with reconciler:
            result = await reconciler.run(gate, verify=not no_verify)

        if result.report is None:
            if result.exit_code is ExitCode.DECLINED:
                console.print("[yellow]Declined; cluster left untouched.[/yellow]")
            else:
                print_snapshot(console, result.snapshot)
                print_plan(console, result.plan)
            return result.exit_code

        print_report(console, result.report)
        if result.verification is not None:
            print_plan(console, result.verification)
        return result.exit_code

    try:
        code = asyncio.run(_run())
    except BootstrapError as e:
        logger.error("Bootstrap failed", error=str(e))
        _fail(str(e))
    ctx.exit(int(code))


if __name__ == "__main__":
    main()
