"""Command-line interface for tindex.

Provides the batch statistics import entrypoint and a few tracker
administration commands.
"""

from __future__ import annotations

import asyncio
import contextlib
import re
from typing import TYPE_CHECKING, Any, AsyncIterator, Coroutine

import click
from rich.console import Console
from rich.table import Table

from tindex import __version__
from tindex.config.config import init_config
from tindex.importer.statistics import run_importer
from tindex.models import LogLevel
from tindex.storage.sqlite import SqliteDatabase
from tindex.tracker.service import TrackerService
from tindex.utils.exceptions import TIndexError
from tindex.utils.logging_config import get_logger, setup_logging
from tindex.utils.shutdown import install_signal_handlers

if TYPE_CHECKING:
    from tindex.models import Config

logger = get_logger(__name__)

_INFO_HASH_RE = re.compile(r"^[0-9a-fA-F]{40}$")


def _get_config_from_context(ctx: click.Context) -> Config:
    """Load configuration once per invocation, honoring --config and -v."""
    if "config_manager" not in ctx.obj:
        try:
            config_manager = init_config(ctx.obj.get("config"))
        except TIndexError as e:
            raise click.ClickException(str(e)) from e

        if ctx.obj.get("verbosity", 0) > 0:
            config_manager.config.observability.log_level = LogLevel.DEBUG
            setup_logging(config_manager.config.observability)
        ctx.obj["config_manager"] = config_manager
    return ctx.obj["config_manager"].config


def _validate_info_hash(_ctx: click.Context, _param: click.Parameter, value: str) -> str:
    if not _INFO_HASH_RE.match(value):
        msg = "Info hash must be 40 hex characters"
        raise click.BadParameter(msg)
    return value.lower()


def _run_async(coro: Coroutine[Any, Any, Any]) -> Any:
    """Run a coroutine, surfacing tindex errors as CLI errors."""
    try:
        return asyncio.run(coro)
    except TIndexError as e:
        raise click.ClickException(str(e)) from e


@contextlib.asynccontextmanager
async def _tracker_service(cfg: Config) -> AsyncIterator[TrackerService]:
    database = SqliteDatabase(
        cfg.database.path,
        page_size=cfg.tracker_statistics_importer.page_size,
    )
    await database.initialize()
    async with TrackerService.from_config(cfg.tracker, database) as service:
        yield service


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True, dir_okay=False),
    help="Configuration file path",
)
@click.option("--verbose", "-v", count=True, help="Enable debug logging")
@click.version_option(__version__, prog_name="tindex")
@click.pass_context
def cli(ctx, config, verbose):
    """tindex - tracker integration for a torrent index."""
    ctx.ensure_object(dict)
    ctx.obj["config"] = config
    ctx.obj["verbosity"] = verbose


@cli.command("import-stats")
@click.pass_context
def import_stats(ctx):
    """Refresh tracker statistics for every stored torrent (one pass)."""
    _get_config_from_context(ctx)
    console = Console()

    install_signal_handlers()
    summary = _run_async(run_importer())

    table = Table(title="Tracker Statistics Import")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Attempted", str(summary.attempted))
    table.add_row("Updated", str(summary.updated))
    table.add_row("Skipped (not on tracker)", str(summary.skipped))
    table.add_row("Failed", str(summary.failed))
    table.add_row("Duration", f"{summary.duration:.2f}s")
    console.print(table)

    if summary.cancelled:
        logger.warning("Statistics import stopped early on request, exiting with status 0")
        console.print("[yellow]Import stopped before all torrents were processed[/yellow]")


@cli.group("whitelist")
def whitelist():
    """Manage the tracker whitelist."""


@whitelist.command("add")
@click.argument("info_hash", callback=_validate_info_hash)
@click.pass_context
def whitelist_add(ctx, info_hash: str):
    """Add INFO_HASH to the tracker whitelist."""
    cfg = _get_config_from_context(ctx)

    async def _add() -> None:
        async with _tracker_service(cfg) as service:
            await service.whitelist_info_hash(info_hash)

    _run_async(_add())
    Console().print(f"[green]Whitelisted[/green] {info_hash}")


@whitelist.command("remove")
@click.argument("info_hash", callback=_validate_info_hash)
@click.pass_context
def whitelist_remove(ctx, info_hash: str):
    """Remove INFO_HASH from the tracker whitelist."""
    cfg = _get_config_from_context(ctx)

    async def _remove() -> None:
        async with _tracker_service(cfg) as service:
            await service.remove_info_hash_from_whitelist(info_hash)

    _run_async(_remove())
    Console().print(f"[green]Removed from whitelist[/green] {info_hash}")


@cli.command("torrent-info")
@click.argument("info_hash", callback=_validate_info_hash)
@click.pass_context
def torrent_info(ctx, info_hash: str):
    """Show live tracker statistics for INFO_HASH."""
    cfg = _get_config_from_context(ctx)

    async def _fetch():
        async with _tracker_service(cfg) as service:
            return await service.get_torrent_info(info_hash)

    info = _run_async(_fetch())

    table = Table(title="Torrent Info")
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("Info Hash", info.info_hash)
    table.add_row("Seeders", str(info.seeders))
    table.add_row("Leechers", str(info.leechers))
    table.add_row("Completed", str(info.completed))
    table.add_row("Peers", str(len(info.peers)))
    Console().print(table)


@cli.command("announce-url")
@click.argument("user_id", type=int)
@click.pass_context
def announce_url(ctx, user_id: int):
    """Print the announce URL for USER_ID."""
    cfg = _get_config_from_context(ctx)

    async def _url() -> str:
        async with _tracker_service(cfg) as service:
            return await service.get_announce_url(user_id)

    click.echo(_run_async(_url()))


@cli.group("config")
def config_group():
    """Inspect configuration."""


@config_group.command("show")
@click.pass_context
def config_show(ctx):
    """Print the effective configuration with secrets masked."""
    _get_config_from_context(ctx)
    click.echo(ctx.obj["config_manager"].export())


def main() -> None:
    """Console script entrypoint."""
    cli(obj={})


if __name__ == "__main__":
    main()
