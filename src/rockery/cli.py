"""CLI interface for Rockery.

Command-line tool for building, serving and backing up a content site.
"""

import asyncio
import logging
import sys
from collections.abc import Callable
from pathlib import Path

import click

from rockery.build.orchestrator import BuildError, create_orchestrator
from rockery.config import Config
from rockery.core.links import LinkStrategy
from rockery.sync import ContentSync, SyncError


@click.group()
def cli() -> None:
    """Rockery - Turn a folder of notes into a website."""


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
    )


def _load_config(config_path: Path | None) -> Config:
    try:
        return Config.load(config_path)
    except (FileNotFoundError, ValueError) as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)


def _fail_build(error: BuildError) -> None:
    click.echo(click.style(f"Couldn't build site: {error}", fg="red"), err=True)
    sys.exit(1)


@cli.command()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to configuration file (default: auto-discover rockery.toml)",
)
@click.option(
    "--directory",
    "-d",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Content directory (overrides config)",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Output directory (overrides config)",
)
@click.option(
    "--links",
    type=click.Choice([s.value for s in LinkStrategy]),
    default=None,
    help="Link resolution strategy (overrides config)",
)
@click.option(
    "--serve",
    is_flag=True,
    help="Run a local dev server with live reload",
)
@click.option(
    "--watch",
    is_flag=True,
    help="Rebuild on changes without serving",
)
@click.option(
    "--host",
    default=None,
    help="Host to bind to (overrides config)",
)
@click.option(
    "--port",
    "-p",
    type=int,
    default=None,
    help="Port to bind to (overrides config)",
)
@click.option(
    "--base-dir",
    default=None,
    help="URL prefix the site is served under (overrides config)",
)
@click.option(
    "--live-reload/--no-live-reload",
    default=None,
    help="Reload browsers after rebuilds when serving (overrides config)",
)
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose output",
)
def build(
    config_path: Path | None,
    directory: Path | None,
    output: Path | None,
    links: str | None,
    serve: bool,
    watch: bool,
    host: str | None,
    port: int | None,
    base_dir: str | None,
    live_reload: bool | None,
    verbose: bool,
) -> None:
    """Build the site, optionally watching and serving it."""
    _configure_logging(verbose)

    def load() -> Config:
        return _load_config(config_path).with_overrides(
            host=host,
            port=port,
            base_dir=base_dir,
            content_dir=directory.resolve() if directory is not None else None,
            output_dir=output.resolve() if output is not None else None,
            link_resolution=LinkStrategy(links) if links is not None else None,
            live_reload_enabled=live_reload,
        )

    config = load()
    click.echo(f"Content directory: {config.build.content_dir}")
    click.echo(f"Output directory: {config.build.output_dir}")

    try:
        if serve:
            from rockery.server import run_server

            run_server(config, reload_config=load)
        elif watch:
            from rockery.live.watcher import run_watch

            run_watch(config, reload_config=load)
        else:
            asyncio.run(_build_once(config, load))
    except BuildError as e:
        _fail_build(e)
    except KeyboardInterrupt:
        click.echo("Stopped.")
        return

    click.echo(click.style("Done!", fg="green"))


async def _build_once(config: Config, reload_config: Callable[[], Config]) -> None:
    orchestrator = create_orchestrator(config, reload_config=reload_config)
    try:
        await orchestrator.rebuild()
    finally:
        await orchestrator.close()


@cli.command()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to configuration file (default: auto-discover rockery.toml)",
)
@click.option(
    "--directory",
    "-d",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Content directory (overrides config)",
)
@click.option("--commit/--no-commit", default=True, help="Commit content changes first")
@click.option("--pull/--no-pull", default=True, help="Pull updates from the remote")
@click.option("--push/--no-push", default=True, help="Push to the remote")
@click.option("--message", "-m", default=None, help="Commit message")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output")
def sync(
    config_path: Path | None,
    directory: Path | None,
    commit: bool,
    pull: bool,
    push: bool,
    message: str | None,
    verbose: bool,
) -> None:
    """Back up content to the git remote."""
    _configure_logging(verbose)
    content_sync = _content_sync(config_path, directory)

    click.echo("Backing up your content")
    try:
        content_sync.sync(commit=commit, message=message, pull=pull, push=push)
    except SyncError as e:
        click.echo(click.style(f"An error occurred while syncing: {e}", fg="red"), err=True)
        sys.exit(1)

    click.echo(click.style("Done!", fg="green"))


@cli.command()
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=True, path_type=Path),
    default=None,
    help="Path to configuration file (default: auto-discover rockery.toml)",
)
@click.option(
    "--directory",
    "-d",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Content directory (overrides config)",
)
def restore(config_path: Path | None, directory: Path | None) -> None:
    """Restore content stashed by an interrupted sync."""
    content_sync = _content_sync(config_path, directory)

    click.echo("Restoring content from cache")
    try:
        content_sync.restore()
    except SyncError as e:
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)

    click.echo(click.style("Done!", fg="green"))


def _content_sync(config_path: Path | None, directory: Path | None) -> ContentSync:
    config = _load_config(config_path)
    content_dir = directory.resolve() if directory is not None else config.build.content_dir
    return ContentSync(config.root_dir, content_dir)


if __name__ == "__main__":
    cli()
