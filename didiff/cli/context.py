"""Shared CLI plumbing: logging setup, store construction, failure reporting."""

from __future__ import annotations

import logging
from typing import NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape

from didiff.config import DidiffSettings
from didiff.errors import DidiffError
from didiff.store import ImageStore
from didiff.store.docker_store import DockerImageStore

# Exit status when an apply succeeded but the requested tag was not applied.
EXIT_TAG_FAILED = 3


def configure_logging(level: str) -> None:
    """Send all log records to stderr through Rich at ``level``."""
    logging.basicConfig(
        level=level,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def open_store(settings: DidiffSettings) -> ImageStore:
    """Connect to the image store described by ``settings``.

    The caller owns the store and must ``close()`` it.
    """
    return DockerImageStore.from_settings(settings)


def settings_from(ctx: typer.Context) -> DidiffSettings:
    """Return the settings built by the root callback."""
    if isinstance(ctx.obj, DidiffSettings):
        return ctx.obj
    return DidiffSettings()


def fail(console: Console, exc: DidiffError) -> NoReturn:
    """Print a single terminal error line for ``exc`` and exit with status 1."""
    where = exc.stage or "didiff"
    console.print(f"[bold red]{where} failed:[/bold red] {escape(str(exc))}")
    raise typer.Exit(code=1)
