"""Main Typer application — imports and registers all CLI commands.

Entry point: ``didiff`` (configured via pyproject.toml console_scripts).

Commands: create, apply, images, resolve.
"""

from __future__ import annotations

from pathlib import Path

import typer
from pydantic import ValidationError

from didiff.cli import context
from didiff.cli.commands.apply import apply_cmd
from didiff.cli.commands.create import create_cmd
from didiff.cli.commands.images import images_cmd, resolve_cmd
from didiff.config import DidiffSettings

app = typer.Typer(
    name="didiff",
    help="Docker Image Diffing & Patching: binary patches between Docker images.",
    no_args_is_help=True,
    rich_markup_mode="rich",
    add_completion=False,
    context_settings={"help_option_names": ["-h", "--help"]},
)

# Register subcommands
app.command(name="create", help="Create a patch from an original and a new image.")(create_cmd)
app.command(name="apply", help="Rebuild the new image from the original and a patch.")(apply_cmd)
app.command(name="images", help="List images in the store.")(images_cmd)
app.command(name="resolve", help="Show the image a reference resolves to.")(resolve_cmd)


@app.callback()
def root(
    ctx: typer.Context,
    docker_host: str = typer.Option(
        None,
        "--docker-host",
        "-d",
        help="URL of the Docker daemon (e.g. 'unix:///var/run/docker.sock' or 'tcp://localhost:2375').",
    ),
    temp_directory: Path = typer.Option(
        None,
        "--temp-directory",
        "-e",
        file_okay=False,
        help="Location used for temporary files. Defaults to the system temp directory.",
    ),
    log_level: str = typer.Option(
        None,
        "--log-level",
        help="Log level (DEBUG, INFO, WARNING, ERROR).",
    ),
    verbose: bool = typer.Option(
        False,
        "--verbose",
        "-v",
        help="Shorthand for --log-level DEBUG.",
    ),
) -> None:
    """Build settings once for this invocation and configure logging."""
    try:
        settings = DidiffSettings().with_overrides(
            docker_host=docker_host,
            temp_dir=temp_directory,
            log_level="DEBUG" if verbose else log_level,
        )
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc

    context.configure_logging(settings.log_level)
    ctx.obj = settings


def main() -> None:
    """CLI entry point."""
    app()


if __name__ == "__main__":
    main()
