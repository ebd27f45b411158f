"""``didiff images`` and ``didiff resolve REFERENCE`` — inspect the image store."""

from __future__ import annotations

from contextlib import closing

import typer
from rich.console import Console

from didiff.cli import context
from didiff.cli.render import ReportRenderer
from didiff.core.resolver import ImageResolver
from didiff.errors import DidiffError

console = Console()


def images_cmd(ctx: typer.Context) -> None:
    """List every image in the store with its tags."""
    settings = context.settings_from(ctx)
    try:
        with closing(context.open_store(settings)) as store:
            images = store.list_images()
    except DidiffError as exc:
        context.fail(console, exc)

    if not images:
        console.print("[dim]No images found.[/dim]")
        return
    console.print(ReportRenderer(console).render_images(images))


def resolve_cmd(
    ctx: typer.Context,
    reference: str = typer.Argument(
        ...,
        help="Full ID, short ID, or repo:tag to resolve.",
    ),
) -> None:
    """Show which image a reference resolves to (tags win over ID prefixes)."""
    settings = context.settings_from(ctx)
    try:
        with closing(context.open_store(settings)) as store:
            image = ImageResolver(
                store, min_prefix_length=settings.min_prefix_length
            ).resolve(reference)
    except DidiffError as exc:
        context.fail(console, exc)

    ReportRenderer(console).print_identity(image)
