"""``didiff create SOURCE TARGET PATCH_FILE`` — write a patch between two images.

Both images must already be present in the local image store.  The store
is only read; nothing is loaded or tagged.
"""

from __future__ import annotations

from contextlib import closing
from pathlib import Path

import typer
from rich.console import Console

from didiff.cli import context
from didiff.cli.render import ReportRenderer
from didiff.core.orchestrator import PatchOrchestrator
from didiff.errors import DidiffError
from didiff.models.jobs import PatchJob

console = Console()


def create_cmd(
    ctx: typer.Context,
    source: str = typer.Argument(
        ...,
        help="Original image: full ID, short ID, or repo:tag.",
    ),
    target: str = typer.Argument(
        ...,
        help="New image: full ID, short ID, or repo:tag.",
    ),
    patch_file: Path = typer.Argument(
        ...,
        dir_okay=False,
        help="Path the patch is written to.",
    ),
) -> None:
    """Build a patch describing the binary diff of two images.

    IDs may be given in long (sha256:0123...) or short (0123456789ab) form.
    On failure any partially written patch file is removed.
    """
    settings = context.settings_from(ctx)
    job = PatchJob(source_ref=source, target_ref=target, patch_path=patch_file)

    try:
        with closing(context.open_store(settings)) as store:
            report = PatchOrchestrator(store, settings).run_create(job)
    except DidiffError as exc:
        context.fail(console, exc)

    ReportRenderer(console).print_report(report)
    console.print(f"[bold]{patch_file}[/bold]", highlight=False)
