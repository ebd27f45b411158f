"""``didiff apply [--new-tag REPO:TAG] SOURCE TARGET PATCH_FILE`` — rebuild an image.

Saves SOURCE, applies the patch to its archive, loads the result into the
store and checks that TARGET now resolves.  Optionally tags the new image.
"""

from __future__ import annotations

import logging
from contextlib import closing
from pathlib import Path

import typer
from rich.console import Console

from didiff.cli import context
from didiff.cli.render import ReportRenderer
from didiff.core.orchestrator import PatchOrchestrator
from didiff.errors import DidiffError
from didiff.models.jobs import PatchJob

logger = logging.getLogger(__name__)

console = Console()


def apply_cmd(
    ctx: typer.Context,
    source: str = typer.Argument(
        ...,
        help="Original image present locally: full ID, short ID, or repo:tag.",
    ),
    target: str = typer.Argument(
        ...,
        help="Reference the rebuilt image must resolve to once loaded.",
    ),
    patch_file: Path = typer.Argument(
        ...,
        dir_okay=False,
        help="Patch produced by 'didiff create'.",
    ),
    new_tag: str = typer.Option(
        None,
        "--new-tag",
        "-t",
        help="repo:tag for the new image (e.g. nginx:1.15.12 or example.com/cool_thing:1.2.3).",
    ),
    expect_sha256: str = typer.Option(
        None,
        "--expect-sha256",
        help="Refuse to load the rebuilt archive unless its SHA-256 matches.",
    ),
) -> None:
    """Build a new image from an original image and a patch file.

    Exits 0 on success, 1 on any failure, and 3 when the image was rebuilt
    and verified but the requested tag could not be applied.
    """
    settings = context.settings_from(ctx)
    if new_tag is None:
        logger.warning("new repo:tag was not specified (-t)")

    job = PatchJob(
        source_ref=source,
        target_ref=target,
        patch_path=patch_file,
        new_tag=new_tag,
        expected_sha256=expect_sha256,
    )

    try:
        with closing(context.open_store(settings)) as store:
            report = PatchOrchestrator(store, settings).run_apply(job)
    except DidiffError as exc:
        context.fail(console, exc)

    ReportRenderer(console).print_report(report)
    if report.tag_failed:
        raise typer.Exit(code=context.EXIT_TAG_FAILED)
