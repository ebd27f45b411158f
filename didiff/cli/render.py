"""Rich terminal rendering for workflow reports and image listings.

Color scheme
------------
- green     : PASSED
- bold red  : FAILED
"""

from __future__ import annotations

from rich.console import Console, Group
from rich.filesize import decimal
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from didiff.models.images import ImageIdentity
from didiff.models.jobs import PatchReport, StepState, Workflow

_STATE_ICONS: dict[StepState, str] = {
    StepState.PASSED: "[green]PASSED[/green]",
    StepState.FAILED: "[bold red]FAILED[/bold red]",
}


class ReportRenderer:
    """Renders ``PatchReport`` and image listings as Rich output.

    Parameters
    ----------
    console:
        Rich Console instance.  A new one is created if not provided.
    """

    def __init__(self, console: Console | None = None) -> None:
        self.console = console or Console()

    # ------------------------------------------------------------------
    # Workflow reports
    # ------------------------------------------------------------------

    def render_report(self, report: PatchReport) -> Panel:
        """Render a report as a Panel holding the step table and a summary."""
        table = Table(show_header=True, header_style="bold cyan", expand=True)
        table.add_column("#", style="dim", width=3, justify="right")
        table.add_column("Step", min_width=16)
        table.add_column("State", justify="center", min_width=8)
        table.add_column("Time", justify="right", width=8)
        table.add_column("Details", overflow="fold")

        for i, record in enumerate(report.steps, 1):
            table.add_row(
                str(i),
                record.step.value,
                _STATE_ICONS.get(record.state, record.state.value),
                f"{record.elapsed_seconds:.2f}s",
                escape(record.detail) if record.detail else "[dim]-[/dim]",
            )

        summary: list[str] = [f"[bold]Source:[/bold] {_label(report.source)}"]
        if report.target is not None:
            summary.append(f"[bold]Target:[/bold] {_label(report.target)}")
        if report.patch_size is not None:
            summary.append(f"[bold]Patch:[/bold]  {decimal(report.patch_size)}")
        if report.output_sha256:
            summary.append(f"[bold]SHA256:[/bold] {report.output_sha256}")
        if report.applied_tag:
            summary.append(f"[bold]Tagged:[/bold] {escape(report.applied_tag)}")
        if report.tag_error:
            summary.append(f"[bold yellow]Tag not applied:[/bold yellow] {escape(report.tag_error)}")

        title = "Patch created" if report.workflow == Workflow.CREATE else "Patch applied"
        return Panel(
            Group(table, Text(""), Text.from_markup("\n".join(summary))),
            title=f"[bold]{title}[/bold]",
            border_style="yellow" if report.tag_failed else "green",
            padding=(1, 2),
        )

    def print_report(self, report: PatchReport) -> None:
        self.console.print(self.render_report(report))

    # ------------------------------------------------------------------
    # Images
    # ------------------------------------------------------------------

    def render_images(self, images: list[ImageIdentity]) -> Table:
        """Render images in ``docker images`` order as a table."""
        table = Table(title="Images", header_style="bold cyan")
        table.add_column("Image ID", style="cyan", no_wrap=True)
        table.add_column("Tags")
        table.add_column("Size", justify="right")
        table.add_column("Created", style="dim")

        for image in images:
            tags = ", ".join(image.repo_tags) if image.repo_tags else "[dim]<none>[/dim]"
            created = image.created.strftime("%Y-%m-%d %H:%M") if image.created else "-"
            table.add_row(image.short_id, tags, decimal(image.size), created)
        return table

    def print_identity(self, image: ImageIdentity) -> None:
        """Print the fields of one resolved identity."""
        lines = [
            f"[bold]ID:[/bold]      {image.image_id}",
            f"[bold]Tags:[/bold]    {escape(', '.join(image.repo_tags)) or '<none>'}",
            f"[bold]Size:[/bold]    {decimal(image.size)}",
        ]
        if image.created:
            lines.append(f"[bold]Created:[/bold] {image.created.isoformat()}")
        self.console.print("\n".join(lines), highlight=False)


def _label(image: ImageIdentity) -> str:
    if image.repo_tags:
        return f"{image.short_id} ({escape(', '.join(image.repo_tags))})"
    return image.short_id
