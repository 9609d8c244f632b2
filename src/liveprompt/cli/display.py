"""Console rendering for CLI output."""

import click
from rich.console import Console
from rich.table import Table

from liveprompt.models.override import OverrideSet
from liveprompt.models.request import EditableChatRequest


console = Console()


def show_error(message: str) -> None:
    click.echo(f"Error: {message}", err=True)


def show_warning(message: str) -> None:
    click.echo(f"Warning: {message}", err=True)


def _preview(text: str, limit: int = 60) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else text[: limit - 1] + "…"


def show_sections(request: EditableChatRequest) -> None:
    """Print one row per section with its edit status."""
    table = Table(title=f"Request {request.metadata.request_id} ({request.model})")
    table.add_column("#", justify="right")
    table.add_column("Section")
    table.add_column("Status")
    table.add_column("Tokens", justify="right")
    table.add_column("Content")

    for section in request.sections:
        if section.deleted:
            status = "[red]deleted[/red]"
        elif section.has_edits:
            status = "[yellow]edited[/yellow]"
        else:
            status = "original"
        tokens = "" if section.token_count is None else str(section.token_count)
        table.add_row(
            str(section.source_message_index),
            section.label,
            status,
            tokens,
            _preview(section.content),
        )

    console.print(table)
    console.print(
        f"Messages: {len(request.messages)}  "
        f"Dirty: {'yes' if request.is_dirty else 'no'}  "
        f"Payload hash: {request.metadata.payload_hash}"
    )
    for stale in request.stale_edits:
        show_warning(f"skipped {stale.path} on message {stale.source_message_index}: {stale.reason}")


def show_overrides(overrides: list[OverrideSet], preview_limit: int) -> None:
    if not overrides:
        click.echo("No override sets stored.")
        return
    for override in overrides:
        console.print(
            f"[bold]{override.name}[/bold] "
            f"({override.scope.value}, {override.conversation_id}::{override.surface})"
        )
        for line in override.preview(preview_limit):
            console.print(f"  {line}")
