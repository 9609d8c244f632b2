"""liveprompt CLI - inspect and edit chat request payloads offline.

The CLI works on JSON files holding either a list of messages or an object
with ``messages``, optional ``requestOptions`` and optional ``model``.
"""

import json
from pathlib import Path
from typing import Any, Optional

import click
from pydantic import ValidationError

from liveprompt import __version__
from liveprompt.cli import display
from liveprompt.config.loader import load_settings
from liveprompt.editing import builder
from liveprompt.models.config import InspectorSettings
from liveprompt.models.messages import ChatMessage, dump_messages, parse_messages
from liveprompt.models.request import ChatSurface, InterceptionKey, MetadataSeed
from liveprompt.services.exceptions import SectionNotFoundError
from liveprompt.services.override_store import OverrideStore
from liveprompt.services.parity import compute_payload_hash
from liveprompt.utils.logging import configure_logging, get_logger


logger = get_logger(__name__)


def load_payload(path: Path) -> tuple[list[ChatMessage], dict[str, Any], Optional[str]]:
    """
    Read messages, request options and model from a JSON file.

    Raises:
        click.ClickException: If the file is not valid JSON or not a valid payload
    """
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise click.ClickException(f"{path} is not valid JSON: {e}") from e

    if isinstance(data, list):
        raw_messages, options, model = data, {}, None
    elif isinstance(data, dict):
        raw_messages = data.get("messages", [])
        options = data.get("requestOptions") or {}
        model = data.get("model")
    else:
        raise click.ClickException(f"{path} must contain a message list or an object")

    try:
        messages = parse_messages(raw_messages)
    except ValidationError as e:
        raise click.ClickException(f"Invalid messages in {path}:\n{e}") from e
    return messages, options, model


def _parse_edit(value: str) -> tuple[int, str]:
    index, sep, text = value.partition("=")
    if not sep or not index.strip().isdigit():
        raise click.BadParameter(f"expected INDEX=TEXT, got {value!r}", param_hint="--edit")
    return int(index), text


@click.group()
@click.version_option(version=__version__, prog_name="liveprompt")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Path to configuration file (default: ~/.config/liveprompt/config.yaml)",
)
@click.option(
    "--log-file",
    type=click.Path(dir_okay=False, path_type=Path),
    help="JSON log destination (default: ~/.cache/liveprompt/logs/liveprompt.log)",
)
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[Path], log_file: Optional[Path]):
    """liveprompt - inspect and rewrite outgoing chat requests."""
    # Configure logging on CLI startup
    configure_logging(log_file)

    ctx.ensure_object(dict)
    try:
        ctx.obj["settings"] = load_settings(config_path)
    except (ValueError, ValidationError) as e:
        display.show_error(f"Invalid configuration: {e}")
        ctx.exit(1)


@cli.command()
@click.argument("payload_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--edit", "edits", multiple=True, help="Replace section text: INDEX=TEXT (repeatable)")
@click.option("--delete", "deletes", multiple=True, type=int, help="Delete section at INDEX (repeatable)")
@click.option("--surface", type=click.Choice([s.value for s in ChatSurface]), default="panel")
@click.option("--json", "as_json", is_flag=True, help="Print the recomposed payload as JSON")
def inspect(payload_file: Path, edits: tuple[str, ...], deletes: tuple[int, ...], surface: str, as_json: bool):
    """Show the sections of a payload, optionally applying edits."""
    messages, options, model = load_payload(payload_file)
    request = builder.build_editable_chat_request(
        conversation_id=payload_file.stem,
        surface=ChatSurface(surface),
        rendered_messages=messages,
        seed=MetadataSeed(model=model or "unknown", request_options=options),
    )

    by_index = {section.source_message_index: section for section in request.sections}
    try:
        for value in edits:
            index, text = _parse_edit(value)
            section = by_index.get(index)
            builder.update_section_content(request, section.id if section else f"#{index}", text)
        for index in deletes:
            section = by_index.get(index)
            builder.delete_section(request, section.id if section else f"#{index}")
    except SectionNotFoundError as e:
        raise click.ClickException(f"No section at that index: {e}") from e

    if as_json:
        payload = {
            "model": request.model,
            "messages": dump_messages(request.messages),
            "requestOptions": request.metadata.request_options,
        }
        click.echo(json.dumps(payload, indent=2))
        return

    display.show_sections(request)
    validation = builder.validate_for_send(request)
    if not validation.valid:
        display.show_warning(validation.error or "request is not sendable")


@cli.command("hash")
@click.argument("payload_file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
def hash_payload(payload_file: Path):
    """Print the payload hash used for parity checks."""
    messages, options, _ = load_payload(payload_file)
    click.echo(str(compute_payload_hash(messages, options)))


@cli.group()
def overrides():
    """Manage stored workspace override sets."""


def _store(ctx: click.Context) -> OverrideStore:
    settings: InspectorSettings = ctx.obj["settings"]
    if settings.override_store_path is None:
        raise click.ClickException("override_store_path is not configured")
    try:
        return OverrideStore(settings.override_store_path)
    except ValueError as e:
        raise click.ClickException(str(e)) from e


@overrides.command("list")
@click.pass_context
def list_overrides(ctx: click.Context):
    """List stored override sets."""
    store = _store(ctx)
    display.show_overrides(store.all_overrides(), ctx.obj["settings"].override_preview_limit)


@overrides.command("clear")
@click.option("--conversation", "conversation_id", required=True, help="Conversation the set was captured in")
@click.option("--surface", type=click.Choice([s.value for s in ChatSurface]), default="panel")
@click.pass_context
def clear_overrides(ctx: click.Context, conversation_id: str, surface: str):
    """Remove the workspace override set of one conversation."""
    store = _store(ctx)
    key = InterceptionKey(conversation_id=conversation_id, surface=ChatSurface(surface))
    if store.clear_override(key):
        click.echo(f"Cleared override set for {key}.")
    else:
        click.echo(f"No override set stored for {key}.")


@cli.command("config")
@click.pass_context
def show_config(ctx: click.Context):
    """Print the effective settings."""
    settings: InspectorSettings = ctx.obj["settings"]
    click.echo(json.dumps(settings.model_dump(mode="json"), indent=2))


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
