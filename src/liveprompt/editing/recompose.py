"""Recomposition of a schema-valid message list from section edits.

The engine walks the sections of a request in order and rebuilds each
retained message from a deep copy of its base. Edits addressed to an exact
path (a content part, a tool-call's arguments, the ``name`` field) replace
only that element; every sibling part keeps its type, payload and position.
"""

from liveprompt.models.messages import (
    AssistantMessage,
    ChatMessage,
    TextPart,
    create_message_shell,
    get_text,
)
from liveprompt.models.request import (
    EditableChatRequest,
    LeafEdit,
    NameEdit,
    PartTextEdit,
    Section,
    StaleEdit,
    ToolArgumentsEdit,
)
from liveprompt.services.exceptions import StalePathError
from liveprompt.services.parity import compute_payload_hash
from liveprompt.utils.logging import get_logger


logger = get_logger(__name__)


def recompute_messages(request: EditableChatRequest) -> list[ChatMessage]:
    """
    Rebuild ``request.messages`` from the original messages and section edits.

    Deleted sections emit nothing. Leaf edits whose path no longer resolves
    are skipped and recorded in ``request.stale_edits``; the rest of the
    message is still emitted. ``original_messages`` is never mutated.

    Also refreshes ``is_dirty``, the display text of each section and
    ``metadata.payload_hash``.

    Args:
        request: Request whose sections describe the edits

    Returns:
        The recomposed message list (also stored on ``request.messages``)
    """
    updated: list[ChatMessage] = []
    stale: list[StaleEdit] = []

    for section in request.sections:
        if section.deleted:
            continue

        message = resolve_base_message(request, section).model_copy(deep=True)

        if section.leaf_edits:
            for edit in section.leaf_edits:
                try:
                    message = apply_leaf_edit(message, edit)
                except StalePathError as e:
                    logger.warning(
                        "stale_edit_skipped",
                        request_id=request.metadata.request_id,
                        section_id=section.id,
                        path=e.path,
                        reason=e.reason,
                    )
                    stale.append(StaleEdit(
                        section_id=section.id,
                        source_message_index=section.source_message_index,
                        path=e.path,
                        reason=e.reason,
                    ))
        elif section.edited_content is not None:
            message = apply_aggregate_text(message, section.edited_content)

        section.content = get_text(message)
        updated.append(message)

    request.messages = updated
    request.stale_edits = stale
    request.is_dirty = updated != request.original_messages
    request.metadata.payload_hash = compute_payload_hash(updated, request.metadata.request_options)

    logger.debug(
        "messages_recomputed",
        request_id=request.metadata.request_id,
        message_count=len(updated),
        is_dirty=request.is_dirty,
        stale_count=len(stale),
    )
    return updated


def resolve_base_message(request: EditableChatRequest, section: Section) -> ChatMessage:
    """Pick the message a section is rebuilt from.

    Order: the section's retained message, the original message at its
    index, and finally an empty message of the section's role.
    """
    if section.message is not None:
        return section.message
    index = section.source_message_index
    if 0 <= index < len(request.original_messages):
        return request.original_messages[index]
    return create_message_shell(section.kind.to_role())


def apply_leaf_edit(message: ChatMessage, edit: LeafEdit) -> ChatMessage:
    """
    Apply one path-addressed edit to ``message`` in place.

    Raises:
        StalePathError: If the edit's path does not exist on ``message`` or
            points at an element of the wrong type
    """
    if isinstance(edit, PartTextEdit):
        if edit.part_index >= len(message.content):
            raise StalePathError(
                edit.path,
                f"message has {len(message.content)} content part(s)",
            )
        target = message.content[edit.part_index]
        if not isinstance(target, TextPart):
            raise StalePathError(edit.path, f"part is {target.type}, not text")
        message.content[edit.part_index] = TextPart(text=edit.text)
        return message

    if isinstance(edit, ToolArgumentsEdit):
        if not isinstance(message, AssistantMessage) or not message.tool_calls:
            raise StalePathError(edit.path, "message has no tool calls")
        if edit.tool_call_index >= len(message.tool_calls):
            raise StalePathError(
                edit.path,
                f"message has {len(message.tool_calls)} tool call(s)",
            )
        call = message.tool_calls[edit.tool_call_index]
        message.tool_calls[edit.tool_call_index] = call.model_copy(update={
            "function": call.function.model_copy(update={"arguments": edit.arguments}),
        })
        return message

    if isinstance(edit, NameEdit):
        message.name = edit.name
        return message

    raise StalePathError(getattr(edit, "path", "?"), f"unsupported edit {type(edit).__name__}")


def apply_aggregate_text(message: ChatMessage, text: str) -> ChatMessage:
    """
    Replace all text of ``message`` with a single text part.

    Deprecated edit path kept for aggregate (whole-section) edits: non-text
    parts survive unchanged and in order after the new text part, but the
    original text segmentation collapses into one part.
    """
    non_text = [part for part in message.content if not isinstance(part, TextPart)]
    message.content = [TextPart(text=text), *non_text]
    return message


def find_stale_edits(message: ChatMessage, edits: list[LeafEdit]) -> list[tuple[LeafEdit, str]]:
    """Return the edits that would not resolve against ``message``, with reasons."""
    scratch = message.model_copy(deep=True)
    stale = []
    for edit in edits:
        try:
            scratch = apply_leaf_edit(scratch, edit)
        except StalePathError as e:
            stale.append((edit, e.reason))
    return stale
