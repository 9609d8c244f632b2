"""Building and editing EditableChatRequest objects.

Every mutating operation looks the section up by id (unknown ids raise
``SectionNotFoundError``), refuses to touch a request whose turn is already
resolved (``RequestClosedError``), bumps the metadata version and recomposes
the message list.
"""

import time
from typing import Literal, Optional, Sequence

from pydantic import BaseModel

from liveprompt.editing.recompose import recompute_messages
from liveprompt.models.messages import ChatMessage, TextPart, clone_messages, get_text
from liveprompt.models.request import (
    ChatSurface,
    EditableChatRequest,
    LeafEdit,
    MetadataSeed,
    NameEdit,
    PartTextEdit,
    RequestMetadata,
    Section,
    SectionKind,
    ToolArgumentsEdit,
)
from liveprompt.services.exceptions import RequestClosedError, SectionNotFoundError
from liveprompt.utils.ids import generate_request_id, section_id
from liveprompt.utils.logging import get_logger


logger = get_logger(__name__)


def section_label(kind: SectionKind, message: ChatMessage, index: int) -> str:
    """Human-readable label for a section."""
    if kind == SectionKind.TOOL:
        return f"Tool: {message.name}" if message.name else "Tool"
    if kind == SectionKind.OTHER:
        return f"Message {index + 1}"
    return kind.value.capitalize()


def create_sections_from_messages(
    messages: Sequence[ChatMessage],
    token_counts: Optional[Sequence[Optional[int]]] = None,
) -> list[Section]:
    """
    Project messages into one section per message, in order.

    Ids depend only on position and role, so the same message list always
    yields structurally identical sections.

    Args:
        messages: Messages to project
        token_counts: Optional token count per message index

    Returns:
        List of sections, one per message
    """
    sections = []
    for index, message in enumerate(messages):
        kind = SectionKind.from_role(message.role)
        content = get_text(message)
        token_count = None
        if token_counts is not None and index < len(token_counts):
            token_count = token_counts[index]
        sections.append(Section(
            id=section_id(index, kind.value),
            kind=kind,
            label=section_label(kind, message, index),
            content=content,
            original_content=content,
            source_message_index=index,
            token_count=token_count,
            message=message.model_copy(deep=True),
        ))
    return sections


def _token_counts_for(seed: MetadataSeed, count: int) -> Optional[list[Optional[int]]]:
    if seed.per_message_token_counts is not None:
        return list(seed.per_message_token_counts)
    if seed.token_count is not None and count > 0:
        # Only a total is known: spread it evenly
        return [seed.token_count // count] * count
    return None


def build_editable_chat_request(
    conversation_id: str,
    surface: ChatSurface,
    rendered_messages: Sequence[ChatMessage],
    seed: MetadataSeed,
) -> EditableChatRequest:
    """
    Create an editable request from the rendering stage's output.

    The rendered messages are deep-copied into ``original_messages``; the
    caller's list is never referenced afterwards.

    Args:
        conversation_id: Conversation the request belongs to
        surface: Chat surface the request originated from
        rendered_messages: Message list produced by the renderer
        seed: Model, token accounting and request options from the renderer

    Returns:
        A clean (not dirty) EditableChatRequest
    """
    original = clone_messages(rendered_messages)
    request_id = seed.request_id or generate_request_id()
    sections = create_sections_from_messages(original, _token_counts_for(seed, len(original)))

    metadata = RequestMetadata(
        request_id=request_id,
        token_count=seed.token_count,
        max_prompt_tokens=seed.max_prompt_tokens,
        max_response_tokens=seed.max_response_tokens,
        model_family=seed.model_family,
        intent=seed.intent,
        endpoint_url=seed.endpoint_url,
        request_options=dict(seed.request_options),
    )

    request = EditableChatRequest(
        id=request_id,
        conversation_id=conversation_id,
        surface=surface,
        model=seed.model,
        debug_name=seed.debug_name,
        messages=clone_messages(original),
        original_messages=original,
        sections=sections,
        is_dirty=False,
        metadata=metadata,
    )
    recompute_messages(request)

    logger.debug(
        "editable_request_built",
        request_id=request_id,
        conversation_id=conversation_id,
        surface=surface.value,
        message_count=len(original),
    )
    return request


def get_section(request: EditableChatRequest, section_id: str) -> Section:
    """Look up a section by id.

    Raises:
        SectionNotFoundError: If the request has no such section
    """
    section = request.find_section(section_id)
    if section is None:
        raise SectionNotFoundError(section_id, request.metadata.request_id)
    return section


def _ensure_open(request: EditableChatRequest) -> None:
    if request.closed:
        raise RequestClosedError(request.metadata.request_id)


def _touch(request: EditableChatRequest) -> None:
    request.metadata.version += 1
    request.metadata.last_updated = time.time()


def update_section_content(
    request: EditableChatRequest,
    section_id: str,
    new_content: str,
) -> Section:
    """
    Replace the whole text of a section (aggregate edit).

    Clears the section's deleted flag and any leaf edits it carried. Writing
    back exactly the original text returns the section to its pristine state.

    Raises:
        SectionNotFoundError: If ``section_id`` is unknown
        RequestClosedError: If the request can no longer be edited
    """
    _ensure_open(request)
    section = get_section(request, section_id)

    section.deleted = False
    section.leaf_edits = []
    if new_content == section.original_content:
        section.edited_content = None
    else:
        section.edited_content = new_content

    _touch(request)
    recompute_messages(request)
    logger.info(
        "section_edited",
        request_id=request.metadata.request_id,
        section_id=section_id,
        edit="content",
        is_dirty=request.is_dirty,
    )
    return section


def _set_leaf_edit(request: EditableChatRequest, section_id: str, edit: LeafEdit) -> Section:
    _ensure_open(request)
    section = get_section(request, section_id)

    edits = [existing for existing in section.leaf_edits if existing.path != edit.path]
    edits.append(edit)
    section.leaf_edits = edits
    section.edited_content = None
    section.deleted = False

    _touch(request)
    recompute_messages(request)
    logger.info(
        "section_edited",
        request_id=request.metadata.request_id,
        section_id=section_id,
        edit=edit.path,
        is_dirty=request.is_dirty,
    )
    return section


def update_section_part(
    request: EditableChatRequest,
    section_id: str,
    part_index: int,
    text: str,
) -> Section:
    """Replace the text of one content part of a section's message."""
    return _set_leaf_edit(request, section_id, PartTextEdit(part_index=part_index, text=text))


def update_tool_call_arguments(
    request: EditableChatRequest,
    section_id: str,
    tool_call_index: int,
    arguments: str,
) -> Section:
    """Replace the arguments of one tool call of an assistant section."""
    return _set_leaf_edit(
        request,
        section_id,
        ToolArgumentsEdit(tool_call_index=tool_call_index, arguments=arguments),
    )


def update_section_name(
    request: EditableChatRequest,
    section_id: str,
    name: Optional[str],
) -> Section:
    """Replace the ``name`` field of a section's message."""
    return _set_leaf_edit(request, section_id, NameEdit(name=name))


def delete_section(request: EditableChatRequest, section_id: str) -> bool:
    """
    Exclude a section's message from the payload.

    The section record stays in place so it can be restored losslessly.

    Returns:
        True if the section was not already deleted
    """
    _ensure_open(request)
    section = get_section(request, section_id)
    if section.deleted:
        return False
    section.deleted = True
    _touch(request)
    recompute_messages(request)
    logger.info("section_deleted", request_id=request.metadata.request_id, section_id=section_id)
    return True


def restore_section(request: EditableChatRequest, section_id: str) -> bool:
    """
    Bring a deleted section back, with any edits it carried.

    Returns:
        True if the section was deleted
    """
    _ensure_open(request)
    section = get_section(request, section_id)
    if not section.deleted:
        return False
    section.deleted = False
    _touch(request)
    recompute_messages(request)
    logger.info("section_restored", request_id=request.metadata.request_id, section_id=section_id)
    return True


def reset_section(request: EditableChatRequest, section_id: str) -> Section:
    """Drop every edit on one section and undelete it."""
    _ensure_open(request)
    section = get_section(request, section_id)
    section.edited_content = None
    section.leaf_edits = []
    section.deleted = False
    _touch(request)
    recompute_messages(request)
    return section


def reset_request(request: EditableChatRequest) -> None:
    """Restore the request to its rendered state, rebuilding every section."""
    _ensure_open(request)
    token_counts = [section.token_count for section in request.sections]
    request.messages = clone_messages(request.original_messages)
    request.sections = create_sections_from_messages(request.original_messages, token_counts)
    _touch(request)
    recompute_messages(request)
    logger.info("request_reset", request_id=request.metadata.request_id)


def toggle_section_collapsed(request: EditableChatRequest, section_id: str) -> bool:
    """Flip the collapsed flag of a section. Does not affect the payload."""
    section = get_section(request, section_id)
    section.collapsed = not section.collapsed
    return section.collapsed


def update_token_counts(
    request: EditableChatRequest,
    total: Optional[int] = None,
    per_message: Optional[Sequence[int]] = None,
) -> bool:
    """
    Record token counts reported by the rendering stage.

    Negative totals are ignored. Per-message counts are matched to sections
    by source message index.

    Returns:
        True if anything changed
    """
    changed = False
    if total is not None and total >= 0:
        request.metadata.token_count = total
        changed = True
    if per_message:
        for section in request.sections:
            if section.source_message_index < len(per_message):
                section.token_count = per_message[section.source_message_index]
                changed = True
    if changed:
        request.metadata.last_updated = time.time()
    return changed


class SendValidation(BaseModel):
    """Whether a request may be sent, with a reason code when it may not."""

    valid: bool
    code: Optional[Literal["empty", "no_content"]] = None
    error: Optional[str] = None


def validate_for_send(request: EditableChatRequest) -> SendValidation:
    """Check that the recomposed payload is worth sending."""
    if not request.messages:
        return SendValidation(
            valid=False,
            code="empty",
            error="Cannot send an empty request. Restore at least one section.",
        )

    for message in request.messages:
        if get_text(message).strip():
            return SendValidation(valid=True)
        if getattr(message, "tool_calls", None):
            return SendValidation(valid=True)
        if any(not isinstance(part, TextPart) for part in message.content):
            return SendValidation(valid=True)

    return SendValidation(
        valid=False,
        code="no_content",
        error="Cannot send a request with no content. Add content to at least one section.",
    )
