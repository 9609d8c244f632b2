"""Chat message schema exchanged with the rendering and transport stages.

Messages and content parts are closed tagged unions: a message is
discriminated on ``role`` and a content part on ``type``. Every model forbids
extra fields, so a non-text part can never carry a ``text`` payload and a
part of an unknown type cannot be constructed.
"""

from enum import Enum
from typing import Annotated, Any, Iterable, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter


class ChatRole(str, Enum):
    """Role of a chat message."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"


class TextPart(BaseModel):
    """Plain text segment of a message."""

    type: Literal["text"] = "text"
    text: str = Field(..., description="Text payload (always a string)")

    model_config = {"extra": "forbid"}


class ImagePart(BaseModel):
    """Image reference segment of a message."""

    type: Literal["image"] = "image"
    url: str = Field(..., description="Image URL or data URI")
    detail: Optional[Literal["low", "high", "auto"]] = Field(
        default=None,
        description="Requested image detail level"
    )

    model_config = {"extra": "forbid"}


class OpaquePart(BaseModel):
    """Provider-specific segment carried through untouched."""

    type: Literal["opaque"] = "opaque"
    value: Any = Field(default=None, description="Arbitrary JSON-compatible payload")

    model_config = {"extra": "forbid"}


class CacheBreakpointPart(BaseModel):
    """Prompt cache boundary marker."""

    type: Literal["cache_breakpoint"] = "cache_breakpoint"
    cache_type: str = Field(default="ephemeral", description="Cache control type")

    model_config = {"extra": "forbid"}


ContentPart = Annotated[
    Union[TextPart, ImagePart, OpaquePart, CacheBreakpointPart],
    Field(discriminator="type"),
]


class ToolCallFunction(BaseModel):
    """Function invocation requested by the assistant."""

    name: str
    arguments: str = Field(default="", description="JSON-encoded arguments")

    model_config = {"extra": "forbid"}


class ToolCall(BaseModel):
    """Tool call emitted by an assistant message."""

    id: str
    type: Literal["function"] = "function"
    function: ToolCallFunction

    model_config = {"extra": "forbid"}


class SystemMessage(BaseModel):
    role: Literal["system"] = "system"
    content: list[ContentPart] = Field(default_factory=list)
    name: Optional[str] = None

    model_config = {"extra": "forbid"}


class UserMessage(BaseModel):
    role: Literal["user"] = "user"
    content: list[ContentPart] = Field(default_factory=list)
    name: Optional[str] = None

    model_config = {"extra": "forbid"}


class AssistantMessage(BaseModel):
    role: Literal["assistant"] = "assistant"
    content: list[ContentPart] = Field(default_factory=list)
    name: Optional[str] = None
    tool_calls: Optional[list[ToolCall]] = Field(
        default=None,
        description="Tool calls requested by this turn"
    )

    model_config = {"extra": "forbid"}


class ToolMessage(BaseModel):
    role: Literal["tool"] = "tool"
    content: list[ContentPart] = Field(default_factory=list)
    name: Optional[str] = None
    tool_call_id: str = Field(..., description="Id of the tool call this message answers")

    model_config = {"extra": "forbid"}


ChatMessage = Annotated[
    Union[SystemMessage, UserMessage, AssistantMessage, ToolMessage],
    Field(discriminator="role"),
]

_MESSAGE_LIST = TypeAdapter(list[ChatMessage])


def parse_messages(data: Any) -> list[ChatMessage]:
    """Validate a JSON-compatible list of messages.

    Raises:
        pydantic.ValidationError: If any message or part is malformed
    """
    return _MESSAGE_LIST.validate_python(data)


def dump_messages(messages: Iterable[ChatMessage]) -> list[dict[str, Any]]:
    """Convert messages to JSON-ready dicts, omitting unset optional fields."""
    return [message.model_dump(mode="json", exclude_none=True) for message in messages]


def clone_messages(messages: Iterable[ChatMessage]) -> list[ChatMessage]:
    return [message.model_copy(deep=True) for message in messages]


def get_text(message: ChatMessage) -> str:
    """Concatenate the text parts of a message."""
    return "".join(part.text for part in message.content if isinstance(part, TextPart))


def create_message_shell(role: ChatRole) -> ChatMessage:
    """Create a minimal empty message for the given role."""
    empty = [TextPart(text="")]
    if role == ChatRole.SYSTEM:
        return SystemMessage(content=empty)
    if role == ChatRole.ASSISTANT:
        return AssistantMessage(content=empty)
    if role == ChatRole.TOOL:
        return ToolMessage(content=empty, tool_call_id="")
    return UserMessage(content=empty)
