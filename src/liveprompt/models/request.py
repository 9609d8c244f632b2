"""Editable request model: one mutable snapshot of an outgoing chat request."""

import time
from enum import Enum
from typing import Annotated, Any, Literal, Optional, Union

from pydantic import BaseModel, Field

from liveprompt.models.messages import ChatMessage, ChatRole


class ChatSurface(str, Enum):
    """Chat surface a conversation is rendered in."""

    PANEL = "panel"
    INLINE = "inline"
    TERMINAL = "terminal"
    OTHER = "other"


class InterceptionKey(BaseModel):
    """Identifies one independent instance of the editor: (conversation, surface)."""

    conversation_id: str
    surface: ChatSurface = ChatSurface.PANEL

    model_config = {"frozen": True}

    def __str__(self) -> str:
        return f"{self.conversation_id}::{self.surface.value}"

    @classmethod
    def parse(cls, text: str) -> "InterceptionKey":
        """Inverse of ``str(key)``; the surface follows the last ``::``."""
        conversation_id, sep, surface = text.rpartition("::")
        if not sep:
            raise ValueError(f"Invalid interception key: {text!r}")
        return cls(conversation_id=conversation_id, surface=ChatSurface(surface))


class SectionKind(str, Enum):
    """Kind of a section; mirrors the role of the message it projects."""

    SYSTEM = "system"
    USER = "user"
    ASSISTANT = "assistant"
    TOOL = "tool"
    OTHER = "other"

    @classmethod
    def from_role(cls, role: str) -> "SectionKind":
        try:
            return cls(role)
        except ValueError:
            return cls.OTHER

    def to_role(self) -> ChatRole:
        if self == SectionKind.OTHER:
            return ChatRole.USER
        return ChatRole(self.value)


class PartTextEdit(BaseModel):
    """Replace the text of one content part, addressed by index."""

    target: Literal["part_text"] = "part_text"
    part_index: int = Field(..., ge=0)
    text: str

    @property
    def path(self) -> str:
        return f"content[{self.part_index}]"


class ToolArgumentsEdit(BaseModel):
    """Replace the arguments of one tool call on an assistant message."""

    target: Literal["tool_arguments"] = "tool_arguments"
    tool_call_index: int = Field(..., ge=0)
    arguments: str

    @property
    def path(self) -> str:
        return f"tool_calls[{self.tool_call_index}].arguments"


class NameEdit(BaseModel):
    """Replace the optional ``name`` field of a message."""

    target: Literal["name"] = "name"
    name: Optional[str] = None

    @property
    def path(self) -> str:
        return "name"


LeafEdit = Annotated[
    Union[PartTextEdit, ToolArgumentsEdit, NameEdit],
    Field(discriminator="target"),
]


class Section(BaseModel):
    """UI-facing projection of one message of the request."""

    id: str = Field(..., description="Stable identifier derived from position")
    kind: SectionKind
    label: str
    content: str = Field(..., description="Current display text of the section")
    original_content: str = Field(..., description="Display text at build time")
    edited_content: Optional[str] = Field(
        default=None,
        description="Aggregate text edit; None until the operator changes the section"
    )
    leaf_edits: list[LeafEdit] = Field(
        default_factory=list,
        description="Edits addressed to an exact path inside the message"
    )
    deleted: bool = False
    collapsed: bool = False
    token_count: Optional[int] = None
    source_message_index: int = Field(..., ge=0)
    message: Optional[ChatMessage] = Field(
        default=None,
        description="Message this section was built from; carries non-text parts and tool linkage"
    )

    model_config = {"frozen": False}

    @property
    def has_edits(self) -> bool:
        return self.edited_content is not None or bool(self.leaf_edits)


class ParityStatus(str, Enum):
    UNKNOWN = "unknown"
    MATCH = "match"
    MISMATCH = "mismatch"


class MetadataSeed(BaseModel):
    """Values handed over by the rendering stage when a request is built."""

    model: str
    debug_name: str = ""
    request_id: Optional[str] = None
    token_count: Optional[int] = Field(default=None, ge=0)
    per_message_token_counts: Optional[list[int]] = None
    max_prompt_tokens: Optional[int] = Field(default=None, ge=0)
    max_response_tokens: Optional[int] = Field(default=None, ge=0)
    model_family: Optional[str] = None
    intent: Optional[str] = None
    endpoint_url: Optional[str] = None
    request_options: dict[str, Any] = Field(default_factory=dict)


class RequestMetadata(BaseModel):
    """Metadata reported alongside an editable request."""

    request_id: str
    created_at: float = Field(default_factory=time.time)
    last_updated: Optional[float] = None
    version: int = Field(default=1, description="Bumped on every mutation")
    token_count: Optional[int] = None
    max_prompt_tokens: Optional[int] = None
    max_response_tokens: Optional[int] = None
    model_family: Optional[str] = None
    intent: Optional[str] = None
    endpoint_url: Optional[str] = None
    request_options: dict[str, Any] = Field(default_factory=dict)
    payload_hash: Optional[int] = None
    last_logged_hash: Optional[int] = None
    parity_status: ParityStatus = ParityStatus.UNKNOWN

    model_config = {"frozen": False}


class StaleEdit(BaseModel):
    """A leaf edit skipped because its path no longer resolves."""

    section_id: str
    source_message_index: int
    path: str
    reason: str


class EditableChatRequest(BaseModel):
    """Mutable snapshot of one outgoing request.

    ``messages`` is the payload that will be sent; ``sections`` is the editable
    projection of it. ``original_messages`` is a deep snapshot taken at build
    time and is never mutated.
    """

    id: str
    conversation_id: str
    surface: ChatSurface
    model: str
    debug_name: str = ""
    messages: list[ChatMessage]
    original_messages: list[ChatMessage]
    sections: list[Section]
    is_dirty: bool = False
    metadata: RequestMetadata
    stale_edits: list[StaleEdit] = Field(default_factory=list)
    closed: bool = Field(
        default=False,
        description="Set once the turn owning this request is sent or discarded"
    )

    model_config = {"frozen": False}

    @property
    def key(self) -> InterceptionKey:
        return InterceptionKey(conversation_id=self.conversation_id, surface=self.surface)

    def find_section(self, section_id: str) -> Optional[Section]:
        for section in self.sections:
            if section.id == section_id:
                return section
        return None
