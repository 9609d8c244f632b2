"""Override sets: edits captured from a reviewed turn and replayed later."""

import time
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from liveprompt.models.request import LeafEdit, SectionKind


class OverrideScope(str, Enum):
    """How long an override set is kept.

    Both scopes belong to one conversation on one surface; ``workspace``
    sets also survive restarts.
    """

    SESSION = "session"
    WORKSPACE = "workspace"


class SectionOverride(BaseModel):
    """Edits recorded for one section, addressed by its message index."""

    source_message_index: int = Field(..., ge=0)
    kind: SectionKind
    original_content: str = ""
    edited_content: Optional[str] = None
    leaf_edits: list[LeafEdit] = Field(default_factory=list)
    deleted: bool = False

    def preview(self, limit: int) -> str:
        if self.deleted:
            text = "(deleted)"
        elif self.edited_content is not None:
            text = self.edited_content
        else:
            text = ", ".join(edit.path for edit in self.leaf_edits)
        text = " ".join(text.split())
        if len(text) > limit:
            text = text[: max(limit - 1, 0)] + "…"
        return f"#{self.source_message_index} {self.kind.value}: {text}"


class OverrideSet(BaseModel):
    """Named, scope-tagged collection of section edits."""

    name: str
    scope: OverrideScope
    conversation_id: str
    surface: str
    entries: list[SectionOverride] = Field(default_factory=list)
    captured_at: float = Field(default_factory=time.time)

    model_config = {"frozen": True}

    def preview(self, limit: int = 80) -> list[str]:
        """One-line previews of each entry, truncated to ``limit`` characters."""
        return [entry.preview(limit) for entry in self.entries]


class SkippedOverride(BaseModel):
    """An override entry or leaf edit that did not resolve on a fresh turn."""

    source_message_index: int
    path: Optional[str] = None
    reason: str
