"""Read-only metadata surface for the visual layer.

Builds snapshots of a key's request and interception state, label/value
rows for the configured metadata fields, the token budget, the parity
warning and outline trees for request options and the raw payload.
"""

from typing import Any, Iterable, Literal, Optional

from pydantic import BaseModel, Field

from liveprompt.models.messages import dump_messages
from liveprompt.models.mode import Mode, PendingTurn
from liveprompt.models.request import EditableChatRequest, ParityStatus


FIELD_LABELS: dict[str, str] = {
    "conversation": "Conversation",
    "request": "Request",
    "model": "Model",
    "surface": "Surface",
    "interception": "Interception",
    "dirty": "Dirty",
}

OUTLINE_SECTION_LABELS: dict[str, str] = {
    "request_options": "Request Options",
    "raw_request": "Raw Request Payload",
}

MAX_OUTLINE_ENTRIES = 512


class MetadataSnapshot(BaseModel):
    """Point-in-time view of one key's request for display."""

    conversation_id: str
    surface: str
    request_id: str
    debug_name: str = ""
    model: str
    is_dirty: bool
    version: int
    created_at: float
    last_updated: Optional[float] = None
    interception_state: Literal["pending", "idle"]
    mode: str
    token_count: Optional[int] = None
    max_prompt_tokens: Optional[int] = None
    payload_hash: Optional[int] = None
    last_logged_hash: Optional[int] = None
    parity_status: ParityStatus = ParityStatus.UNKNOWN


def build_metadata_snapshot(
    request: EditableChatRequest,
    pending: Optional[PendingTurn],
    mode: Mode,
) -> MetadataSnapshot:
    metadata = request.metadata
    is_pending = pending is not None and pending.request.id == request.id
    return MetadataSnapshot(
        conversation_id=request.conversation_id,
        surface=request.surface.value,
        request_id=metadata.request_id,
        debug_name=request.debug_name,
        model=request.model,
        is_dirty=request.is_dirty,
        version=metadata.version,
        created_at=metadata.created_at,
        last_updated=metadata.last_updated,
        interception_state="pending" if is_pending else "idle",
        mode=mode.value,
        token_count=metadata.token_count,
        max_prompt_tokens=metadata.max_prompt_tokens,
        payload_hash=metadata.payload_hash,
        last_logged_hash=metadata.last_logged_hash,
        parity_status=metadata.parity_status,
    )


def describe_fields(snapshot: MetadataSnapshot, fields: Iterable[str]) -> list[tuple[str, str]]:
    """
    Label/value rows for the selected metadata fields.

    Unknown field names are ignored; empty values display as an em dash.
    """
    values = {
        "conversation": snapshot.conversation_id,
        "request": snapshot.request_id,
        "model": snapshot.model,
        "surface": snapshot.surface,
        "interception": "Pending" if snapshot.interception_state == "pending" else "Idle",
        "dirty": "Dirty" if snapshot.is_dirty else "Clean",
    }
    rows = []
    for field in fields:
        if field not in FIELD_LABELS:
            continue
        rows.append((FIELD_LABELS[field], values[field] or "—"))
    return rows


class TokenBudget(BaseModel):
    used: int
    max: int
    percent: Optional[float] = None


def token_budget(snapshot: MetadataSnapshot) -> TokenBudget:
    """Token usage as reported by the rendering stage."""
    used = snapshot.token_count or 0
    maximum = snapshot.max_prompt_tokens or 0
    percent = round(used / maximum * 100, 1) if maximum > 0 else None
    return TokenBudget(used=used, max=maximum, percent=percent)


def parity_annotation(snapshot: MetadataSnapshot) -> Optional[str]:
    """Warning text for a parity mismatch, carrying both hash values."""
    if snapshot.parity_status != ParityStatus.MISMATCH:
        return None
    return (
        f"Payload parity mismatch: sent {snapshot.payload_hash}, "
        f"logged {snapshot.last_logged_hash}"
    )


class OutlineNode(BaseModel):
    """One entry of an outline tree."""

    id: str
    label: str
    value_preview: Optional[str] = None
    value_type: str = "unknown"
    children: list["OutlineNode"] = Field(default_factory=list)
    truncated: bool = False


def _value_type(value: Any) -> str:
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "boolean"
    if isinstance(value, (int, float)):
        return "number"
    if isinstance(value, str):
        return "string"
    if isinstance(value, list):
        return "array"
    if isinstance(value, dict):
        return "object"
    return "unknown"


def _preview(value: Any, limit: int = 80) -> Optional[str]:
    kind = _value_type(value)
    if kind == "array":
        return f"[{len(value)}]"
    if kind == "object":
        return f"{{{len(value)}}}"
    if kind == "null":
        text = "null"
    elif kind == "boolean":
        text = "true" if value else "false"
    else:
        text = str(value)
    text = " ".join(text.split())
    return text if len(text) <= limit else text[: limit - 1] + "…"


def _build_nodes(value: Any, path: list[str], budget: dict[str, int]) -> list[OutlineNode]:
    if isinstance(value, dict):
        items = [(str(k), v) for k, v in value.items()]
    elif isinstance(value, list):
        items = [(f"[{i}]", v) for i, v in enumerate(value)]
    else:
        return []

    nodes = []
    for label, child in items:
        if budget["remaining"] <= 0:
            budget["truncated"] = 1
            nodes.append(OutlineNode(
                id=".".join([*path, "…"]),
                label="…",
                value_preview="Outline truncated",
                truncated=True,
            ))
            break
        budget["remaining"] -= 1
        child_path = [*path, label]
        nodes.append(OutlineNode(
            id=".".join(child_path),
            label=label,
            value_preview=_preview(child),
            value_type=_value_type(child),
            children=_build_nodes(child, child_path, budget),
        ))
    return nodes


def build_outline(
    request: EditableChatRequest,
    sections: Iterable[str],
    max_entries: int = MAX_OUTLINE_ENTRIES,
) -> list[OutlineNode]:
    """
    Outline trees for the optional extra sections.

    Args:
        request: Request to describe
        sections: Any of ``request_options`` and ``raw_request``
        max_entries: Entry budget per tree; overflow becomes a truncation marker

    Returns:
        One root node per requested section, in the order requested
    """
    roots = []
    for section in sections:
        if section == "request_options":
            data: Any = dict(request.metadata.request_options)
        elif section == "raw_request":
            data = {
                "model": request.model,
                "surface": request.surface.value,
                "messages": dump_messages(request.messages),
                "requestOptions": dict(request.metadata.request_options),
                "requestId": request.metadata.request_id,
            }
        else:
            continue
        budget = {"remaining": max_entries, "truncated": 0}
        roots.append(OutlineNode(
            id=section,
            label=OUTLINE_SECTION_LABELS[section],
            value_type="object",
            children=_build_nodes(data, [section], budget),
            truncated=bool(budget["truncated"]),
        ))
    return roots
