"""Identifier generation for liveprompt."""

import uuid
from typing import Optional


# Fixed namespace so section ids are reproducible across runs
LIVEPROMPT_NAMESPACE = uuid.UUID("6f1c2a0e-9d4b-4c5e-8a7f-3b2d1e0c9f84")


def section_id(index: int, kind: str, namespace: Optional[uuid.UUID] = None) -> str:
    """
    Derive a deterministic section id from its position and kind.

    The same message list always yields the same ids, so sections built
    twice from one rendered prompt are structurally identical.

    Example:
        >>> section_id(0, "system") == section_id(0, "system")
        True
    """
    if namespace is None:
        namespace = LIVEPROMPT_NAMESPACE
    return str(uuid.uuid5(namespace, f"section:{index}:{kind}"))


def generate_request_id() -> str:
    """Generate a random request id for requests the renderer did not label."""
    return str(uuid.uuid4())
