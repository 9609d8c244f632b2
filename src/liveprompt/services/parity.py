"""Parity between the payload we produced and what the request log recorded.

Parity is advisory: a mismatch is logged and surfaced with both hash values
but never blocks a send.
"""

import hashlib
import json
from typing import Any, Iterable, Optional, Protocol

import httpx
from pydantic import BaseModel

from liveprompt.models.messages import ChatMessage, dump_messages
from liveprompt.models.request import EditableChatRequest, ParityStatus
from liveprompt.utils.logging import get_logger


logger = get_logger(__name__)


def compute_payload_hash(
    messages: Iterable[ChatMessage],
    request_options: Optional[dict[str, Any]] = None,
) -> int:
    """
    Hash a payload as it would be serialized for the wire.

    The hash is the first 32 bits of the SHA-256 of the canonical JSON
    (sorted keys, compact separators) of the messages and request options.

    Args:
        messages: Messages to hash
        request_options: Sampling options sent alongside the messages

    Returns:
        Unsigned 32-bit hash value
    """
    payload = {
        "messages": dump_messages(messages),
        "requestOptions": request_options or {},
    }
    canonical = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    digest = hashlib.sha256(canonical.encode("utf-8")).hexdigest()
    return int(digest[:8], 16)


class LoggedHashSource(Protocol):
    """Anything that can report the hash the request log recorded."""

    async def fetch_logged_hash(self, request_id: str) -> Optional[int]:
        ...


class HttpLoggedHashSource:
    """
    Fetch logged payload hashes from a request log service over HTTP.

    Expects ``GET {base_url}/requests/{request_id}`` to return JSON with a
    ``payloadHash`` integer. Unknown requests (404) and transport failures
    yield ``None`` so parity stays ``unknown``.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        """
        Args:
            base_url: Root URL of the request log service
            timeout: Per-request timeout in seconds
            transport: Optional httpx transport (used by tests)
        """
        self.base_url = str(base_url).rstrip("/")
        self.timeout = httpx.Timeout(timeout)
        self._transport = transport

    async def fetch_logged_hash(self, request_id: str) -> Optional[int]:
        url = f"{self.base_url}/requests/{request_id}"
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.get(url)
                if response.status_code == 404:
                    logger.debug("logged_request_not_found", request_id=request_id, url=url)
                    return None
                response.raise_for_status()
                data = response.json()
        except (httpx.HTTPError, json.JSONDecodeError) as e:
            logger.error("logged_hash_fetch_failed", request_id=request_id, url=url, error=str(e))
            return None

        value = data.get("payloadHash") if isinstance(data, dict) else None
        if not isinstance(value, int):
            logger.warning("logged_hash_missing", request_id=request_id, url=url)
            return None
        return value


class ParityReport(BaseModel):
    """Parity result for one request, with both hashes for display."""

    request_id: str
    status: ParityStatus
    payload_hash: Optional[int] = None
    logged_hash: Optional[int] = None

    @property
    def warning(self) -> Optional[str]:
        if self.status != ParityStatus.MISMATCH:
            return None
        return (
            f"Sent payload hash {self.payload_hash} differs from "
            f"logged hash {self.logged_hash}"
        )


def resolve_parity(payload_hash: Optional[int], logged_hash: Optional[int]) -> ParityStatus:
    """Compare two hashes; missing values leave parity unknown."""
    if payload_hash is None or logged_hash is None:
        return ParityStatus.UNKNOWN
    if payload_hash == logged_hash:
        return ParityStatus.MATCH
    return ParityStatus.MISMATCH


class ParityTracker:
    """Record payload hashes at send time and reconcile them with the request log."""

    def __init__(self, source: Optional[LoggedHashSource] = None):
        self.source = source

    def record_sent(self, request: EditableChatRequest) -> int:
        """Hash the payload about to be sent and reset parity to unknown."""
        payload_hash = compute_payload_hash(request.messages, request.metadata.request_options)
        request.metadata.payload_hash = payload_hash
        request.metadata.last_logged_hash = None
        request.metadata.parity_status = ParityStatus.UNKNOWN
        return payload_hash

    def resolve(self, request: EditableChatRequest, logged_hash: Optional[int]) -> ParityReport:
        """Store the logged hash on the request metadata and compare."""
        metadata = request.metadata
        metadata.last_logged_hash = logged_hash
        metadata.parity_status = resolve_parity(metadata.payload_hash, logged_hash)

        report = ParityReport(
            request_id=metadata.request_id,
            status=metadata.parity_status,
            payload_hash=metadata.payload_hash,
            logged_hash=logged_hash,
        )
        if report.status == ParityStatus.MISMATCH:
            logger.warning(
                "request_parity_mismatch",
                request_id=metadata.request_id,
                payload_hash=metadata.payload_hash,
                logged_hash=logged_hash,
                is_dirty=request.is_dirty,
            )
        else:
            logger.debug(
                "request_parity_resolved",
                request_id=metadata.request_id,
                status=report.status.value,
            )
        return report

    async def reconcile(self, request: EditableChatRequest) -> ParityReport:
        """Fetch the logged hash for ``request`` and resolve parity."""
        logged_hash = None
        if self.source is not None:
            logged_hash = await self.source.fetch_logged_hash(request.metadata.request_id)
        return self.resolve(request, logged_hash)
