"""Record of requests as they were actually sent.

This module plays the logging collaborator in-process: it writes a
human-readable record of every sent request and remembers the payload hash
it computed independently, so parity can be checked against it.
"""

import json
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Sequence, TextIO

from liveprompt.models.messages import ChatMessage, TextPart
from liveprompt.services.parity import compute_payload_hash


class RequestLogRecorder:
    """Logger for sent chat requests.

    Captures and formats every request handed to the transport, and answers
    ``fetch_logged_hash`` for the parity tracker.
    """

    def __init__(
        self,
        output: Optional[TextIO] = None,
        log_file: Optional[Path] = None,
        include_timestamps: bool = True,
        pretty_print: bool = True,
    ):
        """Initialize the recorder.

        Args:
            output: Output stream (default: stderr)
            log_file: Optional file path to write records to
            include_timestamps: Include timestamps in output
            pretty_print: Pretty-print JSON content
        """
        self.output = output or sys.stderr
        self.log_file = log_file
        self.include_timestamps = include_timestamps
        self.pretty_print = pretty_print
        self._request_count = 0
        self._hashes: Dict[str, int] = {}

        self._file_handle: Optional[TextIO] = None
        if log_file:
            self._file_handle = open(log_file, "a", encoding="utf-8")

    def close(self) -> None:
        if self._file_handle:
            self._file_handle.close()
            self._file_handle = None

    def __del__(self):
        self.close()

    def log_request(
        self,
        request_id: str,
        messages: Sequence[ChatMessage],
        model: str,
        request_options: Optional[Dict[str, Any]] = None,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> int:
        """Record a request as sent.

        Args:
            request_id: Id the request is logged under
            messages: Messages handed to the transport
            model: Model name
            request_options: Sampling options sent with the messages
            metadata: Optional extra context (e.g. surface, debug name)

        Returns:
            Payload hash recorded for this request
        """
        self._request_count += 1
        payload_hash = compute_payload_hash(messages, request_options)
        self._hashes[request_id] = payload_hash
        indent = 2 if self.pretty_print else None

        output = []
        output.append("=" * 80)
        output.append(f"[{self._request_count}] REQUEST SENT - {request_id}")

        if self.include_timestamps:
            output.append(f"Timestamp: {datetime.now().isoformat()}")

        output.append(f"Model: {model}")
        output.append(f"Payload hash: {payload_hash}")

        if request_options:
            output.append(f"Options: {json.dumps(request_options, indent=indent, sort_keys=True)}")

        if metadata:
            output.append(f"Metadata: {json.dumps(metadata, indent=indent)}")

        output.append("")
        output.append("Messages:")
        output.append("-" * 80)

        for i, message in enumerate(messages, 1):
            output.append(f"[Message {i}] Role: {message.role}")
            for part in message.content:
                if isinstance(part, TextPart):
                    output.append(part.text)
                else:
                    output.append(f"<{part.type}> {json.dumps(part.model_dump(mode='json'))}")
            for call in getattr(message, "tool_calls", None) or []:
                output.append(f"<tool_call {call.id}> {call.function.name}({call.function.arguments})")
            output.append("-" * 80)

        output.append("")

        self._write("\n".join(output))
        return payload_hash

    def get_logged_hash(self, request_id: str) -> Optional[int]:
        return self._hashes.get(request_id)

    async def fetch_logged_hash(self, request_id: str) -> Optional[int]:
        """Return the hash recorded for ``request_id``, if any."""
        return self.get_logged_hash(request_id)

    def _write(self, text: str) -> None:
        """Write text to the log file if set, otherwise to the output stream."""
        if self._file_handle:
            self._file_handle.write(text + "\n")
            self._file_handle.flush()
        else:
            self.output.write(text + "\n")
            self.output.flush()

    def log_summary(self) -> None:
        """Log summary of all recorded requests."""
        output = []
        output.append("=" * 80)
        output.append("REQUEST LOG SUMMARY")
        output.append(f"Total requests: {self._request_count}")

        if self.include_timestamps:
            output.append(f"Session ended: {datetime.now().isoformat()}")

        if self.log_file:
            output.append(f"Log file: {self.log_file}")

        output.append("=" * 80)

        self._write("\n".join(output))
