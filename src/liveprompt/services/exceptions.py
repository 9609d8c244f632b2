"""Custom exceptions for liveprompt services.

Recoverable conditions (unknown section, stale edit path, rejected mode
command) are reported to the caller as results or log entries. Only
``RequestClosedError`` signals a programming error and is meant to surface.
"""


class LivePromptError(Exception):
    """Base class for liveprompt errors."""


class SectionNotFoundError(LivePromptError, KeyError):
    """Raised when an edit references a section the request does not have.

    Attributes:
        section_id: The unknown section id
        request_id: Id of the request that was searched
    """

    def __init__(self, section_id: str, request_id: str):
        self.section_id = section_id
        self.request_id = request_id
        super().__init__(f"Section {section_id!r} not found in request {request_id}")

    def __str__(self) -> str:
        return self.args[0]


class StalePathError(LivePromptError):
    """Raised when a leaf edit path does not resolve against its base message.

    Attributes:
        path: The edit path (e.g. ``content[2]``)
        reason: Why the path did not resolve
    """

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Stale edit path {path}: {reason}")


class InvalidTransitionError(LivePromptError):
    """A mode command that is not valid from the current state.

    Never raised out of the mode controller; its message becomes the
    ``reason`` of a rejected ``TransitionResult``.
    """


class RequestClosedError(LivePromptError, RuntimeError):
    """Raised when a request is mutated after its pending turn was resolved.

    Attributes:
        request_id: Id of the closed request
    """

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(
            f"Request {request_id} was already sent or discarded and can no longer be edited"
        )
