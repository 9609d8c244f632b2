"""Interception mode state, turn decisions and pending turns."""

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Union

from liveprompt.models.override import OverrideSet
from liveprompt.models.request import EditableChatRequest


class InterceptionMode(str, Enum):
    """Mode an operator can select."""

    OFF = "off"
    REVIEW = "review"
    AUTO = "auto"


class ModeState(str, Enum):
    """Persistent interception state of one key."""

    OFF = "off"
    REVIEW_ALWAYS = "review_always"
    AUTO_CAPTURING = "auto_capturing"
    AUTO_APPLYING = "auto_applying"


@dataclass(frozen=True)
class OneShotReview:
    """Transient overlay: review the next turn, then restore ``prior``."""

    prior: ModeState

    @property
    def value(self) -> str:
        return f"one_shot_review({self.prior.value})"


Mode = Union[ModeState, OneShotReview]


def persistent_mode(mode: Mode) -> ModeState:
    """Return the persistent state underneath a possible overlay."""
    if isinstance(mode, OneShotReview):
        return mode.prior
    return mode


class TurnOutcome(str, Enum):
    RESUME = "resume"
    CANCEL = "cancel"


@dataclass
class PendingTurn:
    """The turn of a key currently paused for operator review."""

    request: EditableChatRequest
    resolved: asyncio.Event = field(default_factory=asyncio.Event)
    outcome: Optional[TurnOutcome] = None

    @property
    def cancelled(self) -> bool:
        return self.outcome == TurnOutcome.CANCEL

    def resolve(self, outcome: TurnOutcome) -> None:
        self.outcome = outcome
        self.request.closed = True
        self.resolved.set()

    async def wait(self) -> TurnOutcome:
        """Suspend until the operator resumes or cancels this turn."""
        await self.resolved.wait()
        assert self.outcome is not None
        return self.outcome


@dataclass(frozen=True)
class SendImmediately:
    pass


@dataclass(frozen=True)
class PauseForReview:
    pending: PendingTurn


@dataclass(frozen=True)
class ApplyOverride:
    override: OverrideSet


Decision = Union[SendImmediately, PauseForReview, ApplyOverride]


@dataclass(frozen=True)
class TransitionResult:
    """Outcome of a mode command; ``ok`` is False for rejected commands."""

    ok: bool
    previous: Mode
    current: Mode
    reason: Optional[str] = None
