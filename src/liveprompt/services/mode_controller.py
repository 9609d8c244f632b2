"""Interception mode state machine.

Each interception key owns an independent ``ModeSlice``: its mode, whether
the next reviewed turn is captured as an override, and the turn currently
paused for review. Keys never share mutable state.

Transitions on ``select``:

    off            -> review   : review_always (stale pending discarded)
    off            -> auto     : auto_applying if an override exists,
                                 else auto_capturing (capture armed)
    review_always  -> off      : off (pending cancelled)
    review_always  -> auto     : as from off, pending kept
    auto_capturing -> off      : off (pending cancelled)
    auto_capturing -> review   : review_always (capture disarmed, pending kept)
    auto_applying  -> off      : off
    auto_applying  -> review   : review_always

Turn resolution is the only place an override is captured: resuming a turn
reviewed in auto_capturing stores its edits and moves to auto_applying.
"""

from dataclasses import dataclass
from typing import Optional

from liveprompt.models.mode import (
    ApplyOverride,
    Decision,
    InterceptionMode,
    Mode,
    ModeState,
    OneShotReview,
    PauseForReview,
    PendingTurn,
    SendImmediately,
    TransitionResult,
    TurnOutcome,
    persistent_mode,
)
from liveprompt.models.override import OverrideScope
from liveprompt.models.request import EditableChatRequest, InterceptionKey
from liveprompt.services.exceptions import InvalidTransitionError
from liveprompt.services.override_store import OverrideStore
from liveprompt.utils.logging import get_logger


logger = get_logger(__name__)


@dataclass
class ModeSlice:
    """Interception state of one key."""

    mode: Mode = ModeState.OFF
    capture_armed: bool = False
    pending: Optional[PendingTurn] = None


class ModeController:
    """Decides, per key, whether a turn is sent, paused or auto-edited."""

    def __init__(
        self,
        override_store: OverrideStore,
        capture_scope: OverrideScope = OverrideScope.SESSION,
    ):
        self.override_store = override_store
        self.capture_scope = capture_scope
        self._slices: dict[InterceptionKey, ModeSlice] = {}

    def _slice(self, key: InterceptionKey) -> ModeSlice:
        state = self._slices.get(key)
        if state is None:
            state = self._slices[key] = ModeSlice()
        return state

    def get_mode(self, key: InterceptionKey) -> Mode:
        return self._slice(key).mode

    def get_pending(self, key: InterceptionKey) -> Optional[PendingTurn]:
        return self._slice(key).pending

    def is_capture_armed(self, key: InterceptionKey) -> bool:
        return self._slice(key).capture_armed

    def keys(self) -> list[InterceptionKey]:
        return list(self._slices)

    def _result(
        self,
        key: InterceptionKey,
        command: str,
        previous: Mode,
        error: Optional[InvalidTransitionError] = None,
    ) -> TransitionResult:
        current = self._slice(key).mode
        if error is not None:
            logger.info(
                "mode_transition_rejected",
                key=str(key),
                command=command,
                mode=previous.value,
                reason=str(error),
            )
            return TransitionResult(ok=False, previous=previous, current=current, reason=str(error))
        if current != previous:
            logger.info(
                "mode_transition",
                key=str(key),
                command=command,
                previous=previous.value,
                current=current.value,
            )
        return TransitionResult(ok=True, previous=previous, current=current)

    def _discard_pending(self, key: InterceptionKey, state: ModeSlice, reason: str) -> None:
        pending = state.pending
        if pending is None:
            return
        state.pending = None
        pending.resolve(TurnOutcome.CANCEL)
        logger.info(
            "pending_turn_discarded",
            key=str(key),
            request_id=pending.request.metadata.request_id,
            reason=reason,
        )

    def _enter_auto(self, key: InterceptionKey, state: ModeSlice) -> ModeState:
        if self.override_store.has_override(key):
            state.capture_armed = False
            return ModeState.AUTO_APPLYING
        state.capture_armed = True
        return ModeState.AUTO_CAPTURING

    def _next_persistent(
        self,
        key: InterceptionKey,
        state: ModeSlice,
        current: ModeState,
        requested: InterceptionMode,
        manage_pending: bool,
    ) -> ModeState:
        if requested == InterceptionMode.OFF:
            if current != ModeState.OFF:
                state.capture_armed = False
                self._discard_pending(key, state, "mode_off")
            return ModeState.OFF

        if requested == InterceptionMode.REVIEW:
            if current == ModeState.OFF and manage_pending:
                self._discard_pending(key, state, "mode_review")
            state.capture_armed = False
            return ModeState.REVIEW_ALWAYS

        if current in (ModeState.AUTO_CAPTURING, ModeState.AUTO_APPLYING):
            return current
        return self._enter_auto(key, state)

    def select(self, key: InterceptionKey, requested: InterceptionMode) -> TransitionResult:
        """
        Switch a key to the mode the operator selected.

        While a one-shot review is active, the selection rewrites the mode
        restored afterwards; selecting ``off`` drops the overlay as well.
        """
        state = self._slice(key)
        previous = state.mode

        if isinstance(previous, OneShotReview):
            if requested == InterceptionMode.OFF:
                state.mode = self._next_persistent(key, state, previous.prior, requested, True)
                self._discard_pending(key, state, "mode_off")
            else:
                prior = self._next_persistent(key, state, previous.prior, requested, False)
                state.mode = OneShotReview(prior=prior)
        else:
            state.mode = self._next_persistent(key, state, previous, requested, True)

        return self._result(key, f"select:{requested.value}", previous)

    def request_one_shot_review(self, key: InterceptionKey) -> TransitionResult:
        """Review the next turn of ``key`` regardless of mode, then restore it."""
        state = self._slice(key)
        previous = state.mode
        if isinstance(previous, OneShotReview):
            return self._result(
                key, "one_shot_review", previous,
                InvalidTransitionError("one-shot review already requested"),
            )
        state.mode = OneShotReview(prior=previous)
        return self._result(key, "one_shot_review", previous)

    def on_turn_start(self, key: InterceptionKey, request: EditableChatRequest) -> Decision:
        """
        Decide what happens to a new outgoing turn.

        A turn still pending for the same key is superseded and cancelled.
        ``PauseForReview`` registers ``request`` as the key's pending turn.
        """
        state = self._slice(key)
        self._discard_pending(key, state, "superseded")
        mode = state.mode

        if mode == ModeState.OFF:
            return SendImmediately()

        if mode == ModeState.AUTO_APPLYING:
            override = self.override_store.get_override(key)
            if override is not None:
                logger.info("turn_auto_applying", key=str(key), override=override.name)
                return ApplyOverride(override=override)
            # Override removed underneath us: capture a new one
            previous = state.mode
            state.mode = ModeState.AUTO_CAPTURING
            state.capture_armed = True
            self._result(key, "override_missing", previous)

        state.pending = PendingTurn(request=request)
        logger.info(
            "turn_paused",
            key=str(key),
            request_id=request.metadata.request_id,
            mode=state.mode.value,
        )
        return PauseForReview(pending=state.pending)

    def on_turn_resolved(self, key: InterceptionKey, outcome: TurnOutcome) -> TransitionResult:
        """
        Resolve the key's pending turn with the operator's decision.

        Resuming a turn reviewed while capturing stores its edits as the
        key's override set. Cancelling never touches stored overrides.
        """
        state = self._slice(key)
        previous = state.mode
        pending = state.pending
        if pending is None:
            return self._result(
                key, f"resolve:{outcome.value}", previous,
                InvalidTransitionError("no pending turn to resolve"),
            )

        state.pending = None
        if isinstance(previous, OneShotReview):
            state.mode = previous.prior
        elif (
            previous == ModeState.AUTO_CAPTURING
            and outcome == TurnOutcome.RESUME
            and state.capture_armed
        ):
            self.override_store.capture_override(key, self.capture_scope, pending.request.sections)
            state.capture_armed = False
            state.mode = ModeState.AUTO_APPLYING

        pending.resolve(outcome)
        logger.info(
            "turn_resolved",
            key=str(key),
            request_id=pending.request.metadata.request_id,
            outcome=outcome.value,
        )
        return self._result(key, f"resolve:{outcome.value}", previous)

    def begin_capture(self, key: InterceptionKey) -> TransitionResult:
        """Re-arm capture so the next reviewed turn replaces the override."""
        state = self._slice(key)
        previous = state.mode
        current = persistent_mode(previous)

        if current not in (ModeState.AUTO_APPLYING, ModeState.AUTO_CAPTURING):
            return self._result(
                key, "begin_capture", previous,
                InvalidTransitionError(f"cannot capture overrides in {current.value} mode"),
            )
        state.capture_armed = True
        self._set_persistent(state, ModeState.AUTO_CAPTURING)
        return self._result(key, "begin_capture", previous)

    def clear_override(self, key: InterceptionKey) -> TransitionResult:
        """Remove the key's override; auto mode goes back to capturing."""
        state = self._slice(key)
        previous = state.mode
        self.override_store.clear_override(key)
        if persistent_mode(previous) == ModeState.AUTO_APPLYING:
            state.capture_armed = True
            self._set_persistent(state, ModeState.AUTO_CAPTURING)
        return self._result(key, "clear_override", previous)

    def _set_persistent(self, state: ModeSlice, mode: ModeState) -> None:
        if isinstance(state.mode, OneShotReview):
            state.mode = OneShotReview(prior=mode)
        else:
            state.mode = mode

    def disable(self) -> None:
        """Hard reset of every key: pending turns are cancelled and all override sets dropped."""
        for key, state in self._slices.items():
            self._discard_pending(key, state, "disabled")
        self._slices.clear()
        self.override_store.clear_all()
        logger.info("interception_disabled")
