"""Interception service: the entry point used by the chat pipeline and the UI.

The pipeline calls ``intercept`` once per outgoing turn and sends whatever
comes back. The visual surface drives everything else through the command
methods (select a mode, edit sections, resume or cancel). State lives in an
arena keyed by ``InterceptionKey``; a turn paused on one key never blocks
another key.
"""

from dataclasses import dataclass, field
from typing import Any, Optional, Sequence

from liveprompt.editing import builder
from liveprompt.editing.recompose import recompute_messages
from liveprompt.models.config import InspectorSettings
from liveprompt.models.messages import ChatMessage, clone_messages
from liveprompt.models.mode import (
    ApplyOverride,
    InterceptionMode,
    Mode,
    PauseForReview,
    PendingTurn,
    TransitionResult,
    TurnOutcome,
)
from liveprompt.models.override import OverrideSet, SkippedOverride
from liveprompt.models.request import EditableChatRequest, InterceptionKey, MetadataSeed
from liveprompt.services.exceptions import SectionNotFoundError
from liveprompt.services.metadata import (
    MetadataSnapshot,
    OutlineNode,
    build_metadata_snapshot,
    build_outline,
    describe_fields,
)
from liveprompt.services.mode_controller import ModeController
from liveprompt.services.override_store import OverrideStore
from liveprompt.services.parity import (
    HttpLoggedHashSource,
    LoggedHashSource,
    ParityReport,
    ParityTracker,
)
from liveprompt.utils.logging import get_logger


logger = get_logger(__name__)


@dataclass
class TurnResult:
    """What the transport should send for one turn."""

    messages: list[ChatMessage]
    request_options: dict[str, Any]
    request: Optional[EditableChatRequest]
    decision: str
    skipped: list[SkippedOverride] = field(default_factory=list)


@dataclass
class CommandResult:
    """Outcome of an edit command issued by the visual surface."""

    ok: bool
    request: Optional[EditableChatRequest] = None
    error: Optional[str] = None


class InterceptionService:
    """Per-key interception, editing and parity for outgoing chat requests."""

    def __init__(
        self,
        settings: Optional[InspectorSettings] = None,
        override_store: Optional[OverrideStore] = None,
        hash_source: Optional[LoggedHashSource] = None,
    ):
        """
        Args:
            settings: Inspector settings (defaults apply if None)
            override_store: Override storage; built from settings if None
            hash_source: Where logged hashes come from; an HTTP source is
                created from ``settings.parity_endpoint`` if None
        """
        self.settings = settings or InspectorSettings()
        self._enabled = self.settings.enabled
        self.override_store = override_store or OverrideStore(self.settings.override_store_path)
        self.controller = ModeController(self.override_store, self.settings.override_scope)
        if hash_source is None and self.settings.parity_endpoint is not None:
            hash_source = HttpLoggedHashSource(str(self.settings.parity_endpoint))
        self.parity = ParityTracker(hash_source)
        self._requests: dict[InterceptionKey, EditableChatRequest] = {}

    # -- enablement -------------------------------------------------------

    def is_enabled(self) -> bool:
        return self._enabled

    def set_enabled(self, enabled: bool) -> None:
        """Turn the feature on or off. Turning it off clears every key."""
        if enabled == self._enabled:
            return
        self._enabled = enabled
        if not enabled:
            self.controller.disable()
            self._requests.clear()
        logger.info("interception_enabled_changed", enabled=enabled)

    # -- turn lifecycle ---------------------------------------------------

    def prepare_request(
        self,
        key: InterceptionKey,
        rendered_messages: Sequence[ChatMessage],
        seed: MetadataSeed,
    ) -> EditableChatRequest:
        """Build a fresh editable request for ``key`` and make it current."""
        request = builder.build_editable_chat_request(
            key.conversation_id,
            key.surface,
            rendered_messages,
            seed,
        )
        self._requests[key] = request
        return request

    async def intercept(
        self,
        key: InterceptionKey,
        rendered_messages: Sequence[ChatMessage],
        seed: MetadataSeed,
    ) -> Optional[TurnResult]:
        """
        Run one outgoing turn through interception.

        Depending on the key's mode the turn is sent unchanged, edited with
        the stored override, or paused until the operator resumes or cancels
        it.

        Args:
            key: Conversation and surface of the turn
            rendered_messages: Messages produced by the renderer
            seed: Model, token accounting and request options

        Returns:
            The payload to send, or None if the operator cancelled the turn
        """
        if not self._enabled:
            return TurnResult(
                messages=clone_messages(rendered_messages),
                request_options=dict(seed.request_options),
                request=None,
                decision="disabled",
            )

        request = self.prepare_request(key, rendered_messages, seed)
        decision = self.controller.on_turn_start(key, request)

        if isinstance(decision, ApplyOverride):
            skipped = self._apply_override(key, request, decision.override)
            return self._finish(request, "override", skipped)

        if isinstance(decision, PauseForReview):
            outcome = await decision.pending.wait()
            if outcome == TurnOutcome.CANCEL:
                if self._requests.get(key) is request:
                    del self._requests[key]
                logger.info("turn_cancelled", key=str(key), request_id=request.metadata.request_id)
                return None
            recompute_messages(request)
            return self._finish(request, "reviewed")

        return self._finish(request, "sent")

    def _apply_override(
        self,
        key: InterceptionKey,
        request: EditableChatRequest,
        override: OverrideSet,
    ) -> list[SkippedOverride]:
        application = self.override_store.apply_override(
            key,
            request.sections,
            request.original_messages,
        )
        request.sections = application.sections
        request.metadata.version += 1
        recompute_messages(request)

        validation = builder.validate_for_send(request)
        if not validation.valid:
            # Nothing sendable left: fall back to the rendered messages
            logger.warning(
                "override_result_unsendable",
                key=str(key),
                override=override.name,
                code=validation.code,
            )
            request.sections = builder.create_sections_from_messages(request.original_messages)
            recompute_messages(request)
        return application.skipped

    def _finish(
        self,
        request: EditableChatRequest,
        decision: str,
        skipped: Optional[list[SkippedOverride]] = None,
    ) -> TurnResult:
        request.closed = True
        self.parity.record_sent(request)
        logger.info(
            "turn_sent",
            key=str(request.key),
            request_id=request.metadata.request_id,
            decision=decision,
            is_dirty=request.is_dirty,
            payload_hash=request.metadata.payload_hash,
        )
        return TurnResult(
            messages=clone_messages(request.messages),
            request_options=dict(request.metadata.request_options),
            request=request,
            decision=decision,
            skipped=list(skipped or []),
        )

    async def reconcile_parity(self, key: InterceptionKey) -> Optional[ParityReport]:
        """Compare the last sent payload of ``key`` with the request log."""
        request = self._requests.get(key)
        if request is None or request.metadata.payload_hash is None:
            return None
        return await self.parity.reconcile(request)

    # -- mode commands ----------------------------------------------------

    def select_mode(self, key: InterceptionKey, mode: InterceptionMode) -> TransitionResult:
        return self.controller.select(key, mode)

    def request_one_shot_review(self, key: InterceptionKey) -> TransitionResult:
        return self.controller.request_one_shot_review(key)

    def begin_capture(self, key: InterceptionKey) -> TransitionResult:
        return self.controller.begin_capture(key)

    def clear_override(self, key: InterceptionKey) -> TransitionResult:
        return self.controller.clear_override(key)

    def resume(self, key: InterceptionKey) -> TransitionResult:
        """
        Send the paused turn of ``key`` with the operator's edits.

        Refused (``ok=False``) while the edited payload is not sendable.
        """
        pending = self.controller.get_pending(key)
        if pending is not None:
            recompute_messages(pending.request)
            validation = builder.validate_for_send(pending.request)
            if not validation.valid:
                mode = self.controller.get_mode(key)
                logger.info("resume_refused", key=str(key), code=validation.code)
                return TransitionResult(ok=False, previous=mode, current=mode, reason=validation.error)
        return self.controller.on_turn_resolved(key, TurnOutcome.RESUME)

    def cancel(self, key: InterceptionKey) -> TransitionResult:
        """Discard the paused turn of ``key``; stored overrides are kept."""
        return self.controller.on_turn_resolved(key, TurnOutcome.CANCEL)

    # -- edit commands ----------------------------------------------------

    def _edit(self, key: InterceptionKey, operation, *args) -> CommandResult:
        request = self._requests.get(key)
        if not self._enabled or request is None:
            return CommandResult(ok=False, error="no request to edit")
        try:
            operation(request, *args)
        except SectionNotFoundError as e:
            logger.warning("edit_rejected", key=str(key), section_id=e.section_id)
            return CommandResult(ok=False, request=request, error=str(e))
        return CommandResult(ok=True, request=request)

    def edit_section(self, key: InterceptionKey, section_id: str, content: str) -> CommandResult:
        return self._edit(key, builder.update_section_content, section_id, content)

    def edit_part(self, key: InterceptionKey, section_id: str, part_index: int, text: str) -> CommandResult:
        return self._edit(key, builder.update_section_part, section_id, part_index, text)

    def edit_tool_arguments(
        self,
        key: InterceptionKey,
        section_id: str,
        tool_call_index: int,
        arguments: str,
    ) -> CommandResult:
        return self._edit(key, builder.update_tool_call_arguments, section_id, tool_call_index, arguments)

    def delete_section(self, key: InterceptionKey, section_id: str) -> CommandResult:
        return self._edit(key, builder.delete_section, section_id)

    def restore_section(self, key: InterceptionKey, section_id: str) -> CommandResult:
        return self._edit(key, builder.restore_section, section_id)

    def reset_section(self, key: InterceptionKey, section_id: str) -> CommandResult:
        return self._edit(key, builder.reset_section, section_id)

    def reset_request(self, key: InterceptionKey) -> CommandResult:
        return self._edit(key, builder.reset_request)

    # -- reads ------------------------------------------------------------

    def get_request(self, key: InterceptionKey) -> Optional[EditableChatRequest]:
        return self._requests.get(key)

    def all_requests(self) -> list[EditableChatRequest]:
        return list(self._requests.values())

    def get_mode(self, key: InterceptionKey) -> Mode:
        return self.controller.get_mode(key)

    def get_pending(self, key: InterceptionKey) -> Optional[PendingTurn]:
        return self.controller.get_pending(key)

    def get_override(self, key: InterceptionKey) -> Optional[OverrideSet]:
        return self.override_store.get_override(key)

    def get_metadata_snapshot(self, key: InterceptionKey) -> Optional[MetadataSnapshot]:
        request = self._requests.get(key)
        if request is None:
            return None
        return build_metadata_snapshot(request, self.get_pending(key), self.get_mode(key))

    def describe_metadata(self, key: InterceptionKey) -> list[tuple[str, str]]:
        """Metadata rows for the fields enabled in settings."""
        snapshot = self.get_metadata_snapshot(key)
        if snapshot is None:
            return []
        return describe_fields(snapshot, self.settings.metadata_fields)

    def get_outline(self, key: InterceptionKey) -> list[OutlineNode]:
        """Outline trees for the extra sections enabled in settings."""
        request = self._requests.get(key)
        if request is None:
            return []
        return build_outline(request, self.settings.extra_sections)

    def override_preview(self, key: InterceptionKey) -> list[str]:
        override = self.override_store.get_override(key)
        if override is None:
            return []
        return override.preview(self.settings.override_preview_limit)
