"""Integration tests for the interception service end to end."""

import asyncio
from io import StringIO

import pytest

from liveprompt.models.config import InspectorSettings
from liveprompt.models.mode import InterceptionMode, ModeState, OneShotReview
from liveprompt.models.override import OverrideScope
from liveprompt.models.request import ChatSurface, InterceptionKey, MetadataSeed, ParityStatus
from liveprompt.services.interception import InterceptionService
from liveprompt.services.override_store import OverrideStore
from liveprompt.services.request_log import RequestLogRecorder


@pytest.fixture
def recorder():
    return RequestLogRecorder(output=StringIO(), include_timestamps=False)


@pytest.fixture
def service(recorder):
    return InterceptionService(hash_source=recorder)


def turn_seed(n: int) -> MetadataSeed:
    return MetadataSeed(model="gpt-test", request_id=f"req-{n}", request_options={"temperature": 0})


async def wait_for_pending(service, key):
    """Yield to the event loop until the key has a paused turn."""
    for _ in range(100):
        pending = service.get_pending(key)
        if pending is not None:
            return pending
        await asyncio.sleep(0)
    raise AssertionError(f"no pending turn for {key}")


class TestInterceptionFlow:
    """Test turns flowing through each mode."""

    @pytest.mark.asyncio
    async def test_off_sends_unchanged(self, service, key, make_turn):
        rendered = make_turn(3)

        result = await service.intercept(key, rendered, turn_seed(1))

        assert result.decision == "sent"
        assert result.messages == rendered
        assert result.request.is_dirty is False
        assert result.request_options == {"temperature": 0}

    @pytest.mark.asyncio
    async def test_review_edit_and_resume(self, service, key, make_turn):
        service.select_mode(key, InterceptionMode.REVIEW)
        task = asyncio.create_task(service.intercept(key, make_turn(3), turn_seed(1)))

        pending = await wait_for_pending(service, key)
        section = pending.request.sections[1]
        assert service.edit_section(key, section.id, "edited").ok is True
        assert service.resume(key).ok is True
        result = await task

        assert result.decision == "reviewed"
        assert result.messages[1].content[0].text == "edited"
        assert result.request.is_dirty is True
        assert service.get_mode(key) == ModeState.REVIEW_ALWAYS

    @pytest.mark.asyncio
    async def test_cancel_returns_none(self, service, key, make_turn):
        service.select_mode(key, InterceptionMode.REVIEW)
        task = asyncio.create_task(service.intercept(key, make_turn(3), turn_seed(1)))

        await wait_for_pending(service, key)
        assert service.cancel(key).ok is True

        assert await task is None
        assert service.get_request(key) is None

    @pytest.mark.asyncio
    async def test_resume_refused_when_everything_deleted(self, service, key, make_turn):
        service.select_mode(key, InterceptionMode.REVIEW)
        task = asyncio.create_task(service.intercept(key, make_turn(2), turn_seed(1)))

        pending = await wait_for_pending(service, key)
        for section in pending.request.sections:
            service.delete_section(key, section.id)
        refused = service.resume(key)

        assert refused.ok is False
        assert "empty request" in refused.reason
        assert service.get_pending(key) is pending

        service.restore_section(key, pending.request.sections[0].id)
        assert service.resume(key).ok is True
        result = await task
        assert len(result.messages) == 1

    @pytest.mark.asyncio
    async def test_unknown_section_edit_rejected(self, service, key, make_turn):
        service.select_mode(key, InterceptionMode.REVIEW)
        task = asyncio.create_task(service.intercept(key, make_turn(2), turn_seed(1)))

        await wait_for_pending(service, key)
        result = service.edit_section(key, "missing", "x")

        assert result.ok is False
        assert "missing" in result.error
        service.cancel(key)
        await task

    @pytest.mark.asyncio
    async def test_superseded_turn_is_cancelled(self, service, key, make_turn):
        service.select_mode(key, InterceptionMode.REVIEW)
        first = asyncio.create_task(service.intercept(key, make_turn(2), turn_seed(1)))
        first_pending = await wait_for_pending(service, key)

        second = asyncio.create_task(service.intercept(key, make_turn(3), turn_seed(2)))
        for _ in range(100):
            if service.get_pending(key) is not first_pending:
                break
            await asyncio.sleep(0)

        assert await first is None
        service.resume(key)
        result = await second
        assert result.request.metadata.request_id == "req-2"


class TestAutoMode:
    """Test capturing and replaying overrides."""

    @pytest.mark.asyncio
    async def test_capture_then_apply_to_growing_history(self, service, key, make_turn):
        """Test edits reviewed on a 3-message turn replay onto a 4-message turn."""
        service.select_mode(key, InterceptionMode.AUTO)
        assert service.get_mode(key) == ModeState.AUTO_CAPTURING

        task = asyncio.create_task(service.intercept(key, make_turn(3), turn_seed(1)))
        pending = await wait_for_pending(service, key)
        service.edit_section(key, pending.request.sections[0].id, "shorter system prompt")
        service.delete_section(key, pending.request.sections[1].id)
        service.resume(key)
        await task

        assert service.get_mode(key) == ModeState.AUTO_APPLYING
        assert service.override_preview(key) == [
            "#0 system: shorter system prompt",
            "#1 user: (deleted)",
        ]

        result = await service.intercept(key, make_turn(4), turn_seed(2))

        assert result.decision == "override"
        assert result.skipped == []
        assert result.request.is_dirty is True
        assert [m.content[0].text for m in result.messages] == [
            "shorter system prompt",
            "user message 2",
            "user message 3",
        ]
        assert service.get_pending(key) is None

    @pytest.mark.asyncio
    async def test_cancel_during_capture_keeps_capturing(self, service, key, make_turn):
        service.select_mode(key, InterceptionMode.AUTO)
        task = asyncio.create_task(service.intercept(key, make_turn(3), turn_seed(1)))

        pending = await wait_for_pending(service, key)
        service.edit_section(key, pending.request.sections[1].id, "edited")
        service.cancel(key)

        assert await task is None
        assert service.get_mode(key) == ModeState.AUTO_CAPTURING
        assert service.get_override(key) is None

    @pytest.mark.asyncio
    async def test_cancel_preserves_existing_override(self, service, key, make_turn):
        service.select_mode(key, InterceptionMode.AUTO)
        task = asyncio.create_task(service.intercept(key, make_turn(3), turn_seed(1)))
        pending = await wait_for_pending(service, key)
        service.edit_section(key, pending.request.sections[1].id, "edited")
        service.resume(key)
        await task
        stored = service.get_override(key)

        service.request_one_shot_review(key)
        task = asyncio.create_task(service.intercept(key, make_turn(3), turn_seed(2)))
        await wait_for_pending(service, key)
        service.cancel(key)

        assert await task is None
        assert service.get_override(key) is stored
        assert service.get_mode(key) == ModeState.AUTO_APPLYING

    @pytest.mark.asyncio
    async def test_unsendable_override_falls_back(self, service, key, make_turn):
        """Test an override deleting every message sends the rendered turn instead."""
        request = service.prepare_request(key, make_turn(2), turn_seed(1))
        for section in request.sections:
            service.delete_section(key, section.id)
        service.override_store.capture_override(key, OverrideScope.SESSION, request.sections)
        service.select_mode(key, InterceptionMode.AUTO)
        assert service.get_mode(key) == ModeState.AUTO_APPLYING

        rendered = make_turn(2)
        result = await service.intercept(key, rendered, turn_seed(2))

        assert result.decision == "override"
        assert result.messages == rendered

    @pytest.mark.asyncio
    async def test_clear_override_recaptures(self, service, key, make_turn):
        service.select_mode(key, InterceptionMode.AUTO)
        task = asyncio.create_task(service.intercept(key, make_turn(2), turn_seed(1)))
        pending = await wait_for_pending(service, key)
        service.edit_section(key, pending.request.sections[1].id, "edited")
        service.resume(key)
        await task

        result = service.clear_override(key)

        assert result.ok is True
        assert service.get_mode(key) == ModeState.AUTO_CAPTURING
        assert service.get_override(key) is None


class TestKeysAndEnablement:
    """Test key isolation and the master switch."""

    @pytest.mark.asyncio
    async def test_paused_key_does_not_block_other_keys(self, service, key, make_turn):
        other = InterceptionKey(conversation_id=key.conversation_id, surface=ChatSurface.INLINE)
        service.select_mode(key, InterceptionMode.REVIEW)
        task = asyncio.create_task(service.intercept(key, make_turn(2), turn_seed(1)))
        await wait_for_pending(service, key)

        result = await service.intercept(other, make_turn(2), turn_seed(2))

        assert result.decision == "sent"
        assert service.get_pending(key) is not None
        service.cancel(key)
        await task

    @pytest.mark.asyncio
    async def test_disable_cancels_and_resets(self, service, key, make_turn):
        service.select_mode(key, InterceptionMode.REVIEW)
        task = asyncio.create_task(service.intercept(key, make_turn(2), turn_seed(1)))
        await wait_for_pending(service, key)

        service.set_enabled(False)

        assert await task is None
        assert service.is_enabled() is False
        assert service.all_requests() == []
        rendered = make_turn(2)
        result = await service.intercept(key, rendered, turn_seed(2))
        assert result.decision == "disabled"
        assert result.request is None
        assert result.messages == rendered

        service.set_enabled(True)
        assert service.get_mode(key) == ModeState.OFF

    def test_disabled_by_settings(self):
        service = InterceptionService(InspectorSettings(enabled=False))

        assert service.is_enabled() is False

    def test_edit_without_request(self, service, key):
        result = service.edit_section(key, "any", "x")

        assert result.ok is False
        assert result.error == "no request to edit"


class TestOneShotReviewFlow:
    """Test the one-shot review overlay through the service."""

    @pytest.mark.asyncio
    async def test_one_shot_review_restores_off(self, service, key, make_turn):
        service.request_one_shot_review(key)
        assert service.get_mode(key) == OneShotReview(prior=ModeState.OFF)

        task = asyncio.create_task(service.intercept(key, make_turn(2), turn_seed(1)))
        await wait_for_pending(service, key)
        service.resume(key)
        result = await task

        assert result.decision == "reviewed"
        assert service.get_mode(key) == ModeState.OFF
        follow_up = await service.intercept(key, make_turn(2), turn_seed(2))
        assert follow_up.decision == "sent"


class TestParityAndMetadata:
    """Test parity reconciliation and the metadata surface."""

    @pytest.mark.asyncio
    async def test_parity_match_with_request_log(self, service, recorder, key, make_turn):
        service.select_mode(key, InterceptionMode.REVIEW)
        task = asyncio.create_task(service.intercept(key, make_turn(3), turn_seed(1)))
        pending = await wait_for_pending(service, key)
        service.edit_section(key, pending.request.sections[2].id, "edited")
        service.resume(key)
        result = await task

        recorder.log_request("req-1", result.messages, "gpt-test", result.request_options)
        report = await service.reconcile_parity(key)

        assert report.status == ParityStatus.MATCH
        assert result.request.metadata.parity_status == ParityStatus.MATCH

    @pytest.mark.asyncio
    async def test_parity_mismatch_when_transport_changes_payload(
        self, service, recorder, key, make_turn
    ):
        result = await service.intercept(key, make_turn(3), turn_seed(1))

        recorder.log_request("req-1", result.messages[:2], "gpt-test", result.request_options)
        report = await service.reconcile_parity(key)

        assert report.status == ParityStatus.MISMATCH
        assert str(result.request.metadata.payload_hash) in report.warning

    @pytest.mark.asyncio
    async def test_parity_unknown_when_not_logged(self, service, key, make_turn):
        await service.intercept(key, make_turn(2), turn_seed(1))

        report = await service.reconcile_parity(key)

        assert report.status == ParityStatus.UNKNOWN

    @pytest.mark.asyncio
    async def test_reconcile_without_request(self, service, key):
        assert await service.reconcile_parity(key) is None

    @pytest.mark.asyncio
    async def test_metadata_while_pending(self, key, make_turn):
        settings = InspectorSettings(
            metadata_fields=["conversation", "interception", "dirty"],
            extra_sections=["request_options"],
        )
        service = InterceptionService(settings)
        service.select_mode(key, InterceptionMode.REVIEW)
        task = asyncio.create_task(service.intercept(key, make_turn(2), turn_seed(1)))
        await wait_for_pending(service, key)

        assert service.describe_metadata(key) == [
            ("Conversation", "conv-1"),
            ("Interception", "Pending"),
            ("Dirty", "Clean"),
        ]
        outline = service.get_outline(key)
        assert outline[0].children[0].label == "temperature"

        service.resume(key)
        await task
        assert service.get_metadata_snapshot(key).interception_state == "idle"


@pytest.mark.asyncio
async def test_workspace_overrides_survive_restart(tmp_path, key, make_turn):
    """Test a workspace capture is replayed by a new service instance."""
    settings = InspectorSettings(
        override_scope=OverrideScope.WORKSPACE,
        override_store_path=tmp_path / "overrides.json",
    )
    service = InterceptionService(settings)
    service.select_mode(key, InterceptionMode.AUTO)
    task = asyncio.create_task(service.intercept(key, make_turn(3), turn_seed(1)))
    pending = await wait_for_pending(service, key)
    service.delete_section(key, pending.request.sections[1].id)
    service.resume(key)
    await task

    restarted = InterceptionService(settings, OverrideStore(settings.override_store_path))
    restarted.select_mode(key, InterceptionMode.AUTO)
    result = await restarted.intercept(key, make_turn(3), turn_seed(2))

    assert restarted.get_mode(key) == ModeState.AUTO_APPLYING
    assert result.decision == "override"
    assert len(result.messages) == 2

    other = InterceptionKey(conversation_id="conv-9", surface=key.surface)
    restarted.select_mode(other, InterceptionMode.AUTO)
    assert restarted.get_mode(other) == ModeState.AUTO_CAPTURING


@pytest.mark.asyncio
async def test_disable_drops_workspace_overrides(tmp_path, key, make_turn):
    """Test re-enabling after a disable starts from a clean override store."""
    settings = InspectorSettings(
        override_scope=OverrideScope.WORKSPACE,
        override_store_path=tmp_path / "overrides.json",
    )
    service = InterceptionService(settings)
    service.select_mode(key, InterceptionMode.AUTO)
    task = asyncio.create_task(service.intercept(key, make_turn(3), turn_seed(1)))
    pending = await wait_for_pending(service, key)
    service.delete_section(key, pending.request.sections[1].id)
    service.resume(key)
    await task
    assert service.get_mode(key) == ModeState.AUTO_APPLYING

    service.set_enabled(False)
    service.set_enabled(True)
    service.select_mode(key, InterceptionMode.AUTO)

    assert service.get_mode(key) == ModeState.AUTO_CAPTURING
    assert service.get_override(key) is None
    assert OverrideStore(settings.override_store_path).get_override(key) is None
