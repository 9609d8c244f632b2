"""Unit tests for the metadata surface."""

import pytest

from liveprompt.editing.builder import build_editable_chat_request, update_section_content
from liveprompt.models.mode import ModeState, PendingTurn
from liveprompt.models.request import ChatSurface, ParityStatus
from liveprompt.services.metadata import (
    build_metadata_snapshot,
    build_outline,
    describe_fields,
    parity_annotation,
    token_budget,
)


@pytest.fixture
def request_(simple_messages, seed):
    return build_editable_chat_request("conv-1", ChatSurface.PANEL, simple_messages, seed)


class TestMetadataSnapshot:
    """Test snapshot construction."""

    def test_idle_snapshot(self, request_):
        snapshot = build_metadata_snapshot(request_, None, ModeState.OFF)

        assert snapshot.conversation_id == "conv-1"
        assert snapshot.surface == "panel"
        assert snapshot.request_id == "req-1"
        assert snapshot.model == "gpt-test"
        assert snapshot.interception_state == "idle"
        assert snapshot.mode == "off"
        assert snapshot.is_dirty is False

    def test_pending_snapshot(self, request_):
        pending = PendingTurn(request=request_)

        snapshot = build_metadata_snapshot(request_, pending, ModeState.REVIEW_ALWAYS)

        assert snapshot.interception_state == "pending"
        assert snapshot.mode == "review_always"

    def test_pending_for_other_request_is_idle(self, request_, simple_messages, seed):
        other = build_editable_chat_request("conv-1", ChatSurface.PANEL, simple_messages, seed)
        other.id = "req-other"

        snapshot = build_metadata_snapshot(request_, PendingTurn(request=other), ModeState.REVIEW_ALWAYS)

        assert snapshot.interception_state == "idle"

    def test_snapshot_tracks_edits(self, request_):
        update_section_content(request_, request_.sections[1].id, "edited")

        snapshot = build_metadata_snapshot(request_, None, ModeState.OFF)

        assert snapshot.is_dirty is True
        assert snapshot.version == 2
        assert snapshot.payload_hash == request_.metadata.payload_hash


class TestDescribeFields:
    """Test label/value rows."""

    def test_selected_fields_in_order(self, request_):
        snapshot = build_metadata_snapshot(request_, None, ModeState.OFF)

        rows = describe_fields(snapshot, ["model", "conversation", "dirty"])

        assert rows == [("Model", "gpt-test"), ("Conversation", "conv-1"), ("Dirty", "Clean")]

    def test_unknown_fields_ignored(self, request_):
        snapshot = build_metadata_snapshot(request_, None, ModeState.OFF)

        assert describe_fields(snapshot, ["bogus", "request"]) == [("Request", "req-1")]

    def test_empty_value_placeholder(self, request_):
        request_.model = ""
        snapshot = build_metadata_snapshot(request_, None, ModeState.OFF)

        assert describe_fields(snapshot, ["model"]) == [("Model", "—")]


class TestTokenBudgetAndParity:
    """Test derived display values."""

    def test_token_budget(self, request_):
        budget = token_budget(build_metadata_snapshot(request_, None, ModeState.OFF))

        assert budget.used == 40
        assert budget.max == 1000
        assert budget.percent == 4.0

    def test_token_budget_without_max(self, request_):
        request_.metadata.max_prompt_tokens = None

        budget = token_budget(build_metadata_snapshot(request_, None, ModeState.OFF))

        assert budget.percent is None

    def test_parity_annotation_on_mismatch(self, request_):
        request_.metadata.payload_hash = 111
        request_.metadata.last_logged_hash = 222
        request_.metadata.parity_status = ParityStatus.MISMATCH

        annotation = parity_annotation(build_metadata_snapshot(request_, None, ModeState.OFF))

        assert annotation == "Payload parity mismatch: sent 111, logged 222"

    def test_no_annotation_when_unknown(self, request_):
        assert parity_annotation(build_metadata_snapshot(request_, None, ModeState.OFF)) is None


class TestOutline:
    """Test outline trees for request options and the raw payload."""

    def test_request_options_outline(self, request_):
        roots = build_outline(request_, ["request_options"])

        assert len(roots) == 1
        root = roots[0]
        assert root.label == "Request Options"
        assert [child.label for child in root.children] == ["temperature", "top_p"]
        assert root.children[0].value_type == "number"
        assert root.children[0].value_preview == "0.2"
        assert root.children[0].id == "request_options.temperature"

    def test_raw_request_outline(self, request_):
        roots = build_outline(request_, ["raw_request"])

        labels = [child.label for child in roots[0].children]
        assert labels == ["model", "surface", "messages", "requestOptions", "requestId"]
        messages = roots[0].children[2]
        assert messages.value_type == "array"
        assert messages.value_preview == "[2]"
        assert messages.children[0].label == "[0]"

    def test_unknown_section_ignored(self, request_):
        assert build_outline(request_, ["nope"]) == []

    def test_outline_truncated(self, request_):
        request_.metadata.request_options = {f"k{i}": i for i in range(10)}

        root = build_outline(request_, ["request_options"], max_entries=3)[0]

        assert root.truncated is True
        assert len(root.children) == 4
        assert root.children[-1].label == "…"
        assert root.children[-1].truncated is True
