"""Shared test fixtures for all test modules."""

import pytest

from liveprompt.models.messages import (
    AssistantMessage,
    CacheBreakpointPart,
    ImagePart,
    OpaquePart,
    SystemMessage,
    TextPart,
    ToolCall,
    ToolCallFunction,
    ToolMessage,
    UserMessage,
)
from liveprompt.models.request import ChatSurface, InterceptionKey, MetadataSeed


@pytest.fixture
def key():
    """Interception key for a panel conversation."""
    return InterceptionKey(conversation_id="conv-1", surface=ChatSurface.PANEL)


@pytest.fixture
def seed():
    """Metadata seed as the renderer would hand it over."""
    return MetadataSeed(
        model="gpt-test",
        debug_name="panel/edit",
        request_id="req-1",
        token_count=40,
        max_prompt_tokens=1000,
        model_family="gpt",
        request_options={"temperature": 0.2, "top_p": 0.9},
    )


@pytest.fixture
def simple_messages():
    """System + user prompt."""
    return [
        SystemMessage(content=[TextPart(text="You are a helpful assistant.")]),
        UserMessage(content=[TextPart(text="Summarize the file.")]),
    ]


@pytest.fixture
def rich_messages():
    """Conversation with mixed content parts and tool-call linkage."""
    return [
        SystemMessage(content=[TextPart(text="System rules."), CacheBreakpointPart()]),
        UserMessage(content=[
            TextPart(text="a"),
            ImagePart(url="https://example.com/cat.png", detail="high"),
            OpaquePart(value={"kind": "attachment", "bytes": 12}),
        ]),
        AssistantMessage(
            content=[TextPart(text="Let me look.")],
            tool_calls=[
                ToolCall(
                    id="call-1",
                    function=ToolCallFunction(name="read_file", arguments='{"path": "a.py"}'),
                ),
            ],
        ),
        ToolMessage(
            name="read_file",
            tool_call_id="call-1",
            content=[TextPart(text="print('hi')")],
        ),
    ]


@pytest.fixture
def make_turn():
    """Factory for a rendered turn: a system prompt followed by user messages."""
    def _make(count: int):
        messages = [SystemMessage(content=[TextPart(text="system prompt")])]
        for i in range(1, count):
            messages.append(UserMessage(content=[TextPart(text=f"user message {i}")]))
        return messages
    return _make
