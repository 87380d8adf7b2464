"""Tests for the Gemini -> Anthropic Messages stream adapter."""

import json

import pytest

from conftest import aiter_items, gemini_frame, sse_bytes
from gemini_bridge.messages.stream_adapter import (
    GeminiToMessagesStreamAdapter,
    adapt_gemini_stream_to_messages,
)
from gemini_bridge.types.events import (
    ContentBlockDelta,
    ContentBlockStart,
    ContentBlockStop,
    MessageDelta,
    MessageStart,
    MessageStop,
    StreamError,
)
from gemini_bridge.types.messages import FinishKind, TextBlock, ToolUseBlock


async def _collect(adapter, frames):
    return [event async for event in adapter.adapt_frames(aiter_items(frames))]


def _assert_well_sequenced(events):
    """Every index gets one start before its deltas and one stop; indices never reused."""
    started: set[int] = set()
    stopped: set[int] = set()
    open_index = None
    for event in events:
        if isinstance(event, ContentBlockStart):
            assert event.index not in started
            assert open_index is None
            started.add(event.index)
            open_index = event.index
        elif isinstance(event, ContentBlockDelta):
            assert event.index == open_index
        elif isinstance(event, ContentBlockStop):
            assert event.index == open_index
            stopped.add(event.index)
            open_index = None
    assert started == stopped
    assert sorted(started) == list(range(len(started)))


class TestTextStreaming:
    """Tests for plain text streams."""

    @pytest.mark.asyncio
    async def test_hello_example(self):
        """Two text frames then STOP yield the canonical event sequence."""
        adapter = GeminiToMessagesStreamAdapter("msg_1", "claude-sonnet-4-5")
        frames = [
            gemini_frame([{"text": "Hel"}]),
            gemini_frame([{"text": "lo"}]),
            gemini_frame(
                finish_reason="STOP",
                usage={"promptTokenCount": 4, "candidatesTokenCount": 2, "totalTokenCount": 6},
            ),
        ]

        events = await _collect(adapter, frames)

        assert [type(e) for e in events] == [
            MessageStart,
            ContentBlockStart,
            ContentBlockDelta,
            ContentBlockDelta,
            ContentBlockStop,
            MessageDelta,
            MessageStop,
        ]
        assert events[1].index == 0 and events[1].block_type == "text"
        assert [events[2].text, events[3].text] == ["Hel", "lo"]
        assert events[4].index == 0
        assert events[5].finish_reason.kind is FinishKind.END_TURN
        assert events[6].usage.input_tokens == 4
        assert events[6].usage.output_tokens == 2

    @pytest.mark.asyncio
    async def test_sse_payload_shapes(self):
        """Events render as Anthropic SSE payloads."""
        adapter = GeminiToMessagesStreamAdapter("msg_2", "m")
        events = await _collect(adapter, [gemini_frame([{"text": "Hi"}], finish_reason="STOP")])

        payloads = [e.to_payload() for e in events]
        assert payloads[0]["message"]["id"] == "msg_2"
        assert payloads[1] == {
            "type": "content_block_start",
            "index": 0,
            "content_block": {"type": "text", "text": ""},
        }
        assert payloads[2]["delta"] == {"type": "text_delta", "text": "Hi"}
        assert payloads[-2]["delta"]["stop_reason"] == "end_turn"
        assert payloads[-1] == {"type": "message_stop"}

    @pytest.mark.asyncio
    async def test_empty_stream(self):
        """A stream with no frames still produces a complete message."""
        adapter = GeminiToMessagesStreamAdapter("msg_3", "m")
        events = await _collect(adapter, [])
        assert [type(e) for e in events] == [MessageStart, MessageDelta, MessageStop]

    @pytest.mark.asyncio
    async def test_thinking_then_text_split_blocks(self):
        """Mixed kinds within one frame split into separate blocks."""
        adapter = GeminiToMessagesStreamAdapter("msg_4", "m")
        events = await _collect(
            adapter,
            [
                gemini_frame([{"text": "pondering", "thought": True}, {"text": "Answer"}]),
                gemini_frame([{"text": " done"}], finish_reason="STOP"),
            ],
        )

        _assert_well_sequenced(events)
        starts = [e for e in events if isinstance(e, ContentBlockStart)]
        assert [(s.index, s.block_type) for s in starts] == [(0, "thinking"), (1, "text")]
        deltas = [e for e in events if isinstance(e, ContentBlockDelta)]
        assert deltas[0].delta_type == "thinking_delta"
        assert deltas[0].to_payload()["delta"] == {"type": "thinking_delta", "thinking": "pondering"}
        assert [d.text for d in deltas[1:]] == ["Answer", " done"]


class TestToolStreaming:
    """Tests for function call streaming."""

    @pytest.mark.asyncio
    async def test_function_call_after_text(self):
        """STOP with a functionCall in the final frame maps to tool_use."""
        adapter = GeminiToMessagesStreamAdapter("msg_5", "m")
        events = await _collect(
            adapter,
            [
                gemini_frame([{"text": "Let me check."}]),
                gemini_frame(
                    [{"functionCall": {"name": "get_weather", "args": {"city": "Paris"}}}],
                    finish_reason="STOP",
                ),
            ],
        )

        _assert_well_sequenced(events)
        start = [e for e in events if isinstance(e, ContentBlockStart)][1]
        assert start.index == 1
        assert start.content_block["type"] == "tool_use"
        assert start.content_block["name"] == "get_weather"
        assert start.content_block["id"].startswith("toolu_")
        json_delta = [e for e in events if isinstance(e, ContentBlockDelta)][-1]
        assert json_delta.delta_type == "input_json_delta"
        assert json.loads(json_delta.partial_json) == {"city": "Paris"}

        message_delta = [e for e in events if isinstance(e, MessageDelta)][0]
        assert message_delta.finish_reason.to_stop_reason() == "tool_use"

    @pytest.mark.asyncio
    async def test_argument_fragments_concatenate(self):
        """Unnamed parts with string args continue the open tool_use block."""
        adapter = GeminiToMessagesStreamAdapter("msg_6", "m")
        events = await _collect(
            adapter,
            [
                gemini_frame([{"functionCall": {"id": "call_1", "name": "search", "args": '{"q": '}}]),
                gemini_frame([{"functionCall": {"args": '"cats"}'}}]),
                gemini_frame(finish_reason="STOP"),
            ],
        )

        _assert_well_sequenced(events)
        fragments = [e.partial_json for e in events if isinstance(e, ContentBlockDelta)]
        assert fragments == ['{"q": ', '"cats"}']
        assert json.loads("".join(fragments)) == {"q": "cats"}

        final = adapter.build_final_message()
        assert final.content == [ToolUseBlock("call_1", "search", {"q": "cats"})]
        assert final.finish_reason.kind is FinishKind.TOOL_USE

    @pytest.mark.asyncio
    async def test_two_calls_get_two_blocks(self):
        adapter = GeminiToMessagesStreamAdapter("msg_7", "m")
        events = await _collect(
            adapter,
            [
                gemini_frame(
                    [
                        {"functionCall": {"name": "a", "args": {"x": 1}}},
                        {"functionCall": {"name": "a", "args": {"x": 2}}},
                    ],
                    finish_reason="STOP",
                )
            ],
        )

        _assert_well_sequenced(events)
        starts = [e for e in events if isinstance(e, ContentBlockStart)]
        assert [s.index for s in starts] == [0, 1]


class TestStreamFailures:
    """Tests for malformed and error frames."""

    @pytest.mark.asyncio
    async def test_invalid_json_terminates(self):
        """Events already produced stand; one StreamError ends the stream."""
        adapter = GeminiToMessagesStreamAdapter("msg_8", "m")
        events = await _collect(
            adapter,
            [gemini_frame([{"text": "partial"}]), "{not json", gemini_frame([{"text": "ignored"}])],
        )

        assert [type(e) for e in events] == [
            MessageStart,
            ContentBlockStart,
            ContentBlockDelta,
            StreamError,
        ]
        assert events[-1].to_payload()["type"] == "error"

    @pytest.mark.asyncio
    async def test_missing_candidates_terminates(self):
        adapter = GeminiToMessagesStreamAdapter("msg_9", "m")
        events = await _collect(adapter, ['{"usageMetadata": {}}'])
        assert [type(e) for e in events] == [StreamError]
        assert adapter.finish() == []

    @pytest.mark.asyncio
    async def test_in_band_error_frame(self):
        """An error envelope mid-stream is mapped by its code."""
        adapter = GeminiToMessagesStreamAdapter("msg_10", "m")
        events = await _collect(
            adapter,
            [
                gemini_frame([{"text": "a"}]),
                json.dumps({"error": {"code": 429, "message": "Quota", "status": "RESOURCE_EXHAUSTED"}}),
            ],
        )

        error = events[-1]
        assert isinstance(error, StreamError)
        assert error.error_type == "rate_limit_error"
        assert error.message == "Quota"

    def test_frames_after_termination_ignored(self):
        adapter = GeminiToMessagesStreamAdapter("msg_11", "m")
        assert isinstance(adapter.process_frame("[]")[0], StreamError)
        assert adapter.process_frame(gemini_frame([{"text": "late"}])) == []

    @pytest.mark.asyncio
    async def test_consumer_stop_produces_nothing_more(self):
        """Closing the iterator early leaves the adapter terminated."""
        adapter = GeminiToMessagesStreamAdapter("msg_12", "m")
        stream = adapter.adapt_frames(
            aiter_items([gemini_frame([{"text": "one"}]), gemini_frame([{"text": "two"}])])
        )
        first = await stream.__anext__()
        assert isinstance(first, MessageStart)
        await stream.aclose()

        assert adapter.terminated
        assert adapter.finish() == []


class TestByteStream:
    """Tests for raw SSE byte input."""

    @pytest.mark.asyncio
    async def test_chunks_split_anywhere(self):
        """Frames split across arbitrary chunk boundaries decode correctly."""
        raw = sse_bytes(
            [
                gemini_frame([{"text": "Grüße"}]),
                gemini_frame([{"text": " 🌍"}], finish_reason="STOP"),
            ]
        )
        chunks = [raw[i:i + 7] for i in range(0, len(raw), 7)]

        adapter = GeminiToMessagesStreamAdapter("msg_13", "m")
        events = [e async for e in adapter.adapt_stream(aiter_items(chunks))]

        texts = [e.text for e in events if isinstance(e, ContentBlockDelta)]
        assert "".join(texts) == "Grüße 🌍"
        assert isinstance(events[-1], MessageStop)
        assert adapter.build_final_message().content == [TextBlock("Grüße 🌍")]

    @pytest.mark.asyncio
    async def test_convenience_function_emits_sse(self):
        raw = sse_bytes([gemini_frame([{"text": "Hi"}], finish_reason="STOP")])
        out = [
            chunk
            async for chunk in adapt_gemini_stream_to_messages("msg_14", "m", aiter_items([raw]))
        ]

        assert out[0].startswith(b"event: message_start\ndata: ")
        assert out[-1] == b'event: message_stop\ndata: {"type": "message_stop"}\n\n'
