"""SSE (Server-Sent Events) framing and in-band error detection."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Optional


@dataclass
class SSEEvent:
    data: Optional[str]
    other_lines: list[str] = field(default_factory=list)

    @property
    def event(self) -> Optional[str]:
        for line in self.other_lines:
            if line.startswith("event:"):
                return line[6:].strip()
        return None


class SSEDecoder:
    """Incrementally split a byte stream into SSE events.

    Chunks may end anywhere, including inside a multi-byte UTF-8 sequence or
    between the two newlines of an event separator.
    """

    def __init__(self) -> None:
        self._buffer = ""
        self._pending = b""
        self._carry_cr = False

    def feed(self, chunk: bytes) -> list[SSEEvent]:
        if not chunk:
            return []
        data = self._pending + chunk
        try:
            text = data.decode("utf-8")
            self._pending = b""
        except UnicodeDecodeError as exc:
            # Keep an incomplete trailing sequence for the next chunk
            if exc.start >= len(data) - 3 and exc.reason == "unexpected end of data":
                text = data[: exc.start].decode("utf-8", errors="replace")
                self._pending = data[exc.start:]
            else:
                text = data.decode("utf-8", errors="replace")
                self._pending = b""
        if self._carry_cr:
            text = "\r" + text
            self._carry_cr = False
        # A trailing CR may be the first half of a CRLF
        if text.endswith("\r"):
            text = text[:-1]
            self._carry_cr = True
        text = text.replace("\r\n", "\n").replace("\r", "\n")
        self._buffer += text
        events: list[SSEEvent] = []

        while True:
            sep_index = self._buffer.find("\n\n")
            if sep_index == -1:
                break
            raw_event = self._buffer[:sep_index]
            self._buffer = self._buffer[sep_index + 2:]
            if not raw_event.strip():
                continue
            events.append(self._parse_event(raw_event))

        return events

    def flush(self) -> list[SSEEvent]:
        """Return the trailing event of a stream closed without a blank line."""
        leftover = self._buffer
        if self._carry_cr:
            leftover += "\n"
            self._carry_cr = False
        if self._pending:
            leftover += self._pending.decode("utf-8", errors="replace")
        self._buffer = ""
        self._pending = b""
        if not leftover.strip():
            return []
        return [self._parse_event(leftover.strip("\n"))]

    @staticmethod
    def _parse_event(raw: str) -> SSEEvent:
        data_lines: list[str] = []
        other_lines: list[str] = []
        for line in raw.split("\n"):
            if line.startswith("data:"):
                data_lines.append(line[5:].lstrip())
            elif line.startswith(":"):
                # SSE comment / keep-alive
                continue
            else:
                other_lines.append(line)
        data = "\n".join(data_lines) if data_lines else None
        return SSEEvent(data=data, other_lines=other_lines)


def format_sse_event(event_type: str, data: dict[str, Any]) -> bytes:
    """Format an Anthropic-style SSE event."""
    json_str = json.dumps(data, ensure_ascii=False)
    return f"event: {event_type}\ndata: {json_str}\n\n".encode("utf-8")


def detect_stream_error(payload: Any) -> Optional[dict[str, Any]]:
    """Return the error object of an in-band error frame, if any.

    Gemini reports failures that happen after the 200 status line as a frame
    shaped like its HTTP error envelope: ``{"error": {"code", "message", "status"}}``.
    """
    if not isinstance(payload, dict):
        return None
    error_obj = payload.get("error")
    if isinstance(error_obj, dict):
        return error_obj
    if isinstance(error_obj, str):
        return {"message": error_obj}
    return None
