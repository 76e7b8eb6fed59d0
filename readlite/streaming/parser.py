"""Server-Sent-Event decoding for LLM token streams.

Supports these payload shapes, tried in order:
1. OpenAI chat chunks: {"choices": [{"delta": {"content": "..."}}]}
2. Anthropic events: {"type": "content_block_delta", "delta": {"type": "text_delta", "text": "..."}}
3. Full (non-delta) chat completions: {"choices": [{"message": {"content": "..."}}]}

Non-text deltas (thinking, tool input JSON, signatures) are recognized and
dropped. Malformed lines are logged and skipped; the parser never raises
for a single line.
"""

import codecs
import json
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Iterable, Union

from ..logging import get_logger


@dataclass(frozen=True)
class ChunkText:
    """A piece of assistant text."""
    text: str
    source: str = ""  # Which matcher produced it


@dataclass(frozen=True)
class NoText:
    """A line that carries no user-visible text."""
    reason: str = ""


@dataclass(frozen=True)
class EndOfStream:
    """The [DONE] marker."""


END_OF_STREAM = EndOfStream()

ParseResult = Union[ChunkText, NoText, EndOfStream]


def _first_choice(data: Any) -> dict | None:
    if not isinstance(data, dict):
        return None
    choices = data.get("choices")
    if not isinstance(choices, list) or not choices:
        return None
    choice = choices[0]
    return choice if isinstance(choice, dict) else None


class BaseShapeMatcher(ABC):
    """Recognizes one upstream JSON shape."""

    name: str = "base"

    @abstractmethod
    def try_match(self, data: Any) -> ParseResult | None:
        """Return a result if the payload has this shape, None otherwise."""
        pass


class OpenAIDeltaMatcher(BaseShapeMatcher):
    """choices[0].delta.content"""

    name = "openai_delta"

    def try_match(self, data: Any) -> ParseResult | None:
        choice = _first_choice(data)
        if choice is None or not isinstance(choice.get("delta"), dict):
            return None
        content = choice["delta"].get("content")
        if isinstance(content, str) and content:
            return ChunkText(content, source=self.name)
        # Role-only first chunk, reasoning-only chunk or finish chunk
        return NoText("delta without content")


class AnthropicDeltaMatcher(BaseShapeMatcher):
    """content_block_delta events carrying text_delta."""

    name = "anthropic_delta"

    DROPPED_DELTA_TYPES = frozenset({
        "thinking_delta",
        "input_json_delta",
        "signature_delta",
        "citations_delta",
    })
    CONTROL_EVENTS = frozenset({
        "message_start",
        "message_delta",
        "message_stop",
        "content_block_start",
        "content_block_stop",
        "ping",
    })

    def try_match(self, data: Any) -> ParseResult | None:
        if not isinstance(data, dict):
            return None

        event_type = data.get("type")
        if event_type in self.CONTROL_EVENTS:
            return NoText(event_type)
        if event_type != "content_block_delta":
            return None

        delta = data.get("delta")
        if not isinstance(delta, dict):
            return NoText("content_block_delta without delta")

        delta_type = delta.get("type")
        if delta_type == "text_delta":
            text = delta.get("text")
            if isinstance(text, str) and text:
                return ChunkText(text, source=self.name)
            return NoText("empty text_delta")
        if delta_type in self.DROPPED_DELTA_TYPES:
            return NoText(delta_type)
        return NoText(f"unsupported delta type: {delta_type}")


class FullMessageMatcher(BaseShapeMatcher):
    """choices[0].message.content, sent by some proxies instead of deltas."""

    name = "full_message"

    def try_match(self, data: Any) -> ParseResult | None:
        choice = _first_choice(data)
        if choice is None or not isinstance(choice.get("message"), dict):
            return None
        content = choice["message"].get("content")
        if isinstance(content, str) and content:
            return ChunkText(content, source=self.name)
        return NoText("message without content")


class StreamProtocolParser:
    """Incremental SSE parser with a carry-over buffer.

    Usage:
        parser = StreamProtocolParser()
        for raw in response_chunks:
            for text in parser.feed(raw):
                on_chunk(text)
            if parser.done:
                break
        for text in parser.flush():
            on_chunk(text)
    """

    DATA_PREFIX = "data:"
    DONE_MARKER = "[DONE]"

    def __init__(self, matchers: list[BaseShapeMatcher] | None = None):
        # Matchers in priority order
        self.matchers: list[BaseShapeMatcher] = matchers or [
            OpenAIDeltaMatcher(),
            AnthropicDeltaMatcher(),
            FullMessageMatcher(),
        ]
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")
        self._buffer = ""
        self.done = False

    def feed(self, data: bytes | str) -> list[str]:
        """Add a chunk of the response body and return any complete texts."""
        if self.done:
            return []
        if isinstance(data, (bytes, bytearray)):
            data = self._decoder.decode(bytes(data))
        self._buffer += data

        *lines, self._buffer = self._buffer.split("\n")
        return self._collect(lines)

    def flush(self) -> list[str]:
        """Parse whatever is left once the body has ended."""
        remaining = self._buffer + self._decoder.decode(b"", final=True)
        self._buffer = ""
        if self.done or not remaining.strip():
            return []
        return self._collect([remaining])

    @property
    def pending(self) -> str:
        """Partial line waiting for its newline."""
        return self._buffer

    def parse_line(self, line: str) -> ParseResult:
        """Classify one complete line."""
        stripped = line.strip()
        if not stripped.startswith(self.DATA_PREFIX):
            # Blank separators, comments, event:/id: fields
            return NoText("not a data field")

        payload = stripped[len(self.DATA_PREFIX):].strip()
        if not payload:
            return NoText("empty data field")
        if payload == self.DONE_MARKER:
            return END_OF_STREAM

        try:
            data = json.loads(payload)
        except json.JSONDecodeError as e:
            get_logger().log_parse_error(line, f"invalid JSON: {e}")
            return NoText("invalid JSON")

        return self.match(data, line)

    def match(self, data: Any, line: str = "") -> ParseResult:
        """Try each matcher in order, return first match."""
        for matcher in self.matchers:
            result = matcher.try_match(data)
            if result is not None:
                return result

        if isinstance(data, dict) and "error" in data:
            reason = f"upstream error payload: {data['error']}"
        else:
            reason = "unrecognized payload shape"
        get_logger().log_parse_error(line, reason)
        return NoText(reason)

    @property
    def supported_shapes(self) -> list[str]:
        return [m.name for m in self.matchers]

    def _collect(self, lines: Iterable[str]) -> list[str]:
        texts = []
        for line in lines:
            result = self.parse_line(line)
            if isinstance(result, EndOfStream):
                self.done = True
                break
            if isinstance(result, ChunkText):
                texts.append(result.text)
        return texts
