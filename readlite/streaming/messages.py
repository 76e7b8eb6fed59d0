"""Messages exchanged over a stream channel.

The requester sends one StreamRequest and then only receives Chunk,
Complete or Error. Messages cross the channel as plain dicts, the same
shape they would have over a real process boundary.
"""

from dataclasses import dataclass, field
from typing import Any, ClassVar, Union

from ..context.message import now_ms
from ..errors import AuthError, ReadLiteError, RequestTimeoutError, TransportError
from ..llm.base import LLMRequestOptions

ERROR_KIND_TRANSPORT = "transport"
ERROR_KIND_AUTH = "auth"
ERROR_KIND_TIMEOUT = "timeout"


@dataclass
class StreamRequest:
    prompt: str
    options: LLMRequestOptions = field(default_factory=LLMRequestOptions)
    stream_id: str = ""

    type: ClassVar[str] = "stream_request"

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "prompt": self.prompt,
            "options": self.options.to_dict(),
            "stream_id": self.stream_id,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StreamRequest":
        return cls(
            prompt=data.get("prompt", ""),
            options=LLMRequestOptions.from_dict(data.get("options")),
            stream_id=data.get("stream_id", ""),
        )


@dataclass
class Chunk:
    chunk: str
    timestamp: int = field(default_factory=now_ms)

    type: ClassVar[str] = "stream_chunk"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "chunk": self.chunk, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Chunk":
        return cls(chunk=data.get("chunk", ""), timestamp=data.get("timestamp", 0))


@dataclass
class Complete:
    type: ClassVar[str] = "stream_complete"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Complete":
        return cls()


@dataclass
class Error:
    error: str
    kind: str = ERROR_KIND_TRANSPORT

    type: ClassVar[str] = "stream_error"

    def to_dict(self) -> dict[str, Any]:
        return {"type": self.type, "error": self.error, "kind": self.kind}

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Error":
        return cls(
            error=data.get("error") or "Unknown error in stream processing",
            kind=data.get("kind", ERROR_KIND_TRANSPORT),
        )

    @classmethod
    def from_exception(cls, error: Exception) -> "Error":
        if isinstance(error, AuthError):
            kind = ERROR_KIND_AUTH
        elif isinstance(error, RequestTimeoutError):
            kind = ERROR_KIND_TIMEOUT
        else:
            kind = ERROR_KIND_TRANSPORT
        return cls(error=str(error), kind=kind)

    def to_exception(self) -> ReadLiteError:
        """The typed error a requester should surface."""
        if self.kind == ERROR_KIND_AUTH:
            return AuthError(self.error)
        if self.kind == ERROR_KIND_TIMEOUT:
            return RequestTimeoutError(self.error)
        return TransportError(self.error)


StreamMessage = Union[StreamRequest, Chunk, Complete, Error]

MESSAGE_TYPES: dict[str, type] = {
    cls.type: cls for cls in (StreamRequest, Chunk, Complete, Error)
}


def message_from_dict(data: dict[str, Any]) -> StreamMessage:
    """Decode a channel payload.

    Raises:
        ValueError: If the payload has no known type
    """
    message_type = data.get("type") if isinstance(data, dict) else None
    cls = MESSAGE_TYPES.get(message_type)
    if cls is None:
        raise ValueError(f"Unknown stream message type: {message_type!r}")
    return cls.from_dict(data)
