"""Streaming transport: SSE parsing, channels, sessions and the executor."""

from .parser import (
    ChunkText,
    EndOfStream,
    NoText,
    ParseResult,
    StreamProtocolParser,
)
from .messages import Chunk, Complete, Error, StreamRequest, message_from_dict
from .bridge import Channel, ChannelBridge, SessionRegistry
from .session import SessionState, StreamSession, new_stream_id
from .executor import StreamExecutor

__all__ = [
    "ChunkText",
    "EndOfStream",
    "NoText",
    "ParseResult",
    "StreamProtocolParser",
    "Chunk",
    "Complete",
    "Error",
    "StreamRequest",
    "message_from_dict",
    "Channel",
    "ChannelBridge",
    "SessionRegistry",
    "SessionState",
    "StreamSession",
    "new_stream_id",
    "StreamExecutor",
]
