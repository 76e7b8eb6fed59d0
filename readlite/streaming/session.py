"""One end-to-end streaming request, seen from the requester side."""

import asyncio
import uuid
from enum import Enum
from typing import Callable, Optional

from ..context.message import now_ms
from ..errors import ChannelClosedError, RequestTimeoutError, TransportError
from ..llm.base import LLMRequestOptions
from ..logging import get_logger
from .bridge import Channel, ChannelBridge
from .messages import Chunk, Complete, Error, StreamMessage, StreamRequest

ChunkCallback = Callable[[str], None]


class SessionState(Enum):
    IDLE = "idle"
    REQUESTING = "requesting"
    STREAMING = "streaming"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def is_terminal(self) -> bool:
        return self in (SessionState.COMPLETED, SessionState.FAILED, SessionState.TIMED_OUT)


def new_stream_id() -> str:
    return f"stream_{now_ms()}_{uuid.uuid4().hex[:7]}"


class StreamSession:
    """Relays one stream's chunks to a callback and resolves with the full text.

    Guarantees:
    - at most one terminal outcome (complete, error or timeout)
    - no chunk reaches the callback after that outcome
    - if the stream fails or times out after some text arrived, start()
      returns the partial text and the failure is kept in `error`
    """

    DEFAULT_TIMEOUT = 30.0

    def __init__(
        self,
        bridge: ChannelBridge,
        session_id: Optional[str] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ):
        self.bridge = bridge
        self.session_id = session_id or new_stream_id()
        self.timeout = timeout
        self.error: Optional[Exception] = None

        self._state = SessionState.IDLE
        self._chunks: list[str] = []
        self._on_chunk: Optional[ChunkCallback] = None
        self._channel: Optional[Channel] = None
        self._result: Optional[asyncio.Future] = None
        self._timer: Optional[asyncio.TimerHandle] = None
        self._reader: Optional[asyncio.Task] = None

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def text(self) -> str:
        """Everything received so far."""
        return "".join(self._chunks)

    @property
    def chunk_count(self) -> int:
        return len(self._chunks)

    @property
    def is_soft_failure(self) -> bool:
        """Partial text was returned despite an error."""
        return self.error is not None and bool(self._chunks)

    async def start(
        self,
        prompt: str,
        on_chunk: ChunkCallback,
        options: LLMRequestOptions | None = None,
    ) -> str:
        """Send the request and wait for the full text.

        Raises:
            TransportError: Stream failed before any text arrived
            ChannelClosedError: Channel closed before any text arrived
            AuthError: Upstream rejected the credentials
            RequestTimeoutError: Timeout fired before any text arrived
        """
        if self._state is not SessionState.IDLE:
            raise RuntimeError("A stream session can only be started once")

        loop = asyncio.get_running_loop()
        self._channel = self.bridge.connect(self.session_id)
        self._result = loop.create_future()
        self._on_chunk = on_chunk
        self._state = SessionState.REQUESTING
        self._timer = loop.call_later(self.timeout, self.handle_timeout)

        try:
            self._reader = loop.create_task(self._read_loop(self._channel))
            self._channel.post(StreamRequest(
                prompt=prompt,
                options=options or LLMRequestOptions(),
                stream_id=self.session_id,
            ))
            return await self._result
        finally:
            self._cleanup()

    def cancel(self) -> bool:
        """Cancel the stream by dropping its channel."""
        return self._terminate(SessionState.FAILED, ChannelClosedError("Stream was cancelled"))

    def handle_message(self, message: StreamMessage) -> None:
        """Apply one message from the channel."""
        if self._state.is_terminal:
            get_logger().log_dead_channel(self.session_id, message.type)
            return

        if isinstance(message, Chunk):
            if self._state is SessionState.REQUESTING:
                self._state = SessionState.STREAMING
            self._chunks.append(message.chunk)
            get_logger().log_chunk(self.session_id, message.chunk, len(self._chunks))
            try:
                self._on_chunk(message.chunk)
            except Exception as e:
                # A broken consumer is a caller bug, never a partial success
                self._terminate(SessionState.FAILED, e, allow_partial=False)
        elif isinstance(message, Complete):
            self._terminate(SessionState.COMPLETED)
        elif isinstance(message, Error):
            self._terminate(SessionState.FAILED, message.to_exception())
        else:
            get_logger().log_error(f"Unexpected {message.type} message on requester end", self.session_id)

    def handle_disconnect(self) -> bool:
        """The channel closed. Only an error if nothing terminal happened yet."""
        return self._terminate(
            SessionState.FAILED,
            ChannelClosedError("Connection to the stream executor was lost before the response completed"),
        )

    def handle_timeout(self) -> bool:
        """Timer callback. A no-op once the session is terminal."""
        if self._chunks:
            message = f"Stream timed out after {self.timeout} seconds"
        else:
            message = f"Stream timed out after {self.timeout} seconds without receiving any response"
        return self._terminate(SessionState.TIMED_OUT, RequestTimeoutError(message, timeout=self.timeout))

    async def _read_loop(self, channel: Channel) -> None:
        try:
            async for message in channel:
                self.handle_message(message)
                if self._state.is_terminal:
                    return
        except ValueError as e:
            get_logger().log_error(f"Undecodable stream message: {e}", self.session_id)
            self._terminate(SessionState.FAILED, TransportError(f"Invalid stream message: {e}"))
            return
        self.handle_disconnect()

    def _terminate(self, state: SessionState, error: Optional[Exception] = None, allow_partial: bool = True) -> bool:
        if self._state.is_terminal:
            return False

        self._state = state
        self.error = error
        if self._timer is not None:
            self._timer.cancel()

        logger = get_logger()
        if error is not None:
            logger.log_error(str(error), self.session_id)
        logger.log_stream_end(self.session_id, state.value, len(self._chunks), len(self.text))

        if self._result is not None and not self._result.done():
            if error is None or (allow_partial and self._chunks):
                self._result.set_result(self.text)
            else:
                self._result.set_exception(error)

        if self._channel is not None:
            self._channel.disconnect()
        return True

    def _cleanup(self) -> None:
        if not self._state.is_terminal:
            # start() itself was cancelled
            self._terminate(SessionState.FAILED, ChannelClosedError("Stream was cancelled"))
        if self._timer is not None:
            self._timer.cancel()
        if self._reader is not None and not self._reader.done() and self._reader is not asyncio.current_task():
            self._reader.cancel()
        if self._channel is not None:
            self._channel.disconnect()
