"""Test stream session lifecycle."""

import asyncio

import pytest

from readlite.errors import AuthError, ChannelClosedError, RequestTimeoutError, TransportError
from readlite.streaming import ChannelBridge, Chunk, Complete, Error, SessionState, StreamRequest, StreamSession


def scripted(*messages, then_wait=False):
    """Handler that answers any request with fixed messages."""

    async def handler(channel):
        request = await channel.receive()
        assert isinstance(request, StreamRequest)
        for message in messages:
            channel.post(message)
        if then_wait:
            await asyncio.sleep(60)

    return handler


class TestStreamSession:
    """Tests for StreamSession."""

    @pytest.mark.asyncio
    async def test_complete_stream(self):
        chunks = []
        session = StreamSession(ChannelBridge(scripted(Chunk("Hello"), Chunk(" world"), Complete())))

        text = await session.start("prompt", chunks.append)

        assert text == "Hello world"
        assert chunks == ["Hello", " world"]
        assert session.state is SessionState.COMPLETED
        assert session.error is None
        assert not session.is_soft_failure

    @pytest.mark.asyncio
    async def test_error_after_chunks_returns_partial_text(self):
        """Text that already arrived wins over a later transport error."""
        session = StreamSession(ChannelBridge(scripted(
            Chunk("Hel"), Chunk("lo "), Chunk("world"), Error("upstream reset"),
        )))

        text = await session.start("prompt", lambda chunk: None)

        assert text == "Hello world"
        assert session.state is SessionState.FAILED
        assert session.is_soft_failure
        assert isinstance(session.error, TransportError)

    @pytest.mark.asyncio
    async def test_error_before_any_chunk_raises(self):
        session = StreamSession(ChannelBridge(scripted(Error("upstream reset"))))

        with pytest.raises(TransportError, match="upstream reset"):
            await session.start("prompt", lambda chunk: None)
        assert session.state is SessionState.FAILED

    @pytest.mark.asyncio
    async def test_auth_error_keeps_its_type(self):
        session = StreamSession(ChannelBridge(scripted(Error("bad token", kind="auth"))))

        with pytest.raises(AuthError):
            await session.start("prompt", lambda chunk: None)

    @pytest.mark.asyncio
    async def test_timeout_without_chunks_is_an_error(self):
        bridge = ChannelBridge(scripted(then_wait=True))
        session = StreamSession(bridge, timeout=0.05)

        with pytest.raises(RequestTimeoutError, match="without receiving any response"):
            await session.start("prompt", lambda chunk: None)

        assert session.state is SessionState.TIMED_OUT
        assert session.handle_timeout() is False
        assert session.state is SessionState.TIMED_OUT
        assert bridge.active_sessions() == []

    @pytest.mark.asyncio
    async def test_timeout_after_chunks_returns_partial_text(self):
        session = StreamSession(ChannelBridge(scripted(Chunk("partial"), then_wait=True)), timeout=0.05)

        text = await session.start("prompt", lambda chunk: None)

        assert text == "partial"
        assert session.state is SessionState.TIMED_OUT
        assert isinstance(session.error, RequestTimeoutError)
        assert session.is_soft_failure

    @pytest.mark.asyncio
    async def test_no_chunks_after_terminal_state(self):
        chunks = []
        session = StreamSession(ChannelBridge(scripted(Chunk("a"), Complete(), Chunk("late"))))

        text = await session.start("prompt", chunks.append)
        session.handle_message(Chunk("later"))
        session.handle_message(Error("too late"))

        assert text == "a"
        assert chunks == ["a"]
        assert session.state is SessionState.COMPLETED
        assert session.error is None

    @pytest.mark.asyncio
    async def test_executor_disconnect_without_complete(self):
        session = StreamSession(ChannelBridge(scripted()))

        with pytest.raises(ChannelClosedError):
            await session.start("prompt", lambda chunk: None)

    @pytest.mark.asyncio
    async def test_cancel_keeps_received_text(self):
        first_chunk = asyncio.Event()
        bridge = ChannelBridge(scripted(Chunk("abc"), then_wait=True))
        session = StreamSession(bridge)

        task = asyncio.create_task(session.start("prompt", lambda chunk: first_chunk.set()))
        await asyncio.wait_for(first_chunk.wait(), timeout=1)

        assert session.cancel() is True
        assert await task == "abc"
        assert isinstance(session.error, ChannelClosedError)
        assert session.cancel() is False
        assert bridge.active_sessions() == []

    @pytest.mark.asyncio
    async def test_failing_chunk_callback_is_not_a_partial_success(self):
        def explode(chunk):
            raise ValueError("consumer broke")

        session = StreamSession(ChannelBridge(scripted(Chunk("a"), Chunk("b"), Complete())))

        with pytest.raises(ValueError, match="consumer broke"):
            await session.start("prompt", explode)
        assert session.state is SessionState.FAILED

    @pytest.mark.asyncio
    async def test_session_starts_once(self):
        session = StreamSession(ChannelBridge(scripted(Complete())))
        await session.start("prompt", lambda chunk: None)

        with pytest.raises(RuntimeError):
            await session.start("prompt", lambda chunk: None)

    @pytest.mark.asyncio
    async def test_undecodable_message_fails_the_stream(self):
        async def handler(channel):
            await channel.receive()
            channel.peer._inbox.put_nowait({"type": "stream_bogus"})
            await asyncio.sleep(60)

        bridge = ChannelBridge(handler)
        session = StreamSession(bridge, timeout=5.0)

        with pytest.raises(TransportError, match="Invalid stream message"):
            await asyncio.wait_for(session.start("prompt", lambda chunk: None), timeout=1)
        assert session.state is SessionState.FAILED
        assert bridge.active_sessions() == []

    @pytest.mark.asyncio
    async def test_concurrent_sessions_share_one_bridge(self):
        """Interleaved streams each get exactly their own chunks, in order."""

        async def interleaved(channel):
            request = await channel.receive()
            for i in range(5):
                channel.post(Chunk(f"{request.prompt}{i}"))
                await asyncio.sleep(0)
            channel.post(Complete())

        bridge = ChannelBridge(interleaved)
        received = {prompt: [] for prompt in ("a", "b", "c")}
        sessions = [StreamSession(bridge) for _ in received]

        texts = await asyncio.gather(*(
            session.start(prompt, received[prompt].append)
            for session, prompt in zip(sessions, received)
        ))

        assert texts == ["a0a1a2a3a4", "b0b1b2b3b4", "c0c1c2c3c4"]
        assert received["b"] == ["b0", "b1", "b2", "b3", "b4"]
        assert all(session.state is SessionState.COMPLETED for session in sessions)
        assert bridge.active_sessions() == []

    @pytest.mark.asyncio
    async def test_stream_ids_are_unique(self):
        bridge = ChannelBridge(scripted(Complete()))
        first = StreamSession(bridge)
        second = StreamSession(bridge)

        assert first.session_id != second.session_id
        assert first.session_id.startswith("stream_")
