"""Duplex channels between stream requesters and the executor.

Each stream gets its own channel, addressed by session id. Connecting
starts the bridge handler (the executor) on the far end. Disconnecting
either end closes both, releases the registry entry and cancels the
handler, which aborts the upstream HTTP read.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Awaitable, Callable, Optional

from ..logging import get_logger
from .messages import Error, StreamMessage, message_from_dict

ChannelHandler = Callable[["Channel"], Awaitable[None]]
DisconnectCallback = Callable[[], None]

# Queued after the last message when a channel closes
_CLOSED = object()


@dataclass
class ChannelLink:
    """State shared by both ends of one channel."""
    session_id: str
    ends: tuple["Channel", ...] = ()
    closed: bool = False
    handler_task: Optional[asyncio.Task] = None
    callbacks: list[DisconnectCallback] = field(default_factory=list)


class SessionRegistry:
    """Active channels keyed by session id.

    Only touched from the event loop thread, which serializes every
    insert, lookup and removal.
    """

    def __init__(self):
        self._links: dict[str, ChannelLink] = {}

    def register(self, link: ChannelLink) -> None:
        if link.session_id in self._links:
            raise ValueError(f"Session {link.session_id!r} is already connected")
        self._links[link.session_id] = link

    def get(self, session_id: str) -> ChannelLink | None:
        return self._links.get(session_id)

    def remove(self, link: ChannelLink) -> bool:
        """Remove link if it is still the one registered for its id."""
        if self._links.get(link.session_id) is link:
            del self._links[link.session_id]
            return True
        return False

    def session_ids(self) -> list[str]:
        return list(self._links)

    def links(self) -> list[ChannelLink]:
        return list(self._links.values())

    def __contains__(self, session_id: str) -> bool:
        return session_id in self._links

    def __len__(self) -> int:
        return len(self._links)


class Channel:
    """One end of a stream channel."""

    def __init__(self, bridge: "ChannelBridge", link: ChannelLink, name: str):
        self._bridge = bridge
        self._link = link
        self.name = name
        self.peer: Optional["Channel"] = None
        self._inbox: asyncio.Queue = asyncio.Queue()
        self._eof = False

    @property
    def session_id(self) -> str:
        return self._link.session_id

    @property
    def connected(self) -> bool:
        return not self._link.closed

    def post(self, message: StreamMessage) -> bool:
        """Send a message to the other end.

        Sending on a closed channel is logged and dropped, never raised,
        so a producer outliving its consumer keeps running cleanly.
        """
        if self._link.closed or self.peer is None:
            get_logger().log_dead_channel(self.session_id, message.type)
            return False
        self.peer._inbox.put_nowait(message.to_dict())
        return True

    async def receive(self) -> StreamMessage | None:
        """Next message, or None once the channel is closed and drained."""
        if self._eof:
            return None
        payload = await self._inbox.get()
        if payload is _CLOSED:
            self._eof = True
            return None
        return message_from_dict(payload)

    def on_disconnect(self, callback: DisconnectCallback) -> None:
        """Run callback when the channel closes (immediately if it already has)."""
        if self._link.closed:
            callback()
        else:
            self._link.callbacks.append(callback)

    def disconnect(self) -> None:
        """Close both ends. Safe to call more than once."""
        self._bridge.close_link(self._link)

    def _close_inbox(self) -> None:
        self._inbox.put_nowait(_CLOSED)

    def __aiter__(self):
        return self

    async def __anext__(self) -> StreamMessage:
        message = await self.receive()
        if message is None:
            raise StopAsyncIteration
        return message


class ChannelBridge:
    """Multiplexes many concurrent stream channels by session id."""

    def __init__(self, handler: ChannelHandler, registry: SessionRegistry | None = None):
        self.handler = handler
        self.registry = registry or SessionRegistry()

    def connect(self, session_id: str) -> Channel:
        """Open a channel and start the handler on its far end.

        Raises:
            ValueError: If session_id is already connected
        """
        link = ChannelLink(session_id=session_id)
        requester = Channel(self, link, "requester")
        executor = Channel(self, link, "executor")
        requester.peer = executor
        executor.peer = requester
        link.ends = (requester, executor)

        self.registry.register(link)
        link.handler_task = asyncio.get_running_loop().create_task(
            self._run_handler(executor),
            name=f"stream-handler-{session_id}",
        )
        return requester

    def close_link(self, link: ChannelLink) -> None:
        """Close a channel and release everything tied to it."""
        if link.closed:
            return
        link.closed = True
        self.registry.remove(link)

        for end in link.ends:
            end._close_inbox()

        callbacks, link.callbacks = link.callbacks, []
        for callback in callbacks:
            try:
                callback()
            except Exception as e:
                get_logger().log_error(f"Disconnect callback failed: {e}", link.session_id)

        task = link.handler_task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    def disconnect(self, session_id: str) -> bool:
        link = self.registry.get(session_id)
        if link is None:
            return False
        self.close_link(link)
        return True

    def active_sessions(self) -> list[str]:
        return self.registry.session_ids()

    async def close(self) -> None:
        """Disconnect every channel and wait for the handlers to stop."""
        links = self.registry.links()
        tasks = [link.handler_task for link in links if link.handler_task is not None]
        for link in links:
            self.close_link(link)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _run_handler(self, channel: Channel) -> None:
        try:
            await self.handler(channel)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            get_logger().log_error(f"Stream handler failed: {e}", channel.session_id)
            channel.post(Error(f"Stream handler failed: {e}"))
        finally:
            channel.disconnect()
