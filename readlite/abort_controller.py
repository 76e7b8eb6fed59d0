"""Abort controller for stopping a stream once nobody is listening."""

import threading
from typing import Optional

from .errors import StreamAbortedError


class AbortController:
    """Controls abortion of a streaming loop.

    Usage:
        controller = AbortController()
        channel.on_disconnect(controller.abort)

        # In the read loop, once per chunk:
        controller.check()  # Raises StreamAbortedError if aborted
    """

    def __init__(self):
        self._aborted = False
        self._reason: Optional[str] = None
        self._lock = threading.Lock()

    @property
    def is_aborted(self) -> bool:
        """Check if abort was requested."""
        with self._lock:
            return self._aborted

    @property
    def reason(self) -> Optional[str]:
        with self._lock:
            return self._reason

    def abort(self, reason: str = "channel disconnected") -> None:
        """Request abortion of current operation."""
        with self._lock:
            if not self._aborted:
                self._aborted = True
                self._reason = reason

    def reset(self) -> None:
        """Reset abort state for new operation."""
        with self._lock:
            self._aborted = False
            self._reason = None

    def check(self) -> None:
        """Check if aborted and raise exception if so.

        Raises:
            StreamAbortedError: If abort was requested
        """
        if self.is_aborted:
            raise StreamAbortedError(f"Stream aborted: {self.reason}")
