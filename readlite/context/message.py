"""Context messages and their retention priorities."""

import time
import uuid
from dataclasses import dataclass
from enum import IntEnum
from typing import Literal, Optional

Role = Literal["system", "user", "assistant"]


class Priority(IntEnum):
    """Retention priority. Higher values survive pruning longer."""
    SYSTEM_INSTRUCTION = 10
    CURRENT_QUESTION = 9
    ARTICLE_METADATA = 8
    VISIBLE_CONTENT = 8  # alias of ARTICLE_METADATA
    ARTICLE_CONTENT = 7
    RECENT_EXCHANGE = 6
    CODE_CONTEXT = 5
    HISTORICAL_EXCHANGE = 3
    PERIPHERAL_INFO = 1


def now_ms() -> int:
    """Current time in milliseconds."""
    return time.time_ns() // 1_000_000


@dataclass(frozen=True)
class ContextMessage:
    """A message held by a ContextStore.

    Instances are immutable; the store builds a replacement when it needs
    a different token count or a shrunk article body.
    """
    id: str
    role: Role
    content: str
    priority: Priority
    timestamp: int  # milliseconds since epoch
    token_count: Optional[int] = None

    @classmethod
    def create(
        cls,
        role: Role,
        content: str,
        priority: Priority,
        timestamp: Optional[int] = None,
    ) -> "ContextMessage":
        """Create a message with a fresh id and the current timestamp."""
        return cls(
            id=uuid.uuid4().hex[:12],
            role=role,
            content=content,
            priority=Priority(priority),
            timestamp=now_ms() if timestamp is None else timestamp,
        )

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "priority": int(self.priority),
            "timestamp": self.timestamp,
            "token_count": self.token_count,
        }


@dataclass(frozen=True)
class ContextSnapshot:
    """Settled view of a store, safe to format without holding its lock."""
    article: Optional[ContextMessage]
    messages: tuple[ContextMessage, ...]
