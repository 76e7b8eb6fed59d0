"""Base LLM client interface."""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, AsyncIterator, Optional


@dataclass
class Message:
    """Chat message."""
    role: str  # "system", "user", "assistant"
    content: str

    def to_dict(self) -> dict[str, str]:
        return {"role": self.role, "content": self.content}


@dataclass
class LLMRequestOptions:
    """Per-request model settings. Unset fields fall back to client defaults."""
    model: Optional[str] = None
    max_tokens: Optional[int] = None
    temperature: Optional[float] = None
    system_prompt: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        """Only the fields that were set."""
        data = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "system_prompt": self.system_prompt,
        }
        return {k: v for k, v in data.items() if v is not None}

    @classmethod
    def from_dict(cls, data: dict[str, Any] | None) -> "LLMRequestOptions":
        data = data or {}
        return cls(
            model=data.get("model"),
            max_tokens=data.get("max_tokens"),
            temperature=data.get("temperature"),
            system_prompt=data.get("system_prompt"),
        )


class BaseLLM(ABC):
    """Abstract base class for LLM clients."""

    @abstractmethod
    async def chat(self, messages: list[Message], options: LLMRequestOptions | None = None) -> str:
        """Send messages and get complete response."""
        pass

    @abstractmethod
    def stream_bytes(self, messages: list[Message], options: LLMRequestOptions | None = None) -> AsyncIterator[bytes]:
        """Send messages and yield the raw bytes of the SSE response body."""
        pass
