"""Non-streaming reading tasks: generate, summarize, extract, answer."""

import asyncio

from .base import BaseLLM, LLMRequestOptions, Message
from .prompts import ANSWER_PROMPT, EXTRACT_PROMPT, SUMMARIZE_PROMPT
from ..errors import RequestTimeoutError
from ..logging import get_logger


class ReadingAssistant:
    """One round trip per call, bounded by a request timeout."""

    def __init__(self, llm: BaseLLM, request_timeout: float = 120.0):
        self.llm = llm
        self.request_timeout = request_timeout

    async def generate_text(self, prompt: str, options: LLMRequestOptions | None = None) -> str:
        """Generate a complete response for a prompt."""
        options = options or LLMRequestOptions()
        messages = []
        if options.system_prompt:
            messages.append(Message("system", options.system_prompt))
        messages.append(Message("user", prompt))
        return await self._call(messages, options)

    async def summarize_text(self, text: str, max_sentences: int = 3) -> str:
        """Summarize text in roughly max_sentences sentences."""
        messages = [
            Message("system", SUMMARIZE_PROMPT.format(max_sentences=max_sentences)),
            Message("user", text),
        ]
        return await self._call(messages, LLMRequestOptions(max_tokens=150, temperature=0.5))

    async def extract_key_info(self, text: str, question: str) -> str:
        """Pull the parts of text relevant to a question."""
        messages = [
            Message("system", EXTRACT_PROMPT.format(question=question)),
            Message("user", text),
        ]
        return await self._call(messages, LLMRequestOptions(max_tokens=200, temperature=0.3))

    async def answer_question(self, text: str, question: str) -> str:
        """Answer a question using only the given text."""
        messages = [
            Message("system", ANSWER_PROMPT.format(question=question)),
            Message("user", text),
        ]
        return await self._call(messages, LLMRequestOptions(max_tokens=200, temperature=0.3))

    async def _call(self, messages: list[Message], options: LLMRequestOptions) -> str:
        try:
            return await asyncio.wait_for(self.llm.chat(messages, options), timeout=self.request_timeout)
        except asyncio.TimeoutError as e:
            get_logger().log_error(f"Request timed out after {self.request_timeout}s")
            raise RequestTimeoutError(
                f"LLM API request timed out after {self.request_timeout} seconds",
                timeout=self.request_timeout,
            ) from e
