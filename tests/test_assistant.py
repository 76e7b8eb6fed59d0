"""Test one-shot reading tasks."""

import asyncio

import pytest

from readlite.errors import RequestTimeoutError
from readlite.llm import BaseLLM, ReadingAssistant


class RecordingLLM(BaseLLM):
    def __init__(self, reply="reply", delay=0.0):
        self.reply = reply
        self.delay = delay
        self.calls = []

    async def chat(self, messages, options=None):
        self.calls.append((messages, options))
        if self.delay:
            await asyncio.sleep(self.delay)
        return self.reply

    async def stream_bytes(self, messages, options=None):
        yield b""


@pytest.mark.asyncio
async def test_summarize_text():
    llm = RecordingLLM("Short summary.")
    result = await ReadingAssistant(llm).summarize_text("Long text", max_sentences=2)

    messages, options = llm.calls[0]
    assert result == "Short summary."
    assert messages[0].role == "system"
    assert "around 2 sentences" in messages[0].content
    assert messages[1].content == "Long text"
    assert options.max_tokens == 150
    assert options.temperature == 0.5


@pytest.mark.asyncio
async def test_extract_and_answer_embed_question():
    llm = RecordingLLM()
    assistant = ReadingAssistant(llm)

    await assistant.extract_key_info("text", "Who wrote it?")
    await assistant.answer_question("text", "When?")

    extract_messages, extract_options = llm.calls[0]
    answer_messages, _ = llm.calls[1]
    assert '"Who wrote it?"' in extract_messages[0].content
    assert '"When?"' in answer_messages[0].content
    assert extract_options.temperature == 0.3


@pytest.mark.asyncio
async def test_generate_text_with_system_prompt():
    from readlite.llm import LLMRequestOptions

    llm = RecordingLLM()
    await ReadingAssistant(llm).generate_text("hello", LLMRequestOptions(system_prompt="sys"))

    messages, _ = llm.calls[0]
    assert [m.role for m in messages] == ["system", "user"]


@pytest.mark.asyncio
async def test_request_timeout():
    llm = RecordingLLM(delay=1.0)

    with pytest.raises(RequestTimeoutError) as exc_info:
        await ReadingAssistant(llm, request_timeout=0.01).summarize_text("text")
    assert exc_info.value.timeout == 0.01
