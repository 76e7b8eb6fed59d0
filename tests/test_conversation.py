"""Test the conversation layer and the CLI built on it."""

import json

import pytest
from click.testing import CliRunner

from readlite import config as config_module
from readlite import logging as logging_module
from readlite import main as main_module
from readlite.context import ContextConfig, Priority
from readlite.conversation import INCOMPLETE_ANSWER_NOTE, Conversation
from readlite.errors import AuthError, TransportError
from readlite.llm import BaseLLM
from readlite.streaming import ChannelBridge, StreamExecutor


def sse(*texts):
    return "".join(
        "data: " + json.dumps({"choices": [{"delta": {"content": text}}]}) + "\n\n"
        for text in texts
    ).encode("utf-8")


class ScriptedLLM(BaseLLM):
    """Answers each streamed request with the next scripted reply."""

    def __init__(self, *replies, error=None):
        self.replies = list(replies)
        self.error = error
        self.prompts = []

    async def chat(self, messages, options=None):
        return "A short summary."

    async def stream_bytes(self, messages, options=None):
        self.prompts.append(messages[-1].content)
        if self.replies:
            yield sse(*self.replies.pop(0))
        if self.error is not None:
            raise self.error
        yield b"data: [DONE]\n\n"


class TestConversation:
    """Tests for Conversation."""

    @pytest.mark.asyncio
    async def test_answers_are_remembered(self):
        llm = ScriptedLLM(["Paris"], ["About 2 million"])
        conversation = Conversation(ChannelBridge(StreamExecutor(llm)))
        conversation.set_article("Cities", "<p>Paris is the capital of France.</p>")

        first = await conversation.ask("What is the capital?", lambda chunk: None)
        await conversation.ask("How many people live there?", lambda chunk: None)

        assert first.text == "Paris"
        assert "Article Title: Cities" in llm.prompts[0]
        assert "User: What is the capital?" in llm.prompts[0]
        assert "Assistant: Paris" in llm.prompts[1]
        assert llm.prompts[1].endswith("User: How many people live there?\n\nAssistant:")

        roles = [(m.role, m.priority) for m in conversation.context.get_optimized_context()]
        assert roles == [
            ("user", Priority.CURRENT_QUESTION),
            ("assistant", Priority.RECENT_EXCHANGE),
            ("user", Priority.CURRENT_QUESTION),
            ("assistant", Priority.RECENT_EXCHANGE),
        ]

    @pytest.mark.asyncio
    async def test_partial_answer_is_kept(self):
        llm = ScriptedLLM(["Half an "], error=TransportError("connection reset"))
        conversation = Conversation(ChannelBridge(StreamExecutor(llm)))

        session = await conversation.ask("Question?", lambda chunk: None)

        assert session.is_soft_failure
        stored = conversation.context.get_optimized_context()[-1]
        assert stored.role == "assistant"
        assert stored.content == "Half an " + INCOMPLETE_ANSWER_NOTE
        assert stored.priority == Priority.HISTORICAL_EXCHANGE

    @pytest.mark.asyncio
    async def test_partial_answer_is_pruned_before_complete_ones(self):
        llm = ScriptedLLM(["F" * 120], ["C" * 120], ["T" * 120])
        conversation = Conversation(
            ChannelBridge(StreamExecutor(llm)),
            context_config=ContextConfig(max_tokens=200, reserve_buffer=100),
        )

        await conversation.ask("One?", lambda chunk: None)
        llm.error = TransportError("connection reset")
        await conversation.ask("Two?", lambda chunk: None)
        llm.error = None
        await conversation.ask("Three?", lambda chunk: None)

        assert "Response may be incomplete" in llm.prompts[2]
        contents = [m.content for m in conversation.context.get_optimized_context()]
        assert contents == ["F" * 120, "Three?", "T" * 120]

    @pytest.mark.asyncio
    async def test_hard_failure_raises(self):
        conversation = Conversation(ChannelBridge(StreamExecutor(ScriptedLLM(error=AuthError()))))

        with pytest.raises(AuthError):
            await conversation.ask("Question?", lambda chunk: None)
        assert len(conversation.context.get_optimized_context()) == 1

    @pytest.mark.asyncio
    async def test_instructions_and_reset(self):
        llm = ScriptedLLM(["ok"])
        conversation = Conversation(ChannelBridge(StreamExecutor(llm)), instructions="Answer in French.")
        conversation.add_instruction("Never guess.")
        conversation.set_article("Title", "Body")

        await conversation.ask("Q?", lambda chunk: None)
        assert llm.prompts[0].startswith("INSTRUCTIONS:\nAnswer in French.\n\n")
        assert "System: Never guess." in llm.prompts[0]

        conversation.clear_history()
        assert conversation.context.get_optimized_context() == []
        assert conversation.context.has_article_context()

        conversation.reset()
        assert not conversation.context.has_article_context()
        assert "0 messages" in conversation.get_context_stats()


@pytest.fixture
def cli_env(tmp_path, monkeypatch):
    home = tmp_path / "home"
    monkeypatch.setattr(config_module, "CONFIG_DIR", home)
    monkeypatch.setattr(config_module, "CONFIG_FILE", home / "config.yaml")
    monkeypatch.setattr(logging_module, "LOG_DIR", tmp_path / "logs")
    monkeypatch.chdir(tmp_path)
    monkeypatch.setenv("READLITE_API_KEY", "test-key")
    for name in ("READLITE_MODEL", "READLITE_DEBUG", "READLITE_ENDPOINT", "READLITE_BASE_URL"):
        monkeypatch.delenv(name, raising=False)

    article = tmp_path / "article.html"
    article.write_text("<h1>Cities</h1><p>Paris is the capital of France.</p>", encoding="utf-8")
    return article


def use_llm(monkeypatch, llm):
    monkeypatch.setattr(main_module, "OpenAIClient", lambda config: llm)


def test_cli_ask_streams_answer(cli_env, monkeypatch):
    llm = ScriptedLLM(["Paris ", "is the capital."])
    use_llm(monkeypatch, llm)

    result = CliRunner().invoke(main_module.main, ["ask", str(cli_env), "What is the capital?"])

    assert result.exit_code == 0
    assert "Paris is the capital." in result.output
    assert "Article Title: article" in llm.prompts[0]


def test_cli_ask_soft_failure(cli_env, monkeypatch):
    use_llm(monkeypatch, ScriptedLLM(["Paris"], error=TransportError("connection reset")))

    result = CliRunner().invoke(main_module.main, ["ask", str(cli_env), "Q?", "--title", "Cities"])

    assert result.exit_code == 0
    assert "Paris" in result.output
    assert "Response incomplete" in result.output


def test_cli_ask_auth_failure(cli_env, monkeypatch):
    use_llm(monkeypatch, ScriptedLLM(error=AuthError()))

    result = CliRunner().invoke(main_module.main, ["ask", str(cli_env), "Q?"])

    assert result.exit_code == 1
    assert "Please sign in again." in result.output


def test_cli_summarize(cli_env, monkeypatch):
    use_llm(monkeypatch, ScriptedLLM())

    result = CliRunner().invoke(main_module.main, ["summarize", str(cli_env)])

    assert result.exit_code == 0
    assert "A short summary." in result.output


def test_cli_rejects_bad_config(cli_env, monkeypatch):
    (cli_env.parent / ".readlite.yaml").write_text("reserve_buffer: 5000\n")

    result = CliRunner().invoke(main_module.main, ["summarize", str(cli_env)])

    assert result.exit_code == 1
    assert "reserve_buffer" in result.output
