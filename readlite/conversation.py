"""Reader conversation: context retention plus streamed answers."""

from typing import Optional

from .context import ContextConfig, ContextMessage, ContextStore, Priority
from .llm.base import LLMRequestOptions
from .llm.prompts import READING_ASSISTANT_INSTRUCTIONS
from .logging import get_logger
from .streaming import ChannelBridge, StreamSession
from .streaming.session import ChunkCallback

INCOMPLETE_ANSWER_NOTE = "\n\n_(Response may be incomplete due to an error)_"


class Conversation:
    """One reader's conversation about one page.

    Each question is stored as CURRENT_QUESTION and each answer as
    RECENT_EXCHANGE, so pruning keeps the latest question and the last
    exchanges when the budget runs out. An answer cut off by an error is
    stored with a note at HISTORICAL_EXCHANGE.
    """

    def __init__(
        self,
        bridge: ChannelBridge,
        context_config: ContextConfig | None = None,
        stream_timeout: float = StreamSession.DEFAULT_TIMEOUT,
        options: LLMRequestOptions | None = None,
        instructions: Optional[str] = READING_ASSISTANT_INSTRUCTIONS,
    ):
        self.bridge = bridge
        self.context = ContextStore(context_config)
        self.stream_timeout = stream_timeout
        self.options = options or LLMRequestOptions()
        self.instructions = instructions
        self.last_session: Optional[StreamSession] = None

    def set_article(self, title: str, content: str, url: Optional[str] = None, language: Optional[str] = None) -> None:
        """Attach the article (or the visible part of it) to the conversation."""
        self.context.set_article_context(title, content, url, language)

    def add_instruction(self, text: str) -> None:
        """Pin an instruction that survives every pruning pass."""
        self.context.add_message(ContextMessage.create("system", text, Priority.SYSTEM_INSTRUCTION))

    async def ask(self, question: str, on_chunk: ChunkCallback) -> StreamSession:
        """Stream an answer to question.

        Returns the finished session; check `is_soft_failure` to tell a
        partial answer from a complete one. Raises the session's typed
        error when no text arrived at all.
        """
        self.context.add_message(ContextMessage.create("user", question, Priority.CURRENT_QUESTION))
        prompt = self.context.build_prompt(self.instructions)

        session = StreamSession(self.bridge, timeout=self.stream_timeout)
        self.last_session = session
        text = await session.start(prompt, on_chunk, self.options)

        if session.is_soft_failure:
            get_logger().log_error(f"Answer incomplete: {session.error}", session.session_id)
            # A cut-off answer is pruned before complete ones
            self.context.add_message(ContextMessage.create(
                "assistant", text + INCOMPLETE_ANSWER_NOTE, Priority.HISTORICAL_EXCHANGE,
            ))
        elif text:
            self.context.add_message(ContextMessage.create("assistant", text, Priority.RECENT_EXCHANGE))
        return session

    def clear_history(self) -> None:
        """Clear conversation history, keeping the article."""
        self.context.clear_conversation()

    def reset(self) -> None:
        """Forget the article and the history."""
        self.context.reset_session()

    def get_context_stats(self) -> str:
        """Get current context statistics."""
        return str(self.context.get_stats())
