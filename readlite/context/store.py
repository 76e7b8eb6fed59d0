"""Prioritized conversation context with token-budget pruning."""

import bisect
import re
import threading
from dataclasses import dataclass, replace
from typing import Optional

from ..logging import get_logger
from .message import ContextMessage, ContextSnapshot, Priority
from .prompt_builder import PromptBuilder
from .token_counter import TokenEstimator

ARTICLE_CONTEXT_ID = "article-context"
VISIBLE_CONTENT_MARKER = "VISIBLE CONTENT:\n"

_TAG_RE = re.compile(r"<[^>]*>")
_WHITESPACE_RE = re.compile(r"\s+")


@dataclass
class ContextConfig:
    """Configuration for context budgeting."""
    max_tokens: int = 4000               # Total context window size
    reserve_buffer: int = 800            # Reserved for the model response
    article_shrink_ratio: float = 0.5    # Shrink article once above this share of max_tokens
    article_target_ratio: float = 0.25   # Shrunk article aims for this share of max_tokens
    aggressive_prune_after: int = 3      # Pre-filter history beyond this many messages
    recent_exchanges_to_keep: int = 2

    @property
    def target_tokens(self) -> int:
        return self.max_tokens - self.reserve_buffer


@dataclass
class ContextStats:
    """Current context utilization statistics."""
    total_tokens: int
    target_tokens: int
    used_tokens: int
    article_tokens: int
    message_count: int
    utilization_percent: float

    def __str__(self) -> str:
        return (
            f"Context: {self.used_tokens:,}/{self.target_tokens:,} tokens "
            f"({self.utilization_percent:.1f}%), "
            f"{self.message_count} messages"
        )


@dataclass(frozen=True)
class ArticleContextInfo:
    title: str
    content_length: int
    token_count: int


@dataclass(frozen=True)
class ArticleContext:
    """The article entry plus what is needed to re-derive a shrunk copy."""
    title: str
    header: str
    body: str
    is_visible: bool
    message: ContextMessage


def clean_article_text(raw_content: str) -> str:
    """Replace HTML tags with spaces and collapse whitespace."""
    if not raw_content:
        return ""
    text = _TAG_RE.sub(" ", raw_content)
    return _WHITESPACE_RE.sub(" ", text).strip()


def is_visible_title(title: str) -> bool:
    """Titles like 'Current View' mark on-screen content rather than a full article."""
    return title == "Current View" or "Visible" in title or "Screen" in title


def build_article_header(title: str, url: Optional[str] = None, language: Optional[str] = None) -> str:
    lines = [f"Article Title: {title or 'Untitled'}"]
    if url:
        lines.append(f"Article URL: {url}")
    if language:
        lines.append(f"Article Language: {language}")
    return "\n".join(lines) + "\n\n"


def shrink_article_text(header: str, body: str, is_visible: bool, token_target: int) -> Optional[tuple[str, str]]:
    """Shrink an article body to roughly token_target tokens.

    Returns (content, strategy) or None when the body already fits.
    The header is always kept verbatim.
    """
    char_target = token_target * TokenEstimator.CHARS_PER_TOKEN
    length = len(body)

    if is_visible:
        # What is on screen matters more than a summary of it
        if length <= char_target:
            return None
        content = (
            f"{header}{body[:char_target]}\n\n"
            f"[Note: Truncated from original visible content of {length} characters]"
        )
        return content, "visible_truncate"

    if length > char_target * 1.5:
        portion = char_target // 5
        beginning = body[:portion * 2]
        middle_start = max(0, (length - portion) // 2)
        middle = body[middle_start:middle_start + portion]
        ending = body[length - portion:]
        content = (
            f"{header}ARTICLE EXCERPT (key portions):\n\n"
            f"BEGINNING:\n{beginning}\n\n"
            f"MIDDLE SECTION:\n{middle}\n\n"
            f"ENDING:\n{ending}\n\n"
            f"[Note: The full article is {length} characters long. This is a partial extract.]"
        )
        return content, "excerpts"

    if length > char_target:
        content = (
            f"{header}{body[:char_target]}\n\n"
            f"[Note: Truncated from original length of {length} characters]"
        )
        return content, "truncate"

    return None


class ContextStore:
    """Holds one conversation's messages and its article context.

    Handles:
    - Token estimation for every message
    - Priority/recency pruning whenever the budget is exceeded
    - Shrinking oversized article context
    - Prompt rendering through a PromptBuilder

    Pruning never raises. When the budget cannot be met (for example a
    single huge system instruction) the best-effort state is kept.
    """

    def __init__(
        self,
        config: ContextConfig | None = None,
        estimator: TokenEstimator | None = None,
        prompt_builder: PromptBuilder | None = None,
    ):
        self.config = config or ContextConfig()
        self.estimator = estimator or TokenEstimator()
        self.prompt_builder = prompt_builder or PromptBuilder()
        self._messages: list[ContextMessage] = []
        self._article: ArticleContext | None = None
        self._lock = threading.RLock()

    def add_message(self, message: ContextMessage) -> list[ContextMessage]:
        """Add a message, keeping chronological order, then optimize."""
        with self._lock:
            if message.token_count is None:
                message = replace(message, token_count=self.estimator.estimate(message.content))
            bisect.insort(self._messages, message, key=lambda m: m.timestamp)
            self.optimize()
            return list(self._messages)

    def set_article_context(
        self,
        title: str,
        raw_content: str,
        url: Optional[str] = None,
        language: Optional[str] = None,
    ) -> None:
        """Replace the article context with freshly cleaned content."""
        title = title or ""
        is_visible = is_visible_title(title)
        header = build_article_header(title, url, language)
        if is_visible:
            header += VISIBLE_CONTENT_MARKER
        body = clean_article_text(raw_content)
        content = header + body

        message = ContextMessage(
            id=ARTICLE_CONTEXT_ID,
            role="system",
            content=content,
            priority=Priority.VISIBLE_CONTENT if is_visible else Priority.ARTICLE_CONTENT,
            timestamp=0,
            token_count=self.estimator.estimate(content),
        )
        with self._lock:
            self._article = ArticleContext(
                title=title or "Untitled",
                header=header,
                body=body,
                is_visible=is_visible,
                message=message,
            )
            self.optimize()

    def clear_conversation(self) -> None:
        """Drop all messages but keep the article context."""
        with self._lock:
            self._messages = []

    def reset_session(self) -> None:
        """Drop messages and article context."""
        with self._lock:
            self._messages = []
            self._article = None

    def get_optimized_context(self) -> list[ContextMessage]:
        """Retained messages in chronological order."""
        with self._lock:
            return list(self._messages)

    def has_article_context(self) -> bool:
        with self._lock:
            return self._article is not None and bool(self._article.message.content)

    def get_article_context_info(self) -> ArticleContextInfo | None:
        with self._lock:
            if self._article is None:
                return None
            message = self._article.message
            return ArticleContextInfo(
                title=self._article.title,
                content_length=len(message.content),
                token_count=message.token_count or 0,
            )

    def get_article_message(self) -> ContextMessage | None:
        with self._lock:
            return self._article.message if self._article else None

    def get_estimated_token_count(self) -> int:
        """Article tokens plus message tokens."""
        with self._lock:
            return self._article_tokens() + self.estimator.count_messages(self._messages)

    def get_stats(self) -> ContextStats:
        """Get current context utilization statistics."""
        with self._lock:
            used = self.get_estimated_token_count()
            target = self.config.target_tokens
            return ContextStats(
                total_tokens=self.config.max_tokens,
                target_tokens=target,
                used_tokens=used,
                article_tokens=self._article_tokens(),
                message_count=len(self._messages),
                utilization_percent=(used / target) * 100 if target > 0 else 100,
            )

    def snapshot(self) -> ContextSnapshot:
        with self._lock:
            return ContextSnapshot(
                article=self._article.message if self._article else None,
                messages=tuple(self._messages),
            )

    def build_prompt(self, system_instructions: Optional[str] = None) -> str:
        """Render the retained context into a single prompt string."""
        return self.prompt_builder.build(self.snapshot(), system_instructions)

    def optimize(self) -> bool:
        """Prune when over budget. Returns True if a pruning pass ran."""
        with self._lock:
            tokens_before = self.get_estimated_token_count()
            target = self.config.target_tokens
            if tokens_before <= target:
                return False

            article_limit = self.config.max_tokens * self.config.article_shrink_ratio
            if self._article is not None and self._article_tokens() > article_limit:
                self._shrink_article()

            self._prune_messages()

            get_logger().log_prune(
                tokens_before,
                self.get_estimated_token_count(),
                len(self._messages),
                target,
            )
            return True

    def _article_tokens(self) -> int:
        if self._article is None:
            return 0
        return self._article.message.token_count or 0

    def _shrink_article(self) -> None:
        article = self._article
        token_target = int(self.config.max_tokens * self.config.article_target_ratio)
        if self.estimator.estimate(article.header + article.body) <= token_target:
            return

        shrunk = shrink_article_text(article.header, article.body, article.is_visible, token_target)
        if shrunk is None:
            return

        content, strategy = shrunk
        message = replace(
            article.message,
            content=content,
            token_count=self.estimator.estimate(content),
        )
        self._article = replace(article, message=message)
        get_logger().log_article_shrink(len(article.body), message.token_count, strategy)

    def _prune_messages(self) -> None:
        if not self._messages:
            return

        if len(self._messages) > self.config.aggressive_prune_after:
            system = [m for m in self._messages if m.priority >= Priority.SYSTEM_INSTRUCTION]
            question = [m for m in self._messages if m.priority == Priority.CURRENT_QUESTION][-1:]
            keep_recent = self.config.recent_exchanges_to_keep
            recent = [
                m for m in self._messages
                if Priority.RECENT_EXCHANGE <= m.priority < Priority.CURRENT_QUESTION
            ][-keep_recent:] if keep_recent > 0 else []
            kept_ids = {id(m) for m in system + question + recent}
            # Filtering the already sorted list keeps chronological order
            self._messages = [m for m in self._messages if id(m) in kept_ids]

        if self.get_estimated_token_count() <= self.config.target_tokens:
            return

        # Highest priority first, newest first within a priority
        ranked = [
            m for _, m in sorted(
                enumerate(self._messages),
                key=lambda pair: (pair[1].priority, pair[1].timestamp, pair[0]),
                reverse=True,
            )
        ]
        budget = self.config.target_tokens - self._article_tokens()

        kept: list[ContextMessage] = []
        kept_tokens = 0
        for msg in ranked:
            if msg.priority >= Priority.CURRENT_QUESTION:
                kept.append(msg)
                kept_tokens += msg.token_count or 0

        for msg in ranked:
            if msg.priority >= Priority.CURRENT_QUESTION:
                continue
            msg_tokens = msg.token_count or 0
            if kept_tokens + msg_tokens > budget:
                break
            kept.append(msg)
            kept_tokens += msg_tokens

        kept_ids = {id(m) for m in kept}
        self._messages = [m for m in self._messages if id(m) in kept_ids]
