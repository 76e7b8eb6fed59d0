"""Context management module."""

from .token_counter import TokenEstimator, estimate_tokens, get_token_estimator
from .message import ContextMessage, ContextSnapshot, Priority
from .prompt_builder import PromptBuilder
from .store import ArticleContextInfo, ContextConfig, ContextStats, ContextStore

__all__ = [
    "TokenEstimator",
    "estimate_tokens",
    "get_token_estimator",
    "ContextMessage",
    "ContextSnapshot",
    "Priority",
    "PromptBuilder",
    "ArticleContextInfo",
    "ContextConfig",
    "ContextStats",
    "ContextStore",
]
