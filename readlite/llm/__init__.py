"""LLM clients."""

from .base import BaseLLM, LLMRequestOptions, Message
from .openai_client import OpenAIClient, TokenProvider
from .assistant import ReadingAssistant

__all__ = ["BaseLLM", "LLMRequestOptions", "Message", "OpenAIClient", "TokenProvider", "ReadingAssistant"]
