"""OpenAI-compatible LLM client (works with OpenAI, OpenRouter, the ReadLite proxy, etc.)."""

import inspect
from typing import AsyncIterator, Awaitable, Callable, Optional, Union

import httpx
import openai
from openai import AsyncOpenAI

from .base import BaseLLM, LLMRequestOptions, Message
from ..config import Config
from ..errors import AuthError, ReadLiteError, RequestTimeoutError, TransportError

# Returns the current bearer token, or None when signed out
TokenProvider = Callable[[], Union[Optional[str], Awaitable[Optional[str]]]]


class OpenAIClient(BaseLLM):
    """OpenAI-compatible API client.

    Streaming requests hand back the raw SSE body so that the engine's own
    parser can normalize OpenAI and Anthropic shaped events alike.
    """

    # App identification for OpenRouter statistics
    APP_NAME = "ReadLite"
    APP_URL = "https://readlite.app"

    def __init__(
        self,
        config: Config,
        token_provider: TokenProvider | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        self.config = config
        self.token_provider = token_provider

        default_headers = {
            "HTTP-Referer": self.APP_URL,
            "X-Title": self.APP_NAME,
        }

        self.client = AsyncOpenAI(
            api_key=config.api_key or "",
            base_url=config.base_url,
            default_headers=default_headers,
            timeout=config.request_timeout,
            max_retries=config.max_retries,
            http_client=http_client,
        )
        self.model = config.model
        self.temperature = config.temperature
        self.max_tokens = config.max_tokens

    async def chat(self, messages: list[Message], options: LLMRequestOptions | None = None) -> str:
        """Send messages and get complete response."""
        client = await self._request_client()
        try:
            response = await client.chat.completions.create(
                **self._request_kwargs(messages, options),
                stream=False,
            )
        except (openai.APIError, httpx.HTTPError) as e:
            raise self._translate_error(e) from e

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def stream_bytes(
        self, messages: list[Message], options: LLMRequestOptions | None = None
    ) -> AsyncIterator[bytes]:
        """Send messages and yield raw SSE bytes as they arrive.

        Closing the generator early closes the HTTP response.
        """
        client = await self._request_client()
        try:
            async with client.chat.completions.with_streaming_response.create(
                **self._request_kwargs(messages, options),
                stream=True,
            ) as response:
                async for raw in response.iter_bytes():
                    yield raw
        except (openai.APIError, httpx.HTTPError) as e:
            raise self._translate_error(e) from e

    def _request_kwargs(self, messages: list[Message], options: LLMRequestOptions | None) -> dict:
        options = options or LLMRequestOptions()
        return {
            "model": options.model or self.model,
            "max_tokens": options.max_tokens or self.max_tokens,
            "temperature": self.temperature if options.temperature is None else options.temperature,
            "messages": [m.to_dict() for m in messages],
        }

    async def _request_client(self) -> AsyncOpenAI:
        """Client carrying the freshest bearer token, if a provider is set."""
        if self.token_provider is None:
            return self.client
        token = self.token_provider()
        if inspect.isawaitable(token):
            token = await token
        if token:
            return self.client.with_options(api_key=token)
        return self.client

    def _translate_error(self, error: Exception) -> ReadLiteError:
        if isinstance(error, openai.AuthenticationError):
            return AuthError(
                f"Upstream rejected the credentials: {error.message}",
                details={"status_code": error.status_code, "model": self.model},
            )
        # Read timeouts mid-stream surface as raw httpx errors
        if isinstance(error, (openai.APITimeoutError, httpx.TimeoutException)):
            return RequestTimeoutError(
                f"LLM API request timed out after {self.config.request_timeout} seconds",
                timeout=self.config.request_timeout,
            )
        if isinstance(error, openai.APIStatusError):
            return TransportError(
                f"API request failed: {error.status_code} {error.message}",
                status_code=error.status_code,
                details={"model": self.model},
            )
        return TransportError(
            f"Server communication error: {error}",
            details={"model": self.model},
        )
