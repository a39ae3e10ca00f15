"""OpenAICompatibleProvider - chat completions over an OpenAI-compatible API.

Works against OpenAI itself and any server speaking the same
/chat/completions protocol (OpenRouter, local gateways, ...).

Key features:
- Built-in retry with exponential backoff for transient failures
- Errors classified by HTTP status code and raised as ProviderError
- Two HTTP backends: aiohttp (default) or the openai SDK
- Lazily created, reusable HTTP session
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

import aiohttp

from canvasflow.providers.completion import CompletionRequest, CompletionResult, ProviderError

if TYPE_CHECKING:
    from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

# Valid HTTP backend choices
HttpBackend = Literal["aiohttp", "openai"]

DEFAULT_BASE_URL = "https://api.openai.com/v1"

# Status codes that should trigger a retry
RETRYABLE_STATUS_CODES = frozenset({429, 500, 502, 503, 504})

# Error type mapping based on HTTP status codes
ERROR_TYPE_MAP = {
    400: "invalid_request_error",
    401: "authentication_error",
    403: "permission_error",
    404: "not_found_error",
    429: "rate_limit_error",
}


def _get_error_type(status_code: int) -> str:
    """Map HTTP status code to error type string."""
    if status_code in ERROR_TYPE_MAP:
        return ERROR_TYPE_MAP[status_code]
    if 500 <= status_code < 600:
        return "api_error"
    return "unknown_error"


def _retry_after(value: str | None) -> float | None:
    """Seconds from a Retry-After header; HTTP-date values are ignored."""
    if value is None:
        return None
    try:
        return max(float(value), 0.0)
    except ValueError:
        return None


@dataclass
class OpenAICompatibleProvider:
    """Completion provider for OpenAI-compatible chat completion APIs.

    Attributes:
        api_key: Bearer token.
        model: Default model when a request names none.
        base_url: API root, without the /chat/completions suffix.
        timeout: Total timeout per HTTP request in seconds.
        max_retries: Retries on 429/5xx and network errors.
        retry_base_delay: First backoff delay in seconds.
        retry_max_delay: Backoff ceiling in seconds.
        http_backend: "aiohttp" or "openai".
        extra_headers: Headers added to every request.
    """

    api_key: str
    model: str = "gpt-4o-mini"
    base_url: str = DEFAULT_BASE_URL
    timeout: float = 120.0  # LLM calls can be slow
    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    http_backend: HttpBackend = "aiohttp"
    extra_headers: dict[str, str] = field(default_factory=dict)

    # Internal fields (not in __init__)
    _session_holder: aiohttp.ClientSession | None = field(default=None, init=False, repr=False)
    _openai_client: AsyncOpenAI | None = field(default=None, init=False, repr=False)
    _session_lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)

    async def complete(self, request: CompletionRequest) -> CompletionResult:
        """Send one chat completion request.

        Raises:
            ProviderError: On API errors, network errors after retries, or timeouts.
        """
        if not request.messages:
            raise ProviderError("No messages to send", error_type="invalid_request_error")

        model = request.model or self.model
        request_body: dict[str, Any] = {
            "model": model,
            "messages": request.messages,
            **request.params,
        }
        logger.debug(
            "completion_request: model=%s, messages=%d, backend=%s",
            model,
            len(request.messages),
            self.http_backend,
        )

        try:
            if self.http_backend == "openai":
                response_data, retries = await self._execute_with_openai_sdk(request_body)
            else:
                response_data, retries = await self._execute_with_aiohttp(request_body)
        except aiohttp.ClientError as e:
            raise ProviderError(f"Network error: {e}", error_type="network_error") from e
        except TimeoutError as e:
            raise ProviderError(
                f"Request timed out after {self.timeout}s", error_type="timeout"
            ) from e

        return self._parse_response(response_data, model, retries)

    def _parse_response(
        self, response_data: dict[str, Any], model: str, retries: int
    ) -> CompletionResult:
        content = ""
        finish_reason = None
        if response_data.get("choices"):
            choice = response_data["choices"][0]
            message = choice.get("message") or {}
            content = message.get("content") or ""
            finish_reason = choice.get("finish_reason")

        usage = response_data.get("usage") or {}
        return CompletionResult(
            content=content,
            model=response_data.get("model") or model,
            prompt_tokens=usage.get("prompt_tokens", 0) or 0,
            completion_tokens=usage.get("completion_tokens", 0) or 0,
            finish_reason=finish_reason,
            retries=retries,
        )

    async def _get_http_session(self) -> aiohttp.ClientSession:
        """Get or create aiohttp session (lazy initialization)."""
        async with self._session_lock:
            if self._session_holder is None or self._session_holder.closed:
                timeout = aiohttp.ClientTimeout(total=self.timeout)
                headers = {
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                    **self.extra_headers,
                }
                self._session_holder = aiohttp.ClientSession(headers=headers, timeout=timeout)
            return self._session_holder

    async def _get_openai_client(self) -> AsyncOpenAI:
        """Get or create OpenAI async client (lazy initialization)."""
        async with self._session_lock:
            if self._openai_client is None:
                from openai import AsyncOpenAI

                self._openai_client = AsyncOpenAI(
                    base_url=self.base_url,
                    api_key=self.api_key,
                    timeout=self.timeout,
                    max_retries=self.max_retries,
                    default_headers=self.extra_headers,
                )
            return self._openai_client

    async def _execute_with_openai_sdk(
        self,
        request_body: dict[str, Any],
    ) -> tuple[dict[str, Any], int]:
        """Execute request using OpenAI SDK (has built-in retry)."""
        from openai import APIConnectionError, APIStatusError

        client = await self._get_openai_client()
        body = dict(request_body)
        messages = body.pop("messages")
        model = body.pop("model")

        try:
            response = await client.chat.completions.create(model=model, messages=messages, **body)
        except APIStatusError as e:
            raise ProviderError(
                f"API error ({e.status_code}): {e.message}",
                status_code=e.status_code,
                error_type=_get_error_type(e.status_code),
            ) from e
        except APIConnectionError as e:
            raise aiohttp.ClientError(f"Connection error: {e}") from e

        # OpenAI SDK handles retries internally
        return response.model_dump(), 0

    async def _execute_with_aiohttp(
        self,
        request_body: dict[str, Any],
    ) -> tuple[dict[str, Any], int]:
        """Execute request using aiohttp with manual retry logic."""
        url = f"{self.base_url.rstrip('/')}/chat/completions"
        retries = 0

        for attempt in range(self.max_retries + 1):
            try:
                session = await self._get_http_session()
                async with session.post(url, json=request_body) as response:
                    if response.status == 200:
                        return await response.json(), retries

                    try:
                        error_body = await response.json()
                        error_message = error_body.get("error", {}).get("message", str(error_body))
                    except (aiohttp.ContentTypeError, ValueError):
                        error_message = await response.text()

                    if response.status in RETRYABLE_STATUS_CODES and attempt < self.max_retries:
                        retries = attempt + 1
                        await self._backoff(
                            attempt,
                            f"status {response.status}",
                            _retry_after(response.headers.get("Retry-After")),
                        )
                        continue

                    raise ProviderError(
                        f"API error ({response.status}): {error_message}",
                        status_code=response.status,
                        error_type=_get_error_type(response.status),
                        retries=retries,
                    )

            except aiohttp.ClientError as e:
                if attempt < self.max_retries:
                    retries = attempt + 1
                    await self._backoff(attempt, str(e))
                    continue
                raise

        raise RuntimeError("Retry loop exited without result")

    async def _backoff(self, attempt: int, reason: str, retry_after: float | None = None) -> None:
        if retry_after is not None:
            delay = min(retry_after, self.retry_max_delay)
        else:
            delay = min(self.retry_base_delay * (2**attempt), self.retry_max_delay)
        logger.debug(
            "completion_retry: attempt=%d, delay=%.2f, reason=%s", attempt + 1, delay, reason
        )
        await asyncio.sleep(delay)

    async def close(self) -> None:
        """Close HTTP session/client.

        The session/client will be recreated on next complete() if needed.
        """
        async with self._session_lock:
            if self._session_holder and not self._session_holder.closed:
                await self._session_holder.close()
                self._session_holder = None
            if self._openai_client is not None:
                await self._openai_client.close()
                self._openai_client = None

    async def __aenter__(self) -> OpenAICompatibleProvider:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(model={self.model!r}, base_url={self.base_url!r})"
