"""Completion provider interface.

Call nodes talk to a language model through a CompletionProvider. A run
never depends on a concrete provider; tests use in-memory fakes and the
CLI uses OpenAICompatibleProvider.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable

from canvasflow.core.errors import CanvasflowError


@dataclass(frozen=True)
class CompletionRequest:
    """One chat completion request.

    Attributes:
        messages: Conversation in OpenAI format.
        model: Model identity. None lets the run or provider pick.
        params: Extra request parameters such as temperature.
    """

    messages: list[dict[str, str]]
    model: str | None = None
    params: dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class CompletionResult:
    """Reply to a CompletionRequest, with token usage."""

    content: str
    model: str
    prompt_tokens: int = 0
    completion_tokens: int = 0
    finish_reason: str | None = None
    retries: int = 0


@runtime_checkable
class CompletionProvider(Protocol):
    """Anything that can answer a chat completion request."""

    async def complete(self, request: CompletionRequest) -> CompletionResult: ...


class ProviderError(CanvasflowError):
    """A completion request failed.

    Attributes:
        status_code: HTTP status code, when the provider answered.
        error_type: Classification such as "rate_limit_error" or "network_error".
        retries: Retries attempted before giving up.
    """

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        error_type: str = "api_error",
        retries: int = 0,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_type = error_type
        self.retries = retries
