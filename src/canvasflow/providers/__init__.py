"""External services used by graph runs: completion providers and content stores."""

from canvasflow.providers.completion import (
    CompletionProvider,
    CompletionRequest,
    CompletionResult,
    ProviderError,
)
from canvasflow.providers.content import (
    ContentStore,
    ContentStoreError,
    DirectoryContentStore,
    MemoryContentStore,
    NoteNotFoundError,
)
from canvasflow.providers.openai_compatible import (
    DEFAULT_BASE_URL,
    HttpBackend,
    OpenAICompatibleProvider,
)

__all__ = [
    "DEFAULT_BASE_URL",
    "CompletionProvider",
    "CompletionRequest",
    "CompletionResult",
    "ContentStore",
    "ContentStoreError",
    "DirectoryContentStore",
    "HttpBackend",
    "MemoryContentStore",
    "NoteNotFoundError",
    "OpenAICompatibleProvider",
    "ProviderError",
]
