"""Settings for running canvases outside of tests.

Values come from the environment, after loading .env.local and .env
from the working directory (existing variables win).

Environment Variables:
    CANVASFLOW_API_KEY: Provider API key (falls back to OPENAI_API_KEY)
    CANVASFLOW_BASE_URL: OpenAI-compatible API root
    CANVASFLOW_MODEL: Default model
    CANVASFLOW_HTTP_BACKEND: "aiohttp" or "openai"
    CANVASFLOW_TIMEOUT: Request timeout in seconds
    CANVASFLOW_MAX_RETRIES: Retries on transient provider failures
    CANVASFLOW_NOTES_DIR: Directory backing reference nodes
    CANVASFLOW_MAX_COST: Dollar budget per run
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import get_args

from canvasflow.core.errors import CanvasflowError
from canvasflow.core.usage import Budget
from canvasflow.providers.content import ContentStore, DirectoryContentStore, MemoryContentStore
from canvasflow.providers.openai_compatible import (
    DEFAULT_BASE_URL,
    HttpBackend,
    OpenAICompatibleProvider,
)

logger = logging.getLogger(__name__)

ENV_FILES = (".env.local", ".env")


class ConfigurationError(CanvasflowError):
    """Invalid or missing configuration."""


def load_env_files(directory: Path | None = None) -> list[Path]:
    """Load dotenv files from a directory without overriding the environment.

    Returns:
        The files that were loaded.
    """
    from dotenv import load_dotenv

    directory = directory or Path.cwd()
    loaded = []
    for name in ENV_FILES:
        path = directory / name
        if path.is_file():
            load_dotenv(path, override=False)
            loaded.append(path)
    return loaded


def _env_float(name: str, default: float | None) -> float | None:
    value = os.getenv(name)
    if value is None or value == "":
        return default
    try:
        return float(value)
    except ValueError as e:
        raise ConfigurationError(f"{name} must be a number, got {value!r}") from e


@dataclass
class Settings:
    """Runtime settings.

    Attributes:
        api_key: Provider API key.
        base_url: OpenAI-compatible API root.
        model: Default model.
        http_backend: HTTP backend of the provider.
        timeout: Request timeout in seconds.
        max_retries: Retries on transient provider failures.
        notes_dir: Directory backing reference nodes; None keeps notes in memory.
        max_cost_dollars: Dollar budget per run.
    """

    api_key: str | None = None
    base_url: str = DEFAULT_BASE_URL
    model: str = "gpt-4o-mini"
    http_backend: HttpBackend = "aiohttp"
    timeout: float = 120.0
    max_retries: int = 3
    notes_dir: Path | None = None
    max_cost_dollars: float | None = None

    @classmethod
    def from_env(cls, env_dir: Path | None = None, load_files: bool = True) -> Settings:
        """Build settings from the environment.

        Args:
            env_dir: Directory holding .env.local/.env. Defaults to the cwd.
            load_files: Whether to load the dotenv files first.

        Raises:
            ConfigurationError: If a variable has an invalid value.
        """
        if load_files:
            for path in load_env_files(env_dir):
                logger.debug("env_file_loaded: path=%s", path)

        backend = os.getenv("CANVASFLOW_HTTP_BACKEND", "aiohttp")
        if backend not in get_args(HttpBackend):
            raise ConfigurationError(
                f"CANVASFLOW_HTTP_BACKEND must be one of {', '.join(get_args(HttpBackend))}"
            )

        max_retries = os.getenv("CANVASFLOW_MAX_RETRIES", "3")
        if not max_retries.isdigit():
            raise ConfigurationError(
                f"CANVASFLOW_MAX_RETRIES must be an integer, got {max_retries!r}"
            )

        notes_dir = os.getenv("CANVASFLOW_NOTES_DIR")
        return cls(
            api_key=os.getenv("CANVASFLOW_API_KEY") or os.getenv("OPENAI_API_KEY"),
            base_url=os.getenv("CANVASFLOW_BASE_URL", DEFAULT_BASE_URL),
            model=os.getenv("CANVASFLOW_MODEL", "gpt-4o-mini"),
            http_backend=backend,  # type: ignore[arg-type]
            timeout=_env_float("CANVASFLOW_TIMEOUT", 120.0) or 120.0,
            max_retries=int(max_retries),
            notes_dir=Path(notes_dir) if notes_dir else None,
            max_cost_dollars=_env_float("CANVASFLOW_MAX_COST", None),
        )

    def budget(self) -> Budget | None:
        if self.max_cost_dollars is None:
            return None
        return Budget(max_cost_dollars=self.max_cost_dollars)

    def create_provider(self) -> OpenAICompatibleProvider:
        """Provider configured from these settings.

        Raises:
            ConfigurationError: If no API key is set.
        """
        if not self.api_key:
            raise ConfigurationError("No API key: set CANVASFLOW_API_KEY or OPENAI_API_KEY")
        return OpenAICompatibleProvider(
            api_key=self.api_key,
            model=self.model,
            base_url=self.base_url,
            timeout=self.timeout,
            max_retries=self.max_retries,
            http_backend=self.http_backend,
        )

    def create_content_store(self) -> ContentStore:
        if self.notes_dir is None:
            return MemoryContentStore()
        return DirectoryContentStore(self.notes_dir)
