"""Content stores - where reference nodes read and write notes.

Notes are addressed by name. Two implementations:
- MemoryContentStore: a dict, for tests and mock runs
- DirectoryContentStore: one markdown file per note under a root directory
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol, runtime_checkable

from canvasflow.core.errors import CanvasflowError

logger = logging.getLogger(__name__)


class ContentStoreError(CanvasflowError):
    """A note could not be read or written."""


class NoteNotFoundError(ContentStoreError):
    """The named note does not exist."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"Note not found: {name}")


@runtime_checkable
class ContentStore(Protocol):
    """Named note storage."""

    async def read(self, name: str) -> str: ...

    async def write(self, name: str, content: str) -> None: ...

    async def exists(self, name: str) -> bool: ...


@dataclass
class MemoryContentStore:
    """Notes kept in a dict."""

    notes: dict[str, str] = field(default_factory=dict)

    async def read(self, name: str) -> str:
        try:
            return self.notes[name]
        except KeyError:
            raise NoteNotFoundError(name) from None

    async def write(self, name: str, content: str) -> None:
        self.notes[name] = content

    async def exists(self, name: str) -> bool:
        return name in self.notes


@dataclass
class DirectoryContentStore:
    """Notes stored as <root>/<name>.md.

    Names may contain subfolders but must stay inside the root.
    """

    root: Path
    suffix: str = ".md"

    def __post_init__(self) -> None:
        self.root = Path(self.root)

    def path_for(self, name: str) -> Path:
        """File path of a note.

        Raises:
            ContentStoreError: If the name is empty or escapes the root.
        """
        if not name.strip():
            raise ContentStoreError("Note name is empty")
        root = self.root.resolve()
        path = (root / f"{name}{self.suffix}").resolve()
        if not path.is_relative_to(root):
            raise ContentStoreError(f"Note name escapes the store: {name}")
        return path

    async def read(self, name: str) -> str:
        path = self.path_for(name)
        try:
            return await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError:
            raise NoteNotFoundError(name) from None
        except OSError as e:
            raise ContentStoreError(f"Cannot read note {name}: {e}") from e

    async def write(self, name: str, content: str) -> None:
        path = self.path_for(name)
        logger.debug("note_write: name=%s, chars=%d", name, len(content))
        try:
            await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(path.write_text, content, encoding="utf-8")
        except OSError as e:
            raise ContentStoreError(f"Cannot write note {name}: {e}") from e

    async def exists(self, name: str) -> bool:
        return await asyncio.to_thread(self.path_for(name).is_file)
