"""In-memory application document with serialised, persisted commands."""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import Callable

    from backend.filesystem.json_store import JsonDocumentStore
    from backend.schemas.app import AppDocument

logger = logging.getLogger(__name__)

T = TypeVar("T")


class DocumentService:
    """Holds the current document and applies admin commands to it.

    A command is a pure function ``document -> (new_document, result)``.
    Commands run one at a time under an asyncio lock; each successful command
    writes the whole document to the store before it becomes current. If the
    command or the write fails, the previous document stays current.
    """

    def __init__(self, store: JsonDocumentStore) -> None:
        self._store = store
        self._lock = asyncio.Lock()
        self._document: AppDocument | None = None

    @property
    def document(self) -> AppDocument:
        if self._document is None:
            self._document = self._store.load()
        return self._document

    def reload(self) -> AppDocument:
        """Drop the cached document and read it again from disk."""
        self._document = self._store.load()
        return self._document

    async def apply(self, command: Callable[[AppDocument], tuple[AppDocument, T]]) -> T:
        async with self._lock:
            updated, result = command(self.document)
            self._store.save(updated)
            self._document = updated
            return result

    async def replace(self, document: AppDocument) -> AppDocument:
        """Overwrite the whole document (last writer wins)."""
        logger.info("Replacing the whole document")
        return await self.apply(lambda _current: (document, document))
