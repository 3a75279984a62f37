"""JSON file storage for the whole application document."""

from __future__ import annotations

import json
import logging
import os
import tempfile
from dataclasses import dataclass
from typing import TYPE_CHECKING

from backend.schemas.app import AppDocument

if TYPE_CHECKING:
    from pathlib import Path

logger = logging.getLogger(__name__)


@dataclass
class JsonDocumentStore:
    """Reads and writes ``{apis, pages, sidebar, users, settings}`` as one JSON file.

    A missing file reads as an empty document. A file that does not parse
    raises instead of being replaced, so a corrupt document is never lost.
    """

    path: Path

    def exists(self) -> bool:
        return self.path.is_file()

    def load(self) -> AppDocument:
        """Read the document from disk.

        Raises json.JSONDecodeError for malformed JSON and
        pydantic.ValidationError for JSON of the wrong shape.
        """
        if not self.path.exists():
            logger.info("No data file at %s, starting with an empty document", self.path)
            return AppDocument()
        raw = self.path.read_text(encoding="utf-8")
        if not raw.strip():
            return AppDocument()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.error("Data file %s is not valid JSON", self.path)
            raise
        return AppDocument.model_validate(data)

    def save(self, document: AppDocument) -> None:
        """Write the whole document atomically (temp file + rename)."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps(document.model_dump(mode="json", by_alias=True), indent=2)
        fd, tmp_name = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as tmp:
                tmp.write(payload)
                tmp.write("\n")
            os.replace(tmp_name, self.path)
        except BaseException:
            if os.path.exists(tmp_name):
                os.unlink(tmp_name)
            raise
        logger.info(
            "Saved document to %s (%d apis, %d pages, %d users)",
            self.path,
            len(document.apis),
            len(document.pages),
            len(document.users),
        )
