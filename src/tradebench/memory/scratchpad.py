"""Persist agent notes between trading windows as a JSON-lines file."""

import json
import logging
import threading
from datetime import (
    datetime,
    timezone,
)
from pathlib import Path
from typing import (
    Iterable,
    List,
)

from pydantic import (
    BaseModel,
    Field,
    ValidationError,
)

logger = logging.getLogger(__name__)

DEFAULT_RECENT = 200
MAX_RECENT = 2000


class ScratchpadEntry(BaseModel):
    """One note left by the agent (or an operator) for the next window."""

    ts: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    author: str = "agent"
    message: str
    tags: List[str] = Field(default_factory=list)


class Scratchpad:
    """
    Append-only note store.

    Each entry is written as one JSON line, so a torn or hand-edited line only loses that entry;
    unreadable lines are skipped on read.
    """

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)
        self._lock = threading.Lock()

    def init(self) -> None:
        """Ensure the backing file exists."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if not self.path.exists():
            self.path.touch()  # Create an empty file if it doesn't exist

    def add(
        self, message: str, tags: Iterable[str] | None = None, author: str | None = None
    ) -> ScratchpadEntry:
        """Append a note and return the stored entry."""
        if not isinstance(message, str) or not message.strip():
            raise ValueError("message (non-empty string) required")
        entry = ScratchpadEntry(author=author or "agent", message=message, tags=tags or [])
        with self._lock:
            self.init()
            with self.path.open("a", encoding="utf-8") as f:
                f.write(entry.model_dump_json() + "\n")
        logger.info("Scratchpad note added by %s (%d chars)", entry.author, len(message))
        return entry

    def recent(self, limit: int = DEFAULT_RECENT) -> List[ScratchpadEntry]:
        """Return up to *limit* most recent entries, oldest first."""
        limit = max(1, min(MAX_RECENT, int(limit)))
        if not self.path.exists():
            return []
        with self._lock:
            lines = self.path.read_text(encoding="utf-8").splitlines()
        entries = []
        for line in lines[-limit:]:
            if not line.strip():
                continue
            try:
                entries.append(ScratchpadEntry.model_validate(json.loads(line)))
            except (ValueError, ValidationError):
                logger.debug("Skipping unreadable scratchpad line: %r", line)
        return entries

    def clear(self) -> None:
        with self._lock:
            self.path.unlink(missing_ok=True)
        logger.info("Scratchpad cleared")
