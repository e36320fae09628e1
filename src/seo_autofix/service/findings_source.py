"""Page sources that feed findings into a scan.

The scan service never checks links itself. It walks pages supplied by a
source, where each page already carries the findings an external checker
produced for it.
"""

import json
import logging
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Union

from pydantic import ValidationError

from ..models import SourcePage

logger = logging.getLogger(__name__)


class FindingsSource(ABC):
    """Base class for scan page sources.

    Sources are re-read on every batch, so the page count may change while a
    scan is running.
    """

    @abstractmethod
    def count_pages(self) -> int:
        """Return the current number of pages to scan."""
        pass

    @abstractmethod
    def pages(self, offset: int, limit: int) -> list[SourcePage]:
        """Return up to `limit` pages starting at `offset`."""
        pass


class StaticFindingsSource(FindingsSource):
    """Source backed by an in-memory list of pages."""

    def __init__(self, pages: list[SourcePage]):
        self._pages = list(pages)

    def count_pages(self) -> int:
        return len(self._pages)

    def pages(self, offset: int, limit: int) -> list[SourcePage]:
        return self._pages[offset:offset + limit]


class FindingsFileSource(FindingsSource):
    """Source backed by a JSON findings document.

    Expected format:
        {"pages": [{"url": "...", "title": "...", "findings": [...]}]}

    The file is re-read whenever its modification time changes.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._mtime: float = -1.0
        self._pages: list[SourcePage] = []

    def _load(self) -> list[SourcePage]:
        if not self.path.exists():
            logger.warning(f"Findings file not found: {self.path}")
            self._mtime = -1.0
            self._pages = []
            return self._pages

        mtime = self.path.stat().st_mtime
        if mtime == self._mtime:
            return self._pages

        try:
            document = json.loads(self.path.read_text(encoding="utf-8"))
            self._pages = [SourcePage(**page) for page in document.get("pages", [])]
        except (json.JSONDecodeError, ValidationError, AttributeError, TypeError) as e:
            raise ValueError(f"Invalid findings file {self.path}: {e}") from e

        self._mtime = mtime
        logger.debug(f"Loaded {len(self._pages)} pages from {self.path}")
        return self._pages

    def count_pages(self) -> int:
        return len(self._load())

    def pages(self, offset: int, limit: int) -> list[SourcePage]:
        return self._load()[offset:offset + limit]
