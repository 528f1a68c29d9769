"""Regex-list spam predicate."""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Iterable, List, Optional

logger = logging.getLogger(__name__)


class SpamFilter:
    """
    Matches serialized records against a list of regular expressions.

    The list file holds one pattern per line; blank lines and lines starting
    with '#' are ignored, invalid patterns are logged and skipped. A missing
    file means nothing is spam.
    """

    def __init__(self, patterns: Optional[Iterable[str]] = None, path: Optional[str] = None) -> None:
        self.path = Path(path) if path else None
        self._patterns: List[re.Pattern] = []
        if patterns is not None:
            self._patterns = self._compile(patterns)
        elif self.path is not None:
            self.reload()

    @staticmethod
    def _compile(lines: Iterable[str]) -> List[re.Pattern]:
        compiled: List[re.Pattern] = []
        for line in lines:
            entry = line.strip()
            if not entry or entry.startswith("#"):
                continue
            try:
                compiled.append(re.compile(entry))
            except re.error as exc:
                logger.warning("Invalid spam pattern ignored: %s (%s)", entry, exc)
        return compiled

    def reload(self) -> int:
        """Re-read the pattern file; returns the number of active patterns."""
        if self.path is None or not self.path.exists():
            if self.path is not None:
                logger.info("Spam list not found at %s; spam filtering disabled", self.path)
            self._patterns = []
            return 0
        self._patterns = self._compile(self.path.read_text(encoding="utf-8").splitlines())
        return len(self._patterns)

    def is_spam(self, recstr: str) -> bool:
        return any(pattern.search(recstr) for pattern in self._patterns)
