"""
Run log — append-only record of executed commands.

One timestamped line per executed command, per output line and per
classification event.  The log is append-only: lines are never
rewritten.  A ``RunLog`` without a path is disabled and discards
everything.
"""

from __future__ import annotations

import logging
from datetime import UTC, datetime
from pathlib import Path

logger = logging.getLogger(__name__)


class RunLog:
    """Append-only text log writer."""

    def __init__(self, path: Path | None = None):
        self._path = path
        self._broken = False

    @property
    def path(self) -> Path | None:
        return self._path

    @property
    def enabled(self) -> bool:
        return self._path is not None and not self._broken

    def write(self, message: str) -> None:
        """Append one timestamped line."""
        if self._path is None or self._broken:
            return

        stamp = datetime.now(UTC).isoformat(timespec="seconds")
        line = f"{stamp} {message.rstrip()}\n"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            # Stop trying after the first failure; the run itself goes on.
            self._broken = True
            logger.error("Failed to write run log %s: %s", self._path, e)

    def read_lines(self) -> list[str]:
        if self._path is None or not self._path.is_file():
            return []
        try:
            return self._path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            logger.error("Failed to read run log: %s", e)
            return []
