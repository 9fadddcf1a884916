"""
Ledger file persistence — atomic read/write for ProgressLedger.

The ledger is stored as JSON at the configured progress file path.
Writes are atomic (write to temp file, then rename) so a crash
mid-write never corrupts the previous successful save.
"""

from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path

from pydantic import ValidationError

from macsetup.core.models.ledger import ProgressLedger

logger = logging.getLogger(__name__)


class LedgerPersistenceError(Exception):
    """Raised when the ledger cannot be persisted at all."""


def load_ledger(path: Path) -> ProgressLedger:
    """Load the progress ledger from a JSON file.

    Args:
        path: Path to the progress file.

    Returns:
        ProgressLedger. Missing, unreadable or corrupt files yield a
        fresh ledger; this never fails.
    """
    if not path.is_file():
        logger.info("No progress file at %s — starting fresh", path)
        return ProgressLedger()

    try:
        data = json.loads(path.read_text(encoding="utf-8"))
        ledger = ProgressLedger.model_validate(data)
        logger.debug("Loaded ledger from %s (lastUpdated=%s)", path, ledger.last_updated)
        return ledger
    except json.JSONDecodeError as e:
        logger.warning("Corrupt progress file %s: %s — starting fresh", path, e)
    except (OSError, ValidationError) as e:
        logger.warning("Cannot load progress from %s: %s — starting fresh", path, e)
    return ProgressLedger()


def save_ledger(ledger: ProgressLedger, path: Path) -> None:
    """Save the ledger to a JSON file (atomic write).

    Args:
        ledger: The ledger to save.
        path: Target path for the progress file.

    Raises:
        OSError: If the file cannot be written.
    """
    ledger.touch()
    path.parent.mkdir(parents=True, exist_ok=True)

    data = ledger.model_dump(mode="json", by_alias=True)
    content = json.dumps(data, indent=2, ensure_ascii=False) + "\n"

    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".progress_", suffix=".tmp")
    tmp = Path(tmp_path)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
        os.replace(tmp, path)
        logger.debug("Ledger saved to %s", path)
    except OSError as e:
        tmp.unlink(missing_ok=True)
        logger.error("Failed to save ledger to %s: %s", path, e)
        raise


def prepare_ledger_path(path: Path) -> None:
    """Make sure the ledger can be written before any work starts.

    Raises:
        LedgerPersistenceError: Directory cannot be created or written.
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise LedgerPersistenceError(f"Cannot create {path.parent}: {e}") from e

    if not os.access(path.parent, os.W_OK):
        raise LedgerPersistenceError(f"Progress directory is not writable: {path.parent}")
    if path.exists() and not os.access(path, os.W_OK):
        raise LedgerPersistenceError(f"Progress file is not writable: {path}")
