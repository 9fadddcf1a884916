"""
Backup-before-overwrite for restored files.

Creates timestamped copies (``PATH.bak.YYYYMMDD_HHMMSS``) next to the
original, and checks that restore targets stay inside their root.
Used by the shell-config and sensitive-file installers.
"""

from __future__ import annotations

import logging
import shutil
import time
from pathlib import Path

logger = logging.getLogger(__name__)


def backup_file(path: Path) -> Path | None:
    """Copy ``path`` aside if it exists.

    Returns:
        The backup path, or None when there was nothing to back up.

    Raises:
        OSError: The copy failed; callers must not overwrite the original.
    """
    if not path.exists():
        return None

    ts = time.strftime("%Y%m%d_%H%M%S")
    dest = path.with_name(f"{path.name}.bak.{ts}")
    n = 1
    while dest.exists():
        dest = path.with_name(f"{path.name}.bak.{ts}_{n}")
        n += 1

    shutil.copy2(path, dest)
    logger.info("Backed up %s → %s", path, dest)
    return dest


def contained_path(root: Path, rel: str) -> Path:
    """``root / rel``, refusing paths that would land outside ``root``.

    Archive indexes are untrusted: an absolute path or a ``..`` that
    escapes ``root`` is rejected, as ``extract_archive`` does for tar
    members.

    Raises:
        ValueError: ``rel`` is empty, absolute, or escapes ``root``.
    """
    if not rel or Path(rel).is_absolute():
        raise ValueError(f"unsafe path in archive index: {rel!r}")
    target = root / rel
    try:
        target.resolve().relative_to(root.resolve())
    except ValueError:
        raise ValueError(f"unsafe path in archive index: {rel!r}") from None
    return target
