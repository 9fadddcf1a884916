"""
Subprocess runner for helper commands.

Used for everything that is not a package-manager item operation:
``xcode-select``, the Homebrew bootstrap, ``mas``.  Item installs go
through ``BrewAdapter`` instead, which streams and kills on timeout.
"""

from __future__ import annotations

import logging
import os
import subprocess
import time
from typing import Any

logger = logging.getLogger(__name__)


def _run_subprocess(
    cmd: list[str],
    *,
    timeout: int = 120,
    interactive: bool = False,
    env_overrides: dict[str, str] | None = None,
    cwd: str | None = None,
) -> dict[str, Any]:
    """Run a helper command; never raises.

    Args:
        cmd: Command list for ``subprocess.run()``.
        timeout: Seconds before ``TimeoutExpired``.
        interactive: Inherit the terminal instead of capturing output
            (installers that prompt for a password).
        env_overrides: Extra env vars.
        cwd: Working directory for the command.

    Returns:
        ``{"ok": True, "stdout": "...", "elapsed_ms": N}`` on success,
        ``{"ok": False, "error": "...", ...}`` on failure.
    """
    env = os.environ.copy()
    if env_overrides:
        env.update(env_overrides)

    start = time.monotonic()
    try:
        if interactive:
            result = subprocess.run(cmd, timeout=timeout, env=env, cwd=cwd)
            stdout, stderr = "", ""
        else:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                timeout=timeout,
                env=env,
                cwd=cwd,
            )
            stdout, stderr = result.stdout or "", result.stderr or ""
    except subprocess.TimeoutExpired:
        return {"ok": False, "error": f"Command timed out ({timeout}s)"}
    except OSError as e:
        logger.debug("Cannot run %s: %s", cmd[0], e)
        return {"ok": False, "error": str(e)}

    elapsed_ms = int((time.monotonic() - start) * 1000)
    if result.returncode == 0:
        return {"ok": True, "stdout": stdout, "elapsed_ms": elapsed_ms}

    return {
        "ok": False,
        "error": f"Command failed (exit {result.returncode})",
        "stderr": stderr[-2000:],
        "stdout": stdout[-2000:],
        "elapsed_ms": elapsed_ms,
    }
