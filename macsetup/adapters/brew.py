"""
Homebrew adapter — the Command Runner.

The SINGLE PLACE where the package-manager process is spawned.
Output is streamed line by line to the operator and to the run log,
and the whole process group is killed when the timeout expires.
Streaming is purely cosmetic: classification only ever sees the
collected text in the returned ``CommandResult``.
"""

from __future__ import annotations

import logging
import os
import shlex
import shutil
import signal
import subprocess
import threading
import time
from collections.abc import Callable, Sequence
from pathlib import Path

import click

from macsetup.adapters.base import PackageManager
from macsetup.core.models.outcome import CommandResult
from macsetup.core.persistence.run_log import RunLog

logger = logging.getLogger(__name__)

# Keep brew from updating itself in the middle of every install;
# the installer runs `brew update` once up front.
_DEFAULT_ENV = {
    "HOMEBREW_NO_AUTO_UPDATE": "1",
    "HOMEBREW_NO_ENV_HINTS": "1",
}

_MAX_OUTPUT_CHARS = 20_000


def decorate_line(line: str) -> str:
    """Style one line of brew output for the console."""
    stripped = line.strip()
    if stripped.startswith("==>"):
        return click.style(f"    {stripped}", fg="cyan", bold=True)
    if stripped.startswith("Error:"):
        return click.style(f"    {stripped}", fg="red")
    if stripped.startswith("Warning:"):
        return click.style(f"    {stripped}", fg="yellow")
    if stripped.startswith(("Downloading", "Fetching", "Already downloaded")) or "###" in stripped:
        return click.style(f"    {stripped}", fg="blue")
    if stripped.startswith(("Pouring", "Installing", "Moving App", "🍺")):
        return click.style(f"    {stripped}", fg="green")
    return f"    {stripped}"


def brew_path_for(prefix: Path | None) -> str:
    """Resolve the brew executable for a prefix (or the one on PATH)."""
    if prefix is not None:
        return str(prefix / "bin" / "brew")
    return shutil.which("brew") or "brew"


class BrewAdapter(PackageManager):
    """Run ``brew`` subcommands with a timeout, streaming their output."""

    def __init__(
        self,
        brew_path: str = "brew",
        *,
        run_log: RunLog | None = None,
        echo: Callable[[str], None] = click.echo,
        env_overrides: dict[str, str] | None = None,
    ):
        self._brew_path = brew_path
        self._run_log = run_log or RunLog()
        self._echo = echo
        self._env_overrides = {**_DEFAULT_ENV, **(env_overrides or {})}

    @property
    def name(self) -> str:
        return "brew"

    @property
    def brew_path(self) -> str:
        return self._brew_path

    def run(
        self,
        args: Sequence[str],
        *,
        timeout: float,
        stream: bool = True,
    ) -> CommandResult:
        args = list(args)
        cmd = [self._brew_path, *args]
        self._run_log.write(f"$ {shlex.join(cmd)}")
        logger.debug("Executing: %s (timeout=%ss)", cmd, timeout)

        start = time.monotonic()
        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                text=True,
                errors="replace",
                env={**os.environ, **self._env_overrides},
                start_new_session=True,
            )
        except OSError as e:
            self._run_log.write(f"  spawn failed: {e}")
            return CommandResult(args=args, error=str(e), output=str(e))

        expired = threading.Event()

        def _kill() -> None:
            # A command that already exited is not a timeout; leftover
            # children holding the pipe are still killed
            if proc.poll() is None:
                expired.set()
            try:
                os.killpg(proc.pid, signal.SIGKILL)
            except (ProcessLookupError, PermissionError):
                proc.kill()

        timer = threading.Timer(timeout, _kill)
        timer.daemon = True
        timer.start()

        lines: list[str] = []
        try:
            if proc.stdout is not None:
                for raw in proc.stdout:
                    line = raw.rstrip("\n")
                    lines.append(line)
                    self._run_log.write(f"  | {line}")
                    if stream and line.strip():
                        self._echo(decorate_line(line))
            proc.wait()
        finally:
            timer.cancel()
            if proc.stdout is not None:
                proc.stdout.close()

        elapsed_ms = int((time.monotonic() - start) * 1000)
        output = "\n".join(lines)[-_MAX_OUTPUT_CHARS:]

        if expired.is_set():
            self._run_log.write(f"  timed out after {timeout}s")
            return CommandResult(
                args=args,
                output=output,
                timed_out=True,
                duration_ms=elapsed_ms,
            )

        self._run_log.write(f"  exit {proc.returncode} ({elapsed_ms}ms)")
        return CommandResult(
            args=args,
            returncode=proc.returncode,
            output=output,
            duration_ms=elapsed_ms,
        )
