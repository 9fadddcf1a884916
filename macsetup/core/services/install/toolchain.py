"""
Toolchain pre-flight — Command Line Tools and Homebrew itself.

Before any item is installed the package manager must exist, and on
macOS it needs Apple's Command Line Tools.  Missing Command Line Tools
is semi-fatal: the operator can confirm they fixed it out of band,
otherwise the run continues degraded.  A package manager that cannot
be bootstrapped is fatal (``ToolchainError``).
"""

from __future__ import annotations

import logging
import os
import sys
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click

from macsetup.adapters.base import ConfirmationPort, PackageManager
from macsetup.core.services.subprocess_runner import _run_subprocess

logger = logging.getLogger(__name__)

HOMEBREW_TARBALL_URL = "https://github.com/Homebrew/brew/tarball/master"
HOMEBREW_INSTALL_SCRIPT = (
    "https://raw.githubusercontent.com/Homebrew/install/HEAD/install.sh"
)
PREFIX_DIRS = (
    "bin", "etc", "include", "lib", "opt", "sbin",
    "share", "var", "Cellar", "Caskroom",
)


class ToolchainError(Exception):
    """The package manager is missing and could not be installed."""


def shell_exports(prefix: Path) -> list[str]:
    """Environment lines a shell needs for a user-prefix Homebrew."""
    return [
        f'export PATH="{prefix}/bin:$PATH"',
        f'export HOMEBREW_PREFIX="{prefix}"',
        f'export HOMEBREW_CELLAR="{prefix}/Cellar"',
        f'export HOMEBREW_REPOSITORY="{prefix}"',
    ]


class Toolchain:
    """Pre-flight checks and Homebrew bootstrap."""

    def __init__(
        self,
        manager: PackageManager,
        *,
        profile_prefix: Path | None = None,
        echo: Callable[[str], None] = click.echo,
        runner: Callable[..., dict[str, Any]] = _run_subprocess,
        platform: str = sys.platform,
    ):
        self._manager = manager
        self._profile_prefix = profile_prefix
        self._echo = echo
        self._run = runner
        self._platform = platform

    # ── Command Line Tools ───────────────────────────────────────

    def has_command_line_tools(self) -> bool:
        if self._platform != "darwin":
            logger.info("Not macOS — skipping Command Line Tools check")
            return True
        return self._run(["xcode-select", "-p"], timeout=30)["ok"]

    def ensure_command_line_tools(self, confirm: ConfirmationPort) -> bool:
        """Verify the Command Line Tools, triggering their installer if absent.

        Returns:
            True when present (or confirmed by the operator after the
            installer ran), False when the run must go on degraded.
        """
        if self.has_command_line_tools():
            return True

        self._echo(click.style("⚠️  Xcode Command Line Tools are not installed.", fg="yellow"))
        result = self._run(["xcode-select", "--install"], timeout=60)
        if not result["ok"]:
            logger.warning(
                "Could not start the Command Line Tools installer: %s",
                result.get("stderr") or result.get("error"),
            )

        if not confirm.confirm(
            "Finish the Command Line Tools installation, then confirm to continue",
            default=True,
        ):
            logger.warning("Command Line Tools not confirmed — continuing degraded")
            return False

        if not self.has_command_line_tools():
            logger.warning("Command Line Tools still not detected — continuing degraded")
            return False
        return True

    # ── Homebrew ─────────────────────────────────────────────────

    def ensure_package_manager(self) -> None:
        """Install Homebrew when ``brew --version`` fails.

        Raises:
            ToolchainError: Installation failed or brew still missing.
        """
        if self._manager.is_available():
            return

        self._echo("Homebrew not found. Installing Homebrew...")
        if self._profile_prefix is not None:
            self._install_into_prefix(self._profile_prefix)
        else:
            self._install_system()

        if not self._manager.is_available():
            raise ToolchainError("Homebrew is still unavailable after installation")

    def _install_into_prefix(self, prefix: Path) -> None:
        self._echo(f"Installing Homebrew to {prefix} (no admin rights needed)...")
        prefix.mkdir(parents=True, exist_ok=True)
        tarball = prefix / ".homebrew.tar.gz"

        steps = (
            ["curl", "-fsSL", HOMEBREW_TARBALL_URL, "-o", str(tarball)],
            ["tar", "xzf", str(tarball), "-C", str(prefix), "--strip-components=1"],
        )
        try:
            for cmd in steps:
                result = self._run(cmd, timeout=600)
                if not result["ok"]:
                    raise ToolchainError(
                        f"{cmd[0]} failed: {result.get('stderr') or result.get('error')}"
                    )
        finally:
            tarball.unlink(missing_ok=True)

        for name in PREFIX_DIRS:
            (prefix / name).mkdir(exist_ok=True)

        self._echo(click.style("✅ Homebrew installed to user directory", fg="green"))
        self._echo("Add these lines to your shell configuration:")
        for line in shell_exports(prefix):
            self._echo(f"   {line}")

    def _install_system(self) -> None:
        self._echo("This will prompt for your password.")
        script = f'/bin/bash -c "$(curl -fsSL {HOMEBREW_INSTALL_SCRIPT})"'
        result = self._run(["/bin/bash", "-c", script], timeout=1800, interactive=True)
        if not result["ok"]:
            raise ToolchainError(f"Homebrew installer failed: {result.get('error')}")

        # Apple Silicon installs to /opt/homebrew, which is not on PATH yet
        arm_brew = Path("/opt/homebrew/bin")
        if arm_brew.is_dir() and str(arm_brew) not in os.environ.get("PATH", ""):
            os.environ["PATH"] = f"{arm_brew}:{os.environ.get('PATH', '')}"
            zprofile = Path.home() / ".zprofile"
            line = 'eval "$(/opt/homebrew/bin/brew shellenv)"'
            try:
                existing = zprofile.read_text(encoding="utf-8") if zprofile.exists() else ""
                if line not in existing:
                    with zprofile.open("a", encoding="utf-8") as f:
                        f.write(f"\n{line}\n")
            except OSError as e:
                logger.warning("Could not update %s: %s", zprofile, e)

    def update(self, timeout: float = 600) -> bool:
        """Run ``brew update``; failure is only a warning."""
        self._echo("Updating Homebrew...")
        result = self._manager.run(["update"], timeout=timeout, stream=False)
        if not result.ok:
            logger.warning("brew update failed — continuing with current definitions")
        return result.ok
