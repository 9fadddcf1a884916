"""
Shell configuration — collect and restore dotfiles.

Only files from a fixed list are considered; missing ones are simply
not collected.  Restoring backs up anything it is about to overwrite.
"""

from __future__ import annotations

import logging
import os
import shutil
from collections.abc import Callable
from pathlib import Path

import click

from macsetup.core.services.install.toolchain import shell_exports
from macsetup.core.services.snapshot.file_backup import backup_file, contained_path
from macsetup.core.services.snapshot.models import ShellConfig, ShellConfigFile

logger = logging.getLogger(__name__)

SHELL_CONFIG_FILES = (
    # Shells
    ".zshrc",
    ".zprofile",
    ".zshenv",
    ".bashrc",
    ".bash_profile",
    ".profile",
    # Tools
    ".gitconfig",
    ".gitignore_global",
    ".ssh/config",
    ".tmux.conf",
    ".vimrc",
    # Shell enhancements
    ".aliases",
    ".functions",
    ".exports",
    ".config/starship.toml",
    # Development
    ".tool-versions",
    ".asdfrc",
    ".cargo/config.toml",
    # Editors
    ".editorconfig",
    ".config/nvim/init.vim",
    ".config/nvim/init.lua",
)

# Files that get the Homebrew env block in profile mode
BREW_ENV_TARGETS = (".zshrc", ".bashrc", ".bash_profile")
_BREW_ENV_MARKER = "HOMEBREW_PREFIX="


def detect_shell() -> str:
    shell = os.environ.get("SHELL", "")
    return shell.rsplit("/", 1)[-1] or "unknown"


def collect_shell_config(home: Path, dest_dir: Path) -> ShellConfig:
    """Copy existing dotfiles under ``dest_dir`` and describe them."""
    config = ShellConfig(shell=detect_shell())
    for rel in SHELL_CONFIG_FILES:
        src = home / rel
        if not src.is_file():
            continue
        target = dest_dir / rel
        try:
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copy2(src, target)
        except OSError as e:
            logger.warning("Could not collect %s: %s", rel, e)
            continue
        st = src.stat()
        config.files.append(ShellConfigFile(
            path=rel,
            size=st.st_size,
            mode=format(st.st_mode & 0o777, "o"),
        ))
        logger.debug("Collected %s (%d bytes)", rel, st.st_size)
    return config


def install_shell_config(
    config: ShellConfig,
    files_dir: Path,
    home: Path,
    *,
    echo: Callable[[str], None] = click.echo,
) -> dict:
    """Restore collected dotfiles into ``home``.

    Returns:
        ``{"installed": [...], "skipped": [...], "failed": [...], "backups": [...]}``
    """
    result: dict[str, list[str]] = {"installed": [], "skipped": [], "failed": [], "backups": []}
    echo("Installing shell configurations...")

    for entry in config.files:
        try:
            src = contained_path(files_dir, entry.path)
            target = contained_path(home, entry.path)
        except ValueError as e:
            logger.warning("Skipping shell config entry: %s", e)
            echo(click.style(f"  ❌ {entry.path}: outside the home directory", fg="red"))
            result["failed"].append(entry.path)
            continue

        if not src.is_file():
            echo(f"  Skipping {entry.path} (missing from archive)")
            result["skipped"].append(entry.path)
            continue

        try:
            backup = backup_file(target)
            if backup is not None:
                echo(f"  Backed up existing {entry.path} to {backup.name}")
                result["backups"].append(str(backup))
            target.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(src, target)
            target.chmod(int(entry.mode, 8))
        except (OSError, ValueError) as e:
            logger.warning("Failed to install %s: %s", entry.path, e)
            echo(click.style(f"  ❌ {entry.path}: {e}", fg="red"))
            result["failed"].append(entry.path)
            continue

        echo(f"  Installed: {entry.path}")
        result["installed"].append(entry.path)

    return result


def brew_env_block(prefix: Path) -> str:
    lines = ["", "# Homebrew (user-specific installation)", *shell_exports(prefix), ""]
    return "\n".join(lines)


def add_brew_env(
    home: Path,
    prefix: Path,
    *,
    echo: Callable[[str], None] = click.echo,
) -> list[str]:
    """Append the Homebrew env block to shell rc files lacking one.

    Returns:
        Relative names of the files that were updated.
    """
    updated: list[str] = []
    block = brew_env_block(prefix)
    for name in BREW_ENV_TARGETS:
        path = home / name
        try:
            content = path.read_text(encoding="utf-8") if path.exists() else ""
            if _BREW_ENV_MARKER in content:
                echo(f"  {name}: Homebrew config already present, skipping")
                continue
            with path.open("a", encoding="utf-8") as f:
                f.write(block)
        except OSError as e:
            logger.warning("Failed to update %s: %s", path, e)
            continue
        echo(f"  {name}: added Homebrew configuration")
        updated.append(name)
    return updated
