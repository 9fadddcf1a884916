"""
Collector — build a setup archive from the current machine.

Each section is collected into a staging directory, then the whole
directory is packed by ``create_archive``.  A section that fails is
logged and left out; only the brew section is mandatory.
"""

from __future__ import annotations

import logging
import socket
import tempfile
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click

from macsetup.core.services.snapshot import archive
from macsetup.core.services.snapshot.applications import collect_applications
from macsetup.core.services.snapshot.brew_collect import collect_brew
from macsetup.core.services.snapshot.crypto import generate_key
from macsetup.core.services.snapshot.models import ArchiveManifest
from macsetup.core.services.snapshot.sensitive import collect_sensitive
from macsetup.core.services.snapshot.shell_config import collect_shell_config
from macsetup.core.services.subprocess_runner import _run_subprocess

logger = logging.getLogger(__name__)


def collect_setup(
    output: Path,
    *,
    home: Path,
    brew_path: str = "brew",
    include_sensitive: bool = False,
    encrypt_sensitive: bool = True,
    include_applications: bool = True,
    runner: Callable[..., dict[str, Any]] = _run_subprocess,
    echo: Callable[[str], None] = click.echo,
) -> dict:
    """Collect this machine's setup into ``output``.

    Returns:
        ``{"archive": str, "sections": [...], "key": str | None, "counts": {...}}``

    Raises:
        BrewCollectError: brew state could not be read.
    """
    sections: list[str] = []
    counts: dict[str, int] = {}
    key: str | None = None

    with tempfile.TemporaryDirectory(prefix="macsetup_collect_") as tmp:
        staging = Path(tmp)

        echo("Collecting Homebrew packages...")
        brew = collect_brew(brew_path, runner=runner)
        archive.write_json(staging / archive.BREW, brew)
        sections.append("brew")
        counts.update({k: len(v) for k, v in brew.items()})

        echo("Collecting shell configuration...")
        shell = collect_shell_config(home, staging / archive.SHELL_FILES)
        archive.write_json(staging / archive.SHELL, shell)
        sections.append("shell")
        counts["shell_files"] = len(shell.files)

        if include_applications:
            echo("Collecting applications...")
            apps = collect_applications(home, runner=runner, brew_path=brew_path)
            archive.write_json(staging / archive.APPLICATIONS, apps)
            sections.append("applications")
            counts["applications"] = len(apps.all_applications)

        if include_sensitive:
            key = generate_key() if encrypt_sensitive else None
            sensitive = collect_sensitive(
                home, staging / archive.SENSITIVE_FILES, key=key, echo=echo,
            )
            archive.write_json(staging / archive.SENSITIVE, sensitive)
            sections.append("sensitive")
            counts["sensitive_files"] = len(sensitive.files)
            if not sensitive.files:
                key = None

        manifest = ArchiveManifest(hostname=socket.gethostname(), sections=sections)
        archive.write_json(staging / archive.MANIFEST, manifest)
        archive.create_archive(staging, output)

    return {"archive": str(output), "sections": sections, "key": key, "counts": counts}
