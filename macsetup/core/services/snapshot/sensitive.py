"""
Sensitive files — credentials and keys, opt-in only.

Collected content is encrypted with a freshly generated key unless
the operator disables it.  Restoring needs that key, asks before
overwriting anything, backs up existing files and restores the
original permission bits.
"""

from __future__ import annotations

import fnmatch
import logging
import os
from collections.abc import Callable
from pathlib import Path

import click

from macsetup.adapters.base import ConfirmationPort
from macsetup.core.services.snapshot.crypto import (
    DecryptionError,
    decrypt_bytes,
    encrypt_bytes,
)
from macsetup.core.services.snapshot.file_backup import backup_file, contained_path
from macsetup.core.services.snapshot.models import (
    SensitiveData,
    SensitiveFile,
    SensitiveSummary,
)

logger = logging.getLogger(__name__)

# (pattern relative to $HOME, category); wildcards only in the last segment
SENSITIVE_PATTERNS: tuple[tuple[str, str], ...] = (
    (".ssh/id_*", "ssh"),
    (".ssh/config", "ssh"),
    (".ssh/known_hosts", "ssh"),
    (".ssh/authorized_keys", "ssh"),
    (".aws/credentials", "aws"),
    (".aws/config", "aws"),
    (".npmrc", "npm"),
    (".git-credentials", "git"),
    (".netrc", "git"),
    (".gnupg/pubring.kbx", "gpg"),
    (".gnupg/trustdb.gpg", "gpg"),
    (".gnupg/private-keys-v1.d/*", "gpg"),
    (".kube/config", "kubernetes"),
    (".docker/config.json", "docker"),
    (".gcloud/*", "gcloud"),
    (".azure/*", "azure"),
    (".bundle/config", "ruby"),
    (".cargo/credentials", "rust"),
    (".gradle/gradle.properties", "gradle"),
    (".m2/settings.xml", "maven"),
    (".env*", "env"),
)


def _matches(home: Path, pattern: str) -> list[Path]:
    target = home / pattern
    if "*" not in pattern:
        return [target] if target.is_file() else []
    parent = target.parent
    if not parent.is_dir():
        return []
    try:
        return sorted(
            p for p in parent.iterdir()
            if p.is_file() and fnmatch.fnmatch(p.name, target.name)
        )
    except OSError as e:
        logger.warning("Cannot read %s: %s", parent, e)
        return []


def summarize(files: list[SensitiveFile]) -> SensitiveSummary:
    ssh = sum(1 for f in files if f.relative_path.startswith(".ssh/"))
    aws = sum(1 for f in files if f.relative_path.startswith(".aws/"))
    npm = sum(1 for f in files if f.relative_path.endswith(".npmrc"))
    return SensitiveSummary(
        total_files=len(files),
        ssh_keys=ssh,
        aws_files=aws,
        npm_tokens=npm,
        other_secrets=len(files) - ssh - aws - npm,
    )


def collect_sensitive(
    home: Path,
    dest_dir: Path,
    *,
    key: str | None = None,
    echo: Callable[[str], None] = click.echo,
) -> SensitiveData:
    """Copy matching files under ``dest_dir``, encrypted when ``key`` is set."""
    echo("Collecting sensitive files...")
    files: list[SensitiveFile] = []
    seen: set[str] = set()

    for pattern, category in SENSITIVE_PATTERNS:
        for src in _matches(home, pattern):
            rel = src.relative_to(home).as_posix()
            if rel in seen:
                continue
            seen.add(rel)
            try:
                content = src.read_bytes()
                mode = src.stat().st_mode & 0o777
            except OSError as e:
                logger.warning("Cannot read %s: %s", rel, e)
                continue

            payload = encrypt_bytes(content, key) if key else content
            target = dest_dir / rel
            target.parent.mkdir(parents=True, exist_ok=True)
            target.write_bytes(payload)
            target.chmod(0o600)

            files.append(SensitiveFile(
                relative_path=rel,
                category=category,
                size=len(content),
                permissions=format(mode, "o"),
                encrypted=bool(key),
            ))
            echo(f"  Collected: {rel} ({len(content)} bytes){' 🔐' if key else ''}")

    return SensitiveData(files=files, summary=summarize(files))


def _write_private(target: Path, content: bytes, mode: int) -> None:
    """Write ``content`` owner-only, then apply the recorded ``mode``."""
    fd = os.open(target, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    # An existing file keeps its old mode through O_CREAT
    os.fchmod(fd, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(content)
    os.chmod(target, mode)


def install_sensitive(
    data: SensitiveData,
    files_dir: Path,
    home: Path,
    *,
    key: str | None = None,
    confirm: ConfirmationPort | None = None,
    echo: Callable[[str], None] = click.echo,
) -> dict:
    """Restore sensitive files into ``home``.

    Returns:
        ``{"installed": [...], "failed": [...], "skipped": bool, "error": str}``
    """
    result: dict = {"installed": [], "failed": [], "skipped": False, "error": ""}
    if not data.files:
        echo("No sensitive files to install.")
        return result

    if data.encrypted and not key:
        msg = "Sensitive files are encrypted but no decryption key was provided (use --decrypt-key)."
        echo(click.style(f"❌ {msg}", fg="red"))
        result["skipped"] = True
        result["error"] = msg
        return result

    s = data.summary
    echo(click.style("⚠️  About to install sensitive files:", fg="yellow"))
    echo(f"  - SSH keys: {s.ssh_keys}")
    echo(f"  - AWS credentials: {s.aws_files}")
    echo(f"  - NPM tokens: {s.npm_tokens}")
    echo(f"  - Other secrets: {s.other_secrets}")
    if confirm is not None and not confirm.confirm(
        "Existing files will be backed up and overwritten. Continue?",
        default=False,
    ):
        echo("Skipped sensitive files.")
        result["skipped"] = True
        return result

    for entry in data.files:
        try:
            src = contained_path(files_dir, entry.relative_path)
            target = contained_path(home, entry.relative_path)
        except ValueError as e:
            logger.warning("Skipping sensitive entry: %s", e)
            echo(click.style(
                f"  ❌ Refusing {entry.relative_path}: outside the home directory", fg="red",
            ))
            result["failed"].append(entry.relative_path)
            continue

        try:
            mode = int(entry.permissions, 8)
            content = src.read_bytes()
            if entry.encrypted:
                content = decrypt_bytes(content, key or "")
            backup = backup_file(target)
            if backup is not None:
                echo(f"  📋 Backed up {entry.relative_path} to {backup.name}")
            target.parent.mkdir(parents=True, exist_ok=True)
            _write_private(target, content, mode)
        except DecryptionError as e:
            echo(click.style(f"  ❌ Failed to decrypt {entry.relative_path}: {e}", fg="red"))
            result["failed"].append(entry.relative_path)
            continue
        except (OSError, ValueError) as e:
            logger.warning("Failed to install %s: %s", entry.relative_path, e)
            echo(click.style(f"  ❌ Failed to install {entry.relative_path}: {e}", fg="red"))
            result["failed"].append(entry.relative_path)
            continue

        echo(f"  ✅ Installed: {entry.relative_path}")
        result["installed"].append(entry.relative_path)

    if result["installed"]:
        echo("🔐 Check permissions: chmod 700 ~/.ssh && chmod 600 ~/.ssh/id_*")
    return result
