"""
Setup archive — the on-disk format shared by ``collect`` and ``install``.

A ``.tar.gz`` (or an already-extracted directory) laid out as:

    manifest.json
    brew.json
    applications.json
    shell/shell.json        shell/files/<path relative to $HOME>
    sensitive/sensitive.json  sensitive/files/<path relative to $HOME>

Only ``manifest.json`` is mandatory.  Members that would extract
outside the target directory are skipped.
"""

from __future__ import annotations

import contextlib
import json
import logging
import tarfile
import tempfile
from collections.abc import Iterator
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ValidationError

from macsetup.core.models.package import Snapshot
from macsetup.core.services.snapshot.models import (
    ApplicationsData,
    ArchiveManifest,
    SensitiveData,
    ShellConfig,
)

logger = logging.getLogger(__name__)

MANIFEST = "manifest.json"
BREW = "brew.json"
APPLICATIONS = "applications.json"
SHELL = "shell/shell.json"
SHELL_FILES = "shell/files"
SENSITIVE = "sensitive/sensitive.json"
SENSITIVE_FILES = "sensitive/files"


class ArchiveError(Exception):
    """Archive missing, unreadable, or not a setup archive."""


def _read_json(path: Path) -> Any:
    try:
        return json.loads(path.read_text(encoding="utf-8"))
    except (OSError, json.JSONDecodeError) as e:
        raise ArchiveError(f"Cannot read {path.name}: {e}") from e


def write_json(path: Path, data: Any) -> None:
    if isinstance(data, BaseModel):
        data = data.model_dump(mode="json")
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(data, indent=2, ensure_ascii=False) + "\n", encoding="utf-8")


class SetupArchive:
    """Read access to an extracted setup archive."""

    def __init__(self, root: Path):
        self.root = root
        manifest_path = root / MANIFEST
        if not manifest_path.is_file():
            raise ArchiveError(f"Not a setup archive (no {MANIFEST}): {root}")
        try:
            self.manifest = ArchiveManifest.model_validate(_read_json(manifest_path))
        except ValidationError as e:
            raise ArchiveError(f"Invalid {MANIFEST}: {e}") from e

    def _section(self, rel: str, model: type[BaseModel]) -> Any:
        path = self.root / rel
        if not path.is_file():
            return None
        try:
            return model.model_validate(_read_json(path))
        except ValidationError as e:
            raise ArchiveError(f"Invalid {rel}: {e}") from e

    def snapshot(self) -> Snapshot:
        path = self.root / BREW
        if not path.is_file():
            return Snapshot()
        try:
            return Snapshot.from_dict(_read_json(path))
        except (ValueError, AttributeError) as e:
            raise ArchiveError(f"Invalid {BREW}: {e}") from e

    def shell_config(self) -> ShellConfig | None:
        return self._section(SHELL, ShellConfig)

    def sensitive(self) -> SensitiveData | None:
        return self._section(SENSITIVE, SensitiveData)

    def applications(self) -> ApplicationsData | None:
        return self._section(APPLICATIONS, ApplicationsData)

    @property
    def shell_files(self) -> Path:
        return self.root / SHELL_FILES

    @property
    def sensitive_files(self) -> Path:
        return self.root / SENSITIVE_FILES


def extract_archive(archive_path: Path, dest: Path) -> list[str]:
    """Extract regular files of ``archive_path`` into ``dest``.

    Returns:
        Member names that were skipped for escaping ``dest``.
    """
    root = dest.resolve()
    skipped: list[str] = []
    try:
        with tarfile.open(archive_path, "r:gz") as tar:
            for member in tar.getmembers():
                if not member.isfile():
                    continue
                target = root / member.name
                try:
                    target.resolve().relative_to(root)
                except ValueError:
                    logger.warning("Skipping unsafe archive member: %s", member.name)
                    skipped.append(member.name)
                    continue
                fobj = tar.extractfile(member)
                if fobj is None:
                    continue
                target.parent.mkdir(parents=True, exist_ok=True)
                target.write_bytes(fobj.read())
    except (tarfile.TarError, OSError, EOFError) as e:
        raise ArchiveError(f"Cannot open archive {archive_path}: {e}") from e
    return skipped


@contextlib.contextmanager
def open_archive(path: Path) -> Iterator[SetupArchive]:
    """Open a setup archive (directory or ``.tar.gz``).

    Raises:
        ArchiveError: Missing, unreadable, or lacking a manifest.
    """
    if not path.exists():
        raise ArchiveError(f"Archive not found: {path}")

    if path.is_dir():
        yield SetupArchive(path)
        return

    with tempfile.TemporaryDirectory(prefix="macsetup_") as tmp:
        extract_archive(path, Path(tmp))
        yield SetupArchive(Path(tmp))


def create_archive(staging_dir: Path, output: Path) -> Path:
    """Pack ``staging_dir`` into ``output`` (tar.gz), manifest first."""
    output.parent.mkdir(parents=True, exist_ok=True)
    files = sorted(p for p in staging_dir.rglob("*") if p.is_file())
    with tarfile.open(output, "w:gz") as tar:
        manifest = staging_dir / MANIFEST
        if manifest.is_file():
            tar.add(str(manifest), arcname=MANIFEST)
        for f in files:
            arcname = f.relative_to(staging_dir).as_posix()
            if arcname == MANIFEST:
                continue
            tar.add(str(f), arcname=arcname)
    logger.info("Archive created: %s (%d files)", output, len(files))
    return output
