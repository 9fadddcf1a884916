"""
Archive section models — data shapes for the non-brew parts of a setup archive.

These are pure Pydantic models with no I/O.  Each one is the JSON
document stored for its section (``shell/shell.json``,
``sensitive/sensitive.json``, ``applications.json``, ``manifest.json``).
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Literal

from pydantic import BaseModel, Field

ARCHIVE_FORMAT_VERSION = 1


def _now_iso() -> str:
    return datetime.now(UTC).isoformat()


class ArchiveManifest(BaseModel):
    """``manifest.json`` — what the archive contains."""

    format_version: int = ARCHIVE_FORMAT_VERSION
    created_at: str = Field(default_factory=_now_iso)
    hostname: str = ""
    sections: list[str] = Field(default_factory=list)  # "brew", "shell", ...


# ── Shell configuration ─────────────────────────────────────────────


class ShellConfigFile(BaseModel):
    path: str                                   # relative to $HOME
    size: int = 0
    mode: str = "644"                           # octal permission bits


class ShellConfig(BaseModel):
    shell: str = "unknown"
    files: list[ShellConfigFile] = Field(default_factory=list)


# ── Sensitive files ─────────────────────────────────────────────────


class SensitiveFile(BaseModel):
    relative_path: str
    category: str
    size: int = 0
    permissions: str = "600"
    encrypted: bool = False


class SensitiveSummary(BaseModel):
    total_files: int = 0
    ssh_keys: int = 0
    aws_files: int = 0
    npm_tokens: int = 0
    other_secrets: int = 0


class SensitiveData(BaseModel):
    files: list[SensitiveFile] = Field(default_factory=list)
    summary: SensitiveSummary = Field(default_factory=SensitiveSummary)

    @property
    def encrypted(self) -> bool:
        return any(f.encrypted for f in self.files)


# ── Applications ────────────────────────────────────────────────────

AppSource = Literal["Applications", "User Applications", "System", "Utilities", "Other"]
InstallMethod = Literal["cask", "mas", "direct", "system", "unknown"]


class ApplicationInfo(BaseModel):
    name: str
    path: str
    version: str | None = None
    bundle_id: str | None = None
    source: AppSource = "Other"
    install_method: InstallMethod = "unknown"


class AppStoreApp(BaseModel):
    name: str
    app_id: str                                 # numeric store id, or bundle id
    version: str | None = None


class ApplicationsSummary(BaseModel):
    total_apps: int = 0
    app_store_apps: int = 0
    cask_apps: int = 0
    direct_downloads: int = 0
    by_source: dict[str, int] = Field(default_factory=dict)
    by_install_method: dict[str, int] = Field(default_factory=dict)


class ApplicationsData(BaseModel):
    all_applications: list[ApplicationInfo] = Field(default_factory=list)
    app_store_apps: list[AppStoreApp] = Field(default_factory=list)
    cask_apps: list[str] = Field(default_factory=list)
    summary: ApplicationsSummary = Field(default_factory=ApplicationsSummary)
