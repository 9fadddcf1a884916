"""
InstallOptions — the resolved knobs for one ``install`` run.

Built by the CLI from flags layered over ``Settings`` (config file)
layered over the defaults below.
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, Field

DEFAULT_PRIORITY_FORMULAE = ("git", "curl", "wget", "openssl")
DEFAULT_PROGRESS_FILE = Path.home() / ".macsetup" / "install-progress.json"
DEFAULT_PROFILE_PREFIX = Path.home() / "homebrew"


class InstallOptions(BaseModel):
    """Options consumed by the bulk installer."""

    resume: bool = False
    progress_file: Path = DEFAULT_PROGRESS_FILE
    timeout_per_item: int = 300                     # seconds
    pause_on_error: bool = True
    use_profile: bool = False
    brew_prefix: Path | None = None
    cask_appdir: Path | None = None
    run_log: Path | None = None
    priority_formulae: list[str] = Field(
        default_factory=lambda: list(DEFAULT_PRIORITY_FORMULAE),
    )
    update_before_install: bool = True
    search_timeout: int = 60

    @property
    def effective_prefix(self) -> Path | None:
        """Prefix for profile mode; None means the system brew on PATH."""
        if not self.use_profile:
            return self.brew_prefix
        return self.brew_prefix or DEFAULT_PROFILE_PREFIX
