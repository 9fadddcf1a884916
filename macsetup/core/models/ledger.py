"""
ProgressLedger — the persisted install checkpoint.

This is the single document that records what a bulk install has
already settled.  It's serialized to the progress file after every
item and reloaded on ``--resume``; delete it and every item is
attempted again.

JSON field names are camelCase for compatibility with existing
progress files.  Failure entries carry a parenthetical reason,
e.g. ``"foo (timeout)"``.
"""

from __future__ import annotations

import re
from datetime import UTC, datetime

from pydantic import BaseModel, ConfigDict, Field

from macsetup.core.models.outcome import ErrorKind
from macsetup.core.models.package import PackageKind

_FAILED_ENTRY_RE = re.compile(r"^(?P<name>\S+)(?:\s+\((?P<reason>.*)\))?$")


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


def parse_failed_entry(entry: str) -> tuple[str, ErrorKind]:
    """Split ``"name (reason)"`` into name and reason."""
    m = _FAILED_ENTRY_RE.match(entry.strip())
    if not m:
        return entry.strip(), ErrorKind.OTHER
    reason = m.group("reason")
    return m.group("name"), ErrorKind.from_label(reason) if reason else ErrorKind.OTHER


def format_failed_entry(name: str, reason: ErrorKind) -> str:
    return f"{name} ({reason.label})"


class ProgressLedger(BaseModel):
    """Per-kind completed/failed sets plus durable renames."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    # ── Completed ────────────────────────────────────────────────
    completed_taps: list[str] = Field(default_factory=list, alias="completedTaps")
    completed_formulae: list[str] = Field(default_factory=list, alias="completedFormulae")
    completed_casks: list[str] = Field(default_factory=list, alias="completedCasks")

    # ── Failed ("name (reason)") ─────────────────────────────────
    failed_taps: list[str] = Field(default_factory=list, alias="failedTaps")
    failed_formulae: list[str] = Field(default_factory=list, alias="failedFormulae")
    failed_casks: list[str] = Field(default_factory=list, alias="failedCasks")

    # ── Renames, shared across kinds ─────────────────────────────
    name_changes: dict[str, str] = Field(default_factory=dict, alias="nameChanges")

    toolchain_verified: bool = Field(default=False, alias="toolchainVerified")
    last_updated: str = Field(default_factory=_now_iso, alias="lastUpdated")

    def touch(self) -> None:
        """Update the lastUpdated timestamp."""
        self.last_updated = _now_iso()

    # ── Lookups ──────────────────────────────────────────────────

    def completed(self, kind: PackageKind) -> list[str]:
        return getattr(self, f"completed_{kind.plural}")

    def failed(self, kind: PackageKind) -> list[str]:
        return getattr(self, f"failed_{kind.plural}")

    def is_completed(self, kind: PackageKind, name: str) -> bool:
        return name in self.completed(kind)

    def failure_for(self, kind: PackageKind, name: str) -> ErrorKind | None:
        for entry in self.failed(kind):
            entry_name, reason = parse_failed_entry(entry)
            if entry_name == name:
                return reason
        return None

    def is_settled(self, kind: PackageKind, name: str) -> bool:
        """True if ``name`` is completed or failed for ``kind``."""
        return self.is_completed(kind, name) or self.failure_for(kind, name) is not None

    def resolve_name(self, name: str) -> str:
        """Follow recorded renames; stops on cycles."""
        seen = {name}
        current = name
        while current in self.name_changes:
            current = self.name_changes[current]
            if current in seen:
                break
            seen.add(current)
        return current

    # ── Transitions ──────────────────────────────────────────────

    def mark_completed(self, kind: PackageKind, name: str) -> None:
        self._drop_failure(kind, name)
        if name not in self.completed(kind):
            self.completed(kind).append(name)

    def mark_failed(self, kind: PackageKind, name: str, reason: ErrorKind) -> None:
        """Record a failure.  Completed items stay completed."""
        if self.is_completed(kind, name):
            return
        self._drop_failure(kind, name)
        self.failed(kind).append(format_failed_entry(name, reason))

    def record_rename(self, original: str, replacement: str) -> None:
        if original != replacement:
            self.name_changes[original] = replacement

    def _drop_failure(self, kind: PackageKind, name: str) -> None:
        entries = self.failed(kind)
        entries[:] = [e for e in entries if parse_failed_entry(e)[0] != name]

    # ── Summary ──────────────────────────────────────────────────

    def counts(self) -> dict[str, dict[str, int]]:
        return {
            kind.plural: {
                "completed": len(self.completed(kind)),
                "failed": len(self.failed(kind)),
            }
            for kind in PackageKind
        }
