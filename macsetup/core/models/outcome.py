"""
Command results and install outcomes — the execution contract.

The Command Runner returns a ``CommandResult`` for every invocation and
never raises.  The orchestrator turns results into ``InstallOutcome``
records, one per snapshot item.
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum
from typing import Literal

from pydantic import BaseModel, Field

from macsetup.core.models.package import PackageItem


def _now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(UTC).isoformat()


class ErrorKind(str, Enum):
    """Closed set of reasons an item did not install."""

    TIMEOUT = "timeout"
    DEPRECATED = "deprecated"
    NOT_FOUND = "not_found"
    NEEDS_ADMIN = "needs_admin"
    USER_SKIPPED = "user_skipped"
    ALREADY_PRESENT = "already_present"   # normalized to success
    OTHER = "other"

    @property
    def label(self) -> str:
        """Short human label, also used in ledger failure entries."""
        if self is ErrorKind.OTHER:
            return "error"
        return self.value.replace("_", " ")

    @classmethod
    def from_label(cls, label: str) -> ErrorKind:
        for kind in cls:
            if kind.label == label or kind.value == label:
                return kind
        return cls.OTHER


class CommandResult(BaseModel):
    """Outcome of one package-manager process invocation."""

    args: list[str]
    returncode: int | None = None       # None: never started or killed
    output: str = ""                    # combined stdout + stderr
    timed_out: bool = False
    error: str | None = None            # spawn failure (binary missing, ...)
    duration_ms: int = 0

    @property
    def ok(self) -> bool:
        return self.returncode == 0 and not self.timed_out and self.error is None


class InstallOutcome(BaseModel):
    """Result of attempting one ``PackageItem``."""

    item: PackageItem
    status: Literal["succeeded", "failed", "skipped", "renamed"]
    reason: ErrorKind | None = None
    message: str = ""
    renamed_to: str | None = None
    at: str = Field(default_factory=_now_iso)

    @property
    def ok(self) -> bool:
        return self.status in ("succeeded", "renamed")

    @classmethod
    def succeeded(cls, item: PackageItem, message: str = "") -> InstallOutcome:
        return cls(item=item, status="succeeded", message=message)

    @classmethod
    def failed(cls, item: PackageItem, reason: ErrorKind, message: str = "") -> InstallOutcome:
        return cls(item=item, status="failed", reason=reason, message=message)

    @classmethod
    def skipped(cls, item: PackageItem, reason: ErrorKind, message: str = "") -> InstallOutcome:
        return cls(item=item, status="skipped", reason=reason, message=message)

    @classmethod
    def renamed(cls, item: PackageItem, to: str) -> InstallOutcome:
        return cls(
            item=item,
            status="renamed",
            renamed_to=to,
            message=f"installed as {to}",
        )
