"""
Install report — end-of-run aggregation.

Counts per kind, failures grouped by reason, accepted name
substitutions and wall-clock duration.  ``summary_lines`` renders
it for the console; ``to_dict`` feeds ``--json``.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from macsetup.core.models.outcome import ErrorKind, InstallOutcome
from macsetup.core.models.package import PackageKind
from macsetup.core.services.install.session import InstallSession


class KindSummary(BaseModel):
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    previously_done: int = 0


class InstallReport(BaseModel):
    """Final result of a bulk install run."""

    kinds: dict[str, KindSummary] = Field(default_factory=dict)
    outcomes: list[InstallOutcome] = Field(default_factory=list)
    name_changes: dict[str, str] = Field(default_factory=dict)
    duration_ms: int = 0
    toolchain_ok: bool | None = None
    progress_file: str = ""

    @classmethod
    def from_session(
        cls,
        session: InstallSession,
        *,
        name_changes: dict[str, str],
        duration_ms: int,
        toolchain_ok: bool | None,
        progress_file: str = "",
    ) -> InstallReport:
        kinds = {
            kind.plural: KindSummary(
                succeeded=t.succeeded,
                failed=t.failed,
                skipped=t.skipped,
                previously_done=t.previously_done,
            )
            for kind, t in session.tallies.items()
        }
        return cls(
            kinds=kinds,
            outcomes=list(session.outcomes),
            name_changes=dict(name_changes),
            duration_ms=duration_ms,
            toolchain_ok=toolchain_ok,
            progress_file=progress_file,
        )

    # ── Aggregates ───────────────────────────────────────────────

    @property
    def total_succeeded(self) -> int:
        return sum(k.succeeded for k in self.kinds.values())

    @property
    def total_failed(self) -> int:
        return sum(k.failed for k in self.kinds.values())

    def summary_for(self, kind: PackageKind) -> KindSummary:
        return self.kinds.get(kind.plural, KindSummary())

    def failures_by_reason(self) -> dict[ErrorKind, list[InstallOutcome]]:
        grouped: dict[ErrorKind, list[InstallOutcome]] = {}
        for outcome in self.outcomes:
            if outcome.status != "failed":
                continue
            grouped.setdefault(outcome.reason or ErrorKind.OTHER, []).append(outcome)
        return grouped

    def policy_skipped(self) -> list[InstallOutcome]:
        return [
            o for o in self.outcomes
            if o.status == "skipped" and o.reason is ErrorKind.NEEDS_ADMIN
        ]

    def operator_skipped(self) -> list[InstallOutcome]:
        return [
            o for o in self.outcomes
            if o.status == "skipped" and o.reason is ErrorKind.USER_SKIPPED
        ]

    def to_dict(self) -> dict[str, Any]:
        data = self.model_dump(mode="json")
        data["total_succeeded"] = self.total_succeeded
        data["total_failed"] = self.total_failed
        return data

    # ── Rendering ────────────────────────────────────────────────

    def summary_lines(self) -> list[tuple[str, str | None]]:
        """(text, colour) pairs for the console summary."""
        lines: list[tuple[str, str | None]] = []
        seconds = self.duration_ms / 1000
        lines.append((f"Install finished in {seconds:.1f}s", "cyan"))

        for kind in PackageKind:
            s = self.summary_for(kind)
            lines.append((
                f"  {kind.plural:<9} {s.succeeded} installed, {s.failed} failed, "
                f"{s.skipped} skipped, {s.previously_done} already done",
                None,
            ))

        if self.toolchain_ok is False:
            lines.append((
                "  Command Line Tools were not confirmed — some failures may stem from that.",
                "yellow",
            ))

        skipped = self.policy_skipped()
        if skipped:
            lines.append((
                f"  Skipped {len(skipped)} cask(s) in profile mode (they need admin rights):",
                "yellow",
            ))
            for o in skipped:
                lines.append((f"    - {o.item.label}", None))

        user_skipped = self.operator_skipped()
        if user_skipped:
            lines.append((f"  Skipped by you ({len(user_skipped)}):", "yellow"))
            for o in user_skipped:
                lines.append((f"    - {o.item.kind.value} {o.item.name}", None))

        grouped = self.failures_by_reason()
        if grouped:
            lines.append(("  Failed items:", "red"))
            for reason, outcomes in grouped.items():
                lines.append((f"    {reason.label} ({len(outcomes)}):", "red"))
                for o in outcomes:
                    detail = f" — {o.message}" if o.message else ""
                    lines.append((f"      - {o.item.kind.value} {o.item.name}{detail}", None))

        if self.name_changes:
            lines.append(("  Name substitutions to review:", "magenta"))
            for original, replacement in self.name_changes.items():
                lines.append((f"    {original} → {replacement}", None))

        if self.progress_file:
            lines.append((f"  Progress saved to {self.progress_file}", None))
        return lines
