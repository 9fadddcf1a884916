"""
Bulk installer — the orchestrator.

Drives taps, then formulae (priority names first), then casks through
the package manager one at a time.  Every item settles into the
ledger, which is persisted after each transition so an interrupted
run can resume where it stopped.

Failures of individual items never raise.  The run as a whole only
stops early when:

    - the ledger path cannot be prepared (``LedgerPersistenceError``)
    - the ledger keeps failing to save (``LedgerPersistenceError``)
    - the operator cancels at a pause prompt (``InstallCancelled``)
    - the package manager is missing and cannot be installed (``ToolchainError``)
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

import click

from macsetup.adapters.base import ConfirmationPort, PackageManager
from macsetup.core.models.ledger import ProgressLedger
from macsetup.core.models.options import InstallOptions
from macsetup.core.models.outcome import CommandResult, ErrorKind, InstallOutcome
from macsetup.core.models.package import PackageItem, PackageKind, Snapshot
from macsetup.core.persistence.ledger_file import (
    LedgerPersistenceError,
    load_ledger,
    prepare_ledger_path,
    save_ledger,
)
from macsetup.core.persistence.run_log import RunLog
from macsetup.core.services.install.classify import classify_result, failure_message
from macsetup.core.services.install.report import InstallReport
from macsetup.core.services.install.resolver import InteractiveResolver, Resolution
from macsetup.core.services.install.session import InstallSession
from macsetup.core.services.install.toolchain import Toolchain

logger = logging.getLogger(__name__)

MAX_CONSECUTIVE_SAVE_FAILURES = 5

_SUCCESS_KINDS = (None, ErrorKind.ALREADY_PRESENT)
_RESOLVABLE = (ErrorKind.NOT_FOUND, ErrorKind.DEPRECATED)


class InstallCancelled(Exception):
    """The operator cancelled the run at a pause prompt."""


def install_args(
    kind: PackageKind,
    name: str,
    appdir: str | None = None,
) -> list[str]:
    """Package-manager arguments that install one item."""
    if kind is PackageKind.TAP:
        return ["tap", name]
    if kind is PackageKind.CASK:
        args = ["install", "--cask"]
        if appdir:
            args.append(f"--appdir={appdir}")
        return [*args, name]
    return ["install", name]


def search_hint(manager_name: str, kind: PackageKind, name: str) -> str:
    if kind is PackageKind.TAP:
        return f"{manager_name} tap {name}"
    if kind is PackageKind.CASK:
        return f"{manager_name} search --cask {name}"
    return f"{manager_name} search {name}"


class BulkInstaller:
    """Install every item of a snapshot, tolerating per-item failure."""

    def __init__(
        self,
        manager: PackageManager,
        confirm: ConfirmationPort,
        options: InstallOptions,
        *,
        toolchain: Toolchain | None = None,
        run_log: RunLog | None = None,
        echo: Callable[[str], None] = click.echo,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._manager = manager
        self._confirm = confirm
        self._options = options
        self._toolchain = toolchain
        self._run_log = run_log or RunLog()
        self._echo = echo
        self._clock = clock
        self._resolver = InteractiveResolver(
            manager,
            confirm,
            search_timeout=options.search_timeout,
            run_log=self._run_log,
        )
        self._ledger = ProgressLedger()
        self._renames: dict[str, str] = {}
        self._save_failures = 0

    @property
    def ledger(self) -> ProgressLedger:
        return self._ledger

    # ── Public API ───────────────────────────────────────────────

    def run(self, snapshot: Snapshot) -> InstallReport:
        """Install the snapshot and return the aggregated report.

        Raises:
            LedgerPersistenceError: Progress cannot be persisted.
            InstallCancelled: Operator cancelled after a failure.
            ToolchainError: Package manager unavailable.
        """
        started = self._clock()
        path = self._options.progress_file
        prepare_ledger_path(path)

        if self._options.resume:
            self._ledger = load_ledger(path)
            self._echo(f"Resuming from {path}")
        else:
            self._ledger = ProgressLedger()

        toolchain_ok = self._preflight()

        session = InstallSession.build(
            snapshot, self._ledger, self._options.priority_formulae,
        )
        total = len(session.items)
        logger.info(
            "Installing %d item(s), %d already settled",
            total, snapshot.total - total,
        )

        for item in session:
            self._echo(click.style(
                f"[{session.index + 1}/{total}] {item.kind.value} {item.label}",
                bold=True,
            ))
            outcome = self._process(item, session)
            if outcome is None:
                continue
            session.record(outcome)
            if outcome.status == "failed":
                self._after_failure(outcome)

        duration_ms = int((self._clock() - started) * 1000)
        return InstallReport.from_session(
            session,
            name_changes=self._renames,
            duration_ms=duration_ms,
            toolchain_ok=toolchain_ok,
            progress_file=str(path),
        )

    # ── Pre-flight ───────────────────────────────────────────────

    def _preflight(self) -> bool | None:
        if self._toolchain is None:
            return None

        self._toolchain.ensure_package_manager()

        toolchain_ok = True
        if not self._ledger.toolchain_verified:
            toolchain_ok = self._toolchain.ensure_command_line_tools(self._confirm)
            if toolchain_ok:
                self._ledger.toolchain_verified = True
                self._persist()

        if self._options.update_before_install:
            self._toolchain.update()
        return toolchain_ok

    # ── Per item ─────────────────────────────────────────────────

    def _process(self, item: PackageItem, session: InstallSession) -> InstallOutcome | None:
        # An earlier rename may already have covered this item
        if session.already_settled(self._ledger, item):
            logger.debug("%s %s settled earlier in this run", item.kind.value, item.name)
            session.record_previously_done(item)
            return None

        if item.kind is PackageKind.CASK and self._options.use_profile:
            self._echo(click.style(
                f"  ⏭️  Skipping cask {item.name} (needs admin rights in profile mode)",
                fg="yellow",
            ))
            self._run_log.write(f"policy-skip cask {item.name}: needs admin")
            return InstallOutcome.skipped(
                item, ErrorKind.NEEDS_ADMIN, "casks need admin rights in profile mode",
            )

        name = self._ledger.resolve_name(item.name)
        if name != item.name:
            self._echo(f"  Using {name} (renamed from {item.name})")

        result = self._install(item.kind, name)
        reason = self._classify(item.kind, name, result)

        if reason in _SUCCESS_KINDS:
            self._ledger.mark_completed(item.kind, item.name)
            if name != item.name:
                self._ledger.mark_completed(item.kind, name)
            self._persist()
            note = "already present" if reason is ErrorKind.ALREADY_PRESENT else ""
            self._echo(click.style(f"  ✅ {name} {note}".rstrip(), fg="green"))
            return InstallOutcome.succeeded(item, note)

        if reason in _RESOLVABLE:
            return self._resolve(item, name, result, reason)

        return self._fail(item, reason, failure_message(result))

    def _install(self, kind: PackageKind, name: str) -> CommandResult:
        appdir = str(self._options.cask_appdir) if self._options.cask_appdir else None
        return self._manager.run(
            install_args(kind, name, appdir),
            timeout=self._options.timeout_per_item,
        )

    def _classify(self, kind: PackageKind, name: str, result: CommandResult) -> ErrorKind | None:
        reason = classify_result(result, profile_mode=self._options.use_profile)
        label = "success" if reason is None else reason.label
        self._run_log.write(f"classify {kind.value} {name}: {label}")
        return reason

    def _resolve(
        self,
        item: PackageItem,
        name: str,
        result: CommandResult,
        reason: ErrorKind,
    ) -> InstallOutcome:
        self._echo(click.style(f"  ⚠️  {name}: {reason.label}", fg="yellow"))
        decision = self._resolver.resolve(item, name, result.output, reason)

        if decision.accepted and decision.suggestion:
            alternative = decision.suggestion
            self._echo(f"  Trying {alternative} instead of {name}...")
            alt_result = self._install(item.kind, alternative)
            alt_reason = self._classify(item.kind, alternative, alt_result)
            if alt_reason in _SUCCESS_KINDS:
                self._ledger.record_rename(name, alternative)
                self._ledger.mark_completed(item.kind, item.name)
                self._ledger.mark_completed(item.kind, alternative)
                self._persist()
                self._renames[item.name] = alternative
                self._echo(click.style(
                    f"  ✅ {alternative} (replaces {item.name})", fg="green",
                ))
                return InstallOutcome.renamed(item, alternative)
            return self._fail(
                item,
                alt_reason or ErrorKind.OTHER,
                f"alternative {alternative}: {failure_message(alt_result)}",
            )

        if decision.resolution is Resolution.SKIPPED:
            self._ledger.mark_failed(item.kind, item.name, reason)
            self._persist()
            self._echo(f"  Skipped {item.name}")
            return InstallOutcome.skipped(item, ErrorKind.USER_SKIPPED, reason.label)

        return self._fail(item, reason, failure_message(result))

    def _fail(self, item: PackageItem, reason: ErrorKind, message: str) -> InstallOutcome:
        self._ledger.mark_failed(item.kind, item.name, reason)
        self._persist()
        logger.warning("%s %s failed (%s): %s", item.kind.value, item.name, reason.label, message)
        self._echo(click.style(f"  ❌ {item.name}: {reason.label}", fg="red"))
        if message:
            self._echo(f"     {message}")
        self._echo(f"     Try manually: {search_hint(self._manager.name, item.kind, item.name)}")
        return InstallOutcome.failed(item, reason, message)

    def _after_failure(self, outcome: InstallOutcome) -> None:
        if not self._options.pause_on_error:
            return
        if not self._confirm.acknowledge_failure(outcome):
            self._run_log.write("run cancelled by operator")
            raise InstallCancelled(
                f"Cancelled after {outcome.item.kind.value} {outcome.item.name} failed"
            )

    # ── Persistence ──────────────────────────────────────────────

    def _persist(self) -> None:
        """Save the ledger; a failed save is retried after the next item."""
        try:
            save_ledger(self._ledger, self._options.progress_file)
        except OSError as e:
            self._save_failures += 1
            logger.warning(
                "Could not save progress (%d in a row): %s",
                self._save_failures, e,
            )
            if self._save_failures >= MAX_CONSECUTIVE_SAVE_FAILURES:
                raise LedgerPersistenceError(
                    f"Progress could not be saved {self._save_failures} times in a row: {e}"
                ) from e
            return
        self._save_failures = 0
