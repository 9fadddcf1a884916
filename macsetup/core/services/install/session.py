"""
Install session — the transient work list for one run.

Rebuilt on every invocation from the snapshot and the (possibly
resumed) ledger.  Nothing here is persisted; durable facts live in
the ledger.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from macsetup.core.models.ledger import ProgressLedger
from macsetup.core.models.outcome import InstallOutcome
from macsetup.core.models.package import PackageItem, PackageKind, Snapshot


def prioritize(formulae: tuple[PackageItem, ...], priority: list[str]) -> list[PackageItem]:
    """Priority names first, in listed order; the rest keep snapshot order."""

    def _short(name: str) -> str:
        return name.rsplit("/", 1)[-1]

    first: list[PackageItem] = []
    taken: set[str] = set()
    for wanted in priority:
        for item in formulae:
            if item.name not in taken and _short(item.name) == wanted:
                first.append(item)
                taken.add(item.name)
                break
    rest = [item for item in formulae if item.name not in taken]
    return first + rest


def ordered_items(snapshot: Snapshot, priority: list[str]) -> list[PackageItem]:
    """Taps, then priority-sorted formulae, then casks."""
    return [
        *snapshot.taps,
        *prioritize(snapshot.formulae, priority),
        *snapshot.casks,
    ]


@dataclass
class KindTally:
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    previously_done: int = 0


@dataclass
class InstallSession:
    """Ordered items still to process plus running tallies."""

    items: list[PackageItem]
    index: int = 0
    outcomes: list[InstallOutcome] = field(default_factory=list)
    tallies: dict[PackageKind, KindTally] = field(
        default_factory=lambda: {kind: KindTally() for kind in PackageKind}
    )

    @classmethod
    def build(
        cls,
        snapshot: Snapshot,
        ledger: ProgressLedger,
        priority: list[str],
    ) -> InstallSession:
        """Order the snapshot and drop items the ledger already settled."""
        session = cls(items=[])
        for item in ordered_items(snapshot, priority):
            if session.already_settled(ledger, item):
                session.tallies[item.kind].previously_done += 1
            else:
                session.items.append(item)
        return session

    @staticmethod
    def already_settled(ledger: ProgressLedger, item: PackageItem) -> bool:
        resolved = ledger.resolve_name(item.name)
        return ledger.is_settled(item.kind, item.name) or (
            resolved != item.name and ledger.is_settled(item.kind, resolved)
        )

    @property
    def remaining(self) -> int:
        return len(self.items) - self.index

    def __iter__(self):
        while self.index < len(self.items):
            yield self.items[self.index]
            self.index += 1

    def record(self, outcome: InstallOutcome) -> None:
        tally = self.tallies[outcome.item.kind]
        if outcome.ok:
            tally.succeeded += 1
        elif outcome.status == "failed":
            tally.failed += 1
        else:
            tally.skipped += 1
        self.outcomes.append(outcome)

    def record_previously_done(self, item: PackageItem) -> None:
        self.tallies[item.kind].previously_done += 1
