"""
Domain models — Pydantic types for snapshots, outcomes and progress.

All models are re-exported here for convenient access:

    from macsetup.core.models import PackageItem, Snapshot, ProgressLedger
"""

from macsetup.core.models.ledger import ProgressLedger
from macsetup.core.models.options import InstallOptions
from macsetup.core.models.outcome import CommandResult, ErrorKind, InstallOutcome
from macsetup.core.models.package import PackageItem, PackageKind, Snapshot

__all__ = [
    # outcome.py
    "CommandResult",
    "ErrorKind",
    "InstallOutcome",
    # options.py
    "InstallOptions",
    # package.py
    "PackageItem",
    "PackageKind",
    # ledger.py
    "ProgressLedger",
    "Snapshot",
]
