"""
Bulk install — Homebrew taps, formulae and casks from a snapshot.

    from macsetup.core.services.install import BulkInstaller

    report = BulkInstaller(manager, confirm, options).run(snapshot)
"""

from macsetup.core.services.install.installer import (
    MAX_CONSECUTIVE_SAVE_FAILURES,
    BulkInstaller,
    InstallCancelled,
)
from macsetup.core.services.install.report import InstallReport
from macsetup.core.services.install.toolchain import Toolchain, ToolchainError

__all__ = [
    "BulkInstaller",
    "InstallCancelled",
    "InstallReport",
    "MAX_CONSECUTIVE_SAVE_FAILURES",
    "Toolchain",
    "ToolchainError",
]
