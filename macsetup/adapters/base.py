"""
Adapter base — the contracts between the installer and the outside world.

The installer only talks to the package manager and to the operator
through these two interfaces, never directly to a process or a
terminal.  Tests swap in the scripted doubles from ``mock.py``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Sequence
from enum import Enum

from macsetup.core.models.outcome import CommandResult, ErrorKind, InstallOutcome
from macsetup.core.models.package import PackageItem


class Disposition(str, Enum):
    """Operator answer to a suggested replacement name."""

    ACCEPT = "yes"
    DECLINE = "no"
    SKIP = "skip"


class PackageManager(ABC):
    """Runs package-manager subcommands.

    Implementations NEVER raise for a failed command — every outcome,
    including timeouts and a missing executable, comes back as a
    ``CommandResult``.
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """Executable name used in operator hints (e.g. 'brew')."""

    @abstractmethod
    def run(
        self,
        args: Sequence[str],
        *,
        timeout: float,
        stream: bool = True,
    ) -> CommandResult:
        """Run ``<tool> *args`` with a bounded timeout.

        Args:
            args: Subcommand and arguments.
            timeout: Seconds before the process is terminated.
            stream: Echo output lines to the operator as they arrive.
        """

    def is_available(self) -> bool:
        """Whether the tool answers ``--version``."""
        return self.run(["--version"], timeout=30, stream=False).ok

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"


class ConfirmationPort(ABC):
    """Blocking operator decisions.

    Every method suspends the run until the operator answers; there
    is no timeout.
    """

    @abstractmethod
    def confirm(self, message: str, default: bool = False) -> bool:
        """Plain yes/no question."""

    @abstractmethod
    def choose_alternative(
        self,
        item: PackageItem,
        suggestion: str,
        reason: ErrorKind,
    ) -> Disposition:
        """Offer ``suggestion`` in place of ``item.name``."""

    @abstractmethod
    def acknowledge_failure(self, outcome: InstallOutcome) -> bool:
        """Pause after a failure.

        Returns:
            True to continue, False to cancel the whole run.
        """
