"""
Mock adapters — scripted test doubles for the package manager and
the operator.

``MockPackageManager`` succeeds for everything unless a response was
scripted for the exact argument list.  ``ScriptedConfirmation``
answers from queues and records every question it was asked.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Sequence

from macsetup.adapters.base import ConfirmationPort, Disposition, PackageManager
from macsetup.core.models.outcome import CommandResult, ErrorKind, InstallOutcome
from macsetup.core.models.package import PackageItem


class MockPackageManager(PackageManager):
    """Package manager double with a call log."""

    def __init__(self, available: bool = True, default_output: str = "[mock] ok"):
        self._available = available
        self._default_output = default_output
        self._responses: dict[tuple[str, ...], CommandResult] = {}
        self._call_log: list[list[str]] = []

    @property
    def name(self) -> str:
        return "brew"

    @property
    def call_log(self) -> list[list[str]]:
        """Argument lists of every run() call, in order."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def calls_for(self, name: str) -> list[list[str]]:
        """Calls whose final argument is ``name``."""
        return [c for c in self._call_log if c and c[-1] == name]

    def is_available(self) -> bool:
        return self._available

    def set_response(
        self,
        args: Sequence[str],
        *,
        returncode: int | None = 0,
        output: str = "",
        timed_out: bool = False,
    ) -> None:
        """Script the result for an exact argument list."""
        self._responses[tuple(args)] = CommandResult(
            args=list(args),
            returncode=None if timed_out else returncode,
            output=output,
            timed_out=timed_out,
        )

    def set_failure(self, args: Sequence[str], output: str, returncode: int = 1) -> None:
        self.set_response(args, returncode=returncode, output=output)

    def set_timeout(self, args: Sequence[str]) -> None:
        self.set_response(args, timed_out=True)

    def run(
        self,
        args: Sequence[str],
        *,
        timeout: float,
        stream: bool = True,
    ) -> CommandResult:
        args = list(args)
        self._call_log.append(args)
        scripted = self._responses.get(tuple(args))
        if scripted is not None:
            return scripted
        if args and args[0] == "search":
            # Unscripted searches find nothing
            return CommandResult(args=args, returncode=1, output="No formulae or casks found.")
        return CommandResult(args=args, returncode=0, output=self._default_output)

    def reset(self) -> None:
        self._call_log.clear()
        self._responses.clear()


class ScriptedConfirmation(ConfirmationPort):
    """Operator double answering from queues.

    When a queue runs dry the defaults apply: ``confirm`` returns
    ``default``, alternatives are declined, failures are acknowledged.
    """

    def __init__(
        self,
        confirms: Iterable[bool] = (),
        alternatives: Iterable[Disposition] = (),
        acknowledgements: Iterable[bool] = (),
    ):
        self._confirms = deque(confirms)
        self._alternatives = deque(alternatives)
        self._acks = deque(acknowledgements)
        self.questions: list[str] = []
        self.offered: list[tuple[str, str]] = []
        self.paused_on: list[str] = []

    def confirm(self, message: str, default: bool = False) -> bool:
        self.questions.append(message)
        return self._confirms.popleft() if self._confirms else default

    def choose_alternative(
        self,
        item: PackageItem,
        suggestion: str,
        reason: ErrorKind,
    ) -> Disposition:
        self.offered.append((item.name, suggestion))
        return self._alternatives.popleft() if self._alternatives else Disposition.DECLINE

    def acknowledge_failure(self, outcome: InstallOutcome) -> bool:
        self.paused_on.append(outcome.item.name)
        return self._acks.popleft() if self._acks else True
