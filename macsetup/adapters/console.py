"""
Console confirmation — terminal prompts for the operator.
"""

from __future__ import annotations

import click

from macsetup.adapters.base import ConfirmationPort, Disposition
from macsetup.core.models.outcome import ErrorKind, InstallOutcome
from macsetup.core.models.package import PackageItem


class ConsoleConfirmation(ConfirmationPort):
    """Ask the operator on stdin via click prompts.

    With ``err=True`` the prompts go to stderr, leaving stdout for
    machine-readable output.
    """

    def __init__(self, *, err: bool = False):
        self._err = err

    def confirm(self, message: str, default: bool = False) -> bool:
        return click.confirm(message, default=default, err=self._err)

    def choose_alternative(
        self,
        item: PackageItem,
        suggestion: str,
        reason: ErrorKind,
    ) -> Disposition:
        click.secho(
            f"   ? {item.kind.value} '{item.name}' is {reason.label}. "
            f"Did you mean '{suggestion}'?",
            fg="yellow",
            err=self._err,
        )
        answer = click.prompt(
            f"     Install '{suggestion}' instead",
            type=click.Choice([d.value for d in Disposition], case_sensitive=False),
            default=Disposition.ACCEPT.value,
            err=self._err,
        )
        return Disposition(answer.lower())

    def acknowledge_failure(self, outcome: InstallOutcome) -> bool:
        answer = click.prompt(
            "     Continue with the next item, or cancel the run",
            type=click.Choice(["continue", "cancel"], case_sensitive=False),
            default="continue",
            err=self._err,
        )
        return answer.lower() == "continue"
