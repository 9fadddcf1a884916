"""
Interactive resolver — find a replacement name and ask the operator.

Called by the orchestrator when an item is not found or deprecated.
The resolver only decides; installing the replacement and recording
the rename is the orchestrator's job.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from macsetup.adapters.base import ConfirmationPort, Disposition, PackageManager
from macsetup.core.models.outcome import ErrorKind
from macsetup.core.models.package import PackageItem, PackageKind
from macsetup.core.persistence.run_log import RunLog
from macsetup.core.services.install.classify import extract_suggestion, parse_search_output

logger = logging.getLogger(__name__)


class Resolution(str, Enum):
    ACCEPTED = "accepted"
    DECLINED = "declined"
    SKIPPED = "skipped"
    NO_ALTERNATIVE = "no_alternative"


@dataclass(frozen=True)
class ResolverDecision:
    resolution: Resolution
    suggestion: str | None = None

    @property
    def accepted(self) -> bool:
        return self.resolution is Resolution.ACCEPTED


_FROM_DISPOSITION = {
    Disposition.ACCEPT: Resolution.ACCEPTED,
    Disposition.DECLINE: Resolution.DECLINED,
    Disposition.SKIP: Resolution.SKIPPED,
}


def search_args(kind: PackageKind, name: str) -> list[str]:
    if kind is PackageKind.CASK:
        return ["search", "--cask", name]
    return ["search", name]


class InteractiveResolver:
    """Suggest replacement names for missing or deprecated items."""

    def __init__(
        self,
        manager: PackageManager,
        confirm: ConfirmationPort,
        *,
        search_timeout: float = 60,
        run_log: RunLog | None = None,
    ):
        self._manager = manager
        self._confirm = confirm
        self._search_timeout = search_timeout
        self._run_log = run_log or RunLog()

    def suggest(self, item: PackageItem, name: str, failure_output: str) -> str | None:
        """Best-guess replacement for ``name``, or None.

        Prefers a name embedded in the failure text; otherwise asks
        ``brew search`` and takes the first hit of the matching kind.
        """
        suggestion = extract_suggestion(failure_output, name)
        if suggestion:
            logger.debug("Suggestion for %s from failure text: %s", name, suggestion)
            return suggestion

        # Taps have no search; nothing to offer
        if item.kind is PackageKind.TAP:
            return None

        result = self._manager.run(
            search_args(item.kind, name),
            timeout=self._search_timeout,
            stream=False,
        )
        if result.timed_out or result.error:
            logger.info("Search for %s failed: %s", name, result.error or "timeout")
            return None

        suggestion = parse_search_output(result.output, item.kind, original=name)
        logger.debug("Suggestion for %s from search: %s", name, suggestion)
        return suggestion

    def resolve(
        self,
        item: PackageItem,
        name: str,
        failure_output: str,
        reason: ErrorKind,
    ) -> ResolverDecision:
        """Find a suggestion and, if there is one, ask the operator."""
        suggestion = self.suggest(item, name, failure_output)
        if not suggestion or suggestion == name:
            self._run_log.write(f"resolver {item.kind.value} {name}: no alternative")
            return ResolverDecision(Resolution.NO_ALTERNATIVE)

        disposition = self._confirm.choose_alternative(item, suggestion, reason)
        resolution = _FROM_DISPOSITION[disposition]
        self._run_log.write(
            f"resolver {item.kind.value} {name}: {suggestion} {resolution.value}"
        )
        return ResolverDecision(resolution, suggestion)
