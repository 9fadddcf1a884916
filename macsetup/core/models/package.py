"""
Package models — what a snapshot says is installed.

A ``Snapshot`` is read once from the archive's ``brew.json`` and never
mutated afterwards.  It accepts both the trimmed format written by
``macsetup collect`` and raw ``brew info --json=v2 --installed`` output.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

# Taps every Homebrew install already has; never re-added.
DEFAULT_TAPS = frozenset({"homebrew/core", "homebrew/cask"})


class PackageKind(str, Enum):
    """Kind of installable unit, in install order."""

    TAP = "tap"
    FORMULA = "formula"
    CASK = "cask"

    @property
    def plural(self) -> str:
        return {"tap": "taps", "formula": "formulae", "cask": "casks"}[self.value]


class PackageItem(BaseModel):
    """One installable unit from the snapshot."""

    model_config = ConfigDict(frozen=True)

    kind: PackageKind
    name: str                           # canonical name as recorded
    display_name: str | None = None
    tap: str | None = None              # source tap (formula/cask only)

    @property
    def label(self) -> str:
        if self.display_name and self.display_name != self.name:
            return f"{self.name} ({self.display_name})"
        return self.name


class Snapshot(BaseModel):
    """Ordered taps, formulae and casks captured from a machine."""

    model_config = ConfigDict(frozen=True)

    taps: tuple[PackageItem, ...] = Field(default_factory=tuple)
    formulae: tuple[PackageItem, ...] = Field(default_factory=tuple)
    casks: tuple[PackageItem, ...] = Field(default_factory=tuple)

    def items(self, kind: PackageKind) -> tuple[PackageItem, ...]:
        return getattr(self, kind.plural)

    @property
    def total(self) -> int:
        return len(self.taps) + len(self.formulae) + len(self.casks)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Snapshot:
        """Build a snapshot from the archive's ``brew.json`` payload.

        Items may be plain strings or objects carrying ``name``/``token``
        and an optional ``tap``.  When no ``taps`` list is present, taps
        are derived from the items themselves.
        """
        formulae = _dedupe(
            _parse_item(PackageKind.FORMULA, raw) for raw in data.get("formulae") or []
        )
        casks = _dedupe(
            _parse_item(PackageKind.CASK, raw) for raw in data.get("casks") or []
        )

        raw_taps = data.get("taps")
        if raw_taps is None:
            seen_taps: list[str] = []
            for item in (*formulae, *casks):
                if item.tap and item.tap not in DEFAULT_TAPS and item.tap not in seen_taps:
                    seen_taps.append(item.tap)
            raw_taps = seen_taps
        taps = _dedupe(
            item for item in (_parse_item(PackageKind.TAP, raw) for raw in raw_taps)
            if item.name not in DEFAULT_TAPS
        )

        return cls(taps=taps, formulae=formulae, casks=casks)


def _parse_item(kind: PackageKind, raw: Any) -> PackageItem:
    if isinstance(raw, str):
        return PackageItem(kind=kind, name=raw.strip())

    if not isinstance(raw, dict):
        raise ValueError(f"Unsupported {kind.value} entry: {raw!r}")

    if kind is PackageKind.CASK:
        name = raw.get("token") or raw.get("name")
        display = raw.get("name") if raw.get("token") else None
    else:
        name = raw.get("name") or raw.get("token")
        display = raw.get("display_name")

    # brew's v2 JSON gives cask names as a list
    if isinstance(display, list):
        display = display[0] if display else None

    if not name or not isinstance(name, str):
        raise ValueError(f"{kind.value} entry has no name: {raw!r}")

    tap = raw.get("tap") if kind is not PackageKind.TAP else None
    return PackageItem(kind=kind, name=name.strip(), display_name=display, tap=tap or None)


def _dedupe(items) -> tuple[PackageItem, ...]:
    seen: set[str] = set()
    result: list[PackageItem] = []
    for item in items:
        if item.name in seen:
            continue
        seen.add(item.name)
        result.append(item)
    return tuple(result)
