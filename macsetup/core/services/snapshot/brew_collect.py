"""
Brew collector — capture installed taps, formulae and casks.

Produces the ``brew.json`` payload that ``Snapshot.from_dict`` reads
back at install time.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable
from typing import Any

from macsetup.core.models.package import DEFAULT_TAPS
from macsetup.core.services.subprocess_runner import _run_subprocess

logger = logging.getLogger(__name__)


class BrewCollectError(Exception):
    """brew could not report its installed state."""


def _parse_info(stdout: str) -> dict[str, Any]:
    # brew may print warnings ahead of the JSON document
    start = stdout.find("{")
    if start < 0:
        raise BrewCollectError("brew info produced no JSON")
    try:
        return json.loads(stdout[start:])
    except json.JSONDecodeError as e:
        raise BrewCollectError(f"brew info produced invalid JSON: {e}") from e


def collect_brew(
    brew_path: str = "brew",
    *,
    runner: Callable[..., dict[str, Any]] = _run_subprocess,
) -> dict[str, Any]:
    """Return ``{"taps": [...], "formulae": [...], "casks": [...]}``.

    Raises:
        BrewCollectError: ``brew info`` failed or returned garbage.
    """
    result = runner([brew_path, "info", "--json=v2", "--installed"], timeout=300)
    if not result["ok"]:
        raise BrewCollectError(
            f"brew info failed: {result.get('stderr') or result.get('error')}"
        )
    data = _parse_info(result.get("stdout", ""))

    formulae = [
        {
            "name": f.get("name"),
            "tap": f.get("tap"),
            "desc": f.get("desc"),
            "homepage": f.get("homepage"),
        }
        for f in data.get("formulae") or []
        if f.get("name")
    ]
    casks = [
        {
            "token": c.get("token"),
            "name": (c.get("name") or [None])[0],
            "tap": c.get("tap"),
            "desc": c.get("desc"),
            "homepage": c.get("homepage"),
        }
        for c in data.get("casks") or []
        if c.get("token")
    ]

    taps: list[str] = []
    tap_result = runner([brew_path, "tap"], timeout=60)
    if tap_result["ok"]:
        taps = [t.strip() for t in tap_result.get("stdout", "").splitlines() if t.strip()]
    else:
        logger.warning("brew tap failed — deriving taps from installed items")

    # Items may come from taps `brew tap` no longer lists
    for item in (*formulae, *casks):
        tap = item.get("tap")
        if tap and tap not in taps:
            taps.append(tap)
    taps = [t for t in taps if t not in DEFAULT_TAPS]

    logger.info(
        "Collected %d taps, %d formulae, %d casks",
        len(taps), len(formulae), len(casks),
    )
    return {"taps": taps, "formulae": formulae, "casks": casks}
