"""
Failure classification (pure).

Maps the package manager's unstructured output to a closed set of
``ErrorKind`` values.  The substring table below is the only data;
it is matched case-insensitively, first match wins.  No I/O.
"""

from __future__ import annotations

import re

from macsetup.core.models.outcome import CommandResult, ErrorKind
from macsetup.core.models.package import PackageKind

# Priority order matters: a disabled formula also mentions "not found"
# in some brew versions, and must classify as deprecated.
_PATTERNS: tuple[tuple[ErrorKind, tuple[str, ...]], ...] = (
    (ErrorKind.ALREADY_PRESENT, ("already tapped", "already exists")),
    (ErrorKind.DEPRECATED, ("deprecated", "has been disabled")),
    (
        ErrorKind.NOT_FOUND,
        (
            "no formula",
            "no available formula",
            "was not found",
            "no cask with this name exists",
            "no casks found for",
            "is unavailable",
        ),
    ),
    (ErrorKind.NEEDS_ADMIN, ("permission",)),
)

_NAME = r"[A-Za-z0-9@+_.\-/]+"

# Places where brew embeds its own idea of the right name.
_SUGGESTION_PATTERNS = (
    re.compile(rf"[Dd]id you mean\s*(?:one of these)?\??:?\s*\n?\s*[\"'`]?({_NAME})"),
    re.compile(rf"renamed to\s+[\"'`]?({_NAME})"),
    re.compile(rf"[Rr]eplacement:\s*\n?\s*brew install\s+(?:--(?:formula|cask)\s+)?({_NAME})"),
    re.compile(rf"(?:[Uu]se|[Tt]ry)\s+[\"'`]?brew install\s+(?:--(?:formula|cask)\s+)?({_NAME})"),
)


def classify_output(text: str, *, profile_mode: bool = False) -> ErrorKind:
    """Classify the combined output of a failed command.

    Args:
        text: Combined stdout/stderr.
        profile_mode: ``permission`` errors only mean "needs admin"
            when installing into a user prefix.
    """
    lowered = (text or "").lower()
    for kind, needles in _PATTERNS:
        if kind is ErrorKind.NEEDS_ADMIN and not profile_mode:
            continue
        if any(needle in lowered for needle in needles):
            return kind
    return ErrorKind.OTHER


def classify_result(result: CommandResult, *, profile_mode: bool = False) -> ErrorKind | None:
    """Classify a command result; ``None`` means clean success.

    ``ALREADY_PRESENT`` is returned as-is so callers can count it as
    success while still knowing nothing was installed.
    """
    if result.timed_out:
        return ErrorKind.TIMEOUT
    if result.ok:
        return None
    if result.error is not None:
        return ErrorKind.OTHER
    return classify_output(result.output, profile_mode=profile_mode)


def failure_message(result: CommandResult, limit: int = 200) -> str:
    """One-line human summary of why a command failed."""
    if result.timed_out:
        return "timed out"
    if result.error:
        return result.error[:limit]

    lines = [ln.strip() for ln in result.output.splitlines() if ln.strip()]
    for line in lines:
        if line.startswith("Error:"):
            return line[:limit]
    if lines:
        return lines[-1][:limit]
    return f"exit code {result.returncode}"


def extract_suggestion(text: str, original: str) -> str | None:
    """Pull a replacement name out of brew's own error text, if any."""
    for pattern in _SUGGESTION_PATTERNS:
        for m in pattern.finditer(text or ""):
            candidate = m.group(1).strip(".,;:'\"`")
            if candidate and candidate != original:
                return candidate
    return None


def parse_search_output(text: str, kind: PackageKind, original: str = "") -> str | None:
    """First result of ``brew search`` in the section matching ``kind``.

    brew prints ``==> Formulae`` / ``==> Casks`` headers when both
    sections have hits, and a bare list otherwise.
    """
    wanted = "casks" if kind is PackageKind.CASK else "formulae"
    section: str | None = None
    saw_header = False
    bare: list[str] = []

    for raw in (text or "").splitlines():
        line = raw.strip()
        if not line:
            continue
        if line.startswith("==>"):
            saw_header = True
            section = line[3:].strip().lower()
            continue
        if line.startswith(("Warning:", "Error:", "If you meant", "To install", "No formulae")):
            continue
        for token in line.split():
            token = token.rstrip("✔").strip()
            if not token or token == original:
                continue
            if section == wanted:
                return token
            if not saw_header:
                bare.append(token)

    return bare[0] if bare and not saw_header else None
