"""
Applications — inventory of ``.app`` bundles and App Store restore.

Collection walks the standard application folders, reads each
bundle's ``Info.plist`` and works out how the app was installed:

    system   — lives under /System
    mas      — App Store (``mas list`` or a ``_MASReceipt``)
    cask     — matches an installed cask (fuzzy name match)
    direct   — anything else in /Applications or ~/Applications
    unknown  — anything else

The cask match is a heuristic: it compares app display names with
cask tokens by substring and can both over- and under-match.

Restoring installs App Store apps through ``mas`` and writes a plain
text report of the apps that need manual attention.
"""

from __future__ import annotations

import logging
import plistlib
import re
from collections.abc import Callable
from pathlib import Path
from typing import Any

import click

from macsetup.core.services.snapshot.models import (
    ApplicationInfo,
    ApplicationsData,
    ApplicationsSummary,
    AppSource,
    AppStoreApp,
)
from macsetup.core.services.subprocess_runner import _run_subprocess

logger = logging.getLogger(__name__)

REPORT_FILENAME = "application_install_report.txt"

_MAS_LINE_RE = re.compile(r"^(\d+)\s+(.+?)\s+\(([^)]+)\)$")
_CASKROOMS = (Path("/opt/homebrew/Caskroom"), Path("/usr/local/Caskroom"))

Runner = Callable[..., dict[str, Any]]


def default_app_dirs(home: Path) -> list[tuple[Path, AppSource]]:
    return [
        (Path("/Applications"), "Applications"),
        (home / "Applications", "User Applications"),
        (Path("/System/Applications"), "System"),
        (Path("/System/Applications/Utilities"), "Utilities"),
    ]


# ── Collection ───────────────────────────────────────────────────────


def read_app_info(app_path: Path, source: AppSource) -> ApplicationInfo:
    """Metadata for one bundle; falls back to the folder name."""
    fallback = app_path.name.removesuffix(".app")
    plist_path = app_path / "Contents" / "Info.plist"
    try:
        with plist_path.open("rb") as f:
            plist = plistlib.load(f)
    except (OSError, plistlib.InvalidFileException, ValueError) as e:
        logger.debug("No readable Info.plist in %s: %s", app_path, e)
        return ApplicationInfo(name=fallback, path=str(app_path), source=source)

    return ApplicationInfo(
        name=plist.get("CFBundleName") or plist.get("CFBundleDisplayName") or fallback,
        version=plist.get("CFBundleShortVersionString") or plist.get("CFBundleVersion"),
        bundle_id=plist.get("CFBundleIdentifier"),
        path=str(app_path),
        source=source,
    )


def scan_applications(app_dirs: list[tuple[Path, AppSource]]) -> list[ApplicationInfo]:
    apps: list[ApplicationInfo] = []
    for directory, source in app_dirs:
        if not directory.is_dir():
            continue
        try:
            entries = sorted(directory.iterdir())
        except OSError as e:
            logger.warning("Error reading %s: %s", directory, e)
            continue
        for entry in entries:
            if entry.suffix == ".app" and entry.is_dir():
                apps.append(read_app_info(entry, source))

    # Same app reachable from two folders: keep the first
    seen: set[str] = set()
    unique: list[ApplicationInfo] = []
    for app in apps:
        key = app.bundle_id or app.name
        if key in seen:
            continue
        seen.add(key)
        unique.append(app)
    return sorted(unique, key=lambda a: a.name.lower())


def parse_mas_list(stdout: str) -> list[AppStoreApp]:
    """Parse ``mas list`` lines: ``1234567890  App Name (1.0.0)``."""
    apps: list[AppStoreApp] = []
    for line in stdout.splitlines():
        m = _MAS_LINE_RE.match(line.strip())
        if m:
            apps.append(AppStoreApp(app_id=m.group(1), name=m.group(2), version=m.group(3)))
    return apps


def has_mas_receipt(app: ApplicationInfo) -> bool:
    return (Path(app.path) / "Contents" / "_MASReceipt" / "receipt").exists()


def app_store_apps(apps: list[ApplicationInfo], runner: Runner) -> list[AppStoreApp]:
    result = runner(["mas", "list"], timeout=60)
    found = parse_mas_list(result.get("stdout", "")) if result["ok"] else []
    if not result["ok"]:
        logger.info("mas not available — relying on App Store receipts only")

    names = {a.name for a in found}
    for app in apps:
        if app.name not in names and app.bundle_id and has_mas_receipt(app):
            found.append(AppStoreApp(app_id=app.bundle_id, name=app.name, version=app.version))
            names.add(app.name)

    seen: set[str] = set()
    unique = []
    for app in found:
        if app.app_id in seen:
            continue
        seen.add(app.app_id)
        unique.append(app)
    return sorted(unique, key=lambda a: a.name.lower())


def installed_casks(runner: Runner, brew_path: str = "brew") -> list[str]:
    result = runner([brew_path, "list", "--cask"], timeout=60)
    if not result["ok"]:
        logger.info("Could not list casks: %s", result.get("error"))
        return []
    return [c.strip() for c in result.get("stdout", "").splitlines() if c.strip()]


def looks_like_cask(app_name: str, casks: list[str]) -> bool:
    """Fuzzy match between an app display name and cask tokens."""
    name = app_name.lower()
    slug = re.sub(r"\s+", "-", name)
    for cask in casks:
        c = cask.lower()
        if c == slug or c == name or c in name or name in c:
            return True
    return any((room / slug).exists() for room in _CASKROOMS)


def assign_install_methods(
    apps: list[ApplicationInfo],
    store_apps: list[AppStoreApp],
    casks: list[str],
) -> None:
    store_ids = {a.app_id for a in store_apps}
    store_names = {a.name for a in store_apps}
    for app in apps:
        if app.source in ("System", "Utilities"):
            app.install_method = "system"
        elif (app.bundle_id and app.bundle_id in store_ids) or app.name in store_names:
            app.install_method = "mas"
        elif has_mas_receipt(app):
            app.install_method = "mas"
        elif looks_like_cask(app.name, casks):
            app.install_method = "cask"
        elif app.source in ("Applications", "User Applications"):
            app.install_method = "direct"
        else:
            app.install_method = "unknown"


def summarize(apps: list[ApplicationInfo], store_apps: list[AppStoreApp]) -> ApplicationsSummary:
    by_source: dict[str, int] = {}
    by_method: dict[str, int] = {}
    for app in apps:
        by_source[app.source] = by_source.get(app.source, 0) + 1
        by_method[app.install_method] = by_method.get(app.install_method, 0) + 1
    return ApplicationsSummary(
        total_apps=len(apps),
        app_store_apps=len(store_apps),
        cask_apps=by_method.get("cask", 0),
        direct_downloads=by_method.get("direct", 0),
        by_source=by_source,
        by_install_method=by_method,
    )


def collect_applications(
    home: Path,
    *,
    app_dirs: list[tuple[Path, AppSource]] | None = None,
    runner: Runner = _run_subprocess,
    brew_path: str = "brew",
) -> ApplicationsData:
    casks = installed_casks(runner, brew_path)
    apps = scan_applications(app_dirs if app_dirs is not None else default_app_dirs(home))
    store_apps = app_store_apps(apps, runner)
    assign_install_methods(apps, store_apps, casks)
    logger.info("Collected %d applications (%d App Store)", len(apps), len(store_apps))
    return ApplicationsData(
        all_applications=apps,
        app_store_apps=store_apps,
        cask_apps=casks,
        summary=summarize(apps, store_apps),
    )


# ── Restore ──────────────────────────────────────────────────────────


def install_applications(
    data: ApplicationsData,
    report_path: Path,
    *,
    runner: Runner = _run_subprocess,
    echo: Callable[[str], None] = click.echo,
) -> dict:
    """Install App Store apps via ``mas`` and write the follow-up report.

    Returns:
        ``{"installed": [...], "failed": [...], "skipped": [...], "report": path}``
    """
    result: dict = {"installed": [], "failed": [], "skipped": [], "report": str(report_path)}
    echo("Installing applications...")

    has_mas = runner(["mas", "version"], timeout=30)["ok"]
    if not has_mas:
        echo("Mac App Store CLI (mas) not found. Install it with: brew install mas")

    if has_mas and data.app_store_apps:
        echo(f"Installing {len(data.app_store_apps)} App Store apps "
             "(you must be signed into the App Store)...")
        for app in data.app_store_apps:
            if not app.app_id.isdigit():
                echo(f"  Skipping {app.name} (no App Store id)")
                result["skipped"].append(app.name)
                continue
            echo(f"  Installing: {app.name}")
            r = runner(["mas", "install", app.app_id], timeout=1800)
            if r["ok"]:
                result["installed"].append(app.name)
            else:
                logger.warning("mas install %s failed: %s", app.app_id, r.get("stderr") or r.get("error"))
                echo(click.style(f"  ❌ Failed to install {app.name}", fg="red"))
                result["failed"].append(app.name)

    try:
        report_path.parent.mkdir(parents=True, exist_ok=True)
        report_path.write_text(render_report(data), encoding="utf-8")
        echo(f"Application report saved to {report_path}")
    except OSError as e:
        logger.warning("Could not write application report %s: %s", report_path, e)
        result["report"] = ""
    return result


def render_report(data: ApplicationsData) -> str:
    store_ids = {a.app_id for a in data.app_store_apps}
    store_names = {a.name for a in data.app_store_apps}
    others = [
        a for a in data.all_applications
        if a.name not in store_names and (a.bundle_id or "") not in store_ids
    ]

    def by_method(method: str) -> list[ApplicationInfo]:
        return [a for a in others if a.install_method == method]

    casks, direct, unknown = by_method("cask"), by_method("direct"), by_method("unknown")
    lines = [
        "Application Installation Report",
        "===============================",
        "",
        f"Total applications found: {data.summary.total_apps}",
        f"App Store apps: {len(data.app_store_apps)} (install via mas or the App Store)",
        f"Cask apps: {len(casks)}",
        f"Direct downloads needed: {len(direct)}",
        f"Unknown source: {len(unknown)}",
        "",
    ]
    sections = (
        ("Cask applications (installed with the brew casks):", casks, False),
        ("Direct download applications (manual installation needed):", direct, False),
        ("Applications with unknown source:", unknown, True),
    )
    for title, apps, with_source in sections:
        if not apps:
            continue
        lines.append(title)
        lines.append("-" * len(title))
        for a in apps:
            suffix = f" from {a.source}" if with_source else ""
            lines.append(f"  - {a.name} ({a.version or 'N/A'}){suffix}")
        lines.append("")
    return "\n".join(lines) + "\n"
