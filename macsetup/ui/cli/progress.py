"""
CLI commands for inspecting the install progress ledger.

Thin wrappers over ``macsetup.core.persistence.ledger_file``.
"""

from __future__ import annotations

import json
from pathlib import Path

import click

from macsetup.ui.cli.common import fail, settings_from


def _progress_path(ctx: click.Context, explicit: Path | None) -> Path:
    if explicit is not None:
        return explicit.expanduser()
    return settings_from(ctx).install.progress_file


@click.group()
def progress() -> None:
    """Progress — inspect or reset the saved install progress."""


@progress.command("show")
@click.option("--progress-file", type=click.Path(path_type=Path), default=None,
              help="Progress file to read.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def show(ctx: click.Context, progress_file: Path | None, as_json: bool) -> None:
    """Show completed and failed items, and recorded renames."""
    from macsetup.core.models.ledger import parse_failed_entry
    from macsetup.core.models.package import PackageKind
    from macsetup.core.persistence.ledger_file import load_ledger

    path = _progress_path(ctx, progress_file)
    exists = path.is_file()
    ledger = load_ledger(path)

    if as_json:
        data = ledger.model_dump(mode="json", by_alias=True)
        click.echo(json.dumps({"path": str(path), "exists": exists, **data}, indent=2))
        return

    if not exists:
        click.echo(f"No progress saved at {path}")
        return

    click.secho(f"\n📋 Progress: {path}", fg="cyan", bold=True)
    click.echo(f"   Last updated: {ledger.last_updated}")
    click.echo(f"   Toolchain verified: {'yes' if ledger.toolchain_verified else 'no'}")
    click.echo()

    for kind in PackageKind:
        completed = ledger.completed(kind)
        failed = ledger.failed(kind)
        click.echo(f"   {kind.plural:<9} {len(completed)} completed, {len(failed)} failed")
        for entry in failed:
            name, reason = parse_failed_entry(entry)
            click.secho(f"     ✗ {name} ({reason.label})", fg="red")

    if ledger.name_changes:
        click.echo()
        click.secho("   Renames:", bold=True)
        for original, replacement in ledger.name_changes.items():
            click.echo(f"     {original} → {replacement}")
    click.echo()


@progress.command("reset")
@click.option("--progress-file", type=click.Path(path_type=Path), default=None,
              help="Progress file to delete.")
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation.")
@click.pass_context
def reset(ctx: click.Context, progress_file: Path | None, yes: bool) -> None:
    """Discard saved progress so every item is attempted again."""
    path = _progress_path(ctx, progress_file)
    if not path.exists():
        click.echo(f"No progress saved at {path}")
        return

    if not yes and not click.confirm(f"Delete {path}?", default=False):
        click.echo("Kept.")
        return

    try:
        path.unlink()
    except OSError as e:
        fail(f"Cannot delete {path}: {e}")
    click.secho(f"✅ Progress reset ({path})", fg="green")
