"""
macsetup — CLI entrypoint.

Usage:
    macsetup --help
    macsetup collect -o setup.tar.gz
    macsetup install setup.tar.gz --resume
    macsetup progress show
"""

from __future__ import annotations

import json
from pathlib import Path

import click

from macsetup import __version__
from macsetup.core.observability.logging_config import resolve_level, setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="macsetup")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False, dir_okay=False),
    default=None,
    help="Path to config.yml (default: $MACSETUP_CONFIG or ~/.config/macsetup/config.yml).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """macsetup — snapshot a Mac's setup and replay it on another machine."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path).expanduser() if config_path else None

    # ── Logging setup (once, at process start) ──────────────────
    setup_logging(level=resolve_level(debug=debug, verbose=verbose, quiet=quiet))


@cli.group()
def config() -> None:
    """Configuration commands."""


@config.command("show")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def config_show(ctx: click.Context, as_json: bool) -> None:
    """Show the effective configuration (file merged over defaults)."""
    from macsetup.ui.cli.common import settings_from

    settings = settings_from(ctx)
    data = settings.model_dump(mode="json")

    if as_json:
        click.echo(json.dumps(data, indent=2))
        return

    source = settings.source or "(defaults — no config file)"
    click.secho(f"\n⚙️  Configuration: {source}", fg="cyan", bold=True)
    for section, values in data.items():
        click.secho(f"   {section}:", bold=True)
        for key, value in values.items():
            click.echo(f"     {key}: {value}")
    click.echo()


# ── Register sub-command groups ─────────────────────────────────

from macsetup.ui.cli.collect import collect
from macsetup.ui.cli.install import install
from macsetup.ui.cli.progress import progress

cli.add_command(collect)
cli.add_command(install)
cli.add_command(progress)


if __name__ == "__main__":
    cli()
