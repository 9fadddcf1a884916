"""
CLI command for snapshotting this machine.

Thin wrapper over ``macsetup.core.services.snapshot.collector``.
"""

from __future__ import annotations

import functools
import json
from pathlib import Path

import click

from macsetup.ui.cli.common import fail, settings_from


@click.command()
@click.option("--output", "-o", type=click.Path(path_type=Path),
              default=Path("macsetup-archive.tar.gz"), show_default=True,
              help="Archive to write.")
@click.option("--include-sensitive/--no-include-sensitive", default=None,
              help="Also collect credentials and keys (SSH, AWS, npm, ...).")
@click.option("--encrypt/--no-encrypt", default=None,
              help="Encrypt sensitive files with a generated key (default: on).")
@click.option("--skip-apps", is_flag=True, help="Do not inventory applications.")
@click.option("--brew-prefix", type=click.Path(path_type=Path), default=None,
              help="Collect from the Homebrew in this prefix.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def collect(
    ctx: click.Context,
    output: Path,
    include_sensitive: bool | None,
    encrypt: bool | None,
    skip_apps: bool,
    brew_prefix: Path | None,
    as_json: bool,
) -> None:
    """Snapshot Homebrew packages, dotfiles and apps into an archive.

    Examples:

        macsetup collect -o ~/Desktop/setup.tar.gz

        macsetup collect --include-sensitive
    """
    from macsetup.adapters.brew import brew_path_for
    from macsetup.core.services.snapshot.brew_collect import BrewCollectError
    from macsetup.core.services.snapshot.collector import collect_setup

    cfg = settings_from(ctx).collect
    echo = functools.partial(click.echo, err=True) if as_json else click.echo

    try:
        result = collect_setup(
            output.expanduser(),
            home=Path.home(),
            brew_path=brew_path_for(brew_prefix.expanduser() if brew_prefix else None),
            include_sensitive=cfg.include_sensitive if include_sensitive is None else include_sensitive,
            encrypt_sensitive=cfg.encrypt_sensitive if encrypt is None else encrypt,
            include_applications=cfg.include_applications and not skip_apps,
            echo=echo,
        )
    except BrewCollectError as e:
        fail(str(e))
    except OSError as e:
        fail(f"Cannot write archive: {e}")

    if as_json:
        click.echo(json.dumps(result, indent=2))
        return

    click.secho(f"\n✅ Archive written to {result['archive']}", fg="green", bold=True)
    for name, count in result["counts"].items():
        click.echo(f"   {name}: {count}")
    if result["key"]:
        click.echo()
        click.secho("🔐 Sensitive files are encrypted. Keep this key safe:", fg="yellow", bold=True)
        click.echo(f"   {result['key']}")
        click.echo("   You will need it for: macsetup install <archive> --decrypt-key <key>")
    click.echo()
