"""
CLI command for replaying a setup archive.

Thin wrapper over ``macsetup.core.services.install`` (Homebrew) and
``macsetup.core.services.snapshot`` (shell, sensitive files, apps).
"""

from __future__ import annotations

import functools
import json
from pathlib import Path

import click

from macsetup.ui.cli.common import fail, settings_from


@click.command()
@click.argument("archive", type=click.Path(path_type=Path))
@click.option("--profile", "use_profile", is_flag=True,
              help="Install into a user-writable prefix (no admin rights; casks are skipped).")
@click.option("--brew-prefix", type=click.Path(path_type=Path), default=None,
              help="Homebrew prefix for --profile (default: ~/homebrew).")
@click.option("--decrypt-key", default=None, help="Key printed by 'collect' for sensitive files.")
@click.option("--skip-sensitive", is_flag=True, help="Do not restore sensitive files.")
@click.option("--skip-shell", is_flag=True, help="Do not restore shell configuration.")
@click.option("--skip-apps", is_flag=True, help="Do not restore App Store apps.")
@click.option("--resume", is_flag=True, help="Continue from the saved progress file.")
@click.option("--progress-file", type=click.Path(path_type=Path), default=None,
              help="Where progress is saved (default: ~/.macsetup/install-progress.json).")
@click.option("--timeout", type=click.IntRange(min=1), default=None,
              help="Seconds allowed per package (default: 300).")
@click.option("--pause-on-error/--no-pause-on-error", default=None,
              help="Stop for confirmation after each failure (default: on).")
@click.option("--log-file", type=click.Path(path_type=Path), default=None,
              help="Append every command and its output to this file.")
@click.option("--appdir", type=click.Path(path_type=Path), default=None,
              help="Install casks into this directory.")
@click.option("--skip-update", is_flag=True, help="Do not run 'brew update' first.")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output the report as JSON.")
@click.pass_context
def install(
    ctx: click.Context,
    archive: Path,
    use_profile: bool,
    brew_prefix: Path | None,
    decrypt_key: str | None,
    skip_sensitive: bool,
    skip_shell: bool,
    skip_apps: bool,
    resume: bool,
    progress_file: Path | None,
    timeout: int | None,
    pause_on_error: bool | None,
    log_file: Path | None,
    appdir: Path | None,
    skip_update: bool,
    as_json: bool,
) -> None:
    """Install everything recorded in ARCHIVE on this machine.

    ARCHIVE is a .tar.gz produced by 'macsetup collect' (or the
    directory it was extracted to).

    Examples:

        macsetup install setup.tar.gz

        macsetup install setup.tar.gz --profile --resume --no-pause-on-error
    """
    from macsetup.adapters.brew import BrewAdapter, brew_path_for
    from macsetup.adapters.console import ConsoleConfirmation
    from macsetup.core.models.options import InstallOptions
    from macsetup.core.persistence.ledger_file import LedgerPersistenceError
    from macsetup.core.persistence.run_log import RunLog
    from macsetup.core.services.install.installer import BulkInstaller, InstallCancelled
    from macsetup.core.services.install.toolchain import Toolchain, ToolchainError
    from macsetup.core.services.snapshot.applications import REPORT_FILENAME, install_applications
    from macsetup.core.services.snapshot.archive import ArchiveError, open_archive
    from macsetup.core.services.snapshot.sensitive import install_sensitive
    from macsetup.core.services.snapshot.shell_config import add_brew_env, install_shell_config

    cfg = settings_from(ctx).install
    options = InstallOptions(
        resume=resume,
        progress_file=(progress_file or cfg.progress_file).expanduser(),
        timeout_per_item=timeout or cfg.timeout,
        pause_on_error=cfg.pause_on_error if pause_on_error is None else pause_on_error,
        use_profile=use_profile,
        brew_prefix=brew_prefix.expanduser() if brew_prefix else None,
        cask_appdir=appdir or cfg.cask_appdir,
        run_log=log_file or cfg.run_log,
        priority_formulae=cfg.priority_formulae,
        update_before_install=cfg.update_before_install and not skip_update,
        search_timeout=cfg.search_timeout,
    )

    # Keep stdout clean for the JSON document
    echo = functools.partial(click.echo, err=True) if as_json else click.echo
    home = Path.home()
    prefix = options.effective_prefix

    try:
        with open_archive(archive) as setup:
            snapshot = setup.snapshot()
            run_log = RunLog(options.run_log)
            manager = BrewAdapter(brew_path_for(prefix), run_log=run_log, echo=echo)
            confirm = ConsoleConfirmation(err=as_json)
            toolchain = Toolchain(
                manager,
                profile_prefix=prefix if use_profile else None,
                echo=echo,
            )
            installer = BulkInstaller(
                manager, confirm, options,
                toolchain=toolchain, run_log=run_log, echo=echo,
            )

            echo(click.style(
                f"\n📦 Installing {snapshot.total} Homebrew item(s) from {archive}",
                fg="cyan", bold=True,
            ))
            try:
                report = installer.run(snapshot)
            except InstallCancelled as e:
                fail(f"Installation cancelled: {e}. Re-run with --resume to continue.")
            except LedgerPersistenceError as e:
                fail(f"Cannot save progress: {e}")
            except ToolchainError as e:
                fail(str(e))

            extras: dict = {}
            if not skip_shell:
                shell = setup.shell_config()
                if shell is not None:
                    extras["shell"] = install_shell_config(shell, setup.shell_files, home, echo=echo)
                if use_profile and prefix is not None:
                    extras["brew_env"] = add_brew_env(home, prefix, echo=echo)

            if not skip_sensitive:
                sensitive = setup.sensitive()
                if sensitive is not None:
                    extras["sensitive"] = install_sensitive(
                        sensitive, setup.sensitive_files, home,
                        key=decrypt_key, confirm=confirm, echo=echo,
                    )

            if not skip_apps:
                apps = setup.applications()
                if apps is not None:
                    extras["applications"] = install_applications(
                        apps, options.progress_file.parent / REPORT_FILENAME, echo=echo,
                    )
    except ArchiveError as e:
        fail(str(e))

    if as_json:
        click.echo(json.dumps({**report.to_dict(), **extras}, indent=2))
        return

    click.echo()
    for text, colour in report.summary_lines():
        click.secho(text, fg=colour)
    click.echo()
