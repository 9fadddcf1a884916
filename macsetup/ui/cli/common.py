"""
Helpers shared by the CLI command modules.
"""

from __future__ import annotations

import sys
from typing import NoReturn

import click

from macsetup.core.config.loader import ConfigError, Settings, load_settings


def fail(message: str) -> NoReturn:
    """Print an error and exit with status 1."""
    click.secho(f"❌ {message}", fg="red", err=True)
    sys.exit(1)


def settings_from(ctx: click.Context) -> Settings:
    """Load settings once per invocation; exits 1 on a bad config file."""
    obj = ctx.find_root().ensure_object(dict)
    if "settings" not in obj:
        try:
            obj["settings"] = load_settings(obj.get("config_path"))
        except ConfigError as e:
            fail(str(e))
    return obj["settings"]
