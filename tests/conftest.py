"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from macsetup.adapters.mock import MockPackageManager, ScriptedConfirmation
from macsetup.core.models.options import InstallOptions
from macsetup.core.models.package import Snapshot


@pytest.fixture
def progress_file(tmp_path: Path) -> Path:
    """Return a progress file path inside a temporary directory."""
    return tmp_path / "state" / "install-progress.json"


@pytest.fixture
def options(progress_file: Path) -> InstallOptions:
    """Install options that never pause and never update brew."""
    return InstallOptions(
        progress_file=progress_file,
        pause_on_error=False,
        update_before_install=False,
    )


@pytest.fixture
def manager() -> MockPackageManager:
    return MockPackageManager()


@pytest.fixture
def operator() -> ScriptedConfirmation:
    return ScriptedConfirmation()


@pytest.fixture
def snapshot() -> Snapshot:
    """A small snapshot with one item of each kind."""
    return Snapshot.from_dict({
        "taps": ["hashicorp/tap"],
        "formulae": [{"name": "jq", "tap": "homebrew/core"}],
        "casks": [{"token": "firefox", "name": ["Firefox"], "tap": "homebrew/cask"}],
    })


@pytest.fixture
def fake_home(tmp_path: Path, monkeypatch) -> Path:
    """Point $HOME at an empty temporary directory."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    return home
