"""
Tests for the Homebrew adapter — driven against a fake ``brew`` script.
"""

import stat
from pathlib import Path

import pytest

from macsetup.adapters.brew import BrewAdapter, brew_path_for, decorate_line
from macsetup.core.persistence.run_log import RunLog

FAKE_BREW = """#!/bin/sh
case "$1" in
  install)
    echo "==> Downloading $2"
    echo "==> Pouring $2"
    exit 0 ;;
  fail)
    echo "Error: No available formula with the name \\"$2\\"."
    exit 1 ;;
  stderr)
    echo "Warning: on stderr" >&2
    exit 3 ;;
  hang)
    sleep 30 ;;
  linger)
    (sleep 30) &
    echo "done"
    exit 0 ;;
  env)
    echo "auto-update=$HOMEBREW_NO_AUTO_UPDATE" ;;
esac
"""


@pytest.fixture
def fake_brew(tmp_path: Path) -> Path:
    path = tmp_path / "bin" / "brew"
    path.parent.mkdir()
    path.write_text(FAKE_BREW)
    path.chmod(path.stat().st_mode | stat.S_IEXEC)
    return path


@pytest.fixture
def echoed() -> list[str]:
    return []


@pytest.fixture
def adapter(fake_brew: Path, echoed: list[str]) -> BrewAdapter:
    return BrewAdapter(str(fake_brew), echo=echoed.append)


class TestRun:
    def test_success(self, adapter: BrewAdapter):
        result = adapter.run(["install", "jq"], timeout=10)
        assert result.ok
        assert result.returncode == 0
        assert "==> Pouring jq" in result.output
        assert result.args == ["install", "jq"]

    def test_nonzero_exit(self, adapter: BrewAdapter):
        result = adapter.run(["fail", "foo"], timeout=10)
        assert not result.ok
        assert result.returncode == 1
        assert "No available formula" in result.output

    def test_stderr_merged(self, adapter: BrewAdapter):
        result = adapter.run(["stderr"], timeout=10)
        assert result.returncode == 3
        assert "Warning: on stderr" in result.output

    def test_streams_lines(self, adapter: BrewAdapter, echoed: list[str]):
        adapter.run(["install", "jq"], timeout=10)
        assert len(echoed) == 2
        assert "Pouring jq" in echoed[1]

    def test_no_stream(self, adapter: BrewAdapter, echoed: list[str]):
        adapter.run(["install", "jq"], timeout=10, stream=False)
        assert echoed == []

    def test_timeout_kills_process(self, adapter: BrewAdapter):
        result = adapter.run(["hang"], timeout=0.5)
        assert result.timed_out
        assert result.returncode is None
        assert not result.ok
        assert result.duration_ms < 10_000

    def test_exited_command_with_leftover_child_not_timed_out(self, adapter: BrewAdapter):
        result = adapter.run(["linger"], timeout=0.5)
        assert not result.timed_out
        assert result.returncode == 0
        assert "done" in result.output
        assert result.duration_ms < 10_000

    def test_missing_executable(self, tmp_path: Path):
        adapter = BrewAdapter(str(tmp_path / "nope" / "brew"), echo=lambda msg: None)
        result = adapter.run(["install", "jq"], timeout=5)
        assert not result.ok
        assert result.error
        assert not adapter.is_available()

    def test_auto_update_disabled(self, adapter: BrewAdapter):
        result = adapter.run(["env"], timeout=10)
        assert "auto-update=1" in result.output

    def test_run_log(self, fake_brew: Path, tmp_path: Path):
        log = RunLog(tmp_path / "run.log")
        BrewAdapter(str(fake_brew), run_log=log, echo=lambda msg: None).run(
            ["install", "jq"], timeout=10,
        )
        lines = [ln.split(" ", 1)[1] for ln in log.read_lines()]
        assert lines[0] == f"$ {fake_brew} install jq"
        assert "  | ==> Downloading jq" in lines
        assert lines[-1].startswith("  exit 0")


def test_brew_path_for_prefix(tmp_path: Path):
    assert brew_path_for(tmp_path) == str(tmp_path / "bin" / "brew")


def test_decorate_line_keeps_text():
    assert "Error: boom" in decorate_line("Error: boom")
    assert decorate_line("  plain  ") == "    plain"
