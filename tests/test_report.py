"""
Tests for the end-of-run install report.
"""

from macsetup.core.models.ledger import ProgressLedger
from macsetup.core.models.outcome import ErrorKind, InstallOutcome
from macsetup.core.models.package import PackageItem, PackageKind, Snapshot
from macsetup.core.services.install.report import InstallReport
from macsetup.core.services.install.session import InstallSession, prioritize


def _item(kind: PackageKind, name: str) -> PackageItem:
    return PackageItem(kind=kind, name=name)


def _report(**kwargs) -> InstallReport:
    session = InstallSession(items=[])
    session.record(InstallOutcome.succeeded(_item(PackageKind.FORMULA, "jq")))
    session.record(InstallOutcome.renamed(_item(PackageKind.FORMULA, "foo"), "foo-ng"))
    session.record(InstallOutcome.failed(
        _item(PackageKind.FORMULA, "bar"), ErrorKind.TIMEOUT, "timed out",
    ))
    session.record(InstallOutcome.failed(_item(PackageKind.CASK, "baz"), ErrorKind.NOT_FOUND))
    session.record(InstallOutcome.skipped(_item(PackageKind.CASK, "slack"), ErrorKind.NEEDS_ADMIN))
    session.record(InstallOutcome.skipped(
        _item(PackageKind.CASK, "zoom"), ErrorKind.USER_SKIPPED, "not found",
    ))
    session.record_previously_done(_item(PackageKind.TAP, "a/b"))
    defaults = {"name_changes": {"foo": "foo-ng"}, "duration_ms": 1500, "toolchain_ok": True}
    return InstallReport.from_session(session, **{**defaults, **kwargs})


class TestInstallReport:
    def test_counts(self):
        report = _report()
        formulae = report.summary_for(PackageKind.FORMULA)
        assert (formulae.succeeded, formulae.failed) == (2, 1)
        casks = report.summary_for(PackageKind.CASK)
        assert (casks.failed, casks.skipped) == (1, 2)
        assert report.summary_for(PackageKind.TAP).previously_done == 1
        assert report.total_succeeded == 2
        assert report.total_failed == 2

    def test_failures_grouped(self):
        grouped = _report().failures_by_reason()
        assert set(grouped) == {ErrorKind.TIMEOUT, ErrorKind.NOT_FOUND}
        assert grouped[ErrorKind.TIMEOUT][0].item.name == "bar"

    def test_skips_split_by_cause(self):
        report = _report()
        assert [o.item.name for o in report.policy_skipped()] == ["slack"]
        assert [o.item.name for o in report.operator_skipped()] == ["zoom"]

    def test_summary_lines(self):
        text = "\n".join(line for line, _ in _report().summary_lines())
        assert "Install finished in 1.5s" in text
        assert "foo → foo-ng" in text
        assert "timeout (1):" in text
        assert "Skipped 1 cask(s) in profile mode" in text
        assert "Command Line Tools" not in text

    def test_degraded_toolchain_mentioned(self):
        text = "\n".join(line for line, _ in _report(toolchain_ok=False).summary_lines())
        assert "Command Line Tools were not confirmed" in text

    def test_to_dict(self):
        data = _report().to_dict()
        assert data["total_failed"] == 2
        assert data["kinds"]["formulae"]["succeeded"] == 2
        assert data["name_changes"] == {"foo": "foo-ng"}


class TestSession:
    def test_build_drops_settled(self):
        ledger = ProgressLedger()
        ledger.mark_completed(PackageKind.FORMULA, "jq")
        snap = Snapshot.from_dict({"formulae": ["jq", "bat"], "casks": ["firefox"]})
        session = InstallSession.build(snap, ledger, [])
        assert [i.name for i in session.items] == ["bat", "firefox"]
        assert session.tallies[PackageKind.FORMULA].previously_done == 1

    def test_rename_counts_as_settled(self):
        ledger = ProgressLedger(name_changes={"foo": "foo-ng"})
        ledger.mark_completed(PackageKind.FORMULA, "foo-ng")
        assert InstallSession.already_settled(ledger, _item(PackageKind.FORMULA, "foo"))

    def test_prioritize_matches_tap_qualified_names(self):
        items = tuple(_item(PackageKind.FORMULA, n) for n in ("jq", "homebrew/core/git"))
        assert [i.name for i in prioritize(items, ["git"])] == ["homebrew/core/git", "jq"]
