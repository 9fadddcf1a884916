"""
Tests for setup archives — collection, the archive format and the
non-brew restore sections (shell config, sensitive files, applications).
"""

import io
import json
import plistlib
import tarfile
from pathlib import Path

import pytest

from macsetup.adapters.mock import ScriptedConfirmation
from macsetup.core.services.snapshot import archive, file_backup
from macsetup.core.services.snapshot.applications import (
    assign_install_methods,
    install_applications,
    looks_like_cask,
    parse_mas_list,
    render_report,
    scan_applications,
)
from macsetup.core.services.snapshot.archive import (
    ArchiveError,
    SetupArchive,
    create_archive,
    extract_archive,
    open_archive,
)
from macsetup.core.services.snapshot.brew_collect import BrewCollectError, collect_brew
from macsetup.core.services.snapshot.collector import collect_setup
from macsetup.core.services.snapshot.crypto import (
    DecryptionError,
    decrypt_bytes,
    encrypt_bytes,
    generate_key,
    is_encrypted,
)
from macsetup.core.services.snapshot.file_backup import backup_file, contained_path
from macsetup.core.services.snapshot.models import (
    ApplicationInfo,
    ApplicationsData,
    AppStoreApp,
    ArchiveManifest,
    SensitiveData,
    SensitiveFile,
    ShellConfig,
    ShellConfigFile,
)
from macsetup.core.services.snapshot.sensitive import collect_sensitive, install_sensitive
from macsetup.core.services.snapshot.shell_config import (
    add_brew_env,
    collect_shell_config,
    install_shell_config,
)

FAST = 1_000  # KDF iterations for tests

BREW_INFO = {
    "formulae": [
        {"name": "jq", "tap": "homebrew/core", "desc": "JSON processor", "homepage": "x"},
        {"name": "terraform", "tap": "hashicorp/tap"},
    ],
    "casks": [
        {"token": "firefox", "name": ["Firefox"], "tap": "homebrew/cask"},
    ],
}


def quiet(msg: str) -> None:
    pass


class FakeRunner:
    """``_run_subprocess`` stand-in answering by command prefix."""

    def __init__(self, responses: dict[tuple[str, ...], dict]):
        self.responses = responses
        self.calls: list[list[str]] = []

    def __call__(self, cmd, **kwargs):
        self.calls.append(list(cmd))
        for prefix, result in self.responses.items():
            if tuple(cmd[:len(prefix)]) == prefix:
                return result
        return {"ok": False, "error": "not scripted"}


def brew_runner() -> FakeRunner:
    return FakeRunner({
        ("brew", "info"): {"ok": True, "stdout": "Warning: x\n" + json.dumps(BREW_INFO)},
        ("brew", "tap"): {"ok": True, "stdout": "homebrew/core\nuser/extra\n"},
        ("brew", "list", "--cask"): {"ok": True, "stdout": "firefox\n"},
    })


# ── Crypto ───────────────────────────────────────────────────────────


class TestCrypto:
    def test_roundtrip(self):
        key = generate_key()
        blob = encrypt_bytes(b"secret", key, FAST)
        assert is_encrypted(blob)
        assert decrypt_bytes(blob, key, FAST) == b"secret"

    def test_wrong_key(self):
        blob = encrypt_bytes(b"secret", "right-key", FAST)
        with pytest.raises(DecryptionError, match="Wrong key"):
            decrypt_bytes(blob, "wrong-key", FAST)

    def test_plain_data_rejected(self):
        with pytest.raises(DecryptionError):
            decrypt_bytes(b"x" * 200, "key!", FAST)

    def test_truncated(self):
        with pytest.raises(DecryptionError, match="Truncated"):
            decrypt_bytes(b"MSETUP_v1", "key!", FAST)

    def test_short_key(self):
        with pytest.raises(ValueError):
            encrypt_bytes(b"x", "abc", FAST)

    def test_keys_are_unique(self):
        assert generate_key() != generate_key()
        assert len(generate_key()) == 64


# ── Backups ──────────────────────────────────────────────────────────


class TestBackupFile:
    def test_missing_file(self, tmp_path: Path):
        assert backup_file(tmp_path / "nope") is None

    def test_copy(self, tmp_path: Path):
        path = tmp_path / ".zshrc"
        path.write_text("old")
        backup = backup_file(path)
        assert backup.name.startswith(".zshrc.bak.")
        assert backup.read_text() == "old"

    def test_same_second_collision(self, tmp_path: Path, monkeypatch):
        monkeypatch.setattr(file_backup.time, "strftime", lambda fmt: "20260101_000000")
        path = tmp_path / ".zshrc"
        path.write_text("old")
        first = backup_file(path)
        second = backup_file(path)
        assert first.name == ".zshrc.bak.20260101_000000"
        assert second.name == ".zshrc.bak.20260101_000000_1"


class TestContainedPath:
    def test_nested_relative(self, tmp_path: Path):
        assert contained_path(tmp_path, ".ssh/config") == tmp_path / ".ssh" / "config"

    @pytest.mark.parametrize("rel", ["../evil", ".ssh/../../evil", "/etc/passwd", ""])
    def test_escapes_rejected(self, tmp_path: Path, rel: str):
        with pytest.raises(ValueError, match="unsafe path"):
            contained_path(tmp_path / "home", rel)

    def test_symlinked_parent_escape(self, tmp_path: Path):
        home = tmp_path / "home"
        home.mkdir()
        (home / ".config").symlink_to(tmp_path / "elsewhere")
        with pytest.raises(ValueError):
            contained_path(home, ".config/x")


# ── Archive format ───────────────────────────────────────────────────


def _staging(tmp_path: Path) -> Path:
    staging = tmp_path / "staging"
    archive.write_json(staging / archive.MANIFEST, ArchiveManifest(sections=["brew"]))
    archive.write_json(staging / archive.BREW, {"formulae": ["jq"], "taps": ["a/b"]})
    return staging


class TestArchive:
    def test_create_and_open(self, tmp_path: Path):
        out = create_archive(_staging(tmp_path), tmp_path / "setup.tar.gz")
        with tarfile.open(out) as tar:
            assert tar.getnames()[0] == archive.MANIFEST

        with open_archive(out) as setup:
            snap = setup.snapshot()
            assert [f.name for f in snap.formulae] == ["jq"]
            assert setup.manifest.sections == ["brew"]
            assert setup.shell_config() is None

    def test_open_directory(self, tmp_path: Path):
        with open_archive(_staging(tmp_path)) as setup:
            assert setup.snapshot().total == 2

    def test_missing(self, tmp_path: Path):
        with pytest.raises(ArchiveError, match="not found"):
            with open_archive(tmp_path / "missing.tar.gz"):
                pass

    def test_no_manifest(self, tmp_path: Path):
        with pytest.raises(ArchiveError, match="manifest"):
            SetupArchive(tmp_path)

    def test_not_a_tarball(self, tmp_path: Path):
        bogus = tmp_path / "bogus.tar.gz"
        bogus.write_text("not gzip")
        with pytest.raises(ArchiveError):
            with open_archive(bogus):
                pass

    def test_missing_brew_section_is_empty(self, tmp_path: Path):
        archive.write_json(tmp_path / archive.MANIFEST, ArchiveManifest())
        assert SetupArchive(tmp_path).snapshot().total == 0

    def test_invalid_brew_section(self, tmp_path: Path):
        archive.write_json(tmp_path / archive.MANIFEST, ArchiveManifest())
        archive.write_json(tmp_path / archive.BREW, {"formulae": [{"tap": "x/y"}]})
        with pytest.raises(ArchiveError):
            SetupArchive(tmp_path).snapshot()

    def test_unsafe_members_skipped(self, tmp_path: Path):
        tarball = tmp_path / "evil.tar.gz"
        with tarfile.open(tarball, "w:gz") as tar:
            for name, data in (("manifest.json", b"{}"), ("../escape.txt", b"x")):
                info = tarfile.TarInfo(name)
                info.size = len(data)
                tar.addfile(info, io.BytesIO(data))

        dest = tmp_path / "out"
        dest.mkdir()
        skipped = extract_archive(tarball, dest)
        assert skipped == ["../escape.txt"]
        assert not (tmp_path / "escape.txt").exists()
        assert (dest / "manifest.json").is_file()


# ── Brew collection ──────────────────────────────────────────────────


class TestCollectBrew:
    def test_collects(self):
        data = collect_brew(runner=brew_runner())
        assert [f["name"] for f in data["formulae"]] == ["jq", "terraform"]
        assert data["casks"][0] == {
            "token": "firefox", "name": "Firefox", "tap": "homebrew/cask",
            "desc": None, "homepage": None,
        }
        assert data["taps"] == ["user/extra", "hashicorp/tap"]

    def test_info_failure(self):
        runner = FakeRunner({("brew", "info"): {"ok": False, "error": "boom"}})
        with pytest.raises(BrewCollectError):
            collect_brew(runner=runner)

    def test_garbage_output(self):
        runner = FakeRunner({("brew", "info"): {"ok": True, "stdout": "nothing here"}})
        with pytest.raises(BrewCollectError):
            collect_brew(runner=runner)


# ── Shell configuration ──────────────────────────────────────────────


class TestShellConfig:
    def _collect(self, tmp_path: Path):
        home = tmp_path / "old-home"
        (home / ".ssh").mkdir(parents=True)
        (home / ".zshrc").write_text("export A=1\n")
        (home / ".ssh" / "config").write_text("Host *\n")
        (home / ".ssh" / "config").chmod(0o600)
        files = tmp_path / "files"
        return collect_shell_config(home, files), files

    def test_collect(self, tmp_path: Path):
        config, files = self._collect(tmp_path)
        paths = {f.path: f for f in config.files}
        assert set(paths) == {".zshrc", ".ssh/config"}
        assert paths[".ssh/config"].mode == "600"
        assert (files / ".zshrc").read_text() == "export A=1\n"

    def test_install_backs_up_existing(self, tmp_path: Path):
        config, files = self._collect(tmp_path)
        home = tmp_path / "new-home"
        home.mkdir()
        (home / ".zshrc").write_text("mine\n")

        result = install_shell_config(config, files, home, echo=quiet)
        assert sorted(result["installed"]) == [".ssh/config", ".zshrc"]
        assert len(result["backups"]) == 1
        assert (home / ".zshrc").read_text() == "export A=1\n"
        assert (home / ".ssh" / "config").stat().st_mode & 0o777 == 0o600
        assert list(home.glob(".zshrc.bak.*"))[0].read_text() == "mine\n"

    def test_missing_source_skipped(self, tmp_path: Path):
        config, _ = self._collect(tmp_path)
        empty = tmp_path / "empty"
        empty.mkdir()
        result = install_shell_config(config, empty, tmp_path / "h", echo=quiet)
        assert len(result["skipped"]) == 2

    def test_entries_outside_home_rejected(self, tmp_path: Path):
        files = tmp_path / "archive" / "files"
        files.mkdir(parents=True)
        (tmp_path / "archive" / "evil").write_text("payload")
        (files / ".zshrc").write_text("export A=1\n")
        outside = tmp_path / "abs-target"
        config = ShellConfig(files=[
            ShellConfigFile(path="../evil"),
            ShellConfigFile(path=str(outside)),
            ShellConfigFile(path=".zshrc"),
        ])
        home = tmp_path / "home"
        home.mkdir()

        result = install_shell_config(config, files, home, echo=quiet)
        assert result["failed"] == ["../evil", str(outside)]
        assert result["installed"] == [".zshrc"]
        assert not (tmp_path / "evil").exists()
        assert not outside.exists()

    def test_add_brew_env(self, tmp_path: Path):
        (tmp_path / ".zshrc").write_text('export HOMEBREW_PREFIX="/x"\n')
        prefix = tmp_path / "homebrew"
        updated = add_brew_env(tmp_path, prefix, echo=quiet)
        assert updated == [".bashrc", ".bash_profile"]
        assert f'export PATH="{prefix}/bin:$PATH"' in (tmp_path / ".bashrc").read_text()
        assert add_brew_env(tmp_path, prefix, echo=quiet) == []


# ── Sensitive files ──────────────────────────────────────────────────


@pytest.fixture
def secret_home(tmp_path: Path) -> Path:
    home = tmp_path / "home"
    (home / ".ssh").mkdir(parents=True)
    key = home / ".ssh" / "id_ed25519"
    key.write_text("PRIVATE")
    key.chmod(0o600)
    (home / ".ssh" / "id_ed25519.pub").write_text("PUBLIC")
    (home / ".npmrc").write_text("//registry:_authToken=x")
    (home / ".env.local").write_text("A=1")
    return home


class TestSensitive:
    def test_collect_plain(self, secret_home: Path, tmp_path: Path):
        data = collect_sensitive(secret_home, tmp_path / "out", echo=quiet)
        paths = [f.relative_path for f in data.files]
        assert ".ssh/id_ed25519" in paths
        assert ".env.local" in paths
        assert data.summary.ssh_keys == 2
        assert data.summary.npm_tokens == 1
        assert not data.encrypted
        assert (tmp_path / "out" / ".npmrc").stat().st_mode & 0o777 == 0o600

    def test_encrypted_roundtrip(self, secret_home: Path, tmp_path: Path):
        key = generate_key()
        out = tmp_path / "out"
        data = collect_sensitive(secret_home, out, key=key, echo=quiet)
        assert data.encrypted
        assert is_encrypted((out / ".ssh" / "id_ed25519").read_bytes())

        home = tmp_path / "restored"
        result = install_sensitive(
            data, out, home, key=key,
            confirm=ScriptedConfirmation(confirms=[True]), echo=quiet,
        )
        assert result["failed"] == []
        assert (home / ".ssh" / "id_ed25519").read_text() == "PRIVATE"
        assert (home / ".ssh" / "id_ed25519").stat().st_mode & 0o777 == 0o600

    def test_encrypted_without_key(self, tmp_path: Path):
        data = SensitiveData(files=[SensitiveFile(
            relative_path=".npmrc", category="npm", encrypted=True,
        )])
        result = install_sensitive(data, tmp_path, tmp_path / "h", echo=quiet)
        assert result["skipped"]
        assert "--decrypt-key" in result["error"]

    def test_wrong_key_fails_per_file(self, secret_home: Path, tmp_path: Path):
        out = tmp_path / "out"
        data = collect_sensitive(secret_home, out, key=generate_key(), echo=quiet)
        result = install_sensitive(
            data, out, tmp_path / "h", key="not-the-key",
            confirm=ScriptedConfirmation(confirms=[True]), echo=quiet,
        )
        assert result["installed"] == []
        assert len(result["failed"]) == len(data.files)

    def test_operator_declines(self, secret_home: Path, tmp_path: Path):
        out = tmp_path / "out"
        data = collect_sensitive(secret_home, out, echo=quiet)
        operator = ScriptedConfirmation()
        result = install_sensitive(data, out, tmp_path / "h", confirm=operator, echo=quiet)
        assert result["skipped"]
        assert len(operator.questions) == 1
        assert not (tmp_path / "h").exists()

    def test_entries_outside_home_rejected(self, tmp_path: Path):
        files = tmp_path / "archive" / "sensitive"
        files.mkdir(parents=True)
        (tmp_path / "archive" / "authorized_keys").write_text("ssh-ed25519 AAAA attacker")
        outside = tmp_path / "abs-target"
        data = SensitiveData(files=[
            SensitiveFile(relative_path="../authorized_keys", category="ssh"),
            SensitiveFile(relative_path=str(outside), category="ssh"),
        ])
        home = tmp_path / "home"

        result = install_sensitive(
            data, files, home,
            confirm=ScriptedConfirmation(confirms=[True]), echo=quiet,
        )
        assert result["installed"] == []
        assert result["failed"] == ["../authorized_keys", str(outside)]
        assert not (tmp_path / "authorized_keys").exists()
        assert not outside.exists()

    def test_bad_permissions_write_nothing(self, tmp_path: Path):
        files = tmp_path / "archive"
        files.mkdir()
        (files / ".npmrc").write_text("//registry:_authToken=x")
        data = SensitiveData(files=[
            SensitiveFile(relative_path=".npmrc", category="npm", permissions="rw-"),
        ])
        home = tmp_path / "home"

        result = install_sensitive(
            data, files, home,
            confirm=ScriptedConfirmation(confirms=[True]), echo=quiet,
        )
        assert result["failed"] == [".npmrc"]
        assert not (home / ".npmrc").exists()

    def test_overwrite_tightens_loose_target(self, tmp_path: Path):
        files = tmp_path / "archive"
        files.mkdir()
        (files / ".netrc").write_text("machine x password y")
        home = tmp_path / "home"
        home.mkdir()
        existing = home / ".netrc"
        existing.write_text("old")
        existing.chmod(0o644)
        data = SensitiveData(files=[
            SensitiveFile(relative_path=".netrc", category="git", permissions="600"),
        ])

        result = install_sensitive(
            data, files, home,
            confirm=ScriptedConfirmation(confirms=[True]), echo=quiet,
        )
        assert result["installed"] == [".netrc"]
        assert existing.read_text() == "machine x password y"
        assert existing.stat().st_mode & 0o777 == 0o600


# ── Applications ─────────────────────────────────────────────────────


def _make_app(folder: Path, name: str, bundle_id: str | None, version: str = "1.0") -> Path:
    app = folder / f"{name}.app"
    (app / "Contents").mkdir(parents=True)
    plist = {"CFBundleName": name, "CFBundleShortVersionString": version}
    if bundle_id:
        plist["CFBundleIdentifier"] = bundle_id
    with (app / "Contents" / "Info.plist").open("wb") as f:
        plistlib.dump(plist, f)
    return app


class TestApplications:
    def test_parse_mas_list(self):
        text = "497799835  Xcode (15.0)\n409183694  Keynote (13.1)\ngarbage line\n"
        apps = parse_mas_list(text)
        assert [(a.app_id, a.name, a.version) for a in apps] == [
            ("497799835", "Xcode", "15.0"),
            ("409183694", "Keynote", "13.1"),
        ]

    def test_looks_like_cask(self):
        assert looks_like_cask("Visual Studio Code", ["visual-studio-code"])
        assert looks_like_cask("Firefox", ["firefox"])
        assert not looks_like_cask("Pages", ["firefox"])

    def test_scan_and_classify(self, tmp_path: Path):
        folder = tmp_path / "Applications"
        _make_app(folder, "Firefox", "org.mozilla.firefox")
        _make_app(folder, "Keynote", "com.apple.iWork.Keynote")
        _make_app(folder, "Tool", None)
        (folder / "Broken.app").mkdir()

        apps = scan_applications([(folder, "Applications")])
        assert [a.name for a in apps] == ["Broken", "Firefox", "Keynote", "Tool"]

        store = [AppStoreApp(name="Keynote", app_id="409183694")]
        assign_install_methods(apps, store, ["firefox"])
        methods = {a.name: a.install_method for a in apps}
        assert methods == {
            "Broken": "direct", "Firefox": "cask", "Keynote": "mas", "Tool": "direct",
        }

    def test_install_and_report(self, tmp_path: Path):
        data = ApplicationsData(
            all_applications=[
                ApplicationInfo(name="Keynote", path="/A/Keynote.app", install_method="mas"),
                ApplicationInfo(name="Tool", path="/A/Tool.app", version="2.0",
                                source="Applications", install_method="direct"),
            ],
            app_store_apps=[
                AppStoreApp(name="Keynote", app_id="409183694"),
                AppStoreApp(name="Broken", app_id="123"),
                AppStoreApp(name="Receipt Only", app_id="com.example.receipt"),
            ],
        )
        runner = FakeRunner({
            ("mas", "version"): {"ok": True, "stdout": "1.8.6"},
            ("mas", "install", "409183694"): {"ok": True, "stdout": ""},
        })
        report = tmp_path / "report.txt"
        result = install_applications(data, report, runner=runner, echo=quiet)

        assert result["installed"] == ["Keynote"]
        assert result["failed"] == ["Broken"]
        assert result["skipped"] == ["Receipt Only"]
        text = report.read_text()
        assert "Direct download applications" in text
        assert "Tool (2.0)" in text

    def test_no_mas(self, tmp_path: Path):
        data = ApplicationsData(app_store_apps=[AppStoreApp(name="Keynote", app_id="1")])
        runner = FakeRunner({})
        result = install_applications(data, tmp_path / "r.txt", runner=runner, echo=quiet)
        assert result["installed"] == []
        assert runner.calls == [["mas", "version"]]
        assert (tmp_path / "r.txt").is_file()

    def test_report_excludes_store_apps(self):
        data = ApplicationsData(
            all_applications=[ApplicationInfo(name="Keynote", path="/x", install_method="direct")],
            app_store_apps=[AppStoreApp(name="Keynote", app_id="1")],
        )
        assert "Keynote" not in render_report(data).split("Unknown source")[1]


# ── Collector ────────────────────────────────────────────────────────


class TestCollectSetup:
    def test_full_collect(self, secret_home: Path, tmp_path: Path):
        (secret_home / ".zshrc").write_text("export A=1\n")
        out = tmp_path / "setup.tar.gz"
        result = collect_setup(
            out,
            home=secret_home,
            include_sensitive=True,
            runner=brew_runner(),
            echo=quiet,
        )

        assert result["sections"] == ["brew", "shell", "applications", "sensitive"]
        assert result["key"]
        assert result["counts"]["formulae"] == 2

        with open_archive(out) as setup:
            assert setup.manifest.sections == result["sections"]
            assert [c.name for c in setup.snapshot().casks] == ["firefox"]
            assert [f.path for f in setup.shell_config().files] == [".zshrc"]
            assert setup.sensitive().encrypted
            assert (setup.shell_files / ".zshrc").is_file()

    def test_no_sensitive_files_means_no_key(self, tmp_path: Path):
        home = tmp_path / "home"
        home.mkdir()
        result = collect_setup(
            tmp_path / "s.tar.gz", home=home, include_sensitive=True,
            include_applications=False, runner=brew_runner(), echo=quiet,
        )
        assert result["key"] is None

    def test_sensitive_off_by_default(self, tmp_path: Path):
        home = tmp_path / "home"
        home.mkdir()
        result = collect_setup(
            tmp_path / "s.tar.gz", home=home, include_applications=False,
            runner=brew_runner(), echo=quiet,
        )
        assert "sensitive" not in result["sections"]
        assert result["key"] is None
