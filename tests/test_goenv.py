"""
Tests for the Go runtime lifecycle: install, resolve, garbage collection.
"""
import copy
import os
import shutil

import pytest
import requests

import ynh_helpers.modules.goenv.index as goenv_index
from tests.conftest import FakeSettings, completed
from ynh_helpers.modules.goenv import (
    GoenvError,
    cleanup_go,
    install_go,
    installed_go_versions,
    remove_go,
    resolve_go_version,
    use_go,
)

RELEASES = [
    {"version": "go1.22rc1", "stable": False},
    {"version": "go1.21.5", "stable": True},
    {"version": "go1.21.4", "stable": True},
    {"version": "go1.20.12", "stable": True},
    {"version": "go1.20", "stable": True},
    {"version": "go1.2.2", "stable": True},
]

GOENV_DEFINITIONS = "Available versions:\n  1.19.13\n  1.20.12\n  1.21.4\n  1.21.5\n  1.22rc1\n"


class FakeResponse:
    def __init__(self, payload):
        self.payload = payload

    def raise_for_status(self):
        pass

    def json(self):
        return self.payload


@pytest.fixture
def goenv_root(tmp_path, monkeypatch):
    config = copy.deepcopy(goenv_index.MODULE_CONFIG)
    root = tmp_path / "opt" / "goenv"
    config["config"]["goenv"]["install_dir"] = str(root)
    config["config"]["goenv"]["profile_script"] = str(tmp_path / "profile.d" / "goenv.sh")
    config["config"]["system_go"]["path"] = str(tmp_path / "usr" / "bin" / "go")
    config["config"]["system_go"]["stash_path"] = str(tmp_path / "usr" / "bin" / "go_goenv")
    monkeypatch.setattr(goenv_index, "MODULE_CONFIG", config)
    monkeypatch.setattr(goenv_index, "ensure_packages", lambda packages: [])
    monkeypatch.setattr(goenv_index.requests, "get", lambda url, timeout: FakeResponse(RELEASES))
    return root


@pytest.fixture
def fake_goenv(fake_run, goenv_root):
    """Simulate git and goenv on the filesystem."""

    def handler(command, kwargs):
        if command[:2] == ["git", "clone"]:
            target = command[-1]
            os.makedirs(os.path.join(target, ".git"))
            os.makedirs(os.path.join(target, "bin"))
        elif command[0].endswith("/goenv") and command[1] == "install":
            if command[2] == "--list":
                return completed(command, stdout=GOENV_DEFINITIONS)
            version_dir = goenv_root / "versions" / command[-1] / "bin"
            version_dir.mkdir(parents=True, exist_ok=True)
            (version_dir / "go").write_text("#!/bin/sh\n")
        elif command[0].endswith("/goenv") and command[1] == "uninstall":
            shutil.rmtree(goenv_root / "versions" / command[-1])
        return None

    fake_run.handler = handler
    return fake_run


def install_version(root, version):
    (root / "versions" / version / "bin").mkdir(parents=True)


class TestResolveGoVersion:
    def test_partial_version_picks_latest_patch(self, goenv_root):
        assert resolve_go_version("1.21") == "1.21.5"

    def test_prefix_stops_at_dot(self, goenv_root):
        assert resolve_go_version("1.2") == "1.2.2"

    def test_full_version(self, goenv_root):
        assert resolve_go_version("go1.21.4") == "1.21.4"

    def test_first_release_name_does_not_shadow_patches(self, goenv_root):
        assert resolve_go_version("1.20") == "1.20.12"

    def test_unstable_releases_are_ignored(self, goenv_root):
        with pytest.raises(GoenvError):
            resolve_go_version("1.22")

    def test_unknown_version(self, goenv_root):
        with pytest.raises(GoenvError, match="No Go release"):
            resolve_go_version("9.9")

    def test_falls_back_to_goenv_definitions(self, fake_goenv, monkeypatch):
        def offline(url, timeout):
            raise requests.ConnectionError("offline")

        monkeypatch.setattr(goenv_index.requests, "get", offline)
        assert resolve_go_version("1.19") == "1.19.13"
        assert resolve_go_version("1.22rc1") == "1.22rc1"


class TestInstallGo:
    def test_fresh_install(self, fake_goenv, goenv_root):
        settings = FakeSettings({"myapp": {}})
        assert install_go("myapp", "1.21", settings=settings) == "1.21.5"

        assert settings.get("myapp", "go_version") == "1.21.5"
        assert installed_go_versions() == ["1.21.5"]
        assert ["git", "clone", "--quiet", "--branch", "master",
                "https://github.com/syndbg/goenv.git", str(goenv_root)] in fake_goenv.commands
        assert ["chown", "-R", "root:root", str(goenv_root)] in fake_goenv.commands

        profile = goenv_index.get_goenv_config()["profile_script"]
        with open(profile) as f:
            content = f.read()
        assert f"export GOENV_ROOT={goenv_root}" in content

    def test_existing_clone_is_updated(self, fake_goenv, goenv_root):
        (goenv_root / ".git").mkdir(parents=True)
        install_go("myapp", "1.21.5", settings=FakeSettings({"myapp": {}}))
        assert ["git", "-C", str(goenv_root), "pull", "--quiet", "origin", "master"] in fake_goenv.commands
        assert not any(command[:2] == ["git", "clone"] for command in fake_goenv.commands)

    def test_upgrade_drops_previous_version(self, fake_goenv, goenv_root):
        (goenv_root / ".git").mkdir(parents=True)
        install_version(goenv_root, "1.20.12")
        settings = FakeSettings({"myapp": {"go_version": "1.20.12"}})

        install_go("myapp", "1.21", settings=settings)

        assert installed_go_versions() == ["1.21.5"]

    def test_shared_version_is_kept(self, fake_goenv, goenv_root):
        (goenv_root / ".git").mkdir(parents=True)
        install_version(goenv_root, "1.20.12")
        settings = FakeSettings({
            "myapp": {"go_version": "1.20.12"},
            "other": {"go_version": "1.20.12"},
        })

        install_go("myapp", "1.21", settings=settings)

        assert installed_go_versions() == ["1.20.12", "1.21.5"]

    def test_version_kept_when_app_not_listed_yet(self, fake_goenv, goenv_root):
        class UnlistedSettings(FakeSettings):
            def list_installed_apps(self):
                return []

        settings = UnlistedSettings()
        install_go("newapp", "1.21", settings=settings)
        assert installed_go_versions() == ["1.21.5"]

    def test_system_go_is_restored(self, fake_goenv, goenv_root):
        system_go = goenv_index.MODULE_CONFIG["config"]["system_go"]["path"]
        os.makedirs(os.path.dirname(system_go))
        with open(system_go, "w") as f:
            f.write("#!/bin/sh\n")
        os.chmod(system_go, 0o755)

        seen = []
        original = fake_goenv.handler

        def handler(command, kwargs):
            if command[0].endswith("/goenv"):
                seen.append(os.path.exists(system_go))
            return original(command, kwargs)

        fake_goenv.handler = handler
        install_go("myapp", "1.21", settings=FakeSettings({"myapp": {}}))

        assert seen and not any(seen)
        assert os.path.isfile(system_go)

    def test_system_go_is_restored_after_failure(self, fake_goenv, goenv_root):
        system_go = goenv_index.MODULE_CONFIG["config"]["system_go"]["path"]
        os.makedirs(os.path.dirname(system_go))
        with open(system_go, "w") as f:
            f.write("#!/bin/sh\n")
        os.chmod(system_go, 0o755)

        original = fake_goenv.handler

        def handler(command, kwargs):
            if command[0].endswith("/goenv") and command[1:3] == ["install", "--skip-existing"]:
                assert not os.path.exists(system_go)
                return completed(command, 1, stderr="download failed")
            return original(command, kwargs)

        fake_goenv.handler = handler
        with pytest.raises(GoenvError):
            install_go("myapp", "1.21", settings=FakeSettings({"myapp": {}}))

        assert os.path.isfile(system_go)
        assert not os.path.exists(goenv_index.MODULE_CONFIG["config"]["system_go"]["stash_path"])

    def test_release_without_goenv_definition(self, fake_goenv, goenv_root, monkeypatch):
        releases = [{"version": "go1.21.6", "stable": True}] + RELEASES
        monkeypatch.setattr(goenv_index.requests, "get", lambda url, timeout: FakeResponse(releases))
        settings = FakeSettings({"myapp": {}})

        assert install_go("myapp", "1.21", settings=settings) == "1.21.5"
        assert settings.get("myapp", "go_version") == "1.21.5"
        assert [goenv_index.goenv_bin(), "install", "--skip-existing", "1.21.5"] in fake_goenv.commands

    def test_no_goenv_definition_at_all(self, fake_goenv, goenv_root, monkeypatch):
        releases = [{"version": "go1.23.1", "stable": True}] + RELEASES
        monkeypatch.setattr(goenv_index.requests, "get", lambda url, timeout: FakeResponse(releases))
        settings = FakeSettings({"myapp": {}})

        with pytest.raises(GoenvError, match="no definition"):
            install_go("myapp", "1.23", settings=settings)
        assert settings.get("myapp", "go_version") is None

    def test_failed_install_keeps_settings_untouched(self, fake_goenv, goenv_root):
        original = fake_goenv.handler

        def handler(command, kwargs):
            if command[0].endswith("/goenv") and command[1] == "install":
                return completed(command, 1, stderr="download failed")
            return original(command, kwargs)

        fake_goenv.handler = handler
        settings = FakeSettings({"myapp": {}})
        with pytest.raises(GoenvError, match="download failed"):
            install_go("myapp", "1.21", settings=settings)
        assert settings.get("myapp", "go_version") is None


class TestRemoveGo:
    def test_last_app_removes_goenv(self, fake_goenv, goenv_root):
        settings = FakeSettings({"myapp": {}})
        install_go("myapp", "1.21", settings=settings)
        profile = goenv_index.get_goenv_config()["profile_script"]
        assert os.path.exists(profile)

        assert remove_go("myapp", settings=settings) == ["1.21.5"]

        assert settings.get("myapp", "go_version") is None
        assert not goenv_root.exists()
        assert not os.path.exists(profile)

    def test_other_app_keeps_goenv(self, fake_goenv, goenv_root):
        settings = FakeSettings({"myapp": {}, "other": {}})
        install_go("myapp", "1.21", settings=settings)
        install_go("other", "1.20", settings=settings)

        assert installed_go_versions() == ["1.20.12", "1.21.5"]
        assert remove_go("myapp", settings=settings) == ["1.21.5"]
        assert installed_go_versions() == ["1.20.12"]
        assert goenv_root.is_dir()


class TestCleanupGo:
    def test_nothing_installed(self, fake_goenv, goenv_root):
        assert cleanup_go(FakeSettings({"myapp": {}})) == []
        assert fake_goenv.commands == []

    def test_invariant_holds_after_cleanup(self, fake_goenv, goenv_root):
        for version in ("1.19.13", "1.20.12", "1.21.5"):
            install_version(goenv_root, version)
        settings = FakeSettings({
            "a": {"go_version": "1.21.5"},
            "b": {"go_version": "1.19.13"},
            "c": {},
        })

        assert cleanup_go(settings) == ["1.20.12"]
        assert set(installed_go_versions()) == {"1.21.5", "1.19.13"}


class TestUseGo:
    def test_environment(self, goenv_root):
        env = use_go("myapp", FakeSettings({"myapp": {"go_version": "1.21.5"}}))
        go_dir = str(goenv_root / "versions" / "1.21.5" / "bin")
        assert env.go_dir == go_dir
        assert env.go_bin == os.path.join(go_dir, "go")
        assert env.load_path.startswith(f"PATH={go_dir}:")
        assert env.env()["PATH"].startswith(go_dir + ":")

    def test_no_version(self, goenv_root):
        with pytest.raises(GoenvError, match="No Go version"):
            use_go("myapp", FakeSettings({"myapp": {}}))


class TestMain:
    def test_check_reports_orphans(self, goenv_root, monkeypatch):
        install_version(goenv_root, "1.20.12")
        install_version(goenv_root, "1.21.5")
        settings = FakeSettings({"a": {"go_version": "1.21.5"}, "b": {"go_version": "1.22.0"}})
        monkeypatch.setattr(goenv_index, "AppSettings", lambda: settings)

        result = goenv_index.main(["--check"])

        assert not result["success"]
        assert result["orphaned"] == ["1.20.12"]
        assert result["missing"] == ["1.22.0"]

    def test_unknown_arguments(self, goenv_root):
        assert not goenv_index.main(["--frobnicate"])["success"]
