"""
Shared fixtures: a recorder standing in for subprocess.run and an in-memory
app settings store.
"""
import subprocess

import pytest

PLATFORM_ENV = (
    "YNH_APP_BASEDIR",
    "YNH_APP_MANIFEST_VERSION",
    "YNH_APP_CURRENT_VERSION",
    "YNH_APP_UPGRADE_TYPE",
    "YNH_APP_INSTANCE_NAME",
    "YNH_FORCE_UPGRADE",
    "YNH_HELPERS_DEBUG",
    "app",
)


def completed(command, returncode=0, stdout="", stderr=""):
    return subprocess.CompletedProcess(command, returncode, stdout, stderr)


class FakeRun:
    """Records commands; handler(command, kwargs) may return a CompletedProcess."""

    def __init__(self):
        self.calls = []
        self.handler = None

    def __call__(self, command, *args, **kwargs):
        command = list(command)
        self.calls.append((command, kwargs))
        result = self.handler(command, kwargs) if self.handler else None
        if result is None:
            result = completed(command)
        if kwargs.get("check") and result.returncode != 0:
            raise subprocess.CalledProcessError(result.returncode, command, result.stdout, result.stderr)
        return result

    @property
    def commands(self):
        return [command for command, _ in self.calls]


class FakeSettings:
    """In-memory stand-in for AppSettings."""

    def __init__(self, settings=None):
        self.settings = {app: dict(values) for app, values in (settings or {}).items()}

    def get(self, app, key):
        return self.settings.get(app, {}).get(key)

    def set(self, app, key, value):
        self.settings.setdefault(app, {})[key] = str(value)

    def delete(self, app, key):
        self.settings.get(app, {}).pop(key, None)

    def list_installed_apps(self):
        return sorted(self.settings)


@pytest.fixture(autouse=True)
def clean_platform_env(monkeypatch):
    for name in PLATFORM_ENV:
        monkeypatch.delenv(name, raising=False)


@pytest.fixture
def fake_run(monkeypatch):
    recorder = FakeRun()
    monkeypatch.setattr(subprocess, "run", recorder)
    return recorder


@pytest.fixture
def fake_settings():
    return FakeSettings()
