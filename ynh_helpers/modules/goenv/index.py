"""
HOMESERVER App Packaging Helpers
Copyright (C) 2024 HOMESERVER LLC

This program is free software: you can redistribute it and/or modify
it under the terms of the GNU General Public License as published by
the Free Software Foundation, either version 3 of the License, or
(at your option) any later version.

This program is distributed in the hope that it will be useful,
but WITHOUT ANY WARRANTY; without even the implied warranty of
MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
GNU General Public License for more details.

You should have received a copy of the GNU General Public License
along with this program.  If not, see <https://www.gnu.org/licenses/>.
"""

"""
Go Runtime Module

Installs per-app Go toolchains with goenv. Each app records the version it
uses in its go_version setting; a toolchain stays on disk only while at least
one installed app references it, and goenv itself is removed once no app
needs Go anymore.
"""

import contextlib
import os
import re
import shutil
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Set
import requests
from packaging import version
from ynh_helpers.utils.index import HelperError, load_module_config, log_message
from ynh_helpers.utils.moduleUtils import conditional_config_return
from ynh_helpers.utils.settings import AppSettings
from ynh_helpers.utils.permissions import PermissionManager, PermissionTarget, secure_remove
from ynh_helpers.utils.apt import ensure_packages

MODULE_CONFIG = load_module_config(os.path.dirname(__file__), {
    "metadata": {
        "schema_version": "1.0.0",
        "module_name": "goenv"
    },
    "config": {
        "goenv": {
            "install_dir": "/opt/goenv",
            "repository": "https://github.com/syndbg/goenv.git",
            "branch": "master",
            "profile_script": "/etc/profile.d/goenv.sh",
            "setting_key": "go_version",
            "install_timeout_seconds": 1800
        },
        "releases": {
            "url": "https://go.dev/dl/?mode=json&include=all",
            "timeout_seconds": 30
        },
        "system_go": {
            "path": "/usr/bin/go",
            "stash_path": "/usr/bin/go_goenv"
        },
        "dependencies": ["git", "curl"]
    }
})

_STABLE_VERSION = re.compile(r"^\d+(\.\d+)*$")


class GoenvError(HelperError):
    """Raised when goenv or a Go toolchain can't be installed or removed."""
    pass


@dataclass
class GoEnvironment:
    """The Go toolchain an app uses."""
    version: str
    go_dir: str
    go_bin: str

    @property
    def load_path(self) -> str:
        return f"PATH={self.go_dir}:{os.environ.get('PATH', '')}"

    def env(self) -> Dict[str, str]:
        """Environment to run the app's build commands with."""
        env = os.environ.copy()
        env["PATH"] = f"{self.go_dir}:{env.get('PATH', '')}"
        env["GOENV_ROOT"] = str(goenv_root())
        return env


def get_goenv_config() -> Dict[str, Any]:
    return MODULE_CONFIG["config"]["goenv"]


def goenv_root() -> Path:
    return Path(get_goenv_config()["install_dir"])


def goenv_bin() -> str:
    return str(goenv_root() / "bin" / "goenv")


def versions_dir() -> Path:
    return goenv_root() / "versions"


def setting_key() -> str:
    return get_goenv_config().get("setting_key", "go_version")


def _goenv_env() -> Dict[str, str]:
    env = os.environ.copy()
    env["GOENV_ROOT"] = str(goenv_root())
    env["PATH"] = f"{goenv_root() / 'bin'}:{env.get('PATH', '')}"
    return env


def _execute_command(command: List[str], timeout: int = 300, env: Optional[Dict[str, str]] = None) -> str:
    """Execute a command, raising GoenvError on failure, and return its stdout."""
    log_message(f"Running: {' '.join(command)}", "DEBUG")
    try:
        result = subprocess.run(command, capture_output=True, text=True, timeout=timeout, env=env)
    except FileNotFoundError as e:
        raise GoenvError(f"Command not found: {command[0]}") from e
    except subprocess.TimeoutExpired as e:
        raise GoenvError(f"Command timed out: {' '.join(command)}") from e

    if result.returncode != 0:
        raise GoenvError(f"Command failed: {' '.join(command)}: {result.stderr.strip()}")
    return result.stdout


@contextlib.contextmanager
def system_go_stashed():
    """Move a distribution-provided go binary aside so it doesn't shadow goenv."""
    system_go = MODULE_CONFIG["config"]["system_go"]
    path, stash_path = system_go["path"], system_go["stash_path"]

    moved = False
    if os.path.isfile(path) and os.access(path, os.X_OK):
        shutil.move(path, stash_path)
        moved = True
        log_message(f"Moved {path} to {stash_path} while goenv runs", "DEBUG")
    try:
        yield
    finally:
        if moved and os.path.exists(stash_path):
            shutil.move(stash_path, path)
            log_message(f"Restored {path}", "DEBUG")


def install_or_update_goenv() -> None:
    """Clone goenv, or update an existing clone."""
    cfg = get_goenv_config()
    root = goenv_root()

    if (root / ".git").is_dir():
        log_message("Updating goenv...")
        _execute_command(["git", "-C", str(root), "pull", "--quiet", "origin", cfg["branch"]])
    else:
        if root.exists():
            log_message(f"{root} exists but is not a goenv clone, replacing it", "WARNING")
            secure_remove(str(root))
        log_message("Installing goenv...")
        _execute_command(["git", "clone", "--quiet", "--branch", cfg["branch"], cfg["repository"], str(root)])

    PermissionManager("goenv").set_permissions([
        PermissionTarget(path=str(root), owner="root", group="root", target_type="directory", recursive=True)
    ])


def _version_key(version_str: str):
    try:
        return version.parse(version_str)
    except version.InvalidVersion:
        return version.parse("0")


def fetch_go_releases() -> List[str]:
    """
    Get the released Go versions from the official release list.

    Returns:
        List[str]: Stable versions without the "go" prefix, e.g. "1.21.5"
    """
    releases = MODULE_CONFIG["config"]["releases"]
    response = requests.get(releases["url"], timeout=releases.get("timeout_seconds", 30))
    response.raise_for_status()
    return [
        release["version"][2:]
        for release in response.json()
        if release.get("stable") and release.get("version", "").startswith("go")
    ]


def goenv_known_versions() -> List[str]:
    """Versions goenv knows how to install, from its local definitions."""
    output = _execute_command([goenv_bin(), "install", "--list"], env=_goenv_env())
    return [line.strip() for line in output.splitlines() if line.strip()[:1].isdigit()]


def _normalize_requested(requested: str) -> str:
    requested = requested.strip()
    return requested[2:] if requested.startswith("go") else requested


def _newest_match(requested: str, candidates: List[str]) -> Optional[str]:
    """Newest candidate equal to requested or a stable release in its requested.x line."""
    matches = [
        candidate for candidate in candidates
        if candidate == requested or (_STABLE_VERSION.match(candidate) and candidate.startswith(requested + "."))
    ]
    return max(matches, key=_version_key) if matches else None


def resolve_go_version(requested: str) -> str:
    """
    Resolve a requested Go version to a concrete release.

    "1.21" resolves to the newest stable 1.21.x. go.dev names the first
    release of older lines "1.20", so "1.20" still resolves to the newest
    1.20.x rather than to that release.
    """
    requested = _normalize_requested(requested)

    try:
        candidates = fetch_go_releases()
    except (requests.RequestException, ValueError) as e:
        log_message(f"Failed to fetch Go releases ({e}), using goenv definitions", "WARNING")
        candidates = goenv_known_versions()

    resolved = _newest_match(requested, candidates)
    if resolved is None:
        raise GoenvError(f"No Go release matches version '{requested}'")

    log_message(f"Resolved Go version {requested} to {resolved}", "DEBUG")
    return resolved


def resolve_installable_go_version(requested: str) -> str:
    """
    Resolve a requested Go version to one the local goenv clone can install.

    goenv definitions lag behind go.dev releases; when the newest release has
    no definition yet, the newest matching version goenv knows is used.
    """
    resolved = resolve_go_version(requested)
    known = goenv_known_versions()
    if resolved in known:
        return resolved

    fallback = _newest_match(_normalize_requested(requested), known)
    if fallback is None:
        raise GoenvError(f"goenv has no definition for Go {resolved} or any {requested} release")

    log_message(f"goenv has no definition for Go {resolved} yet, installing {fallback}", "WARNING")
    return fallback


def installed_go_versions() -> List[str]:
    """Go versions currently installed under goenv."""
    directory = versions_dir()
    if not directory.is_dir():
        return []
    return sorted((entry.name for entry in directory.iterdir() if entry.is_dir()), key=_version_key)


def required_go_versions(settings: Optional[AppSettings] = None) -> Set[str]:
    """Go versions referenced by the settings of installed apps."""
    settings = settings or AppSettings()
    required = set()
    for app in settings.list_installed_apps():
        go_version = settings.get(app, setting_key())
        if go_version:
            required.add(go_version)
    return required


def write_profile_script() -> None:
    """Expose goenv to login shells."""
    root = goenv_root()
    profile_script = get_goenv_config()["profile_script"]
    os.makedirs(os.path.dirname(profile_script), exist_ok=True)
    with open(profile_script, 'w') as f:
        f.write(
            "#goenv\n"
            f"export GOENV_ROOT={root}\n"
            f"export PATH=\"{root}/bin:$PATH\"\n"
            "eval \"$(goenv init -)\"\n"
            "#goenv\n"
        )


def cleanup_go(settings: Optional[AppSettings] = None, keep: Optional[Set[str]] = None) -> List[str]:
    """
    Uninstall every Go version no installed app uses anymore.

    Removes goenv and its profile script entirely when no app needs Go.
    Versions in keep are treated as required.
    Returns:
        List[str]: The versions that were removed
    """
    settings = settings or AppSettings()
    required = required_go_versions(settings) | set(keep or ())
    removed = []

    for installed in installed_go_versions():
        if installed in required:
            continue
        log_message(f"Removing Go {installed}, no app uses it anymore")
        _execute_command([goenv_bin(), "uninstall", "--force", installed], env=_goenv_env())
        removed.append(installed)

    if not required:
        root = goenv_root()
        profile_script = get_goenv_config()["profile_script"]
        if root.exists():
            log_message("No app uses Go anymore, removing goenv")
            secure_remove(str(root))
        if os.path.lexists(profile_script):
            secure_remove(profile_script)

    return removed


def use_go(app: str, settings: Optional[AppSettings] = None) -> GoEnvironment:
    """Get the Go toolchain of an app."""
    settings = settings or AppSettings()
    go_version = settings.get(app, setting_key())
    if not go_version:
        raise GoenvError(f"No Go version is set for {app}")

    go_dir = versions_dir() / go_version / "bin"
    return GoEnvironment(version=go_version, go_dir=str(go_dir), go_bin=str(go_dir / "go"))


def install_go(app: str, go_version: str, settings: Optional[AppSettings] = None) -> str:
    """
    Install the Go toolchain an app needs and record it in the app settings.

    Args:
        app: App id
        go_version: Requested version, either full ("1.21.5") or partial ("1.21")

    Returns:
        str: The installed version
    """
    settings = settings or AppSettings()

    ensure_packages(MODULE_CONFIG["config"].get("dependencies", []))

    with system_go_stashed():
        install_or_update_goenv()
        final_version = resolve_installable_go_version(go_version)

        log_message(f"Installing Go {final_version} for {app}...")
        _execute_command(
            [goenv_bin(), "install", "--skip-existing", final_version],
            timeout=get_goenv_config().get("install_timeout_seconds", 1800),
            env=_goenv_env()
        )

    settings.set(app, setting_key(), final_version)

    # Drops the version the app used before an upgrade, if nothing else needs it
    cleanup_go(settings, keep={final_version})

    write_profile_script()
    log_message(f"✓ Go {final_version} installed for {app}")
    return final_version


def remove_go(app: str, settings: Optional[AppSettings] = None) -> List[str]:
    """Forget the Go version of an app and remove toolchains nobody needs."""
    settings = settings or AppSettings()
    settings.delete(app, setting_key())
    return cleanup_go(settings)


def main(args=None):
    """
    Main entry point for the goenv module.
    Args:
        args: List of arguments (supports '--check', '--config')
    Returns:
        dict: Status and results
    """
    if args is None:
        args = []

    if len(args) > 0 and args[0] == "--config":
        cfg = get_goenv_config()
        log_message("Current goenv module configuration:")
        log_message(f"  goenv root: {cfg['install_dir']}")
        log_message(f"  Repository: {cfg['repository']} ({cfg['branch']})")
        log_message(f"  Profile script: {cfg['profile_script']}")
        return conditional_config_return({"success": True}, MODULE_CONFIG)

    if len(args) > 0 and args[0] == "--check":
        installed = installed_go_versions()
        required = required_go_versions()

        orphaned = [v for v in installed if v not in required]
        missing = sorted(required - set(installed), key=_version_key)

        for go_version in installed:
            status = "✓" if go_version in required else "✗ (unused)"
            log_message(f"  Go {go_version}: {status}")
        for go_version in missing:
            log_message(f"  Go {go_version}: missing", "WARNING")

        return {
            "success": not orphaned and not missing,
            "installed": installed,
            "required": sorted(required, key=_version_key),
            "orphaned": orphaned,
            "missing": missing
        }

    log_message(f"Unknown arguments for goenv module: {args}", "ERROR")
    return {"success": False, "error": "Unknown arguments"}
