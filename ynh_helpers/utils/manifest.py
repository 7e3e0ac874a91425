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
Manifest reading and app version helpers.

The manifest is the package's manifest.toml (or legacy manifest.json). The
platform exports the versions involved in an upgrade through YNH_APP_*
environment variables, which take precedence over the file.
"""

import json
import tomllib
from pathlib import Path
from typing import Any, Dict, Optional, Union
from .index import HelperError, get_env, log_message
from .versions import (
    COMPARISONS,
    PACKAGE_SEPARATOR,
    compare_upstream_versions,
    compare_versions,
    split_app_version,
    version_compare
)

MANIFEST_NAMES = ("manifest.toml", "manifest.json")

# Upgrade types the platform reports which all mean the upstream app changes
APP_UPGRADE_TYPES = ("UPGRADE_FULL", "UPGRADE_FORCED", "DOWNGRADE_FORCED")


class ManifestError(HelperError):
    """Raised when a manifest can't be found or read, or a version is malformed."""
    pass


def find_manifest(app_dir: Optional[Union[str, Path]] = None) -> Path:
    """
    Locate the package manifest.

    Searches app_dir, then $YNH_APP_BASEDIR, then the parent of the working
    directory (scripts run from the package's scripts/ folder).
    """
    if app_dir is not None:
        search_dirs = [Path(app_dir)]
    else:
        search_dirs = []
        base_dir = get_env("YNH_APP_BASEDIR")
        if base_dir:
            search_dirs.append(Path(base_dir))
        search_dirs.append(Path.cwd().parent)

    for directory in search_dirs:
        for name in MANIFEST_NAMES:
            candidate = directory / name
            if candidate.is_file():
                return candidate

    raise ManifestError(f"No manifest found in {', '.join(str(d) for d in search_dirs)}")


def load_manifest(manifest: Optional[Union[str, Path]] = None) -> Dict[str, Any]:
    """Load a manifest file, parsing TOML or JSON by file suffix."""
    path = Path(manifest) if manifest is not None else find_manifest()
    try:
        if path.suffix == ".toml":
            with open(path, 'rb') as f:
                return tomllib.load(f)
        with open(path, 'r') as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        raise ManifestError(f"Failed to read manifest {path}: {e}") from e


def read_manifest(key: str, manifest: Optional[Union[str, Path]] = None) -> Any:
    """
    Read a value from the manifest.

    Args:
        key: Dotted path to the value, e.g. "resources.sources.main.url"
        manifest: Path to the manifest, located automatically if omitted

    Returns:
        The value at key, or None if any part of the path is missing
    """
    data: Any = load_manifest(manifest)
    for part in key.strip(".").split("."):
        if not part:
            continue
        if isinstance(data, dict):
            data = data.get(part)
        elif isinstance(data, list) and part.isdigit() and int(part) < len(data):
            data = data[int(part)]
        else:
            data = None
        if data is None:
            log_message(f"Key '{key}' not found in manifest", "DEBUG")
            return None
    return data


def _manifest_version(manifest: Optional[Union[str, Path]] = None) -> str:
    env_version = get_env("YNH_APP_MANIFEST_VERSION")
    if env_version:
        return env_version
    value = read_manifest("version", manifest)
    if value is None:
        raise ManifestError("Manifest has no version")
    return str(value)


def app_upstream_version(manifest: Optional[Union[str, Path]] = None) -> str:
    """Upstream version of the app, e.g. "1.2.3" for "1.2.3~ynh4"."""
    return split_app_version(_manifest_version(manifest))[0]


def app_package_version(manifest: Optional[Union[str, Path]] = None) -> str:
    """Package revision of the app, e.g. "4" for "1.2.3~ynh4"."""
    return split_app_version(_manifest_version(manifest))[1]


def check_app_version_changed() -> str:
    """
    Determine what an upgrade changes.

    Returns:
        str: UPGRADE_APP when the upstream app changes, UPGRADE_PACKAGE when only
        the package changes, UPGRADE_SAME when nothing changes
    """
    upgrade_type = get_env("YNH_APP_UPGRADE_TYPE")
    if upgrade_type:
        return "UPGRADE_APP" if upgrade_type in APP_UPGRADE_TYPES else upgrade_type

    current_version = get_env("YNH_APP_CURRENT_VERSION")
    if not current_version:
        log_message("YNH_APP_CURRENT_VERSION is not set, assuming a full upgrade", "WARNING")
        return "UPGRADE_APP"

    manifest_version = _manifest_version()
    current_upstream, _ = split_app_version(current_version)
    manifest_upstream, _ = split_app_version(manifest_version)

    if compare_upstream_versions(current_upstream, manifest_upstream) != 0:
        return "UPGRADE_APP"
    if compare_versions(current_version, manifest_version) != 0:
        return "UPGRADE_PACKAGE"
    if get_env("YNH_FORCE_UPGRADE", "0") == "1":
        log_message("Upgrade forced by YNH_FORCE_UPGRADE")
        return "UPGRADE_APP"
    return "UPGRADE_SAME"


def compare_current_package_version(comparison: str, version: str) -> bool:
    """
    Compare the currently installed package version against version.

    Args:
        comparison: One of lt, le, eq, ne, ge, gt
        version: A full package version, e.g. "1.2.3~ynh4"
    """
    if comparison not in COMPARISONS:
        raise ManifestError(f"Invalid comparison '{comparison}', expected one of: {', '.join(COMPARISONS)}")
    if PACKAGE_SEPARATOR not in version:
        raise ManifestError(f"Invalid version '{version}', expected something like 1.2.3{PACKAGE_SEPARATOR}1")

    current_version = get_env("YNH_APP_CURRENT_VERSION")
    if not current_version:
        raise ManifestError("YNH_APP_CURRENT_VERSION is not set")

    return version_compare(current_version, comparison, version)
