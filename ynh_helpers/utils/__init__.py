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
Utilities for app packaging scripts.

This module provides the helpers shared by install, upgrade, remove and
restore scripts.
"""

from .index import HelperError, log_message, die, string_random, sanitize_dbid
from .lifecycle import abort_if_errors, exit_properly, ScriptAborted
from .versions import compare_versions, version_compare, version_gt, version_ge, version_lt, version_le
from .manifest import (
    ManifestError,
    find_manifest,
    read_manifest,
    app_upstream_version,
    app_package_version,
    check_app_version_changed,
    compare_current_package_version
)
from .settings import AppSettings, SettingsError, current_app
from .permissions import (
    PermissionManager,
    PermissionTarget,
    harden_app_directory,
    is_safe_to_remove,
    secure_remove
)
from .apt import AptError, package_is_installed, install_packages, ensure_packages

__all__ = [
    'HelperError',
    'log_message',
    'die',
    'string_random',
    'sanitize_dbid',
    'abort_if_errors',
    'exit_properly',
    'ScriptAborted',
    'compare_versions',
    'version_compare',
    'version_gt',
    'version_ge',
    'version_lt',
    'version_le',
    'ManifestError',
    'find_manifest',
    'read_manifest',
    'app_upstream_version',
    'app_package_version',
    'check_app_version_changed',
    'compare_current_package_version',
    'AppSettings',
    'SettingsError',
    'current_app',
    'PermissionManager',
    'PermissionTarget',
    'harden_app_directory',
    'is_safe_to_remove',
    'secure_remove',
    'AptError',
    'package_is_installed',
    'install_packages',
    'ensure_packages'
]
