#!/usr/bin/env python3
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
Permission Management Utilities

Permission hardening for app directories and path-safety checks guarding
recursive deletions. Ownership and modes are applied with chown/chmod so
symbolic modes work the same way they do in packaging scripts.
"""

import os
import re
import shutil
import subprocess
from typing import List, Optional, Union
from dataclasses import dataclass
from .index import log_message

# Directories an app script must never delete, even though they are not top-level
PROTECTED_PATHS = (
    "/var/www",
    "/home/yunohost.app",
    "/home/yunohost.backup",
    "/etc/yunohost",
    "/etc/yunohost/apps",
    "/etc/yunohost/domains",
    "/etc/yunohost/hooks.d",
    "/etc/nginx",
    "/etc/nginx/conf.d",
    "/etc/php",
    "/etc/default",
    "/etc/sudoers.d",
    "/etc/systemd/system",
    "/etc/cron.d",
    "/etc/logrotate.d",
    "/opt/yunohost",
)

# Every direct child of these is refused as well (/usr/bin, /var/lib, /home/alice, ...)
PROTECTED_PARENTS = ("/var", "/home", "/usr", "/usr/local")


@dataclass
class PermissionTarget:
    """Represents a file or directory with its desired ownership and mode."""
    path: str
    owner: Optional[str] = None
    group: Optional[str] = None
    mode: Optional[Union[str, int]] = None  # "750", 0o750, "o-rwx" or None to leave untouched
    target_type: str = "auto"  # "file", "directory", or "auto"
    recursive: bool = False  # Apply permissions recursively for directories

    def __post_init__(self):
        """Convert octal mode strings to integers; symbolic modes are kept as-is."""
        if isinstance(self.mode, str) and re.fullmatch(r"(0o)?[0-7]{3,4}", self.mode):
            self.mode = int(self.mode[2:] if self.mode.startswith('0o') else self.mode, 8)

    @property
    def mode_string(self) -> Optional[str]:
        if self.mode is None:
            return None
        return oct(self.mode)[2:] if isinstance(self.mode, int) else self.mode


class PermissionManager:
    """Manages file and directory permissions for an app."""

    def __init__(self, module_name: str = "unknown"):
        self.module_name = module_name

    def set_permissions(self, targets: List[PermissionTarget]) -> bool:
        """
        Set permissions for multiple targets.

        Args:
            targets: List of PermissionTarget objects

        Returns:
            bool: True if all permissions were set successfully, False otherwise
        """
        if not targets:
            log_message("No permission targets specified", "WARNING")
            return True

        success_count = 0
        total_targets = len(targets)

        log_message(f"[{self.module_name}] Setting permissions for {total_targets} targets...", "DEBUG")

        for target in targets:
            if self._set_single_permission(target):
                success_count += 1
            else:
                log_message(f"Failed to set permissions for {target.path}", "ERROR")

        if success_count == total_targets:
            return True

        log_message(f"Set permissions for {success_count}/{total_targets} targets", "WARNING")
        return False

    def _set_single_permission(self, target: PermissionTarget) -> bool:
        """Set permissions for a single target."""
        path = target.path

        if not os.path.lexists(path):
            log_message(f"Skipping {path} - does not exist", "DEBUG")
            return True

        is_dir = os.path.isdir(path)
        if (target.target_type == "directory" and not is_dir) or (target.target_type == "file" and is_dir):
            log_message(f"{path} is not a {target.target_type}", "ERROR")
            return False

        if target.owner or target.group:
            owner_spec = f"{target.owner or ''}:{target.group or ''}".rstrip(":")
            if not self._run(["chown"], owner_spec, path, target.recursive):
                return False

        if target.mode_string is not None:
            if not self._run(["chmod"], target.mode_string, path, target.recursive):
                return False

        log_message(f"✓ Set permissions for {path} ({target.owner}:{target.group} {target.mode_string})", "DEBUG")
        return True

    def _run(self, cmd: List[str], spec: str, path: str, recursive: bool) -> bool:
        if recursive and os.path.isdir(path):
            cmd = cmd + ["-R"]
        cmd = cmd + [spec, path]

        try:
            result = subprocess.run(cmd, capture_output=True, text=True, check=False)
        except OSError as e:
            log_message(f"Error running {cmd[0]} on {path}: {e}", "ERROR")
            return False

        if result.returncode != 0:
            log_message(f"{cmd[0]} failed for {path}: {result.stderr.strip()}", "ERROR")
            return False
        return True


def harden_app_directory(path: str, owner: str, group: str = "www-data", mode: Union[str, int] = "750") -> bool:
    """
    Restrict an app directory to its system user and the web server group.

    The tree is owned by owner:group, the top directory gets mode and
    nothing in the tree stays readable by others.
    """
    targets = [
        PermissionTarget(path=path, owner=owner, group=group, target_type="directory", recursive=True),
        PermissionTarget(path=path, mode=mode, target_type="directory"),
        PermissionTarget(path=path, mode="o-rwx", target_type="directory", recursive=True),
    ]
    manager = PermissionManager(owner)
    return manager.set_permissions(targets)


def is_safe_to_remove(path: str) -> bool:
    """
    Check that a path is acceptable for a recursive deletion.

    Refused: empty paths, paths with a trailing slash, the root and any
    top-level directory (/etc, /opt, ...), direct children of
    PROTECTED_PARENTS and the PROTECTED_PATHS themselves.
    """
    if not path or path.endswith("/"):
        return False
    normalized = os.path.normpath(os.path.abspath(path))
    if normalized == "/" or re.fullmatch(r"/[^/]*", normalized):
        return False
    if normalized in PROTECTED_PATHS or os.path.dirname(normalized) in PROTECTED_PARENTS:
        return False
    return True


def secure_remove(path: str) -> bool:
    """
    Remove a file, symlink or directory tree if its path passes is_safe_to_remove.

    Returns:
        bool: True if something was removed
    """
    if not os.path.lexists(path):
        log_message(f"'{path}' wasn't deleted because it doesn't exist.")
        return False

    if not is_safe_to_remove(path):
        log_message(f"Not deleting '{path}' because it is not an acceptable path to delete.", "WARNING")
        return False

    if os.path.isdir(path) and not os.path.islink(path):
        shutil.rmtree(path)
    else:
        os.remove(path)
    log_message(f"Removed {path}", "DEBUG")
    return True
