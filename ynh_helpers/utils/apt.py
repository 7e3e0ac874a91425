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
System package helpers (dpkg/apt).
"""

import os
import subprocess
from typing import List
from .index import HelperError, log_message

INSTALL_COMMAND = ["apt-get", "install", "-y", "--no-install-recommends"]


class AptError(HelperError):
    """Raised when apt fails to install packages."""
    pass


def package_is_installed(package: str) -> bool:
    """Check whether a Debian package is installed."""
    result = subprocess.run(
        ["dpkg-query", "--show", "--showformat=${Status}", package],
        capture_output=True,
        text=True,
        check=False
    )
    return result.returncode == 0 and result.stdout.strip() == "install ok installed"


def install_packages(packages: List[str]) -> None:
    """Install packages non-interactively."""
    if not packages:
        return

    # Use DEBIAN_FRONTEND=noninteractive to prevent hanging on prompts
    env = os.environ.copy()
    env['DEBIAN_FRONTEND'] = 'noninteractive'

    command = INSTALL_COMMAND + list(packages)
    log_message(f"Running: {' '.join(command)}")
    result = subprocess.run(command, capture_output=True, text=True, env=env, check=False)
    if result.returncode != 0:
        raise AptError(f"Failed to install {', '.join(packages)}: {result.stderr.strip()}")
    log_message(f"Installed {', '.join(packages)}")


def ensure_packages(packages: List[str]) -> List[str]:
    """
    Install whichever of packages is missing.

    Returns:
        List[str]: The packages that had to be installed
    """
    missing = [package for package in packages if not package_is_installed(package)]
    if missing:
        install_packages(missing)
    else:
        log_message(f"Packages already installed: {', '.join(packages)}", "DEBUG")
    return missing
