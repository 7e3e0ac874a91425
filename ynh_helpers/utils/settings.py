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
App settings client.

Settings belong to the platform: they are read and written through its CLI
and never through the settings files directly.
"""

import json
import subprocess
from typing import List, Optional
from .index import HelperError, get_env, log_message
from .moduleUtils import get_settings_binary

# Values the settings CLI prints for a key that was never set
_UNSET_VALUES = ("", "None", "null")


class SettingsError(HelperError):
    """Raised when the settings CLI fails."""
    pass


def current_app() -> str:
    """Id of the app the calling script works on."""
    app = get_env("YNH_APP_INSTANCE_NAME") or get_env("app")
    if not app:
        raise SettingsError("Can't determine the app: YNH_APP_INSTANCE_NAME is not set")
    return app


class AppSettings:
    """Reads and writes per-app key/value settings through the platform CLI."""

    def __init__(self, yunohost_bin: Optional[str] = None):
        self.yunohost_bin = yunohost_bin or get_settings_binary()

    def _run(self, args: List[str]) -> str:
        command = [self.yunohost_bin] + args
        try:
            result = subprocess.run(command, capture_output=True, text=True, check=True)
        except FileNotFoundError as e:
            raise SettingsError(f"Settings CLI not found: {self.yunohost_bin}") from e
        except subprocess.CalledProcessError as e:
            raise SettingsError(f"Command failed: {' '.join(command[:4])}: {(e.stderr or '').strip()}") from e
        return result.stdout

    def get(self, app: str, key: str) -> Optional[str]:
        """Get a setting, or None if it is not set."""
        value = self._run(["app", "setting", app, key]).strip()
        return None if value in _UNSET_VALUES else value

    def set(self, app: str, key: str, value: str) -> None:
        self._run(["app", "setting", app, key, "-v", str(value)])
        log_message(f"Stored setting {key} for {app}", "DEBUG")

    def delete(self, app: str, key: str) -> None:
        self._run(["app", "setting", app, key, "-d"])
        log_message(f"Deleted setting {key} for {app}", "DEBUG")

    def list_installed_apps(self) -> List[str]:
        """Ids of every app installed on this host."""
        output = self._run(["app", "list", "--output-as", "json"])
        try:
            data = json.loads(output)
        except ValueError as e:
            raise SettingsError(f"Unexpected app list output: {e}") from e
        return [app["id"] for app in data.get("apps", []) if app.get("id")]
