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
Common utilities for helper modules to reduce code duplication.

This module provides access to the root configuration shared by all modules.
"""

import os
import json
from ynh_helpers.utils.index import log_message

DEFAULT_ROOT_CONFIG = {
    "debug": False,
    "settings": {
        "yunohost_bin": "yunohost"
    }
}


def load_root_config():
    """
    Load the root index.json holding the debug flag and shared settings.

    Utils is at: ynh_helpers/utils/
    Root config is at: ynh_helpers/index.json

    Returns:
        dict: Root configuration, or the defaults if loading fails
    """
    try:
        root_config_path = os.path.join(os.path.dirname(__file__), "..", "index.json")
        with open(root_config_path, 'r') as f:
            return json.load(f)
    except Exception as e:
        log_message(f"Failed to load root config: {e}", "DEBUG")
        # Default to non-debug mode for production safety
        return dict(DEFAULT_ROOT_CONFIG)


def conditional_config_return(result_dict: dict, config_data: dict, debug_key: str = "debug") -> dict:
    """
    Conditionally add config to result based on debug flag.

    Args:
        result_dict: The result dictionary to potentially add config to
        config_data: The configuration data to add if debug is enabled
        debug_key: The key to check in root config (default: "debug")

    Returns:
        dict: Result dictionary with config added if debug is enabled
    """
    root_config = load_root_config()
    if root_config.get(debug_key, False):
        result_dict["config"] = config_data
    return result_dict


def get_module_debug_mode() -> bool:
    """
    Get the current debug mode from root configuration.

    The YNH_HELPERS_DEBUG environment variable overrides the file.
    """
    env_value = os.environ.get("YNH_HELPERS_DEBUG")
    if env_value is not None:
        return env_value.lower() in ("1", "true", "yes")
    root_config = load_root_config()
    return root_config.get("debug", False)


def get_settings_binary() -> str:
    """Get the platform CLI used to read and write app settings."""
    root_config = load_root_config()
    return root_config.get("settings", {}).get("yunohost_bin", "yunohost")
