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

import json
import logging
import os
import re
import secrets
import string
import sys
from typing import Any, Dict, Optional

LOGGER_NAME = "ynh_helpers"

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


class HelperError(Exception):
    """Base exception for helper operation failures."""
    pass


def log_message(message, level="INFO"):
    """
    Log a message through the package logger.
    Args:
        message (str): The message to log.
        level (str): Log level (e.g., 'INFO', 'ERROR').
    """
    logging.getLogger(LOGGER_NAME).log(_LEVELS.get(level, logging.INFO), message)


def die(message: str, exit_code: int = 1):
    """Log an error and terminate the calling script."""
    log_message(message, "ERROR")
    sys.exit(exit_code)


def string_random(length: int = 24, alphabet: str = string.ascii_letters + string.digits) -> str:
    """Generate a random string suitable for passwords and secrets."""
    return "".join(secrets.choice(alphabet) for _ in range(length))


def sanitize_dbid(db_name: str) -> str:
    """Turn an app id into a valid database identifier ('-' and '.' become '_')."""
    return re.sub(r"[-.]", "_", db_name)


def load_module_config(module_dir: str, defaults: Dict[str, Any]) -> Dict[str, Any]:
    """
    Load configuration from a module's index.json file.

    Args:
        module_dir: Directory holding index.json
        defaults: Configuration returned when the file can't be loaded

    Returns:
        dict: Configuration data or the defaults if loading fails
    """
    try:
        config_path = os.path.join(module_dir, "index.json")
        with open(config_path, 'r') as f:
            return json.load(f)
    except Exception as e:
        log_message(f"Failed to load module config from {module_dir}: {e}", "WARNING")
        return defaults


def get_env(name: str, default: Optional[str] = None) -> Optional[str]:
    """Read a platform environment variable, treating empty values as unset."""
    value = os.environ.get(name)
    return value if value else default


def get_module_version(module_path: str) -> str:
    """
    Get the schema version from a module's index.json file.

    Returns:
        str: The schema version from index.json, or "unknown" if not found
    """
    config = load_module_config(module_path, {})
    return config.get("metadata", {}).get("schema_version", "unknown")
