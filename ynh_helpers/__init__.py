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
along with this program. If not, see <https://www.gnu.org/licenses/>.
"""

import os
import json
import importlib
import traceback
from typing import Dict, List, Any, Optional

# Import shared utilities
from .utils.index import log_message, HelperError

# Re-export utilities for easy access by packaging scripts
__all__ = [
    'log_message',
    'HelperError',
    'load_module_index',
    'list_modules',
    'run_module'
]

MODULES_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "modules")


def load_module_index(module_path: str) -> Optional[Dict[str, Any]]:
    """
    Load a module's index.json file containing metadata and configuration.

    Args:
        module_path: Path to the module directory

    Returns:
        dict: The loaded index.json data, or None if not found/invalid
    """
    index_file = os.path.join(module_path, 'index.json')
    log_message(f"Attempting to load: {index_file}", "DEBUG")

    if not os.path.exists(index_file):
        log_message(f"File does not exist: {index_file}", "DEBUG")
        return None

    try:
        with open(index_file, 'r') as f:
            return json.load(f)
    except (OSError, ValueError) as e:
        log_message(f"Failed to load index.json from {module_path}: {e}", "ERROR")
        return None


def list_modules() -> List[Dict[str, Any]]:
    """
    List the helper modules shipped with the package.

    Returns:
        List[dict]: name, schema_version and description of each module
    """
    modules = []
    for module_name in sorted(os.listdir(MODULES_DIR)):
        module_path = os.path.join(MODULES_DIR, module_name)
        if not os.path.isdir(module_path):
            continue
        index = load_module_index(module_path)
        if not index:
            continue
        metadata = index.get("metadata", {})
        modules.append({
            "name": module_name,
            "schema_version": metadata.get("schema_version", "unknown"),
            "description": metadata.get("description", "")
        })
    return modules


def run_module(module_name: str, args=None):
    """
    Run a helper module's main(args) entry point.

    Args:
        module_name (str): Module name under modules/, e.g. "goenv"
        args (list, optional): Arguments to pass to the module's main function

    Returns:
        Any: Result from the module, or None if it couldn't run
    """
    result = None
    module_path = module_name if "." in module_name else f"modules.{module_name}"
    try:
        mod = importlib.import_module(f".{module_path}", package=__name__)
    except ImportError as e:
        log_message(f"Unknown module {module_name}: {e}", "ERROR")
        return None

    if not hasattr(mod, 'main'):
        log_message(f"Module {module_path} has no main(args) function.", "ERROR")
        return None

    try:
        log_message(f"Running module: {module_path}", "DEBUG")
        result = mod.main(args or [])
    except HelperError as e:
        log_message(f"Error running {module_path}: {e}", "ERROR")
        log_message(traceback.format_exc(), "DEBUG")
    return result
