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
Script lifecycle helpers

Exit handling for install/upgrade/remove/restore scripts. A script wraps its
body with abort_if_errors(); any failure escaping the body runs the caller's
cleanup function once and terminates the script with a non-zero status.

Usage:
    from ynh_helpers.utils.lifecycle import abort_if_errors

    def ynh_clean_setup():
        secure_remove("/tmp/myapp-build")

    with abort_if_errors(cleanup=ynh_clean_setup):
        install_go(app, "1.21")
"""

import contextlib
import sys
import traceback
from typing import Callable, Optional
from .index import log_message

# Looked up in __main__ when no explicit cleanup function is given
CLEANUP_HOOK = "ynh_clean_setup"

ABORT_MESSAGE = "An error occurred inside the script, please check the log for details."


class ScriptAborted(SystemExit):
    """Raised once a failing script has been cleaned up; outer traps let it through."""
    pass


def _find_cleanup_hook() -> Optional[Callable[[], None]]:
    main_module = sys.modules.get("__main__")
    hook = getattr(main_module, CLEANUP_HOOK, None)
    return hook if callable(hook) else None


def _run_cleanup(cleanup: Optional[Callable[[], None]]) -> None:
    if cleanup is None:
        cleanup = _find_cleanup_hook()
    if cleanup is None:
        return
    log_message(f"Running cleanup function {getattr(cleanup, '__name__', cleanup)}", "DEBUG")
    try:
        cleanup()
    except Exception as e:
        log_message(f"Cleanup function failed: {e}", "WARNING")


def exit_properly(exit_code: int, cleanup: Optional[Callable[[], None]] = None) -> None:
    """
    Terminate a failing script after running its cleanup function.

    Args:
        exit_code: Status the script was about to exit with; 0 is a no-op
        cleanup: Cleanup callable, defaults to ynh_clean_setup from __main__

    Raises:
        ScriptAborted: always, with status 1, when exit_code is non-zero
    """
    if exit_code == 0:
        return

    _run_cleanup(cleanup)
    log_message(ABORT_MESSAGE, "ERROR")
    raise ScriptAborted(1)


class abort_if_errors(contextlib.ContextDecorator):
    """
    Context manager (and decorator) implementing the exit trap.

    Exceptions and non-zero SystemExit escaping the block abort the script
    through exit_properly. SystemExit(0) is left untouched.
    """

    def __init__(self, cleanup: Optional[Callable[[], None]] = None):
        self.cleanup = cleanup

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        if exc_type is None or isinstance(exc, ScriptAborted):
            return False

        if isinstance(exc, SystemExit):
            code = exc.code
            if code is None or code == 0:
                return False
            exit_properly(code if isinstance(code, int) else 1, self.cleanup)

        if isinstance(exc, KeyboardInterrupt):
            log_message("Script interrupted by user", "WARNING")
            _run_cleanup(self.cleanup)
            raise ScriptAborted(130)

        log_message(f"{exc_type.__name__}: {exc}", "ERROR")
        log_message("".join(traceback.format_exception(exc_type, exc, tb)), "DEBUG")
        exit_properly(1, self.cleanup)
        return False
