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
Command line entry point.

Packaging scripts written in shell call the helpers through `ynh-helpers
<command>`. Values are printed on stdout, logs go to stderr, and predicates
(version comparisons) answer with the exit status.
"""

import argparse
import json
import logging
import sys
import traceback

from . import list_modules, run_module
from .utils.index import LOGGER_NAME, HelperError, log_message, sanitize_dbid
from .utils.moduleUtils import get_module_debug_mode
from .utils.manifest import (
    read_manifest,
    app_upstream_version,
    app_package_version,
    check_app_version_changed,
    compare_current_package_version
)
from .utils.versions import COMPARISONS, version_compare
from .utils.settings import current_app
from .utils.permissions import harden_app_directory, secure_remove
from .modules import goenv, mysql


def setup_logging(debug: bool = False):
    """
    Log to stderr only; stdout carries the values scripts capture.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.DEBUG if debug else logging.INFO)
    handler.setFormatter(logging.Formatter('[%(asctime)s] [%(levelname)s] %(message)s',
                                           datefmt='%Y-%m-%d %H:%M:%S'))
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(logging.DEBUG)
    for h in list(logger.handlers):
        logger.removeHandler(h)
    logger.addHandler(handler)
    logger.propagate = False
    log_message(f"Command: {' '.join(sys.argv)}", "DEBUG")


def _print_value(value):
    if value is None:
        print("")
    elif isinstance(value, (dict, list, bool)):
        print(json.dumps(value))
    else:
        print(value)


def _cmd_read_manifest(args) -> int:
    _print_value(read_manifest(args.key, args.manifest))
    return 0


def _cmd_upstream_version(args) -> int:
    print(app_upstream_version(args.manifest))
    return 0


def _cmd_package_version(args) -> int:
    print(app_package_version(args.manifest))
    return 0


def _cmd_check_version_changed(args) -> int:
    print(check_app_version_changed())
    return 0


def _cmd_compare_package_version(args) -> int:
    return 0 if compare_current_package_version(args.comparison, args.version) else 1


def _cmd_compare_versions(args) -> int:
    return 0 if version_compare(args.version1, args.comparison, args.version2) else 1


def _cmd_secure_remove(args) -> int:
    secure_remove(args.path)
    return 0


def _cmd_harden(args) -> int:
    return 0 if harden_app_directory(args.path, args.owner, args.group, args.mode) else 1


def _cmd_mysql_setup_db(args) -> int:
    app = args.app or current_app()
    db_name = args.db_name or sanitize_dbid(app)
    db_user = args.db_user or db_name
    password = mysql.setup_db(app, db_user, db_name, args.db_pwd)
    print(password)
    return 0


def _cmd_mysql_remove_db(args) -> int:
    app = args.app or current_app()
    db_name = args.db_name or sanitize_dbid(app)
    db_user = args.db_user or db_name
    mysql.remove_db(app, db_user, db_name)
    return 0


def _cmd_mysql_dump_db(args) -> int:
    sys.stdout.write(mysql.dump_db(args.database))
    return 0


def _cmd_mysql_execute(args) -> int:
    if args.file:
        output = mysql.execute_file_as_root(args.file, args.database)
    else:
        output = mysql.execute_as_root(args.sql, args.database)
    sys.stdout.write(output)
    return 0


def _cmd_install_go(args) -> int:
    print(goenv.install_go(args.app or current_app(), args.go_version))
    return 0


def _cmd_remove_go(args) -> int:
    goenv.remove_go(args.app or current_app())
    return 0


def _cmd_cleanup_go(args) -> int:
    goenv.cleanup_go()
    return 0


def _cmd_use_go(args) -> int:
    environment = goenv.use_go(args.app or current_app())
    print(f"export {environment.load_path}")
    print(f"export GO_BIN={environment.go_bin}")
    return 0


def _cmd_list_modules(args) -> int:
    for module in list_modules():
        print(f"{module['name']:<10} {module['schema_version']:<8} {module['description']}")
    return 0


def _cmd_module(args) -> int:
    result = run_module(args.name, args.module_args)
    if result is None:
        return 1
    print(json.dumps(result, indent=2, default=str))
    return 0 if isinstance(result, dict) and result.get("success") else 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="ynh-helpers", description="Helpers for app packaging scripts")
    parser.add_argument("--debug", action="store_true", help="Show debug logs")
    subparsers = parser.add_subparsers(dest="command", required=True)

    p = subparsers.add_parser("read-manifest", help="Print a value from the manifest")
    p.add_argument("key", help="Dotted key, e.g. resources.sources.main.url")
    p.add_argument("--manifest", default=None, help="Path to the manifest")
    p.set_defaults(func=_cmd_read_manifest)

    p = subparsers.add_parser("upstream-version", help="Print the upstream version of the app")
    p.add_argument("--manifest", default=None)
    p.set_defaults(func=_cmd_upstream_version)

    p = subparsers.add_parser("package-version", help="Print the package revision of the app")
    p.add_argument("--manifest", default=None)
    p.set_defaults(func=_cmd_package_version)

    p = subparsers.add_parser("check-version-changed", help="Print the upgrade type")
    p.set_defaults(func=_cmd_check_version_changed)

    p = subparsers.add_parser("compare-package-version",
                              help="Compare the installed package version (exit 0 when true)")
    p.add_argument("--comparison", required=True, choices=COMPARISONS)
    p.add_argument("--version", required=True, help="Package version, e.g. 1.2.3~ynh1")
    p.set_defaults(func=_cmd_compare_package_version)

    p = subparsers.add_parser("compare-versions", help="Compare two versions (exit 0 when true)")
    p.add_argument("version1")
    p.add_argument("comparison", choices=COMPARISONS)
    p.add_argument("version2")
    p.set_defaults(func=_cmd_compare_versions)

    p = subparsers.add_parser("secure-remove", help="Remove a path unless it is a protected location")
    p.add_argument("path")
    p.set_defaults(func=_cmd_secure_remove)

    p = subparsers.add_parser("harden", help="Restrict an app directory to its owner and group")
    p.add_argument("path")
    p.add_argument("--owner", required=True)
    p.add_argument("--group", default="www-data")
    p.add_argument("--mode", default="750")
    p.set_defaults(func=_cmd_harden)

    p = subparsers.add_parser("mysql-setup-db", help="Create the app database and print its password")
    p.add_argument("--app", default=None)
    p.add_argument("--db-user", default=None)
    p.add_argument("--db-name", default=None)
    p.add_argument("--db-pwd", default=None)
    p.set_defaults(func=_cmd_mysql_setup_db)

    p = subparsers.add_parser("mysql-remove-db", help="Drop the app database and database user")
    p.add_argument("--app", default=None)
    p.add_argument("--db-user", default=None)
    p.add_argument("--db-name", default=None)
    p.set_defaults(func=_cmd_mysql_remove_db)

    p = subparsers.add_parser("mysql-dump-db", help="Dump a database to stdout")
    p.add_argument("--database", required=True)
    p.set_defaults(func=_cmd_mysql_dump_db)

    p = subparsers.add_parser("mysql-execute", help="Execute sql as the database root user")
    source = p.add_mutually_exclusive_group(required=True)
    source.add_argument("--sql")
    source.add_argument("--file")
    p.add_argument("--database", default="")
    p.set_defaults(func=_cmd_mysql_execute)

    p = subparsers.add_parser("install-go", help="Install the Go toolchain of an app")
    p.add_argument("--app", default=None)
    p.add_argument("--go-version", required=True)
    p.set_defaults(func=_cmd_install_go)

    p = subparsers.add_parser("remove-go", help="Remove the Go toolchain of an app")
    p.add_argument("--app", default=None)
    p.set_defaults(func=_cmd_remove_go)

    p = subparsers.add_parser("cleanup-go", help="Remove Go toolchains no app uses")
    p.set_defaults(func=_cmd_cleanup_go)

    p = subparsers.add_parser("use-go", help="Print the environment of an app's Go toolchain")
    p.add_argument("--app", default=None)
    p.set_defaults(func=_cmd_use_go)

    p = subparsers.add_parser("list-modules", help="List helper modules")
    p.set_defaults(func=_cmd_list_modules)

    p = subparsers.add_parser("module", help="Run a module entry point (--check, --config)")
    p.add_argument("name")
    p.add_argument("module_args", nargs=argparse.REMAINDER)
    p.set_defaults(func=_cmd_module)

    return parser


def main(argv=None):
    """
    Main entry point for the helpers CLI.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    setup_logging(args.debug or get_module_debug_mode())

    try:
        sys.exit(args.func(args))
    except HelperError as e:
        log_message(str(e), "ERROR")
        sys.exit(1)
    except KeyboardInterrupt:
        log_message("Interrupted by user", "WARNING")
        sys.exit(130)
    except Exception as e:
        log_message(f"Unhandled error: {e}", "ERROR")
        log_message(traceback.format_exc(), "DEBUG")
        sys.exit(1)


if __name__ == "__main__":
    main()
