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
MySQL Provisioning Module

Creates and removes the database and database user of an app. Root access
goes through the local unix socket, so the mysql client runs without
credentials; app users authenticate with --user/--password.
"""

import os
import re
import subprocess
from typing import Any, Dict, List, Optional
from ynh_helpers.utils.index import HelperError, load_module_config, log_message, string_random
from ynh_helpers.utils.moduleUtils import conditional_config_return
from ynh_helpers.utils.settings import AppSettings
from ynh_helpers.utils.apt import ensure_packages

MODULE_CONFIG = load_module_config(os.path.dirname(__file__), {
    "metadata": {
        "schema_version": "1.0.0",
        "module_name": "mysql"
    },
    "config": {
        "client": {
            "mysql_bin": "mysql",
            "mysqldump_bin": "mysqldump",
            "mysqlshow_bin": "mysqlshow",
            "timeout_seconds": 300
        },
        "server": {
            "ensure_installed": True,
            "packages": ["mariadb-server"]
        },
        "provisioning": {
            "password_setting": "mysqlpwd",
            "password_length": 24,
            "user_host": "localhost"
        }
    }
})

_IDENTIFIER = re.compile(r"^[A-Za-z0-9_]+$")


class MySQLError(HelperError):
    """Raised when a mysql client command fails."""
    pass


def get_client_config() -> Dict[str, Any]:
    return MODULE_CONFIG["config"]["client"]


def get_provisioning_config() -> Dict[str, Any]:
    return MODULE_CONFIG["config"]["provisioning"]


def _check_identifier(name: str, kind: str) -> str:
    if not name or not _IDENTIFIER.match(name):
        raise MySQLError(f"Invalid {kind} name '{name}': only letters, digits and '_' are allowed")
    return name


def _quote(value: str) -> str:
    return "'" + value.replace("\\", "\\\\").replace("'", "\\'") + "'"


def _user_spec(user: str) -> str:
    return f"{_quote(_check_identifier(user, 'user'))}@{_quote(get_provisioning_config()['user_host'])}"


def _printable(command: List[str]) -> str:
    # Passwords are passed as arguments; keep them out of the logs
    return " ".join(part for part in command if not part.startswith("--password"))


def _execute_client(command: List[str], sql: Optional[str] = None) -> subprocess.CompletedProcess:
    """Run a mysql client tool, feeding sql on stdin, whatever its exit status."""
    printable = _printable(command)
    log_message(f"Running: {printable}", "DEBUG")
    try:
        return subprocess.run(
            command,
            input=sql,
            capture_output=True,
            text=True,
            timeout=get_client_config().get("timeout_seconds", 300)
        )
    except FileNotFoundError as e:
        raise MySQLError(f"MySQL client not found: {command[0]}") from e
    except subprocess.TimeoutExpired as e:
        raise MySQLError(f"Command timed out: {printable}") from e


def _run_client(command: List[str], sql: Optional[str] = None) -> str:
    """Run a mysql client tool and return its stdout, raising MySQLError on failure."""
    result = _execute_client(command, sql)
    if result.returncode != 0:
        printable = _printable(command)
        raise MySQLError(f"Command failed: {printable}: {result.stderr.strip()}")
    return result.stdout


def connect_as(user: str, password: str, sql: str, database: str = "") -> str:
    """Execute sql as a database user."""
    command = [get_client_config()["mysql_bin"], "-B", f"--user={user}", f"--password={password}"]
    if database:
        command.append(database)
    return _run_client(command, sql)


def execute_as_root(sql: str, database: str = "") -> str:
    """Execute sql as the database root user."""
    command = [get_client_config()["mysql_bin"], "-B"]
    if database:
        command.append(database)
    return _run_client(command, sql)


def execute_file_as_root(file_path: str, database: str = "") -> str:
    """Execute an sql file as the database root user."""
    try:
        with open(file_path, 'r') as f:
            sql = f.read()
    except OSError as e:
        raise MySQLError(f"Failed to read sql file {file_path}: {e}") from e
    return execute_as_root(sql, database)


def database_exists(database: str) -> bool:
    _check_identifier(database, "database")
    result = _execute_client([get_client_config()["mysqlshow_bin"], database])
    return result.returncode == 0


def user_exists(user: str) -> bool:
    _check_identifier(user, "user")
    output = execute_as_root(f"SELECT User FROM mysql.user WHERE User = {_quote(user)};")
    # -B prints a header line before the rows
    return any(line.strip() == user for line in output.splitlines()[1:])


def create_db(database: str, db_user: Optional[str] = None, db_pwd: Optional[str] = None) -> None:
    """
    Create a database and optionally grant all privileges on it to db_user.

    The user is created by the GRANT when it doesn't exist yet.
    """
    _check_identifier(database, "database")
    sql = f"CREATE DATABASE {database};"
    if db_user:
        if db_pwd is None:
            raise MySQLError(f"A password is required to grant access to {db_user}")
        sql += (
            f" GRANT ALL PRIVILEGES ON {database}.* TO {_user_spec(db_user)}"
            f" IDENTIFIED BY {_quote(db_pwd)} WITH GRANT OPTION;"
            " FLUSH PRIVILEGES;"
        )
    execute_as_root(sql)
    log_message(f"Created database {database}")


def drop_db(database: str) -> None:
    _check_identifier(database, "database")
    execute_as_root(f"DROP DATABASE {database};")
    log_message(f"Dropped database {database}")


def dump_db(database: str) -> str:
    """Dump a database and return the sql."""
    _check_identifier(database, "database")
    return _run_client([
        get_client_config()["mysqldump_bin"],
        "--single-transaction",
        "--skip-dump-date",
        "--routines",
        database
    ])


def create_user(user: str, password: str) -> None:
    execute_as_root(f"CREATE USER {_user_spec(user)} IDENTIFIED BY {_quote(password)};")
    log_message(f"Created database user {user}")


def drop_user(user: str) -> None:
    execute_as_root(f"DROP USER {_user_spec(user)};")
    log_message(f"Dropped database user {user}")


def ensure_server() -> None:
    """Install the database server packages if the module is configured to."""
    server_config = MODULE_CONFIG["config"]["server"]
    if server_config.get("ensure_installed", False):
        ensure_packages(server_config.get("packages", []))


def setup_db(app: str, db_user: str, db_name: str, db_pwd: Optional[str] = None,
             settings: Optional[AppSettings] = None) -> str:
    """
    Create the database of an app, owned by db_user.

    Args:
        app: App id the password setting is stored for
        db_user: Database user to create
        db_name: Database to create
        db_pwd: Password to use, a random one is generated if omitted

    Returns:
        str: The password of db_user
    """
    settings = settings or AppSettings()
    provisioning = get_provisioning_config()

    ensure_server()

    if not db_pwd:
        db_pwd = string_random(provisioning.get("password_length", 24))

    create_db(db_name, db_user, db_pwd)
    settings.set(app, provisioning["password_setting"], db_pwd)
    log_message(f"Database {db_name} ready for {app}")
    return db_pwd


def remove_db(app: str, db_user: str, db_name: str, settings: Optional[AppSettings] = None) -> None:
    """Drop the database and database user of an app and forget its password."""
    settings = settings or AppSettings()

    if database_exists(db_name):
        drop_db(db_name)
    else:
        log_message(f"Database {db_name} not found", "WARNING")

    if user_exists(db_user):
        drop_user(db_user)

    settings.delete(app, get_provisioning_config()["password_setting"])


def main(args=None):
    """
    Main entry point for the mysql module.
    Args:
        args: List of arguments (supports '--check', '--config')
    Returns:
        dict: Status and results
    """
    if args is None:
        args = []

    if len(args) > 0 and args[0] == "--config":
        log_message("Current mysql module configuration:")
        log_message(f"  Client: {get_client_config()['mysql_bin']}")
        log_message(f"  Password setting: {get_provisioning_config()['password_setting']}")
        return conditional_config_return({"success": True}, MODULE_CONFIG)

    if len(args) > 0 and args[0] == "--check":
        try:
            execute_as_root("SELECT 1;")
        except MySQLError as e:
            log_message(f"✗ Database server unreachable: {e}", "ERROR")
            return {"success": False, "error": str(e)}
        log_message("✓ Database server reachable")
        return {"success": True}

    log_message(f"Unknown arguments for mysql module: {args}", "ERROR")
    return {"success": False, "error": "Unknown arguments"}
