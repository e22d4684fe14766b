#!/usr/bin/env python3
"""
wait_for_mysql.py - Wait for MySQL and the WordPress database to become available.

Three stages are supported, each a bounded retry loop:

1. the server answers at all (a refused login still counts as "up"),
2. the named database accepts the configured credentials,
3. an optional verification query succeeds against that database.

Every stage exits the process with status 1 once its attempts are exhausted.
"""

import os
import signal
import sys
import time
from typing import Any, Dict, Optional

import pymysql
from pymysql.err import MySQLError, OperationalError

# Default constants for script
DEFAULT_MAX_ATTEMPTS: int = 20
DEFAULT_SLEEP_SECONDS: int = 1
DEFAULT_MYSQL_PORT: int = 3306

# Login used to probe the server; a rejection proves the server is listening.
PROBE_USER: str = "UNKNOWN_MYSQL_USER"
ER_ACCESS_DENIED_ERROR: int = 1045


def parse_port(port: Optional[str]) -> int:
    """Return *port* as an ``int``, falling back to the MySQL default when empty."""
    if not port:
        return DEFAULT_MYSQL_PORT
    return int(port)


def _connection_args(host: str, port: Optional[str], user: str, password: str) -> Dict[str, Any]:
    return {
        "host": host,
        "port": parse_port(port),
        "user": user,
        "password": password,
        "connect_timeout": 5,
    }


def wait_for_server(
    host: str,
    port: Optional[str] = None,
    max_attempts: Optional[int] = None,
    sleep_seconds: Optional[int] = None,
) -> None:
    """Wait for the MySQL server on *host* to accept connections.

    Args:
        host (str): The database host.
        port (Optional[str]): The database port, empty for the MySQL default.
        max_attempts (Optional[int]): Maximum number of attempts. Defaults to DEFAULT_MAX_ATTEMPTS.
        sleep_seconds (Optional[int]): Seconds to sleep between attempts. Defaults to DEFAULT_SLEEP_SECONDS.

    Raises:
        SystemExit: If the server cannot be contacted after the maximum attempts.
    """
    if max_attempts is None:
        max_attempts = DEFAULT_MAX_ATTEMPTS
    if sleep_seconds is None:
        sleep_seconds = DEFAULT_SLEEP_SECONDS

    print(f"Waiting for MySQL to become available on {host}...", file=sys.stderr)
    for attempt in range(1, max_attempts + 1):
        try:
            with pymysql.connect(**_connection_args(host, port, PROBE_USER, "")):
                break
        except OperationalError as e:
            if e.args and e.args[0] == ER_ACCESS_DENIED_ERROR:
                break
            if attempt >= max_attempts:
                print("MySQL server could not be contacted.", file=sys.stderr)
                sys.exit(1)
            print(
                f"Attempt {attempt} of {max_attempts}: MySQL is not up yet, waiting... Error: {e}",
                file=sys.stderr,
            )
            time.sleep(sleep_seconds)
    print("MySQL ready.", file=sys.stderr)


def wait_for_database(
    host: str,
    port: Optional[str],
    user: str,
    password: str,
    dbname: str,
    max_attempts: Optional[int] = None,
    sleep_seconds: Optional[int] = None,
) -> None:
    """Wait until *dbname* can be selected with the given credentials.

    Raises:
        SystemExit: If the database is still inaccessible after the maximum attempts.
    """
    if max_attempts is None:
        max_attempts = DEFAULT_MAX_ATTEMPTS
    if sleep_seconds is None:
        sleep_seconds = DEFAULT_SLEEP_SECONDS

    print(f"Waiting for database '{dbname}' to be ready...", file=sys.stderr)
    for attempt in range(1, max_attempts + 1):
        try:
            with pymysql.connect(database=dbname, **_connection_args(host, port, user, password)):
                break
        except MySQLError as e:
            if attempt >= max_attempts:
                print(
                    f"MySQL server is up, but database '{dbname}' is not accessible.",
                    file=sys.stderr,
                )
                sys.exit(1)
            print(
                f"Attempt {attempt} of {max_attempts}: database '{dbname}' not accessible yet... Error: {e}",
                file=sys.stderr,
            )
            time.sleep(sleep_seconds)
    print("Database created.", file=sys.stderr)


def verify_database_state(
    host: str,
    port: Optional[str],
    user: str,
    password: str,
    dbname: str,
    query: str,
    max_attempts: Optional[int] = None,
    sleep_seconds: Optional[int] = None,
) -> None:
    """Run *query* against *dbname* until it succeeds.

    Raises:
        SystemExit: If the query keeps failing after the maximum attempts.
    """
    if max_attempts is None:
        max_attempts = DEFAULT_MAX_ATTEMPTS
    if sleep_seconds is None:
        sleep_seconds = DEFAULT_SLEEP_SECONDS

    print(f"About to verify database state using custom query: {query}", file=sys.stderr)
    print("Waiting for custom query to succeed...", file=sys.stderr)
    for attempt in range(1, max_attempts + 1):
        try:
            with pymysql.connect(database=dbname, **_connection_args(host, port, user, password)) as conn:
                with conn.cursor() as cursor:
                    cursor.execute(query)
                break
        except MySQLError as e:
            if attempt >= max_attempts:
                print(
                    "Database is present, but database state could not be verified using custom query.",
                    file=sys.stderr,
                )
                sys.exit(1)
            print(
                f"Attempt {attempt} of {max_attempts}: verification query failed... Error: {e}",
                file=sys.stderr,
            )
            time.sleep(sleep_seconds)
    print("Database state verified.", file=sys.stderr)


def signal_handler(signum: int, frame: Optional[Any]) -> None:
    """Handle system signals for proper cleanup.

    Args:
        signum (int): The signal number.
        frame (Optional[Any]): The current stack frame.
    """
    print(f"Received signal {signum}, exiting.", file=sys.stderr)
    sys.exit(1)


def main() -> None:
    """Wait for MySQL using the ``DB_*`` variables exported by the entrypoint."""
    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    host: str = os.getenv("DB_HOST", "localhost") or "localhost"
    port: str = os.getenv("DB_PORT", "")
    user: str = os.getenv("DB_USER", "")
    password: str = os.getenv("DB_PASS", "")
    dbname: str = os.getenv("DB_NAME", "")
    query: str = os.getenv("WORDPRESS_DB_VERIFICATION_QUERY", "")

    max_attempts: int = int(os.getenv("MAX_ATTEMPTS", str(DEFAULT_MAX_ATTEMPTS)))
    sleep_seconds: int = int(os.getenv("SLEEP_SECONDS", str(DEFAULT_SLEEP_SECONDS)))

    wait_for_server(host, port, max_attempts=max_attempts, sleep_seconds=sleep_seconds)
    if not dbname:
        return
    wait_for_database(host, port, user, password, dbname,
                      max_attempts=max_attempts, sleep_seconds=sleep_seconds)
    if query:
        verify_database_state(host, port, user, password, dbname, query,
                              max_attempts=max_attempts, sleep_seconds=sleep_seconds)


if __name__ == "__main__":
    main()
