#!/usr/bin/env python3
"""WordPress Docker image - **Python entry-point**
======================================================================

This file replaces the historical ``docker-entrypoint.sh`` Bash script that
provisioned a WordPress installation when the container starts.  The flow
is unchanged: database settings are derived from the environment, the
script waits for MySQL, downloads WordPress when the document root is empty,
creates or patches ``wp-config.php``, fills in the authentication keys and
salts, runs the user supplied extension scripts and finally ``exec``s the
container command.

```
Concern (Bash)                       | Python helper
-------------------------------------+---------------------------
Gather & normalise env vars          | gather_env
parse_environment_variables          | resolve_settings
wait_for_mysql                       | wait_for_dependencies
DB_* exports & summary               | export_environment
run_preinstall/postinstall_scripts   | run_extension_scripts
wp core download                     | ensure_wordpress
create_config_file                   | create_config_file
update_database_config               | update_database_config
create-or-update decision            | reconcile_config
update_other_config (keys & salts)   | provision_secrets
update_other_config ($table_prefix)  | apply_table_prefix
chown -R www-data                    | fix_permissions
exec "$@"                            | main
```

Editing of existing declarations is delegated to
``tools/src/wp_config.py`` and the database readiness loops to
``tools/src/wait_for_mysql.py`` so that both remain usable on their own
from extension scripts.

Differences from the shell version
----------------------------------
* The explicit password check compared a *literal* string in Bash
  (``[ "WORDPRESS_DB_PASSWORD" ]``) and therefore always picked
  ``$WORDPRESS_DB_PASSWORD`` - even when empty - once a user name was set.
  The port only uses it when it is non-empty and otherwise falls back to the
  linked container password for the same user.
* Truthy toggles (``WP_DEBUG`` …) must match a whole token.  The Bash
  regular expression was unanchored for the middle alternatives, so e.g.
  ``WP_DEBUG=maybe`` used to count as *true*.
* ``WP_HTTP_BLOCK_EXTERNAL`` was parsed but never written; it now ends up in
  the generated configuration.
"""

from __future__ import annotations

import os
import secrets
import subprocess
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, MutableMapping, Sequence, TypedDict

from tools.src import wp_config

__all__ = [
    "TRUTHY_VALUES",
    "SECRET_NAMES",
    "SECRET_ENV_VARS",
    "SECRET_PLACEHOLDER",
    "EntrypointEnv",
    "DatabaseSettings",
    "is_truthy",
    "gather_env",
    "resolve_settings",
    "config_path",
    "wp_command",
    "wait_for_dependencies",
    "export_environment",
    "run_extension_scripts",
    "ensure_wordpress",
    "build_extra_php",
    "build_config_command",
    "create_config_file",
    "update_database_config",
    "reconcile_config",
    "generate_secret",
    "provision_secrets",
    "apply_table_prefix",
    "fix_permissions",
    "main",
]


TRUTHY_VALUES = frozenset({"on", "y", "yes", "1", "t", "true", "enabled"})

# Order matters: keys are provisioned one after the other in this sequence.
SECRET_NAMES: tuple[str, ...] = (
    "AUTH_KEY",
    "SECURE_AUTH_KEY",
    "LOGGED_IN_KEY",
    "NONCE_KEY",
    "AUTH_SALT",
    "SECURE_AUTH_SALT",
    "LOGGED_IN_SALT",
    "NONCE_SALT",
)

SECRET_ENV_VARS: dict[str, str] = {name: f"WORDPRESS_{name}" for name in SECRET_NAMES}

# Value shipped in wp-config-sample.php for every key and salt.
SECRET_PLACEHOLDER = "put your unique phrase here"

DB_DRIVER = "mysql"
WEB_USER = "www-data"


def _log(message: str) -> None:
    print(f"[entrypoint] {message}", file=sys.stderr)


def is_truthy(value: str | None) -> bool:
    """Return *True* when *value* is one of :data:`TRUTHY_VALUES` (any case)."""

    return bool(value) and value.lower() in TRUTHY_VALUES


# ---------------------------------------------------------------------------
#  Environment
# ---------------------------------------------------------------------------


class EntrypointEnv(TypedDict):
    """Every environment variable read by the entry-point.

    :pyfunc:`gather_env` always fills **all** keys, using an empty string
    for variables that are absent, so call-sites may subscript freely.
    """

    # Paths
    DOCUMENT_ROOT: str
    SCRIPTS_DIR: str
    WORDPRESS_VERSION: str

    # Explicit database configuration
    WORDPRESS_DB_NAME: str
    WORDPRESS_DB_USER: str
    WORDPRESS_DB_PASSWORD: str
    WORDPRESS_DB_HOST: str
    WORDPRESS_DB_PORT: str
    WORDPRESS_DB_TABLE_PREFIX: str
    WORDPRESS_DB_VERIFICATION_QUERY: str

    # Populated when a MySQL container is linked
    MYSQL_ENV_MYSQL_USER: str
    MYSQL_ENV_MYSQL_PASSWORD: str
    MYSQL_ENV_MYSQL_DATABASE: str
    MYSQL_PORT_3306_TCP_ADDR: str
    MYSQL_PORT_3306_TCP_PORT: str

    # Toggles written into a freshly generated wp-config.php
    WP_DEBUG: str
    WP_DEBUG_DISPLAY: str
    WP_DEBUG_LOG: str
    WP_HTTP_BLOCK_EXTERNAL: str

    # Keys & salts overrides
    WORDPRESS_AUTH_KEY: str
    WORDPRESS_SECURE_AUTH_KEY: str
    WORDPRESS_LOGGED_IN_KEY: str
    WORDPRESS_NONCE_KEY: str
    WORDPRESS_AUTH_SALT: str
    WORDPRESS_SECURE_AUTH_SALT: str
    WORDPRESS_LOGGED_IN_SALT: str
    WORDPRESS_NONCE_SALT: str


def _trim_trailing_slash(path: str) -> str:
    return path.rstrip("/") or "/"


def gather_env(env: Mapping[str, str] | EntrypointEnv | None = None) -> EntrypointEnv:
    """Return a mapping holding *all* entrypoint variables with defaults.

    Unknown keys are ignored, meaning callers may pass ``os.environ``
    directly - or the result of a previous call.
    """

    src = os.environ if env is None else env

    def _get(key: str, default: str = "") -> str:
        return str(src.get(key) or default)

    gathered = {key: _get(key) for key in EntrypointEnv.__annotations__}
    gathered["DOCUMENT_ROOT"] = _trim_trailing_slash(_get("DOCUMENT_ROOT", "/var/www/html"))
    gathered["SCRIPTS_DIR"] = _trim_trailing_slash(_get("SCRIPTS_DIR", "/scripts"))
    gathered["WORDPRESS_VERSION"] = _get("WORDPRESS_VERSION", "latest")
    return EntrypointEnv(**gathered)  # type: ignore[typeddict-item]


@dataclass(frozen=True)
class DatabaseSettings:
    """Database configuration resolved once per container start."""

    name: str
    user: str
    password: str = ""
    password_source: str = ""
    host: str = ""
    port: str = ""
    verification_query: str = ""
    table_prefix: str = ""

    @property
    def host_with_port(self) -> str:
        """``host:port`` as understood by WordPress' ``DB_HOST``."""

        if self.host and self.port:
            return f"{self.host}:{self.port}"
        return self.host


def resolve_settings(env: Mapping[str, str] | EntrypointEnv | None = None) -> DatabaseSettings:
    """Derive the database settings from the environment.

    Precedence is given to the ``WORDPRESS_DB_*`` variables.  When absent,
    the ``MYSQL_*`` variables of a linked MySQL container are used where
    appropriate, with sane defaults otherwise:

    * the name falls back to ``$MYSQL_ENV_MYSQL_DATABASE`` then ``wordpress``;
    * an explicit user takes ``$WORDPRESS_DB_PASSWORD``, or the linked
      password when it is the linked user as well;
    * without an explicit user the linked user/password pair is used, then
      ``wordpress`` without a password;
    * an explicit host wins over the linked address (with a warning when
      both are set).  The linked port is only reused when the explicit host
      *is* the linked address.  Without any host ``localhost`` is used on the
      default port.

    Never raises.  Every non-empty value is reported on stderr, except the
    password for which only the source variable is named.
    """

    env = gather_env(env)

    name = env["WORDPRESS_DB_NAME"] or env["MYSQL_ENV_MYSQL_DATABASE"] or "wordpress"

    linked_user = env["MYSQL_ENV_MYSQL_USER"]
    linked_password = env["MYSQL_ENV_MYSQL_PASSWORD"]
    password = password_source = ""

    if env["WORDPRESS_DB_USER"]:
        user = env["WORDPRESS_DB_USER"]
        if env["WORDPRESS_DB_PASSWORD"]:
            password, password_source = env["WORDPRESS_DB_PASSWORD"], "WORDPRESS_DB_PASSWORD"
        elif user == linked_user and linked_password:
            password, password_source = linked_password, "MYSQL_ENV_MYSQL_PASSWORD"
    elif linked_user:
        user = linked_user
        if linked_password:
            password, password_source = linked_password, "MYSQL_ENV_MYSQL_PASSWORD"
    else:
        user = "wordpress"

    linked_addr = env["MYSQL_PORT_3306_TCP_ADDR"]
    linked_port = env["MYSQL_PORT_3306_TCP_PORT"]
    port = ""

    if env["WORDPRESS_DB_HOST"]:
        host = env["WORDPRESS_DB_HOST"]
        if linked_addr:
            _log("WARNING: both WORDPRESS_DB_HOST and MYSQL_PORT_3306_TCP_ADDR found")
            _log(f"  Connecting to WORDPRESS_DB_HOST ({host})")
            _log("  instead of the linked mysql container")
        if env["WORDPRESS_DB_PORT"]:
            port = env["WORDPRESS_DB_PORT"]
        elif linked_port and host == linked_addr:
            port = linked_port
    elif linked_addr:
        host = linked_addr
        port = linked_port
    else:
        host = "localhost"

    settings = DatabaseSettings(
        name=name,
        user=user,
        password=password,
        password_source=password_source,
        host=host,
        port=port,
        verification_query=env["WORDPRESS_DB_VERIFICATION_QUERY"],
        table_prefix=env["WORDPRESS_DB_TABLE_PREFIX"],
    )

    if settings.name:
        _log(f"Using DB name: {settings.name}")
    if settings.host:
        _log(f"Using DB host: {settings.host}")
    if settings.port:
        _log(f"Using DB port: {settings.port}")
    if settings.user:
        _log(f"Using DB username: {settings.user}")
    if settings.password:
        _log(f"Using DB password from: ${settings.password_source}")

    return settings


def config_path(env: EntrypointEnv) -> Path:
    return Path(env["DOCUMENT_ROOT"]) / "wp-config.php"


def wp_command(env: EntrypointEnv, *args: str) -> list[str]:
    """Return a *wp-cli* invocation bound to the document root."""

    return ["wp", f"--path={env['DOCUMENT_ROOT']}", "--allow-root", *args]


# ---------------------------------------------------------------------------
#  Database readiness
# ---------------------------------------------------------------------------


def wait_for_dependencies(settings: DatabaseSettings) -> None:  # noqa: D401 - imperative mood
    """Block until MySQL and the configured database are reachable.

    The retry loops live in ``tools/src/wait_for_mysql.py``; each stage
    exits the process once its attempts are exhausted, before anything is
    written to the document root.  The verification query stage only runs
    when ``$WORDPRESS_DB_VERIFICATION_QUERY`` is set.
    """

    from tools.src import wait_for_mysql

    wait_for_mysql.wait_for_server(settings.host, settings.port)
    wait_for_mysql.wait_for_database(
        settings.host,
        settings.port,
        settings.user,
        settings.password,
        settings.name,
    )
    if settings.verification_query:
        wait_for_mysql.verify_database_state(
            settings.host,
            settings.port,
            settings.user,
            settings.password,
            settings.name,
            settings.verification_query,
        )


def export_environment(
    settings: DatabaseSettings,
    env: EntrypointEnv,
    target: MutableMapping[str, str] | None = None,
) -> None:
    """Publish the resolved settings for extension scripts and the final command."""

    target = os.environ if target is None else target

    target["DB_DRIVER"] = DB_DRIVER
    target["DB_NAME"] = settings.name
    target["DB_HOST"] = settings.host
    target["DB_PORT"] = settings.port
    target["DB_USER"] = settings.user
    target["DB_PASS"] = settings.password
    target["DOCUMENT_ROOT"] = env["DOCUMENT_ROOT"]
    target["SCRIPTS_DIR"] = env["SCRIPTS_DIR"]

    _log("Using database configuration:")
    _log(f"  Database driver    (DB_DRIVER):  {DB_DRIVER}")
    _log(f"  Database name      (DB_NAME):    {settings.name}")
    _log(f"  Database host      (DB_HOST):    {settings.host}")
    _log(f"  Database port      (DB_PORT):    {settings.port}")
    _log(f"  Database username  (DB_USER):    {settings.user}")
    _log("  Database password  (DB_PASS):    ** not shown **")
    _log("Other configuration:")
    _log(f"  Document root      (DOCUMENT_ROOT): {env['DOCUMENT_ROOT']}")
    _log(f"  Scripts directory  (SCRIPTS_DIR):   {env['SCRIPTS_DIR']}")


# ---------------------------------------------------------------------------
#  Extension scripts & WordPress files
# ---------------------------------------------------------------------------


def run_extension_scripts(directory: Path, label: str) -> None:
    """Run every executable regular file in *directory*, in listing order.

    Non-executable files are reported and skipped.  A script exiting with a
    non-zero status aborts the start-up (``CalledProcessError``).
    """

    _log(f"Checking for {label} scripts directory ({directory})...")
    if not directory.is_dir():
        return

    _log(f"Running {label} scripts...")
    for script in sorted(directory.iterdir()):
        if script.name.startswith(".") or not script.is_file():
            continue
        if not os.access(script, os.X_OK):
            _log(f"Skipping {script} as it is not executable.")
            continue
        _log(f"Running {script}...")
        subprocess.run([str(script)], check=True)


def ensure_wordpress(env: EntrypointEnv) -> None:
    """Download WordPress core into the document root when it is missing."""

    root = Path(env["DOCUMENT_ROOT"])
    if (root / "index.php").is_file() and (root / "wp-includes" / "version.php").is_file():
        return

    _log(f"WordPress not present in {root}.")
    subprocess.run(
        wp_command(env, "core", "download", f"--version={env['WORDPRESS_VERSION']}"),
        check=True,
    )


# ---------------------------------------------------------------------------
#  wp-config.php reconciliation
# ---------------------------------------------------------------------------


def build_extra_php(env: EntrypointEnv) -> str:
    """Return the PHP lines appended to a freshly generated configuration.

    WordPress defaults ``WP_DEBUG`` and ``WP_DEBUG_LOG`` to *false* and
    ``WP_DEBUG_DISPLAY`` to *true*, so:

    * ``WP_DEBUG`` is only ever written as *true*;
    * the two other debug constants are only considered when ``WP_DEBUG``
      is on.  ``WP_DEBUG_DISPLAY`` is written as *false* only for a
      non-empty, non-truthy value - an empty variable keeps the default;
    * ``WP_HTTP_BLOCK_EXTERNAL`` is written as *true* when requested.

    An empty string means the generator's defaults are kept untouched.
    """

    lines: list[str] = []

    if is_truthy(env["WP_DEBUG"]):
        lines.append("define( 'WP_DEBUG', true );")
        if env["WP_DEBUG_DISPLAY"] and not is_truthy(env["WP_DEBUG_DISPLAY"]):
            lines.append("define( 'WP_DEBUG_DISPLAY', false );")
        if is_truthy(env["WP_DEBUG_LOG"]):
            lines.append("define( 'WP_DEBUG_LOG', true );")

    if is_truthy(env["WP_HTTP_BLOCK_EXTERNAL"]):
        lines.append("define( 'WP_HTTP_BLOCK_EXTERNAL', true );")

    return "".join(f"{line}\n" for line in lines)


def build_config_command(settings: DatabaseSettings, env: EntrypointEnv) -> list[str]:
    """Return the ``wp core config`` invocation creating ``wp-config.php``."""

    cmd = wp_command(env, "core", "config", f"--dbname={settings.name}")
    if settings.user:
        cmd.append(f"--dbuser={settings.user}")
    if settings.password:
        cmd.append(f"--dbpass={settings.password}")
    if settings.host:
        cmd.append(f"--dbhost={settings.host_with_port}")
    if build_extra_php(env):
        cmd.append("--extra-php")
    return cmd


def create_config_file(settings: DatabaseSettings, env: EntrypointEnv) -> None:
    """Generate a new ``wp-config.php`` through *wp-cli*.

    The extra PHP, when any, is fed on stdin as ``--extra-php`` expects.
    """

    extra_php = build_extra_php(env)
    subprocess.run(
        build_config_command(settings, env),
        input=extra_php if extra_php else None,
        text=True,
        check=True,
    )


def update_database_config(settings: DatabaseSettings, path: Path) -> None:
    """Patch the database constants of an existing ``wp-config.php``.

    Only constants already declared in the file can be updated.  Empty
    settings leave the current value in place.
    """

    if settings.host:
        wp_config.set_php_constant(str(path), "DB_HOST", settings.host_with_port)
    if settings.user:
        wp_config.set_php_constant(str(path), "DB_USER", settings.user)
    if settings.password:
        wp_config.set_php_constant(str(path), "DB_PASSWORD", settings.password)
    if settings.name:
        wp_config.set_php_constant(str(path), "DB_NAME", settings.name)


def reconcile_config(settings: DatabaseSettings, path: Path, env: EntrypointEnv) -> None:
    """Create ``wp-config.php`` when missing, otherwise update it in place."""

    if path.is_file():
        _log(f"File {path} exists.")
        _log(f"Updating database configuration in {path}...")
        update_database_config(settings, path)
    else:
        _log(f"File {path} does not exist.")
        _log(f"Creating new {path} using wp-cli...")
        create_config_file(settings, env)


def generate_secret() -> str:
    """Return 160 random bits, hex encoded."""

    return secrets.token_hex(20)


def provision_secrets(path: Path, env: EntrypointEnv) -> None:
    """Make sure every key and salt in ``wp-config.php`` holds a real secret.

    ``$WORDPRESS_<NAME>`` overrides are always written.  Otherwise only a
    declaration still holding :data:`SECRET_PLACEHOLDER` is replaced by a
    freshly generated value; existing secrets are kept so that live
    sessions remain valid.
    """

    for name in SECRET_NAMES:
        override = env[SECRET_ENV_VARS[name]]  # type: ignore[literal-required]
        if override:
            wp_config.set_php_constant(str(path), name, override)
        elif wp_config.get_php_constant(str(path), name) == SECRET_PLACEHOLDER:
            _log(f"Generating {name}...")
            wp_config.set_php_constant(str(path), name, generate_secret())


def apply_table_prefix(path: Path, settings: DatabaseSettings) -> None:
    if settings.table_prefix:
        wp_config.set_php_constant(str(path), "$table_prefix", settings.table_prefix)


# ---------------------------------------------------------------------------
#  Permissions & process hand-off
# ---------------------------------------------------------------------------


def fix_permissions(env: EntrypointEnv) -> None:  # noqa: D401
    """Recursively hand the document root over to the web server user.

    Skipped when not running as *root* since ``chown`` would fail anyway.
    """

    root = Path(env["DOCUMENT_ROOT"])
    if os.geteuid() != 0 or not root.exists():
        return
    subprocess.run(["chown", "-R", f"{WEB_USER}:{WEB_USER}", str(root)], check=True)


def main(argv: Sequence[str] | None = None) -> None:
    """Provision WordPress, then replace the process with the container command.

    Nothing is exec'ed when no command was given.
    """

    args = list(sys.argv[1:] if argv is None else argv)
    env = gather_env()

    try:
        settings = resolve_settings(env)
        wait_for_dependencies(settings)
        export_environment(settings, env)

        scripts_dir = Path(env["SCRIPTS_DIR"])
        run_extension_scripts(scripts_dir / "pre-install.d", "pre-installation")

        ensure_wordpress(env)

        path = config_path(env)
        reconcile_config(settings, path, env)
        provision_secrets(path, env)
        apply_table_prefix(path, settings)

        run_extension_scripts(scripts_dir / "post-install.d", "post-installation")

        fix_permissions(env)
    except SystemExit:
        raise
    except Exception as exc:
        _log(f"FATAL: {exc}")
        sys.exit(1)

    if args:
        os.execvp(args[0], args)  # pragma: no cover - replaces the process


if __name__ == "__main__":  # pragma: no cover
    main()
