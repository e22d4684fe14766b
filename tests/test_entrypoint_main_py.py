"""Tests for the :pyfunc:`entrypoint.entrypoint.main` helper.

The *real* implementation ends by replacing the current process image with
the container command.  ``os.execvp`` is therefore monkey-patched so that
the control flow stays inside the interpreter while still asserting the
arguments that would have been used.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Any, List

import pytest

import entrypoint.entrypoint as ep
from tools.src import wp_config


@pytest.fixture()
def clean_env(monkeypatch: pytest.MonkeyPatch, wp_config_file: Path) -> Path:
    """Point the entry-point at *wp_config_file* with an otherwise empty environment."""

    for key in ep.EntrypointEnv.__annotations__:
        monkeypatch.delenv(key, raising=False)
    for key in ("DB_DRIVER", "DB_NAME", "DB_HOST", "DB_PORT", "DB_USER", "DB_PASS"):
        monkeypatch.setenv(key, "")
    monkeypatch.setenv("DOCUMENT_ROOT", str(wp_config_file.parent))
    monkeypatch.setenv("SCRIPTS_DIR", str(wp_config_file.parent / "scripts"))
    return wp_config_file


def test_main_regular_flow(monkeypatch: pytest.MonkeyPatch, clean_env: Path) -> None:
    """Every stage runs in order and the container command is exec'ed last."""

    calls: List[str] = []

    for name in ("wait_for_dependencies", "ensure_wordpress", "fix_permissions"):
        monkeypatch.setattr(ep, name, lambda *_args, __name=name: calls.append(__name))

    real_scripts = ep.run_extension_scripts
    monkeypatch.setattr(
        ep,
        "run_extension_scripts",
        lambda directory, label: (calls.append(directory.name), real_scripts(directory, label)),
    )

    captured: dict[str, Any] = {}

    def fake_execvp(cmd: str, args: List[str]) -> None:  # noqa: D401 – nested helper
        captured["cmd"] = [cmd, *args]

    monkeypatch.setattr(ep.os, "execvp", fake_execvp)
    monkeypatch.setenv("WORDPRESS_DB_NAME", "blog")
    monkeypatch.setenv("WORDPRESS_DB_TABLE_PREFIX", "blog_")

    ep.main(["apache2-foreground"])

    assert calls == [
        "wait_for_dependencies",
        "pre-install.d",
        "ensure_wordpress",
        "post-install.d",
        "fix_permissions",
    ]
    assert captured["cmd"] == ["apache2-foreground", "apache2-foreground"]

    path = str(clean_env)
    assert wp_config.get_php_constant(path, "DB_NAME") == "blog"
    assert wp_config.get_php_constant(path, "$table_prefix") == "blog_"
    assert re.fullmatch(r"[0-9a-f]{40}", wp_config.get_php_constant(path, "AUTH_KEY") or "")

    assert ep.os.environ["DB_DRIVER"] == "mysql"
    assert ep.os.environ["DB_NAME"] == "blog"


def test_main_without_command_does_not_exec(monkeypatch: pytest.MonkeyPatch, clean_env: Path) -> None:
    for name in ("wait_for_dependencies", "ensure_wordpress", "fix_permissions"):
        monkeypatch.setattr(ep, name, lambda *_args: None)
    monkeypatch.setattr(
        ep.os,
        "execvp",
        lambda *_a, **_kw: (_ for _ in ()).throw(AssertionError("execvp should not be reached")),
    )

    ep.main([])


def test_main_database_unreachable_writes_nothing(monkeypatch: pytest.MonkeyPatch, clean_env: Path) -> None:
    before = clean_env.read_bytes()

    def unreachable(*_a: Any) -> None:
        raise SystemExit(1)

    monkeypatch.setattr(ep, "wait_for_dependencies", unreachable)

    with pytest.raises(SystemExit) as excinfo:
        ep.main(["apache2-foreground"])

    assert excinfo.value.code == 1
    assert clean_env.read_bytes() == before


def test_main_unexpected_error_is_fatal(
    monkeypatch: pytest.MonkeyPatch, clean_env: Path, capsys: pytest.CaptureFixture[str],
) -> None:
    monkeypatch.setattr(ep, "wait_for_dependencies", lambda *_a: None)

    def broken(*_a: Any) -> None:
        raise RuntimeError("wp-cli missing")

    monkeypatch.setattr(ep, "ensure_wordpress", broken)

    with pytest.raises(SystemExit) as excinfo:
        ep.main(["apache2-foreground"])

    assert excinfo.value.code == 1
    assert "[entrypoint] FATAL: wp-cli missing" in capsys.readouterr().err


# ---------------------------------------------------------------------------
#  wait_for_dependencies
# ---------------------------------------------------------------------------


def test_wait_for_dependencies_routes_to_helpers(monkeypatch: pytest.MonkeyPatch) -> None:
    from tools.src import wait_for_mysql

    recorded: List[tuple[str, tuple[Any, ...]]] = []
    for name in ("wait_for_server", "wait_for_database", "verify_database_state"):
        monkeypatch.setattr(wait_for_mysql, name, lambda *a, __name=name: recorded.append((__name, a)))

    settings = ep.DatabaseSettings(name="blog", user="wp", password="pw", host="db", port="3307",
                                   verification_query="SELECT 1")
    ep.wait_for_dependencies(settings)

    assert recorded == [
        ("wait_for_server", ("db", "3307")),
        ("wait_for_database", ("db", "3307", "wp", "pw", "blog")),
        ("verify_database_state", ("db", "3307", "wp", "pw", "blog", "SELECT 1")),
    ]


def test_wait_for_dependencies_skips_verification_without_query(monkeypatch: pytest.MonkeyPatch) -> None:
    from tools.src import wait_for_mysql

    recorded: List[str] = []
    for name in ("wait_for_server", "wait_for_database", "verify_database_state"):
        monkeypatch.setattr(wait_for_mysql, name, lambda *a, __name=name: recorded.append(__name))

    ep.wait_for_dependencies(ep.DatabaseSettings(name="blog", user="wp", host="db"))

    assert recorded == ["wait_for_server", "wait_for_database"]
