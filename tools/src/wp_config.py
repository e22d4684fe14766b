#!/usr/bin/env python3
"""Read and patch declarations inside ``wp-config.php``.

Two declaration shapes are understood::

    define( 'DB_NAME', 'wordpress' );
    $table_prefix = 'wp_';

Either quote style is accepted when locating a declaration.  Replacement
values are written back as single-quoted PHP literals, escaped the same way
``var_export()`` does it, or double-quoted when they hold a line break.
Only the value literal is spliced; all other bytes of the file are kept as
they were.
"""

from __future__ import annotations

import argparse
import os
import re
import signal
import sys
import tempfile
from types import FrameType
from typing import List, Optional, Pattern, Tuple


CONFIG_FILE_PATH: str = "/var/www/html/wp-config.php"

# Characters on which a PHP literal scan gives up, keeping matches line-scoped.
_LINE_BREAKS = "\r\n"


# ---------------------------------------------------------------------------
# Utility helpers
# ---------------------------------------------------------------------------

def _log(message: str) -> None:
    """Print *message* to stderr."""

    print(message, file=sys.stderr)


def signal_handler(signum: int, frame: Optional[FrameType]) -> None:
    """Handle termination signals."""

    _log(f"Received signal {signum}, terminating gracefully.")
    sys.exit(1)


# ---------------------------------------------------------------------------
# PHP literal helpers
# ---------------------------------------------------------------------------

_DOUBLE_QUOTED_ESCAPES = {
    "n": "\n",
    "t": "\t",
    "r": "\r",
    "v": "\v",
    "f": "\f",
    "e": "\x1b",
    "\\": "\\",
    "$": "$",
    '"': '"',
}

_DOUBLE_QUOTED_ENCODE = {char: f"\\{esc}" for esc, char in _DOUBLE_QUOTED_ESCAPES.items()}


def php_export(value: str) -> str:
    """Return *value* as a PHP string literal that stays on one line.

    Mirrors ``var_export((string) $value)``: a single-quoted literal with
    backslashes and single quotes escaped.  Values holding a line break are
    written double-quoted instead, with ``\\n``/``\\r`` style escapes, since
    a declaration has to fit on its line to be found again.
    """

    if any(char in _LINE_BREAKS for char in value):
        escaped = "".join(_DOUBLE_QUOTED_ENCODE.get(char, char) for char in value)
        return f'"{escaped}"'
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    return f"'{escaped}'"


def php_unquote(literal: str) -> str:
    """Decode a single- or double-quoted PHP string *literal*."""

    quote, body = literal[0], literal[1:-1]
    out: List[str] = []
    idx = 0
    while idx < len(body):
        char = body[idx]
        if char == "\\" and idx + 1 < len(body):
            nxt = body[idx + 1]
            if quote == "'" and nxt in ("\\", "'"):
                out.append(nxt)
                idx += 2
                continue
            if quote == '"' and nxt in _DOUBLE_QUOTED_ESCAPES:
                out.append(_DOUBLE_QUOTED_ESCAPES[nxt])
                idx += 2
                continue
        out.append(char)
        idx += 1
    return "".join(out)


def _scan_literal(content: str, start: int) -> Optional[int]:
    """Return the index just past the quoted literal opening at *start*.

    *None* when the literal is not closed on the same line.
    """

    quote = content[start]
    idx = start + 1
    while idx < len(content):
        char = content[idx]
        if char in _LINE_BREAKS:
            return None
        if char == "\\":
            idx += 2
            continue
        if char == quote:
            return idx + 1
        idx += 1
    return None


def declaration_pattern(key: str) -> Pattern[str]:
    """Return the pattern locating the value literal declared for *key*.

    The match ends right before the opening quote of the value.  Keys that
    start with ``$`` are matched as an assignment at the start of a line,
    any other key as the quoted first argument of a ``define()`` call.
    """

    if key.startswith("$"):
        return re.compile(rf"^[ \t]*{re.escape(key)}[ \t]*=[ \t]*(?=['\"])", re.MULTILINE)
    return re.compile(rf"\b(?i:define)[ \t]*\([ \t]*(['\"]){re.escape(key)}\1[ \t]*,[ \t]*(?=['\"])")


def find_declarations(content: str, key: str) -> List[Tuple[int, int]]:
    """Return the ``(start, end)`` spans of every value literal for *key*."""

    spans: List[Tuple[int, int]] = []
    for match in declaration_pattern(key).finditer(content):
        start = match.end()
        end = _scan_literal(content, start)
        if end is not None:
            spans.append((start, end))
    return spans


def replace_declaration(content: str, key: str, value: str) -> Tuple[str, int]:
    """Splice *value* into every declaration of *key* found in *content*.

    Returns the new content and the number of declarations rewritten.
    """

    spans = find_declarations(content, key)
    literal = php_export(value)
    for start, end in reversed(spans):
        content = content[:start] + literal + content[end:]
    return content, len(spans)


# ---------------------------------------------------------------------------
# File helpers
# ---------------------------------------------------------------------------

def read_config_text(path: str) -> str:
    """Return the raw content of *path*, line endings untouched."""

    try:
        with open(path, "r", encoding="utf-8", errors="surrogateescape", newline="") as cfg:
            return cfg.read()
    except OSError as exc:
        _log(f"Error reading config file: {exc}")
        sys.exit(1)


def write_config_text(path: str, content: str) -> None:
    """Atomically replace *path* with *content*, keeping its permission bits."""

    directory = os.path.dirname(os.path.abspath(path))
    try:
        mode = os.stat(path).st_mode & 0o7777
    except FileNotFoundError:
        mode = 0o644

    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=".wp-config.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", errors="surrogateescape", newline="") as tmp:
            tmp.write(content)
            tmp.flush()
            os.fsync(tmp.fileno())
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except OSError as exc:
        _log(f"Error writing to config file: {exc}")
        sys.exit(1)
    finally:
        try:
            os.remove(tmp_path)
        except FileNotFoundError:
            pass


# ---------------------------------------------------------------------------
# Configuration helpers
# ---------------------------------------------------------------------------

def set_php_constant(path: str, key: str, value: str) -> bool:
    """Set the declaration *key* in *path* to *value*.

    Returns *False* without touching the file when no declaration of *key*
    exists; the declaration has to be created beforehand.
    """

    content = read_config_text(path)
    updated, count = replace_declaration(content, key, value)
    if not count:
        return False
    if updated != content:
        write_config_text(path, updated)
    return True


def get_php_constant(path: str, key: str) -> Optional[str]:
    """Return the decoded value declared for *key* in *path*, or *None*."""

    content = read_config_text(path)
    spans = find_declarations(content, key)
    if not spans:
        return None
    start, end = spans[0]
    return php_unquote(content[start:end])


# ---------------------------------------------------------------------------
# CLI helpers
# ---------------------------------------------------------------------------

def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""

    parser = argparse.ArgumentParser(description="Read or patch declarations in wp-config.php")
    parser.add_argument("--config", default=CONFIG_FILE_PATH, help="Path to wp-config.php")

    subparsers = parser.add_subparsers(dest="command", required=True)

    get_parser = subparsers.add_parser("get", help="Print the value of a declaration")
    get_parser.add_argument("key", type=str)

    set_parser = subparsers.add_parser("set", help="Patch the value of an existing declaration")
    set_parser.add_argument("key", type=str)
    set_parser.add_argument("value", type=str)

    return parser.parse_args(argv)


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for the command line tool."""

    signal.signal(signal.SIGINT, signal_handler)
    signal.signal(signal.SIGTERM, signal_handler)

    args = parse_args(argv)

    if not os.path.isfile(args.config):
        _log(f"Error: Config file '{args.config}' does not exist.")
        sys.exit(1)

    if args.command == "get":
        value = get_php_constant(args.config, args.key)
        if value is None:
            _log(f"Error: Key '{args.key}' not found in {args.config}")
            sys.exit(1)
        print(value)
    elif set_php_constant(args.config, args.key, args.value):
        _log(f"{args.key} has been written to {args.config}.")
    else:
        _log(f"{args.key} is not declared in {args.config}, nothing changed.")


if __name__ == "__main__":
    main()
