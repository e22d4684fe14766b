"""Pytest configuration – ensure local packages are discoverable.

The project root is put on ``sys.path`` once so that ``import entrypoint``
and ``from tools.src import wp_config`` work without installing the
project.  A representative ``wp-config.php`` is provided as a fixture.
"""

from __future__ import annotations

import os
import sys
from pathlib import Path

import pytest


def pytest_configure() -> None:  # noqa: D401 – Pytest hook name
    root = Path(os.getenv("PYTEST_PROJECT_ROOT", Path(__file__).resolve().parents[1])).resolve()
    if str(root) not in sys.path:  # pragma: no cover – executed once
        sys.path.insert(0, str(root))


SAMPLE_WP_CONFIG = """<?php
/**
 * The base configuration for WordPress
 */

// ** MySQL settings - You can get this info from your web host ** //
/** The name of the database for WordPress */
define( 'DB_NAME', 'database_name_here' );

/** MySQL database username */
define( 'DB_USER', "username_here" );

/** MySQL database password */
define( 'DB_PASSWORD', 'password_here' );

/** MySQL hostname */
define('DB_HOST', 'localhost');   // keep this comment

define( 'AUTH_KEY',         'put your unique phrase here' );
define( 'SECURE_AUTH_KEY',  'put your unique phrase here' );
define( 'LOGGED_IN_KEY',    'put your unique phrase here' );
define( 'NONCE_KEY',        'put your unique phrase here' );
define( 'AUTH_SALT',        'put your unique phrase here' );
define( 'SECURE_AUTH_SALT', 'put your unique phrase here' );
define( 'LOGGED_IN_SALT',   'put your unique phrase here' );
define( 'NONCE_SALT',       'put your unique phrase here' );

$table_prefix = 'wp_';

define( 'WP_DEBUG', false );

if ( ! defined( 'ABSPATH' ) ) {
\tdefine( 'ABSPATH', __DIR__ . '/' );
}

require_once ABSPATH . 'wp-settings.php';
"""


@pytest.fixture()
def wp_config_file(tmp_path: Path) -> Path:  # noqa: D103 – pytest fixture
    path = tmp_path / "wp-config.php"
    path.write_text(SAMPLE_WP_CONFIG, encoding="utf-8")
    return path
