"""Global constants and default values for reposync.

This module defines application identifiers, the default timings of the
mirror loop, and the fixed names used inside each job's working directory.
"""

import os
from pathlib import Path

# --- Identity ---
APP_NAME = "reposync"
"""str: The application name, also used as the logger name."""

# --- Configuration Paths ---
CONFIG_DIR: Path = Path.home() / ".config/reposync"
"""Path: The directory for user configuration files."""

CONFIG_FILE: Path = Path(
    os.environ.get("REPOSYNC_CONFIG") or CONFIG_DIR / "config.toml"
)
"""Path: The main configuration file path (overridable via REPOSYNC_CONFIG)."""

# --- Timing Defaults (seconds) ---
SYNC_INTERVAL = 60
"""int: Minimum spacing between two sync iterations of the same job."""

STALE_AFTER = 15 * 60
"""int: Age of the last success after which a job is reported unhealthy."""

COMMAND_TIMEOUT = 5 * 60
"""int: Upper bound on a single git invocation."""

CLONE_RETRY_DELAY = 10
"""int: Pause between failed clone attempts."""

REMOTE_RETRY_DELAY = 1
"""int: Pause between failed attempts to register the destination remote."""

# --- Server ---
DEFAULT_PORT = 8080
DEFAULT_HOST = "0.0.0.0"

# --- Git / Logic Constants ---
DEST_REMOTE = "to"
"""str: Name of the remote that points at the mirror destination."""

DEFAULT_BRANCH = "master"
"""str: Branch whose head value is tracked between iterations."""

COOKIE_FILE_NAME = "reposync-cookies"
"""str: Cookie file name, created inside the job's .git directory."""

METADATA_PREFIX = "metadata:"
"""str: Marker for configuration values resolved through the metadata server."""

REDACTED_FROM = "<REDACTED (FROM)>"
REDACTED_TO = "<REDACTED (TO)>"
