"""reposync: continuously mirror git repositories to destination remotes.

This package provides the mirror engine, its supporting components (change
detection, rate limiting, status tracking), the job supervisor, and the
plain-text status endpoint of the reposync daemon.
"""

from . import (
    cli,
    config,
    constants,
    daemon,
    detector,
    errors,
    git_wrapper,
    limiter,
    mirror,
    secrets,
    server,
    status,
    supervisor,
)

__all__ = [
    "cli",
    "config",
    "constants",
    "daemon",
    "detector",
    "errors",
    "git_wrapper",
    "limiter",
    "mirror",
    "secrets",
    "server",
    "status",
    "supervisor",
]
