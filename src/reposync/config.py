import json
import logging
import os
import re
import tomllib
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from . import secrets
from .constants import (
    APP_NAME,
    CLONE_RETRY_DELAY,
    COMMAND_TIMEOUT,
    CONFIG_FILE,
    DEFAULT_BRANCH,
    DEFAULT_HOST,
    DEFAULT_PORT,
    REMOTE_RETRY_DELAY,
    STALE_AFTER,
    SYNC_INTERVAL,
)
from .errors import ConfigError

logger = logging.getLogger(APP_NAME)

TIME_KEYS = (
    "sync_interval",
    "stale_after",
    "command_timeout",
    "clone_retry_delay",
    "remote_retry_delay",
)
SIZE_KEYS = ("max_log_size",)

# JSON job keys, matched case-insensitively.
JOB_FIELDS = {
    "id": "id",
    "from": "source",
    "to": "destination",
    "httpcookie": "http_cookie",
    "branch": "branch",
}


def parse_size(value: int | str) -> int:
    """Converts human-readable size strings (e.g., '100MB') to bytes."""
    if isinstance(value, int):
        return value
    match = re.match(r"^(\d+(?:\.\d+)?)\s*([kmg]b?)$", str(value).strip().lower())
    if not match:
        raise ValueError(f"Invalid size format '{value}'")
    num, unit = float(match.group(1)), match.group(2)
    multiplier = {
        "k": 1024,
        "kb": 1024,
        "m": 1024**2,
        "mb": 1024**2,
        "g": 1024**3,
        "gb": 1024**3,
    }
    return int(num * multiplier[unit])


def parse_time(value: int | float | str) -> float:
    """Converts human-readable time strings (e.g., '1m', '15min') to seconds."""
    if isinstance(value, (int, float)):
        return float(value)
    match = re.match(
        r"^(\d+(?:\.\d+)?)\s*(s|sec|m|min|h|hr)?s?$", str(value).strip().lower()
    )
    if not match:
        raise ValueError(f"Invalid time format '{value}'")
    num, unit = float(match.group(1)), match.group(2) or "s"
    multiplier = {"s": 1, "sec": 1, "m": 60, "min": 60, "h": 3600, "hr": 3600}
    return num * multiplier[unit]


@dataclass(frozen=True)
class JobSpec:
    """One configured source to destination mirroring task.

    Attributes:
        id (str): Unique job identifier, used for directories and log prefixes.
        source (str): The repository to clone and pull from.
        destination (str): The remote every branch and tag is pushed to.
        http_cookie (str | None): Optional cookie blob handed to git.
        branch (str): The branch whose head value is tracked.
    """

    id: str
    source: str
    destination: str
    http_cookie: str | None = field(default=None, repr=False)
    branch: str = DEFAULT_BRANCH

    def workdir(self, root: Path) -> Path:
        """Returns the job's private working directory below ``root``."""
        return root / f"repo-{self.id}"

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> "JobSpec":
        """Builds a job from a JSON or TOML table.

        Keys follow the historical job format (``ID``, ``From``, ``To``,
        ``HTTPCookie``) and are matched without regard to case.

        Raises:
            ConfigError: If the entry is not a table or has unknown keys.
        """
        if not isinstance(data, Mapping):
            raise ConfigError(f"Job entry must be an object, got {data!r}")

        kwargs: dict[str, Any] = {}
        unknown = []
        for key, value in data.items():
            name = JOB_FIELDS.get(str(key).lower())
            if name is None:
                unknown.append(str(key))
                continue
            kwargs[name] = "" if value is None else str(value)
        if unknown:
            raise ConfigError(f"Unknown job keys: {', '.join(sorted(unknown))}")

        kwargs.setdefault("id", "")
        kwargs.setdefault("source", "")
        kwargs.setdefault("destination", "")
        if not kwargs.get("http_cookie"):
            kwargs["http_cookie"] = None
        if not kwargs.get("branch"):
            kwargs.pop("branch", None)
        return cls(**kwargs)


@dataclass
class DaemonSettings:
    """Daemon operational settings.

    Attributes:
        port (int): Port of the status endpoint.
        host (str): Interface the status endpoint binds to.
        work_dir (Path): Parent directory of every job's working directory.
        sync_interval (float): Seconds between sync iterations of one job.
        stale_after (float): Max age of a job's last success before it is unhealthy.
        command_timeout (float): Upper bound for a single git invocation.
        clone_retry_delay (float): Pause between failed clone attempts.
        remote_retry_delay (float): Pause between failed remote registrations.
        home_url (str | None): Target of the ``/`` redirect, if any.
        log_file (Path | None): Optional rotating log file.
        max_log_size (int): Max bytes for the log file before rotation.
    """

    port: int = DEFAULT_PORT
    host: str = DEFAULT_HOST
    work_dir: Path = field(default_factory=Path.cwd)
    sync_interval: float = SYNC_INTERVAL
    stale_after: float = STALE_AFTER
    command_timeout: float = COMMAND_TIMEOUT
    clone_retry_delay: float = CLONE_RETRY_DELAY
    remote_retry_delay: float = REMOTE_RETRY_DELAY
    home_url: str | None = None
    log_file: Path | None = None
    max_log_size: int = 5 * 1024 * 1024


@dataclass
class Config:
    """Global configuration aggregator.

    Attributes:
        daemon (DaemonSettings): Daemon behavior settings.
        jobs (tuple[JobSpec, ...]): The validated, resolved job list.
    """

    daemon: DaemonSettings = field(default_factory=DaemonSettings)
    jobs: tuple[JobSpec, ...] = ()

    @classmethod
    def load(
        cls,
        env: Mapping[str, str] | None = None,
        path: Path | None = None,
        resolve: Callable[[str], str] = secrets.resolve,
    ) -> "Config":
        """Loads configuration from defaults, the TOML file, and the environment.

        Args:
            env (Mapping[str, str] | None): Environment to read. Defaults to
                ``os.environ``.
            path (Path | None): TOML file to read. Defaults to ``CONFIG_FILE``.
            resolve (Callable[[str], str]): Secret resolver applied to the
                job list and to every job endpoint.

        Returns:
            Config: The validated configuration.

        Raises:
            ConfigError: If no usable job list can be built.
        """
        env = os.environ if env is None else env
        path = CONFIG_FILE if path is None else path

        instance = cls()
        raw_jobs: list[Any] = []

        if path.exists():
            raw_jobs = instance._merge_from_file(path)

        instance._merge_from_env(env)

        if spec := env.get("REPOS"):
            spec = resolve(spec)
            try:
                parsed = json.loads(spec)
            except json.JSONDecodeError as e:
                raise ConfigError(f"Could not parse REPOS: {e}") from e
            if not isinstance(parsed, list):
                raise ConfigError("REPOS must be a JSON array of jobs")
            raw_jobs = parsed
        elif env.get("FROM_REPO") and env.get("TO_REPO"):
            raw_jobs = [
                {"ID": "default", "From": env["FROM_REPO"], "To": env["TO_REPO"]}
            ]

        if not raw_jobs:
            raise ConfigError("REPOS environment variable must be set.")

        instance.jobs = build_jobs(raw_jobs, resolve)
        return instance

    def _merge_from_file(self, path: Path) -> list[Any]:
        """Parses the TOML file, merges ``[daemon]`` and returns raw ``[[jobs]]``."""
        try:
            with open(path, "rb") as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise ConfigError(f"Config syntax error in {path}: {e}") from e
        except OSError as e:
            logger.warning(f"Failed to load config from {path}: {e}")
            return []

        if "daemon" in data:
            self.daemon = self._update_dataclass("daemon", self.daemon, data["daemon"])

        jobs = data.get("jobs", [])
        if not isinstance(jobs, list):
            raise ConfigError(f"[jobs] in {path} must be an array of tables")
        return jobs

    def _merge_from_env(self, env: Mapping[str, str]) -> None:
        overrides = {
            "port": env.get("PORT"),
            "work_dir": env.get("REPOSYNC_WORK_DIR"),
            "sync_interval": env.get("REPOSYNC_SYNC_INTERVAL"),
            "stale_after": env.get("REPOSYNC_STALE_AFTER"),
        }
        overrides = {k: v for k, v in overrides.items() if v}
        if overrides:
            self.daemon = self._update_dataclass("environment", self.daemon, overrides)

    @staticmethod
    def _update_dataclass(section_name: str, instance: Any, updates: dict) -> Any:
        """Updates a dataclass, warning on invalid keys and parsing human-readable formats."""
        valid_keys = instance.__dataclass_fields__.keys()
        filtered_updates = {}

        invalid_keys = set(updates.keys()) - set(valid_keys)
        if invalid_keys:
            logger.warning(
                f"Unknown config keys in [{section_name}]: {', '.join(sorted(invalid_keys))}. Ignoring."
            )

        for k, v in updates.items():
            if k not in valid_keys:
                continue

            try:
                if k in TIME_KEYS:
                    seconds = parse_time(v)
                    if seconds <= 0:
                        raise ValueError(f"Duration must be positive, got '{v}'")
                    filtered_updates[k] = seconds
                elif k in SIZE_KEYS:
                    filtered_updates[k] = parse_size(v)
                elif k == "port":
                    filtered_updates[k] = int(v)
                elif k in ("work_dir", "log_file"):
                    filtered_updates[k] = Path(v).expanduser()
                else:
                    filtered_updates[k] = v
            except ValueError as e:
                logger.warning(
                    f"Config error in [{section_name}].{k}: {e}. Falling back to default."
                )

        return replace(instance, **filtered_updates)


def build_jobs(
    raw_jobs: Iterable[Any], resolve: Callable[[str], str] = secrets.resolve
) -> tuple[JobSpec, ...]:
    """Validates raw job entries and resolves their endpoints.

    Args:
        raw_jobs (Iterable[Any]): Job tables in configured order.
        resolve (Callable[[str], str]): Secret resolver for the endpoints.

    Returns:
        tuple[JobSpec, ...]: The jobs, in configured order.

    Raises:
        ConfigError: On a missing or duplicate ID, or an empty endpoint.
    """
    jobs: list[JobSpec] = []
    seen: set[str] = set()

    for raw in raw_jobs:
        job = JobSpec.from_mapping(raw)
        if not job.id:
            raise ConfigError(f"Missing ID for job {job!r}")
        if job.id in seen:
            raise ConfigError(f"Duplicate job ID {job.id!r}")
        if not job.source or not job.destination:
            raise ConfigError(f"Empty from or to for job {job.id!r}")
        if "/" in job.id or "\\" in job.id or job.id in (".", ".."):
            raise ConfigError(f"Job ID {job.id!r} cannot be used as a directory name")
        seen.add(job.id)

        job = replace(
            job,
            source=resolve(job.source),
            destination=resolve(job.destination),
        )
        if not job.source or not job.destination:
            raise ConfigError(f"Empty from or to for job {job.id!r} after resolution")
        jobs.append(job)

    return tuple(jobs)
