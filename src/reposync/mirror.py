import logging
import os
import shutil
import threading
from pathlib import Path

from .config import DaemonSettings, JobSpec
from .constants import COOKIE_FILE_NAME, DEST_REMOTE
from .detector import SyncSnapshot, detect
from .git_wrapper import GitError, GitRepo
from .limiter import RateLimiter
from .status import StatusTracker


class Mirror:
    """Mirrors one job's source repository to its destination.

    The lifecycle is strictly ordered: clone (retried every
    ``clone_retry_delay`` seconds), optional cookie setup (best effort),
    destination remote registration (retried every ``remote_retry_delay``
    seconds), then an unbounded loop of rate-limited sync iterations.

    The snapshot of the last pushed head and tags only advances after an
    iteration fully succeeds, so a failed push is retried on the next
    iteration instead of being skipped.

    Attributes:
        job (JobSpec): The job being mirrored.
        workdir (Path): The job's private checkout.
        snapshot (SyncSnapshot): Head and tags as of the last successful sync.
        repo (GitRepo | None): The checkout, once bootstrap has cloned it.
    """

    def __init__(
        self,
        job: JobSpec,
        settings: DaemonSettings,
        tracker: StatusTracker,
        stop: threading.Event | None = None,
        repo_factory: type[GitRepo] = GitRepo,
        limiter: RateLimiter | None = None,
    ):
        self.job = job
        self.settings = settings
        self.tracker = tracker
        self.stop = stop or threading.Event()
        self.repo_factory = repo_factory
        self.limiter = limiter or RateLimiter(settings.sync_interval)
        self.workdir: Path = job.workdir(settings.work_dir)
        self.snapshot = SyncSnapshot()
        self.repo: GitRepo | None = None

    @property
    def cookie_file(self) -> Path:
        return self.workdir / ".git" / COOKIE_FILE_NAME

    def run(self) -> None:
        """Bootstraps the checkout, then syncs until the stop event is set.

        An unexpected error restarts the job from a fresh clone after
        ``clone_retry_delay`` seconds.
        """
        while not self.stop.is_set():
            try:
                if self.bootstrap():
                    self.sync_forever()
            except Exception as e:
                self.tracker.log(
                    f"Unexpected {type(e).__name__}, restarting job", level=logging.ERROR
                )
                self.tracker.fail("Mirror crashed", error=e)
                self.repo = None
                self.stop.wait(self.settings.clone_retry_delay)
        self.tracker.log("Stopped")

    # --- Bootstrap ---

    def bootstrap(self) -> bool:
        """Clones the source, installs credentials, and adds the destination remote.

        Returns:
            bool: True once the job is ready to sync, False if stopped first.
        """
        self.tracker.ok("Cloning")
        repo = self._clone()
        if repo is None:
            return False

        if self.job.http_cookie:
            self._setup_credentials(repo)

        if not self._add_remote(repo):
            return False

        self.repo = repo
        return True

    def _clone(self) -> GitRepo | None:
        if self.workdir.exists():
            self.tracker.log("Removing leftover working directory")
            shutil.rmtree(self.workdir, ignore_errors=True)

        while not self.stop.is_set():
            try:
                self.workdir.parent.mkdir(parents=True, exist_ok=True)
                repo, out = self.repo_factory.clone(
                    self.job.source,
                    self.workdir,
                    timeout=self.settings.command_timeout,
                    stop=self.stop,
                )
                self.tracker.ok("Cloned", output=out)
                return repo
            except (GitError, OSError, ValueError) as e:
                self.tracker.fail("Cloning", error=e, output=getattr(e, "output", None))

            shutil.rmtree(self.workdir, ignore_errors=True)
            self.stop.wait(self.settings.clone_retry_delay)
        return None

    def _setup_credentials(self, repo: GitRepo) -> None:
        """Writes the cookie file (owner read/write only) and points git at it.

        Failures are recorded but never block the bootstrap.
        """
        path = self.cookie_file
        try:
            fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
            with os.fdopen(fd, "w") as f:
                f.write(self.job.http_cookie or "")
            os.chmod(path, 0o600)
        except OSError as e:
            self.tracker.fail("Writing HTTP cookie file", error=e)
            return

        try:
            out = repo.set_config("http.cookiefile", str(path))
        except GitError as e:
            self.tracker.fail("Set cookie file", error=e, output=e.output)
        else:
            self.tracker.ok("Set http.cookiefile", output=out)

    def _add_remote(self, repo: GitRepo) -> bool:
        while not self.stop.is_set():
            self.tracker.log("Setting remote")
            try:
                out = repo.add_remote(DEST_REMOTE, self.job.destination)
                self.tracker.ok("Added remote", output=out)
                return True
            except GitError as e:
                self.tracker.fail("Adding remote", error=e, output=e.output)
            self.stop.wait(self.settings.remote_retry_delay)
        return False

    # --- Sync ---

    def sync_forever(self) -> None:
        """Runs one sync iteration per rate limiter token until stopped."""
        while self.limiter.wait(self.stop):
            try:
                self.sync_once()
            except Exception as e:
                self.tracker.log(f"LOOP ERROR: {type(e).__name__}", level=logging.ERROR)
                self.tracker.fail("Sync", error=e)

    def sync_once(self) -> bool:
        """Pulls from the source and pushes whatever changed to the destination.

        Returns:
            bool: True if the iteration succeeded and the snapshot advanced.
        """
        repo = self.repo
        if repo is None:
            raise RuntimeError(f"Job {self.job.id} has not been bootstrapped")

        self.tracker.log("Pulling")
        try:
            out = repo.pull()
        except GitError as e:
            self.tracker.fail("Pull", error=e, output=e.output)
            return False
        self.tracker.log(f"Pulled: {out.strip()}", level=logging.DEBUG)

        try:
            head = repo.read_head(self.job.branch)
        except OSError as e:
            self.tracker.fail("Read HEAD", error=e)
            return False

        try:
            tags = repo.tags()
        except GitError as e:
            self.tracker.fail("List tags", error=e, output=e.output)
            return False

        plan = detect(self.snapshot, head, tags)

        if plan.push_branches:
            self.tracker.log("Pushing")
            try:
                repo.push(DEST_REMOTE)
            except GitError as e:
                self.tracker.fail("Push", error=e, output=e.output)
                return False

        if plan.push_tags:
            self.tracker.log("Pushing tags")
            try:
                repo.push(DEST_REMOTE, tags=True)
            except GitError as e:
                self.tracker.fail("Push tags", error=e, output=e.output)
                return False

        self.tracker.ok("Synced" if plan.any else "Synced (no changes)")
        self.snapshot = SyncSnapshot(head=head, tags=tags)
        return True
