import datetime
import logging
import threading
from collections.abc import Iterable

from .config import DaemonSettings, JobSpec
from .constants import APP_NAME
from .git_wrapper import GitRepo
from .mirror import Mirror
from .status import StatusRecord, StatusTracker, render_report

logger = logging.getLogger(APP_NAME)


class Supervisor:
    """Runs one independent mirror thread per configured job.

    The job list is fixed at construction. Mirrors never talk to each other;
    the supervisor only starts them, stops them, and collects their status.
    """

    def __init__(
        self,
        jobs: Iterable[JobSpec],
        settings: DaemonSettings,
        repo_factory: type[GitRepo] = GitRepo,
    ):
        self.jobs = tuple(jobs)
        self.settings = settings
        self.stop_event = threading.Event()
        self.trackers = {
            job.id: StatusTracker(job.id, job.source, job.destination)
            for job in self.jobs
        }
        self.mirrors = [
            Mirror(
                job,
                settings,
                self.trackers[job.id],
                stop=self.stop_event,
                repo_factory=repo_factory,
            )
            for job in self.jobs
        ]
        self._threads: list[threading.Thread] = []

    def start(self) -> None:
        """Starts a daemon thread for every mirror."""
        if self._threads:
            raise RuntimeError("Supervisor already started")
        for mirror in self.mirrors:
            thread = threading.Thread(
                target=mirror.run, name=f"mirror-{mirror.job.id}", daemon=True
            )
            thread.start()
            self._threads.append(thread)
        logger.info(f"Started {len(self._threads)} mirror job(s)")

    def stop(self) -> None:
        """Signals every mirror to stop and aborts running git processes."""
        self.stop_event.set()

    def join(self, timeout: float | None = None) -> bool:
        """Waits for the mirror threads to exit.

        Returns:
            bool: True if every thread finished within ``timeout``.
        """
        for thread in self._threads:
            thread.join(timeout)
        return not any(thread.is_alive() for thread in self._threads)

    def statuses(self) -> list[tuple[str, StatusRecord]]:
        """Returns each job's current status record, in configured order."""
        return [(job.id, self.trackers[job.id].snapshot()) for job in self.jobs]

    def report(self, now: datetime.datetime | None = None) -> tuple[int, str]:
        """Renders the health report (HTTP status code, plain-text body)."""
        now = now or datetime.datetime.now(datetime.timezone.utc)
        threshold = datetime.timedelta(seconds=self.settings.stale_after)
        return render_report(self.statuses(), now, threshold)
