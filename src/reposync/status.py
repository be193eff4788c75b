import datetime
import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass

from .constants import APP_NAME, REDACTED_FROM, REDACTED_TO

logger = logging.getLogger(APP_NAME)

HTTP_OK = 200
HTTP_UNHEALTHY = 500
TIME_FORMAT = "%Y-%m-%d %H:%M:%S %Z"


def _now() -> datetime.datetime:
    return datetime.datetime.now(datetime.timezone.utc)


@dataclass(frozen=True)
class StatusRecord:
    """An immutable view of a job's latest outcome.

    Attributes:
        ok (bool): Whether the last recorded step succeeded.
        stage (str): The step the record refers to (e.g. 'Pull').
        message (str): Redacted, human-readable summary of the record.
        updated_at (datetime.datetime): When the record was written.
        last_ok (datetime.datetime): When the job last recorded a success.
        output (str | None): Redacted git output, if any.
        error (str | None): Redacted error description, if any.
    """

    ok: bool
    stage: str
    message: str
    updated_at: datetime.datetime
    last_ok: datetime.datetime
    output: str | None = None
    error: str | None = None


def compose_message(stage: str, output: str | None, error: str | None) -> str:
    """Joins the structured status fields into one multi-line message."""
    parts = [stage]
    if error:
        parts.append(error.rstrip())
    if output and output.strip():
        parts.append(output.rstrip())
    return "\n".join(parts)


class StatusTracker:
    """Thread-safe status of one job, written by its mirror and read by the server.

    Every string passed in is redacted before it is stored or logged: literal
    occurrences of the job's source and destination are replaced by fixed
    placeholders, since repository URLs often embed access tokens.

    Attributes:
        job_id (str): The job identifier used as log prefix.
    """

    def __init__(
        self,
        job_id: str,
        source: str,
        destination: str,
        clock: Callable[[], datetime.datetime] = _now,
    ):
        self.job_id = job_id
        self._clock = clock
        self._lock = threading.Lock()
        # Longest literal first, so a source nested in the destination (or the
        # other way round) cannot leave a fragment behind.
        pairs = [(source, REDACTED_FROM), (destination, REDACTED_TO)]
        self._secrets = sorted(
            [pair for pair in pairs if pair[0]],
            key=lambda pair: len(pair[0]),
            reverse=True,
        )
        started = clock()
        self._record = StatusRecord(
            ok=True,
            stage="Starting",
            message="Starting",
            updated_at=started,
            last_ok=started,
        )

    def redact(self, text: str) -> str:
        """Replaces the job's source and destination literals with placeholders."""
        for secret, placeholder in self._secrets:
            text = text.replace(secret, placeholder)
        return text

    def log(self, message: str, level: int = logging.INFO) -> None:
        """Logs a redacted progress message without changing the status."""
        logger.log(level, self.redact(f"[{self.job_id}] {message}"))

    def record(
        self,
        ok: bool,
        stage: str,
        output: str | bytes | None = None,
        error: BaseException | str | None = None,
    ) -> StatusRecord:
        """Stores a new status for the job and logs it.

        Args:
            ok (bool): Whether the step succeeded.
            stage (str): Name of the step.
            output (str | bytes | None, optional): Git output to attach.
            error (BaseException | str | None, optional): Failure to attach.

        Returns:
            StatusRecord: The stored record.
        """
        if isinstance(output, bytes):
            output = output.decode(errors="replace")
        output = self.redact(output) if output else None
        error_text = self.redact(str(error)) if error is not None else None
        message = self.redact(compose_message(stage, output, error_text))

        with self._lock:
            now = self._clock()
            self._record = StatusRecord(
                ok=ok,
                stage=self.redact(stage),
                message=message,
                updated_at=now,
                last_ok=now if ok else self._record.last_ok,
                output=output,
                error=error_text,
            )
            record = self._record

        if ok:
            logger.info(f"[{self.job_id}] OK: {message}")
        else:
            logger.warning(f"[{self.job_id}] FAIL: {message}")
        return record

    def ok(self, stage: str, output: str | bytes | None = None) -> StatusRecord:
        return self.record(True, stage, output=output)

    def fail(
        self,
        stage: str,
        error: BaseException | str | None = None,
        output: str | bytes | None = None,
    ) -> StatusRecord:
        return self.record(False, stage, output=output, error=error)

    def snapshot(self) -> StatusRecord:
        """Returns the current record."""
        with self._lock:
            return self._record


def is_stale(
    record: StatusRecord, now: datetime.datetime, threshold: datetime.timedelta
) -> bool:
    """True if the job has not succeeded within ``threshold`` of ``now``."""
    return now - record.last_ok > threshold


def render_report(
    entries: Iterable[tuple[str, StatusRecord]],
    now: datetime.datetime,
    threshold: datetime.timedelta,
) -> tuple[int, str]:
    """Renders the plain-text status report for every job.

    Args:
        entries (Iterable[tuple[str, StatusRecord]]): (job id, record) pairs in
            configured order.
        now (datetime.datetime): Reference time for the staleness check.
        threshold (datetime.timedelta): Max age of a job's last success.

    Returns:
        tuple[int, str]: The HTTP status code and the report body.
    """
    entries = list(entries)
    alerts = []
    for job_id, record in entries:
        if is_stale(record, now, threshold):
            alerts.append(f'Repo "{job_id}" possibly not fresh')
        if not record.ok:
            alerts.append(f'Repo "{job_id}" failing')

    lines = list(alerts)
    for job_id, record in entries:
        lines.extend(
            [
                f"---- repo {job_id} ----",
                f"OK now?    {record.ok}",
                f"Last OK:   {record.last_ok.strftime(TIME_FORMAT).strip()}",
                f"Last try:  {record.updated_at.strftime(TIME_FORMAT).strip()}",
                record.message,
            ]
        )

    code = HTTP_UNHEALTHY if alerts else HTTP_OK
    return code, "\n".join(lines) + "\n"
