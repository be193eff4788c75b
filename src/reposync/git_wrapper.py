import logging
import subprocess
import threading
import time
from pathlib import Path

from .constants import APP_NAME, COMMAND_TIMEOUT

logger = logging.getLogger(APP_NAME)

# How often a running git process checks the stop event.
POLL_INTERVAL = 0.5


class GitError(RuntimeError):
    """A git invocation failed, timed out, or was cancelled.

    Attributes:
        output (str): The combined stdout/stderr captured before the failure.
    """

    def __init__(self, message: str, output: str = ""):
        super().__init__(message)
        self.output = output


def run_git(
    args: list[str],
    cwd: Path | None = None,
    timeout: float = COMMAND_TIMEOUT,
    stop: threading.Event | None = None,
) -> str:
    """Executes a git command and returns its combined output.

    The process is killed when ``timeout`` elapses or ``stop`` is set.

    Args:
        args (list[str]): Arguments to pass to the git command.
        cwd (Path | None, optional): Working directory. Defaults to None.
        timeout (float, optional): Seconds before the process is killed.
        stop (threading.Event | None, optional): Cancellation signal.

    Returns:
        str: The combined stdout and stderr of the command.

    Raises:
        GitError: On a non-zero exit code, timeout, cancellation, or if git
                  cannot be started.
    """
    try:
        proc = subprocess.Popen(
            ["git", *args],
            cwd=cwd,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            text=True,
            errors="replace",
        )
    except OSError as e:
        raise GitError(f"Could not run git {args[0]}: {e}") from e

    deadline = time.monotonic() + timeout
    while True:
        remaining = deadline - time.monotonic()
        try:
            output, _ = proc.communicate(timeout=max(0.0, min(POLL_INTERVAL, remaining)))
            break
        except subprocess.TimeoutExpired:
            if stop is not None and stop.is_set():
                reason = "cancelled"
            elif time.monotonic() >= deadline:
                reason = f"timed out after {timeout:g}s"
            else:
                continue
            proc.kill()
            output, _ = proc.communicate()
            raise GitError(f"git {args[0]} {reason}", output or "") from None

    if proc.returncode != 0:
        raise GitError(f"git {args[0]} exited with status {proc.returncode}", output)
    return output


class GitRepo:
    """A wrapper around the Git command-line interface for one mirror checkout.

    Every method maps onto a single git invocation, except ``read_head`` which
    reads the branch reference straight from the repository metadata.

    Attributes:
        path (Path): The file system path to the repository root.
        timeout (float): Upper bound for each git invocation.
        stop (threading.Event | None): Aborts running invocations when set.
    """

    def __init__(
        self,
        path: Path,
        timeout: float = COMMAND_TIMEOUT,
        stop: threading.Event | None = None,
    ):
        """Initializes the GitRepo instance.

        Args:
            path (Path): The path to the repository root directory.
            timeout (float, optional): Per-command timeout in seconds.
            stop (threading.Event | None, optional): Cancellation signal.

        Raises:
            ValueError: If the specified path does not contain a .git directory.
        """
        self.path = path
        self.timeout = timeout
        self.stop = stop
        if not (self.path / ".git").exists():
            raise ValueError(f"Not a git repository: {self.path}")

    @classmethod
    def clone(
        cls,
        source: str,
        path: Path,
        timeout: float = COMMAND_TIMEOUT,
        stop: threading.Event | None = None,
    ) -> tuple["GitRepo", str]:
        """Clones ``source`` into ``path``.

        Returns:
            tuple[GitRepo, str]: The new repository and the clone output.
        """
        out = run_git(["clone", source, str(path)], timeout=timeout, stop=stop)
        return cls(path, timeout=timeout, stop=stop), out

    def _run(self, args: list[str]) -> str:
        return run_git(args, cwd=self.path, timeout=self.timeout, stop=self.stop)

    def pull(self) -> str:
        """Fetches origin and merges it into the checked-out branch."""
        return self._run(["pull"])

    def add_remote(self, name: str, url: str) -> str:
        """Registers ``url`` as remote ``name``.

        An existing remote with the same URL counts as success, so a checkout
        left behind by an earlier run can be reused.
        """
        try:
            return self._run(["remote", "add", name, url])
        except GitError:
            try:
                current = self._run(["remote", "get-url", name]).strip()
            except GitError:
                current = None
            if current != url:
                raise
            logger.debug(f"Remote {name} already present in {self.path.name}")
            return ""

    def set_config(self, key: str, value: str) -> str:
        """Sets a repository-local git configuration value."""
        return self._run(["config", key, value])

    def tags(self) -> bytes:
        """Returns the raw ``git tag -l`` listing, used as the tag-set snapshot."""
        return self._run(["tag", "-l"]).encode()

    def push(self, remote: str, tags: bool = False) -> str:
        """Pushes all branches, or all tags, to ``remote``.

        Args:
            remote (str): The remote name.
            tags (bool, optional): Push tags instead of branches. Defaults to False.
        """
        return self._run(["push", "--tags" if tags else "--all", remote])

    def read_head(self, branch: str) -> bytes:
        """Reads the branch reference value from the repository metadata.

        This avoids spawning ``git rev-parse`` on every iteration. When the
        loose reference is missing the value is looked up in ``packed-refs``.

        Args:
            branch (str): The branch name.

        Returns:
            bytes: The raw reference value.

        Raises:
            OSError: If the reference cannot be read.
        """
        ref = f"refs/heads/{branch}"
        git_dir = self.path / ".git"
        try:
            return (git_dir / ref).read_bytes()
        except FileNotFoundError:
            packed = git_dir / "packed-refs"
            if packed.exists():
                for line in packed.read_bytes().splitlines():
                    if line.endswith(b" " + ref.encode()):
                        return line.split(b" ", 1)[0] + b"\n"
            raise
