import logging
import signal
import sys
import threading
from logging.handlers import RotatingFileHandler
from types import FrameType

from rich.console import Console
from werkzeug.serving import make_server

from .config import Config, DaemonSettings
from .constants import APP_NAME
from .errors import ConfigError
from .server import create_app
from .supervisor import Supervisor

logger = logging.getLogger(APP_NAME)
logger.setLevel(logging.INFO)

console = Console()
err_console = Console(stderr=True)

# Seconds to wait for mirror threads after a shutdown signal.
SHUTDOWN_GRACE = 10


def setup_logging(settings: DaemonSettings) -> None:
    """Configures the logging subsystem.

    Logs always go to stderr; a rotating log file is added when configured.

    Args:
        settings (DaemonSettings): Provides the optional log file and its size.
    """
    formatter = logging.Formatter(
        "[%(asctime)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"
    )

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    if settings.log_file:
        settings.log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            settings.log_file,
            maxBytes=settings.max_log_size,
            backupCount=5,
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)


def load_config() -> Config:
    """Loads the configuration, exiting the process if it is unusable."""
    try:
        return Config.load()
    except ConfigError as e:
        err_console.print(f"[bold red]FATAL:[/bold red] {e}")
        sys.exit(1)


def main() -> None:
    """Starts every mirror job and serves the status endpoint until signalled."""
    config = load_config()
    settings = config.daemon
    setup_logging(settings)

    supervisor = Supervisor(config.jobs, settings)
    app = create_app(supervisor, settings)
    try:
        server = make_server(settings.host, settings.port, app, threaded=True)
    except OSError as e:
        err_console.print(
            f"[bold red]FATAL:[/bold red] Cannot listen on "
            f"{settings.host}:{settings.port}: {e}"
        )
        sys.exit(1)

    shutdown = threading.Event()

    def handle_signal(signum: int, _frame: FrameType | None) -> None:
        logger.info(f"Received signal {signum}, shutting down.")
        shutdown.set()

    signal.signal(signal.SIGTERM, handle_signal)
    signal.signal(signal.SIGINT, handle_signal)

    supervisor.start()
    server_thread = threading.Thread(
        target=server.serve_forever, name="status-server", daemon=True
    )
    server_thread.start()
    console.print(
        f"[bold green]{APP_NAME}[/bold green] mirroring {len(config.jobs)} "
        f"repo(s), status on http://{settings.host}:{settings.port}/status"
    )

    while not shutdown.wait(1.0):
        pass

    supervisor.stop()
    server.shutdown()
    if not supervisor.join(SHUTDOWN_GRACE):
        logger.warning("Some mirror jobs did not stop in time.")


if __name__ == "__main__":
    main()
