import argparse
import sys

from rich.console import Console
from rich.table import Table

from . import daemon
from .config import Config
from .constants import APP_NAME
from .errors import ConfigError
from .status import StatusTracker

console = Console()


def check_config() -> None:
    """Validates the configuration and prints the resulting jobs.

    Endpoints are shown redacted, exactly as they would appear in logs.
    """
    try:
        conf = Config.load()
    except ConfigError as e:
        console.print(f"[bold red]Config Error:[/bold red] {e}")
        sys.exit(1)

    settings = conf.daemon
    table = Table(show_header=True, header_style="bold magenta")
    table.add_column("Job", style="cyan")
    table.add_column("From")
    table.add_column("To")
    table.add_column("Branch")
    table.add_column("Cookie")
    table.add_column("Work Dir", style="dim")

    for job in conf.jobs:
        tracker = StatusTracker(job.id, job.source, job.destination)
        table.add_row(
            job.id,
            tracker.redact(job.source),
            tracker.redact(job.destination),
            job.branch,
            "yes" if job.http_cookie else "no",
            str(job.workdir(settings.work_dir)),
        )

    console.print(table)
    console.print(
        f"Sync every [bold]{settings.sync_interval:g}s[/bold], "
        f"stale after [bold]{settings.stale_after:g}s[/bold], "
        f"status on port [bold]{settings.port}[/bold]."
    )


def main() -> None:
    """Main entry point for the reposync CLI."""
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Continuously mirror git repositories to other remotes.",
    )
    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("run", help="Start mirroring and serve /status (default)")
    subparsers.add_parser("check", help="Validate configuration and list jobs")

    args = parser.parse_args()

    if args.command == "check":
        check_config()
        return

    daemon.main()


if __name__ == "__main__":
    main()
