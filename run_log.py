"""Run log written to a timestamped file and mirrored to the console."""

from datetime import datetime
from pathlib import Path
from typing import Optional

from rich.console import Console

INFO = "INFO"
WARN = "WARN"
ERROR = "ERROR"
SIMULATE = "SIMULATE"

LEVEL_STYLES = {
    INFO: "",
    WARN: "yellow",
    ERROR: "bold red",
    SIMULATE: "bold cyan",
}


class RunLogger:
    """Append-only log for a single run.

    The file name carries the run's start time, so each run gets its own
    file in ``log_dir``. Every line is also printed to the console, colored
    by level.
    """

    def __init__(
        self,
        log_dir: Path,
        console: Optional[Console] = None,
        started: Optional[datetime] = None,
    ):
        self.started = started or datetime.now()
        self.console = console or Console()
        self.log_dir = Path(log_dir)
        self.path = self.log_dir / f"GroupAdd_{self.started:%Y%m%d_%H%M%S}.log"

        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
        except OSError:
            # Writes below fail soft as well
            pass

    def log(self, message: str, level: str = INFO) -> None:
        """Write one ``<timestamp> [<level>] <message>`` line to file and console."""
        line = f"{datetime.now():%Y-%m-%d %H:%M:%S} [{level}] {message}"

        try:
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(line + "\n")
        except OSError:
            pass

        try:
            self.console.print(line, style=LEVEL_STYLES.get(level, ""), markup=False, highlight=False)
        except Exception:
            pass

    def info(self, message: str) -> None:
        self.log(message, INFO)

    def warn(self, message: str) -> None:
        self.log(message, WARN)

    def error(self, message: str) -> None:
        self.log(message, ERROR)

    def simulate(self, message: str) -> None:
        self.log(message, SIMULATE)
