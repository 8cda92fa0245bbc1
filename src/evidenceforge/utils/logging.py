"""Logging for the evidenceforge command line and library.

Console output goes through rich; an optional log file receives every
record at DEBUG level, which is what cluster jobs keep after the console
is gone.

Example:
    >>> setup_logging(verbosity=2, log_file="extract.log")
"""

import logging
import time
from pathlib import Path
from typing import Any

from rich.logging import RichHandler

FILE_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

# -q, default, -v
_LEVELS = (logging.WARNING, logging.INFO, logging.DEBUG)


def setup_logging(
    verbosity: int = 1,
    log_file: Path | str | None = None,
    use_rich: bool = True,
) -> None:
    """Attach console (and optionally file) handlers to the package logger.

    Calling it again replaces the handlers instead of stacking them.

    Args:
        verbosity: 0 for warnings only, 1 for info, 2 or more for debug.
        log_file: Additional destination for a full debug log.
        use_rich: Format console records with rich.
    """
    level = _LEVELS[min(max(verbosity, 0), len(_LEVELS) - 1)]

    package_logger = logging.getLogger("evidenceforge")
    for old in list(package_logger.handlers):
        package_logger.removeHandler(old)
        old.close()
    package_logger.setLevel(logging.DEBUG if log_file is not None else level)

    if use_rich:
        console: logging.Handler = RichHandler(
            rich_tracebacks=True, show_time=False, show_path=False
        )
        console.setFormatter(logging.Formatter("%(message)s"))
    else:
        console = logging.StreamHandler()
        console.setFormatter(logging.Formatter(FILE_FORMAT))
    console.setLevel(level)
    package_logger.addHandler(console)

    if log_file is not None:
        to_file = logging.FileHandler(log_file)
        to_file.setFormatter(logging.Formatter(FILE_FORMAT))
        to_file.setLevel(logging.DEBUG)
        package_logger.addHandler(to_file)


class ProgressLogger:
    """Heartbeat for long record streams.

    Logs a running count each time another ``interval`` records have been
    seen, so the log of a multi-hour extraction shows it is advancing.

    Example:
        >>> progress = ProgressLogger(logger, interval=1_000_000, description="Reads")
        >>> for record in source:
        ...     extractor.add(record)
        ...     progress.update()
        >>> progress.finish()
    """

    def __init__(
        self,
        logger: logging.Logger,
        interval: int = 1_000_000,
        description: str = "Processed",
    ) -> None:
        self.logger = logger
        self.interval = interval
        self.description = description
        self.count = 0

    def update(self, n: int = 1) -> None:
        """Count ``n`` more records."""
        crossed = (self.count + n) // self.interval - self.count // self.interval
        self.count += n
        if crossed:
            self.logger.info(f"{self.description}: {self.count:,}")

    def finish(self) -> None:
        """Log the final count."""
        self.logger.info(f"{self.description}: {self.count:,} in total")


class Timer:
    """Log the wall time of a ``with`` block at DEBUG level.

    Example:
        >>> with Timer("Writing merged.bedgraph", logger):
        ...     write_runs(handle, runs)
    """

    def __init__(self, description: str, logger: logging.Logger) -> None:
        self.description = description
        self.logger = logger
        self.elapsed = 0.0
        self._started = 0.0

    def __enter__(self) -> "Timer":
        self._started = time.perf_counter()
        return self

    def __exit__(self, *args: Any) -> None:
        self.elapsed = time.perf_counter() - self._started
        self.logger.debug(f"{self.description} took {self.elapsed:.2f}s")
