"""Shared helpers: logging setup, progress and timing.

Example:
    >>> from evidenceforge.utils.logging import setup_logging
    >>> setup_logging(verbosity=2)
"""

from evidenceforge.utils.logging import ProgressLogger, Timer, setup_logging

__all__ = [
    "ProgressLogger",
    "Timer",
    "setup_logging",
]
