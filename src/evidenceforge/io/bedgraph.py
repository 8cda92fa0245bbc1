"""bedGraph coverage track handling.

Coverage shards and consolidated coverage tracks share one layout: a
single ``track type=bedgraph`` header line followed by tab-separated
``seqid, start, end, depth`` rows with 0-based half-open coordinates.

Example:
    >>> from evidenceforge.io.bedgraph import read_bedgraph
    >>> header, runs = read_bedgraph("coverage.bedgraph")
    >>> for run in runs:
    ...     print(run.seqid, run.start, run.end, run.depth)
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable, Iterator, NamedTuple, TextIO

from evidenceforge.exceptions import ShardFormatError

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

BEDGRAPH_HEADER = "track type=bedgraph"
HEADER_PREFIXES = ("track", "browser", "#")


# =============================================================================
# Data Structures
# =============================================================================


class CoverageRun(NamedTuple):
    """A maximal interval of constant depth.

    Attributes:
        seqid: Chromosome/contig identifier.
        start: Start position (0-based).
        end: End position (0-based, exclusive).
        depth: Number of reads covering each base of the interval.
    """

    seqid: str
    start: int
    end: int
    depth: int

    @property
    def length(self) -> int:
        """Run length in base pairs."""
        return self.end - self.start

    def to_line(self) -> str:
        """Format as a bedGraph row (without newline)."""
        return f"{self.seqid}\t{self.start}\t{self.end}\t{self.depth}"


# =============================================================================
# Reading
# =============================================================================


def is_header_line(line: str) -> bool:
    """Whether a bedGraph line is a track/browser/comment line."""
    return line.startswith(HEADER_PREFIXES)


def parse_bedgraph_line(line: str, path: Path | str = "<string>", line_number: int = 0) -> CoverageRun:
    """Parse one bedGraph data row.

    Args:
        line: Row without trailing newline.
        path: Source file, for error messages.
        line_number: 1-based line number, for error messages.

    Returns:
        Parsed CoverageRun.

    Raises:
        ShardFormatError: If the row has fewer than 4 columns or
            non-integer coordinates or depth.
    """
    parts = line.split("\t")
    if len(parts) < 4:
        raise ShardFormatError(path, line_number, line, f"expected 4 columns, found {len(parts)}")

    try:
        start, end, depth = int(parts[1]), int(parts[2]), int(parts[3])
    except ValueError as e:
        raise ShardFormatError(path, line_number, line, "non-numeric field") from e

    if end <= start:
        raise ShardFormatError(path, line_number, line, "end must be greater than start")

    return CoverageRun(parts[0], start, end, depth)


def iter_bedgraph(path: Path | str) -> Iterator[tuple[str | None, CoverageRun | None]]:
    """Stream a bedGraph file.

    Yields:
        (header_line, None) for header lines and (None, run) for data rows.
        Empty lines are skipped.

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ShardFormatError: On the first malformed data row.
    """
    path = Path(path)
    with open(path) as f:
        for line_number, line in enumerate(f, start=1):
            line = line.rstrip("\n\r")
            if not line:
                continue
            if is_header_line(line):
                yield line, None
            else:
                yield None, parse_bedgraph_line(line, path, line_number)


def read_bedgraph(path: Path | str) -> tuple[list[str], list[CoverageRun]]:
    """Read a whole bedGraph file.

    Returns:
        Tuple of (header lines, runs in file order).
    """
    headers: list[str] = []
    runs: list[CoverageRun] = []
    for header, run in iter_bedgraph(path):
        if header is not None:
            headers.append(header)
        else:
            runs.append(run)
    return headers, runs


# =============================================================================
# Writing
# =============================================================================


def write_runs(handle: TextIO, runs: Iterable[CoverageRun]) -> int:
    """Write runs to an open handle.

    Returns:
        Number of rows written.
    """
    n = 0
    for run in runs:
        handle.write(run.to_line() + "\n")
        n += 1
    return n


def write_bedgraph(
    path: Path | str,
    runs: Iterable[CoverageRun],
    headers: Iterable[str] | None = None,
) -> int:
    """Write a bedGraph file.

    Args:
        path: Output path.
        runs: Runs in output order.
        headers: Header lines; defaults to ``track type=bedgraph``.

    Returns:
        Number of rows written.
    """
    headers = [BEDGRAPH_HEADER] if headers is None else list(headers)
    with open(path, "w") as f:
        for header in headers:
            f.write(header + "\n")
        n = write_runs(f, runs)

    logger.debug(f"Wrote {n} coverage runs to {path}")
    return n
