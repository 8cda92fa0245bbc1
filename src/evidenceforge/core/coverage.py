"""Sparse per-base coverage with run-length compression.

Coverage is stored as ``seqid -> {position: depth}``, so memory grows
with the number of covered bases rather than with genome size. When the
track is written, positions are folded into maximal runs of constant
depth: a position extends the current run only if it directly follows
it and has the same depth.

Example:
    >>> from evidenceforge.core.coverage import CoverageAccumulator
    >>> acc = CoverageAccumulator()
    >>> acc.add_block("chr1", 0, 10)
    >>> acc.add_block("chr1", 5, 10)
    >>> list(acc.compress())
    [CoverageRun(seqid='chr1', start=0, end=5, depth=1),
     CoverageRun(seqid='chr1', start=5, end=10, depth=2),
     CoverageRun(seqid='chr1', start=10, end=15, depth=1)]
"""

from __future__ import annotations

import logging
from collections import defaultdict
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Iterator

import numpy as np

from evidenceforge.io.bedgraph import BEDGRAPH_HEADER, CoverageRun, iter_bedgraph
from evidenceforge.io.bedgraph import write_bedgraph as write_bedgraph_file

if TYPE_CHECKING:
    from evidenceforge.io.bam import AlignmentBlock, AlignmentRecord

logger = logging.getLogger(__name__)


class CoverageAccumulator:
    """Accumulate per-base read depth for many references.

    Attributes:
        max_coverage: Depth reported for a position is capped at this
            value. None disables the cap.

    Example:
        >>> acc = CoverageAccumulator()
        >>> for record in source:
        ...     acc.add_record(record)
        >>> acc.write_bedgraph("coverage.bedgraph")
    """

    def __init__(self, max_coverage: int | None = None) -> None:
        self.max_coverage = max_coverage
        self._depth: dict[str, dict[int, int]] = {}

    @classmethod
    def from_bedgraph(cls, path: Path | str, max_coverage: int | None = None) -> CoverageAccumulator:
        """Load a bedGraph track back into per-base depths."""
        accumulator = cls(max_coverage)
        for _, run in iter_bedgraph(path):
            if run is not None:
                accumulator.add_run(run)
        return accumulator

    def _reference(self, seqid: str) -> dict[int, int]:
        depth = self._depth.get(seqid)
        if depth is None:
            depth = defaultdict(int)
            self._depth[seqid] = depth
        return depth

    # =========================================================================
    # Accumulation
    # =========================================================================

    def add_block(self, seqid: str, start: int, length: int, depth: int = 1) -> None:
        """Add ``depth`` to every position of ``[start, start + length)``."""
        if length <= 0 or depth == 0:
            return
        positions = self._reference(seqid)
        for pos in range(start, start + length):
            positions[pos] += depth

    def add_blocks(self, seqid: str, blocks: Iterable[AlignmentBlock]) -> None:
        """Add one read's matched blocks."""
        for block in blocks:
            self.add_block(seqid, block.reference_start, block.length)

    def add_record(self, record: AlignmentRecord, min_intron_length: int = 0) -> None:
        """Add a read, filling gaps too short to be introns.

        Args:
            record: Alignment record.
            min_intron_length: Gaps of at most this length are counted
                as covered sequence.
        """
        self.add_blocks(record.reference_name, record.blocks)
        for gap_start, gap_end in record.short_gaps(min_intron_length):
            self.add_block(record.reference_name, gap_start, gap_end - gap_start)

    def add_run(self, run: CoverageRun) -> None:
        """Add a run's depth to each of its positions."""
        self.add_block(run.seqid, run.start, run.end - run.start, run.depth)

    def merge(self, other: CoverageAccumulator) -> None:
        """Add all depths of another accumulator to this one."""
        for seqid, positions in other._depth.items():
            target = self._reference(seqid)
            for pos, depth in positions.items():
                target[pos] += depth

    # =========================================================================
    # Access
    # =========================================================================

    @property
    def references(self) -> list[str]:
        """Covered references in lexicographic order."""
        return sorted(self._depth)

    def __contains__(self, seqid: str) -> bool:
        return seqid in self._depth

    def __len__(self) -> int:
        """Number of covered positions over all references."""
        return sum(len(positions) for positions in self._depth.values())

    def depth_at(self, seqid: str, position: int) -> int:
        """Accumulated depth at one position (0 if uncovered)."""
        return self._depth.get(seqid, {}).get(position, 0)

    def mean_depth(self, seqid: str, start: int, end: int) -> float:
        """Mean depth over ``[start, end)``; uncovered positions count as 0."""
        if end <= start:
            return 0.0
        positions = self._depth.get(seqid, {})
        return sum(positions.get(pos, 0) for pos in range(start, end)) / (end - start)

    # =========================================================================
    # Compression
    # =========================================================================

    def compress_reference(self, seqid: str) -> list[CoverageRun]:
        """Fold one reference into maximal runs of constant depth.

        Args:
            seqid: Reference to compress.

        Returns:
            Runs in ascending start order. Empty if the reference has no
            coverage.
        """
        positions = self._depth.get(seqid)
        if not positions:
            return []

        pos = np.fromiter(sorted(positions), dtype=np.int64, count=len(positions))
        depth = np.fromiter((positions[p] for p in pos.tolist()), dtype=np.int64, count=len(pos))
        if self.max_coverage is not None:
            depth = np.minimum(depth, self.max_coverage)

        # a new run starts where positions are not adjacent or depth changes
        breaks = np.flatnonzero((np.diff(pos) != 1) | (np.diff(depth) != 0)) + 1
        starts = np.concatenate(([0], breaks))
        ends = np.concatenate((breaks, [len(pos)]))

        return [
            CoverageRun(seqid, int(pos[s]), int(pos[e - 1]) + 1, int(depth[s]))
            for s, e in zip(starts.tolist(), ends.tolist())
        ]

    def compress(self) -> Iterator[CoverageRun]:
        """Yield runs of all references, lexicographic seqid then start."""
        for seqid in self.references:
            yield from self.compress_reference(seqid)

    def write_bedgraph(
        self,
        path: Path | str,
        runs: Iterable[CoverageRun] | None = None,
        header: bool = True,
    ) -> int:
        """Write a bedGraph track.

        Args:
            path: Output path.
            runs: Runs to write; defaults to compress().
            header: Write the ``track type=bedgraph`` line.

        Returns:
            Number of runs written.
        """
        if runs is None:
            runs = self.compress()
        headers = [BEDGRAPH_HEADER] if header else []
        return write_bedgraph_file(path, runs, headers)
