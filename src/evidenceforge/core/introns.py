"""Intron (splice junction) accumulation.

Every distinct junction ``(seqid, start, end, strand)`` maps to the sum
of its supporting reads. Adding is commutative, so shards can be folded
in any order and still produce the same table.

Records are always emitted in one fixed order: seqid (lexicographic),
then start, end and strand.

Example:
    >>> from evidenceforge.core.introns import IntronAccumulator
    >>> acc = IntronAccumulator()
    >>> acc.add("chr1", 101, 201, "+", 3)
    >>> acc.add("chr1", 101, 201, "+", 3)
    >>> [r.count for r in acc.records()]
    [6]
"""

from __future__ import annotations

import logging
from collections import Counter, defaultdict
from pathlib import Path
from typing import Iterator

import attrs
import numpy as np

from evidenceforge.io.gff import IntronKey, IntronRecord, iter_intron_file, write_intron_file

logger = logging.getLogger(__name__)


# =============================================================================
# Length Distribution
# =============================================================================


@attrs.define(slots=True)
class LengthDistribution:
    """Histogram of intron lengths.

    Attributes:
        counts: Number of distinct introns per length.
    """

    counts: dict[int, int] = attrs.Factory(dict)

    @property
    def total(self) -> int:
        """Number of introns in the histogram."""
        return sum(self.counts.values())

    @property
    def min_length(self) -> int | None:
        """Shortest intron length, or None if empty."""
        return min(self.counts) if self.counts else None

    @property
    def max_length(self) -> int | None:
        """Longest intron length, or None if empty."""
        return max(self.counts) if self.counts else None

    def rows(self) -> list[tuple[int, int, float]]:
        """(length, count, cumulative fraction) in ascending length."""
        if not self.counts:
            return []
        lengths = sorted(self.counts)
        counts = np.array([self.counts[n] for n in lengths], dtype=np.int64)
        cumulative = np.cumsum(counts) / counts.sum()
        return [
            (length, int(count), float(frac))
            for length, count, frac in zip(lengths, counts, cumulative)
        ]

    def quantile(self, q: float) -> int | None:
        """Smallest length whose cumulative fraction reaches ``q``."""
        for length, _, frac in self.rows():
            if frac >= q:
                return length
        return None

    def format(self) -> str:
        """Tab-separated summary table with a header line."""
        lines = ["length\tcount\tcumulative"]
        lines.extend(f"{length}\t{count}\t{frac:.4f}" for length, count, frac in self.rows())
        return "\n".join(lines)


# =============================================================================
# Accumulator
# =============================================================================


class IntronAccumulator:
    """Accumulate junction support counts.

    Attributes:
        headers: ``#`` header lines of the first file read. Headers of
            later files are ignored.
        n_files: Number of files read so far.
    """

    def __init__(self) -> None:
        self._counts: dict[str, Counter[IntronKey]] = defaultdict(Counter)
        self.headers: list[str] = []
        self.n_files = 0

    def add(self, seqid: str, start: int, end: int, strand: str, count: int = 1) -> None:
        """Add support for one junction."""
        self._counts[seqid][IntronKey(seqid, start, end, strand)] += count

    def add_record(self, record: IntronRecord) -> None:
        """Add an IntronRecord's count to its junction."""
        self._counts[record.seqid][record.key] += record.count

    def merge(self, other: IntronAccumulator) -> None:
        """Add all counts of another accumulator to this one."""
        for seqid, counts in other._counts.items():
            self._counts[seqid].update(counts)
        if not self.headers:
            self.headers = list(other.headers)

    def read_file(self, path: Path | str) -> int:
        """Add every row of an intron GFF file.

        Args:
            path: Intron file.

        Returns:
            Number of rows read.

        Raises:
            FileNotFoundError: If the file doesn't exist.
            ShardFormatError: On a malformed row.
        """
        first = self.n_files == 0
        n = 0
        for header, record in iter_intron_file(path):
            if header is not None:
                if first:
                    self.headers.append(header)
            else:
                self.add_record(record)
                n += 1

        self.n_files += 1
        logger.debug(f"Read {n} introns from {path}")
        return n

    # =========================================================================
    # Access
    # =========================================================================

    @property
    def references(self) -> list[str]:
        """References with at least one junction, lexicographic."""
        return sorted(seqid for seqid, counts in self._counts.items() if counts)

    def __len__(self) -> int:
        """Number of distinct junctions."""
        return sum(len(counts) for counts in self._counts.values())

    def count(self, seqid: str, start: int, end: int, strand: str) -> int:
        """Support of one junction (0 if unseen)."""
        return self._counts.get(seqid, Counter())[IntronKey(seqid, start, end, strand)]

    def records_for(self, seqid: str) -> list[IntronRecord]:
        """Junctions of one reference ordered by start, end, strand."""
        counts = self._counts.get(seqid)
        if not counts:
            return []
        return [IntronRecord(*key, count) for key, count in sorted(counts.items())]

    def records(self) -> Iterator[IntronRecord]:
        """Yield all junctions, seqid then start, end, strand."""
        for seqid in self.references:
            yield from self.records_for(seqid)

    def length_histogram(self) -> LengthDistribution:
        """Distribution of intron lengths over distinct junctions."""
        counts: Counter[int] = Counter()
        for seqid_counts in self._counts.values():
            counts.update(key.end - key.start for key in seqid_counts)
        return LengthDistribution(dict(counts))

    def write_gff(self, path: Path | str) -> int:
        """Write header lines then one 9-column row per junction.

        Returns:
            Number of rows written.
        """
        return write_intron_file(path, self.records(), self.headers)
