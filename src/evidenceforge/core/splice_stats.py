"""Split-read statistics over a whole alignment set.

Long gaps in split reads are more often alignment artefacts than short
ones. The statistics gathered here (mean and standard deviation of gap
lengths) let the extractor demand more supporting reads for unusually
long introns:

    threshold = sensitivity * (gap_length - mean_gap) / std_gap

A junction is supported when its read count reaches the threshold.

Example:
    >>> from evidenceforge.core.splice_stats import SpliceStatistics
    >>> stats = SpliceStatistics.from_sources(0, 1.5, [source_a, source_b])
    >>> stats.is_supported(gap_length=20_000, read_count=2)
    False
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Iterable

import attrs
import numpy as np

if TYPE_CHECKING:
    from evidenceforge.io.bam import AlignmentRecord

logger = logging.getLogger(__name__)


@attrs.define(slots=True, frozen=True)
class SpliceStatistics:
    """Gap-length statistics of split reads.

    Computed once per run and read-only afterwards. With no qualifying
    gaps (or no reads) the affected fields are NaN, and so is every
    threshold derived from them.

    Attributes:
        mean_gap_length: Mean gap length of split reads.
        std_gap_length: Population standard deviation of gap lengths.
        mean_read_length: Mean read length over all records.
        sensitivity: Factor of the long-intron support rule.
        n_gaps: Number of gaps that entered the statistics.
        n_reads: Number of records streamed.
    """

    mean_gap_length: float
    std_gap_length: float
    mean_read_length: float
    sensitivity: float
    n_gaps: int = 0
    n_reads: int = 0

    @classmethod
    def from_sources(
        cls,
        min_intron_length: int,
        sensitivity: float,
        sources: Iterable[Iterable[AlignmentRecord]],
    ) -> SpliceStatistics:
        """Stream every record of every source and compute the statistics.

        For each pair of consecutive blocks A, B the gap length is
        ``|B.start - (A.start + A.length)| + 1``; it counts when it
        exceeds ``min_intron_length``.

        Args:
            min_intron_length: Gaps of at most this length are ignored.
            sensitivity: Factor stored for is_supported.
            sources: Alignment sources (any iterables of records).

        Returns:
            Computed statistics.
        """
        gap_sum = 0.0
        gap_sum_sq = 0.0
        n_gaps = 0
        read_length_sum = 0
        n_reads = 0

        for source in sources:
            for record in source:
                read_length_sum += record.read_length
                n_reads += 1
                for left, right in zip(record.blocks, record.blocks[1:]):
                    gap = abs(right.reference_start - left.reference_end) + 1
                    if gap > min_intron_length:
                        gap_sum += gap
                        gap_sum_sq += gap * gap
                        n_gaps += 1

        with np.errstate(divide="ignore", invalid="ignore"):
            mean_gap = np.float64(gap_sum) / n_gaps
            variance = np.float64(gap_sum_sq) / n_gaps - mean_gap**2
            # rounding can push a zero variance slightly negative
            std_gap = np.sqrt(max(variance, 0.0)) if np.isfinite(variance) else np.float64("nan")
            mean_read_length = np.float64(read_length_sum) / n_reads

        if n_gaps == 0:
            logger.warning(
                "No split reads with gaps longer than %d bp; gap statistics are undefined",
                min_intron_length,
            )

        stats = cls(
            mean_gap_length=float(mean_gap),
            std_gap_length=float(std_gap),
            mean_read_length=float(mean_read_length),
            sensitivity=sensitivity,
            n_gaps=n_gaps,
            n_reads=n_reads,
        )
        logger.info(
            f"Split-read statistics: {n_reads:,} reads, {n_gaps:,} gaps, "
            f"mean gap {stats.mean_gap_length:.1f}, sd {stats.std_gap_length:.1f}"
        )
        return stats

    def threshold(self, gap_length: int) -> float:
        """Minimum read count for a junction of the given length."""
        with np.errstate(divide="ignore", invalid="ignore"):
            return float(
                np.float64(self.sensitivity)
                * (gap_length - self.mean_gap_length)
                / np.float64(self.std_gap_length)
            )

    def is_supported(self, gap_length: int, read_count: int) -> bool:
        """Whether a junction has enough reads for its length.

        A NaN threshold never compares true, so undefined statistics
        reject every junction.
        """
        return read_count >= self.threshold(gap_length)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for reporting."""
        return attrs.asdict(self)
