"""Read filtering for evidence extraction.

A read contributes evidence only if it is aligned confidently and, for
split reads, if its bases next to each split agree with the genome.
Misaligned split reads typically show a cluster of mismatches right at
the block edges, which is what the splice-site check looks for.

Example:
    >>> from evidenceforge.core.filters import ReadFilter
    >>> read_filter = ReadFilter(min_quality=40)
    >>> accepted = [r for r in source if read_filter.accept(r)]
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import TYPE_CHECKING, Mapping

import attrs

from evidenceforge.exceptions import UnknownReferenceError

if TYPE_CHECKING:
    from evidenceforge.io.bam import AlignmentRecord

logger = logging.getLogger(__name__)


class FilterOutcome(Enum):
    """Why a read was accepted or rejected."""

    ACCEPTED = "accepted"
    LOW_QUALITY = "low_quality"
    MISMATCHES = "mismatches"


@attrs.define(slots=True)
class FilterCounts:
    """Tally of filter outcomes over a record stream.

    Attributes:
        seen: Records inspected.
        accepted: Records that passed.
        low_quality: Records rejected for mapping quality.
        mismatches: Records rejected for mismatches near splits.
    """

    seen: int = 0
    accepted: int = 0
    low_quality: int = 0
    mismatches: int = 0

    def add(self, outcome: FilterOutcome) -> None:
        """Count one outcome."""
        self.seen += 1
        if outcome == FilterOutcome.ACCEPTED:
            self.accepted += 1
        elif outcome == FilterOutcome.LOW_QUALITY:
            self.low_quality += 1
        else:
            self.mismatches += 1

    def to_dict(self) -> dict[str, int]:
        """Convert to dictionary."""
        return attrs.asdict(self)


class ReadFilter:
    """Accept or reject alignment records.

    Rules, in order:
        1. Reject if the mapping quality is below ``min_quality``.
        2. If a genome is given and the read is split, count mismatches
           in the ``n = min(positions_around_splice_site, length // 2)``
           leading and trailing bases of every block. Reject if the sum
           over all blocks exceeds ``max_mismatches``.

    The filter holds no mutable state, so one instance can be shared
    across threads.

    Attributes:
        min_quality: Lowest accepted mapping quality.
        positions_around_splice_site: Bases checked at each block edge.
        max_mismatches: Highest tolerated mismatch total, or None to
            disable the check.
        genome: Read-only mapping of seqid to sequence, or None.
    """

    def __init__(
        self,
        min_quality: int,
        positions_around_splice_site: int = 0,
        max_mismatches: int | None = None,
        genome: Mapping[str, str] | None = None,
    ) -> None:
        self.min_quality = min_quality
        self.positions_around_splice_site = positions_around_splice_site
        self.max_mismatches = max_mismatches
        self.genome = genome

    @property
    def checks_mismatches(self) -> bool:
        """Whether the splice-site mismatch check is active."""
        return (
            self.genome is not None
            and self.max_mismatches is not None
            and self.positions_around_splice_site > 0
        )

    def accept(self, record: AlignmentRecord) -> bool:
        """Whether a record passes the filter."""
        return self.classify(record) == FilterOutcome.ACCEPTED

    def classify(self, record: AlignmentRecord) -> FilterOutcome:
        """Decide the outcome for a record.

        Args:
            record: Alignment record.

        Returns:
            FilterOutcome naming the first rule the record failed, or
            ACCEPTED.

        Raises:
            UnknownReferenceError: If the mismatch check is active and
                the record's reference is missing from the genome.
        """
        if record.mapping_quality < self.min_quality:
            return FilterOutcome.LOW_QUALITY

        if self.checks_mismatches and record.is_spliced and record.read_sequence:
            if self.count_edge_mismatches(record) > self.max_mismatches:
                return FilterOutcome.MISMATCHES

        return FilterOutcome.ACCEPTED

    def count_edge_mismatches(self, record: AlignmentRecord) -> int:
        """Count mismatches at the leading and trailing edge of every block.

        Comparison is case-insensitive. Reference positions past the end
        of the sequence are ignored.
        """
        if self.genome is None:
            return 0

        try:
            reference = self.genome[record.reference_name]
        except KeyError:
            raise UnknownReferenceError(record.reference_name, self.genome) from None

        read = record.read_sequence
        total = 0
        for block in record.blocks:
            n = min(self.positions_around_splice_site, block.length // 2)
            if n == 0:
                continue
            edges = (
                (block.reference_start, block.read_start),
                (block.reference_end - n, block.read_start + block.length - n),
            )
            for ref_start, read_start in edges:
                ref_edge = reference[ref_start:ref_start + n].upper()
                read_edge = read[read_start:read_start + n].upper()
                total += sum(1 for a, b in zip(ref_edge, read_edge) if a != b)

        return total
