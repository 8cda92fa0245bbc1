"""Alignment file handling for RNA-seq reads.

This module adapts SAM/BAM files to the minimal record contract the
evidence pipeline needs: reference name, mapping quality, the ordered
list of contiguous matched blocks, the read sequence and the flags that
decide strand.

Features:
    - Streaming iteration over SAM/BAM/CRAM files (no index required)
    - Block decomposition from CIGAR operations
    - Strand assignment for stranded libraries
    - Junction candidates from skipped (N) regions

Example:
    >>> from evidenceforge.io.bam import BamAlignmentSource
    >>> with BamAlignmentSource("rnaseq.bam") as source:
    ...     for record in source:
    ...         print(record.reference_name, len(record.blocks))
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable, Iterator, NamedTuple, Protocol

import attrs
import pysam

from evidenceforge.config import Stranded

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

# CIGAR operations
CIGAR_M = 0  # Match or mismatch
CIGAR_I = 1  # Insertion
CIGAR_D = 2  # Deletion
CIGAR_N = 3  # Skipped region (intron)
CIGAR_S = 4  # Soft clip
CIGAR_H = 5  # Hard clip
CIGAR_P = 6  # Padding
CIGAR_EQ = 7  # Sequence match
CIGAR_X = 8  # Sequence mismatch

MATCH_OPS = frozenset({CIGAR_M, CIGAR_EQ, CIGAR_X})
READ_ONLY_OPS = frozenset({CIGAR_I, CIGAR_S})
REFERENCE_ONLY_OPS = frozenset({CIGAR_D, CIGAR_N})


# =============================================================================
# Data Structures
# =============================================================================


class AlignmentBlock(NamedTuple):
    """A maximal contiguous match segment of one alignment.

    Attributes:
        reference_start: First reference base (0-based).
        read_start: First read base (0-based, soft clips included).
        length: Number of aligned bases.
    """

    reference_start: int
    read_start: int
    length: int

    @property
    def reference_end(self) -> int:
        """Reference end (0-based, exclusive)."""
        return self.reference_start + self.length


@attrs.define(slots=True, frozen=True)
class AlignmentRecord:
    """One aligned read, reduced to what evidence extraction needs.

    Attributes:
        reference_name: Reference sequence the read is aligned to.
        mapping_quality: MAPQ of the alignment.
        blocks: Matched blocks ordered by reference start.
        read_sequence: Read bases as stored in the alignment file.
        is_reverse: Read aligned to the reverse strand.
        is_paired: Read is part of a pair.
        is_read1: Read is the first of its pair.
        is_secondary: Secondary alignment.
        is_supplementary: Supplementary alignment.
        skips: Reference intervals of N operations (0-based, half-open).
            Only these are intron candidates; a deletion also separates
            blocks but never makes a junction.
    """

    reference_name: str
    mapping_quality: int
    blocks: tuple[AlignmentBlock, ...] = attrs.field(converter=tuple)
    read_sequence: str = ""
    is_reverse: bool = False
    is_paired: bool = False
    is_read1: bool = False
    is_secondary: bool = False
    is_supplementary: bool = False
    skips: tuple[tuple[int, int], ...] = attrs.field(default=(), converter=tuple)

    @property
    def is_spliced(self) -> bool:
        """Whether the alignment has more than one block."""
        return len(self.blocks) > 1

    @property
    def is_split(self) -> bool:
        """Whether the alignment skips reference sequence (an N operation)."""
        return bool(self.skips)

    @property
    def is_secondary_or_supplementary(self) -> bool:
        """Whether this is not the primary alignment of the read."""
        return self.is_secondary or self.is_supplementary

    @property
    def is_first(self) -> bool:
        """First read of a pair, or the only read of single-end data."""
        return not self.is_paired or self.is_read1

    @property
    def reference_start(self) -> int:
        """Start of the first block (0-based)."""
        return self.blocks[0].reference_start

    @property
    def reference_end(self) -> int:
        """End of the last block (0-based, exclusive)."""
        return self.blocks[-1].reference_end

    @property
    def read_length(self) -> int:
        """Length of the read sequence."""
        return len(self.read_sequence)

    @property
    def shortest_block(self) -> int:
        """Length of the shortest matched block."""
        return min(block.length for block in self.blocks)

    def gaps(self) -> Iterator[tuple[int, int]]:
        """Yield (gap_start, gap_end) between consecutive blocks."""
        for left, right in zip(self.blocks, self.blocks[1:]):
            yield left.reference_end, right.reference_start

    def junction_candidates(self, min_intron_length: int = 0) -> Iterator[tuple[int, int]]:
        """Yield skipped regions long enough to count as introns.

        Args:
            min_intron_length: Skips of at most this length are ignored.

        Yields:
            (gap_start, gap_end) tuples, 0-based half-open.
        """
        for gap_start, gap_end in self.skips:
            if gap_end - gap_start > min_intron_length:
                yield gap_start, gap_end

    def short_gaps(self, min_intron_length: int = 0) -> Iterator[tuple[int, int]]:
        """Yield non-empty gaps between blocks that are not introns.

        These are deletions of any length and skips of at most
        ``min_intron_length``; coverage treats them as covered.
        """
        introns = list(self.junction_candidates(min_intron_length))
        for gap_start, gap_end in self.gaps():
            pos = gap_start
            # a gap can hold a deletion next to an intron (10M2D100N10M)
            for skip_start, skip_end in introns:
                if gap_start <= skip_start and skip_end <= gap_end:
                    if skip_start > pos:
                        yield pos, skip_start
                    pos = skip_end
            if gap_end > pos:
                yield pos, gap_end


class AlignmentSource(Protocol):
    """Anything that yields AlignmentRecord objects."""

    def __iter__(self) -> Iterator[AlignmentRecord]: ...


# =============================================================================
# CIGAR Parsing
# =============================================================================


def blocks_from_cigar(
    reference_start: int,
    cigartuples: Iterable[tuple[int, int]],
) -> list[AlignmentBlock]:
    """Decompose a CIGAR into maximal matched blocks.

    Consecutive match operations (M, =, X) with no read or reference
    offset between them are folded into one block.

    Args:
        reference_start: Alignment start (0-based).
        cigartuples: (operation, length) pairs as reported by pysam.

    Returns:
        Blocks ordered by reference start.
    """
    blocks: list[AlignmentBlock] = []
    ref_pos = reference_start
    read_pos = 0

    for op, length in cigartuples:
        if op in MATCH_OPS:
            if blocks and blocks[-1].reference_end == ref_pos and (
                blocks[-1].read_start + blocks[-1].length == read_pos
            ):
                last = blocks.pop()
                blocks.append(last._replace(length=last.length + length))
            else:
                blocks.append(AlignmentBlock(ref_pos, read_pos, length))
            ref_pos += length
            read_pos += length
        elif op in READ_ONLY_OPS:
            read_pos += length
        elif op in REFERENCE_ONLY_OPS:
            ref_pos += length
        # H and P consume neither

    return blocks


def skipped_regions(
    reference_start: int,
    cigartuples: Iterable[tuple[int, int]],
) -> list[tuple[int, int]]:
    """Reference intervals skipped by N operations.

    Args:
        reference_start: Alignment start (0-based).
        cigartuples: (operation, length) pairs as reported by pysam.

    Returns:
        (start, end) pairs, 0-based half-open, in alignment order.
    """
    skips = []
    ref_pos = reference_start
    for op, length in cigartuples:
        if op == CIGAR_N:
            skips.append((ref_pos, ref_pos + length))
        if op in MATCH_OPS or op in REFERENCE_ONLY_OPS:
            ref_pos += length
    return skips


def record_from_segment(segment: pysam.AlignedSegment) -> AlignmentRecord:
    """Convert a pysam segment into an AlignmentRecord."""
    cigar = segment.cigartuples or []
    return AlignmentRecord(
        reference_name=segment.reference_name,
        mapping_quality=segment.mapping_quality,
        blocks=blocks_from_cigar(segment.reference_start, cigar),
        read_sequence=segment.query_sequence or "",
        is_reverse=segment.is_reverse,
        is_paired=segment.is_paired,
        is_read1=segment.is_read1,
        is_secondary=segment.is_secondary,
        is_supplementary=segment.is_supplementary,
        skips=skipped_regions(segment.reference_start, cigar),
    )


# =============================================================================
# Strand Assignment
# =============================================================================


def read_strand(record: AlignmentRecord, stranded: Stranded) -> str:
    """Transcript strand implied by a read.

    Args:
        record: Aligned read.
        stranded: Library strandedness.

    Returns:
        "+", "-" or "." for unstranded libraries.
    """
    if stranded == Stranded.FR_UNSTRANDED:
        return "."

    # FR_FIRST_STRAND: first reads are antisense to the transcript
    sense = record.is_first != (stranded == Stranded.FR_FIRST_STRAND)
    forward = sense != record.is_reverse
    return "+" if forward else "-"


# =============================================================================
# Alignment Source
# =============================================================================


class BamAlignmentSource:
    """Stream AlignmentRecord objects from a SAM/BAM/CRAM file.

    Unmapped reads and records without blocks are skipped. The file does
    not need an index; records are read in file order.

    Attributes:
        path: Path to the alignment file.
        n_records: Records yielded so far.

    Example:
        >>> with BamAlignmentSource("rnaseq.bam") as source:
        ...     n_spliced = sum(1 for r in source if r.is_spliced)
    """

    def __init__(self, path: Path | str) -> None:
        """Initialize the source.

        Args:
            path: Path to SAM/BAM/CRAM file.

        Raises:
            FileNotFoundError: If the file doesn't exist.
        """
        self.path = Path(path)
        if not self.path.exists():
            raise FileNotFoundError(f"Alignment file not found: {self.path}")

        self.n_records = 0
        self._file: pysam.AlignmentFile | None = None

    def _open(self) -> pysam.AlignmentFile:
        """Open the alignment file."""
        if self._file is None:
            self._file = pysam.AlignmentFile(str(self.path), "r")
            logger.info(f"Opened alignment file: {self.path.name}")
        return self._file

    def __enter__(self) -> BamAlignmentSource:
        """Context manager entry."""
        self._open()
        return self

    def __exit__(self, *args: Any) -> None:
        """Context manager exit."""
        self.close()

    def close(self) -> None:
        """Close the alignment file."""
        if self._file is not None:
            self._file.close()
            self._file = None

    @property
    def references(self) -> list[str]:
        """Reference sequence names from the header."""
        return list(self._open().references)

    def __iter__(self) -> Iterator[AlignmentRecord]:
        """Iterate over mapped records in file order."""
        alignment_file = self._open()
        for segment in alignment_file:
            if segment.is_unmapped or segment.reference_name is None:
                continue
            record = record_from_segment(segment)
            if not record.blocks:
                continue
            self.n_records += 1
            yield record
