"""Splice-site dinucleotide statistics for intron files.

For every intron the two genomic bases at each end of the intron are
looked up on the forward strand and reported as a pair ``"XX-YY"``
(e.g. ``GT-AG``). A pair is canonical for the record's strand when the
donor is GT or GC and the acceptor is AG after orienting the intron:

    "+"  GT-AG, GC-AG
    "-"  CT-AC, CT-GC (reverse complement of the above)
    "."  either orientation

A high canonical fraction is the usual sanity check of an extraction
run; many non-canonical pairs point at a wrong genome or a poor aligner.

Example:
    >>> from evidenceforge.core.intron_stats import IntronStatisticsReporter
    >>> reporter = IntronStatisticsReporter.from_fasta("genome.fa")
    >>> stats = reporter.report(["introns.gff"])
    >>> for pair, total, canonical in stats.rows():
    ...     print(pair, total, canonical)
"""

from __future__ import annotations

import csv
import logging
from collections import Counter
from pathlib import Path
from typing import Iterable, Mapping

import attrs

from evidenceforge.io.fasta import load_genome_sequences
from evidenceforge.io.gff import IntronRecord, iter_intron_file

logger = logging.getLogger(__name__)

PAIR_COLUMNS = ["pair", "total", "canonical"]

# =============================================================================
# Constants
# =============================================================================

DONOR_MOTIFS = frozenset({"GT", "GC"})
ACCEPTOR_MOTIF = "AG"

# the same motifs read on the forward strand for a "-" intron
REVERSE_DONOR_MOTIFS = frozenset({"AC", "GC"})
REVERSE_ACCEPTOR_MOTIF = "CT"


def splice_site_pair(sequence: str, start: int, end: int) -> tuple[str, str]:
    """Forward-strand dinucleotides at both ends of an intron.

    Args:
        sequence: Reference sequence (upper case).
        start: First intronic base (1-based).
        end: First exonic base after the intron (1-based).

    Returns:
        (left, right) pair. Either may be shorter than two bases when the
        intron touches the sequence end.
    """
    left = sequence[max(start - 1, 0):start + 1]
    right = sequence[max(end - 3, 0):max(end - 1, 0)]
    return left, right


def is_canonical(left: str, right: str, strand: str) -> bool:
    """Whether a forward-strand pair is a canonical motif for the strand."""
    forward = left in DONOR_MOTIFS and right == ACCEPTOR_MOTIF
    reverse = left == REVERSE_ACCEPTOR_MOTIF and right in REVERSE_DONOR_MOTIFS
    if strand == "+":
        return forward
    if strand == "-":
        return reverse
    return forward or reverse


# =============================================================================
# Result
# =============================================================================


@attrs.define(slots=True)
class IntronStatistics:
    """Dinucleotide pair and strand tallies over intron files.

    Attributes:
        totals: Records per forward-strand pair.
        canonical: Records per pair that are canonical for their strand.
        strands: Records per strand ("+", "-", ".").
        n_files: Files read.
        n_missing_reference: Records skipped because their reference is
            not in the genome.
    """

    totals: Counter[str] = attrs.Factory(Counter)
    canonical: Counter[str] = attrs.Factory(Counter)
    strands: Counter[str] = attrs.Factory(Counter)
    n_files: int = 0
    n_missing_reference: int = 0

    @property
    def n_introns(self) -> int:
        """Records counted."""
        return sum(self.totals.values())

    @property
    def n_canonical(self) -> int:
        """Canonical records counted."""
        return sum(self.canonical.values())

    @property
    def canonical_fraction(self) -> float:
        """Fraction of canonical records (0 if none were counted)."""
        return self.n_canonical / self.n_introns if self.n_introns else 0.0

    def add(self, pair: str, strand: str, canonical: bool) -> None:
        """Count one record."""
        self.totals[pair] += 1
        self.strands[strand] += 1
        if canonical:
            self.canonical[pair] += 1

    def rows(self) -> list[tuple[str, int, int]]:
        """(pair, total, canonical) sorted by pair."""
        return [(pair, self.totals[pair], self.canonical[pair]) for pair in sorted(self.totals)]

    def write_tsv(self, path: Path | str) -> None:
        """Write the pair table as TSV with a header line."""
        with open(path, "w", newline="") as f:
            writer = csv.DictWriter(
                f, fieldnames=PAIR_COLUMNS, delimiter="\t", lineterminator="\n"
            )
            writer.writeheader()
            for row in self.rows():
                writer.writerow(dict(zip(PAIR_COLUMNS, row)))

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "n_files": self.n_files,
            "n_introns": self.n_introns,
            "n_canonical": self.n_canonical,
            "canonical_fraction": round(self.canonical_fraction, 4),
            "strands": dict(sorted(self.strands.items())),
            "pairs": {pair: [total, canonical] for pair, total, canonical in self.rows()},
        }


# =============================================================================
# Reporter
# =============================================================================


class IntronStatisticsReporter:
    """Tally splice-site dinucleotides of intron files against a genome.

    Attributes:
        genome: Read-only mapping of seqid to upper-case sequence.
    """

    def __init__(self, genome: Mapping[str, str]) -> None:
        self.genome = genome

    @classmethod
    def from_fasta(cls, fasta_path: Path | str) -> IntronStatisticsReporter:
        """Load the whole genome once and build a reporter on it."""
        return cls(load_genome_sequences(fasta_path))

    def pair_of(self, record: IntronRecord) -> str | None:
        """``"XX-YY"`` pair of a record, or None if its reference is unknown."""
        sequence = self.genome.get(record.seqid)
        if sequence is None:
            return None
        left, right = splice_site_pair(sequence, record.start, record.end)
        return f"{left}-{right}"

    def report(self, intron_files: Iterable[Path | str], verbose: bool = False) -> IntronStatistics:
        """Tally every record of every intron file.

        Args:
            intron_files: Intron GFF files.
            verbose: Log each intron with its pair at DEBUG level.

        Returns:
            Collected statistics.

        Raises:
            FileNotFoundError: If a file doesn't exist.
            ShardFormatError: On a malformed row.
        """
        stats = IntronStatistics()

        for path in intron_files:
            for _, record in iter_intron_file(path):
                if record is None:
                    continue
                pair = self.pair_of(record)
                if pair is None:
                    stats.n_missing_reference += 1
                    continue

                left, right = pair.split("-")
                stats.add(pair, record.strand, is_canonical(left, right, record.strand))
                if verbose:
                    logger.debug(
                        f"{record.seqid}:{record.start}-{record.end} {record.strand} "
                        f"{pair} ({record.count} reads)"
                    )
            stats.n_files += 1

        if stats.n_missing_reference:
            logger.warning(
                f"Skipped {stats.n_missing_reference:,} introns on references not in the genome"
            )
        logger.info(
            f"{stats.n_introns:,} introns, {stats.n_canonical:,} canonical "
            f"({100 * stats.canonical_fraction:.1f}%)"
        )
        return stats
