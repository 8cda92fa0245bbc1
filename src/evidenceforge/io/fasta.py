"""Reference genome access.

The read filter compares bases next to splice junctions against the
reference, and the intron report looks up the dinucleotides at both ends
of every junction. Both need the genome as plain upper-case strings, so
``load_genome_sequences`` reads the FASTA once per run and hands out a
read-only view. ``GenomeAccessor`` is the indexed, on-demand alternative
for callers that only touch a few regions.

Example:
    >>> genome = load_genome_sequences("genome.fa")
    >>> genome["chr1"][1000:1002]
    'GT'
"""

from __future__ import annotations

import logging
from pathlib import Path
from types import MappingProxyType
from typing import Any, Literal, Mapping

import pyfaidx

logger = logging.getLogger(__name__)

Strand = Literal["+", "-"]

# IUPAC pairs; lower case stays lower case so soft-masking survives.
_BASES = "ACGTRYKMBVDHNSW"
_PAIRS = "TGCAYRMKVBHDNSW"
COMPLEMENT_TABLE = str.maketrans(_BASES + _BASES.lower(), _PAIRS + _PAIRS.lower())


def reverse_complement(sequence: str) -> str:
    """Return the reverse complement of a nucleotide string."""
    return sequence.translate(COMPLEMENT_TABLE)[::-1]


class GenomeAccessor:
    """On-demand access to an indexed FASTA file.

    A ``.fai`` index is written next to the FASTA the first time it is
    opened. Reference names keep the order of the file.

    Attributes:
        path: Location of the FASTA file.
    """

    def __init__(self, fasta_path: Path | str) -> None:
        self.path = Path(fasta_path)
        if not self.path.is_file():
            raise FileNotFoundError(f"Genome FASTA not found: {self.path}")

        self._fasta: pyfaidx.Fasta | None = pyfaidx.Fasta(
            str(self.path),
            sequence_always_upper=False,
            rebuild=False,
        )
        self._lengths = {name: len(record) for name, record in self._fasta.items()}
        logger.debug(
            f"Indexed {self.path.name}: {len(self._lengths)} references, "
            f"{sum(self._lengths.values()):,} bp"
        )

    @property
    def scaffold_order(self) -> list[str]:
        """Reference names in file order."""
        return list(self._lengths)

    @property
    def scaffold_lengths(self) -> dict[str, int]:
        """Reference name to length in bases."""
        return dict(self._lengths)

    def __len__(self) -> int:
        return len(self._lengths)

    def __contains__(self, seqid: object) -> bool:
        return seqid in self._lengths

    def __enter__(self) -> GenomeAccessor:
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def close(self) -> None:
        """Release the underlying file handle."""
        if self._fasta is not None:
            self._fasta.close()
            self._fasta = None

    def _handle(self) -> pyfaidx.Fasta:
        if self._fasta is None:
            raise RuntimeError(f"{self.path.name} has been closed")
        return self._fasta

    def get_sequence(self, seqid: str, start: int, end: int, strand: Strand = "+") -> str:
        """Fetch the bases of ``seqid`` in the 0-based half-open ``[start, end)``.

        Args:
            seqid: Reference name.
            start: First base, 0-based.
            end: One past the last base.
            strand: ``"-"`` returns the reverse complement.

        Raises:
            KeyError: ``seqid`` is not in the FASTA.
            ValueError: The interval is empty or falls off the reference.
        """
        fasta = self._handle()
        try:
            length = self._lengths[seqid]
        except KeyError:
            raise KeyError(f"Reference {seqid!r} not in {self.path.name}") from None

        if not 0 <= start < end <= length:
            raise ValueError(
                f"Interval [{start}, {end}) is empty or outside {seqid} (length {length})"
            )

        bases = str(fasta[seqid][start:end])
        return reverse_complement(bases) if strand == "-" else bases

    def fetch_all(self, seqid: str) -> str:
        """Return a whole reference sequence."""
        return self.get_sequence(seqid, 0, self._lengths[seqid])


def load_genome_sequences(fasta_path: Path | str) -> Mapping[str, str]:
    """Read every reference of a FASTA into memory, upper-cased.

    The returned mapping is read-only so a single copy can be shared by
    all components of a run.

    Args:
        fasta_path: Genome FASTA.

    Returns:
        Mapping of reference name to sequence.
    """
    with GenomeAccessor(fasta_path) as genome:
        sequences = {seqid: genome.fetch_all(seqid).upper() for seqid in genome.scaffold_order}

    logger.info(
        f"Loaded {len(sequences)} reference sequences from {Path(fasta_path).name}"
    )
    return MappingProxyType(sequences)
