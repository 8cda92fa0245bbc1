"""Pytest configuration and shared fixtures for EvidenceForge tests.

This module contains fixtures that are shared across multiple test modules.
Fixtures are organized by category:

- FASTA fixtures: Synthetic genomes on disk
- Alignment fixtures: Record factories and a small SAM file
- Shard fixtures: Coverage and intron shard files
"""

from pathlib import Path
from typing import Callable

import numpy as np
import pytest

from evidenceforge.io.bam import AlignmentBlock, AlignmentRecord


# =============================================================================
# FASTA Fixtures
# =============================================================================


def write_fasta(path: Path, sequences: dict[str, str]) -> Path:
    """Write sequences as FASTA with 80-character lines."""
    with open(path, "w") as f:
        for seqid, seq in sequences.items():
            f.write(f">{seqid}\n")
            for i in range(0, len(seq), 80):
                f.write(seq[i : i + 80] + "\n")
    return path


@pytest.fixture
def genome_sequences() -> dict[str, str]:
    """Reproducible random sequences: chr1 1000 bp, chr2 500 bp."""
    rng = np.random.default_rng(42)
    return {
        "chr1": "".join(rng.choice(list("ACGT"), 1000)),
        "chr2": "".join(rng.choice(list("ACGT"), 500)),
    }


@pytest.fixture
def synthetic_fasta(tmp_path: Path, genome_sequences: dict[str, str]) -> Path:
    """FASTA file holding genome_sequences."""
    return write_fasta(tmp_path / "test_genome.fa", genome_sequences)


@pytest.fixture
def splice_site_fasta(tmp_path: Path) -> Path:
    """FASTA with hand-placed splice-site dinucleotides.

    chr1 (0-based):
        10-11 GT ... 28-29 AG   -> intron GFF start 11, end 31 (GT-AG)
        40-41 CT ... 58-59 AC   -> intron GFF start 41, end 61 (CT-AC)
        70-71 AA ... 88-89 TT   -> intron GFF start 71, end 91 (AA-TT)
    """
    seq = list("C" * 100)
    seq[10:12] = "GT"
    seq[28:30] = "AG"
    seq[40:42] = "CT"
    seq[58:60] = "AC"
    seq[70:72] = "AA"
    seq[88:90] = "TT"
    return write_fasta(tmp_path / "splice_genome.fa", {"chr1": "".join(seq)})


# =============================================================================
# Alignment Fixtures
# =============================================================================


@pytest.fixture
def make_record() -> Callable[..., AlignmentRecord]:
    """Factory for AlignmentRecord objects.

    ``blocks`` are (reference_start, length) pairs; read offsets are
    assigned contiguously. Unless ``skips`` is given, every gap between
    blocks is an N operation.
    """

    def _make(
        blocks: list[tuple[int, int]],
        reference_name: str = "chr1",
        mapping_quality: int = 60,
        read_sequence: str | None = None,
        skips: list[tuple[int, int]] | None = None,
        **flags: bool,
    ) -> AlignmentRecord:
        aligned = []
        read_pos = 0
        for ref_start, length in blocks:
            aligned.append(AlignmentBlock(ref_start, read_pos, length))
            read_pos += length
        if read_sequence is None:
            read_sequence = "A" * read_pos
        if skips is None:
            skips = [
                (left.reference_end, right.reference_start)
                for left, right in zip(aligned, aligned[1:])
                if right.reference_start > left.reference_end
            ]
        return AlignmentRecord(
            reference_name=reference_name,
            mapping_quality=mapping_quality,
            blocks=aligned,
            read_sequence=read_sequence,
            skips=skips,
            **flags,
        )

    return _make


@pytest.fixture
def sam_file(tmp_path: Path) -> Path:
    """Small SAM file.

    Records:
        read1: chr1, 10M at 100 (0-based), MAPQ 60
        read2: chr1, 5M100N5M at 200, reverse, MAPQ 60
        read3: unmapped
        read4: chr2, 2S8M at 0, MAPQ 10
        read5: chr1, secondary 10M at 100, MAPQ 0
    """
    sam_path = tmp_path / "reads.sam"
    header = [
        "@HD\tVN:1.6\tSO:unsorted",
        "@SQ\tSN:chr1\tLN:1000",
        "@SQ\tSN:chr2\tLN:500",
    ]
    reads = [
        "read1\t0\tchr1\t101\t60\t10M\t*\t0\t0\tACGTACGTAC\t*",
        "read2\t16\tchr1\t201\t60\t5M100N5M\t*\t0\t0\tACGTACGTAC\t*",
        "read3\t4\t*\t0\t0\t*\t*\t0\t0\tACGTACGTAC\t*",
        "read4\t0\tchr2\t1\t10\t2S8M\t*\t0\t0\tACGTACGTAC\t*",
        "read5\t256\tchr1\t101\t0\t10M\t*\t0\t0\t*\t*",
    ]
    sam_path.write_text("\n".join(header + reads) + "\n")
    return sam_path


# =============================================================================
# Shard Fixtures
# =============================================================================


@pytest.fixture
def coverage_shards(tmp_path: Path) -> list[Path]:
    """Two overlapping coverage shards.

    Merged they give chr1 0-5:1, 5-10:2, 10-15:1 and chr2 0-4:3 (only in
    the second shard).
    """
    first = tmp_path / "a.bedgraph"
    first.write_text("track type=bedgraph\nchr1\t0\t10\t1\n")
    second = tmp_path / "b.bedgraph"
    second.write_text("track type=bedgraph name=b\nchr1\t5\t15\t1\nchr2\t0\t4\t3\n")
    return [first, second]


@pytest.fixture
def intron_shards(tmp_path: Path) -> list[Path]:
    """Two intron shards sharing one junction with 3 reads each."""
    first = tmp_path / "a.gff"
    first.write_text(
        "##gff-version 3\n"
        "chr1\tRNAseq\tintron\t101\t201\t3\t+\t.\t.\n"
        "chr2\tRNAseq\tintron\t11\t61\t1\t-\t.\t.\n"
    )
    second = tmp_path / "b.gff"
    second.write_text(
        "##gff-version 3\n"
        "# second shard\n"
        "chr1\tRNAseq\tintron\t101\t201\t3\t+\t.\t.\n"
        "chr1\tRNAseq\tintron\t51\t91\t2\t.\t.\t.\n"
    )
    return [first, second]
