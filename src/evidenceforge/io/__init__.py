"""Input/output handlers for EvidenceForge.

This module provides readers and writers for the file formats an
evidence run touches:

- SAM/BAM: RNA-seq alignment files
- FASTA: Genome sequence files
- bedGraph: Coverage tracks
- GFF: Intron tables and annotation attributes

Example:
    >>> from evidenceforge.io import BamAlignmentSource, read_intron_file
    >>> headers, introns = read_intron_file("introns.gff")
"""

from evidenceforge.io.bam import (
    AlignmentBlock,
    AlignmentRecord,
    AlignmentSource,
    BamAlignmentSource,
    blocks_from_cigar,
    read_strand,
    skipped_regions,
)
from evidenceforge.io.bedgraph import (
    BEDGRAPH_HEADER,
    CoverageRun,
    iter_bedgraph,
    read_bedgraph,
    write_bedgraph,
)
from evidenceforge.io.fasta import GenomeAccessor, load_genome_sequences, reverse_complement
from evidenceforge.io.gff import (
    IntronKey,
    IntronRecord,
    iter_intron_file,
    parse_attributes,
    read_intron_file,
    write_intron_file,
)

__all__ = [
    # Alignments
    "AlignmentBlock",
    "AlignmentRecord",
    "AlignmentSource",
    "BamAlignmentSource",
    "blocks_from_cigar",
    "read_strand",
    "skipped_regions",
    # Coverage
    "BEDGRAPH_HEADER",
    "CoverageRun",
    "iter_bedgraph",
    "read_bedgraph",
    "write_bedgraph",
    # Genome
    "GenomeAccessor",
    "load_genome_sequences",
    "reverse_complement",
    # Introns
    "IntronKey",
    "IntronRecord",
    "iter_intron_file",
    "parse_attributes",
    "read_intron_file",
    "write_intron_file",
]
