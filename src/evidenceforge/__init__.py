"""EvidenceForge: RNA-seq evidence tracks for genome annotation.

EvidenceForge turns per-read RNA-seq alignments into compact, genome-wide
interval datasets that gene-model predictors consume as evidence:
run-length compressed coverage tracks (bedGraph) and splice junction
("intron") tables (GFF).

Example:
    >>> import evidenceforge
    >>> evidenceforge.__version__
    '0.1.0'

Modules:
    io: Alignment, FASTA, bedGraph and intron GFF handling
    core: Read filtering, splice statistics, accumulation and merging
    parallel: Local execution backends and cluster task generation
    utils: Logging configuration
"""

__version__ = "0.1.0"
__author__ = "Arun Seetharam"

__all__ = [
    "__version__",
    "__author__",
]
