"""Core evidence logic for EvidenceForge.

This module contains the algorithms that turn alignments into evidence
and consolidate evidence from many shards:

- Read filtering and split-read statistics
- Coverage and intron accumulation
- Shard merging
- Intron statistics, denoising and attribute tables

Example:
    >>> from evidenceforge.core import ShardMerger
    >>> ShardMerger().merge_introns("introns.gff", ["a.gff", "b.gff"])
"""

from evidenceforge.core.attributes import AttributeTable
from evidenceforge.core.coverage import CoverageAccumulator
from evidenceforge.core.denoise import DenoiseSummary, IntronDenoiser
from evidenceforge.core.extract import EvidenceExtractor, ExtractionReport, read_repositioning
from evidenceforge.core.filters import FilterCounts, FilterOutcome, ReadFilter
from evidenceforge.core.intron_stats import IntronStatistics, IntronStatisticsReporter
from evidenceforge.core.introns import IntronAccumulator, LengthDistribution
from evidenceforge.core.merge import MergeSummary, ShardMerger
from evidenceforge.core.splice_stats import SpliceStatistics

__all__: list[str] = [
    # Filtering
    "FilterCounts",
    "FilterOutcome",
    "ReadFilter",
    "SpliceStatistics",
    # Accumulation
    "CoverageAccumulator",
    "IntronAccumulator",
    "LengthDistribution",
    # Extraction
    "EvidenceExtractor",
    "ExtractionReport",
    "read_repositioning",
    # Merging
    "MergeSummary",
    "ShardMerger",
    # Post-processing
    "AttributeTable",
    "DenoiseSummary",
    "IntronDenoiser",
    "IntronStatistics",
    "IntronStatisticsReporter",
]
