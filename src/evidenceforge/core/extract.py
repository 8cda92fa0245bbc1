"""Evidence extraction from RNA-seq alignments.

The extractor streams alignment records, filters them, and collects the
two kinds of evidence gene predictors consume:

- introns: every gap between consecutive matched blocks longer than
  ``min_intron_length``, counted per (seqid, start, end, strand)
- coverage: per-base read depth, split by strand for stranded libraries

An intron is kept only if at least one supporting read has a shortest
matched block of ``min_context`` bases, and, when split-read statistics
with a positive sensitivity are given, only if it has enough reads for
its length.

Example:
    >>> from evidenceforge.core.extract import EvidenceExtractor
    >>> from evidenceforge.core.filters import ReadFilter
    >>> from evidenceforge.io.bam import BamAlignmentSource
    >>> extractor = EvidenceExtractor(ReadFilter(min_quality=40))
    >>> with BamAlignmentSource("rnaseq.bam") as source:
    ...     extractor.process(source)
    >>> report = extractor.write("evidence/")
"""

from __future__ import annotations

import csv
import logging
from collections import defaultdict
from pathlib import Path
from typing import TYPE_CHECKING, Iterable, Mapping

import attrs

from evidenceforge.config import DEFAULT_MIN_CONTEXT, Stranded
from evidenceforge.core.coverage import CoverageAccumulator
from evidenceforge.core.filters import FilterCounts, FilterOutcome, ReadFilter
from evidenceforge.core.introns import IntronAccumulator
from evidenceforge.io.bam import read_strand
from evidenceforge.io.gff import IntronKey
from evidenceforge.utils.logging import ProgressLogger

if TYPE_CHECKING:
    from evidenceforge.core.splice_stats import SpliceStatistics
    from evidenceforge.io.bam import AlignmentRecord

logger = logging.getLogger(__name__)

# =============================================================================
# Constants
# =============================================================================

INTRON_FILE = "introns.gff"
COVERAGE_FILE = "coverage.bedgraph"
FORWARD_COVERAGE_FILE = "coverage_forward.bedgraph"
REVERSE_COVERAGE_FILE = "coverage_reverse.bedgraph"

GFF_VERSION_HEADER = "##gff-version 3"

PROGRESS_INTERVAL = 1_000_000


# =============================================================================
# Repositioning
# =============================================================================


def read_repositioning(path: Path | str) -> dict[str, tuple[str, int]]:
    """Read a repositioning table.

    Alignments against split references (e.g. chromosomes cut into
    pieces for an aligner's length limit) are mapped back with a TSV of
    ``split_chr, original_chr, offset`` rows. Lines starting with ``#``
    are ignored.

    Args:
        path: Repositioning TSV.

    Returns:
        Mapping of split reference to (original reference, offset).

    Raises:
        FileNotFoundError: If the file doesn't exist.
        ValueError: On a row with fewer than 3 columns or a non-integer
            offset.
    """
    table: dict[str, tuple[str, int]] = {}
    with open(path) as f:
        for line_number, line in enumerate(f, start=1):
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            parts = line.split("\t")
            if len(parts) < 3:
                raise ValueError(f"{path}:{line_number}: expected 3 columns, found {len(parts)}")
            try:
                offset = int(parts[2])
            except ValueError as e:
                raise ValueError(f"{path}:{line_number}: invalid offset {parts[2]!r}") from e
            table[parts[0]] = (parts[1], offset)

    logger.info(f"Loaded {len(table)} repositioning entries from {path}")
    return table


# =============================================================================
# Report
# =============================================================================


MAPQ_COLUMNS = ["mapping_quality", "seen", "used", "split"]


class MappingQualityTable:
    """Reads per mapping quality: seen, used, and used split reads."""

    def __init__(self) -> None:
        self._counts: dict[int, list[int]] = defaultdict(lambda: [0, 0, 0])

    def add(self, mapping_quality: int, used: bool, split: bool) -> None:
        """Count one read."""
        row = self._counts[mapping_quality]
        row[0] += 1
        if used:
            row[1] += 1
            if split:
                row[2] += 1

    def rows(self) -> list[tuple[int, int, int, int]]:
        """(mapping_quality, seen, used, split) in ascending quality."""
        return [(mapq, *self._counts[mapq]) for mapq in sorted(self._counts)]

    def write_tsv(self, path: Path | str) -> None:
        """Write the table as TSV with a header line."""
        with open(path, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=MAPQ_COLUMNS, delimiter="\t", lineterminator="\n")
            writer.writeheader()
            for row in self.rows():
                writer.writerow(dict(zip(MAPQ_COLUMNS, row)))

    def __len__(self) -> int:
        return len(self._counts)


@attrs.define(slots=True)
class ExtractionReport:
    """Summary of one extraction run.

    Attributes:
        n_reads: Records streamed.
        n_used: Records that contributed evidence.
        n_split: Used records with at least one N operation.
        n_secondary_skipped: Secondary/supplementary records skipped.
        filter_counts: ReadFilter outcome tally.
        n_introns: Introns written.
        n_introns_removed_context: Introns without enough context.
        n_introns_removed_support: Introns failing the length-support rule.
        min_intron_length: Shortest written intron, or None.
        max_intron_length: Longest written intron, or None.
        mapping_qualities: Per-quality read table.
        files: Files written.
    """

    n_reads: int = 0
    n_used: int = 0
    n_split: int = 0
    n_secondary_skipped: int = 0
    filter_counts: FilterCounts = attrs.Factory(FilterCounts)
    n_introns: int = 0
    n_introns_removed_context: int = 0
    n_introns_removed_support: int = 0
    min_intron_length: int | None = None
    max_intron_length: int | None = None
    mapping_qualities: MappingQualityTable = attrs.Factory(MappingQualityTable)
    files: list[Path] = attrs.Factory(list)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "n_reads": self.n_reads,
            "n_used": self.n_used,
            "n_split": self.n_split,
            "n_secondary_skipped": self.n_secondary_skipped,
            "filter": self.filter_counts.to_dict(),
            "n_introns": self.n_introns,
            "n_introns_removed_context": self.n_introns_removed_context,
            "n_introns_removed_support": self.n_introns_removed_support,
            "min_intron_length": self.min_intron_length,
            "max_intron_length": self.max_intron_length,
            "files": [str(p) for p in self.files],
        }


# =============================================================================
# Extractor
# =============================================================================


class EvidenceExtractor:
    """Collect intron and coverage evidence from alignment records.

    Attributes:
        read_filter: Filter applied to every record.
        stranded: Library strandedness; decides intron strands and
            whether coverage is split by strand.
        min_intron_length: Gaps of at most this length are filled into
            coverage instead of becoming introns.
        use_secondary: Keep secondary and supplementary alignments.
        coverage: Collect coverage.
        min_context: Minimum shortest-block length of the best read.
        splice_stats: Statistics for the length-support rule, or None.
        repositioning: Split reference -> (original reference, offset).
        report: Counters of the current run.
    """

    def __init__(
        self,
        read_filter: ReadFilter,
        stranded: Stranded = Stranded.FR_UNSTRANDED,
        min_intron_length: int = 0,
        use_secondary: bool = True,
        coverage: bool = True,
        max_coverage: int | None = None,
        min_context: int = DEFAULT_MIN_CONTEXT,
        splice_stats: SpliceStatistics | None = None,
        repositioning: Mapping[str, tuple[str, int]] | None = None,
    ) -> None:
        self.read_filter = read_filter
        self.stranded = Stranded(stranded)
        self.min_intron_length = min_intron_length
        self.use_secondary = use_secondary
        self.coverage = coverage
        self.min_context = min_context
        self.splice_stats = splice_stats
        self.repositioning = repositioning or {}

        self.introns = IntronAccumulator()
        self.forward_coverage = CoverageAccumulator(max_coverage)
        self.reverse_coverage = CoverageAccumulator(max_coverage)
        self._best_context: dict[IntronKey, int] = {}
        self.report = ExtractionReport()

    @property
    def is_stranded(self) -> bool:
        """Whether coverage is split by strand."""
        return self.stranded != Stranded.FR_UNSTRANDED

    def _locate(self, reference_name: str) -> tuple[str, int]:
        return self.repositioning.get(reference_name, (reference_name, 0))

    # =========================================================================
    # Accumulation
    # =========================================================================

    def process(self, records: Iterable[AlignmentRecord]) -> None:
        """Stream records into the accumulators.

        May be called once per alignment source; evidence accumulates.
        """
        progress = ProgressLogger(logger, interval=PROGRESS_INTERVAL, description="Reads")
        for record in records:
            self.add(record)
            progress.update()
        progress.finish()

    def add(self, record: AlignmentRecord) -> bool:
        """Add one record.

        Returns:
            Whether the record contributed evidence.
        """
        report = self.report
        report.n_reads += 1

        if not self.use_secondary and record.is_secondary_or_supplementary:
            report.n_secondary_skipped += 1
            report.mapping_qualities.add(record.mapping_quality, False, False)
            return False

        outcome = self.read_filter.classify(record)
        report.filter_counts.add(outcome)
        used = outcome == FilterOutcome.ACCEPTED
        report.mapping_qualities.add(record.mapping_quality, used, record.is_split)
        if not used:
            return False

        report.n_used += 1
        seqid, offset = self._locate(record.reference_name)
        strand = read_strand(record, self.stranded)

        if record.is_split:
            report.n_split += 1
            context = record.shortest_block
            for gap_start, gap_end in record.junction_candidates(self.min_intron_length):
                key = IntronKey(seqid, gap_start + offset + 1, gap_end + offset + 1, strand)
                self.introns.add(*key)
                if context > self._best_context.get(key, -1):
                    self._best_context[key] = context

        if self.coverage:
            target = self.reverse_coverage if strand == "-" else self.forward_coverage
            for block in record.blocks:
                target.add_block(seqid, block.reference_start + offset, block.length)
            for gap_start, gap_end in record.short_gaps(self.min_intron_length):
                target.add_block(seqid, gap_start + offset, gap_end - gap_start)

        return True

    # =========================================================================
    # Output
    # =========================================================================

    def filtered_introns(self) -> IntronAccumulator:
        """Introns passing the context and length-support rules."""
        apply_support = self.splice_stats is not None and self.splice_stats.sensitivity > 0
        kept = IntronAccumulator()
        kept.headers = [GFF_VERSION_HEADER]

        for record in self.introns.records():
            if self._best_context.get(record.key, 0) < self.min_context:
                self.report.n_introns_removed_context += 1
                continue
            if apply_support and not self.splice_stats.is_supported(record.length, record.count):
                self.report.n_introns_removed_support += 1
                continue
            kept.add_record(record)

        return kept

    def write(self, output_dir: Path | str) -> ExtractionReport:
        """Write the intron GFF and coverage bedGraph(s).

        Files written to ``output_dir``: ``introns.gff`` and, when
        coverage is collected, ``coverage.bedgraph`` for unstranded
        libraries or ``coverage_forward.bedgraph`` and
        ``coverage_reverse.bedgraph`` for stranded ones.

        Returns:
            The run's ExtractionReport.
        """
        output_dir = Path(output_dir)
        output_dir.mkdir(parents=True, exist_ok=True)
        report = self.report

        introns = self.filtered_introns()
        intron_path = output_dir / INTRON_FILE
        report.n_introns = introns.write_gff(intron_path)
        report.files.append(intron_path)

        lengths = introns.length_histogram()
        report.min_intron_length = lengths.min_length
        report.max_intron_length = lengths.max_length

        if self.coverage:
            if self.is_stranded:
                targets = [
                    (FORWARD_COVERAGE_FILE, self.forward_coverage),
                    (REVERSE_COVERAGE_FILE, self.reverse_coverage),
                ]
            else:
                targets = [(COVERAGE_FILE, self.forward_coverage)]
            for name, accumulator in targets:
                path = output_dir / name
                accumulator.write_bedgraph(path)
                report.files.append(path)

        logger.info(
            f"Extracted {report.n_introns:,} introns from {report.n_used:,}/"
            f"{report.n_reads:,} reads ({report.n_split:,} split)"
        )
        return report
