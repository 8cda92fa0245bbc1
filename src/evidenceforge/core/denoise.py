"""Intron denoising against flanking exon coverage.

Highly expressed genes produce a tail of rare, spurious splits. An
intron is kept only if it is shorter than ``max_intron_length`` and its
read count is at least ``min_expression`` times the larger of the mean
coverages of its two flanking exon windows:

    e1 = mean depth of the ``context`` bases before the donor
    e2 = mean depth of the ``context`` bases after the acceptor
    keep if count / max(e1, e2) >= min_expression

Introns with no flanking coverage at all are kept. An unstranded intron
checked against stranded tracks uses the mean of the forward and reverse
depths.
"""

from __future__ import annotations

import logging
from typing import Mapping, Sequence

import attrs

from evidenceforge.config import (
    DEFAULT_DENOISE_CONTEXT,
    DEFAULT_MAX_INTRON_LENGTH,
    DEFAULT_MIN_EXPRESSION,
)
from evidenceforge.core.coverage import CoverageAccumulator
from evidenceforge.core.introns import IntronAccumulator
from evidenceforge.io.gff import IntronRecord

logger = logging.getLogger(__name__)


@attrs.define(slots=True)
class DenoiseSummary:
    """Counts of a denoising run."""

    n_input: int = 0
    n_kept: int = 0
    n_too_long: int = 0
    n_low_expression: int = 0

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return attrs.asdict(self)


class IntronDenoiser:
    """Remove long or weakly supported introns.

    Attributes:
        max_intron_length: Introns of at least this length are removed.
        min_expression: Minimum ratio of reads to flanking coverage.
        context: Size of each flanking window.
    """

    def __init__(
        self,
        max_intron_length: int = DEFAULT_MAX_INTRON_LENGTH,
        min_expression: float = DEFAULT_MIN_EXPRESSION,
        context: int = DEFAULT_DENOISE_CONTEXT,
    ) -> None:
        self.max_intron_length = max_intron_length
        self.min_expression = min_expression
        self.context = context

    def flank_coverage(self, record: IntronRecord, coverage: CoverageAccumulator) -> tuple[float, float]:
        """Mean depth of the exon windows before and after an intron."""
        # 0-based half-open intron
        start, end = record.start - 1, record.end - 1
        upstream = coverage.mean_depth(record.seqid, max(start - self.context, 0), start)
        downstream = coverage.mean_depth(record.seqid, end, end + self.context)
        return upstream, downstream

    def keep(
        self,
        record: IntronRecord,
        coverage: CoverageAccumulator | Sequence[CoverageAccumulator] | None,
    ) -> bool:
        """Whether an intron passes both rules.

        Several tracks are averaged window by window before the larger
        flank is taken.
        """
        if record.length >= self.max_intron_length:
            return False
        if isinstance(coverage, CoverageAccumulator):
            coverage = [coverage]
        if not coverage:
            return True
        windows = [self.flank_coverage(record, track) for track in coverage]
        flank = max(sum(depths) / len(windows) for depths in zip(*windows))
        if flank == 0:
            return True
        return record.count / flank >= self.min_expression

    @staticmethod
    def tracks_for(
        strand: str, coverage: Mapping[str, CoverageAccumulator]
    ) -> list[CoverageAccumulator]:
        """Coverage tracks an intron of ``strand`` is checked against."""
        if strand in coverage:
            return [coverage[strand]]
        if "." in coverage:
            return [coverage["."]]
        if strand == ".":
            return [coverage[s] for s in ("+", "-") if s in coverage]
        return []

    def denoise(
        self,
        introns: IntronAccumulator,
        coverage: Mapping[str, CoverageAccumulator],
    ) -> tuple[IntronAccumulator, DenoiseSummary]:
        """Filter an intron table.

        Args:
            introns: Introns to filter.
            coverage: Coverage per strand. Keys are "+", "-" and "." (or
                any subset); an intron uses the track of its strand and
                falls back to ".". An unstranded intron without a "."
                track uses the mean of "+" and "-".

        Returns:
            Tuple of (kept introns, summary). The kept table carries the
            input headers.
        """
        kept = IntronAccumulator()
        kept.headers = list(introns.headers)
        summary = DenoiseSummary()

        for record in introns.records():
            summary.n_input += 1
            tracks = self.tracks_for(record.strand, coverage)
            if record.length >= self.max_intron_length:
                summary.n_too_long += 1
            elif not self.keep(record, tracks):
                summary.n_low_expression += 1
            else:
                kept.add_record(record)
                summary.n_kept += 1

        logger.info(
            f"Denoising kept {summary.n_kept:,}/{summary.n_input:,} introns "
            f"({summary.n_too_long:,} too long, {summary.n_low_expression:,} low expression)"
        )
        return kept, summary
