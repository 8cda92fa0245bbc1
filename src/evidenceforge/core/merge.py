"""Consolidation of per-shard evidence files.

Evidence is usually extracted per alignment shard (one BAM per sample,
lane or region). The merger folds any number of coverage shards into one
run-length compressed bedGraph, or any number of intron shards into one
intron GFF with summed counts.

Merging is associative and commutative: the output is byte-identical
for any order of the input shards. The header of the first shard is
passed through; the headers of all later shards are ignored.

Example:
    >>> from evidenceforge.core.merge import ShardMerger
    >>> merger = ShardMerger(n_workers=4)
    >>> summary = merger.merge_coverage("all.bedgraph", ["a.bedgraph", "b.bedgraph"])
    >>> summary.n_records
    1523
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Callable, Iterable, Sequence

import attrs

from evidenceforge.core.coverage import CoverageAccumulator
from evidenceforge.core.introns import IntronAccumulator, LengthDistribution
from evidenceforge.io.bedgraph import iter_bedgraph, write_runs
from evidenceforge.io.gff import write_intron_records
from evidenceforge.parallel.executor import ExecutorBackend, ParallelExecutor
from evidenceforge.utils.logging import Timer

logger = logging.getLogger(__name__)


@attrs.define(slots=True)
class MergeSummary:
    """What a merge produced.

    Attributes:
        output: Written file.
        n_shards: Number of input shards.
        n_references: Number of references in the output.
        n_records: Number of data rows written.
        lengths: Intron length distribution (intron merges only).
    """

    output: Path
    n_shards: int
    n_references: int
    n_records: int
    lengths: LengthDistribution | None = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "output": str(self.output),
            "n_shards": self.n_shards,
            "n_references": self.n_references,
            "n_records": self.n_records,
        }


class ShardMerger:
    """Merge coverage or intron shards.

    Each shard is read fully before the next one. A malformed row in
    any shard raises ShardFormatError and no output is written.
    References are compressed independently, concurrently when
    ``n_workers > 1``, and written in lexicographic order. The output
    directory is created when missing.

    Attributes:
        n_workers: Workers for per-reference compression. Threads by
            default; the process backend pickles the accumulator into
            every task.
        echo: Receives progress lines: ``"{index}\\t{path}"`` for each
            shard, then an empty line, then ``"write"``.
    """

    def __init__(
        self,
        n_workers: int = 1,
        echo: Callable[[str], None] = print,
        backend: ExecutorBackend | str = ExecutorBackend.THREADS,
    ) -> None:
        self.n_workers = n_workers
        self.echo = echo
        self._executor = ParallelExecutor(n_workers=n_workers, backend=backend)

    def _per_reference(self, func: Callable[[str], list], references: Sequence[str]) -> list[list]:
        """Run func for every reference, results in reference order."""
        results, _ = self._executor.map_items(
            func, references, task_ids=references, continue_on_error=False
        )
        return [r.result for r in results]

    # =========================================================================
    # Coverage
    # =========================================================================

    def merge_coverage(self, output: Path | str, shards: Iterable[Path | str]) -> MergeSummary:
        """Merge bedGraph coverage shards into one track.

        Args:
            output: Output bedGraph path.
            shards: Input bedGraph files.

        Returns:
            MergeSummary of the written track.

        Raises:
            FileNotFoundError: If a shard doesn't exist.
            ShardFormatError: On a malformed shard row.
        """
        output = Path(output)
        accumulator = CoverageAccumulator()
        headers: list[str] = []
        n_shards = 0

        for index, shard in enumerate(shards):
            self.echo(f"{index}\t{shard}")
            for header, run in iter_bedgraph(shard):
                if header is not None:
                    if index == 0:
                        headers.append(header)
                else:
                    accumulator.add_run(run)
            n_shards += 1

        self.echo("")
        self.echo("write")

        references = accumulator.references
        per_reference = self._per_reference(accumulator.compress_reference, references)

        output.parent.mkdir(parents=True, exist_ok=True)
        n_records = 0
        with Timer(f"Writing {output.name}", logger), open(output, "w") as f:
            for header in headers:
                f.write(header + "\n")
            for runs in per_reference:
                n_records += write_runs(f, runs)

        logger.info(
            f"Merged {n_shards} coverage shards: {n_records:,} runs on "
            f"{len(references)} references -> {output}"
        )
        return MergeSummary(output, n_shards, len(references), n_records)

    # =========================================================================
    # Introns
    # =========================================================================

    def merge_introns(self, output: Path | str, shards: Iterable[Path | str]) -> MergeSummary:
        """Merge intron GFF shards, summing counts of identical junctions.

        Args:
            output: Output GFF path.
            shards: Input intron files.

        Returns:
            MergeSummary including the intron length distribution.

        Raises:
            FileNotFoundError: If a shard doesn't exist.
            ShardFormatError: On a malformed shard row.
        """
        output = Path(output)
        accumulator = IntronAccumulator()

        for index, shard in enumerate(shards):
            self.echo(f"{index}\t{shard}")
            accumulator.read_file(shard)

        self.echo("")
        self.echo("write")

        references = accumulator.references
        per_reference = self._per_reference(accumulator.records_for, references)

        output.parent.mkdir(parents=True, exist_ok=True)
        n_records = 0
        with Timer(f"Writing {output.name}", logger), open(output, "w") as f:
            for header in accumulator.headers:
                f.write(header + "\n")
            for records in per_reference:
                n_records += write_intron_records(f, records)

        lengths = accumulator.length_histogram()
        logger.info(
            f"Merged {accumulator.n_files} intron shards: {n_records:,} introns on "
            f"{len(references)} references -> {output}"
        )
        return MergeSummary(output, accumulator.n_files, len(references), n_records, lengths)
