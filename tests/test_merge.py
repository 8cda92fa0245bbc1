"""Unit tests for evidenceforge.core.merge module.

Tests cover:
- Coverage shard merging and run compression
- Intron shard merging with summed counts
- Header pass-through and progress echo
- Shard order independence and error handling
"""

from pathlib import Path

import pytest

from evidenceforge.core.merge import ShardMerger
from evidenceforge.exceptions import ShardFormatError


COVERAGE_SHARDS = [
    "track type=bedgraph\nchr1\t0\t10\t1\nchr2\t0\t4\t3\n",
    "track type=bedgraph\nchr1\t5\t15\t1\n",
    "track type=bedgraph\nchr1\t10\t20\t2\nchr10\t3\t9\t1\nchr2\t2\t6\t1\n",
]

INTRON_SHARDS = [
    "##gff-version 3\nchr2\tRNAseq\tintron\t5\t50\t1\t+\t.\t.\n",
    "##gff-version 3\nchr1\tRNAseq\tintron\t5\t50\t2\t+\t.\t.\nchr2\tRNAseq\tintron\t5\t50\t4\t+\t.\t.\n",
    "##gff-version 3\nchr1\tRNAseq\tintron\t1\t50\t1\t-\t.\t.\nchr1\tRNAseq\tintron\t5\t50\t1\t+\t.\t.\n",
]


def write_shards(directory: Path, contents: list[str], suffix: str) -> list[Path]:
    """Write one shard file per content string."""
    shards = []
    for i, text in enumerate(contents):
        shard = directory / f"shard_{i}{suffix}"
        shard.write_text(text)
        shards.append(shard)
    return shards


def quiet_merger(n_workers: int = 1) -> ShardMerger:
    """Merger that discards its echo lines."""
    return ShardMerger(n_workers=n_workers, echo=lambda line: None)


@pytest.fixture
def echoed() -> list[str]:
    """Collects echo lines."""
    return []


@pytest.fixture
def merger(echoed: list[str]) -> ShardMerger:
    """Serial merger that records its echo lines."""
    return ShardMerger(n_workers=1, echo=echoed.append)


# =============================================================================
# Coverage
# =============================================================================


class TestMergeCoverage:
    """Tests for ShardMerger.merge_coverage."""

    def test_overlapping_shards(
        self, merger: ShardMerger, coverage_shards: list[Path], tmp_path: Path
    ) -> None:
        """Overlaps add up and the first shard's header is kept."""
        output = tmp_path / "merged.bedgraph"

        summary = merger.merge_coverage(output, coverage_shards)

        assert output.read_text() == (
            "track type=bedgraph\n"
            "chr1\t0\t5\t1\n"
            "chr1\t5\t10\t2\n"
            "chr1\t10\t15\t1\n"
            "chr2\t0\t4\t3\n"
        )
        assert summary.n_shards == 2
        assert summary.n_references == 2
        assert summary.n_records == 4

    def test_echo_lines(
        self, merger: ShardMerger, echoed: list[str], coverage_shards: list[Path], tmp_path: Path
    ) -> None:
        """Each shard is echoed with its index, then a blank line and 'write'."""
        merger.merge_coverage(tmp_path / "merged.bedgraph", coverage_shards)

        assert echoed == [f"0\t{coverage_shards[0]}", f"1\t{coverage_shards[1]}", "", "write"]

    def test_single_shard_recompressed(self, merger: ShardMerger, tmp_path: Path) -> None:
        """Adjacent runs of equal depth in one shard are joined."""
        shard = tmp_path / "s.bedgraph"
        shard.write_text("chr1\t0\t5\t2\nchr1\t5\t8\t2\n")
        output = tmp_path / "merged.bedgraph"

        merger.merge_coverage(output, [shard])

        assert output.read_text() == "chr1\t0\t8\t2\n"

    def test_malformed_row(self, merger: ShardMerger, tmp_path: Path) -> None:
        """A bad row raises and nothing is written."""
        shard = tmp_path / "bad.bedgraph"
        shard.write_text("track type=bedgraph\nchr1\tzero\t5\t1\n")
        output = tmp_path / "merged.bedgraph"

        with pytest.raises(ShardFormatError) as exc_info:
            merger.merge_coverage(output, [shard])

        assert exc_info.value.line_number == 2
        assert not output.exists()

    def test_missing_shard(self, merger: ShardMerger, tmp_path: Path) -> None:
        """A missing shard raises FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            merger.merge_coverage(tmp_path / "out.bedgraph", [tmp_path / "missing.bedgraph"])

    def test_order_independent(self, tmp_path: Path) -> None:
        """Shards with identical headers merge byte-identically in any order."""
        shards = write_shards(tmp_path, COVERAGE_SHARDS, ".bedgraph")

        outputs = []
        for order in (shards, shards[::-1], [shards[1], shards[0], shards[2]]):
            output = tmp_path / f"merged_{len(outputs)}.bedgraph"
            quiet_merger().merge_coverage(output, order)
            outputs.append(output.read_bytes())

        assert outputs[0] == outputs[1] == outputs[2]

    def test_grouping_independent(self, tmp_path: Path) -> None:
        """Merging a merged pair with the third shard equals merging all three."""
        a, b, c = write_shards(tmp_path, COVERAGE_SHARDS, ".bedgraph")
        pair = tmp_path / "ab.bedgraph"
        nested = tmp_path / "ab_c.bedgraph"
        flat = tmp_path / "abc.bedgraph"

        quiet_merger().merge_coverage(pair, [a, b])
        quiet_merger().merge_coverage(nested, [pair, c])
        quiet_merger().merge_coverage(flat, [a, b, c])

        assert nested.read_bytes() == flat.read_bytes()

    def test_creates_output_directory(self, coverage_shards: list[Path], tmp_path: Path) -> None:
        """A missing output directory is created."""
        output = tmp_path / "merged" / "coverage.bedgraph"

        quiet_merger().merge_coverage(output, coverage_shards)

        assert output.exists()

    def test_threaded_matches_serial(
        self, coverage_shards: list[Path], tmp_path: Path
    ) -> None:
        """Worker count does not change the output."""
        serial = tmp_path / "serial.bedgraph"
        threaded = tmp_path / "threaded.bedgraph"
        ShardMerger(n_workers=1, echo=lambda line: None).merge_coverage(serial, coverage_shards)
        ShardMerger(n_workers=4, echo=lambda line: None).merge_coverage(threaded, coverage_shards)

        assert serial.read_bytes() == threaded.read_bytes()


# =============================================================================
# Introns
# =============================================================================


class TestMergeIntrons:
    """Tests for ShardMerger.merge_introns."""

    def test_counts_summed(
        self, merger: ShardMerger, intron_shards: list[Path], tmp_path: Path
    ) -> None:
        """Shared junctions sum; first-shard headers are kept."""
        output = tmp_path / "merged.gff"

        summary = merger.merge_introns(output, intron_shards)

        assert output.read_text() == (
            "##gff-version 3\n"
            "chr1\tRNAseq\tintron\t51\t91\t2\t.\t.\t.\n"
            "chr1\tRNAseq\tintron\t101\t201\t6\t+\t.\t.\n"
            "chr2\tRNAseq\tintron\t11\t61\t1\t-\t.\t.\n"
        )
        assert summary.n_records == 3
        assert summary.n_shards == 2
        assert summary.lengths is not None
        assert summary.lengths.counts == {40: 1, 100: 1, 50: 1}

    def test_order_independent(self, tmp_path: Path) -> None:
        """Shards with identical headers merge byte-identically in any order."""
        shards = write_shards(tmp_path, INTRON_SHARDS, ".gff")

        outputs = []
        for order in (shards, shards[::-1], [shards[1], shards[0], shards[2]]):
            output = tmp_path / f"merged_{len(outputs)}.gff"
            quiet_merger(n_workers=2).merge_introns(output, order)
            outputs.append(output.read_bytes())

        assert outputs[0] == outputs[1] == outputs[2]

    def test_grouping_independent(self, tmp_path: Path) -> None:
        """Merging a merged pair with the third shard equals merging all three."""
        a, b, c = write_shards(tmp_path, INTRON_SHARDS, ".gff")
        pair = tmp_path / "ab.gff"
        nested = tmp_path / "ab_c.gff"
        flat = tmp_path / "abc.gff"

        quiet_merger().merge_introns(pair, [a, b])
        quiet_merger().merge_introns(nested, [pair, c])
        quiet_merger().merge_introns(flat, [a, b, c])

        assert nested.read_bytes() == flat.read_bytes()

    def test_malformed_row(self, merger: ShardMerger, tmp_path: Path) -> None:
        """Rows with too few columns raise ShardFormatError."""
        shard = tmp_path / "bad.gff"
        shard.write_text("chr1\tRNAseq\tintron\t5\t50\n")

        with pytest.raises(ShardFormatError):
            merger.merge_introns(tmp_path / "merged.gff", [shard])

    def test_no_shards(self, merger: ShardMerger, echoed: list[str], tmp_path: Path) -> None:
        """No input writes an empty file."""
        output = tmp_path / "merged.gff"

        summary = merger.merge_introns(output, [])

        assert output.read_text() == ""
        assert summary.n_records == 0
        assert echoed == ["", "write"]
