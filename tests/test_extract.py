"""Unit tests for evidenceforge.core.extract module.

Tests cover:
- Intron collection with strands and repositioning
- Context and length-support filtering
- Coverage collection and output files
- Repositioning table parsing
"""

from pathlib import Path

import pytest

from evidenceforge.config import Stranded
from evidenceforge.core.extract import (
    COVERAGE_FILE,
    FORWARD_COVERAGE_FILE,
    INTRON_FILE,
    REVERSE_COVERAGE_FILE,
    EvidenceExtractor,
    read_repositioning,
)
from evidenceforge.core.filters import ReadFilter
from evidenceforge.core.splice_stats import SpliceStatistics
from evidenceforge.io.bam import BamAlignmentSource


@pytest.fixture
def extractor() -> EvidenceExtractor:
    """Unstranded extractor accepting every read."""
    return EvidenceExtractor(ReadFilter(min_quality=0))


# =============================================================================
# Introns
# =============================================================================


class TestIntronCollection:
    """Tests for intron accumulation."""

    def test_gff_coordinates(self, extractor: EvidenceExtractor, make_record) -> None:
        """0-based gap [110, 300) becomes GFF start 111, end 301."""
        extractor.add(make_record([(100, 10), (300, 10)]))

        records = list(extractor.filtered_introns().records())

        assert [(r.seqid, r.start, r.end, r.strand, r.count) for r in records] == [
            ("chr1", 111, 301, ".", 1)
        ]

    def test_counts_accumulate(self, extractor: EvidenceExtractor, make_record) -> None:
        """Reads sharing a junction add up."""
        for _ in range(3):
            extractor.add(make_record([(100, 10), (300, 10)]))

        assert extractor.introns.count("chr1", 111, 301, ".") == 3

    def test_min_intron_length(self, make_record) -> None:
        """Short gaps are not introns but are filled into coverage."""
        extractor = EvidenceExtractor(ReadFilter(min_quality=0), min_intron_length=5)

        extractor.add(make_record([(0, 5), (8, 5)]))

        assert len(extractor.introns) == 0
        assert extractor.forward_coverage.depth_at("chr1", 6) == 1

    def test_deletion_is_not_an_intron(self, extractor: EvidenceExtractor, make_record) -> None:
        """50M2D50M adds coverage over the deletion but no junction."""
        extractor.add(make_record([(100, 50), (152, 50)], skips=[]))

        assert len(extractor.introns) == 0
        assert extractor.report.n_split == 0
        assert extractor.report.mapping_qualities.rows() == [(60, 1, 1, 0)]
        assert extractor.forward_coverage.depth_at("chr1", 151) == 1

    @pytest.mark.parametrize(
        "stranded,is_reverse,expected",
        [
            (Stranded.FR_SECOND_STRAND, False, "+"),
            (Stranded.FR_SECOND_STRAND, True, "-"),
            (Stranded.FR_FIRST_STRAND, False, "-"),
            (Stranded.FR_FIRST_STRAND, True, "+"),
        ],
    )
    def test_stranded(self, make_record, stranded: Stranded, is_reverse: bool, expected: str) -> None:
        """Stranded libraries assign the transcript strand."""
        extractor = EvidenceExtractor(ReadFilter(min_quality=0), stranded=stranded)

        extractor.add(make_record([(100, 10), (300, 10)], is_reverse=is_reverse))

        assert [r.strand for r in extractor.introns.records()] == [expected]

    def test_repositioning(self, make_record) -> None:
        """Split references are mapped back with their offset."""
        extractor = EvidenceExtractor(
            ReadFilter(min_quality=0), repositioning={"chr1_b": ("chr1", 1000)}
        )

        extractor.add(make_record([(0, 10), (100, 10)], reference_name="chr1_b"))

        assert extractor.introns.count("chr1", 1011, 1101, ".") == 1
        assert extractor.forward_coverage.depth_at("chr1", 1000) == 1
        assert "chr1_b" not in extractor.forward_coverage


class TestIntronFiltering:
    """Tests for the context and length-support rules."""

    def test_min_context(self, make_record) -> None:
        """An intron needs one read with a long enough shortest block."""
        extractor = EvidenceExtractor(ReadFilter(min_quality=0), min_context=8)
        extractor.add(make_record([(100, 5), (300, 20)]))
        extractor.add(make_record([(500, 5), (700, 20)]))
        extractor.add(make_record([(490, 15), (700, 10)]))

        kept = extractor.filtered_introns()

        assert [r.start for r in kept.records()] == [506]
        assert kept.count("chr1", 506, 701, ".") == 2
        assert extractor.report.n_introns_removed_context == 1

    def test_length_support(self, make_record) -> None:
        """Long introns need more reads when sensitivity is positive."""
        stats = SpliceStatistics(200.0, 100.0, 100.0, sensitivity=2.0)
        extractor = EvidenceExtractor(ReadFilter(min_quality=0), splice_stats=stats)
        for _ in range(3):
            extractor.add(make_record([(0, 10), (410, 10)]))  # length 400 needs 4
        extractor.add(make_record([(1000, 10), (1110, 10)]))  # length 100

        kept = extractor.filtered_introns()

        assert [r.length for r in kept.records()] == [100]
        assert extractor.report.n_introns_removed_support == 1

    def test_zero_sensitivity_disables_support(self, make_record) -> None:
        """With sensitivity 0 the support rule is skipped."""
        stats = SpliceStatistics(200.0, 100.0, 100.0, sensitivity=0.0)
        extractor = EvidenceExtractor(ReadFilter(min_quality=0), splice_stats=stats)
        extractor.add(make_record([(0, 10), (5010, 10)]))

        assert len(extractor.filtered_introns()) == 1

    def test_kept_table_has_gff_header(self, extractor: EvidenceExtractor) -> None:
        """Filtered introns carry the GFF version header."""
        assert extractor.filtered_introns().headers == ["##gff-version 3"]


# =============================================================================
# Read Selection
# =============================================================================


class TestReadSelection:
    """Tests for read filtering and secondary alignments."""

    def test_low_quality_ignored(self, make_record) -> None:
        """Rejected reads contribute nothing."""
        extractor = EvidenceExtractor(ReadFilter(min_quality=30))

        assert not extractor.add(make_record([(100, 10), (300, 10)], mapping_quality=10))
        assert len(extractor.introns) == 0
        assert len(extractor.forward_coverage) == 0
        assert extractor.report.filter_counts.low_quality == 1

    def test_secondary_skipped(self, make_record) -> None:
        """use_secondary=False drops secondary and supplementary records."""
        extractor = EvidenceExtractor(ReadFilter(min_quality=0), use_secondary=False)

        extractor.add(make_record([(0, 10)], is_secondary=True))
        extractor.add(make_record([(0, 10)], is_supplementary=True))
        extractor.add(make_record([(0, 10)]))

        assert extractor.report.n_secondary_skipped == 2
        assert extractor.report.n_used == 1

    def test_mapping_quality_table(self, make_record) -> None:
        """Reads are tallied per mapping quality."""
        extractor = EvidenceExtractor(ReadFilter(min_quality=30))
        extractor.add(make_record([(0, 10)], mapping_quality=10))
        extractor.add(make_record([(0, 10), (100, 10)], mapping_quality=60))

        assert extractor.report.mapping_qualities.rows() == [(10, 1, 0, 0), (60, 1, 1, 1)]

    def test_mapping_quality_tsv(self, make_record, tmp_path: Path) -> None:
        """The mapping quality table is written with a header line."""
        extractor = EvidenceExtractor(ReadFilter(min_quality=30))
        extractor.add(make_record([(0, 10)], mapping_quality=10))
        extractor.add(make_record([(0, 10), (100, 10)], mapping_quality=60))
        path = tmp_path / "mapq.tsv"

        extractor.report.mapping_qualities.write_tsv(path)

        assert path.read_text().splitlines() == [
            "mapping_quality\tseen\tused\tsplit",
            "10\t1\t0\t0",
            "60\t1\t1\t1",
        ]


# =============================================================================
# Output
# =============================================================================


class TestWrite:
    """Tests for EvidenceExtractor.write."""

    def test_unstranded_files(
        self, extractor: EvidenceExtractor, make_record, tmp_path: Path
    ) -> None:
        """Unstranded runs write one coverage track."""
        extractor.add(make_record([(100, 10), (300, 10)]))

        report = extractor.write(tmp_path / "out")

        assert sorted(p.name for p in report.files) == [COVERAGE_FILE, INTRON_FILE]
        assert (tmp_path / "out" / INTRON_FILE).read_text() == (
            "##gff-version 3\nchr1\tRNAseq\tintron\t111\t301\t1\t.\t.\t.\n"
        )
        assert (tmp_path / "out" / COVERAGE_FILE).read_text() == (
            "track type=bedgraph\nchr1\t100\t110\t1\nchr1\t300\t310\t1\n"
        )
        assert report.n_introns == 1
        assert report.min_intron_length == report.max_intron_length == 190

    def test_stranded_files(self, make_record, tmp_path: Path) -> None:
        """Stranded runs split coverage by strand."""
        extractor = EvidenceExtractor(
            ReadFilter(min_quality=0), stranded=Stranded.FR_SECOND_STRAND
        )
        extractor.add(make_record([(0, 10)]))
        extractor.add(make_record([(50, 10)], is_reverse=True))

        extractor.write(tmp_path)

        assert (tmp_path / FORWARD_COVERAGE_FILE).read_text().splitlines()[1:] == ["chr1\t0\t10\t1"]
        assert (tmp_path / REVERSE_COVERAGE_FILE).read_text().splitlines()[1:] == ["chr1\t50\t60\t1"]

    def test_no_coverage(self, make_record, tmp_path: Path) -> None:
        """coverage=False writes introns only."""
        extractor = EvidenceExtractor(ReadFilter(min_quality=0), coverage=False)
        extractor.add(make_record([(0, 10)]))

        report = extractor.write(tmp_path)

        assert [p.name for p in report.files] == [INTRON_FILE]
        assert not (tmp_path / COVERAGE_FILE).exists()

    def test_from_sam(self, sam_file: Path, tmp_path: Path) -> None:
        """A SAM file streams through the extractor."""
        extractor = EvidenceExtractor(ReadFilter(min_quality=20), use_secondary=False)
        with BamAlignmentSource(sam_file) as source:
            extractor.process(source)

        report = extractor.write(tmp_path)

        assert report.n_reads == 4
        assert report.n_used == 2
        assert report.n_secondary_skipped == 1
        assert report.filter_counts.low_quality == 1
        assert (tmp_path / INTRON_FILE).read_text().splitlines()[1:] == [
            "chr1\tRNAseq\tintron\t206\t306\t1\t.\t.\t."
        ]


# =============================================================================
# Repositioning
# =============================================================================


class TestReadRepositioning:
    """Tests for read_repositioning."""

    def test_parse(self, tmp_path: Path) -> None:
        """Rows map split names to (original, offset); comments are skipped."""
        path = tmp_path / "repos.tsv"
        path.write_text("# split\toriginal\toffset\nchr1_a\tchr1\t0\nchr1_b\tchr1\t500000\n\n")

        assert read_repositioning(path) == {"chr1_a": ("chr1", 0), "chr1_b": ("chr1", 500000)}

    def test_short_row(self, tmp_path: Path) -> None:
        """Rows with fewer than 3 columns are rejected."""
        path = tmp_path / "repos.tsv"
        path.write_text("chr1_a\tchr1\n")

        with pytest.raises(ValueError, match="expected 3 columns"):
            read_repositioning(path)

    def test_bad_offset(self, tmp_path: Path) -> None:
        """Offsets must be integers."""
        path = tmp_path / "repos.tsv"
        path.write_text("chr1_a\tchr1\tten\n")

        with pytest.raises(ValueError, match="invalid offset"):
            read_repositioning(path)
