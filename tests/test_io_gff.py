"""Unit tests for evidenceforge.io.gff module.

Tests cover:
- Intron row parsing and formatting
- Intron file streaming (headers, ##FASTA, error reporting)
- Attribute parsing and feature iteration
"""

from pathlib import Path

import pytest

from evidenceforge.exceptions import IntronFormatError, ShardFormatError
from evidenceforge.io.gff import (
    IntronKey,
    IntronRecord,
    format_intron_line,
    iter_features,
    parse_attributes,
    parse_intron_line,
    read_intron_file,
    write_intron_file,
)


# =============================================================================
# Intron Row Tests
# =============================================================================


class TestIntronRecord:
    """Tests for IntronRecord."""

    def test_key_and_length(self) -> None:
        """Key drops the count; length is end - start."""
        record = IntronRecord("chr1", 101, 201, "+", 4)

        assert record.key == IntronKey("chr1", 101, 201, "+")
        assert record.length == 100

    def test_to_line(self) -> None:
        """Rows have 9 columns with count in the score column."""
        line = IntronRecord("chr1", 101, 201, "-", 4).to_line()

        assert line == "chr1\tRNAseq\tintron\t101\t201\t4\t-\t.\t."
        assert line == format_intron_line("chr1", 101, 201, "-", 4)


class TestParseIntronLine:
    """Tests for parse_intron_line."""

    def test_nine_columns(self) -> None:
        """A full GFF row parses."""
        record = parse_intron_line("chr1\tRNAseq\tintron\t101\t201\t4\t+\t.\t.")

        assert record == IntronRecord("chr1", 101, 201, "+", 4)

    def test_seven_columns(self) -> None:
        """Seven columns are enough."""
        record = parse_intron_line("chr1\tsrc\tintron\t5\t50\t2\t.")

        assert record.strand == "."
        assert record.count == 2

    def test_too_few_columns(self) -> None:
        """Fewer than 7 columns is a format error."""
        with pytest.raises(ShardFormatError, match="at least 7 columns"):
            parse_intron_line("chr1\tsrc\tintron\t5\t50\t2")

    def test_non_numeric_count(self) -> None:
        """A non-integer score is a format error."""
        with pytest.raises(ShardFormatError, match="non-numeric"):
            parse_intron_line("chr1\tsrc\tintron\t5\t50\t.\t+")

    def test_invalid_strand(self) -> None:
        """Strands other than +, - and . are rejected."""
        with pytest.raises(ShardFormatError, match="invalid strand"):
            parse_intron_line("chr1\tsrc\tintron\t5\t50\t1\tx")


# =============================================================================
# Intron File Tests
# =============================================================================


class TestIntronFiles:
    """Tests for reading and writing intron files."""

    def test_read(self, intron_shards: list[Path]) -> None:
        """Headers and records come back in file order."""
        headers, records = read_intron_file(intron_shards[1])

        assert headers == ["##gff-version 3", "# second shard"]
        assert [r.start for r in records] == [101, 51]

    def test_stops_at_fasta(self, tmp_path: Path) -> None:
        """Nothing after ##FASTA is parsed."""
        path = tmp_path / "introns.gff"
        path.write_text(
            "chr1\tRNAseq\tintron\t101\t201\t3\t+\t.\t.\n##FASTA\n>chr1\nACGT\n"
        )

        _, records = read_intron_file(path)

        assert len(records) == 1

    def test_first_row_error(self, tmp_path: Path) -> None:
        """An unparseable first data row raises IntronFormatError."""
        path = tmp_path / "bad.gff"
        path.write_text("##gff-version 3\nnot an intron row\n")

        with pytest.raises(IntronFormatError):
            read_intron_file(path)

    def test_later_row_error(self, tmp_path: Path) -> None:
        """Later malformed rows raise a plain ShardFormatError."""
        path = tmp_path / "bad.gff"
        path.write_text("chr1\tRNAseq\tintron\t101\t201\t3\t+\t.\t.\nchr1\tbroken\n")

        with pytest.raises(ShardFormatError) as exc_info:
            read_intron_file(path)

        assert not isinstance(exc_info.value, IntronFormatError)
        assert exc_info.value.line_number == 2

    def test_write(self, tmp_path: Path) -> None:
        """Headers precede rows."""
        path = tmp_path / "out.gff"

        n = write_intron_file(path, [IntronRecord("chr1", 1, 9, "+", 2)], ["##gff-version 3"])

        assert n == 1
        assert path.read_text() == "##gff-version 3\nchr1\tRNAseq\tintron\t1\t9\t2\t+\t.\t.\n"


# =============================================================================
# Attribute Tests
# =============================================================================


class TestParseAttributes:
    """Tests for parse_attributes."""

    def test_basic(self) -> None:
        """key=value pairs split on semicolons."""
        assert parse_attributes("ID=g1;Name=abc") == {"ID": "g1", "Name": "abc"}

    def test_empty(self) -> None:
        """'.' and empty strings give no attributes."""
        assert parse_attributes(".") == {}
        assert parse_attributes("") == {}

    def test_url_decoding(self) -> None:
        """Escaped separators are decoded."""
        assert parse_attributes("Note=a%3Bb%3Dc%2Cd") == {"Note": "a;b=c,d"}

    def test_trailing_semicolon(self) -> None:
        """Empty items are skipped."""
        assert parse_attributes("ID=g1;") == {"ID": "g1"}


class TestIterFeatures:
    """Tests for iter_features."""

    def test_type_filter(self, tmp_path: Path) -> None:
        """Only features of the requested type are yielded."""
        path = tmp_path / "ann.gff"
        path.write_text(
            "##gff-version 3\n"
            "chr1\tsrc\tgene\t1\t100\t.\t+\t.\tID=g1\n"
            "chr1\tsrc\tmRNA\t1\t100\t.\t+\t.\tID=t1;Parent=g1;tie=1\n"
        )

        features = list(iter_features(path, "mRNA"))

        assert len(features) == 1
        parts, attributes = features[0]
        assert parts[2] == "mRNA"
        assert attributes == {"ID": "t1", "Parent": "g1", "tie": "1"}

    def test_short_rows_skipped(self, tmp_path: Path) -> None:
        """Rows with fewer than 9 columns are skipped."""
        path = tmp_path / "ann.gff"
        path.write_text("chr1\tsrc\tmRNA\t1\t100\n")

        assert list(iter_features(path)) == []
