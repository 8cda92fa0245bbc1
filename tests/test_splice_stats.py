"""Unit tests for evidenceforge.core.splice_stats module."""

import math

import pytest

from evidenceforge.core.splice_stats import SpliceStatistics


class TestFromSources:
    """Tests for SpliceStatistics.from_sources."""

    def test_gap_statistics(self, make_record) -> None:
        """Gap length is |B.start - A.end| + 1; mean and population sd."""
        source = [
            make_record([(0, 10), (109, 10)]),  # gap 99 + 1 = 100
            make_record([(0, 10), (309, 10)]),  # gap 299 + 1 = 300
        ]

        stats = SpliceStatistics.from_sources(0, 1.0, [source])

        assert stats.n_gaps == 2
        assert stats.mean_gap_length == pytest.approx(200.0)
        assert stats.std_gap_length == pytest.approx(100.0)

    def test_read_length_over_all_records(self, make_record) -> None:
        """Mean read length includes unspliced reads."""
        source = [make_record([(0, 10)]), make_record([(0, 10), (100, 20)])]

        stats = SpliceStatistics.from_sources(0, 1.0, [source])

        assert stats.n_reads == 2
        assert stats.mean_read_length == pytest.approx(20.0)

    def test_multiple_sources(self, make_record) -> None:
        """Every source is streamed."""
        first = [make_record([(0, 10), (109, 10)])]
        second = [make_record([(0, 10), (309, 10)])]

        stats = SpliceStatistics.from_sources(0, 1.0, [first, second])

        assert stats.n_gaps == 2
        assert stats.n_reads == 2

    def test_min_intron_length_excludes_short_gaps(self, make_record) -> None:
        """Gaps not longer than min_intron_length are ignored."""
        source = [make_record([(0, 10), (14, 10), (209, 10)])]  # gaps 5 and 186

        stats = SpliceStatistics.from_sources(5, 1.0, [source])

        assert stats.n_gaps == 1
        assert stats.mean_gap_length == pytest.approx(186.0)
        assert stats.std_gap_length == pytest.approx(0.0)

    def test_no_gaps_gives_nan(self, make_record, caplog) -> None:
        """Without qualifying gaps the statistics are NaN and a warning is logged."""
        stats = SpliceStatistics.from_sources(0, 1.0, [[make_record([(0, 10)])]])

        assert math.isnan(stats.mean_gap_length)
        assert math.isnan(stats.std_gap_length)
        assert "undefined" in caplog.text

    def test_no_reads(self) -> None:
        """Empty input gives NaN everywhere."""
        stats = SpliceStatistics.from_sources(0, 1.0, [[]])

        assert stats.n_reads == 0
        assert math.isnan(stats.mean_read_length)


class TestIsSupported:
    """Tests for SpliceStatistics.is_supported."""

    def test_threshold(self) -> None:
        """threshold = sensitivity * (gap - mean) / sd."""
        stats = SpliceStatistics(200.0, 100.0, 100.0, sensitivity=2.0)

        assert stats.threshold(400) == pytest.approx(4.0)
        assert stats.is_supported(400, 4)
        assert not stats.is_supported(400, 3)

    def test_short_gaps_always_supported(self) -> None:
        """Gaps shorter than the mean have a negative threshold."""
        stats = SpliceStatistics(200.0, 100.0, 100.0, sensitivity=2.0)

        assert stats.is_supported(50, 0)

    def test_nan_rejects(self) -> None:
        """Undefined statistics reject every junction."""
        stats = SpliceStatistics(float("nan"), float("nan"), float("nan"), sensitivity=1.0)

        assert not stats.is_supported(100, 1_000)

    def test_zero_sd(self) -> None:
        """A zero sd gives an infinite threshold above the mean."""
        stats = SpliceStatistics(100.0, 0.0, 50.0, sensitivity=1.0)

        assert not stats.is_supported(200, 1_000)
        assert stats.is_supported(50, 0)

    def test_frozen(self) -> None:
        """Statistics are read-only."""
        stats = SpliceStatistics(100.0, 10.0, 50.0, sensitivity=1.0)

        with pytest.raises(AttributeError):
            stats.mean_gap_length = 1.0
