"""
Unit tests for late effects monitoring adherence.
"""

import logging
from datetime import date

import pytest

from eadapt.adherence import (
    LEMP_TESTS,
    LempData,
    PatientAdapt,
    Stats,
    biggest_gap,
    codeset_freq_stats,
    percentile_to_rank,
)
from eadapt.read2.codeset import CodeSet
from eadapt.records import Adapt, Adapts

END = date(2021, 6, 1)
TESTS_BY_KEY = {test.key: test for test in LEMP_TESTS}


def make_adapt(patient_id, review_date=date(2017, 6, 1), **flags):
    return Adapt(
        patient_id,
        "Hodgkin lymphoma",
        None,
        date(2016, 1, 1),
        review_date,
        review_date,
        review_date,
        **flags,
    )


@pytest.fixture
def adapts():
    return Adapts(
        [
            make_adapt(1, chemo_doxorubicin=True),
            make_adapt(2, radiation_lungs=True),
            make_adapt(99, chemo_doxorubicin=True),
        ]
    )


class TestPercentiles:
    """Test percentile ranks."""

    def test_rank(self):
        assert percentile_to_rank(0.25, 4) == 0
        assert percentile_to_rank(0.5, 4) == 1
        assert percentile_to_rank(0.75, 4) == 2

    def test_rank_clamped(self):
        assert percentile_to_rank(0.0, 4) == 0
        assert percentile_to_rank(1.0, 4) == 3
        assert percentile_to_rank(0.5, 1) == 0

    def test_invalid(self):
        with pytest.raises(ValueError):
            percentile_to_rank(1.5, 4)
        with pytest.raises(ValueError):
            percentile_to_rank(0.5, 0)


class TestBiggestGap:
    """Test the longest gap between tests."""

    def test_gap(self):
        dates = [date(2020, 3, 1), date(2020, 4, 1)]
        assert biggest_gap(date(2020, 1, 1), date(2020, 12, 31), dates) == 274

    def test_no_dates(self):
        assert biggest_gap(date(2020, 1, 1), date(2020, 12, 31), []) == 365

    def test_dates_outside_window_ignored(self):
        dates = [date(2019, 6, 1), date(2021, 6, 1)]
        assert biggest_gap(date(2020, 1, 1), date(2020, 1, 11), dates) == 10


class TestFreqStats:
    """Test test frequency statistics."""

    def test_stats(self, patients, events):
        joined = PatientAdapt.join(patients, Adapts([make_adapt(1), make_adapt(2)]))
        stats = codeset_freq_stats(CodeSet(["246.."]), joined, events, END)
        assert stats.num_people == 2
        assert stats.count_no_data == 1
        assert stats.rate_mean == pytest.approx(0.25)
        assert stats.rate_sd == pytest.approx(0.25)
        assert stats.rate_25_percentile == pytest.approx(0.0)
        assert stats.rate_75_percentile == pytest.approx(0.5)
        assert stats.longest_median == pytest.approx(731 / 365.25)
        assert stats.longest_mean == pytest.approx((731 / 365.25 + 4.0) / 2)

    def test_adapt_after_end_skipped(self, patients, events, caplog):
        joined = PatientAdapt.join(patients, Adapts([make_adapt(3, date(2022, 1, 1))]))
        with caplog.at_level(logging.WARNING):
            stats = codeset_freq_stats(CodeSet(["246.."]), joined, events, END)
        assert stats.num_people == 0
        assert "is not before" in caplog.text

    def test_empty_table(self):
        table = Stats.empty().table()
        assert len(table) == 10
        assert table.iloc[0]["value"] == "0"
        assert table.iloc[2]["value"] == "nan per year"


class TestLempData:
    """Test the per-test statistics."""

    def test_join_drops_unknown_patients(self, patients, adapts):
        joined = PatientAdapt.join(patients, adapts)
        assert [pa.patient.patient_id for pa in joined] == [1, 2]
        assert joined[0].adapt_date == date(2017, 6, 1)

    def test_indication(self, patients, adapts, events):
        lemp = LempData(patients, adapts, events, {"extract_date": END})
        bp = lemp.stats_for(TESTS_BY_KEY["blood_pressure"], CodeSet(["246.."]))
        assert bp.num_people == 1
        assert bp.rate_mean == pytest.approx(0.5)

        flu = lemp.stats_for(TESTS_BY_KEY["influenza_vaccination"], CodeSet(["65E.."]))
        assert flu.num_people == 1
        assert flu.count_no_data == 1

    def test_code_set_from_termset(self, data_config, temp_dir, patients, adapts, events):
        directory = temp_dir / "termsets" / "blood_pressure_measurement"
        directory.mkdir()
        (directory / "codes.txt").write_text("246..\n2469.\n")
        config = dict(data_config, extract_date="2021-06-01")
        stats = LempData(patients, adapts, events, config).stats_for(TESTS_BY_KEY["blood_pressure"])
        assert stats.num_people == 1
        assert stats.table().iloc[1]["value"] == "1"

    def test_titles(self):
        assert [t.title for t in LEMP_TESTS][:3] == ["BP Stats", "Cholesterol Stats", "Flu Stats"]
