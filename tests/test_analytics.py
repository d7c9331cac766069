"""Tests for year-over-year growth and threshold-run statistics."""

from __future__ import annotations

import math

import pytest
from margin_monitor import analytics, parsing, synth


def _series(values: list[float], start_year: int = 2000) -> list[parsing.RawObservation]:
    return [
        {"month_key": f"{start_year + idx // 12:04d}-{idx % 12 + 1:02d}", "value": float(value)}
        for idx, value in enumerate(values)
    ]


def _growths(growths: list[float | None]) -> list[analytics.EnrichedObservation]:
    return [
        {"month_key": f"2010-{idx + 1:02d}", "value": 1.0, "yoy_growth_pct": growth}
        for idx, growth in enumerate(growths)
    ]


def test_compute_yoy_is_null_for_first_twelve_months() -> None:
    enriched = analytics.compute_yoy(_series([100 + idx for idx in range(30)]))

    assert len(enriched) == 30
    assert all(row["yoy_growth_pct"] is None for row in enriched[:12])
    assert all(math.isfinite(row["yoy_growth_pct"]) for row in enriched[12:])
    assert enriched[12]["yoy_growth_pct"] == 12.0  # 112 / 100


def test_thirteen_month_example_opens_an_above_run() -> None:
    enriched = analytics.compute_yoy(_series([100] * 12 + [140]))

    assert [row["yoy_growth_pct"] for row in enriched[:12]] == [None] * 12
    assert enriched[12]["yoy_growth_pct"] == 40.0

    stats = analytics.compute_threshold_runs(enriched, upper=30, lower=-30)
    assert stats["current"] == {
        "state": "above_upper",
        "run_length_so_far": 1,
        "latest_growth_pct": 40.0,
    }
    assert stats["above"]["lengths"] == []
    assert stats["above"]["occurrence_count"] == 0


def test_closing_the_open_run_moves_it_into_completed_runs() -> None:
    enriched = analytics.compute_yoy(_series([100] * 12 + [140, 100]))
    assert enriched[13]["yoy_growth_pct"] == 0.0

    stats = analytics.compute_threshold_runs(enriched, upper=30, lower=-30)
    assert stats["above"]["lengths"] == [1]
    assert stats["above"]["runs"] == [
        {"length": 1, "start_index": 12, "start_month": "2001-01", "end_month": "2001-01"}
    ]
    assert stats["current"]["state"] == "neutral"
    assert stats["current"]["run_length_so_far"] == 0


def test_zero_prior_value_gives_null_growth() -> None:
    enriched = analytics.compute_yoy(_series([0] + [100] * 12))
    assert enriched[12]["yoy_growth_pct"] is None


def test_no_threshold_crossings_is_neutral_with_empty_runs() -> None:
    stats = analytics.compute_threshold_runs(_growths([None, 5.0, -29.9, 29.9, 0.0]), 30, -30)

    assert stats["current"]["state"] == "neutral"
    assert stats["current"]["run_length_so_far"] == 0
    for zone in ("above", "below"):
        assert stats[zone]["lengths"] == []
        assert stats[zone]["occurrence_count"] == 0
        assert stats[zone]["average_length"] == 0


def test_null_growth_breaks_a_run() -> None:
    stats = analytics.compute_threshold_runs(_growths([35.0, 40.0, None, 45.0]), 30, -30)

    assert stats["above"]["lengths"] == [2]
    assert stats["above"]["runs"][0]["start_index"] == 0
    assert stats["above"]["runs"][0]["end_month"] == "2010-02"
    assert stats["current"]["state"] == "above_upper"
    assert stats["current"]["run_length_so_far"] == 1


def test_thresholds_are_inclusive_and_zones_switch_directly() -> None:
    stats = analytics.compute_threshold_runs(_growths([30.0, -30.0, -45.0, 0.0]), 30, -30)

    assert stats["above"]["lengths"] == [1]
    assert stats["below"]["lengths"] == [2]
    assert stats["below"]["runs"][0]["start_index"] == 1
    assert stats["current"]["state"] == "neutral"


def test_neutral_status_still_reports_latest_growth() -> None:
    stats = analytics.compute_threshold_runs(_growths([-40.0, -12.5]), 30, -30)

    assert stats["current"] == {
        "state": "neutral",
        "run_length_so_far": 0,
        "latest_growth_pct": -12.5,
    }
    assert stats["below"]["lengths"] == [1]


def test_average_and_occurrences_over_completed_runs() -> None:
    growths = [31.0, 31.0, 0.0, 31.0, 31.0, 31.0, 31.0, 0.0, -31.0, -31.0, -31.0]
    stats = analytics.compute_threshold_runs(_growths(growths), 30, -30)

    assert stats["above"]["lengths"] == [2, 4]
    assert stats["above"]["occurrence_count"] == 2
    assert stats["above"]["average_length"] == 3.0
    # Still open at the end, so not counted
    assert stats["below"]["lengths"] == []
    assert stats["current"]["state"] == "below_lower"
    assert stats["current"]["run_length_so_far"] == 3


def test_thresholds_are_parameters() -> None:
    stats = analytics.compute_threshold_runs(_growths([15.0, 12.0]), upper=10, lower=-10)
    assert stats["current"]["state"] == "above_upper"
    assert stats["current"]["run_length_so_far"] == 2
    assert (stats["upper"], stats["lower"]) == (10.0, -10.0)


@pytest.mark.parametrize(("upper", "lower"), [(30, 30), (-30, 30)])
def test_invalid_thresholds_raise(upper: float, lower: float) -> None:
    with pytest.raises(ValueError):
        analytics.compute_threshold_runs(_growths([1.0]), upper, lower)


def test_empty_series() -> None:
    assert analytics.compute_yoy([]) == []
    stats = analytics.compute_threshold_runs([], 30, -30)
    assert stats["current"] == {"state": "neutral", "run_length_so_far": 0, "latest_growth_pct": None}


@pytest.mark.parametrize(
    ("value", "expected"),
    [(0.25, 0.3), (-0.25, -0.3), (40.0, 40.0), (12.34, 12.3), (-7.06, -7.1)],
)
def test_rounding_is_half_away_from_zero(value: float, expected: float) -> None:
    assert analytics._round_half_away(value) == expected


def test_slice_time_range() -> None:
    series = _series(list(range(1, 200)))
    assert len(analytics.slice_time_range(series, "all")) == 199
    assert len(analytics.slice_time_range(series, "10y")) == 120
    assert analytics.slice_time_range(series, "2y") == series[-24:]
    with pytest.raises(ValueError):
        analytics.slice_time_range(series, "3y")


def test_build_dashboard_payload_on_synthetic_history() -> None:
    frame = synth.generate_margin_series(months=240, seed=synth.DEFAULT_SEED)
    series = parsing.parse_table(synth.to_csv_text(frame), "csv")

    payload = analytics.build_dashboard_payload(series, upper=30, lower=-30, time_range="5y")

    assert len(payload["data"]) == 240
    assert len(payload["window"]) == 60
    assert payload["latest"] == payload["data"][-1]
    assert payload["latest"]["value_bn"] == pytest.approx(payload["latest"]["value"] / 1000)
    assert payload["peaks"]["dotcom"]["month_key"] == "2000-03"
    # Series ends in 2016, so the 2021 peak falls back to the latest month
    assert payload["peaks"]["pandemic"] == payload["latest"]

    full_stats = analytics.compute_threshold_runs(analytics.compute_yoy(series), 30, -30)
    assert payload["stats"] == full_stats

    growths = [row["yoy_growth_pct"] for row in payload["data"] if row["yoy_growth_pct"] is not None]
    assert max(growths) >= 30
    assert min(growths) <= -30


def test_summarize_allocation_ignores_missing_values() -> None:
    records = [
        {"month_key": "2020-02", "stocks": 70.0, "bonds": None, "cash": 20.0},
        {"month_key": "2020-01", "stocks": 60.0, "bonds": 15.0, "cash": 25.0},
        {"month_key": "2020-03", "stocks": 65.0, "bonds": 17.0, "cash": None},
    ]
    summary = analytics.summarize_allocation(records)

    assert summary["latest_month"] == "2020-03"
    assert summary["stocks"] == {"current": 65.0, "average": 65.0, "minimum": 60.0, "maximum": 70.0}
    assert summary["bonds"]["average"] == 16.0
    assert summary["cash"]["current"] is None
    assert summary["cash"]["maximum"] == 25.0


def test_summarize_allocation_empty() -> None:
    summary = analytics.summarize_allocation([])
    assert summary["latest_month"] is None
    assert summary["stocks"]["average"] is None
