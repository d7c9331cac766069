"""Year-over-year growth and threshold-run analytics for Margin Monitor."""

from __future__ import annotations

import math
from typing import Iterable, Literal, Mapping, Sequence, TypedDict

import numpy as np
import pandas as pd

from . import utils
from .parsing import RawObservation

ZoneState = Literal["neutral", "above_upper", "below_lower"]

YOY_LAG = 12

TIME_RANGES: dict[str, int | None] = {
    "all": None,
    "10y": 120,
    "5y": 60,
    "2y": 24,
}

REFERENCE_PEAKS = {
    "dotcom": "2000-03",
    "pandemic": "2021-10",
}

ALLOCATION_FIELDS = ("stocks", "bonds", "cash")


class EnrichedObservation(RawObservation):
    yoy_growth_pct: float | None


class ThresholdRun(TypedDict):
    length: int
    start_index: int
    start_month: str
    end_month: str


class RunSummary(TypedDict):
    average_length: float
    occurrence_count: int
    lengths: list[int]
    runs: list[ThresholdRun]


class CurrentStatus(TypedDict):
    state: ZoneState
    run_length_so_far: int
    latest_growth_pct: float | None


class ThresholdStats(TypedDict):
    upper: float
    lower: float
    above: RunSummary
    below: RunSummary
    current: CurrentStatus


class DashboardObservation(EnrichedObservation):
    value_bn: float


class DashboardPayload(TypedDict):
    data: list[DashboardObservation]
    window: list[DashboardObservation]
    time_range: str
    latest: DashboardObservation | None
    peaks: dict[str, DashboardObservation | None]
    stats: ThresholdStats


class AllocationObservation(TypedDict):
    month_key: str
    stocks: float | None
    bonds: float | None
    cash: float | None


class FieldSummary(TypedDict):
    current: float | None
    average: float | None
    minimum: float | None
    maximum: float | None


class AllocationSummary(TypedDict):
    latest_month: str | None
    stocks: FieldSummary
    bonds: FieldSummary
    cash: FieldSummary


def _round_half_away(value: float, digits: int = 1) -> float:
    scale = 10**digits
    return math.copysign(math.floor(abs(value) * scale + 0.5), value) / scale


def compute_yoy(series: Sequence[Mapping], lag: int = YOY_LAG) -> list[EnrichedObservation]:
    """Attach year-over-year growth (in percent, one decimal) to each month.

    Growth compares each entry with the one ``lag`` positions earlier, so the
    input must already be sorted by month. The first ``lag`` entries, and any
    entry whose comparison value is zero, get ``None``.
    """

    enriched: list[EnrichedObservation] = []
    for idx, entry in enumerate(series):
        growth: float | None = None
        if idx >= lag:
            prior = series[idx - lag]["value"]
            if prior:
                growth = _round_half_away((entry["value"] / prior - 1) * 100)
        enriched.append(
            {
                "month_key": entry["month_key"],
                "value": entry["value"],
                "yoy_growth_pct": growth,
            }
        )
    return enriched


def _classify(growth: float | None, upper: float, lower: float) -> ZoneState:
    if growth is None:
        return "neutral"
    if growth >= upper:
        return "above_upper"
    if growth <= lower:
        return "below_lower"
    return "neutral"


def _summarize_runs(runs: list[ThresholdRun]) -> RunSummary:
    lengths = [run["length"] for run in runs]
    return {
        "average_length": float(np.mean(lengths)) if lengths else 0.0,
        "occurrence_count": len(lengths),
        "lengths": lengths,
        "runs": runs,
    }


def compute_threshold_runs(
    series: Sequence[Mapping],
    upper: float,
    lower: float,
) -> ThresholdStats:
    """Measure consecutive stretches of growth at or beyond the thresholds.

    Each month is classified as above ``upper``, below ``lower`` or neutral. A
    run is a maximal stretch of one non-neutral zone; months without growth
    data are neutral and therefore end any open run. Runs that have ended are
    collected per zone. A run still open at the final month is reported only
    as the current status, so ``lengths`` holds completed episodes alone.
    """

    if upper <= lower:
        raise ValueError(f"upper threshold ({upper}) must be greater than lower ({lower})")

    completed: dict[ZoneState, list[ThresholdRun]] = {"above_upper": [], "below_lower": []}
    state: ZoneState = "neutral"
    run_start = 0
    run_length = 0

    def _close(end_idx: int) -> None:
        completed[state].append(
            {
                "length": run_length,
                "start_index": run_start,
                "start_month": series[run_start]["month_key"],
                "end_month": series[end_idx]["month_key"],
            }
        )

    for idx, entry in enumerate(series):
        zone = _classify(entry.get("yoy_growth_pct"), upper, lower)
        if zone == state:
            if zone != "neutral":
                run_length += 1
            continue
        if state != "neutral":
            _close(idx - 1)
        state = zone
        run_start = idx
        run_length = 1 if zone != "neutral" else 0

    latest_growth = series[-1].get("yoy_growth_pct") if len(series) else None
    current: CurrentStatus = {
        "state": state,
        "run_length_so_far": run_length if state != "neutral" else 0,
        "latest_growth_pct": latest_growth,
    }

    return {
        "upper": float(upper),
        "lower": float(lower),
        "above": _summarize_runs(completed["above_upper"]),
        "below": _summarize_runs(completed["below_lower"]),
        "current": current,
    }


def enrich_series(
    series: Sequence[RawObservation],
    upper: float,
    lower: float,
) -> tuple[list[EnrichedObservation], ThresholdStats]:
    enriched = compute_yoy(series)
    return enriched, compute_threshold_runs(enriched, upper, lower)


def slice_time_range(series: Sequence[Mapping], time_range: str) -> list:
    """Return the trailing window for ``all``, ``10y``, ``5y`` or ``2y``."""

    if time_range not in TIME_RANGES:
        raise ValueError(f"unknown time range: {time_range!r}")
    months = TIME_RANGES[time_range]
    if months is None:
        return list(series)
    return list(series[-months:])


def find_month(series: Sequence[Mapping], month_key: str, default=None):
    for entry in series:
        if entry["month_key"] == month_key:
            return entry
    return default


def build_dashboard_payload(
    series: Sequence[RawObservation],
    upper: float,
    lower: float,
    time_range: str = "all",
) -> DashboardPayload:
    """Compute everything the margin page renders from one parsed series.

    Threshold statistics always cover the full history; ``time_range`` only
    narrows the ``window`` used for charts.
    """

    enriched, stats = enrich_series(series, upper, lower)
    data: list[DashboardObservation] = [
        {**entry, "value_bn": entry["value"] / 1000} for entry in enriched  # type: ignore[typeddict-item]
    ]

    latest = data[-1] if data else None
    first = data[0] if data else None
    peaks = {
        "dotcom": find_month(data, REFERENCE_PEAKS["dotcom"], first),
        "pandemic": find_month(data, REFERENCE_PEAKS["pandemic"], latest),
    }

    return {
        "data": data,
        "window": slice_time_range(data, time_range),
        "time_range": time_range,
        "latest": latest,
        "peaks": peaks,
        "stats": stats,
    }


def _field_summary(values: pd.Series) -> FieldSummary:
    present = values.dropna()
    if present.empty:
        return {"current": None, "average": None, "minimum": None, "maximum": None}
    last = values.iloc[-1]
    return {
        "current": None if pd.isna(last) else float(last),
        "average": float(present.mean()),
        "minimum": float(present.min()),
        "maximum": float(present.max()),
    }


def summarize_allocation(records: Iterable[Mapping] | pd.DataFrame) -> AllocationSummary:
    """Current, average and range of the stocks / bonds / cash allocation."""

    df = utils.ensure_dataframe(records)
    if df.empty:
        empty = _field_summary(pd.Series(dtype=float))
        return {"latest_month": None, "stocks": empty, "bonds": dict(empty), "cash": dict(empty)}  # type: ignore[typeddict-item]

    df = df.sort_values("month_key", kind="stable")
    summary: AllocationSummary = {"latest_month": str(df["month_key"].iloc[-1])}  # type: ignore[typeddict-item]
    for field in ALLOCATION_FIELDS:
        column = pd.to_numeric(df[field], errors="coerce") if field in df else pd.Series(dtype=float)
        summary[field] = _field_summary(column)  # type: ignore[literal-required]
    return summary
