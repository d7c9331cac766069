"""Shared utilities for the Margin Monitor project."""

from __future__ import annotations

import math
from typing import Iterable, Mapping

import pandas as pd


def ensure_dataframe(records: Iterable[Mapping] | pd.DataFrame) -> pd.DataFrame:
    """Ensure the input payload is normalised to a :class:`pandas.DataFrame`."""

    if isinstance(records, pd.DataFrame):
        return records.copy()

    return pd.DataFrame(list(records))


def format_billions(value: float, currency: str = "$") -> str:
    """Format a balance held in millions as whole billions, e.g. ``$1,043B``."""

    return f"{currency}{value / 1000:,.0f}B"


def format_pct(value: float | None, *, signed: bool = True) -> str:
    if value is None or (isinstance(value, float) and math.isnan(value)):
        return "N/A"
    return f"{value:+.1f}%" if signed else f"{value:.1f}%"


def _plural(count: int, unit: str) -> str:
    return f"{count} {unit}" if count == 1 else f"{count} {unit}s"


def format_duration(months: float) -> str:
    """Render a (possibly fractional) month count as months and days.

    Fractions are converted on a 30-day month; zero renders as ``N/A``.
    """

    if not months:
        return "N/A"

    whole_months = math.floor(months)
    days = round((months - whole_months) * 30)

    if whole_months == 0:
        return _plural(days, "day")
    if days == 0:
        return _plural(whole_months, "month")
    return f"{_plural(whole_months, 'month')}, {_plural(days, 'day')}"
