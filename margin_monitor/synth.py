"""Synthetic margin debt and allocation data.

The generator produces deterministic monthly series shaped like the FINRA
margin statistics export: a balance that compounds through boom and bust
cycles, so year-over-year growth regularly crosses the +/-30% thresholds. It
backs the offline demo and the test-suite.
"""

from __future__ import annotations

import io
from dataclasses import dataclass

import numpy as np
import pandas as pd

DEFAULT_MONTHS = 240
DEFAULT_SEED = 7
DEFAULT_START = "1997-01"

DATE_COLUMN = "Year-Month"
DEBIT_COLUMN = "Debit Balances in Customers' Securities Margin Accounts"
CASH_CREDIT_COLUMN = "Free Credit Balances in Customers' Cash Accounts"
MARGIN_CREDIT_COLUMN = "Free Credit Balances in Customers' Securities Margin Accounts"


@dataclass(frozen=True)
class CycleProfile:
    """Shape of the simulated credit cycle."""

    base_balance: float = 130_000.0  # millions of dollars
    period_months: int = 96
    amplitude: float = 0.035  # peak monthly log-growth
    noise: float = 0.008


def _month_index(start: str, months: int) -> pd.PeriodIndex:
    return pd.period_range(start=start, periods=months, freq="M")


def generate_margin_series(
    months: int = DEFAULT_MONTHS,
    seed: int = DEFAULT_SEED,
    *,
    start: str = DEFAULT_START,
    profile: CycleProfile = CycleProfile(),
) -> pd.DataFrame:
    """Return a frame with FINRA-style column names, one row per month."""

    if months <= 0:
        raise ValueError("months must be positive")

    rng = np.random.default_rng(seed)
    t = np.arange(months)
    drift = profile.amplitude * np.sin(2 * np.pi * t / profile.period_months)
    log_growth = drift + rng.normal(0.0, profile.noise, size=months)
    debit = profile.base_balance * np.exp(np.cumsum(log_growth))

    cash_credit = debit * rng.uniform(0.18, 0.26, size=months)
    margin_credit = debit * rng.uniform(0.08, 0.12, size=months)

    return pd.DataFrame(
        {
            DATE_COLUMN: _month_index(start, months).strftime("%Y-%m"),
            DEBIT_COLUMN: np.round(debit).astype(int),
            CASH_CREDIT_COLUMN: np.round(cash_credit).astype(int),
            MARGIN_CREDIT_COLUMN: np.round(margin_credit).astype(int),
        }
    )


def to_csv_text(frame: pd.DataFrame) -> str:
    return frame.to_csv(index=False)


def to_spreadsheet_bytes(frame: pd.DataFrame) -> bytes:
    """Serialise to xlsx with real month-end dates in the first column."""

    sheet = frame.copy()
    sheet[DATE_COLUMN] = pd.PeriodIndex(sheet[DATE_COLUMN], freq="M").to_timestamp(how="end").normalize()
    sheet = sheet.rename(columns={DATE_COLUMN: "End of Month"})
    buffer = io.BytesIO()
    sheet.to_excel(buffer, index=False, engine="openpyxl")
    return buffer.getvalue()


def generate_allocation_series(
    months: int = DEFAULT_MONTHS,
    seed: int = DEFAULT_SEED,
    *,
    start: str = DEFAULT_START,
) -> list[dict]:
    """AAII-style monthly stocks / bonds / cash percentages summing to 100."""

    if months <= 0:
        raise ValueError("months must be positive")

    rng = np.random.default_rng(seed + 1)
    t = np.arange(months)
    stocks = 61 + 8 * np.sin(2 * np.pi * t / 96) + rng.normal(0, 2, size=months)
    bonds = 16 + rng.normal(0, 1.5, size=months)
    stocks = np.clip(stocks, 40, 80)
    bonds = np.clip(bonds, 8, 30)
    cash = 100 - stocks - bonds

    dates = _month_index(start, months).strftime("%Y-%m")
    return [
        {
            "date": month,
            "stocks": round(float(s), 1),
            "bonds": round(float(b), 1),
            "cash": round(float(c), 1),
        }
        for month, s, b, c in zip(dates, stocks, bonds, cash)
    ]
