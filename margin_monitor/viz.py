"""Visualization utilities for Margin Monitor."""

from __future__ import annotations

from collections.abc import Iterable, Mapping

import pandas as pd
import plotly.express as px
import plotly.graph_objects as go

from . import utils

UPPER_COLOR = "#ef4444"
LOWER_COLOR = "#22c55e"
ALLOCATION_COLORS = {"stocks": "#3b82f6", "bonds": "#f59e0b", "cash": "#22c55e"}


def _empty_figure(message: str) -> go.Figure:
    fig = go.Figure()
    fig.add_annotation(
        text=message,
        showarrow=False,
        x=0.5,
        y=0.5,
        xref="paper",
        yref="paper",
        font=dict(size=14, color="#6c757d"),
    )
    fig.update_layout(margin=dict(l=0, r=0, t=20, b=20))
    return fig


def _frame(points: Iterable[Mapping[str, object]]) -> pd.DataFrame:
    df = utils.ensure_dataframe(points)
    if not df.empty:
        df["month"] = pd.to_datetime(df["month_key"], format="%Y-%m", errors="coerce")
        df = df.dropna(subset=["month"])
    return df


def plot_margin_debt(points: Iterable[Mapping[str, object]]) -> go.Figure:
    """Area chart of the debit balance in $ billions."""

    df = _frame(points)
    if df.empty:
        return _empty_figure("No margin data available.")

    if "value_bn" not in df:
        df["value_bn"] = df["value"] / 1000

    fig = px.area(
        df,
        x="month",
        y="value_bn",
        title="Margin debt",
        labels={"month": "Month", "value_bn": "Debit balance ($B)"},
    )
    fig.update_traces(line=dict(color="#8b5cf6", width=2))
    fig.update_layout(margin=dict(l=0, r=0, t=40, b=0))
    return fig


def plot_yoy_growth(
    points: Iterable[Mapping[str, object]],
    upper: float,
    lower: float,
) -> go.Figure:
    """Year-over-year growth line with the euphoria / capitulation bands."""

    df = _frame(points)
    if "yoy_growth_pct" in df:
        df = df.dropna(subset=["yoy_growth_pct"])
    else:
        df = df.iloc[0:0]
    if df.empty:
        return _empty_figure("Not enough history for year-over-year growth.")

    fig = go.Figure()
    fig.add_trace(
        go.Scatter(
            name="YoY Growth",
            x=df["month"],
            y=df["yoy_growth_pct"],
            mode="lines",
            line=dict(color="#f59e0b", width=2),
        )
    )
    fig.add_hline(
        y=upper,
        line=dict(color=UPPER_COLOR, dash="dash"),
        opacity=0.5,
        annotation_text=f"{upper:+.0f}% euphoria zone",
    )
    fig.add_hline(
        y=lower,
        line=dict(color=LOWER_COLOR, dash="dash"),
        opacity=0.5,
        annotation_text=f"{lower:+.0f}% capitulation zone",
    )
    fig.add_hline(y=0, line=dict(color="#666666", width=1))
    fig.update_layout(
        title="Year-over-year growth",
        yaxis_title="YoY growth (%)",
        xaxis_title="Month",
        margin=dict(l=0, r=0, t=45, b=0),
    )
    return fig


def plot_run_lengths(lengths: Iterable[int], zone_label: str) -> go.Figure:
    data = list(lengths)
    if not data:
        return _empty_figure(f"No completed {zone_label} periods.")

    df = pd.DataFrame({"episode": range(1, len(data) + 1), "months": data})
    fig = px.bar(
        df,
        x="episode",
        y="months",
        labels={"episode": "Episode", "months": "Months"},
        title=f"{zone_label.title()} episode lengths",
    )
    fig.update_layout(margin=dict(l=0, r=0, t=40, b=0))
    return fig


def plot_allocation(points: Iterable[Mapping[str, object]]) -> go.Figure:
    """Stacked area of the stocks / bonds / cash allocation."""

    df = _frame(points)
    if df.empty:
        return _empty_figure("No allocation data available.")

    fig = go.Figure()
    for field, color in ALLOCATION_COLORS.items():
        if field not in df:
            continue
        fig.add_trace(
            go.Scatter(
                name=field.title(),
                x=df["month"],
                y=df[field],
                mode="lines",
                stackgroup="allocation",
                line=dict(color=color, width=1),
            )
        )
    fig.update_layout(
        title="Individual investor asset allocation",
        yaxis_title="Allocation (%)",
        xaxis_title="Month",
        margin=dict(l=0, r=0, t=45, b=0),
        legend=dict(orientation="h", yanchor="bottom", y=1.02, xanchor="right", x=1),
    )
    return fig
