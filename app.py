"""Streamlit entry point for the Margin Monitor app."""

from __future__ import annotations

from pathlib import Path

import pandas as pd
import streamlit as st
from margin_monitor import analytics, parsing, settings, sources, summarize, synth, utils, viz

TIME_RANGE_LABELS = {
    "All time": "all",
    "10 years": "10y",
    "5 years": "5y",
    "2 years": "2y",
}


@st.cache_data(show_spinner=False, ttl=3600)
def _load_margin(_config: settings.Settings, cache_key: str) -> sources.MarginSeriesResult:
    return sources.load_margin_series(_config)


@st.cache_data(show_spinner=False)
def _load_allocation(path: str) -> sources.AllocationResult:
    return sources.load_allocation_series(Path(path))


@st.cache_data(show_spinner=False)
def _load_demo(seed: int) -> sources.MarginSeriesResult:
    frame = synth.generate_margin_series(seed=seed)
    data = parsing.parse_table(synth.to_csv_text(frame), "csv")
    return {
        "success": True,
        "source": "Synthetic demo data",
        "source_url": "",
        "last_updated": data[-1]["month_key"] if data else None,
        "is_live": False,
        "error": None,
        "data": data,
    }


def _zone_card(title: str, zone_label: str, summary: analytics.RunSummary, color: str) -> None:
    st.markdown(f"<div style='color:{color};font-weight:700'>{title}</div>", unsafe_allow_html=True)
    cols = st.columns(2)
    cols[0].metric("Average duration", utils.format_duration(summary["average_length"]))
    cols[1].metric("Occurrences", summary["occurrence_count"])
    st.plotly_chart(
        viz.plot_run_lengths(summary["lengths"], zone_label),
        use_container_width=True,
        config={"displayModeBar": False},
    )


def _render_margin(result: sources.MarginSeriesResult, config: settings.Settings, time_range: str) -> None:
    if not result["data"]:
        st.error("Unable to load margin data")
        st.caption(result["error"] or "No FINRA data available right now.")
        return

    payload = analytics.build_dashboard_payload(
        result["data"],
        upper=config.euphoria_threshold,
        lower=config.capitulation_threshold,
        time_range=time_range,
    )
    latest = payload["latest"]
    stats = payload["stats"]
    current = stats["current"]

    st.title("FINRA Margin Debt Tracker")
    st.caption("Securities margin account debit balances ($ billions)")
    st.caption(f"Source: {result['source']} · last updated {result['last_updated'] or 'N/A'}")

    metric_cols = st.columns(4)
    metric_cols[0].metric("Current margin debt", utils.format_billions(latest["value"]))
    metric_cols[0].caption(latest["month_key"])
    metric_cols[1].metric("YoY growth", utils.format_pct(latest["yoy_growth_pct"]))
    for col, (name, label) in zip(metric_cols[2:], (("dotcom", "2000 peak"), ("pandemic", "2021 peak"))):
        peak = payload["peaks"][name]
        col.metric(label, utils.format_billions(peak["value"]) if peak else "N/A")
        col.caption(peak["month_key"] if peak else "")

    st.plotly_chart(viz.plot_margin_debt(payload["window"]), use_container_width=True, config={"displayModeBar": False})
    st.plotly_chart(
        viz.plot_yoy_growth(payload["window"], stats["upper"], stats["lower"]),
        use_container_width=True,
        config={"displayModeBar": False},
    )

    with st.container():
        st.markdown("### Threshold analysis")
        if current["state"] == "above_upper":
            st.error(
                f"Above {stats['upper']:+.0f}% threshold for "
                f"{utils.format_duration(current['run_length_so_far'])} "
                f"(current YoY {utils.format_pct(current['latest_growth_pct'])})"
            )
        elif current["state"] == "below_lower":
            st.success(
                f"Below {stats['lower']:+.0f}% threshold for "
                f"{utils.format_duration(current['run_length_so_far'])} "
                f"(current YoY {utils.format_pct(current['latest_growth_pct'])})"
            )
        else:
            st.info(
                f"Neutral: current YoY {utils.format_pct(current['latest_growth_pct'])} "
                f"(between {stats['lower']:+.0f}% and {stats['upper']:+.0f}%)"
            )

        left, right = st.columns(2)
        with left:
            _zone_card(f"Above {stats['upper']:+.0f}% (Euphoria)", "euphoria", stats["above"], viz.UPPER_COLOR)
        with right:
            _zone_card(f"Below {stats['lower']:+.0f}% (Capitulation)", "capitulation", stats["below"], viz.LOWER_COLOR)
        st.caption(
            "Statistics use all available history. Each period is a run of consecutive months "
            "where YoY growth stayed beyond the threshold."
        )

    with st.container():
        with st.spinner("Generating AI summary…"):
            narrative = summarize.summarize_margin(payload, model=config.llm_model)
        is_fallback = narrative.startswith("Highlights")
        st.markdown("### Narrative summary " + ("[Fallback]" if is_fallback else "[AI]"))
        meta = st.session_state.get("ai_summary_meta", {})
        if is_fallback and isinstance(meta, dict) and meta.get("reason"):
            st.caption(f"Fallback reason: {meta['reason']}")
        st.markdown(narrative)


def _render_allocation(result: sources.AllocationResult, time_range: str) -> None:
    st.title("AAII Asset Allocation Survey")
    st.caption("Individual investor asset allocation (%)")
    if not result["data"]:
        st.caption("No AAII data available.")
        return

    summary = analytics.summarize_allocation(result["data"])
    cols = st.columns(3)
    for col, field in zip(cols, analytics.ALLOCATION_FIELDS):
        stats = summary[field]
        col.metric(field.title(), utils.format_pct(stats["current"], signed=False))
        if stats["average"] is not None:
            col.caption(
                f"avg {stats['average']:.1f}% · range {stats['minimum']:.1f}–{stats['maximum']:.1f}%"
            )

    window = analytics.slice_time_range(result["data"], time_range)
    st.plotly_chart(viz.plot_allocation(window), use_container_width=True, config={"displayModeBar": False})
    st.dataframe(pd.DataFrame(window).tail(24), hide_index=True, use_container_width=True)


def main() -> None:
    """Render the Margin Monitor Streamlit application."""

    config = settings.load_settings()
    settings.configure_logging(config.log_level)

    st.set_page_config(
        page_title="Margin Monitor",
        page_icon="📈",
        layout="wide",
    )

    sidebar = st.sidebar
    sidebar.header("Data")
    dataset = sidebar.radio("Dataset", ["Margin debt", "Asset allocation"], index=0)
    range_label = sidebar.radio("Time range", list(TIME_RANGE_LABELS), index=0)
    time_range = TIME_RANGE_LABELS[range_label]
    demo = sidebar.checkbox("Use synthetic demo data", value=False, help="Skip FINRA and the cache")

    if dataset == "Margin debt":
        if demo:
            result = _load_demo(synth.DEFAULT_SEED)
        else:
            with st.spinner("Fetching FINRA margin statistics…"):
                result = _load_margin(config, config.margin_csv_url)
        _render_margin(result, config, time_range)
    else:
        _render_allocation(_load_allocation(str(config.allocation_data_path)), time_range)


if __name__ == "__main__":
    main()
