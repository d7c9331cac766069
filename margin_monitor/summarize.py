"""LLM-powered narrative for the margin debt regime.

If the OpenAI client or API key is missing, or the call fails, we return a
short deterministic summary built from the same numbers so the page always has
copy to show.
"""

from __future__ import annotations

import logging
from typing import Any, Dict

import streamlit as st
from openai import OpenAI

from . import utils
from .analytics import DashboardPayload
from .settings import load_settings, resolve_openai_key

logger = logging.getLogger(__name__)

STATE_LABELS = {
    "above_upper": "euphoria zone",
    "below_lower": "capitulation zone",
    "neutral": "neutral range",
}


def _build_prompt_from_snapshot(snapshot: Dict[str, Any]) -> str:
    return f"""
You are a markets analyst writing a short briefing on US margin debt.
Use 4–6 concise sentences. Quote numbers as given (balances in $ billions,
growth in %). Do not give investment advice.

DATA (JSON-like):
{snapshot}

Write:
1) Latest month, balance and year-over-year growth.
2) Which zone growth sits in (above {snapshot['upper']}% is euphoria, below {snapshot['lower']}% is capitulation) and for how long.
3) How the current run compares with the historical average run length for that zone.
4) One sentence of historical context using the reference peaks.
"""


def _build_snapshot(payload: DashboardPayload) -> Dict[str, Any]:
    """Select the numbers worth prompting with."""
    latest = payload["latest"] or {}
    stats = payload["stats"]
    current = stats["current"]
    peaks = {
        name: {"month": peak["month_key"], "balance_bn": round(peak["value_bn"], 1)}
        for name, peak in payload["peaks"].items()
        if peak
    }
    return {
        "latest_month": latest.get("month_key"),
        "balance_bn": round(latest.get("value_bn", 0.0), 1),
        "yoy_growth_pct": current["latest_growth_pct"],
        "state": STATE_LABELS[current["state"]],
        "run_length_months": current["run_length_so_far"],
        "upper": stats["upper"],
        "lower": stats["lower"],
        "above_avg_months": round(stats["above"]["average_length"], 1),
        "above_occurrences": stats["above"]["occurrence_count"],
        "below_avg_months": round(stats["below"]["average_length"], 1),
        "below_occurrences": stats["below"]["occurrence_count"],
        "peaks": peaks,
    }


def _fallback_summary(payload: DashboardPayload) -> str:
    """Return a compact summary without calling an LLM.

    The text always starts with 'Highlights' so callers can tell it apart.
    """
    latest = payload["latest"]
    if latest is None:
        return "Highlights — No margin data available right now."

    stats = payload["stats"]
    current = stats["current"]
    balance = utils.format_billions(latest["value"])
    growth = utils.format_pct(current["latest_growth_pct"])

    if current["state"] == "neutral":
        zone_text = (
            f" Growth is inside the {stats['lower']:+.0f}% / {stats['upper']:+.0f}% band."
        )
    else:
        history = stats["above"] if current["state"] == "above_upper" else stats["below"]
        zone_text = (
            f" Growth has been in the {STATE_LABELS[current['state']]} for "
            f"{utils.format_duration(current['run_length_so_far'])}"
            f" (past episodes averaged {utils.format_duration(history['average_length'])})."
        )

    history_text = (
        f" History: {stats['above']['occurrence_count']} completed euphoria run(s),"
        f" {stats['below']['occurrence_count']} completed capitulation run(s)."
    )

    return (
        f"Highlights — Margin debt stood at {balance} in {latest['month_key']}, "
        f"{growth} year over year.{zone_text}{history_text}"
    )


def _set_meta(source: str, *, reason: str | None = None, model_name: str | None = None) -> None:
    try:
        st.session_state["ai_summary_meta"] = {
            "source": source,
            "reason": reason,
            "model": model_name,
        }
    except Exception:
        # No Streamlit session outside `streamlit run`
        pass


def summarize_margin(payload: DashboardPayload, *, model: str | None = None) -> str:
    """Summarise the margin debt regime using an LLM, with a deterministic fallback."""

    model = model or load_settings().llm_model
    api_key = resolve_openai_key()

    def _fallback(reason: str) -> str:
        logger.info("Using fallback margin summary: %s", reason)
        _set_meta("fallback", reason=reason, model_name=model)
        return _fallback_summary(payload)

    if payload["latest"] is None:
        return _fallback("No data to summarise")
    if not api_key:
        return _fallback("OPENAI_API_KEY not found in Streamlit secrets or environment")

    prompt = _build_prompt_from_snapshot(_build_snapshot(payload))

    try:
        client = OpenAI(api_key=api_key)
        resp = client.chat.completions.create(
            model=model,
            messages=[{"role": "user", "content": prompt}],
            temperature=0.2,
            max_tokens=320,
        )
        text = (resp.choices[0].message.content or "").strip()
    except Exception as e:
        return _fallback(f"LLM call failed: {type(e).__name__}: {e}")

    if not text:
        return _fallback("Empty LLM response")
    _set_meta("ai", reason=None, model_name=model)
    return text
