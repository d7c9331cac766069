"""Load margin and allocation data: live FINRA download first, cached copy second."""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import TypedDict

import requests

from . import analytics, parsing
from .analytics import AllocationObservation
from .parsing import RawObservation
from .settings import (
    AAII_SOURCE_LABEL,
    AAII_SOURCE_URL,
    FINRA_SOURCE_LABEL,
    FINRA_SOURCE_URL,
    Settings,
)

logger = logging.getLogger(__name__)

USER_AGENT = "Mozilla/5.0 (compatible; MarginMonitor/1.0)"


class SourceError(RuntimeError):
    """A data source produced no usable rows."""


class MarginSeriesResult(TypedDict):
    success: bool
    source: str
    source_url: str
    last_updated: str | None
    is_live: bool
    error: str | None
    data: list[RawObservation]


class AllocationResult(TypedDict):
    source: str
    source_url: str
    last_updated: str | None
    data: list[AllocationObservation]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def fetch_remote(url: str, timeout: float) -> bytes:
    """Download ``url``; raises ``requests.RequestException`` on timeout or non-2xx."""

    response = requests.get(url, timeout=timeout, headers={"User-Agent": USER_AGENT})
    response.raise_for_status()
    return response.content


def load_live_margin(settings: Settings) -> MarginSeriesResult:
    content = fetch_remote(settings.margin_csv_url, settings.fetch_timeout)
    fmt = parsing.detect_format(content, settings.margin_csv_url)
    data = parsing.parse_table(content, fmt)
    if not data:
        raise SourceError(f"No margin data parsed from {settings.margin_csv_url}")
    return {
        "success": True,
        "source": f"{FINRA_SOURCE_LABEL} (live)",
        "source_url": FINRA_SOURCE_URL,
        "last_updated": data[-1]["month_key"],
        "is_live": True,
        "error": None,
        "data": data,
    }


def load_cached_margin(path: Path) -> MarginSeriesResult:
    if not path.exists():
        raise SourceError(f"Cache file not found: {path}")
    text = path.read_text(encoding="utf-8")
    data = parsing.parse_table(text, "json")
    if not data:
        raise SourceError(f"No margin data in cache file {path}")

    meta = json.loads(text)
    meta = meta if isinstance(meta, dict) else {}
    return {
        "success": True,
        "source": f"{meta.get('source') or FINRA_SOURCE_LABEL} (cached)",
        "source_url": meta.get("source_url") or FINRA_SOURCE_URL,
        "last_updated": meta.get("last_updated") or data[-1]["month_key"],
        "is_live": False,
        "error": None,
        "data": data,
    }


def load_margin_series(settings: Settings) -> MarginSeriesResult:
    """Return the margin series from FINRA, or from the local cache when that fails.

    Never raises: if both sources fail the result has ``success=False``, an
    ``error`` message and no data.
    """

    try:
        return load_live_margin(settings)
    except (requests.RequestException, SourceError) as exc:
        logger.warning("Live margin data unavailable, using cache: %s", exc)

    try:
        return load_cached_margin(settings.margin_cache_path)
    except (OSError, json.JSONDecodeError, SourceError) as exc:
        logger.error("Margin cache unavailable: %s", exc)
        return {
            "success": False,
            "source": FINRA_SOURCE_LABEL,
            "source_url": FINRA_SOURCE_URL,
            "last_updated": None,
            "is_live": False,
            "error": str(exc),
            "data": [],
        }


def save_margin_cache(path: Path, result: MarginSeriesResult) -> Path:
    """Write ``result`` in the cache layout read back by :func:`load_cached_margin`."""

    enriched = analytics.compute_yoy(result["data"])
    source = result["source"].replace(" (live)", "").replace(" (cached)", "")
    payload = {
        "source": source,
        "source_url": result["source_url"],
        "last_updated": result["last_updated"] or _now_iso(),
        "data": [
            {
                "date": entry["month_key"],
                "margin_debt": entry["value"],
                "yoy_growth": entry["yoy_growth_pct"],
            }
            for entry in enriched
        ],
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)
    return path


def load_allocation_series(path: Path) -> AllocationResult:
    """Read the AAII allocation file; a missing or unreadable file gives no data."""

    empty: AllocationResult = {
        "source": AAII_SOURCE_LABEL,
        "source_url": AAII_SOURCE_URL,
        "last_updated": None,
        "data": [],
    }
    try:
        with open(path, "r", encoding="utf-8") as f:
            payload = json.load(f)
    except FileNotFoundError:
        return empty
    except (OSError, json.JSONDecodeError) as exc:
        logger.warning("Could not read allocation data %s: %s", path, exc)
        return empty

    records = payload.get("data", []) if isinstance(payload, dict) else payload
    rows: list[AllocationObservation] = []
    for record in records if isinstance(records, list) else []:
        if not isinstance(record, dict):
            continue
        month_key = parsing.normalize_month_key(record.get("date") or record.get("month_key"))
        if not month_key:
            continue
        rows.append(
            {
                "month_key": month_key,
                "stocks": parsing.parse_number(record.get("stocks")),
                "bonds": parsing.parse_number(record.get("bonds")),
                "cash": parsing.parse_number(record.get("cash")),
            }
        )
    rows.sort(key=lambda row: row["month_key"])

    meta = payload if isinstance(payload, dict) else {}
    return {
        "source": meta.get("source") or AAII_SOURCE_LABEL,
        "source_url": meta.get("source_url") or AAII_SOURCE_URL,
        "last_updated": meta.get("last_updated") or (rows[-1]["month_key"] if rows else None),
        "data": rows,
    }
