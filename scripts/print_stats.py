"""Utility script to print the margin dashboard payload as JSON."""

from __future__ import annotations

import argparse
import json
from pathlib import Path

from margin_monitor import analytics, parsing, settings, synth


def _load_series(path: Path | None) -> list[parsing.RawObservation]:
    if path is None:
        frame = synth.generate_margin_series(seed=synth.DEFAULT_SEED)
        return parsing.parse_table(synth.to_csv_text(frame), "csv")
    content = path.read_bytes()
    return parsing.parse_table(content, parsing.detect_format(content, path.name))


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("path", nargs="?", type=Path, help="CSV, xlsx or JSON export (default: synthetic data)")
    parser.add_argument("--range", dest="time_range", default="all", choices=sorted(analytics.TIME_RANGES))
    parser.add_argument("--stats-only", action="store_true", help="Omit the per-month series")
    args = parser.parse_args()

    config = settings.load_settings()
    settings.configure_logging(config.log_level)

    series = _load_series(args.path)
    if not series:
        raise SystemExit("No margin data parsed")

    payload = analytics.build_dashboard_payload(
        series,
        upper=config.euphoria_threshold,
        lower=config.capitulation_threshold,
        time_range=args.time_range,
    )
    if args.stats_only:
        output = {"latest": payload["latest"], "peaks": payload["peaks"], "stats": payload["stats"]}
    else:
        output = payload
    print(json.dumps(output, indent=2))


if __name__ == "__main__":
    main()
