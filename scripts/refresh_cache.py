"""Refresh the local margin cache from FINRA.

Downloads the live margin statistics and rewrites the JSON cache that the app
falls back to when FINRA is unreachable. With ``--synthetic`` it writes the
deterministic demo series (and a matching allocation file) instead, which is
handy for working offline.

Output: data/margin_data.json (or MARGIN_CACHE_PATH)
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path

from margin_monitor import parsing, settings, sources, synth

logger = logging.getLogger("refresh_cache")


def _synthetic_result(seed: int) -> sources.MarginSeriesResult:
    frame = synth.generate_margin_series(seed=seed)
    data = parsing.parse_table(synth.to_csv_text(frame), "csv")
    return {
        "success": True,
        "source": "Synthetic demo data",
        "source_url": "",
        "last_updated": data[-1]["month_key"],
        "is_live": False,
        "error": None,
        "data": data,
    }


def main() -> None:
    parser = argparse.ArgumentParser(description="Refresh the cached FINRA margin data")
    parser.add_argument("--output", type=Path, default=None, help="Cache path (default from settings)")
    parser.add_argument("--synthetic", action="store_true", help="Write synthetic data instead of fetching")
    parser.add_argument("--seed", type=int, default=synth.DEFAULT_SEED)
    args = parser.parse_args()

    config = settings.load_settings()
    settings.configure_logging(config.log_level)
    output = args.output or config.margin_cache_path

    if args.synthetic:
        result = _synthetic_result(args.seed)
        allocation_path = config.allocation_data_path
        allocation_path.parent.mkdir(parents=True, exist_ok=True)
        with open(allocation_path, "w", encoding="utf-8") as f:
            json.dump({"source": "Synthetic demo data", "data": synth.generate_allocation_series(seed=args.seed)}, f, indent=2)
        logger.info("Wrote synthetic allocation data to %s", allocation_path)
    else:
        result = sources.load_live_margin(config)

    path = sources.save_margin_cache(output, result)
    logger.info("Wrote %d months (%s to %s) to %s", len(result["data"]), result["data"][0]["month_key"], result["data"][-1]["month_key"], path)


if __name__ == "__main__":
    main()
