"""Runtime configuration for Margin Monitor.

Values come from environment variables so the Streamlit app, the scripts and
the tests can all point the loaders at different files without code changes.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

import streamlit as st

FINRA_CSV_URL = "https://www.finra.org/sites/default/files/Industry_Margin_Statistics.csv"
FINRA_SOURCE_URL = "https://www.finra.org/rules-guidance/key-topics/margin-accounts/margin-statistics"
FINRA_SOURCE_LABEL = "FINRA Margin Statistics"

AAII_SOURCE_URL = "https://www.aaii.com/assetallocationsurvey"
AAII_SOURCE_LABEL = "AAII Asset Allocation Survey"

LOG_FORMAT = "%(asctime)s [%(name)s] %(levelname)s: %(message)s"


@dataclass(frozen=True)
class Settings:
    """Resolved configuration for one process."""

    margin_csv_url: str = FINRA_CSV_URL
    margin_cache_path: Path = Path("data/margin_data.json")
    allocation_data_path: Path = Path("data/aaii_allocation_data.json")
    fetch_timeout: float = 15.0
    euphoria_threshold: float = 30.0
    capitulation_threshold: float = -30.0
    llm_model: str = "gpt-4o-mini"
    log_level: str = "INFO"


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError:
        raise ValueError(f"{name} must be numeric, got {raw!r}") from None


def load_settings() -> Settings:
    """Build :class:`Settings` from the current environment."""

    defaults = Settings()
    return Settings(
        margin_csv_url=os.getenv("MARGIN_CSV_URL", defaults.margin_csv_url),
        margin_cache_path=Path(os.getenv("MARGIN_CACHE_PATH", str(defaults.margin_cache_path))),
        allocation_data_path=Path(os.getenv("ALLOCATION_DATA_PATH", str(defaults.allocation_data_path))),
        fetch_timeout=_env_float("MARGIN_FETCH_TIMEOUT", defaults.fetch_timeout),
        euphoria_threshold=_env_float("EUPHORIA_THRESHOLD", defaults.euphoria_threshold),
        capitulation_threshold=_env_float("CAPITULATION_THRESHOLD", defaults.capitulation_threshold),
        llm_model=os.getenv("LLM_MODEL", defaults.llm_model),
        log_level=os.getenv("LOG_LEVEL", defaults.log_level).upper(),
    )


def configure_logging(level: str = "INFO") -> None:
    """Install the root handler; entry points call this once at start-up."""

    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)


def resolve_openai_key() -> str | None:
    """Prefer secrets.toml via Streamlit when available, else the environment."""

    # st.secrets raises outside a Streamlit run when no secrets.toml exists
    try:
        api_key = st.secrets.get("OPENAI_API_KEY")
    except Exception:
        api_key = None
    return api_key or os.getenv("OPENAI_API_KEY")
