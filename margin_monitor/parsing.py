"""Parse margin statistics exports into an ordered monthly series.

FINRA publishes margin statistics as a CSV and as a spreadsheet, and the app
keeps a JSON copy of the last good download. All three are read through the
same column discovery and cell normalisation so they produce identical
``RawObservation`` rows sorted by month.

Parsing is lenient: a malformed row is dropped, and a table that yields no
usable rows returns an empty list instead of raising.
"""

from __future__ import annotations

import csv
import io
import json
import logging
import math
import numbers
import re
from datetime import date, datetime, timedelta
from pathlib import Path
from typing import Any, Iterable, Literal, Mapping, Sequence, TypedDict

import pandas as pd

logger = logging.getLogger(__name__)

TableFormat = Literal["csv", "xlsx", "json"]

# Excel's 1900 date system, shifted for the phantom 1900-02-29
SPREADSHEET_EPOCH = datetime(1899, 12, 30)

DATE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "csv": ("date",),
    "xlsx": ("date", "month", "end of month"),
    "json": ("date", "month", "end of month"),
}
VALUE_KEYWORDS: dict[str, tuple[str, ...]] = {
    "csv": ("debit",),
    "xlsx": ("debit", "margin"),
    "json": ("debit", "margin"),
}

_TWO_PART_DATE = re.compile(r"^(\d{1,4})[-/](\d{1,4})$")
_NUMBER_NOISE = re.compile(r"[,\s$£€¥]")


class RawObservation(TypedDict):
    month_key: str
    value: float


def _month_key(year: int, month: int) -> str:
    return f"{year:04d}-{month:02d}"


def _from_serial(serial: float) -> str:
    try:
        moment = SPREADSHEET_EPOCH + timedelta(days=float(serial))
    except OverflowError:
        return ""
    return _month_key(moment.year, moment.month)


def normalize_month_key(raw: Any) -> str:
    """Reduce a date-like cell to a ``YYYY-MM`` key.

    Accepts date objects, spreadsheet serial numbers, two-part ``YYYY-M`` /
    ``M/YYYY`` strings and anything :func:`pandas.to_datetime` understands.
    Unrecognised strings are returned stripped but otherwise untouched; blank
    and missing cells give ``""``, as do container values such as lists.
    """

    if raw is None or not pd.api.types.is_scalar(raw):
        return ""
    if not isinstance(raw, str) and pd.isna(raw):
        return ""
    if isinstance(raw, (datetime, date)):
        return _month_key(raw.year, raw.month)
    if isinstance(raw, numbers.Real) and not isinstance(raw, bool):
        return _from_serial(float(raw))

    text = str(raw).strip()
    if not text:
        return ""

    match = _TWO_PART_DATE.match(text)
    if match:
        first, second = match.groups()
        if len(first) == 4:
            return f"{first}-{second.zfill(2)}"
        if len(second) == 4:
            return f"{second}-{first.zfill(2)}"

    try:
        parsed = pd.to_datetime(text, errors="coerce")
    except (ValueError, OverflowError):
        parsed = pd.NaT
    if pd.isna(parsed):
        return text
    return _month_key(parsed.year, parsed.month)


def parse_number(raw: Any) -> float | None:
    """Parse a balance cell, ignoring thousands separators and currency signs."""

    if raw is None or isinstance(raw, bool) or not pd.api.types.is_scalar(raw):
        return None
    if isinstance(raw, numbers.Real):
        value = float(raw)
    else:
        text = _NUMBER_NOISE.sub("", str(raw))
        if not text:
            return None
        try:
            value = float(text)
        except ValueError:
            return None
    return value if math.isfinite(value) else None


def detect_format(content: str | bytes, filename: str | None = None) -> TableFormat:
    """Guess the table format from the file name, then from the leading bytes."""

    if filename:
        suffix = Path(filename).suffix.lower()
        if suffix in (".xlsx", ".xlsm", ".xls"):
            return "xlsx"
        if suffix == ".json":
            return "json"
        if suffix in (".csv", ".txt"):
            return "csv"

    if isinstance(content, (bytes, bytearray)):
        head = bytes(content[:8])
        # zip container (xlsx) or OLE2 compound file (xls)
        if head.startswith(b"PK\x03\x04") or head.startswith(b"\xd0\xcf\x11\xe0"):
            return "xlsx"
        text_head = bytes(content[:64]).decode("utf-8", errors="ignore")
    else:
        text_head = content[:64]

    if text_head.lstrip("\ufeff \t\r\n")[:1] in ("{", "["):
        return "json"
    return "csv"


def _first_match(names: Sequence[str], keywords: Iterable[str]) -> int | None:
    # Keywords are in priority order: a "debit" column beats an earlier "margin" one
    for keyword in keywords:
        for idx, name in enumerate(names):
            if keyword in name:
                return idx
    return None


def find_columns(header: Sequence[Any], fmt: TableFormat) -> tuple[int, int] | None:
    """Return ``(date_idx, value_idx)`` for a header row.

    Columns are matched by case-insensitive keyword. When either column cannot
    be identified the first two columns are used, for every format.
    """

    names = [str(cell).strip().lower() for cell in header]
    if len(names) < 2:
        return None

    date_idx = _first_match(names, DATE_KEYWORDS[fmt])
    value_idx = _first_match(names, VALUE_KEYWORDS[fmt])
    if date_idx is None or value_idx is None or date_idx == value_idx:
        return 0, 1
    return date_idx, value_idx


def _collect(rows: Iterable[Sequence[Any]], date_idx: int, value_idx: int) -> list[RawObservation]:
    observations: list[RawObservation] = []
    dropped = 0
    needed = max(date_idx, value_idx)
    for row in rows:
        if len(row) <= needed:
            dropped += 1
            continue
        month_key = normalize_month_key(row[date_idx])
        value = parse_number(row[value_idx])
        if not month_key or value is None:
            dropped += 1
            continue
        observations.append({"month_key": month_key, "value": value})

    if dropped:
        logger.debug("Dropped %d malformed row(s); kept %d", dropped, len(observations))

    # list.sort is stable, so duplicate months keep their input order
    observations.sort(key=lambda obs: obs["month_key"])
    return observations


def parse_csv(text: str | bytes) -> list[RawObservation]:
    """Parse delimited text with a header row."""

    if isinstance(text, (bytes, bytearray)):
        text = bytes(text).decode("utf-8-sig", errors="replace")

    # Read the whole text so quoted cells may span lines; blank rows are skipped
    reader = (
        row
        for row in csv.reader(io.StringIO(text.lstrip("\ufeff")))
        if any(cell.strip() for cell in row)
    )
    first = next(reader, None)
    if first is None:
        return []
    header = [cell.strip() for cell in first]
    columns = find_columns(header, "csv")
    if columns is None:
        return []
    date_idx, value_idx = columns
    last_idx = len(header) - 1

    def _rows() -> Iterable[list[str]]:
        for row in reader:
            cells = [cell.strip() for cell in row]
            # Unquoted thousands separators split a trailing value over extra cells
            if value_idx == last_idx and len(cells) > len(header):
                cells = cells[:value_idx] + ["".join(cells[value_idx:])]
            yield cells

    return _collect(_rows(), date_idx, value_idx)


def parse_spreadsheet(data: bytes) -> list[RawObservation]:
    """Parse the first sheet of an Excel workbook."""

    try:
        frame = pd.read_excel(io.BytesIO(data), sheet_name=0, header=None, dtype=object)
    except Exception as exc:
        logger.warning("Could not read spreadsheet: %s: %s", type(exc).__name__, exc)
        return []

    frame = frame.dropna(how="all").dropna(axis=1, how="all")
    if len(frame) < 2:
        return []

    header = frame.iloc[0].tolist()
    columns = find_columns(header, "xlsx")
    if columns is None:
        return []
    return _collect(frame.iloc[1:].values.tolist(), *columns)


def parse_json_records(content: str | bytes | Mapping[str, Any] | list) -> list[RawObservation]:
    """Parse a ``{"data": [...]}`` payload or a bare list of records."""

    payload: Any = content
    if isinstance(content, (str, bytes, bytearray)):
        try:
            payload = json.loads(content)
        except json.JSONDecodeError as exc:
            logger.warning("Invalid JSON payload: %s", exc)
            return []

    records = payload.get("data", []) if isinstance(payload, Mapping) else payload
    if not isinstance(records, list):
        return []
    records = [record for record in records if isinstance(record, Mapping)]
    if not records:
        return []

    header = list(records[0].keys())
    columns = find_columns(header, "json")
    if columns is None:
        return []
    rows = [[record.get(key) for key in header] for record in records]
    return _collect(rows, *columns)


def parse_table(content: str | bytes, fmt: TableFormat = "csv") -> list[RawObservation]:
    """Parse ``content`` in the given format into a month-sorted series.

    Returns an empty list when nothing usable is found; callers treat that as
    "no data" and decide how to fall back.
    """

    if fmt == "csv":
        return parse_csv(content)
    if fmt == "xlsx":
        if isinstance(content, str):
            content = content.encode("latin-1", errors="replace")
        return parse_spreadsheet(content)
    if fmt == "json":
        return parse_json_records(content)
    raise ValueError(f"unsupported table format: {fmt!r}")
