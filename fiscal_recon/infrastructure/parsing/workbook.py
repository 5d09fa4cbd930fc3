"""Spreadsheet reader producing ordered rows of header -> cell mappings."""
from __future__ import annotations

import logging
from io import BytesIO
from pathlib import Path
from typing import Any

import pandas as pd

from fiscal_recon.domain.keys import normalize_header
from fiscal_recon.errors import InputDecodingError

from .extractor import FIELD_ALIASES
from .utils import ensure_bytes, is_missing

logger = logging.getLogger(__name__)

HEADER_SCAN_ROWS = 20
_KNOWN_HEADERS = {normalize_header(name) for names in FIELD_ALIASES.values() for name in names}


def _engine_for(file_name: str) -> str:
    return "xlrd" if file_name.lower().endswith(".xls") else "openpyxl"


def _list_sheets(data: bytes, file_name: str) -> list[str]:
    xls = pd.ExcelFile(BytesIO(data), engine=_engine_for(file_name))
    return xls.sheet_names


def pick_sheet(sheets: list[str], preferred: str | None) -> str:
    if not sheets:
        raise ValueError("Workbook has no sheets")
    if not preferred:
        return sheets[0]
    if preferred in sheets:
        return preferred
    lower_map = {name.lower(): name for name in sheets}
    if preferred.lower() in lower_map:
        return lower_map[preferred.lower()]
    for name in sheets:
        if preferred.lower() in name.lower():
            return name
    return sheets[0]


def detect_header_row(frame: pd.DataFrame) -> int:
    """Index of the first row whose cells look most like known column names."""
    best_index, best_hits = 0, 0
    for index in range(min(HEADER_SCAN_ROWS, len(frame))):
        cells = [normalize_header(value) for value in frame.iloc[index].tolist() if not is_missing(value)]
        hits = sum(1 for cell in cells if cell in _KNOWN_HEADERS)
        if hits > best_hits:
            best_index, best_hits = index, hits
    return best_index


def _frame_to_rows(frame: pd.DataFrame, header_row: int) -> list[dict[str, Any]]:
    headers = [str(value).strip() if not is_missing(value) else f"col_{i}" for i, value in enumerate(frame.iloc[header_row])]
    body = frame.iloc[header_row + 1 :]
    rows: list[dict[str, Any]] = []
    for values in body.itertuples(index=False, name=None):
        if all(is_missing(value) for value in values):
            continue
        rows.append({header: (None if is_missing(value) else value) for header, value in zip(headers, values)})
    return rows


def read_rows(
    source: BytesIO | Path | bytes,
    file_name: str,
    sheet_name: str | None = None,
    header_row: int | None = None,
) -> list[dict[str, Any]]:
    """Rows of one sheet (or CSV); the header row is detected unless given."""
    try:
        data = ensure_bytes(source)
        if file_name.lower().endswith(".csv"):
            frame = pd.read_csv(BytesIO(data), header=None, dtype=str, sep=None, engine="python")
        else:
            sheet = pick_sheet(_list_sheets(data, file_name), sheet_name)
            frame = pd.read_excel(
                BytesIO(data),
                sheet_name=sheet,
                engine=_engine_for(file_name),
                dtype=str,
                header=None,
            )
    except Exception as exc:
        raise InputDecodingError(file_name, str(exc)) from exc

    if frame.empty:
        logger.info("%s: sheet is empty", file_name)
        return []
    index = header_row if header_row is not None else detect_header_row(frame)
    rows = _frame_to_rows(frame, index)
    logger.info("%s: read %d rows (header at row %d)", file_name, len(rows), index + 1)
    return rows
