"""Spreadsheet export with one named sheet per logical table."""
from __future__ import annotations

import logging
import re
from io import BytesIO
from typing import Any, Iterable, Mapping, Sequence

import pandas as pd

logger = logging.getLogger(__name__)

MAX_SHEET_NAME = 31
_INVALID_SHEET_CHARS = re.compile(r"[\[\]:*?/\\]")


def safe_sheet_names(names: Iterable[str]) -> list[str]:
    """Sheet names cut to 31 characters and made unique with ``_2``, ``_3``... suffixes."""
    used: set[str] = set()
    result: list[str] = []
    for raw in names:
        base = _INVALID_SHEET_CHARS.sub("", str(raw)).strip() or "Sheet"
        candidate = base[:MAX_SHEET_NAME]
        counter = 2
        while candidate.lower() in used:
            suffix = f"_{counter}"
            candidate = base[: MAX_SHEET_NAME - len(suffix)] + suffix
            counter += 1
        used.add(candidate.lower())
        result.append(candidate)
    return result


def export_workbook(tables: Mapping[str, Sequence[Mapping[str, Any]]]) -> bytes:
    buffer = BytesIO()
    names = list(tables)
    with pd.ExcelWriter(buffer, engine="openpyxl") as writer:
        for sheet_name, name in zip(safe_sheet_names(names), names):
            rows = list(tables[name])
            frame = pd.DataFrame(rows) if rows else pd.DataFrame({"": []})
            frame.to_excel(writer, sheet_name=sheet_name, index=False)
    logger.info("Exported workbook with %d sheets", len(names))
    return buffer.getvalue()
