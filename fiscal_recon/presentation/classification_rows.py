"""Editable table rows for a classification session, and folding user edits back in."""
from __future__ import annotations

from typing import Any, Mapping, Sequence

import pandas as pd

from fiscal_recon.domain.classification import ClassificationSession

Row = dict[str, str]


def _cell(value: Any) -> str:
    if value is None:
        return ""
    if not isinstance(value, str) and pd.isna(value):
        return ""
    return str(value)


def session_rows(session: ClassificationSession) -> list[Row]:
    return [
        {
            "product": item.product_identity,
            "line": item.line_identity,
            "description": item.description or "",
            "cfop": item.target_cfop or "",
            "classification": session.classification_of(item).value,
            "account_code": session.account_code_of(item),
            "cfop_verdict": session.cfop_verdict_of(item).value,
            "inherited_from": session.fallback_sources.get(item.product_identity, ""),
        }
        for item in session.items
    ]


def apply_edits(
    session: ClassificationSession,
    shown: Sequence[Mapping[str, Any]],
    edited: Sequence[Mapping[str, Any]],
) -> int:
    """Apply the cells that differ between ``shown`` and ``edited``; returns how many changed.

    Rows are compared with what was on screen, not with the live session:
    classifying one line already moves its sibling lines, and those siblings
    must not pull the product back to the value they were displayed with.
    """
    changed = 0
    for item, before, after in zip(session.items, shown, edited):
        for column in ("classification", "account_code", "cfop_verdict"):
            if column not in after:
                continue
            value = _cell(after[column])
            if value == _cell(before.get(column)):
                continue
            if column == "classification":
                session.classify(item, value)
            elif column == "account_code":
                session.set_account_code(item, value)
            else:
                session.validate_cfop(item, value)
            changed += 1
    return changed
