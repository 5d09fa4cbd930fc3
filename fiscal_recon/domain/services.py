"""Domain services implementing the ledger vs. document registry matching rules."""
from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from typing import Iterable, Mapping, Sequence

from .keys import normalize_access_key
from .models import CanonicalRecord, LineItem, ReconciledItem
from .results import UNCATEGORIZED, ReconciliationResult

VALUE_TOLERANCE = Decimal("0.01")


class LineItemIndex:
    """Product lines looked up by access key, or by ``number-taxid`` when the key is absent."""

    def __init__(self, items: Sequence[LineItem]) -> None:
        self._items = tuple(items)
        self._by_access: dict[str, list[LineItem]] = defaultdict(list)
        self._by_key: dict[str, list[LineItem]] = defaultdict(list)
        for item in self._items:
            access_key = normalize_access_key(item.access_key)
            if access_key:
                self._by_access[access_key].append(item)
            if item.comparison_key:
                self._by_key[item.comparison_key].append(item)

    def lines_for(self, document: CanonicalRecord) -> list[LineItem]:
        access_key = normalize_access_key(document.access_key)
        if access_key and self._by_access.get(access_key):
            return list(self._by_access[access_key])
        key = document.comparison_key
        if not key:
            return []
        # A line carrying some other access key belongs to a different document.
        return [
            item
            for item in self._by_key.get(key, ())
            if not (access_key and normalize_access_key(item.access_key))
        ]

    def unclaimed(self, claimed: set[int]) -> tuple[LineItem, ...]:
        return tuple(item for item in self._items if id(item) not in claimed)


def _amount(row: CanonicalRecord, name: str) -> Decimal:
    return row.taxes.get(name) or Decimal("0")


def _close(left: Decimal | None, right: Decimal | None) -> bool:
    if left is None or right is None:
        return False
    return abs(left - right) < VALUE_TOLERANCE


def pairing_strategy(total: Decimal | None, unit_value: Decimal | None, ledger_row: CanonicalRecord) -> str | None:
    """Name of the first value comparison under which ``ledger_row`` accounts for the item, if any.

    Ledger postings often carry the invoice total with freight added, the
    discount already taken off, or IPI and ICMS-ST folded in, so each of
    those adjustments is tried in turn before falling back to the unit price.
    """
    ledger_total = ledger_row.total_value
    if ledger_total is not None:
        candidates = (
            ("total", ledger_total),
            ("total-freight", ledger_total - _amount(ledger_row, "freight")),
            ("total+discount", ledger_total + _amount(ledger_row, "discount")),
            ("total-ipi-icms_st", ledger_total - _amount(ledger_row, "ipi") - _amount(ledger_row, "icms_st")),
        )
        for name, expected in candidates:
            if _close(total, expected):
                return name
    if _close(unit_value, ledger_row.taxes.get("unit_value")):
        return "unit_value"
    return None


class ReconciliationEngine:
    """Three-way matcher between the accounting export and the registered invoices.

    Documents and ledger rows are joined on ``number-taxid`` because document
    numbers alone collide across issuers. When several ledger rows share a key
    each line item is paired with the first unused row whose values agree with
    it; lines no row agrees with are enriched by the first row. Every row
    sharing the key counts as consulted.
    """

    def __init__(self, own_return_categories: Iterable[str] = ()) -> None:
        self._own_returns = {value.strip().upper() for value in own_return_categories}

    def reconcile(
        self,
        external_ledger: Sequence[CanonicalRecord],
        internal_documents: Sequence[CanonicalRecord],
        internal_line_items: Sequence[LineItem] = (),
        cost_centers: Mapping[str, str] | None = None,
    ) -> ReconciliationResult:
        ledger_index, skipped_external = self._index_ledger(external_ledger)
        line_index = LineItemIndex(internal_line_items)
        cost_centers = cost_centers or {}

        matched: list[ReconciledItem] = []
        left_only: list[CanonicalRecord] = []
        consulted: set[str] = set()
        used_rows: dict[str, set[int]] = defaultdict(set)
        claimed: set[int] = set()
        skipped_internal = 0

        for document in internal_documents:
            lines = line_index.lines_for(document)
            claimed.update(id(line) for line in lines)
            key = document.comparison_key
            if not key:
                skipped_internal += 1
                continue
            consulted.add(key)
            candidates = ledger_index.get(key)
            if not candidates:
                left_only.append(document)
                continue
            units: list[LineItem | None] = list(lines) or [None]
            pairs = self._pair(document, units, candidates, used_rows[key])
            for line, (ledger_row, strategy) in zip(units, pairs):
                matched.append(
                    ReconciledItem(
                        document=document,
                        ledger=ledger_row,
                        line_item=line,
                        ledger_match_count=len(candidates),
                        matched_by=strategy,
                        cost_center=cost_centers.get(key),
                    )
                )

        right_only: dict[str, list[CanonicalRecord]] = {}
        own_issue_returns: list[CanonicalRecord] = []
        for row in external_ledger:
            key = row.comparison_key
            if not key or key in consulted:
                continue
            category = (row.category or "").strip()
            if category.upper() in self._own_returns:
                own_issue_returns.append(row)
                continue
            right_only.setdefault(category or UNCATEGORIZED, []).append(row)

        return ReconciliationResult(
            matched=tuple(matched),
            left_only=tuple(left_only),
            right_only_by_category={category: tuple(rows) for category, rows in right_only.items()},
            own_issue_returns=tuple(own_issue_returns),
            skipped_internal=skipped_internal,
            skipped_external=skipped_external,
            orphan_line_items=line_index.unclaimed(claimed),
        )

    @staticmethod
    def _index_ledger(rows: Sequence[CanonicalRecord]) -> tuple[Mapping[str, list[CanonicalRecord]], int]:
        index: dict[str, list[CanonicalRecord]] = {}
        skipped = 0
        for row in rows:
            key = row.comparison_key
            if not key:
                skipped += 1
                continue
            index.setdefault(key, []).append(row)
        return index, skipped

    @staticmethod
    def _pair(
        document: CanonicalRecord,
        units: Sequence[LineItem | None],
        candidates: Sequence[CanonicalRecord],
        used: set[int],
    ) -> list[tuple[CanonicalRecord, str | None]]:
        assigned: list[tuple[CanonicalRecord, str] | None] = [None] * len(units)
        for position, row in enumerate(candidates):
            if position in used:
                continue
            for index, line in enumerate(units):
                if assigned[index] is not None:
                    continue
                total = line.total_value if line is not None else document.total_value
                unit_value = line.unit_value if line is not None else None
                strategy = pairing_strategy(total, unit_value, row)
                if strategy:
                    assigned[index] = (row, strategy)
                    used.add(position)
                    break
        return [pair or (candidates[0], None) for pair in assigned]
