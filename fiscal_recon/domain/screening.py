"""Separates purchase invoices that belong in the reconciliation from everything else.

Canceled documents (by status or by an exception list), returns issued by the
company itself, customer returns and transfers between the company's own
establishments are set aside before matching so they do not show up as
"documents missing from the ledger".
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Sequence

from .keys import normalize_access_key, normalize_tax_id
from .models import CanonicalRecord, LineItem
from .services import LineItemIndex

CANCELED = "canceled"
PURCHASE_RETURNS = "purchase returns"
CUSTOMER_RETURNS = "customer returns"
TRANSFERS = "transfers"

# Entry CFOPs (1xxx in-state, 2xxx interstate) on an invoice the company received.
_ENTRY_CFOP_PREFIXES = ("1", "2")


@dataclass(frozen=True)
class Screening:
    valid: Sequence[CanonicalRecord] = field(default_factory=tuple)
    line_items: Sequence[LineItem] = field(default_factory=tuple)
    excluded: Mapping[str, Sequence[CanonicalRecord]] = field(default_factory=dict)

    @property
    def excluded_count(self) -> int:
        return sum(len(records) for records in self.excluded.values())


def screen_documents(
    documents: Sequence[CanonicalRecord],
    line_items: Sequence[LineItem] = (),
    exception_keys: Iterable[str] = (),
    company_tax_id: str = "",
) -> Screening:
    """Valid documents, the line items left to them, and the set-aside documents by reason.

    ``exception_keys`` are access keys of documents canceled by event or
    rejected in the recipient's manifest. Issuer checks only run when
    ``company_tax_id`` is known. Lines no document claims are kept.
    """
    exceptions = {normalize_access_key(key) for key in exception_keys}
    exceptions.discard("")
    company = normalize_tax_id(company_tax_id)
    index = LineItemIndex(line_items)

    valid: list[CanonicalRecord] = []
    excluded: dict[str, list[CanonicalRecord]] = {}
    dropped_lines: set[int] = set()

    for document in documents:
        lines = index.lines_for(document)
        reason = _exclusion_reason(document, lines, exceptions, company)
        if reason is None:
            valid.append(document)
            continue
        excluded.setdefault(reason, []).append(document)
        dropped_lines.update(id(line) for line in lines)

    return Screening(
        valid=tuple(valid),
        line_items=index.unclaimed(dropped_lines),
        excluded={reason: tuple(records) for reason, records in excluded.items()},
    )


def _exclusion_reason(
    document: CanonicalRecord,
    lines: Sequence[LineItem],
    exceptions: set[str],
    company: str,
) -> str | None:
    if document.canceled or normalize_access_key(document.access_key) in exceptions:
        return CANCELED
    if company and normalize_tax_id(document.counterparty_tax_id) == company:
        if normalize_tax_id(document.recipient_tax_id) == company:
            return TRANSFERS
        return PURCHASE_RETURNS
    if any((line.cfop or "").strip().startswith(_ENTRY_CFOP_PREFIXES) for line in lines):
        return CUSTOMER_RETURNS
    return None
