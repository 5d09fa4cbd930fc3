"""Rule-based CFOP scope checks and tax field aggregation over ledger rows."""
from __future__ import annotations

from decimal import Decimal
from typing import Sequence

from fiscal_recon.reference.cfop import short_description

from .keys import clean_numeric_string, normalize_tax_id
from .models import TAX_FIELDS, CanonicalRecord
from .results import CfopFinding, ConsistencyReport, TaxEntry

FOREIGN_STATE = "EX"
OUTBOUND_LEADING_DIGITS = {"5", "6", "7"}


def expected_leading_digit(counterparty_state: str, home_state: str) -> str:
    """Inbound scope digit: 1 intrastate, 2 interstate, 3 foreign."""
    state = counterparty_state.strip().upper()
    if state == FOREIGN_STATE:
        return "3"
    return "1" if state == home_state.strip().upper() else "2"


def suggest_cfop(cfop: str, counterparty_state: str, home_state: str) -> str | None:
    """Corrected CFOP when the leading digit contradicts the counterparty state, else ``None``."""
    code = clean_numeric_string(cfop)
    if len(code) != 4 or code[0] in OUTBOUND_LEADING_DIGITS:
        return None
    expected = expected_leading_digit(counterparty_state, home_state)
    if code[0] == expected:
        return None
    return expected + code[1:]


def check_consistency(ledger_rows: Sequence[CanonicalRecord], home_state: str) -> ConsistencyReport:
    findings: list[CfopFinding] = []
    seen: set[tuple[str, str]] = set()
    tax_lists: dict[str, list[TaxEntry]] = {name: [] for name in TAX_FIELDS}

    for row in ledger_rows:
        for name in TAX_FIELDS:
            value = row.taxes.get(name)
            if value is None:
                continue
            tax_lists[name].append(TaxEntry(record=row, value=value))

        if not row.state or not row.cfop:
            continue
        suggestion = suggest_cfop(row.cfop, row.state, home_state)
        if suggestion is None:
            continue
        identity = (clean_numeric_string(row.document_number), normalize_tax_id(row.counterparty_tax_id))
        if identity in seen:
            continue
        seen.add(identity)
        findings.append(
            CfopFinding(
                document_number=row.document_number,
                counterparty_tax_id=row.counterparty_tax_id,
                counterparty_name=row.counterparty_name,
                state=row.state.strip().upper(),
                cfop=clean_numeric_string(row.cfop),
                cfop_description=short_description(row.cfop),
                suggested_cfop=suggestion,
            )
        )

    totals = {name: sum((entry.value for entry in entries), Decimal("0")) for name, entries in tax_lists.items()}
    return ConsistencyReport(
        cfop_uf_inconsistencies=tuple(findings),
        tax_lists={name: tuple(entries) for name, entries in tax_lists.items()},
        tax_totals=totals,
    )
