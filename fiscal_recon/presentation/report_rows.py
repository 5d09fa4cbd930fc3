"""Flat row, CSV and HTML renderers for reconciliation, numbering and tax results."""
from __future__ import annotations

import csv
import html
import io
from typing import Mapping, Sequence

from fiscal_recon.domain.models import CanonicalRecord, LineItem, ReconciledItem
from fiscal_recon.domain.results import ConsistencyReport, ReconciliationResult, SequenceAnalysis
from fiscal_recon.reference.cfop import short_description

Row = dict[str, str]


def _text(value: object) -> str:
    return "" if value is None else str(value)


def record_to_row(record: CanonicalRecord) -> Row:
    return {
        "number": _text(record.document_number),
        "tax_id": _text(record.counterparty_tax_id),
        "name": _text(record.counterparty_name),
        "issue_date": record.issue_date.isoformat() if record.issue_date else "",
        "total": _text(record.total_value),
        "cfop": _text(record.cfop),
        "state": _text(record.state),
        "category": _text(record.category),
        "access_key": _text(record.access_key),
    }


def line_item_to_row(item: LineItem) -> Row:
    return {
        "access_key": _text(item.access_key),
        "number": _text(item.document_number),
        "tax_id": _text(item.issuer_tax_id),
        "line": _text(item.line_number),
        "product_code": _text(item.product_code),
        "description": _text(item.description),
        "cfop": _text(item.cfop),
        "total": _text(item.total_value),
    }


def matched_to_rows(items: Sequence[ReconciledItem]) -> list[Row]:
    rows: list[Row] = []
    for item in items:
        document = item.document
        line = item.line_item
        rows.append(
            {
                "key": item.comparison_key,
                "number": _text(document.document_number),
                "tax_id": _text(document.counterparty_tax_id),
                "name": _text(document.counterparty_name or item.ledger.counterparty_name),
                "line": line.line_number if line else "",
                "product_code": _text(line.product_code) if line else "",
                "description": _text(line.description) if line else "",
                "document_cfop": _text((line.cfop if line else None) or document.cfop),
                "ledger_cfop": _text(item.ledger_cfop),
                "ledger_cfop_description": short_description(item.ledger_cfop) if item.ledger_cfop else "",
                "category": _text(item.ledger.category),
                "document_total": _text(document.total_value),
                "ledger_total": _text(item.ledger.total_value),
                "ledger_matches": str(item.ledger_match_count),
                "matched_by": _text(item.matched_by),
                "cost_center": _text(item.cost_center),
            }
        )
    return rows


def reconciliation_tables(
    result: ReconciliationResult,
    cost_centers: Mapping[str, str] | None = None,
) -> dict[str, list[Row]]:
    """One table per bucket, ready for ``export_workbook``.

    Screened-out documents and orphan lines only get a sheet when there are any.
    """
    cost_centers = cost_centers or {}

    def ledger_row(record: CanonicalRecord) -> Row:
        row = record_to_row(record)
        if cost_centers:
            row["cost_center"] = cost_centers.get(record.comparison_key, "")
        return row

    tables: dict[str, list[Row]] = {
        "Matched": matched_to_rows(result.matched),
        "Documents only": [record_to_row(record) for record in result.left_only],
    }
    for category, records in result.right_only_by_category.items():
        tables[f"Ledger only {category}"] = [ledger_row(record) for record in records]
    tables["Own issue returns"] = [ledger_row(record) for record in result.own_issue_returns]
    for reason, records in result.excluded.items():
        if records:
            tables[f"Set aside {reason}"] = [record_to_row(record) for record in records]
    if result.orphan_line_items:
        tables["Orphan line items"] = [line_item_to_row(item) for item in result.orphan_line_items]
    return tables


def sequence_to_rows(analysis: SequenceAnalysis) -> list[Row]:
    rows: list[Row] = []
    for position in analysis.positions:
        document = position.document
        rows.append(
            {
                "number": str(position.number),
                "status": position.status.value,
                "overridden": "yes" if position.overridden else "",
                "name": _text(document.counterparty_name) if document else "",
                "issue_date": document.issue_date.isoformat() if document and document.issue_date else "",
                "total": _text(document.total_value) if document else "",
            }
        )
    return rows


def consistency_tables(report: ConsistencyReport) -> dict[str, list[Row]]:
    tables: dict[str, list[Row]] = {
        "CFOP x UF": [
            {
                "number": finding.document_number,
                "tax_id": finding.counterparty_tax_id,
                "name": _text(finding.counterparty_name),
                "state": finding.state,
                "cfop": finding.cfop,
                "description": finding.cfop_description,
                "suggested_cfop": finding.suggested_cfop,
            }
            for finding in report.cfop_uf_inconsistencies
        ]
    }
    for tax, entries in report.tax_lists.items():
        tables[tax.upper()] = [
            {**record_to_row(entry.record), "value": str(entry.value)} for entry in entries
        ]
    tables["Totals"] = [{"tax": tax.upper(), "total": str(total)} for tax, total in report.tax_totals.items()]
    return tables


def render_csv(rows: Sequence[Mapping[str, str]]) -> bytes:
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=list(rows[0].keys()) if rows else [])
    if rows:
        writer.writeheader()
        writer.writerows(rows)
    return buffer.getvalue().encode("utf-8")


def render_html(rows: Sequence[Mapping[str, str]], empty_message: str = "Nothing to report.") -> str:
    if not rows:
        return f"<p>{html.escape(empty_message)}</p>"
    header = "".join(f"<th>{html.escape(col)}</th>" for col in rows[0].keys())
    body_parts = []
    for row in rows:
        body_parts.append("<tr>" + "".join(f"<td>{html.escape(value)}</td>" for value in row.values()) + "</tr>")
    body_html = "".join(body_parts)
    return f"<table><thead><tr>{header}</tr></thead><tbody>{body_html}</tbody></table>"
