"""Command-line entrypoint for reconciliation, numbering and tax checks."""
from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from fiscal_recon.application.use_cases import (
    ReconcileUseCase,
    ReconciliationContext,
    SequenceAnalysisUseCase,
    TaxCheckUseCase,
    ingest_cost_centers,
    ingest_exception_keys,
)
from fiscal_recon.config import SETTINGS
from fiscal_recon.domain.sequence import icms_summary_by_cfop, mark_range
from fiscal_recon.domain.services import ReconciliationEngine
from fiscal_recon.errors import FiscalReconError
from fiscal_recon.infrastructure.export.workbook_export import export_workbook
from fiscal_recon.infrastructure.repositories.excel_repositories import (
    ExcelDocumentRepository,
    ExcelLedgerRepository,
)
from fiscal_recon.presentation.report_rows import (
    consistency_tables,
    reconciliation_tables,
    sequence_to_rows,
)


def parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Reconcile fiscal documents against the accounting ledger")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    commands = parser.add_subparsers(dest="command", required=True)

    reconcile = commands.add_parser("reconcile", help="Match registered documents against ledger postings")
    reconcile.add_argument("ledger", type=str, help="Path to the ledger export")
    reconcile.add_argument("documents", type=str, help="Path to the registered documents spreadsheet")
    reconcile.add_argument("--items", type=str, help="Path to the document line items spreadsheet")
    reconcile.add_argument(
        "--canceled-key", action="append", default=[], help="Access key of a canceled document (repeatable)"
    )
    reconcile.add_argument(
        "--exceptions",
        action="append",
        default=[],
        help="Sheet of access keys to set aside (manifest rejections, cancellations; repeatable)",
    )
    reconcile.add_argument(
        "--company-tax-id", type=str, default=SETTINGS.company_tax_id, help="CNPJ of the company being reconciled"
    )
    reconcile.add_argument("--cost-centers", type=str, help="Apportionment sheet mapping documents to cost centers")
    reconcile.add_argument("--export", type=str, help="Write every bucket to this .xlsx file")

    gaps = commands.add_parser("gaps", help="Find gaps in outbound invoice numbering")
    gaps.add_argument("documents", type=str, help="Path to the outbound documents spreadsheet")
    gaps.add_argument("--last-number", type=int, default=0, help="Last number used in the previous period")
    gaps.add_argument(
        "--voided",
        nargs=2,
        type=int,
        action="append",
        default=[],
        metavar=("START", "END"),
        help="Mark an inclusive range as voided (repeatable)",
    )
    gaps.add_argument("--export", type=str, help="Write the numbering table to this .xlsx file")

    taxes = commands.add_parser("taxes", help="Check CFOP against counterparty state and list taxes")
    taxes.add_argument("ledger", type=str, help="Path to the ledger export")
    taxes.add_argument("--home-state", type=str, default=SETTINGS.home_state, help="Company state code")
    taxes.add_argument("--export", type=str, help="Write findings and tax lists to this .xlsx file")
    return parser.parse_args(argv)


def _write_export(path: str | None, tables: dict) -> bool:
    if not path:
        return True
    try:
        Path(path).write_bytes(export_workbook(tables))
    except OSError as exc:
        print(f"Could not write {path}: {exc}", file=sys.stderr)
        return False
    print(f"\nExported to {path}")
    return True


def run_reconcile(args: argparse.Namespace) -> int:
    exceptions = ingest_exception_keys((Path(path).name, Path(path)) for path in args.exceptions)
    cost_center_sheets = ingest_cost_centers(
        [(Path(args.cost_centers).name, Path(args.cost_centers))] if args.cost_centers else []
    )
    failures = [*exceptions.failures, *cost_center_sheets.failures]
    if failures:
        for failure in failures:
            print(f"Reconciliation failed: could not read {failure.file_name}: {failure.reason}", file=sys.stderr)
        return 1
    cost_centers = dict(cost_center_sheets.values)
    context = ReconciliationContext(
        ledger_repository=ExcelLedgerRepository(Path(args.ledger), Path(args.ledger).name),
        document_repository=ExcelDocumentRepository(
            Path(args.documents),
            Path(args.documents).name,
            items_source=Path(args.items) if args.items else None,
            items_file_name=Path(args.items).name if args.items else None,
            canceled_keys=args.canceled_key,
        ),
        engine=ReconciliationEngine(own_return_categories=SETTINGS.own_return_categories),
        exception_keys=frozenset(exceptions.values),
        company_tax_id=args.company_tax_id,
        cost_centers=cost_centers,
    )
    outcome = ReconcileUseCase(context).execute()
    if not outcome.ok:
        print(f"Reconciliation failed: {outcome.error}", file=sys.stderr)
        return 1
    result = outcome.value

    print("Reconciliation Summary")
    print("======================")
    print(f"Matched items: {len(result.matched)}")
    print(f"Only in documents: {len(result.left_only)}")
    for category, rows in result.right_only_by_category.items():
        print(f"Only in ledger ({category}): {len(rows)}")
    print(f"Returns of own issuance: {len(result.own_issue_returns)}")
    for reason, records in result.excluded.items():
        print(f"Set aside ({reason}): {len(records)}")
    if result.orphan_line_items:
        print(f"Line items without a document: {len(result.orphan_line_items)}")
    if result.skipped_internal or result.skipped_external:
        print(f"Skipped without key: {result.skipped_internal} documents, {result.skipped_external} ledger rows")

    if result.left_only:
        print("\nDocuments missing from the ledger:")
        for record in result.left_only:
            print(f"- {record.document_number} {record.counterparty_tax_id} {record.counterparty_name or ''}")

    return 0 if _write_export(args.export, reconciliation_tables(result, cost_centers)) else 1


def run_gaps(args: argparse.Namespace) -> int:
    documents = ExcelDocumentRepository(Path(args.documents), Path(args.documents).name, document_source="saidas")
    overrides: dict = {}
    try:
        records = documents.list_documents()
        for start, end in args.voided:
            overrides = mark_range(overrides, start, end)
    except FiscalReconError as exc:
        print(f"Sequence analysis failed: {exc}", file=sys.stderr)
        return 1

    outcome = SequenceAnalysisUseCase().execute(records, args.last_number, overrides)
    if not outcome.ok:
        print(f"Sequence analysis failed: {outcome.error}", file=sys.stderr)
        return 1
    analysis = outcome.value

    print("Numbering Summary")
    print("=================")
    if analysis.start_number is None:
        print("No numbered documents found.")
        return 0
    print(f"Range: {analysis.start_number} - {analysis.max_observed}")
    for status, count in analysis.counts().items():
        print(f"{status.value}: {count}")
    if analysis.first_number_after_gap is not None:
        print(f"Warning: first number {analysis.first_number_after_gap} does not follow {args.last_number}")
    if analysis.duplicates:
        print(f"Repeated numbers: {', '.join(map(str, analysis.duplicates))}")
    gaps = [position.number for position in analysis.positions if position.is_gap and not position.overridden]
    if gaps:
        print(f"\nMissing numbers: {', '.join(map(str, gaps))}")

    exported = _write_export(
        args.export,
        {"Numbering": sequence_to_rows(analysis), "ICMS by CFOP": [
            {key: str(value) for key, value in row.items()} for row in icms_summary_by_cfop(analysis)
        ]},
    )
    return 0 if exported else 1


def run_taxes(args: argparse.Namespace) -> int:
    try:
        ledger = ExcelLedgerRepository(Path(args.ledger), Path(args.ledger).name).list_ledger_records()
    except FiscalReconError as exc:
        print(f"Tax check failed: {exc}", file=sys.stderr)
        return 1
    outcome = TaxCheckUseCase(args.home_state.strip().upper()).execute(ledger)
    if not outcome.ok:
        print(f"Tax check failed: {outcome.error}", file=sys.stderr)
        return 1
    report = outcome.value

    print("Tax Check Summary")
    print("=================")
    print(f"CFOP x UF inconsistencies: {len(report.cfop_uf_inconsistencies)}")
    for finding in report.cfop_uf_inconsistencies:
        print(
            f"- {finding.document_number} {finding.counterparty_tax_id} UF {finding.state}: "
            f"CFOP {finding.cfop}, expected {finding.suggested_cfop}"
        )
    for tax, total in report.tax_totals.items():
        print(f"{tax.upper()}: {len(report.tax_lists.get(tax, ()))} documents, total {total}")

    return 0 if _write_export(args.export, consistency_tables(report)) else 1


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv if argv is not None else sys.argv[1:])
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    handlers = {"reconcile": run_reconcile, "gaps": run_gaps, "taxes": run_taxes}
    return handlers[args.command](args)


if __name__ == "__main__":  # pragma: no cover
    raise SystemExit(main())
