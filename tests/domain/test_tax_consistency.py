from decimal import Decimal

from fiscal_recon.domain.models import CanonicalRecord
from fiscal_recon.domain.tax_checks import check_consistency, suggest_cfop


def ledger_row(number: str, state: str | None, cfop: str | None, tax_id: str = "11222333000144", **taxes) -> CanonicalRecord:
    return CanonicalRecord(
        source="ledger",
        document_number=number,
        counterparty_tax_id=tax_id,
        state=state,
        cfop=cfop,
        taxes={name: Decimal(value) for name, value in taxes.items()},
    )


def test_interstate_purchase_with_intrastate_cfop_is_flagged():
    report = check_consistency([ledger_row("10", "SP", "1102")], home_state="PR")

    assert len(report.cfop_uf_inconsistencies) == 1
    finding = report.cfop_uf_inconsistencies[0]
    assert finding.suggested_cfop == "2102"
    assert finding.state == "SP"


def test_consistent_outbound_and_incomplete_rows_are_ignored():
    rows = [
        ledger_row("1", "PR", "1102"),
        ledger_row("2", "SP", "2102"),
        ledger_row("3", "SP", "5102"),
        ledger_row("4", None, "1102"),
        ledger_row("5", "SP", None),
        ledger_row("6", "SP", "110"),
    ]

    report = check_consistency(rows, home_state="PR")

    assert report.cfop_uf_inconsistencies == ()


def test_foreign_counterparty_expects_import_cfop():
    assert suggest_cfop("2102", "EX", "PR") == "3102"
    assert suggest_cfop("3102", "ex", "PR") is None
    assert suggest_cfop("2102", "PR", "pr") == "1102"


def test_findings_are_deduplicated_by_document():
    rows = [
        ledger_row("500", "SP", "1102"),
        ledger_row("500.0", "SP", "1556", tax_id="11.222.333/0001-44"),
        ledger_row("501", "SP", "1102"),
    ]

    report = check_consistency(rows, home_state="PR")

    assert [finding.document_number for finding in report.cfop_uf_inconsistencies] == ["500", "501"]


def test_tax_lists_and_totals():
    rows = [
        ledger_row("1", "PR", "1102", icms="10.50", pis="0"),
        ledger_row("2", "PR", "1102", icms="4.50", cofins="3"),
        ledger_row("3", "PR", "1102"),
    ]

    report = check_consistency(rows, home_state="PR")

    assert [entry.record.document_number for entry in report.tax_lists["icms"]] == ["1", "2"]
    assert [entry.value for entry in report.tax_lists["pis"]] == [Decimal("0")]
    assert report.tax_lists["ipi"] == ()
    assert report.tax_totals["icms"] == Decimal("15.00")
    assert report.tax_totals["cofins"] == Decimal("3")
    assert report.tax_totals["icms_st"] == Decimal("0")
