from decimal import Decimal

import pytest

from fiscal_recon.domain.models import CanonicalRecord, LineItem
from fiscal_recon.domain.results import UNCATEGORIZED
from fiscal_recon.domain.services import ReconciliationEngine


def make_document(number: str, tax_id: str, access_key: str | None = None, **kwargs) -> CanonicalRecord:
    return CanonicalRecord(
        source="nfe",
        document_number=number,
        counterparty_tax_id=tax_id,
        access_key=access_key,
        **kwargs,
    )


def make_ledger_row(number: str, tax_id: str, category: str | None = None, **kwargs) -> CanonicalRecord:
    return CanonicalRecord(
        source="ledger",
        document_number=number,
        counterparty_tax_id=tax_id,
        category=category,
        **kwargs,
    )


def test_documents_match_ledger_on_number_and_tax_id():
    engine = ReconciliationEngine()
    documents = [make_document("500", "11.222.333/0001-44", access_key="A")]
    ledger = [make_ledger_row("500", "11222333000144", category="compra")]

    result = engine.reconcile(ledger, documents)

    assert len(result.matched) == 1
    assert list(result.iter_right_only()) == []
    assert result.left_only == ()
    assert not result.has_divergences()


def test_every_record_lands_in_exactly_one_bucket():
    engine = ReconciliationEngine(own_return_categories={"DEV"})
    documents = [
        make_document("500", "11222333000144", access_key="1001"),
        make_document("501", "11222333000144", access_key="1002"),
    ]
    ledger = [
        make_ledger_row("500", "11222333000144", category="compra"),
        make_ledger_row("502", "99888777000166", category="compra"),
        make_ledger_row("503", "99888777000166"),
        make_ledger_row("504", "55444333000122", category="dev"),
    ]

    result = engine.reconcile(ledger, documents)

    assert [item.document.document_number for item in result.matched] == ["500"]
    assert [record.document_number for record in result.left_only] == ["501"]
    assert [row.document_number for row in result.right_only_by_category["compra"]] == ["502"]
    assert [row.document_number for row in result.right_only_by_category[UNCATEGORIZED]] == ["503"]
    assert [row.document_number for row in result.own_issue_returns] == ["504"]
    assert "dev" not in result.right_only_by_category


def test_records_without_key_are_counted_not_matched():
    engine = ReconciliationEngine()
    documents = [make_document("", "11222333000144"), make_document("500", None)]
    ledger = [make_ledger_row("500", ""), make_ledger_row("500", "11222333000144")]

    result = engine.reconcile(ledger, documents)

    assert result.skipped_internal == 2
    assert result.skipped_external == 1
    assert result.matched == ()
    assert result.left_only == ()
    assert [row.counterparty_tax_id for row in result.right_only_by_category[UNCATEGORIZED]] == ["11222333000144"]


def test_first_ledger_row_enriches_the_match():
    engine = ReconciliationEngine()
    documents = [make_document("500", "11222333000144")]
    ledger = [
        make_ledger_row("500", "11222333000144", category="compra", cfop="1556", total_value=Decimal("10")),
        make_ledger_row("500.0", "11.222.333/0001-44", category="frete", cfop="1353"),
    ]

    result = engine.reconcile(ledger, documents)

    assert len(result.matched) == 1
    item = result.matched[0]
    assert item.ledger_cfop == "1556"
    assert item.ledger_match_count == 2
    assert list(result.iter_right_only()) == []


def test_matched_documents_expand_to_their_line_items():
    engine = ReconciliationEngine()
    documents = [
        make_document("500", "11222333000144", access_key="3524 0111"),
        make_document("600", "99888777000166"),
    ]
    items = [
        LineItem(access_key="35240111", document_number="500", issuer_tax_id="11222333000144", line_number="1"),
        LineItem(access_key="35240111", document_number="500", issuer_tax_id="11222333000144", line_number="2"),
        LineItem(access_key=None, document_number="600", issuer_tax_id="99.888.777/0001-66", line_number="1"),
    ]
    ledger = [make_ledger_row("500", "11222333000144"), make_ledger_row("600", "99888777000166")]

    result = engine.reconcile(ledger, documents, items)

    lines = [(item.document.document_number, item.line_item.line_number) for item in result.matched]
    assert lines == [("500", "1"), ("500", "2"), ("600", "1")]


def test_reconcile_is_deterministic():
    engine = ReconciliationEngine(own_return_categories={"DEV"})
    documents = [make_document(str(number), "11222333000144") for number in range(10, 20)]
    ledger = [make_ledger_row(str(number), "11222333000144", category="compra") for number in range(15, 25)]

    first = engine.reconcile(ledger, documents)
    second = engine.reconcile(ledger, documents)

    assert first == second


def test_lines_with_an_access_key_attach_to_a_document_without_one():
    engine = ReconciliationEngine()
    documents = [make_document("500", "11222333000144")]
    items = [
        LineItem(access_key="35240111", document_number="500", issuer_tax_id="11222333000144", line_number="1"),
        LineItem(access_key="35240111", document_number="500", issuer_tax_id="11222333000144", line_number="2"),
    ]

    result = engine.reconcile([make_ledger_row("500", "11222333000144")], documents, items)

    assert [item.line_item.line_number for item in result.matched] == ["1", "2"]
    assert result.orphan_line_items == ()


def test_lines_of_another_access_key_are_not_borrowed():
    engine = ReconciliationEngine()
    documents = [make_document("500", "11222333000144", access_key="35240222")]
    items = [LineItem(access_key="35240111", document_number="500", issuer_tax_id="11222333000144", line_number="1")]

    result = engine.reconcile([make_ledger_row("500", "11222333000144")], documents, items)

    assert [item.line_item for item in result.matched] == [None]
    assert [item.access_key for item in result.orphan_line_items] == ["35240111"]


def test_every_line_item_is_matched_left_with_its_document_or_orphaned():
    engine = ReconciliationEngine()
    documents = [
        make_document("500", "11222333000144", access_key="1001"),
        make_document("501", "11222333000144", access_key="1002"),
    ]
    items = [
        LineItem(access_key="1001", document_number="500", issuer_tax_id="11222333000144", line_number="1"),
        LineItem(access_key="1002", document_number="501", issuer_tax_id="11222333000144", line_number="1"),
        LineItem(access_key="1003", document_number="502", issuer_tax_id="11222333000144", line_number="1"),
        LineItem(access_key=None, document_number="503", issuer_tax_id="11222333000144", line_number="1"),
    ]

    result = engine.reconcile([make_ledger_row("500", "11222333000144")], documents, items)

    matched_lines = [item.line_item for item in result.matched]
    assert matched_lines == [items[0]]
    assert [record.document_number for record in result.left_only] == ["501"]
    assert list(result.orphan_line_items) == [items[2], items[3]]
    accounted = len(matched_lines) + len(result.orphan_line_items) + 1
    assert accounted == len(items)


def test_ledger_rows_are_paired_with_lines_by_value():
    engine = ReconciliationEngine()
    documents = [make_document("500", "11222333000144", access_key="1001")]
    items = [
        LineItem(
            access_key="1001",
            document_number="500",
            issuer_tax_id="11222333000144",
            line_number="1",
            total_value=Decimal("100.00"),
        ),
        LineItem(
            access_key="1001",
            document_number="500",
            issuer_tax_id="11222333000144",
            line_number="2",
            total_value=Decimal("250.00"),
        ),
    ]
    ledger = [
        make_ledger_row("500", "11222333000144", cfop="1556", total_value=Decimal("260.00"), taxes={"freight": Decimal("10.00")}),
        make_ledger_row("500", "11222333000144", cfop="1407", total_value=Decimal("100.00")),
    ]

    result = engine.reconcile(ledger, documents, items)

    assert [(item.line_item.line_number, item.ledger_cfop, item.matched_by) for item in result.matched] == [
        ("1", "1407", "total"),
        ("2", "1556", "total-freight"),
    ]
    assert all(item.ledger_match_count == 2 for item in result.matched)


@pytest.mark.parametrize(
    "ledger_kwargs, expected",
    [
        ({"total_value": Decimal("95.00"), "taxes": {"discount": Decimal("5.00")}}, "total+discount"),
        ({"total_value": Decimal("112.00"), "taxes": {"ipi": Decimal("10.00"), "icms_st": Decimal("2.00")}}, "total-ipi-icms_st"),
        ({"total_value": Decimal("999.00"), "taxes": {"unit_value": Decimal("50.004")}}, "unit_value"),
        ({"total_value": Decimal("100.02")}, None),
    ],
)
def test_value_pairing_fallbacks(ledger_kwargs, expected):
    line = LineItem(
        access_key="1001",
        document_number="500",
        issuer_tax_id="11222333000144",
        line_number="1",
        unit_value=Decimal("50.00"),
        total_value=Decimal("100.00"),
    )

    result = ReconciliationEngine().reconcile(
        [make_ledger_row("500", "11222333000144", **ledger_kwargs)],
        [make_document("500", "11222333000144", access_key="1001")],
        [line],
    )

    assert result.matched[0].matched_by == expected


def test_matches_carry_the_cost_center_of_their_document():
    engine = ReconciliationEngine()
    documents = [make_document("500", "11222333000144")]

    result = engine.reconcile(
        [make_ledger_row("500", "11222333000144")],
        documents,
        cost_centers={"500-11222333000144": "Obra 12"},
    )

    assert result.matched[0].cost_center == "Obra 12"
