from fiscal_recon.domain.models import CanonicalRecord, LineItem
from fiscal_recon.domain.screening import (
    CANCELED,
    CUSTOMER_RETURNS,
    PURCHASE_RETURNS,
    TRANSFERS,
    screen_documents,
)

COMPANY = "81.732.042/0001-19"
SUPPLIER = "11222333000144"


def document(number: str, issuer: str, access_key: str, recipient: str | None = None, **kwargs) -> CanonicalRecord:
    return CanonicalRecord(
        source="nfe",
        document_number=number,
        counterparty_tax_id=issuer,
        access_key=access_key,
        recipient_tax_id=recipient,
        **kwargs,
    )


def line(access_key: str, number: str, issuer: str, cfop: str) -> LineItem:
    return LineItem(access_key=access_key, document_number=number, issuer_tax_id=issuer, line_number="1", cfop=cfop)


def test_documents_are_split_by_reason():
    documents = [
        document("1", SUPPLIER, "1001", "81732042000119"),
        document("2", SUPPLIER, "1002", "81732042000119"),
        document("3", SUPPLIER, "1003", "81732042000119", canceled=True),
        document("4", "81732042000119", "1004", SUPPLIER),
        document("5", "81732042000119", "1005", "81732042000119"),
        document("6", SUPPLIER, "1006", "81732042000119"),
    ]
    items = [
        line("1001", "1", SUPPLIER, "5102"),
        line("1006", "6", SUPPLIER, "1202"),
        line("1005", "5", "81732042000119", "5152"),
    ]

    screening = screen_documents(documents, items, exception_keys={"1002"}, company_tax_id=COMPANY)

    assert [record.document_number for record in screening.valid] == ["1"]
    assert {reason: [record.document_number for record in records] for reason, records in screening.excluded.items()} == {
        CANCELED: ["2", "3"],
        PURCHASE_RETURNS: ["4"],
        TRANSFERS: ["5"],
        CUSTOMER_RETURNS: ["6"],
    }
    assert screening.excluded_count == 5
    assert list(screening.line_items) == [items[0]]


def test_issuer_rules_need_the_company_tax_id():
    documents = [document("4", "81732042000119", "1004", SUPPLIER)]

    screening = screen_documents(documents)

    assert list(screening.valid) == documents
    assert screening.excluded == {}


def test_lines_without_a_document_are_kept_for_the_matcher():
    stray = line("9999", "9", SUPPLIER, "5102")

    screening = screen_documents([document("1", SUPPLIER, "1001")], [stray])

    assert list(screening.line_items) == [stray]


def test_exception_keys_are_compared_as_digits():
    documents = [document("1", SUPPLIER, "3524 0111 2223")]

    screening = screen_documents(documents, exception_keys=["352401112223", ""])

    assert screening.valid == ()
    assert [record.document_number for record in screening.excluded[CANCELED]] == ["1"]
