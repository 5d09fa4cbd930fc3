from fiscal_recon.domain.classification import ClassificationStore, load_for_competence
from fiscal_recon.domain.models import AssetClassification, CfopVerdict, ClassifiableItem
from fiscal_recon.presentation.classification_rows import apply_edits, session_rows

TAX_ID = "11222333000144"


def two_lines_of_one_product() -> list[ClassifiableItem]:
    return [
        ClassifiableItem(
            issuer_tax_id=TAX_ID,
            product_code="P1",
            access_key="1001",
            line_number=line,
            cfop="5102",
            target_cfop="1551",
        )
        for line in ("1", "2")
    ]


def test_editing_one_line_is_not_undone_by_its_sibling():
    items = two_lines_of_one_product()
    session = load_for_competence(ClassificationStore(), "2024-01", items)
    shown = session_rows(session)
    edited = [dict(row) for row in shown]
    edited[0]["classification"] = "imobilizado"

    changed = apply_edits(session, shown, edited)

    assert changed == 1
    assert session.classification_of(items[0]) is AssetClassification.IMOBILIZADO
    assert session.classification_of(items[1]) is AssetClassification.IMOBILIZADO
    assert [row["classification"] for row in session_rows(session)] == ["imobilizado", "imobilizado"]


def test_cfop_verdict_edits_ignore_missing_columns():
    items = two_lines_of_one_product()
    session = load_for_competence(ClassificationStore(), "2024-01", items)
    shown = session_rows(session)
    edited = [{"cfop_verdict": "correct"}, {"cfop_verdict": "unvalidated"}]

    changed = apply_edits(session, shown, edited)

    assert changed == 1
    assert session.cfop_verdict_of(items[1]) is CfopVerdict.CORRECT
    assert session.classification_of(items[0]) is AssetClassification.UNCLASSIFIED


def test_blank_cells_count_as_empty():
    items = two_lines_of_one_product()[:1]
    session = load_for_competence(ClassificationStore(), "2024-01", items)
    shown = session_rows(session)

    changed = apply_edits(session, shown, [{"account_code": None}])

    assert changed == 0
    assert not session.has_changes
    assert shown[0]["account_code"] == ""
    assert shown[0]["cfop"] == "1551"
