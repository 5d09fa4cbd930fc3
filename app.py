"""Streamlit front-end for the fiscal reconciliation workflow."""
from __future__ import annotations

from datetime import datetime

import pandas as pd
import streamlit as st

from fiscal_recon import (
    ClassificationUseCase,
    ReconcileUseCase,
    ReconciliationContext,
    ReconciliationEngine,
    SequenceAnalysisUseCase,
    SessionUseCase,
    TaxCheckUseCase,
)
from fiscal_recon.application.dto import RunLog, SessionDocument
from fiscal_recon.application.use_cases import (
    ingest_cost_centers,
    ingest_exception_keys,
    ingest_line_items,
    ingest_records,
)
from fiscal_recon.config import SETTINGS
from fiscal_recon.domain.classification import asset_candidates, cfop_review_items
from fiscal_recon.domain.keys import join_competences
from fiscal_recon.domain.models import AssetClassification, CfopVerdict
from fiscal_recon.domain.results import ReconciliationResult
from fiscal_recon.domain.sequence import icms_summary_by_cfop, mark_range
from fiscal_recon.errors import InvalidRangeError
from fiscal_recon.infrastructure.export.workbook_export import export_workbook
from fiscal_recon.infrastructure.repositories.memory_repositories import (
    InMemoryDocumentRepository,
    InMemoryLedgerRepository,
)
from fiscal_recon.infrastructure.storage.classification_store import ClassificationRepository
from fiscal_recon.infrastructure.storage.json_store import JsonKeyValueStore
from fiscal_recon.infrastructure.storage.session_store import SessionRepository
from fiscal_recon.presentation.classification_rows import apply_edits, session_rows
from fiscal_recon.presentation.report_rows import (
    consistency_tables,
    matched_to_rows,
    reconciliation_tables,
    record_to_row,
    render_csv,
    sequence_to_rows,
)

st.set_page_config(page_title="Fiscal Reconciliation", layout="wide")
st.title("Fiscal Reconciliation Tool")

storage = JsonKeyValueStore(SETTINGS.storage_path, SETTINGS.storage_quota_bytes)
classification_use_case = ClassificationUseCase(ClassificationRepository(storage))
session_use_case = SessionUseCase(SessionRepository(storage))

SESSION_KEYS = ("asset_session", "cfop_session")

for key, default in (
    ("result", None),
    ("documents", ()),
    ("ledger", ()),
    ("cost_centers", {}),
    ("log", []),
    ("overrides", {}),
    ("asset_session", None),
    ("cfop_session", None),
):
    if key not in st.session_state:
        st.session_state[key] = default


def uploads(files) -> list[tuple[str, bytes]]:
    return [(file.name, file.read()) for file in files or []]


def show_log(messages) -> None:
    if messages:
        with st.expander("Processing log"):
            st.code("\n".join(messages))


def reset_classification_sessions() -> None:
    for key in SESSION_KEYS:
        st.session_state[key] = None


def restore_session(document: SessionDocument) -> bool:
    outcome = classification_use_case.import_store(document.classifications)
    if not outcome.ok:
        st.error(outcome.error)
        return False
    st.session_state["result"] = document.reconciliation
    st.session_state["ledger"] = tuple(document.ledger)
    st.session_state["overrides"] = dict(document.saidas_status)
    st.session_state["cost_centers"] = classification_use_case.cost_centers(document.competence)
    reset_classification_sessions()
    return True


def classification_editor(session_key: str, items, editable: list[str], column_config: dict) -> None:
    session = st.session_state[session_key]
    if session is None or session.competence != competence:
        session = classification_use_case.open_session(competence, items)
        st.session_state[session_key] = session

    shown = session_rows(session)
    frame = pd.DataFrame(shown)
    if frame.empty:
        st.info("No items to review.")
        return
    visible = ["product", "line", "description", "cfop", *editable, "inherited_from"]
    edited = st.data_editor(
        frame[visible],
        hide_index=True,
        disabled=[column for column in visible if column not in editable],
        column_config=column_config,
        key=f"{session_key}_editor",
        use_container_width=True,
    )
    if st.button("Save", key=f"{session_key}_save"):
        apply_edits(session, shown, edited.to_dict("records"))
        outcome = classification_use_case.save(session)
        if outcome.ok:
            st.success("Decisions saved")
        else:
            st.error(outcome.error)


with st.sidebar:
    st.header("Period")
    periods = st.text_input("Competences (YYYY-MM, comma separated)", value=datetime.now().strftime("%Y-%m"))
    competence = join_competences(part.strip() for part in periods.split(","))
    st.caption(f"Session label: {competence or '-'}")
    company_tax_id = st.text_input("Company CNPJ", value=SETTINGS.company_tax_id)

tabs = st.tabs(["Reconciliation", "Outbound numbering", "Tax check", "Fixed assets", "CFOP validation", "History"])

with tabs[0]:
    col1, col2, col3 = st.columns(3)
    with col1:
        ledger_files = st.file_uploader("Ledger export", type=["xls", "xlsx", "csv"], accept_multiple_files=True)
    with col2:
        document_files = st.file_uploader("Registered documents", type=["xls", "xlsx", "csv"], accept_multiple_files=True)
    with col3:
        item_files = st.file_uploader("Document line items", type=["xls", "xlsx", "csv"], accept_multiple_files=True)
    col4, col5 = st.columns(2)
    with col4:
        exception_files = st.file_uploader(
            "Manifest exceptions (operation not performed, unknown, service disagreement)",
            type=["xls", "xlsx", "csv"],
            accept_multiple_files=True,
        )
    with col5:
        cost_center_files = st.file_uploader(
            "Cost center apportionment", type=["xls", "xlsx", "csv"], accept_multiple_files=True
        )
    canceled_text = st.text_area("Access keys of canceled documents (one per line)")

    if st.button("Run reconciliation", disabled=not (ledger_files and document_files)):
        log = RunLog()
        ledger = ingest_records(uploads(ledger_files), source="ledger", log=log)
        documents = ingest_records(uploads(document_files), source="nfe", log=log)
        items = ingest_line_items(uploads(item_files), log=log)
        exceptions = ingest_exception_keys(uploads(exception_files), log=log)
        cost_center_sheets = ingest_cost_centers(uploads(cost_center_files), log=log)
        for failure in (
            *ledger.failures,
            *documents.failures,
            *items.failures,
            *exceptions.failures,
            *cost_center_sheets.failures,
        ):
            st.warning(f"{failure.file_name} was skipped: {failure.reason}")

        cost_centers = classification_use_case.cost_centers(competence) if competence else {}
        if cost_center_sheets.values:
            cost_centers.update(dict(cost_center_sheets.values))
            if competence:
                saved = classification_use_case.record_cost_centers(competence, dict(cost_center_sheets.values))
                if not saved.ok:
                    st.warning(saved.error)

        context = ReconciliationContext(
            ledger_repository=InMemoryLedgerRepository(ledger.values),
            document_repository=InMemoryDocumentRepository(documents.values, items.values),
            engine=ReconciliationEngine(own_return_categories=SETTINGS.own_return_categories),
            exception_keys=frozenset([*exceptions.values, *(line.strip() for line in canceled_text.splitlines())]),
            company_tax_id=company_tax_id,
            cost_centers=cost_centers,
        )
        with st.spinner("Reconciling..."):
            outcome = ReconcileUseCase(context).execute()
        st.session_state["log"] = log.messages + list(outcome.log)
        if outcome.ok:
            st.session_state["result"] = outcome.value
            st.session_state["ledger"] = ledger.values
            st.session_state["documents"] = documents.values
            st.session_state["cost_centers"] = cost_centers
            reset_classification_sessions()
        else:
            st.session_state["result"] = None
            st.error(outcome.error)

    result: ReconciliationResult | None = st.session_state["result"]
    show_log(st.session_state["log"])
    if result is not None:
        metrics = st.columns(5)
        metrics[0].metric("Matched items", len(result.matched))
        metrics[1].metric("Only in documents", len(result.left_only))
        metrics[2].metric("Only in ledger", sum(len(rows) for rows in result.right_only_by_category.values()))
        metrics[3].metric("Own issue returns", len(result.own_issue_returns))
        metrics[4].metric("Set aside", sum(len(rows) for rows in result.excluded.values()))

        tables = reconciliation_tables(result, st.session_state["cost_centers"])
        st.subheader("Matched")
        st.dataframe(pd.DataFrame(matched_to_rows(result.matched)))
        st.subheader("Documents missing from the ledger")
        st.dataframe(pd.DataFrame([record_to_row(record) for record in result.left_only]))
        for name, rows in tables.items():
            if name.startswith(("Ledger only", "Set aside", "Orphan")) and rows:
                st.subheader(name)
                st.dataframe(pd.DataFrame(rows))
        st.download_button(
            "Download workbook",
            data=export_workbook(tables),
            file_name=f"reconciliation_{competence or 'period'}.xlsx",
            mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
        )

with tabs[1]:
    outbound_files = st.file_uploader("Outbound documents", type=["xls", "xlsx", "csv"], accept_multiple_files=True)
    last_number = st.number_input("Last number of the previous period", min_value=0, step=1, value=0)
    range_cols = st.columns(3)
    range_start = range_cols[0].number_input("Void from", min_value=0, step=1, value=0)
    range_end = range_cols[1].number_input("Void to", min_value=0, step=1, value=0)
    if range_cols[2].button("Mark as voided"):
        try:
            st.session_state["overrides"] = mark_range(st.session_state["overrides"], int(range_start), int(range_end))
        except InvalidRangeError as exc:
            st.warning(str(exc))

    if outbound_files:
        outbound = ingest_records(uploads(outbound_files), source="saidas")
        for failure in outbound.failures:
            st.warning(f"{failure.file_name} was skipped: {failure.reason}")
        outcome = SequenceAnalysisUseCase().execute(outbound.values, int(last_number), st.session_state["overrides"])
        show_log(outcome.log)
        if not outcome.ok:
            st.error(outcome.error)
        else:
            analysis = outcome.value
            if analysis.first_number_after_gap is not None:
                st.warning(
                    f"The first number found ({analysis.first_number_after_gap}) does not follow {int(last_number)}."
                )
            counts = analysis.counts()
            cols = st.columns(len(counts))
            for col, (status, count) in zip(cols, counts.items()):
                col.metric(status.value, count)
            st.dataframe(pd.DataFrame(sequence_to_rows(analysis)))
            st.subheader("ICMS by CFOP")
            st.dataframe(pd.DataFrame(icms_summary_by_cfop(analysis)))
            st.download_button(
                "Download numbering CSV",
                data=render_csv(sequence_to_rows(analysis)),
                file_name="numbering.csv",
                mime="text/csv",
            )

with tabs[2]:
    home_state = st.text_input("Company state", value=SETTINGS.home_state).strip().upper()
    ledger_rows = st.session_state["ledger"]
    if not ledger_rows:
        st.info("Run a reconciliation or load a session first to get the ledger.")
    else:
        outcome = TaxCheckUseCase(home_state).execute(ledger_rows)
        if not outcome.ok:
            st.error(outcome.error)
        else:
            tables = consistency_tables(outcome.value)
            for name, rows in tables.items():
                st.subheader(name)
                st.dataframe(pd.DataFrame(rows))
            st.download_button(
                "Download tax workbook",
                data=export_workbook(tables),
                file_name="tax_check.xlsx",
                mime="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            )

with tabs[3]:
    result = st.session_state["result"]
    if result is None or not competence:
        st.info("Run a reconciliation and set the competence first.")
    else:
        st.caption(f"Line items with unit value above {SETTINGS.asset_unit_value_threshold}")
        classification_editor(
            "asset_session",
            asset_candidates(result.matched, SETTINGS.asset_unit_value_threshold),
            ["classification", "account_code"],
            {"classification": st.column_config.SelectboxColumn(options=[v.value for v in AssetClassification])},
        )

with tabs[4]:
    result = st.session_state["result"]
    if result is None or not competence:
        st.info("Run a reconciliation and set the competence first.")
    else:
        classification_editor(
            "cfop_session",
            cfop_review_items(result.matched),
            ["cfop_verdict"],
            {"cfop_verdict": st.column_config.SelectboxColumn(options=[v.value for v in CfopVerdict])},
        )

with tabs[5]:
    result = st.session_state["result"]
    if st.button("Save session", disabled=result is None or not competence):
        document = SessionDocument(
            competence=competence,
            processed_at=datetime.now(),
            reconciliation=result,
            ledger=tuple(st.session_state["ledger"]),
            classifications=ClassificationRepository(storage).load(),
            last_saida_number=int(last_number),
            saidas_status=st.session_state["overrides"],
        )
        outcome = session_use_case.save(document)
        if outcome.ok:
            st.success(f"Session {competence} saved")
        else:
            st.error(outcome.error)

    uploaded_session = st.file_uploader("Import session JSON", type=["json"])
    if uploaded_session is not None and st.button("Load imported session"):
        outcome = SessionUseCase.import_json(uploaded_session.read().decode("utf-8"), uploaded_session.name)
        if not outcome.ok:
            st.error(outcome.error)
        elif restore_session(outcome.value):
            st.success(f"Session {outcome.value.competence} loaded")

    for stored in session_use_case.history():
        cols = st.columns([3, 3, 1, 1, 1])
        cols[0].write(stored.competence)
        cols[1].write(stored.processed_at.strftime("%Y-%m-%d %H:%M"))
        if cols[2].button("Load", key=f"load_{stored.competence}"):
            if restore_session(stored):
                st.rerun()
        cols[3].download_button(
            "JSON",
            data=SessionUseCase.export_json(stored).encode("utf-8"),
            file_name=f"session_{stored.competence}.json",
            mime="application/json",
            key=f"export_{stored.competence}",
        )
        if cols[4].button("Delete", key=f"delete_{stored.competence}"):
            session_use_case.delete(stored.competence)
            st.rerun()
