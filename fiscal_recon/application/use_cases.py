"""Application services orchestrating ingestion, reconciliation and persistence.

Use cases own the error boundary: a file that cannot be decoded is reported
and skipped, a full storage quota leaves the caller's in-memory state alone,
and any other failure inside a run is logged and turned into a failed
``RunOutcome`` without partial results.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from io import BytesIO
from pathlib import Path
from typing import Callable, Iterable, Mapping, Sequence, TypeVar

from fiscal_recon.domain import classification
from fiscal_recon.domain.classification import ClassificationSession, ClassificationStore
from fiscal_recon.domain.models import CanonicalRecord, ClassifiableItem, LineItem, SequenceStatus
from fiscal_recon.domain.repositories import DocumentRepository, LedgerRepository
from fiscal_recon.domain.results import ConsistencyReport, ReconciliationResult, SequenceAnalysis
from fiscal_recon.domain.screening import screen_documents
from fiscal_recon.domain.sequence import analyze_sequence
from fiscal_recon.domain.services import ReconciliationEngine
from fiscal_recon.domain.tax_checks import check_consistency
from fiscal_recon.errors import ComputationError, InputDecodingError, StorageQuotaExceededError
from fiscal_recon.infrastructure.parsing.extractor import (
    extract_cost_centers,
    extract_exception_keys,
    extract_line_items,
    extract_records,
)
from fiscal_recon.infrastructure.parsing.workbook import read_rows
from fiscal_recon.infrastructure.storage.classification_store import ClassificationRepository
from fiscal_recon.infrastructure.storage.session_store import SessionRepository

from .dto import FileFailure, IngestionReport, RunLog, RunOutcome, SessionDocument

logger = logging.getLogger(__name__)

T = TypeVar("T")
Upload = tuple[str, BytesIO | Path | bytes]


def _guarded(log: RunLog, label: str, run: Callable[[], T]) -> RunOutcome[T]:
    try:
        value = run()
    except InputDecodingError as exc:
        logger.warning("%s aborted, unreadable input %s: %s", label, exc.file_name, exc.reason)
        log.add(f"Could not read {exc.file_name}: {exc.reason}")
        return RunOutcome(
            ok=False,
            error=str(exc),
            failures=(FileFailure(exc.file_name, exc.reason),),
            log=tuple(log.messages),
        )
    except Exception as exc:
        logger.exception("%s failed", label)
        error = ComputationError(f"{label} failed: {exc}")
        log.add(str(error))
        return RunOutcome(ok=False, error=str(error), log=tuple(log.messages))
    log.add(f"{label} finished.")
    return RunOutcome(ok=True, value=value, log=tuple(log.messages))


def _ingest(files: Iterable[Upload], extract: Callable[[list[dict]], Sequence[T]], log: RunLog) -> IngestionReport[T]:
    values: list[T] = []
    failures: list[FileFailure] = []
    for file_name, content in files:
        try:
            rows = read_rows(content, file_name)
        except InputDecodingError as exc:
            logger.warning("Skipping %s: %s", exc.file_name, exc.reason)
            log.add(f"Skipped {exc.file_name}: {exc.reason}")
            failures.append(FileFailure(exc.file_name, exc.reason))
            continue
        extracted = extract(rows)
        log.add(f"{file_name}: {len(extracted)} rows read.")
        values.extend(extracted)
    return IngestionReport(values=tuple(values), failures=tuple(failures))


def ingest_records(files: Iterable[Upload], source: str, log: RunLog | None = None) -> IngestionReport[CanonicalRecord]:
    """Decode every file into canonical records; unreadable files are reported, not fatal."""
    return _ingest(files, lambda rows: extract_records(rows, source=source), log or RunLog())


def ingest_line_items(files: Iterable[Upload], log: RunLog | None = None) -> IngestionReport[LineItem]:
    return _ingest(files, extract_line_items, log or RunLog())


def ingest_cost_centers(files: Iterable[Upload], log: RunLog | None = None) -> IngestionReport[tuple[str, str]]:
    """(document key, cost center) pairs from apportionment sheets."""
    return _ingest(files, lambda rows: list(extract_cost_centers(rows).items()), log or RunLog())


def ingest_exception_keys(files: Iterable[Upload], log: RunLog | None = None) -> IngestionReport[str]:
    """Access keys from manifest sheets (operation not performed, unknown, service disagreement)."""
    return _ingest(files, lambda rows: sorted(extract_exception_keys(rows)), log or RunLog())


@dataclass(slots=True)
class ReconciliationContext:
    ledger_repository: LedgerRepository
    document_repository: DocumentRepository
    engine: ReconciliationEngine
    exception_keys: frozenset[str] = frozenset()
    company_tax_id: str = ""
    cost_centers: Mapping[str, str] = field(default_factory=dict)


class ReconcileUseCase:
    def __init__(self, context: ReconciliationContext) -> None:
        self._context = context

    def execute(self) -> RunOutcome[ReconciliationResult]:
        log = RunLog()

        def run() -> ReconciliationResult:
            context = self._context
            ledger = context.ledger_repository.list_ledger_records()
            log.add(f"{len(ledger)} ledger rows loaded.")
            documents = context.document_repository.list_documents()
            line_items = context.document_repository.list_line_items()
            log.add(f"{len(documents)} documents and {len(line_items)} line items loaded.")
            screening = screen_documents(documents, line_items, context.exception_keys, context.company_tax_id)
            if screening.excluded_count:
                summary = ", ".join(f"{len(records)} {reason}" for reason, records in screening.excluded.items())
                log.add(f"Set aside before matching: {summary}.")
            result = context.engine.reconcile(ledger, screening.valid, screening.line_items, context.cost_centers)
            result = replace(result, excluded=screening.excluded)
            log.add(
                f"{len(result.matched)} matched, {len(result.left_only)} only in documents, "
                f"{sum(1 for _ in result.iter_right_only())} only in the ledger."
            )
            if result.skipped_internal or result.skipped_external:
                log.add(
                    f"{result.skipped_internal} documents and {result.skipped_external} ledger rows "
                    "without number or tax id were left out."
                )
            if result.orphan_line_items:
                log.add(f"{len(result.orphan_line_items)} line items belong to no registered document.")
            return result

        logger.info("Starting reconciliation run")
        return _guarded(log, "Reconciliation", run)


class SequenceAnalysisUseCase:
    def execute(
        self,
        documents: Sequence[CanonicalRecord],
        last_period_number: int = 0,
        manual_overrides: Mapping[int, SequenceStatus] | None = None,
    ) -> RunOutcome[SequenceAnalysis]:
        log = RunLog()

        def run() -> SequenceAnalysis:
            analysis = analyze_sequence(documents, last_period_number, manual_overrides)
            if analysis.first_number_after_gap is not None:
                log.add(
                    f"Numbering jumps from {last_period_number} to {analysis.first_number_after_gap}; "
                    "check the previous period."
                )
            if analysis.duplicates:
                log.add(f"Repeated numbers ignored: {', '.join(map(str, analysis.duplicates))}.")
            return analysis

        return _guarded(log, "Sequence analysis", run)


class TaxCheckUseCase:
    def __init__(self, home_state: str) -> None:
        self._home_state = home_state

    def execute(self, ledger_rows: Sequence[CanonicalRecord]) -> RunOutcome[ConsistencyReport]:
        log = RunLog()

        def run() -> ConsistencyReport:
            report = check_consistency(ledger_rows, self._home_state)
            log.add(f"{len(report.cfop_uf_inconsistencies)} CFOP/UF inconsistencies found.")
            return report

        return _guarded(log, "Tax check", run)


class ClassificationUseCase:
    """Loads a competence's decisions into a session and writes its changes back."""

    def __init__(self, repository: ClassificationRepository) -> None:
        self._repository = repository

    def open_session(self, competence: str, items: Sequence[ClassifiableItem]) -> ClassificationSession:
        store = self._repository.load()
        session = classification.load_for_competence(store, competence, items)
        logger.info(
            "Opened classification session %s with %d items (%d inherited from other competences)",
            competence,
            len(session.items),
            len(session.fallback_sources),
        )
        return session

    def save(self, session: ClassificationSession) -> RunOutcome[ClassificationStore]:
        """Merge the session's changes into storage; the session stays dirty if the write fails."""
        if not session.has_changes:
            return RunOutcome(ok=True, value=self._repository.load())
        store = classification.save(self._repository.load(), session.competence, session)
        outcome = self._write(store, f"Classification save for {session.competence}")
        if outcome.ok:
            session.mark_clean()
        return outcome

    def import_store(self, incoming: ClassificationStore) -> RunOutcome[ClassificationStore]:
        """Fold decisions from an imported session into the stored ones."""
        if not incoming.entries:
            return RunOutcome(ok=True, value=self._repository.load())
        store = classification.merge_stores(self._repository.load(), incoming)
        return self._write(store, "Classification import")

    def record_cost_centers(self, competence: str, cost_centers: Mapping[str, str]) -> RunOutcome[ClassificationStore]:
        store = classification.with_cost_centers(self._repository.load(), competence, cost_centers)
        return self._write(store, f"Cost centers for {competence}")

    def cost_centers(self, competence: str) -> dict[str, str]:
        entry = self._repository.load().get(competence)
        return dict(entry.cost_centers) if entry else {}

    def _write(self, store: ClassificationStore, label: str) -> RunOutcome[ClassificationStore]:
        try:
            self._repository.save(store)
        except StorageQuotaExceededError as exc:
            logger.warning("%s rejected: %s", label, exc)
            return RunOutcome(ok=False, error=str(exc))
        return RunOutcome(ok=True, value=store)


class SessionUseCase:
    """Whole-session history: save, list, restore and JSON export/import."""

    def __init__(self, repository: SessionRepository) -> None:
        self._repository = repository

    def save(self, session: SessionDocument) -> RunOutcome[SessionDocument]:
        try:
            self._repository.save(session)
        except StorageQuotaExceededError as exc:
            logger.warning("Session %s not saved: %s", session.competence, exc)
            return RunOutcome(ok=False, error=str(exc))
        return RunOutcome(ok=True, value=session)

    def history(self) -> list[SessionDocument]:
        return self._repository.list_sessions()

    def restore(self, competence: str) -> SessionDocument | None:
        return self._repository.load(competence)

    def delete(self, competence: str) -> None:
        self._repository.delete(competence)

    @staticmethod
    def export_json(session: SessionDocument) -> str:
        return session.to_json()

    @staticmethod
    def import_json(text: str, file_name: str = "session.json") -> RunOutcome[SessionDocument]:
        try:
            session = SessionDocument.from_json(text)
        except (AttributeError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Rejected session file %s: %s", file_name, exc)
            failure = FileFailure(file_name, str(exc))
            return RunOutcome(ok=False, error=f"{file_name}: not a valid session file", failures=(failure,))
        if not session.competence:
            failure = FileFailure(file_name, "missing competence")
            return RunOutcome(ok=False, error=f"{file_name}: not a valid session file", failures=(failure,))
        return RunOutcome(ok=True, value=session)
