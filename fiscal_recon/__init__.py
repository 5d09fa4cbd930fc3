"""Fiscal document reconciliation and classification toolkit."""
from fiscal_recon.application.use_cases import (
    ClassificationUseCase,
    ReconcileUseCase,
    ReconciliationContext,
    SequenceAnalysisUseCase,
    SessionUseCase,
    TaxCheckUseCase,
)
from fiscal_recon.domain.services import ReconciliationEngine
from fiscal_recon.infrastructure.repositories.excel_repositories import (
    ExcelDocumentRepository,
    ExcelLedgerRepository,
)

__all__ = [
    "ClassificationUseCase",
    "ReconcileUseCase",
    "ReconciliationContext",
    "SequenceAnalysisUseCase",
    "SessionUseCase",
    "TaxCheckUseCase",
    "ReconciliationEngine",
    "ExcelDocumentRepository",
    "ExcelLedgerRepository",
]
