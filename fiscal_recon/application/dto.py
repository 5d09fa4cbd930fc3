"""Application-level DTOs: run requests, outcomes and the persisted session document."""
from __future__ import annotations

import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Generic, Mapping, Sequence, TypeVar

from fiscal_recon.domain.classification import ClassificationStore
from fiscal_recon.domain.models import CanonicalRecord, SequenceStatus
from fiscal_recon.domain.results import ReconciliationResult

T = TypeVar("T")


@dataclass(slots=True)
class RunLog:
    """User-facing, timestamped progress messages for one run."""

    messages: list[str] = field(default_factory=list)

    def add(self, message: str) -> None:
        timestamp = datetime.now().strftime("%H:%M:%S")
        self.messages.append(f"[{timestamp}] {message}")


@dataclass(slots=True, frozen=True)
class FileFailure:
    file_name: str
    reason: str


@dataclass(slots=True, frozen=True)
class RunOutcome(Generic[T]):
    """Result of a use case: a value on success, an error message otherwise."""

    ok: bool
    value: T | None = None
    error: str | None = None
    failures: Sequence[FileFailure] = ()
    log: Sequence[str] = ()


@dataclass(slots=True, frozen=True)
class SessionDocument:
    """Session persisted wholesale as JSON text."""

    competence: str
    processed_at: datetime
    reconciliation: ReconciliationResult | None = None
    ledger: Sequence[CanonicalRecord] = ()
    classifications: ClassificationStore = field(default_factory=ClassificationStore)
    last_saida_number: int = 0
    disregarded_nfse_notes: Sequence[str] = ()
    saidas_status: Mapping[int, SequenceStatus] = field(default_factory=dict)
    extra_data: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        processed_data: dict[str, Any] = dict(self.extra_data)
        processed_data["reconciliationResults"] = self.reconciliation.to_dict() if self.reconciliation else None
        processed_data["imobilizadoClassifications"] = self.classifications.to_dict()
        processed_data["ledgerRecords"] = [record.to_dict() for record in self.ledger]
        return {
            "competence": self.competence,
            "processedAt": self.processed_at.isoformat(),
            "processedData": processed_data,
            "lastSaidaNumber": self.last_saida_number,
            "disregardedNfseNotes": list(self.disregarded_nfse_notes),
            "saidasStatus": {str(number): status.value for number, status in self.saidas_status.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SessionDocument":
        processed = dict(data.get("processedData") or {})
        reconciliation = processed.pop("reconciliationResults", None)
        classifications = processed.pop("imobilizadoClassifications", None)
        ledger = processed.pop("ledgerRecords", None) or []
        processed_at = datetime.fromisoformat(data["processedAt"]) if data.get("processedAt") else datetime.now(timezone.utc)
        return cls(
            competence=str(data.get("competence") or ""),
            processed_at=processed_at,
            reconciliation=ReconciliationResult.from_dict(reconciliation) if reconciliation else None,
            ledger=tuple(CanonicalRecord.from_dict(record) for record in ledger),
            classifications=ClassificationStore.from_dict(classifications),
            last_saida_number=int(data.get("lastSaidaNumber") or 0),
            disregarded_nfse_notes=tuple(data.get("disregardedNfseNotes") or ()),
            saidas_status={
                int(number): SequenceStatus(status) for number, status in (data.get("saidasStatus") or {}).items()
            },
            extra_data=processed,
        )

    def to_json(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False)

    @classmethod
    def from_json(cls, text: str) -> "SessionDocument":
        return cls.from_dict(json.loads(text))


@dataclass(slots=True, frozen=True)
class IngestionReport(Generic[T]):
    """Everything decoded from a batch of files plus the files that could not be read."""

    values: Sequence[T] = ()
    failures: Sequence[FileFailure] = ()

    @property
    def ok(self) -> bool:
        return not self.failures
