"""Repositories over records that were already decoded (batch ingestion, restored sessions)."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from fiscal_recon.domain.models import CanonicalRecord, LineItem


@dataclass(frozen=True)
class InMemoryLedgerRepository:
    records: Sequence[CanonicalRecord] = ()

    def list_ledger_records(self) -> Sequence[CanonicalRecord]:
        return tuple(self.records)


@dataclass(frozen=True)
class InMemoryDocumentRepository:
    documents: Sequence[CanonicalRecord] = ()
    line_items: Sequence[LineItem] = ()

    def list_documents(self) -> Sequence[CanonicalRecord]:
        return tuple(self.documents)

    def list_line_items(self) -> Sequence[LineItem]:
        return tuple(self.line_items)
