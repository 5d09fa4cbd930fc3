"""Domain-level results produced by the reconciliation services."""
from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, Mapping, Sequence

from .models import CanonicalRecord, LineItem, ReconciledItem, SequenceStatus

UNCATEGORIZED = "uncategorized"


@dataclass(frozen=True)
class ReconciliationResult:
    """Immutable output of one reconciliation run; a new run replaces it wholesale."""

    matched: Sequence[ReconciledItem] = field(default_factory=tuple)
    left_only: Sequence[CanonicalRecord] = field(default_factory=tuple)
    right_only_by_category: Mapping[str, Sequence[CanonicalRecord]] = field(default_factory=dict)
    own_issue_returns: Sequence[CanonicalRecord] = field(default_factory=tuple)
    skipped_internal: int = 0
    skipped_external: int = 0
    # Line items no registered document claims.
    orphan_line_items: Sequence[LineItem] = field(default_factory=tuple)
    # Documents screened out before matching, by reason (canceled, returns, transfers).
    excluded: Mapping[str, Sequence[CanonicalRecord]] = field(default_factory=dict)

    def iter_right_only(self) -> Iterable[CanonicalRecord]:
        for records in self.right_only_by_category.values():
            yield from records
        yield from self.own_issue_returns

    def has_divergences(self) -> bool:
        return bool(self.left_only) or any(True for _ in self.iter_right_only())

    def to_dict(self) -> dict[str, Any]:
        return {
            "matched": [item.to_dict() for item in self.matched],
            "leftOnly": [record.to_dict() for record in self.left_only],
            "rightOnlyByCategory": {
                category: [record.to_dict() for record in records]
                for category, records in self.right_only_by_category.items()
            },
            "ownIssueReturns": [record.to_dict() for record in self.own_issue_returns],
            "skippedInternal": self.skipped_internal,
            "skippedExternal": self.skipped_external,
            "orphanLineItems": [item.to_dict() for item in self.orphan_line_items],
            "excluded": {
                reason: [record.to_dict() for record in records] for reason, records in self.excluded.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ReconciliationResult":
        return cls(
            matched=tuple(ReconciledItem.from_dict(item) for item in data.get("matched", [])),
            left_only=tuple(CanonicalRecord.from_dict(item) for item in data.get("leftOnly", [])),
            right_only_by_category={
                category: tuple(CanonicalRecord.from_dict(item) for item in records)
                for category, records in (data.get("rightOnlyByCategory") or {}).items()
            },
            own_issue_returns=tuple(CanonicalRecord.from_dict(item) for item in data.get("ownIssueReturns", [])),
            skipped_internal=int(data.get("skippedInternal", 0)),
            skipped_external=int(data.get("skippedExternal", 0)),
            orphan_line_items=tuple(LineItem.from_dict(item) for item in data.get("orphanLineItems", [])),
            excluded={
                reason: tuple(CanonicalRecord.from_dict(item) for item in records)
                for reason, records in (data.get("excluded") or {}).items()
            },
        )


@dataclass(frozen=True)
class SequencePosition:
    number: int
    status: SequenceStatus
    document: CanonicalRecord | None = None
    overridden: bool = False

    @property
    def is_gap(self) -> bool:
        return self.document is None


@dataclass(frozen=True)
class SequenceAnalysis:
    positions: Sequence[SequencePosition] = field(default_factory=tuple)
    first_number_after_gap: int | None = None
    start_number: int | None = None
    max_observed: int | None = None
    duplicates: Sequence[int] = field(default_factory=tuple)

    def counts(self) -> dict[SequenceStatus, int]:
        counter = Counter(position.status for position in self.positions)
        return {status: counter.get(status, 0) for status in SequenceStatus}


@dataclass(frozen=True)
class CfopFinding:
    document_number: str
    counterparty_tax_id: str
    counterparty_name: str | None
    state: str
    cfop: str
    cfop_description: str
    suggested_cfop: str


@dataclass(frozen=True)
class TaxEntry:
    record: CanonicalRecord
    value: Decimal


@dataclass(frozen=True)
class ConsistencyReport:
    cfop_uf_inconsistencies: Sequence[CfopFinding] = field(default_factory=tuple)
    tax_lists: Mapping[str, Sequence[TaxEntry]] = field(default_factory=dict)
    tax_totals: Mapping[str, Decimal] = field(default_factory=dict)
