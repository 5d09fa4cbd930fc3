"""Domain models for the fiscal reconciliation pipeline.

These dataclasses capture the canonical schema records are extracted into,
whatever spreadsheet or XML export they came from.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from enum import Enum
from typing import Any, Mapping

from .keys import (
    clean_numeric_string,
    line_identity,
    normalize_comparison_key,
    normalize_tax_id,
    product_identity,
)

TAX_FIELDS = ("icms", "pis", "cofins", "ipi", "icms_st")


class SequenceStatus(str, Enum):
    EMITIDA = "emitida"
    CANCELADA = "cancelada"
    INUTILIZADA = "inutilizada"


class AssetClassification(str, Enum):
    UNCLASSIFIED = "unclassified"
    IMOBILIZADO = "imobilizado"
    USO_CONSUMO = "uso-consumo"
    UTILIZADO_EM_OBRA = "utilizado-em-obra"


class CfopVerdict(str, Enum):
    UNVALIDATED = "unvalidated"
    CORRECT = "correct"
    INCORRECT = "incorrect"
    VERIFY = "verify"


def _decimal_or_none(value: Any) -> Decimal | None:
    if value is None or value == "":
        return None
    return Decimal(str(value))


def _date_or_none(value: Any) -> date | None:
    if not value:
        return None
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value)[:10])


def _jsonable(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


@dataclass(frozen=True)
class CanonicalRecord:
    """One fiscal document (or ledger posting) after extraction."""

    source: str
    document_number: str | None
    counterparty_tax_id: str | None
    access_key: str | None = None
    counterparty_name: str | None = None
    issue_date: date | None = None
    total_value: Decimal | None = None
    cfop: str | None = None
    state: str | None = None
    category: str | None = None
    recipient_tax_id: str | None = None
    canceled: bool = False
    taxes: Mapping[str, Decimal] = field(default_factory=dict)
    extra: Mapping[str, Any] = field(default_factory=dict)

    @property
    def comparison_key(self) -> str:
        return normalize_comparison_key(self.document_number, self.counterparty_tax_id)

    @property
    def sequence_number(self) -> int | None:
        digits = clean_numeric_string(self.document_number)
        return int(digits) if digits else None

    def to_dict(self) -> dict[str, Any]:
        return {
            "source": self.source,
            "documentNumber": self.document_number,
            "counterpartyTaxId": self.counterparty_tax_id,
            "accessKey": self.access_key,
            "counterpartyName": self.counterparty_name,
            "issueDate": _jsonable(self.issue_date),
            "totalValue": _jsonable(self.total_value),
            "cfop": self.cfop,
            "state": self.state,
            "category": self.category,
            "recipientTaxId": self.recipient_tax_id,
            "canceled": self.canceled,
            "taxes": {name: str(value) for name, value in self.taxes.items()},
            "extra": {name: _jsonable(value) for name, value in self.extra.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CanonicalRecord":
        return cls(
            source=data["source"],
            document_number=data.get("documentNumber", ""),
            counterparty_tax_id=data.get("counterpartyTaxId", ""),
            access_key=data.get("accessKey"),
            counterparty_name=data.get("counterpartyName"),
            issue_date=_date_or_none(data.get("issueDate")),
            total_value=_decimal_or_none(data.get("totalValue")),
            cfop=data.get("cfop"),
            state=data.get("state"),
            category=data.get("category"),
            recipient_tax_id=data.get("recipientTaxId"),
            canceled=bool(data.get("canceled", False)),
            taxes={name: Decimal(value) for name, value in (data.get("taxes") or {}).items()},
            extra=dict(data.get("extra") or {}),
        )


@dataclass(frozen=True)
class LineItem:
    """A single product line of an invoice."""

    access_key: str | None
    document_number: str
    issuer_tax_id: str
    line_number: str
    product_code: str | None = None
    description: str | None = None
    cfop: str | None = None
    unit_value: Decimal | None = None
    total_value: Decimal | None = None
    extra: Mapping[str, Any] = field(default_factory=dict)

    @property
    def comparison_key(self) -> str:
        return normalize_comparison_key(self.document_number, self.issuer_tax_id)

    @property
    def product_identity(self) -> str:
        return product_identity(self.issuer_tax_id, self.product_code)

    @property
    def line_identity(self) -> str:
        if self.access_key:
            return line_identity(self.access_key, self.line_number)
        # Ledger-only rows have no access key; fall back to the document key.
        if self.comparison_key:
            return f"{self.comparison_key}-{clean_numeric_string(self.line_number)}"
        return ""

    def to_dict(self) -> dict[str, Any]:
        return {
            "accessKey": self.access_key,
            "documentNumber": self.document_number,
            "issuerTaxId": self.issuer_tax_id,
            "lineNumber": self.line_number,
            "productCode": self.product_code,
            "description": self.description,
            "cfop": self.cfop,
            "unitValue": _jsonable(self.unit_value),
            "totalValue": _jsonable(self.total_value),
            "extra": {name: _jsonable(value) for name, value in self.extra.items()},
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "LineItem":
        return cls(
            access_key=data.get("accessKey"),
            document_number=data.get("documentNumber", ""),
            issuer_tax_id=data.get("issuerTaxId", ""),
            line_number=data.get("lineNumber", ""),
            product_code=data.get("productCode"),
            description=data.get("description"),
            cfop=data.get("cfop"),
            unit_value=_decimal_or_none(data.get("unitValue")),
            total_value=_decimal_or_none(data.get("totalValue")),
            extra=dict(data.get("extra") or {}),
        )


@dataclass(frozen=True)
class ReconciledItem:
    """An internal document (at line granularity when possible) matched to the ledger."""

    document: CanonicalRecord
    ledger: CanonicalRecord
    line_item: LineItem | None = None
    ledger_match_count: int = 1
    matched_by: str | None = None
    cost_center: str | None = None

    @property
    def comparison_key(self) -> str:
        return self.document.comparison_key

    @property
    def ledger_cfop(self) -> str | None:
        return self.ledger.cfop

    def to_dict(self) -> dict[str, Any]:
        return {
            "document": self.document.to_dict(),
            "ledger": self.ledger.to_dict(),
            "lineItem": self.line_item.to_dict() if self.line_item else None,
            "ledgerMatchCount": self.ledger_match_count,
            "matchedBy": self.matched_by,
            "costCenter": self.cost_center,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ReconciledItem":
        line = data.get("lineItem")
        return cls(
            document=CanonicalRecord.from_dict(data["document"]),
            ledger=CanonicalRecord.from_dict(data["ledger"]),
            line_item=LineItem.from_dict(line) if line else None,
            ledger_match_count=int(data.get("ledgerMatchCount", 1)),
            matched_by=data.get("matchedBy"),
            cost_center=data.get("costCenter"),
        )


@dataclass(frozen=True)
class ClassifiableItem:
    """A line item offered for asset or CFOP classification in one session."""

    issuer_tax_id: str
    product_code: str
    access_key: str
    line_number: str
    cfop: str | None = None
    target_cfop: str | None = None
    description: str | None = None

    @property
    def product_identity(self) -> str:
        return product_identity(self.issuer_tax_id, self.product_code)

    @property
    def line_identity(self) -> str:
        return line_identity(self.access_key, self.line_number)

    @classmethod
    def from_reconciled(cls, item: ReconciledItem) -> "ClassifiableItem":
        line = item.line_item
        return cls(
            issuer_tax_id=normalize_tax_id(item.document.counterparty_tax_id),
            product_code=(line.product_code if line else None) or "",
            access_key=item.document.access_key or item.document.comparison_key,
            line_number=line.line_number if line else "",
            cfop=(line.cfop if line else None) or item.document.cfop,
            target_cfop=item.ledger.cfop or (line.cfop if line else None) or item.document.cfop,
            description=line.description if line else None,
        )
