"""Repository interfaces anchoring the domain layer."""
from __future__ import annotations

from typing import Mapping, Protocol, Sequence

from .models import CanonicalRecord, LineItem


class KeyValueStorage(Protocol):
    """Whole-value string storage (``getItem``/``setItem`` semantics)."""

    def get_item(self, key: str) -> str | None:
        ...

    def set_item(self, key: str, value: str) -> None:
        ...

    def set_items(self, items: Mapping[str, str]) -> None:
        """Write several keys at once; either all of them land or none does."""
        ...

    def remove_item(self, key: str) -> None:
        ...


class LedgerRepository(Protocol):
    """Provides rows of the accounting system export."""

    def list_ledger_records(self) -> Sequence[CanonicalRecord]:
        ...


class DocumentRepository(Protocol):
    """Provides registered invoices and their product lines."""

    def list_documents(self) -> Sequence[CanonicalRecord]:
        ...

    def list_line_items(self) -> Sequence[LineItem]:
        ...
