"""Spreadsheet-backed repositories for ledger and document data."""
from __future__ import annotations

from dataclasses import replace
from io import BytesIO
from pathlib import Path
from typing import Iterable, Sequence

from fiscal_recon.domain.keys import normalize_access_key
from fiscal_recon.domain.models import CanonicalRecord, LineItem
from fiscal_recon.domain.repositories import DocumentRepository, LedgerRepository
from fiscal_recon.infrastructure.parsing.extractor import extract_line_items, extract_records
from fiscal_recon.infrastructure.parsing.workbook import read_rows


class ExcelLedgerRepository(LedgerRepository):
    def __init__(self, source: BytesIO | Path | bytes, file_name: str, sheet_name: str | None = None) -> None:
        self._source = source
        self._file_name = file_name
        self._sheet_name = sheet_name

    def list_ledger_records(self) -> Sequence[CanonicalRecord]:
        rows = read_rows(self._source, self._file_name, sheet_name=self._sheet_name)
        return extract_records(rows, source="ledger")


class ExcelDocumentRepository(DocumentRepository):
    """Registered invoices from one workbook, with product lines from an optional second one."""

    def __init__(
        self,
        source: BytesIO | Path | bytes,
        file_name: str,
        items_source: BytesIO | Path | bytes | None = None,
        items_file_name: str | None = None,
        canceled_keys: Iterable[str] = (),
        document_source: str = "nfe",
    ) -> None:
        self._source = source
        self._file_name = file_name
        self._items_source = items_source
        self._items_file_name = items_file_name or "itens"
        self._canceled_keys = {normalize_access_key(key) for key in canceled_keys if key}
        self._document_source = document_source

    def list_documents(self) -> Sequence[CanonicalRecord]:
        rows = read_rows(self._source, self._file_name)
        records = extract_records(rows, source=self._document_source)
        if not self._canceled_keys:
            return records
        return [
            record
            if record.canceled or normalize_access_key(record.access_key) not in self._canceled_keys
            else _as_canceled(record)
            for record in records
        ]

    def list_line_items(self) -> Sequence[LineItem]:
        if self._items_source is None:
            return []
        rows = read_rows(self._items_source, self._items_file_name)
        return extract_line_items(rows)


def _as_canceled(record: CanonicalRecord) -> CanonicalRecord:
    return replace(record, canceled=True)
