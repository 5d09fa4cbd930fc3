"""Turns loosely-shaped spreadsheet rows into canonical records.

Header names differ between exports (``"UF"``, ``"UF do Fornecedor"``...), so
each logical field carries a list of accepted aliases compared after
``normalize_header``. A field with no matching header stays ``None``.
"""
from __future__ import annotations

from decimal import Decimal
from typing import Any, Iterable, Mapping, Sequence

from fiscal_recon.domain.keys import normalize_access_key, normalize_comparison_key, normalize_header
from fiscal_recon.domain.models import TAX_FIELDS, CanonicalRecord, LineItem

from .utils import as_text, parse_date, parse_decimal, scalar

FIELD_ALIASES: dict[str, tuple[str, ...]] = {
    "document_number": ("número", "numero", "número da nota", "numero da nota", "nota fiscal", "nº nota", "nf", "documento"),
    "tax_id": (
        "cpf/cnpj",
        "cpf/cnpj do fornecedor",
        "cpf/cnpj do emitente",
        "cpf/cnpj do destinatário",
        "cnpj",
        "cnpj emitente",
        "emitcnpj",
    ),
    "recipient_tax_id": ("cpf/cnpj do destinatário", "cnpj destinatário", "destcnpj"),
    "name": ("credor", "fornecedor", "nome do fornecedor", "destinatário", "emitente", "razão social", "emitname"),
    "issue_date": ("emissão", "data emissão", "data de emissão", "dt emissão", "data"),
    "total": ("valor total", "total", "vlr total", "valor da nota", "valor da prestação", "valor"),
    "cfop": ("cfop",),
    "state": ("uf", "uf do fornecedor", "uf emitente", "estado"),
    "access_key": ("chave de acesso", "chave", "chave nfe", "chave da nota"),
    "category": ("esp", "espécie", "especie", "tipo de documento"),
    "status": ("status", "situação"),
    "product_code": ("código", "código do produto", "cprod", "código produto"),
    "line_number": ("item", "nº item", "número do item", "nitem"),
    "description": ("descrição", "descrição do item", "produto fiscal", "produto"),
    "unit_value": ("valor unitário", "preço unitário", "vlr unitário"),
    "icms": ("icms", "valor icms", "vlr icms"),
    "icms_base": ("base icms", "base de cálculo icms", "bc icms", "vlr base icms"),
    "pis": ("pis", "valor pis", "vlr pis"),
    "cofins": ("cofins", "valor cofins", "vlr cofins"),
    "ipi": ("ipi", "valor ipi", "vlr ipi"),
    "icms_st": ("icms-st", "icms st", "valor icms st", "vlr icms st", "vlr icms subst"),
    "freight": ("frete", "valor frete", "vlr frete"),
    "discount": ("desconto", "valor desconto", "vlr desconto"),
    "cost_center": ("centro de custo", "centro custo", "c. custo", "cost center"),
}

# Amounts kept in the taxes map; only TAX_FIELDS feed the tax lists, the rest
# are read when pairing ledger rows by value.
_AMOUNT_FIELDS = TAX_FIELDS + ("icms_base", "freight", "discount", "unit_value")


class HeaderResolver:
    """Maps logical field names to the actual header used by one file."""

    def __init__(self, headers: Iterable[object], aliases: Mapping[str, Sequence[str]] = FIELD_ALIASES) -> None:
        normalized: dict[str, str] = {}
        for header in headers:
            key = normalize_header(header)
            if key and key not in normalized:
                normalized[key] = str(header)
        self._normalized = normalized
        self._resolved: dict[str, str | None] = {}
        for field_name, names in aliases.items():
            self._resolved[field_name] = next(
                (normalized[normalize_header(name)] for name in names if normalize_header(name) in normalized),
                None,
            )

    def resolve(self, field_name: str) -> str | None:
        return self._resolved.get(field_name)

    @property
    def resolved_headers(self) -> set[str]:
        return {header for header in self._resolved.values() if header}

    def missing(self, *field_names: str) -> list[str]:
        return [name for name in field_names if self._resolved.get(name) is None]


def _headers_of(rows: Sequence[Mapping[Any, Any]]) -> list[object]:
    headers: dict[object, None] = {}
    for row in rows:
        if not isinstance(row, Mapping):
            continue
        for header in row.keys():
            headers.setdefault(header, None)
    return list(headers)


def _get(row: Mapping[Any, Any], resolver: HeaderResolver, field_name: str) -> Any:
    header = resolver.resolve(field_name)
    if header is None:
        return None
    return row.get(header)


def _text(row: Mapping[Any, Any], resolver: HeaderResolver, field_name: str) -> str | None:
    header = resolver.resolve(field_name)
    if header is None:
        return None
    return as_text(row.get(header)) or ""


def _extra(row: Mapping[Any, Any], resolver: HeaderResolver) -> dict[str, Any]:
    used = resolver.resolved_headers
    return {str(header): scalar(value) for header, value in row.items() if str(header) not in used}


def _taxes(row: Mapping[Any, Any], resolver: HeaderResolver) -> dict[str, Decimal]:
    taxes: dict[str, Decimal] = {}
    for name in _AMOUNT_FIELDS:
        value = parse_decimal(_get(row, resolver, name))
        if value is not None:
            taxes[name] = value
    return taxes


def extract_records(
    rows: Sequence[Mapping[Any, Any]],
    source: str,
    resolver: HeaderResolver | None = None,
) -> list[CanonicalRecord]:
    """Canonical documents for ``rows``; the input rows are left untouched."""
    if not rows:
        return []
    resolver = resolver or HeaderResolver(_headers_of(rows))
    records: list[CanonicalRecord] = []
    for row in rows:
        if not isinstance(row, Mapping):
            continue
        status = _text(row, resolver, "status") or ""
        state = _text(row, resolver, "state")
        category = _text(row, resolver, "category")
        records.append(
            CanonicalRecord(
                source=source,
                document_number=_text(row, resolver, "document_number"),
                counterparty_tax_id=_text(row, resolver, "tax_id"),
                access_key=_text(row, resolver, "access_key"),
                counterparty_name=_text(row, resolver, "name"),
                issue_date=parse_date(_get(row, resolver, "issue_date")),
                total_value=parse_decimal(_get(row, resolver, "total")),
                cfop=_text(row, resolver, "cfop"),
                state=state.upper() if state else state,
                category=category,
                recipient_tax_id=_text(row, resolver, "recipient_tax_id"),
                canceled="cancel" in status.casefold(),
                taxes=_taxes(row, resolver),
                extra=_extra(row, resolver),
            )
        )
    return records


def extract_line_items(
    rows: Sequence[Mapping[Any, Any]],
    resolver: HeaderResolver | None = None,
) -> list[LineItem]:
    if not rows:
        return []
    resolver = resolver or HeaderResolver(_headers_of(rows))
    items: list[LineItem] = []
    for index, row in enumerate(rows, start=1):
        if not isinstance(row, Mapping):
            continue
        line_number = _text(row, resolver, "line_number") or str(index)
        items.append(
            LineItem(
                access_key=_text(row, resolver, "access_key"),
                document_number=_text(row, resolver, "document_number") or "",
                issuer_tax_id=_text(row, resolver, "tax_id") or "",
                line_number=line_number,
                product_code=_text(row, resolver, "product_code"),
                description=_text(row, resolver, "description"),
                cfop=_text(row, resolver, "cfop"),
                unit_value=parse_decimal(_get(row, resolver, "unit_value")),
                total_value=parse_decimal(_get(row, resolver, "total")),
                extra=_extra(row, resolver),
            )
        )
    return items


def extract_cost_centers(rows: Sequence[Mapping[Any, Any]]) -> dict[str, str]:
    """``number-taxid`` -> cost center from an apportionment sheet; the first row per document wins."""
    if not rows:
        return {}
    resolver = HeaderResolver(_headers_of(rows))
    if resolver.missing("document_number", "tax_id", "cost_center"):
        return {}
    cost_centers: dict[str, str] = {}
    for row in rows:
        if not isinstance(row, Mapping):
            continue
        key = normalize_comparison_key(_get(row, resolver, "document_number"), _get(row, resolver, "tax_id"))
        value = _text(row, resolver, "cost_center")
        if key and value:
            cost_centers.setdefault(key, value)
    return cost_centers


def extract_exception_keys(rows: Sequence[Mapping[Any, Any]]) -> set[str]:
    """Access keys listed in a manifest or cancellation sheet."""
    if not rows:
        return set()
    resolver = HeaderResolver(_headers_of(rows))
    keys: set[str] = set()
    for row in rows:
        if not isinstance(row, Mapping):
            continue
        key = normalize_access_key(_get(row, resolver, "access_key"))
        if key:
            keys.add(key)
    return keys
