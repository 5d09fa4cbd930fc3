"""Pure helpers turning raw field values into canonical comparison keys.

None of these functions raise: unparseable input degrades to an empty string,
and an empty key means "no match possible" to every consumer.
"""
from __future__ import annotations

import re
import unicodedata
from typing import Iterable

from fiscal_recon.config import COMPETENCE_SEPARATOR

KEY_SEPARATOR = "-"

_NON_DIGIT = re.compile(r"\D")
_SPURIOUS_DECIMAL = re.compile(r"\.0+$")
_HEADER_NOISE = re.compile(r"[\s._/\-]")
_PERIOD_ISO = re.compile(r"(\d{4})-(\d{1,2})")
_PERIOD_BR = re.compile(r"(\d{1,2})/(\d{4})")


def _as_text(raw: object) -> str:
    if raw is None:
        return ""
    text = str(raw).strip()
    if text.upper() in {"NAN", "NONE", "NAT"}:
        return ""
    return text


def normalize_tax_id(raw: object) -> str:
    """Digits-only CNPJ/CPF; ``"11.222.333/0001-44"`` -> ``"11222333000144"``."""
    return _NON_DIGIT.sub("", _as_text(raw))


def clean_numeric_string(raw: object) -> str:
    """Digits of an integer-like value that may have been coerced to ``"123.0"``."""
    text = _as_text(raw)
    if _SPURIOUS_DECIMAL.search(text):
        text = text.split(".")[0]
    return _NON_DIGIT.sub("", text)


def normalize_comparison_key(document_number: object, tax_id: object) -> str:
    number = clean_numeric_string(document_number)
    digits = normalize_tax_id(tax_id)
    if not number or not digits:
        return ""
    return f"{number}{KEY_SEPARATOR}{digits}"


def normalize_header(name: object) -> str:
    """Case-folded header with accents, whitespace and ``. _ / -`` removed."""
    decomposed = unicodedata.normalize("NFKD", _as_text(name).casefold())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _HEADER_NOISE.sub("", stripped)


def product_identity(tax_id: object, product_code: object) -> str:
    digits = normalize_tax_id(tax_id)
    code = _as_text(product_code)
    if not digits and not code:
        return ""
    return f"{digits}{KEY_SEPARATOR}{code}"


def normalize_access_key(raw: object) -> str:
    """44-digit access key as digits; keys without any digit are kept as typed."""
    digits = clean_numeric_string(raw)
    return digits or _as_text(raw)


def line_identity(access_key: object, line_number: object) -> str:
    key = normalize_access_key(access_key)
    line = clean_numeric_string(line_number)
    if not key:
        return ""
    return f"{key}{KEY_SEPARATOR}{line}"


def cfop_product_key(tax_id: object, product_code: object, cfop_description: str) -> str:
    base = product_identity(tax_id, product_code)
    if not base:
        return ""
    return f"{base}{KEY_SEPARATOR}{cfop_description.strip()}"


def parse_competence(label: str) -> list[tuple[int, int]]:
    """(year, month) periods encoded in a competence label, in label order."""
    periods: list[tuple[int, int]] = []
    for part in _as_text(label).split(COMPETENCE_SEPARATOR):
        match = _PERIOD_ISO.search(part)
        if match:
            periods.append((int(match.group(1)), int(match.group(2))))
            continue
        match = _PERIOD_BR.search(part)
        if match:
            periods.append((int(match.group(2)), int(match.group(1))))
    return periods


def join_competences(periods: Iterable[str]) -> str:
    unique = sorted({p.strip() for p in periods if p and p.strip()})
    return COMPETENCE_SEPARATOR.join(unique)


def competence_recency(label: str) -> tuple[int, int]:
    periods = parse_competence(label)
    if not periods:
        return (0, 0)
    return max(periods)
