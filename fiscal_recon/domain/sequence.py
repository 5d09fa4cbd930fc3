"""Gap detection over outbound invoice numbering."""
from __future__ import annotations

from collections import defaultdict
from decimal import Decimal
from typing import Mapping, Sequence

from fiscal_recon.errors import InvalidRangeError

from .models import CanonicalRecord, SequenceStatus
from .results import SequenceAnalysis, SequencePosition


def _coerce_status(value: SequenceStatus | str) -> SequenceStatus:
    return value if isinstance(value, SequenceStatus) else SequenceStatus(str(value))


def analyze_sequence(
    documents: Sequence[CanonicalRecord],
    last_period_number: int = 0,
    manual_overrides: Mapping[int, SequenceStatus | str] | None = None,
) -> SequenceAnalysis:
    """Rebuild the dense range ``[start, max]`` and give every number one status.

    ``start`` is ``last_period_number + 1`` when a carry-over number is known,
    otherwise the smallest observed number. Overrides always win.
    """
    overrides = {int(number): _coerce_status(status) for number, status in (manual_overrides or {}).items()}

    by_number: dict[int, CanonicalRecord] = {}
    duplicates: list[int] = []
    for document in documents:
        number = document.sequence_number
        if number is None:
            continue
        if number in by_number:
            if number not in duplicates:
                duplicates.append(number)
            continue
        by_number[number] = document

    if not by_number:
        return SequenceAnalysis()

    min_observed = min(by_number)
    max_observed = max(by_number)
    last_period_number = max(int(last_period_number or 0), 0)

    first_number_after_gap = None
    if last_period_number > 0 and min_observed > last_period_number + 1:
        first_number_after_gap = min_observed

    start_number = last_period_number + 1 if last_period_number > 0 else min_observed

    positions: list[SequencePosition] = []
    for number in range(start_number, max_observed + 1):
        document = by_number.get(number)
        override = overrides.get(number)
        if document is None:
            default = SequenceStatus.INUTILIZADA
        elif document.canceled:
            default = SequenceStatus.CANCELADA
        else:
            default = SequenceStatus.EMITIDA
        positions.append(
            SequencePosition(
                number=number,
                status=override or default,
                document=document,
                overridden=override is not None,
            )
        )

    return SequenceAnalysis(
        positions=tuple(positions),
        first_number_after_gap=first_number_after_gap,
        start_number=start_number,
        max_observed=max_observed,
        duplicates=tuple(sorted(duplicates)),
    )


def mark_range(
    overrides: Mapping[int, SequenceStatus | str],
    start: int,
    end: int,
    status: SequenceStatus | str = SequenceStatus.INUTILIZADA,
) -> dict[int, SequenceStatus]:
    """Return a new override map with every number in ``[start, end]`` set to ``status``."""
    if start <= 0 or end <= 0:
        raise InvalidRangeError("Range bounds must be positive numbers")
    if start > end:
        raise InvalidRangeError("Range start must be less than or equal to its end")
    updated = {int(number): _coerce_status(value) for number, value in overrides.items()}
    target = _coerce_status(status)
    for number in range(start, end + 1):
        updated[number] = target
    return updated


def icms_summary_by_cfop(analysis: SequenceAnalysis) -> list[dict[str, object]]:
    summary: dict[str, dict[str, object]] = defaultdict(
        lambda: {"base": Decimal("0"), "value": Decimal("0"), "count": 0}
    )
    for position in analysis.positions:
        document = position.document
        if document is None or position.status is not SequenceStatus.EMITIDA or not document.cfop:
            continue
        base = document.taxes.get("icms_base", Decimal("0"))
        value = document.taxes.get("icms", Decimal("0"))
        if base <= 0 and value <= 0:
            continue
        entry = summary[document.cfop]
        entry["base"] += base
        entry["value"] += value
        entry["count"] += 1
    return [{"cfop": cfop, **entry} for cfop, entry in sorted(summary.items())]
