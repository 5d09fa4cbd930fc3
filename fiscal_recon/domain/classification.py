"""Competence-scoped ledger of manual classification decisions.

The persisted store is an immutable value: ``load_for_competence`` seeds an
in-memory session from it, and ``save`` returns a new store with only the
keys touched in that session merged in. The caller owns the read-modify-write
cycle against storage.
"""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from types import MappingProxyType
from typing import Any, Iterable, Mapping, Sequence

from fiscal_recon.reference.cfop import validation_label

from .keys import cfop_product_key, competence_recency
from .models import AssetClassification, CfopVerdict, ClassifiableItem, ReconciledItem


@dataclass(frozen=True)
class CompetenceEntry:
    classifications: Mapping[str, AssetClassification] = field(default_factory=dict)
    account_codes: Mapping[str, str] = field(default_factory=dict)
    cfop_validations: Mapping[str, CfopVerdict] = field(default_factory=dict)
    cost_centers: Mapping[str, str] = field(default_factory=dict)
    # Sibling sections written by other screens; carried through untouched.
    other: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = dict(self.other)
        data["classifications"] = {
            key: {"classification": value.value} for key, value in self.classifications.items()
        }
        data["accountCodes"] = {key: {"accountCode": code} for key, code in self.account_codes.items()}
        data["cfopValidations"] = {
            "classifications": {key: {"classification": value.value} for key, value in self.cfop_validations.items()}
        }
        data["costCenters"] = {key: {"costCenter": value} for key, value in self.cost_centers.items()}
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "CompetenceEntry":
        classifications: dict[str, AssetClassification] = {}
        for key, value in (data.get("classifications") or {}).items():
            try:
                classifications[key] = AssetClassification((value or {}).get("classification"))
            except ValueError:
                continue
        account_codes = {
            key: str((value or {}).get("accountCode") or "")
            for key, value in (data.get("accountCodes") or {}).items()
        }
        cfop_validations: dict[str, CfopVerdict] = {}
        for key, value in ((data.get("cfopValidations") or {}).get("classifications") or {}).items():
            try:
                cfop_validations[key] = CfopVerdict((value or {}).get("classification"))
            except ValueError:
                continue
        cost_centers = {
            key: str((value or {}).get("costCenter") or "")
            for key, value in (data.get("costCenters") or {}).items()
        }
        other = {
            key: value
            for key, value in data.items()
            if key not in {"classifications", "accountCodes", "cfopValidations", "costCenters"}
        }
        return cls(
            classifications=classifications,
            account_codes=account_codes,
            cfop_validations=cfop_validations,
            cost_centers=cost_centers,
            other=other,
        )


@dataclass(frozen=True)
class ClassificationStore:
    entries: Mapping[str, CompetenceEntry] = field(default_factory=dict)
    version: int = field(default=0, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "entries", MappingProxyType(dict(self.entries)))

    def get(self, competence: str) -> CompetenceEntry | None:
        return self.entries.get(competence)

    def fallback_order(self, competence: str) -> list[str]:
        """Other competences, most recent first; ties broken by label, descending."""
        others = [label for label in self.entries if label != competence]
        return sorted(others, key=lambda label: (competence_recency(label), label), reverse=True)

    def to_dict(self) -> dict[str, Any]:
        return {competence: entry.to_dict() for competence, entry in self.entries.items()}

    @classmethod
    def from_dict(cls, data: Mapping[str, Any] | None, version: int = 0) -> "ClassificationStore":
        entries = {
            competence: CompetenceEntry.from_dict(entry or {})
            for competence, entry in (data or {}).items()
        }
        return cls(entries=entries, version=version)


def cfop_validation_key(item: ClassifiableItem) -> str:
    target = item.target_cfop or item.cfop
    return cfop_product_key(item.issuer_tax_id, item.product_code, validation_label(target))


class ClassificationSession:
    """In-memory decisions for the items loaded for one competence."""

    def __init__(self, competence: str, items: Sequence[ClassifiableItem]) -> None:
        self.competence = competence
        self.items: tuple[ClassifiableItem, ...] = tuple(items)
        self._classifications: dict[str, AssetClassification] = {}
        self._account_codes: dict[str, str] = {}
        self._cfop_verdicts: dict[str, CfopVerdict] = {}
        self.fallback_sources: dict[str, str] = {}
        self._dirty_products: set[str] = set()
        self._dirty_lines: set[str] = set()
        self._dirty_cfop_lines: set[str] = set()

    @property
    def has_changes(self) -> bool:
        return bool(self._dirty_products or self._dirty_lines or self._dirty_cfop_lines)

    def classification_of(self, item: ClassifiableItem) -> AssetClassification:
        return self._classifications.get(item.product_identity, AssetClassification.UNCLASSIFIED)

    def account_code_of(self, item: ClassifiableItem) -> str:
        return self._account_codes.get(item.line_identity, "")

    def cfop_verdict_of(self, item: ClassifiableItem) -> CfopVerdict:
        return self._cfop_verdicts.get(item.line_identity, CfopVerdict.UNVALIDATED)

    def classify(self, items: ClassifiableItem | Iterable[ClassifiableItem], value: AssetClassification | str) -> int:
        """Set ``value`` for the product of each item; every loaded line of that product follows."""
        targets = [items] if isinstance(items, ClassifiableItem) else list(items)
        classification = AssetClassification(value)
        products = {item.product_identity for item in targets if item.product_identity}
        for identity in products:
            self._classifications[identity] = classification
            self.fallback_sources.pop(identity, None)
            self._dirty_products.add(identity)
        return sum(1 for item in self.items if item.product_identity in products)

    def set_account_code(self, item: ClassifiableItem, code: str) -> None:
        identity = item.line_identity
        if not identity:
            return
        self._account_codes[identity] = (code or "").strip()
        self._dirty_lines.add(identity)

    def validate_cfop(self, items: ClassifiableItem | Iterable[ClassifiableItem], verdict: CfopVerdict | str) -> int:
        targets = [items] if isinstance(items, ClassifiableItem) else list(items)
        value = CfopVerdict(verdict)
        products = {item.product_identity for item in targets if item.product_identity}
        updated = 0
        for item in self.items:
            if item.product_identity in products:
                self._cfop_verdicts[item.line_identity] = value
                self._dirty_cfop_lines.add(item.line_identity)
                updated += 1
        return updated

    def items_by_classification(self) -> dict[AssetClassification, list[ClassifiableItem]]:
        grouped: dict[AssetClassification, list[ClassifiableItem]] = {value: [] for value in AssetClassification}
        for item in self.items:
            grouped[self.classification_of(item)].append(item)
        return grouped

    def seed(
        self,
        classifications: Mapping[str, AssetClassification],
        account_codes: Mapping[str, str],
        cfop_verdicts: Mapping[str, CfopVerdict],
        fallback_sources: Mapping[str, str],
    ) -> None:
        self._classifications.update(classifications)
        self._account_codes.update(account_codes)
        self._cfop_verdicts.update(cfop_verdicts)
        self.fallback_sources.update(fallback_sources)

    def dirty_changes(self) -> tuple[dict[str, AssetClassification], dict[str, str], dict[str, CfopVerdict]]:
        classifications = {key: self._classifications[key] for key in self._dirty_products}
        account_codes = {key: self._account_codes[key] for key in self._dirty_lines}
        cfop: dict[str, CfopVerdict] = {}
        for item in self.items:
            if item.line_identity not in self._dirty_cfop_lines:
                continue
            key = cfop_validation_key(item)
            if key:
                cfop[key] = self._cfop_verdicts[item.line_identity]
        return classifications, account_codes, cfop

    def mark_clean(self) -> None:
        self._dirty_products.clear()
        self._dirty_lines.clear()
        self._dirty_cfop_lines.clear()


def load_for_competence(
    store: ClassificationStore,
    competence: str,
    items: Sequence[ClassifiableItem],
) -> ClassificationSession:
    session = ClassificationSession(competence, items)
    current = store.get(competence) or CompetenceEntry()
    other_labels = store.fallback_order(competence)
    others = [store.entries[label] for label in other_labels]

    classifications: dict[str, AssetClassification] = {}
    fallback_sources: dict[str, str] = {}
    account_codes: dict[str, str] = {}
    cfop_verdicts: dict[str, CfopVerdict] = {}

    for item in session.items:
        identity = item.product_identity
        if identity and identity not in classifications:
            if identity in current.classifications:
                classifications[identity] = current.classifications[identity]
            else:
                for label, entry in zip(other_labels, others):
                    found = entry.classifications.get(identity)
                    if found is not None and found is not AssetClassification.UNCLASSIFIED:
                        classifications[identity] = found
                        fallback_sources[identity] = label
                        break

        line = item.line_identity
        if line and line in current.account_codes:
            account_codes[line] = current.account_codes[line]

        cfop_key = cfop_validation_key(item)
        if line and cfop_key:
            verdict = current.cfop_validations.get(cfop_key)
            if verdict is None:
                for entry in others:
                    found_verdict = entry.cfop_validations.get(cfop_key)
                    if found_verdict is not None and found_verdict is not CfopVerdict.UNVALIDATED:
                        verdict = found_verdict
                        break
            if verdict is not None:
                cfop_verdicts[line] = verdict

    session.seed(classifications, account_codes, cfop_verdicts, fallback_sources)
    return session


def save(store: ClassificationStore, competence: str, session: ClassificationSession) -> ClassificationStore:
    """New store with the session's touched keys merged into ``competence``."""
    classifications, account_codes, cfop = session.dirty_changes()
    entry = store.get(competence) or CompetenceEntry()

    merged_classifications = dict(entry.classifications)
    merged_classifications.update(classifications)

    merged_codes = dict(entry.account_codes)
    for key, code in account_codes.items():
        if code:
            merged_codes[key] = code
        else:
            merged_codes.pop(key, None)

    merged_cfop = dict(entry.cfop_validations)
    for key, verdict in cfop.items():
        if verdict is CfopVerdict.UNVALIDATED:
            merged_cfop.pop(key, None)
        else:
            merged_cfop[key] = verdict

    entries = dict(store.entries)
    entries[competence] = CompetenceEntry(
        classifications=merged_classifications,
        account_codes=merged_codes,
        cfop_validations=merged_cfop,
        cost_centers=entry.cost_centers,
        other=entry.other,
    )
    return ClassificationStore(entries=entries, version=store.version + 1)


def asset_candidates(items: Iterable[ReconciledItem], unit_value_threshold: Decimal) -> list[ClassifiableItem]:
    """Line-level items whose unit value is strictly above the fixed-asset threshold."""
    candidates: list[ClassifiableItem] = []
    for item in items:
        line = item.line_item
        if line is None or line.unit_value is None or line.unit_value <= unit_value_threshold:
            continue
        candidates.append(ClassifiableItem.from_reconciled(item))
    return candidates


def cfop_review_items(items: Iterable[ReconciledItem]) -> list[ClassifiableItem]:
    """Every matched item, line-level or not, for CFOP validation."""
    return [ClassifiableItem.from_reconciled(item) for item in items]


def with_cost_centers(store: ClassificationStore, competence: str, cost_centers: Mapping[str, str]) -> ClassificationStore:
    """New store with ``cost_centers`` (document key -> cost center) merged into ``competence``."""
    entry = store.get(competence) or CompetenceEntry()
    merged = dict(entry.cost_centers)
    for key, value in cost_centers.items():
        value = (value or "").strip()
        if key and value:
            merged[key] = value
    entries = dict(store.entries)
    entries[competence] = replace(entry, cost_centers=merged)
    return ClassificationStore(entries=entries, version=store.version + 1)


def merge_stores(base: ClassificationStore, incoming: ClassificationStore) -> ClassificationStore:
    """Fold an imported store into ``base``; on conflicting keys the imported decision wins."""
    entries = dict(base.entries)
    for competence, imported in incoming.entries.items():
        current = entries.get(competence) or CompetenceEntry()
        entries[competence] = CompetenceEntry(
            classifications={**current.classifications, **imported.classifications},
            account_codes={**current.account_codes, **imported.account_codes},
            cfop_validations={**current.cfop_validations, **imported.cfop_validations},
            cost_centers={**current.cost_centers, **imported.cost_centers},
            other={**current.other, **imported.other},
        )
    return ClassificationStore(entries=entries, version=max(base.version, incoming.version) + 1)
