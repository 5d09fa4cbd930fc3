"""Central configuration for the fiscal reconciliation package."""
from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path

HOME_STATE = "PR"
# CNPJ of the company whose books are reconciled; empty disables issuer-based screening.
COMPANY_TAX_ID = ""

# Ledger "Esp" values that denote a return of a document issued by the company itself.
OWN_RETURN_CATEGORIES = {"DEV", "DEVOLUCAO", "DEVOLUÇÃO"}

COMPETENCE_SEPARATOR = "_"
# Browser localStorage holds roughly 5 MiB per origin.
DEFAULT_STORAGE_QUOTA = 5 * 1024 * 1024
ASSET_UNIT_VALUE_THRESHOLD = Decimal("1200")

BASE_DIR = Path(__file__).resolve().parent.parent
DATA_DIR = Path(os.environ.get("FISCAL_RECON_DATA_DIR", BASE_DIR / "data"))
STORAGE_PATH = DATA_DIR / "storage.json"

DATA_DIR.mkdir(parents=True, exist_ok=True)


@dataclass(slots=True, frozen=True)
class Settings:
    home_state: str
    company_tax_id: str
    own_return_categories: frozenset[str]
    storage_path: Path
    storage_quota_bytes: int
    asset_unit_value_threshold: Decimal


SETTINGS = Settings(
    home_state=os.environ.get("FISCAL_RECON_HOME_STATE", HOME_STATE).strip().upper(),
    company_tax_id=os.environ.get("FISCAL_RECON_COMPANY_TAX_ID", COMPANY_TAX_ID).strip(),
    own_return_categories=frozenset(OWN_RETURN_CATEGORIES),
    storage_path=STORAGE_PATH,
    storage_quota_bytes=int(os.environ.get("FISCAL_RECON_STORAGE_QUOTA", DEFAULT_STORAGE_QUOTA)),
    asset_unit_value_threshold=ASSET_UNIT_VALUE_THRESHOLD,
)
