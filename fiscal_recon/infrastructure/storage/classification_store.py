"""Persistence of the classification ledger as JSON text in key-value storage."""
from __future__ import annotations

import json
import logging

from fiscal_recon.domain.classification import ClassificationStore
from fiscal_recon.domain.repositories import KeyValueStorage

logger = logging.getLogger(__name__)

STORE_KEY = "imobilizadoClassifications"
VERSION_KEY = "imobilizadoClassificationsVersion"


class ClassificationRepository:
    def __init__(self, storage: KeyValueStorage) -> None:
        self._storage = storage

    def load(self) -> ClassificationStore:
        raw = self._storage.get_item(STORE_KEY)
        if not raw:
            return ClassificationStore()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Stored classifications are not valid JSON; starting from an empty store")
            return ClassificationStore()
        version_raw = self._storage.get_item(VERSION_KEY)
        version = int(version_raw) if version_raw and version_raw.isdigit() else 0
        return ClassificationStore.from_dict(data if isinstance(data, dict) else {}, version=version)

    def save(self, store: ClassificationStore) -> None:
        payload = json.dumps(store.to_dict(), ensure_ascii=False)
        self._storage.set_items({STORE_KEY: payload, VERSION_KEY: str(store.version)})
        logger.info("Saved classification store v%d (%d competences)", store.version, len(store.entries))
