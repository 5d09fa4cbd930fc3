"""File-backed key-value storage with a fixed capacity, mirroring browser storage."""
from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Mapping

from fiscal_recon.config import SETTINGS
from fiscal_recon.errors import StorageQuotaExceededError

logger = logging.getLogger(__name__)


def _load(path: Path) -> dict[str, str]:
    if not path.exists():
        return {}
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError:
        logger.warning("Storage file %s is not valid JSON; starting empty", path)
        return {}
    if not isinstance(data, dict):
        return {}
    return {str(key): value for key, value in data.items() if isinstance(value, str)}


class JsonKeyValueStore:
    """``get_item``/``set_item`` over one JSON file; every write rewrites the whole file."""

    def __init__(self, path: Path | None = None, quota_bytes: int | None = None) -> None:
        self._path = Path(path or SETTINGS.storage_path)
        self._quota = quota_bytes if quota_bytes is not None else SETTINGS.storage_quota_bytes

    @property
    def path(self) -> Path:
        return self._path

    def get_item(self, key: str) -> str | None:
        return _load(self._path).get(key)

    def set_item(self, key: str, value: str) -> None:
        data = _load(self._path)
        data[key] = value
        self._write(key, data)

    def set_items(self, items: Mapping[str, str]) -> None:
        data = _load(self._path)
        data.update(items)
        self._write(", ".join(items), data)

    def remove_item(self, key: str) -> None:
        data = _load(self._path)
        if data.pop(key, None) is not None:
            self._write(key, data)

    def _write(self, key: str, data: dict[str, str]) -> None:
        payload = json.dumps(data, ensure_ascii=False, indent=2, sort_keys=True)
        size = len(payload.encode("utf-8"))
        if size > self._quota:
            raise StorageQuotaExceededError(key, size, self._quota)
        self._path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self._path.with_suffix(self._path.suffix + ".tmp")
        tmp_path.write_text(payload, encoding="utf-8")
        tmp_path.replace(self._path)
        logger.debug("Wrote %d bytes to %s", size, self._path)
