"""Persistence of whole working sessions, one JSON document per competence."""
from __future__ import annotations

import json
import logging

from fiscal_recon.application.dto import SessionDocument
from fiscal_recon.domain.repositories import KeyValueStorage

logger = logging.getLogger(__name__)

INDEX_KEY = "sessionHistory"
SESSION_KEY_PREFIX = "session:"


def _session_key(competence: str) -> str:
    return f"{SESSION_KEY_PREFIX}{competence}"


class SessionRepository:
    def __init__(self, storage: KeyValueStorage) -> None:
        self._storage = storage

    def _index(self) -> list[str]:
        raw = self._storage.get_item(INDEX_KEY)
        if not raw:
            return []
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Session index is not valid JSON; ignoring it")
            return []
        return [str(item) for item in data] if isinstance(data, list) else []

    def save(self, session: SessionDocument) -> None:
        self._storage.set_item(_session_key(session.competence), session.to_json())
        index = self._index()
        if session.competence not in index:
            index.append(session.competence)
            self._storage.set_item(INDEX_KEY, json.dumps(index, ensure_ascii=False))
        logger.info("Saved session for competence %s", session.competence)

    def load(self, competence: str) -> SessionDocument | None:
        raw = self._storage.get_item(_session_key(competence))
        if not raw:
            return None
        return SessionDocument.from_json(raw)

    def list_sessions(self) -> list[SessionDocument]:
        """Stored sessions, most recently processed first."""
        sessions = [session for session in (self.load(competence) for competence in self._index()) if session]
        sessions.sort(key=lambda session: session.processed_at.timestamp(), reverse=True)
        return sessions

    def delete(self, competence: str) -> None:
        index = [item for item in self._index() if item != competence]
        self._storage.remove_item(_session_key(competence))
        self._storage.set_item(INDEX_KEY, json.dumps(index, ensure_ascii=False))
        logger.info("Removed session for competence %s", competence)
