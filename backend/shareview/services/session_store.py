"""Per-browser viewer session cache with JSON persistence and lazy expiry."""

from __future__ import annotations

import json
import logging
import time
from pathlib import Path
from typing import Callable

from pydantic import ValidationError

from shareview.config import settings
from shareview.schemas.share import ShareType, StoredSession

logger = logging.getLogger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class SessionStore:
    """Verified viewer identities, scoped to the browser that verified them.

    The JSON document maps a client id (the opaque value of the browser's
    client cookie) to that browser's entries, each keyed by
    ``<prefix><token>``. Nothing verified by one client is visible to another.
    An entry is only a hint: callers must re-validate it against the backend
    before trusting it, and ``clear()`` it when the backend says no.
    """

    FILE_NAME = "sessions.json"

    def __init__(
        self,
        session_dir: str | None = None,
        ttl_ms: int | None = None,
        key_prefix: str | None = None,
        clock: Callable[[], int] = _now_ms,
    ):
        self._dir = Path(session_dir or settings.session_dir)
        self._file = self._dir / self.FILE_NAME
        self._ttl_ms = ttl_ms if ttl_ms is not None else settings.session_ttl_ms
        self._prefix = key_prefix if key_prefix is not None else settings.session_key_prefix
        self._clock = clock
        self._clients: dict[str, dict[str, dict]] = {}
        self._load()

    def key(self, token: str) -> str:
        return f"{self._prefix}{token}"

    def for_client(self, client_id: str) -> ClientSessions:
        return ClientSessions(self, client_id)

    def read(self, client_id: str, token: str) -> StoredSession | None:
        """Return ``client_id``'s cached session for ``token`` or None if absent/expired."""
        key = self.key(token)
        raw = self._clients.get(client_id, {}).get(key)
        if raw is None:
            return None

        try:
            session = StoredSession.model_validate(raw)
        except ValidationError as e:
            logger.warning("Dropping unreadable session entry %s: %s", key, e)
            self._delete(client_id, key)
            return None

        age = self._clock() - session.verified_at
        if age >= self._ttl_ms:
            logger.info("Session for token %s expired (age %ds)", token, age // 1000)
            self._delete(client_id, key)
            return None
        return session

    def write(
        self,
        client_id: str,
        token: str,
        email: str,
        share_type: ShareType,
        folder_id: str | None = None,
    ) -> StoredSession:
        """Record a server-verified identity, replacing the client's previous entry."""
        session = StoredSession(
            email=email,
            verified_at=self._clock(),
            share_type=share_type,
            folder_id=folder_id,
        )
        entries = self._clients.setdefault(client_id, {})
        entries[self.key(token)] = session.model_dump(by_alias=True, exclude_none=True)
        self._save()
        logger.info("Stored session for token %s (%s, %s)", token, email, share_type)
        return session

    def clear(self, client_id: str, token: str) -> None:
        key = self.key(token)
        if key in self._clients.get(client_id, {}):
            self._delete(client_id, key)
            logger.info("Cleared session for token %s", token)

    def _delete(self, client_id: str, key: str) -> None:
        entries = self._clients.get(client_id)
        if entries is not None:
            entries.pop(key, None)
            if not entries:
                del self._clients[client_id]
        self._save()

    def _load(self) -> None:
        """Load entries from disk."""
        if not self._file.exists():
            return

        try:
            data = json.loads(self._file.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("session file is not a JSON object")
            for client_id, entries in data.items():
                if not isinstance(entries, dict):
                    continue
                kept = {
                    k: v for k, v in entries.items()
                    if k.startswith(self._prefix) and isinstance(v, dict)
                }
                if kept:
                    self._clients[client_id] = kept
            logger.info("Loaded stored share sessions for %d client(s)", len(self._clients))
        except (json.JSONDecodeError, ValueError) as e:
            logger.warning("Failed to load session store, resetting: %s", e)
            self._clients = {}

    def _save(self) -> None:
        """Persist entries to disk."""
        self._dir.mkdir(parents=True, exist_ok=True)
        tmp = self._file.with_suffix(".tmp")
        tmp.write_text(json.dumps(self._clients, indent=2), encoding="utf-8")
        tmp.replace(self._file)


class ClientSessions:
    """One browser's view of the store, keyed by share token alone."""

    def __init__(self, store: SessionStore, client_id: str):
        self._store = store
        self.client_id = client_id

    def read(self, token: str) -> StoredSession | None:
        return self._store.read(self.client_id, token)

    def write(
        self,
        token: str,
        email: str,
        share_type: ShareType,
        folder_id: str | None = None,
    ) -> StoredSession:
        return self._store.write(self.client_id, token, email, share_type, folder_id)

    def clear(self, token: str) -> None:
        self._store.clear(self.client_id, token)
