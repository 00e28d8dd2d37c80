from __future__ import annotations

import logging
import secrets
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

log = logging.getLogger("trancheready.auth.verify")


def new_token() -> str:
    """Unguessable 128-bit link token (32 hex chars)."""
    return secrets.token_hex(16)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class VerifyEntry:
    zip_bytes: bytes
    manifest: Dict[str, Any]
    expires_at: datetime

    def expired(self, now: datetime) -> bool:
        return now >= self.expires_at


class VerifyStore:
    """In-memory token -> evidence bundle store with per-entry TTL.

    Expiry is checked on read and every put sweeps expired entries.
    Nothing survives a process restart.
    """

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._clock = clock
        self._entries: Dict[str, VerifyEntry] = {}
        self._lock = threading.Lock()

    def put(self, token: str, zip_bytes: bytes, manifest: Dict[str, Any], ttl_minutes: float) -> VerifyEntry:
        """Store a bundle under token; returns the entry (with its expiry)."""
        now = self._clock()
        entry = VerifyEntry(
            zip_bytes=zip_bytes,
            manifest=manifest,
            expires_at=now + timedelta(minutes=ttl_minutes),
        )
        with self._lock:
            stale = self._drop_expired(now)
            self._entries[token] = entry
        if stale:
            log.info("Purged %d expired bundles", stale)
        log.info("Stored bundle %s... (%d bytes), expires %s",
                 token[:8], len(zip_bytes), entry.expires_at.isoformat())
        return entry

    def get(self, token: str) -> Optional[VerifyEntry]:
        """Look up a bundle. Returns None if unknown or expired (expired entries are dropped)."""
        with self._lock:
            entry = self._entries.get(token)
            if entry is None:
                return None
            if entry.expired(self._clock()):
                del self._entries[token]
                return None
            return entry

    def purge_expired(self) -> int:
        """Remove all expired entries. Returns count."""
        now = self._clock()
        with self._lock:
            stale = self._drop_expired(now)
        if stale:
            log.info("Purged %d expired bundles", stale)
        return stale

    def _drop_expired(self, now: datetime) -> int:
        # caller holds the lock
        stale = [t for t, e in self._entries.items() if e.expired(now)]
        for t in stale:
            del self._entries[t]
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
