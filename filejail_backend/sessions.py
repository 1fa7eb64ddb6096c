"""In-memory session store with idle expiry.

One lock guards the whole mapping. Every public method takes it exactly once
and hands back immutable ``Session`` snapshots, so callers never observe a
half-updated entry and never hold the lock while doing file I/O.
"""
from __future__ import annotations

import asyncio
import logging
import threading
import time
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Callable

from .errors import PathViolation
from .security import canonical_path, is_within_root, new_session_token, normalize_session_token


log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Session:
    token: str
    current_dir: Path
    last_access: float


def _short(token: str) -> str:
    return token[:8] + "..."


class SessionStore:
    def __init__(
        self,
        root: Path,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.root = canonical_path(root)
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sessions: dict[str, Session] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, token: object) -> bool:
        with self._lock:
            return token in self._sessions

    def _create_locked(self) -> Session:
        token = new_session_token()
        while token in self._sessions:
            token = new_session_token()
        session = Session(token=token, current_dir=self.root, last_access=self._clock())
        self._sessions[token] = session
        return session

    def resolve(self, token: str | None) -> tuple[Session, bool]:
        """Return the session for ``token``, creating a fresh one if needed.

        The boolean is True when a new token was minted and must be sent back
        to the client. Unknown, expired and malformed tokens all land here
        silently rather than as errors.
        """
        key = None
        if token:
            try:
                key = normalize_session_token(token)
            except ValueError:
                key = None

        with self._lock:
            existing = self._sessions.get(key) if key else None
            if existing is not None:
                session = replace(existing, last_access=self._clock())
                self._sessions[key] = session
                return session, False
            session = self._create_locked()

        if token:
            log.info("Unknown session presented, new session created: %s", _short(session.token))
        else:
            log.info("New session created: %s", _short(session.token))
        return session, True

    def get(self, token: str) -> Session | None:
        """Snapshot of a session without refreshing its access time."""
        with self._lock:
            return self._sessions.get(token)

    def update(self, token: str, new_dir: Path) -> bool:
        """Commit a new current directory and refresh the access time.

        Returns False (and changes nothing) when the token has vanished,
        e.g. because the sweep expired it mid-request.
        """
        if not is_within_root(new_dir, self.root):
            raise PathViolation()
        new_dir = canonical_path(new_dir)
        with self._lock:
            existing = self._sessions.get(token)
            if existing is None:
                return False
            self._sessions[token] = replace(existing, current_dir=new_dir, last_access=self._clock())
        return True

    def remove(self, token: str) -> bool:
        with self._lock:
            removed = self._sessions.pop(token, None) is not None
        if removed:
            log.info("Session closed: %s", _short(token))
        return removed

    def sweep(self, idle_threshold: float | None = None) -> int:
        """Drop sessions idle for longer than ``idle_threshold`` seconds.

        Defaults to the store's TTL. Returns the number of sessions removed.
        """
        threshold = self.ttl_seconds if idle_threshold is None else idle_threshold
        with self._lock:
            now = self._clock()
            expired = [t for t, s in self._sessions.items() if now - s.last_access > threshold]
            for token in expired:
                del self._sessions[token]
        if expired:
            log.info("Expired %d idle session(s)", len(expired))
        return len(expired)


async def run_sweeper(store: SessionStore, interval: float) -> None:
    # Periodically expire idle sessions until cancelled.
    while True:
        await asyncio.sleep(interval)
        try:
            store.sweep()
        except Exception:
            log.exception("Session sweep failed")
