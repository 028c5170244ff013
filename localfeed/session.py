"""Per-client bookkeeping of the packages touched during a session.

This belongs to the web layer only. It is a log of what a client pushed
or looked at, never a source of truth for search or version listings.
"""

import threading
import typing as t
import uuid
from collections import OrderedDict

from .core import PackageIdentity

DEFAULT_MAX_SESSIONS = 1024


class PackageSession:
    """The packages seen by one client, in first-seen order."""

    def __init__(self):
        self._lock = threading.Lock()
        self._packages: "OrderedDict[t.Tuple[str, str], PackageIdentity]" = (
            OrderedDict()
        )

    def get(self) -> t.List[PackageIdentity]:
        with self._lock:
            return list(self._packages.values())

    def set(self, package: PackageIdentity) -> None:
        self.set_many([package])

    def set_many(self, packages: t.Iterable[PackageIdentity]) -> None:
        with self._lock:
            for package in packages:
                self._packages.setdefault(package.key, package)

    def __len__(self) -> int:
        return len(self._packages)


class SessionRegistry:
    """Sessions by key. The least recently used ones are dropped once
    more than `max_sessions` exist."""

    def __init__(self, max_sessions: int = DEFAULT_MAX_SESSIONS):
        self.max_sessions = max_sessions
        self._lock = threading.Lock()
        self._sessions: "OrderedDict[str, PackageSession]" = OrderedDict()

    @staticmethod
    def new_key() -> str:
        return uuid.uuid4().hex

    def get(self, key: t.Optional[str]) -> t.Tuple[str, PackageSession]:
        """Return the session stored under `key`, creating a new one (with
        a new key) if there is none."""
        with self._lock:
            if key and key in self._sessions:
                self._sessions.move_to_end(key)
                return key, self._sessions[key]
            key = self.new_key()
            session = self._sessions[key] = PackageSession()
            while len(self._sessions) > self.max_sessions:
                self._sessions.popitem(last=False)
            return key, session

    def __len__(self) -> int:
        return len(self._sessions)
