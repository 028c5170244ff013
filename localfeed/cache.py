#
# In-memory feed index kept fresh by a watchdog observer
#

import logging
import threading
import typing as t
from pathlib import Path

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from .core import StoredPackage
from .pkg_helpers import is_listed_path

log = logging.getLogger(__name__)


class CacheManager:
    """
    A naive cache for the feed index.

    The index cache holds, per root, the list of every committed
    StoredPackage. Packages written through the store are appended after
    their commit. Anything else touching a watched root (commits of other
    stores sharing it, packages copied in by hand, directories removed)
    drops that root's cache so the next read rebuilds it from disk.
    """

    def __init__(self):
        self.index_cache: t.Dict[str, t.List[StoredPackage]] = {}

        self.observer = Observer()
        self.observer.daemon = True
        self.observer.start()

        # Directories being watched
        self.watched: t.Set[str] = set()

        self.watch_lock = threading.Lock()
        self.index_lock = threading.Lock()

    def index(
        self,
        root: t.Union[Path, str],
        impl_fn: t.Callable[[Path], t.Iterable[StoredPackage]],
    ) -> t.List[StoredPackage]:
        root = str(root)
        with self.index_lock:
            try:
                return list(self.index_cache[root])
            except KeyError:
                with self.watch_lock:
                    if root not in self.watched:
                        self._watch(root)

                v = list(impl_fn(Path(root)))
                self.index_cache[root] = v
                log.debug("Indexed %d packages under %s", len(v), root)
                return list(v)

    def add(self, root: t.Union[Path, str], package: StoredPackage) -> None:
        with self.index_lock:
            cached = self.index_cache.get(str(root))
            # a rebuild racing with the commit may already hold it
            if cached is not None and package.identity not in (
                p.identity for p in cached
            ):
                cached.append(package)

    def invalidate_root_cache(self, root: t.Union[Path, str]) -> None:
        with self.index_lock:
            self.index_cache.pop(str(root), None)

    def close(self) -> None:
        self.observer.stop()
        self.observer.join()

    def _watch(self, root: str) -> None:
        self.observer.schedule(_EventHandler(self, root), root, recursive=True)
        self.watched.add(root)


class _EventHandler(FileSystemEventHandler):
    def __init__(self, cache: CacheManager, root: str):
        super().__init__()
        self.cache = cache
        self.root = Path(root)

    def _is_listed(self, path: t.Union[str, bytes]) -> bool:
        if isinstance(path, bytes):
            path = path.decode()
        try:
            return is_listed_path(Path(path).relative_to(self.root))
        except ValueError:
            return False

    def dispatch(self, event: FileSystemEvent) -> None:
        """Called by watchdog observer"""
        if event.event_type not in ("created", "deleted", "moved", "modified"):
            return
        # Commits are renames out of the hidden staging area: only their
        # destination is listed. Other stores on the same root commit too.
        paths = [event.src_path]
        if event.event_type == "moved":
            paths.append(event.dest_path)
        if any(self._is_listed(path) for path in paths):
            log.debug("Invalidating index of %s: %s", self.root, event)
            self.cache.invalidate_root_cache(self.root)
