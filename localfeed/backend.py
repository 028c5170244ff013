import abc
import contextlib
import datetime
import errno
import hashlib
import itertools
import json
import logging
import os
import shutil
import threading
import time
import typing as t
import uuid
from pathlib import Path

from .core import PackageIdentity, StoredPackage
from .errors import StoreIOFailure, VersionConflict
from .pkg_helpers import (
    is_listed_path,
    normalize_id,
    parse_version,
    validate_id,
)

if t.TYPE_CHECKING:
    from .cache import CacheManager
    from .config import RunConfig


log = logging.getLogger(__name__)


PathLike = t.Union[str, os.PathLike]

ARCHIVE_EXTENSION = ".nupkg"
METADATA_FILENAME = "metadata.json"
# Hidden from listings, see `is_listed_path()`
STAGING_DIRNAME = ".incoming"
# Staging entries untouched for this long are leftovers of crashed writers
STALE_STAGING_AGE = 60 * 60


class IFeedStore(abc.ABC):
    @abc.abstractmethod
    def exists(self, package_id: str, version: str) -> bool:
        pass

    @abc.abstractmethod
    def put(
        self, identity: PackageIdentity, stream: t.BinaryIO
    ) -> StoredPackage:
        pass

    @abc.abstractmethod
    def get(self, package_id: str, version: str) -> t.Optional[StoredPackage]:
        pass

    @abc.abstractmethod
    def list_versions(self, package_id: str) -> t.List[StoredPackage]:
        pass

    @abc.abstractmethod
    def search(self, query: t.Optional[str] = None) -> t.List[PackageIdentity]:
        pass

    @abc.abstractmethod
    def package_count(self) -> int:
        pass


class FeedStore(IFeedStore, abc.ABC):
    @abc.abstractmethod
    def get_all_packages(self) -> t.Iterable[StoredPackage]:
        """Implement this method to return an Iterable of all committed
        packages in the store.
        """
        pass

    @abc.abstractmethod
    def put(
        self, identity: PackageIdentity, stream: t.BinaryIO
    ) -> StoredPackage:
        """Durably store the archive read from `stream` under `identity`.

        Implementations must raise `VersionConflict` if the (id, version)
        pair is already stored, must never let two concurrent calls for the
        same pair both succeed, and must not expose the package to readers
        before it has been completely written. Write errors are raised as
        `StoreIOFailure`, leaving the store unchanged.
        """
        pass

    def find_packages(self, package_id: str) -> t.Iterable[StoredPackage]:
        """Find all packages with the given id, in any casing. When
        implementing a FeedStore class, either use this method as is, or
        override it with a more performant version.
        """
        id_norm = normalize_id(package_id)
        return (
            x for x in self.get_all_packages() if x.identity.id_norm == id_norm
        )

    def get(self, package_id: str, version: str) -> t.Optional[StoredPackage]:
        wanted = parse_version(version)
        return next(
            (
                pkg
                for pkg in self.find_packages(package_id)
                if pkg.identity.version == wanted
            ),
            None,
        )

    def exists(self, package_id: str, version: str) -> bool:
        return self.get(package_id, version) is not None

    def list_versions(self, package_id: str) -> t.List[StoredPackage]:
        """Return every stored version of a package, oldest first."""
        return sorted(
            self.find_packages(package_id),
            key=lambda pkg: pkg.identity.version,
        )

    def search(self, query: t.Optional[str] = None) -> t.List[PackageIdentity]:
        """Return the newest identity of every package whose id contains
        `query` (case-insensitive), ordered by id. No query matches all.
        """
        needle = (query or "").strip().lower()
        latest: t.Dict[str, PackageIdentity] = {}
        for pkg in self.get_all_packages():
            identity = pkg.identity
            if needle not in identity.id_norm:
                continue
            current = latest.get(identity.id_norm)
            if current is None or current.version < identity.version:
                latest[identity.id_norm] = identity
        return [latest[k] for k in sorted(latest)]

    def package_count(self) -> int:
        """Return a count of all stored packages."""
        return sum(1 for _ in self.get_all_packages())


class _KeyedLocks:
    """Mutual exclusion per key, without keeping locks for idle keys."""

    def __init__(self):
        self._guard = threading.Lock()
        self._locks: t.Dict[t.Hashable, t.List[t.Any]] = {}

    @contextlib.contextmanager
    def hold(self, key: t.Hashable) -> t.Iterator[None]:
        with self._guard:
            entry = self._locks.setdefault(key, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._guard:
                entry[1] -= 1
                if not entry[1]:
                    del self._locks[key]


class SimpleFeedStore(FeedStore):
    """Store packages below a root directory as
    `<root>/<id>/<version>/{<id>.<version>.nupkg,metadata.json}`.
    """

    def __init__(
        self, root: PathLike, stale_staging_age: float = STALE_STAGING_AGE
    ):
        self.root = Path(root).expanduser().resolve()
        self.staging = self.root / STAGING_DIRNAME
        self.stale_staging_age = stale_staging_age
        self._locks = _KeyedLocks()
        self.root.mkdir(parents=True, exist_ok=True)
        self._discard_stale_staging()

    def package_dir(self, package_id: str) -> Path:
        return self.root / normalize_id(validate_id(package_id))

    def version_dir(self, identity: PackageIdentity) -> Path:
        return self.root / identity.id_norm / identity.version.normalized

    def get_all_packages(self) -> t.Iterable[StoredPackage]:
        return listdir(self.root)

    def find_packages(self, package_id: str) -> t.Iterable[StoredPackage]:
        return iter_package_dir(self.package_dir(package_id))

    def get(self, package_id: str, version: str) -> t.Optional[StoredPackage]:
        version_dir = self.package_dir(package_id) / (
            parse_version(version).normalized
        )
        return read_version_dir(version_dir)

    def put(
        self, identity: PackageIdentity, stream: t.BinaryIO
    ) -> StoredPackage:
        target = self.version_dir(identity)
        with self._locks.hold(identity.key):
            if read_version_dir(target) is not None:
                raise VersionConflict(_conflict_msg(identity))

            staging = self.staging / uuid.uuid4().hex
            try:
                staging.mkdir(parents=True)
                archive_name = archive_filename(identity)
                size, digest = write_file(stream, staging / archive_name)
                stored = StoredPackage(
                    identity=identity,
                    published_at=datetime.datetime.now(datetime.timezone.utc),
                    archive_path=str(target / archive_name),
                    size=size,
                    digest=digest,
                )
                write_metadata(staging / METADATA_FILENAME, stored)
                target.parent.mkdir(exist_ok=True)
                # The commit: readers see either nothing or the whole entry.
                # Renaming onto a populated directory fails, so other
                # processes pushing the same version cannot both win.
                os.rename(staging, target)
            except OSError as exc:
                if exc.errno in (
                    errno.EEXIST,
                    errno.ENOTEMPTY,
                ) and read_version_dir(target) is not None:
                    raise VersionConflict(_conflict_msg(identity)) from exc
                log.error("Could not store %r: %s", identity, exc)
                raise StoreIOFailure(
                    f"Could not store {identity.id} {identity.version}: {exc}"
                ) from exc
            finally:
                if staging.exists():
                    _discard(staging)

        log.info("Stored %s %s in %s", identity.id, identity.version, target)
        return stored

    def _discard_stale_staging(self) -> None:
        if not self.staging.is_dir():
            return
        cutoff = time.time() - self.stale_staging_age
        for leftover in self.staging.iterdir():
            modified = _last_modified(leftover)
            # recent entries may belong to writers on the same root
            if modified is None or modified > cutoff:
                continue
            log.warning("Removing incomplete upload %s", leftover)
            _discard(leftover)


class CachingFeedStore(SimpleFeedStore):
    def __init__(
        self,
        root: PathLike,
        cache_manager: t.Optional["CacheManager"] = None,
    ):
        from .cache import CacheManager

        super().__init__(root)

        self.cache_manager = cache_manager or CacheManager()

    def get_all_packages(self) -> t.Iterable[StoredPackage]:
        return self.cache_manager.index(self.root, listdir)

    def find_packages(self, package_id: str) -> t.Iterable[StoredPackage]:
        id_norm = normalize_id(validate_id(package_id))
        return (
            x for x in self.get_all_packages() if x.identity.id_norm == id_norm
        )

    def get(self, package_id: str, version: str) -> t.Optional[StoredPackage]:
        return FeedStore.get(self, package_id, version)

    def put(
        self, identity: PackageIdentity, stream: t.BinaryIO
    ) -> StoredPackage:
        stored = super().put(identity, stream)
        self.cache_manager.add(self.root, stored)
        return stored

    def close(self) -> None:
        self.cache_manager.close()


def _conflict_msg(identity: PackageIdentity) -> str:
    return (
        f"Package {identity.id!r} version {identity.version.normalized!r} "
        "already exists!"
    )


def _discard(path: Path) -> None:
    try:
        shutil.rmtree(path)
    except OSError as exc:
        log.warning("Could not remove %s: %s", path, exc)


def _last_modified(path: Path) -> t.Optional[float]:
    """Newest mtime of `path` and its direct children, None if it is gone."""
    try:
        entries = [path, *path.iterdir()] if path.is_dir() else [path]
        return max(entry.stat().st_mtime for entry in entries)
    except FileNotFoundError:
        return None


def archive_filename(identity: PackageIdentity) -> str:
    return f"{identity.id_norm}.{identity.version.normalized}{ARCHIVE_EXTENSION}"


def write_file(fh: t.BinaryIO, destination: PathLike) -> t.Tuple[int, str]:
    """write a byte stream into a destination file and sync it to disk.
    Writes are chunked to reduce the memory footprint.

    :return: the number of bytes written and their sha256 digest
    """
    chunk_size = 2**20  # 1 MB
    offset = fh.tell()
    digester = hashlib.sha256()
    size = 0
    try:
        with open(destination, "wb") as dest:
            for chunk in iter(lambda: fh.read(chunk_size), b""):
                dest.write(chunk)
                digester.update(chunk)
                size += len(chunk)
            dest.flush()
            os.fsync(dest.fileno())
    finally:
        fh.seek(offset)
    return size, f"sha256={digester.hexdigest()}"


def write_metadata(destination: PathLike, package: StoredPackage) -> None:
    with open(destination, "w", encoding="utf-8") as dest:
        json.dump(package.to_dict(), dest, indent=2)
        dest.flush()
        os.fsync(dest.fileno())


def read_version_dir(version_dir: Path) -> t.Optional[StoredPackage]:
    """Return the package committed in `version_dir`, if any.

    Entries whose metadata cannot be read or whose archive is missing are
    skipped, so readers never see a package they cannot download.
    """
    metadata = version_dir / METADATA_FILENAME
    try:
        with open(metadata, "r", encoding="utf-8") as fp:
            data = json.load(fp)
    except FileNotFoundError:
        return None
    except (OSError, ValueError) as exc:
        log.warning("Skipping unreadable metadata %s: %s", metadata, exc)
        return None

    try:
        identity = PackageIdentity.from_dict(data)
        archive = version_dir / archive_filename(identity)
        package = StoredPackage.from_dict(data, archive_path=str(archive))
    except (KeyError, TypeError, ValueError) as exc:
        log.warning("Skipping invalid metadata %s: %s", metadata, exc)
        return None

    if not archive.is_file():
        log.warning("Skipping %s: archive %s is missing", metadata, archive)
        return None
    return package


def iter_package_dir(package_dir: Path) -> t.Iterator[StoredPackage]:
    try:
        version_dirs = sorted(package_dir.iterdir())
    except (FileNotFoundError, NotADirectoryError):
        return
    for version_dir in version_dirs:
        if not is_listed_path(version_dir.name) or not version_dir.is_dir():
            continue
        package = read_version_dir(version_dir)
        if package is not None:
            yield package


def listdir(root: Path) -> t.Iterator[StoredPackage]:
    root = root.resolve()
    package_dirs = (
        d for d in sorted(root.iterdir()) if is_listed_path(d.name) and d.is_dir()
    )
    yield from itertools.chain.from_iterable(map(iter_package_dir, package_dirs))


def get_feed_store(config: "RunConfig") -> FeedStore:
    if config.disable_cache:
        return SimpleFeedStore(config.package_root)
    return CachingFeedStore(config.package_root)
