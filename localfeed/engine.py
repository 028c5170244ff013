"""The package engine: push, search and list-versions over a feed store."""

import abc
import enum
import logging
import shutil
import tempfile
import time
import typing as t

from .archive import read_manifest
from .backend import IFeedStore
from .core import PackageIdentity, Result, StoredPackage
from .errors import (
    FeedError,
    NotFoundId,
    StatusCode,
    StoreIOFailure,
    VersionConflict,
)
from .manifest import parse_manifest
from .pkg_helpers import validate_id

log = logging.getLogger(__name__)

DEFAULT_ERROR_MSG = "An error has occurred during request. Please try again later."
DEFAULT_WRITE_RETRIES = 2


class PushState(enum.Enum):
    """Steps of a push, in order."""

    RECEIVED = enum.auto()
    EXTRACTED = enum.auto()
    PARSED = enum.auto()
    CONFLICT_CHECKED = enum.auto()
    PERSISTED = enum.auto()
    COMPLETED = enum.auto()


class IPackageService(abc.ABC):
    @abc.abstractmethod
    def push(
        self, filename: t.Optional[str], stream: t.Optional[t.BinaryIO]
    ) -> Result[PackageIdentity]:
        """Add the uploaded archive to the feed."""

    @abc.abstractmethod
    def search(
        self, query: t.Optional[str] = None
    ) -> Result[t.List[PackageIdentity]]:
        """Find packages whose id contains `query`."""

    @abc.abstractmethod
    def list_versions(self, package_id: str) -> Result[t.List[StoredPackage]]:
        """List every stored version of a package, oldest first."""


def _seekable(stream: t.BinaryIO) -> t.BinaryIO:
    """Return `stream`, or a seekable copy of it."""
    if stream.seekable():
        return stream
    spooled = tempfile.SpooledTemporaryFile(max_size=2**20)
    shutil.copyfileobj(stream, spooled)
    spooled.seek(0)
    return t.cast(t.BinaryIO, spooled)


def _is_empty(stream: t.BinaryIO) -> bool:
    offset = stream.tell()
    try:
        return not stream.read(1)
    finally:
        stream.seek(offset)


class PackageService(IPackageService):
    """Orchestrates archive reading, manifest parsing and the feed store.

    Every operation answers with a `Result`: failures of the core
    components never escape as exceptions.

    :param store: where packages are kept
    :param write_retries: how many times a failed store write is retried
        before the push is reported as failed
    :param retry_delay: seconds to wait before the first retry; doubled
        for each further one
    """

    def __init__(
        self,
        store: IFeedStore,
        write_retries: int = DEFAULT_WRITE_RETRIES,
        retry_delay: float = 0.1,
    ):
        self.store = store
        self.write_retries = max(0, write_retries)
        self.retry_delay = retry_delay

    def push(
        self, filename: t.Optional[str], stream: t.Optional[t.BinaryIO]
    ) -> Result[PackageIdentity]:
        # `filename` is only ever used for logging: the identity of a
        # package comes from its manifest.
        state = PushState.RECEIVED
        log.debug("Push of %r: %s", filename, state.name)
        try:
            if stream is None:
                return Result.fail(
                    StatusCode.BAD_REQUEST, "Missing package file!"
                )
            stream = _seekable(stream)
            if _is_empty(stream):
                return Result.fail(
                    StatusCode.BAD_REQUEST, f"Package file {filename!r} is empty"
                )

            manifest = read_manifest(stream)
            state = self._advance(filename, PushState.EXTRACTED)

            identity = parse_manifest(manifest)
            state = self._advance(filename, PushState.PARSED)

            if self.store.exists(identity.id, identity.version.normalized):
                raise VersionConflict(
                    f"Package {identity.id!r} version "
                    f"{identity.version.normalized!r} already exists!"
                )
            state = self._advance(filename, PushState.CONFLICT_CHECKED)

            self._persist(identity, stream)
            state = self._advance(filename, PushState.PERSISTED)

            state = self._advance(filename, PushState.COMPLETED)
            return Result.ok(
                identity, f"Package {identity.id} {identity.version} pushed"
            )
        except StoreIOFailure as exc:
            log.error("Push of %r failed after %s: %s", filename, state.name, exc)
            return Result.fail(StatusCode.BAD_REQUEST, DEFAULT_ERROR_MSG)
        except FeedError as exc:
            log.warning(
                "Push of %r rejected after %s: %s", filename, state.name, exc
            )
            return Result.from_error(exc)
        except Exception:  # pylint: disable=broad-except
            log.exception("Unexpected error pushing %r", filename)
            return Result.fail(StatusCode.BAD_REQUEST, DEFAULT_ERROR_MSG)

    @staticmethod
    def _advance(filename: t.Optional[str], state: PushState) -> PushState:
        log.debug("Push of %r: %s", filename, state.name)
        return state

    def _persist(
        self, identity: PackageIdentity, stream: t.BinaryIO
    ) -> StoredPackage:
        """Store the package, retrying transient write failures."""
        delay = self.retry_delay
        for attempt in range(self.write_retries + 1):
            try:
                return self.store.put(identity, stream)
            except StoreIOFailure as exc:
                if attempt == self.write_retries:
                    raise
                log.warning(
                    "Storing %r failed (attempt %d of %d), retrying: %s",
                    identity,
                    attempt + 1,
                    self.write_retries + 1,
                    exc,
                )
                time.sleep(delay)
                delay *= 2
        raise AssertionError("unreachable")

    def search(
        self, query: t.Optional[str] = None
    ) -> Result[t.List[PackageIdentity]]:
        # No match is an empty success, never NOT_FOUND.
        try:
            return Result.ok(self.store.search(query))
        except FeedError as exc:
            return Result.from_error(exc)
        except Exception:  # pylint: disable=broad-except
            log.exception("Unexpected error searching for %r", query)
            return Result.fail(StatusCode.BAD_REQUEST, DEFAULT_ERROR_MSG)

    def list_versions(self, package_id: str) -> Result[t.List[StoredPackage]]:
        try:
            package_id = validate_id(package_id)
            versions = self.store.list_versions(package_id)
            if not versions:
                raise NotFoundId(f"Package {package_id!r} not found")
            return Result.ok(versions)
        except FeedError as exc:
            return Result.from_error(exc)
        except Exception:  # pylint: disable=broad-except
            log.exception("Unexpected error listing %r", package_id)
            return Result.fail(StatusCode.BAD_REQUEST, DEFAULT_ERROR_MSG)
