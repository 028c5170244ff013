"""Data model of the local package feed."""

import datetime
import typing as t

from .errors import (
    AmbiguousManifest,
    CorruptArchive,
    FeedError,
    InvalidManifest,
    NotFoundId,
    StatusCode,
    StoreIOFailure,
    VersionConflict,
)
from .immutable import Immutable
from .pkg_helpers import Version, normalize_id, parse_version, validate_id

__all__ = [
    "AmbiguousManifest",
    "CorruptArchive",
    "FeedError",
    "InvalidManifest",
    "NotFoundId",
    "PackageIdentity",
    "Result",
    "StatusCode",
    "StoreIOFailure",
    "StoredPackage",
    "VersionConflict",
]

_OPTIONAL_FIELDS = ("description", "authors", "title", "summary", "tags")


class PackageIdentity(Immutable):
    __slots__ = [
        "id",  # The package id with its original capitalization
        "id_norm",  # The lower-cased comparison key of the id
        "version",  # The parsed `Version`
        "description",
        "authors",
        "title",
        "summary",
        "tags",
        "project_url",
    ]

    def __init__(
        self,
        id: str,  # pylint: disable=redefined-builtin
        version: t.Union[str, Version],
        description: t.Optional[str] = None,
        authors: t.Optional[str] = None,
        title: t.Optional[str] = None,
        summary: t.Optional[str] = None,
        tags: t.Optional[str] = None,
        project_url: t.Optional[str] = None,
    ):
        self.id = validate_id(id)
        self.id_norm = normalize_id(self.id)
        try:
            self.version = parse_version(version)
        except ValueError as exc:
            raise InvalidManifest(str(exc)) from exc
        self.description = description
        self.authors = authors
        self.title = title
        self.summary = summary
        self.tags = tags
        self.project_url = project_url

    @property
    def key(self) -> t.Tuple[str, str]:
        return self.id_norm, self.version.normalized

    def __eq__(self, other: t.Any) -> bool:
        if not isinstance(other, PackageIdentity):
            return NotImplemented
        return self.key == other.key

    def __hash__(self) -> int:
        return hash(self.key)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(id={self.id!r}, version={str(self.version)!r})"

    def to_dict(self) -> t.Dict[str, t.Any]:
        data = {"id": self.id, "version": str(self.version)}
        data.update((k, getattr(self, k)) for k in _OPTIONAL_FIELDS)
        data["projectUrl"] = self.project_url
        return data

    @classmethod
    def from_dict(cls, data: t.Mapping[str, t.Any]) -> "PackageIdentity":
        return cls(
            id=data["id"],
            version=data["version"],
            project_url=data.get("projectUrl"),
            **{k: data.get(k) for k in _OPTIONAL_FIELDS},
        )


class StoredPackage(Immutable):
    """A package durably written to the feed. Never mutated once created."""

    __slots__ = ["identity", "published_at", "archive_path", "size", "digest"]

    def __init__(
        self,
        identity: PackageIdentity,
        published_at: datetime.datetime,
        archive_path: t.Optional[str] = None,
        size: int = 0,
        digest: t.Optional[str] = None,
    ):
        self.identity = identity
        self.published_at = published_at
        self.archive_path = archive_path
        self.size = size
        self.digest = digest

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}({self.identity!r}, "
            f"published_at={self.published_at.isoformat()!r})"
        )

    def to_dict(self) -> t.Dict[str, t.Any]:
        return {
            **self.identity.to_dict(),
            "publishedAt": self.published_at.isoformat(),
            "size": self.size,
            "digest": self.digest,
        }

    @classmethod
    def from_dict(
        cls, data: t.Mapping[str, t.Any], archive_path: t.Optional[str] = None
    ) -> "StoredPackage":
        return cls(
            identity=PackageIdentity.from_dict(data),
            published_at=datetime.datetime.fromisoformat(data["publishedAt"]),
            archive_path=archive_path,
            size=data.get("size", 0),
            digest=data.get("digest"),
        )


T = t.TypeVar("T")


class Result(t.Generic[T]):
    """The envelope every feed operation answers with.

    `data` is only set on success, `message` mostly on failure.
    """

    __slots__ = ("status", "data", "message")

    def __init__(
        self,
        status: StatusCode,
        data: t.Optional[T] = None,
        message: t.Optional[str] = None,
    ):
        self.status = status
        self.data = data
        self.message = message

    @classmethod
    def ok(cls, data: T, message: t.Optional[str] = None) -> "Result[T]":
        return cls(StatusCode.OK, data, message)

    @classmethod
    def fail(cls, status: StatusCode, message: str) -> "Result[T]":
        return cls(status, None, message)

    @classmethod
    def from_error(cls, error: FeedError) -> "Result[T]":
        return cls.fail(error.status, error.message)

    @property
    def success(self) -> bool:
        return self.status is StatusCode.OK

    def __repr__(self) -> str:
        return "Result(status={}, data={!r}, message={!r})".format(
            self.status.name, self.data, self.message
        )
