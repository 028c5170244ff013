"""Result codes and the error taxonomy of the package feed."""

import enum


class StatusCode(enum.Enum):
    """Coarse outcome of a feed operation.

    The web layer maps these onto transport status codes.
    """

    OK = "ok"
    NOT_FOUND = "not-found"
    CONFLICT = "conflict"
    BAD_REQUEST = "bad-request"


class FeedError(Exception):
    """Base class of all errors raised by the feed's core components."""

    status = StatusCode.BAD_REQUEST

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class CorruptArchive(FeedError):
    """The upload is not a readable archive or has no root manifest."""


class AmbiguousManifest(FeedError):
    """The archive holds more than one manifest at its root."""


class InvalidManifest(FeedError):
    """The manifest is malformed, or its id or version is missing/invalid."""


class VersionConflict(FeedError):
    status = StatusCode.CONFLICT


class NotFoundId(FeedError):
    status = StatusCode.NOT_FOUND


class StoreIOFailure(FeedError):
    """Writing to durable storage failed; the store was left unchanged."""
