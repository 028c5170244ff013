import functools
import re
import typing as t
from pathlib import PurePath

from .errors import InvalidManifest
from .immutable import Immutable


_id_re = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_.\-]*$")


def normalize_id(package_id: str) -> str:
    """Return the case-insensitive comparison key of a package id."""
    return package_id.strip().lower()


def validate_id(package_id: t.Optional[str]) -> str:
    """Return the trimmed package id, raising `InvalidManifest` if it is
    unusable as a feed key.

    Ids become directory names, so besides rejecting path separators we
    only accept the characters nuget itself allows.
    """
    if package_id is None or not package_id.strip():
        raise InvalidManifest("Package id is missing or empty")
    package_id = package_id.strip()
    if "/" in package_id or "\\" in package_id:
        raise InvalidManifest(
            f"Package id {package_id!r} must not contain path separators"
        )
    if not _id_re.match(package_id):
        raise InvalidManifest(f"Package id {package_id!r} is not valid")
    return package_id


_version_re = re.compile(
    r"""^(?P<release>\d+(?:\.\d+){0,3})
    (?:-(?P<pre>[0-9A-Za-z\-]+(?:\.[0-9A-Za-z\-]+)*))?
    (?:\+(?P<build>[0-9A-Za-z\-]+(?:\.[0-9A-Za-z\-]+)*))?$""",
    re.VERBOSE,
)


def _prerelease_key(label: str) -> tuple:
    # numeric identifiers sort before alphanumeric ones
    parts = []
    for part in label.lower().split("."):
        if part.isdigit():
            parts.append((0, int(part), part))
        else:
            parts.append((1, 0, part))
    return tuple(parts)


@functools.total_ordering
class Version(Immutable):
    """A package version.

    Versions compare by their numeric release tuple, then by pre-release
    label; a version without pre-release label sorts after all of its
    pre-releases. Build metadata is kept in `original` but plays no part
    in ordering or equality, so `1.0.0+a == 1.0.0+b == 1.0`.
    """

    __slots__ = ("original", "release", "prerelease", "build", "_key")

    def __init__(self, version: str):
        match = _version_re.match(version.strip()) if version else None
        if match is None:
            raise ValueError(f"Invalid version: {version!r}")
        release = [int(part) for part in match.group("release").split(".")]
        self.original = version.strip()
        self.release: t.Tuple[int, int, int, int] = tuple(  # type: ignore
            release + [0] * (4 - len(release))
        )
        self.prerelease: t.Optional[str] = match.group("pre")
        self.build: t.Optional[str] = match.group("build")
        self._key = (
            self.release,
            0 if self.prerelease else 1,
            _prerelease_key(self.prerelease) if self.prerelease else (),
        )

    @property
    def is_prerelease(self) -> bool:
        return self.prerelease is not None

    @property
    def normalized(self) -> str:
        """The canonical form used for storage keys and uniqueness."""
        major, minor, patch, revision = self.release
        text = f"{major}.{minor}.{patch}"
        if revision:
            text += f".{revision}"
        if self.prerelease:
            text += f"-{self.prerelease.lower()}"
        return text

    def __eq__(self, other: t.Any) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key == other._key

    def __lt__(self, other: t.Any) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._key < other._key

    def __hash__(self) -> int:
        return hash(self._key)

    def __str__(self) -> str:
        return self.original

    def __repr__(self) -> str:
        return f"Version({self.original!r})"


def parse_version(version: t.Union[str, Version]) -> Version:
    if isinstance(version, Version):
        return version
    return Version(version)


def compare_versions(
    a: t.Union[str, Version], b: t.Union[str, Version]
) -> int:
    """Return -1, 0 or 1 as `a` sorts before, together with or after `b`."""
    va, vb = parse_version(a), parse_version(b)
    return (va > vb) - (va < vb)


def sort_versions(
    versions: t.Iterable[t.Union[str, Version]], descending: bool = False
) -> t.List[Version]:
    return sorted(map(parse_version, versions), reverse=descending)


def is_listed_path(path_part: t.Union[PurePath, str]) -> bool:
    if isinstance(path_part, str):
        path_part = PurePath(path_part)
    return not any(part.startswith(".") for part in path_part.parts)
