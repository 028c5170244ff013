"""Read the manifest out of an uploaded package archive."""

import logging
import typing as t
import zipfile
import zlib

from .errors import AmbiguousManifest, CorruptArchive

log = logging.getLogger(__name__)

MANIFEST_EXTENSION = ".nuspec"

_READ_ERRORS = (
    zipfile.BadZipFile,
    zlib.error,
    EOFError,
    OSError,
    ValueError,
    RuntimeError,  # encrypted or unsupported entries
)


def is_root_manifest(name: str) -> bool:
    """Is the archive entry `name` a manifest placed at the archive root?"""
    return (
        "/" not in name
        and "\\" not in name
        and name.lower().endswith(MANIFEST_EXTENSION)
    )


def read_manifest(stream: t.BinaryIO) -> bytes:
    """Return the bytes of the single root-level manifest of the archive.

    :param stream: a seekable binary stream holding the archive; its
        position is restored before returning
    :raises CorruptArchive: the stream is not a zip container, or holds
        no manifest at its root
    :raises AmbiguousManifest: more than one root-level manifest exists
    """
    offset = stream.tell()
    try:
        try:
            zf = zipfile.ZipFile(stream)
        except _READ_ERRORS as exc:
            raise CorruptArchive(f"Not a valid package archive: {exc}") from exc

        with zf:
            manifests = [
                info
                for info in zf.infolist()
                if not info.is_dir() and is_root_manifest(info.filename)
            ]
            if not manifests:
                raise CorruptArchive(
                    f"No '*{MANIFEST_EXTENSION}' manifest at the archive root"
                )
            if len(manifests) > 1:
                names = ", ".join(repr(m.filename) for m in manifests)
                raise AmbiguousManifest(
                    f"Archive holds more than one manifest: {names}"
                )
            log.debug("Reading manifest %r", manifests[0].filename)
            try:
                return zf.read(manifests[0])
            except _READ_ERRORS as exc:
                raise CorruptArchive(
                    f"Could not read manifest {manifests[0].filename!r}: {exc}"
                ) from exc
    finally:
        stream.seek(offset)
