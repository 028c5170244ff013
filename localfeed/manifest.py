"""Parse `.nuspec` manifests into package identities.

A manifest looks like::

    <?xml version="1.0" encoding="utf-8"?>
    <package xmlns="http://schemas.microsoft.com/packaging/2013/05/nuspec.xsd">
      <metadata>
        <id>Newtonsoft.Json</id>
        <version>12.0.1</version>
        <authors>James Newton-King</authors>
        <description>Json.NET is a popular JSON framework for .NET</description>
      </metadata>
    </package>

The schema namespace changed over the years, so elements are matched by
their local name only.
"""

import typing as t
import xml.dom.minidom
from xml.parsers.expat import ExpatError

from .core import PackageIdentity
from .errors import InvalidManifest

# manifest element -> PackageIdentity keyword
OPTIONAL_ELEMENTS = {
    "description": "description",
    "authors": "authors",
    "title": "title",
    "summary": "summary",
    "tags": "tags",
    "projectUrl": "project_url",
}

_TEXT_NODES = (xml.dom.Node.TEXT_NODE, xml.dom.Node.CDATA_SECTION_NODE)


def _text(element: xml.dom.minidom.Element) -> str:
    return "".join(
        node.data for node in element.childNodes if node.nodeType in _TEXT_NODES
    )


def _children(parent: xml.dom.minidom.Node) -> t.Iterator[xml.dom.minidom.Element]:
    return (
        node
        for node in parent.childNodes
        if node.nodeType == xml.dom.Node.ELEMENT_NODE
    )


def _find_metadata(
    dom: xml.dom.minidom.Document,
) -> xml.dom.minidom.Element:
    root = dom.documentElement
    if root is None or root.localName != "package":
        raise InvalidManifest("Manifest root element must be <package>")
    for element in _children(root):
        if element.localName == "metadata":
            return element
    raise InvalidManifest("Manifest has no <metadata> element")


def read_fields(data: bytes) -> t.Dict[str, str]:
    """Return the text of every direct child of the manifest's metadata,
    keyed by element local name."""
    try:
        dom = xml.dom.minidom.parseString(data)
    except ExpatError as exc:
        raise InvalidManifest(f"Manifest is not well-formed XML: {exc}") from exc
    try:
        metadata = _find_metadata(dom)
        fields = {}
        for element in _children(metadata):
            # first occurrence wins
            fields.setdefault(element.localName, _text(element))
        return fields
    finally:
        dom.unlink()


def parse_manifest(data: bytes) -> PackageIdentity:
    """Parse manifest bytes into a `PackageIdentity`.

    :raises InvalidManifest: the manifest is malformed, or its id or
        version are missing or invalid
    """
    fields = read_fields(data)
    package_id = fields.get("id", "").strip()
    version = fields.get("version", "").strip()
    if not package_id:
        raise InvalidManifest("Manifest is missing the package id")
    if not version:
        raise InvalidManifest(
            f"Manifest of {package_id!r} is missing the package version"
        )
    optional = {
        kwarg: fields[element]
        for element, kwarg in OPTIONAL_ELEMENTS.items()
        if element in fields
    }
    return PackageIdentity(id=package_id, version=version, **optional)
