"""S3 XML request rendering and response parsing for bleepclient."""

import xml.etree.ElementTree as ET
from collections.abc import Iterable
from dataclasses import dataclass, field
from xml.sax.saxutils import escape as _sax_escape


@dataclass(frozen=True)
class PartRecord:
    """A part acknowledged by the store, as referenced in the manifest.

    Attributes:
        part_number: Positive part number chosen by the caller.
        etag: Server-assigned entity tag, without surrounding quotes.
    """

    part_number: int
    etag: str


@dataclass(frozen=True)
class PartInfo:
    """One entry of a ListParts result."""

    part_number: int
    etag: str
    size: int = 0
    last_modified: str = ""


@dataclass
class PartListing:
    """A parsed ListPartsResult document."""

    bucket: str = ""
    key: str = ""
    upload_id: str = ""
    parts: list[PartInfo] = field(default_factory=list)
    is_truncated: bool = False
    next_part_number_marker: int | None = None
    max_parts: int | None = None


@dataclass(frozen=True)
class CompletedUpload:
    """A parsed CompleteMultipartUploadResult document."""

    location: str
    bucket: str
    key: str
    etag: str


@dataclass(frozen=True)
class ErrorDocument:
    """A parsed S3 ``<Error>`` document."""

    code: str
    message: str


def _escape_xml(value: str) -> str:
    """Escape special XML characters in a string value.

    Args:
        value: The raw string to escape.

    Returns:
        The XML-safe escaped string.
    """
    return _sax_escape(str(value))


def strip_etag(value: str) -> str:
    """Remove the double quotes S3 wraps around ETag values."""
    value = value.strip()
    if len(value) >= 2 and value.startswith('"') and value.endswith('"'):
        return value[1:-1]
    return value


def render_complete_multipart_upload(parts: Iterable[PartRecord]) -> str:
    """Render the CompleteMultipartUpload request body.

    Parts are listed in the order given. Each ETag is wrapped in double
    quotes, which the service requires.

    Args:
        parts: Part records to assemble.

    Returns:
        The XML manifest.
    """
    xml_parts = ["<CompleteMultipartUpload>"]
    for part in parts:
        xml_parts.append("<Part>")
        xml_parts.append(f"<PartNumber>{int(part.part_number)}</PartNumber>")
        xml_parts.append(f'<ETag>"{_escape_xml(strip_etag(part.etag))}"</ETag>')
        xml_parts.append("</Part>")
    xml_parts.append("</CompleteMultipartUpload>")
    return "".join(xml_parts)


# -- Parsing ------------------------------------------------------------------


def parse_document(body: bytes | str) -> ET.Element:
    """Parse an XML response body.

    Raises:
        ET.ParseError: If the body is not well-formed XML.
    """
    return ET.fromstring(body)


def _namespace(root: ET.Element) -> str:
    """Return the ``{uri}`` prefix of the root tag, or an empty string."""
    if root.tag.startswith("{"):
        return root.tag[: root.tag.index("}") + 1]
    return ""


def local_name(element: ET.Element) -> str:
    """Return an element's tag without its namespace."""
    return element.tag.rsplit("}", 1)[-1]


def _find_text(parent: ET.Element, ns: str, name: str, default: str = "") -> str:
    """Find a child's text, trying the namespaced name then the bare one.

    Uses explicit ``is not None`` checks because an element with no
    children is falsy.
    """
    elem = parent.find(f"{ns}{name}")
    if elem is None and ns:
        elem = parent.find(name)
    if elem is None or elem.text is None:
        return default
    return elem.text.strip()


def parse_upload_id(body: bytes | str) -> str:
    """Extract UploadId from an InitiateMultipartUploadResult.

    Returns:
        The upload ID, or "" if the element is missing.

    Raises:
        ET.ParseError: If the body is not well-formed XML.
    """
    root = parse_document(body)
    return _find_text(root, _namespace(root), "UploadId")


def parse_error(body: bytes | str) -> ErrorDocument | None:
    """Parse an S3 ``<Error>`` document, returning None for anything else."""
    if not body:
        return None
    try:
        root = parse_document(body)
    except ET.ParseError:
        return None
    if local_name(root) != "Error":
        return None
    ns = _namespace(root)
    return ErrorDocument(
        code=_find_text(root, ns, "Code"),
        message=_find_text(root, ns, "Message"),
    )


def parse_complete_result(body: bytes | str) -> CompletedUpload:
    """Parse a CompleteMultipartUploadResult document.

    Raises:
        ET.ParseError: If the body is not well-formed XML.
    """
    root = parse_document(body)
    ns = _namespace(root)
    return CompletedUpload(
        location=_find_text(root, ns, "Location"),
        bucket=_find_text(root, ns, "Bucket"),
        key=_find_text(root, ns, "Key"),
        etag=strip_etag(_find_text(root, ns, "ETag")),
    )


def parse_list_parts(body: bytes | str) -> PartListing:
    """Parse a ListPartsResult document.

    Raises:
        ET.ParseError: If the body is not well-formed XML.
        ValueError: If a numeric element holds a non-integer.
    """
    root = parse_document(body)
    ns = _namespace(root)

    parts = []
    for part_elem in root.findall(f"{ns}Part"):
        parts.append(
            PartInfo(
                part_number=int(_find_text(part_elem, ns, "PartNumber", "0")),
                etag=strip_etag(_find_text(part_elem, ns, "ETag")),
                size=int(_find_text(part_elem, ns, "Size", "0")),
                last_modified=_find_text(part_elem, ns, "LastModified"),
            )
        )

    next_marker = _find_text(root, ns, "NextPartNumberMarker")
    max_parts = _find_text(root, ns, "MaxParts")
    return PartListing(
        bucket=_find_text(root, ns, "Bucket"),
        key=_find_text(root, ns, "Key"),
        upload_id=_find_text(root, ns, "UploadId"),
        parts=parts,
        is_truncated=_find_text(root, ns, "IsTruncated").lower() == "true",
        next_part_number_marker=int(next_marker) if next_marker else None,
        max_parts=int(max_parts) if max_parts else None,
    )
