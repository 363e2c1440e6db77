"""AWS Signature Version 2 request signing for bleepclient.

Implements the canonicalization rules and the HMAC-SHA1 signer used for
both header-based auth (``Authorization: AWS key:signature``) and
query-string auth (presigned URLs).

The string to sign for header auth is::

    VERB\\n
    Content-MD5\\n
    Content-Type\\n
    Date\\n
    CanonicalizedAmzHeaders
    CanonicalizedResource

where CanonicalizedAmzHeaders is either empty or a block of
newline-terminated ``name:value`` lines.

References:
    - https://docs.aws.amazon.com/AmazonS3/latest/userguide/RESTAuthentication.html
"""

import base64
import hashlib
import hmac
import urllib.parse
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone
from email.utils import format_datetime
from typing import Union

import httpx

# Constants
AMZ_HEADER_PREFIX = "x-amz-"
AUTH_SCHEME = "AWS"

# Query parameters that identify a sub-resource and therefore take part in
# the signature. Kept sorted: the canonical resource lists them in this order.
SUB_RESOURCES = sorted([
    "acl", "cors", "delete", "lifecycle", "location", "logging",
    "notification", "partNumber", "policy", "requestPayment",
    "response-cache-control", "response-content-disposition",
    "response-content-encoding", "response-content-language",
    "response-content-type", "response-expires", "restore", "tagging",
    "torrent", "uploadId", "uploads", "versionId", "versioning",
    "versions", "website",
])
_SUB_RESOURCE_SET = frozenset(SUB_RESOURCES)

HeaderInput = Union[httpx.Headers, Mapping[str, str], Iterable[tuple[str, str]]]


@dataclass(frozen=True)
class SignableRequest:
    """The request metadata covered by a signature.

    Attributes:
        verb: HTTP method (uppercase).
        date: The Date line, already in HTTP date format (may be empty).
        content_type: Value of the Content-Type header, or "".
        content_md5: Value of the Content-MD5 header, or "".
        canonicalized_amz_headers: Output of ``canonicalize_headers``.
        canonicalized_resource: Output of ``canonicalize_resource``.
    """

    verb: str
    date: str
    content_type: str
    content_md5: str
    canonicalized_amz_headers: str
    canonicalized_resource: str

    def string_to_sign(self) -> str:
        return (
            f"{self.verb}\n"
            f"{self.content_md5}\n"
            f"{self.content_type}\n"
            f"{self.date}\n"
            f"{self.canonicalized_amz_headers}"
            f"{self.canonicalized_resource}"
        )


# ---------------------------------------------------------------------------
# Canonicalization
# ---------------------------------------------------------------------------


def canonicalize_resource(path: str) -> str:
    """Build the CanonicalizedResource element for a request path.

    The path (which starts with the bucket segment) is percent-encoded
    without touching existing ``%XX`` escapes. Only sub-resource query
    parameters are kept, sorted by name, with their values percent-decoded;
    valueless ones are rendered bare.

    Args:
        path: Request path including the leading ``/bucket`` and any query.

    Returns:
        The canonical resource string.
    """
    resource, _, query = path.partition("?")
    canonical = _uri_encode_path(resource)

    params: list[tuple[str, str | None]] = []
    for pair in query.split("&"):
        if not pair:
            continue
        if "=" in pair:
            name, value = pair.split("=", 1)
        else:
            name, value = pair, None
        if name in _SUB_RESOURCE_SET:
            # Sub-resource values are signed decoded.
            params.append((name, None if value is None else urllib.parse.unquote(value)))

    if not params:
        return canonical

    params.sort(key=lambda item: item[0])
    rendered = [name if value is None else f"{name}={value}" for name, value in params]
    return canonical + "?" + "&".join(rendered)


def canonicalize_headers(headers: HeaderInput) -> str:
    """Build the CanonicalizedAmzHeaders element.

    Selects ``x-amz-*`` headers (case-insensitive), lower-cases the names,
    sorts them, joins repeated values with a comma and emits one
    newline-terminated ``name:value`` line per header. With no vendor
    headers the result is the empty string.

    Args:
        headers: An ``httpx.Headers``, a mapping, or (name, value) pairs.

    Returns:
        The canonical header block.
    """
    collected: dict[str, list[str]] = {}
    for name, value in _header_items(headers):
        lower_name = name.lower()
        if not lower_name.startswith(AMZ_HEADER_PREFIX):
            continue
        collected.setdefault(lower_name, []).append(str(value).strip())

    return "".join(f"{name}:{','.join(collected[name])}\n" for name in sorted(collected))


def _header_items(headers: HeaderInput) -> list[tuple[str, str]]:
    """Flatten any supported header container into (name, value) pairs."""
    if isinstance(headers, httpx.Headers):
        return headers.multi_items()
    if isinstance(headers, Mapping):
        return list(headers.items())
    return list(headers)


def _uri_encode_path(path: str) -> str:
    """Percent-encode a path, preserving slashes and existing escapes."""
    if not path:
        return "/"
    result = urllib.parse.quote(path, safe="/~%")
    if not result.startswith("/"):
        result = "/" + result
    return result


# ---------------------------------------------------------------------------
# Signing
# ---------------------------------------------------------------------------


def http_date(date: datetime | str) -> str:
    """Format a datetime as an RFC 1123 HTTP date.

    Strings are returned unchanged; naive datetimes are taken as UTC.
    """
    if isinstance(date, str):
        return date
    if date.tzinfo is None:
        date = date.replace(tzinfo=timezone.utc)
    return format_datetime(date.astimezone(timezone.utc), usegmt=True)


def authorization(
    key: str,
    secret: str,
    verb: str,
    date: datetime | str,
    resource: str,
    content_type: str = "",
    md5: str = "",
    amazon_headers: str = "",
) -> str:
    """Compute the value of the Authorization header.

    Args:
        key: Access key ID.
        secret: Secret access key.
        verb: HTTP method.
        date: Request date (datetime, or an already formatted Date value).
        resource: Canonicalized resource.
        content_type: Content-Type header value.
        md5: Content-MD5 header value.
        amazon_headers: Canonicalized x-amz headers (newline-terminated).

    Returns:
        ``"AWS <key>:<base64 signature>"``.
    """
    signable = SignableRequest(
        verb=verb,
        date=http_date(date),
        content_type=content_type or "",
        content_md5=md5 or "",
        canonicalized_amz_headers=amazon_headers or "",
        canonicalized_resource=resource,
    )
    return f"{AUTH_SCHEME} {key}:{sign(secret, signable.string_to_sign())}"


def sign_query(secret: str, date: int, resource: str) -> str:
    """Compute the signature for a presigned GET URL.

    Args:
        secret: Secret access key.
        date: Expiration time as epoch seconds.
        resource: Canonicalized resource (``/bucket/key``).

    Returns:
        The base64 signature (not URL-encoded).
    """
    return sign(secret, f"GET\n\n\n{date}\n{resource}")


def sign(secret: str, string_to_sign: str) -> str:
    """HMAC-SHA1 ``string_to_sign`` with ``secret`` and base64 the digest."""
    digest = hmac.new(
        secret.encode("utf-8"), string_to_sign.encode("utf-8"), hashlib.sha1
    ).digest()
    return base64_encode(digest)


# ---------------------------------------------------------------------------
# Encoding helpers
# ---------------------------------------------------------------------------


def base64_encode(data: bytes | str) -> str:
    """Base64-encode bytes (or UTF-8 text) to an ASCII string."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return base64.b64encode(data).decode("ascii")


def base64_decode(data: str | bytes) -> bytes:
    """Decode a base64 string back to bytes."""
    return base64.b64decode(data)


def content_md5(data: bytes) -> str:
    """Return the base64 MD5 digest used for the Content-MD5 header."""
    return base64_encode(hashlib.md5(data).digest())
