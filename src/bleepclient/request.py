"""Signed request construction for bleepclient.

A RequestBuilder turns (method, filename, headers) into a RequestDescriptor
carrying everything the transport needs: target host/port/path and a header
set that already includes ``Date``, ``Host`` and ``Authorization``. No I/O
happens here.
"""

import logging
import math
import posixpath
import urllib.parse
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import datetime, timezone

import httpx

from bleepclient.auth import (
    authorization,
    canonicalize_headers,
    canonicalize_resource,
    http_date,
    sign_query,
)
from bleepclient.config import BucketConfig, Credentials

logger = logging.getLogger(__name__)

_DEFAULT_PORTS = {"http": 80, "https": 443}

PUT_DEFAULTS = {
    "Expect": "100-continue",
    "x-amz-acl": "public-read",
}


@dataclass(frozen=True)
class RequestDescriptor:
    """An outbound request, signed and ready for the transport.

    Attributes:
        method: HTTP method.
        scheme: "http" or "https".
        host: Endpoint host name.
        port: Endpoint port.
        path: Encoded request path including the bucket and any query.
        headers: Final request headers.
        url: Public URL of the addressed object.
    """

    method: str
    scheme: str
    host: str
    port: int
    path: str
    headers: httpx.Headers
    url: str

    @property
    def target(self) -> str:
        """Absolute URL the request is sent to."""
        return f"{self.scheme}://{self.host}:{self.port}{self.path}"


def merge_headers(
    defaults: Mapping[str, str] | httpx.Headers,
    overrides: Mapping[str, str] | httpx.Headers | None,
) -> httpx.Headers:
    """Return a new header set with ``overrides`` layered over ``defaults``.

    Neither argument is modified. Names compare case-insensitively, so a
    caller's ``content-type`` replaces a default ``Content-Type``.
    """
    merged = _as_headers(defaults)
    if overrides:
        merged.update(_as_headers(overrides))
    return merged


def _as_headers(headers: Mapping[str, str] | httpx.Headers) -> httpx.Headers:
    """Copy ``headers`` into a fresh httpx.Headers, stringifying values."""
    if isinstance(headers, httpx.Headers):
        return httpx.Headers(headers)
    return httpx.Headers({name: str(value) for name, value in headers.items()})


def object_path(bucket: str, filename: str) -> str:
    """Join bucket and filename into a normalised, encoded request path.

    Duplicate slashes collapse, dot segments resolve and a trailing slash
    survives. The query string of ``filename`` is kept verbatim.

    Args:
        bucket: Bucket name.
        filename: Object name, optionally with ``?query``.

    Returns:
        A path of the form ``/bucket/key[?query]``.
    """
    name, sep, query = filename.partition("?")
    joined = posixpath.normpath("/" + "/".join([bucket, name]))
    if name.endswith("/") and not joined.endswith("/"):
        joined += "/"
    # normpath keeps a leading "//" as POSIX allows; S3 paths never want it.
    joined = "/" + joined.lstrip("/")
    encoded = urllib.parse.quote(joined, safe="/~%")
    return encoded + sep + query


class RequestBuilder:
    """Builds signed RequestDescriptors for one bucket.

    Attributes:
        credentials: Access key pair.
        bucket_config: Endpoint, bucket, port and scheme.
    """

    def __init__(
        self,
        credentials: Credentials,
        bucket_config: BucketConfig,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize the builder.

        Args:
            credentials: Access key pair used for signing.
            bucket_config: Target endpoint and bucket.
            clock: Returns the current time; defaults to UTC now.
        """
        self.credentials = credentials
        self.bucket_config = bucket_config
        self._clock = clock or (lambda: datetime.now(timezone.utc))

    def build_request(
        self,
        method: str,
        filename: str,
        headers: Mapping[str, str] | httpx.Headers | None = None,
        date: datetime | None = None,
    ) -> RequestDescriptor:
        """Build a signed request for ``filename``.

        Args:
            method: HTTP method.
            filename: Object name, optionally with a query string.
            headers: Caller headers; they win over the Date/Host defaults.
            date: Signing date; defaults to the builder's clock.

        Returns:
            The signed RequestDescriptor.
        """
        cfg = self.bucket_config
        date = date or self._clock()
        final = merge_headers({"Date": http_date(date), "Host": cfg.endpoint}, headers)

        path = object_path(cfg.bucket, filename)
        # An x-amz-date header supersedes Date in the string to sign.
        date_line = "" if "x-amz-date" in final else final["Date"]

        final["Authorization"] = authorization(
            key=self.credentials.access_key,
            secret=self.credentials.secret_key,
            verb=method,
            date=date_line,
            resource=canonicalize_resource(path),
            content_type=final.get("Content-Type", ""),
            md5=final.get("Content-MD5", ""),
            amazon_headers=canonicalize_headers(final),
        )
        logger.debug("Signed %s %s", method, path)

        return RequestDescriptor(
            method=method,
            scheme=cfg.scheme,
            host=cfg.endpoint,
            port=cfg.port,
            path=path,
            headers=final,
            url=self.url(filename),
        )

    def build_put_request(
        self,
        filename: str,
        headers: Mapping[str, str] | httpx.Headers | None = None,
        date: datetime | None = None,
    ) -> RequestDescriptor:
        """Build a PUT with ``Expect: 100-continue`` and a public-read ACL default."""
        return self.build_request("PUT", filename, merge_headers(PUT_DEFAULTS, headers), date)

    # -- URLs ----------------------------------------------------------------

    def url(self, filename: str) -> str:
        """Return the plain URL of ``filename`` using the configured scheme."""
        return self._base_url(self.bucket_config.scheme) + object_path(
            self.bucket_config.bucket, filename
        )

    def https_url(self, filename: str) -> str:
        """Return the HTTPS URL of ``filename``."""
        return self._base_url("https") + object_path(self.bucket_config.bucket, filename)

    def signed_url(self, filename: str, expiration: datetime | int) -> str:
        """Return a presigned GET URL valid until ``expiration``.

        An expiration in the past is not rejected; the server will refuse
        the URL.

        Args:
            filename: Object name.
            expiration: Aware datetime (naive means UTC) or epoch seconds.

        Returns:
            URL carrying Expires, AWSAccessKeyId and Signature parameters.
        """
        epoch = _epoch_seconds(expiration)
        name = filename.partition("?")[0]
        resource = object_path(self.bucket_config.bucket, name)
        signature = sign_query(self.credentials.secret_key, epoch, resource)
        query = (
            f"Expires={epoch}"
            f"&AWSAccessKeyId={urllib.parse.quote(self.credentials.access_key, safe='')}"
            f"&Signature={urllib.parse.quote(signature, safe='')}"
        )
        return f"{self.url(name)}?{query}"

    def _base_url(self, scheme: str) -> str:
        cfg = self.bucket_config
        port = cfg.port if scheme == cfg.scheme else _DEFAULT_PORTS[scheme]
        if port == _DEFAULT_PORTS[scheme]:
            return f"{scheme}://{cfg.endpoint}"
        return f"{scheme}://{cfg.endpoint}:{port}"


def _epoch_seconds(expiration: datetime | int) -> int:
    if isinstance(expiration, datetime):
        if expiration.tzinfo is None:
            expiration = expiration.replace(tzinfo=timezone.utc)
        return math.floor(expiration.timestamp())
    return int(expiration)
