"""Public client facade for bleepclient.

Example::

    async with Client(access_key="AKID", secret_key="...", bucket="misc") as client:
        response = await client.put_file("package.json", "/test/package.json")
        print(response.status_code)

Raw operations (``put``, ``get``, ``head``, ``delete``) return the
``httpx.Response`` whatever its status; the caller judges it. Multipart
operations raise ``ProtocolError`` on unexpected statuses.
"""

import logging
import os
from collections.abc import AsyncIterator, Callable, Iterable, Mapping
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import BinaryIO

import httpx

from bleepclient import metrics, mime
from bleepclient.auth import content_md5
from bleepclient.config import DEFAULT_ENDPOINT, BucketConfig, ClientConfig, Credentials
from bleepclient.errors import ConfigurationError
from bleepclient.multipart import DEFAULT_PART_SIZE, MultipartSequencer, UploadSession
from bleepclient.request import RequestBuilder, merge_headers
from bleepclient.transport import Body, HttpxTransport, Transport
from bleepclient.xml_utils import CompletedUpload, PartListing, PartRecord, strip_etag

logger = logging.getLogger(__name__)

# Streaming chunk size: 64 KB
_CHUNK_SIZE = 64 * 1024


@dataclass(frozen=True)
class FileInfo:
    """Summary of a stored object from a HEAD request."""

    etag: str
    size: int
    modified: str


class Client:
    """S3 client bound to one bucket.

    Attributes:
        credentials: Access key pair (immutable).
        bucket_config: Endpoint, bucket, port and scheme (immutable).
        builder: Request signer.
        transport: HTTP transport.
        multipart: Multipart sequencer.
    """

    def __init__(
        self,
        access_key: str,
        secret_key: str,
        bucket: str,
        endpoint: str = DEFAULT_ENDPOINT,
        port: int | None = None,
        secure: bool = False,
        transport: Transport | None = None,
        clock: Callable[[], datetime] | None = None,
        timeout: float = 30.0,
    ) -> None:
        """Initialize the client.

        Args:
            access_key: Access key ID.
            secret_key: Secret access key.
            bucket: Bucket name.
            endpoint: Service host name.
            port: Service port; defaults to 443 when secure, else 80.
            secure: Use https instead of http.
            transport: Transport to send requests with; defaults to httpx.
            clock: Time source used for the Date header.
            timeout: Request timeout for the default transport.

        Raises:
            ConfigurationError: If access_key, secret_key or bucket is empty.
        """
        for name, value in (
            ("access_key", access_key),
            ("secret_key", secret_key),
            ("bucket", bucket),
        ):
            if not value:
                raise ConfigurationError(name)

        self.credentials = Credentials(access_key=access_key, secret_key=secret_key)
        self.bucket_config = BucketConfig(
            endpoint=endpoint or DEFAULT_ENDPOINT,
            bucket=bucket,
            port=port,
            secure=secure,
        )
        self.builder = RequestBuilder(self.credentials, self.bucket_config, clock=clock)
        self.transport = transport or HttpxTransport(timeout=timeout)
        self.multipart = MultipartSequencer(self.builder, self.transport)

    @classmethod
    def from_config(cls, config: ClientConfig, transport: Transport | None = None) -> "Client":
        """Build a client from a loaded ClientConfig."""
        if config.metrics.enabled:
            metrics.init_metrics()
        return cls(
            access_key=config.credentials.access_key,
            secret_key=config.credentials.secret_key,
            bucket=config.bucket.bucket,
            endpoint=config.bucket.endpoint,
            port=config.bucket.port,
            secure=config.bucket.secure,
            transport=transport,
            timeout=config.http.timeout,
        )

    @property
    def key(self) -> str:
        return self.credentials.access_key

    @property
    def bucket(self) -> str:
        return self.bucket_config.bucket

    @property
    def endpoint(self) -> str:
        return self.bucket_config.endpoint

    @property
    def port(self) -> int:
        return self.bucket_config.port

    async def __aenter__(self) -> "Client":
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self.transport.aclose()

    # -- Raw operations --------------------------------------------------------

    async def put(
        self,
        filename: str,
        body: Body = None,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        """PUT ``body`` to ``filename``.

        Defaults ``Expect: 100-continue`` and ``x-amz-acl: public-read``;
        the caller's headers win.
        """
        descriptor = self.builder.build_put_request(filename, headers)
        return await self.transport.send(descriptor, content=body)

    async def get(
        self, filename: str, headers: Mapping[str, str] | None = None
    ) -> httpx.Response:
        """GET ``filename`` as a streamed response.

        The body is not read: iterate ``response.aiter_bytes()`` or call
        ``await response.aread()``, then ``await response.aclose()``.
        """
        descriptor = self.builder.build_request("GET", filename, headers)
        return await self.transport.send(descriptor, stream=True)

    async def head(
        self, filename: str, headers: Mapping[str, str] | None = None
    ) -> httpx.Response:
        """Issue a HEAD request on ``filename``."""
        descriptor = self.builder.build_request("HEAD", filename, headers)
        return await self.transport.send(descriptor)

    async def delete(
        self, filename: str, headers: Mapping[str, str] | None = None
    ) -> httpx.Response:
        """DELETE ``filename``."""
        descriptor = self.builder.build_request("DELETE", filename, headers)
        return await self.transport.send(descriptor)

    # -- File wrappers ---------------------------------------------------------

    async def put_file(
        self,
        src: str | Path,
        filename: str,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        """PUT the local file ``src`` to ``filename``.

        Reads the whole file into memory; use ``put_stream`` or
        ``upload_multipart`` for large files.

        Args:
            src: Local file path.
            filename: Destination object name.
            headers: Extra headers overriding the computed ones.

        Returns:
            The response to the PUT.
        """
        data = Path(src).read_bytes()
        computed = {
            "Content-Length": str(len(data)),
            "Content-Type": mime.lookup(str(src)),
            "Content-MD5": content_md5(data),
        }
        return await self.put(filename, data, merge_headers(computed, headers))

    async def put_stream(
        self,
        stream: BinaryIO,
        filename: str,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        """PUT an open binary file to ``filename`` in 64 KB chunks.

        The length comes from ``fstat`` on the stream and the Content-Type
        from its name.

        Args:
            stream: A binary file object backed by a real file.
            filename: Destination object name.
            headers: Extra headers overriding the computed ones.

        Returns:
            The response to the PUT.
        """
        size = os.fstat(stream.fileno()).st_size - stream.tell()
        computed = {
            "Content-Length": str(size),
            "Content-Type": mime.lookup(getattr(stream, "name", "")),
        }
        return await self.put(filename, _iter_chunks(stream), merge_headers(computed, headers))

    async def get_file(
        self,
        filename: str,
        destination: str | Path,
        headers: Mapping[str, str] | None = None,
    ) -> httpx.Response:
        """GET ``filename`` and write the body to ``destination``.

        The file is only written for a 200 response. The returned response
        is closed.
        """
        response = await self.get(filename, headers)
        try:
            if response.status_code == 200:
                with open(destination, "wb") as fh:
                    async for chunk in response.aiter_bytes(_CHUNK_SIZE):
                        fh.write(chunk)
                logger.debug("Downloaded %s to %s", filename, destination)
        finally:
            await response.aclose()
        return response

    async def file_info(
        self, filename: str, headers: Mapping[str, str] | None = None
    ) -> FileInfo | None:
        """Return etag, size and modification time of ``filename``.

        Returns:
            A FileInfo, or None if the HEAD request did not return 200.
        """
        response = await self.head(filename, headers)
        if response.status_code != 200:
            return None
        return FileInfo(
            etag=strip_etag(response.headers.get("etag", "")),
            size=int(response.headers.get("content-length", "0")),
            modified=response.headers.get("last-modified", ""),
        )

    # -- Multipart -------------------------------------------------------------

    async def begin_upload(
        self, filename: str, headers: Mapping[str, str] | None = None
    ) -> str:
        """Initiate a multipart upload and return its upload ID."""
        return await self.multipart.begin(filename, headers)

    async def put_part(
        self, filename: str, buffer: bytes, part_number: int, upload_id: str
    ) -> PartRecord:
        """Upload one part of a multipart upload."""
        return await self.multipart.put_part(filename, buffer, part_number, upload_id)

    async def get_parts(
        self,
        filename: str,
        upload_id: str,
        max_parts: int | None = None,
        part_number_marker: int | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> PartListing:
        """List the parts uploaded so far for ``upload_id``."""
        return await self.multipart.get_parts(
            filename, upload_id, max_parts, part_number_marker, headers
        )

    async def complete_upload(
        self,
        filename: str,
        upload_id: str,
        parts: Iterable[PartRecord],
        headers: Mapping[str, str] | None = None,
    ) -> CompletedUpload:
        """Assemble ``parts`` (in the given order) into the final object."""
        return await self.multipart.complete_upload(filename, upload_id, parts, headers)

    async def abort_upload(
        self, filename: str, upload_id: str, headers: Mapping[str, str] | None = None
    ) -> None:
        """Abort a multipart upload."""
        await self.multipart.abort_upload(filename, upload_id, headers)

    async def start_upload(
        self, filename: str, headers: Mapping[str, str] | None = None
    ) -> UploadSession:
        """Initiate a multipart upload and return a session tracking it."""
        return await self.multipart.start(filename, headers)

    async def upload_multipart(
        self,
        src: str | Path | BinaryIO,
        filename: str,
        part_size: int = DEFAULT_PART_SIZE,
        headers: Mapping[str, str] | None = None,
    ) -> CompletedUpload:
        """Upload a local file (or open binary stream) part by part.

        Content-Type defaults to the MIME type of the source name.
        """
        if isinstance(src, (str, Path)):
            initiate = merge_headers({"Content-Type": mime.lookup(str(src))}, headers)
            with open(src, "rb") as fh:
                return await self.multipart.upload(filename, fh, part_size, initiate)
        initiate = merge_headers({"Content-Type": mime.lookup(getattr(src, "name", ""))}, headers)
        return await self.multipart.upload(filename, src, part_size, initiate)

    # -- URLs ------------------------------------------------------------------

    def url(self, filename: str) -> str:
        """Return the URL of ``filename``."""
        return self.builder.url(filename)

    def https_url(self, filename: str) -> str:
        """Return the HTTPS URL of ``filename``."""
        return self.builder.https_url(filename)

    def signed_url(self, filename: str, expiration: datetime | int) -> str:
        """Return a presigned GET URL for ``filename`` expiring at ``expiration``."""
        return self.builder.signed_url(filename, expiration)


async def _iter_chunks(stream: BinaryIO) -> AsyncIterator[bytes]:
    """Yield a binary stream in fixed-size chunks."""
    while True:
        chunk = stream.read(_CHUNK_SIZE)
        if not chunk:
            break
        yield chunk


def create_client(**options) -> Client:
    """Shortcut for ``Client(**options)``."""
    return Client(**options)

