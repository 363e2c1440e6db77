"""Multipart upload sequencing for bleepclient.

Implements the client side of the multipart protocol:
    - CreateMultipartUpload (POST /{bucket}/{key}?uploads)
    - UploadPart (PUT /{bucket}/{key}?partNumber&uploadId)
    - ListParts (GET /{bucket}/{key}?uploadId)
    - CompleteMultipartUpload (POST /{bucket}/{key}?uploadId)
    - AbortMultipartUpload (DELETE /{bucket}/{key}?uploadId)

The server holds the upload identifier; the caller holds the manifest of
(part number, etag) pairs. Nothing here retries, buffers part bytes after
they are acknowledged, or serialises concurrent part uploads.
"""

import enum
import logging
import urllib.parse
import xml.etree.ElementTree as ET
from collections.abc import Iterable, Mapping
from typing import BinaryIO

import httpx

from bleepclient import metrics
from bleepclient.auth import content_md5
from bleepclient.errors import MalformedResponse, ProtocolError
from bleepclient.request import RequestBuilder, merge_headers
from bleepclient.transport import Transport
from bleepclient.xml_utils import (
    CompletedUpload,
    PartListing,
    PartRecord,
    local_name,
    parse_complete_result,
    parse_document,
    parse_error,
    parse_list_parts,
    parse_upload_id,
    render_complete_multipart_upload,
    strip_etag,
)

logger = logging.getLogger(__name__)

DEFAULT_PART_SIZE = 8 * 1024 * 1024


class UploadState(enum.Enum):
    """Lifecycle of a single multipart upload."""

    NOT_STARTED = "not_started"
    INITIATED = "initiated"
    PARTS_IN_FLIGHT = "parts_in_flight"
    COMPLETING = "completing"
    ABORTING = "aborting"
    DONE = "done"
    ABORTED = "aborted"
    FAILED = "failed"


def protocol_error(operation: str, response: httpx.Response, resource: str = "") -> ProtocolError:
    """Build a ProtocolError from a response, using its S3 error body if any."""
    error = parse_error(response.content)
    if error is None:
        return ProtocolError(operation, response.status_code, resource=resource)
    return ProtocolError(
        operation,
        response.status_code,
        code=error.code,
        message=error.message,
        resource=resource,
    )


def _quote(value: str) -> str:
    return urllib.parse.quote(str(value), safe="")


class MultipartSequencer:
    """Issues the individual multipart requests.

    Every method maps to exactly one HTTP exchange.

    Attributes:
        builder: Signs requests for the configured bucket.
        transport: Sends signed requests.
    """

    def __init__(self, builder: RequestBuilder, transport: Transport) -> None:
        self.builder = builder
        self.transport = transport

    async def begin(
        self, resource_name: str, headers: Mapping[str, str] | None = None
    ) -> str:
        """Initiate a multipart upload.

        Implements: POST /{bucket}/{key}?uploads

        Args:
            resource_name: Object name.
            headers: Extra request headers (e.g. Content-Type, x-amz-acl).

        Returns:
            The server-assigned upload ID.

        Raises:
            ProtocolError: On any status other than 200.
            MalformedResponse: If the body carries no UploadId.
        """
        descriptor = self.builder.build_request("POST", f"{resource_name}?uploads", headers)
        response = await self.transport.send(descriptor)
        if response.status_code != 200:
            raise protocol_error("begin_upload", response, resource_name)

        try:
            upload_id = parse_upload_id(response.content)
        except ET.ParseError:
            raise MalformedResponse("begin_upload", response.status_code, resource=resource_name)
        if not upload_id:
            raise MalformedResponse(
                "begin_upload",
                response.status_code,
                message="Response carried no UploadId.",
                resource=resource_name,
            )

        logger.info(
            "Initiated multipart upload for %s", resource_name, extra={"upload_id": upload_id}
        )
        return upload_id

    async def put_part(
        self, resource_name: str, buffer: bytes, part_number: int, upload_id: str
    ) -> PartRecord:
        """Upload one part.

        Implements: PUT /{bucket}/{key}?partNumber=N&uploadId=ID

        A failure here concerns this part only; the caller decides whether
        to retry it or abort the upload.

        Args:
            resource_name: Object name.
            buffer: Part bytes.
            part_number: Part number (1-10000).
            upload_id: Upload ID returned by ``begin``.

        Returns:
            The PartRecord to include in the completion manifest.

        Raises:
            ProtocolError: On any status other than 200.
            MalformedResponse: If the response has no ETag header.
        """
        filename = f"{resource_name}?partNumber={int(part_number)}&uploadId={_quote(upload_id)}"
        headers = {
            "Content-Length": str(len(buffer)),
            "Content-MD5": content_md5(buffer),
            "Expect": "100-continue",
        }
        descriptor = self.builder.build_request("PUT", filename, headers)
        response = await self.transport.send(descriptor, content=buffer)
        if response.status_code != 200:
            raise protocol_error("put_part", response, resource_name)

        etag = strip_etag(response.headers.get("etag", ""))
        if not etag:
            raise MalformedResponse(
                "put_part",
                response.status_code,
                message="Response carried no ETag header.",
                resource=resource_name,
            )

        logger.debug(
            "Uploaded part %d of %s",
            part_number,
            resource_name,
            extra={"upload_id": upload_id, "part_number": part_number},
        )
        return PartRecord(part_number=int(part_number), etag=etag)

    async def get_parts(
        self,
        resource_name: str,
        upload_id: str,
        max_parts: int | None = None,
        part_number_marker: int | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> PartListing:
        """List the parts uploaded so far.

        Implements: GET /{bucket}/{key}?uploadId=ID

        Args:
            resource_name: Object name.
            upload_id: Upload ID.
            max_parts: Page size.
            part_number_marker: List parts after this number.
            headers: Extra request headers.

        Returns:
            The parsed part listing.

        Raises:
            ProtocolError: On any status other than 200.
        """
        filename = f"{resource_name}?uploadId={_quote(upload_id)}"
        if max_parts:
            filename += f"&max-parts={int(max_parts)}"
        if part_number_marker:
            filename += f"&part-number-marker={int(part_number_marker)}"

        descriptor = self.builder.build_request("GET", filename, headers)
        response = await self.transport.send(descriptor)
        if response.status_code != 200:
            raise protocol_error("get_parts", response, resource_name)

        try:
            return parse_list_parts(response.content)
        except (ET.ParseError, ValueError):
            raise MalformedResponse("get_parts", response.status_code, resource=resource_name)

    async def complete_upload(
        self,
        resource_name: str,
        upload_id: str,
        parts: Iterable[PartRecord],
        headers: Mapping[str, str] | None = None,
    ) -> CompletedUpload:
        """Assemble the uploaded parts into the final object.

        Implements: POST /{bucket}/{key}?uploadId=ID

        Parts are sent in the order given and never re-sorted. Call this
        only once every part to be included has been acknowledged.

        Args:
            resource_name: Object name.
            upload_id: Upload ID.
            parts: Part records in assembly order.
            headers: Extra request headers.

        Returns:
            The parsed completion result.

        Raises:
            ProtocolError: On a non-200 status, or a 200 carrying an Error
                document. The upload is then in an indeterminate state.
        """
        body = render_complete_multipart_upload(parts).encode("utf-8")
        request_headers = merge_headers(
            headers or {},
            {"Content-Length": str(len(body)), "Content-Type": "text/xml"},
        )
        descriptor = self.builder.build_request(
            "POST", f"{resource_name}?uploadId={_quote(upload_id)}", request_headers
        )
        response = await self.transport.send(descriptor, content=body)
        if response.status_code != 200:
            raise protocol_error("complete_upload", response, resource_name)

        # The store may report a failed assembly inside a 200 response.
        try:
            root = parse_document(response.content)
        except ET.ParseError:
            raise MalformedResponse(
                "complete_upload", response.status_code, resource=resource_name
            )
        if local_name(root) == "Error":
            raise protocol_error("complete_upload", response, resource_name)

        result = parse_complete_result(response.content)
        logger.info(
            "Completed multipart upload for %s", resource_name, extra={"upload_id": upload_id}
        )
        return result

    async def abort_upload(
        self,
        resource_name: str,
        upload_id: str,
        headers: Mapping[str, str] | None = None,
    ) -> None:
        """Abort a multipart upload.

        Implements: DELETE /{bucket}/{key}?uploadId=ID

        Args:
            resource_name: Object name.
            upload_id: Upload ID.
            headers: Extra request headers.

        Raises:
            ProtocolError: On any status other than 200 or 204.
        """
        descriptor = self.builder.build_request(
            "DELETE", f"{resource_name}?uploadId={_quote(upload_id)}", headers
        )
        response = await self.transport.send(descriptor)
        if response.status_code not in (200, 204):
            raise protocol_error("abort_upload", response, resource_name)
        logger.info(
            "Aborted multipart upload for %s", resource_name, extra={"upload_id": upload_id}
        )

    # -- Sessions -------------------------------------------------------------

    def session(self, resource_name: str, upload_id: str = "") -> "UploadSession":
        """Wrap an upload in a session; pass ``upload_id`` to resume one."""
        return UploadSession(self, resource_name, upload_id)

    async def start(
        self, resource_name: str, headers: Mapping[str, str] | None = None
    ) -> "UploadSession":
        """Initiate an upload and return its session."""
        session = self.session(resource_name)
        await session.begin(headers)
        return session

    async def upload(
        self,
        resource_name: str,
        stream: BinaryIO,
        part_size: int = DEFAULT_PART_SIZE,
        headers: Mapping[str, str] | None = None,
    ) -> CompletedUpload:
        """Upload a binary stream as a sequence of parts.

        Parts are read and sent one at a time. If anything fails after the
        upload was initiated, the upload is aborted and the original error
        re-raised.

        Args:
            resource_name: Object name.
            stream: Readable binary stream.
            part_size: Bytes per part (the last part may be smaller).
            headers: Extra headers for the initiate request.

        Returns:
            The parsed completion result.
        """
        if part_size < 1:
            raise ValueError("part_size must be positive")

        session = await self.start(resource_name, headers)
        try:
            part_number = 1
            while True:
                chunk = stream.read(part_size)
                if not chunk and part_number > 1:
                    break
                await session.put_part(chunk, part_number)
                part_number += 1
                if len(chunk) < part_size:
                    break
            return await session.complete()
        except Exception:
            if session.state not in (UploadState.DONE, UploadState.ABORTED):
                await self._abort_quietly(session)
            raise

    async def _abort_quietly(self, session: "UploadSession") -> None:
        """Abort after a failure, logging (not raising) if that fails too."""
        try:
            await session.abort()
        except (ProtocolError, httpx.TransportError) as exc:
            logger.warning(
                "Abort of %s failed: %s",
                session.resource_name,
                exc,
                extra={"upload_id": session.upload_id},
            )


class UploadSession:
    """One multipart upload and the manifest the caller is building.

    Parts are appended in the order their uploads resolve. The session does
    not lock: parts may be uploaded concurrently, and the caller must await
    all of them before calling ``complete``.

    Attributes:
        resource_name: Object name.
        upload_id: Server-assigned upload ID ("" until initiated).
        parts: Acknowledged parts in resolution order.
        state: Current UploadState.
    """

    def __init__(self, sequencer: MultipartSequencer, resource_name: str, upload_id: str = "") -> None:
        self.sequencer = sequencer
        self.resource_name = resource_name
        self.upload_id = upload_id
        self.parts: list[PartRecord] = []
        self.state = UploadState.INITIATED if upload_id else UploadState.NOT_STARTED

    async def begin(self, headers: Mapping[str, str] | None = None) -> str:
        self.upload_id = await self.sequencer.begin(self.resource_name, headers)
        self.state = UploadState.INITIATED
        return self.upload_id

    async def put_part(self, buffer: bytes, part_number: int) -> PartRecord:
        self.state = UploadState.PARTS_IN_FLIGHT
        record = await self.sequencer.put_part(
            self.resource_name, buffer, part_number, self.upload_id
        )
        self.parts.append(record)
        return record

    async def list_parts(self, **kwargs) -> PartListing:
        return await self.sequencer.get_parts(self.resource_name, self.upload_id, **kwargs)

    async def complete(
        self,
        parts: Iterable[PartRecord] | None = None,
        headers: Mapping[str, str] | None = None,
    ) -> CompletedUpload:
        """Complete the upload with ``parts`` (default: every acknowledged part)."""
        self.state = UploadState.COMPLETING
        try:
            result = await self.sequencer.complete_upload(
                self.resource_name,
                self.upload_id,
                list(self.parts if parts is None else parts),
                headers,
            )
        except Exception:
            self.state = UploadState.FAILED
            metrics.record_multipart("failed")
            raise
        self.state = UploadState.DONE
        metrics.record_multipart("completed")
        return result

    async def abort(self, headers: Mapping[str, str] | None = None) -> None:
        self.state = UploadState.ABORTING
        try:
            await self.sequencer.abort_upload(self.resource_name, self.upload_id, headers)
        except Exception:
            self.state = UploadState.FAILED
            raise
        self.state = UploadState.ABORTED
        metrics.record_multipart("aborted")
