"""Tests for multipart XML rendering and response parsing."""

import xml.etree.ElementTree as ET

import pytest

from bleepclient.xml_utils import (
    PartRecord,
    parse_complete_result,
    parse_error,
    parse_list_parts,
    parse_upload_id,
    render_complete_multipart_upload,
    strip_etag,
)

NS = "http://s3.amazonaws.com/doc/2006-03-01/"


class TestRenderCompleteMultipartUpload:
    """Tests for render_complete_multipart_upload()."""

    def test_single_part_exact_bytes(self):
        body = render_complete_multipart_upload([PartRecord(1, "abc123")])
        assert body == (
            "<CompleteMultipartUpload>"
            '<Part><PartNumber>1</PartNumber><ETag>"abc123"</ETag></Part>'
            "</CompleteMultipartUpload>"
        )

    def test_order_preserved(self):
        """Parts are listed in the order given, not sorted by number."""
        body = render_complete_multipart_upload(
            [PartRecord(3, "c"), PartRecord(1, "a"), PartRecord(2, "b")]
        )
        root = ET.fromstring(body)
        numbers = [p.findtext("PartNumber") for p in root.findall("Part")]
        assert numbers == ["3", "1", "2"]

    def test_quoted_etag_not_double_quoted(self):
        body = render_complete_multipart_upload([PartRecord(1, '"abc"')])
        assert '<ETag>"abc"</ETag>' in body

    def test_etag_escaped(self):
        body = render_complete_multipart_upload([PartRecord(1, "a&b")])
        assert "<ETag>\"a&amp;b\"</ETag>" in body

    def test_empty_manifest(self):
        assert render_complete_multipart_upload([]) == (
            "<CompleteMultipartUpload></CompleteMultipartUpload>"
        )


class TestStripEtag:
    def test_quoted(self):
        assert strip_etag('"abc"') == "abc"

    def test_unquoted(self):
        assert strip_etag("abc") == "abc"

    def test_lone_quote(self):
        assert strip_etag('"') == '"'


class TestParseUploadId:
    """Tests for parse_upload_id()."""

    def test_namespaced(self):
        body = (
            f'<InitiateMultipartUploadResult xmlns="{NS}">'
            "<Bucket>misc</Bucket><Key>a</Key><UploadId>VXBsb2FkSUQ</UploadId>"
            "</InitiateMultipartUploadResult>"
        )
        assert parse_upload_id(body) == "VXBsb2FkSUQ"

    def test_without_namespace(self):
        body = "<InitiateMultipartUploadResult><UploadId>x1</UploadId></InitiateMultipartUploadResult>"
        assert parse_upload_id(body.encode()) == "x1"

    def test_missing_upload_id(self):
        assert parse_upload_id("<InitiateMultipartUploadResult/>") == ""

    def test_not_xml(self):
        with pytest.raises(ET.ParseError):
            parse_upload_id(b"not xml")


class TestParseError:
    """Tests for parse_error()."""

    def test_error_document(self):
        err = parse_error(
            b"<Error><Code>NoSuchUpload</Code><Message>gone</Message></Error>"
        )
        assert err is not None
        assert err.code == "NoSuchUpload"
        assert err.message == "gone"

    def test_other_document(self):
        assert parse_error(b"<ListPartsResult/>") is None

    def test_empty_body(self):
        assert parse_error(b"") is None

    def test_not_xml(self):
        assert parse_error(b"<html>oops") is None


class TestParseCompleteResult:
    def test_fields(self):
        body = (
            f'<CompleteMultipartUploadResult xmlns="{NS}">'
            "<Location>http://s3.amazonaws.com/misc/a</Location>"
            "<Bucket>misc</Bucket><Key>a</Key><ETag>&quot;abc-2&quot;</ETag>"
            "</CompleteMultipartUploadResult>"
        )
        result = parse_complete_result(body)
        assert result.location == "http://s3.amazonaws.com/misc/a"
        assert result.bucket == "misc"
        assert result.key == "a"
        assert result.etag == "abc-2"


class TestParseListParts:
    """Tests for parse_list_parts()."""

    def test_parts_and_paging(self):
        body = (
            f'<ListPartsResult xmlns="{NS}">'
            "<Bucket>misc</Bucket><Key>a</Key><UploadId>u1</UploadId>"
            "<NextPartNumberMarker>2</NextPartNumberMarker><MaxParts>2</MaxParts>"
            "<IsTruncated>true</IsTruncated>"
            "<Part><PartNumber>1</PartNumber><ETag>&quot;e1&quot;</ETag><Size>5</Size>"
            "<LastModified>2026-01-01T00:00:00.000Z</LastModified></Part>"
            "<Part><PartNumber>2</PartNumber><ETag>&quot;e2&quot;</ETag><Size>7</Size></Part>"
            "</ListPartsResult>"
        )
        listing = parse_list_parts(body)
        assert listing.upload_id == "u1"
        assert listing.is_truncated is True
        assert listing.next_part_number_marker == 2
        assert listing.max_parts == 2
        assert [(p.part_number, p.etag, p.size) for p in listing.parts] == [
            (1, "e1", 5),
            (2, "e2", 7),
        ]
        assert listing.parts[0].last_modified == "2026-01-01T00:00:00.000Z"

    def test_empty_listing(self):
        listing = parse_list_parts("<ListPartsResult><IsTruncated>false</IsTruncated></ListPartsResult>")
        assert listing.parts == []
        assert listing.is_truncated is False
        assert listing.next_part_number_marker is None
