"""Tests for the Client facade: construction, object operations and URLs."""

import hashlib

import httpx
import pytest

from bleepclient import create_client
from bleepclient.client import Client, FileInfo
from bleepclient.config import BucketConfig, ClientConfig, Credentials
from bleepclient.errors import ConfigurationError
from bleepclient.transport import HttpxTransport
from conftest import ACCESS_KEY, BUCKET


class TestConstruction:
    """Required options and defaults."""

    @pytest.mark.parametrize("missing", ["access_key", "secret_key", "bucket"])
    def test_missing_option_raises(self, missing):
        options = {"access_key": "AKID", "secret_key": "secret", "bucket": "misc"}
        options[missing] = ""
        with pytest.raises(ConfigurationError) as exc_info:
            Client(**options)
        assert exc_info.value.field == missing
        assert missing in str(exc_info.value)

    def test_defaults(self):
        c = create_client(access_key="AKID", secret_key="secret", bucket="misc")
        assert c.key == "AKID"
        assert c.bucket == "misc"
        assert c.endpoint == "s3.amazonaws.com"
        assert c.port == 80

    def test_secure_defaults_port_443(self):
        c = Client(access_key="AKID", secret_key="secret", bucket="misc", secure=True)
        assert c.port == 443
        assert c.builder.build_request("GET", "/a").target == "https://s3.amazonaws.com:443/misc/a"
        assert c.url("/a") == "https://s3.amazonaws.com/misc/a"

    def test_secure_explicit_port_kept(self):
        c = Client(access_key="AKID", secret_key="secret", bucket="misc", secure=True, port=8443)
        assert c.port == 8443
        assert c.url("/a") == "https://s3.amazonaws.com:8443/misc/a"

    def test_secret_not_in_repr(self):
        c = Client(access_key="AKID", secret_key="topsecret", bucket="misc")
        assert "topsecret" not in repr(c.credentials)

    def test_from_config(self):
        config = ClientConfig(
            credentials=Credentials(access_key="AKID", secret_key="secret"),
            bucket=BucketConfig(endpoint="localhost", bucket="misc", port=9000),
        )
        c = Client.from_config(config)
        assert c.endpoint == "localhost"
        assert c.port == 9000
        assert c.url("/a") == "http://localhost:9000/misc/a"

    def test_from_config_missing_bucket(self):
        config = ClientConfig(credentials=Credentials(access_key="AKID", secret_key="secret"))
        with pytest.raises(ConfigurationError) as exc_info:
            Client.from_config(config)
        assert exc_info.value.field == "bucket"


class TestRawOperations:
    """put/get/head/delete return the response whatever its status."""

    async def test_put_then_get(self, client):
        put = await client.put("/test/hello.txt", b"hi there", {"Content-Type": "text/plain"})
        assert put.status_code == 200
        assert put.headers["etag"] == f'"{hashlib.md5(b"hi there").hexdigest()}"'

        response = await client.get("/test/hello.txt")
        try:
            assert response.status_code == 200
            assert await response.aread() == b"hi there"
            assert response.headers["content-type"].startswith("text/plain")
        finally:
            await response.aclose()

    async def test_put_defaults_public_read(self, client, fake_s3):
        await client.put("/a.txt", b"x")
        assert fake_s3.state.objects["a.txt"]["acl"] == "public-read"
        assert fake_s3.state.requests[-1]["headers"]["expect"] == "100-continue"

    async def test_put_acl_override(self, client, fake_s3):
        await client.put("/a.txt", b"x", {"x-amz-acl": "private"})
        assert fake_s3.state.objects["a.txt"]["acl"] == "private"

    async def test_get_missing_returns_404(self, client):
        response = await client.get("/nope.txt")
        try:
            assert response.status_code == 404
        finally:
            await response.aclose()

    async def test_head(self, client):
        await client.put("/a.txt", b"12345")
        response = await client.head("/a.txt")
        assert response.status_code == 200
        assert response.headers["content-length"] == "5"

    async def test_delete(self, client, fake_s3):
        await client.put("/a.txt", b"x")
        response = await client.delete("/a.txt")
        assert response.status_code == 204
        assert "a.txt" not in fake_s3.state.objects

    async def test_wrong_secret_rejected(self, http_client):
        """The fake store checks signatures; a bad secret gets a 403."""
        c = Client(
            access_key=ACCESS_KEY,
            secret_key="wrong",
            bucket=BUCKET,
            transport=HttpxTransport(client=http_client),
        )
        response = await c.head("/a.txt")
        assert response.status_code == 403

    async def test_vendor_headers_signed(self, client, fake_s3):
        response = await client.put(
            "/a.txt", b"x", {"x-amz-meta-owner": "alice", "X-Amz-Meta-Team": "storage"}
        )
        assert response.status_code == 200

    async def test_encoded_sub_resource_values_signed_decoded(self, client, fake_s3):
        """Escaped versionId and response-* values still verify server-side."""
        await client.put("/k.txt", b"x")
        response = await client.get(
            "/k.txt?versionId=3HL4kq%2BrmS%2FpX&response-content-type=text%2Fplain"
        )
        try:
            assert response.status_code == 200
        finally:
            await response.aclose()
        assert fake_s3.state.requests[-1]["query"] == (
            "versionId=3HL4kq%2BrmS%2FpX&response-content-type=text%2Fplain"
        )

    async def test_key_with_space(self, client, fake_s3):
        response = await client.put("/my file.txt", b"x")
        assert response.status_code == 200
        assert "my file.txt" in fake_s3.state.objects


class TestFileOperations:
    """put_file, put_stream, get_file and file_info."""

    async def test_put_file(self, client, fake_s3, tmp_path):
        src = tmp_path / "package.json"
        src.write_bytes(b'{"name": "x"}')

        response = await client.put_file(src, "/test/package.json")
        assert response.status_code == 200

        stored = fake_s3.state.objects["test/package.json"]
        assert stored["body"] == b'{"name": "x"}'
        assert stored["content_type"] == "application/json"
        sent = fake_s3.state.requests[-1]["headers"]
        assert sent["content-length"] == "13"
        assert sent["content-md5"]

    async def test_put_file_header_override(self, client, fake_s3, tmp_path):
        src = tmp_path / "data.bin"
        src.write_bytes(b"abc")
        await client.put_file(src, "/data.bin", {"Content-Type": "text/plain"})
        assert fake_s3.state.objects["data.bin"]["content_type"] == "text/plain"

    async def test_put_stream(self, client, fake_s3, tmp_path):
        data = b"z" * (200 * 1024 + 7)
        src = tmp_path / "big.txt"
        src.write_bytes(data)

        with open(src, "rb") as fh:
            response = await client.put_stream(fh, "/big.txt")
        assert response.status_code == 200

        stored = fake_s3.state.objects["big.txt"]
        assert stored["body"] == data
        assert stored["content_type"] == "text/plain"

    async def test_get_file(self, client, tmp_path):
        await client.put("/test/user.json", b'{"id": 1}')
        dest = tmp_path / "user.json"

        response = await client.get_file("/test/user.json", dest)
        assert response.status_code == 200
        assert dest.read_bytes() == b'{"id": 1}'

    async def test_get_file_missing_does_not_write(self, client, tmp_path):
        dest = tmp_path / "missing.json"
        response = await client.get_file("/missing.json", dest)
        assert response.status_code == 404
        assert not dest.exists()

    async def test_file_info(self, client):
        await client.put("/a.txt", b"12345")
        info = await client.file_info("/a.txt")
        assert isinstance(info, FileInfo)
        assert info.etag == hashlib.md5(b"12345").hexdigest()
        assert info.size == 5
        assert info.modified

    async def test_file_info_missing(self, client):
        assert await client.file_info("/nope.txt") is None


class TestUrls:
    """URL helpers, including a presigned GET against the fake store."""

    def test_url(self, client):
        assert client.url("/test/user.json") == "http://s3.amazonaws.com/misc/test/user.json"

    def test_https_url(self, client):
        assert client.https_url("/test/user.json") == (
            "https://s3.amazonaws.com/misc/test/user.json"
        )

    async def test_signed_url_accepted(self, client, http_client):
        await client.put("/test/user.json", b'{"id": 1}')
        url = client.signed_url("/test/user.json", 4102444800)

        response = await http_client.get(url)
        assert response.status_code == 200
        assert response.content == b'{"id": 1}'

    async def test_tampered_signed_url_rejected(self, client, http_client):
        await client.put("/test/user.json", b"x")
        url = client.signed_url("/test/user.json", 4102444800).replace(
            "Expires=4102444800", "Expires=4102444801"
        )
        response = await http_client.get(url)
        assert response.status_code == 403


class TestContextManager:
    async def test_closes_owned_transport(self):
        async with Client(access_key="AKID", secret_key="secret", bucket="misc") as c:
            http = c.transport.client
        assert http.is_closed

    async def test_injected_client_left_open(self):
        http = httpx.AsyncClient()
        async with Client(
            access_key="AKID", secret_key="secret", bucket="misc", transport=HttpxTransport(http)
        ):
            pass
        assert not http.is_closed
        await http.aclose()
