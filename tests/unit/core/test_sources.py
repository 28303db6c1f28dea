"""Unit tests for bamtail.core.sources module."""

import httpx
import pytest
from create_fixtures import bgzf_block, eof_block

from bamtail.core.bgzf import BGZFReader
from bamtail.core.errors import SourceError
from bamtail.core.sources import BytesSource, FileSource, HttpSource, open_source

URL = "https://example.com/data/sample.bam"


class TestBytesSource:
    """Tests for the in-memory source."""

    @pytest.mark.unit
    def test_read_at(self):
        source = BytesSource(b"0123456789")
        assert source.size == 10
        assert source.read_at(2, 3) == b"234"

    @pytest.mark.unit
    def test_short_read_near_end(self):
        assert BytesSource(b"0123").read_at(2, 10) == b"23"

    @pytest.mark.unit
    def test_read_past_end(self):
        assert BytesSource(b"0123").read_at(10, 2) == b""


class TestFileSource:
    """Tests for the local file source."""

    @pytest.mark.unit
    def test_read_at(self, tmp_path):
        path = tmp_path / "data.bin"
        path.write_bytes(b"abcdefgh")
        with FileSource(path) as source:
            assert source.size == 8
            assert source.read_at(4, 2) == b"ef"
            assert source.read_at(6, 10) == b"gh"
            assert source.read_at(8, 1) == b""

    @pytest.mark.unit
    def test_missing_file(self, tmp_path):
        with pytest.raises(SourceError, match="Cannot open"):
            FileSource(tmp_path / "missing.bam")

    @pytest.mark.unit
    def test_open_source_local(self, tmp_path):
        path = tmp_path / "x.bam"
        path.write_bytes(b"x")
        with open_source(str(path)) as source:
            assert isinstance(source, FileSource)


class TestHttpSource:
    """Tests for the HTTP range-request source."""

    @pytest.mark.unit
    def test_size_from_head(self, httpx_mock):
        httpx_mock.add_response(method="HEAD", url=URL, headers={"Content-Length": "1234"})
        with HttpSource(URL) as source:
            assert source.size == 1234

    @pytest.mark.unit
    def test_range_request(self, httpx_mock):
        httpx_mock.add_response(method="HEAD", url=URL, headers={"Content-Length": "100"})
        httpx_mock.add_response(method="GET", url=URL, status_code=206, content=b"xyz")

        with HttpSource(URL) as source:
            assert source.read_at(10, 3) == b"xyz"

        get = httpx_mock.get_requests(method="GET")[0]
        assert get.headers["Range"] == "bytes=10-12"

    @pytest.mark.unit
    def test_range_clamped_to_size(self, httpx_mock):
        httpx_mock.add_response(method="HEAD", url=URL, headers={"Content-Length": "20"})
        httpx_mock.add_response(method="GET", url=URL, status_code=206, content=b"ab")

        with HttpSource(URL) as source:
            source.read_at(18, 50)

        assert httpx_mock.get_requests(method="GET")[0].headers["Range"] == "bytes=18-19"

    @pytest.mark.unit
    def test_range_ignored_by_server(self, httpx_mock):
        body = b"0123456789"
        httpx_mock.add_response(method="HEAD", url=URL, headers={"Content-Length": "10"})
        httpx_mock.add_response(method="GET", url=URL, status_code=200, content=body)

        with HttpSource(URL) as source:
            assert source.read_at(3, 4) == b"3456"

    @pytest.mark.unit
    def test_error_status(self, httpx_mock):
        httpx_mock.add_response(method="HEAD", url=URL, headers={"Content-Length": "10"})
        httpx_mock.add_response(method="GET", url=URL, status_code=403)

        with HttpSource(URL) as source, pytest.raises(SourceError, match="HTTP 403"):
            source.read_at(0, 4)

    @pytest.mark.unit
    def test_head_failure(self, httpx_mock):
        httpx_mock.add_response(method="HEAD", url=URL, status_code=404)
        with HttpSource(URL) as source, pytest.raises(SourceError, match="HEAD"):
            _ = source.size

    @pytest.mark.unit
    def test_network_error(self, httpx_mock):
        httpx_mock.add_response(method="HEAD", url=URL, headers={"Content-Length": "10"})
        httpx_mock.add_exception(httpx.ConnectError("connection refused"), method="GET")

        with HttpSource(URL) as source, pytest.raises(SourceError, match="failed"):
            source.read_at(0, 4)

    @pytest.mark.unit
    def test_block_reader_over_http(self, httpx_mock):
        data = bgzf_block(b"remote payload") + eof_block()
        httpx_mock.add_response(
            method="HEAD", url=URL, headers={"Content-Length": str(len(data))}
        )
        # Header then full block for the data block, header only for EOF
        block_size = len(data) - len(eof_block())
        for content in (data[:18], data[:block_size], data[block_size : block_size + 18]):
            httpx_mock.add_response(method="GET", url=URL, status_code=206, content=content)

        with HttpSource(URL) as source:
            assert BGZFReader(source).read_from(0) == b"remote payload"

    @pytest.mark.unit
    def test_open_source_remote(self):
        source = open_source(URL)
        try:
            assert isinstance(source, HttpSource)
        finally:
            source.close()
