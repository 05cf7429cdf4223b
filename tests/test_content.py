"""Tests for the content delivery primitives."""

import io
from datetime import UTC, datetime
from unittest import mock

import pytest
from aiohttp.test_utils import make_mocked_request
from manofwar.core.content import (
    CHUNK_SIZE,
    ByteRange,
    RangeNotSatisfiableError,
    compute_etag,
    resolve_range,
    serve_content,
)


def _range_request(value: str) -> object:
    return make_mocked_request("GET", "/media/test.txt", headers={"Range": value})


class TestResolveRange:
    """Tests for resolve_range()."""

    def test__no_range_header__returns_none(self) -> None:
        """Requests without Range get the full content."""
        request = make_mocked_request("GET", "/media/test.txt")

        assert resolve_range(request, 11) is None

    def test__closed_range__returns_slice(self) -> None:
        """bytes=0-4 selects the first five bytes."""
        result = resolve_range(_range_request("bytes=0-4"), 11)

        assert result == ByteRange(start=0, length=5)
        assert result.content_range(11) == "bytes 0-4/11"

    def test__open_range__extends_to_end(self) -> None:
        """bytes=6- selects everything from offset 6."""
        result = resolve_range(_range_request("bytes=6-"), 11)

        assert result == ByteRange(start=6, length=5)
        assert result.end == 10

    def test__suffix_range__selects_tail(self) -> None:
        """bytes=-5 selects the last five bytes."""
        result = resolve_range(_range_request("bytes=-5"), 11)

        assert result == ByteRange(start=6, length=5)

    def test__suffix_longer_than_content__selects_everything(self) -> None:
        """A suffix longer than the content covers all of it."""
        result = resolve_range(_range_request("bytes=-100"), 11)

        assert result == ByteRange(start=0, length=11)

    def test__end_past_content__is_clamped(self) -> None:
        """An end offset past the content is clamped to the last byte."""
        result = resolve_range(_range_request("bytes=5-200"), 11)

        assert result == ByteRange(start=5, length=6)
        assert result.content_range(11) == "bytes 5-10/11"

    def test__start_past_content__raises_not_satisfiable(self) -> None:
        """A start at or past the end cannot be satisfied."""
        with pytest.raises(RangeNotSatisfiableError):
            resolve_range(_range_request("bytes=100-200"), 11)

    def test__start_equal_to_size__raises_not_satisfiable(self) -> None:
        """The first offset past the last byte is out of range."""
        with pytest.raises(RangeNotSatisfiableError):
            resolve_range(_range_request("bytes=11-"), 11)

    def test__empty_content__raises_not_satisfiable(self) -> None:
        """No range is satisfiable against empty content."""
        with pytest.raises(RangeNotSatisfiableError):
            resolve_range(_range_request("bytes=0-0"), 0)

    @pytest.mark.parametrize("value", ["bytes=4-2", "bytes=abc", "bytes=-"])
    def test__malformed_range__raises_not_satisfiable(self, value: str) -> None:
        """Malformed range headers are rejected."""
        with pytest.raises(RangeNotSatisfiableError):
            resolve_range(_range_request(value), 11)

    @pytest.mark.parametrize("value", ["bytes=0-1,4-5", "bytes=0-1, -3"])
    def test__multiple_ranges__returns_none(self, value: str) -> None:
        """Multiple ranges fall back to the full content."""
        assert resolve_range(_range_request(value), 11) is None

    def test__other_unit__returns_none(self) -> None:
        """Ranges in units other than bytes are ignored."""
        assert resolve_range(_range_request("items=0-4"), 11) is None


class TestComputeEtag:
    """Tests for compute_etag()."""

    def test__same_inputs__returns_same_tag(self) -> None:
        """ETag is stable for unchanged content."""
        modified = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)

        assert compute_etag(modified, 11) == compute_etag(modified, 11)

    def test__changed_mtime_or_size__returns_different_tag(self) -> None:
        """ETag changes with modification time or size."""
        modified = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)
        later = datetime(2024, 5, 1, 12, 0, 1, tzinfo=UTC)

        assert compute_etag(modified, 11) != compute_etag(later, 11)
        assert compute_etag(modified, 11) != compute_etag(modified, 12)


class TestServeContentDisconnect:
    """Tests for serve_content() when the client goes away."""

    @pytest.mark.asyncio
    async def test__client_disconnect__stops_reading(self) -> None:
        """Stop reading from the stream once a write fails."""
        writer = mock.Mock()
        writer.write_headers = mock.AsyncMock()
        writer.write = mock.AsyncMock(side_effect=ConnectionResetError)
        writer.write_eof = mock.AsyncMock()
        writer.drain = mock.AsyncMock()
        request = make_mocked_request("GET", "/media/big.bin", writer=writer)

        fobj = io.BytesIO(b"x" * (CHUNK_SIZE * 4))
        modified = datetime(2024, 5, 1, 12, 0, 0, tzinfo=UTC)

        response = await serve_content(request, "big.bin", modified, fobj)

        assert response.status == 200
        assert writer.write.await_count == 1
        assert fobj.tell() == CHUNK_SIZE
        assert not fobj.closed
