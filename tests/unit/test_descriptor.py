"""
Unit tests for resource descriptors, media types and request validators.
"""

import hashlib
import io
import os
from dataclasses import FrozenInstanceError
from datetime import datetime, timedelta, timezone

import pytest

from downloadserver.delivery import (
    MediaType,
    RequestValidators,
    ResourceDescriptor,
    describe_file,
    hash_stream,
)
from downloadserver.http.request import parse_request


class CountingReader(io.BytesIO):
    """BytesIO that records the size of every readinto()."""

    def __init__(self, data: bytes):
        super().__init__(data)
        self.reads = []

    def readinto(self, buffer):
        self.reads.append(len(buffer))
        return super().readinto(buffer)


class TestResourceDescriptor:

    def test_etag_is_quoted_hash(self):
        descriptor = ResourceDescriptor("x", 1, "a.bin", "beef", datetime(2024, 1, 1, tzinfo=timezone.utc))

        assert descriptor.etag == '"beef"'

    def test_last_modified_normalized(self):
        local = timezone(timedelta(hours=2))
        descriptor = ResourceDescriptor(
            "x", 1, "a.bin", "beef", datetime(2024, 1, 1, 12, 0, 0, 750_000, tzinfo=local)
        )

        assert descriptor.last_modified == datetime(2024, 1, 1, 10, 0, 0, tzinfo=timezone.utc)

    def test_naive_time_taken_as_utc(self):
        descriptor = ResourceDescriptor("x", 1, "a.bin", "beef", datetime(2024, 1, 1, 10, 0, 0))

        assert descriptor.last_modified.tzinfo == timezone.utc

    def test_immutable(self):
        descriptor = ResourceDescriptor("x", 1, "a.bin", "beef", datetime(2024, 1, 1, tzinfo=timezone.utc))

        with pytest.raises(FrozenInstanceError):
            descriptor.size = 2

    def test_rejects_invalid_values(self):
        now = datetime.now(timezone.utc)

        with pytest.raises(ValueError):
            ResourceDescriptor("x", -1, "a.bin", "beef", now)
        with pytest.raises(ValueError):
            ResourceDescriptor("x", 1, "a.bin", "", now)


class TestHashing:

    def test_hash_stream_matches_sha512(self):
        data = os.urandom(200_000)

        digest, size = hash_stream(io.BytesIO(data), chunk_size=4096)

        assert digest == hashlib.sha512(data).hexdigest()
        assert size == len(data)

    def test_hash_stream_reads_in_chunks(self):
        reader = CountingReader(b"x" * 10_000)

        hash_stream(reader, chunk_size=1024)

        assert max(reader.reads) == 1024
        assert len(reader.reads) > 1

    def test_describe_file(self, tmp_path):
        path = tmp_path / "notes.txt"
        path.write_bytes(b"foobar")
        mtime = datetime(2024, 6, 10, 10, 55, 36, tzinfo=timezone.utc).timestamp() + 0.5
        os.utime(path, (mtime, mtime))

        descriptor = describe_file("id-1", path, chunk_size=2)

        assert descriptor.id == "id-1"
        assert descriptor.size == 6
        assert descriptor.original_name == "notes.txt"
        assert descriptor.content_hash == hashlib.sha512(b"foobar").hexdigest()
        assert descriptor.last_modified == datetime(2024, 6, 10, 10, 55, 36, tzinfo=timezone.utc)
        assert str(descriptor.media_type) == "text/plain; charset=utf-8"

    def test_describe_file_unknown_extension(self, tmp_path):
        path = tmp_path / "blob.zzqq"
        path.write_bytes(b"\x00\x01")

        assert describe_file("id-2", path).media_type is None


class TestMediaType:

    def test_parse(self):
        media_type = MediaType.parse("Text/HTML; charset=UTF-8; q=1")

        assert media_type == MediaType("text", "html", "UTF-8")
        assert str(media_type) == "text/html; charset=UTF-8"

    def test_parse_invalid(self):
        assert MediaType.parse("") is None
        assert MediaType.parse(None) is None
        assert MediaType.parse("not a media type") is None
        assert MediaType.parse("text/") is None

    def test_guess(self):
        assert MediaType.guess("report.pdf") == MediaType("application", "pdf")
        assert MediaType.guess("README") is None

    def test_guess_adds_charset_to_text_like_types(self):
        assert str(MediaType.guess("notes.txt")) == "text/plain; charset=utf-8"
        assert str(MediaType.guess("data.json")) == "application/json; charset=utf-8"
        assert str(MediaType.guess("logo.png")) == "image/png"


class TestRequestValidators:

    def test_from_request(self, sample_conditional_request: bytes):
        validators = RequestValidators.from_request(parse_request(sample_conditional_request))

        assert validators.method == "GET"
        assert validators.if_none_match == '"abc"'
        assert validators.if_modified_since == datetime(2024, 6, 10, 10, 55, 36, tzinfo=timezone.utc)

    def test_malformed_date_is_absent(self):
        request = parse_request(b"HEAD / HTTP/1.1\r\nIf-Modified-Since: last tuesday\r\n\r\n")

        validators = RequestValidators.from_request(request)

        assert validators.method == "HEAD"
        assert validators.if_modified_since is None

    def test_empty_if_none_match_is_absent(self):
        request = parse_request(b"GET / HTTP/1.1\r\nIf-None-Match: \r\n\r\n")

        assert RequestValidators.from_request(request).if_none_match is None
