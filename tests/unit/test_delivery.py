"""
Unit tests for DeliveryHandler, driven through a Router.
"""

import hashlib
import io
from datetime import datetime, timedelta, timezone

import pytest

from downloadserver.delivery import DeliveryHandler
from downloadserver.delivery import descriptor as descriptor_module
from downloadserver.http import HTTPRequest, HTTPStatus, Router, format_http_date
from downloadserver.storage import FileSystemStorage, MemoryStorage, StoredFile, file_id_for
from downloadserver.throttling import ThrottledByteSource, ThrottlePolicy


FOOBAR_ID = "foo"
FOOBAR_NAME = "foo.txt"
FOOBAR_CONTENT = b"foobar"
FOOBAR_MTIME = datetime(2024, 6, 10, 10, 55, 36, tzinfo=timezone.utc)
FOOBAR_ETAG = '"' + hashlib.sha512(FOOBAR_CONTENT).hexdigest() + '"'
FOOBAR_LAST_MODIFIED = format_http_date(FOOBAR_MTIME)


def make_request(method: str, path: str, **headers: str) -> HTTPRequest:
    return HTTPRequest(
        method=method,
        path=path,
        headers={name.replace("_", "-").lower(): value for name, value in headers.items()},
    )


def drain(response) -> bytes:
    """Read a streamed body to the end and close it."""
    with response.stream as stream:
        return b"".join(stream.iter_chunks(4))


@pytest.fixture
def delivery(storage: MemoryStorage) -> DeliveryHandler:
    return DeliveryHandler(storage, throttle=ThrottlePolicy(None))


@pytest.fixture
def router(delivery: DeliveryHandler) -> Router:
    router = Router()
    delivery.register(router)
    return router


class TestFoobarScenario:
    """The canonical walk-through: 200, then 304, then 301."""

    def test_get_serves_body_and_validators(self, router):
        response = router.handle(make_request("GET", "/download/foo/foo.txt"))

        assert response.status == HTTPStatus.OK
        assert response.headers["ETag"] == FOOBAR_ETAG
        assert response.headers["Last-Modified"] == FOOBAR_LAST_MODIFIED
        assert response.headers["Content-Length"] == "6"
        assert response.headers["Content-Type"] == "text/plain; charset=utf-8"
        assert drain(response) == b"foobar"

    def test_if_none_match_gives_304(self, router):
        response = router.handle(
            make_request("GET", "/download/foo/foo.txt", if_none_match=FOOBAR_ETAG)
        )

        assert response.status == HTTPStatus.NOT_MODIFIED
        assert response.body == b""
        assert not response.is_streaming
        assert response.headers["ETag"] == FOOBAR_ETAG
        assert response.headers["Last-Modified"] == FOOBAR_LAST_MODIFIED
        assert "Content-Length" not in response.headers

    def test_by_id_redirects(self, router):
        response = router.handle(make_request("GET", "/download/foo"))

        assert response.status == HTTPStatus.MOVED_PERMANENTLY
        assert response.headers["Location"] == "/download/foo/foo.txt"
        assert not response.is_streaming


class TestConditional:

    @pytest.mark.parametrize("path", ["/download/foo", "/download/foo/foo.txt"])
    def test_304_from_both_entry_points(self, router, path):
        response = router.handle(make_request("GET", path, if_none_match=FOOBAR_ETAG))

        assert response.status == HTTPStatus.NOT_MODIFIED
        assert "Location" not in response.headers

    @pytest.mark.parametrize("path", ["/download/foo", "/download/foo/foo.txt"])
    def test_if_modified_since_equal_gives_304(self, router, path):
        response = router.handle(
            make_request("HEAD", path, if_modified_since=FOOBAR_LAST_MODIFIED)
        )

        assert response.status == HTTPStatus.NOT_MODIFIED

    def test_if_modified_since_before_proceeds(self, router):
        earlier = format_http_date(FOOBAR_MTIME - timedelta(seconds=1))

        response = router.handle(
            make_request("GET", "/download/foo/foo.txt", if_modified_since=earlier)
        )

        assert response.status == HTTPStatus.OK
        response.discard_stream()

    def test_malformed_date_is_ignored(self, router):
        response = router.handle(
            make_request("GET", "/download/foo/foo.txt", if_modified_since="not a date")
        )

        assert response.status == HTTPStatus.OK
        response.discard_stream()

    def test_stale_etag_with_fresh_date(self, router):
        response = router.handle(
            make_request(
                "GET",
                "/download/foo",
                if_none_match='"stale"',
                if_modified_since=FOOBAR_LAST_MODIFIED,
            )
        )

        assert response.status == HTTPStatus.NOT_MODIFIED


class TestHead:

    def test_head_matches_get_headers(self, router):
        get = router.handle(make_request("GET", "/download/foo/foo.txt"))
        head = router.handle(make_request("HEAD", "/download/foo/foo.txt"))
        get.discard_stream()

        assert head.status == HTTPStatus.OK
        assert head.body == b""
        assert not head.is_streaming
        for name in ("Content-Length", "ETag", "Last-Modified", "Content-Type"):
            assert head.headers[name] == get.headers[name]

    def test_head_never_opens_the_file(self):
        opened = []
        storage = MemoryStorage()
        descriptor = storage.add("x", "x.bin", b"abc")

        class Spy:
            def find_file(self, file_id):
                def opener():
                    opened.append(file_id)
                    return io.BytesIO(b"abc")
                return StoredFile(descriptor=descriptor, open=opener)

        router = Router()
        DeliveryHandler(Spy()).register(router)

        response = router.handle(make_request("HEAD", "/download/x/x.bin"))

        assert response.status == HTTPStatus.OK
        assert opened == []

    def test_head_on_disk_reads_no_body(self, tmp_path, monkeypatch):
        (tmp_path / "big.bin").write_bytes(b"\x07" * 300_000)
        storage = FileSystemStorage(tmp_path)
        file_id = file_id_for("big.bin")

        hashed = []
        monkeypatch.setattr(descriptor_module, "hash_stream", lambda *args: hashed.append(args))

        router = Router()
        DeliveryHandler(storage).register(router)
        response = router.handle(make_request("HEAD", f"/download/{file_id}/big.bin"))

        assert response.status == HTTPStatus.OK
        assert response.headers["Content-Length"] == "300000"
        assert not response.is_streaming
        assert hashed == []

    def test_head_by_id_redirects(self, router):
        response = router.handle(make_request("HEAD", "/download/foo"))

        assert response.status == HTTPStatus.MOVED_PERMANENTLY


class TestNotFound:

    @pytest.mark.parametrize("method", ["GET", "HEAD"])
    @pytest.mark.parametrize("path", ["/download/nope", "/download/nope/foo.txt"])
    def test_unknown_id(self, router, method, path):
        response = router.handle(make_request(method, path, if_none_match=FOOBAR_ETAG))

        assert response.status == HTTPStatus.NOT_FOUND
        assert response.body == b""
        assert not response.is_streaming


class TestServe:

    def test_name_segment_is_cosmetic(self, router):
        response = router.handle(make_request("GET", "/download/foo/anything-else.bin"))

        assert response.status == HTTPStatus.OK
        assert drain(response) == b"foobar"

    def test_stream_is_throttled(self, storage):
        delivery = DeliveryHandler(storage, throttle=ThrottlePolicy(1024))
        router = Router()
        delivery.register(router)

        response = router.handle(make_request("GET", "/download/foo/foo.txt"))

        assert isinstance(response.stream, ThrottledByteSource)
        assert response.stream.remaining() == 6
        response.discard_stream()

    def test_each_get_opens_a_fresh_stream(self, router):
        first = router.handle(make_request("GET", "/download/foo/foo.txt"))
        second = router.handle(make_request("GET", "/download/foo/foo.txt"))

        assert first.stream is not second.stream
        assert drain(first) == drain(second) == b"foobar"

    def test_open_failure_propagates(self):
        storage = MemoryStorage()
        descriptor = storage.add("x", "x.bin", b"abc")

        def broken():
            raise PermissionError("denied")

        class Broken:
            def find_file(self, file_id):
                return StoredFile(descriptor=descriptor, open=broken)

        router = Router()
        DeliveryHandler(Broken()).register(router)

        with pytest.raises(PermissionError):
            router.handle(make_request("GET", "/download/x/x.bin"))


class TestRedirect:

    def test_location_is_percent_escaped(self):
        storage = MemoryStorage()
        storage.add("a b/c", "my report #1?.pdf", b"%PDF", last_modified=datetime.now(timezone.utc))
        delivery = DeliveryHandler(storage)

        location = delivery.canonical_path("a b/c", "my report #1?.pdf")

        assert location == "/download/a%20b%2Fc/my%20report%20%231%3F.pdf"

    def test_non_ascii_name(self, storage):
        delivery = DeliveryHandler(storage)

        assert delivery.canonical_path("7", "résumé.pdf") == "/download/7/r%C3%A9sum%C3%A9.pdf"

    def test_custom_prefix(self, storage):
        delivery = DeliveryHandler(storage, prefix="/files/")
        router = Router()
        delivery.register(router)

        response = router.handle(make_request("GET", "/files/foo"))

        assert response.headers["Location"] == "/files/foo/foo.txt"
        assert router.match("GET", "/download/foo") is None


class TestRegister:

    def test_routes(self, router):
        routes = {(route.method, route.path) for route in router.routes()}

        assert routes == {
            ("GET", "/download/:id"),
            ("HEAD", "/download/:id"),
            ("GET", "/download/:id/*name"),
            ("HEAD", "/download/:id/*name"),
        }

    def test_url_for(self, router):
        assert router.url_for("download_get", id=FOOBAR_ID, name=FOOBAR_NAME) == "/download/foo/foo.txt"
