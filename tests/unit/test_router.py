"""
Unit tests for URL router.
"""

from downloadserver.http.router import Router
from downloadserver.http.request import HTTPRequest
from downloadserver.http.response import HTTPResponse, ResponseBuilder, HTTPStatus


def make_request(method: str, path: str) -> HTTPRequest:
    """Helper to create a request for testing."""
    return HTTPRequest(method=method, path=path)


def dummy_handler(request: HTTPRequest) -> HTTPResponse:
    """Dummy handler for testing."""
    return ResponseBuilder().json({"path": request.path, "params": request.path_params}).build()


class TestRouter:
    """Tests for Router class."""

    def test_add_route(self):
        """Test adding routes."""
        router = Router()
        router.add_route("/download/:id", dummy_handler, method="get")

        routes = router.routes()
        assert len(routes) == 1
        assert routes[0].path == "/download/:id"
        assert routes[0].method == "GET"

    def test_match_static_path(self):
        """Test matching static paths."""
        router = Router()
        router.add_route("/health", dummy_handler, method="GET")
        router.add_route("/ready", dummy_handler, method="GET")

        match = router.match("GET", "/health")
        assert match is not None
        assert match.route.path == "/health"

        match = router.match("GET", "/ready/")
        assert match is not None
        assert match.route.path == "/ready"

    def test_match_with_method(self):
        """Test method-based routing."""
        router = Router()
        router.add_route("/download/:id", dummy_handler, method="GET")
        router.add_route("/download/:id", dummy_handler, method="HEAD")

        get_match = router.match("GET", "/download/1")
        head_match = router.match("head", "/download/1")

        assert get_match.route.method == "GET"
        assert head_match.route.method == "HEAD"

    def test_match_dynamic_params(self):
        """Test dynamic path parameters."""
        router = Router()
        router.add_route("/download/:id", dummy_handler, method="GET")

        match = router.match("GET", "/download/123")
        assert match is not None
        assert match.params == {"id": "123"}

    def test_match_wildcard(self):
        """A wildcard captures the rest of the path, slashes included."""
        router = Router()
        router.add_route("/download/:id/*name", dummy_handler, method="GET")

        match = router.match("GET", "/download/7/report.pdf")
        assert match.params == {"id": "7", "name": "report.pdf"}

        match = router.match("GET", "/download/7/a/b c.txt")
        assert match.params == {"id": "7", "name": "a/b c.txt"}

    def test_by_id_and_by_name_do_not_overlap(self):
        router = Router()
        router.add_route("/download/:id", dummy_handler, method="GET", name="by_id")
        router.add_route("/download/:id/*name", dummy_handler, method="GET", name="by_name")

        assert router.match("GET", "/download/7").route.name == "by_id"
        assert router.match("GET", "/download/7/x.txt").route.name == "by_name"

    def test_no_match(self):
        """Test when no route matches."""
        router = Router()
        router.add_route("/download/:id", dummy_handler, method="GET")

        assert router.match("GET", "/upload/1") is None
        assert router.match("POST", "/download/1") is None
        assert router.match("GET", "/download") is None

    def test_get_allowed_methods(self):
        """Test getting allowed methods for a path."""
        router = Router()
        router.add_route("/download/:id", dummy_handler, method="GET")
        router.add_route("/download/:id", dummy_handler, method="HEAD")

        assert router.get_allowed_methods("/download/1") == ["GET", "HEAD"]
        assert router.get_allowed_methods("/nothing") == []

    def test_handle_success(self):
        """Test handling a request successfully."""
        router = Router()

        @router.get("/hello")
        def hello(request):
            return ResponseBuilder().text("Hello!").build()

        response = router.handle(make_request("GET", "/hello"))

        assert response.status == HTTPStatus.OK
        assert response.body == b"Hello!"

    def test_handle_sets_path_params(self):
        router = Router()
        seen = {}

        @router.get("/download/:id/*name")
        def download(request):
            seen.update(request.path_params)
            return ResponseBuilder().build()

        router.handle(make_request("GET", "/download/9/notes.txt"))

        assert seen == {"id": "9", "name": "notes.txt"}

    def test_handle_404(self):
        """Test 404 for unmatched routes."""
        router = Router()
        router.add_route("/download/:id", dummy_handler, method="GET")

        response = router.handle(make_request("GET", "/elsewhere"))

        assert response.status == HTTPStatus.NOT_FOUND

    def test_handle_405(self):
        """Known path, unregistered method."""
        router = Router()
        router.add_route("/download/:id", dummy_handler, method="GET")
        router.add_route("/download/:id", dummy_handler, method="HEAD")

        response = router.handle(make_request("POST", "/download/1"))

        assert response.status == HTTPStatus.METHOD_NOT_ALLOWED
        assert response.headers["Allow"] == "GET, HEAD"

    def test_head_decorator(self):
        router = Router()

        @router.head("/ping")
        def ping(request):
            return ResponseBuilder().build()

        assert router.match("HEAD", "/ping") is not None
        assert router.match("GET", "/ping") is None

    def test_route_without_method_matches_any(self):
        router = Router()
        router.route("/any")(dummy_handler)

        assert router.match("GET", "/any") is not None
        assert router.match("DELETE", "/any") is not None


class TestRouterPrefix:
    """Tests for prefixed routers."""

    def test_prefix(self):
        router = Router(prefix="/files/")
        router.add_route("/download/:id", dummy_handler, method="GET")

        assert router.match("GET", "/files/download/1") is not None
        assert router.match("GET", "/download/1") is None


class TestUrlFor:
    """Tests for reverse routing."""

    def test_url_for(self):
        router = Router()
        router.add_route("/download/:id/*name", dummy_handler, method="GET", name="download_get")

        assert router.url_for("download_get", id="42", name="a%20b.txt") == "/download/42/a%20b.txt"

    def test_url_for_unknown(self):
        assert Router().url_for("missing") is None
