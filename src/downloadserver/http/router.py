"""
=============================================================================
URL ROUTER
=============================================================================

Implements path-based routing with support for:
- Static paths: /health
- Dynamic parameters: /download/:id
- Wildcard tails: /download/:id/*name
- Method-based routing: GET, HEAD, ...

=============================================================================
ROUTING A DOWNLOAD
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │   GET /download/5d0c.../annual report.pdf                           │
    │        │                                                             │
    │        ▼                                                             │
    │   Registered Routes:                                                 │
    │     GET  /download/:id         → DeliveryHandler.by_id               │
    │     HEAD /download/:id         → DeliveryHandler.by_id               │
    │     GET  /download/:id/*name   → DeliveryHandler.by_id_and_name  ←   │
    │     HEAD /download/:id/*name   → DeliveryHandler.by_id_and_name      │
    │        │                                                             │
    │        ▼                                                             │
    │   path_params = {"id": "5d0c...", "name": "annual report.pdf"}      │
    └─────────────────────────────────────────────────────────────────────┘

The name is a wildcard rather than a single segment so that any file
name the storage hands out can come back through the router, slashes
included.

=============================================================================
PATTERN COMPILATION
=============================================================================

    Pattern:  /download/:id/*name
    Regex:    ^/download/(?P<id>[^/]+)/(?P<name>.+)$

=============================================================================
INTERVIEW QUESTIONS ABOUT ROUTING
=============================================================================

Q: "What's the difference between /files/:id and /files/*path?"
A: ":id matches exactly one segment (between slashes).
   *path matches everything remaining (any number of segments)."

Q: "How do you handle route conflicts?"
A: "First-match wins. More specific routes should be registered first."

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Callable, Optional, Dict, Any, List
import re

from .request import HTTPRequest
from .response import HTTPResponse, not_found, method_not_allowed


Handler = Callable[[HTTPRequest], HTTPResponse]


@dataclass
class Route:
    """
    A URL pattern bound to a handler.

        Route(
            path="/download/:id",
            method="GET",
            handler=delivery.by_id,
            name="download_by_id",
            _pattern=<compiled>,
            _param_names=["id"],
        )
    """

    path: str
    method: Optional[str]            # None = any method
    handler: Handler
    name: Optional[str] = None
    meta: Dict[str, Any] = field(default_factory=dict)

    _pattern: Optional[re.Pattern] = field(default=None, repr=False)
    _param_names: List[str] = field(default_factory=list, repr=False)


@dataclass
class RouteMatch:
    """Result of a successful route match."""
    route: Route
    params: Dict[str, str]


class Router:
    """
    HTTP request router with dynamic path parameters.

        router = Router()

        @router.get("/health")
        def health(request):
            ...

        router.add_route("/download/:id", delivery.by_id, method="GET")

    Routes are tried in registration order; the first match wins.
    """

    def __init__(self, prefix: str = ""):
        self.prefix = prefix.rstrip("/")
        self._routes: List[Route] = []
        self._named_routes: Dict[str, Route] = {}

    # =========================================================================
    # ROUTE REGISTRATION
    # =========================================================================

    def add_route(
        self,
        path: str,
        handler: Handler,
        method: Optional[str] = None,
        name: Optional[str] = None,
        **meta: Any
    ) -> Route:
        """
        Register a route.

        Args:
            path: URL pattern (e.g., /download/:id)
            handler: Callable taking a request and returning a response
            method: HTTP method (None for any method)
            name: Optional route name for reverse routing
            **meta: Additional metadata (accessible via route.meta)
        """
        full_path = self.prefix + path
        pattern, param_names = self._compile_pattern(full_path)

        route = Route(
            path=full_path,
            method=method.upper() if method else None,
            handler=handler,
            name=name,
            meta=meta,
            _pattern=pattern,
            _param_names=param_names,
        )

        self._routes.append(route)
        if name:
            self._named_routes[name] = route

        return route

    def _compile_pattern(self, path: str) -> tuple[re.Pattern, List[str]]:
        """
        Compile a path pattern into a regex.

            :param  → (?P<param>[^/]+)    one segment
            *param  → (?P<param>.+)       the non-empty remainder

        A wildcard consumes the rest of the pattern.
        """
        param_names: List[str] = []
        regex_parts = ["^"]

        for segment in path.split("/"):
            if not segment:
                continue

            regex_parts.append("/")

            if segment.startswith(":"):
                param_name = segment[1:]
                param_names.append(param_name)
                regex_parts.append(f"(?P<{param_name}>[^/]+)")

            elif segment.startswith("*"):
                param_name = segment[1:] or "wildcard"
                param_names.append(param_name)
                regex_parts.append(f"(?P<{param_name}>.+)")
                break

            else:
                regex_parts.append(re.escape(segment))

        if len(regex_parts) == 1:
            regex_parts.append("/")

        regex_parts.append("$")
        return re.compile("".join(regex_parts)), param_names

    # =========================================================================
    # ROUTE MATCHING
    # =========================================================================

    @staticmethod
    def _normalize(path: str) -> str:
        return "/" + path.strip("/") if path != "/" else "/"

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        """
        Find the first route matching method and path.

        Returns:
            RouteMatch if found, None otherwise
        """
        path = self._normalize(path)

        for route in self._routes:
            if route.method and route.method != method.upper():
                continue

            if route._pattern:
                match = route._pattern.match(path)
                if match:
                    return RouteMatch(route=route, params=match.groupdict())

        return None

    def get_allowed_methods(self, path: str) -> List[str]:
        """
        Methods registered for a path, for the Allow header of a 405.
        """
        path = self._normalize(path)
        methods = set()

        for route in self._routes:
            if route._pattern and route._pattern.match(path):
                if route.method:
                    methods.add(route.method)
                else:
                    return ["GET", "HEAD", "POST", "PUT", "DELETE", "PATCH", "OPTIONS"]

        return sorted(methods)

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        """
        Route a request to its handler.

            match found          → handler(request) with path_params set
            path known, method   → 405 Method Not Allowed
            not
            nothing matches      → 404 Not Found
        """
        match = self.match(request.method, request.path)

        if match:
            request.path_params = match.params
            return match.route.handler(request)

        allowed = self.get_allowed_methods(request.path)
        if allowed:
            return method_not_allowed(allowed)

        return not_found(f"No route matches {request.path}")

    # =========================================================================
    # DECORATOR-STYLE ROUTE REGISTRATION
    # =========================================================================

    def route(
        self,
        path: str,
        method: Optional[str] = None,
        name: Optional[str] = None,
        **meta: Any
    ) -> Callable[[Handler], Handler]:
        """
        Decorator for registering routes.

            @router.route("/health", method="GET")
            def health(request):
                ...
        """
        def decorator(handler: Handler) -> Handler:
            self.add_route(path, handler, method, name, **meta)
            return handler
        return decorator

    def get(self, path: str, name: Optional[str] = None, **meta: Any) -> Callable[[Handler], Handler]:
        """Register a GET route."""
        return self.route(path, "GET", name, **meta)

    def head(self, path: str, name: Optional[str] = None, **meta: Any) -> Callable[[Handler], Handler]:
        """Register a HEAD route. Like GET but returns only headers."""
        return self.route(path, "HEAD", name, **meta)

    # =========================================================================
    # UTILITY METHODS
    # =========================================================================

    def url_for(self, route_name: str, /, **params: str) -> Optional[str]:
        """
        Generate the path of a named route (reverse routing).

        Values are substituted as given; callers escape them. The route
        name is positional-only so a parameter may be called `name`.

            router.url_for("download_get", id="42", name="a%20b.txt")
            # "/download/42/a%20b.txt"
        """
        route = self._named_routes.get(route_name)
        if not route:
            return None

        url = route.path
        for param_name, value in params.items():
            url = url.replace(f":{param_name}", value)
            url = url.replace(f"*{param_name}", value)

        return url

    def routes(self) -> List[Route]:
        """All registered routes, in matching order."""
        return list(self._routes)
