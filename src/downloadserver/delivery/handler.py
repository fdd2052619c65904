"""
=============================================================================
DELIVERY HANDLER
=============================================================================

The two download endpoints and the state machine behind both:

    request
       │
       ▼
    Lookup ──── unknown id ──────────────────────────► 404 (empty body)
       │
       ▼ found
    Evaluate ── NOT_MODIFIED ────────────────────────► 304
       │
       ▼ PROCEED
    action
       ├─ REDIRECT  (GET /download/:id)  ────────────► 301 Location:
       │                                                /download/:id/:name
       └─ SERVE     (GET /download/:id/*name) ───────► 200 + throttled body
                    (HEAD ...)            ───────────► 200, headers only

A client holding a valid copy gets its 304 from either URL without an
extra redirect round-trip.

The name segment of the canonical URL is cosmetic: it makes the saved
file name right in browsers. Any name is accepted and the file is found
by id alone.

=============================================================================
"""

import logging
from enum import Enum
from typing import TYPE_CHECKING, Optional
from urllib.parse import quote

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder, not_found
from ..http.router import Router
from ..throttling import ThrottlePolicy
from .assembler import BodyPolicy, render
from .conditional import Decision, evaluate
from .descriptor import RequestValidators

if TYPE_CHECKING:
    from ..storage import FileStorage, StoredFile

logger = logging.getLogger(__name__)


class Action(Enum):
    REDIRECT = "redirect"
    SERVE = "serve"


class DeliveryHandler:
    """
    Serves stored files with conditional GET/HEAD semantics.

    Args:
        storage: Where files are looked up by id
        throttle: Budget policy for response bodies
        prefix: URL prefix of the download routes
    """

    def __init__(
        self,
        storage: "FileStorage",
        throttle: Optional[ThrottlePolicy] = None,
        prefix: str = "/download",
    ):
        self.storage = storage
        self.throttle = throttle or ThrottlePolicy(None)
        self.prefix = "/" + prefix.strip("/") if prefix.strip("/") else ""

    # =========================================================================
    # ENTRY POINTS
    # =========================================================================

    def by_id(self, request: HTTPRequest) -> HTTPResponse:
        """GET/HEAD {prefix}/:id → 301 to the canonical URL, 304 or 404."""
        return self._deliver(request, request.path_params["id"], Action.REDIRECT)

    def by_id_and_name(self, request: HTTPRequest) -> HTTPResponse:
        """GET/HEAD {prefix}/:id/*name → 200 with the file, 304 or 404."""
        return self._deliver(
            request,
            request.path_params["id"],
            Action.SERVE,
            requested_name=request.path_params.get("name"),
        )

    def register(self, router: Router, prefix: Optional[str] = None) -> None:
        """
        Add the download routes to a router.

            GET, HEAD  {prefix}/:id
            GET, HEAD  {prefix}/:id/*name
        """
        if prefix is not None:
            self.prefix = "/" + prefix.strip("/") if prefix.strip("/") else ""

        for method in ("GET", "HEAD"):
            router.add_route(f"{self.prefix}/:id", self.by_id, method=method, name=f"download_by_id_{method.lower()}")
            router.add_route(
                f"{self.prefix}/:id/*name",
                self.by_id_and_name,
                method=method,
                name=f"download_{method.lower()}",
            )

    # =========================================================================
    # STATE MACHINE
    # =========================================================================

    def _deliver(
        self,
        request: HTTPRequest,
        file_id: str,
        action: Action,
        requested_name: Optional[str] = None,
    ) -> HTTPResponse:
        stored = self.storage.find_file(file_id)
        if stored is None:
            logger.debug(f"{request.method} {file_id}: not found")
            return not_found(None)

        descriptor = stored.descriptor
        validators = RequestValidators.from_request(request)
        decision = evaluate(descriptor, validators)

        if decision is Decision.NOT_MODIFIED:
            rendered = render(descriptor, decision, validators.method)
            return ResponseBuilder().status(rendered.status).headers(rendered.headers).build()

        if action is Action.REDIRECT:
            location = self.canonical_path(descriptor.id, descriptor.original_name)
            logger.debug(f"{request.method} {file_id}: redirect to {location}")
            return ResponseBuilder().redirect(location, permanent=True).build()

        if requested_name is not None and requested_name != descriptor.original_name:
            logger.debug(f"{file_id}: requested as {requested_name!r}, stored as {descriptor.original_name!r}")

        return self._serve(stored, validators.method)

    def _serve(self, stored: "StoredFile", method: str) -> HTTPResponse:
        descriptor = stored.descriptor
        rendered = render(descriptor, Decision.PROCEED, method)
        builder = ResponseBuilder().status(rendered.status).headers(rendered.headers)

        if rendered.body_policy is BodyPolicy.STREAM:
            source = self.throttle.wrap(stored.open(), length=descriptor.size)
            builder.stream(source, length=descriptor.size)
            logger.debug(f"Serving {descriptor.id} ({descriptor.size} bytes, {self.throttle.describe()})")

        return builder.build()

    # =========================================================================
    # HELPERS
    # =========================================================================

    def canonical_path(self, file_id: str, original_name: str) -> str:
        """{prefix}/{id}/{name}, both segments percent-encoded."""
        return f"{self.prefix}/{quote(file_id, safe='')}/{quote(original_name, safe='')}"

