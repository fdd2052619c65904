"""
=============================================================================
RESPONSE ASSEMBLY
=============================================================================

Turns (descriptor, decision, method) into status, headers and a body
policy. Nothing here opens files: the headers are computed from the
descriptor alone, which is why HEAD can answer without touching the
file.

    ┌──────────────┬────────┬──────────────────────────────────┬────────┐
    │ decision     │ method │ headers                          │ body   │
    ├──────────────┼────────┼──────────────────────────────────┼────────┤
    │ NOT_MODIFIED │ any    │ ETag, Last-Modified              │ NONE   │
    │ PROCEED      │ HEAD   │ ETag, Last-Modified,             │ EMPTY  │
    │              │        │ Content-Length, [Content-Type]   │        │
    │ PROCEED      │ GET    │ same as HEAD                     │ STREAM │
    └──────────────┴────────┴──────────────────────────────────┴────────┘

Content-Type is only present when the media type is known. There is no
default.

=============================================================================
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict

from ..http.response import format_http_date
from ..http.status_codes import HTTPStatus
from .conditional import Decision
from .descriptor import ResourceDescriptor


class BodyPolicy(Enum):
    NONE = "none"        # status forbids a body (304)
    EMPTY = "empty"      # headers describe a body that is not sent (HEAD)
    STREAM = "stream"    # the file is streamed after the headers (GET)


@dataclass(frozen=True)
class RenderedResponse:
    status: HTTPStatus
    headers: Dict[str, str] = field(default_factory=dict)
    body_policy: BodyPolicy = BodyPolicy.NONE


def validator_headers(descriptor: ResourceDescriptor) -> Dict[str, str]:
    return {
        "ETag": descriptor.etag,
        "Last-Modified": format_http_date(descriptor.last_modified),
    }


def entity_headers(descriptor: ResourceDescriptor) -> Dict[str, str]:
    headers = validator_headers(descriptor)
    headers["Content-Length"] = str(descriptor.size)
    if descriptor.media_type is not None:
        headers["Content-Type"] = str(descriptor.media_type)
    return headers


def render(descriptor: ResourceDescriptor, decision: Decision, method: str) -> RenderedResponse:
    """
    Compute the response for a found resource.

    method is "GET" or "HEAD"; anything other than HEAD is rendered
    as GET.
    """
    if decision is Decision.NOT_MODIFIED:
        return RenderedResponse(
            status=HTTPStatus.NOT_MODIFIED,
            headers=validator_headers(descriptor),
            body_policy=BodyPolicy.NONE,
        )

    policy = BodyPolicy.EMPTY if method.upper() == "HEAD" else BodyPolicy.STREAM
    return RenderedResponse(
        status=HTTPStatus.OK,
        headers=entity_headers(descriptor),
        body_policy=policy,
    )
