"""
Conditional request evaluation (RFC 7232, GET/HEAD subset).

    If-None-Match equal to the ETag      → NOT_MODIFIED
    If-Modified-Since not before mtime   → NOT_MODIFIED
    otherwise                            → PROCEED

An If-None-Match that does not match does NOT stop the evaluation:
If-Modified-Since is still consulted. The file is considered cached
when either validator says so.
"""

import logging
from enum import Enum

from .descriptor import RequestValidators, ResourceDescriptor

logger = logging.getLogger(__name__)


class Decision(Enum):
    NOT_MODIFIED = "not_modified"
    PROCEED = "proceed"


def etag_matches(descriptor: ResourceDescriptor, if_none_match: str) -> bool:
    """Byte-for-byte comparison with the quoted ETag."""
    return if_none_match == descriptor.etag


def unmodified_since(descriptor: ResourceDescriptor, client_time) -> bool:
    """
    True unless the file changed strictly after client_time.

    Both sides are whole seconds in UTC, so a client echoing back the
    Last-Modified it was given compares equal and is told "not modified".
    """
    return not descriptor.last_modified > client_time


def evaluate(descriptor: ResourceDescriptor, validators: RequestValidators) -> Decision:
    if validators.if_none_match is not None and etag_matches(descriptor, validators.if_none_match):
        logger.debug(f"{descriptor.id}: ETag matches, not modified")
        return Decision.NOT_MODIFIED

    if validators.if_modified_since is not None and unmodified_since(
        descriptor, validators.if_modified_since
    ):
        logger.debug(f"{descriptor.id}: unchanged since {validators.if_modified_since}, not modified")
        return Decision.NOT_MODIFIED

    return Decision.PROCEED
