"""
=============================================================================
DELIVERY PACKAGE
=============================================================================

Conditional file delivery, from leaf to root:

    descriptor.py   ResourceDescriptor, MediaType, RequestValidators
    conditional.py  evaluate() → NOT_MODIFIED | PROCEED
    assembler.py    render() → status, headers, body policy
    handler.py      DeliveryHandler: lookup, redirect, serve

=============================================================================
"""

from .descriptor import (
    MediaType,
    ResourceDescriptor,
    RequestValidators,
    describe_file,
    hash_stream,
)
from .conditional import Decision, evaluate
from .assembler import BodyPolicy, RenderedResponse, render
from .handler import Action, DeliveryHandler

__all__ = [
    "MediaType",
    "ResourceDescriptor",
    "RequestValidators",
    "describe_file",
    "hash_stream",

    "Decision",
    "evaluate",

    "BodyPolicy",
    "RenderedResponse",
    "render",

    "Action",
    "DeliveryHandler",
]
