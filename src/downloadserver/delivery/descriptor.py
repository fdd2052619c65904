"""
=============================================================================
RESOURCE DESCRIPTORS AND REQUEST VALIDATORS
=============================================================================

The two inputs of every conditional decision:

    ┌─────────────────────────────┐      ┌──────────────────────────────┐
    │ ResourceDescriptor          │      │ RequestValidators            │
    │  (what the server has)      │      │  (what the client has)       │
    ├─────────────────────────────┤      ├──────────────────────────────┤
    │ id                          │      │ method          GET / HEAD   │
    │ size                        │      │ if_none_match   "9b71..."    │
    │ original_name               │      │ if_modified_since  datetime  │
    │ content_hash  → etag        │      └──────────────────────────────┘
    │ last_modified               │
    │ media_type                  │
    └─────────────────────────────┘

=============================================================================
STRONG VALIDATOR
=============================================================================

The ETag is the SHA-512 of the file contents, hex encoded and quoted:

    ETag: "cf83e1357eefb8bdf1542850d66d8007d620e4050b5715dc83f4a921d36ce9ce..."

Hashing reads the file once, in fixed-size chunks, when the descriptor
is created. Two files with the same bytes share an ETag; touching a file
without changing it keeps its ETag but moves Last-Modified.

=============================================================================
"""

import hashlib
import logging
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from ..http.mime_types import get_content_type
from ..http.request import HTTPRequest
from ..http.response import parse_http_date

logger = logging.getLogger(__name__)


DEFAULT_HASH_CHUNK_SIZE = 64 * 1024

_TOKEN = r"[!#$%&'*+\-.^_`|~0-9A-Za-z]+"
_MEDIA_TYPE_PATTERN = re.compile(rf"^({_TOKEN})/({_TOKEN})$")


@dataclass(frozen=True)
class MediaType:
    """
    A Content-Type value: type/subtype with an optional charset.

        >>> str(MediaType("text", "plain", "utf-8"))
        'text/plain; charset=utf-8'
    """

    type: str
    subtype: str
    charset: Optional[str] = None

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["MediaType"]:
        """
        Parse a header value. Returns None when it is not a media type.

        Parameters other than charset are dropped.
        """
        if not value:
            return None

        essence, *params = value.split(";")
        match = _MEDIA_TYPE_PATTERN.match(essence.strip())
        if not match:
            return None

        charset = None
        for param in params:
            name, sep, param_value = param.partition("=")
            if sep and name.strip().lower() == "charset":
                charset = param_value.strip().strip('"') or None

        return cls(match.group(1).lower(), match.group(2).lower(), charset)

    @classmethod
    def guess(cls, name: str) -> Optional["MediaType"]:
        """Media type from a file name's extension, or None."""
        return cls.parse(get_content_type(name))

    def __str__(self) -> str:
        value = f"{self.type}/{self.subtype}"
        if self.charset:
            value += f"; charset={self.charset}"
        return value


@dataclass(frozen=True)
class ResourceDescriptor:
    """
    Immutable metadata for one stored file.

    A file that changes gets a new descriptor; this one never changes.
    last_modified is UTC with whole seconds, because HTTP dates cannot
    carry anything finer and comparisons must agree with what clients
    echo back.
    """

    id: str
    size: int
    original_name: str
    content_hash: str
    last_modified: datetime
    media_type: Optional[MediaType] = None

    def __post_init__(self):
        if self.size < 0:
            raise ValueError(f"size must be non-negative, got {self.size}")
        if not self.content_hash:
            raise ValueError("content_hash must not be empty")

        modified = self.last_modified
        if modified.tzinfo is None:
            modified = modified.replace(tzinfo=timezone.utc)
        modified = modified.astimezone(timezone.utc).replace(microsecond=0)
        object.__setattr__(self, "last_modified", modified)

    @property
    def etag(self) -> str:
        """The strong entity tag: the content hash in double quotes."""
        return f'"{self.content_hash}"'


def hash_stream(stream, chunk_size: int = DEFAULT_HASH_CHUNK_SIZE) -> tuple[str, int]:
    """
    SHA-512 a binary stream chunk by chunk.

    Returns:
        (hex digest, number of bytes read)
    """
    digest = hashlib.sha512()
    size = 0
    buffer = bytearray(chunk_size)
    view = memoryview(buffer)

    while True:
        count = stream.readinto(buffer)
        if not count:
            break
        digest.update(view[:count])
        size += count

    return digest.hexdigest(), size


def describe_file(
    file_id: str,
    path: str | Path,
    chunk_size: int = DEFAULT_HASH_CHUNK_SIZE,
    original_name: Optional[str] = None,
) -> ResourceDescriptor:
    """
    Build a descriptor for a file on disk.

    The size comes from the bytes actually hashed, so a file that grows
    while being read still gets a descriptor whose size matches its ETag.

    Raises:
        OSError: If the file cannot be opened or read.
    """
    path = Path(path)
    stat = path.stat()

    with open(path, "rb") as stream:
        content_hash, size = hash_stream(stream, chunk_size)

    descriptor = ResourceDescriptor(
        id=file_id,
        size=size,
        original_name=original_name or path.name,
        content_hash=content_hash,
        last_modified=datetime.fromtimestamp(stat.st_mtime, timezone.utc),
        media_type=MediaType.guess(path.name),
    )

    logger.debug(f"Described {path} as {file_id} ({size} bytes)")
    return descriptor


@dataclass(frozen=True)
class RequestValidators:
    """
    The conditional headers of one request.

    if_none_match is kept as a single opaque string: no list parsing,
    no weak comparison. A malformed If-Modified-Since is treated as if
    the header had not been sent.
    """

    method: str
    if_none_match: Optional[str] = None
    if_modified_since: Optional[datetime] = None

    @classmethod
    def from_request(cls, request: HTTPRequest) -> "RequestValidators":
        if_none_match = request.get_header("If-None-Match").strip() or None

        raw_date = request.get_header("If-Modified-Since").strip()
        if_modified_since = parse_http_date(raw_date) if raw_date else None
        if raw_date and if_modified_since is None:
            logger.debug(f"Ignoring malformed If-Modified-Since: {raw_date!r}")

        return cls(
            method=request.method.upper(),
            if_none_match=if_none_match,
            if_modified_since=if_modified_since,
        )
