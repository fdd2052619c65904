"""
=============================================================================
BANDWIDTH THROTTLING
=============================================================================

Limits how fast response bodies leave the server by making every read
from a file wait for byte "tokens" from a token bucket.

=============================================================================
TOKEN BUCKET AS A BANDWIDTH BUDGET
=============================================================================

A request rate limiter asks "may this request pass?" and says no when
the bucket is empty. A bandwidth limiter never says no. It asks "how
long until these N bytes may pass?" and waits:

    ┌──────────────────────────────────────────────────────────────────┐
    │  rate R = 1 MiB/s, bucket starts EMPTY                           │
    │                                                                   │
    │  t=0.00  acquire(64 KiB)  tokens: 0 → -64K   sleep 0.0625s       │
    │  t=0.06  acquire(64 KiB)  tokens: 0 → -64K   sleep 0.0625s       │
    │  ...                                                              │
    │  N bytes never finish before N / R seconds                       │
    └──────────────────────────────────────────────────────────────────┘

Tokens may go negative. The debt is what the NEXT caller waits out, so
two downloads sharing one bucket split the rate between them instead of
both sleeping the same short interval and doubling it.

The lock is held only while the tokens are counted; the sleep happens
outside it.

=============================================================================
THROTTLED BYTE SOURCE
=============================================================================

    file object ──► ThrottledByteSource ──► Connection.send_stream
                     │
                     ├─ read(n) / readinto(buf)  wait for n tokens, then read
                     ├─ skip(n) / remaining()    not rate-accounted
                     └─ close()                  closes the file, once

The wrapper composes any object with readinto() and close() (a file
opened with open(path, "rb"), an io.BytesIO, ...). It does not subclass
the io classes.

=============================================================================
INTERVIEW QUESTIONS ABOUT THROTTLING
=============================================================================

Q: "Why start the bucket empty?"
A: "A full bucket would let the first second of every download go out
   at line speed. Empty means the rate holds from the first byte."

Q: "Per-download or global limit?"
A: "Both are one bucket; the difference is how many downloads share it.
   ThrottlePolicy hands out a fresh bucket per response or the same
   shared bucket to every response."

=============================================================================
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional, Protocol

logger = logging.getLogger(__name__)


THROTTLE_SCOPES = ("response", "global")


class ByteSource(Protocol):
    """Anything a body can be pumped from."""

    def readinto(self, buffer: bytearray | memoryview) -> int:
        ...

    def close(self) -> None:
        ...


class Budget(Protocol):
    """Anything that can make a caller wait for byte tokens."""

    def acquire(self, tokens: float) -> float:
        ...


@dataclass
class TokenBucket:
    """
    Token bucket that charges bytes and waits instead of refusing.

    =========================================================================
    HOW IT WORKS
    =========================================================================

    1. Bucket starts empty: tokens = 0

    2. acquire(n) under the lock:
       - Refill tokens based on time elapsed (capped at max_tokens)
       - Subtract n, possibly going negative
       - If negative, the wait is -tokens / tokens_per_second

    3. The caller sleeps for the wait outside the lock

    =========================================================================

    clock and sleep are injectable so tests can drive time by hand.
    """

    max_tokens: float
    tokens_per_second: float
    tokens: float = 0.0
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)
    last_update: Optional[float] = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def __post_init__(self):
        if self.tokens_per_second <= 0:
            raise ValueError("tokens_per_second must be positive")
        if self.max_tokens <= 0:
            raise ValueError("max_tokens must be positive")
        if self.last_update is None:
            self.last_update = self.clock()

    @classmethod
    def for_rate(
        cls,
        bytes_per_second: float,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> "TokenBucket":
        """A bucket holding at most one second of tokens at the given rate."""
        return cls(
            max_tokens=bytes_per_second,
            tokens_per_second=bytes_per_second,
            clock=clock,
            sleep=sleep,
        )

    def _refill(self):
        now = self.clock()
        elapsed = max(0.0, now - self.last_update)

        self.tokens = min(
            self.max_tokens,
            self.tokens + (elapsed * self.tokens_per_second)
        )
        self.last_update = now

    def reserve(self, tokens: float) -> float:
        """
        Take tokens out of the bucket and return how long to wait.

        Never blocks. The tokens are charged immediately, even when that
        leaves the bucket in debt.
        """
        with self._lock:
            self._refill()
            self.tokens -= tokens
            if self.tokens >= 0:
                return 0.0
            return -self.tokens / self.tokens_per_second

    def acquire(self, tokens: float) -> float:
        """
        Block until `tokens` are available. Returns the time slept.
        """
        wait = self.reserve(tokens)
        if wait > 0:
            self.sleep(wait)
        return wait

    @property
    def available_tokens(self) -> float:
        """Current token count after refill. Negative while in debt."""
        with self._lock:
            self._refill()
            return self.tokens

    def time_until_available(self, tokens: float = 1.0) -> float:
        with self._lock:
            self._refill()
            if self.tokens >= tokens:
                return 0.0
            return (tokens - self.tokens) / self.tokens_per_second


class UnlimitedBudget:
    """A budget that never waits."""

    def acquire(self, tokens: float) -> float:
        return 0.0


class ThrottledByteSource:
    """
    Wraps a byte source so every read first waits on a budget.

    Args:
        source: Object with readinto() and close(), e.g. a binary file
        budget: TokenBucket (or anything with acquire(n))
        length: Total bytes the source will yield, if known. Reads never
                ask the budget for more than what is left.

    Usage:
        with ThrottledByteSource(open(path, "rb"), bucket, length=size) as body:
            for chunk in body.iter_chunks(64 * 1024):
                sock.sendall(chunk)
    """

    def __init__(self, source: ByteSource, budget: Budget, length: Optional[int] = None):
        self._source = source
        self._budget = budget
        self._remaining = length
        self._closed = False
        self._close_lock = threading.Lock()

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self):
        if self._closed:
            raise ValueError("I/O operation on closed byte source")

    def _clamp(self, size: int) -> int:
        if self._remaining is None:
            return size
        return min(size, self._remaining)

    def _consumed(self, count: int):
        if self._remaining is not None:
            self._remaining = max(0, self._remaining - count)

    def read(self, size: int) -> bytes:
        """
        Read up to `size` bytes, waiting for `size` tokens first.

        read(1) is the single-byte read. An empty result means end of
        stream. Unbounded reads (size None or negative) are refused,
        since they would pull the whole file into memory.
        """
        if size is None or size < 0:
            raise ValueError("ThrottledByteSource.read() requires a non-negative size")
        self._check_open()

        size = self._clamp(size)
        if size == 0:
            return b""

        self._budget.acquire(size)
        buffer = bytearray(size)
        count = self._source.readinto(buffer) or 0
        self._consumed(count)
        return bytes(buffer[:count])

    def readinto(self, buffer: bytearray | memoryview) -> int:
        """Fill `buffer` after waiting for len(buffer) tokens."""
        self._check_open()

        view = memoryview(buffer).cast("B")
        size = self._clamp(len(view))
        if size == 0:
            return 0

        self._budget.acquire(size)
        count = self._source.readinto(view[:size]) or 0
        self._consumed(count)
        return count

    def skip(self, count: int) -> int:
        """
        Discard up to `count` bytes without charging the budget.

        Returns the number of bytes actually skipped.
        """
        self._check_open()
        count = self._clamp(count)
        skipped = 0
        scratch = bytearray(min(count, 64 * 1024))

        while skipped < count:
            view = memoryview(scratch)[:min(len(scratch), count - skipped)]
            got = self._source.readinto(view) or 0
            if got == 0:
                break
            skipped += got

        self._consumed(skipped)
        return skipped

    def remaining(self) -> int:
        """
        Bytes still to come, when the length is known; otherwise 0.

        Never blocks and never touches the budget.
        """
        if self._closed or self._remaining is None:
            return 0
        return self._remaining

    def iter_chunks(self, chunk_size: int) -> Iterator[bytes]:
        """Yield throttled chunks until the source is exhausted."""
        while True:
            chunk = self.read(chunk_size)
            if not chunk:
                return
            yield chunk

    def close(self) -> None:
        """Close the wrapped source. Safe to call more than once."""
        with self._close_lock:
            if self._closed:
                return
            self._closed = True
        self._source.close()

    def __enter__(self) -> "ThrottledByteSource":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class ThrottlePolicy:
    """
    Decides which budget each response body is charged against.

        ThrottlePolicy(1024 * 1024)                   1 MiB/s per download
        ThrottlePolicy(1024 * 1024, scope="global")   1 MiB/s for all downloads
        ThrottlePolicy(None)                          no limit
    """

    def __init__(
        self,
        max_bytes_per_second: Optional[float],
        scope: str = "response",
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        if scope not in THROTTLE_SCOPES:
            raise ValueError(f"throttle scope must be one of {THROTTLE_SCOPES}, got {scope!r}")
        if max_bytes_per_second is not None and max_bytes_per_second <= 0:
            raise ValueError("max_bytes_per_second must be positive or None")

        self.max_bytes_per_second = max_bytes_per_second
        self.scope = scope
        self._clock = clock
        self._sleep = sleep
        self._shared: Optional[TokenBucket] = None

        if max_bytes_per_second is not None and scope == "global":
            self._shared = self._new_bucket()

        logger.debug(f"Throttle policy: {self.describe()}")

    @property
    def enabled(self) -> bool:
        return self.max_bytes_per_second is not None

    def _new_bucket(self) -> TokenBucket:
        return TokenBucket.for_rate(self.max_bytes_per_second, clock=self._clock, sleep=self._sleep)

    def budget(self) -> Budget:
        if self.max_bytes_per_second is None:
            return UnlimitedBudget()
        if self._shared is not None:
            return self._shared
        return self._new_bucket()

    def wrap(self, source: ByteSource, length: Optional[int] = None) -> ThrottledByteSource:
        """Wrap a freshly opened source for one response body."""
        return ThrottledByteSource(source, self.budget(), length=length)

    def describe(self) -> str:
        if self.max_bytes_per_second is None:
            return "unlimited"
        return f"{self.max_bytes_per_second:g} B/s per {self.scope}"
