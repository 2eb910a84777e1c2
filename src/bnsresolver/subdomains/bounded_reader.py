from __future__ import annotations

import time
from typing import Callable, Iterable, Iterator, List, Optional


class ReadLimitExceeded(Exception):
    """Cumulative bytes read went past the configured cap."""


class ReadDeadlineExceeded(Exception):
    """The wall-clock deadline passed before the stream ended."""


class BoundedReader:
    """Accumulate a byte stream under a size cap and an optional deadline.

    Inputs (constructor):
      - chunks: Iterable yielding bytes chunks from any transport.
      - max_bytes: Largest total size accepted; one byte more aborts.
      - deadline: Optional absolute deadline on the clock below.
      - on_abort: Optional callable invoked once when reading is aborted,
        used to tear down the underlying transfer.
      - clock: Monotonic clock callable (injected in tests).

    Outputs:
      - BoundedReader; read_all() returns the collected bytes.

    Example:
      >>> BoundedReader([b"ab", b"cd"], max_bytes=4).read_all()
      b'abcd'
    """

    def __init__(
        self,
        chunks: Iterable[bytes],
        max_bytes: int,
        *,
        deadline: Optional[float] = None,
        on_abort: Optional[Callable[[], None]] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._chunks = chunks
        self.max_bytes = int(max_bytes)
        self.deadline = deadline
        self._on_abort = on_abort
        self._clock = clock
        self.bytes_read = 0
        self.aborted = False

    def _abort(self) -> None:
        if self.aborted:
            return
        self.aborted = True
        if self._on_abort is not None:
            self._on_abort()

    def __iter__(self) -> Iterator[bytes]:
        for chunk in self._chunks:
            if not chunk:
                continue
            if self.deadline is not None and self._clock() > self.deadline:
                self._abort()
                raise ReadDeadlineExceeded(f"deadline passed after {self.bytes_read} bytes")
            self.bytes_read += len(chunk)
            if self.bytes_read > self.max_bytes:
                self._abort()
                raise ReadLimitExceeded(
                    f"read {self.bytes_read} bytes, limit is {self.max_bytes}"
                )
            yield chunk

    def read_all(self) -> bytes:
        parts: List[bytes] = []
        for chunk in self:
            parts.append(chunk)
        return b"".join(parts)
