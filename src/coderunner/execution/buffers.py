"""Bounded capture buffer for child process output."""

from __future__ import annotations

import asyncio

TRUNCATION_MARKER = b"\n... [output truncated]"

_READ_CHUNK = 64 * 1024


class BoundedBuffer:
    """Keep at most *limit* bytes; count (and drop) everything after that.

    Writing past the cap is not an error.  The kept prefix is returned by
    :meth:`getvalue` followed by :data:`TRUNCATION_MARKER` once anything was
    dropped.
    """

    def __init__(self, limit: int) -> None:
        if limit <= 0:
            msg = "limit must be positive"
            raise ValueError(msg)
        self._limit = limit
        self._data = bytearray()
        self._dropped = 0

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def truncated(self) -> bool:
        return self._dropped > 0

    @property
    def dropped(self) -> int:
        """Number of bytes discarded past the cap."""
        return self._dropped

    def write(self, data: bytes) -> None:
        room = self._limit - len(self._data)
        if room > 0:
            self._data += data[:room]
        self._dropped += max(0, len(data) - max(room, 0))

    def getvalue(self) -> bytes:
        if self.truncated:
            return bytes(self._data) + TRUNCATION_MARKER
        return bytes(self._data)

    async def drain(self, stream: asyncio.StreamReader) -> None:
        """Read *stream* to EOF into this buffer."""
        while True:
            chunk = await stream.read(_READ_CHUNK)
            if not chunk:
                return
            self.write(chunk)
