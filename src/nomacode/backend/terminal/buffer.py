"""Rolling output buffer for terminal sessions."""

from __future__ import annotations

import threading

DEFAULT_BUFFER_SIZE = 50_000


class OutputBuffer:
    """Thread-safe rolling byte buffer.

    Keeps the most recent ``max_bytes`` bytes of process output so that a
    client reattaching to a session can catch up without replaying the whole
    process lifetime. Appending past the cap evicts the oldest bytes.

    Bytes are stored raw (ANSI sequences included); the terminal emulator on
    the client side renders them.
    """

    def __init__(self, max_bytes: int = DEFAULT_BUFFER_SIZE) -> None:
        if max_bytes <= 0:
            raise ValueError("max_bytes must be positive")
        self._max_bytes = max_bytes
        self._data = bytearray()
        self._total_bytes = 0  # Total bytes ever appended
        self._lock = threading.Lock()

    def append(self, chunk: bytes) -> None:
        """Append a chunk, evicting the oldest bytes beyond the cap."""
        if not chunk:
            return
        with self._lock:
            self._total_bytes += len(chunk)
            if len(chunk) >= self._max_bytes:
                self._data = bytearray(chunk[-self._max_bytes:])
                return
            self._data += chunk
            overflow = len(self._data) - self._max_bytes
            if overflow > 0:
                del self._data[:overflow]

    def snapshot(self) -> bytes:
        """Return a copy of the buffered bytes, oldest first."""
        with self._lock:
            return bytes(self._data)

    @property
    def max_bytes(self) -> int:
        return self._max_bytes

    @property
    def total_bytes(self) -> int:
        """Total number of bytes ever appended."""
        with self._lock:
            return self._total_bytes

    def __len__(self) -> int:
        with self._lock:
            return len(self._data)
