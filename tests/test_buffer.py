"""Tests for nomacode.backend.terminal.buffer.OutputBuffer."""

from __future__ import annotations

import pytest

from nomacode.backend.terminal.buffer import DEFAULT_BUFFER_SIZE, OutputBuffer


class TestOutputBufferBasics:
    def test_empty(self) -> None:
        buf = OutputBuffer()
        assert len(buf) == 0
        assert buf.total_bytes == 0
        assert buf.snapshot() == b""
        assert buf.max_bytes == DEFAULT_BUFFER_SIZE

    def test_append_keeps_order(self) -> None:
        buf = OutputBuffer()
        buf.append(b"hello ")
        buf.append(b"world")
        assert buf.snapshot() == b"hello world"
        assert len(buf) == 11

    def test_empty_chunk_ignored(self) -> None:
        buf = OutputBuffer()
        buf.append(b"")
        assert buf.total_bytes == 0

    def test_invalid_size(self) -> None:
        with pytest.raises(ValueError):
            OutputBuffer(0)

    def test_ansi_bytes_preserved(self) -> None:
        buf = OutputBuffer()
        buf.append(b"\x1b[31mred\x1b[0m")
        assert buf.snapshot() == b"\x1b[31mred\x1b[0m"


class TestOutputBufferOverflow:
    def test_cap_enforced(self) -> None:
        buf = OutputBuffer(max_bytes=10)
        for i in range(10):
            buf.append(str(i).encode() * 3)
        assert len(buf) == 10
        assert buf.total_bytes == 30

    def test_overflow_drops_oldest(self) -> None:
        buf = OutputBuffer(max_bytes=8)
        buf.append(b"abcdef")
        buf.append(b"ghij")
        assert buf.snapshot() == b"cdefghij"

    def test_oversized_chunk_keeps_suffix(self) -> None:
        buf = OutputBuffer(max_bytes=4)
        buf.append(b"xx")
        buf.append(b"0123456789")
        assert buf.snapshot() == b"6789"

    def test_exact_size_chunk(self) -> None:
        buf = OutputBuffer(max_bytes=4)
        buf.append(b"zz")
        buf.append(b"abcd")
        assert buf.snapshot() == b"abcd"

    def test_many_small_appends_hold_newest(self) -> None:
        buf = OutputBuffer(max_bytes=1000)
        for i in range(5000):
            buf.append(b"%04d" % i)
        data = buf.snapshot()
        assert len(data) == 1000
        assert data.endswith(b"4999")


class TestOutputBufferRead:
    def test_snapshot_is_copy(self) -> None:
        buf = OutputBuffer()
        buf.append(b"abc")
        snap = buf.snapshot()
        buf.append(b"def")
        assert snap == b"abc"

