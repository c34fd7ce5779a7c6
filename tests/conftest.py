"""Shared fixtures: an in-memory process backend and a recording sink."""

from __future__ import annotations

import itertools
import signal
from typing import List, Optional, Tuple

import pytest
from fastapi.testclient import TestClient

from nomacode.backend.app import create_app
from nomacode.backend.enum import BackendKind, ResizeResult, ToolAvailability
from nomacode.backend.exception import SpawnError
from nomacode.backend.terminal.backend import ProcessBackend
from nomacode.backend.tool.detector import ToolDetector


_pids = itertools.count(10_000)


class FakeHandle:
    """Process handle driven by the test instead of a real process."""

    def __init__(self, command: str, args: List[str], cwd: str, cols: int, rows: int,
                 on_data, on_exit, resize_result: ResizeResult) -> None:
        self.command = command
        self.args = args
        self.cwd = cwd
        self.cols = cols
        self.rows = rows
        self.pid = next(_pids)
        self.writes: List[bytes] = []
        self.resizes: List[Tuple[int, int]] = []
        self.killed = False
        self.force_killed = False
        self.ignore_kill = False
        self.resize_error: Optional[OSError] = None
        self._on_data = on_data
        self._on_exit = on_exit
        self._resize_result = resize_result
        self._exit_code: Optional[int] = None

    # Test controls

    def emit(self, data: bytes) -> None:
        self._on_data(data)

    def exit(self, code: int) -> None:
        self._exit_code = code
        self._on_exit(code)

    # ProcessHandle surface

    def write(self, data: bytes) -> None:
        self.writes.append(data)

    def resize(self, cols: int, rows: int) -> ResizeResult:
        if self.resize_error is not None:
            raise self.resize_error
        self.resizes.append((cols, rows))
        return self._resize_result

    @property
    def kill_signal(self) -> int:
        return signal.SIGTERM

    def kill(self) -> int:
        self.killed = True
        if not self.ignore_kill and self._exit_code is None:
            self._exit_code = -signal.SIGTERM
        return self.kill_signal

    def force_kill(self) -> None:
        self.force_killed = True
        self._exit_code = -9

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        return self._exit_code


class FakeBackend(ProcessBackend):
    """Backend that records spawns and hands out FakeHandles."""

    kind = BackendKind.PIPE
    supports_resize = False

    def __init__(self, resize_result: ResizeResult = ResizeResult.UNSUPPORTED) -> None:
        self.resize_result = resize_result
        self.handles: List[FakeHandle] = []
        self.fail_with: Optional[str] = None

    def spawn(self, command, args, cwd, env, cols, rows, on_data, on_exit) -> FakeHandle:
        if self.fail_with is not None:
            raise SpawnError(self.fail_with)
        handle = FakeHandle(command, args, cwd, cols, rows, on_data, on_exit, self.resize_result)
        self.handles.append(handle)
        return handle

    @property
    def last(self) -> FakeHandle:
        return self.handles[-1]


class RecordingSink:
    """SessionSink that keeps every event in arrival order."""

    def __init__(self) -> None:
        self.events: List[tuple] = []

    def send_output(self, session_id: str, data: bytes) -> None:
        self.events.append(("output", session_id, data))

    def send_exit(self, session_id: str, code: int) -> None:
        self.events.append(("exit", session_id, code))

    def send_detached(self, session_id: str, reason: str) -> None:
        self.events.append(("detached", session_id, reason))

    def of_kind(self, kind: str) -> List[tuple]:
        return [e for e in self.events if e[0] == kind]

    @property
    def output(self) -> bytes:
        return b"".join(e[2] for e in self.events if e[0] == "output")


@pytest.fixture
def backend() -> FakeBackend:
    return FakeBackend()


@pytest.fixture
def sink() -> RecordingSink:
    return RecordingSink()


class StubToolDetector(ToolDetector):
    """ToolDetector whose probe answers from a fixed set of installed commands."""

    def __init__(self, installed: set) -> None:
        super().__init__()
        self.installed = installed

    def check(self, command: str, requires_proot: bool = False) -> ToolAvailability:
        if command in self.installed:
            return ToolAvailability.AVAILABLE
        return ToolAvailability.NOT_INSTALLED


def build_app(instance_path, process_backend: FakeBackend, installed: set = frozenset({"claude"})):
    config = {
        "terminal": {
            "default_cwd": str(instance_path),
            "shutdown_grace": 0.1,
        },
    }
    return create_app(
        instance_path,
        config,
        process_backend=process_backend,
        tool_detector=StubToolDetector(set(installed)),
    )


@pytest.fixture
def client(tmp_path, backend: FakeBackend):
    with TestClient(build_app(tmp_path, backend)) as test_client:
        yield test_client
