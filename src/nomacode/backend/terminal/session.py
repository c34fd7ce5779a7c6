"""Terminal session: one running or stopped command instance.

A TerminalSession owns its process handle, a rolling output buffer and at
most one attached sink (the client connection currently receiving output).

State machine:
    RUNNING --(process exit | kill())--> STOPPED

STOPPED is terminal. Both transitions record the exit code, deliver an exit
event to the attached sink and clear the sink.
"""

import logging
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional, Protocol

from ..enum import ResizeResult, SessionStatus
from ..schema.session import SessionSummary
from .backend import ProcessBackend, ProcessHandle
from .buffer import DEFAULT_BUFFER_SIZE, OutputBuffer

logger = logging.getLogger(__name__)

DETACH_REASON_ATTACHED_ELSEWHERE = "attached-elsewhere"


class SessionSink(Protocol):
    """Delivery target for a session's events

    Implementations must be thread-safe and must not block: the methods are
    called from backend reader threads while the session lock is held.
    """

    def send_output(self, session_id: str, data: bytes) -> None: ...

    def send_exit(self, session_id: str, code: int) -> None: ...

    def send_detached(self, session_id: str, reason: str) -> None: ...


class TerminalSession:
    """
    A command hosted by the process backend, with replayable output.

    Threading:
    - on-data and on-exit callbacks arrive on the backend reader thread
    - attach/detach/write/resize/kill arrive from connection handlers
    - self._lock serializes status transitions, sink swaps and buffer appends,
      so a replay sent on attach always precedes later live output

    Attributes:
        session_id: Unique session identifier
        command: Executable started for this session
        args: Arguments passed to the executable
        cwd: Absolute working directory
        tool: Requested tool id, or None for the default shell
        created_at: Creation timestamp (UTC)
        cols: Last requested terminal width
        rows: Last requested terminal height
        buffer: Rolling output buffer
    """

    def __init__(
        self,
        session_id: str,
        command: str,
        args: List[str],
        cwd: str,
        backend: ProcessBackend,
        tool: Optional[str] = None,
        cols: int = 80,
        rows: int = 24,
        env: Optional[Dict[str, str]] = None,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ):
        self.session_id = session_id
        self.command = command
        self.args = list(args)
        self.cwd = cwd
        self.tool = tool
        self.env = dict(env or {})
        self.cols = cols
        self.rows = rows
        self.created_at = datetime.now(timezone.utc)
        self.buffer = OutputBuffer(buffer_size)

        self._backend = backend
        self._handle: Optional[ProcessHandle] = None
        self._status = SessionStatus.RUNNING
        self._exit_code: Optional[int] = None
        self._sink: Optional[SessionSink] = None
        self._lock = threading.Lock()

    def start(self) -> None:
        """Spawn the backing process

        Raises:
            SpawnError: If the process could not be started
        """
        logger.info(
            f"[TerminalSession] Starting: session_id={self.session_id}, "
            f"command={self.command}, cwd={self.cwd}, backend={self._backend.kind.value}, "
            f"buffer_bytes={self.buffer.max_bytes}"
        )
        self._handle = self._backend.spawn(
            self.command,
            self.args,
            self.cwd,
            self.env,
            self.cols,
            self.rows,
            on_data=self._on_data,
            on_exit=self._on_exit,
        )

    # ==================== Backend Callbacks ====================

    def _on_data(self, data: bytes) -> None:
        with self._lock:
            if self._status is not SessionStatus.RUNNING:
                return
            self.buffer.append(data)
            if self._sink is not None:
                self._sink.send_output(self.session_id, data)

    def _on_exit(self, code: int) -> None:
        with self._lock:
            self._stop_locked(code)

    def _stop_locked(self, code: int) -> bool:
        if self._status is SessionStatus.STOPPED:
            return False
        self._status = SessionStatus.STOPPED
        self._exit_code = code
        sink, self._sink = self._sink, None
        logger.info(
            f"[TerminalSession] Stopped: session_id={self.session_id}, exit_code={code}, "
            f"output_bytes={self.buffer.total_bytes}"
        )
        if sink is not None:
            sink.send_exit(self.session_id, code)
        return True

    # ==================== Client Operations ====================

    def attach(self, sink: SessionSink) -> None:
        """Replay buffered output to sink and make it the live sink

        A previously attached sink is displaced and told so. Attaching to a
        stopped session replays the buffer followed by the exit event.
        """
        with self._lock:
            previous = self._sink
            if previous is not None and previous is not sink:
                logger.info(f"[TerminalSession] Sink displaced: session_id={self.session_id}")
                previous.send_detached(self.session_id, DETACH_REASON_ATTACHED_ELSEWHERE)

            replay = self.buffer.snapshot()
            if replay:
                sink.send_output(self.session_id, replay)

            if self._status is SessionStatus.RUNNING:
                self._sink = sink
            else:
                self._sink = None
                sink.send_exit(self.session_id, self._exit_code)

        logger.debug(
            f"[TerminalSession] Attached: session_id={self.session_id}, replay_bytes={len(replay)}"
        )

    def detach(self, sink: SessionSink) -> bool:
        """Clear sink if it is still the attached one"""
        with self._lock:
            if self._sink is sink:
                self._sink = None
                logger.debug(f"[TerminalSession] Detached: session_id={self.session_id}")
                return True
            return False

    def write(self, data: bytes) -> bool:
        """Forward input to the process, dropped when not running"""
        with self._lock:
            if self._status is not SessionStatus.RUNNING or self._handle is None:
                return False
            self._handle.write(data)
            return True

    def resize(self, cols: int, rows: int) -> ResizeResult:
        with self._lock:
            if self._status is not SessionStatus.RUNNING or self._handle is None:
                return ResizeResult.UNSUPPORTED
            self.cols, self.rows = cols, rows
            handle = self._handle

        try:
            result = handle.resize(cols, rows)
        except OSError as e:
            logger.warning(f"[TerminalSession] Resize failed: session_id={self.session_id}, error={e}")
            return ResizeResult.UNSUPPORTED

        logger.debug(
            f"[TerminalSession] Resized: session_id={self.session_id}, "
            f"cols={cols}, rows={rows}, result={result.value}"
        )
        return result

    def kill(self) -> bool:
        """Terminate the process without waiting for it

        The session is STOPPED on return; the exit code is the negated signal
        number, matching subprocess returncode convention.

        Returns:
            False if the session was already stopped
        """
        with self._lock:
            if self._status is SessionStatus.STOPPED:
                return False
            sig = self._handle.kill() if self._handle is not None else 0
            return self._stop_locked(-int(sig))

    # ==================== Shutdown Helpers ====================

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        """Wait for the OS process to go away (no-op if never started)"""
        if self._handle is None:
            return self._exit_code
        return self._handle.wait(timeout)

    def force_kill(self) -> None:
        if self._handle is not None:
            self._handle.force_kill()

    # ==================== Introspection ====================

    @property
    def status(self) -> SessionStatus:
        return self._status

    @property
    def exit_code(self) -> Optional[int]:
        return self._exit_code

    @property
    def running(self) -> bool:
        return self._status is SessionStatus.RUNNING

    @property
    def pid(self) -> Optional[int]:
        return self._handle.pid if self._handle is not None else None

    @property
    def attached(self) -> bool:
        return self._sink is not None

    def has_sink(self, sink: SessionSink) -> bool:
        with self._lock:
            return self._sink is sink

    def summary(self) -> SessionSummary:
        with self._lock:
            return SessionSummary(
                id=self.session_id,
                pid=self.pid,
                tool=self.tool,
                cwd=self.cwd,
                status=self._status,
                created_at=self.created_at,
                exit_code=self._exit_code,
            )
