"""Session registry coordinating all terminal sessions.

This module provides centralized management of terminal sessions, handling:
- Session lifecycle (creation, lookup, deletion)
- Concurrency-safe registry of sessions keyed by session id
- Process-wide shutdown with a bounded grace period
"""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from ..exception import SessionConflictError
from ..schema.session import SessionSummary
from .backend import ProcessBackend
from .buffer import DEFAULT_BUFFER_SIZE
from .session import TerminalSession

logger = logging.getLogger(__name__)

DEFAULT_SHUTDOWN_GRACE = 3.0


@dataclass
class SpawnParams:
    """Resolved parameters for starting a session process

    Attributes:
        command: Executable to run
        args: Arguments for the executable
        cwd: Absolute working directory
        tool: Tool id the command was resolved from, None for the default shell
        cols: Initial terminal width
        rows: Initial terminal height
        env: Extra environment variables
    """
    command: str
    args: List[str]
    cwd: str
    tool: Optional[str] = None
    cols: int = 80
    rows: int = 24
    env: Dict[str, str] = field(default_factory=dict)


class SessionRegistry:
    """
    Registry of all terminal sessions in this process.

    The process backend is chosen once at startup and passed in here; every
    session created by this registry runs on it.

    Entries are only removed by delete(). A session whose process exits stays
    registered (status STOPPED) so clients can still inspect or close it.

    Thread Safety:
    - self._lock guards the session dict and pending id reservations
    - Per-session state is guarded by each TerminalSession's own lock

    Attributes:
        backend: Process backend used for every session
        buffer_size: Output buffer cap (bytes) for new sessions
    """

    def __init__(self, backend: ProcessBackend, buffer_size: int = DEFAULT_BUFFER_SIZE):
        self.backend = backend
        self.buffer_size = buffer_size
        self._sessions: Dict[str, TerminalSession] = {}
        self._pending: set = set()
        self._lock = threading.Lock()

        logger.info(f"SessionRegistry initialized: backend={backend.kind.value}, buffer_size={buffer_size}")

    def create(self, session_id: str, params: SpawnParams) -> TerminalSession:
        """
        Create and start a new session.

        Steps:
        1. Reserve session_id (conflict if registered or being created)
        2. Spawn the process through the backend
        3. Register the session

        Args:
            session_id: Unique session identifier (caller-chosen, e.g. a UUID)
            params: Resolved spawn parameters

        Returns:
            The running session

        Raises:
            SessionConflictError: If session_id is already in use
            SpawnError: If the process could not be started (nothing registered)
        """
        with self._lock:
            if session_id in self._sessions or session_id in self._pending:
                raise SessionConflictError(f"Session already exists: {session_id}")
            self._pending.add(session_id)

        try:
            session = TerminalSession(
                session_id=session_id,
                command=params.command,
                args=params.args,
                cwd=params.cwd,
                backend=self.backend,
                tool=params.tool,
                cols=params.cols,
                rows=params.rows,
                env=params.env,
                buffer_size=self.buffer_size,
            )
            session.start()
            with self._lock:
                self._sessions[session_id] = session
        finally:
            with self._lock:
                self._pending.discard(session_id)

        logger.info(f"[SessionRegistry] Session created: session_id={session_id}, pid={session.pid}")
        return session

    def get(self, session_id: str) -> Optional[TerminalSession]:
        with self._lock:
            return self._sessions.get(session_id)

    def list(self) -> List[SessionSummary]:
        with self._lock:
            sessions = list(self._sessions.values())
        return [s.summary() for s in sessions]

    def delete(self, session_id: str) -> bool:
        """
        Kill (if running) and remove a session.

        Returns:
            False if session_id is unknown, True otherwise
        """
        with self._lock:
            session = self._sessions.pop(session_id, None)

        if session is None:
            logger.debug(f"[SessionRegistry] Session not found: session_id={session_id}")
            return False

        session.kill()
        logger.info(f"[SessionRegistry] Session deleted: session_id={session_id}")
        return True

    def kill_all(self, grace: float = DEFAULT_SHUTDOWN_GRACE) -> None:
        """
        Terminate every running session process. Called on shutdown.

        Entries stay registered. Processes still alive after the grace period
        are force-killed so no children are left orphaned.

        Note:
            Blocks for up to `grace` seconds; run it in an executor from async code.
        """
        with self._lock:
            sessions = list(self._sessions.values())

        if not sessions:
            logger.debug("[SessionRegistry] No sessions to kill")
            return

        logger.info(f"[SessionRegistry] Killing {len(sessions)} sessions")

        for session in sessions:
            try:
                session.kill()
            except Exception as e:
                logger.error(f"Error killing session {session.session_id}: {e}")

        deadline = time.monotonic() + grace
        for session in sessions:
            remaining = max(0.0, deadline - time.monotonic())
            if session.wait(timeout=remaining) is None:
                logger.warning(
                    f"[SessionRegistry] Session did not exit within grace period, forcing: "
                    f"session_id={session.session_id}, pid={session.pid}"
                )
                session.force_kill()

        logger.info("[SessionRegistry] All sessions killed")

    def __len__(self) -> int:
        with self._lock:
            return len(self._sessions)

    def __contains__(self, session_id: str) -> bool:
        with self._lock:
            return session_id in self._sessions
