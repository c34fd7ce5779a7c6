"""Process hosting strategies for terminal sessions.

Three interchangeable backends run a command behind a byte-stream interface:

- PtyBackend: real pseudo-terminal (resize, job control, merged output)
- ScriptBackend: command wrapped by the `script` utility, which allocates a
  terminal externally; the wrapped command cannot be resized
- PipeBackend: plain pipes, no terminal semantics; always available

Exactly one backend is used per process. detect_backend() probes the host
once at startup and the resulting instance is handed to the SessionRegistry.

Threading:
- Every spawned process gets a reader thread and a writer thread
- on_data / on_exit callbacks are invoked from the reader thread
- write() only enqueues, so a full PTY or pipe never blocks the caller
"""

import logging
import os
import queue
import shlex
import shutil
import signal
import subprocess
import struct
import sys
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, List, Optional

from ..enum import BackendKind, ResizeResult
from ..exception import BackendUnavailableError, SpawnError

logger = logging.getLogger(__name__)

DataCallback = Callable[[bytes], None]
ExitCallback = Callable[[int], None]

READ_CHUNK_SIZE = 4096

# Exit code reported when the reader fails after a successful spawn
RUNTIME_ERROR_EXIT_CODE = 1


def build_env(env: Optional[Dict[str, str]], cols: int, rows: int) -> Dict[str, str]:
    """Build the environment for a terminal process

    Args:
        env: Caller overrides, applied on top of the server environment
        cols: Initial terminal width
        rows: Initial terminal height

    Returns:
        Full environment dict
    """
    process_env = {**os.environ, **(env or {})}
    process_env["TERM"] = "xterm-256color"
    process_env["COLORTERM"] = "truecolor"
    process_env["COLUMNS"] = str(cols)
    process_env["LINES"] = str(rows)
    return process_env


class ProcessHandle(ABC):
    """
    Running process owned by exactly one Session.

    Lifecycle:
    1. Backend spawns the process and calls start()
    2. Reader thread pushes output to on_data until EOF
    3. Reader thread reaps the process and calls on_exit exactly once
    4. Writer thread drains the input queue, then releases the input fd

    Attributes:
        proc: Underlying subprocess.Popen object
        pid: Process ID of the spawned (or wrapping) process
    """

    def __init__(
        self,
        proc: subprocess.Popen,
        on_data: DataCallback,
        on_exit: ExitCallback,
    ):
        self.proc = proc
        self.pid = proc.pid
        self._on_data = on_data
        self._on_exit = on_exit

        self._write_queue: "queue.Queue[Optional[bytes]]" = queue.Queue()
        self._closed = False
        self._exit_reported = False
        self._exit_lock = threading.Lock()

        self._reader = threading.Thread(
            target=self._read_loop, name=f"nomacode-reader-{self.pid}", daemon=True
        )
        self._writer = threading.Thread(
            target=self._write_loop, name=f"nomacode-writer-{self.pid}", daemon=True
        )

    def start(self) -> None:
        self._reader.start()
        self._writer.start()

    # ==================== Input ====================

    def write(self, data: bytes) -> None:
        """Queue bytes for the process input (never blocks)"""
        if self._closed or not data:
            return
        self._write_queue.put(data)

    def _write_loop(self) -> None:
        broken = False
        try:
            while True:
                data = self._write_queue.get()
                if data is None:
                    break
                if broken:
                    continue
                try:
                    self._write_input(data)
                except OSError as e:
                    # Keep draining until the reader's sentinel, the fd may
                    # still be in use by the reader thread
                    logger.debug(f"Input closed for pid={self.pid}: {e}")
                    broken = True
        finally:
            self._closed = True
            self._close_input()

    @abstractmethod
    def _write_input(self, data: bytes) -> None:
        """Blocking write of one chunk (writer thread only)"""

    @abstractmethod
    def _close_input(self) -> None:
        """Release the input side (writer thread only)"""

    # ==================== Output ====================

    def _read_loop(self) -> None:
        exit_code: Optional[int] = None
        try:
            while True:
                try:
                    data = self._read_output()
                except OSError:
                    # EIO on a PTY master once the child side is closed
                    break
                if not data:
                    break
                self._on_data(data)
            exit_code = self.proc.wait()
        except Exception as e:
            logger.error(f"Reader failed for pid={self.pid}: {e}", exc_info=True)
            self.force_kill()
            exit_code = RUNTIME_ERROR_EXIT_CODE
        finally:
            self._closed = True
            self._write_queue.put(None)
            self._close_output()
            self._report_exit(RUNTIME_ERROR_EXIT_CODE if exit_code is None else exit_code)

    @abstractmethod
    def _read_output(self) -> bytes:
        """Blocking read of the next chunk, b'' on EOF (reader thread only)"""

    def _close_output(self) -> None:
        """Release the output side (reader thread only)"""

    def _report_exit(self, code: int) -> None:
        with self._exit_lock:
            if self._exit_reported:
                return
            self._exit_reported = True
        logger.info(f"Process exited: pid={self.pid}, code={code}")
        try:
            self._on_exit(code)
        except Exception as e:
            logger.error(f"Error in exit callback for pid={self.pid}: {e}", exc_info=True)

    # ==================== Control ====================

    def resize(self, cols: int, rows: int) -> ResizeResult:
        return ResizeResult.UNSUPPORTED

    @property
    def kill_signal(self) -> int:
        return signal.SIGTERM

    def kill(self) -> int:
        """Send the termination signal without waiting

        Returns:
            The signal number sent
        """
        sig = self.kill_signal
        self._signal(sig)
        return sig

    def force_kill(self) -> None:
        self._signal(getattr(signal, "SIGKILL", signal.SIGTERM))

    def _signal(self, sig: int) -> None:
        if self.proc.poll() is not None:
            return
        try:
            if os.name == "posix":
                # Spawned with start_new_session, so the group id is the pid
                os.killpg(self.pid, sig)
            else:
                self.proc.send_signal(sig)
        except (ProcessLookupError, PermissionError):
            logger.debug(f"Process already gone: pid={self.pid}")

    def wait(self, timeout: Optional[float] = None) -> Optional[int]:
        """Wait for the process, returns exit code or None on timeout"""
        try:
            return self.proc.wait(timeout=timeout)
        except subprocess.TimeoutExpired:
            return None


class PtyProcessHandle(ProcessHandle):
    """Process attached to the slave side of a pseudo-terminal"""

    def __init__(self, proc, master_fd: int, on_data, on_exit):
        self.master_fd = master_fd
        self._fd_lock = threading.Lock()
        super().__init__(proc, on_data, on_exit)

    def _read_output(self) -> bytes:
        return os.read(self.master_fd, READ_CHUNK_SIZE)

    def _write_input(self, data: bytes) -> None:
        view = memoryview(data)
        while view:
            written = os.write(self.master_fd, view)
            view = view[written:]

    def _close_input(self) -> None:
        # The reader is finished before the writer receives its sentinel,
        # so the master fd is released here, once.
        with self._fd_lock:
            if self.master_fd >= 0:
                try:
                    os.close(self.master_fd)
                except OSError:
                    pass
                self.master_fd = -1

    def resize(self, cols: int, rows: int) -> ResizeResult:
        with self._fd_lock:
            if self.master_fd < 0:
                return ResizeResult.OK
            set_winsize(self.master_fd, cols, rows)
        return ResizeResult.OK

    @property
    def kill_signal(self) -> int:
        # Interactive shells ignore SIGTERM, hangup is what a closed terminal sends
        return signal.SIGHUP


class PipeProcessHandle(ProcessHandle):
    """Process connected through stdin/stdout pipes (stderr merged)"""

    def _read_output(self) -> bytes:
        return os.read(self.proc.stdout.fileno(), READ_CHUNK_SIZE)

    def _write_input(self, data: bytes) -> None:
        self.proc.stdin.write(data)
        self.proc.stdin.flush()

    def _close_input(self) -> None:
        try:
            self.proc.stdin.close()
        except OSError:
            pass

    def _close_output(self) -> None:
        try:
            self.proc.stdout.close()
        except OSError:
            pass


def set_winsize(fd: int, cols: int, rows: int) -> None:
    """Apply terminal dimensions with TIOCSWINSZ"""
    import fcntl
    import termios

    # Pack window size: (rows, cols, xpixel, ypixel)
    winsize = struct.pack("HHHH", rows, cols, 0, 0)
    fcntl.ioctl(fd, termios.TIOCSWINSZ, winsize)


class ProcessBackend(ABC):
    """
    Strategy for running a command with a byte-stream interface.

    All backends expose the same spawn() so a Session never needs to know
    which one is active. Capability differences are explicit: supports_resize
    tells callers whether resize() can ever return ResizeResult.OK.
    """

    kind: BackendKind
    supports_resize: bool = False

    @abstractmethod
    def spawn(
        self,
        command: str,
        args: List[str],
        cwd: str,
        env: Optional[Dict[str, str]],
        cols: int,
        rows: int,
        on_data: DataCallback,
        on_exit: ExitCallback,
    ) -> ProcessHandle:
        """Start a process and return its handle

        Raises:
            SpawnError: If the executable or working directory is unusable
        """

    def _popen(self, argv: List[str], **kwargs) -> subprocess.Popen:
        try:
            return subprocess.Popen(argv, **kwargs)
        except FileNotFoundError as e:
            raise SpawnError(f"Command or directory not found: {e.filename or argv[0]}") from e
        except PermissionError as e:
            raise SpawnError(f"Permission denied: {e.filename or argv[0]}") from e
        except OSError as e:
            raise SpawnError(f"Failed to start {argv[0]}: {e}") from e

    def __repr__(self) -> str:
        return f"<{type(self).__name__} kind={self.kind.value}>"


class PtyBackend(ProcessBackend):
    """Full pseudo-terminal backend"""

    kind = BackendKind.PTY
    supports_resize = True

    def spawn(self, command, args, cwd, env, cols, rows, on_data, on_exit) -> ProcessHandle:
        import pty

        master_fd, slave_fd = pty.openpty()
        try:
            set_winsize(slave_fd, cols, rows)
            proc = self._popen(
                [command, *args],
                stdin=slave_fd,
                stdout=slave_fd,
                stderr=slave_fd,
                cwd=cwd,
                env=build_env(env, cols, rows),
                start_new_session=True,  # New process group for tree-killing
                preexec_fn=_acquire_controlling_tty,
            )
        except BaseException:
            os.close(master_fd)
            raise
        finally:
            # Parent always closes slave fd
            os.close(slave_fd)

        handle = PtyProcessHandle(proc, master_fd, on_data, on_exit)
        handle.start()
        logger.info(f"PTY process started: pid={proc.pid}, cmd={command}, cwd={cwd}")
        return handle


def _acquire_controlling_tty() -> None:
    """Make stdin (the PTY slave) the controlling terminal of the new session

    Runs in the child between fork and exec, after setsid().
    """
    import fcntl
    import termios

    tiocsctty = getattr(termios, "TIOCSCTTY", None)
    if tiocsctty is not None:
        fcntl.ioctl(0, tiocsctty, 0)


class ScriptBackend(ProcessBackend):
    """Pseudo-terminal through the external `script` utility

    The wrapped command gets a terminal, but its size is fixed by the
    COLUMNS/LINES given at spawn time.
    """

    kind = BackendKind.SCRIPT
    supports_resize = False

    def __init__(self, script_binary: str = "script"):
        self.script_binary = script_binary

    def build_argv(self, command: str, args: List[str]) -> List[str]:
        if sys.platform.startswith("linux"):
            return [self.script_binary, "-q", "-c", shlex.join([command, *args]), "/dev/null"]
        # BSD / macOS syntax: script [-q] file command ...
        return [self.script_binary, "-q", "/dev/null", command, *args]

    def spawn(self, command, args, cwd, env, cols, rows, on_data, on_exit) -> ProcessHandle:
        proc = self._popen(
            self.build_argv(command, args),
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            cwd=cwd,
            env=build_env(env, cols, rows),
            start_new_session=True,
        )
        handle = PipeProcessHandle(proc, on_data, on_exit)
        handle.start()
        logger.info(f"script-wrapped process started: pid={proc.pid}, cmd={command}, cwd={cwd}")
        return handle


class PipeBackend(ProcessBackend):
    """Direct pipe fallback, no terminal semantics at all"""

    kind = BackendKind.PIPE
    supports_resize = False

    def spawn(self, command, args, cwd, env, cols, rows, on_data, on_exit) -> ProcessHandle:
        proc = self._popen(
            [command, *args],
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            cwd=cwd,
            env=build_env(env, cols, rows),
            start_new_session=os.name == "posix",
        )
        handle = PipeProcessHandle(proc, on_data, on_exit)
        handle.start()
        logger.info(f"Pipe process started: pid={proc.pid}, cmd={command}, cwd={cwd}")
        return handle


# ==================== Capability Detection ====================


def pty_supported() -> bool:
    """Check whether this platform can allocate a pseudo-terminal"""
    if os.name != "posix":
        return False
    try:
        import pty

        master_fd, slave_fd = pty.openpty()
    except (ImportError, OSError) as e:
        logger.debug(f"PTY allocation unavailable: {e}")
        return False
    os.close(master_fd)
    os.close(slave_fd)
    return True


def script_supported() -> bool:
    """Check whether the `script` terminal wrapper is installed"""
    return os.name == "posix" and shutil.which("script") is not None


def detect_backend(preference: str = "auto") -> BackendKind:
    """Select the process backend, first match wins

    Args:
        preference: "auto" to probe, or a BackendKind value to force one

    Returns:
        Selected backend kind

    Raises:
        BackendUnavailableError: If a forced backend cannot run here
    """
    if preference and preference != "auto":
        try:
            kind = BackendKind(preference)
        except ValueError:
            raise BackendUnavailableError(f"Unknown terminal backend: {preference}")
        if kind is BackendKind.PTY and not pty_supported():
            raise BackendUnavailableError("PTY backend requested but not supported on this platform")
        if kind is BackendKind.SCRIPT and not script_supported():
            raise BackendUnavailableError("script backend requested but `script` is not installed")
        logger.info(f"Terminal backend forced by configuration: {kind.value}")
        return kind

    if pty_supported():
        kind = BackendKind.PTY
    elif script_supported():
        kind = BackendKind.SCRIPT
    else:
        kind = BackendKind.PIPE

    logger.info(f"Terminal backend detected: {kind.value}")
    return kind


def create_backend(kind: BackendKind) -> ProcessBackend:
    """Instantiate the backend for a detected kind"""
    if kind is BackendKind.PTY:
        return PtyBackend()
    if kind is BackendKind.SCRIPT:
        return ScriptBackend()
    return PipeBackend()
