"""Enumeration types for backend"""
from enum import Enum


class SessionStatus(str, Enum):
    """Terminal session status enumeration

    RUNNING: The backing process is alive and accepts input.
    STOPPED: The process exited or was killed. Terminal state, a stopped
             session never returns to RUNNING.
    """
    RUNNING = "running"
    STOPPED = "stopped"


class BackendKind(str, Enum):
    """Process hosting strategy

    Exactly one strategy is active per process, chosen once at startup.

    PTY: Real pseudo-terminal allocated with the pty module
    SCRIPT: Command wrapped by the external `script` utility, which allocates
            a terminal on our behalf
    PIPE: Plain stdin/stdout pipes without terminal semantics
    """
    PTY = "pty"
    SCRIPT = "script"
    PIPE = "pipe"


class ResizeResult(str, Enum):
    """Outcome of a resize request

    UNSUPPORTED is not an error: the caller treats it as handled.
    """
    OK = "ok"
    UNSUPPORTED = "unsupported"


class ToolAvailability(str, Enum):
    """Result of probing a tool executable"""
    AVAILABLE = "available"
    NOT_INSTALLED = "not_installed"
    INCOMPATIBLE = "incompatible"  # Installed but built for another CPU/ABI


class GatewayMessageType(str, Enum):
    """WebSocket message types exchanged with terminal clients"""
    # Client -> server
    ATTACH = "attach"
    INPUT = "input"
    RESIZE = "resize"
    DETACH = "detach"

    # Server -> client
    OUTPUT = "output"
    EXIT = "exit"
    ERROR = "error"
    DETACHED = "detached"
