"""Terminal session management.

This module hosts long-running shells and CLI tools behind pseudo-terminals
(or pipes where no terminal facility exists) and keeps their output
replayable across client reconnects.

Components:
- SessionRegistry: Registry of all terminal sessions
- TerminalSession: One command instance with its output buffer and sink
- ProcessBackend: Process hosting strategy (PTY, script wrapper, pipes)
"""

from .backend import ProcessBackend, ProcessHandle, create_backend, detect_backend
from .buffer import OutputBuffer
from .registry import SessionRegistry, SpawnParams
from .session import SessionSink, TerminalSession

__all__ = [
    'ProcessBackend',
    'ProcessHandle',
    'create_backend',
    'detect_backend',
    'OutputBuffer',
    'SessionRegistry',
    'SpawnParams',
    'SessionSink',
    'TerminalSession',
]
