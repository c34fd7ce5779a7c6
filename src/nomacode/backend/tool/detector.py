"""Tool catalog and availability detection.

Sessions can run one of a few coding CLIs instead of the default shell. This
module knows how to resolve a tool id to a command line and whether the
tool's executable is actually runnable on this host.

"Runnable" is stricter than "on PATH": a binary built for another CPU or ABI
(common on Termux/Android) is found by `which` but fails to exec. Such tools
are reported as INCOMPATIBLE instead of AVAILABLE.
"""

import errno
import logging
import os
import re
import shutil
import subprocess
import threading
import time
from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple

from ..enum import ToolAvailability
from ..schema.tool import ToolOut, ToolsOut

logger = logging.getLogger(__name__)

SHELL_TOOL_ID = "shell"


@dataclass(frozen=True)
class ToolInfo:
    """Static description of a launchable tool

    Attributes:
        id: Catalog id used by clients
        name: Display name
        command: Executable name, None for the default shell
        install_cmd: Suggested install command
        description: Short description
        requires_proot: Must run inside proot-distro Ubuntu on Termux
    """
    id: str
    name: str
    command: Optional[str]
    install_cmd: Optional[str]
    description: str
    requires_proot: bool = False


TOOLS: Dict[str, ToolInfo] = {
    "claude-code": ToolInfo(
        id="claude-code",
        name="Claude Code",
        command="claude",
        install_cmd="npm install -g @anthropic-ai/claude-code",
        description="Anthropic's AI coding assistant",
    ),
    "opencode": ToolInfo(
        id="opencode",
        name="OpenCode",
        command="opencode",
        install_cmd="npm install -g opencode-ai",
        description="Open-source AI coding assistant",
        requires_proot=True,
    ),
    "codex": ToolInfo(
        id="codex",
        name="Codex",
        command="codex",
        install_cmd="npm install -g @openai/codex",
        description="OpenAI Codex CLI",
        requires_proot=True,
    ),
    SHELL_TOOL_ID: ToolInfo(
        id=SHELL_TOOL_ID,
        name="Bash Shell",
        command=None,
        install_cmd=None,
        description="Standard terminal shell",
    ),
}

# Preferred default when the client does not pick a tool
DEFAULT_TOOL_PRIORITY = ("claude-code", "opencode", "codex", SHELL_TOOL_ID)

# Failure text produced when a binary cannot run on this CPU/ABI
BINARY_ERROR_SIGNATURES = (
    "Exec format error",
    "cannot execute",
    "e_type",
    "Bad CPU type",
    "not executable",
)

_COMMAND_NAME_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def default_shell() -> str:
    """Platform interactive shell ($SHELL, bash, or powershell on Windows)"""
    shell = os.environ.get("SHELL")
    if shell:
        return shell
    return "powershell.exe" if os.name == "nt" else "bash"


def resolve_command(tool: Optional[str]) -> Tuple[str, List[str]]:
    """Map a tool id to (command, args)

    Unknown ids, None and "shell" all resolve to the default shell.
    """
    info = TOOLS.get(tool) if tool else None
    if info is None or info.command is None:
        return default_shell(), []
    return info.command, []


def is_termux() -> bool:
    return bool(os.environ.get("TERMUX_VERSION"))


def is_binary_error(text: str) -> bool:
    """Check failure text for architecture-mismatch signatures"""
    return any(signature in text for signature in BINARY_ERROR_SIGNATURES)


class ToolDetector:
    """
    Probes tool executables and caches the result.

    Usage:
        detector = ToolDetector()
        report = detector.detect_tools()
        if detector.is_tool_available("codex"):
            ...

    Thread Safety:
        Probing blocks (subprocess calls); call from a worker thread.
        The cache is guarded by a lock.
    """

    def __init__(self, cache_ttl: float = 30.0, probe_timeout: float = 5.0, proot_timeout: float = 10.0):
        self.cache_ttl = cache_ttl
        self.probe_timeout = probe_timeout
        self.proot_timeout = proot_timeout
        self._cache: Optional[ToolsOut] = None
        self._cache_time = 0.0
        self._lock = threading.Lock()

    # ==================== Probing ====================

    def check(self, command: str, requires_proot: bool = False) -> ToolAvailability:
        """Determine whether a command can be run

        Steps:
        1. Reject names that are not plain command names
        2. On Termux, proot tools are looked up inside proot-distro Ubuntu
        3. Not on PATH -> NOT_INSTALLED
        4. Run `<cmd> --version`, then `<cmd> --help`:
           success -> AVAILABLE, architecture error -> INCOMPATIBLE
        5. Both flags failed without an architecture error -> AVAILABLE
           (some tools insist on a subcommand)
        """
        if not _COMMAND_NAME_RE.match(command):
            logger.warning(f"Rejected suspicious command name: {command!r}")
            return ToolAvailability.NOT_INSTALLED

        if requires_proot and is_termux():
            return self._check_in_proot(command)

        if shutil.which(command) is None:
            return ToolAvailability.NOT_INSTALLED

        for flag in ("--version", "--help"):
            try:
                result = subprocess.run(
                    [command, flag],
                    stdin=subprocess.DEVNULL,
                    stdout=subprocess.DEVNULL,
                    stderr=subprocess.PIPE,
                    timeout=self.probe_timeout,
                )
            except FileNotFoundError:
                return ToolAvailability.NOT_INSTALLED
            except subprocess.TimeoutExpired:
                continue
            except OSError as e:
                if e.errno == errno.ENOEXEC or is_binary_error(str(e)):
                    logger.info(f"Tool binary incompatible with this host: {command} ({e})")
                    return ToolAvailability.INCOMPATIBLE
                continue

            if result.returncode == 0:
                return ToolAvailability.AVAILABLE

            stderr = result.stderr.decode("utf-8", errors="replace") if result.stderr else ""
            if is_binary_error(stderr):
                logger.info(f"Tool binary incompatible with this host: {command}")
                return ToolAvailability.INCOMPATIBLE

        return ToolAvailability.AVAILABLE

    def _check_in_proot(self, command: str) -> ToolAvailability:
        if shutil.which("proot-distro") is None:
            return ToolAvailability.NOT_INSTALLED
        try:
            result = subprocess.run(
                ["proot-distro", "login", "ubuntu", "--", "which", command],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                timeout=self.proot_timeout,
            )
        except (OSError, subprocess.TimeoutExpired) as e:
            logger.debug(f"proot-distro lookup failed for {command}: {e}")
            return ToolAvailability.NOT_INSTALLED
        if result.returncode != 0:
            return ToolAvailability.NOT_INSTALLED
        return ToolAvailability.AVAILABLE

    def _probe(self, info: ToolInfo) -> ToolOut:
        if info.command is None:
            availability = ToolAvailability.AVAILABLE
        else:
            availability = self.check(info.command, info.requires_proot)
        return ToolOut(
            id=info.id,
            name=info.name,
            description=info.description,
            install_cmd=info.install_cmd,
            requires_proot=info.requires_proot and is_termux(),
            available=availability is ToolAvailability.AVAILABLE,
            availability=availability,
        )

    # ==================== Queries ====================

    def detect_tools(self) -> ToolsOut:
        """Probe every catalog tool (cached for cache_ttl seconds)"""
        with self._lock:
            now = time.monotonic()
            if self._cache is not None and (now - self._cache_time) < self.cache_ttl:
                return self._cache

            available: List[ToolOut] = []
            unavailable: List[ToolOut] = []
            for info in TOOLS.values():
                tool = self._probe(info)
                (available if tool.available else unavailable).append(tool)

            default = next(
                (tool_id for tool_id in DEFAULT_TOOL_PRIORITY if any(t.id == tool_id for t in available)),
                SHELL_TOOL_ID,
            )
            self._cache = ToolsOut(available=available, unavailable=unavailable, default_tool=default)
            self._cache_time = now

        logger.info(
            f"Tools detected: available={[t.id for t in available]}, "
            f"unavailable={[t.id for t in unavailable]}"
        )
        return self._cache

    def default_tool(self) -> str:
        return self.detect_tools().default_tool

    def is_tool_available(self, tool_id: Optional[str]) -> bool:
        if not tool_id or tool_id == SHELL_TOOL_ID:
            return True
        return any(t.id == tool_id for t in self.detect_tools().available)

    def get_tool(self, tool_id: str) -> Optional[ToolOut]:
        """Return the probed status of one tool, None if not in the catalog"""
        if tool_id not in TOOLS:
            return None
        report = self.detect_tools()
        return next(t for t in [*report.available, *report.unavailable] if t.id == tool_id)

    def clear_cache(self) -> None:
        with self._lock:
            self._cache = None
            self._cache_time = 0.0
