"""CLI utility functions"""

import json
import os
from pathlib import Path

INSTANCE_FLAG_FILE = ".nomacode_instance"
PID_FILE = ".nomacode.pid"


def get_instance_path(path: str | None = None) -> Path:
    """Get instance path, default to ~/.nomacode

    Args:
        path: Custom path (relative or absolute), None for default

    Returns:
        Resolved absolute path
    """
    if path is None:
        return Path.home() / ".nomacode"
    return Path(path).expanduser().resolve()


def is_initialized(instance_path: Path) -> bool:
    """Check if instance is initialized (flag file exists)"""
    return (instance_path / INSTANCE_FLAG_FILE).exists()


def get_instance_info(instance_path: Path) -> dict:
    """Get instance metadata

    Raises:
        FileNotFoundError: If not initialized
    """
    flag_file = instance_path / INSTANCE_FLAG_FILE
    if not flag_file.exists():
        raise FileNotFoundError(
            f"Instance not initialized at {instance_path}"
        )

    with open(flag_file, "r") as f:
        return json.load(f)


def load_config(instance_path: Path) -> dict:
    """Load config.toml

    Args:
        instance_path: Instance directory path

    Returns:
        Configuration dict
    """
    import tomli

    config_file = instance_path / "config.toml"
    with open(config_file, "rb") as f:
        return tomli.load(f)


def get_pid_file(instance_path: Path) -> Path:
    return instance_path / PID_FILE


def read_pid(instance_path: Path) -> int | None:
    """Read the server PID, None if missing or unreadable"""
    pid_file = get_pid_file(instance_path)
    try:
        return int(pid_file.read_text().strip())
    except (FileNotFoundError, ValueError):
        return None


def pid_alive(pid: int) -> bool:
    if os.name != "posix":
        # Signal 0 is only a liveness probe on POSIX
        return True
    try:
        os.kill(pid, 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        return True
    return True


def is_running(instance_path: Path) -> bool:
    """Check if instance is running

    A PID file whose process is gone is stale and gets removed.
    """
    pid = read_pid(instance_path)
    if pid is None:
        return False
    if pid_alive(pid):
        return True
    get_pid_file(instance_path).unlink(missing_ok=True)
    return False
