"""Stop command implementation"""

import os
import signal
import time

import click
from rich.console import Console

from ..util import (
    get_instance_path,
    is_initialized,
    is_running,
    get_pid_file,
    pid_alive,
    read_pid,
)

console = Console()


def wait_for_exit(pid: int, timeout: float) -> bool:
    """Poll until pid is gone, True if it exited within timeout"""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if not pid_alive(pid):
            return True
        time.sleep(0.2)
    return not pid_alive(pid)


@click.command(name="stop", help="Stop Nomacode server")
@click.argument(
    "path",
    type=click.Path(),
    required=False,
)
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Force kill if graceful shutdown fails",
)
@click.option(
    "--timeout",
    type=float,
    default=10.0,
    show_default=True,
    help="Seconds to wait for graceful shutdown",
)
def stop(path: str = None, force: bool = False, timeout: float = 10.0):
    """Stop Nomacode server

    Steps:
    1. Send SIGTERM (server kills its sessions and exits)
    2. Wait up to `timeout` seconds
    3. If still running and --force, send SIGKILL
    4. Clean up PID file

    Args:
        path: Instance directory path (default: ~/.nomacode)
        force: Force kill if graceful shutdown fails
        timeout: Graceful shutdown wait
    """
    instance_path = get_instance_path(path)

    if not is_initialized(instance_path):
        console.print(
            f"[red]Error: Not initialized at {instance_path}[/red]"
        )
        raise click.Abort()

    if not is_running(instance_path):
        console.print(f"[yellow]Instance not running at {instance_path}[/yellow]")
        return

    pid = read_pid(instance_path)
    console.print(f"Stopping Nomacode (pid {pid})...")

    try:
        os.kill(pid, signal.SIGTERM)
    except ProcessLookupError:
        pass

    if wait_for_exit(pid, timeout):
        get_pid_file(instance_path).unlink(missing_ok=True)
        console.print("[green]✓ Nomacode stopped[/green]")
        return

    if not force:
        console.print(
            f"[red]Error: Server did not exit within {timeout:.0f}s[/red]"
        )
        console.print("[yellow]Retry with --force to kill it[/yellow]")
        raise click.Abort()

    try:
        os.kill(pid, getattr(signal, "SIGKILL", signal.SIGTERM))
    except ProcessLookupError:
        pass
    get_pid_file(instance_path).unlink(missing_ok=True)
    console.print("[yellow]Nomacode force-killed[/yellow]")
