"""Start command implementation"""

import os
import shutil
import subprocess
import threading
import webbrowser

import click
from rich.console import Console

from ..util import (
    get_instance_info,
    get_instance_path,
    is_initialized,
    is_running,
    get_pid_file,
    load_config,
)

console = Console()


def open_browser(url: str) -> None:
    """Open url on the device, Termux first, then the desktop browser"""
    if shutil.which("termux-open-url"):
        try:
            subprocess.run(["termux-open-url", url], check=True, timeout=10)
            return
        except (OSError, subprocess.SubprocessError):
            pass
    webbrowser.open(url)


@click.command(name="start", help="Start Nomacode server")
@click.argument(
    "path",
    type=click.Path(),
    required=False,
)
@click.option("--host", default=None, help="Bind address (overrides config)")
@click.option("--port", "-p", type=int, default=None, help="Port to listen on (overrides config)")
@click.option("--no-open", "no_open", is_flag=True, help="Don't open the browser")
def start(path: str = None, host: str = None, port: int = None, no_open: bool = False):
    """Start Nomacode server in the foreground

    Args:
        path: Instance directory path (default: ~/.nomacode)
        host: Bind address
        port: Listen port
        no_open: Skip opening the browser
    """
    instance_path = get_instance_path(path)

    if not is_initialized(instance_path):
        console.print(
            f"[red]Error: Not initialized at {instance_path}[/red]"
        )
        console.print(
            f"[yellow]Run: nomacode init {path if path else ''}[/yellow]"
        )
        raise click.Abort()

    if is_running(instance_path):
        console.print(
            f"[red]Error: Instance already running[/red]"
        )
        console.print(f"[yellow]Location: {instance_path}[/yellow]")
        raise click.Abort()

    try:
        config = load_config(instance_path)
    except Exception as e:
        console.print(f"[red]Error loading config: {e}[/red]")
        raise click.Abort()

    server_config = config.get('server', {})
    host = host or server_config.get('host', '127.0.0.1')
    port = port or server_config.get('port', 3000)
    url = f"http://{'localhost' if host in ('127.0.0.1', '0.0.0.0') else host}:{port}"

    console.print(f"[cyan]Starting Nomacode from {instance_path}[/cyan]")
    info = get_instance_info(instance_path)
    console.print(f"[dim]Initialized: {info.get('initialized_at', 'unknown')}[/dim]")
    console.print(f"[cyan]Server: {url}[/cyan]")
    console.print(f"[cyan]Docs: {url}/docs[/cyan]")
    console.print("[dim]Press Ctrl+C to stop[/dim]")
    console.print("")

    import uvicorn
    from nomacode.backend.app import create_app

    from nomacode.backend.exception import NomacodeException

    try:
        app = create_app(instance_path, config)
    except NomacodeException as e:
        console.print(f"[red]Error: {e.message}[/red]")
        raise click.Abort()

    pid_file = get_pid_file(instance_path)
    pid_file.write_text(str(os.getpid()))

    if not no_open:
        threading.Timer(0.5, open_browser, args=(url,)).start()

    try:
        uvicorn.run(
            app,
            host=host,
            port=port,
        )
    finally:
        # Clean up PID file when server stops
        pid_file.unlink(missing_ok=True)
