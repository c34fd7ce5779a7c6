"""Init command implementation"""

import json
from datetime import datetime

import click
from rich.console import Console

from ..util import INSTANCE_FLAG_FILE, get_instance_path, is_initialized

console = Console()

DEFAULT_CONFIG = """[server]
host = "127.0.0.1"
port = 3000

[cors]
allow_origins = ["http://localhost:3000", "http://127.0.0.1:3000"]
allow_credentials = true
allow_methods = ["*"]
allow_headers = ["*"]

[terminal]
# auto | pty | script | pipe
backend = "auto"
# Bytes of output kept per session for replay on reattach
buffer_size = 50000
# Seconds to wait for session processes on shutdown before SIGKILL
shutdown_grace = 3.0
# Working directory for new sessions (empty: home directory)
default_cwd = ""

[logging]
# Level for nomacode records in logs/nomacode.log (DEBUG, INFO, WARNING, ...)
level = "INFO"
# Days of rotated log files kept
backup_count = 14
"""


def initialize_instance(instance_path) -> None:
    """Create instance directories, default config and flag file"""
    instance_path.mkdir(parents=True, exist_ok=True)
    (instance_path / "logs").mkdir(exist_ok=True)

    config_file = instance_path / "config.toml"
    if not config_file.exists():
        config_file.write_text(DEFAULT_CONFIG)

    flag_data = {
        "initialized_at": datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        "instance_path": str(instance_path),
    }
    with open(instance_path / INSTANCE_FLAG_FILE, "w") as f:
        json.dump(flag_data, f, indent=2)


@click.command(name="init", help="Initialize a new Nomacode instance")
@click.argument(
    "path",
    type=click.Path(),
    required=False,
)
def init(path: str = None):
    """Initialize a new Nomacode instance

    Args:
        path: Instance directory path (default: ~/.nomacode)
    """
    instance_path = get_instance_path(path)

    if is_initialized(instance_path):
        console.print(
            f"[red]Error: Already initialized at {instance_path}[/red]"
        )
        raise click.Abort()

    if instance_path.exists() and any(instance_path.iterdir()):
        console.print(
            f"[red]Error: Directory is not empty: {instance_path}[/red]"
        )
        raise click.Abort()

    console.print(f"Initializing Nomacode instance at {instance_path}")
    initialize_instance(instance_path)

    console.print("")
    console.print("[green]✓ Nomacode instance initialized successfully![/green]")
    console.print("")
    console.print(f"Location: {instance_path}")
    console.print(f"Config: {instance_path / 'config.toml'}")
    console.print("")
    console.print("Next step:")
    console.print(f"  nomacode start {path if path else ''}".rstrip())
