"""Nomacode CLI entry point"""

import click

from .command.init import init
from .command.start import start
from .command.stop import stop


@click.group(
    name="nomacode",
    help="Nomacode - Code anywhere, like a local",
)
@click.version_option(package_name="nomacode")
def main():
    """Main CLI entry point"""
    pass


# Register commands
main.add_command(init)
main.add_command(start)
main.add_command(stop)


if __name__ == "__main__":
    main()
