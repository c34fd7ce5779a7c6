"""CLI command package"""

from .init import init
from .start import start
from .stop import stop

__all__ = ["init", "start", "stop"]
