"""Nomacode - code anywhere, like a local"""

__version__ = "0.1.0"
