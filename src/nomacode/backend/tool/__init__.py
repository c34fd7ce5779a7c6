"""Tool catalog and availability detection"""

from .detector import TOOLS, ToolDetector, ToolInfo, default_shell, resolve_command

__all__ = ['TOOLS', 'ToolDetector', 'ToolInfo', 'default_shell', 'resolve_command']
