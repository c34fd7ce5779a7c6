"""WebSocket gateway between client connections and terminal sessions"""

from .gateway import GatewayConnection

__all__ = ['GatewayConnection']
