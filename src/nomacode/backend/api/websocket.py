"""WebSocket API for terminal interaction"""

import logging

from fastapi import APIRouter, WebSocket

from ..websocket.gateway import GatewayConnection

logger = logging.getLogger(__name__)

router = APIRouter(tags=["WebSocket"])


@router.websocket("/ws")
async def websocket_terminal_endpoint(websocket: WebSocket):
    """
    Terminal WebSocket endpoint.

    Each connection streams at most one session at a time. See
    nomacode.backend.schema.gateway for the message contract.

    Connection close behaves like an explicit detach, so a client that
    vanishes never leaves a dangling sink on its session.
    """
    registry = websocket.app.state.session_registry

    await websocket.accept()
    connection = GatewayConnection(websocket, registry)
    await connection.start()

    try:
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                logger.info(f"Connection {connection.connection_id} disconnected")
                break

            text = message.get("text")
            if text is None and message.get("bytes") is not None:
                text = message["bytes"].decode("utf-8", errors="replace")
            if text is None:
                continue

            try:
                await connection.handle_text(text)
            except Exception as e:
                # One bad frame must not drop the connection or its attachment
                logger.error(
                    f"Failed to handle frame on connection {connection.connection_id}: {e}",
                    exc_info=True
                )

    except Exception as e:
        logger.error(
            f"Unexpected error in WebSocket connection {connection.connection_id}: {e}",
            exc_info=True
        )
    finally:
        await connection.close()
