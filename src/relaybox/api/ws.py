"""Push transport: a client keeps a WebSocket open and records are sent to it
as soon as they are produced.

The first message must be a JSON object carrying the client key, e.g.
``{"localip": "10.0.0.5"}``. After that, ``{"type": "ping"}`` is answered with
``{"type": "pong"}`` and anything else is ignored.
"""

import json
import logging
from typing import Any

from fastapi import APIRouter, Depends, WebSocket, WebSocketDisconnect
from starlette.websockets import WebSocketState

from relaybox.api.dependencies import get_relay
from relaybox.config import settings
from relaybox.models.schemas import ErrorResponse
from relaybox.relay import InvalidPayloadError, MissingKeyError, RelayService, TransportError
from relaybox.relay.service import KEY_FIELD, validate_key

logger = logging.getLogger(__name__)

router = APIRouter()


class WebSocketChannel:
    def __init__(self, websocket: WebSocket) -> None:
        self.websocket = websocket

    @property
    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )

    async def send(self, record: dict[str, Any]) -> None:
        try:
            await self.websocket.send_json(record)
        except (WebSocketDisconnect, RuntimeError, OSError) as exc:
            raise TransportError(str(exc)) from exc


@router.websocket(settings.ws_path)
async def relay_socket(
    websocket: WebSocket,
    relay: RelayService = Depends(get_relay),
) -> None:
    await websocket.accept()
    channel = WebSocketChannel(websocket)
    key: str | None = None
    try:
        try:
            key = _read_hello(await _receive_text(websocket))
        except (MissingKeyError, InvalidPayloadError) as exc:
            await websocket.send_json(ErrorResponse(message=exc.message).model_dump())
            await websocket.close(code=1008)
            return

        await relay.connect(key, channel)

        while True:
            message = await _receive_text(websocket)
            if message is None:
                logger.debug("Ignoring binary frame from %s", key)
            elif _is_ping(message):
                await websocket.send_json({"type": "pong"})
            else:
                logger.debug("Ignoring message from %s", key)
    except WebSocketDisconnect:
        pass
    finally:
        if key is not None:
            relay.disconnect(key, channel)


async def _receive_text(websocket: WebSocket) -> str | None:
    """Next text frame, or None for a binary frame."""
    message = await websocket.receive()
    if message["type"] == "websocket.disconnect":
        raise WebSocketDisconnect(message.get("code", 1000), message.get("reason"))
    return message.get("text")


def _read_hello(message: str | None) -> str:
    if message is None:
        raise InvalidPayloadError()
    try:
        hello = json.loads(message)
    except ValueError:
        raise InvalidPayloadError()
    if not isinstance(hello, dict):
        raise InvalidPayloadError()
    return validate_key(hello.get(KEY_FIELD))


def _is_ping(message: str) -> bool:
    try:
        payload = json.loads(message)
    except ValueError:
        return False
    return isinstance(payload, dict) and payload.get("type") == "ping"
