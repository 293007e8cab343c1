"""Push channel: per-connection mailboxes addressed by an opaque recipient id."""
import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from fastapi import WebSocket, WebSocketDisconnect

logger = logging.getLogger(__name__)


@dataclass
class Mailbox:
    """Outgoing event queue for one live push connection."""

    recipient_id: str
    queue: "asyncio.Queue[Dict[str, Any]]" = field(default_factory=asyncio.Queue)


class ProgressChannel:
    """Delivers named events to live recipients. send() never suspends and never raises; unknown or missing ids are dropped.
    Why available: Jobs report progress without caring whether anyone is listening or still connected."""

    def __init__(self):
        self._mailboxes: Dict[str, Mailbox] = {}

    def open(self, recipient_id: Optional[str] = None) -> Mailbox:
        mailbox = Mailbox(recipient_id=recipient_id or uuid.uuid4().hex)
        self._mailboxes[mailbox.recipient_id] = mailbox
        return mailbox

    def close(self, recipient_id: str) -> None:
        self._mailboxes.pop(recipient_id, None)

    def is_connected(self, recipient_id: Optional[str]) -> bool:
        return bool(recipient_id) and recipient_id in self._mailboxes

    def __len__(self) -> int:
        return len(self._mailboxes)

    def send(self, recipient_id: Optional[str], event: str, payload: Dict[str, Any]) -> None:
        if not recipient_id:
            return
        mailbox = self._mailboxes.get(recipient_id)
        if mailbox is None:
            return
        mailbox.queue.put_nowait({"event": event, "data": payload})


async def serve_websocket(channel: ProgressChannel, websocket: WebSocket) -> None:
    """Run one push connection: greet with its recipient id, then forward mailbox events until the client goes away."""
    await websocket.accept()
    mailbox = channel.open()
    logger.info("ws connect %s", mailbox.recipient_id)
    await websocket.send_json({"event": "welcome", "data": {"socketId": mailbox.recipient_id}})

    async def pump() -> None:
        while True:
            message = await mailbox.queue.get()
            await websocket.send_json(message)

    pump_task = asyncio.create_task(pump())
    try:
        # Inbound text and binary frames are ignored; receiving only detects the disconnect.
        while True:
            message = await websocket.receive()
            if message["type"] == "websocket.disconnect":
                break
    except WebSocketDisconnect:
        pass
    finally:
        channel.close(mailbox.recipient_id)
        pump_task.cancel()
        try:
            await pump_task
        except asyncio.CancelledError:
            pass
        except Exception as e:
            logger.debug("ws %s pump stopped: %s", mailbox.recipient_id, e)
        logger.info("ws disconnect %s", mailbox.recipient_id)
