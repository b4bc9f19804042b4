"""
Chat client module.

This module handles client-side chat messaging: sending envelopes,
reading the server's envelope stream and tracking who is online or typing.
"""

import asyncio
from datetime import datetime
from typing import Callable, List, Optional, Set

from common.constants import MessageTypes
from common.protocol_definitions import (
    Envelope, EnvelopeDecodeError, encode_envelope, decode_envelope,
    create_join_message, create_chat_message, create_private_message,
    create_typing_message, create_stop_typing_message
)
from client.utils.logger import logger


def format_envelope(envelope: Envelope) -> Optional[str]:
    """Render an envelope as one display line, or None if it has no visible form."""
    when = datetime.fromtimestamp(envelope.ts).strftime('%H:%M:%S')
    msg_type = envelope.type

    if msg_type == MessageTypes.MSG:
        return f"[{when}] {envelope.sender}: {envelope.text or ''}"
    if msg_type == MessageTypes.PM:
        return f"[{when}] [PM] {envelope.sender} -> {envelope.to}: {envelope.text or ''}"
    if msg_type in (MessageTypes.JOIN, MessageTypes.LEAVE):
        text = envelope.text or f"{envelope.sender} {'joined' if msg_type == MessageTypes.JOIN else 'left'}"
        return f"[{when}] * {text}"
    if msg_type == MessageTypes.SYS:
        return f"[{when}] [SYS] {envelope.text or ''}"
    return None


class ChatClient:
    """Client-side chat functionality."""

    def __init__(self, host: str, port: int, username: str):
        self.host = host
        self.port = port
        self.username = username
        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None

        # Presence as reported by the server, in arrival order
        self.online_users: List[str] = []
        self.typing_users: Set[str] = set()

    async def connect(self):
        """Open the TCP connection to the server."""
        self.reader, self.writer = await asyncio.open_connection(self.host, self.port)
        logger.log_connection(self.host, self.port, True)

    async def send_envelope(self, envelope: Envelope) -> bool:
        """Send one envelope to the server."""
        if not self.writer:
            logger.error("Not connected to server")
            return False

        try:
            self.writer.write(encode_envelope(envelope))
            await self.writer.drain()
            return True
        except Exception as e:
            logger.log_error("send", e)
            return False

    async def join(self) -> bool:
        """Send the handshake join."""
        return await self.send_envelope(create_join_message(self.username))

    async def send_chat(self, text: str) -> bool:
        """Send a chat message to everyone."""
        return await self.send_envelope(create_chat_message(text, self.username))

    async def send_private(self, to: str, text: str) -> bool:
        """Send a private message to one user."""
        return await self.send_envelope(create_private_message(to, text, self.username))

    async def send_typing(self) -> bool:
        return await self.send_envelope(create_typing_message(self.username))

    async def send_stop_typing(self) -> bool:
        return await self.send_envelope(create_stop_typing_message(self.username))

    async def leave(self) -> bool:
        """Announce a clean leave."""
        return await self.send_envelope(Envelope(type=MessageTypes.LEAVE, sender=self.username))

    async def receive(self) -> Optional[Envelope]:
        """
        Return the next envelope from the server, or None at end of stream.

        Lines that do not decode are skipped.
        """
        while True:
            data = await self.reader.readline()
            if not data:
                return None
            try:
                envelope = decode_envelope(data)
            except EnvelopeDecodeError as e:
                logger.debug(f"Skipped malformed line: {e}")
                continue
            self.track(envelope)
            return envelope

    async def listen(self, handler: Callable[[Envelope], None]):
        """Feed every incoming envelope to handler until the server closes."""
        while True:
            envelope = await self.receive()
            if envelope is None:
                logger.info("Server closed connection")
                return
            handler(envelope)

    def track(self, envelope: Envelope):
        """Update presence and typing state from an incoming envelope."""
        sender = envelope.sender
        if not sender:
            return

        if envelope.type == MessageTypes.JOIN:
            if sender not in self.online_users:
                self.online_users.append(sender)
        elif envelope.type == MessageTypes.LEAVE:
            if sender in self.online_users:
                self.online_users.remove(sender)
            self.typing_users.discard(sender)
        elif envelope.type == MessageTypes.TYPING:
            self.typing_users.add(sender)
        elif envelope.type in (MessageTypes.STOP_TYPING, MessageTypes.MSG):
            self.typing_users.discard(sender)

    async def close(self):
        """Close the connection."""
        if self.writer:
            try:
                self.writer.close()
                await self.writer.wait_closed()
            except Exception:
                pass
            self.writer = None
