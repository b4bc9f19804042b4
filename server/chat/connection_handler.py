"""
Connection handler module.

One ConnectionHandler drives one accepted connection through
AWAITING_JOIN -> ACTIVE -> CLOSED. It exclusively owns the connection's
reader and writer; the dispatcher only borrows the writer of registered
sessions to deliver envelopes.
"""

import asyncio
from typing import Optional

from common.constants import MessageTypes
from common.protocol_definitions import (
    Envelope, EnvelopeDecodeError, encode_envelope, decode_envelope, is_blank,
    current_timestamp, create_invalid_join_message, create_already_online_message,
    create_joined_message, create_leave_message
)
from server.chat.dispatcher import Dispatcher
from server.chat.registry import SessionRegistry
from server.utils.logger import logger


class HandlerState:
    AWAITING_JOIN = 'awaiting_join'
    ACTIVE = 'active'
    CLOSED = 'closed'


class ConnectionHandler:
    """Per-connection handshake and read loop."""

    def __init__(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter,
                 registry: SessionRegistry, dispatcher: Dispatcher):
        self.reader = reader
        self.writer = writer
        self.registry = registry
        self.dispatcher = dispatcher
        self.address = writer.get_extra_info('peername')
        self.state = HandlerState.AWAITING_JOIN
        self.username: Optional[str] = None

    async def run(self):
        """Run the connection from handshake to close."""
        logger.log_connection(self.address)
        try:
            if await self._handshake():
                await self._read_loop()
        except asyncio.CancelledError:
            logger.info(f"Connection cancelled for {self.username or self.address}")
            raise
        except (ConnectionError, asyncio.IncompleteReadError) as e:
            logger.debug(f"Connection lost for {self.username or self.address}: {e!r}")
        except Exception as e:
            # Treated as an ordinary disconnect
            logger.log_error(f"connection {self.username or self.address}", e)
        finally:
            await self._close()

    async def _read_line(self) -> Optional[bytes]:
        """Read the next line, or None at end of stream."""
        data = await self.reader.readline()
        if not data:
            return None
        return data

    async def _send(self, envelope: Envelope):
        """Best-effort write to this connection."""
        try:
            self.writer.write(encode_envelope(envelope))
            await self.writer.drain()
        except Exception as e:
            logger.debug(f"Dropped write to {self.username or self.address}: {e!r}")

    async def _reject(self, reason: str):
        logger.log_rejected(self.address, reason)
        await self._send(create_invalid_join_message())

    async def _handshake(self) -> bool:
        """
        Process the first line. Returns True once the connection is ACTIVE.

        A join is accepted only if the line decodes, has type join and a
        non-blank From. On success the new client receives one join per user
        already online, then its own join is broadcast to everyone.
        """
        line = await self._read_line()
        if line is None:
            return False

        try:
            envelope = decode_envelope(line)
        except EnvelopeDecodeError as e:
            await self._reject(str(e))
            return False

        if envelope.type != MessageTypes.JOIN:
            await self._reject(f"expected join, got '{envelope.type}'")
            return False
        if is_blank(envelope.sender):
            await self._reject("missing username")
            return False

        requested = envelope.sender.strip()
        self.username = await self.registry.register(requested, self.writer, self.address)
        logger.log_join(self.username, requested, self.address)

        # Backlog is computed before the join broadcast is issued
        online = [name for name in await self.registry.usernames() if name != self.username]
        for name in online:
            await self._send(create_already_online_message(name))

        await self.dispatcher.broadcast(create_joined_message(self.username))
        self.state = HandlerState.ACTIVE
        return True

    async def _read_loop(self):
        while True:
            line = await self._read_line()
            if line is None:
                return

            try:
                envelope = decode_envelope(line)
            except EnvelopeDecodeError as e:
                logger.debug(f"Dropped malformed line from '{self.username}': {e}")
                continue

            # Never trust client-declared identity or time
            envelope.sender = self.username
            envelope.ts = current_timestamp()

            if envelope.type in MessageTypes.BROADCAST:
                if envelope.type == MessageTypes.MSG:
                    logger.log_chat(self.username, envelope.text)
                await self.dispatcher.broadcast(envelope)
            elif envelope.type == MessageTypes.PM:
                logger.log_private(self.username, envelope.to, envelope.text)
                await self.dispatcher.send_directed(envelope.to, envelope)
            elif envelope.type == MessageTypes.LEAVE:
                return
            # join and sys from an active client are ignored

    async def _close(self):
        """Unregister, announce the leave, and release the transport."""
        self.state = HandlerState.CLOSED

        if self.username is not None:
            await self.registry.unregister(self.username)
            logger.log_leave(self.username)
            await self.dispatcher.broadcast(create_leave_message(self.username))

        try:
            self.writer.close()
            await self.writer.wait_closed()
        except Exception:
            pass
