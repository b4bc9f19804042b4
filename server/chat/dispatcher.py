"""
Dispatcher module.

Routes envelopes to the registry's current members. Delivery is best-effort:
each write is attempted once and a failing recipient is skipped silently.
A dead session is cleaned up by its own connection handler when that
handler's read fails, so nothing here closes or unregisters sessions.
"""

from common.protocol_definitions import (
    Envelope, encode_envelope, create_user_not_found_message, is_blank
)
from server.chat.registry import Session, SessionRegistry
from server.utils.logger import logger


class Dispatcher:
    """Broadcast and directed-send over a SessionRegistry."""

    def __init__(self, registry: SessionRegistry):
        self.registry = registry

    async def send_to(self, session: Session, data: bytes) -> bool:
        """Write one encoded envelope to a session. Failures are swallowed."""
        try:
            session.writer.write(data)
            await session.writer.drain()
            return True
        except Exception as e:
            logger.debug(f"Dropped write to '{session.username}': {e!r}")
            return False

    async def broadcast(self, envelope: Envelope) -> int:
        """
        Send an envelope to every registered session.

        The payload is encoded once, and the registry snapshot is taken before
        any write so the registry lock is never held during I/O. Returns the
        number of successful writes.
        """
        data = encode_envelope(envelope)
        sessions = await self.registry.snapshot()

        delivered = 0
        for session in sessions:
            if await self.send_to(session, data):
                delivered += 1
        return delivered

    async def send_directed(self, to_name: str, envelope: Envelope) -> bool:
        """
        Send an envelope to exactly one named session.

        If the target is not registered, the sender (envelope.sender) gets a
        sys notice instead; if the sender is gone too, the envelope is dropped.
        Returns True if the envelope was written to the target.
        """
        if is_blank(to_name):
            return False

        target = await self.registry.lookup(to_name)
        if target is not None:
            return await self.send_to(target, encode_envelope(envelope))

        if envelope.sender is not None:
            sender = await self.registry.lookup(envelope.sender)
            if sender is not None:
                await self.send_to(sender, encode_envelope(create_user_not_found_message(to_name)))
        return False
