"""
Session registry module.

Maps each registered username to its live session. This is the only state
shared between connections; every mutation and every snapshot happens under
one lock, and no I/O is ever performed while that lock is held.
"""

import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from common.protocol_definitions import is_blank


@dataclass
class Session:
    """A registered, live connection."""
    username: str
    writer: asyncio.StreamWriter
    address: Any = None
    joined_at: str = field(default_factory=lambda: datetime.now().isoformat())


class SessionRegistry:
    """Lock-guarded mapping from username to Session."""

    def __init__(self):
        self.sessions: Dict[str, Session] = {}  # username -> session
        self.lock = asyncio.Lock()  # Protect shared state

    async def register(self, candidate_name: str, writer: asyncio.StreamWriter, address: Any = None) -> str:
        """
        Register a new session and return its final username.

        If the name is taken, an increasing integer suffix starting at 1 is
        appended until a free name is found. The check and the insert happen
        under the same lock so concurrent joins never share a name.
        """
        if is_blank(candidate_name):
            raise ValueError("username must not be empty")

        async with self.lock:
            username = candidate_name
            suffix = 1
            while username in self.sessions:
                username = f"{candidate_name}{suffix}"
                suffix += 1
            self.sessions[username] = Session(username=username, writer=writer, address=address)

        return username

    async def unregister(self, username: str):
        """Remove a session. Removing an absent name is a no-op."""
        async with self.lock:
            self.sessions.pop(username, None)

    async def lookup(self, username: str) -> Optional[Session]:
        """Return the session registered under username, or None."""
        async with self.lock:
            return self.sessions.get(username)

    async def snapshot(self) -> List[Session]:
        """Return a point-in-time copy of all sessions in registration order."""
        async with self.lock:
            return list(self.sessions.values())

    async def usernames(self) -> List[str]:
        """Return a point-in-time copy of all registered usernames."""
        async with self.lock:
            return list(self.sessions.keys())

    def count(self) -> int:
        """Get the number of registered sessions."""
        return len(self.sessions)
