"""
Protocol definitions for the chat relay.

This module defines the envelope structure exchanged between client and
server, the line codec that turns one envelope into one line of JSON text
and back, and helpers that build each kind of envelope.

Wire format: one JSON object per line, UTF-8 encoded::

    {"Type": "msg", "From": "alice", "To": null, "Text": "hi", "Ts": 1700000000}
"""

import json
import time
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from common.constants import (
    ENCODING, MessageTypes, JOINED_TEXT, ALREADY_ONLINE_TEXT, LEFT_TEXT,
    USER_NOT_FOUND_TEXT, INVALID_JOIN_TEXT
)


class EnvelopeDecodeError(ValueError):
    """Raised when a line cannot be decoded into an Envelope."""
    pass


@dataclass
class Envelope:
    """One routed protocol message."""
    type: str
    sender: Optional[str] = None
    to: Optional[str] = None
    text: Optional[str] = None
    ts: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "Type": self.type,
            "From": self.sender,
            "To": self.to,
            "Text": self.text,
            "Ts": self.ts
        }


def current_timestamp() -> int:
    """Return the current server time in whole seconds since the epoch."""
    return int(time.time())


def encode_envelope(envelope: Envelope) -> bytes:
    """Encode an envelope as one newline-terminated line of UTF-8 JSON."""
    line = json.dumps(envelope.to_dict(), ensure_ascii=False, separators=(',', ':'))
    return (line + '\n').encode(ENCODING)


def _optional_str(obj: Dict[str, Any], key: str) -> Optional[str]:
    value = obj.get(key)
    if value is not None and not isinstance(value, str):
        raise EnvelopeDecodeError(f"field '{key}' must be a string")
    return value


def decode_envelope(line: Union[bytes, str]) -> Envelope:
    """
    Decode one line into an Envelope.

    Unknown extra keys are ignored. Raises EnvelopeDecodeError if the line is
    not a JSON object of the envelope shape or carries an unrecognized type.
    """
    if isinstance(line, bytes):
        try:
            line = line.decode(ENCODING)
        except UnicodeDecodeError as e:
            raise EnvelopeDecodeError(f"invalid {ENCODING}: {e}") from e

    line = line.strip()
    if not line:
        raise EnvelopeDecodeError("empty line")

    try:
        obj = json.loads(line)
    except json.JSONDecodeError as e:
        raise EnvelopeDecodeError(f"malformed JSON: {e}") from e

    if not isinstance(obj, dict):
        raise EnvelopeDecodeError("envelope must be a JSON object")

    msg_type = obj.get("Type")
    if not isinstance(msg_type, str):
        raise EnvelopeDecodeError("missing or invalid 'Type'")
    if msg_type not in MessageTypes.ALL:
        raise EnvelopeDecodeError(f"unknown type '{msg_type}'")

    ts = obj.get("Ts", 0)
    if ts is None:
        ts = 0
    # bool is a subclass of int
    if isinstance(ts, bool) or not isinstance(ts, int):
        raise EnvelopeDecodeError("field 'Ts' must be an integer")

    return Envelope(
        type=msg_type,
        sender=_optional_str(obj, "From"),
        to=_optional_str(obj, "To"),
        text=_optional_str(obj, "Text"),
        ts=ts
    )


def is_blank(value: Optional[str]) -> bool:
    """True for None, empty or whitespace-only strings."""
    return value is None or not value.strip()


def create_join_message(username: str, ts: Optional[int] = None) -> Envelope:
    """Create a join message, as sent by a client during the handshake."""
    return Envelope(type=MessageTypes.JOIN, sender=username,
                    ts=current_timestamp() if ts is None else ts)


def create_joined_message(username: str) -> Envelope:
    """Create the join announcement broadcast for a newly registered user."""
    return Envelope(type=MessageTypes.JOIN, sender=username,
                    text=JOINED_TEXT.format(username=username),
                    ts=current_timestamp())


def create_already_online_message(username: str) -> Envelope:
    """Create a backlog join telling a new client that a user is online."""
    return Envelope(type=MessageTypes.JOIN, sender=username,
                    text=ALREADY_ONLINE_TEXT.format(username=username),
                    ts=current_timestamp())


def create_leave_message(username: str) -> Envelope:
    """Create a leave message."""
    return Envelope(type=MessageTypes.LEAVE, sender=username,
                    text=LEFT_TEXT.format(username=username),
                    ts=current_timestamp())


def create_chat_message(text: str, sender: Optional[str] = None) -> Envelope:
    """Create a broadcast chat message."""
    return Envelope(type=MessageTypes.MSG, sender=sender, text=text,
                    ts=current_timestamp())


def create_private_message(to: str, text: str, sender: Optional[str] = None) -> Envelope:
    """Create a private message."""
    return Envelope(type=MessageTypes.PM, sender=sender, to=to, text=text,
                    ts=current_timestamp())


def create_typing_message(sender: Optional[str] = None) -> Envelope:
    """Create a typing indicator."""
    return Envelope(type=MessageTypes.TYPING, sender=sender, ts=current_timestamp())


def create_stop_typing_message(sender: Optional[str] = None) -> Envelope:
    """Create a stop-typing indicator."""
    return Envelope(type=MessageTypes.STOP_TYPING, sender=sender, ts=current_timestamp())


def create_sys_message(text: str) -> Envelope:
    """Create a system notice."""
    return Envelope(type=MessageTypes.SYS, text=text, ts=current_timestamp())


def create_invalid_join_message() -> Envelope:
    """Create the notice sent when a handshake is rejected."""
    return create_sys_message(INVALID_JOIN_TEXT)


def create_user_not_found_message(username: str) -> Envelope:
    """Create the notice sent when a private message target is offline."""
    return create_sys_message(USER_NOT_FOUND_TEXT.format(username=username))
