"""
Shared constants for the chat relay.

This module contains all constants used across client and server components.
"""

# Network Configuration
DEFAULT_HOST = 'localhost'
DEFAULT_SERVER_HOST = '0.0.0.0'
DEFAULT_PORT = 5000

# Wire format
ENCODING = 'utf-8'
MAX_LINE_SIZE = 1024 * 1024  # 1MB per line

# Logging
DEFAULT_LOG_LEVEL = 'INFO'

# Server generated texts
INVALID_JOIN_TEXT = 'Invalid join'
JOINED_TEXT = '{username} joined'
ALREADY_ONLINE_TEXT = '{username} (already online)'
LEFT_TEXT = '{username} left'
USER_NOT_FOUND_TEXT = "User '{username}' not found"


# Message Types
class MessageTypes:
    JOIN = 'join'
    LEAVE = 'leave'
    MSG = 'msg'
    PM = 'pm'
    TYPING = 'typing'
    STOP_TYPING = 'stop_typing'
    SYS = 'sys'

    ALL = frozenset([JOIN, LEAVE, MSG, PM, TYPING, STOP_TYPING, SYS])

    # Relayed to every session as-is
    BROADCAST = frozenset([MSG, TYPING, STOP_TYPING])
