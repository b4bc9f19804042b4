"""
Server package for the chat relay.

This package contains all server-side functionality including:
- Session registry and username arbitration
- Envelope dispatch (broadcast and private messages)
- Per-connection handshake and read loop
- Configuration and utilities
"""
