"""
Chat module for client-side messaging functionality.

Handles:
- Sending chat, private and typing envelopes
- Reading the server's envelope stream
- Presence and typing tracking
"""
