"""
Chat module for server-side messaging functionality.

Handles:
- Live session tracking
- Broadcast and directed delivery
- Connection lifecycle and presence events
"""
