"""
Client package for the chat relay.

This package contains a terminal client that speaks the relay's
line-delimited JSON protocol.
"""
