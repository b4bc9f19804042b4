#!/usr/bin/env python3
"""
Chat Relay Client - Terminal Client

Reads lines from stdin and prints the server's envelope stream.

Commands:
    /pm <user> <text>    Send a private message
    /quit                Leave the chat
    anything else        Send to everyone
"""

import argparse
import asyncio
import logging
import sys
import os
from typing import Optional

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from client.chat.chat_client import ChatClient, format_envelope
from client.utils.config import ClientConfig
from client.utils.logger import logger
from common.constants import DEFAULT_HOST, DEFAULT_PORT, MessageTypes
from common.protocol_definitions import (
    Envelope, create_chat_message, create_private_message
)

USAGE = "Commands: /pm <user> <text>, /quit"


def parse_input(line: str, username: Optional[str] = None) -> Optional[Envelope]:
    """Turn one line of user input into an envelope, or None if there is nothing to send."""
    line = line.strip()
    if not line:
        return None

    if line == '/quit':
        return Envelope(type=MessageTypes.LEAVE, sender=username)

    if line.startswith('/pm'):
        parts = line.split(None, 2)
        if parts[0] != '/pm':
            return create_chat_message(line, username)
        if len(parts) < 3:
            return None
        return create_private_message(parts[1], parts[2], username)

    return create_chat_message(line, username)


class TerminalClient:
    """Interactive stdin/stdout front end for ChatClient."""

    def __init__(self, host: str = DEFAULT_HOST, port: int = DEFAULT_PORT, username: str = None):
        self.config = ClientConfig(host, port, username)
        self.chat_client = ChatClient(self.config.host, self.config.port, self.config.username)

    def display(self, envelope: Envelope):
        line = format_envelope(envelope)
        if line is not None:
            print(line, flush=True)

    async def interactive_mode(self):
        """Run client with interactive chat input."""
        try:
            await self.chat_client.connect()
        except OSError as e:
            logger.log_connection(self.config.host, self.config.port, False)
            logger.log_error("connection", e)
            return

        await self.chat_client.join()
        listener_task = asyncio.create_task(self.chat_client.listen(self.display))
        print(USAGE, flush=True)

        loop = asyncio.get_running_loop()
        try:
            while not listener_task.done():
                user_input = await loop.run_in_executor(None, sys.stdin.readline)
                if not user_input:
                    await self.chat_client.leave()
                    break

                stripped = user_input.strip()
                envelope = parse_input(stripped, self.config.username)
                if envelope is None:
                    if stripped.startswith('/pm'):
                        print(USAGE, flush=True)
                    continue

                await self.chat_client.send_envelope(envelope)
                if envelope.type == MessageTypes.LEAVE:
                    break
        finally:
            listener_task.cancel()
            try:
                await listener_task
            except asyncio.CancelledError:
                pass
            await self.chat_client.close()
            logger.info("Disconnected from server")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description='Chat Relay Client')
    parser.add_argument('username', nargs='?', default=None,
                        help='Username to join as (asked if omitted)')
    parser.add_argument('--host', type=str, default=DEFAULT_HOST,
                        help=f'Server address (default: {DEFAULT_HOST})')
    parser.add_argument('--port', type=int, default=DEFAULT_PORT,
                        help=f'Server port (default: {DEFAULT_PORT})')
    parser.add_argument('--verbose', action='store_true',
                        help='Show client log messages')
    args = parser.parse_args(argv)

    if args.verbose:
        logger.set_level(logging.DEBUG)

    username = args.username
    if not username:
        username = input("Enter username: ").strip() or "anonymous"

    client = TerminalClient(args.host, args.port, username)
    try:
        asyncio.run(client.interactive_mode())
    except KeyboardInterrupt:
        print("\n[INFO] Client terminated")
    return 0


if __name__ == "__main__":
    sys.exit(main())
