#!/usr/bin/env python3
"""
Chat Relay Server - Main Entry Point

This is the main entry point for the server application.
It wires the session registry, dispatcher and per-connection handlers
behind one TCP listener.
"""

import argparse
import asyncio
import sys
import os
from typing import Optional

sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from common.constants import DEFAULT_SERVER_HOST, DEFAULT_PORT, MAX_LINE_SIZE, DEFAULT_LOG_LEVEL
from server.chat.connection_handler import ConnectionHandler
from server.chat.dispatcher import Dispatcher
from server.chat.registry import SessionRegistry
from server.utils.config import ServerConfig
from server.utils.logger import logger


class ChatRelayServer:
    """Accepts connections and runs one ConnectionHandler per connection."""

    def __init__(self, host: str = DEFAULT_SERVER_HOST, port: int = DEFAULT_PORT,
                 max_line_size: int = MAX_LINE_SIZE, config: Optional[ServerConfig] = None):
        self.config = config or ServerConfig(host, port, max_line_size)
        self.registry = SessionRegistry()
        self.dispatcher = Dispatcher(self.registry)
        self.server: Optional[asyncio.AbstractServer] = None

    @property
    def port(self) -> int:
        """The bound port, which differs from the configured one when it was 0."""
        if self.server and self.server.sockets:
            return self.server.sockets[0].getsockname()[1]
        return self.config.port

    async def handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        """Handle individual client connection."""
        handler = ConnectionHandler(reader, writer, self.registry, self.dispatcher)
        await handler.run()

    async def start(self):
        """Bind the listening socket. Raises OSError if the port cannot be bound."""
        self.server = await asyncio.start_server(
            self.handle_client,
            self.config.host,
            self.config.port,
            limit=self.config.max_line_size
        )

        addr = ', '.join(str(sock.getsockname()) for sock in self.server.sockets)
        logger.info(f"Server listening on {addr}")
        return self.server

    async def serve_forever(self):
        """Start if needed and accept connections until cancelled."""
        if self.server is None:
            await self.start()
        try:
            await self.server.serve_forever()
        finally:
            self.stop()

    def stop(self):
        """
        Stop accepting connections.

        Connections that are already open are left to finish on their own.
        """
        if self.server is not None:
            self.server.close()
            logger.info("Server stopped accepting connections")


def parse_port(value: Optional[str]) -> int:
    """Parse the port argument, falling back to the default on bad input."""
    if value is None:
        return DEFAULT_PORT
    try:
        port = int(value)
    except ValueError:
        port = -1
    if not 0 <= port <= 65535:
        logger.warning(f"Invalid port '{value}', using {DEFAULT_PORT}")
        return DEFAULT_PORT
    return port


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description='Chat Relay Server')
    parser.add_argument('port', nargs='?', default=None,
                        help=f'TCP port to listen on (default: {DEFAULT_PORT})')
    parser.add_argument('--host', type=str, default=DEFAULT_SERVER_HOST,
                        help=f'Host to bind to (default: {DEFAULT_SERVER_HOST})')
    parser.add_argument('--log-level', type=str, default=DEFAULT_LOG_LEVEL,
                        choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'],
                        help=f'Logging level (default: {DEFAULT_LOG_LEVEL})')
    parser.add_argument('--log-file', type=str, default=None,
                        help='Also append log lines to this file')
    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)

    config = ServerConfig(
        host=args.host,
        port=parse_port(args.port),
        log_level=args.log_level,
        log_file=args.log_file
    )
    logger.configure(config.log_level, config.log_file)

    server = ChatRelayServer(config=config)
    try:
        asyncio.run(server.serve_forever())
    except KeyboardInterrupt:
        logger.info("Server shutting down...")
    except OSError as e:
        logger.log_error("server startup", e)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
