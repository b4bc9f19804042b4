"""
Server logging module.

This module handles server-side logging functionality.
"""

import logging
from pathlib import Path
from typing import Optional, Union


class ServerLogger:
    """Server logging class."""

    def __init__(self, log_level: int = logging.INFO):
        # Set up main logger
        self.logger = logging.getLogger('chat_relay_server')
        self.logger.setLevel(log_level)

        # Remove existing handlers
        for handler in self.logger.handlers[:]:
            self.logger.removeHandler(handler)

        # Create formatter
        self.formatter = logging.Formatter(
            '%(asctime)s [%(levelname)s] %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        # Create console handler
        console_handler = logging.StreamHandler()
        console_handler.setLevel(logging.NOTSET)
        console_handler.setFormatter(self.formatter)
        self.logger.addHandler(console_handler)

        self.file_handler: Optional[logging.FileHandler] = None

    def configure(self, log_level: Union[int, str] = logging.INFO, log_file: Optional[str] = None):
        """Apply the level and optional log file from the server configuration."""
        if isinstance(log_level, str):
            log_level = logging.getLevelName(log_level.upper())
            if not isinstance(log_level, int):
                raise ValueError(f"Unknown log level: {log_level}")
        self.logger.setLevel(log_level)

        if self.file_handler is not None:
            self.logger.removeHandler(self.file_handler)
            self.file_handler.close()
            self.file_handler = None

        if log_file:
            path = Path(log_file)
            path.parent.mkdir(parents=True, exist_ok=True)
            self.file_handler = logging.FileHandler(path, encoding='utf-8')
            self.file_handler.setFormatter(self.formatter)
            self.logger.addHandler(self.file_handler)

    def info(self, message: str):
        """Log info message."""
        self.logger.info(message)

    def error(self, message: str):
        """Log error message."""
        self.logger.error(message)

    def warning(self, message: str):
        """Log warning message."""
        self.logger.warning(message)

    def debug(self, message: str):
        """Log debug message."""
        self.logger.debug(message)

    def log_connection(self, addr):
        """Log client connection."""
        self.info(f"New connection from {addr}")

    def log_join(self, username: str, requested: str, addr):
        """Log a successful handshake."""
        if username != requested:
            self.info(f"User '{username}' joined from {addr} (requested '{requested}')")
        else:
            self.info(f"User '{username}' joined from {addr}")

    def log_rejected(self, addr, reason: str):
        """Log a rejected handshake."""
        self.warning(f"Rejected join from {addr}: {reason}")

    def log_leave(self, username: str):
        """Log user disconnect."""
        self.info(f"User '{username}' disconnected")

    def log_chat(self, username: str, message: Optional[str]):
        """Log chat message."""
        self.debug(f"Chat from {username}: {message}")

    def log_private(self, from_username: str, to_username: Optional[str], message: Optional[str]):
        """Log private message."""
        self.debug(f"PM {from_username} -> {to_username}: {message}")

    def log_error(self, operation: str, error: Exception):
        """Log error with operation context."""
        self.error(f"Error in {operation}: {error}")


# Global logger instance
logger = ServerLogger()
