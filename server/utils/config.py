"""
Server configuration module.

This module handles server-side configuration settings.
"""

from typing import Optional

from common.constants import DEFAULT_SERVER_HOST, DEFAULT_PORT, MAX_LINE_SIZE, DEFAULT_LOG_LEVEL


class ServerConfig:
    """Server configuration class."""

    def __init__(self, host: str = DEFAULT_SERVER_HOST, port: int = DEFAULT_PORT,
                 max_line_size: int = MAX_LINE_SIZE, log_level: str = DEFAULT_LOG_LEVEL,
                 log_file: Optional[str] = None):
        self.host = host
        self.port = port

        # Connection settings
        self.max_line_size = max_line_size

        # Logging configuration
        self.log_level = log_level
        self.log_file = log_file

    def get_connection_info(self):
        """Get connection information."""
        return {
            'host': self.host,
            'port': self.port
        }

    def get_log_settings(self):
        """Get logging settings."""
        return {
            'log_level': self.log_level,
            'log_file': self.log_file
        }
