#!/usr/bin/env python3
"""
Chat Relay Server - Main Entry Point

Usage:
    python main_server.py [PORT]

Optional arguments:
    PORT                  TCP port to listen on (default: 5000)
    --host HOST           Bind address (default: 0.0.0.0)
    --log-level LEVEL     DEBUG, INFO, WARNING or ERROR (default: INFO)
    --log-file PATH       Also append log lines to this file

Ctrl+C stops the accept loop.
"""

if __name__ == "__main__":
    import sys

    from server.main_server import main

    sys.exit(main())
