#!/usr/bin/env python3
"""
proxscan - Main Entry Point
"""

from .proxy_cli.main import main


if __name__ == '__main__':
    main()
