#!/usr/bin/env python3
"""
SonoSync HTTP Server Runner
"""

import os

from dotenv import load_dotenv

from sonosync.crosscutting.logging import setup_logging
from sonosync.interfaces.http import HTTPServer


def main():
    """Run the HTTP server."""
    load_dotenv()
    setup_logging(os.getenv('SONOSYNC_LOG_LEVEL', 'INFO'))
    server = HTTPServer(
        host=os.getenv('SONOSYNC_HTTP_HOST', 'localhost'),
        port=int(os.getenv('SONOSYNC_HTTP_PORT', '3000')),
        debug=os.getenv('SONOSYNC_HTTP_DEBUG') == '1'
    )
    server.run()


if __name__ == '__main__':
    main()
