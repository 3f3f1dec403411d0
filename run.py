#!/usr/bin/env python3
"""
Cooperative Lending Entry Point

Starts the FastAPI server using the host, port and worker settings from
COOP_LENDING_* environment variables (or .env).
"""

import sys

from coop_lending.api import run_server
from coop_lending.config import get_config


if __name__ == "__main__":
    config = get_config()
    print("Starting Cooperative Lending API...")
    print(f"Database: {config.database_path if config.use_sqlite else 'in-memory'}")
    print(f"API available at: http://localhost:{config.api_port}")
    print(f"Documentation at: http://localhost:{config.api_port}/docs")
    print()

    try:
        run_server(
            host=config.api_host,
            port=config.api_port,
            workers=config.api_workers,
        )
    except KeyboardInterrupt:
        print("\nShutting down Cooperative Lending API...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
