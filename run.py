#!/usr/bin/env python3
"""
Peer Lending Entry Point

Starts the FastAPI server with the lending core. Host, port and storage
come from PEER_LENDING_* environment variables (see peer_lending.config).
"""

import sys

import uvicorn

from peer_lending.config import get_config


def run_server(host: str, port: int, reload: bool = False, log_level: str = "info"):
    """Run the FastAPI server"""
    uvicorn.run(
        "peer_lending.api:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        log_level=log_level
    )


if __name__ == "__main__":
    config = get_config()
    print("Starting Peer Lending API...")
    print(f"Storage: {config.database_url}")
    print(f"API available at: http://{config.api_host}:{config.api_port}")
    print(f"Documentation at: http://{config.api_host}:{config.api_port}/docs")
    print()

    try:
        run_server(
            host=config.api_host,
            port=config.api_port,
            reload=config.api_reload,
            log_level=config.log_level.lower()
        )
    except KeyboardInterrupt:
        print("\nShutting down Peer Lending API...")
    except Exception as e:
        print(f"Error starting server: {e}")
        sys.exit(1)
