"""
Entry point for the EventFlow server (host API + viewer WebSocket feed).

    python web_main.py              ← binds to server.host:server.port from config.yaml

Set EVENTFLOW_CONFIG to point at a different config file.
"""

import os

import uvicorn

from eventflow.config import Config, load_config

if __name__ == "__main__":
    try:
        config = load_config(os.environ.get("EVENTFLOW_CONFIG", "config.yaml"))
    except FileNotFoundError:
        config = Config()

    uvicorn.run(
        "eventflow.web.app:app",
        host=config.server.host,
        port=config.server.port,
        reload=config.server.reload,
    )
