"""
Entry point for running the tutor API.

Usage:
    python -m tutor

Host, port and log level come from HOST, PORT and LOG_LEVEL.
"""
import uvicorn
from logging_setup import setup_logging

from .config import get_config

if __name__ == "__main__":
    config = get_config()

    setup_logging(level=config.log_level, use_json=True)

    uvicorn.run(
        "tutor.api:app",
        host=config.host,
        port=config.port,
        log_level=config.log_level.lower(),
    )
