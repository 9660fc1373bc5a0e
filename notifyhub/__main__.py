"""
Run the notification API under uvicorn.

Usage:
    python -m notifyhub
    python -m notifyhub --reload
    python -m notifyhub --port 8080
"""

import argparse
from typing import Optional

import structlog
import uvicorn

from notifyhub.config import settings
from notifyhub.logging_config import configure_logging

logger = structlog.get_logger(__name__)


def main(argv: Optional[list[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="notifyhub", description="Run the notifyhub API")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to bind to")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")
    args = parser.parse_args(argv)

    configure_logging(settings.log_level, settings.json_logs)
    logger.info(
        "notifyhub_server_starting",
        host=args.host,
        port=args.port,
        reload=args.reload,
        environment=settings.environment,
    )

    uvicorn.run(
        "notifyhub.api.main:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
        loop="asyncio",
    )


if __name__ == "__main__":
    main()
