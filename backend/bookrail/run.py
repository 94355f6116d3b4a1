# backend/bookrail/run.py
"""
API server runner.

Installed as the ``bookrail-api`` console script. Reload is only enabled
outside production.
"""

import logging

import uvicorn

from .core.config import settings

logger = logging.getLogger(__name__)


def main() -> None:
    logger.info(f"Starting bookrail API on {settings.api_host}:{settings.api_port}")
    uvicorn.run(
        "bookrail.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=not settings.is_production,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
