#!/usr/bin/env python3
"""
Entrypoint for the HTTP API.

Usage:
    python entrypoints/entrypoint_api.py

Port comes from API_PORT (8080 by default).
"""

import sys
from pathlib import Path

# Put the project root on the path
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

import uvicorn

from src.config import settings


def main() -> None:
    """Runs the API."""
    uvicorn.run(
        "src.services.api.app:app",
        host=settings.deployment.API_HOST,
        port=settings.deployment.API_PORT,
        reload=settings.system.DEBUG,
        log_level=settings.system.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
