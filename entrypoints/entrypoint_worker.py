#!/usr/bin/env python3
# entrypoint_worker.py
"""
Entrypoint for the auto-assign worker in a Docker container.
"""

from __future__ import annotations

import argparse
import asyncio
import os
import sys
from pathlib import Path

# Put the project root on the path
project_root = Path(__file__).parent.parent.resolve()
sys.path.insert(0, str(project_root))

from main import main


if __name__ == "__main__":
    # Instance id for scaled deployments
    worker_id = os.getenv("WORKER_INSTANCE_ID", "0")
    print(f"Starting worker instance #{worker_id}")

    try:
        sys.exit(asyncio.run(main(argparse.Namespace(command="worker"))))
    except KeyboardInterrupt:
        pass
