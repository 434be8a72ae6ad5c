# src/worker/runner.py
"""
Worker runner.
"""

from __future__ import annotations

import asyncio
from typing import List

from src.common.constants import TypeMsg
from src.common.logger import log_error, log_info, setup_logging
from src.infra.database import close_db, init_db
from src.infra.event_bus import close_event_bus, init_event_bus
from src.worker.auto_assign import AutoAssignWorker
from src.worker.base import BaseWorker


async def run_workers(init_infra: bool = True) -> None:
    """
    Runs the AutoAssignWorker until cancelled.

    Args:
        init_infra: Connect PostgreSQL and RabbitMQ here. False when the
                    caller already did.
    """
    setup_logging()
    await log_info("Starting workers...", type_msg=TypeMsg.INFO)

    if init_infra:
        await init_db()
        await init_event_bus()

    workers: List[BaseWorker] = [
        AutoAssignWorker(),
    ]

    try:
        for worker in workers:
            await worker.start()

        await log_info(f"{len(workers)} worker(s) running", type_msg=TypeMsg.INFO)

        while True:
            await asyncio.sleep(1)

    except asyncio.CancelledError:
        await log_info("Stop signal received", type_msg=TypeMsg.INFO)
    except Exception as e:
        await log_error(f"Worker runner crashed: {e}", exc_info=True)
        raise
    finally:
        for worker in workers:
            await worker.stop()

        if init_infra:
            await close_event_bus()
            await close_db()

        await log_info("Workers stopped", type_msg=TypeMsg.INFO)


def main() -> None:
    try:
        asyncio.run(run_workers())
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    main()
