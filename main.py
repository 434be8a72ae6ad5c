#!/usr/bin/env python3
# main.py
"""
Main entry point of the roadside assistance engine.
Runs the HTTP API, the background workers or a one-off admin command.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import signal
import sys
from uuid import UUID

from src.config import settings
from src.common.constants import RequestStatus, TypeMsg
from src.common.exceptions import RoadsideError
from src.common.logger import setup_logging, log_info, log_error
from src.infra.database import init_db, close_db, get_db
from src.infra.event_bus import init_event_bus, close_event_bus, get_event_bus


# Graceful shutdown flag
_shutdown_event: asyncio.Event | None = None
_running_tasks: list[asyncio.Task] = []


def setup_signal_handlers() -> None:
    """Installs SIGINT/SIGTERM handlers for graceful shutdown."""
    global _shutdown_event
    _shutdown_event = asyncio.Event()

    def signal_handler(sig: int) -> None:
        if _shutdown_event and not _shutdown_event.is_set():
            print(f"\nStop signal received (sig={sig}), shutting down...")
            _shutdown_event.set()
            for task in _running_tasks:
                if not task.done():
                    task.cancel()

    try:
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, lambda s=sig: signal_handler(s))
    except NotImplementedError:
        # Windows has no add_signal_handler
        signal.signal(signal.SIGINT, lambda s, f: signal_handler(s))
        signal.signal(signal.SIGTERM, lambda s, f: signal_handler(s))


async def init_infrastructure() -> None:
    """Connects PostgreSQL and RabbitMQ and wires the services."""
    from src.services.dependencies import init_dependencies

    await log_info("Initializing infrastructure...", type_msg=TypeMsg.INFO)

    await init_db()
    await log_info("PostgreSQL connected", type_msg=TypeMsg.DEBUG)

    await init_event_bus()
    await log_info("RabbitMQ connected", type_msg=TypeMsg.DEBUG)

    await init_dependencies(get_db(), get_event_bus())

    await log_info("Infrastructure initialized", type_msg=TypeMsg.INFO)


async def close_infrastructure() -> None:
    """Closes every connection."""
    from src.services.dependencies import cleanup_dependencies

    await log_info("Closing connections...", type_msg=TypeMsg.INFO)

    await cleanup_dependencies()
    await close_event_bus()
    await close_db()

    await log_info("Connections closed", type_msg=TypeMsg.INFO)


def run_api() -> None:
    """Runs the HTTP API under uvicorn (blocking, owns its own loop)."""
    import uvicorn

    uvicorn.run(
        "src.services.api.app:app",
        host=settings.deployment.API_HOST,
        port=settings.deployment.API_PORT,
        reload=settings.system.DEBUG,
        log_level=settings.system.LOG_LEVEL.lower(),
    )


async def run_worker() -> None:
    """Runs the auto-assign worker until a stop signal arrives."""
    from src.worker.runner import run_workers

    task = asyncio.create_task(run_workers(init_infra=False))
    _running_tasks.append(task)
    try:
        await task
    except asyncio.CancelledError:
        pass


def _print_json(data: object) -> None:
    print(json.dumps(data, indent=2, ensure_ascii=False, default=str))


async def cmd_assign(request_id: UUID) -> int:
    from src.services.dependencies import get_matcher

    result = await get_matcher().assign(request_id)
    _print_json({
        "request_id": result.request_id,
        "assigned": result.assigned,
        "provider_id": result.provider_id,
        "distance_km": result.distance_km,
        "request_status": result.request_status,
        "reason": result.reason,
    })
    return 0 if result.assigned else 2


async def cmd_force_status(request_id: UUID, status: RequestStatus, reason: str | None) -> int:
    from src.services.dependencies import get_request_service

    request = await get_request_service().force_status(request_id, status, reason=reason)
    _print_json(request.model_dump(mode="json"))
    return 0


async def cmd_list_pending(limit: int) -> int:
    from src.services.dependencies import get_request_service

    requests = await get_request_service().list_pending(limit=limit)
    _print_json([r.model_dump(mode="json") for r in requests])
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="main.py",
        description=f"{settings.system.PROJECT_NAME} v{settings.system.VERSION}",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("api", help="Run the HTTP API")
    sub.add_parser("worker", help="Run the auto-assign worker")

    assign = sub.add_parser("assign", help="Assign the nearest provider to a paid request")
    assign.add_argument("request_id", type=UUID)

    force = sub.add_parser("force-status", help="Override a request status (admin)")
    force.add_argument("request_id", type=UUID)
    force.add_argument("status", type=RequestStatus, choices=list(RequestStatus))
    force.add_argument("--reason", default=None)

    pending = sub.add_parser("list-pending", help="List paid requests waiting for a provider")
    pending.add_argument("--limit", type=int, default=100)

    return parser


async def main(args: argparse.Namespace) -> int:
    """
    Async entry point for every command except "api".

    Args:
        args: Parsed command line

    Returns:
        Process exit code
    """
    setup_logging()
    setup_signal_handlers()

    await log_info(
        f"{settings.system.PROJECT_NAME} v{settings.system.VERSION}: running '{args.command}'",
        type_msg=TypeMsg.INFO,
    )

    try:
        await init_infrastructure()

        if args.command == "worker":
            await run_worker()
            return 0
        if args.command == "assign":
            return await cmd_assign(args.request_id)
        if args.command == "force-status":
            return await cmd_force_status(args.request_id, args.status, args.reason)
        if args.command == "list-pending":
            return await cmd_list_pending(args.limit)

        await log_error(f"Unknown command: {args.command}")
        return 1

    except RoadsideError as e:
        await log_error(f"{e.error_code}: {e.message}", extra=e.details)
        return 1
    finally:
        await close_infrastructure()


if __name__ == "__main__":
    parsed = build_parser().parse_args()

    if parsed.command == "api":
        setup_logging()
        run_api()
        sys.exit(0)

    try:
        sys.exit(asyncio.run(main(parsed)))
    except KeyboardInterrupt:
        pass
