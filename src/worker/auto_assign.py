# src/worker/auto_assign.py
"""
Auto-assign worker.

Tries to assign a provider as soon as a request is paid, then keeps sweeping
pending requests older than AUTO_ASSIGN_TIMEOUT. After
MAX_AUTO_ASSIGN_ATTEMPTS failed matches the request is escalated to an admin.
"""

from __future__ import annotations

import asyncio
from datetime import timedelta
from typing import List, Optional
from uuid import UUID

from src.common.constants import RequestStatus, TypeMsg
from src.common.exceptions import RoadsideError
from src.common.logger import log_error, log_info
from src.infra.database import DatabaseManager
from src.infra.event_bus import EventBus, EventTypes
from src.services.matching.repository import ProviderRepository
from src.services.matching.service import AssignmentResult, ProviderMatcher
from src.services.requests.repository import RequestRepository
from src.shared.events import DomainEvent, RequestEscalated, RequestStatusChanged
from src.worker.base import BaseWorker


class AutoAssignWorker(BaseWorker):

    def __init__(
        self,
        event_bus: Optional[EventBus] = None,
        db: Optional[DatabaseManager] = None,
        matcher: Optional[ProviderMatcher] = None,
        requests: Optional[RequestRepository] = None,
        timeout: Optional[int] = None,
        sweep_interval: Optional[int] = None,
        max_attempts: Optional[int] = None,
        assign_on_payment: Optional[bool] = None,
    ) -> None:
        super().__init__(event_bus=event_bus, db=db)

        from src.config import settings
        matching = settings.matching

        self.requests = requests or RequestRepository(self.db)
        self.matcher = matcher or ProviderMatcher(
            requests=self.requests,
            providers=ProviderRepository(self.db),
            event_bus=self.event_bus,
        )
        self.timeout = timeout if timeout is not None else matching.AUTO_ASSIGN_TIMEOUT
        self.sweep_interval = sweep_interval if sweep_interval is not None else matching.AUTO_ASSIGN_SWEEP_INTERVAL
        self.max_attempts = max_attempts if max_attempts is not None else matching.MAX_AUTO_ASSIGN_ATTEMPTS
        self.assign_on_payment = (
            assign_on_payment if assign_on_payment is not None else matching.AUTO_ASSIGN_ON_PAYMENT
        )

    @property
    def name(self) -> str:
        return "AutoAssignWorker"

    @property
    def subscriptions(self) -> List[str]:
        return [EventTypes.REQUEST_STATUS_CHANGED]

    async def on_start(self) -> None:
        self._tasks.append(asyncio.create_task(self._sweep_loop(), name="auto-assign-sweep"))

    async def handle_event(self, event: DomainEvent) -> None:
        if not isinstance(event, RequestStatusChanged):
            return
        if event.new_status != RequestStatus.PENDING.value or not self.assign_on_payment:
            return

        await self.try_assign(UUID(event.request_id))

    async def try_assign(self, request_id: UUID) -> AssignmentResult:
        """
        One matcher attempt. A failed match counts towards escalation;
        a request that is no longer pending does not.
        """
        result = await self.matcher.assign(request_id)
        if result.assigned or result.error is None:
            return result

        attempts = await self.requests.increment_assign_attempts(request_id)
        await log_info(
            f"Auto-assign attempt {attempts}/{self.max_attempts} failed for {request_id}: {result.reason}",
            type_msg=TypeMsg.WARNING,
        )

        if attempts >= self.max_attempts:
            await self._escalate(request_id, attempts)

        return result

    async def _escalate(self, request_id: UUID, attempts: int) -> None:
        if not await self.requests.mark_escalated(request_id):
            return

        await log_info(
            f"Request {request_id} escalated to manual assignment after {attempts} attempts",
            type_msg=TypeMsg.WARNING,
            extra={"request_id": str(request_id)},
        )
        await self.event_bus.publish(RequestEscalated(request_id=str(request_id), attempts=attempts))

    async def sweep_once(self) -> int:
        """
        Retries every pending, non-escalated request untouched for longer
        than the timeout. Returns how many got a provider.
        """
        pending = await self.requests.list_pending(
            older_than=timedelta(seconds=self.timeout),
            include_escalated=False,
        )
        if not pending:
            return 0

        await log_info(f"Auto-assign sweep: {len(pending)} pending requests", type_msg=TypeMsg.DEBUG)

        assigned = 0
        for request in pending:
            try:
                result = await self.try_assign(request.id)
            except RoadsideError as e:
                await log_error(f"Auto-assign failed for {request.id}: {e}")
                continue
            if result.assigned:
                assigned += 1

        return assigned

    async def _sweep_loop(self) -> None:
        while self._running:
            try:
                await self.sweep_once()
            except asyncio.CancelledError:
                raise
            except Exception as e:
                await log_error(f"Auto-assign sweep error: {e}", exc_info=True)
            await asyncio.sleep(self.sweep_interval)
