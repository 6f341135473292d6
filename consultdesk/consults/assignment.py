"""Keeps the booking service in step with a request's assignment."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import httpx

from ..bookings import (
    Appointment,
    BookingsClient,
    BookingsResponseError,
    BookingsServiceError,
    CustomerInfo,
)
from .errors import ExternalServiceFailure, NotFoundError
from .models import Agent, Request, RequestStatus, TimeBlock

logger = logging.getLogger(__name__)

INVALID_STAFF_MEMBER = "The assignee is not a valid staff member in Bookings."
BOOKING_FAILED = "Unable to create/update the Bookings appointment."
NOT_ASSIGNABLE_CATEGORY = "Consult requests in this category cannot be assigned"


@dataclass(frozen=True)
class ReconciliationResult:
    """Outcome of a successful reconciliation.

    ``appointment`` is only set when a new appointment was created; updates
    of an existing appointment leave it ``None``.
    """

    staff_member_id: str
    appointment: Appointment | None = None


class AssignmentReconciler:
    """Create or update the external appointment for an assignment.

    The agent's cached staff-member id is used first. When the booking
    service rejects the call, the id is treated as stale, looked up again
    once, and the call is retried with the fresh id. A failure with a
    freshly looked-up id is final, as is a success answer with an
    unreadable body.
    """

    def __init__(self, bookings: BookingsClient) -> None:
        self.bookings = bookings

    async def _lookup_staff_id(self, request: Request, agent: Agent) -> str:
        business_id = request.bookings_business_id or ""
        try:
            staff_id = await self.bookings.resolve_staff_id(
                business_id, agent.user_principal_name
            )
        except (BookingsServiceError, httpx.HTTPError) as exc:
            logger.error(
                "consult %s: staff lookup for %s failed: %s",
                request.id,
                agent.user_principal_name,
                exc,
            )
            raise ExternalServiceFailure(INVALID_STAFF_MEMBER) from exc
        if not staff_id:
            logger.error(
                "consult %s: %s is not a staff member of %s",
                request.id,
                agent.user_principal_name,
                business_id,
            )
            raise ExternalServiceFailure(INVALID_STAFF_MEMBER)
        return staff_id

    async def _book(
        self, request: Request, staff_id: str, time_block: TimeBlock
    ) -> Appointment | None:
        business_id = request.bookings_business_id or ""
        if (
            request.status == RequestStatus.REASSIGN_REQUESTED
            and request.bookings_appointment_id
        ):
            await self.bookings.update_appointment(
                business_id, request.bookings_appointment_id, staff_id
            )
            return None
        return await self.bookings.create_appointment(
            business_id,
            request.bookings_service_id or "",
            staff_id,
            time_block,
            CustomerInfo(
                name=request.customer_name,
                email=request.customer_email,
                phone=request.customer_phone,
                notes=request.query,
            ),
        )

    async def reconcile(
        self, request: Request, agent: Agent, time_block: TimeBlock
    ) -> ReconciliationResult:
        if not request.bookings_business_id:
            raise NotFoundError(NOT_ASSIGNABLE_CATEGORY)

        staff_id = agent.bookings_staff_member_id
        refreshed = False
        while True:
            if not staff_id:
                staff_id = await self._lookup_staff_id(request, agent)
                refreshed = True
            try:
                appointment = await self._book(request, staff_id, time_block)
            except BookingsResponseError as exc:
                logger.error(
                    "consult %s: unreadable booking response: %s", request.id, exc
                )
                raise ExternalServiceFailure(BOOKING_FAILED) from exc
            except BookingsServiceError as exc:
                if refreshed:
                    logger.error(
                        "consult %s: booking failed with fresh staff id %s: %s",
                        request.id,
                        staff_id,
                        exc,
                    )
                    raise ExternalServiceFailure(BOOKING_FAILED) from exc
                logger.warning(
                    "consult %s: booking rejected cached staff id %s, refreshing",
                    request.id,
                    staff_id,
                )
                staff_id = None
                continue
            except httpx.HTTPError as exc:
                logger.error("consult %s: booking service unreachable: %s", request.id, exc)
                raise ExternalServiceFailure(BOOKING_FAILED) from exc
            return ReconciliationResult(staff_member_id=staff_id, appointment=appointment)


__all__ = [
    "AssignmentReconciler",
    "BOOKING_FAILED",
    "INVALID_STAFF_MEMBER",
    "NOT_ASSIGNABLE_CATEGORY",
    "ReconciliationResult",
]
