"""Client for the external appointment booking service."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Protocol

import httpx

from ..consults.models import TimeBlock


class BookingsServiceError(RuntimeError):
    """The booking service rejected a call or answered with an unusable body."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class BookingsResponseError(BookingsServiceError):
    """A 2xx answer whose body could not be read."""


@dataclass(frozen=True)
class Appointment:
    id: str
    join_uri: str | None = None


@dataclass(frozen=True)
class CustomerInfo:
    name: str
    email: str
    phone: str
    notes: str | None = None


class BookingsClient(Protocol):
    async def resolve_staff_id(
        self, business_id: str, principal_name: str
    ) -> str | None:
        ...

    async def create_appointment(
        self,
        business_id: str,
        service_id: str,
        staff_id: str,
        time_block: TimeBlock,
        customer: CustomerInfo,
    ) -> Appointment:
        ...

    async def update_appointment(
        self, business_id: str, appointment_id: str, staff_id: str
    ) -> None:
        ...


def _utc(value: datetime) -> str:
    """Naive values are taken as UTC; the offset is dropped after conversion."""

    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc).replace(tzinfo=None)
    return value.isoformat()


class HttpBookingsClient:
    """Booking-service client speaking a Graph-style REST API."""

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout_seconds: float = 30.0,
        client: httpx.AsyncClient | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.logger = logger or logging.getLogger(__name__)
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(
            base_url=base_url.rstrip("/") + "/",
            headers=headers,
            timeout=httpx.Timeout(timeout_seconds),
            transport=transport,
        )

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        response = await self._client.request(method, path, **kwargs)
        if response.is_error:
            self.logger.warning(
                "Bookings %s %s failed with %s", method, path, response.status_code
            )
            raise BookingsServiceError(
                f"Bookings {method} {path} returned {response.status_code}",
                status_code=response.status_code,
            )
        return response

    def _payload(self, response: httpx.Response, path: str) -> dict[str, Any]:
        try:
            payload = response.json()
        except ValueError as exc:
            raise BookingsResponseError(
                f"Bookings {path} returned a non-JSON body",
                status_code=response.status_code,
            ) from exc
        if not isinstance(payload, dict):
            raise BookingsResponseError(
                f"Bookings {path} returned an unexpected body",
                status_code=response.status_code,
            )
        return payload

    async def resolve_staff_id(
        self, business_id: str, principal_name: str
    ) -> str | None:
        principal = principal_name.replace("'", "''")
        path = f"bookingBusinesses/{business_id}/staffMembers"
        response = await self._request(
            "GET", path, params={"$filter": f"emailAddress eq '{principal}'"}
        )
        members = self._payload(response, path).get("value") or []
        if not isinstance(members, list):
            raise BookingsResponseError(f"Bookings {path} returned an unexpected body")
        if len(members) != 1:
            self.logger.info(
                "Staff lookup for %s in %s matched %d members",
                principal_name,
                business_id,
                len(members),
            )
            return None
        member = members[0]
        if not isinstance(member, dict) or not member.get("id"):
            raise BookingsResponseError(f"Bookings {path} returned a member without an id")
        return member["id"]

    async def create_appointment(
        self,
        business_id: str,
        service_id: str,
        staff_id: str,
        time_block: TimeBlock,
        customer: CustomerInfo,
    ) -> Appointment:
        body = {
            "serviceId": service_id,
            "staffMemberIds": [staff_id],
            "isLocationOnline": True,
            "customerName": customer.name,
            "customerEmailAddress": customer.email,
            "customerPhone": customer.phone,
            "customerNotes": customer.notes,
            "startDateTime": {
                "dateTime": _utc(time_block.start_date_time),
                "timeZone": "UTC",
            },
            "endDateTime": {
                "dateTime": _utc(time_block.end_date_time),
                "timeZone": "UTC",
            },
        }
        path = f"bookingBusinesses/{business_id}/appointments"
        response = await self._request("POST", path, json=body)
        payload = self._payload(response, path)
        if not payload.get("id"):
            raise BookingsResponseError(
                f"Bookings {path} returned no appointment id",
                status_code=response.status_code,
            )
        return Appointment(id=payload["id"], join_uri=payload.get("joinWebUrl"))

    async def update_appointment(
        self, business_id: str, appointment_id: str, staff_id: str
    ) -> None:
        await self._request(
            "PATCH",
            f"bookingBusinesses/{business_id}/appointments/{appointment_id}",
            json={"staffMemberIds": [staff_id]},
        )


__all__ = [
    "Appointment",
    "BookingsClient",
    "BookingsResponseError",
    "BookingsServiceError",
    "CustomerInfo",
    "HttpBookingsClient",
]
