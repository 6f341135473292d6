from .client import (
    Appointment,
    BookingsClient,
    BookingsResponseError,
    BookingsServiceError,
    CustomerInfo,
    HttpBookingsClient,
)

__all__ = [
    "Appointment",
    "BookingsClient",
    "BookingsResponseError",
    "BookingsServiceError",
    "CustomerInfo",
    "HttpBookingsClient",
]
