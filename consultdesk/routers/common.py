"""Dependencies and error translation shared by the API routers."""

from __future__ import annotations

import logging
from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import HTTPException, Request, status
from slowapi import Limiter

from ..consults.errors import ConsultError, ErrorKind, UnauthorizedError
from ..consults.schemas import OperationFailure
from ..services import Services

logger = logging.getLogger(__name__)

_STATUS_BY_KIND = {
    ErrorKind.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    ErrorKind.INVALID_STATE: status.HTTP_403_FORBIDDEN,
    ErrorKind.UNAUTHORIZED: status.HTTP_401_UNAUTHORIZED,
    ErrorKind.EXTERNAL_SERVICE_FAILURE: status.HTTP_502_BAD_GATEWAY,
    ErrorKind.CONFLICT: status.HTTP_409_CONFLICT,
    ErrorKind.INVALID_INPUT: status.HTTP_400_BAD_REQUEST,
}


def get_client_ip(request: Request) -> str:
    """Rate-limit key: first ``X-Forwarded-For`` hop, else the peer address."""

    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


limiter = Limiter(key_func=get_client_ip)


def get_services(request: Request) -> Services:
    services = getattr(request.app.state, "services", None)
    if services is None:
        raise HTTPException(status_code=503, detail="Service is starting up")
    return services


def status_for(exc: ConsultError) -> int:
    if isinstance(exc, UnauthorizedError) and exc.authenticated:
        return status.HTTP_403_FORBIDDEN
    return _STATUS_BY_KIND[exc.kind]


@contextmanager
def translate_errors() -> Iterator[None]:
    """Turn :class:`ConsultError` into an HTTP error with an OperationFailure body."""

    try:
        yield
    except ConsultError as exc:
        failure = OperationFailure(kind=exc.kind, reason=exc.reason, retryable=exc.retryable)
        raise HTTPException(
            status_code=status_for(exc), detail=failure.model_dump(mode="json")
        ) from exc
