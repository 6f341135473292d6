"""Bearer-token authentication of the calling agent."""

from __future__ import annotations

from typing import TypedDict, cast

import jwt
from fastapi import HTTPException, Request, status
from jwt import ExpiredSignatureError, InvalidTokenError

from .identity import ActorIdentity
from .settings import Settings, get_settings

__all__ = [
    "ActorTokenConfigurationError",
    "ActorTokenPayload",
    "ActorTokenValidationError",
    "actor_from_payload",
    "decode_actor_token",
    "get_current_actor",
    "get_optional_actor",
]


class ActorTokenConfigurationError(RuntimeError):
    """Raised when actor token configuration is invalid."""


class ActorTokenValidationError(ValueError):
    """Raised when the provided actor token cannot be validated."""


class _ActorTokenRequiredClaims(TypedDict):
    oid: str


class ActorTokenPayload(_ActorTokenRequiredClaims, total=False):
    """Decoded JWT payload identifying an agent."""

    aud: str | list[str]
    exp: int
    iat: int
    iss: str
    name: str
    given_name: str
    family_name: str
    preferred_username: str


def decode_actor_token(token: str, *, settings: Settings | None = None) -> ActorTokenPayload:
    """Decode and validate an agent access token.

    Raises:
        ActorTokenConfigurationError: If the signing secret, issuer or audience
            is not configured.
        ActorTokenValidationError: If signature, claims or expiry are invalid,
            or the token carries no ``oid`` claim.
    """

    settings = settings or get_settings()
    if not (
        settings.auth_token_secret and settings.auth_token_issuer and settings.auth_token_audience
    ):
        raise ActorTokenConfigurationError(
            "AUTH_TOKEN_SECRET, AUTH_TOKEN_ISSUER and AUTH_TOKEN_AUDIENCE must be set.",
        )

    try:
        payload = jwt.decode(
            token,
            settings.auth_token_secret,
            algorithms=[settings.auth_token_algorithm],
            audience=settings.auth_token_audience,
            issuer=settings.auth_token_issuer,
            options={"require": ["exp", "aud", "iss"]},
        )
    except ExpiredSignatureError as exc:
        raise ActorTokenValidationError("Access token has expired.") from exc
    except InvalidTokenError as exc:
        raise ActorTokenValidationError("Access token is invalid.") from exc

    if not payload.get("oid"):
        raise ActorTokenValidationError("Access token payload must include 'oid'.")
    return cast(ActorTokenPayload, payload)


def actor_from_payload(payload: ActorTokenPayload) -> ActorIdentity:
    name = payload.get("name")
    if not name:
        parts = [payload.get("given_name"), payload.get("family_name")]
        name = " ".join(p for p in parts if p) or None
    return ActorIdentity(object_id=payload["oid"], display_name=name)


def _bearer_credentials(request: Request) -> str | None:
    authorization = request.headers.get("Authorization")
    if not authorization:
        return None
    scheme, _, credentials = authorization.partition(" ")
    if not credentials or scheme.lower() != "bearer":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header must use Bearer scheme.",
        )
    return credentials


async def get_optional_actor(request: Request) -> ActorIdentity | None:
    """Return the calling agent, or ``None`` when no token was sent.

    A missing identity is left to the consult service, which reports it as an
    ``unauthorized`` failure.
    """

    credentials = _bearer_credentials(request)
    if credentials is None:
        return None
    try:
        return actor_from_payload(decode_actor_token(credentials))
    except ActorTokenConfigurationError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=str(exc),
        ) from exc
    except ActorTokenValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(exc),
        ) from exc


async def get_current_actor(request: Request) -> ActorIdentity:
    """Like :func:`get_optional_actor` but a missing header is a 401."""

    actor = await get_optional_actor(request)
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing Authorization header.",
        )
    return actor
