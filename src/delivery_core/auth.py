"""
Signed session tokens.

The portal signs in users and issues an HS256 token; the core only trusts
what that token says about the caller:

{
    "sub": <user id>,
    "name": <display name>,
    "role": "employee" | "dept-head",
    "department": <department name or null>,
    "iat": <issued at>,
    "exp": <expires at>
}
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt

from .config import Settings, get_settings
from .permissions import Actor, ActorRole

logger = logging.getLogger("delivery-core.auth")


class SessionTokenError(Exception):
    """The bearer token is missing, malformed, expired or badly signed."""


def issue_session_token(actor: Actor, settings: Optional[Settings] = None) -> str:
    """Sign a session token for ``actor``."""
    settings = settings or get_settings()
    now = datetime.now(timezone.utc)
    payload = {
        "sub": actor.user_id,
        "name": actor.name,
        "role": actor.role.value,
        "department": actor.department,
        "iat": now,
        "exp": now + timedelta(seconds=settings.session_ttl_seconds),
    }
    return jwt.encode(payload, settings.session_secret, algorithm=settings.session_algorithm)


def decode_session_token(token: str, settings: Optional[Settings] = None) -> Actor:
    """
    Verify a session token and return the actor it names.

    Raises:
        SessionTokenError: If the token fails verification or lacks a claim
    """
    settings = settings or get_settings()
    try:
        payload = jwt.decode(
            token,
            settings.session_secret,
            algorithms=[settings.session_algorithm],
            options={"require": ["sub", "exp"]},
        )
    except jwt.ExpiredSignatureError as e:
        raise SessionTokenError("Session expired") from e
    except jwt.InvalidTokenError as e:
        logger.warning(f"Rejected session token: {e}")
        raise SessionTokenError("Invalid session token") from e

    try:
        role = ActorRole(payload.get("role", ActorRole.EMPLOYEE.value))
    except ValueError as e:
        raise SessionTokenError(f"Unknown role '{payload.get('role')}'") from e

    return Actor(
        user_id=str(payload["sub"]),
        name=payload.get("name") or str(payload["sub"]),
        role=role,
        department=payload.get("department"),
    )
