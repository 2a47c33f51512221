"""FastAPI dependencies: the authenticated actor and the orchestrator."""
import logging
from functools import lru_cache
from typing import Optional

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from ..attachments import AttachmentStore, LocalAttachmentStore
from ..auth import SessionTokenError, decode_session_token
from ..config import get_settings
from ..database import get_db
from ..health import HealthPolicy
from ..orchestrator import ContainerOrchestrator
from ..permissions import Actor
from ..roster import HttpRosterClient, RosterService

logger = logging.getLogger("delivery-core.dependencies")

bearer_scheme = HTTPBearer(auto_error=False)


def get_current_actor(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> Actor:
    """
    Resolve the caller from the bearer session token.

    User id and name always come from the token, never from the request body.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Not authenticated",
            headers={"WWW-Authenticate": "Bearer"},
        )
    try:
        return decode_session_token(credentials.credentials)
    except SessionTokenError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=str(e),
            headers={"WWW-Authenticate": "Bearer"},
        )


@lru_cache
def get_attachment_store() -> AttachmentStore:
    return LocalAttachmentStore(get_settings().attachment_dir)


@lru_cache
def get_roster() -> Optional[RosterService]:
    """HTTP roster client when ``ROSTER_URL`` is set, otherwise no roster check."""
    settings = get_settings()
    if not settings.roster_url:
        return None
    logger.info(f"Using department roster at {settings.roster_url}")
    return HttpRosterClient(settings.roster_url, timeout=settings.roster_timeout_seconds)


def get_health_policy() -> HealthPolicy:
    return HealthPolicy.from_settings(get_settings())


def get_orchestrator(
    db: Session = Depends(get_db),
    attachment_store: AttachmentStore = Depends(get_attachment_store),
    roster: Optional[RosterService] = Depends(get_roster),
    policy: HealthPolicy = Depends(get_health_policy),
) -> ContainerOrchestrator:
    return ContainerOrchestrator(db, attachment_store, roster=roster, policy=policy)
