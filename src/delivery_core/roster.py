"""Department roster collaborator.

The roster answers one question: which users belong to a department and may
therefore be added to its projects and sprints. The core only consumes it;
the directory itself lives elsewhere.
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional

import httpx
from pydantic import BaseModel

from .errors import NotFoundError, StorageError

logger = logging.getLogger("delivery-core.roster")


class RosterEntry(BaseModel):
    """One candidate member returned by the roster."""

    user_id: str
    name: str
    department: Optional[str] = None


class RosterService(ABC):
    """Lookup of candidate members for a department."""

    @abstractmethod
    def list_candidates(self, department: str) -> list[RosterEntry]:
        """
        Return the users eligible for membership in ``department``.

        Raises:
            StorageError: If the roster cannot be reached
        """

    def require_members(self, department: str, user_ids: list[str]) -> None:
        """
        Check that every user id is on the department roster.

        Raises:
            NotFoundError: For the first user id missing from the roster
            StorageError: If the roster cannot be reached
        """
        known = {entry.user_id for entry in self.list_candidates(department)}
        for user_id in user_ids:
            if user_id not in known:
                raise NotFoundError(resource=f"Roster entry in department '{department}' for user", resource_id=user_id)


class StaticRoster(RosterService):
    """In-memory roster keyed by department."""

    def __init__(self, entries: Optional[dict[str, list[RosterEntry]]] = None):
        self.entries = entries or {}

    def list_candidates(self, department: str) -> list[RosterEntry]:
        return list(self.entries.get(department, []))


class HttpRosterClient(RosterService):
    """
    Roster backed by the portal's org-employees endpoint.

    ``GET {base_url}/org-employees?department=<name>`` is expected to return
    either a bare list or ``{"employees": [...]}`` of ``{_id|userId, name}``
    objects. The client does not retry; callers decide.
    """

    def __init__(self, base_url: str, timeout: float = 5.0, client: Optional[httpx.Client] = None):
        self.base_url = base_url.rstrip("/")
        self._client = client or httpx.Client(timeout=timeout)

    def list_candidates(self, department: str) -> list[RosterEntry]:
        try:
            response = self._client.get(
                f"{self.base_url}/org-employees",
                params={"department": department},
            )
            response.raise_for_status()
            payload = response.json()
        except httpx.HTTPStatusError as e:
            logger.error(f"Roster lookup for '{department}' failed with HTTP {e.response.status_code}")
            raise StorageError(
                f"Roster service returned HTTP {e.response.status_code}", collaborator="roster"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Roster lookup for '{department}' failed: {e}")
            raise StorageError("Roster service unavailable", collaborator="roster") from e

        rows = payload.get("employees", []) if isinstance(payload, dict) else payload
        if not isinstance(rows, list):
            logger.error(f"Roster lookup for '{department}' returned an unexpected payload")
            raise StorageError("Roster service returned an unexpected payload", collaborator="roster")
        entries = []
        for row in rows:
            if not isinstance(row, dict):
                logger.warning(f"Skipping malformed roster row for '{department}': {row!r}")
                continue
            user_id = row.get("userId") or row.get("_id")
            if not user_id:
                continue
            entries.append(RosterEntry(
                user_id=str(user_id),
                name=row.get("name") or row.get("username") or str(user_id),
                department=row.get("department", department),
            ))
        logger.debug(f"Roster for '{department}' returned {len(entries)} candidates")
        return entries

    def close(self) -> None:
        self._client.close()
