"""
Identity and role directory.

Authentication itself (who is calling) is request-scoped and lives in the
HTTP layer. This module answers the two questions the services ask about a
user id: which role it has and where to email it. Authorization checks are
centralized in ``require_role`` and ``require_party``.
"""

import logging
from enum import Enum
from typing import Dict, Iterable, Optional, Protocol, Type

from carefayre.errors import DependencyUnavailableError, NotAuthorizedError

logger = logging.getLogger(__name__)

USER_ROLES_TABLE = "user_roles"


class Role(str, Enum):
    CUSTOMER = "customer"
    AGENCY = "agency"
    ADMIN = "admin"


class IdentityDirectory(Protocol):
    """Protocol for role and email lookup backends."""

    def get_role(self, user_id: str) -> Optional[Role]:
        """Role for a user, or None if the user has none."""
        ...

    def get_email(self, user_id: str) -> Optional[str]:
        """Email address for a user, or None if unknown."""
        ...


class InMemoryIdentityDirectory:
    """In-memory directory for testing and local development."""

    def __init__(self):
        self._roles: Dict[str, Role] = {}
        self._emails: Dict[str, str] = {}

    def add_user(self, user_id: str, role: Role, email: Optional[str] = None) -> None:
        self._roles[user_id] = Role(role)
        if email:
            self._emails[user_id] = email

    def get_role(self, user_id: str) -> Optional[Role]:
        return self._roles.get(user_id)

    def get_email(self, user_id: str) -> Optional[str]:
        return self._emails.get(user_id)


class SupabaseIdentityDirectory:
    """Directory backed by Supabase.

    Roles come from the ``user_roles`` table; email addresses come from the
    auth admin API, so a service-role client is required.
    """

    def __init__(self, client):
        self.client = client

    def get_role(self, user_id: str) -> Optional[Role]:
        try:
            result = (
                self.client.table(USER_ROLES_TABLE)
                .select("role")
                .eq("user_id", user_id)
                .limit(1)
                .execute()
            )
        except Exception as e:
            logger.error(f"Role lookup failed for {user_id}: {e}")
            raise DependencyUnavailableError("Identity directory unavailable") from e
        if not result.data:
            return None
        try:
            return Role(result.data[0]["role"])
        except ValueError:
            logger.warning(f"Unknown role for {user_id}: {result.data[0]['role']}")
            return None

    def get_email(self, user_id: str) -> Optional[str]:
        try:
            response = self.client.auth.admin.get_user_by_id(user_id)
        except Exception as e:
            logger.warning(f"Email lookup failed for {user_id}: {e}")
            return None
        user = getattr(response, "user", None)
        return getattr(user, "email", None) or None


def require_role(
    identity: IdentityDirectory,
    user_id: Optional[str],
    *roles: Role,
    error: Type[NotAuthorizedError] = NotAuthorizedError,
) -> Role:
    """Return the caller's role, raising unless it is one of ``roles``."""
    if not user_id:
        raise error("Authentication required")
    role = identity.get_role(user_id)
    if role is None or role not in roles:
        allowed = " or ".join(r.value for r in roles)
        raise error(f"Only a {allowed} can do this")
    return role


def require_party(
    user_id: Optional[str],
    party_ids: Iterable[str],
    error: Type[NotAuthorizedError] = NotAuthorizedError,
    message: str = "You are not a party to this job",
) -> None:
    """Raise unless ``user_id`` is one of ``party_ids``."""
    if not user_id or user_id not in set(party_ids):
        raise error(message)


def is_admin(identity: IdentityDirectory, user_id: Optional[str]) -> bool:
    return bool(user_id) and identity.get_role(user_id) == Role.ADMIN
