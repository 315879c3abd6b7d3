"""Role-Based Access Control (RBAC) for the incident operations.

The transport layer only authenticates (see ``incident_hub.core.auth``).
Every service operation names the permission it needs and checks it with
``require_permission`` before touching storage.
"""

import logging
import uuid
from enum import Enum
from typing import List, Optional, Set

from pydantic import BaseModel

from incident_hub.core.exceptions import AuthorizationException, AuthenticationException
from incident_hub.models.user import UserRole as Role

logger = logging.getLogger("api.rbac")


# =============================================================================
# Permission Definitions
# =============================================================================

class Permission(str, Enum):
    """Granular permissions for fine-grained access control."""

    # Incident permissions
    INCIDENT_SUBMIT = "incident:submit"
    INCIDENT_VIEW = "incident:view"
    INCIDENT_UPVOTE = "incident:upvote"
    INCIDENT_VERIFY = "incident:verify"
    INCIDENT_UPDATE_STATUS = "incident:update_status"
    INCIDENT_NOTES = "incident:notes"

    # Points and rewards
    SCORE_VIEW = "score:view"
    LEADERBOARD_VIEW = "leaderboard:view"
    REWARD_REDEEM = "reward:redeem"

    # Responder dashboard
    DASHBOARD_VIEW = "dashboard:view"

    # Account administration
    ADMIN_PROMOTE = "admin:promote"


_CITIZEN_PERMISSIONS: Set[Permission] = {
    Permission.INCIDENT_SUBMIT,
    Permission.INCIDENT_VIEW,
    Permission.INCIDENT_UPVOTE,
    Permission.SCORE_VIEW,
    Permission.LEADERBOARD_VIEW,
    Permission.REWARD_REDEEM,
}

_RESPONDER_PERMISSIONS: Set[Permission] = _CITIZEN_PERMISSIONS | {
    Permission.INCIDENT_VERIFY,
    Permission.INCIDENT_UPDATE_STATUS,
    Permission.INCIDENT_NOTES,
    Permission.DASHBOARD_VIEW,
}

# Role to permissions mapping
ROLE_PERMISSIONS: dict[Role, Set[Permission]] = {
    Role.USER: _CITIZEN_PERMISSIONS,
    Role.ADMIN: _RESPONDER_PERMISSIONS,
    Role.SUPERADMIN: set(Permission),  # All permissions
}

RESPONDER_ROLES = (Role.ADMIN, Role.SUPERADMIN)


# =============================================================================
# Authorization Context
# =============================================================================

class AuthContext(BaseModel):
    """Authentication and authorization context for a request."""

    # Authentication
    is_authenticated: bool = False
    auth_method: Optional[str] = None  # "jwt"

    # Identity
    subject_id: Optional[str] = None  # User ID
    subject_type: str = "anonymous"  # "user", "anonymous"

    # Authorization
    roles: List[Role] = []
    permissions: Set[Permission] = set()

    # Request context
    request_id: Optional[str] = None
    client_ip: Optional[str] = None

    @property
    def user_id(self) -> uuid.UUID:
        """Subject as a user UUID. Raises for anonymous contexts."""
        if not self.is_authenticated or not self.subject_id:
            raise AuthenticationException("Authentication required")
        try:
            return uuid.UUID(self.subject_id)
        except ValueError:
            raise AuthenticationException("Invalid token subject")

    @property
    def is_responder(self) -> bool:
        return self.has_any_role(list(RESPONDER_ROLES))

    def has_any_role(self, roles: List[Role]) -> bool:
        """Check if context has any of the specified roles."""
        return any(role in self.roles for role in roles)

    def has_permission(self, permission: Permission) -> bool:
        """Check if context has a specific permission."""
        return permission in self.permissions


def anonymous_context(
    request_id: Optional[str] = None,
    client_ip: Optional[str] = None,
) -> AuthContext:
    """Context for a request that carried no usable credentials."""
    return AuthContext(request_id=request_id, client_ip=client_ip)


def user_context(
    user_id: str,
    roles: List[Role],
    request_id: Optional[str] = None,
    client_ip: Optional[str] = None,
) -> AuthContext:
    """Authenticated context for a user with the given roles."""
    return AuthContext(
        is_authenticated=True,
        auth_method="jwt",
        subject_id=str(user_id),
        subject_type="user",
        roles=roles,
        permissions=get_permissions_for_roles(roles),
        request_id=request_id,
        client_ip=client_ip,
    )


# =============================================================================
# Authorization Functions
# =============================================================================

def get_permissions_for_roles(roles: List[Role]) -> Set[Permission]:
    """Get all permissions for a list of roles."""
    permissions = set()
    for role in roles:
        permissions.update(ROLE_PERMISSIONS.get(role, set()))
    return permissions


def parse_roles(role_names: List[str]) -> List[Role]:
    """Convert role strings from a token into Role values, dropping unknowns."""
    roles = []
    for role_str in role_names:
        try:
            roles.append(Role(role_str))
        except ValueError:
            logger.warning(f"Unknown role in token: {role_str}")
    return roles or [Role.USER]


def require_permission(context: AuthContext, permission: Permission) -> AuthContext:
    """Raise unless the context is authenticated and holds ``permission``."""
    if not context.is_authenticated:
        raise AuthenticationException("Authentication required")

    if not context.has_permission(permission):
        logger.warning(
            f"Access denied for {context.subject_id}: "
            f"missing permission {permission.value}, "
            f"has roles {[r.value for r in context.roles]}"
        )
        raise AuthorizationException("Insufficient permissions")

    return context
