"""Bearer-token authentication for API requests."""

import logging
from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from incident_hub.core.audit import audit_log
from incident_hub.core.exceptions import AuthenticationException
from incident_hub.core.jwt import TokenPair, TokenPayload, get_jwt_manager
from incident_hub.core.rbac import AuthContext, Role, anonymous_context, parse_roles, user_context

logger = logging.getLogger("api.auth")


bearer_scheme = HTTPBearer(auto_error=False)


def get_client_ip(request: Request) -> str:
    """Extract client IP from request."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client:
        return request.client.host
    return "unknown"


def get_request_id(request: Request) -> str:
    """Get request ID from request state."""
    return getattr(request.state, "request_id", "unknown")


def _context_from_token(token: str, request_id: str, client_ip: str) -> AuthContext:
    payload = get_jwt_manager().decode_token(token)

    if not payload:
        audit_log.log_auth_failure(request_id, client_ip, "Invalid or expired token")
        raise AuthenticationException("Invalid or expired token")

    if payload.type != "access":
        audit_log.log_auth_failure(request_id, client_ip, "Invalid token type")
        raise AuthenticationException("Invalid token type")

    return user_context(
        payload.sub,
        parse_roles(payload.roles),
        request_id=request_id,
        client_ip=client_ip,
    )


async def authenticate_request(
    request: Request,
    bearer: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> AuthContext:
    """
    Authenticate the request from its ``Authorization: Bearer`` header.

    Requests without credentials get an anonymous context; authorization
    decisions are left to the operation being called. A token that is
    present but invalid is rejected outright.
    """
    request_id = get_request_id(request)
    client_ip = get_client_ip(request)

    if bearer is None:
        return anonymous_context(request_id=request_id, client_ip=client_ip)

    return _context_from_token(bearer.credentials, request_id, client_ip)


async def require_authentication(
    context: AuthContext = Depends(authenticate_request),
) -> AuthContext:
    """Require any valid authentication."""
    if not context.is_authenticated:
        raise AuthenticationException("Authentication required")
    return context


# =============================================================================
# Token Issuance
# =============================================================================

def issue_token_pair(user_id: str, role: Role) -> TokenPair:
    """Create access and refresh tokens for a user."""
    return get_jwt_manager().create_token_pair(subject=str(user_id), roles=[role.value])


def decode_refresh_token(refresh_token: str) -> Optional[TokenPayload]:
    """Return the payload of a valid refresh token, else None."""
    payload = get_jwt_manager().decode_token(refresh_token)
    if not payload or payload.type != "refresh":
        return None
    return payload


def revoke_token(token: str) -> bool:
    """Revoke (blacklist) a token."""
    return get_jwt_manager().blacklist_token(token)
