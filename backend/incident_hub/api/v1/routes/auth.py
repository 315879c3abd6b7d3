"""Authentication API endpoints."""

import logging
import uuid
from typing import Optional

from fastapi import APIRouter, Depends, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from incident_hub.core.audit import AuditAction, audit_log
from incident_hub.core.auth import (
    authenticate_request,
    decode_refresh_token,
    get_client_ip,
    get_request_id,
    issue_token_pair,
    require_authentication,
    revoke_token,
)
from incident_hub.core.exceptions import AuthenticationException
from incident_hub.core.rbac import AuthContext
from incident_hub.db.session import get_db
from incident_hub.models.user import User
from incident_hub.schemas.user import (
    LoginRequest,
    PromoteRequest,
    RegisterRequest,
    UserResponse,
)
from incident_hub.services.user_service import user_service

logger = logging.getLogger("api.auth")
router = APIRouter()


# =============================================================================
# Request/Response Models
# =============================================================================

class TokenResponse(BaseModel):
    """Token response."""

    access_token: str
    refresh_token: Optional[str] = None
    token_type: str = "bearer"
    expires_in: int  # seconds


class AuthResponse(TokenResponse):
    """Tokens plus the account they were issued for."""

    user: UserResponse


class RefreshRequest(BaseModel):
    """Request to refresh an access token."""

    refresh_token: str = Field(..., description="Refresh token")


class RevokeRequest(BaseModel):
    """Request to revoke a token."""

    token: str = Field(..., description="Token to revoke")


class AuthStatusResponse(BaseModel):
    """Current authentication status."""

    authenticated: bool
    method: Optional[str] = None
    subject_id: Optional[str] = None
    roles: list[str] = []
    permissions: list[str] = []


class MessageResponse(BaseModel):
    message: str
    user: Optional[UserResponse] = None


# =============================================================================
# Helper Functions
# =============================================================================

def _auth_response(user: User) -> AuthResponse:
    tokens = issue_token_pair(str(user.id), user.role)
    return AuthResponse(
        access_token=tokens.access_token,
        refresh_token=tokens.refresh_token,
        token_type=tokens.token_type,
        expires_in=tokens.expires_in,
        user=UserResponse.model_validate(user),
    )


# =============================================================================
# Endpoints
# =============================================================================

@router.get("/status", response_model=AuthStatusResponse)
async def get_auth_status(
    context: AuthContext = Depends(authenticate_request),
) -> AuthStatusResponse:
    """
    Get current authentication status.

    Returns information about the current authentication context
    including roles and permissions.
    """
    return AuthStatusResponse(
        authenticated=context.is_authenticated,
        method=context.auth_method,
        subject_id=context.subject_id,
        roles=[r.value for r in context.roles],
        permissions=sorted(p.value for p in context.permissions),
    )


@router.post("/register", response_model=AuthResponse, status_code=201)
async def register(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db),
) -> AuthResponse:
    """Create a citizen account and sign it in."""
    user = await user_service.register(db, body.name, body.email, body.password, body.city)
    return _auth_response(user)


@router.post("/login", response_model=AuthResponse)
async def login(
    request: Request,
    body: LoginRequest,
    db: AsyncSession = Depends(get_db),
) -> AuthResponse:
    """Exchange email and password for a token pair."""
    request_id = get_request_id(request)
    client_ip = get_client_ip(request)

    try:
        user = await user_service.authenticate(db, body.email, body.password)
    except AuthenticationException:
        audit_log.log_auth_failure(request_id, client_ip, "Invalid credentials")
        raise

    audit_log.log(
        AuditAction.AUTH_SUCCESS,
        request_id=request_id,
        client_ip=client_ip,
        actor_id=str(user.id),
        details={"action": "login"},
    )
    return _auth_response(user)


@router.post("/refresh", response_model=AuthResponse)
async def refresh_token(
    request: Request,
    refresh_request: RefreshRequest,
    db: AsyncSession = Depends(get_db),
) -> AuthResponse:
    """
    Refresh an access token using a refresh token.

    The old refresh token is revoked and the new access token carries the
    account's current role.
    """
    request_id = get_request_id(request)
    client_ip = get_client_ip(request)

    payload = decode_refresh_token(refresh_request.refresh_token)
    user = None
    if payload:
        try:
            user = await db.get(User, uuid.UUID(payload.sub))
        except ValueError:
            user = None

    if user is None:
        audit_log.log_auth_failure(request_id, client_ip, "Invalid refresh token")
        raise AuthenticationException("Invalid or expired refresh token")

    revoke_token(refresh_request.refresh_token)
    audit_log.log(
        AuditAction.AUTH_SUCCESS,
        request_id=request_id,
        client_ip=client_ip,
        actor_id=str(user.id),
        details={"action": "token_refresh"},
    )
    return _auth_response(user)


@router.post("/revoke")
async def revoke(
    revoke_request: RevokeRequest,
    context: AuthContext = Depends(require_authentication),
) -> dict:
    """Revoke a token so it can no longer be used."""
    revoked = revoke_token(revoke_request.token)

    audit_log.log(
        AuditAction.AUTH_REVOKE,
        request_id=context.request_id,
        client_ip=context.client_ip,
        actor_id=context.subject_id,
        success=revoked,
    )
    return {"revoked": revoked}


@router.post("/setup-superadmin", response_model=MessageResponse, status_code=201)
async def setup_superadmin(
    body: RegisterRequest,
    db: AsyncSession = Depends(get_db),
) -> MessageResponse:
    """One-time creation of the superadmin account."""
    user = await user_service.setup_superadmin(db, body.name, body.email, body.password)
    return MessageResponse(message="Superadmin created successfully", user=UserResponse.model_validate(user))


@router.post("/admins", response_model=UserResponse)
async def promote_admin(
    body: PromoteRequest,
    context: AuthContext = Depends(authenticate_request),
    db: AsyncSession = Depends(get_db),
) -> UserResponse:
    """Promote an existing account to admin. Superadmin only."""
    user = await user_service.promote_admin(db, context, body.email)
    return UserResponse.model_validate(user)
