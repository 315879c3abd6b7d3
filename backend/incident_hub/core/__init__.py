"""Core security, authentication, and authorization modules."""

# Exception handling
from incident_hub.core.exceptions import (
    APIException,
    ValidationException,
    BadRequestException,
    AuthenticationException,
    AuthorizationException,
    ResourceNotFoundException,
    ConflictException,
    ServiceUnavailableException,
    register_exception_handlers,
    sanitize_error_message,
)

# Audit logging
from incident_hub.core.audit import (
    AuditAction,
    AuditSeverity,
    AuditLogger,
    audit_log,
)

# Role-Based Access Control
from incident_hub.core.rbac import (
    Role,
    Permission,
    AuthContext,
    anonymous_context,
    user_context,
    get_permissions_for_roles,
    require_permission,
)

# Authentication
from incident_hub.core.auth import (
    authenticate_request,
    require_authentication,
    issue_token_pair,
    decode_refresh_token,
    revoke_token,
)

__all__ = [
    # Exceptions
    "APIException",
    "ValidationException",
    "BadRequestException",
    "AuthenticationException",
    "AuthorizationException",
    "ResourceNotFoundException",
    "ConflictException",
    "ServiceUnavailableException",
    "register_exception_handlers",
    "sanitize_error_message",
    # Audit
    "AuditAction",
    "AuditSeverity",
    "AuditLogger",
    "audit_log",
    # RBAC
    "Role",
    "Permission",
    "AuthContext",
    "anonymous_context",
    "user_context",
    "get_permissions_for_roles",
    "require_permission",
    # Authentication
    "authenticate_request",
    "require_authentication",
    "issue_token_pair",
    "decode_refresh_token",
    "revoke_token",
]
