"""Audit logging for responder and account actions."""

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel

logger = logging.getLogger("api.audit")


class AuditAction(str, Enum):
    """Audit action types."""

    # Authentication
    AUTH_SUCCESS = "auth.success"
    AUTH_FAILURE = "auth.failure"
    AUTH_REGISTER = "auth.register"
    AUTH_REVOKE = "auth.revoke"

    # Incidents
    INCIDENT_SUBMIT = "incident.submit"
    INCIDENT_LINK_DUPLICATE = "incident.link_duplicate"
    INCIDENT_UPVOTE = "incident.upvote"
    INCIDENT_VERIFY = "incident.verify"
    INCIDENT_STATUS = "incident.status"
    INCIDENT_NOTE = "incident.note"

    # Rewards
    REWARD_REDEEM = "reward.redeem"

    # Admin
    ADMIN_PROMOTE = "admin.promote"
    ADMIN_SUPERADMIN_SETUP = "admin.superadmin_setup"


class AuditSeverity(str, Enum):
    """Audit event severity levels."""

    INFO = "info"
    WARNING = "warning"
    ERROR = "error"


class AuditEntry(BaseModel):
    """Audit log entry structure."""

    timestamp: datetime
    action: AuditAction
    severity: AuditSeverity
    request_id: Optional[str] = None
    client_ip: Optional[str] = None
    actor_id: Optional[str] = None
    resource_type: Optional[str] = None
    resource_id: Optional[str] = None
    details: Optional[Dict[str, Any]] = None
    success: bool = True
    error_message: Optional[str] = None


class AuditLogger:
    """
    Structured audit trail written to the ``api.audit`` logger as JSON.
    """

    def __init__(self):
        self._logger = logging.getLogger("api.audit")
        self._logger.setLevel(logging.INFO)

    def _format_entry(self, entry: AuditEntry) -> str:
        """Format audit entry as JSON for structured logging."""
        return json.dumps(entry.model_dump(mode="json"), default=str)

    def log(
        self,
        action: AuditAction,
        *,
        severity: AuditSeverity = AuditSeverity.INFO,
        request_id: Optional[str] = None,
        client_ip: Optional[str] = None,
        actor_id: Optional[str] = None,
        resource_type: Optional[str] = None,
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        success: bool = True,
        error_message: Optional[str] = None,
    ) -> None:
        """Log an audit event."""
        entry = AuditEntry(
            timestamp=datetime.now(timezone.utc),
            action=action,
            severity=severity,
            request_id=request_id,
            client_ip=client_ip,
            actor_id=actor_id,
            resource_type=resource_type,
            resource_id=resource_id,
            details=details,
            success=success,
            error_message=error_message,
        )

        log_message = f"AUDIT: {self._format_entry(entry)}"

        if severity == AuditSeverity.ERROR:
            self._logger.error(log_message)
        elif severity == AuditSeverity.WARNING:
            self._logger.warning(log_message)
        else:
            self._logger.info(log_message)

    def log_auth_failure(
        self,
        request_id: str,
        client_ip: str,
        reason: str,
    ) -> None:
        """Log failed authentication attempt."""
        self.log(
            AuditAction.AUTH_FAILURE,
            severity=AuditSeverity.WARNING,
            request_id=request_id,
            client_ip=client_ip,
            success=False,
            error_message=reason,
        )

    def log_incident_action(
        self,
        action: AuditAction,
        context,
        incident_id: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log an action taken on an incident by the principal in ``context``."""
        self.log(
            action,
            request_id=context.request_id,
            client_ip=context.client_ip,
            actor_id=context.subject_id,
            resource_type="incident",
            resource_id=incident_id,
            details=details,
        )

    def log_admin_action(
        self,
        action: AuditAction,
        context,
        resource_id: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        """Log administrative actions."""
        self.log(
            action,
            severity=AuditSeverity.WARNING,  # Admin actions always notable
            request_id=context.request_id if context else None,
            client_ip=context.client_ip if context else None,
            actor_id=context.subject_id if context else None,
            resource_type="user",
            resource_id=resource_id,
            details=details,
        )


# Global audit logger instance
audit_log = AuditLogger()
