# Database models
from incident_hub.models.base import Base, utcnow
from incident_hub.models.user import User, UserRole, RewardRedemption
from incident_hub.models.incident import (
    Incident,
    IncidentNote,
    IncidentSeverity,
    IncidentStatus,
    IncidentType,
    IncidentUpvote,
    VerificationMethod,
)

__all__ = [
    "Base",
    "utcnow",
    "User",
    "UserRole",
    "RewardRedemption",
    "Incident",
    "IncidentNote",
    "IncidentSeverity",
    "IncidentStatus",
    "IncidentType",
    "IncidentUpvote",
    "VerificationMethod",
]
