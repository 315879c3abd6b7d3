# Pydantic schemas
from incident_hub.schemas.common import BoundingBox
from incident_hub.schemas.incident import (
    DashboardStats,
    IncidentCreate,
    IncidentCreateResponse,
    IncidentFilters,
    IncidentResponse,
    NoteCreate,
    StatusUpdate,
    UpvoteResponse,
)
from incident_hub.schemas.user import (
    LeaderboardEntry,
    LoginRequest,
    ProfileResponse,
    RegisterRequest,
    RewardCatalogueResponse,
    ScoreResponse,
)

__all__ = [
    "BoundingBox",
    "DashboardStats",
    "IncidentCreate",
    "IncidentCreateResponse",
    "IncidentFilters",
    "IncidentResponse",
    "NoteCreate",
    "StatusUpdate",
    "UpvoteResponse",
    "LeaderboardEntry",
    "LoginRequest",
    "ProfileResponse",
    "RegisterRequest",
    "RewardCatalogueResponse",
    "ScoreResponse",
]
