"""Incident request and response schemas."""

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, field_validator

from incident_hub.models.incident import (
    IncidentSeverity,
    IncidentStatus,
    IncidentType,
    VerificationMethod,
)


class IncidentCreate(BaseModel):
    """Validated input for a new incident report."""

    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(..., min_length=1, max_length=5000)
    type: IncidentType
    severity: IncidentSeverity
    latitude: float = Field(..., ge=-90, le=90)
    longitude: float = Field(..., ge=-180, le=180)
    location: Optional[str] = Field(None, max_length=500)

    @field_validator("title", "description")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("must not be blank")
        return v

    @field_validator("location")
    @classmethod
    def blank_location_is_missing(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


class IncidentFilters(BaseModel):
    """Feed filters. Unknown enum values are dropped rather than rejected."""

    status: Optional[IncidentStatus] = None
    type: Optional[IncidentType] = None
    verified: Optional[bool] = None
    latitude: Optional[float] = Field(None, ge=-90, le=90)
    longitude: Optional[float] = Field(None, ge=-180, le=180)
    radius_km: Optional[float] = Field(None, gt=0, le=20000)

    @property
    def has_area(self) -> bool:
        return (
            self.latitude is not None
            and self.longitude is not None
            and self.radius_km is not None
        )


class StatusUpdate(BaseModel):
    status: IncidentStatus


class NoteCreate(BaseModel):
    note: str = Field(..., max_length=5000)

    @field_validator("note")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Note is required")
        return v


class ReporterSummary(BaseModel):
    id: UUID
    name: Optional[str] = None
    email: str


class NoteResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    text: str
    added_by_id: UUID
    created_at: datetime


class IncidentResponse(BaseModel):
    """Incident as returned to clients."""

    model_config = ConfigDict(from_attributes=True)

    id: UUID
    incident_id: str
    title: str
    description: str
    type: IncidentType
    severity: IncidentSeverity
    latitude: float
    longitude: float
    location: str
    media_urls: List[str] = []
    user_id: UUID
    status: IncidentStatus
    is_verified: bool
    verification_method: Optional[VerificationMethod] = None
    verified_by_id: Optional[UUID] = None
    verified_at: Optional[datetime] = None
    duplicate_of_id: Optional[UUID] = None
    created_at: datetime
    updated_at: datetime

    reporter: Optional[ReporterSummary] = None
    upvote_count: int = 0
    has_upvoted: bool = False
    merged_incidents: List[str] = Field(default_factory=list, description="incident_id of each merged duplicate")
    internal_notes: List[NoteResponse] = Field(default_factory=list)


class IncidentCreateResponse(BaseModel):
    message: str = "Incident reported successfully"
    incident: IncidentResponse
    is_duplicate: bool
    duplicate_of: Optional[str] = Field(None, description="incident_id of the primary")


class UpvoteResponse(BaseModel):
    upvotes: int
    is_verified: bool
    verification_method: Optional[VerificationMethod] = None
    has_upvoted: bool


class DashboardStats(BaseModel):
    incidents_today: int
    need_review: int
    resolved_today: int
    total_active_users: int
