"""Incident database models for citizen-submitted reports."""

import enum
import secrets
import time
import uuid
from datetime import datetime
from typing import Optional, List

from sqlalchemy import (
    Boolean,
    Enum,
    Float,
    String,
    Text,
    DateTime,
    ForeignKey,
    JSON,
    Index,
    UniqueConstraint,
    Uuid,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from incident_hub.models.base import Base

LOCATION_PLACEHOLDER = "Location not provided"


class IncidentType(str, enum.Enum):
    """Categories a citizen can report."""

    ACCIDENT = "accident"
    MEDICAL = "medical"
    FIRE = "fire"
    INFRASTRUCTURE = "infrastructure"
    CRIME = "crime"
    NATURAL_DISASTER = "natural_disaster"
    OTHER = "other"


class IncidentSeverity(str, enum.Enum):
    """Reporter-assessed severity."""

    LOW = "Low"
    MEDIUM = "Medium"
    HIGH = "High"


class IncidentStatus(str, enum.Enum):
    """Responder workflow status. Independent of verification."""

    REPORTED = "Reported"
    VERIFIED = "Verified"
    IN_PROGRESS = "In Progress"
    RESOLVED = "Resolved"
    REJECTED = "Rejected"


class VerificationMethod(str, enum.Enum):
    """How an incident came to be verified."""

    ADMIN = "admin"
    UPVOTE = "upvote"
    AUTOMATIC = "automatic"


def generate_incident_id() -> str:
    """Human-readable incident id, e.g. INC-1718000000000-3FA9."""
    return f"INC-{int(time.time() * 1000)}-{secrets.token_hex(2).upper()}"


class Incident(Base):
    """A geotagged incident report.

    An incident is either a primary (``duplicate_of_id`` is null) or a
    duplicate pointing at exactly one primary. The primary's merged set is
    the reverse side of that single column.
    """

    __tablename__ = "incidents"
    __table_args__ = (
        Index("ix_incidents_dedup", "type", "duplicate_of_id", "created_at"),
        Index("ix_incidents_lat_lon", "latitude", "longitude"),
    )

    incident_id: Mapped[str] = mapped_column(
        String(40), unique=True, nullable=False, default=generate_incident_id
    )

    # Classification
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    type: Mapped[IncidentType] = mapped_column(Enum(IncidentType), nullable=False)
    severity: Mapped[IncidentSeverity] = mapped_column(
        Enum(IncidentSeverity),
        default=IncidentSeverity.MEDIUM,
        nullable=False,
    )

    # Location
    latitude: Mapped[float] = mapped_column(Float, nullable=False)
    longitude: Mapped[float] = mapped_column(Float, nullable=False)
    location: Mapped[str] = mapped_column(
        String(500), default=LOCATION_PLACEHOLDER, nullable=False
    )

    media_urls: Mapped[List[str]] = mapped_column(JSON, default=list, nullable=False)

    # Ownership
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )

    # Workflow
    status: Mapped[IncidentStatus] = mapped_column(
        Enum(IncidentStatus),
        default=IncidentStatus.REPORTED,
        nullable=False,
    )

    # Verification
    is_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    verification_method: Mapped[Optional[VerificationMethod]] = mapped_column(
        Enum(VerificationMethod), nullable=True
    )
    verified_by_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=True
    )
    verified_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    # Deduplication
    duplicate_of_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid, ForeignKey("incidents.id"), nullable=True
    )

    upvotes: Mapped[List["IncidentUpvote"]] = relationship(
        back_populates="incident",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    notes: Mapped[List["IncidentNote"]] = relationship(
        back_populates="incident",
        cascade="all, delete-orphan",
        order_by="IncidentNote.created_at",
        lazy="selectin",
    )

    @property
    def is_duplicate(self) -> bool:
        return self.duplicate_of_id is not None

    @property
    def upvoter_ids(self) -> set:
        return {upvote.user_id for upvote in self.upvotes}


class IncidentUpvote(Base):
    """One user's upvote on one incident."""

    __tablename__ = "incident_upvotes"
    __table_args__ = (
        UniqueConstraint("incident_id", "user_id", name="uq_incident_upvote"),
    )

    incident_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("incidents.id", ondelete="CASCADE"), nullable=False
    )
    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )

    incident: Mapped[Incident] = relationship(back_populates="upvotes")


class IncidentNote(Base):
    """Responder-only note. Append-only."""

    __tablename__ = "incident_notes"

    incident_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("incidents.id", ondelete="CASCADE"), nullable=False
    )
    text: Mapped[str] = mapped_column(Text, nullable=False)
    added_by_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False
    )

    incident: Mapped[Incident] = relationship(back_populates="notes")
