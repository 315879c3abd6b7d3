"""Duplicate detection for newly submitted incidents.

A new report is a duplicate when an open primary incident of the same type
was created inside a small axis-aligned box around it within the last few
minutes. The box is measured in degrees, so it narrows east-west as latitude
grows; it approximates ~100m near the equator and is not a geodesic distance.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from incident_hub.config import settings
from incident_hub.models.incident import Incident, IncidentType

logger = logging.getLogger(__name__)

DUPLICATE_RADIUS_DEGREES = 0.001
DUPLICATE_WINDOW = timedelta(minutes=5)


@dataclass(frozen=True)
class DuplicateCriteria:
    """Box half-width (degrees) and look-back window for a match."""

    radius_degrees: float = DUPLICATE_RADIUS_DEGREES
    window: timedelta = DUPLICATE_WINDOW

    @classmethod
    def from_settings(cls) -> "DuplicateCriteria":
        return cls(
            radius_degrees=settings.duplicate_radius_degrees,
            window=timedelta(seconds=settings.duplicate_window_seconds),
        )


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes (as some drivers return them) as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def degree_distance_sq(latitude: float, longitude: float, other_lat: float, other_lon: float) -> float:
    """Squared planar distance in degrees. Used for ordering only."""
    return (latitude - other_lat) ** 2 + (longitude - other_lon) ** 2


def is_duplicate_candidate(
    candidate: Incident,
    latitude: float,
    longitude: float,
    incident_type: IncidentType,
    now: datetime,
    criteria: DuplicateCriteria = DuplicateCriteria(),
) -> bool:
    """Whether ``candidate`` is an open primary this report duplicates."""
    if candidate.duplicate_of_id is not None:
        return False
    if candidate.type != incident_type:
        return False
    if abs(candidate.latitude - latitude) > criteria.radius_degrees:
        return False
    if abs(candidate.longitude - longitude) > criteria.radius_degrees:
        return False

    created = as_utc(candidate.created_at)
    now = as_utc(now)
    return now - criteria.window <= created <= now


def order_candidates(
    candidates: Sequence[Incident],
    latitude: float,
    longitude: float,
) -> List[Incident]:
    """Nearest first, then earliest, then by incident id."""
    return sorted(
        candidates,
        key=lambda c: (
            degree_distance_sq(latitude, longitude, c.latitude, c.longitude),
            as_utc(c.created_at),
            c.incident_id,
        ),
    )


def choose_primary(candidates: Sequence[Incident]) -> Optional[Incident]:
    """The incident a new report should be linked to, if any."""
    return candidates[0] if candidates else None


async def find_candidate_primaries(
    db: AsyncSession,
    latitude: float,
    longitude: float,
    incident_type: IncidentType,
    now: datetime,
    criteria: Optional[DuplicateCriteria] = None,
) -> List[Incident]:
    """
    Find open primary incidents a new report at (latitude, longitude) duplicates.

    The query narrows rows to the box and window; ``is_duplicate_candidate``
    then decides each row with timestamps read as UTC, and
    ``order_candidates`` fixes the order. An empty list means the report
    should be created as a primary.
    """
    criteria = criteria or DuplicateCriteria.from_settings()
    radius = criteria.radius_degrees
    now = as_utc(now)

    query = select(Incident).where(
        Incident.type == incident_type,
        Incident.latitude >= latitude - radius,
        Incident.latitude <= latitude + radius,
        Incident.longitude >= longitude - radius,
        Incident.longitude <= longitude + radius,
        Incident.created_at >= now - criteria.window,
        Incident.created_at <= now,
        Incident.duplicate_of_id.is_(None),
    )

    result = await db.execute(query)
    matches = [
        incident
        for incident in result.scalars().all()
        if is_duplicate_candidate(incident, latitude, longitude, incident_type, now, criteria)
    ]
    candidates = order_candidates(matches, latitude, longitude)

    if candidates:
        logger.info(
            f"Found {len(candidates)} duplicate candidate(s) for {incident_type.value} "
            f"at ({latitude:.5f}, {longitude:.5f})"
        )

    return candidates
