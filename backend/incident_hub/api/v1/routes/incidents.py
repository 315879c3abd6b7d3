"""Incident reporting API endpoints."""

from enum import Enum
from typing import List, Optional, Type

from fastapi import APIRouter, Depends, File, Form, Query, UploadFile
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import AsyncSession

from incident_hub.config import settings
from incident_hub.core.auth import authenticate_request
from incident_hub.core.rbac import AuthContext
from incident_hub.db.session import get_db
from incident_hub.models.incident import IncidentStatus, IncidentType
from incident_hub.schemas.incident import (
    IncidentCreate,
    IncidentCreateResponse,
    IncidentFilters,
    IncidentResponse,
    NoteCreate,
    StatusUpdate,
    UpvoteResponse,
)
from incident_hub.services.incident_service import incident_service
from incident_hub.services.media_storage import MediaFile

router = APIRouter()


def _lenient_enum(enum_cls: Type[Enum], value: Optional[str]):
    """Unknown filter values are ignored instead of rejected."""
    if value is None:
        return None
    try:
        return enum_cls(value)
    except ValueError:
        return None


def _lenient_bool(value: Optional[str]) -> Optional[bool]:
    if value is None:
        return None
    return {"true": True, "false": False}.get(value.lower())


async def _read_uploads(uploads: List[UploadFile]) -> List[MediaFile]:
    """Read uploads into memory, at most one byte past the size cap each."""
    limit = settings.max_upload_size_bytes + 1
    files = []
    for upload in uploads:
        if not upload.filename:
            continue
        data = await upload.read(limit)
        files.append(
            MediaFile(
                filename=upload.filename,
                content_type=upload.content_type or "",
                data=data,
            )
        )
    return files


@router.post("", response_model=IncidentCreateResponse, status_code=201)
async def report_incident(
    title: str = Form(...),
    description: str = Form(...),
    type: str = Form(...),
    severity: str = Form(...),
    latitude: float = Form(...),
    longitude: float = Form(...),
    location: Optional[str] = Form(None),
    media: List[UploadFile] = File(default=[]),
    context: AuthContext = Depends(authenticate_request),
    db: AsyncSession = Depends(get_db),
) -> IncidentCreateResponse:
    """
    Report a new incident with up to five photos or videos.

    A report matching an open incident of the same type nearby within the
    last few minutes is stored as its duplicate and excluded from the feed.
    """
    try:
        data = IncidentCreate(
            title=title,
            description=description,
            type=type,
            severity=severity,
            latitude=latitude,
            longitude=longitude,
            location=location,
        )
    except ValidationError as e:
        raise RequestValidationError(e.errors(include_url=False))

    files = await _read_uploads(media)
    created = await incident_service.create_incident(db, context, data, files)

    return IncidentCreateResponse(
        incident=await incident_service.to_response(db, context, created.incident),
        is_duplicate=created.is_duplicate,
        duplicate_of=created.primary.incident_id if created.primary else None,
    )


@router.get("", response_model=List[IncidentResponse])
async def list_incidents(
    status: Optional[str] = Query(None, description="Reported, Verified, In Progress, Resolved or Rejected"),
    type: Optional[str] = Query(None, description="Incident type"),
    verified: Optional[str] = Query(None, description="true or false"),
    latitude: Optional[float] = Query(None, ge=-90, le=90),
    longitude: Optional[float] = Query(None, ge=-180, le=180),
    radius: Optional[float] = Query(None, gt=0, le=20000, description="Radius in kilometers"),
    context: AuthContext = Depends(authenticate_request),
    db: AsyncSession = Depends(get_db),
) -> List[IncidentResponse]:
    """Feed of primary incidents, newest first."""
    filters = IncidentFilters(
        status=_lenient_enum(IncidentStatus, status),
        type=_lenient_enum(IncidentType, type),
        verified=_lenient_bool(verified),
        latitude=latitude,
        longitude=longitude,
        radius_km=radius,
    )
    incidents = await incident_service.list_incidents(db, context, filters)
    return await incident_service.to_responses(db, context, incidents)


@router.get("/mine", response_model=List[IncidentResponse])
async def my_incidents(
    context: AuthContext = Depends(authenticate_request),
    db: AsyncSession = Depends(get_db),
) -> List[IncidentResponse]:
    """Everything the caller has reported, duplicates included."""
    incidents = await incident_service.list_mine(db, context)
    return await incident_service.to_responses(db, context, incidents)


@router.get("/{incident_key}", response_model=IncidentResponse)
async def get_incident(
    incident_key: str,
    context: AuthContext = Depends(authenticate_request),
    db: AsyncSession = Depends(get_db),
) -> IncidentResponse:
    """Incident detail with its merged duplicates; notes for responders only."""
    incident = await incident_service.get_incident(db, context, incident_key)
    return await incident_service.to_response(db, context, incident, detail=True)


@router.post("/{incident_key}/upvote", response_model=UpvoteResponse)
async def toggle_upvote(
    incident_key: str,
    context: AuthContext = Depends(authenticate_request),
    db: AsyncSession = Depends(get_db),
) -> UpvoteResponse:
    """Add the caller's upvote, or remove it if already present."""
    return await incident_service.toggle_upvote(db, context, incident_key)


@router.post("/{incident_key}/verify", response_model=IncidentResponse)
async def verify_incident(
    incident_key: str,
    context: AuthContext = Depends(authenticate_request),
    db: AsyncSession = Depends(get_db),
) -> IncidentResponse:
    incident = await incident_service.verify_incident(db, context, incident_key)
    return await incident_service.to_response(db, context, incident, detail=True)


@router.put("/{incident_key}/status", response_model=IncidentResponse)
async def update_status(
    incident_key: str,
    body: StatusUpdate,
    context: AuthContext = Depends(authenticate_request),
    db: AsyncSession = Depends(get_db),
) -> IncidentResponse:
    incident = await incident_service.update_status(db, context, incident_key, body.status)
    return await incident_service.to_response(db, context, incident, detail=True)


@router.post("/{incident_key}/notes", response_model=IncidentResponse)
async def add_note(
    incident_key: str,
    body: NoteCreate,
    context: AuthContext = Depends(authenticate_request),
    db: AsyncSession = Depends(get_db),
) -> IncidentResponse:
    """Attach an internal note. Responders only."""
    incident = await incident_service.add_note(db, context, incident_key, body.note)
    return await incident_service.to_response(db, context, incident, detail=True)
