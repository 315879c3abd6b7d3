"""Incident intake, feed, upvotes and responder actions."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from incident_hub.config import settings
from incident_hub.core.audit import AuditAction, audit_log
from incident_hub.core.exceptions import BadRequestException, ResourceNotFoundException
from incident_hub.core.rbac import AuthContext, Permission, require_permission
from incident_hub.models.base import utcnow
from incident_hub.models.incident import (
    Incident,
    IncidentNote,
    IncidentStatus,
    IncidentUpvote,
)
from incident_hub.models.user import User, UserRole
from incident_hub.schemas.common import BoundingBox
from incident_hub.schemas.incident import (
    DashboardStats,
    IncidentCreate,
    IncidentFilters,
    IncidentResponse,
    NoteResponse,
    ReporterSummary,
    UpvoteResponse,
)
from incident_hub.services.duplicate_detector import (
    DuplicateCriteria,
    choose_primary,
    find_candidate_primaries,
)
from incident_hub.services.geocoding import ReverseGeocoder, reverse_geocoder
from incident_hub.services.locks import dedup_lock_keys, get_lock_manager
from incident_hub.services.media_storage import MediaFile, MediaStorage, media_storage
from incident_hub.services.verification import (
    apply_admin_verification,
    apply_upvote_threshold,
    toggle_membership,
)

logger = logging.getLogger(__name__)


@dataclass
class CreatedIncident:
    incident: Incident
    primary: Optional[Incident] = None

    @property
    def is_duplicate(self) -> bool:
        return self.primary is not None


def incident_key_clause(key: str):
    """A path key is either the storage UUID or the human-readable incident id."""
    try:
        return Incident.id == uuid.UUID(key)
    except ValueError:
        return Incident.incident_id == key


class IncidentService:
    """Incident operations; each checks the caller's permission first."""

    def __init__(
        self,
        storage: Optional[MediaStorage] = None,
        geocoder: Optional[ReverseGeocoder] = None,
        lock_manager=None,
        criteria: Optional[DuplicateCriteria] = None,
        upvote_threshold: Optional[int] = None,
    ):
        self.storage = storage or media_storage
        self.geocoder = geocoder or reverse_geocoder
        self._lock_manager = lock_manager
        self.criteria = criteria or DuplicateCriteria.from_settings()
        self.upvote_threshold = upvote_threshold or settings.upvote_verification_threshold

    @property
    def lock_manager(self):
        if self._lock_manager is None:
            self._lock_manager = get_lock_manager()
        return self._lock_manager

    async def _get(self, db: AsyncSession, key: str, for_update: bool = False) -> Incident:
        query = select(Incident).where(incident_key_clause(key))
        if for_update:
            query = query.with_for_update().execution_options(populate_existing=True)
        result = await db.execute(query)
        incident = result.scalar_one_or_none()
        if incident is None:
            raise ResourceNotFoundException("Incident", key)
        return incident

    # =========================================================================
    # Intake
    # =========================================================================

    async def create_incident(
        self,
        db: AsyncSession,
        context: AuthContext,
        data: IncidentCreate,
        media: Sequence[MediaFile] = (),
    ) -> CreatedIncident:
        """
        Persist a new report, linking it to an open primary when one matches.

        Detection and insert run under the keyed dedup locks and the
        transaction is committed before they are released, so two matching
        reports can never both become primaries. Stored media is removed
        again if the incident does not persist.
        """
        require_permission(context, Permission.INCIDENT_SUBMIT)
        reporter_id = context.user_id

        self.storage.validate(media)
        location = data.location or await self.geocoder.reverse(data.latitude, data.longitude)
        media_urls = self.storage.save_all(media)

        keys = dedup_lock_keys(
            data.type.value, data.latitude, data.longitude, self.criteria.radius_degrees
        )
        try:
            async with self.lock_manager.hold(keys):
                now = utcnow()
                candidates = await find_candidate_primaries(
                    db, data.latitude, data.longitude, data.type, now, self.criteria
                )
                primary = choose_primary(candidates)

                incident = Incident(
                    title=data.title,
                    description=data.description,
                    type=data.type,
                    severity=data.severity,
                    latitude=data.latitude,
                    longitude=data.longitude,
                    location=location,
                    media_urls=media_urls,
                    user_id=reporter_id,
                    status=IncidentStatus.REPORTED,
                    is_verified=False,
                    duplicate_of_id=primary.id if primary else None,
                    created_at=now,
                    updated_at=now,
                    upvotes=[],
                    notes=[],
                )
                db.add(incident)
                await db.commit()
        except Exception:
            self.storage.delete(media_urls)
            raise

        if primary:
            logger.info(f"Incident {incident.incident_id} linked as duplicate of {primary.incident_id}")
            audit_log.log_incident_action(
                AuditAction.INCIDENT_LINK_DUPLICATE,
                context,
                incident.incident_id,
                {"primary": primary.incident_id},
            )
        audit_log.log_incident_action(
            AuditAction.INCIDENT_SUBMIT,
            context,
            incident.incident_id,
            {"type": data.type.value, "severity": data.severity.value, "media": len(media_urls)},
        )
        return CreatedIncident(incident=incident, primary=primary)

    # =========================================================================
    # Reads
    # =========================================================================

    async def list_incidents(
        self,
        db: AsyncSession,
        context: AuthContext,
        filters: IncidentFilters,
    ) -> List[Incident]:
        """Primary incidents matching ``filters``, newest first."""
        require_permission(context, Permission.INCIDENT_VIEW)

        query = select(Incident).where(Incident.duplicate_of_id.is_(None))
        if filters.status is not None:
            query = query.where(Incident.status == filters.status)
        if filters.type is not None:
            query = query.where(Incident.type == filters.type)
        if filters.verified is not None:
            query = query.where(Incident.is_verified == filters.verified)
        if filters.has_area:
            box = BoundingBox.around(filters.latitude, filters.longitude, filters.radius_km)
            query = query.where(
                Incident.latitude >= box.min_lat,
                Incident.latitude <= box.max_lat,
                Incident.longitude >= box.min_lon,
                Incident.longitude <= box.max_lon,
            )

        result = await db.execute(query.order_by(Incident.created_at.desc(), Incident.incident_id))
        return list(result.scalars().all())

    async def list_mine(self, db: AsyncSession, context: AuthContext) -> List[Incident]:
        """The caller's own reports, duplicates included."""
        require_permission(context, Permission.INCIDENT_VIEW)
        result = await db.execute(
            select(Incident)
            .where(Incident.user_id == context.user_id)
            .order_by(Incident.created_at.desc())
        )
        return list(result.scalars().all())

    async def get_incident(self, db: AsyncSession, context: AuthContext, key: str) -> Incident:
        require_permission(context, Permission.INCIDENT_VIEW)
        return await self._get(db, key)

    async def merged_incident_ids(self, db: AsyncSession, incident: Incident) -> List[str]:
        result = await db.execute(
            select(Incident.incident_id)
            .where(Incident.duplicate_of_id == incident.id)
            .order_by(Incident.created_at, Incident.incident_id)
        )
        return list(result.scalars().all())

    async def to_response(
        self,
        db: AsyncSession,
        context: AuthContext,
        incident: Incident,
        detail: bool = False,
        reporters: Optional[Dict[uuid.UUID, User]] = None,
    ) -> IncidentResponse:
        """
        Serialize an incident for ``context``.

        ``detail`` adds the merged set; internal notes are only ever
        included for responders.
        """
        response = IncidentResponse.model_validate(incident)
        response.upvote_count = len(incident.upvotes)
        response.has_upvoted = context.is_authenticated and context.user_id in incident.upvoter_ids

        reporter = (reporters or {}).get(incident.user_id)
        if reporter is None and reporters is None:
            reporter = await db.get(User, incident.user_id)
        if reporter is not None:
            response.reporter = ReporterSummary(id=reporter.id, name=reporter.name, email=reporter.email)

        if detail:
            response.merged_incidents = await self.merged_incident_ids(db, incident)
            if context.is_responder:
                response.internal_notes = [NoteResponse.model_validate(n) for n in incident.notes]
        return response

    async def to_responses(
        self,
        db: AsyncSession,
        context: AuthContext,
        incidents: Sequence[Incident],
    ) -> List[IncidentResponse]:
        user_ids = {i.user_id for i in incidents}
        reporters: Dict[uuid.UUID, User] = {}
        if user_ids:
            result = await db.execute(select(User).where(User.id.in_(user_ids)))
            reporters = {u.id: u for u in result.scalars().all()}
        return [await self.to_response(db, context, i, reporters=reporters) for i in incidents]

    # =========================================================================
    # Upvotes and responder actions
    # =========================================================================

    async def toggle_upvote(self, db: AsyncSession, context: AuthContext, key: str) -> UpvoteResponse:
        """
        Add or remove the caller's upvote and re-evaluate upvote verification.

        The incident row stays locked until the request transaction ends, so
        concurrent toggles are applied one at a time against a fresh count.
        """
        require_permission(context, Permission.INCIDENT_UPVOTE)
        user_id = context.user_id

        incident = await self._get(db, key, for_update=True)
        if incident.user_id == user_id:
            raise BadRequestException("You cannot upvote your own incident")

        has_upvoted = toggle_membership(incident.upvoter_ids, user_id)
        if has_upvoted:
            incident.upvotes.append(IncidentUpvote(user_id=user_id))
        else:
            incident.upvotes[:] = [u for u in incident.upvotes if u.user_id != user_id]
        await db.flush()

        count = await db.scalar(
            select(func.count()).select_from(IncidentUpvote).where(IncidentUpvote.incident_id == incident.id)
        )
        now = utcnow()
        changed = apply_upvote_threshold(incident, count, self.upvote_threshold, now)
        incident.updated_at = now
        await db.flush()

        audit_log.log_incident_action(
            AuditAction.INCIDENT_UPVOTE,
            context,
            incident.incident_id,
            {"upvoted": has_upvoted, "count": count, "verification_changed": changed},
        )
        return UpvoteResponse(
            upvotes=count,
            is_verified=incident.is_verified,
            verification_method=incident.verification_method,
            has_upvoted=has_upvoted,
        )

    async def verify_incident(self, db: AsyncSession, context: AuthContext, key: str) -> Incident:
        require_permission(context, Permission.INCIDENT_VERIFY)

        incident = await self._get(db, key, for_update=True)
        now = utcnow()
        apply_admin_verification(incident, context.user_id, now)
        incident.updated_at = now
        await db.flush()

        audit_log.log_incident_action(AuditAction.INCIDENT_VERIFY, context, incident.incident_id)
        return incident

    async def update_status(
        self,
        db: AsyncSession,
        context: AuthContext,
        key: str,
        status: IncidentStatus,
    ) -> Incident:
        require_permission(context, Permission.INCIDENT_UPDATE_STATUS)

        incident = await self._get(db, key, for_update=True)
        previous = incident.status
        incident.status = status
        incident.updated_at = utcnow()
        await db.flush()

        audit_log.log_incident_action(
            AuditAction.INCIDENT_STATUS,
            context,
            incident.incident_id,
            {"from": previous.value, "to": status.value},
        )
        return incident

    async def add_note(self, db: AsyncSession, context: AuthContext, key: str, text: str) -> Incident:
        require_permission(context, Permission.INCIDENT_NOTES)

        text = text.strip()
        if not text:
            raise BadRequestException("Note is required")

        incident = await self._get(db, key, for_update=True)
        now = utcnow()
        incident.notes.append(
            IncidentNote(text=text, added_by_id=context.user_id, created_at=now, updated_at=now)
        )
        incident.updated_at = now
        await db.flush()

        audit_log.log_incident_action(AuditAction.INCIDENT_NOTE, context, incident.incident_id)
        return incident

    # =========================================================================
    # Dashboard
    # =========================================================================

    async def dashboard_stats(
        self,
        db: AsyncSession,
        context: AuthContext,
        now: Optional[datetime] = None,
    ) -> DashboardStats:
        """Today's counters for responders. Days are UTC calendar days."""
        require_permission(context, Permission.DASHBOARD_VIEW)

        now = now or utcnow()
        today = now.replace(hour=0, minute=0, second=0, microsecond=0)
        tomorrow = today + timedelta(days=1)
        primaries = Incident.duplicate_of_id.is_(None)

        async def count(*conditions) -> int:
            return await db.scalar(select(func.count()).select_from(Incident).where(primaries, *conditions))

        incidents_today = await count(Incident.created_at >= today, Incident.created_at < tomorrow)
        need_review = await count(Incident.status == IncidentStatus.REPORTED)
        resolved_today = await count(
            Incident.status == IncidentStatus.RESOLVED,
            Incident.updated_at >= today,
            Incident.updated_at < tomorrow,
        )
        active_users = await db.scalar(
            select(func.count()).select_from(User).where(User.role == UserRole.USER)
        )

        return DashboardStats(
            incidents_today=incidents_today,
            need_review=need_review,
            resolved_today=resolved_today,
            total_active_users=active_users,
        )


incident_service = IncidentService()
