"""Points, monthly points, rank and spendable balance.

Every figure here is derived from the incident table and the redemption
ledger on each read. Duplicate incidents never earn points for their reporter.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Iterable, List, NamedTuple, Optional, Sequence

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from incident_hub.config import settings
from incident_hub.core.exceptions import ResourceNotFoundException
from incident_hub.core.rbac import AuthContext, Permission, require_permission
from incident_hub.models.base import utcnow
from incident_hub.models.incident import Incident, IncidentSeverity
from incident_hub.models.user import RewardRedemption, User, UserRole
from incident_hub.services.duplicate_detector import as_utc

logger = logging.getLogger(__name__)

SEVERITY_POINTS: Dict[IncidentSeverity, int] = {
    IncidentSeverity.HIGH: 50,
    IncidentSeverity.MEDIUM: 30,
    IncidentSeverity.LOW: 25,
}


class ScoredIncident(NamedTuple):
    """The columns scoring needs from an incident row."""

    user_id: uuid.UUID
    severity: IncidentSeverity
    created_at: datetime
    duplicate_of_id: Optional[uuid.UUID] = None


@dataclass
class UserScore:
    user_id: uuid.UUID
    total_points: int
    monthly_points: int
    points_remaining: int
    rank: int
    total_users: int
    reports_count: int
    reports_this_month: int


@dataclass
class LeaderboardRow:
    rank: int
    user_id: uuid.UUID
    name: str
    points: int
    reports_this_month: int


# =============================================================================
# Pure scoring functions
# =============================================================================

def incident_points(severity: IncidentSeverity) -> int:
    return SEVERITY_POINTS[IncidentSeverity(severity)]


def earns_points(incident) -> bool:
    return incident.duplicate_of_id is None


def in_same_month(moment: datetime, as_of: datetime) -> bool:
    """Same calendar month and year, both read in UTC."""
    moment = as_utc(moment)
    as_of = as_utc(as_of)
    return moment.year == as_of.year and moment.month == as_of.month


def total_points(incidents: Iterable) -> int:
    return sum(incident_points(i.severity) for i in incidents if earns_points(i))


def monthly_points(incidents: Iterable, as_of: datetime) -> int:
    return sum(
        incident_points(i.severity)
        for i in incidents
        if earns_points(i) and in_same_month(i.created_at, as_of)
    )


def rank_users(totals: Dict[uuid.UUID, int]) -> List[uuid.UUID]:
    """User ids by descending points; ties go to the lower id string."""
    return sorted(totals, key=lambda user_id: (-totals[user_id], str(user_id)))


def points_remaining(total: int, redemptions: Iterable) -> int:
    """Spendable balance: lifetime points less everything redeemed."""
    return total - sum(r.points for r in redemptions)


# =============================================================================
# Database-backed scoring
# =============================================================================

class ScoringService:
    """Computes scores from the current incident set."""

    @staticmethod
    def _points_expression():
        """Per-row points for a primary incident, from ``SEVERITY_POINTS``."""
        return case(
            *[(Incident.severity == severity, points) for severity, points in SEVERITY_POINTS.items()],
            else_=0,
        )

    async def _totals_by_user(
        self, db: AsyncSession, user_ids: Sequence[uuid.UUID]
    ) -> Dict[uuid.UUID, int]:
        """Lifetime points for every id in ``user_ids``, zero when they have none."""
        result = await db.execute(
            select(Incident.user_id, func.sum(self._points_expression()))
            .where(Incident.duplicate_of_id.is_(None))
            .group_by(Incident.user_id)
        )
        sums = {user_id: int(points or 0) for user_id, points in result.all()}
        return {user_id: sums.get(user_id, 0) for user_id in user_ids}

    async def _user_incidents(self, db: AsyncSession, user_id: uuid.UUID) -> List[ScoredIncident]:
        result = await db.execute(
            select(
                Incident.user_id,
                Incident.severity,
                Incident.created_at,
                Incident.duplicate_of_id,
            ).where(Incident.user_id == user_id)
        )
        return [ScoredIncident(*row) for row in result.all()]

    async def redemptions(self, db: AsyncSession, user_id: uuid.UUID) -> List[RewardRedemption]:
        result = await db.execute(
            select(RewardRedemption)
            .where(RewardRedemption.user_id == user_id)
            .order_by(RewardRedemption.created_at)
        )
        return list(result.scalars().all())

    async def user_total_points(self, db: AsyncSession, user_id: uuid.UUID) -> int:
        return total_points(await self._user_incidents(db, user_id))

    async def compute_user_score(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        as_of: Optional[datetime] = None,
    ) -> UserScore:
        """Score for one user. Rank is taken over every account."""
        as_of = as_of or utcnow()

        user_ids = list((await db.execute(select(User.id))).scalars().all())
        if user_id not in user_ids:
            raise ResourceNotFoundException("User", str(user_id))

        ranking = rank_users(await self._totals_by_user(db, user_ids))
        own = await self._user_incidents(db, user_id)
        total = total_points(own)

        return UserScore(
            user_id=user_id,
            total_points=total,
            monthly_points=monthly_points(own, as_of),
            points_remaining=points_remaining(total, await self.redemptions(db, user_id)),
            rank=ranking.index(user_id) + 1,
            total_users=len(ranking),
            reports_count=len(own),
            reports_this_month=sum(1 for i in own if in_same_month(i.created_at, as_of)),
        )

    async def leaderboard(
        self,
        db: AsyncSession,
        as_of: Optional[datetime] = None,
        limit: Optional[int] = None,
    ) -> List[LeaderboardRow]:
        """Top citizens by lifetime points. Responders are not listed."""
        as_of = as_of or utcnow()
        limit = limit or settings.leaderboard_size

        result = await db.execute(select(User).where(User.role == UserRole.USER))
        users = {user.id: user for user in result.scalars().all()}
        totals = await self._totals_by_user(db, list(users))

        rows = []
        for position, user_id in enumerate(rank_users(totals)[:limit], start=1):
            own = await self._user_incidents(db, user_id)
            rows.append(
                LeaderboardRow(
                    rank=position,
                    user_id=user_id,
                    name=users[user_id].display_name,
                    points=totals[user_id],
                    reports_this_month=sum(
                        1 for i in own if in_same_month(i.created_at, as_of)
                    ),
                )
            )
        logger.debug(f"Leaderboard built with {len(rows)} of {len(users)} citizens")
        return rows

    # Permission-checked entry points

    async def score_for(self, db: AsyncSession, context: AuthContext) -> UserScore:
        require_permission(context, Permission.SCORE_VIEW)
        return await self.compute_user_score(db, context.user_id)

    async def leaderboard_for(self, db: AsyncSession, context: AuthContext) -> List[LeaderboardRow]:
        require_permission(context, Permission.LEADERBOARD_VIEW)
        return await self.leaderboard(db)


scoring_service = ScoringService()
