"""Reward catalogue and redemption ledger."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from incident_hub.core.audit import AuditAction, audit_log
from incident_hub.core.exceptions import (
    ConflictException,
    ResourceNotFoundException,
    ValidationException,
)
from incident_hub.core.rbac import AuthContext, Permission, require_permission
from incident_hub.models.base import utcnow
from incident_hub.models.user import RewardRedemption, User
from incident_hub.services.scoring import ScoringService, points_remaining, scoring_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Reward:
    title: str
    description: str
    points: int


REWARD_CATALOGUE: List[Reward] = [
    Reward("₹50 Mobile Recharge", "Instant prepaid mobile recharge.", 300),
    Reward("₹100 Mobile Recharge", "Instant prepaid mobile recharge.", 600),
    Reward("₹50 Amazon Voucher", "Amazon gift voucher worth ₹50.", 800),
    Reward("₹100 Amazon Voucher", "Amazon gift voucher worth ₹100.", 1200),
    Reward("Power Bank", "Portable charger for everyday use.", 2000),
    Reward("Bluetooth Speaker", "Compact wireless speaker.", 2500),
    Reward("Wireless Mouse", "Ergonomic wireless mouse.", 3000),
    Reward("Wireless Earbuds", "True wireless earbuds.", 4500),
    Reward("₹500 Amazon Voucher", "Amazon gift voucher worth ₹500.", 5000),
    Reward("Smart Band", "Fitness tracker with health monitoring.", 8000),
    Reward("₹1000 Amazon Voucher", "Amazon gift voucher worth ₹1000.", 12000),
]


def find_reward(title: str) -> Optional[Reward]:
    title = title.strip()
    for reward in REWARD_CATALOGUE:
        if reward.title == title:
            return reward
    return None


class RewardService:
    """Spends points against the catalogue."""

    def __init__(self, scoring: Optional[ScoringService] = None):
        self.scoring = scoring or scoring_service

    async def redeem_reward(
        self,
        db: AsyncSession,
        user_id: uuid.UUID,
        reward: Reward,
        now: Optional[datetime] = None,
    ) -> RewardRedemption:
        """
        Append ``reward`` to the user's ledger.

        The user row is locked for the balance check so two concurrent
        redemptions cannot both spend the same points. Raises
        ConflictException without writing anything when the reward was
        already redeemed or the balance is too low.
        """
        now = now or utcnow()

        result = await db.execute(
            select(User).where(User.id == user_id).with_for_update()
        )
        user = result.scalar_one_or_none()
        if user is None:
            raise ResourceNotFoundException("User", str(user_id))

        existing = await db.execute(
            select(RewardRedemption.id).where(
                RewardRedemption.user_id == user_id,
                RewardRedemption.title == reward.title,
            )
        )
        if existing.first() is not None:
            raise ConflictException("Reward already redeemed")

        total = await self.scoring.user_total_points(db, user_id)
        balance = points_remaining(total, await self.scoring.redemptions(db, user_id))
        if reward.points > balance:
            raise ConflictException(
                f"Insufficient points: {reward.points} required, {balance} available"
            )

        redemption = RewardRedemption(
            user_id=user_id,
            title=reward.title,
            description=reward.description,
            points=reward.points,
            created_at=now,
        )
        db.add(redemption)
        try:
            await db.flush()
        except IntegrityError:
            raise ConflictException("Reward already redeemed")

        logger.info(f"User {user_id} redeemed '{reward.title}' for {reward.points} points")
        return redemption

    async def redeem(self, db: AsyncSession, context: AuthContext, title: str) -> RewardRedemption:
        require_permission(context, Permission.REWARD_REDEEM)

        reward = find_reward(title)
        if reward is None:
            raise ValidationException(f"Unknown reward: {title}", field="title")

        redemption = await self.redeem_reward(db, context.user_id, reward)
        audit_log.log(
            AuditAction.REWARD_REDEEM,
            request_id=context.request_id,
            client_ip=context.client_ip,
            actor_id=context.subject_id,
            resource_type="reward",
            resource_id=reward.title,
            details={"points": reward.points},
        )
        return redemption

    async def history(self, db: AsyncSession, context: AuthContext) -> List[RewardRedemption]:
        require_permission(context, Permission.SCORE_VIEW)
        return await self.scoring.redemptions(db, context.user_id)


reward_service = RewardService()
