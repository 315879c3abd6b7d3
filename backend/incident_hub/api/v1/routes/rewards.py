"""Reward catalogue and redemption endpoints."""

from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from incident_hub.core.auth import authenticate_request
from incident_hub.core.rbac import AuthContext
from incident_hub.db.session import get_db
from incident_hub.schemas.user import (
    RedeemRequest,
    RedeemResponse,
    RedemptionResponse,
    RewardCatalogueResponse,
    RewardItem,
)
from incident_hub.services.rewards import REWARD_CATALOGUE, reward_service
from incident_hub.services.scoring import scoring_service

router = APIRouter()


@router.get("", response_model=RewardCatalogueResponse)
async def list_rewards(
    context: AuthContext = Depends(authenticate_request),
    db: AsyncSession = Depends(get_db),
) -> RewardCatalogueResponse:
    """Catalogue annotated with the caller's balance and past redemptions."""
    score = await scoring_service.score_for(db, context)
    redeemed = {r.title for r in await reward_service.history(db, context)}

    items = [
        RewardItem(
            title=reward.title,
            description=reward.description,
            points=reward.points,
            redeemed=reward.title in redeemed,
            affordable=reward.title not in redeemed and reward.points <= score.points_remaining,
        )
        for reward in REWARD_CATALOGUE
    ]
    next_reward = next(
        (item for item in items if not item.redeemed and item.points > score.points_remaining),
        None,
    )
    return RewardCatalogueResponse(
        points_remaining=score.points_remaining,
        rewards=items,
        next_reward=next_reward,
    )


@router.post("/redeem", response_model=RedeemResponse, status_code=201)
async def redeem_reward(
    body: RedeemRequest,
    context: AuthContext = Depends(authenticate_request),
    db: AsyncSession = Depends(get_db),
) -> RedeemResponse:
    """Spend points on a catalogue reward. Each reward can be redeemed once."""
    redemption = await reward_service.redeem(db, context, body.title)
    score = await scoring_service.compute_user_score(db, context.user_id)
    return RedeemResponse(
        redemption=RedemptionResponse.model_validate(redemption),
        points_remaining=score.points_remaining,
        total_points=score.total_points,
    )


@router.get("/history", response_model=List[RedemptionResponse])
async def redemption_history(
    context: AuthContext = Depends(authenticate_request),
    db: AsyncSession = Depends(get_db),
) -> List[RedemptionResponse]:
    return [RedemptionResponse.model_validate(r) for r in await reward_service.history(db, context)]
