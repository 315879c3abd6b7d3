"""Profile, score and leaderboard endpoints."""

from dataclasses import asdict
from typing import List

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from incident_hub.core.auth import authenticate_request
from incident_hub.core.rbac import AuthContext
from incident_hub.db.session import get_db
from incident_hub.schemas.user import (
    LeaderboardEntry,
    ProfileResponse,
    RedemptionResponse,
    ScoreResponse,
    UserResponse,
)
from incident_hub.services.scoring import UserScore, scoring_service
from incident_hub.services.user_service import user_service

router = APIRouter()


def score_response(score: UserScore) -> ScoreResponse:
    values = asdict(score)
    values.pop("user_id")
    return ScoreResponse(**values)


@router.get("/me", response_model=ProfileResponse)
async def get_profile(
    context: AuthContext = Depends(authenticate_request),
    db: AsyncSession = Depends(get_db),
) -> ProfileResponse:
    """The caller's account, derived score and redeemed rewards."""
    score = await scoring_service.score_for(db, context)
    user = await user_service.get_user(db, context.user_id)
    return ProfileResponse(
        user=UserResponse.model_validate(user),
        score=score_response(score),
        redeemed_rewards=[RedemptionResponse.model_validate(r) for r in user.redemptions],
    )


@router.get("/me/score", response_model=ScoreResponse)
async def get_score(
    context: AuthContext = Depends(authenticate_request),
    db: AsyncSession = Depends(get_db),
) -> ScoreResponse:
    return score_response(await scoring_service.score_for(db, context))


@router.get("/leaderboard", response_model=List[LeaderboardEntry])
async def get_leaderboard(
    context: AuthContext = Depends(authenticate_request),
    db: AsyncSession = Depends(get_db),
) -> List[LeaderboardEntry]:
    """Top reporters by lifetime points."""
    rows = await scoring_service.leaderboard_for(db, context)
    return [
        LeaderboardEntry(
            rank=row.rank,
            id=row.user_id,
            name=row.name,
            points=row.points,
            reports_this_month=row.reports_this_month,
        )
        for row in rows
    ]
