"""Account, score and reward schemas."""

import re
from datetime import datetime
from typing import Annotated, List, Optional
from uuid import UUID

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator

from incident_hub.core.security import MIN_PASSWORD_LENGTH
from incident_hub.models.user import UserRole

EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


def normalize_email(value: str) -> str:
    value = value.strip().lower()
    if not EMAIL_PATTERN.match(value):
        raise ValueError("Invalid email address")
    return value


Email = Annotated[str, Field(max_length=255), AfterValidator(normalize_email)]


class RegisterRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=120)
    email: Email
    password: str = Field(..., min_length=MIN_PASSWORD_LENGTH, max_length=128)
    city: Optional[str] = Field(None, max_length=120)

    @field_validator("name")
    @classmethod
    def not_blank(cls, v: str) -> str:
        v = v.strip()
        if not v:
            raise ValueError("Name is required")
        return v


class LoginRequest(BaseModel):
    email: Email
    password: str = Field(..., min_length=1, max_length=128)


class PromoteRequest(BaseModel):
    email: Email


class UserResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    name: Optional[str] = None
    email: str
    role: UserRole
    city: Optional[str] = None
    created_at: datetime


class ScoreResponse(BaseModel):
    total_points: int
    monthly_points: int
    points_remaining: int
    rank: int
    total_users: int
    reports_count: int
    reports_this_month: int


class RedemptionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    title: str
    description: str
    points: int
    redeemed_at: datetime = Field(validation_alias="created_at")


class ProfileResponse(BaseModel):
    user: UserResponse
    score: ScoreResponse
    redeemed_rewards: List[RedemptionResponse] = []


class LeaderboardEntry(BaseModel):
    rank: int
    id: UUID
    name: str
    points: int
    reports_this_month: int


class RewardItem(BaseModel):
    title: str
    description: str
    points: int
    redeemed: bool = False
    affordable: bool = False


class RewardCatalogueResponse(BaseModel):
    points_remaining: int
    rewards: List[RewardItem]
    next_reward: Optional[RewardItem] = None


class RedeemRequest(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)


class RedeemResponse(BaseModel):
    redemption: RedemptionResponse
    points_remaining: int
    total_points: int
