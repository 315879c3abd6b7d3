"""User and points-ledger models."""

import enum
import uuid
from typing import Optional, List

from sqlalchemy import Enum, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import Mapped, mapped_column, relationship

from incident_hub.models.base import Base


class UserRole(str, enum.Enum):
    """Account roles. Admins and superadmins act as responders."""

    USER = "user"
    ADMIN = "admin"
    SUPERADMIN = "superadmin"


class User(Base):
    """Registered account.

    Point totals are not stored. They are derived from the user's incidents
    and redemption ledger on every read.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), unique=True, nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    password_hash: Mapped[str] = mapped_column(String(255), nullable=False)
    role: Mapped[UserRole] = mapped_column(
        Enum(UserRole), default=UserRole.USER, nullable=False
    )
    city: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)

    redemptions: Mapped[List["RewardRedemption"]] = relationship(
        back_populates="user",
        order_by="RewardRedemption.created_at",
        lazy="selectin",
    )

    @property
    def display_name(self) -> str:
        return self.name or self.email


class RewardRedemption(Base):
    """Append-only ledger entry; ``created_at`` is the redemption time."""

    __tablename__ = "reward_redemptions"
    __table_args__ = (
        UniqueConstraint("user_id", "title", name="uq_redemption_user_title"),
    )

    user_id: Mapped[uuid.UUID] = mapped_column(
        Uuid, ForeignKey("users.id"), nullable=False, index=True
    )
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str] = mapped_column(Text, nullable=False)
    points: Mapped[int] = mapped_column(Integer, nullable=False)

    user: Mapped[User] = relationship(back_populates="redemptions")
