"""Account registration, login and role administration."""

import logging
import uuid
from typing import Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from incident_hub.core.audit import AuditAction, audit_log
from incident_hub.core.exceptions import (
    AuthenticationException,
    ConflictException,
    ResourceNotFoundException,
)
from incident_hub.core.rbac import AuthContext, Permission, require_permission
from incident_hub.core.security import hash_password, mask_email, verify_password
from incident_hub.models.user import User, UserRole

logger = logging.getLogger(__name__)


class UserService:
    async def get_by_email(self, db: AsyncSession, email: str) -> Optional[User]:
        result = await db.execute(select(User).where(User.email == email.strip().lower()))
        return result.scalar_one_or_none()

    async def get_user(self, db: AsyncSession, user_id: uuid.UUID) -> User:
        user = await db.get(User, user_id)
        if user is None:
            raise ResourceNotFoundException("User", str(user_id))
        return user

    async def _create(
        self,
        db: AsyncSession,
        name: str,
        email: str,
        password: str,
        role: UserRole,
        city: Optional[str] = None,
    ) -> User:
        if await self.get_by_email(db, email) is not None:
            raise ConflictException("Email is already registered")

        user = User(
            name=name,
            email=email.strip().lower(),
            password_hash=hash_password(password),
            role=role,
            city=city,
            redemptions=[],
        )
        db.add(user)
        try:
            await db.flush()
        except IntegrityError:
            raise ConflictException("Email is already registered")
        return user

    async def register(
        self,
        db: AsyncSession,
        name: str,
        email: str,
        password: str,
        city: Optional[str] = None,
    ) -> User:
        """Create a citizen account."""
        user = await self._create(db, name, email, password, UserRole.USER, city)
        logger.info(f"Registered user {mask_email(user.email)}")
        audit_log.log(
            AuditAction.AUTH_REGISTER,
            actor_id=str(user.id),
            resource_type="user",
            resource_id=str(user.id),
        )
        return user

    async def authenticate(self, db: AsyncSession, email: str, password: str) -> User:
        """Return the user for valid credentials; any mismatch is a 401."""
        user = await self.get_by_email(db, email)
        if user is None or not verify_password(password, user.password_hash):
            logger.warning(f"Failed login for {mask_email(email)}")
            raise AuthenticationException("Invalid email or password")
        return user

    async def setup_superadmin(self, db: AsyncSession, name: str, email: str, password: str) -> User:
        """Create the single superadmin. Only succeeds while none exists."""
        result = await db.execute(
            select(User.id).where(User.role == UserRole.SUPERADMIN).limit(1)
        )
        if result.first() is not None:
            raise ConflictException("Superadmin already exists")

        user = await self._create(db, name, email, password, UserRole.SUPERADMIN)
        audit_log.log(
            AuditAction.ADMIN_SUPERADMIN_SETUP,
            actor_id=str(user.id),
            resource_type="user",
            resource_id=str(user.id),
        )
        return user

    async def promote_admin(self, db: AsyncSession, context: AuthContext, email: str) -> User:
        """Grant the admin role to an existing citizen account."""
        require_permission(context, Permission.ADMIN_PROMOTE)

        user = await self.get_by_email(db, email)
        if user is None:
            raise ResourceNotFoundException("User", mask_email(email))
        if user.role != UserRole.USER:
            raise ConflictException(f"User is already {user.role.value}")

        user.role = UserRole.ADMIN
        await db.flush()

        audit_log.log_admin_action(
            AuditAction.ADMIN_PROMOTE,
            context,
            resource_id=str(user.id),
            details={"role": UserRole.ADMIN.value},
        )
        return user


user_service = UserService()
