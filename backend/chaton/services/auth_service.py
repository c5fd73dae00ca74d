"""
Authentication service with user management and presence writes.
"""

from datetime import datetime
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy import select, or_
from typing import Callable, Optional

from ..models.user import User, UserStatus
from ..schemas.user import UserRegister, UserLogin, Token, ProfileUpdate
from ..utils.logging_config import get_logger
from ..utils.security import (
    get_password_hash,
    verify_password,
    create_access_token,
    create_refresh_token,
    decode_token
)
from ..utils.timestamps import utcnow

logger = get_logger(__name__)


class AuthService:
    """Service for authentication and user management."""

    def __init__(self, db: AsyncSession, clock: Callable[[], datetime] = utcnow):
        self.db = db
        self._clock = clock

    async def register(self, user_data: UserRegister) -> User:
        """Register a new user."""
        result = await self.db.execute(
            select(User).filter(or_(
                User.username == user_data.username,
                User.email == user_data.email
            ))
        )
        existing = result.scalars().first()
        if existing is not None:
            if existing.username == user_data.username:
                raise ValueError("Username already registered")
            raise ValueError("Email already registered")

        user = User(
            username=user_data.username,
            email=user_data.email,
            hashed_password=get_password_hash(user_data.password),
            display_name=user_data.display_name or user_data.username,
            created_at=self._clock()
        )
        self.db.add(user)
        await self.db.commit()
        await self.db.refresh(user)

        logger.info(f"Registered user {user.username} ({user.id})")
        return user

    async def authenticate(self, login_data: UserLogin) -> Optional[User]:
        """Authenticate a user by username and password."""
        result = await self.db.execute(
            select(User).filter(User.username == login_data.username)
        )
        user = result.scalar_one_or_none()

        if not user:
            return None

        if not verify_password(login_data.password, user.hashed_password):
            return None

        return user

    def create_tokens(self, user: User) -> Token:
        """Create access and refresh tokens for a user."""
        token_data = {"sub": user.id, "username": user.username}

        return Token(
            access_token=create_access_token(token_data),
            refresh_token=create_refresh_token(token_data)
        )

    async def refresh_tokens(self, refresh_token: str) -> Token:
        """Refresh access token using refresh token."""
        token_data = decode_token(refresh_token, expected_type="refresh")

        user = await self.get_user_by_id(token_data.user_id)
        if not user or not user.is_active:
            raise ValueError("Invalid refresh token")

        return self.create_tokens(user)

    async def get_user_by_id(self, user_id: str) -> Optional[User]:
        """Get user by ID."""
        result = await self.db.execute(
            select(User).filter(User.id == user_id)
        )
        return result.scalar_one_or_none()

    async def update_profile(self, user: User, updates: ProfileUpdate) -> User:
        """Update display name and photo."""
        for key, value in updates.model_dump(exclude_unset=True).items():
            if value is not None:
                setattr(user, key, value)

        await self.db.commit()
        await self.db.refresh(user)
        return user

    async def heartbeat(self, user: User) -> User:
        """Record that the user is active right now."""
        user.last_seen = self._clock()
        await self.db.commit()
        return user

    async def mark_online(self, user: User) -> None:
        """Heartbeat and flag the user online after sign-in."""
        now = self._clock()
        user.last_seen = now

        result = await self.db.execute(
            select(UserStatus).filter(UserStatus.user_id == user.id)
        )
        user_status = result.scalar_one_or_none()
        if user_status is None:
            user_status = UserStatus(user_id=user.id)
            self.db.add(user_status)

        user_status.online = True
        user_status.last_seen = now
        await self.db.commit()

    async def logout(self, user_id: str) -> None:
        """
        Flag the user offline before signing out.

        This is best effort: a failed or impossible status update is logged
        and sign-out carries on.
        """
        try:
            result = await self.db.execute(
                select(UserStatus).filter(UserStatus.user_id == user_id)
            )
            user_status = result.scalar_one_or_none()
            if user_status is None:
                raise LookupError(f"No status record for user {user_id}")

            user_status.online = False
            user_status.last_seen = self._clock()
            await self.db.commit()
        except (SQLAlchemyError, LookupError) as e:
            logger.warning(f"Failed to update user status: {e}")
            await self.db.rollback()
