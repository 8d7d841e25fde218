"""
User Repository for database operations.

Handles credential lookups and account maintenance for users. Generic CRUD
goes through the composed ``entities`` repository.
"""

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import exists, select
from sqlalchemy.ext.asyncio import AsyncSession

from core.assertions import not_none
from core.security import get_sha256_hash, new_security_stamp
from db.models import User, utc_now
from repositories.generic_repository import AsyncGenericRepository

logger = logging.getLogger(__name__)


class DuplicateUsernameError(ValueError):
    """Raised when a username is already taken."""

    def __init__(self, username: str):
        self.username = username
        super().__init__(f"Username '{username}' is already taken")


class UserRepository:
    """Repository for User database operations."""

    def __init__(self, session: AsyncSession):
        self.entities: AsyncGenericRepository[User, UUID] = AsyncGenericRepository(
            User, session
        )

    @property
    def session(self) -> AsyncSession:
        return self.entities.session

    async def exists_by_username(self, username: str) -> bool:
        """
        Check whether a user with this exact username exists.

        Args:
            username: Username to look for

        Returns:
            True if a matching row exists
        """
        stmt = select(exists().where(User.username == username))
        return bool(await self.session.scalar(stmt))

    async def get_by_username_and_password(
        self, username: str, password: str
    ) -> Optional[User]:
        """
        Find a user by username and plaintext password.

        The password is hashed before the lookup, so passing a stored hash
        instead of the password does not match.

        Args:
            username: Username to search for
            password: Plaintext password

        Returns:
            User or None
        """
        password_hash = get_sha256_hash(password)
        stmt = select(User).where(
            User.username == username,
            User.password_hash == password_hash,
        )
        result = await self.session.scalars(stmt)
        return result.first()

    async def add_with_password(
        self, user: User, password: str, save_now: bool = True
    ) -> None:
        """
        Add a new user, storing the hash of the given password.

        Raises:
            DuplicateUsernameError: If the username is already taken
        """
        not_none(user, "user")
        not_none(password, "password")

        # Users added earlier in this unit of work must be visible to the check
        await self.session.flush()
        if await self.exists_by_username(user.username):
            raise DuplicateUsernameError(user.username)

        user.password_hash = get_sha256_hash(password)
        await self.entities.add(user, save_now=save_now)
        logger.info(f"Added user | Username: {user.username}")

    async def update_security_stamp(self, user: User, save_now: bool = True) -> User:
        """Replace the user's security stamp with a fresh one and persist it."""
        not_none(user, "user")
        user.security_stamp = new_security_stamp()
        return await self.entities.update(user, save_now=save_now)

    async def update_last_login_date(self, user: User, save_now: bool = True) -> User:
        """Set the user's last login time to now (UTC) and persist it."""
        not_none(user, "user")
        user.last_login_date = utc_now()
        return await self.entities.update(user, save_now=save_now)
