"""User service — credential store queries and profile changes.

Learn: Service layer separates business logic from HTTP routing.
API routes call services, services call the database.
Emails are normalized (trimmed, lower-cased) on every lookup and write, so
"Ann@Example.com" and "ann@example.com" are the same account.
"""

import uuid
from datetime import date
from typing import Optional

import structlog
from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from highway_notes.db.models import Note, User
from highway_notes.errors import ValidationFailed

logger = structlog.get_logger()


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserService:
    """Reads and writes User rows."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, user_id: uuid.UUID) -> Optional[User]:
        return await self.db.get(User, user_id)

    async def get_by_email(self, email: str) -> Optional[User]:
        result = await self.db.execute(
            select(User).where(User.email == normalize_email(email))
        )
        return result.scalars().first()

    async def get_by_google_id(self, google_id: str) -> Optional[User]:
        result = await self.db.execute(select(User).where(User.google_id == google_id))
        return result.scalars().first()

    async def register(
        self,
        email: str,
        name: str,
        date_of_birth: Optional[date] = None,
    ) -> User:
        """Create an unverified, password-less account.

        Raises ValidationFailed if the email is taken, including the case
        where a concurrent registration wins the unique constraint.
        """
        email = normalize_email(email)
        if await self.get_by_email(email):
            raise ValidationFailed("User already exists with this email")

        user = User(
            email=email,
            name=name,
            date_of_birth=date_of_birth,
            is_email_verified=False,
        )
        self.db.add(user)
        try:
            await self.db.commit()
        except IntegrityError:
            await self.db.rollback()
            raise ValidationFailed("User already exists with this email")

        logger.info("user.registered", user_id=str(user.id), email=email)
        return user

    async def update_profile(self, user: User, name: Optional[str] = None) -> User:
        if name is not None:
            user.name = name
        await self.db.commit()
        return user

    async def delete_account(self, user: User) -> None:
        """Delete a user and everything they own."""
        user_id = user.id
        await self.db.execute(delete(Note).where(Note.author_id == user_id))
        await self.db.delete(user)
        await self.db.commit()
        logger.info("user.deleted", user_id=str(user_id))
