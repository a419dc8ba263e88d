"""Federated identity binder — map a Google identity onto a local user.

Learn: Resolution order on every Google sign-in:

1. A user already linked to this Google id → that user.
2. A user with the same email → link the Google id to it. The accounts
   merge silently; an OTP-only account gains Google sign-in.
3. Nobody → create a user, already verified (Google vouched for the
   email), with no local credential.
"""

from dataclasses import dataclass

import structlog
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from highway_notes.db.models import User
from highway_notes.services.user_service import UserService, normalize_email

logger = structlog.get_logger()

MAX_NAME_LENGTH = 50


@dataclass(frozen=True)
class FederatedIdentity:
    """Identity asserted by an external provider."""

    provider_id: str
    email: str
    name: str


class FederatedService:
    def __init__(self, db: AsyncSession):
        self.db = db
        self.users = UserService(db)

    async def bind_identity(self, identity: FederatedIdentity) -> User:
        try:
            return await self._bind(identity)
        except IntegrityError:
            # A concurrent sign-in for the same Google account won the
            # unique constraint; its row is the answer.
            await self.db.rollback()
            user = await self.users.get_by_google_id(identity.provider_id)
            if not user:
                raise
            logger.info("federated.race_resolved", user_id=str(user.id))
            return user

    async def _bind(self, identity: FederatedIdentity) -> User:
        user = await self.users.get_by_google_id(identity.provider_id)
        if user:
            logger.info("federated.matched_provider_id", user_id=str(user.id))
            return user

        email = normalize_email(identity.email)
        user = await self.users.get_by_email(email)
        if user:
            user.google_id = identity.provider_id
            await self.db.commit()
            logger.info("federated.linked_existing", user_id=str(user.id))
            return user

        user = User(
            email=email,
            name=(identity.name or email.split("@")[0])[:MAX_NAME_LENGTH],
            google_id=identity.provider_id,
            is_email_verified=True,
        )
        self.db.add(user)
        await self.db.commit()
        logger.info("federated.user_created", user_id=str(user.id))
        return user
