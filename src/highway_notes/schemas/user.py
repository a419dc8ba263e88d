"""Pydantic schemas for user profiles."""

import uuid
from datetime import date
from typing import Optional

from pydantic import Field

from highway_notes.schemas.common import ApiModel


class UserPublic(ApiModel):
    """What clients may see about a user. Never includes OTP state."""

    id: uuid.UUID
    email: str
    name: str
    date_of_birth: Optional[date] = None
    is_email_verified: bool


class UserResponse(ApiModel):
    success: bool = True
    message: Optional[str] = None
    user: UserPublic


class ProfileUpdate(ApiModel):
    name: Optional[str] = Field(None, min_length=2, max_length=50)
