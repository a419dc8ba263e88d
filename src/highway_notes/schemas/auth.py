"""Pydantic schemas for the auth endpoints."""

import re
import uuid
from datetime import date
from typing import Optional

from pydantic import EmailStr, Field, field_validator

from highway_notes.schemas.common import ApiModel
from highway_notes.schemas.user import UserPublic

NAME_RE = re.compile(r"^[a-zA-Z\s]+$")


class EmailRequest(ApiModel):
    email: EmailStr

    @field_validator("email", mode="before")
    @classmethod
    def strip_email(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("email")
    @classmethod
    def lower_email(cls, v: str) -> str:
        # Accounts are keyed by the lower-cased address.
        return v.lower()


class RegisterRequest(EmailRequest):
    name: str = Field(..., min_length=2, max_length=50)
    date_of_birth: Optional[date] = None

    @field_validator("name")
    @classmethod
    def letters_and_spaces(cls, v: str) -> str:
        if not NAME_RE.match(v):
            raise ValueError("Name can only contain letters and spaces")
        return v

    @field_validator("date_of_birth", mode="before")
    @classmethod
    def blank_date_is_none(cls, v):
        if isinstance(v, str):
            v = v.strip()
            if not v:
                return None
            # Accept full ISO timestamps from date pickers: keep the date part.
            return v.split("T", 1)[0]
        return v


class LoginRequest(EmailRequest):
    pass


class OtpRequest(EmailRequest):
    pass


class VerifyOtpRequest(EmailRequest):
    otp: str = Field(..., min_length=6, max_length=6, pattern=r"^[0-9]{6}$")


class OtpSentResponse(ApiModel):
    """Returned by register and login: a code is on its way to user_id."""

    success: bool = True
    message: str
    user_id: uuid.UUID


class VerifyOtpResponse(ApiModel):
    success: bool = True
    message: str
    token: str
    user: UserPublic
